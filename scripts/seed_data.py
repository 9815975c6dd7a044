"""
Seed Data Generator — fills the local database with realistic sessions.

Run: python scripts/seed_data.py [num_days]
"""

import random
import sys
from datetime import datetime, timedelta
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from commitledger.data.database import Database
from commitledger.data.models import Session, Settings
from commitledger.data.repository import Repository

COMMITMENT_CHOICES_MIN = [30, 30, 45, 60, 90]


def _pause_fields(duration_s: int) -> dict:
    """Opaque pause bookkeeping, stored as extra fields on the session."""
    pauses = random.randint(0, 3)
    if not pauses:
        return {}
    pause_time = sum(random.randint(60, 600) for _ in range(pauses))
    return {"pauseCount": pauses, "totalPauseTime": min(pause_time, duration_s // 2)}


def seed(num_days: int = 30) -> None:
    db = Database()
    db.connect()
    repo = Repository(db.conn)

    # ── Settings ────────────────────────────────────────────────────────
    start_clean = (datetime.now() - timedelta(days=num_days + 5)).date().isoformat()
    repo.save_settings(Settings(weekly_rep_target=60, daily_time_goal_hours=3,
                                substance_free_start_date=start_clean))

    # ── Sessions ────────────────────────────────────────────────────────
    base = datetime.now() - timedelta(days=num_days)
    count = 0
    for day in range(num_days):
        for _ in range(random.randint(0, 3)):
            start = base + timedelta(days=day, hours=random.randint(8, 20),
                                     minutes=random.randint(0, 59))
            # Some sessions are free-form, without a commitment
            target = (random.choice(COMMITMENT_CHOICES_MIN) * 60
                      if random.random() < 0.8 else None)
            planned = target or random.randint(15, 90) * 60
            duration = max(60, int(planned * random.uniform(0.6, 1.7)))
            session = Session.create(
                duration_seconds=duration,
                target_duration_seconds=target,
                reps=random.randint(0, max(1, duration // 600)),
                timestamp=int(start.timestamp() * 1000),
                **_pause_fields(duration),
            )
            repo.save_session(session)
            count += 1

    db.close()
    print(f"Seeded {count} sessions over {num_days} days.")


if __name__ == "__main__":
    days = int(sys.argv[1]) if len(sys.argv) > 1 else 30
    seed(days)


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this script does:
#   Generates fake history so the ledger, metrics and weekly report have
#   something to show. 0-3 sessions per day, mostly with a commitment.
#
# Key points:
#   - Durations range 60%-170% of the commitment, so both surpluses (some
#     hitting the cap) and deficits appear.
#   - Sessions go through Session.create(), so the day key is fixed the
#     same way the app does it, and through the Repository, never raw SQL.
