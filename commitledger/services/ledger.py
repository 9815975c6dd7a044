"""
Budget Ledger — scores sessions against their pre-committed duration.

Each session with a commitment earns a signed balance: deficits count in
full, surpluses are capped at a fraction of the commitment. Daily and weekly
balances are plain sums of the per-session values.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, Optional

from commitledger.data.models import Session
from commitledger.services.dates import (
    Instant, day_key, parse_day_key, to_local_datetime, week_bounds,
)

logger = logging.getLogger(__name__)

MAX_SURPLUS_RATIO = 0.5
DAYS_PER_WEEK = 7


@dataclass(frozen=True)
class WeeklyBalance:
    total_balance: float = 0
    average_daily_balance: float = 0
    total_surplus: float = 0
    total_deficit: float = 0
    days_with_sessions: int = 0

    def to_dict(self) -> Dict[str, float]:
        return {
            "totalBalance": self.total_balance,
            "averageDailyBalance": self.average_daily_balance,
            "totalSurplus": self.total_surplus,
            "totalDeficit": self.total_deficit,
            "daysWithSessions": self.days_with_sessions,
        }


@dataclass(frozen=True)
class NetPosition:
    """Today's and this week's balance, plus the time currently owed."""
    today_seconds: float
    weekly_seconds: float
    total_owed_seconds: float


@dataclass(frozen=True)
class PenaltyEstimate:
    """Display-only figure for owed time. Nothing is charged."""
    total_minutes_owed: int
    penalty_amount: float
    label: str


# ── Per-session ─────────────────────────────────────────────────────────────

def session_balance(session: Session) -> float:
    """Signed seconds of surplus (capped) or deficit (uncapped)."""
    target = session.target_duration_seconds
    if target is None:
        return 0
    raw = session.duration_seconds - target
    if raw > 0:
        return min(raw, target * MAX_SURPLUS_RATIO)
    return raw


# ── Aggregates ──────────────────────────────────────────────────────────────

def daily_balance(sessions: Iterable[Session], day: Optional[str] = None) -> float:
    """Sum of session balances, optionally restricted to one day key."""
    return sum(
        session_balance(s) for s in sessions
        if day is None or s.date == day
    )


def weekly_balance(sessions: Iterable[Session], start: Instant, end: Instant) -> WeeklyBalance:
    """
    Balance summary over an inclusive range.

    A session is in range when its ``date`` (as local midnight) falls
    between ``start`` and ``end``; ``timestamp`` is not consulted. The daily
    average always divides by 7.
    """
    lo = to_local_datetime(start)
    hi = to_local_datetime(end)

    total = 0
    surplus = 0
    deficit = 0
    days = set()
    for s in sessions:
        if not lo <= parse_day_key(s.date) <= hi:
            continue
        days.add(s.date)
        b = session_balance(s)
        total += b
        if b > 0:
            surplus += b
        elif b < 0:
            deficit += b

    return WeeklyBalance(
        total_balance=total,
        average_daily_balance=total / DAYS_PER_WEEK,
        total_surplus=surplus,
        total_deficit=deficit,
        days_with_sessions=len(days),
    )


def net_position(sessions: Iterable[Session], now: Optional[Instant] = None) -> NetPosition:
    sessions = list(sessions)
    current: datetime = to_local_datetime(now)
    start, end = week_bounds(current)
    today_balance = daily_balance(sessions, day_key(current))
    week = weekly_balance(sessions, start, end)
    return NetPosition(
        today_seconds=today_balance,
        weekly_seconds=week.total_balance,
        total_owed_seconds=-week.total_balance if week.total_balance < 0 else 0,
    )


def penalty_estimate(owed_seconds: float, rate_per_minute: float) -> PenaltyEstimate:
    minutes = int(round(max(owed_seconds, 0) / 60))
    amount = round(minutes * rate_per_minute, 2)
    return PenaltyEstimate(
        total_minutes_owed=minutes,
        penalty_amount=amount,
        label=f"Owed: {minutes}m -> ${amount:.2f}",
    )
