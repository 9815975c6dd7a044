"""
CommitLedger — committed vs. actual focus time.
Entry point: prints today's ledger and metrics, optionally syncing first.
"""

import argparse
import asyncio
import faulthandler
import logging
import sys
from pathlib import Path

faulthandler.enable()

# Ensure the package is importable when run from elsewhere
sys.path.insert(0, str(Path(__file__).resolve().parent))

from commitledger.analytics.dashboard import dashboard_stats
from commitledger.analytics.metrics import get_enabled_metrics
from commitledger.analytics.weekly_report import export_report_markdown, generate_weekly_report
from commitledger.config import load_config
from commitledger.data.database import Database
from commitledger.data.repository import Repository
from commitledger.services.commitment_analyzer import analyze_commitment_patterns, commitment_nudge
from commitledger.services.dates import format_clock
from commitledger.services.ledger import net_position, penalty_estimate
from commitledger.services.sync_service import SyncService
from commitledger.sync.errors import SyncError
from commitledger.sync.reconciler import Reconciler
from commitledger.sync.remote_store import JsonFileRemoteStore, RetryingRemoteStore


def setup_logging(log_file: str = "commitledger.log") -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_file, encoding="utf-8"),
        ],
    )


def _signed(seconds: float) -> str:
    return f"{'+' if seconds >= 0 else '-'}{format_clock(seconds)}"


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="CommitLedger focus-time accounting")
    parser.add_argument("--db", type=Path, help="SQLite database path")
    parser.add_argument("--config", type=Path, help="JSON config file")
    parser.add_argument("--sync", metavar="USER", help="run a full sync for USER first")
    parser.add_argument("--remote", type=Path, help="remote store directory")
    parser.add_argument("--report", action="store_true", help="print the weekly review")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    config = load_config(args.config)
    setup_logging(config["log_file"])
    logger = logging.getLogger(__name__)
    logger.info("Starting CommitLedger...")

    db_path = args.db or (Path(config["db_path"]) if config["db_path"] else None)
    db = Database(db_path)
    db.connect()
    if not db.check_version():
        logger.info("Stored data version updated.")
    repo = Repository(db.conn)

    try:
        if args.sync:
            remote_dir = args.remote or config["remote_dir"]
            if not remote_dir:
                logger.error("--sync needs --remote or remote_dir in the config.")
                return 2
            store = RetryingRemoteStore.from_config(
                JsonFileRemoteStore(Path(remote_dir)), config["sync"]
            )
            service = SyncService(repo, Reconciler(store))
            try:
                asyncio.run(service.full_sync(args.sync))
            except SyncError as e:
                logger.error("Sync failed (%s): %s", e.error_type.value, e)
                print(f"Sync failed: {e}")

        sessions = repo.list_sessions()
        settings = repo.get_settings()
        metric_cfg = config["metrics"]

        position = net_position(sessions)
        print(f"Today:      {_signed(position.today_seconds)}")
        print(f"This week:  {_signed(position.weekly_seconds)}")
        if position.total_owed_seconds > 0:
            print(penalty_estimate(position.total_owed_seconds,
                                   config["penalty_per_minute"]).label)

        stats = dashboard_stats(
            sessions, settings,
            ser_min_duration=metric_cfg["ser_min_duration_s"],
            global_ser_min_duration=metric_cfg["global_ser_min_duration_s"],
            daily_limit_hours=config["daily_limit_hours"],
        )
        print(f"Reps today: {stats.today_reps}  SER: {stats.today_ser:.2f}/h  "
              f"Goal: {stats.volume_progress:.0f}%")
        if stats.daily_limit_exceeded:
            print(f"Over {config['daily_limit_hours']}h today. Consider a break.")

        for m in get_enabled_metrics(sessions, settings.enabled_metrics,
                                     settings.active_days, metric_cfg["lookback_days"]):
            value = "--" if m.value is None else f"{m.value}{m.unit}"
            print(f"{m.name}: {value}")

        nudge = commitment_nudge(analyze_commitment_patterns(sessions))
        if nudge:
            print(nudge)

        if args.report:
            print()
            print(export_report_markdown(generate_weekly_report(sessions, settings), settings))
    finally:
        db.close()

    logger.info("Done.")
    return 0


if __name__ == "__main__":
    sys.exit(main())


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   Command-line entry point. Loads config, sets up logging, opens SQLite,
#   optionally runs a full sync against a shared-folder remote store, then
#   prints the ledger, dashboard numbers, enabled metrics and nudge.
#
# Key points:
#   - Logging goes to both console and the configured log file.
#   - A failed sync is reported and the local data is still shown; the
#     SyncService has already applied the merged snapshot if the failure
#     happened during upload.
#   - asyncio.run() drives the one async operation; everything else is
#     synchronous.
