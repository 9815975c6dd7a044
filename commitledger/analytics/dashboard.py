"""
Dashboard summary — the numbers the home screen renders.

Collects today/yesterday figures, weekly reps, the lifetime rate, the streak
counter and the daily-goal progress into one record so the presentation
layer does no arithmetic of its own.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from commitledger.analytics.metrics import (
    SER_MIN_DURATION_SECONDS, rate_metric, sessions_by_date, total_duration, total_reps,
)
from commitledger.data.models import Session, Settings
from commitledger.services.dates import (
    Instant, day_key, parse_day_key, subtract_days, to_local_datetime, week_bounds,
)
from commitledger.services.ledger import daily_balance

GLOBAL_SER_MIN_DURATION_SECONDS = 3600
DAILY_LIMIT_HOURS = 6
DEFAULT_DAILY_GOAL_HOURS = 4


@dataclass(frozen=True)
class DashboardStats:
    today_reps: int
    today_duration_seconds: int
    today_net_position_seconds: float
    today_ser: float
    today_is_noise: bool
    yesterday_reps: int
    yesterday_ser: float
    weekly_reps: int
    global_ser: float
    days_clean: int
    daily_goal_seconds: float
    volume_progress: float          # percent of daily goal, capped at 100
    daily_limit_exceeded: bool


def _days_since(start_iso: str, now) -> int:
    if not start_iso:
        return 0
    start = to_local_datetime(start_iso).date()
    return max(0, (now.date() - start).days)


def dashboard_stats(
    sessions: Iterable[Session],
    settings: Settings,
    now: Optional[Instant] = None,
    ser_min_duration: float = SER_MIN_DURATION_SECONDS,
    global_ser_min_duration: float = GLOBAL_SER_MIN_DURATION_SECONDS,
    daily_limit_hours: float = DAILY_LIMIT_HOURS,
) -> DashboardStats:
    sessions = list(sessions)
    current = to_local_datetime(now)
    today_key = day_key(current)
    yesterday_key = subtract_days(current, 1)

    today_sessions = sessions_by_date(sessions, today_key)
    today_dur = total_duration(today_sessions)
    today_reps = total_reps(today_sessions)

    yesterday_sessions = sessions_by_date(sessions, yesterday_key)
    y_dur = total_duration(yesterday_sessions)
    y_reps = total_reps(yesterday_sessions)

    start, end = week_bounds(current)
    weekly = [s for s in sessions if start <= parse_day_key(s.date) <= end]

    goal_hours = settings.daily_time_goal_hours or DEFAULT_DAILY_GOAL_HOURS
    goal_seconds = goal_hours * 3600

    return DashboardStats(
        today_reps=today_reps,
        today_duration_seconds=today_dur,
        today_net_position_seconds=daily_balance(today_sessions),
        today_ser=rate_metric(today_reps, today_dur, ser_min_duration),
        today_is_noise=0 < today_dur <= ser_min_duration,
        yesterday_reps=y_reps,
        yesterday_ser=rate_metric(y_reps, y_dur, ser_min_duration),
        weekly_reps=total_reps(weekly),
        global_ser=rate_metric(total_reps(sessions), total_duration(sessions),
                               global_ser_min_duration),
        days_clean=_days_since(settings.substance_free_start_date, current),
        daily_goal_seconds=goal_seconds,
        volume_progress=min(today_dur / goal_seconds * 100, 100.0),
        daily_limit_exceeded=today_dur > daily_limit_hours * 3600,
    )
