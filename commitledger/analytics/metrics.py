"""
Metric calculators — derived statistics over a collection of sessions.

All functions are pure. Percentage metrics report ``value=None`` when their
denominator is empty so "no data yet" stays distinguishable from "0%".
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable, List, Optional, Sequence

import numpy as np

from commitledger.data.models import DEFAULT_ACTIVE_DAYS, Session
from commitledger.services.dates import (
    Instant, day_key, parse_day_key, to_local_datetime,
)
from commitledger.services.ledger import session_balance

SER_MIN_DURATION_SECONDS = 300
DEEP_WORK_THRESHOLD_SECONDS = 3600
DEFAULT_LOOKBACK_DAYS = 7


@dataclass(frozen=True)
class MetricResult:
    id: str
    name: str
    description: str
    value: Optional[float]
    unit: str
    format: str     # 'percentage' | 'number' | 'time'


def _round(x: float) -> int:
    # half-up, matching how the dashboards have always displayed percentages
    return int(math.floor(x + 0.5))


# ── Basic aggregates ────────────────────────────────────────────────────────

def rate_metric(reps: float, duration_seconds: float,
                min_duration_threshold: float = SER_MIN_DURATION_SECONDS) -> float:
    """
    SER: reps per hour, or exactly 0 at or below the noise floor.

    Daily views pass a lower threshold than lifetime views.
    """
    if duration_seconds <= min_duration_threshold:
        return 0
    return reps / (duration_seconds / 3600)


def total_duration(sessions: Iterable[Session]) -> int:
    return int(np.sum([s.duration_seconds for s in sessions], dtype=np.int64))


def total_reps(sessions: Iterable[Session]) -> int:
    return int(np.sum([s.reps for s in sessions], dtype=np.int64))


def sessions_by_date(sessions: Iterable[Session], date: str) -> List[Session]:
    return [s for s in sessions if s.date == date]


# ── Percentage metrics ──────────────────────────────────────────────────────

def focus_quality(sessions: Iterable[Session]) -> MetricResult:
    """Average commitment completion, each session capped at 100%."""
    targeted = [s for s in sessions if s.target_duration_seconds]
    value = None
    if targeted:
        rates = np.array([s.duration_seconds / s.target_duration_seconds * 100
                          for s in targeted], dtype=float)
        value = _round(float(np.mean(np.minimum(rates, 100.0))))
    return MetricResult("focusQuality", "Focus Quality",
                        "Average commitment completion rate", value, "%", "percentage")


def deep_work_ratio(sessions: Iterable[Session]) -> MetricResult:
    sessions = list(sessions)
    value = None
    if sessions:
        deep = sum(1 for s in sessions if s.duration_seconds >= DEEP_WORK_THRESHOLD_SECONDS)
        value = _round(deep / len(sessions) * 100)
    return MetricResult("deepWorkRatio", "Deep Work Ratio",
                        "Sessions >=60min / Total sessions", value, "%", "percentage")


def consistency(
    sessions: Iterable[Session],
    active_days: Sequence[int] = DEFAULT_ACTIVE_DAYS,
    lookback_days: int = DEFAULT_LOOKBACK_DAYS,
    today: Optional[Instant] = None,
) -> MetricResult:
    """Share of active weekdays in the lookback window that have a session."""
    name = f"Consistency ({lookback_days}d)"
    base = to_local_datetime(today).date()
    window = [base - timedelta(days=i) for i in range(lookback_days)]
    # active_days uses 0 = Sunday
    active = [d for d in window if (d.weekday() + 1) % 7 in active_days]
    value = None
    if active:
        logged = {s.date for s in sessions}
        hit = sum(1 for d in active if d.isoformat() in logged)
        value = _round(hit / len(active) * 100)
    return MetricResult("consistency", name, "Active days with sessions",
                        value, "%", "percentage")


def avg_session_duration(sessions: Iterable[Session]) -> MetricResult:
    durations = [s.duration_seconds for s in sessions]
    value = _round(float(np.mean(durations)) / 60) if durations else None
    return MetricResult("avgDuration", "Avg Session", "Average session duration",
                        value, "min", "time")


def budget_adherence(sessions: Iterable[Session]) -> MetricResult:
    """Share of committed sessions that met or beat their commitment."""
    targeted = [s for s in sessions if s.target_duration_seconds]
    value = None
    if targeted:
        met = sum(1 for s in targeted if session_balance(s) >= 0)
        value = _round(met / len(targeted) * 100)
    return MetricResult("budgetAdherence", "Budget Adherence",
                        "Sessions meeting commitment", value, "%", "percentage")


# ── Bundles ─────────────────────────────────────────────────────────────────

def calculate_all_metrics(
    sessions: Iterable[Session],
    active_days: Sequence[int] = DEFAULT_ACTIVE_DAYS,
    lookback_days: int = DEFAULT_LOOKBACK_DAYS,
    today: Optional[Instant] = None,
) -> List[MetricResult]:
    sessions = list(sessions)
    cutoff = parse_day_key(day_key(today)) - timedelta(days=lookback_days)
    recent = [s for s in sessions if parse_day_key(s.date) >= cutoff]
    return [
        focus_quality(recent),
        deep_work_ratio(recent),
        consistency(sessions, active_days, lookback_days, today),
        avg_session_duration(recent),
        budget_adherence(recent),
    ]


def get_enabled_metrics(
    sessions: Iterable[Session],
    enabled_ids: Sequence[str],
    active_days: Sequence[int] = DEFAULT_ACTIVE_DAYS,
    lookback_days: int = DEFAULT_LOOKBACK_DAYS,
    today: Optional[Instant] = None,
) -> List[MetricResult]:
    metrics = calculate_all_metrics(sessions, active_days, lookback_days, today)
    return [m for m in metrics if m.id in enabled_ids]
