"""
Data models for CommitLedger.

Plain dataclasses for the two records every layer exchanges: a focus Session
and the user's Settings. Both carry their exact wire shape (camelCase keys)
through ``to_dict``/``from_dict`` so exports, the local store and the remote
store all see the same documents.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from commitledger.services.dates import day_key, parse_day_key

# Wire keys owned by Session; anything else is opaque and kept in ``extra``.
SESSION_KEYS = (
    "id", "timestamp", "durationSeconds", "targetDurationSeconds",
    "reps", "notes", "date",
)
SESSION_REQUIRED_KEYS = {"id", "timestamp", "durationSeconds", "date"}

SETTINGS_KEYS = (
    "weeklyRepTarget", "dailyTimeGoalHours", "substanceFreeStartDate",
    "activeDays", "enabledMetrics", "goalCategoryId",
    "customGoalUnit", "customGoalUnitPlural",
)

DEFAULT_ACTIVE_DAYS = [1, 2, 3, 4, 5]   # Monday-Friday (0 = Sunday)
DEFAULT_ENABLED_METRICS = ["focusQuality", "deepWorkRatio", "consistency"]


@dataclass(frozen=True)
class Session:
    """One completed (or aborted) focus interval."""
    id: str
    timestamp: int
    duration_seconds: int
    date: str
    reps: int = 0
    notes: str = ""
    target_duration_seconds: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        duration_seconds: int,
        target_duration_seconds: Optional[int] = None,
        reps: int = 0,
        notes: str = "",
        timestamp: Optional[int] = None,
        **extra: Any,
    ) -> "Session":
        """Build a new session, fixing its local day key once."""
        ts = timestamp if timestamp is not None else int(datetime.now().timestamp() * 1000)
        return cls(
            id=str(uuid.uuid4()),
            timestamp=ts,
            duration_seconds=duration_seconds,
            date=day_key(ts),
            reps=reps,
            notes=notes,
            target_duration_seconds=target_duration_seconds,
            extra=dict(extra),
        )

    @classmethod
    def from_dict(cls, doc: Dict[str, Any]) -> "Session":
        missing = SESSION_REQUIRED_KEYS - set(doc.keys())
        if missing:
            raise ValueError(
                f"Session document missing required fields: {', '.join(sorted(missing))}"
            )
        for key in ("timestamp", "durationSeconds", "reps", "targetDurationSeconds"):
            value = doc.get(key)
            if value is None and key in ("reps", "targetDurationSeconds"):
                continue
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"Session field '{key}' must be an integer, got {value!r}")
        if not isinstance(doc.get("notes", ""), str):
            raise ValueError("Session field 'notes' must be a string")
        try:
            canonical = parse_day_key(doc["date"]).date().isoformat() == doc["date"]
        except (TypeError, ValueError):
            canonical = False
        if not canonical:
            raise ValueError(f"Session field 'date' must be YYYY-MM-DD, got {doc['date']!r}")
        return cls(
            id=str(doc["id"]),
            timestamp=doc["timestamp"],
            duration_seconds=doc["durationSeconds"],
            date=doc["date"],
            reps=doc.get("reps") or 0,
            notes=doc.get("notes", ""),
            target_duration_seconds=doc.get("targetDurationSeconds"),
            extra={k: v for k, v in doc.items() if k not in SESSION_KEYS},
        )

    def to_dict(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {
            "id": self.id,
            "timestamp": self.timestamp,
            "durationSeconds": self.duration_seconds,
        }
        if self.target_duration_seconds is not None:
            doc["targetDurationSeconds"] = self.target_duration_seconds
        doc["reps"] = self.reps
        doc["notes"] = self.notes
        doc["date"] = self.date
        doc.update(self.extra)
        return doc

    @property
    def has_target(self) -> bool:
        return self.target_duration_seconds is not None

    @property
    def pause_count(self) -> int:
        return self.extra.get("pauseCount") or 0

    @property
    def total_pause_time(self) -> float:
        return self.extra.get("totalPauseTime") or 0


@dataclass(frozen=True)
class Settings:
    """Per-user settings. Replaced wholesale, never patched."""
    weekly_rep_target: int = 50
    daily_time_goal_hours: float = 4
    substance_free_start_date: str = ""
    active_days: List[int] = field(default_factory=lambda: list(DEFAULT_ACTIVE_DAYS))
    enabled_metrics: List[str] = field(default_factory=lambda: list(DEFAULT_ENABLED_METRICS))
    goal_category_id: str = "problems"
    custom_goal_unit: Optional[str] = None
    custom_goal_unit_plural: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, doc: Dict[str, Any]) -> "Settings":
        defaults = cls()
        return cls(
            weekly_rep_target=doc.get("weeklyRepTarget", defaults.weekly_rep_target),
            daily_time_goal_hours=doc.get("dailyTimeGoalHours", defaults.daily_time_goal_hours),
            substance_free_start_date=doc.get(
                "substanceFreeStartDate", defaults.substance_free_start_date
            ),
            active_days=list(doc.get("activeDays", defaults.active_days)),
            enabled_metrics=list(doc.get("enabledMetrics", defaults.enabled_metrics)),
            goal_category_id=doc.get("goalCategoryId", defaults.goal_category_id),
            custom_goal_unit=doc.get("customGoalUnit"),
            custom_goal_unit_plural=doc.get("customGoalUnitPlural"),
            extra={k: v for k, v in doc.items() if k not in SETTINGS_KEYS},
        )

    def to_dict(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {
            "weeklyRepTarget": self.weekly_rep_target,
            "dailyTimeGoalHours": self.daily_time_goal_hours,
            "substanceFreeStartDate": self.substance_free_start_date,
            "activeDays": list(self.active_days),
            "enabledMetrics": list(self.enabled_metrics),
            "goalCategoryId": self.goal_category_id,
        }
        if self.custom_goal_unit is not None:
            doc["customGoalUnit"] = self.custom_goal_unit
        if self.custom_goal_unit_plural is not None:
            doc["customGoalUnitPlural"] = self.custom_goal_unit_plural
        doc.update(self.extra)
        return doc


DEFAULT_SETTINGS = Settings()


@dataclass(frozen=True)
class GoalCategory:
    """What a 'rep' counts (problems, pages, ...)."""
    id: str
    name: str
    unit: str
    unit_plural: str
    description: str = ""


DEFAULT_GOAL_CATEGORIES: List[GoalCategory] = [
    GoalCategory("problems", "Problems Solved", "problem", "problems",
                 "Track exercises, problem sets, or practice questions completed"),
    GoalCategory("tasks", "Tasks Completed", "task", "tasks",
                 "Track to-do items or work tasks finished"),
    GoalCategory("pomodoros", "Pomodoro Cycles", "pomodoro", "pomodoros",
                 "Track focused work intervals (typically 25 minutes each)"),
    GoalCategory("pages", "Pages Read/Written", "page", "pages",
                 "Track reading or writing progress"),
    GoalCategory("custom", "Custom", "unit", "units",
                 "Define your own tracking unit"),
]


@dataclass(frozen=True)
class GoalLabels:
    singular: str
    plural: str
    name: str
    category: GoalCategory


def get_goal_labels(settings: Settings) -> GoalLabels:
    """Resolve unit labels for the user's goal category."""
    category = next(
        (c for c in DEFAULT_GOAL_CATEGORIES if c.id == settings.goal_category_id),
        DEFAULT_GOAL_CATEGORIES[0],
    )
    if settings.goal_category_id == "custom" and settings.custom_goal_unit:
        plural = settings.custom_goal_unit_plural or settings.custom_goal_unit + "s"
        return GoalLabels(
            singular=settings.custom_goal_unit,
            plural=plural,
            name="Custom Goal",
            category=GoalCategory(category.id, category.name,
                                  settings.custom_goal_unit, plural,
                                  category.description),
        )
    return GoalLabels(category.unit, category.unit_plural, category.name, category)


def format_goal_count(count: int, settings: Settings) -> str:
    labels = get_goal_labels(settings)
    return f"{count} {labels.singular if count == 1 else labels.plural}"


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   Defines the Session and Settings records and how they map to the
#   camelCase documents stored locally, exported to backup files and synced
#   to the cloud.
#
# Key pieces:
#   - Session: frozen, so ledger and sync code can only produce new values.
#     `date` is fixed by Session.create() and never derived again from
#     `timestamp`.
#   - extra: every key the core does not interpret (pause events, mental
#     notes, edit counters, display fields) is carried here and written back
#     after the known keys.
#   - Goal categories: label lookup for what a "rep" means to the user.
#
# Data flow:
#   document (dict) -> from_dict() -> Session/Settings -> ledger, metrics,
#   reconciler -> to_dict() -> SQLite / export file / remote store
