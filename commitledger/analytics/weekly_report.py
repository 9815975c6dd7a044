"""
Weekly Review — a templated summary of one Monday-to-Sunday week.

Builds a WeeklyReport from the session history (totals, budget balance,
metrics, behavioural insights, week-over-week change) and renders it as
Markdown for export.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from commitledger.analytics.metrics import (
    calculate_all_metrics, rate_metric, total_duration, total_reps,
)
from commitledger.data.models import Session, Settings, format_goal_count, get_goal_labels
from commitledger.services.dates import (
    Instant, format_clock, parse_day_key, to_local_datetime, week_bounds,
)
from commitledger.services.ledger import WeeklyBalance, weekly_balance

logger = logging.getLogger(__name__)

DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


@dataclass
class ReportSection:
    title: str
    content: str
    highlight: str = "neutral"      # 'positive' | 'negative' | 'neutral'
    emoji: str = ""


@dataclass
class PausePatterns:
    avg_pauses_per_session: float
    avg_pause_time: float           # seconds


@dataclass
class WeekOverWeek:
    duration_change: float          # percent
    goals_change: float             # percent
    balance_change: float           # seconds


@dataclass
class WeeklyReport:
    id: str
    generated_at: datetime
    week_start: str
    week_end: str
    total_sessions: int
    total_duration: int
    total_goals_completed: int
    active_days_count: int
    budget_balance: WeeklyBalance
    metrics: Dict[str, Optional[float]] = field(default_factory=dict)
    best_day: Optional[str] = None
    longest_session: Optional[int] = None
    pause_patterns: Optional[PausePatterns] = None
    sections: List[ReportSection] = field(default_factory=list)
    week_over_week: Optional[WeekOverWeek] = None


def _in_range(sessions: List[Session], start: datetime, end: datetime) -> List[Session]:
    return [s for s in sessions if start <= parse_day_key(s.date) <= end]


def generate_weekly_report(
    sessions: List[Session],
    settings: Settings,
    week_offset: int = 0,
    now: Optional[Instant] = None,
) -> WeeklyReport:
    """
    Build the report for the week ``week_offset`` weeks from now
    (0 = current week, -1 = last week).
    """
    current = to_local_datetime(now)
    target = current - timedelta(weeks=abs(week_offset))
    start, end = week_bounds(target)
    week_sessions = _in_range(sessions, start, end)

    duration = total_duration(week_sessions)
    goals = total_reps(week_sessions)
    balance = weekly_balance(sessions, start, end)

    all_metrics = calculate_all_metrics(
        week_sessions, settings.active_days, 7, today=end,
    )
    metrics: Dict[str, Optional[float]] = {m.id: m.value for m in all_metrics}
    ser = rate_metric(goals, duration)
    metrics["ser"] = round(ser, 1) if ser > 0 else None

    per_day: Dict[int, int] = {}
    for s in week_sessions:
        wd = parse_day_key(s.date).weekday()
        per_day[wd] = per_day.get(wd, 0) + s.duration_seconds
    best_day = None
    best = 0
    for wd, dur in per_day.items():
        if dur > best:
            best, best_day = dur, DAY_NAMES[wd]

    longest = max((s.duration_seconds for s in week_sessions), default=None)

    paused = [s for s in week_sessions if s.pause_count > 0]
    pauses = None
    if paused:
        pauses = PausePatterns(
            avg_pauses_per_session=sum(s.pause_count for s in paused) / len(paused),
            avg_pause_time=sum(s.total_pause_time for s in paused) / len(paused),
        )

    prev_start, prev_end = start - timedelta(weeks=1), end - timedelta(weeks=1)
    prev_sessions = _in_range(sessions, prev_start, prev_end)
    wow = None
    if prev_sessions:
        prev_dur = total_duration(prev_sessions)
        prev_goals = total_reps(prev_sessions)
        prev_balance = weekly_balance(sessions, prev_start, prev_end)
        wow = WeekOverWeek(
            duration_change=(duration - prev_dur) / prev_dur * 100 if prev_dur > 0 else 0,
            goals_change=(goals - prev_goals) / prev_goals * 100 if prev_goals > 0 else 0,
            balance_change=balance.total_balance - prev_balance.total_balance,
        )

    week_start = start.date().isoformat()
    report = WeeklyReport(
        id=f"week-{week_start}",
        generated_at=current,
        week_start=week_start,
        week_end=end.date().isoformat(),
        total_sessions=len(week_sessions),
        total_duration=duration,
        total_goals_completed=goals,
        active_days_count=len({s.date for s in week_sessions}),
        budget_balance=balance,
        metrics=metrics,
        best_day=best_day,
        longest_session=longest,
        pause_patterns=pauses,
        week_over_week=wow,
    )
    report.sections = _build_sections(report, settings)
    logger.info("Weekly report %s: %d sessions", report.id, report.total_sessions)
    return report


def _build_sections(report: WeeklyReport, settings: Settings) -> List[ReportSection]:
    labels = get_goal_labels(settings)
    sections: List[ReportSection] = [
        ReportSection(
            "Executive Summary",
            f"You logged {format_clock(report.total_duration)} across "
            f"{report.total_sessions} sessions, completing "
            f"{format_goal_count(report.total_goals_completed, settings)}.",
            "neutral" if report.total_sessions else "negative",
            "📊",
        )
    ]

    total = report.budget_balance.total_balance
    if total > 0:
        sections.append(ReportSection(
            "Budget Health",
            f"Surplus of {format_clock(total)}. You exceeded your commitments this week.",
            "positive", "✅"))
    elif total < 0:
        sections.append(ReportSection(
            "Budget Health",
            f"Deficit of {format_clock(total)}. Consider adjusting your commitment "
            "levels or scheduling more sessions.",
            "negative", "⚠️"))
    else:
        sections.append(ReportSection(
            "Budget Health", "Budget balanced. You met your commitments exactly.",
            "neutral", "⚖️"))

    quality = report.metrics.get("focusQuality")
    if quality is not None:
        if quality >= 90:
            insight = "Exceptional focus! You consistently meet your commitments."
        elif quality >= 70:
            insight = "Solid focus quality. Minor room for improvement."
        elif quality >= 50:
            insight = "Moderate focus. Consider setting more realistic commitments."
        else:
            insight = "Focus quality needs attention. Start with smaller, achievable commitments."
        highlight = "positive" if quality >= 70 else "neutral" if quality >= 50 else "negative"
        sections.append(ReportSection(
            "Focus Quality", f"{quality}% commitment completion rate. {insight}",
            highlight, "🎯" if quality >= 70 else "📉"))

    if report.best_day:
        sections.append(ReportSection(
            "Peak Performance", f"{report.best_day} was your most productive day this week.",
            "positive", "🏆"))

    deep = report.metrics.get("deepWorkRatio")
    if deep is not None:
        tip = ("Strong deep work practice!" if deep >= 50
               else "Try scheduling longer, uninterrupted sessions.")
        sections.append(ReportSection(
            "Deep Work", f"{deep}% of sessions were 60+ minutes. {tip}",
            "positive" if deep >= 50 else "neutral", "🧠" if deep >= 50 else "💡"))

    pauses = report.pause_patterns
    if pauses and pauses.avg_pauses_per_session > 0:
        busy = pauses.avg_pauses_per_session > 3
        sections.append(ReportSection(
            "Session Flow",
            f"Average {pauses.avg_pauses_per_session:.1f} pauses per session "
            f"({round(pauses.avg_pause_time / 60)}m total pause time). "
            + ("Consider reducing interruptions." if busy else "Good flow management!"),
            "neutral" if busy else "positive", "⏸️"))

    target = settings.weekly_rep_target
    progress = report.total_goals_completed / target * 100 if target > 0 else 0
    if progress >= 100:
        highlight = "positive"
    elif progress >= 70:
        highlight = "neutral"
    else:
        highlight = "negative"
    sections.append(ReportSection(
        "Weekly Contract",
        f"{report.total_goals_completed} / {target} {labels.plural} ({round(progress)}%)",
        highlight, "🎉" if progress >= 100 else "📈"))
    return sections


def export_report_markdown(report: WeeklyReport, settings: Settings) -> str:
    labels = get_goal_labels(settings)
    lines = [
        "# Weekly Review Report",
        "",
        f"**Week:** {report.week_start} to {report.week_end}",
        f"**Generated:** {report.generated_at:%Y-%m-%d %H:%M}",
        "",
        "---",
        "",
    ]
    for section in report.sections:
        heading = f"## {section.emoji} {section.title}" if section.emoji else f"## {section.title}"
        lines += [heading, "", section.content, ""]

    total = report.budget_balance.total_balance
    lines += [
        "## 📊 Statistics",
        "",
        "| Metric | Value |",
        "|--------|-------|",
        f"| Total Sessions | {report.total_sessions} |",
        f"| Total Duration | {format_clock(report.total_duration)} |",
        f"| {labels.name} | {report.total_goals_completed} |",
        f"| Active Days | {report.active_days_count} |",
        f"| Budget Balance | {'+' if total >= 0 else '-'}{format_clock(total)} |",
    ]
    for key, title, suffix in (("focusQuality", "Focus Quality", "%"),
                               ("deepWorkRatio", "Deep Work Ratio", "%"),
                               ("consistency", "Consistency", "%"),
                               ("ser", "SER", "")):
        value = report.metrics.get(key)
        if value:
            lines.append(f"| {title} | {value}{suffix} |")
    lines.append("")

    if report.week_over_week:
        wow = report.week_over_week
        lines += [
            "## 📈 Week-over-Week",
            "",
            f"- Duration: {'+' if wow.duration_change >= 0 else ''}{wow.duration_change:.0f}%",
            f"- {labels.name}: {'+' if wow.goals_change >= 0 else ''}{wow.goals_change:.0f}%",
            "",
        ]
    return "\n".join(lines)
