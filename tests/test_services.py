"""Unit tests for the service layer (dates, ledger, commitment analyzer)."""

import pytest
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from commitledger.data.models import Session
from commitledger.services import dates
from commitledger.services.commitment_analyzer import (
    MIN_COMMITMENT_SECONDS, analyze_commitment_patterns, commitment_nudge,
)
from commitledger.services.ledger import (
    daily_balance, net_position, penalty_estimate, session_balance, weekly_balance,
)


def make_session(sid, date_key, duration, target=None, reps=0, ts=0):
    return Session(id=sid, timestamp=ts, duration_seconds=duration, date=date_key,
                   reps=reps, target_duration_seconds=target)


# ── Dates ───────────────────────────────────────────────────────────────────

class TestDates:
    def test_subtract_days_across_year(self):
        assert dates.subtract_days("2024-01-03", 5) == "2023-12-29"

    def test_subtract_days_across_month(self):
        assert dates.subtract_days("2024-06-03", 5) == "2024-05-29"

    def test_subtract_days_leap_year(self):
        assert dates.subtract_days("2024-03-01", 1) == "2024-02-29"

    def test_late_evening_stays_on_local_day(self):
        # 23:30 in UTC-5 is already the next day in UTC
        eastern = timezone(timedelta(hours=-5))
        instant = datetime(2024, 3, 10, 4, 30, tzinfo=timezone.utc)
        assert dates.day_key(instant, eastern) == "2024-03-09"
        assert dates.day_key(instant, timezone.utc) == "2024-03-10"

    def test_epoch_millis(self):
        ms = int(datetime(2024, 3, 10, 4, 30, tzinfo=timezone.utc).timestamp() * 1000)
        assert dates.day_key(ms, timezone(timedelta(hours=-5))) == "2024-03-09"
        assert dates.day_key(ms, timezone(timedelta(hours=9))) == "2024-03-10"

    def test_naive_datetime_and_date(self):
        assert dates.day_key(datetime(2024, 7, 4, 23, 59)) == "2024-07-04"
        assert dates.day_key(date(2024, 7, 4)) == "2024-07-04"

    def test_iso_string_with_z(self):
        key = dates.day_key("2024-03-10T04:30:00Z", timezone(timedelta(hours=-5)))
        assert key == "2024-03-09"

    def test_parse_day_key_is_local_midnight(self):
        assert dates.parse_day_key("2024-03-10") == datetime(2024, 3, 10)

    def test_unsupported_type(self):
        with pytest.raises(TypeError):
            dates.day_key([2024, 3, 10])

    def test_week_bounds_monday_to_sunday(self):
        start, end = dates.week_bounds(datetime(2024, 3, 13, 15, 0))   # Wednesday
        assert start == datetime(2024, 3, 11)
        assert end.date() == date(2024, 3, 17)
        assert end.hour == 23 and end.minute == 59

    def test_week_bounds_on_sunday(self):
        start, _ = dates.week_bounds(datetime(2024, 3, 17, 10, 0))
        assert start == datetime(2024, 3, 11)

    def test_format_clock(self):
        assert dates.format_clock(3725) == "01:02:05"
        assert dates.format_clock(-90) == "00:01:30"


# ── Ledger ──────────────────────────────────────────────────────────────────

class TestSessionBalance:
    def test_surplus_capped_at_half_target(self):
        assert session_balance(make_session("a", "2024-03-10", 14400, 7200)) == 3600

    def test_surplus_below_cap(self):
        assert session_balance(make_session("a", "2024-03-10", 4000, 3600)) == 400

    def test_surplus_exactly_at_cap(self):
        assert session_balance(make_session("a", "2024-03-10", 5400, 3600)) == 1800

    @pytest.mark.parametrize("duration,target,expected", [
        (1800, 7200, -5400),
        (0, 3600, -3600),
        (1, 100000, -99999),
    ])
    def test_deficit_uncapped(self, duration, target, expected):
        assert session_balance(make_session("a", "2024-03-10", duration, target)) == expected

    def test_no_target_is_zero(self):
        assert session_balance(make_session("a", "2024-03-10", 99999)) == 0

    def test_odd_target_cap_is_fractional(self):
        assert session_balance(make_session("a", "2024-03-10", 10000, 1801)) == 900.5


class TestDailyAndWeekly:
    @pytest.fixture
    def week(self):
        return [
            make_session("mon", "2024-03-11", 5400, 3600),    # +1800
            make_session("tue", "2024-03-12", 1800, 3600),    # -1800
            make_session("wed", "2024-03-13", 4000, 3600),    # +400
            make_session("wed2", "2024-03-13", 7200),         # no target
            make_session("prev", "2024-03-10", 0, 3600),      # previous week
        ]

    def test_daily_balance_for_day(self, week):
        assert daily_balance(week, "2024-03-13") == 400

    def test_daily_balance_without_filter_sums_all(self):
        sessions = [make_session("a", "2024-03-13", 4000, 3600),
                    make_session("b", "2024-03-13", 3000, 3600)]
        assert daily_balance(sessions) == -200

    def test_weekly_balance(self, week):
        result = weekly_balance(week, datetime(2024, 3, 11), datetime(2024, 3, 17, 23, 59, 59))
        assert result.total_balance == 400
        assert result.total_surplus == 2200
        assert result.total_deficit == -1800
        assert result.days_with_sessions == 3

    def test_weekly_decomposition(self, week):
        start, end = dates.week_bounds(datetime(2024, 3, 13))
        result = weekly_balance(week, start, end)
        assert result.total_surplus + result.total_deficit == result.total_balance
        assert result.average_daily_balance == result.total_balance / 7

    def test_average_divides_by_seven_with_one_active_day(self):
        sessions = [make_session("a", "2024-03-13", 0, 700)]
        result = weekly_balance(sessions, "2024-03-11", "2024-03-17")
        assert result.average_daily_balance == -100

    def test_empty_week_is_all_zero(self):
        result = weekly_balance([], datetime(2024, 3, 11), datetime(2024, 3, 17))
        assert result.total_balance == 0
        assert result.average_daily_balance == 0
        assert result.total_surplus == 0
        assert result.total_deficit == 0
        assert result.days_with_sessions == 0
        assert result.to_dict()["daysWithSessions"] == 0

    def test_net_position(self, week):
        pos = net_position(week, now=datetime(2024, 3, 12, 18, 0))
        assert pos.today_seconds == -1800
        assert pos.weekly_seconds == 400
        assert pos.total_owed_seconds == 0

    def test_net_position_owed(self):
        sessions = [make_session("a", "2024-03-12", 600, 3600)]
        pos = net_position(sessions, now=datetime(2024, 3, 14, 9, 0))
        assert pos.today_seconds == 0
        assert pos.total_owed_seconds == 3000


class TestPenalty:
    def test_penalty_label(self):
        est = penalty_estimate(3000, 0.5)
        assert est.total_minutes_owed == 50
        assert est.penalty_amount == 25.0
        assert est.label == "Owed: 50m -> $25.00"

    def test_nothing_owed(self):
        assert penalty_estimate(-100, 1.0).total_minutes_owed == 0


# ── Commitment analyzer ─────────────────────────────────────────────────────

def _commitments(n_min, n_other):
    sessions = [make_session(f"m{i}", "2024-03-10", 1800, MIN_COMMITMENT_SECONDS)
                for i in range(n_min)]
    sessions += [make_session(f"o{i}", "2024-03-10", 3600, 3600) for i in range(n_other)]
    return sessions


class TestCommitmentAnalyzer:
    def test_flags_pattern_with_ten_sessions(self):
        pattern = analyze_commitment_patterns(_commitments(8, 2))
        assert pattern.minimum_commitment_ratio == pytest.approx(0.8)
        assert pattern.has_low_commitment_pattern is True

    def test_sample_size_gate(self):
        pattern = analyze_commitment_patterns(_commitments(8, 1))
        assert pattern.minimum_commitment_ratio > 0.7
        assert pattern.has_low_commitment_pattern is False

    def test_ratio_at_threshold_not_flagged(self):
        pattern = analyze_commitment_patterns(_commitments(7, 3))
        assert pattern.has_low_commitment_pattern is False

    def test_sessions_without_target_ignored(self):
        sessions = _commitments(2, 2) + [make_session("free", "2024-03-10", 600)]
        pattern = analyze_commitment_patterns(sessions)
        assert pattern.average_commitment == 2700
        assert pattern.minimum_commitment_ratio == 0.5

    def test_no_targets(self):
        pattern = analyze_commitment_patterns([make_session("free", "2024-03-10", 600)])
        assert pattern.to_dict() == {
            "averageCommitment": 0,
            "minimumCommitmentRatio": 0,
            "hasLowCommitmentPattern": False,
        }

    def test_nudge(self):
        assert commitment_nudge(analyze_commitment_patterns(_commitments(2, 8))) is None
        text = commitment_nudge(analyze_commitment_patterns(_commitments(9, 1)))
        assert text.startswith("90%")
        assert "30-minute" in text
