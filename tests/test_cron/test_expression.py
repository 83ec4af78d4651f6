"""Tests für attendo.cron.expression – Parsen, Matchen, Vorschau."""

from __future__ import annotations

from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo

import pytest

from attendo.core.errors import InvalidCronExpressionError
from attendo.cron.expression import (
    cron_weekday,
    estimate_next_run,
    is_valid_cron_expression,
    is_valid_timezone,
    parse_cron_expression,
)

DHAKA = ZoneInfo("Asia/Dhaka")

# ============================================================================
# parse_cron_expression
# ============================================================================


class TestParseCronExpression:
    def test_weekday_daily_job(self) -> None:
        schedule = parse_cron_expression("0 13 * * 1-5")
        assert schedule.minutes == {0}
        assert schedule.hours == {13}
        assert schedule.days == frozenset(range(1, 32))
        assert schedule.months == frozenset(range(1, 13))
        assert schedule.weekdays == {1, 2, 3, 4, 5}

    def test_complex_expression(self) -> None:
        schedule = parse_cron_expression("*/15 9-17 1,15 JAN-jun MON-FRI")
        assert schedule.minutes == {0, 15, 30, 45}
        assert schedule.hours == set(range(9, 18))
        assert schedule.days == {1, 15}
        assert schedule.months == set(range(1, 7))
        assert schedule.weekdays == {1, 2, 3, 4, 5}

    def test_whitespace_is_normalized(self) -> None:
        schedule = parse_cron_expression("  30   12   *   *   0  ")
        assert schedule.expression == "30 12 * * 0"
        assert schedule.fields == ("30", "12", "*", "*", "0")

    def test_seven_is_sunday(self) -> None:
        assert parse_cron_expression("0 0 * * 7").weekdays == {0}
        assert parse_cron_expression("0 0 * * 5-7").weekdays == {0, 5, 6}

    def test_steps(self) -> None:
        assert parse_cron_expression("0 0 * * */2").weekdays == {0, 2, 4, 6}
        assert parse_cron_expression("10/20 * * * *").minutes == {10, 30, 50}
        assert parse_cron_expression("0 1-9/4 * * *").hours == {1, 5, 9}

    @pytest.mark.parametrize(
        "expression",
        [
            "",
            "0 7 *",
            "0 7 * * 1-5 extra",
            "60 * * * *",
            "* 24 * * *",
            "* * 0 * *",
            "* * * 13 *",
            "* * * * 8",
            "not a cron",
            "*/0 * * * *",
            "5-1 * * * *",
            "1,,2 * * * *",
            "a * * * *",
            "*-5 * * * *",
            "* * * * MON-",
            "* * * JANUARY *",
            "0 9 * * 1 #",
        ],
    )
    def test_rejects_malformed(self, expression: str) -> None:
        with pytest.raises(InvalidCronExpressionError):
            parse_cron_expression(expression)

    def test_error_carries_expression(self) -> None:
        with pytest.raises(InvalidCronExpressionError, match="5 fields") as info:
            parse_cron_expression("0 7 *")
        assert info.value.details["expression"] == "0 7 *"
        assert info.value.error_code == "INVALID_CRON_EXPRESSION"

    def test_non_string_rejected(self) -> None:
        with pytest.raises(InvalidCronExpressionError):
            parse_cron_expression(None)  # type: ignore[arg-type]


class TestIsValidCronExpression:
    @pytest.mark.parametrize(
        "expression",
        ["0 13 * * 1-5", "0 9 * * 1", "0 18 * * 1-5", "* * * * *", "59 23 31 12 7", "0 8 * * sat,sun"],
    )
    def test_accepts(self, expression: str) -> None:
        assert is_valid_cron_expression(expression) is True

    @pytest.mark.parametrize("expression", ["not a cron", "", "61 * * * *", None, 42])
    def test_rejects_without_raising(self, expression: object) -> None:
        assert is_valid_cron_expression(expression) is False


# ============================================================================
# CronSchedule
# ============================================================================


class TestMatches:
    def test_weekday_job(self) -> None:
        schedule = parse_cron_expression("0 13 * * 1-5")
        assert schedule.matches(datetime(2024, 1, 1, 13, 0, tzinfo=DHAKA))  # Montag
        assert not schedule.matches(datetime(2024, 1, 6, 13, 0, tzinfo=DHAKA))  # Samstag
        assert not schedule.matches(datetime(2024, 1, 1, 13, 1, tzinfo=DHAKA))

    def test_seconds_ignored(self) -> None:
        schedule = parse_cron_expression("0 13 * * *")
        assert schedule.matches(datetime(2024, 1, 1, 13, 0, 45))

    def test_month_restriction(self) -> None:
        schedule = parse_cron_expression("0 0 1 jan *")
        assert schedule.matches(datetime(2024, 1, 1, 0, 0))
        assert not schedule.matches(datetime(2024, 2, 1, 0, 0))

    def test_day_and_weekday_use_or(self) -> None:
        schedule = parse_cron_expression("0 9 1 * 1")
        assert schedule.matches(datetime(2024, 2, 1, 9, 0))  # 1. Februar, Donnerstag
        assert schedule.matches(datetime(2024, 1, 8, 9, 0))  # Montag
        assert not schedule.matches(datetime(2024, 1, 2, 9, 0))


class TestTriggerFields:
    def test_weekdays_become_names(self) -> None:
        fields = parse_cron_expression("0 13 * * 1-5").trigger_fields()
        assert fields == {
            "minute": "0",
            "hour": "13",
            "day": "*",
            "month": "*",
            "day_of_week": "mon,tue,wed,thu,fri",
        }

    def test_sunday_and_lists(self) -> None:
        fields = parse_cron_expression("*/30 * * * 6,7").trigger_fields()
        assert fields["minute"] == "0,30"
        assert fields["day_of_week"] == "sun,sat"

    def test_month_names_expanded(self) -> None:
        fields = parse_cron_expression("0 0 1 jan,jul *").trigger_fields()
        assert fields["day"] == "1"
        assert fields["month"] == "1,7"


# ============================================================================
# estimate_next_run
# ============================================================================


class TestEstimateNextRun:
    def test_later_today(self) -> None:
        schedule = parse_cron_expression("0 13 * * 1-5")
        now = datetime(2024, 1, 1, 6, 0, tzinfo=UTC)  # Montag 12:00 in Dhaka
        assert estimate_next_run(schedule, "Asia/Dhaka", now) == datetime(
            2024, 1, 1, 13, 0, tzinfo=DHAKA
        )

    def test_skips_weekend(self) -> None:
        schedule = parse_cron_expression("0 13 * * 1-5")
        now = datetime(2024, 1, 5, 12, 30, tzinfo=UTC)  # Freitag 18:30 in Dhaka
        result = estimate_next_run(schedule, "Asia/Dhaka", now)
        assert result == datetime(2024, 1, 8, 13, 0, tzinfo=DHAKA)
        assert result.tzinfo is not None

    def test_strictly_after_now(self) -> None:
        schedule = parse_cron_expression("0 9 * * 1")
        now = datetime(2024, 1, 1, 9, 0, tzinfo=DHAKA)
        assert estimate_next_run(schedule, "Asia/Dhaka", now) == datetime(
            2024, 1, 8, 9, 0, tzinfo=DHAKA
        )

    def test_sunday(self) -> None:
        schedule = parse_cron_expression("30 8 * * 0")
        now = datetime(2024, 1, 1, 0, 0, tzinfo=UTC)
        assert estimate_next_run(schedule, DHAKA, now) == datetime(2024, 1, 7, 8, 30, tzinfo=DHAKA)

    def test_day_of_month_is_ignored(self) -> None:
        schedule = parse_cron_expression("0 9 1 * *")
        now = datetime(2024, 1, 10, 0, 0, tzinfo=UTC)
        assert estimate_next_run(schedule, "Asia/Dhaka", now) == datetime(
            2024, 1, 10, 9, 0, tzinfo=DHAKA
        )

    def test_naive_now_is_utc(self) -> None:
        schedule = parse_cron_expression("0 13 * * 1-5")
        assert estimate_next_run(schedule, "Asia/Dhaka", datetime(2024, 1, 1, 6, 0)) == datetime(
            2024, 1, 1, 13, 0, tzinfo=DHAKA
        )

    def test_timezone_changes_result(self) -> None:
        schedule = parse_cron_expression("0 9 * * 1")
        now = datetime(2024, 1, 1, 0, 0, tzinfo=UTC)
        dhaka = estimate_next_run(schedule, "Asia/Dhaka", now)
        new_york = estimate_next_run(schedule, "America/New_York", now)
        assert dhaka == datetime(2024, 1, 1, 3, 0, tzinfo=UTC)
        assert new_york == datetime(2024, 1, 1, 14, 0, tzinfo=UTC)


class TestHelpers:
    def test_cron_weekday(self) -> None:
        assert cron_weekday(date(2024, 1, 7)) == 0  # Sonntag
        assert cron_weekday(date(2024, 1, 1)) == 1  # Montag
        assert cron_weekday(date(2024, 1, 6)) == 6  # Samstag

    @pytest.mark.parametrize(
        ("timezone", "expected"),
        [
            ("Asia/Dhaka", True),
            ("America/New_York", True),
            ("UTC", True),
            ("Nowhere/Land", False),
            ("", False),
            ("../etc/passwd", False),
            (None, False),
        ],
    )
    def test_is_valid_timezone(self, timezone: object, expected: bool) -> None:
        assert is_valid_timezone(timezone) is expected
