"""
Unit tests for cron parsing and next fire time calculation.
"""

from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from almanac.errors import InvalidScheduleError
from almanac.research.cron import (
    CronExpression,
    CronField,
    next_cron_time,
    parse_cron,
    validate_cron,
)

# =============================================================================
# CronField Tests
# =============================================================================


class TestCronField:
    """Tests for CronField parsing."""

    def test_wildcard(self):
        field = CronField.parse("*", 0, 59)
        assert field.values == set(range(0, 60))
        assert field.is_wildcard

    def test_single_value(self):
        field = CronField.parse("5", 0, 59)
        assert field.values == {5}
        assert field.matches(5)
        assert not field.matches(6)

    def test_range(self):
        field = CronField.parse("1-5", 0, 59)
        assert field.values == {1, 2, 3, 4, 5}

    def test_list(self):
        field = CronField.parse("1,5,10,15", 0, 59)
        assert field.values == {1, 5, 10, 15}

    def test_step(self):
        field = CronField.parse("*/15", 0, 59)
        assert field.values == {0, 15, 30, 45}
        assert not field.is_wildcard

    def test_range_with_step(self):
        field = CronField.parse("0-30/10", 0, 59)
        assert field.values == {0, 10, 20, 30}

    def test_start_with_step(self):
        field = CronField.parse("10/20", 0, 59)
        assert field.values == {10, 30, 50}

    def test_month_names(self):
        field = CronField.parse("jan,MAR-may", 1, 12, names={"jan": 1, "mar": 3, "may": 5})
        assert field.values == {1, 3, 4, 5}

    @pytest.mark.parametrize("expr", ["60", "-1", "*/0", "5-1", "a", "", "1,,2", "1-", "*/x"])
    def test_invalid_tokens_raise(self, expr):
        with pytest.raises(ValueError):
            CronField.parse(expr, 0, 59)


# =============================================================================
# CronExpression Tests
# =============================================================================


class TestCronExpression:
    """Tests for CronExpression parsing and matching."""

    def test_parse_daily(self):
        cron = CronExpression.parse("0 6 * * *")
        assert cron.minute.values == {0}
        assert cron.hour.values == {6}
        assert cron.day_of_month.is_wildcard

    def test_weekday_names_and_sunday_alias(self):
        cron = CronExpression.parse("0 8 * * mon-fri")
        assert cron.day_of_week.values == {1, 2, 3, 4, 5}

        sunday = CronExpression.parse("0 8 * * 7")
        assert sunday.day_of_week.values == {0}

    @pytest.mark.parametrize(
        "expr",
        [
            "",
            "   ",
            "* * * *",
            "* * * * * *",
            "61 * * * *",
            "* 24 * * *",
            "* * 0 * *",
            "* * * 13 *",
            "* * * * 8",
            "*/0 * * * *",
            "not a cron at all",
            "0 0 31 2 *",
        ],
    )
    def test_malformed_expressions_raise(self, expr):
        with pytest.raises(InvalidScheduleError):
            CronExpression.parse(expr)

    def test_error_carries_expression(self):
        with pytest.raises(InvalidScheduleError) as exc_info:
            parse_cron("99 * * * *")
        assert exc_info.value.expr == "99 * * * *"
        assert "99" in str(exc_info.value)

    def test_invalid_schedule_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse_cron("bogus")

    def test_matches(self):
        cron = CronExpression.parse("30 14 * * *")
        assert cron.matches(datetime(2025, 1, 15, 14, 30, tzinfo=UTC))
        assert not cron.matches(datetime(2025, 1, 15, 14, 31, tzinfo=UTC))

    def test_day_or_semantics(self):
        # The 1st of the month OR any Monday
        cron = CronExpression.parse("0 0 1 * 1")
        assert cron.matches(datetime(2025, 1, 1, 0, 0, tzinfo=UTC))  # Wednesday the 1st
        assert cron.matches(datetime(2025, 1, 6, 0, 0, tzinfo=UTC))  # Monday
        assert not cron.matches(datetime(2025, 1, 7, 0, 0, tzinfo=UTC))


class TestNextRun:
    """Tests for next fire time calculation."""

    def test_every_five_minutes(self):
        after = datetime(2025, 1, 15, 10, 2, 30, tzinfo=UTC)
        assert next_cron_time("*/5 * * * *", after) == datetime(2025, 1, 15, 10, 5, tzinfo=UTC)

    def test_strictly_after(self):
        after = datetime(2025, 1, 15, 10, 5, tzinfo=UTC)
        assert next_cron_time("*/5 * * * *", after) == datetime(2025, 1, 15, 10, 10, tzinfo=UTC)

    def test_daily_rolls_to_next_day(self):
        after = datetime(2025, 1, 15, 7, 0, tzinfo=UTC)
        assert next_cron_time("0 6 * * *", after) == datetime(2025, 1, 16, 6, 0, tzinfo=UTC)

    def test_rolls_over_year(self):
        after = datetime(2025, 12, 31, 23, 59, tzinfo=UTC)
        assert next_cron_time("0 0 1 1 *", after) == datetime(2026, 1, 1, 0, 0, tzinfo=UTC)

    def test_weekday_schedule_skips_weekend(self):
        after = datetime(2025, 1, 17, 9, 0, tzinfo=UTC)  # Friday after 8:00
        assert next_cron_time("0 8 * * mon-fri", after) == datetime(2025, 1, 20, 8, 0, tzinfo=UTC)

    def test_leap_day(self):
        after = datetime(2025, 3, 1, tzinfo=UTC)
        assert next_cron_time("0 0 29 2 *", after) == datetime(2028, 2, 29, 0, 0, tzinfo=UTC)

    def test_keeps_timezone(self):
        tz = ZoneInfo("America/New_York")
        after = datetime(2025, 1, 15, 5, 0, tzinfo=tz)
        result = next_cron_time("0 6 * * *", after)
        assert result == datetime(2025, 1, 15, 6, 0, tzinfo=tz)
        assert result.tzinfo is tz

    def test_validate_cron(self):
        assert validate_cron("0 6 * * *")
        assert not validate_cron("0 6 * *")


class TestDaylightSaving:
    """Fire times across DST transitions (America/New_York, 2026)."""

    tz = ZoneInfo("America/New_York")

    def test_second_pass_of_repeated_hour_moves_forward(self):
        # 06:12 UTC is 01:12 EST, the second pass of the repeated hour
        after = datetime(2026, 11, 1, 6, 12, tzinfo=UTC).astimezone(self.tz)
        result = next_cron_time("*/5 * * * *", after)

        assert result > after
        assert result.astimezone(UTC) == datetime(2026, 11, 1, 6, 15, tzinfo=UTC)

    def test_wildcard_hour_fires_in_both_passes(self):
        # 01:58 EDT; the next five-minute mark is 01:00 EST, two minutes later
        after = datetime(2026, 11, 1, 5, 58, tzinfo=UTC).astimezone(self.tz)
        result = next_cron_time("*/5 * * * *", after)

        assert result.astimezone(UTC) == datetime(2026, 11, 1, 6, 0, tzinfo=UTC)
        assert (result.hour, result.minute, result.fold) == (1, 0, 1)

    def test_fixed_hour_does_not_repeat(self):
        # Fired at 01:30 EDT; 01:30 EST an hour later is skipped
        after = datetime(2026, 11, 1, 5, 30, tzinfo=UTC).astimezone(self.tz)
        result = next_cron_time("30 1 * * *", after)

        assert result.astimezone(UTC) == datetime(2026, 11, 2, 6, 30, tzinfo=UTC)

    def test_skipped_hour_fires_at_transition(self):
        # 02:30 does not exist on 2026-03-08; clocks jump from 02:00 EST to 03:00 EDT
        after = datetime(2026, 3, 8, 6, 0, tzinfo=UTC).astimezone(self.tz)
        result = next_cron_time("30 2 * * *", after)

        assert result.astimezone(UTC) == datetime(2026, 3, 8, 7, 0, tzinfo=UTC)
        assert (result.hour, result.minute) == (3, 0)

    def test_fire_times_strictly_increase_across_fall_back(self):
        cron = parse_cron("*/5 * * * *")
        current = datetime(2026, 11, 1, 4, 50, tzinfo=UTC).astimezone(self.tz)
        fires = []
        for _ in range(40):
            current = cron.next_run(current)
            fires.append(current.astimezone(UTC))

        assert all(b - a == timedelta(minutes=5) for a, b in zip(fires, fires[1:], strict=False))
