"""
Cron expressions - parse five-field schedules and compute fire times.

Format: minute hour day-of-month month day-of-week

Examples:
- "0 6 * * *" = Every day at 6:00 AM
- "*/5 * * * *" = Every 5 minutes
- "0 8 * * mon-fri" = Weekdays at 8:00 AM
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta, tzinfo

from almanac.errors import InvalidScheduleError

_MONTH_NAMES = {
    name: index
    for index, name in enumerate(
        ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"],
        start=1,
    )
}
_WEEKDAY_NAMES = {
    name: index for index, name in enumerate(["sun", "mon", "tue", "wed", "thu", "fri", "sat"])
}

# Upper bound for the next-fire search; a year of minutes covers every valid schedule.
_MAX_SEARCH = timedelta(days=366 * 5)
# Longest stretch searched at one UTC offset; zones never change offset twice a day.
_SEGMENT = timedelta(days=1)


@dataclass(frozen=True)
class CronField:
    """A single field in a cron expression."""

    values: frozenset[int]
    min_val: int
    max_val: int
    is_wildcard: bool = False

    @classmethod
    def parse(
        cls,
        expr: str,
        min_val: int,
        max_val: int,
        names: dict[str, int] | None = None,
        allow_max_alias: int | None = None,
    ) -> CronField:
        """
        Parse a cron field expression.

        Raises ValueError for anything outside the field's range; the caller
        wraps it into InvalidScheduleError with the full expression.
        """
        values: set[int] = set()
        upper = allow_max_alias if allow_max_alias is not None else max_val

        def to_int(token: str) -> int:
            token = token.strip().lower()
            if names and token in names:
                return names[token]
            if not token.isdigit():
                raise ValueError(f"invalid value '{token}'")
            value = int(token)
            if value < min_val or value > upper:
                raise ValueError(f"value {value} out of range {min_val}-{max_val}")
            return value

        for part in expr.split(","):
            part = part.strip()
            if not part:
                raise ValueError("empty list element")

            if "/" in part:
                # Step value (e.g., */5, 0-30/5, 10/15)
                range_part, step_str = part.split("/", 1)
                if not step_str.isdigit() or int(step_str) == 0:
                    raise ValueError(f"invalid step '{step_str}'")
                step = int(step_str)

                if range_part == "*":
                    start, end = min_val, max_val
                elif "-" in range_part:
                    start_str, end_str = range_part.split("-", 1)
                    start, end = to_int(start_str), to_int(end_str)
                else:
                    start = to_int(range_part)
                    end = max_val

                if start > end:
                    raise ValueError(f"reversed range '{range_part}'")
                values.update(range(start, end + 1, step))
            elif part == "*":
                values.update(range(min_val, max_val + 1))
            elif "-" in part:
                start_str, end_str = part.split("-", 1)
                start, end = to_int(start_str), to_int(end_str)
                if start > end:
                    raise ValueError(f"reversed range '{part}'")
                values.update(range(start, end + 1))
            else:
                values.add(to_int(part))

        if allow_max_alias is not None and allow_max_alias in values:
            # 7 is an alias for Sunday (0)
            values.discard(allow_max_alias)
            values.add(min_val)

        return cls(
            values=frozenset(values),
            min_val=min_val,
            max_val=max_val,
            is_wildcard=expr.strip() == "*" or values == set(range(min_val, max_val + 1)),
        )

    def matches(self, value: int) -> bool:
        """Check if a value matches this field."""
        return value in self.values


@dataclass(frozen=True)
class CronExpression:
    """A parsed cron expression."""

    expr: str
    minute: CronField
    hour: CronField
    day_of_month: CronField
    month: CronField
    day_of_week: CronField

    @classmethod
    def parse(cls, expr: str) -> CronExpression:
        """Parse a cron expression string, raising InvalidScheduleError when malformed."""
        if not isinstance(expr, str) or not expr.strip():
            raise InvalidScheduleError(str(expr), "expression is empty")

        parts = expr.strip().split()
        if len(parts) != 5:
            raise InvalidScheduleError(expr, f"must have 5 parts, got {len(parts)}")

        try:
            cron = cls(
                expr=expr.strip(),
                minute=CronField.parse(parts[0], 0, 59),
                hour=CronField.parse(parts[1], 0, 23),
                day_of_month=CronField.parse(parts[2], 1, 31),
                month=CronField.parse(parts[3], 1, 12, names=_MONTH_NAMES),
                day_of_week=CronField.parse(
                    parts[4], 0, 6, names=_WEEKDAY_NAMES, allow_max_alias=7
                ),  # 0=Sunday
            )
        except ValueError as e:
            raise InvalidScheduleError(expr, str(e)) from e

        if not cron._can_fire():
            raise InvalidScheduleError(expr, "day-of-month never occurs in the selected months")
        return cron

    def _can_fire(self) -> bool:
        """Reject schedules like '0 0 31 2 *' that never occur."""
        if self.day_of_month.is_wildcard or not self.day_of_week.is_wildcard:
            return True
        days_in_month = {1: 31, 2: 29, 3: 31, 4: 30, 5: 31, 6: 30, 7: 31, 8: 31, 9: 30, 10: 31, 11: 30, 12: 31}
        smallest_day = min(self.day_of_month.values)
        return any(smallest_day <= days_in_month[m] for m in self.month.values)

    def _day_matches(self, dt: datetime) -> bool:
        # Convert Python weekday (Monday=0) to cron weekday (Sunday=0)
        cron_weekday = (dt.weekday() + 1) % 7
        dom_match = self.day_of_month.matches(dt.day)
        dow_match = self.day_of_week.matches(cron_weekday)

        if self.day_of_month.is_wildcard and self.day_of_week.is_wildcard:
            return True
        if self.day_of_month.is_wildcard:
            return dow_match
        if self.day_of_week.is_wildcard:
            return dom_match
        # Both specified - use OR semantics (standard cron behavior)
        return dom_match or dow_match

    def matches(self, dt: datetime) -> bool:
        """Check if a datetime matches this cron expression."""
        return (
            self.minute.matches(dt.minute)
            and self.hour.matches(dt.hour)
            and self.month.matches(dt.month)
            and self._day_matches(dt)
        )

    def next_run(self, after: datetime) -> datetime | None:
        """
        Calculate the next fire time strictly after the given datetime.

        Aware datetimes are matched on their local wall clock but ordered in
        absolute time, one stretch of constant UTC offset at a time. When
        clocks go back, schedules with a fixed hour do not fire again in the
        repeated hour; when clocks go forward over a fire time, the job fires
        at the transition. Returns None if nothing matches within the search
        horizon.
        """
        if after.tzinfo is None:
            start = after.replace(second=0, microsecond=0) + timedelta(minutes=1)
            return self._next_wall(start, after + _MAX_SEARCH)

        tz = after.tzinfo
        cursor = after.astimezone(UTC).replace(second=0, microsecond=0) + timedelta(minutes=1)
        horizon = after.astimezone(UTC) + _MAX_SEARCH
        previous_wall_end: datetime | None = None

        while cursor <= horizon:
            offset = cursor.astimezone(tz).utcoffset() or timedelta(0)
            segment_end = _segment_end(cursor, tz, offset)
            wall_start = _wall(cursor, offset)
            wall_end = _wall(segment_end, offset)

            if previous_wall_end is not None and not self.hour.is_wildcard:
                if wall_start < previous_wall_end:
                    wall_start = min(previous_wall_end, wall_end)
                elif wall_start > previous_wall_end and self._next_wall(previous_wall_end, wall_start):
                    return cursor.astimezone(tz)

            match = self._next_wall(wall_start, wall_end)
            if match is not None:
                return (match - offset).replace(tzinfo=UTC).astimezone(tz)

            previous_wall_end = wall_end
            cursor = segment_end

        return None

    def _next_wall(self, start: datetime, stop: datetime) -> datetime | None:
        """
        First naive wall-clock minute in [start, stop) that matches.

        Skips whole months, days and hours that cannot match instead of
        stepping minute by minute.
        """
        current = start
        while current < stop:
            if not self.month.matches(current.month):
                year = current.year + (1 if current.month == 12 else 0)
                month = 1 if current.month == 12 else current.month + 1
                current = current.replace(year=year, month=month, day=1, hour=0, minute=0)
                continue
            if not self._day_matches(current):
                current = (current + timedelta(days=1)).replace(hour=0, minute=0)
                continue
            if not self.hour.matches(current.hour):
                current = (current + timedelta(hours=1)).replace(minute=0)
                continue
            if not self.minute.matches(current.minute):
                current += timedelta(minutes=1)
                continue
            return current

        return None


def _wall(instant: datetime, offset: timedelta) -> datetime:
    """Naive local wall time of a UTC instant at a fixed offset."""
    return (instant + offset).replace(tzinfo=None)


def _segment_end(start: datetime, tz: tzinfo, offset: timedelta) -> datetime:
    """
    End of the stretch from `start` (UTC, whole minute) during which `tz`
    keeps `offset`, capped at one day. Offset changes fall on whole minutes.
    """
    end = start + _SEGMENT
    if end.astimezone(tz).utcoffset() == offset:
        return end

    low, high = 0, int(_SEGMENT.total_seconds() // 60)
    while high - low > 1:
        middle = (low + high) // 2
        if (start + timedelta(minutes=middle)).astimezone(tz).utcoffset() == offset:
            low = middle
        else:
            high = middle
    return start + timedelta(minutes=high)


# =============================================================================
# Helper Functions
# =============================================================================


def parse_cron(expr: str) -> CronExpression:
    """Parse a cron expression."""
    return CronExpression.parse(expr)


def validate_cron(expr: str) -> bool:
    """True if the expression parses."""
    try:
        CronExpression.parse(expr)
    except InvalidScheduleError:
        return False
    return True


def next_cron_time(expr: str, after: datetime) -> datetime | None:
    """Get the next time a cron expression will trigger."""
    return CronExpression.parse(expr).next_run(after)
