"""
Restricted cron evaluator for recurring job definitions.

Expressions have the five classic fields
``minute hour day-of-month month day-of-week``. Each field is either ``*``
or a single integer; lists, ranges, steps and names are rejected.
Day-of-week accepts 0-7 where both 0 and 7 mean Sunday.
"""

import calendar
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from jobqueue.v1.core.exceptions import CronExpressionError

# (name, lowest, highest) in expression order
FIELDS = (
    ("minute", 0, 59),
    ("hour", 0, 23),
    ("day-of-month", 1, 31),
    ("month", 1, 12),
    ("day-of-week", 0, 7),
)

# Longest each month can be, February counted in leap years
_MAX_MONTH_DAYS = (31, 29, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)


@dataclass(frozen=True)
class CronSchedule:
    """Parsed expression. ``None`` marks a wildcard field."""

    minute: int | None = None
    hour: int | None = None
    day: int | None = None
    month: int | None = None
    weekday: int | None = None  # cron numbering, 0 = Sunday


def parse_expression(expression: str) -> CronSchedule:
    """Parse and validate a schedule expression."""
    parts = expression.split()
    if len(parts) != len(FIELDS):
        raise CronExpressionError(
            expression, f"expected {len(FIELDS)} fields, got {len(parts)}"
        )

    values: list[int | None] = []
    for raw, (name, lowest, highest) in zip(parts, FIELDS):
        if raw == "*":
            values.append(None)
            continue

        if not (raw.isascii() and raw.isdigit()):
            raise CronExpressionError(
                expression, f"{name} field '{raw}' must be '*' or an integer"
            )

        value = int(raw)
        if not lowest <= value <= highest:
            raise CronExpressionError(
                expression, f"{name} {value} is outside {lowest}-{highest}"
            )
        values.append(value)

    minute, hour, day, month, weekday = values

    if day is not None and month is not None and day > _MAX_MONTH_DAYS[month - 1]:
        raise CronExpressionError(
            expression, f"day {day} never occurs in month {month}"
        )

    if weekday == 7:
        weekday = 0

    return CronSchedule(
        minute=minute, hour=hour, day=day, month=month, weekday=weekday
    )


def next_run_after(expression: str, now: datetime, tz: str = "UTC") -> datetime:
    """
    Compute the next instant strictly after ``now`` matching the expression.

    The expression is evaluated on the wall clock of ``tz``; the result is
    returned as an aware UTC datetime.

    Example:
        >>> next_run_after("0 2 * * *", datetime(2024, 1, 1, 10, 0, tzinfo=UTC))
        datetime.datetime(2024, 1, 2, 2, 0, tzinfo=datetime.timezone.utc)
    """
    schedule = parse_expression(expression)

    try:
        zone = ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise CronExpressionError(expression, f"unknown time zone '{tz}'") from e

    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)

    start = now.astimezone(zone).replace(second=0, microsecond=0, tzinfo=None)
    candidate = _first_candidate(schedule, start)

    while _to_utc(candidate, zone) <= now:
        candidate = _advance(schedule, candidate)

    return _to_utc(candidate, zone)


def _first_candidate(schedule: CronSchedule, start: datetime) -> datetime:
    """Pin every fixed field onto the current wall-clock minute."""
    if schedule.minute is None:
        candidate = start + timedelta(minutes=1)
    else:
        candidate = start.replace(minute=schedule.minute)

    if schedule.hour is not None and candidate.hour != schedule.hour:
        candidate = candidate.replace(hour=schedule.hour)
        if schedule.minute is None:
            candidate = candidate.replace(minute=0)

    if schedule.day is not None or schedule.month is not None:
        month = schedule.month or candidate.month
        if schedule.day is not None:
            day = schedule.day
        elif month == candidate.month:
            day = candidate.day
        else:
            day = 1

        moved = _on_day(
            candidate, candidate.year, month, day, yearly=schedule.month is not None
        )
        if moved.date() != candidate.date():
            candidate = _start_of_day(schedule, moved)

    if schedule.weekday is not None:
        days_ahead = (schedule.weekday - _cron_weekday(candidate)) % 7
        if days_ahead:
            candidate = _start_of_day(schedule, candidate + timedelta(days=days_ahead))

    return candidate


def _advance(schedule: CronSchedule, candidate: datetime) -> datetime:
    """Step forward by the coarsest pinned unit."""
    if schedule.weekday is not None:
        return candidate + timedelta(weeks=1)

    if schedule.month is not None:
        return _on_day(
            candidate, candidate.year + 1, candidate.month, candidate.day, yearly=True
        )

    if schedule.day is not None:
        if candidate.month == 12:
            year, month = candidate.year + 1, 1
        else:
            year, month = candidate.year, candidate.month + 1
        return _on_day(candidate, year, month, candidate.day, yearly=False)

    if schedule.hour is not None:
        return candidate + timedelta(days=1)

    if schedule.minute is not None:
        return candidate + timedelta(hours=1)

    return candidate + timedelta(minutes=1)


def _on_day(
    candidate: datetime, year: int, month: int, day: int, yearly: bool
) -> datetime:
    """Move to the first month (or year, when ``yearly``) holding ``day``."""
    while day > calendar.monthrange(year, month)[1]:
        if yearly or month == 12:
            year += 1
            if not yearly:
                month = 1
        else:
            month += 1
    return candidate.replace(year=year, month=month, day=day)


def _start_of_day(schedule: CronSchedule, candidate: datetime) -> datetime:
    """Reset wildcard time fields after the date moved."""
    if schedule.hour is None:
        candidate = candidate.replace(hour=0)
    if schedule.minute is None:
        candidate = candidate.replace(minute=0)
    return candidate


def _cron_weekday(value: datetime) -> int:
    # Python counts Monday as 0, cron counts Sunday as 0
    return (value.weekday() + 1) % 7


def _to_utc(wall_clock: datetime, zone: ZoneInfo) -> datetime:
    return wall_clock.replace(tzinfo=zone).astimezone(UTC)
