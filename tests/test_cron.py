from datetime import UTC, datetime

import pytest

from jobqueue.v1.core.exceptions import CronExpressionError
from jobqueue.v1.scheduler.cron import CronSchedule, next_run_after, parse_expression


def at(*args) -> datetime:
    return datetime(*args, tzinfo=UTC)


def test_parse_wildcards_and_values():
    """Test parsing pinned and wildcard fields."""
    schedule = parse_expression("30 2 * * 1")

    assert schedule == CronSchedule(minute=30, hour=2, weekday=1)
    assert parse_expression("* * * * *") == CronSchedule()


def test_parse_tolerates_extra_whitespace():
    assert parse_expression("  0   2 * *  * ") == CronSchedule(minute=0, hour=2)


def test_sunday_can_be_written_as_7():
    assert parse_expression("0 0 * * 7").weekday == 0
    assert next_run_after("0 0 * * 7", at(2024, 1, 1, 10, 0)) == next_run_after(
        "0 0 * * 0", at(2024, 1, 1, 10, 0)
    )


@pytest.mark.parametrize(
    "expression",
    [
        "",
        "0 2 * *",
        "0 2 * * * *",
        "*/5 * * * *",
        "1-5 * * * *",
        "1,2 * * * *",
        "-1 * * * *",
        "60 * * * *",
        "0 24 * * *",
        "0 0 0 * *",
        "0 0 32 * *",
        "0 0 * 13 *",
        "0 0 * * 8",
        "0 0 * JAN *",
        "0 0 30 2 *",
        "0 0 31 4 *",
    ],
)
def test_invalid_expressions_rejected(expression):
    """Test that anything outside the supported subset is rejected."""
    with pytest.raises(CronExpressionError) as exc_info:
        parse_expression(expression)

    assert exc_info.value.expression == expression
    assert exc_info.value.status_code == 422


def test_leap_day_is_a_valid_expression():
    assert parse_expression("0 0 29 2 *") == CronSchedule(minute=0, hour=0, day=29, month=2)


@pytest.mark.parametrize(
    ("expression", "now", "expected"),
    [
        # Daily at 02:00
        ("0 2 * * *", at(2024, 1, 1, 10, 0), at(2024, 1, 2, 2, 0)),
        ("0 2 * * *", at(2024, 1, 1, 1, 59), at(2024, 1, 1, 2, 0)),
        # Strictly after now
        ("0 2 * * *", at(2024, 1, 2, 2, 0), at(2024, 1, 3, 2, 0)),
        # Every minute, seconds truncated
        ("* * * * *", at(2024, 1, 1, 10, 0, 30), at(2024, 1, 1, 10, 1)),
        ("* * * * *", at(2024, 12, 31, 23, 59), at(2025, 1, 1, 0, 0)),
        # Hourly at :15
        ("15 * * * *", at(2024, 1, 1, 10, 10), at(2024, 1, 1, 10, 15)),
        ("15 * * * *", at(2024, 1, 1, 10, 20), at(2024, 1, 1, 11, 15)),
        # Every minute of one hour
        ("* 3 * * *", at(2024, 1, 1, 3, 10), at(2024, 1, 1, 3, 11)),
        ("* 3 * * *", at(2024, 1, 1, 10, 0), at(2024, 1, 2, 3, 0)),
        ("30 10 * * *", at(2024, 1, 1, 10, 29, 59), at(2024, 1, 1, 10, 30)),
        # Weekly on Sunday (2024-01-01 is a Monday)
        ("0 3 * * 0", at(2024, 1, 1, 10, 0), at(2024, 1, 7, 3, 0)),
        ("0 3 * * 0", at(2024, 1, 7, 2, 0), at(2024, 1, 7, 3, 0)),
        ("0 3 * * 0", at(2024, 1, 7, 4, 0), at(2024, 1, 14, 3, 0)),
        # Monthly, skipping months without the day
        ("0 0 31 * *", at(2024, 2, 1, 0, 0), at(2024, 3, 31, 0, 0)),
        ("0 0 31 * *", at(2024, 3, 31, 12, 0), at(2024, 5, 31, 0, 0)),
        ("0 6 1 * *", at(2024, 12, 15, 0, 0), at(2025, 1, 1, 6, 0)),
        # Yearly
        ("0 0 1 1 *", at(2024, 6, 15, 0, 0), at(2025, 1, 1, 0, 0)),
        ("0 0 29 2 *", at(2025, 3, 1, 0, 0), at(2028, 2, 29, 0, 0)),
    ],
)
def test_next_run_after(expression, now, expected):
    """Test next-run computation across field combinations."""
    result = next_run_after(expression, now)

    assert result == expected
    assert result > now
    assert result.tzinfo == UTC


def test_naive_now_is_treated_as_utc():
    assert next_run_after("0 2 * * *", datetime(2024, 1, 1, 10, 0)) == at(2024, 1, 2, 2, 0)


def test_evaluated_in_configured_time_zone():
    """Test that wall-clock fields follow the zone, including DST."""
    # 07:00 EST
    winter = next_run_after("0 9 * * *", at(2024, 1, 15, 12, 0), tz="America/New_York")
    # 08:00 EDT
    summer = next_run_after("0 9 * * *", at(2024, 7, 15, 12, 0), tz="America/New_York")

    assert winter == at(2024, 1, 15, 14, 0)
    assert summer == at(2024, 7, 15, 13, 0)


def test_unknown_time_zone_rejected():
    with pytest.raises(CronExpressionError, match="unknown time zone"):
        next_run_after("0 2 * * *", at(2024, 1, 1), tz="Mars/Olympus_Mons")


def test_invalid_expression_rejected_by_next_run_after():
    with pytest.raises(CronExpressionError):
        next_run_after("0 2 * *", at(2024, 1, 1))
