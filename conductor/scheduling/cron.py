"""
Cron expression helpers.

Standard 5-field cron format:
- minute (0-59)
- hour (0-23)
- day of month (1-31)
- month (1-12)
- day of week (0-6, where 0 is Sunday)

Next-run computation uses croniter in the scheduler's timezone.
"""

from datetime import UTC, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from croniter import croniter

SCHEDULES: dict[str, str] = {
    "EVERY_MINUTE": "* * * * *",
    "EVERY_5_MINUTES": "*/5 * * * *",
    "EVERY_15_MINUTES": "*/15 * * * *",
    "EVERY_30_MINUTES": "*/30 * * * *",
    "EVERY_HOUR": "0 * * * *",
    "EVERY_2_HOURS": "0 */2 * * *",
    "EVERY_6_HOURS": "0 */6 * * *",
    "EVERY_12_HOURS": "0 */12 * * *",
    "DAILY_AT_MIDNIGHT": "0 0 * * *",
    "DAILY_AT_NOON": "0 12 * * *",
    "WEEKLY_SUNDAY_MIDNIGHT": "0 0 * * 0",
    "MONTHLY_FIRST_DAY": "0 0 1 * *",
    "WORKDAYS_9AM": "0 9 * * 1-5",
    "WORKDAYS_6PM": "0 18 * * 1-5",
}

FIELD_RANGES = [
    (0, 59, "minute"),
    (0, 23, "hour"),
    (1, 31, "day of month"),
    (1, 12, "month"),
    (0, 6, "day of week"),
]


def _check_value(item: str, min_val: int, max_val: int, name: str) -> Optional[str]:
    try:
        val = int(item)
    except ValueError:
        return f"Invalid value in {name} field: {item}"
    if val < min_val or val > max_val:
        return f"Value out of range in {name} field: {item} (valid: {min_val}-{max_val})"
    return None


def _check_field(part: str, min_val: int, max_val: int, name: str) -> Optional[str]:
    if part == "*":
        return None

    for item in part.split(","):
        base, _, step = item.partition("/")
        if step and (not step.isdigit() or int(step) < 1):
            return f"Invalid step value in {name} field: {step}"

        if base == "*":
            continue

        if "-" in base:
            range_parts = base.split("-")
            if len(range_parts) != 2:
                return f"Invalid range in {name} field: {base}"
            try:
                start, end = int(range_parts[0]), int(range_parts[1])
            except ValueError:
                return f"Invalid range values in {name} field: {base}"
            if start < min_val or end > max_val or start > end:
                return f"Range out of bounds in {name} field: {base} (valid: {min_val}-{max_val})"
            continue

        error = _check_value(base, min_val, max_val, name)
        if error:
            return error

    return None


def validate_cron_expression(cron_expression: str) -> tuple[bool, str | None]:
    """
    Validate a cron expression syntax.

    Special characters supported: ``*``, ``,`` (list), ``-`` (range) and
    ``/`` (step).

    Returns:
        tuple of (is_valid, error_message)
    """
    if not cron_expression or not isinstance(cron_expression, str):
        return False, "Cron expression cannot be empty"

    parts = cron_expression.strip().split()
    if len(parts) != 5:
        return False, f"Invalid cron expression: expected 5 fields, got {len(parts)}"

    for part, (min_val, max_val, name) in zip(parts, FIELD_RANGES):
        error = _check_field(part, min_val, max_val, name)
        if error:
            return False, error

    if not croniter.is_valid(cron_expression):
        return False, f"Invalid cron expression: {cron_expression}"

    return True, None


def next_run_after(cron_expression: str, after: datetime, timezone: str = "UTC") -> datetime:
    """First firing strictly after ``after``, evaluated in ``timezone``.

    Naive datetimes are taken as UTC. The result is timezone-aware.
    """
    if after.tzinfo is None:
        after = after.replace(tzinfo=UTC)
    local = after.astimezone(ZoneInfo(timezone))
    return croniter(cron_expression, local).get_next(datetime)


def create_cron_expression(
    minute: int | str = "*",
    hour: int | str = "*",
    day_of_month: int | str = "*",
    month: int | str = "*",
    day_of_week: int | str = "*",
) -> str:
    """Build a 5-field expression, e.g. ``create_cron_expression(minute=0, hour=9)``."""
    return f"{minute} {hour} {day_of_month} {month} {day_of_week}"


def _format_hour(hour: int) -> str:
    period = "AM" if hour < 12 else "PM"
    h = hour if hour <= 12 else hour - 12
    h = 12 if h == 0 else h
    return f"{h}:00 {period}"


def cron_to_readable(cron_expression: str) -> str:
    """
    Convert cron expression to human-readable format.

    Examples:
        "0 0 * * *" -> "Daily at midnight"
        "0 9 * * 1-5" -> "Weekdays at 9:00 AM"
        "*/15 * * * *" -> "Every 15 minutes"
    """
    parts = cron_expression.strip().split()
    if len(parts) != 5:
        return cron_expression

    minute, hour, day, month, dow = parts

    if parts == ["*"] * 5:
        return "Every minute"

    if minute == "0" and hour == "0" and day == "*" and month == "*" and dow == "*":
        return "Daily at midnight"

    if minute == "0" and hour.isdigit() and day == "*" and month == "*" and dow == "*":
        return f"Daily at {_format_hour(int(hour))}"

    if minute == "0" and hour.isdigit() and day == "*" and month == "*" and dow == "1-5":
        return f"Weekdays at {_format_hour(int(hour))}"

    if minute.startswith("*/") and hour == "*" and day == "*" and month == "*" and dow == "*":
        return f"Every {minute[2:]} minutes"

    if minute == "0" and hour == "*" and day == "*" and month == "*" and dow == "*":
        return "Every hour"

    if minute == "0" and hour.startswith("*/") and day == "*" and month == "*" and dow == "*":
        return f"Every {hour[2:]} hours"

    if minute == "0" and hour == "0" and day == "1" and month == "*" and dow == "*":
        return "Monthly on the 1st at midnight"

    if minute == "0" and hour == "0" and day == "*" and month == "*" and dow == "0":
        return "Weekly on Sunday at midnight"

    return f"Cron: {cron_expression}"
