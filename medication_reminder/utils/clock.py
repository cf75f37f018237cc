"""Clock utility functions for the medication reminder.

All instants handled here are naive datetimes expressed in the local
calendar configured by ``TIMEZONE_OFFSET``. Day keys are ISO dates.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional, Union

from loguru import logger

from medication_reminder.config import settings
from medication_reminder.utils.error_handler import ValidationError


def parse_timezone_offset(offset_str: str) -> timedelta:
    """Parse timezone offset string to timedelta.

    Args:
        offset_str: Timezone offset in format "+03:00" or "-05:00"

    Returns:
        timedelta representing the offset

    Raises:
        ValidationError: If offset string format is invalid

    Examples:
        >>> parse_timezone_offset("+03:00")
        datetime.timedelta(seconds=10800)
    """
    try:
        offset_str = offset_str.strip()

        if len(offset_str) != 6 or offset_str[0] not in ['+', '-']:
            raise ValueError(f"Invalid timezone offset format: {offset_str}")

        sign = 1 if offset_str[0] == '+' else -1

        hours_str, minutes_str = offset_str[1:].split(':')
        hours = int(hours_str)
        minutes = int(minutes_str)

        if not (0 <= hours <= 14):
            raise ValueError(f"Hours out of range: {hours}")
        if not (0 <= minutes <= 59):
            raise ValueError(f"Minutes out of range: {minutes}")

        return timedelta(minutes=sign * (hours * 60 + minutes))

    except (ValueError, IndexError, AttributeError) as e:
        logger.error(f"Failed to parse timezone offset '{offset_str}': {e}")
        raise ValidationError(f"Invalid timezone offset format: {offset_str}") from e


def get_local_time(timezone_offset: str = "+00:00") -> datetime:
    """Get current time in the configured local calendar.

    Args:
        timezone_offset: Offset from UTC (e.g., "+03:00", "-05:00")

    Returns:
        Current naive datetime in local time
    """
    offset = parse_timezone_offset(timezone_offset)
    utc_now = datetime.now(timezone.utc).replace(tzinfo=None)
    return utc_now + offset


def parse_time_of_day(value: str) -> tuple[int, int]:
    """Parse "HH:MM" into an (hour, minute) pair.

    Raises:
        ValidationError: If the value is not a valid 24h time
    """
    try:
        hour_str, minute_str = value.strip().split(':')
        if len(minute_str) != 2 or not 1 <= len(hour_str) <= 2:
            raise ValueError(value)
        hour = int(hour_str)
        minute = int(minute_str)
    except (ValueError, AttributeError) as e:
        raise ValidationError(f"Invalid dose time: {value!r}") from e

    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValidationError(f"Dose time out of range: {value!r}")

    return hour, minute


def normalize_dose_times(times: Iterable[str]) -> list[str]:
    """Trim, validate and de-duplicate dose times.

    Blank entries are dropped, every remaining entry is rewritten as
    zero-padded "HH:MM" and duplicates collapse onto their first position.

    Args:
        times: Raw dose times as entered by the user

    Returns:
        Ordered list of unique "HH:MM" strings (may be empty)
    """
    normalized: list[str] = []
    for raw in times:
        if raw is None or not raw.strip():
            continue
        hour, minute = parse_time_of_day(raw)
        value = f"{hour:02d}:{minute:02d}"
        if value not in normalized:
            normalized.append(value)
    return normalized


def format_time_of_day(instant: datetime) -> str:
    """Format the wall-clock part of an instant as "HH:MM"."""
    return instant.strftime("%H:%M")


def next_occurrence(time_of_day: str, now: datetime) -> datetime:
    """Return the next instant strictly after ``now`` at ``time_of_day``.

    Today if the time has not been reached yet, otherwise tomorrow.

    Examples:
        >>> next_occurrence("10:00", datetime(2024, 1, 1, 9, 30))
        datetime.datetime(2024, 1, 1, 10, 0)
        >>> next_occurrence("10:00", datetime(2024, 1, 1, 10, 0))
        datetime.datetime(2024, 1, 2, 10, 0)
    """
    hour, minute = parse_time_of_day(time_of_day)
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def seconds_until(target: datetime, now: datetime) -> float:
    """Seconds from ``now`` to ``target``, never negative."""
    return max((target - now).total_seconds(), 0.0)


def day_key(instant: Union[date, datetime]) -> str:
    """Calendar-day identifier for an instant ("YYYY-MM-DD")."""
    if isinstance(instant, datetime):
        instant = instant.date()
    return instant.isoformat()


def parse_day_key(key: str) -> date:
    """Inverse of :func:`day_key`.

    Raises:
        ValidationError: If the key is not an ISO date
    """
    try:
        return date.fromisoformat(key)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid day key: {key!r}") from e


def window_days(n: int, ending: Union[date, datetime], oldest_first: bool = True) -> list[str]:
    """Last ``n`` day keys ending at (and including) ``ending``.

    Args:
        n: Number of days in the window
        ending: Last day of the window (usually today)
        oldest_first: Order of the result

    Returns:
        List of day keys, oldest first by default
    """
    if n <= 0:
        return []
    if isinstance(ending, datetime):
        ending = ending.date()
    keys = [day_key(ending - timedelta(days=offset)) for offset in range(n - 1, -1, -1)]
    return keys if oldest_first else list(reversed(keys))


def days_between(earlier: str, later: str) -> int:
    """Number of calendar days from one day key to another."""
    return (parse_day_key(later) - parse_day_key(earlier)).days


def local_now_provider(timezone_offset: Optional[str] = None):
    """Build a zero-argument callable returning the current local time.

    Args:
        timezone_offset: Offset to use, defaults to the configured one
    """
    if timezone_offset is None:
        timezone_offset = settings.timezone_offset
    # Fail early on a bad offset
    parse_timezone_offset(timezone_offset)

    def _now() -> datetime:
        return get_local_time(timezone_offset)

    return _now
