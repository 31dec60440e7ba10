"""Time and datetime utilities."""

from datetime import date, datetime, time, timedelta, timezone


def utc_now() -> datetime:
    """Get current UTC datetime.

    Returns:
        Current datetime in UTC timezone
    """
    return datetime.now(timezone.utc)


def today() -> date:
    """Current UTC calendar date, used for date-stamped identifiers."""
    return utc_now().date()


def add_minutes(start: time, minutes: int) -> time:
    """Return ``start`` shifted by ``minutes`` on the same day.

    Args:
        start: Wall-clock start time
        minutes: Positive duration in minutes

    Returns:
        The end time

    Raises:
        ValueError: If the result would fall on the next day
    """
    anchor = datetime.combine(date.min, start)
    shifted = anchor + timedelta(minutes=minutes)
    if shifted.date() != anchor.date():
        raise ValueError("Duration crosses midnight")
    return shifted.time()


def combine_utc(day: date, at: time) -> datetime:
    """Combine a date and wall-clock time into an aware UTC datetime."""
    return datetime.combine(day, at).replace(tzinfo=timezone.utc)
