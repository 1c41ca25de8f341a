"""UTC datetime and calendar date utilities."""

from datetime import date, datetime, timezone


def utc_now() -> datetime:
    """
    Return current UTC time as timezone-aware datetime.

    This function should be used instead of datetime.now() or datetime.utcnow()
    to ensure all timestamps are timezone-aware and stored in UTC.

    Returns:
        Timezone-aware datetime in UTC
    """
    return datetime.now(timezone.utc)


def today_utc() -> date:
    """Return the current calendar date in UTC."""
    return utc_now().date()


def parse_date(value: object) -> date | None:
    """
    Parse an ISO date (or datetime) value returned by Avito.

    Args:
        value: "YYYY-MM-DD", an ISO datetime string, a date, or None

    Returns:
        The calendar date, or None when the value is missing or malformed
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and len(value) >= 10:
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None
