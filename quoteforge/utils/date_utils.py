# quoteforge/utils/date_utils.py
import math
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Tuple, Union


def utc_now() -> datetime:
    """Get the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC.

    Args:
        value: Datetime that may be naive

    Returns:
        Timezone-aware datetime
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def add_days(start_date: Union[date, datetime], days: int) -> date:
    """Add days to a date.

    Args:
        start_date: Start date (datetimes are truncated to their date)
        days: Number of days to add

    Returns:
        Resulting date
    """
    if isinstance(start_date, datetime):
        start_date = start_date.date()
    return start_date + timedelta(days=days)


def validity_window(quote_date: Union[date, datetime], validity_days: int) -> Tuple[date, date]:
    """Get the quote date and the date the quote remains valid until.

    Args:
        quote_date: Date the quote is issued
        validity_days: Number of days the quote is valid for

    Returns:
        Tuple of (quote date, valid until date)
    """
    if isinstance(quote_date, datetime):
        quote_date = quote_date.date()
    return quote_date, add_days(quote_date, validity_days)


def age_in_hours(created_at: datetime, now: Optional[datetime] = None) -> float:
    """Get the age of a record in hours.

    Args:
        created_at: Creation time
        now: Reference time (defaults to the current UTC time)

    Returns:
        Age in hours; negative if ``created_at`` is in the future
    """
    now = ensure_aware(now or utc_now())
    delta = now - ensure_aware(created_at)
    return delta.total_seconds() / 3600.0


def days_beyond(age_hours: float, grace_hours: float = 24.0) -> int:
    """Count started 24-hour blocks beyond a grace period.

    25 hours old with a 24 hour grace period is one day beyond; 48 hours
    is one day beyond; 48 hours and a minute is two.
    """
    if age_hours <= grace_hours:
        return 0
    return math.ceil((age_hours - grace_hours) / 24.0)
