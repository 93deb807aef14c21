"""
Reporting calendar: every date bucket is an India Standard Time calendar day.
"""
from datetime import date, datetime, timedelta, timezone

IST = timezone(timedelta(hours=5, minutes=30))


def ist_date(dt: datetime) -> date:
    """Calendar date of dt in IST (an order at 23:30 UTC lands on the next IST day)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(IST).date()


def dates_between(since: date, until: date) -> list[date]:
    """Every calendar date in [since, until], inclusive; empty if since > until."""
    days = (until - since).days
    return [since + timedelta(days=i) for i in range(days + 1)]
