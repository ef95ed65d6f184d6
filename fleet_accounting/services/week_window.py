"""Active accounting week: Sunday 00:00 through Saturday 23:59:59.999999."""

from datetime import datetime, timedelta

from fleet_accounting.models import WeekWindow


def active_week(now: datetime) -> WeekWindow:
    """Return the Sunday-based week containing `now`."""
    days_since_sunday = (now.weekday() + 1) % 7
    start = (now - timedelta(days=days_since_sunday)).replace(
        hour=0, minute=0, second=0, microsecond=0
    )
    end = start + timedelta(days=7) - timedelta(microseconds=1)
    return WeekWindow(start=start, end=end)
