"""Time windows and ratios for the admin dashboard. Pure module."""

from datetime import datetime
from decimal import Decimal


def percent_change(current, previous) -> float:
    """Change from ``previous`` to ``current`` in percent; 0 when there is no baseline."""
    current, previous = Decimal(current or 0), Decimal(previous or 0)
    if previous == 0:
        return 0.0
    return float(round((current - previous) / previous * 100, 2))


def month_start(moment: datetime) -> datetime:
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def previous_month_start(moment: datetime) -> datetime:
    start = month_start(moment)
    if start.month == 1:
        return start.replace(year=start.year - 1, month=12)
    return start.replace(month=start.month - 1)


def year_start(moment: datetime) -> datetime:
    return month_start(moment).replace(month=1)
