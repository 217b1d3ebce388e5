from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from dateutil.relativedelta import MO, relativedelta

from .models import WeekBucket


def week_start(value: date) -> datetime:
    """Monday 00:00 of the ISO week containing ``value`` (Sunday closes a week)."""
    day = value.date() if isinstance(value, datetime) else value
    monday = day + relativedelta(weekday=MO(-1))
    return datetime(monday.year, monday.month, monday.day)


def week_end(start: datetime) -> datetime:
    return start + relativedelta(days=6, hour=23, minute=59, second=59, microsecond=999999)


def weeks_between(anchor: datetime, value: date) -> int:
    """Whole weeks from ``anchor`` to the Monday of ``value``'s week, floored."""
    delta = week_start(value) - anchor
    return delta.days // 7


def build_week_buckets(
    start_date: Optional[date],
    weeks: int,
    weekly_capacity: float,
) -> List[WeekBucket]:
    anchor = week_start(start_date if start_date is not None else date.today())
    capacity = max(0.0, float(weekly_capacity))
    buckets: List[WeekBucket] = []
    for offset in range(max(0, weeks)):
        start = anchor + relativedelta(weeks=offset)
        buckets.append(
            WeekBucket(
                week_index=offset,
                start_date=start,
                end_date=week_end(start),
                capacity_hours=capacity,
            )
        )
    return buckets
