"""Calendar helpers for (year, month) reporting periods."""

import calendar
from datetime import datetime, timedelta
from typing import Iterable

from anomaly_engine.schemas.findings import TimeRange

QUARTER_END_MONTHS = frozenset({3, 6, 9, 12})


def month_name(month: int) -> str:
    """
    >>> month_name(12)
    'December'
    """
    return calendar.month_name[month]


def period_label(year: int, month: int) -> str:
    """
    >>> period_label(2024, 3)
    'March 2024'
    """
    return f"{month_name(month)} {year}"


def shift_period(year: int, month: int, delta: int) -> tuple[int, int]:
    """Move a (year, month) period by ``delta`` months.

    >>> shift_period(2024, 1, -1)
    (2023, 12)
    >>> shift_period(2024, 11, 3)
    (2025, 2)
    """
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def months_before(moment: datetime, months: int) -> datetime:
    """Same wall-clock time ``months`` months earlier, day clamped to month end.

    >>> months_before(datetime(2024, 5, 31), 3)
    datetime.datetime(2024, 2, 29, 0, 0)
    """
    year, month = shift_period(moment.year, moment.month, -months)
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def period_start(year: int, month: int) -> datetime:
    return datetime(year, month, 1)


def period_end(year: int, month: int) -> datetime:
    next_year, next_month = shift_period(year, month, 1)
    return datetime(next_year, next_month, 1) - timedelta(seconds=1)


def span(periods: Iterable[tuple[int, int]]) -> TimeRange:
    """Time range covering every (year, month) given; needs at least one."""
    ordered = sorted(periods)
    first, last = ordered[0], ordered[-1]
    return TimeRange(start=period_start(*first), end=period_end(*last))
