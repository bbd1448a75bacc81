"""
Working-day arithmetic shared by eligibility, submission and payroll.

Weekends and company holidays are excluded on every path.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import AbstractSet, Iterator, Optional, Tuple

from sqlalchemy.orm import Session

from app.models.holiday import Holiday

SATURDAY = 5
SUNDAY = 6


def iter_dates(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def is_working_day(day: date, holidays: AbstractSet[date] = frozenset()) -> bool:
    return day.weekday() not in (SATURDAY, SUNDAY) and day not in holidays


def count_working_days(start: date, end: date, holidays: AbstractSet[date] = frozenset()) -> int:
    return sum(1 for day in iter_dates(start, end) if is_working_day(day, holidays))


def requested_leave_days(
    start: date,
    end: date,
    is_half_day: bool,
    holidays: AbstractSet[date] = frozenset(),
) -> float:
    if is_half_day:
        # A half day taken on a weekend or holiday consumes nothing
        return 0.5 if is_working_day(start, holidays) else 0.0
    return float(count_working_days(start, end, holidays))


def overlap(start: date, end: date, window_start: date, window_end: date) -> Optional[Tuple[date, date]]:
    """Intersection of two inclusive date ranges, or None."""
    lo = max(start, window_start)
    hi = min(end, window_end)
    if lo > hi:
        return None
    return lo, hi


def month_bounds(day: date) -> Tuple[date, date]:
    first = day.replace(day=1)
    if first.month == 12:
        next_first = first.replace(year=first.year + 1, month=1)
    else:
        next_first = first.replace(month=first.month + 1)
    return first, next_first - timedelta(days=1)


def add_months(day: date, months: int) -> date:
    """Calendar month arithmetic, clamped to the last day of the target month."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    _, last = month_bounds(date(year, month, 1))
    return date(year, month, min(day.day, last.day))


def months_between(earlier: date, later: date) -> int:
    """Whole calendar months elapsed from `earlier` to `later`."""
    months = (later.year - earlier.year) * 12 + (later.month - earlier.month)
    if later.day < earlier.day and later != month_bounds(later)[1]:
        months -= 1
    return max(months, 0)


def load_holidays(db: Session, start: date, end: date) -> frozenset:
    rows = db.query(Holiday.holiday_date).filter(
        Holiday.holiday_date >= start,
        Holiday.holiday_date <= end
    ).all()
    return frozenset(row[0] for row in rows)
