"""
Business-calendar helpers.

All "today" / month-boundary decisions use the configured TIMEZONE so a
server running in UTC still rolls months over at local midnight.
"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfo

from planner.core.config import settings

Period = Tuple[int, int]

_MONTH_LABELS = ("JAN", "FEB", "MAR", "APR", "MAY", "JUN", "JUL", "AUG", "SEP", "OCT", "NOV", "DEC")


@dataclass(frozen=True)
class MonthSlot:
    year: int
    month: int

    @property
    def label(self) -> str:
        return f"{_MONTH_LABELS[self.month - 1]} {self.year}"


def local_now(tz_name: Optional[str] = None) -> datetime:
    return datetime.now(ZoneInfo(tz_name or settings.TIMEZONE))


def local_today(tz_name: Optional[str] = None) -> date:
    return local_now(tz_name).date()


def current_period(today: Optional[date] = None) -> Period:
    today = today or local_today()
    return today.year, today.month


def shift_month(year: int, month: int, delta: int) -> Period:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def month_bounds(year: int, month: int) -> Tuple[date, date]:
    if not 1 <= month <= 12:
        raise ValueError(f"Month must be between 1 and 12, got {month}")
    first = date(year, month, 1)
    next_year, next_month = shift_month(year, month, 1)
    last = date(next_year, next_month, 1) - timedelta(days=1)
    return first, last


def trailing_months(count: int, today: Optional[date] = None) -> List[MonthSlot]:
    """The `count` months before the current one, oldest first (current month excluded)."""
    year, month = current_period(today)
    return [MonthSlot(*shift_month(year, month, -offset)) for offset in range(count, 0, -1)]


def iter_date_windows(start: date, end: date, max_days: int) -> List[Tuple[date, date]]:
    """Split [start, end] (inclusive) into consecutive windows of at most `max_days` days."""
    if end < start:
        return []
    windows = []
    cursor = start
    span = timedelta(days=max_days - 1)
    while cursor <= end:
        window_end = min(cursor + span, end)
        windows.append((cursor, window_end))
        cursor = window_end + timedelta(days=1)
    return windows


def erp_date(value: date) -> str:
    return value.strftime("%Y%m%d")
