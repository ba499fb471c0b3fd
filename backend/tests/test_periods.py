from datetime import date

import pytest

from planner.utils.periods import erp_date, iter_date_windows, month_bounds, shift_month, trailing_months


def test_shift_month_crosses_year_boundaries():
    assert shift_month(2026, 1, -1) == (2025, 12)
    assert shift_month(2026, 3, -12) == (2025, 3)
    assert shift_month(2025, 12, 1) == (2026, 1)


def test_trailing_months_excludes_current_month():
    slots = trailing_months(3, today=date(2026, 2, 10))

    assert [(slot.year, slot.month) for slot in slots] == [(2025, 11), (2025, 12), (2026, 1)]
    assert [slot.label for slot in slots] == ["NOV 2025", "DEC 2025", "JAN 2026"]


def test_month_bounds_handles_leap_february():
    assert month_bounds(2028, 2) == (date(2028, 2, 1), date(2028, 2, 29))
    with pytest.raises(ValueError):
        month_bounds(2026, 13)


def test_date_windows_split_long_ranges():
    windows = iter_date_windows(date(2024, 1, 1), date(2025, 6, 30), 365)

    assert windows[0] == (date(2024, 1, 1), date(2024, 12, 30))
    assert windows[1] == (date(2024, 12, 31), date(2025, 6, 30))
    assert iter_date_windows(date(2026, 3, 1), date(2026, 3, 1), 365) == [(date(2026, 3, 1), date(2026, 3, 1))]
    assert iter_date_windows(date(2026, 3, 2), date(2026, 3, 1), 365) == []


def test_erp_date_format():
    assert erp_date(date(2026, 3, 5)) == "20260305"
