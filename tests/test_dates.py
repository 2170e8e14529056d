from __future__ import annotations

from datetime import date, timedelta

import pytest

from shiftboard.dates import DINNER_WINDOW, LUNCH_WINDOW, coverage_counts, covers, date_range
from shiftboard.errors import ValidationError
from shiftboard.schemas import ShiftInfo


@pytest.mark.parametrize("days", [0, 1, 7, 14, 60])
def test_date_range_is_consecutive_and_starts_at_start(days):
    start = date(2024, 2, 25)
    dates = date_range(start, days)
    assert len(dates) == days
    if days:
        assert dates[0] == "2024-02-25"
    parsed = [date.fromisoformat(value) for value in dates]
    assert all(b - a == timedelta(days=1) for a, b in zip(parsed, parsed[1:]))


def test_date_range_crosses_month_and_leap_day():
    assert date_range("2024-02-27", 4) == ["2024-02-27", "2024-02-28", "2024-02-29", "2024-03-01"]


def test_date_range_defaults_to_fourteen_days():
    assert len(date_range("2024-06-01")) == 14


def test_date_range_non_positive_days_is_empty():
    assert date_range("2024-06-01", -3) == []


def test_date_range_rejects_malformed_start():
    with pytest.raises(ValidationError):
        date_range("2024/06/01", 3)
    with pytest.raises(ValidationError):
        date_range("2024-02-30", 3)


def test_lunch_and_dinner_overlap_rules():
    lunch_shift = ShiftInfo(is_working=True, start_time="10:00", end_time="16:00")
    assert covers(lunch_shift, LUNCH_WINDOW)
    assert not covers(lunch_shift, DINNER_WINDOW)

    late = ShiftInfo(is_working=True, start_time="15:30", end_time="18:00")
    assert covers(late, LUNCH_WINDOW)
    assert covers(late, DINNER_WINDOW)

    early = ShiftInfo(is_working=True, start_time="08:00", end_time="10:00")
    assert not covers(early, LUNCH_WINDOW)


def test_all_day_covers_both_windows_and_off_covers_none():
    all_day = ShiftInfo(is_working=True, is_all_day=True)
    assert covers(all_day, LUNCH_WINDOW)
    assert covers(all_day, DINNER_WINDOW)

    off = ShiftInfo(is_working=False, start_time="10:00", end_time="22:00")
    assert not covers(off, LUNCH_WINDOW)
    assert not covers(None, LUNCH_WINDOW)


def test_coverage_counts_per_date():
    dates = ["2024-06-03", "2024-06-04"]
    shifts_by_staff = [
        {"2024-06-03": ShiftInfo(is_working=True, start_time="10:00", end_time="16:00")},
        {
            "2024-06-03": ShiftInfo(is_working=True, start_time="17:00", end_time="22:00"),
            "2024-06-04": ShiftInfo(is_working=True, is_all_day=True),
        },
        {"2024-06-04": ShiftInfo(is_working=False)},
    ]
    assert coverage_counts(shifts_by_staff, dates) == {
        "2024-06-03": {"lunch": 1, "dinner": 1},
        "2024-06-04": {"lunch": 1, "dinner": 1},
    }
