from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Mapping

from shiftboard.validators import parse_date

DEFAULT_DAY_COUNT = 14


def date_range(start: date | str, days: int = DEFAULT_DAY_COUNT) -> list[str]:
    """Return ``days`` consecutive ISO dates beginning at ``start``.

    Dates are built with calendar arithmetic on ``date`` values, so there is
    no timezone involved and the first element is always ``start`` itself.
    A non-positive ``days`` gives an empty list.
    """
    first = parse_date(start, "startDate")
    return [(first + timedelta(days=offset)).isoformat() for offset in range(max(0, days))]


def _time_to_minutes(value: str) -> int:
    hh, mm = value.split(":")
    return int(hh) * 60 + int(mm)


@dataclass(frozen=True)
class TimeWindow:
    name: str
    start: str
    end: str

    def overlaps(self, start: str, end: str) -> bool:
        return not (
            _time_to_minutes(end) <= _time_to_minutes(self.start)
            or _time_to_minutes(start) >= _time_to_minutes(self.end)
        )


LUNCH_WINDOW = TimeWindow("lunch", "10:00", "16:00")
DINNER_WINDOW = TimeWindow("dinner", "16:00", "22:00")
COVERAGE_WINDOWS = (LUNCH_WINDOW, DINNER_WINDOW)


def covers(shift, window: TimeWindow) -> bool:
    if shift is None or not shift.is_working:
        return False
    if shift.is_all_day:
        return True
    if not shift.start_time or not shift.end_time:
        return False
    return window.overlaps(shift.start_time, shift.end_time)


def coverage_counts(shifts_by_staff: Iterable[Mapping[str, object]], dates: list[str]) -> dict[str, dict[str, int]]:
    """Count, per date, how many staff cover each coverage window."""
    counts = {day: {window.name: 0 for window in COVERAGE_WINDOWS} for day in dates}
    for shifts in shifts_by_staff:
        for day in dates:
            shift = shifts.get(day)
            for window in COVERAGE_WINDOWS:
                if covers(shift, window):
                    counts[day][window.name] += 1
    return counts
