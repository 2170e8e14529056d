from __future__ import annotations

import uuid

import pytest

import shiftboard.bulk as bulk_module
from shiftboard.bulk import RELOAD_MESSAGE, bulk_set
from shiftboard.errors import NotFoundError, StoreError, ValidationError
from shiftboard.schemas import ShiftInfo
from shiftboard.shifts import get_staff_shifts, update_shift

DATES = ["2024-06-01", "2024-06-02", "2024-06-03"]


def no_sleep(seconds):
    raise AssertionError(f"unexpected sleep({seconds})")


def test_bulk_off_sets_every_date_and_keeps_notes(db, staff_member):
    update_shift(db, staff_member.id, "2024-06-02", ShiftInfo(is_working=True, start_time="10:00", end_time="16:00", note="dentist at 17"))

    result = bulk_set(db, staff_member.id, DATES, working=False, sleep=no_sleep)

    assert result.success is True
    assert result.applied == 3
    assert result.failed == []
    assert result.verified is True
    assert result.attempts == 1
    shifts = get_staff_shifts(db, staff_member.id)
    assert all(shifts[day].is_working is False for day in DATES)
    assert shifts["2024-06-02"].note == "dentist at 17"
    assert shifts["2024-06-01"].note == ""
    assert (shifts["2024-06-01"].start_time, shifts["2024-06-01"].end_time) == ("09:00", "22:00")


def test_bulk_working_clears_all_day_flag(db, staff_member):
    update_shift(db, staff_member.id, "2024-06-01", ShiftInfo(is_working=True, is_all_day=True))
    bulk_set(db, staff_member.id, DATES, working=True, sleep=no_sleep)
    assert get_staff_shifts(db, staff_member.id)["2024-06-01"].is_all_day is False


def test_bulk_continues_past_failing_dates(db, staff_member, monkeypatch):
    real_update = bulk_module.update_shift

    def flaky_update(db, staff_id, day, info, **kwargs):
        if day == "2024-06-02":
            raise StoreError("update_shift")
        return real_update(db, staff_id, day, info, **kwargs)

    monkeypatch.setattr(bulk_module, "update_shift", flaky_update)

    result = bulk_set(db, staff_member.id, DATES, working=True, sleep=no_sleep)

    assert result.success is False
    assert result.applied == 2
    assert result.failed == ["2024-06-02"]
    assert sorted(get_staff_shifts(db, staff_member.id)) == ["2024-06-01", "2024-06-03"]


def test_bulk_retries_verification_with_backoff(db, staff_member, monkeypatch):
    real_fetch = bulk_module.get_staff_shifts
    calls = {"count": 0}

    def stale_fetch(db, staff_id):
        calls["count"] += 1
        if calls["count"] < 3:
            return {}
        return real_fetch(db, staff_id)

    monkeypatch.setattr(bulk_module, "get_staff_shifts", stale_fetch)
    sleeps = []

    result = bulk_set(db, staff_member.id, DATES, working=False, sleep=sleeps.append)

    assert result.verified is True
    assert result.attempts == 3
    assert sleeps == [1.0, 2.0]
    assert result.message is None


def test_bulk_gives_up_after_three_retries(db, staff_member, monkeypatch):
    monkeypatch.setattr(bulk_module, "get_staff_shifts", lambda db, staff_id: {})
    sleeps = []

    result = bulk_set(db, staff_member.id, DATES, working=False, sleep=sleeps.append)

    assert result.verified is False
    assert result.attempts == 4
    assert sleeps == [1.0, 2.0, 3.0]
    assert result.success is True
    assert result.message == RELOAD_MESSAGE


def test_bulk_rejects_bad_input_before_writing(db, staff_member):
    with pytest.raises(ValidationError):
        bulk_set(db, "nope", DATES, working=True, sleep=no_sleep)
    with pytest.raises(ValidationError):
        bulk_set(db, staff_member.id, ["2024-06-01", "tomorrow"], working=True, sleep=no_sleep)
    with pytest.raises(ValidationError):
        bulk_set(db, staff_member.id, [], working=True, sleep=no_sleep)
    assert get_staff_shifts(db, staff_member.id) == {}


def test_bulk_unknown_staff_is_not_found(db):
    with pytest.raises(NotFoundError):
        bulk_set(db, str(uuid.uuid4()), DATES, working=True, sleep=no_sleep)
