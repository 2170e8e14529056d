from __future__ import annotations

import uuid

import pytest

import shiftboard.db as app_db
from shiftboard.errors import NotFoundError, ValidationError
from shiftboard.schemas import ShiftInfo
from shiftboard.shifts import get_shift, update_shift
from shiftboard.staff import ConfirmationCache, confirm, get_confirmation, unconfirm


def test_confirm_and_unconfirm_are_idempotent(db, staff_member):
    assert get_confirmation(db, staff_member.id) is False
    assert confirm(db, staff_member.id) is True
    assert confirm(db, staff_member.id) is True
    assert get_confirmation(db, staff_member.id) is True

    assert unconfirm(db, staff_member.id) is False
    assert unconfirm(db, staff_member.id) is False
    assert get_confirmation(db, staff_member.id) is False


def test_confirmation_does_not_lock_shifts(db, staff_member):
    confirm(db, staff_member.id)
    update_shift(db, staff_member.id, "2024-06-03", ShiftInfo(is_working=True, start_time="11:00", end_time="15:00"))
    assert get_shift(db, staff_member.id, "2024-06-03").start_time == "11:00"
    assert get_confirmation(db, staff_member.id) is True


def test_unknown_or_malformed_staff(db):
    with pytest.raises(NotFoundError):
        confirm(db, str(uuid.uuid4()))
    with pytest.raises(NotFoundError):
        unconfirm(db, str(uuid.uuid4()))
    with pytest.raises(ValidationError):
        get_confirmation(db, "1; drop table staff")


def test_cache_is_updated_on_every_toggle(db, staff_member):
    cache = ConfirmationCache()
    assert get_confirmation(db, staff_member.id, cache) is False
    assert cache.get(staff_member.id) is False

    confirm(db, staff_member.id, cache)
    assert cache.get(staff_member.id) is True
    assert get_confirmation(db, staff_member.id, cache) is True

    unconfirm(db, staff_member.id, cache)
    assert get_confirmation(db, staff_member.id, cache) is False


def test_cache_entries_expire():
    now = {"value": 100.0}
    cache = ConfirmationCache(ttl_seconds=30, clock=lambda: now["value"])
    cache.set("a", True)
    assert cache.get("a") is True
    now["value"] += 31
    assert cache.get("a") is None


def test_each_worker_sees_confirmations_made_by_another(db, staff_member):
    worker_a, worker_b = ConfirmationCache(), ConfirmationCache()
    other_db = app_db.SessionLocal()
    try:
        assert get_confirmation(other_db, staff_member.id, worker_b) is False

        confirm(db, staff_member.id, worker_a)

        assert worker_b.get(staff_member.id) is False
        assert get_confirmation(other_db, staff_member.id, worker_b) is True
        assert worker_b.get(staff_member.id) is True

        unconfirm(other_db, staff_member.id, worker_b)
        assert get_confirmation(db, staff_member.id, worker_a) is False
    finally:
        other_db.close()
