from __future__ import annotations

import logging
import threading
import time

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from shiftboard.db import store_errors
from shiftboard.errors import NotFoundError, ValidationError
from shiftboard.models import Group, Shift, Staff
from shiftboard.schemas import StaffOut
from shiftboard.validators import ensure_name, ensure_uuid

logger = logging.getLogger(__name__)

STAFF_ROLES = ("staff", "manager")


def serialize_staff(staff: Staff) -> StaffOut:
    return StaffOut(
        id=staff.id,
        name=staff.name,
        group_id=staff.group_id,
        role=staff.role,
        is_shift_confirmed=staff.is_shift_confirmed,
        created_at=staff.created_at,
    )


def list_staff(db: Session, group_id: str) -> list[Staff]:
    with store_errors(db, "list_staff", group_id=group_id):
        return list(db.scalars(select(Staff).where(Staff.group_id == group_id).order_by(Staff.name, Staff.id)).all())


def get_staff(db: Session, staff_id: str) -> Staff:
    staff_id = ensure_uuid(staff_id)
    with store_errors(db, "get_staff", staff_id=staff_id):
        staff = db.get(Staff, staff_id)
    if staff is None:
        raise NotFoundError("Staff not found")
    return staff


def get_staff_in_group(db: Session, staff_id: str, group_id: str) -> Staff:
    """Load a staff row, treating a row from another group as missing."""
    staff = get_staff(db, staff_id)
    if staff.group_id != group_id:
        logger.info("Rejected cross-group access to staff %s from group %s", staff.id, group_id)
        raise NotFoundError("Staff not found")
    return staff


def create_staff(db: Session, group_id: str, name: str, role: str = "staff") -> Staff:
    name = ensure_name(name)
    if role not in STAFF_ROLES:
        raise ValidationError("Role must be 'staff' or 'manager'")
    with store_errors(db, "create_staff", group_id=group_id):
        if db.get(Group, group_id) is None:
            raise NotFoundError("Group not found")
        staff = Staff(name=name, group_id=group_id, role=role, is_shift_confirmed=False)
        db.add(staff)
        db.commit()
        db.refresh(staff)
    logger.info("Added staff %s to group %s", staff.id, group_id)
    return staff


def rename_staff(db: Session, staff: Staff, name: str) -> Staff:
    name = ensure_name(name)
    with store_errors(db, "rename_staff", staff_id=staff.id):
        staff.name = name
        db.add(staff)
        db.commit()
        db.refresh(staff)
    return staff


def delete_staff(db: Session, staff: Staff) -> None:
    with store_errors(db, "delete_staff", staff_id=staff.id):
        # SQLite does not enforce ON DELETE CASCADE without a pragma.
        db.execute(delete(Shift).where(Shift.staff_id == staff.id))
        db.delete(staff)
        db.commit()
    logger.info("Deleted staff %s from group %s", staff.id, staff.group_id)


class ConfirmationCache:
    """Short-lived in-process record of the last confirmation flag seen per staff.

    Every confirm/unconfirm writes through to the store and then refreshes the
    entry. Reads go to the store; the entry is only compared against it.
    """

    def __init__(self, ttl_seconds: float = 30.0, clock=time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[bool, float]] = {}
        self._lock = threading.Lock()

    def get(self, staff_id: str) -> bool | None:
        with self._lock:
            entry = self._entries.get(staff_id)
            if entry is None:
                return None
            value, stored_at = entry
            if self._clock() - stored_at > self.ttl_seconds:
                del self._entries[staff_id]
                return None
            return value

    def set(self, staff_id: str, value: bool) -> None:
        with self._lock:
            self._entries[staff_id] = (value, self._clock())

    def invalidate(self, staff_id: str) -> None:
        with self._lock:
            self._entries.pop(staff_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


def _load_fresh(db: Session, staff_id: str, action: str) -> Staff:
    staff_id = ensure_uuid(staff_id)
    with store_errors(db, action, staff_id=staff_id):
        staff = db.get(Staff, staff_id, populate_existing=True)
    if staff is None:
        raise NotFoundError("Staff not found")
    return staff


def _set_confirmation(db: Session, staff_id: str, value: bool, cache: ConfirmationCache | None) -> bool:
    staff = _load_fresh(db, staff_id, "set_confirmation")
    if cache is not None:
        cache.invalidate(staff.id)
    if staff.is_shift_confirmed != value:
        with store_errors(db, "set_confirmation", staff_id=staff.id, value=value):
            staff.is_shift_confirmed = value
            db.add(staff)
            db.commit()
        logger.info("Staff %s confirmation set to %s", staff.id, value)
    if cache is not None:
        cache.set(staff.id, value)
    return value


def confirm(db: Session, staff_id: str, cache: ConfirmationCache | None = None) -> bool:
    return _set_confirmation(db, staff_id, True, cache)


def unconfirm(db: Session, staff_id: str, cache: ConfirmationCache | None = None) -> bool:
    return _set_confirmation(db, staff_id, False, cache)


def get_confirmation(db: Session, staff_id: str, cache: ConfirmationCache | None = None) -> bool:
    """Return the stored flag and refresh ``cache`` from it.

    Other workers keep their own caches, so the row is always read.
    """
    staff = _load_fresh(db, staff_id, "get_confirmation")
    value = staff.is_shift_confirmed
    if cache is not None:
        previous = cache.get(staff.id)
        if previous is not None and previous != value:
            logger.info("Confirmation for staff %s changed outside this process", staff.id)
        cache.set(staff.id, value)
    return value
