from __future__ import annotations

import logging
import os
from collections import defaultdict
from datetime import date, timedelta

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shiftboard.dates import DEFAULT_DAY_COUNT, coverage_counts, date_range
from shiftboard.db import store_errors
from shiftboard.errors import ConflictError, NotFoundError, StoreError, ValidationError
from shiftboard.models import Group, SchedulingWindow, Shift, Staff, new_uuid, utcnow
from shiftboard.schemas import (
    CleanupSummary,
    CoverageCount,
    DateRange,
    PastWindow,
    ShiftInfo,
    ShiftTable,
    StaffWithShifts,
)
from shiftboard.staff import list_staff
from shiftboard.validators import ensure_uuid, parse_date

logger = logging.getLogger(__name__)

MAX_WINDOW_DAYS = 366
DEFAULT_RETENTION_DAYS = 42
_UPSERT_INSERTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


def get_retention_days() -> int:
    raw = os.getenv("SHIFT_RETENTION_DAYS", str(DEFAULT_RETENTION_DAYS))
    try:
        days = int(raw)
    except ValueError:
        logger.warning("Ignoring invalid SHIFT_RETENTION_DAYS=%r", raw)
        return DEFAULT_RETENTION_DAYS
    return days if days > 0 else DEFAULT_RETENTION_DAYS


def to_shift_info(row: Shift) -> ShiftInfo:
    return ShiftInfo(
        is_working=row.is_working,
        start_time=row.start_time,
        end_time=row.end_time,
        is_all_day=row.is_all_day,
        note=row.note or "",
    )


def get_shift(db: Session, staff_id: str, day: str | date) -> ShiftInfo | None:
    staff_id = ensure_uuid(staff_id)
    shift_date = parse_date(day)
    with store_errors(db, "get_shift", staff_id=staff_id, date=shift_date):
        row = db.scalar(
            select(Shift)
            .where(Shift.staff_id == staff_id, Shift.date == shift_date)
            .execution_options(populate_existing=True)
        )
    return None if row is None else to_shift_info(row)


def get_staff_shifts(db: Session, staff_id: str) -> dict[str, ShiftInfo]:
    staff_id = ensure_uuid(staff_id)
    with store_errors(db, "get_staff_shifts", staff_id=staff_id):
        rows = db.scalars(
            select(Shift)
            .where(Shift.staff_id == staff_id)
            .order_by(Shift.date)
            .execution_options(populate_existing=True)
        ).all()
    return {row.date.isoformat(): to_shift_info(row) for row in rows}


def update_shift(
    db: Session,
    staff_id: str,
    day: str | date,
    info: ShiftInfo,
    *,
    preserve_note: bool = False,
) -> ShiftInfo:
    """Create or overwrite the shift for ``(staff_id, day)`` in one statement.

    With ``preserve_note`` an existing row keeps its note; a new row gets
    ``info.note``. The returned value is the state as stored.
    """
    staff_id = ensure_uuid(staff_id)
    shift_date = parse_date(day)
    with store_errors(db, "update_shift", staff_id=staff_id, date=shift_date):
        if db.get(Staff, staff_id) is None:
            raise NotFoundError("Staff not found")
        dialect = db.get_bind().dialect.name
        insert = _UPSERT_INSERTS.get(dialect)
        if insert is None:
            logger.error("Atomic upsert is not available for dialect %s", dialect)
            raise StoreError("update_shift")
        stmt = insert(Shift.__table__).values(
            id=new_uuid(),
            staff_id=staff_id,
            date=shift_date,
            start_time=info.start_time,
            end_time=info.end_time,
            is_working=info.is_working,
            is_all_day=info.is_all_day,
            note=info.note,
            updated_at=utcnow(),
        )
        updated_columns = ["start_time", "end_time", "is_working", "is_all_day", "updated_at"]
        if not preserve_note:
            updated_columns.append("note")
        stmt = stmt.on_conflict_do_update(
            index_elements=["staff_id", "date"],
            set_={column: stmt.excluded[column] for column in updated_columns},
        )
        db.execute(stmt)
        db.commit()
    if not preserve_note:
        return info
    return get_shift(db, staff_id, shift_date)


def delete_shift(db: Session, staff_id: str, day: str | date) -> None:
    staff_id = ensure_uuid(staff_id)
    shift_date = parse_date(day)
    with store_errors(db, "delete_shift", staff_id=staff_id, date=shift_date):
        db.execute(delete(Shift).where(Shift.staff_id == staff_id, Shift.date == shift_date))
        db.commit()


def _get_group(db: Session, group_id: str) -> Group:
    with store_errors(db, "get_group", group_id=group_id):
        group = db.get(Group, group_id)
    if group is None:
        raise NotFoundError("Group not found")
    return group


def get_date_range(db: Session, group_id: str, today: date | None = None) -> DateRange:
    """Return the group's active window, defaulting to 14 days from today."""
    group = _get_group(db, group_id)
    return DateRange(
        start_date=group.shift_start_date or today or date.today(),
        days=group.shift_day_count or DEFAULT_DAY_COUNT,
    )


def save_date_range(db: Session, group_id: str, start_date: str | date, days: int) -> DateRange:
    start = parse_date(start_date, "startDate")
    if not 1 <= days <= MAX_WINDOW_DAYS:
        raise ValidationError(f"days must be between 1 and {MAX_WINDOW_DAYS}")
    group = _get_group(db, group_id)
    with store_errors(db, "save_date_range", group_id=group_id):
        group.shift_start_date = start
        group.shift_day_count = days
        db.add(group)
        db.commit()
    logger.info("Group %s scheduling window set to %s for %d days", group_id, start, days)
    return DateRange(start_date=start, days=days)


def cleanup_old_shifts(db: Session, today: date | None = None) -> CleanupSummary:
    cutoff = (today or date.today()) - timedelta(days=get_retention_days())
    with store_errors(db, "cleanup_old_shifts", cutoff=cutoff):
        result = db.execute(delete(Shift).where(Shift.date < cutoff))
        db.commit()
    deleted = int(result.rowcount or 0)
    logger.info("Removed %d shifts dated before %s", deleted, cutoff)
    return CleanupSummary(deleted=deleted, cutoff=cutoff)


def archive_current_window(db: Session, group_id: str) -> PastWindow:
    group = _get_group(db, group_id)
    if group.shift_start_date is None or not group.shift_day_count:
        raise NotFoundError("No active scheduling window to archive")
    window = SchedulingWindow(
        group_id=group.id,
        start_date=group.shift_start_date,
        day_count=group.shift_day_count,
    )
    try:
        with store_errors(db, "archive_current_window", group_id=group_id):
            db.add(window)
            db.commit()
            db.refresh(window)
    except StoreError as exc:
        if isinstance(exc.__cause__, IntegrityError):
            raise ConflictError("This scheduling window is already archived") from exc
        raise
    return PastWindow(start_date=window.start_date, days=window.day_count, archived_at=window.archived_at)


def list_past_windows(db: Session, group_id: str) -> list[PastWindow]:
    with store_errors(db, "list_past_windows", group_id=group_id):
        windows = db.scalars(
            select(SchedulingWindow)
            .where(SchedulingWindow.group_id == group_id)
            .order_by(SchedulingWindow.start_date.desc())
        ).all()
    return [PastWindow(start_date=w.start_date, days=w.day_count, archived_at=w.archived_at) for w in windows]


def delete_past_window(db: Session, group_id: str, start_date: str | date) -> int:
    """Drop an archived window together with the group's shifts on its dates."""
    start = parse_date(start_date, "startDate")
    with store_errors(db, "delete_past_window", group_id=group_id, start_date=start):
        window = db.scalar(
            select(SchedulingWindow).where(
                SchedulingWindow.group_id == group_id,
                SchedulingWindow.start_date == start,
            )
        )
        if window is None:
            raise NotFoundError("Archived scheduling window not found")
        end = start + timedelta(days=window.day_count)
        group_staff = select(Staff.id).where(Staff.group_id == group_id)
        result = db.execute(
            delete(Shift).where(
                Shift.staff_id.in_(group_staff),
                Shift.date >= start,
                Shift.date < end,
            )
        )
        db.delete(window)
        db.commit()
    return int(result.rowcount or 0)


def group_shift_table(db: Session, group_id: str, dates: list[str]) -> ShiftTable:
    staff_rows = list_staff(db, group_id)
    shifts_by_staff: dict[str, dict[str, ShiftInfo]] = defaultdict(dict)
    if staff_rows and dates:
        day_values = [parse_date(day) for day in dates]
        with store_errors(db, "group_shift_table", group_id=group_id):
            rows = db.scalars(
                select(Shift)
                .where(
                    Shift.staff_id.in_([staff.id for staff in staff_rows]),
                    Shift.date.in_(day_values),
                )
                .execution_options(populate_existing=True)
            ).all()
        for row in rows:
            shifts_by_staff[row.staff_id][row.date.isoformat()] = to_shift_info(row)
    staff = [
        StaffWithShifts(
            id=row.id,
            name=row.name,
            group_id=row.group_id,
            role=row.role,
            is_shift_confirmed=row.is_shift_confirmed,
            created_at=row.created_at,
            shifts=shifts_by_staff.get(row.id, {}),
        )
        for row in staff_rows
    ]
    counts = coverage_counts([member.shifts for member in staff], dates)
    return ShiftTable(
        dates=dates,
        staff=staff,
        coverage={day: CoverageCount(**value) for day, value in counts.items()},
    )


def window_dates(db: Session, group_id: str) -> list[str]:
    window = get_date_range(db, group_id)
    return date_range(window.start_date, window.days)
