from __future__ import annotations

import logging
import time
from typing import Callable, Sequence

from sqlalchemy.orm import Session

from shiftboard.errors import NotFoundError, StoreError, ValidationError
from shiftboard.schemas import BulkResult, ShiftInfo
from shiftboard.shifts import get_staff_shifts, update_shift
from shiftboard.validators import ensure_uuid, parse_date

logger = logging.getLogger(__name__)

BULK_START_TIME = "09:00"
BULK_END_TIME = "22:00"
VERIFY_DELAYS = (1.0, 2.0, 3.0)
RELOAD_MESSAGE = "Changes were saved but could not be confirmed yet; reload to see the latest shifts"


def _reflects(shifts: dict[str, ShiftInfo], dates: Sequence[str], working: bool) -> bool:
    return any(day in shifts and shifts[day].is_working == working for day in dates)


def bulk_set(
    db: Session,
    staff_id: str,
    dates: Sequence[str],
    working: bool,
    *,
    sleep: Callable[[float], None] = time.sleep,
    delays: Sequence[float] = VERIFY_DELAYS,
) -> BulkResult:
    """Set every date in ``dates`` to working or off for one staff member.

    Each date is written on its own; a failing date is logged and skipped and
    nothing already written is rolled back. Afterwards the staff's shifts are
    read back until at least one target date shows the new state, waiting
    ``delays[i]`` seconds between attempts.
    """
    staff_id = ensure_uuid(staff_id)
    targets = [parse_date(day).isoformat() for day in dates]
    if not targets:
        raise ValidationError("At least one date is required")

    info = ShiftInfo(
        is_working=working,
        start_time=BULK_START_TIME,
        end_time=BULK_END_TIME,
        is_all_day=False,
    )
    applied = 0
    failed: list[str] = []
    for day in targets:
        try:
            update_shift(db, staff_id, day, info, preserve_note=True)
        except NotFoundError:
            raise
        except (StoreError, ValidationError) as exc:
            logger.warning("Bulk update of staff %s on %s failed: %s", staff_id, day, exc.message)
            failed.append(day)
        else:
            applied += 1

    verified = False
    attempts = 0
    if applied:
        written = [day for day in targets if day not in failed]
        while True:
            attempts += 1
            try:
                verified = _reflects(get_staff_shifts(db, staff_id), written, working)
            except StoreError:
                verified = False
            if verified or attempts > len(delays):
                break
            delay = delays[attempts - 1]
            logger.info("Bulk update of staff %s not visible yet, retrying in %.1fs", staff_id, delay)
            sleep(delay)

    if failed:
        message = f"{len(failed)} of {len(targets)} dates could not be saved"
    elif not verified:
        message = RELOAD_MESSAGE
    else:
        message = None
    logger.info(
        "Bulk set staff %s working=%s: %d applied, %d failed, verified=%s",
        staff_id,
        working,
        applied,
        len(failed),
        verified,
    )
    return BulkResult(
        applied=applied,
        failed=failed,
        verified=verified,
        attempts=attempts,
        success=not failed,
        message=message,
    )
