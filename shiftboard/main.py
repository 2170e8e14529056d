from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager, suppress
from datetime import date

from fastapi import Depends, FastAPI, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import Field
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

import shiftboard.db as app_db
from shiftboard import groups as group_service
from shiftboard import shifts as shift_service
from shiftboard import staff as staff_service
from shiftboard.bulk import bulk_set
from shiftboard.dates import DEFAULT_DAY_COUNT, date_range
from shiftboard.db import get_db
from shiftboard.errors import (
    AdminRequiredError,
    AuthorizationError,
    NotFoundError,
    ShiftboardError,
    ValidationError,
)
from shiftboard.schemas import (
    BulkResult,
    CamelModel,
    CleanupSummary,
    Confirmation,
    DateRange,
    Envelope,
    GroupAccess,
    GroupCreated,
    PastWindow,
    ShiftInfo,
    ShiftTable,
    StaffOut,
    StaffRole,
    StaffWithShifts,
)
from shiftboard.staff import ConfirmationCache
from shiftboard.validators import ensure_uuid, parse_date

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "group_session"


def configure_logging() -> None:
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, str(default))
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r", name, raw)
        return default


def run_cleanup_once() -> None:
    db = app_db.SessionLocal()
    try:
        shift_service.cleanup_old_shifts(db)
    except ShiftboardError as exc:
        logger.warning("Periodic shift cleanup failed: %s", exc.message)
    finally:
        db.close()


async def periodic_cleanup(interval_seconds: float, initial_delay_seconds: float) -> None:
    await asyncio.sleep(initial_delay_seconds)
    while True:
        await asyncio.to_thread(run_cleanup_once)
        await asyncio.sleep(interval_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    interval_hours = _float_env("CLEANUP_INTERVAL_HOURS", 24)
    task = None
    if interval_hours > 0:
        task = asyncio.create_task(
            periodic_cleanup(interval_hours * 3600, _float_env("CLEANUP_INITIAL_DELAY_SECONDS", 600))
        )
    yield
    if task is not None:
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task


app = FastAPI(title="Shiftboard", lifespan=lifespan)
app.state.confirmation_cache = ConfirmationCache()


@app.middleware("http")
async def disable_cache(request: Request, call_next):
    response = await call_next(request)
    response.headers["Cache-Control"] = "no-store, no-cache, max-age=0, must-revalidate"
    response.headers["Pragma"] = "no-cache"
    return response


def failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


@app.exception_handler(ShiftboardError)
async def handle_shiftboard_error(request: Request, exc: ShiftboardError) -> JSONResponse:
    return failure(exc.status_code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return failure(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    else:
        message = "Invalid request"
    return failure(status.HTTP_400_BAD_REQUEST, message)


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return failure(status.HTTP_500_INTERNAL_SERVER_ERROR, "Something went wrong, please try again")


def ok(data=None) -> dict:
    return {"success": True, "data": data}


class GroupCreatePayload(CamelModel):
    name: str
    admin_password: str


class AccessKeyPayload(CamelModel):
    access_key: str


class AdminKeyPayload(CamelModel):
    admin_key: str


class ElevatePayload(CamelModel):
    password: str


class DateRangePayload(CamelModel):
    start_date: date
    days: int = Field(default=DEFAULT_DAY_COUNT)


class StaffCreatePayload(CamelModel):
    name: str
    group_id: str | None = None
    role: StaffRole = "staff"


class StaffRenamePayload(CamelModel):
    name: str


class BulkPayload(CamelModel):
    working: bool
    dates: list[str] | None = None
    confirm: bool = False


def request_is_https(request: Request) -> bool:
    forwarded_proto = request.headers.get("x-forwarded-proto", "")
    if forwarded_proto:
        first_proto = forwarded_proto.split(",")[0].strip().lower()
        if first_proto:
            return first_proto == "https"
    return request.url.scheme == "https"


def set_session_cookie(response: Response, request: Request, session_id: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=session_id,
        max_age=int(group_service.get_session_max_age().total_seconds()),
        httponly=True,
        samesite="lax",
        secure=request_is_https(request),
        path="/",
    )


def clear_session_cookie(response: Response, request: Request) -> None:
    response.delete_cookie(
        key=SESSION_COOKIE_NAME,
        httponly=True,
        samesite="lax",
        secure=request_is_https(request),
        path="/",
    )


def start_session(db: Session, request: Request, response: Response, access: GroupAccess) -> None:
    previous = request.cookies.get(SESSION_COOKIE_NAME)
    if previous:
        group_service.delete_session(db, previous)
    session_id = group_service.create_session(db, access.group_id, access.is_admin)
    set_session_cookie(response, request, session_id)


def get_current_access(request: Request, db: Session = Depends(get_db)) -> GroupAccess:
    access = group_service.get_session_access(db, request.cookies.get(SESSION_COOKIE_NAME))
    if access is None:
        raise AuthorizationError()
    return access


def get_admin_access(access: GroupAccess = Depends(get_current_access)) -> GroupAccess:
    if not access.is_admin:
        raise AdminRequiredError()
    return access


def get_confirmation_cache(request: Request) -> ConfirmationCache:
    return request.app.state.confirmation_cache


def require_group_match(access: GroupAccess, group_id: str | None) -> None:
    if group_id is not None and group_id != access.group_id:
        raise NotFoundError("Group not found")


def resolve_dates(db: Session, access: GroupAccess, start_date: str | None, days: int | None) -> list[str]:
    if days is not None and days > shift_service.MAX_WINDOW_DAYS:
        raise ValidationError(f"days must be at most {shift_service.MAX_WINDOW_DAYS}")
    if start_date is None:
        window = shift_service.get_date_range(db, access.group_id)
        return date_range(window.start_date, window.days if days is None else days)
    return date_range(start_date, DEFAULT_DAY_COUNT if days is None else days)


@app.get("/health")
def health() -> dict[str, bool | str]:
    return {"ok": True, "env": os.getenv("ENVIRONMENT", "local")}


@app.post("/groups", response_model=Envelope[GroupCreated], status_code=status.HTTP_201_CREATED)
def create_group(
    payload: GroupCreatePayload,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
):
    group = group_service.create_group(db, payload.name, payload.admin_password)
    start_session(db, request, response, group_service.to_access(group, is_admin=True))
    return ok(
        GroupCreated(
            id=group.id,
            name=group.name,
            access_key=group.access_key,
            admin_key=group.admin_key,
            created_at=group.created_at,
        )
    )


@app.post("/groups/access", response_model=Envelope[GroupAccess])
def access_group(
    payload: AccessKeyPayload,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
):
    access = group_service.resolve_access_key(db, payload.access_key)
    start_session(db, request, response, access)
    return ok(access)


@app.post("/groups/admin-access", response_model=Envelope[GroupAccess])
def access_group_as_admin(
    payload: AdminKeyPayload,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
):
    access = group_service.resolve_admin_key(db, payload.admin_key)
    start_session(db, request, response, access)
    return ok(access)


@app.post("/groups/elevate", response_model=Envelope[GroupAccess])
def elevate_to_admin(
    payload: ElevatePayload,
    request: Request,
    response: Response,
    access: GroupAccess = Depends(get_current_access),
    db: Session = Depends(get_db),
):
    admin_access = group_service.elevate(db, access.group_id, payload.password)
    start_session(db, request, response, admin_access)
    return ok(admin_access)


@app.get("/groups/me", response_model=Envelope[GroupAccess])
def current_group(access: GroupAccess = Depends(get_current_access)):
    return ok(access)


@app.post("/groups/leave", response_model=Envelope[None])
def leave_group(request: Request, response: Response, db: Session = Depends(get_db)):
    session_id = request.cookies.get(SESSION_COOKIE_NAME)
    if session_id:
        group_service.delete_session(db, session_id)
    clear_session_cookie(response, request)
    return ok()


@app.get("/groups/date-range", response_model=Envelope[DateRange])
def get_date_range(access: GroupAccess = Depends(get_current_access), db: Session = Depends(get_db)):
    return ok(shift_service.get_date_range(db, access.group_id))


@app.put("/groups/date-range", response_model=Envelope[DateRange])
def save_date_range(
    payload: DateRangePayload,
    access: GroupAccess = Depends(get_admin_access),
    db: Session = Depends(get_db),
):
    return ok(shift_service.save_date_range(db, access.group_id, payload.start_date, payload.days))


@app.get("/groups/windows", response_model=Envelope[list[PastWindow]])
def list_past_windows(access: GroupAccess = Depends(get_current_access), db: Session = Depends(get_db)):
    return ok(shift_service.list_past_windows(db, access.group_id))


@app.post("/groups/windows/archive", response_model=Envelope[PastWindow], status_code=status.HTTP_201_CREATED)
def archive_window(access: GroupAccess = Depends(get_admin_access), db: Session = Depends(get_db)):
    return ok(shift_service.archive_current_window(db, access.group_id))


@app.delete("/groups/windows/{start_date}", response_model=Envelope[dict[str, int]])
def delete_past_window(
    start_date: str,
    access: GroupAccess = Depends(get_admin_access),
    db: Session = Depends(get_db),
):
    deleted = shift_service.delete_past_window(db, access.group_id, start_date)
    return ok({"deletedShifts": deleted})


@app.get("/staff", response_model=Envelope[list[StaffOut]])
def list_staff(
    group_id: str | None = Query(default=None, alias="groupId"),
    access: GroupAccess = Depends(get_current_access),
    db: Session = Depends(get_db),
):
    require_group_match(access, group_id)
    return ok([staff_service.serialize_staff(row) for row in staff_service.list_staff(db, access.group_id)])


@app.post("/staff", response_model=Envelope[StaffOut], status_code=status.HTTP_201_CREATED)
def create_staff(
    payload: StaffCreatePayload,
    access: GroupAccess = Depends(get_admin_access),
    db: Session = Depends(get_db),
):
    require_group_match(access, payload.group_id)
    staff = staff_service.create_staff(db, access.group_id, payload.name, payload.role)
    return ok(staff_service.serialize_staff(staff))


@app.get("/staff/{staff_id}", response_model=Envelope[StaffWithShifts])
def get_staff(
    staff_id: str,
    access: GroupAccess = Depends(get_current_access),
    db: Session = Depends(get_db),
):
    staff = staff_service.get_staff_in_group(db, staff_id, access.group_id)
    out = staff_service.serialize_staff(staff)
    return ok(StaffWithShifts(**out.model_dump(), shifts=shift_service.get_staff_shifts(db, staff.id)))


@app.put("/staff/{staff_id}", response_model=Envelope[StaffOut])
def rename_staff(
    staff_id: str,
    payload: StaffRenamePayload,
    access: GroupAccess = Depends(get_admin_access),
    db: Session = Depends(get_db),
):
    staff = staff_service.get_staff_in_group(db, staff_id, access.group_id)
    return ok(staff_service.serialize_staff(staff_service.rename_staff(db, staff, payload.name)))


@app.delete("/staff/{staff_id}", response_model=Envelope[StaffOut])
def delete_staff(
    staff_id: str,
    access: GroupAccess = Depends(get_admin_access),
    db: Session = Depends(get_db),
    cache: ConfirmationCache = Depends(get_confirmation_cache),
):
    staff = staff_service.get_staff_in_group(db, staff_id, access.group_id)
    out = staff_service.serialize_staff(staff)
    staff_service.delete_staff(db, staff)
    cache.invalidate(out.id)
    return ok(out)


@app.get("/shifts", response_model=Envelope[list[str]])
def list_window_dates(
    start_date: str | None = Query(default=None, alias="startDate"),
    days: int | None = None,
    access: GroupAccess = Depends(get_current_access),
    db: Session = Depends(get_db),
):
    return ok(resolve_dates(db, access, start_date, days))


@app.get("/shifts/table", response_model=Envelope[ShiftTable])
def shift_table(
    start_date: str | None = Query(default=None, alias="startDate"),
    days: int | None = None,
    access: GroupAccess = Depends(get_current_access),
    db: Session = Depends(get_db),
):
    dates = resolve_dates(db, access, start_date, days)
    return ok(shift_service.group_shift_table(db, access.group_id, dates))


@app.post("/shifts/cleanup", response_model=Envelope[CleanupSummary])
def cleanup_shifts(_: GroupAccess = Depends(get_admin_access), db: Session = Depends(get_db)):
    return ok(shift_service.cleanup_old_shifts(db))


@app.get("/shifts/staff/{staff_id}", response_model=Envelope[dict[str, ShiftInfo]])
def get_staff_shifts(
    staff_id: str,
    access: GroupAccess = Depends(get_current_access),
    db: Session = Depends(get_db),
):
    staff = staff_service.get_staff_in_group(db, staff_id, access.group_id)
    return ok(shift_service.get_staff_shifts(db, staff.id))


@app.post("/shifts/staff/{staff_id}/bulk", response_model=Envelope[BulkResult])
def bulk_update_shifts(
    staff_id: str,
    payload: BulkPayload,
    access: GroupAccess = Depends(get_current_access),
    db: Session = Depends(get_db),
):
    staff = staff_service.get_staff_in_group(db, staff_id, access.group_id)
    if not payload.confirm:
        raise ValidationError("Bulk updates must be confirmed")
    dates = payload.dates if payload.dates is not None else shift_service.window_dates(db, access.group_id)
    result = bulk_set(db, staff.id, dates, payload.working)
    return ok(result)


@app.post("/shifts/staff/{staff_id}/confirm", response_model=Envelope[Confirmation])
def confirm_shifts(
    staff_id: str,
    access: GroupAccess = Depends(get_current_access),
    db: Session = Depends(get_db),
    cache: ConfirmationCache = Depends(get_confirmation_cache),
):
    staff = staff_service.get_staff_in_group(db, staff_id, access.group_id)
    return ok(Confirmation(is_confirmed=staff_service.confirm(db, staff.id, cache)))


@app.post("/shifts/staff/{staff_id}/unconfirm", response_model=Envelope[Confirmation])
def unconfirm_shifts(
    staff_id: str,
    access: GroupAccess = Depends(get_current_access),
    db: Session = Depends(get_db),
    cache: ConfirmationCache = Depends(get_confirmation_cache),
):
    staff = staff_service.get_staff_in_group(db, staff_id, access.group_id)
    return ok(Confirmation(is_confirmed=staff_service.unconfirm(db, staff.id, cache)))


@app.get("/shifts/staff/{staff_id}/confirmation", response_model=Envelope[Confirmation])
def get_confirmation(
    staff_id: str,
    access: GroupAccess = Depends(get_current_access),
    db: Session = Depends(get_db),
    cache: ConfirmationCache = Depends(get_confirmation_cache),
):
    staff = staff_service.get_staff_in_group(db, staff_id, access.group_id)
    return ok(Confirmation(is_confirmed=staff_service.get_confirmation(db, staff.id, cache)))


@app.get("/shifts/{staff_id}/{shift_date}", response_model=Envelope[ShiftInfo])
def get_shift(
    staff_id: str,
    shift_date: str,
    access: GroupAccess = Depends(get_current_access),
    db: Session = Depends(get_db),
):
    ensure_uuid(staff_id)
    parse_date(shift_date)
    staff = staff_service.get_staff_in_group(db, staff_id, access.group_id)
    return ok(shift_service.get_shift(db, staff.id, shift_date))


@app.put("/shifts/{staff_id}/{shift_date}", response_model=Envelope[ShiftInfo])
def put_shift(
    staff_id: str,
    shift_date: str,
    payload: ShiftInfo,
    access: GroupAccess = Depends(get_current_access),
    db: Session = Depends(get_db),
):
    ensure_uuid(staff_id)
    parse_date(shift_date)
    staff = staff_service.get_staff_in_group(db, staff_id, access.group_id)
    return ok(shift_service.update_shift(db, staff.id, shift_date, payload))


@app.delete("/shifts/{staff_id}/{shift_date}", response_model=Envelope[None])
def delete_shift(
    staff_id: str,
    shift_date: str,
    access: GroupAccess = Depends(get_current_access),
    db: Session = Depends(get_db),
):
    ensure_uuid(staff_id)
    parse_date(shift_date)
    staff = staff_service.get_staff_in_group(db, staff_id, access.group_id)
    shift_service.delete_shift(db, staff.id, shift_date)
    return ok()
