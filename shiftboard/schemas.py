from __future__ import annotations

from datetime import date, datetime
from typing import Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from shiftboard.validators import TIME_PATTERN

T = TypeVar("T")

StaffRole = Literal["staff", "manager"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ShiftInfo(CamelModel):
    """One staff member's state for one date. ``is_working`` is the only polarity."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    is_working: bool
    start_time: str | None = None
    end_time: str | None = None
    is_all_day: bool = False
    note: str = ""

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def validate_time(cls, value):
        if value is None or value == "":
            return None
        if not isinstance(value, str) or not TIME_PATTERN.match(value):
            raise ValueError("time must be HH:MM")
        return value

    @field_validator("note", mode="before")
    @classmethod
    def normalize_note(cls, value):
        return "" if value is None else value

    @model_validator(mode="after")
    def validate_range(self) -> ShiftInfo:
        if self.start_time and self.end_time and self.end_time <= self.start_time:
            raise ValueError("endTime must be after startTime")
        return self


class DateRange(CamelModel):
    start_date: date
    days: int


class CoverageCount(BaseModel):
    lunch: int = 0
    dinner: int = 0


class StaffOut(CamelModel):
    id: str
    name: str
    group_id: str
    role: StaffRole
    is_shift_confirmed: bool
    created_at: datetime


class StaffWithShifts(StaffOut):
    shifts: dict[str, ShiftInfo] = Field(default_factory=dict)


class ShiftTable(CamelModel):
    dates: list[str]
    staff: list[StaffWithShifts]
    coverage: dict[str, CoverageCount]


class GroupAccess(CamelModel):
    group_id: str
    group_name: str
    is_admin: bool
    access_key: str
    admin_key: str | None = None


class GroupCreated(CamelModel):
    id: str
    name: str
    access_key: str
    admin_key: str
    created_at: datetime


class PastWindow(CamelModel):
    start_date: date
    days: int
    archived_at: datetime


class CleanupSummary(CamelModel):
    deleted: int
    cutoff: date


class BulkResult(CamelModel):
    applied: int
    failed: list[str] = Field(default_factory=list)
    verified: bool
    attempts: int
    success: bool
    message: str | None = None


class Confirmation(CamelModel):
    is_confirmed: bool


class Envelope(BaseModel, Generic[T]):
    success: bool
    data: T | None = None
    error: str | None = None
