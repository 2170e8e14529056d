from __future__ import annotations

import re
import uuid
from datetime import date

from shiftboard.errors import ValidationError

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def ensure_uuid(value: str, field: str = "staffId") -> str:
    try:
        parsed = uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        raise ValidationError(f"Invalid {field}: expected a UUID") from None
    # uuid.UUID also accepts braces and urn prefixes; only the canonical form is a valid identifier.
    if str(parsed) != str(value).lower():
        raise ValidationError(f"Invalid {field}: expected a UUID")
    return str(parsed)


def parse_date(value: str | date, field: str = "date") -> date:
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not DATE_PATTERN.match(value):
        raise ValidationError(f"Invalid {field}: expected YYYY-MM-DD")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Invalid {field}: {value} is not a calendar date") from None


def parse_time(value: str | None, field: str = "time") -> str | None:
    if value is None or value == "":
        return None
    if not isinstance(value, str) or not TIME_PATTERN.match(value):
        raise ValidationError(f"Invalid {field}: expected HH:MM")
    return value


def ensure_name(value: str | None, field: str = "name") -> str:
    name = (value or "").strip()
    if not name:
        raise ValidationError(f"{field.capitalize()} is required")
    if len(name) > 255:
        raise ValidationError(f"{field.capitalize()} must be at most 255 characters")
    return name
