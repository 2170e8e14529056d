from __future__ import annotations

from fastapi import status


class ShiftboardError(Exception):
    """Base class for errors that map onto an envelope response."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ShiftboardError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid input"


class AuthorizationError(ShiftboardError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Group access required"


class AdminRequiredError(AuthorizationError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Admin access required"


class NotFoundError(ShiftboardError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Record not found"


class ConflictError(ShiftboardError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "The record was modified concurrently"


class StoreError(ShiftboardError):
    """Backing-store failure. The message shown to callers is always generic."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "The data store is unavailable, please try again"

    def __init__(self, action: str | None = None) -> None:
        self.action = action
        super().__init__(self.default_message)
