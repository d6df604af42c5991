from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping, Optional


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(v) for v in value]
    return value


class DomainError(Exception):
    """Base exception for business rule violations."""


class ClockInError(DomainError):
    """Domain error carrying a machine-readable code and an HTTP-style status."""

    code = "CLOCKIN_ERROR"
    status = 500

    def __init__(self, message: str, *, context: Optional[Mapping[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = dict(context or {})

    def to_dict(self) -> dict:
        return {
            "success": False,
            "error": {
                "code": self.code,
                "message": self.message,
                "status": self.status,
                "context": _jsonable(self.context),
            },
        }


class ValidationError(ClockInError):
    """Raised when input data is invalid or violates domain rules."""

    code = "VALIDATION_ERROR"
    status = 400


class DuplicateCheckInError(ClockInError):
    """Repeat check-in inside the duplicate-prevention window or while a session is open."""

    code = "DUPLICATE_CHECK_IN"
    status = 429

    def __init__(
        self,
        message: str = "Already checked in",
        *,
        last_check_in: Optional[datetime] = None,
        next_allowed_time: Optional[datetime] = None,
        context: Optional[Mapping[str, Any]] = None,
    ):
        ctx = dict(context or {})
        ctx.update(last_check_in=last_check_in, next_allowed_time=next_allowed_time)
        super().__init__(message, context=ctx)
        self.last_check_in = last_check_in
        self.next_allowed_time = next_allowed_time


class AttendanceNotEnabledError(ClockInError):
    code = "ATTENDANCE_NOT_ENABLED"
    status = 403


class MemberNotFoundError(ClockInError):
    code = "MEMBER_NOT_FOUND"
    status = 404


class NoActiveSessionError(ClockInError):
    code = "NO_ACTIVE_SESSION"
    status = 404


class AlreadyCheckedOutError(ClockInError):
    code = "ALREADY_CHECKED_OUT"
    status = 409


class InvalidSessionError(ClockInError):
    """Non-positive duration, or a session rejected by the detection policy."""

    code = "INVALID_SESSION"
    status = 422


class UnconfiguredScheduleError(ClockInError):
    code = "UNCONFIGURED_SCHEDULE"
    status = 422


class TargetModelNotAllowedError(ClockInError):
    code = "TARGET_MODEL_NOT_ALLOWED"
    status = 400


class NotInitializedError(ClockInError):
    code = "NOT_INITIALIZED"
    status = 500
