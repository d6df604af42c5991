from __future__ import annotations

from enum import Enum


class CheckInMethod(str, Enum):
    """How a check-in was captured."""

    MANUAL = "manual"
    QR_CODE = "qr_code"
    RFID = "rfid"
    BIOMETRIC = "biometric"
    MOBILE_APP = "mobile_app"
    API = "api"


class AttendanceStatus(str, Enum):
    """Review status of a single check-in entry."""

    VALID = "valid"
    INVALID = "invalid"
    CORRECTED = "corrected"
    DISPUTED = "disputed"


# Statuses that still represent a real visit.
COUNTED_STATUSES = frozenset({AttendanceStatus.VALID, AttendanceStatus.CORRECTED})


class AttendanceType(str, Enum):
    """Work-day classification of a finished session."""

    FULL_DAY = "full_day"
    HALF_DAY_MORNING = "half_day_morning"
    HALF_DAY_AFTERNOON = "half_day_afternoon"
    PAID_LEAVE = "paid_leave"
    UNPAID_LEAVE = "unpaid_leave"
    OVERTIME = "overtime"

    @property
    def is_half_day(self) -> bool:
        return self in (AttendanceType.HALF_DAY_MORNING, AttendanceType.HALF_DAY_AFTERNOON)


class TimeSlot(str, Enum):
    """Part of the day a check-in falls into (canonical order)."""

    EARLY_MORNING = "early_morning"
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    NIGHT = "night"


TIME_SLOT_ORDER = tuple(TimeSlot)


class EngagementLevel(str, Enum):
    HIGHLY_ACTIVE = "highly_active"
    ACTIVE = "active"
    REGULAR = "regular"
    OCCASIONAL = "occasional"
    INACTIVE = "inactive"
    AT_RISK = "at_risk"
    DORMANT = "dormant"


class DetectionType(str, Enum):
    """Which classification policy a target model uses."""

    TIME_BASED = "time_based"
    SCHEDULE_AWARE = "schedule_aware"


def time_slot_for_hour(hour: int) -> TimeSlot:
    if 5 <= hour < 8:
        return TimeSlot.EARLY_MORNING
    if 8 <= hour < 12:
        return TimeSlot.MORNING
    if 12 <= hour < 17:
        return TimeSlot.AFTERNOON
    if 17 <= hour < 21:
        return TimeSlot.EVENING
    return TimeSlot.NIGHT


def empty_time_slot_distribution() -> dict[str, int]:
    return {slot.value: 0 for slot in TIME_SLOT_ORDER}


def calculate_work_days(full_days: int, half_days: int, paid_leave_days: int) -> float:
    """Payroll work days: full + 0.5 * half + paid leave (overtime days are not added)."""
    return float(full_days) + 0.5 * float(half_days) + float(paid_leave_days)
