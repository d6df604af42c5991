from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional

from ..common.datetime_utils import parse_iso_datetime
from ..core.enums import CheckInMethod, EngagementLevel, TimeSlot
from ..core.exceptions import ValidationError
from ..schedules.model import WorkSchedule


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _dt(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return parse_iso_datetime(str(value))


@dataclass(frozen=True)
class TargetRef:
    tenant_id: str
    target_model: str
    target_id: str

    def __str__(self) -> str:
        return f"{self.tenant_id}/{self.target_model}/{self.target_id}"


@dataclass(frozen=True)
class CurrentSession:
    """Open-session projection stored on the target.

    Idle sessions carry no data; active ones always know their check-in id,
    time and method. Any other combination is rejected on construction, so
    no write path can persist it.
    """

    is_active: bool = False
    check_in_id: Optional[str] = None
    check_in_time: Optional[datetime] = None
    expected_check_out_at: Optional[datetime] = None
    method: Optional[CheckInMethod] = None

    def __post_init__(self):
        details = (self.check_in_id, self.check_in_time, self.expected_check_out_at, self.method)
        if not self.is_active and any(v is not None for v in details):
            raise ValidationError("Idle session must not carry check-in details")
        if self.is_active and (self.check_in_id is None or self.check_in_time is None or self.method is None):
            raise ValidationError("Active session needs check_in_id, check_in_time and method")

    @classmethod
    def idle(cls) -> "CurrentSession":
        return cls()

    @classmethod
    def start(
        cls,
        *,
        check_in_id: str,
        check_in_time: datetime,
        method: CheckInMethod,
        expected_check_out_at: Optional[datetime] = None,
    ) -> "CurrentSession":
        return cls(
            is_active=True,
            check_in_id=check_in_id,
            check_in_time=check_in_time,
            expected_check_out_at=expected_check_out_at,
            method=method,
        )

    def to_dict(self) -> dict:
        return {
            "is_active": self.is_active,
            "check_in_id": self.check_in_id,
            "check_in_time": _iso(self.check_in_time),
            "expected_check_out_at": _iso(self.expected_check_out_at),
            "method": self.method.value if self.method else None,
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "CurrentSession":
        if not data or not data.get("is_active"):
            return cls.idle()
        return cls.start(
            check_in_id=str(data["check_in_id"]),
            check_in_time=_dt(data["check_in_time"]),
            method=CheckInMethod(data["method"]),
            expected_check_out_at=_dt(data.get("expected_check_out_at")),
        )


@dataclass(frozen=True)
class AttendanceStats:
    total_visits: int = 0
    this_month_visits: int = 0
    last_month_visits: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    monthly_average: float = 0.0
    engagement_level: EngagementLevel = EngagementLevel.DORMANT
    days_since_last_visit: Optional[int] = None
    favorite_time_slot: Optional[TimeSlot] = None
    loyalty_score: int = 0
    last_visited_at: Optional[datetime] = None
    first_visited_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "total_visits": self.total_visits,
            "this_month_visits": self.this_month_visits,
            "last_month_visits": self.last_month_visits,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "monthly_average": self.monthly_average,
            "engagement_level": self.engagement_level.value,
            "days_since_last_visit": self.days_since_last_visit,
            "favorite_time_slot": self.favorite_time_slot.value if self.favorite_time_slot else None,
            "loyalty_score": self.loyalty_score,
            "last_visited_at": _iso(self.last_visited_at),
            "first_visited_at": _iso(self.first_visited_at),
            "updated_at": _iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> Optional["AttendanceStats"]:
        if not data:
            return None
        slot = data.get("favorite_time_slot")
        return cls(
            total_visits=int(data.get("total_visits", 0)),
            this_month_visits=int(data.get("this_month_visits", 0)),
            last_month_visits=int(data.get("last_month_visits", 0)),
            current_streak=int(data.get("current_streak", 0)),
            longest_streak=int(data.get("longest_streak", 0)),
            monthly_average=float(data.get("monthly_average", 0.0)),
            engagement_level=EngagementLevel(data.get("engagement_level", EngagementLevel.DORMANT.value)),
            days_since_last_visit=data.get("days_since_last_visit"),
            favorite_time_slot=TimeSlot(slot) if slot else None,
            loyalty_score=int(data.get("loyalty_score", 0)),
            last_visited_at=_dt(data.get("last_visited_at")),
            first_visited_at=_dt(data.get("first_visited_at")),
            updated_at=_dt(data.get("updated_at")),
        )


@dataclass(frozen=True)
class AttendanceTarget:
    """The slice of a host entity this package reads and writes.

    ``profile`` is opaque host data; only ``name`` is read, for event payloads.
    """

    tenant_id: str
    target_model: str
    target_id: str
    attendance_enabled: bool = True
    attendance_stats: Optional[AttendanceStats] = None
    current_session: CurrentSession = field(default_factory=CurrentSession.idle)
    work_schedule: Optional[WorkSchedule] = None
    profile: Mapping[str, Any] = field(default_factory=dict)

    @property
    def ref(self) -> TargetRef:
        return TargetRef(self.tenant_id, self.target_model, self.target_id)

    @property
    def name(self) -> Optional[str]:
        value = self.profile.get("name")
        return str(value) if value is not None else None

    def to_dict(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "target_model": self.target_model,
            "target_id": self.target_id,
            "attendance_enabled": self.attendance_enabled,
            "attendance_stats": self.attendance_stats.to_dict() if self.attendance_stats else None,
            "current_session": self.current_session.to_dict(),
            "work_schedule": self.work_schedule.to_dict() if self.work_schedule else None,
            "profile": dict(self.profile),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AttendanceTarget":
        schedule = data.get("work_schedule")
        return cls(
            tenant_id=str(data["tenant_id"]),
            target_model=str(data["target_model"]),
            target_id=str(data["target_id"]),
            attendance_enabled=bool(data.get("attendance_enabled", True)),
            attendance_stats=AttendanceStats.from_dict(data.get("attendance_stats")),
            current_session=CurrentSession.from_dict(data.get("current_session")),
            work_schedule=WorkSchedule.from_dict(schedule) if schedule else None,
            profile=dict(data.get("profile") or {}),
        )
