from __future__ import annotations

import bisect
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Mapping, Optional

from ..common.datetime_utils import parse_iso_datetime
from ..core.enums import (
    COUNTED_STATUSES,
    AttendanceStatus,
    AttendanceType,
    CheckInMethod,
    TimeSlot,
    empty_time_slot_distribution,
    time_slot_for_hour,
)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _dt(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return parse_iso_datetime(str(value))


@dataclass(frozen=True)
class Actor:
    """Who recorded or changed an entry (staff user, device, system job)."""

    actor_id: str
    name: Optional[str] = None
    role: Optional[str] = None

    def to_dict(self) -> dict:
        return {"actor_id": self.actor_id, "name": self.name, "role": self.role}

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> Optional["Actor"]:
        if not data:
            return None
        return cls(actor_id=str(data["actor_id"]), name=data.get("name"), role=data.get("role"))


SYSTEM_ACTOR = Actor(actor_id="system", name="auto-checkout", role="system")


@dataclass(frozen=True)
class CorrectionEntry:
    """Audit trail item attached to an entry by a correction."""

    field_name: str
    previous_value: Any
    new_value: Any
    corrected_at: datetime
    reason: Optional[str] = None
    actor: Optional[Actor] = None

    def to_dict(self) -> dict:
        return {
            "field": self.field_name,
            "previous_value": self.previous_value,
            "new_value": self.new_value,
            "corrected_at": _iso(self.corrected_at),
            "reason": self.reason,
            "actor": self.actor.to_dict() if self.actor else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CorrectionEntry":
        return cls(
            field_name=data["field"],
            previous_value=data.get("previous_value"),
            new_value=data.get("new_value"),
            corrected_at=_dt(data["corrected_at"]),
            reason=data.get("reason"),
            actor=Actor.from_dict(data.get("actor")),
        )


@dataclass
class CheckInEntry:
    """One visit embedded in a monthly aggregate."""

    id: str
    timestamp: datetime
    method: CheckInMethod = CheckInMethod.MANUAL
    status: AttendanceStatus = AttendanceStatus.VALID
    attendance_type: Optional[AttendanceType] = None
    check_out_at: Optional[datetime] = None
    expected_check_out_at: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    auto_checked_out: bool = False
    type_locked: bool = False
    flagged: bool = False
    recorded_by: Optional[Actor] = None
    checked_out_by: Optional[Actor] = None
    notes: Optional[str] = None
    location: Optional[dict] = None
    device: Optional[str] = None
    corrections: list[CorrectionEntry] = field(default_factory=list)

    @classmethod
    def new(cls, *, timestamp: datetime, **kwargs: Any) -> "CheckInEntry":
        return cls(id=uuid.uuid4().hex, timestamp=timestamp, **kwargs)

    @property
    def time_slot(self) -> TimeSlot:
        return time_slot_for_hour(self.timestamp.hour)

    @property
    def day(self) -> date:
        return self.timestamp.date()

    @property
    def is_open(self) -> bool:
        # Locked entries without a check-out are retroactive leave days, not sessions.
        return self.check_out_at is None and not self.type_locked and self.status != AttendanceStatus.INVALID

    @property
    def is_final(self) -> bool:
        return self.check_out_at is not None or self.type_locked

    @property
    def is_counted(self) -> bool:
        return self.status in COUNTED_STATUSES

    def add_correction(self, correction: CorrectionEntry) -> None:
        self.corrections.append(correction)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": _iso(self.timestamp),
            "method": self.method.value,
            "status": self.status.value,
            "time_slot": self.time_slot.value,
            "attendance_type": self.attendance_type.value if self.attendance_type else None,
            "check_out_at": _iso(self.check_out_at),
            "expected_check_out_at": _iso(self.expected_check_out_at),
            "duration_minutes": self.duration_minutes,
            "auto_checked_out": self.auto_checked_out,
            "type_locked": self.type_locked,
            "flagged": self.flagged,
            "recorded_by": self.recorded_by.to_dict() if self.recorded_by else None,
            "checked_out_by": self.checked_out_by.to_dict() if self.checked_out_by else None,
            "notes": self.notes,
            "location": self.location,
            "device": self.device,
            "corrections": [c.to_dict() for c in self.corrections],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CheckInEntry":
        return cls(
            id=str(data["id"]),
            timestamp=_dt(data["timestamp"]),
            method=CheckInMethod(data.get("method", CheckInMethod.MANUAL.value)),
            status=AttendanceStatus(data.get("status", AttendanceStatus.VALID.value)),
            attendance_type=AttendanceType(data["attendance_type"]) if data.get("attendance_type") else None,
            check_out_at=_dt(data.get("check_out_at")),
            expected_check_out_at=_dt(data.get("expected_check_out_at")),
            duration_minutes=data.get("duration_minutes"),
            auto_checked_out=bool(data.get("auto_checked_out", False)),
            type_locked=bool(data.get("type_locked", False)),
            flagged=bool(data.get("flagged", False)),
            recorded_by=Actor.from_dict(data.get("recorded_by")),
            checked_out_by=Actor.from_dict(data.get("checked_out_by")),
            notes=data.get("notes"),
            location=data.get("location"),
            device=data.get("device"),
            corrections=[CorrectionEntry.from_dict(c) for c in data.get("corrections") or []],
        )


@dataclass(frozen=True)
class AggregateKey:
    """Identity of one monthly aggregate."""

    tenant_id: str
    target_model: str
    target_id: str
    year: int
    month: int

    @classmethod
    def for_timestamp(cls, tenant_id: str, target_model: str, target_id: str, timestamp: datetime) -> "AggregateKey":
        return cls(tenant_id, target_model, target_id, timestamp.year, timestamp.month)

    def contains(self, timestamp: datetime) -> bool:
        return (timestamp.year, timestamp.month) == (self.year, self.month)

    def __str__(self) -> str:
        return f"{self.tenant_id}/{self.target_model}/{self.target_id}/{self.year:04d}-{self.month:02d}"


@dataclass
class MonthlyAttendanceRecord:
    """Aggregate root: every check-in of one target in one calendar month.

    All counters are derived from ``check_ins`` by the engine's recompute
    step and are never edited directly.
    """

    tenant_id: str
    target_model: str
    target_id: str
    year: int
    month: int
    check_ins: list[CheckInEntry] = field(default_factory=list)
    monthly_total: int = 0
    unique_days_visited: int = 0
    visited_days: list[str] = field(default_factory=list)
    time_slot_distribution: dict[str, int] = field(default_factory=empty_time_slot_distribution)
    full_days_count: int = 0
    half_days_count: int = 0
    paid_leave_days_count: int = 0
    unpaid_leave_days_count: int = 0
    overtime_days_count: int = 0
    total_work_days: float = 0.0
    first_visit_at: Optional[datetime] = None
    last_visit_at: Optional[datetime] = None
    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def empty(cls, key: AggregateKey, *, now: Optional[datetime] = None) -> "MonthlyAttendanceRecord":
        return cls(key.tenant_id, key.target_model, key.target_id, key.year, key.month, created_at=now, updated_at=now)

    @property
    def key(self) -> AggregateKey:
        return AggregateKey(self.tenant_id, self.target_model, self.target_id, self.year, self.month)

    def find(self, check_in_id: str) -> Optional[CheckInEntry]:
        for entry in self.check_ins:
            if entry.id == check_in_id:
                return entry
        return None

    def open_entry(self) -> Optional[CheckInEntry]:
        for entry in reversed(self.check_ins):
            if entry.is_open:
                return entry
        return None

    def insert(self, entry: CheckInEntry) -> None:
        stamps = [e.timestamp for e in self.check_ins]
        self.check_ins.insert(bisect.bisect_right(stamps, entry.timestamp), entry)

    def resort(self) -> None:
        self.check_ins.sort(key=lambda e: e.timestamp)

    def worked_minutes(self) -> int:
        return sum(e.duration_minutes or 0 for e in self.check_ins if e.is_counted)

    def to_dict(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "target_model": self.target_model,
            "target_id": self.target_id,
            "year": self.year,
            "month": self.month,
            "check_ins": [e.to_dict() for e in self.check_ins],
            "monthly_total": self.monthly_total,
            "unique_days_visited": self.unique_days_visited,
            "visited_days": list(self.visited_days),
            "time_slot_distribution": dict(self.time_slot_distribution),
            "full_days_count": self.full_days_count,
            "half_days_count": self.half_days_count,
            "paid_leave_days_count": self.paid_leave_days_count,
            "unpaid_leave_days_count": self.unpaid_leave_days_count,
            "overtime_days_count": self.overtime_days_count,
            "total_work_days": self.total_work_days,
            "first_visit_at": _iso(self.first_visit_at),
            "last_visit_at": _iso(self.last_visit_at),
            "version": self.version,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MonthlyAttendanceRecord":
        distribution = empty_time_slot_distribution()
        distribution.update({str(k): int(v) for k, v in (data.get("time_slot_distribution") or {}).items()})
        return cls(
            tenant_id=str(data["tenant_id"]),
            target_model=str(data["target_model"]),
            target_id=str(data["target_id"]),
            year=int(data["year"]),
            month=int(data["month"]),
            check_ins=[CheckInEntry.from_dict(e) for e in data.get("check_ins") or []],
            monthly_total=int(data.get("monthly_total", 0)),
            unique_days_visited=int(data.get("unique_days_visited", 0)),
            visited_days=list(data.get("visited_days") or []),
            time_slot_distribution=distribution,
            full_days_count=int(data.get("full_days_count", 0)),
            half_days_count=int(data.get("half_days_count", 0)),
            paid_leave_days_count=int(data.get("paid_leave_days_count", 0)),
            unpaid_leave_days_count=int(data.get("unpaid_leave_days_count", 0)),
            overtime_days_count=int(data.get("overtime_days_count", 0)),
            total_work_days=float(data.get("total_work_days", 0.0)),
            first_visit_at=_dt(data.get("first_visit_at")),
            last_visit_at=_dt(data.get("last_visit_at")),
            version=int(data.get("version", 0)),
            created_at=_dt(data.get("created_at")),
            updated_at=_dt(data.get("updated_at")),
        )
