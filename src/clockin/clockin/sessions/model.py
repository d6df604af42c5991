from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Union

from ..attendance.model import CheckInEntry, MonthlyAttendanceRecord
from ..core.enums import CheckInMethod
from ..targets.model import AttendanceStats, CurrentSession


@dataclass(frozen=True)
class CheckInData:
    """What the caller knows about a check-in; the rest is derived."""

    method: CheckInMethod = CheckInMethod.MANUAL
    timestamp: Optional[datetime] = None
    notes: Optional[str] = None
    location: Optional[dict] = None
    device: Optional[str] = None


@dataclass(frozen=True)
class CheckInOutcome:
    entry: CheckInEntry
    record: MonthlyAttendanceRecord
    session: CurrentSession
    stats: AttendanceStats
    warnings: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "action": "check_in",
            "check_in": self.entry.to_dict(),
            "session": self.session.to_dict(),
            "stats": self.stats.to_dict(),
            "monthly_total": self.record.monthly_total,
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class CheckOutOutcome:
    entry: CheckInEntry
    record: MonthlyAttendanceRecord
    stats: AttendanceStats

    def to_dict(self) -> dict:
        return {
            "action": "check_out",
            "check_in": self.entry.to_dict(),
            "stats": self.stats.to_dict(),
            "total_work_days": self.record.total_work_days,
        }


@dataclass(frozen=True)
class ToggleOutcome:
    action: str
    result: Union[CheckInOutcome, CheckOutOutcome]

    def to_dict(self) -> dict:
        return self.result.to_dict()


@dataclass(frozen=True)
class OccupancySnapshot:
    """Point-in-time read; concurrent check-outs may not be reflected."""

    total: int
    by_model: dict[str, int]
    sessions: list[dict]
    timestamp: datetime

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "by_model": dict(self.by_model),
            "sessions": list(self.sessions),
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class CheckoutExpiredResult:
    total: int = 0
    processed: int = 0
    failed: int = 0
    dry_run: bool = False
    by_model: dict[str, dict[str, int]] = field(default_factory=dict)
    errors: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "processed": self.processed,
            "failed": self.failed,
            "dry_run": self.dry_run,
            "by_model": {k: dict(v) for k, v in self.by_model.items()},
            "errors": list(self.errors),
        }
