from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from ..common.datetime_utils import now_local
from ..core.enums import AttendanceStatus, AttendanceType, calculate_work_days, empty_time_slot_distribution
from ..core.exceptions import (
    AlreadyCheckedOutError,
    DuplicateCheckInError,
    NoActiveSessionError,
    ValidationError,
)
from ..policies.model import TargetModelConfig
from ..schedules.calculator import expected_checkout
from ..schedules.model import WorkSchedule
from .detector import AttendanceTypeDetector
from .model import Actor, AggregateKey, CheckInEntry, CorrectionEntry, MonthlyAttendanceRecord
from .repository import AttendanceRepository

logger = logging.getLogger(__name__)


class MonthlyAggregateEngine:
    """Owns every mutation of a monthly aggregate.

    Each public method is one atomic ``update_if`` call on the repository and
    ends with :meth:`recompute`, so the derived counters always match the
    entry list. Domain errors raised inside the mutator abort the write.
    """

    def __init__(self, repository: AttendanceRepository, *, detector: Optional[AttendanceTypeDetector] = None):
        self._repo = repository
        self._detector = detector or AttendanceTypeDetector()

    @property
    def repository(self) -> AttendanceRepository:
        return self._repo

    @property
    def detector(self) -> AttendanceTypeDetector:
        return self._detector

    # ----- check-in / check-out -----

    def append_check_in(
        self,
        key: AggregateKey,
        entry: CheckInEntry,
        config: TargetModelConfig,
        *,
        now: Optional[datetime] = None,
    ) -> MonthlyAttendanceRecord:
        self._require_month(key, entry.timestamp)
        now = now or now_local()
        self._repo.find_or_create(key, now=now)

        def mutate(record: MonthlyAttendanceRecord) -> None:
            if record.find(entry.id) is not None:
                raise ValidationError("Check-in id already recorded", context={"check_in_id": entry.id})
            open_entry = record.open_entry()
            if entry.is_open and open_entry is not None:
                raise DuplicateCheckInError(
                    "An open check-in already exists for this month",
                    last_check_in=open_entry.timestamp,
                    next_allowed_time=open_entry.expected_check_out_at,
                    context={"check_in_id": open_entry.id},
                )
            if len(record.check_ins) >= config.max_check_ins_per_month:
                raise ValidationError(
                    "Monthly check-in limit reached",
                    context={"limit": config.max_check_ins_per_month, "aggregate": str(key)},
                )
            record.insert(entry)
            self.recompute(record, config, now=now)

        return self._repo.update_if(key, mutate)

    def apply_check_out(
        self,
        key: AggregateKey,
        check_in_id: str,
        check_out_at: datetime,
        config: TargetModelConfig,
        *,
        scheduled_hours: Optional[float] = None,
        auto: bool = False,
        actor: Optional[Actor] = None,
        now: Optional[datetime] = None,
    ) -> MonthlyAttendanceRecord:
        now = now or now_local()

        def mutate(record: MonthlyAttendanceRecord) -> None:
            entry = record.find(check_in_id)
            if entry is None or entry.status == AttendanceStatus.INVALID:
                raise NoActiveSessionError("No open check-in with this id", context={"check_in_id": check_in_id})
            if entry.check_out_at is not None:
                raise AlreadyCheckedOutError(
                    "Check-in already closed",
                    context={"check_in_id": check_in_id, "check_out_at": entry.check_out_at},
                )
            self._close(entry, check_out_at, config, scheduled_hours=scheduled_hours)
            entry.auto_checked_out = auto
            entry.checked_out_by = actor
            self.recompute(record, config, now=now)

        return self._repo.update_if(key, mutate)

    # ----- corrections -----

    def update_check_in_time(
        self,
        key: AggregateKey,
        check_in_id: str,
        new_time: datetime,
        config: TargetModelConfig,
        *,
        reason: Optional[str] = None,
        actor: Optional[Actor] = None,
        scheduled_hours: Optional[float] = None,
        schedule: Optional[WorkSchedule] = None,
        now: Optional[datetime] = None,
    ) -> MonthlyAttendanceRecord:
        """Move the check-in of an entry; an open entry gets a new auto-checkout deadline."""

        self._require_month(key, new_time)
        now = now or now_local()
        self._require_not_future(new_time, now, "check_in_at")

        def mutate(record: MonthlyAttendanceRecord) -> None:
            entry = self._require_entry(record, check_in_id)
            previous = entry.timestamp
            entry.timestamp = new_time
            if entry.check_out_at is not None:
                self._close(entry, entry.check_out_at, config, scheduled_hours=scheduled_hours)
            elif entry.is_open:
                entry.expected_check_out_at = expected_checkout(
                    new_time, auto_checkout=config.auto_checkout, schedule=schedule
                )
            self._mark_corrected(entry, "timestamp", previous, new_time, reason=reason, actor=actor, now=now)
            record.resort()
            self.recompute(record, config, now=now)

        return self._repo.update_if(key, mutate)

    def update_check_out_time(
        self,
        key: AggregateKey,
        check_in_id: str,
        new_time: datetime,
        config: TargetModelConfig,
        *,
        reason: Optional[str] = None,
        actor: Optional[Actor] = None,
        scheduled_hours: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> MonthlyAttendanceRecord:
        """Set or move the check-out of an entry; an open entry gets closed."""

        now = now or now_local()
        self._require_not_future(new_time, now, "check_out_at")

        def mutate(record: MonthlyAttendanceRecord) -> None:
            entry = self._require_entry(record, check_in_id)
            previous = entry.check_out_at
            self._close(entry, new_time, config, scheduled_hours=scheduled_hours)
            entry.checked_out_by = actor or entry.checked_out_by
            self._mark_corrected(entry, "check_out_at", previous, new_time, reason=reason, actor=actor, now=now)
            self.recompute(record, config, now=now)

        return self._repo.update_if(key, mutate)

    def override_attendance_type(
        self,
        key: AggregateKey,
        check_in_id: str,
        attendance_type: AttendanceType,
        config: TargetModelConfig,
        *,
        reason: Optional[str] = None,
        actor: Optional[Actor] = None,
        now: Optional[datetime] = None,
    ) -> MonthlyAttendanceRecord:
        """Pin the type of a closed entry. The status is left as it was."""

        now = now or now_local()

        def mutate(record: MonthlyAttendanceRecord) -> None:
            entry = self._require_entry(record, check_in_id)
            if entry.is_open:
                raise ValidationError(
                    "Check out before overriding the attendance type", context={"check_in_id": check_in_id}
                )
            previous = entry.attendance_type
            entry.attendance_type = attendance_type
            entry.type_locked = True
            entry.add_correction(
                CorrectionEntry(
                    field_name="attendance_type",
                    previous_value=previous.value if previous else None,
                    new_value=attendance_type.value,
                    corrected_at=now,
                    reason=reason,
                    actor=actor,
                )
            )
            self.recompute(record, config, now=now)

        return self._repo.update_if(key, mutate)

    def delete_check_in(
        self,
        key: AggregateKey,
        check_in_id: str,
        config: TargetModelConfig,
        *,
        reason: Optional[str] = None,
        actor: Optional[Actor] = None,
        now: Optional[datetime] = None,
    ) -> MonthlyAttendanceRecord:
        """Soft delete: the entry stays in the list with status ``invalid``."""

        now = now or now_local()

        def mutate(record: MonthlyAttendanceRecord) -> None:
            entry = self._require_entry(record, check_in_id)
            previous = entry.status
            entry.status = AttendanceStatus.INVALID
            entry.add_correction(
                CorrectionEntry(
                    field_name="status",
                    previous_value=previous.value,
                    new_value=AttendanceStatus.INVALID.value,
                    corrected_at=now,
                    reason=reason,
                    actor=actor,
                )
            )
            self.recompute(record, config, now=now)

        return self._repo.update_if(key, mutate)

    def add_retroactive_attendance(
        self,
        key: AggregateKey,
        entry: CheckInEntry,
        config: TargetModelConfig,
        *,
        reason: Optional[str] = None,
        actor: Optional[Actor] = None,
        scheduled_hours: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> MonthlyAttendanceRecord:
        """Insert a missed visit (with check-out) or a leave day (with an explicit type)."""

        self._require_month(key, entry.timestamp)
        if entry.check_out_at is None and entry.attendance_type is None:
            raise ValidationError("A retroactive entry needs a check-out time or an attendance type")
        now = now or now_local()
        self._require_not_future(entry.timestamp, now, "check_in_at")
        if entry.check_out_at is not None:
            self._require_not_future(entry.check_out_at, now, "check_out_at")

        if entry.attendance_type is not None:
            entry.type_locked = True
        if entry.check_out_at is not None:
            self._close(entry, entry.check_out_at, config, scheduled_hours=scheduled_hours)
        entry.status = AttendanceStatus.CORRECTED
        entry.recorded_by = actor or entry.recorded_by
        entry.add_correction(
            CorrectionEntry(
                field_name="entry",
                previous_value=None,
                new_value="added",
                corrected_at=now,
                reason=reason,
                actor=actor,
            )
        )
        self._repo.find_or_create(key, now=now)

        def mutate(record: MonthlyAttendanceRecord) -> None:
            if record.find(entry.id) is not None:
                raise ValidationError("Check-in id already recorded", context={"check_in_id": entry.id})
            if len(record.check_ins) >= config.max_check_ins_per_month:
                raise ValidationError("Monthly check-in limit reached", context={"limit": config.max_check_ins_per_month})
            record.insert(entry)
            self.recompute(record, config, now=now)

        return self._repo.update_if(key, mutate)

    # ----- derived fields -----

    def recompute(self, record: MonthlyAttendanceRecord, config: TargetModelConfig, *, now: Optional[datetime] = None) -> None:
        """Full rescan of ``record.check_ins``; every derived field is rebuilt."""

        visits = [e for e in record.check_ins if self._counts_as_visit(e, config)]

        record.monthly_total = len(visits)
        record.visited_days = sorted({e.day.isoformat() for e in visits})
        record.unique_days_visited = len(record.visited_days)

        distribution = empty_time_slot_distribution()
        for e in visits:
            distribution[e.time_slot.value] += 1
        record.time_slot_distribution = distribution

        record.first_visit_at = min((e.timestamp for e in visits), default=None)
        record.last_visit_at = max((e.timestamp for e in visits), default=None)

        counts = {t: 0 for t in AttendanceType}
        for e in record.check_ins:
            if e.is_counted and e.is_final and e.attendance_type is not None:
                counts[e.attendance_type] += 1

        record.full_days_count = counts[AttendanceType.FULL_DAY]
        record.half_days_count = counts[AttendanceType.HALF_DAY_MORNING] + counts[AttendanceType.HALF_DAY_AFTERNOON]
        record.paid_leave_days_count = counts[AttendanceType.PAID_LEAVE]
        record.unpaid_leave_days_count = counts[AttendanceType.UNPAID_LEAVE]
        record.overtime_days_count = counts[AttendanceType.OVERTIME]
        record.total_work_days = calculate_work_days(
            record.full_days_count, record.half_days_count, record.paid_leave_days_count
        )
        record.updated_at = now or now_local()

    # ----- helpers -----

    def _close(
        self,
        entry: CheckInEntry,
        check_out_at: datetime,
        config: TargetModelConfig,
        *,
        scheduled_hours: Optional[float],
    ) -> None:
        result = self._detector.detect(entry.timestamp, check_out_at, config, scheduled_hours=scheduled_hours)
        entry.check_out_at = check_out_at
        entry.duration_minutes = result.duration_minutes
        entry.flagged = result.flagged
        if not entry.type_locked:
            entry.attendance_type = result.attendance_type
        if result.flagged:
            logger.warning("Check-in %s below the minimal session length (%s min)", entry.id, result.duration_minutes)

    @staticmethod
    def _counts_as_visit(entry: CheckInEntry, config: TargetModelConfig) -> bool:
        if not entry.is_counted:
            return False
        if (
            not config.count_unpaid_leave_as_visit
            and entry.is_final
            and entry.attendance_type == AttendanceType.UNPAID_LEAVE
        ):
            return False
        return True

    @staticmethod
    def _require_entry(record: MonthlyAttendanceRecord, check_in_id: str) -> CheckInEntry:
        entry = record.find(check_in_id)
        if entry is None or entry.status == AttendanceStatus.INVALID:
            raise NoActiveSessionError("Check-in not found", context={"check_in_id": check_in_id})
        return entry

    @staticmethod
    def _require_month(key: AggregateKey, timestamp: datetime) -> None:
        if not key.contains(timestamp):
            raise ValidationError(
                "Timestamp falls outside the aggregate month",
                context={"aggregate": str(key), "timestamp": timestamp},
            )

    @staticmethod
    def _require_not_future(timestamp: datetime, now: datetime, field_name: str) -> None:
        if timestamp > now:
            raise ValidationError(
                "Cannot record attendance in the future",
                context={"field": field_name, "timestamp": timestamp, "now": now},
            )

    @staticmethod
    def _mark_corrected(
        entry: CheckInEntry,
        field_name: str,
        previous: Optional[datetime],
        new_value: datetime,
        *,
        reason: Optional[str],
        actor: Optional[Actor],
        now: datetime,
    ) -> None:
        entry.status = AttendanceStatus.CORRECTED
        entry.add_correction(
            CorrectionEntry(
                field_name=field_name,
                previous_value=previous.isoformat() if previous else None,
                new_value=new_value.isoformat(),
                corrected_at=now,
                reason=reason,
                actor=actor,
            )
        )
