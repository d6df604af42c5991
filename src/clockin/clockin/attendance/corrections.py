from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Optional

from ..common.datetime_utils import now_local
from ..core.enums import AttendanceType, CheckInMethod
from ..core.exceptions import MemberNotFoundError, NoActiveSessionError
from ..policies.registry import ConfigRegistry
from ..schedules.calculator import scheduled_hours
from ..stats.service import StatsService
from ..targets.model import AttendanceTarget, CurrentSession, TargetRef
from ..targets.repository import TargetRepository
from .engine import MonthlyAggregateEngine
from .model import Actor, AggregateKey, CheckInEntry, MonthlyAttendanceRecord

logger = logging.getLogger(__name__)


class CorrectionService:
    """Admin corrections of recorded attendance.

    Every correction goes through the aggregate engine (so counters are
    rebuilt), keeps the target's open session in step with the entry, and
    rebuilds the target's stats from history.
    """

    def __init__(
        self,
        *,
        engine: MonthlyAggregateEngine,
        targets: TargetRepository,
        configs: ConfigRegistry,
        stats: StatsService,
    ):
        self._engine = engine
        self._targets = targets
        self._configs = configs
        self._stats = stats

    def update_check_in_time(
        self,
        ref: TargetRef,
        check_in_id: str,
        new_time: datetime,
        *,
        reason: Optional[str] = None,
        actor: Optional[Actor] = None,
        now: Optional[datetime] = None,
    ) -> MonthlyAttendanceRecord:
        target, key = self._locate(ref, check_in_id)
        record = self._engine.update_check_in_time(
            key,
            check_in_id,
            new_time,
            self._configs.get(ref.target_model),
            reason=reason,
            actor=actor,
            scheduled_hours=scheduled_hours(target.work_schedule),
            schedule=target.work_schedule,
            now=now,
        )
        self._sync_session(ref, record, check_in_id)
        return self._finish(ref, record, "update_check_in_time", check_in_id, now)

    def update_check_out_time(
        self,
        ref: TargetRef,
        check_in_id: str,
        new_time: datetime,
        *,
        reason: Optional[str] = None,
        actor: Optional[Actor] = None,
        now: Optional[datetime] = None,
    ) -> MonthlyAttendanceRecord:
        target, key = self._locate(ref, check_in_id)
        record = self._engine.update_check_out_time(
            key,
            check_in_id,
            new_time,
            self._configs.get(ref.target_model),
            reason=reason,
            actor=actor,
            scheduled_hours=scheduled_hours(target.work_schedule),
            now=now,
        )
        self._sync_session(ref, record, check_in_id)
        return self._finish(ref, record, "update_check_out_time", check_in_id, now)

    def override_attendance_type(
        self,
        ref: TargetRef,
        check_in_id: str,
        attendance_type: AttendanceType,
        *,
        reason: Optional[str] = None,
        actor: Optional[Actor] = None,
        now: Optional[datetime] = None,
    ) -> MonthlyAttendanceRecord:
        _, key = self._locate(ref, check_in_id)
        record = self._engine.override_attendance_type(
            key,
            check_in_id,
            attendance_type,
            self._configs.get(ref.target_model),
            reason=reason,
            actor=actor,
            now=now,
        )
        return self._finish(ref, record, "override_attendance_type", check_in_id, now)

    def delete_check_in(
        self,
        ref: TargetRef,
        check_in_id: str,
        *,
        reason: Optional[str] = None,
        actor: Optional[Actor] = None,
        now: Optional[datetime] = None,
    ) -> MonthlyAttendanceRecord:
        _, key = self._locate(ref, check_in_id)
        record = self._engine.delete_check_in(
            key,
            check_in_id,
            self._configs.get(ref.target_model),
            reason=reason,
            actor=actor,
            now=now,
        )
        self._sync_session(ref, record, check_in_id)
        return self._finish(ref, record, "delete_check_in", check_in_id, now)

    def add_retroactive_attendance(
        self,
        ref: TargetRef,
        *,
        check_in_at: datetime,
        check_out_at: Optional[datetime] = None,
        attendance_type: Optional[AttendanceType] = None,
        method: CheckInMethod = CheckInMethod.MANUAL,
        notes: Optional[str] = None,
        reason: Optional[str] = None,
        actor: Optional[Actor] = None,
        now: Optional[datetime] = None,
    ) -> MonthlyAttendanceRecord:
        target = self._require_target(ref)
        entry = CheckInEntry.new(
            timestamp=check_in_at,
            check_out_at=check_out_at,
            attendance_type=attendance_type,
            method=method,
            notes=notes,
        )
        key = AggregateKey.for_timestamp(ref.tenant_id, ref.target_model, ref.target_id, check_in_at)
        record = self._engine.add_retroactive_attendance(
            key,
            entry,
            self._configs.get(ref.target_model),
            reason=reason,
            actor=actor,
            scheduled_hours=scheduled_hours(target.work_schedule),
            now=now,
        )
        return self._finish(ref, record, "add_retroactive_attendance", entry.id, now)

    # ----- helpers -----

    def _require_target(self, ref: TargetRef) -> AttendanceTarget:
        target = self._targets.get(ref)
        if target is None:
            raise MemberNotFoundError(f"Target {ref} not found", context={"target": str(ref)})
        return target

    def _locate(self, ref: TargetRef, check_in_id: str) -> tuple[AttendanceTarget, AggregateKey]:
        target = self._require_target(ref)
        key = self._engine.repository.find_key_for_check_in(ref.tenant_id, ref.target_model, ref.target_id, check_in_id)
        if key is None:
            raise NoActiveSessionError("Check-in not found", context={"check_in_id": check_in_id})
        return target, key

    def _sync_session(self, ref: TargetRef, record: MonthlyAttendanceRecord, check_in_id: str) -> None:
        """Release or refresh the open session when the corrected entry backs it."""

        entry = record.find(check_in_id)

        def sync(target: AttendanceTarget) -> AttendanceTarget:
            session = target.current_session
            if session.check_in_id != check_in_id:
                return target
            if entry is None or not entry.is_open:
                return replace(target, current_session=CurrentSession.idle())
            return replace(
                target,
                current_session=CurrentSession.start(
                    check_in_id=entry.id,
                    check_in_time=entry.timestamp,
                    method=entry.method,
                    expected_check_out_at=entry.expected_check_out_at,
                ),
            )

        self._targets.update_if(ref, sync)

    def _finish(
        self,
        ref: TargetRef,
        record: MonthlyAttendanceRecord,
        action: str,
        check_in_id: str,
        now: Optional[datetime],
    ) -> MonthlyAttendanceRecord:
        logger.info("Correction %s on %s (check-in %s)", action, ref, check_in_id)
        self._stats.recalculate_target(ref, now=now or now_local())
        return record
