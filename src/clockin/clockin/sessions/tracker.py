from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Optional

from ..attendance.engine import MonthlyAggregateEngine
from ..attendance.model import SYSTEM_ACTOR, Actor, AggregateKey, CheckInEntry
from ..attendance.validation import ScheduleValidator
from ..common.datetime_utils import now_local
from ..core.constants import DEFAULT_CHECKOUT_BATCH_LIMIT
from ..core.events import AttendanceEvent, EventOutbox, EventType
from ..core.exceptions import (
    AlreadyCheckedOutError,
    AttendanceNotEnabledError,
    ClockInError,
    DuplicateCheckInError,
    MemberNotFoundError,
    NoActiveSessionError,
    ValidationError,
)
from ..policies.model import TargetModelConfig
from ..policies.registry import ConfigRegistry
from ..schedules.calculator import expected_checkout, scheduled_hours
from ..stats.service import StatsService
from ..targets.model import AttendanceTarget, CurrentSession, TargetRef
from ..targets.repository import TargetRepository
from .model import (
    CheckInData,
    CheckInOutcome,
    CheckOutOutcome,
    CheckoutExpiredResult,
    OccupancySnapshot,
    ToggleOutcome,
)

logger = logging.getLogger(__name__)


class SessionTracker:
    """idle/active state machine of a target.

    The open session is claimed on the target with one atomic conditional
    write before the entry is appended to the monthly aggregate, so two
    concurrent check-ins cannot both succeed. Check-in, check-out and toggle
    share the same guards.
    """

    def __init__(
        self,
        *,
        targets: TargetRepository,
        engine: MonthlyAggregateEngine,
        configs: ConfigRegistry,
        stats: StatsService,
        outbox: EventOutbox,
        validator: Optional[ScheduleValidator] = None,
    ):
        self._targets = targets
        self._engine = engine
        self._configs = configs
        self._stats = stats
        self._outbox = outbox
        self._validator = validator or ScheduleValidator()

    # ----- transitions -----

    def check_in(
        self,
        ref: TargetRef,
        data: Optional[CheckInData] = None,
        *,
        now: Optional[datetime] = None,
        actor: Optional[Actor] = None,
    ) -> CheckInOutcome:
        now = now or now_local()
        data = data or CheckInData()
        timestamp = data.timestamp or now

        self._configs.ensure_allowed(ref.target_model)
        config = self._configs.get(ref.target_model)
        target = self._require_target(ref)
        if not target.attendance_enabled:
            self._publish_failed(ref, AttendanceNotEnabledError.code, now)
            raise AttendanceNotEnabledError(f"Attendance is disabled for {ref}", context={"target": str(ref)})

        warnings = self._validator.validate(timestamp, config, target.work_schedule)
        entry = CheckInEntry.new(
            timestamp=timestamp,
            method=data.method,
            attendance_type=config.detection.rules.default_type,
            expected_check_out_at=expected_checkout(
                timestamp, auto_checkout=config.auto_checkout, schedule=target.work_schedule
            ),
            recorded_by=actor,
            notes=data.notes,
            location=data.location,
            device=data.device,
        )

        try:
            target = self._targets.update_if(ref, lambda t: self._claim(t, entry, config))
        except DuplicateCheckInError as exc:
            self._publish_failed(ref, exc.code, now, next_allowed_time=exc.next_allowed_time)
            raise

        key = AggregateKey.for_timestamp(ref.tenant_id, ref.target_model, ref.target_id, timestamp)
        try:
            record = self._engine.append_check_in(key, entry, config, now=now)
        except Exception:
            self._release(ref, entry.id)
            raise

        stats = self._stats.apply_check_in(ref, record, entry, now=now)
        logger.info("Check-in %s for %s via %s", entry.id, ref, entry.method.value)
        self._publish(
            EventType.CHECK_IN_RECORDED,
            target,
            now,
            stats=stats.to_dict(),
            check_in_id=entry.id,
            method=entry.method.value,
            time_slot=entry.time_slot.value,
            expected_check_out_at=entry.expected_check_out_at,
        )
        return CheckInOutcome(
            entry=record.find(entry.id) or entry,
            record=record,
            session=target.current_session,
            stats=stats,
            warnings=tuple(warnings),
        )

    def check_out(
        self,
        ref: TargetRef,
        check_in_id: Optional[str],
        *,
        now: Optional[datetime] = None,
        check_out_at: Optional[datetime] = None,
        auto: bool = False,
        actor: Optional[Actor] = None,
    ) -> CheckOutOutcome:
        if not check_in_id:
            raise ValidationError("check_in_id is required to check out", context={"target": str(ref)})
        now = now or now_local()
        check_out_at = check_out_at or now

        config = self._configs.get(ref.target_model)
        target = self._require_target(ref)
        key = self._engine.repository.find_key_for_check_in(ref.tenant_id, ref.target_model, ref.target_id, check_in_id)
        if key is None:
            raise NoActiveSessionError("No open check-in with this id", context={"check_in_id": check_in_id})

        try:
            record = self._engine.apply_check_out(
                key,
                check_in_id,
                check_out_at,
                config,
                scheduled_hours=scheduled_hours(target.work_schedule),
                auto=auto,
                actor=SYSTEM_ACTOR if auto and actor is None else actor,
                now=now,
            )
        except AlreadyCheckedOutError:
            # A session left pointing at a closed entry is released so it cannot block check-ins.
            self._release(ref, check_in_id)
            raise

        self._release(ref, check_in_id)
        stats = self._stats.recalculate_target(ref, now=now)
        entry = record.find(check_in_id)
        logger.info(
            "Check-out %s for %s (%s, %s min%s)",
            check_in_id,
            ref,
            entry.attendance_type.value if entry.attendance_type else "-",
            entry.duration_minutes,
            ", auto" if auto else "",
        )

        payload = dict(
            check_in_id=check_in_id,
            attendance_type=entry.attendance_type.value if entry.attendance_type else None,
            duration_minutes=entry.duration_minutes,
            auto_checked_out=auto,
        )
        self._publish(EventType.CHECK_OUT_RECORDED, target, now, stats=stats.to_dict(), **payload)
        if auto:
            self._publish(EventType.SESSION_EXPIRED, target, now, stats=stats.to_dict(), **payload)
        return CheckOutOutcome(entry=entry, record=record, stats=stats)

    def toggle(
        self,
        ref: TargetRef,
        data: Optional[CheckInData] = None,
        *,
        now: Optional[datetime] = None,
        actor: Optional[Actor] = None,
    ) -> ToggleOutcome:
        """Kiosk/RFID/QR entry point: check out if a session is open, else check in."""

        session = self.current_session(ref)
        if session is not None:
            return ToggleOutcome("check_out", self.check_out(ref, session.check_in_id, now=now, actor=actor))
        return ToggleOutcome("check_in", self.check_in(ref, data, now=now, actor=actor))

    # ----- reads -----

    def current_session(self, ref: TargetRef) -> Optional[CurrentSession]:
        """The open session, or None when the target is idle."""

        session = self._require_target(ref).current_session
        return session if session.is_active else None

    def occupancy(
        self,
        tenant_id: str,
        *,
        target_model: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> OccupancySnapshot:
        active = self._targets.list_active_sessions(tenant_id, target_model=target_model)
        by_model: dict[str, int] = {}
        sessions = []
        for target in active:
            by_model[target.target_model] = by_model.get(target.target_model, 0) + 1
            sessions.append(
                {
                    "target_model": target.target_model,
                    "target_id": target.target_id,
                    "name": target.name,
                    **target.current_session.to_dict(),
                }
            )
        return OccupancySnapshot(total=len(active), by_model=by_model, sessions=sessions, timestamp=now or now_local())

    # ----- batch -----

    def checkout_expired(
        self,
        tenant_id: str,
        *,
        target_model: Optional[str] = None,
        before: Optional[datetime] = None,
        limit: int = DEFAULT_CHECKOUT_BATCH_LIMIT,
        dry_run: bool = False,
        now: Optional[datetime] = None,
    ) -> CheckoutExpiredResult:
        """Close sessions whose expected check-out is earlier than ``before``.

        Each target is checked out on its own; one failure is recorded and
        the sweep continues. Sessions already closed are no longer active,
        so re-running over the same window finds nothing new. With
        ``dry_run`` the expired sessions are only counted.
        """

        if int(limit) <= 0:
            raise ValidationError("limit must be positive", context={"limit": limit})
        now = now or now_local()
        before = before or now

        expired = self._targets.list_active_sessions(
            tenant_id, target_model=target_model, expired_before=before, limit=int(limit)
        )
        result = CheckoutExpiredResult(total=len(expired), dry_run=dry_run)
        for target in expired:
            bucket = result.by_model.setdefault(target.target_model, {"found": 0, "cleaned": 0})
            bucket["found"] += 1
            if dry_run:
                continue
            session = target.current_session
            try:
                self.check_out(
                    target.ref,
                    session.check_in_id,
                    now=now,
                    check_out_at=session.expected_check_out_at,
                    auto=True,
                )
            except Exception as exc:
                logger.exception("Auto-checkout failed for %s", target.ref)
                result.failed += 1
                result.errors.append(
                    {
                        "target_model": target.target_model,
                        "target_id": target.target_id,
                        "check_in_id": session.check_in_id,
                        "code": exc.code if isinstance(exc, ClockInError) else type(exc).__name__,
                        "message": str(exc),
                    }
                )
            else:
                result.processed += 1
                bucket["cleaned"] += 1

        logger.info(
            "Auto-checkout for %s%s: %d found, %d closed, %d failed",
            tenant_id,
            " (dry run)" if dry_run else "",
            result.total,
            result.processed,
            result.failed,
        )
        return result

    # ----- helpers -----

    def _require_target(self, ref: TargetRef) -> AttendanceTarget:
        target = self._targets.get(ref)
        if target is None:
            raise MemberNotFoundError(f"Target {ref} not found", context={"target": str(ref)})
        return target

    @staticmethod
    def _claim(target: AttendanceTarget, entry: CheckInEntry, config: TargetModelConfig) -> AttendanceTarget:
        if not target.attendance_enabled:
            raise AttendanceNotEnabledError(f"Attendance is disabled for {target.ref}")

        session = target.current_session
        window = timedelta(minutes=config.duplicate_prevention_minutes)
        candidates = [
            t
            for t in (
                session.check_in_time,
                target.attendance_stats.last_visited_at if target.attendance_stats else None,
            )
            if t is not None
        ]
        latest = max(candidates) if candidates else None
        if latest is not None and timedelta(0) <= entry.timestamp - latest < window:
            raise DuplicateCheckInError(
                f"Checked in less than {config.duplicate_prevention_minutes} minutes ago",
                last_check_in=latest,
                next_allowed_time=latest + window,
                context={"target": str(target.ref)},
            )
        if session.is_active:
            raise DuplicateCheckInError(
                "A session is already open; check out first",
                last_check_in=session.check_in_time,
                next_allowed_time=session.expected_check_out_at,
                context={"target": str(target.ref), "check_in_id": session.check_in_id},
            )

        return replace(
            target,
            current_session=CurrentSession.start(
                check_in_id=entry.id,
                check_in_time=entry.timestamp,
                method=entry.method,
                expected_check_out_at=entry.expected_check_out_at,
            ),
        )

    def _release(self, ref: TargetRef, check_in_id: str) -> None:
        def release(target: AttendanceTarget) -> AttendanceTarget:
            if target.current_session.check_in_id != check_in_id:
                return target
            return replace(target, current_session=CurrentSession.idle())

        self._targets.update_if(ref, release)

    def _publish(self, event_type: EventType, target: AttendanceTarget, now: datetime, *, stats=None, **payload) -> None:
        payload.setdefault("name", target.name)
        self._outbox.publish(
            AttendanceEvent(
                type=event_type,
                tenant_id=target.tenant_id,
                target_model=target.target_model,
                target_id=target.target_id,
                timestamp=now,
                payload=payload,
                stats=stats,
            )
        )

    def _publish_failed(self, ref: TargetRef, code: str, now: datetime, **payload) -> None:
        self._outbox.publish(
            AttendanceEvent(
                type=EventType.CHECK_IN_FAILED,
                tenant_id=ref.tenant_id,
                target_model=ref.target_model,
                target_id=ref.target_id,
                timestamp=now,
                payload={"code": code, **payload},
            )
        )
