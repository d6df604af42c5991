from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Iterable, Optional

from ..attendance.model import CheckInEntry, MonthlyAttendanceRecord
from ..attendance.repository import AttendanceRepository
from ..common.datetime_utils import now_local
from ..core.enums import EngagementLevel
from ..core.events import AttendanceEvent, EventOutbox, EventType
from ..targets.model import AttendanceStats, AttendanceTarget, TargetRef
from ..targets.repository import TargetRepository
from .calculator import StatsCalculator
from .engagement import is_visit_milestone
from .streak import is_streak_milestone

logger = logging.getLogger(__name__)


class StatsService:
    def __init__(
        self,
        *,
        targets: TargetRepository,
        attendance: AttendanceRepository,
        outbox: EventOutbox,
        calculator: Optional[StatsCalculator] = None,
    ):
        self._targets = targets
        self._attendance = attendance
        self._outbox = outbox
        self._calculator = calculator or StatsCalculator()

    def apply_check_in(
        self,
        ref: TargetRef,
        record: MonthlyAttendanceRecord,
        entry: CheckInEntry,
        *,
        now: Optional[datetime] = None,
    ) -> AttendanceStats:
        """Incremental update after a check-in, with a full rebuild as fallback."""

        now = now or now_local()
        holder: dict[str, Optional[AttendanceStats]] = {}

        def apply(target: AttendanceTarget) -> AttendanceTarget:
            previous = target.attendance_stats
            stats = self._calculator.apply_check_in(previous, record, entry, now=now)
            if stats is None:
                logger.debug("Full stats rebuild for %s", ref)
                stats = self._calculator.recalculate(self._history(ref), now=now)
            holder["previous"], holder["stats"] = previous, stats
            return replace(target, attendance_stats=stats)

        target = self._targets.update_if(ref, apply)
        self._publish_changes(target, holder["previous"], holder["stats"], now=now)
        return holder["stats"]

    def recalculate_target(self, ref: TargetRef, *, now: Optional[datetime] = None) -> AttendanceStats:
        now = now or now_local()
        stats = self._calculator.recalculate(self._history(ref), now=now)
        holder: dict[str, Optional[AttendanceStats]] = {}

        def apply(target: AttendanceTarget) -> AttendanceTarget:
            holder["previous"] = target.attendance_stats
            return replace(target, attendance_stats=stats)

        target = self._targets.update_if(ref, apply)
        self._publish_changes(target, holder["previous"], stats, now=now)
        return stats

    def recalculate(
        self,
        tenant_id: str,
        *,
        target_model: Optional[str] = None,
        target_ids: Optional[Iterable[str]] = None,
        now: Optional[datetime] = None,
    ) -> dict:
        """Rebuild stats for every (or the listed) target of a tenant."""

        now = now or now_local()
        wanted = set(target_ids) if target_ids is not None else None
        processed = updated = 0
        for target in self._targets.list_for_tenant(tenant_id, target_model=target_model):
            if wanted is not None and target.target_id not in wanted:
                continue
            processed += 1
            before = target.attendance_stats
            after = self.recalculate_target(target.ref, now=now)
            if before is None or replace(before, updated_at=None) != replace(after, updated_at=None):
                updated += 1
        logger.info("Recalculated stats for %d targets of %s (%d changed)", processed, tenant_id, updated)
        return {"processed": processed, "updated": updated}

    def _history(self, ref: TargetRef) -> list[MonthlyAttendanceRecord]:
        return list(self._attendance.list_for_target(ref.tenant_id, ref.target_model, ref.target_id))

    def _publish_changes(
        self,
        target: AttendanceTarget,
        previous: Optional[AttendanceStats],
        stats: AttendanceStats,
        *,
        now: datetime,
    ) -> None:
        snapshot = stats.to_dict()

        def publish(event_type: EventType, **payload) -> None:
            payload.setdefault("name", target.name)
            self._outbox.publish(
                AttendanceEvent(
                    type=event_type,
                    tenant_id=target.tenant_id,
                    target_model=target.target_model,
                    target_id=target.target_id,
                    timestamp=now,
                    payload=payload,
                    stats=snapshot,
                )
            )

        publish(EventType.STATS_UPDATED)

        old_level = previous.engagement_level if previous else None
        if old_level != stats.engagement_level:
            publish(
                EventType.ENGAGEMENT_CHANGED,
                previous_level=old_level.value if old_level else None,
                level=stats.engagement_level.value,
            )
            if stats.engagement_level == EngagementLevel.AT_RISK:
                publish(EventType.MEMBER_AT_RISK, days_since_last_visit=stats.days_since_last_visit)

        old_total = previous.total_visits if previous else 0
        if stats.total_visits > old_total and is_visit_milestone(stats.total_visits):
            publish(EventType.MILESTONE_ACHIEVED, kind="visits", value=stats.total_visits)

        old_streak = previous.current_streak if previous else 0
        if stats.current_streak > old_streak and is_streak_milestone(stats.current_streak):
            publish(EventType.MILESTONE_ACHIEVED, kind="streak", value=stats.current_streak)
