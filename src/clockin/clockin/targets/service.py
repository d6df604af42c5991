from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Mapping, Optional

from ..common.validators import require_non_empty
from ..core.exceptions import MemberNotFoundError
from ..policies.registry import ConfigRegistry
from ..schedules.model import WorkSchedule
from .model import AttendanceTarget, TargetRef
from .repository import TargetRepository

logger = logging.getLogger(__name__)


class TargetService:
    """Registration hooks the host application calls for its own entities.

    Only the attendance fields are managed; stats and sessions are left to
    the attendance services.
    """

    def __init__(self, targets: TargetRepository, configs: ConfigRegistry):
        self._targets = targets
        self._configs = configs

    def get(self, ref: TargetRef) -> AttendanceTarget:
        target = self._targets.get(ref)
        if target is None:
            raise MemberNotFoundError(f"Target {ref} not found", context={"target": str(ref)})
        return target

    def upsert(
        self,
        ref: TargetRef,
        *,
        attendance_enabled: Optional[bool] = None,
        work_schedule: Optional[Mapping[str, Any]] = None,
        profile: Optional[Mapping[str, Any]] = None,
    ) -> AttendanceTarget:
        require_non_empty(ref.tenant_id, "tenant_id")
        require_non_empty(ref.target_model, "target_model")
        require_non_empty(ref.target_id, "target_id")
        self._configs.ensure_allowed(ref.target_model)

        schedule = WorkSchedule.from_dict(work_schedule) if work_schedule is not None else None
        existing = self._targets.get(ref)
        if existing is None:
            target = AttendanceTarget(
                tenant_id=ref.tenant_id,
                target_model=ref.target_model,
                target_id=ref.target_id,
                attendance_enabled=True if attendance_enabled is None else bool(attendance_enabled),
                work_schedule=schedule,
                profile=dict(profile or {}),
            )
            self._targets.save(target)
            logger.info("Registered attendance target %s", ref)
            return target

        def apply(current: AttendanceTarget) -> AttendanceTarget:
            changes: dict[str, Any] = {}
            if attendance_enabled is not None:
                changes["attendance_enabled"] = bool(attendance_enabled)
            if schedule is not None:
                changes["work_schedule"] = schedule
            if profile is not None:
                changes["profile"] = {**current.profile, **profile}
            return replace(current, **changes)

        return self._targets.update_if(ref, apply)
