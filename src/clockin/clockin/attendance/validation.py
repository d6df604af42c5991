from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from ..core.exceptions import ValidationError
from ..policies.model import TargetModelConfig
from ..schedules.calculator import is_working_day
from ..schedules.model import WorkSchedule

logger = logging.getLogger(__name__)


class ScheduleValidator:
    """Weekend and shift-timing checks run before a check-in is accepted.

    With ``warn_only`` the problems come back as warnings; otherwise the
    first one is raised as a ValidationError.
    """

    def validate(
        self,
        check_in: datetime,
        config: TargetModelConfig,
        schedule: Optional[WorkSchedule] = None,
    ) -> list[str]:
        policy = config.validation
        warnings: list[str] = []

        if not policy.allow_weekends and not is_working_day(check_in.date(), schedule):
            warnings.append(f"Check-in on a non-working day ({check_in.strftime('%A')})")

        if policy.enforce_schedule and schedule is not None and schedule.shift_start is not None:
            start = datetime.combine(check_in.date(), schedule.shift_start, tzinfo=check_in.tzinfo)
            grace = timedelta(hours=policy.grace_period)
            if check_in < start - grace:
                warnings.append(f"Check-in more than {policy.grace_period:g}h before shift start")
            elif check_in > start + grace:
                warnings.append(f"Check-in more than {policy.grace_period:g}h after shift start")

        if warnings and not policy.warn_only:
            raise ValidationError(warnings[0], context={"warnings": warnings, "target_model": config.target_model})

        for warning in warnings:
            logger.warning("%s: %s", config.target_model, warning)
        return warnings
