from __future__ import annotations

from datetime import datetime
from typing import Optional

from ...core.enums import AttendanceType
from ...core.exceptions import UnconfiguredScheduleError
from ...policies.model import TargetModelConfig
from .base import DetectionDecision, DetectionStrategy, resolve_half_day


class ScheduleAwareStrategy(DetectionStrategy):
    """Hours worked as a share of the hours the target was scheduled for."""

    def classify(
        self,
        *,
        check_in: datetime,
        check_out: datetime,
        hours: float,
        config: TargetModelConfig,
        scheduled_hours: Optional[float],
    ) -> DetectionDecision:
        rules = config.detection.rules
        base = scheduled_hours or rules.fallback.standard_hours
        if not base:
            raise UnconfiguredScheduleError(
                f"No schedule or fallback standard hours for {config.target_model}",
                context={"target_model": config.target_model},
            )

        ratio = hours / base
        thresholds = rules.thresholds
        if ratio >= thresholds.overtime:
            return DetectionDecision(AttendanceType.OVERTIME)
        if ratio >= thresholds.full_day:
            return DetectionDecision(AttendanceType.FULL_DAY)
        if ratio >= (thresholds.half_day or 0.0):
            return DetectionDecision(resolve_half_day(check_in, check_out, config.detection.time_hints))
        return DetectionDecision(AttendanceType.UNPAID_LEAVE)
