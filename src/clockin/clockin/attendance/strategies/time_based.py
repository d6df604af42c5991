from __future__ import annotations

from datetime import datetime
from typing import Optional

from ...core.enums import AttendanceType
from ...core.exceptions import InvalidSessionError
from ...policies.model import TargetModelConfig
from .base import DetectionDecision, DetectionStrategy, resolve_half_day


class TimeBasedStrategy(DetectionStrategy):
    """Absolute hours on site: overtime, full day, half day, then below minimum."""

    def classify(
        self,
        *,
        check_in: datetime,
        check_out: datetime,
        hours: float,
        config: TargetModelConfig,
        scheduled_hours: Optional[float],
    ) -> DetectionDecision:
        thresholds = config.detection.rules.thresholds
        minimal = thresholds.minimal or 0.0

        if hours >= thresholds.overtime:
            return DetectionDecision(AttendanceType.OVERTIME)
        if hours >= thresholds.full_day:
            return DetectionDecision(AttendanceType.FULL_DAY)
        if hours >= minimal:
            return DetectionDecision(resolve_half_day(check_in, check_out, config.detection.time_hints))

        if config.validation.warn_only:
            return DetectionDecision(AttendanceType.HALF_DAY_MORNING, flagged=True, note="below_minimum")
        raise InvalidSessionError(
            "Session is shorter than the minimal threshold",
            context={"hours": round(hours, 4), "minimal": minimal, "reason": "below_minimum"},
        )
