from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..core.enums import AttendanceType
from ..core.exceptions import InvalidSessionError
from ..policies.model import TargetModelConfig
from .factory import DetectionStrategyFactory


@dataclass(frozen=True)
class DetectionResult:
    attendance_type: AttendanceType
    duration_minutes: Optional[int]
    provisional: bool = False
    flagged: bool = False


class AttendanceTypeDetector:
    """Classify a check-in/check-out pair under a target model's policy.

    Pure: the result depends only on the arguments.
    """

    def __init__(self, *, strategy_factory: Optional[DetectionStrategyFactory] = None):
        self._factory = strategy_factory or DetectionStrategyFactory()

    def detect(
        self,
        check_in: datetime,
        check_out: Optional[datetime],
        config: TargetModelConfig,
        *,
        scheduled_hours: Optional[float] = None,
    ) -> DetectionResult:
        if check_out is None:
            # Placeholder for an open session; replaced at check-out.
            return DetectionResult(config.detection.rules.default_type, None, provisional=True)

        elapsed = (check_out - check_in).total_seconds()
        if elapsed <= 0:
            raise InvalidSessionError(
                "Check-out must be after check-in",
                context={"check_in": check_in, "check_out": check_out},
            )

        strategy = self._factory.for_policy(config.detection)
        decision = strategy.classify(
            check_in=check_in,
            check_out=check_out,
            hours=elapsed / 3600,
            config=config,
            scheduled_hours=scheduled_hours,
        )
        return DetectionResult(decision.attendance_type, int(elapsed // 60), flagged=decision.flagged)
