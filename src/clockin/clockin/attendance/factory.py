from __future__ import annotations

from dataclasses import dataclass, field

from ..core.enums import DetectionType
from ..policies.model import DetectionPolicy
from .strategies.base import DetectionStrategy
from .strategies.schedule_aware import ScheduleAwareStrategy
from .strategies.time_based import TimeBasedStrategy


@dataclass
class DetectionStrategyFactory:
    """Factory Pattern: choose the classification strategy for a detection policy."""

    strategies: dict[DetectionType, DetectionStrategy] = field(
        default_factory=lambda: {
            DetectionType.TIME_BASED: TimeBasedStrategy(),
            DetectionType.SCHEDULE_AWARE: ScheduleAwareStrategy(),
        }
    )

    def for_policy(self, policy: DetectionPolicy) -> DetectionStrategy:
        return self.strategies[policy.type]
