from __future__ import annotations

from ..core.constants import DEFAULT_STANDARD_HOURS, SCHEDULE_AWARE_TARGET_MODELS
from ..core.enums import AttendanceType, DetectionType
from .model import (
    AutoCheckoutPolicy,
    DetectionPolicy,
    DetectionRules,
    DetectionThresholds,
    ScheduleFallback,
    TargetModelConfig,
    TimeHints,
    ValidationPolicy,
)


def generate_default_config(target_model: str) -> TargetModelConfig:
    """Smart defaults derived from the target model name alone.

    Employees are judged against their scheduled hours; every other model
    (members, students, visitors, ...) against absolute hours on site.
    """

    if target_model in SCHEDULE_AWARE_TARGET_MODELS:
        return TargetModelConfig(
            target_model=target_model,
            detection=DetectionPolicy(
                type=DetectionType.SCHEDULE_AWARE,
                rules=DetectionRules(
                    thresholds=DetectionThresholds(overtime=1.1, full_day=0.75, half_day=0.4),
                    default_type=AttendanceType.FULL_DAY,
                    fallback=ScheduleFallback(standard_hours=DEFAULT_STANDARD_HOURS),
                ),
                time_hints=TimeHints(morning_cutoff=12, afternoon_start=11),
            ),
            auto_checkout=AutoCheckoutPolicy(enabled=True, after_hours=9.0, max_session=12.0),
            validation=ValidationPolicy(enforce_schedule=True, allow_weekends=False, grace_period=1.0, warn_only=True),
        )

    return TargetModelConfig(
        target_model=target_model,
        detection=DetectionPolicy(
            type=DetectionType.TIME_BASED,
            rules=DetectionRules(
                thresholds=DetectionThresholds(overtime=10.0, full_day=1.0, minimal=0.5),
                default_type=AttendanceType.FULL_DAY,
            ),
        ),
        auto_checkout=AutoCheckoutPolicy(enabled=True, after_hours=6.0, max_session=12.0),
        validation=ValidationPolicy(enforce_schedule=False, allow_weekends=True, grace_period=1.0, warn_only=True),
    )
