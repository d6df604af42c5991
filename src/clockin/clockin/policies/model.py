from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from ..core.constants import DEFAULT_DUPLICATE_PREVENTION_MINUTES, DEFAULT_MAX_CHECK_INS_PER_MONTH
from ..core.enums import AttendanceType, DetectionType
from ..core.exceptions import ValidationError


@dataclass(frozen=True)
class TimeHints:
    """Hour boundaries used to tell a morning half day from an afternoon one."""

    morning_cutoff: int = 12
    afternoon_start: int = 12


@dataclass(frozen=True)
class ScheduleFallback:
    standard_hours: Optional[float] = None


@dataclass(frozen=True)
class DetectionThresholds:
    """Time-based policies read hours; schedule-aware policies read ratios of scheduled hours."""

    overtime: float
    full_day: float
    half_day: Optional[float] = None
    minimal: Optional[float] = None


@dataclass(frozen=True)
class DetectionRules:
    thresholds: DetectionThresholds
    default_type: AttendanceType = AttendanceType.FULL_DAY
    fallback: ScheduleFallback = field(default_factory=ScheduleFallback)


@dataclass(frozen=True)
class DetectionPolicy:
    type: DetectionType
    rules: DetectionRules
    time_hints: Optional[TimeHints] = None


@dataclass(frozen=True)
class AutoCheckoutPolicy:
    enabled: bool = True
    after_hours: float = 6.0
    max_session: float = 12.0


@dataclass(frozen=True)
class ValidationPolicy:
    enforce_schedule: bool = False
    allow_weekends: bool = True
    grace_period: float = 1.0
    warn_only: bool = True


@dataclass(frozen=True)
class TargetModelConfig:
    target_model: str
    detection: DetectionPolicy
    auto_checkout: AutoCheckoutPolicy = field(default_factory=AutoCheckoutPolicy)
    validation: ValidationPolicy = field(default_factory=ValidationPolicy)
    duplicate_prevention_minutes: int = DEFAULT_DUPLICATE_PREVENTION_MINUTES
    max_check_ins_per_month: int = DEFAULT_MAX_CHECK_INS_PER_MONTH
    count_unpaid_leave_as_visit: bool = True

    def to_dict(self) -> dict:
        hints = self.detection.time_hints
        thresholds = self.detection.rules.thresholds
        return {
            "detection": {
                "type": self.detection.type.value,
                "rules": {
                    "thresholds": {
                        "overtime": thresholds.overtime,
                        "full_day": thresholds.full_day,
                        "half_day": thresholds.half_day,
                        "minimal": thresholds.minimal,
                    },
                    "default_type": self.detection.rules.default_type.value,
                    "fallback": {"standard_hours": self.detection.rules.fallback.standard_hours},
                },
                "time_hints": (
                    {"morning_cutoff": hints.morning_cutoff, "afternoon_start": hints.afternoon_start} if hints else None
                ),
            },
            "auto_checkout": {
                "enabled": self.auto_checkout.enabled,
                "after_hours": self.auto_checkout.after_hours,
                "max_session": self.auto_checkout.max_session,
            },
            "validation": {
                "enforce_schedule": self.validation.enforce_schedule,
                "allow_weekends": self.validation.allow_weekends,
                "grace_period": self.validation.grace_period,
                "warn_only": self.validation.warn_only,
            },
            "duplicate_prevention_minutes": self.duplicate_prevention_minutes,
            "max_check_ins_per_month": self.max_check_ins_per_month,
            "count_unpaid_leave_as_visit": self.count_unpaid_leave_as_visit,
        }

    @classmethod
    def from_dict(cls, target_model: str, data: Mapping[str, Any]) -> "TargetModelConfig":
        try:
            detection = data["detection"]
            rules = detection["rules"]
            thresholds = rules["thresholds"]
            hints = detection.get("time_hints")
            fallback = rules.get("fallback") or {}
            auto = data.get("auto_checkout") or {}
            validation = data.get("validation") or {}

            config = cls(
                target_model=target_model,
                detection=DetectionPolicy(
                    type=DetectionType(detection["type"]),
                    rules=DetectionRules(
                        thresholds=DetectionThresholds(
                            overtime=float(thresholds["overtime"]),
                            full_day=float(thresholds["full_day"]),
                            half_day=_optional_float(thresholds.get("half_day")),
                            minimal=_optional_float(thresholds.get("minimal")),
                        ),
                        default_type=AttendanceType(rules.get("default_type", AttendanceType.FULL_DAY.value)),
                        fallback=ScheduleFallback(standard_hours=_optional_float(fallback.get("standard_hours"))),
                    ),
                    time_hints=(
                        TimeHints(
                            morning_cutoff=int(hints.get("morning_cutoff", 12)),
                            afternoon_start=int(hints.get("afternoon_start", 12)),
                        )
                        if hints
                        else None
                    ),
                ),
                auto_checkout=AutoCheckoutPolicy(
                    enabled=bool(auto.get("enabled", True)),
                    after_hours=float(auto.get("after_hours", 6.0)),
                    max_session=float(auto.get("max_session", 12.0)),
                ),
                validation=ValidationPolicy(
                    enforce_schedule=bool(validation.get("enforce_schedule", False)),
                    allow_weekends=bool(validation.get("allow_weekends", True)),
                    grace_period=float(validation.get("grace_period", 1.0)),
                    warn_only=bool(validation.get("warn_only", True)),
                ),
                duplicate_prevention_minutes=int(
                    data.get("duplicate_prevention_minutes", DEFAULT_DUPLICATE_PREVENTION_MINUTES)
                ),
                max_check_ins_per_month=int(data.get("max_check_ins_per_month", DEFAULT_MAX_CHECK_INS_PER_MONTH)),
                count_unpaid_leave_as_visit=bool(data.get("count_unpaid_leave_as_visit", True)),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValidationError(
                f"Invalid attendance configuration for {target_model}",
                context={"target_model": target_model, "reason": str(exc)},
            ) from exc

        config.check()
        return config

    def check(self) -> None:
        t = self.detection.rules.thresholds
        if self.detection.type == DetectionType.TIME_BASED and t.minimal is None:
            raise ValidationError("Time-based detection needs a minimal threshold", context={"target_model": self.target_model})
        if self.detection.type == DetectionType.SCHEDULE_AWARE and t.half_day is None:
            raise ValidationError("Schedule-aware detection needs a half_day threshold", context={"target_model": self.target_model})
        if t.full_day > t.overtime:
            raise ValidationError("full_day threshold must not exceed overtime", context={"target_model": self.target_model})
        if self.auto_checkout.after_hours <= 0 or self.auto_checkout.max_session <= 0:
            raise ValidationError("Auto-checkout hours must be positive", context={"target_model": self.target_model})
        if self.duplicate_prevention_minutes < 0 or self.max_check_ins_per_month <= 0:
            raise ValidationError("Check-in limits must be positive", context={"target_model": self.target_model})


def _optional_float(value: Any) -> Optional[float]:
    return None if value is None else float(value)
