from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from ...core.constants import DEFAULT_HALF_DAY_CUTOFF_HOUR
from ...core.enums import AttendanceType
from ...policies.model import TargetModelConfig, TimeHints


@dataclass(frozen=True)
class DetectionDecision:
    attendance_type: AttendanceType
    flagged: bool = False
    note: Optional[str] = None


class DetectionStrategy(ABC):
    """Strategy Pattern: encapsulate how a finished session is classified."""

    @abstractmethod
    def classify(
        self,
        *,
        check_in: datetime,
        check_out: datetime,
        hours: float,
        config: TargetModelConfig,
        scheduled_hours: Optional[float],
    ) -> DetectionDecision:
        raise NotImplementedError


def resolve_half_day(check_in: datetime, check_out: datetime, hints: Optional[TimeHints]) -> AttendanceType:
    """Pick the morning or afternoon side of a half day.

    A session that hits both hints goes to the side holding the larger share
    of its time, split at ``morning_cutoff``; an exact tie stays in the
    morning. A session that hits neither is an afternoon half day.
    """

    cutoff = hints.morning_cutoff if hints else DEFAULT_HALF_DAY_CUTOFF_HOUR
    afternoon_start = hints.afternoon_start if hints else DEFAULT_HALF_DAY_CUTOFF_HOUR

    morning = check_in.hour < cutoff
    afternoon = check_out.hour >= afternoon_start

    if morning and afternoon:
        boundary = check_in.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(hours=cutoff)
        before = min(check_out, boundary) - check_in
        after = check_out - max(check_in, boundary)
        return AttendanceType.HALF_DAY_AFTERNOON if after > before else AttendanceType.HALF_DAY_MORNING
    if morning:
        return AttendanceType.HALF_DAY_MORNING
    return AttendanceType.HALF_DAY_AFTERNOON
