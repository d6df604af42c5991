from __future__ import annotations

from dataclasses import dataclass
from datetime import time
from typing import Any, Mapping, Optional

from ..common.datetime_utils import format_hhmm, parse_hhmm
from ..core.constants import DEFAULT_WORKING_DAYS
from ..core.exceptions import ValidationError


@dataclass(frozen=True)
class WorkSchedule:
    """Contracted schedule of a target (usually an Employee).

    ``working_days`` uses ``date.weekday()`` numbering (Monday == 0).
    """

    hours_per_day: Optional[float] = None
    hours_per_week: Optional[float] = None
    working_days: tuple[int, ...] = DEFAULT_WORKING_DAYS
    shift_start: Optional[time] = None
    shift_end: Optional[time] = None

    def to_dict(self) -> dict:
        return {
            "hours_per_day": self.hours_per_day,
            "hours_per_week": self.hours_per_week,
            "working_days": list(self.working_days),
            "shift_start": format_hhmm(self.shift_start),
            "shift_end": format_hhmm(self.shift_end),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WorkSchedule":
        try:
            days = data.get("working_days")
            working_days = tuple(sorted({int(d) for d in days})) if days is not None else DEFAULT_WORKING_DAYS
            if any(d < 0 or d > 6 for d in working_days):
                raise ValueError("working_days must be between 0 (Monday) and 6 (Sunday)")
            return cls(
                hours_per_day=_positive_or_none(data.get("hours_per_day")),
                hours_per_week=_positive_or_none(data.get("hours_per_week")),
                working_days=working_days,
                shift_start=parse_hhmm(data["shift_start"]) if data.get("shift_start") else None,
                shift_end=parse_hhmm(data["shift_end"]) if data.get("shift_end") else None,
            )
        except (TypeError, ValueError) as exc:
            raise ValidationError("Invalid work schedule", context={"reason": str(exc)}) from exc


def _positive_or_none(value: Any) -> Optional[float]:
    if value is None:
        return None
    number = float(value)
    if number <= 0:
        raise ValueError("schedule hours must be positive")
    return number
