from __future__ import annotations

from datetime import datetime, time

import pytest

from src.clockin.clockin.attendance.validation import ScheduleValidator
from src.clockin.clockin.core.exceptions import ValidationError
from src.clockin.clockin.policies.registry import ConfigRegistry
from src.clockin.clockin.schedules.model import WorkSchedule

SHIFT = WorkSchedule(hours_per_day=8, shift_start=time(9, 0), shift_end=time(17, 0))


def test_on_time_weekday_has_no_warnings():
    config = ConfigRegistry().get("Employee")
    assert ScheduleValidator().validate(datetime(2025, 3, 3, 9, 20), config, SHIFT) == []


def test_weekend_and_late_check_in_warn(caplog):
    config = ConfigRegistry().get("Employee")

    warnings = ScheduleValidator().validate(datetime(2025, 3, 8, 11, 0), config, SHIFT)

    assert len(warnings) == 2
    assert "non-working day" in warnings[0]
    assert "after shift start" in warnings[1]
    assert "non-working day" in caplog.text


def test_early_check_in_warns():
    config = ConfigRegistry().get("Employee")
    warnings = ScheduleValidator().validate(datetime(2025, 3, 3, 7, 30), config, SHIFT)
    assert warnings == ["Check-in more than 1h before shift start"]


def test_strict_policy_raises_first_warning():
    registry = ConfigRegistry(overrides={"Employee": {"validation": {"warn_only": False}}})
    with pytest.raises(ValidationError) as exc:
        ScheduleValidator().validate(datetime(2025, 3, 9, 9, 0), registry.get("Employee"), SHIFT)
    assert "non-working day" in exc.value.message


def test_members_are_not_checked_against_schedules():
    config = ConfigRegistry().get("Member")
    assert ScheduleValidator().validate(datetime(2025, 3, 8, 3, 0), config, SHIFT) == []
