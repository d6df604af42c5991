from __future__ import annotations

from datetime import date, datetime, time

import pytest

from src.clockin.clockin.core.exceptions import ValidationError
from src.clockin.clockin.policies.model import AutoCheckoutPolicy
from src.clockin.clockin.schedules.calculator import expected_checkout, is_working_day, scheduled_hours
from src.clockin.clockin.schedules.model import WorkSchedule


def test_scheduled_hours_order():
    assert scheduled_hours(None) is None
    assert scheduled_hours(WorkSchedule(hours_per_day=7.5, hours_per_week=40)) == 7.5
    assert scheduled_hours(WorkSchedule(hours_per_week=30, working_days=(0, 1, 2))) == 10
    assert scheduled_hours(WorkSchedule(shift_start=time(22, 0), shift_end=time(6, 0))) == 8
    assert scheduled_hours(WorkSchedule()) is None


def test_working_days_default_to_weekdays():
    assert is_working_day(date(2025, 3, 7), None)
    assert not is_working_day(date(2025, 3, 8), None)
    assert is_working_day(date(2025, 3, 8), WorkSchedule(working_days=(5, 6)))


def test_expected_checkout_uses_shift_end_on_working_days():
    schedule = WorkSchedule(shift_start=time(9, 0), shift_end=time(17, 0))
    policy = AutoCheckoutPolicy(after_hours=9, max_session=12)

    assert expected_checkout(datetime(2025, 3, 3, 9, 5), auto_checkout=policy, schedule=schedule) == datetime(2025, 3, 3, 17, 0)
    # Saturday: not a working day, falls back to after_hours
    assert expected_checkout(datetime(2025, 3, 8, 9, 0), auto_checkout=policy, schedule=schedule) == datetime(2025, 3, 8, 18, 0)


def test_expected_checkout_is_capped_by_max_session():
    policy = AutoCheckoutPolicy(after_hours=20, max_session=12)
    assert expected_checkout(datetime(2025, 3, 3, 6, 0), auto_checkout=policy) == datetime(2025, 3, 3, 18, 0)


def test_expected_checkout_disabled():
    assert expected_checkout(datetime(2025, 3, 3, 6, 0), auto_checkout=AutoCheckoutPolicy(enabled=False)) is None


def test_work_schedule_from_dict():
    schedule = WorkSchedule.from_dict({"hours_per_week": 40, "working_days": [4, 0, 0], "shift_start": "08:30"})

    assert schedule.working_days == (0, 4)
    assert schedule.shift_start == time(8, 30)
    assert WorkSchedule.from_dict(schedule.to_dict()) == schedule


@pytest.mark.parametrize(
    "data",
    [{"hours_per_day": -1}, {"working_days": [7]}, {"shift_start": "nine"}],
)
def test_work_schedule_rejects_bad_input(data):
    with pytest.raises(ValidationError):
        WorkSchedule.from_dict(data)
