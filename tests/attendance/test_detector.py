from __future__ import annotations

from dataclasses import replace
from datetime import datetime

import pytest

from src.clockin.clockin.attendance.detector import AttendanceTypeDetector
from src.clockin.clockin.attendance.strategies.base import resolve_half_day
from src.clockin.clockin.core.enums import AttendanceType
from src.clockin.clockin.core.exceptions import InvalidSessionError, UnconfiguredScheduleError
from src.clockin.clockin.policies.model import ScheduleFallback, TimeHints
from src.clockin.clockin.policies.registry import ConfigRegistry


def _at(hour: int, minute: int = 0) -> datetime:
    return datetime(2025, 3, 3, hour, minute)


@pytest.fixture
def detector():
    return AttendanceTypeDetector()


def test_time_based_nine_hours_is_full_day(detector):
    result = detector.detect(_at(9), _at(18), ConfigRegistry().get("Member"))

    assert result.attendance_type == AttendanceType.FULL_DAY
    assert result.duration_minutes == 540
    assert not result.provisional


def test_schedule_aware_half_of_schedule_is_morning_half_day(detector):
    result = detector.detect(_at(9), _at(13), ConfigRegistry().get("Employee"), scheduled_hours=8)

    assert result.attendance_type == AttendanceType.HALF_DAY_MORNING
    assert result.duration_minutes == 240


def test_detect_is_deterministic(detector):
    config = ConfigRegistry().get("Employee")
    first = detector.detect(_at(8), _at(17, 30), config, scheduled_hours=8)
    second = detector.detect(_at(8), _at(17, 30), config, scheduled_hours=8)
    assert first == second


def test_open_session_gets_provisional_default_type(detector):
    result = detector.detect(_at(9), None, ConfigRegistry().get("Member"))

    assert result.provisional
    assert result.attendance_type == AttendanceType.FULL_DAY
    assert result.duration_minutes is None


@pytest.mark.parametrize("check_out", [_at(9), _at(8, 59)])
def test_non_positive_duration_is_invalid(detector, check_out):
    with pytest.raises(InvalidSessionError):
        detector.detect(_at(9), check_out, ConfigRegistry().get("Member"))


@pytest.mark.parametrize(
    "check_in,check_out,expected",
    [
        (_at(7), _at(17), AttendanceType.OVERTIME),
        (_at(14), _at(15), AttendanceType.FULL_DAY),
        (_at(9), _at(9, 45), AttendanceType.HALF_DAY_MORNING),
        (_at(14), _at(14, 45), AttendanceType.HALF_DAY_AFTERNOON),
    ],
)
def test_time_based_thresholds(detector, check_in, check_out, expected):
    assert detector.detect(check_in, check_out, ConfigRegistry().get("Member")).attendance_type == expected


def test_below_minimal_is_flagged_when_warn_only(detector):
    result = detector.detect(_at(9), _at(9, 10), ConfigRegistry().get("Member"))

    assert result.flagged
    assert result.attendance_type == AttendanceType.HALF_DAY_MORNING
    assert result.duration_minutes == 10


def test_below_minimal_raises_when_strict(detector):
    registry = ConfigRegistry(overrides={"Member": {"validation": {"warn_only": False}}})
    with pytest.raises(InvalidSessionError):
        detector.detect(_at(9), _at(9, 10), registry.get("Member"))


@pytest.mark.parametrize(
    "hours,expected",
    [
        (9, AttendanceType.OVERTIME),
        (6, AttendanceType.FULL_DAY),
        (2, AttendanceType.UNPAID_LEAVE),
    ],
)
def test_schedule_aware_ratios(detector, hours, expected):
    result = detector.detect(_at(8), _at(8 + hours), ConfigRegistry().get("Employee"), scheduled_hours=8)
    assert result.attendance_type == expected


def test_schedule_aware_uses_fallback_hours(detector):
    result = detector.detect(_at(8), _at(14), ConfigRegistry().get("Employee"))
    assert result.attendance_type == AttendanceType.FULL_DAY


def test_schedule_aware_without_any_hours_is_unconfigured(detector):
    config = ConfigRegistry().get("Employee")
    config = replace(
        config,
        detection=replace(config.detection, rules=replace(config.detection.rules, fallback=ScheduleFallback(None))),
    )
    with pytest.raises(UnconfiguredScheduleError):
        detector.detect(_at(8), _at(12), config)


def test_half_day_spanning_both_hints_goes_to_longer_side():
    hints = TimeHints(morning_cutoff=12, afternoon_start=12)

    assert resolve_half_day(_at(11), _at(16), hints) == AttendanceType.HALF_DAY_AFTERNOON
    assert resolve_half_day(_at(8), _at(13), hints) == AttendanceType.HALF_DAY_MORNING


def test_half_day_exact_tie_stays_in_morning():
    hints = TimeHints(morning_cutoff=12, afternoon_start=12)
    assert resolve_half_day(_at(10), _at(14), hints) == AttendanceType.HALF_DAY_MORNING


def test_half_day_matching_no_hint_is_afternoon():
    hints = TimeHints(morning_cutoff=8, afternoon_start=18)
    assert resolve_half_day(_at(9), _at(12), hints) == AttendanceType.HALF_DAY_AFTERNOON
