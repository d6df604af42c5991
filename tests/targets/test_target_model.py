from __future__ import annotations

from datetime import datetime

import pytest

from src.clockin.clockin.core.enums import CheckInMethod, EngagementLevel, TimeSlot
from src.clockin.clockin.core.exceptions import MemberNotFoundError, TargetModelNotAllowedError, ValidationError
from src.clockin.clockin.policies.registry import ConfigRegistry
from src.clockin.clockin.targets.memory_target_repository import InMemoryTargetRepository
from src.clockin.clockin.targets.model import AttendanceStats, AttendanceTarget, CurrentSession, TargetRef
from src.clockin.clockin.targets.service import TargetService


def test_idle_session_carries_no_details():
    with pytest.raises(ValidationError):
        CurrentSession(is_active=False, check_in_id="abc")
    with pytest.raises(ValidationError):
        CurrentSession(is_active=True, check_in_id="abc")

    idle = CurrentSession.idle()
    assert (idle.check_in_id, idle.check_in_time, idle.method) == (None, None, None)


def test_session_round_trip():
    session = CurrentSession.start(
        check_in_id="abc",
        check_in_time=datetime(2025, 3, 3, 9),
        method=CheckInMethod.RFID,
        expected_check_out_at=datetime(2025, 3, 3, 15),
    )
    assert CurrentSession.from_dict(session.to_dict()) == session
    assert CurrentSession.from_dict({"is_active": False}) == CurrentSession.idle()


def test_target_round_trip():
    target = AttendanceTarget(
        tenant_id="t1",
        target_model="Member",
        target_id="m-1",
        attendance_stats=AttendanceStats(
            total_visits=3,
            engagement_level=EngagementLevel.OCCASIONAL,
            favorite_time_slot=TimeSlot.EVENING,
            last_visited_at=datetime(2025, 3, 3, 18),
        ),
        profile={"name": "Alex", "plan": "gold"},
    )

    restored = AttendanceTarget.from_dict(target.to_dict())
    assert restored == target
    assert restored.name == "Alex"


def test_upsert_creates_then_updates():
    service = TargetService(InMemoryTargetRepository(), ConfigRegistry())
    ref = TargetRef("t1", "Employee", "e-1")

    created = service.upsert(ref, profile={"name": "Bo"})
    assert created.attendance_enabled
    assert created.work_schedule is None

    updated = service.upsert(ref, attendance_enabled=False, work_schedule={"hours_per_day": 6}, profile={"team": "ops"})
    assert not updated.attendance_enabled
    assert updated.work_schedule.hours_per_day == 6
    assert updated.profile == {"name": "Bo", "team": "ops"}


def test_upsert_respects_allowlist_and_lookup_errors():
    service = TargetService(InMemoryTargetRepository(), ConfigRegistry(allowed_target_models=["Member"]))

    with pytest.raises(TargetModelNotAllowedError):
        service.upsert(TargetRef("t1", "Employee", "e-1"))
    with pytest.raises(ValidationError):
        service.upsert(TargetRef("t1", "Member", " "))
    with pytest.raises(MemberNotFoundError):
        service.get(TargetRef("t1", "Member", "ghost"))
