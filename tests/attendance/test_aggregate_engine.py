from __future__ import annotations

from datetime import datetime

import pytest

from src.clockin.clockin.attendance.engine import MonthlyAggregateEngine
from src.clockin.clockin.attendance.memory_attendance_repository import InMemoryAttendanceRepository
from src.clockin.clockin.attendance.model import AggregateKey, CheckInEntry
from src.clockin.clockin.core.enums import AttendanceStatus, AttendanceType, CheckInMethod
from src.clockin.clockin.core.exceptions import (
    AlreadyCheckedOutError,
    DuplicateCheckInError,
    InvalidSessionError,
    NoActiveSessionError,
    ValidationError,
)
from src.clockin.clockin.policies.registry import ConfigRegistry

NOW = datetime(2025, 3, 31, 23, 0)


def _key(model: str = "Member") -> AggregateKey:
    return AggregateKey("t1", model, "x-1", 2025, 3)


def _visit(engine, config, day: int, start: int, end: int, *, key=None, scheduled_hours=None):
    key = key or _key(config.target_model)
    entry = CheckInEntry.new(timestamp=datetime(2025, 3, day, start), method=CheckInMethod.RFID)
    engine.append_check_in(key, entry, config, now=NOW)
    return engine.apply_check_out(
        key, entry.id, datetime(2025, 3, day, end), config, scheduled_hours=scheduled_hours, now=NOW
    ), entry.id


def _assert_work_days(record):
    assert record.total_work_days == record.full_days_count + 0.5 * record.half_days_count + record.paid_leave_days_count


@pytest.fixture
def engine():
    return MonthlyAggregateEngine(InMemoryAttendanceRepository())


def test_check_in_then_check_out_updates_counters(engine):
    config = ConfigRegistry().get("Member")
    record, entry_id = _visit(engine, config, 3, 9, 18)

    entry = record.find(entry_id)
    assert entry.attendance_type == AttendanceType.FULL_DAY
    assert entry.duration_minutes == 540
    assert record.monthly_total == 1
    assert record.unique_days_visited == 1
    assert record.visited_days == ["2025-03-03"]
    assert record.time_slot_distribution["morning"] == 1
    assert record.full_days_count == 1
    assert record.total_work_days == 1.0


def test_open_entry_does_not_count_as_work_day(engine):
    config = ConfigRegistry().get("Member")
    key = _key()
    record = engine.append_check_in(key, CheckInEntry.new(timestamp=datetime(2025, 3, 3, 9)), config, now=NOW)

    assert record.monthly_total == 1
    assert record.full_days_count == 0
    assert record.total_work_days == 0.0


def test_work_days_add_up_over_mixed_sequence(engine):
    config = ConfigRegistry().get("Member")
    _visit(engine, config, 3, 9, 18)
    _, half_id = _visit(engine, config, 4, 9, 10)
    _visit(engine, config, 5, 7, 18)
    engine.override_attendance_type(_key(), half_id, AttendanceType.HALF_DAY_MORNING, config, now=NOW)
    record = engine.add_retroactive_attendance(
        _key(),
        CheckInEntry.new(timestamp=datetime(2025, 3, 6, 9), attendance_type=AttendanceType.PAID_LEAVE),
        config,
        now=NOW,
    )

    assert (record.full_days_count, record.half_days_count, record.overtime_days_count) == (1, 1, 1)
    assert record.paid_leave_days_count == 1
    assert record.total_work_days == 2.5
    _assert_work_days(record)


def test_entries_stay_ordered_by_timestamp(engine):
    config = ConfigRegistry().get("Member")
    _visit(engine, config, 10, 9, 11)
    record, _ = _visit(engine, config, 2, 9, 11)

    assert [e.timestamp.day for e in record.check_ins] == [2, 10]


def test_second_open_entry_is_rejected(engine):
    config = ConfigRegistry().get("Member")
    key = _key()
    first = CheckInEntry.new(timestamp=datetime(2025, 3, 3, 9))
    engine.append_check_in(key, first, config, now=NOW)

    with pytest.raises(DuplicateCheckInError):
        engine.append_check_in(key, CheckInEntry.new(timestamp=datetime(2025, 3, 3, 10)), config, now=NOW)
    assert len(engine.repository.get(key).check_ins) == 1


def test_entry_outside_month_is_rejected(engine):
    config = ConfigRegistry().get("Member")
    with pytest.raises(ValidationError):
        engine.append_check_in(_key(), CheckInEntry.new(timestamp=datetime(2025, 4, 1, 9)), config, now=NOW)


def test_monthly_limit(engine):
    config = ConfigRegistry(overrides={"Member": {"max_check_ins_per_month": 1}}).get("Member")
    _visit(engine, config, 3, 9, 10)

    with pytest.raises(ValidationError):
        engine.append_check_in(_key(), CheckInEntry.new(timestamp=datetime(2025, 3, 4, 9)), config, now=NOW)


def test_check_out_errors(engine):
    config = ConfigRegistry().get("Member")
    record, entry_id = _visit(engine, config, 3, 9, 10)
    version = record.version

    with pytest.raises(AlreadyCheckedOutError):
        engine.apply_check_out(_key(), entry_id, datetime(2025, 3, 3, 11), config, now=NOW)
    with pytest.raises(NoActiveSessionError):
        engine.apply_check_out(_key(), "missing", datetime(2025, 3, 3, 11), config, now=NOW)

    stored = engine.repository.get(_key())
    assert stored.version == version
    assert stored.find(entry_id).check_out_at == datetime(2025, 3, 3, 10)


def test_failed_detection_leaves_aggregate_untouched(engine):
    config = ConfigRegistry().get("Member")
    key = _key()
    entry = CheckInEntry.new(timestamp=datetime(2025, 3, 3, 9))
    engine.append_check_in(key, entry, config, now=NOW)

    with pytest.raises(InvalidSessionError):
        engine.apply_check_out(key, entry.id, datetime(2025, 3, 3, 8), config, now=NOW)
    assert engine.repository.get(key).find(entry.id).is_open


def test_unpaid_leave_can_be_excluded_from_visits(engine):
    registry = ConfigRegistry(overrides={"Employee": {"count_unpaid_leave_as_visit": False}})
    config = registry.get("Employee")
    record, _ = _visit(engine, config, 3, 9, 10, scheduled_hours=8)

    assert record.unpaid_leave_days_count == 1
    assert record.monthly_total == 0
    assert record.unique_days_visited == 0
    _assert_work_days(record)


def test_unpaid_leave_counts_as_visit_by_default(engine):
    config = ConfigRegistry().get("Employee")
    record, _ = _visit(engine, config, 3, 9, 10, scheduled_hours=8)

    assert record.unpaid_leave_days_count == 1
    assert record.monthly_total == 1


def test_deleted_entry_is_kept_but_not_counted(engine):
    config = ConfigRegistry().get("Member")
    _, entry_id = _visit(engine, config, 3, 9, 18)
    record = engine.delete_check_in(_key(), entry_id, config, reason="test data", now=NOW)

    entry = record.find(entry_id)
    assert entry.status == AttendanceStatus.INVALID
    assert entry.corrections[-1].field_name == "status"
    assert record.monthly_total == 0
    assert record.full_days_count == 0
    _assert_work_days(record)


def test_override_type_is_locked_against_recompute(engine):
    config = ConfigRegistry().get("Member")
    _, entry_id = _visit(engine, config, 3, 9, 18)
    record = engine.override_attendance_type(_key(), entry_id, AttendanceType.PAID_LEAVE, config, now=NOW)
    record = engine.update_check_out_time(_key(), entry_id, datetime(2025, 3, 3, 19), config, now=NOW)

    entry = record.find(entry_id)
    assert entry.type_locked
    assert entry.attendance_type == AttendanceType.PAID_LEAVE
    assert entry.duration_minutes == 600
    assert record.paid_leave_days_count == 1
    assert record.full_days_count == 0
    _assert_work_days(record)
