from __future__ import annotations

import threading
from datetime import datetime, timedelta

import pytest

from src.clockin.clockin.container import build_container
from src.clockin.clockin.core.enums import AttendanceType, CheckInMethod
from src.clockin.clockin.core.events import EventType
from src.clockin.clockin.core.exceptions import (
    AlreadyCheckedOutError,
    AttendanceNotEnabledError,
    DuplicateCheckInError,
    MemberNotFoundError,
    NoActiveSessionError,
    TargetModelNotAllowedError,
    ValidationError,
)
from src.clockin.clockin.sessions.model import CheckInData
from src.clockin.clockin.targets.model import TargetRef

T0 = datetime(2025, 3, 3, 9, 0)


def _assert_session_consistent(session):
    if not session.is_active:
        assert (session.check_in_id, session.check_in_time, session.method) == (None, None, None)
    else:
        assert None not in (session.check_in_id, session.check_in_time, session.method)


def test_check_in_opens_session(container, member):
    outcome = container.session_tracker.check_in(member, CheckInData(method=CheckInMethod.RFID), now=T0)

    assert outcome.session.is_active
    assert outcome.session.check_in_id == outcome.entry.id
    assert outcome.session.expected_check_out_at == T0 + timedelta(hours=6)
    assert outcome.entry.method == CheckInMethod.RFID
    assert outcome.stats.total_visits == 1
    assert outcome.record.monthly_total == 1
    types = [e.type for e in container.outbox.pending()]
    assert EventType.CHECK_IN_RECORDED in types
    assert EventType.STATS_UPDATED in types


def test_repeat_check_in_inside_window_is_duplicate(container, member):
    container.session_tracker.check_in(member, now=T0)

    with pytest.raises(DuplicateCheckInError) as exc:
        container.session_tracker.check_in(member, now=T0 + timedelta(minutes=2))

    assert exc.value.next_allowed_time == T0 + timedelta(minutes=5)
    assert exc.value.status == 429
    assert container.outbox.pending()[-1].type == EventType.CHECK_IN_FAILED


def test_check_in_while_session_open_is_duplicate(container, member):
    first = container.session_tracker.check_in(member, now=T0)

    with pytest.raises(DuplicateCheckInError) as exc:
        container.session_tracker.check_in(member, now=T0 + timedelta(hours=1))

    assert exc.value.next_allowed_time == first.session.expected_check_out_at
    assert len(container.attendance_repo.list_for_target(member.tenant_id, "Member", "m-1")[0].check_ins) == 1


def test_check_in_guards(container, member):
    with pytest.raises(MemberNotFoundError):
        container.session_tracker.check_in(TargetRef(member.tenant_id, "Member", "ghost"), now=T0)

    container.target_service.upsert(member, attendance_enabled=False)
    with pytest.raises(AttendanceNotEnabledError):
        container.session_tracker.check_in(member, now=T0)
    assert container.outbox.pending()[-1].payload["code"] == "ATTENDANCE_NOT_ENABLED"


def test_allowlist_is_enforced_on_check_in():
    container = build_container(storage="memory", allowed_target_models=["Member"])
    with pytest.raises(TargetModelNotAllowedError):
        container.session_tracker.check_in(TargetRef("t1", "Employee", "e-1"), now=T0)


def test_check_out_closes_session(container, member):
    entry_id = container.session_tracker.check_in(member, now=T0).entry.id

    outcome = container.session_tracker.check_out(member, entry_id, now=T0 + timedelta(hours=9))

    assert outcome.entry.attendance_type == AttendanceType.FULL_DAY
    assert outcome.entry.duration_minutes == 540
    assert outcome.record.total_work_days == 1.0
    assert container.session_tracker.current_session(member) is None
    _assert_session_consistent(container.target_service.get(member).current_session)


def test_check_out_errors(container, member):
    entry_id = container.session_tracker.check_in(member, now=T0).entry.id

    with pytest.raises(ValidationError):
        container.session_tracker.check_out(member, None, now=T0 + timedelta(hours=1))
    with pytest.raises(NoActiveSessionError):
        container.session_tracker.check_out(member, "unknown", now=T0 + timedelta(hours=1))

    container.session_tracker.check_out(member, entry_id, now=T0 + timedelta(hours=1))
    with pytest.raises(AlreadyCheckedOutError):
        container.session_tracker.check_out(member, entry_id, now=T0 + timedelta(hours=2))


def test_toggle_alternates(container, member):
    first = container.session_tracker.toggle(member, now=T0)
    second = container.session_tracker.toggle(member, now=T0 + timedelta(hours=2))
    third = container.session_tracker.toggle(member, now=T0 + timedelta(hours=3))

    assert [first.action, second.action, third.action] == ["check_in", "check_out", "check_in"]
    assert second.result.entry.id == first.result.entry.id


def test_session_stays_consistent_across_transitions(container, member):
    tracker = container.session_tracker
    for step in range(4):
        tracker.toggle(member, now=T0 + timedelta(hours=step))
        _assert_session_consistent(container.target_service.get(member).current_session)


def test_claim_is_released_when_append_fails(member):
    container = build_container(storage="memory", target_model_overrides={"Member": {"max_check_ins_per_month": 1}})
    container.target_service.upsert(member)
    entry_id = container.session_tracker.check_in(member, now=T0).entry.id
    container.session_tracker.check_out(member, entry_id, now=T0 + timedelta(hours=1))

    with pytest.raises(ValidationError):
        container.session_tracker.check_in(member, now=T0 + timedelta(hours=2))
    assert container.session_tracker.current_session(member) is None


def test_occupancy(container, member, employee):
    container.session_tracker.check_in(member, now=T0)
    container.session_tracker.check_in(employee, now=T0)

    snapshot = container.session_tracker.occupancy(member.tenant_id, now=T0)
    assert snapshot.total == 2
    assert snapshot.by_model == {"Member": 1, "Employee": 1}

    only_members = container.session_tracker.occupancy(member.tenant_id, target_model="Member", now=T0)
    assert only_members.total == 1
    assert only_members.sessions[0]["name"] == "Alex"


def test_checkout_expired_is_idempotent(container, member, employee):
    container.session_tracker.check_in(member, now=T0)
    container.session_tracker.check_in(employee, now=T0)
    later = datetime(2025, 3, 3, 16, 0)

    first = container.session_tracker.checkout_expired(member.tenant_id, now=later)
    second = container.session_tracker.checkout_expired(member.tenant_id, now=later)

    # member expires at 15:00, employee at shift end 17:00
    assert (first.total, first.processed, first.failed) == (1, 1, 0)
    assert first.by_model == {"Member": {"found": 1, "cleaned": 1}}
    assert second.total == 0

    entry = container.attendance_repo.list_for_target(member.tenant_id, "Member", "m-1")[0].check_ins[0]
    assert entry.auto_checked_out
    assert entry.check_out_at == datetime(2025, 3, 3, 15, 0)
    assert entry.duration_minutes == 360
    assert EventType.SESSION_EXPIRED in [e.type for e in container.outbox.pending()]
    assert container.session_tracker.current_session(employee) is not None


def test_checkout_expired_isolates_failures(container, member, monkeypatch):
    other = TargetRef(member.tenant_id, "Member", "m-2")
    container.target_service.upsert(other)
    container.session_tracker.check_in(member, now=T0)
    container.session_tracker.check_in(other, now=T0)

    original = container.engine.apply_check_out

    def flaky(key, *args, **kwargs):
        if key.target_id == "m-2":
            raise RuntimeError("storage unavailable")
        return original(key, *args, **kwargs)

    monkeypatch.setattr(container.engine, "apply_check_out", flaky)
    result = container.session_tracker.checkout_expired(member.tenant_id, now=datetime(2025, 3, 3, 16, 0))

    assert (result.total, result.processed, result.failed) == (2, 1, 1)
    assert result.errors[0]["target_id"] == "m-2"
    assert result.errors[0]["code"] == "RuntimeError"
    assert container.session_tracker.current_session(other) is not None


def test_checkout_expired_requires_positive_limit(container):
    with pytest.raises(ValidationError):
        container.session_tracker.checkout_expired("gym-1", limit=0)


def test_checkout_expired_dry_run_only_counts(container, member, employee):
    container.session_tracker.check_in(member, now=T0)
    container.session_tracker.check_in(employee, now=T0)
    later = datetime(2025, 3, 3, 16, 0)

    preview = container.session_tracker.checkout_expired(member.tenant_id, now=later, dry_run=True)

    assert preview.dry_run
    assert (preview.total, preview.processed, preview.failed) == (1, 0, 0)
    assert preview.by_model == {"Member": {"found": 1, "cleaned": 0}}
    assert container.session_tracker.current_session(member) is not None
    record = container.attendance_repo.list_for_target(member.tenant_id, "Member", "m-1")[0]
    assert record.check_ins[0].is_open

    swept = container.session_tracker.checkout_expired(member.tenant_id, now=later)
    assert (swept.total, swept.processed) == (1, 1)
    assert not swept.dry_run


def test_concurrent_check_ins_claim_one_session(container, member):
    barrier = threading.Barrier(2)
    outcomes, errors = [], []

    def attempt():
        barrier.wait()
        try:
            outcomes.append(container.session_tracker.check_in(member, now=T0))
        except DuplicateCheckInError as exc:
            errors.append(exc)

    threads = [threading.Thread(target=attempt) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(outcomes) == 1
    assert len(errors) == 1
    session = container.session_tracker.current_session(member)
    assert session.check_in_id == outcomes[0].entry.id
    record = container.attendance_repo.list_for_target(member.tenant_id, "Member", "m-1")[0]
    assert [e.id for e in record.check_ins] == [outcomes[0].entry.id]
