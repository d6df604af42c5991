from __future__ import annotations

import logging
from datetime import datetime, timedelta

from src.clockin.clockin.core.events import AttendanceEvent, EventDispatcher, EventOutbox, EventType

NOW = datetime(2025, 3, 3, 9, 0)


def _event(event_type: EventType) -> AttendanceEvent:
    return AttendanceEvent(type=event_type, tenant_id="t1", target_model="Member", target_id="m-1", timestamp=NOW)


def test_drain_delivers_by_type_and_wildcard():
    outbox = EventOutbox()
    dispatcher = EventDispatcher(outbox)
    typed, everything = [], []
    dispatcher.subscribe(EventType.CHECK_IN_RECORDED, typed.append)
    dispatcher.subscribe(None, everything.append)

    outbox.publish(_event(EventType.CHECK_IN_RECORDED))
    outbox.publish(_event(EventType.STATS_UPDATED))

    assert dispatcher.drain() == 2
    assert [e.type for e in typed] == [EventType.CHECK_IN_RECORDED]
    assert len(everything) == 2
    assert outbox.pending() == []
    assert dispatcher.drain() == 0


def test_failing_handler_is_logged_and_isolated(caplog):
    outbox = EventOutbox()
    dispatcher = EventDispatcher(outbox)
    received = []

    def broken(event):
        raise RuntimeError("webhook down")

    dispatcher.subscribe(None, broken)
    dispatcher.subscribe(None, received.append)
    outbox.publish(_event(EventType.CHECK_OUT_RECORDED))

    with caplog.at_level(logging.ERROR):
        assert dispatcher.drain() == 1
    assert len(received) == 1
    assert "Event handler failed" in caplog.text


def test_event_to_dict_is_json_ready():
    event = AttendanceEvent(
        type=EventType.MILESTONE_ACHIEVED,
        tenant_id="t1",
        target_model="Member",
        target_id="m-1",
        timestamp=NOW,
        payload={"kind": "visits", "at": NOW},
    )
    data = event.to_dict()
    assert data["type"] == "milestone.achieved"
    assert data["payload"]["at"] == NOW.isoformat()
    assert data["stats"] is None


def test_tracker_publishes_engagement_and_visit_milestone(container, member):
    start = datetime(2025, 3, 1, 9, 0)
    for day in range(10):
        ts = start + timedelta(days=day)
        entry_id = container.session_tracker.check_in(member, now=ts).entry.id
        container.session_tracker.check_out(member, entry_id, now=ts + timedelta(hours=1))

    events = container.outbox.take_all()
    changed = [e for e in events if e.type == EventType.ENGAGEMENT_CHANGED]
    milestones = [e.payload for e in events if e.type == EventType.MILESTONE_ACHIEVED]

    assert changed[0].payload["previous_level"] is None
    assert changed[0].payload["level"] == "occasional"
    assert {"kind": "streak", "value": 7, "name": "Alex"} in milestones
    assert {"kind": "visits", "value": 10, "name": "Alex"} in milestones
    assert sum(1 for m in milestones if m["kind"] == "visits") == 1
