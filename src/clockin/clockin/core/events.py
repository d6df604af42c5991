"""Outbound attendance events.

Services publish to an :class:`EventOutbox` after their write has committed.
An :class:`EventDispatcher` drains the outbox and hands events to
subscribers; a failing subscriber is logged and never reaches the caller.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional

from .exceptions import _jsonable

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    CHECK_IN_RECORDED = "checkIn.recorded"
    CHECK_IN_FAILED = "checkIn.failed"
    CHECK_OUT_RECORDED = "checkOut.recorded"
    MILESTONE_ACHIEVED = "milestone.achieved"
    ENGAGEMENT_CHANGED = "engagement.changed"
    STATS_UPDATED = "stats.updated"
    MEMBER_AT_RISK = "member.atRisk"
    SESSION_EXPIRED = "session.expired"


@dataclass(frozen=True)
class AttendanceEvent:
    type: EventType
    tenant_id: str
    target_model: str
    target_id: str
    timestamp: datetime
    payload: dict = field(default_factory=dict)
    stats: Optional[dict] = None

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "tenant_id": self.tenant_id,
            "target_model": self.target_model,
            "target_id": self.target_id,
            "timestamp": self.timestamp.isoformat(),
            "payload": _jsonable(self.payload),
            "stats": _jsonable(self.stats) if self.stats is not None else None,
        }


EventHandler = Callable[[AttendanceEvent], Any]


class EventOutbox:
    """Thread-safe FIFO of events waiting for delivery."""

    def __init__(self):
        self._pending: deque[AttendanceEvent] = deque()
        self._lock = threading.Lock()

    def publish(self, event: AttendanceEvent) -> None:
        with self._lock:
            self._pending.append(event)

    def pending(self) -> list[AttendanceEvent]:
        with self._lock:
            return list(self._pending)

    def take_all(self) -> list[AttendanceEvent]:
        with self._lock:
            events = list(self._pending)
            self._pending.clear()
            return events


class EventDispatcher:
    def __init__(self, outbox: EventOutbox):
        self._outbox = outbox
        self._handlers: dict[Optional[EventType], list[EventHandler]] = {}

    def subscribe(self, event_type: Optional[EventType], handler: EventHandler) -> None:
        """Register a handler; ``None`` subscribes to every event type."""
        self._handlers.setdefault(event_type, []).append(handler)

    def drain(self) -> int:
        """Deliver everything queued so far. Returns the number of events drained."""
        events = self._outbox.take_all()
        for event in events:
            for handler in self._handlers.get(event.type, []) + self._handlers.get(None, []):
                try:
                    handler(event)
                except Exception:
                    logger.exception("Event handler failed for %s (%s/%s)", event.type.value, event.target_model, event.target_id)
        return len(events)
