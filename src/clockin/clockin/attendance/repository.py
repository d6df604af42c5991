from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional, Protocol, Sequence

from .model import AggregateKey, MonthlyAttendanceRecord

Mutator = Callable[[MonthlyAttendanceRecord], None]
Precondition = Callable[[MonthlyAttendanceRecord], bool]


class AttendanceRepository(Protocol):
    """Storage of monthly aggregates.

    Atomicity contract: ``find_or_create`` never produces two documents for
    one key, and ``update_if`` runs precondition + mutator + write as one
    atomic step per key. If the mutator raises, nothing is written.
    """

    def find_or_create(self, key: AggregateKey, *, now: Optional[datetime] = None) -> MonthlyAttendanceRecord:
        raise NotImplementedError

    def get(self, key: AggregateKey) -> Optional[MonthlyAttendanceRecord]:
        raise NotImplementedError

    def update_if(
        self,
        key: AggregateKey,
        mutator: Mutator,
        *,
        precondition: Optional[Precondition] = None,
    ) -> Optional[MonthlyAttendanceRecord]:
        """Apply ``mutator``; returns None (and writes nothing) when ``precondition`` fails."""

        raise NotImplementedError

    def find_key_for_check_in(
        self, tenant_id: str, target_model: str, target_id: str, check_in_id: str
    ) -> Optional[AggregateKey]:
        raise NotImplementedError

    def list_for_target(self, tenant_id: str, target_model: str, target_id: str) -> Sequence[MonthlyAttendanceRecord]:
        """All aggregates of one target, oldest month first."""

        raise NotImplementedError

    def list_for_tenant(
        self,
        tenant_id: str,
        *,
        target_model: Optional[str] = None,
        year: Optional[int] = None,
        month: Optional[int] = None,
    ) -> Sequence[MonthlyAttendanceRecord]:
        raise NotImplementedError
