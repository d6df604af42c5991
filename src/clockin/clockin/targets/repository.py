from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional, Protocol, Sequence

from .model import AttendanceTarget, TargetRef

TargetMutator = Callable[[AttendanceTarget], AttendanceTarget]


class TargetRepository(Protocol):
    def get(self, ref: TargetRef) -> Optional[AttendanceTarget]:
        raise NotImplementedError

    def save(self, target: AttendanceTarget) -> None:
        raise NotImplementedError

    def update_if(self, ref: TargetRef, mutator: TargetMutator) -> AttendanceTarget:
        """Atomically replace the target with ``mutator(current)``.

        Raises MemberNotFoundError for an unknown ref; if the mutator raises,
        nothing is written.
        """

        raise NotImplementedError

    def list_active_sessions(
        self,
        tenant_id: str,
        *,
        target_model: Optional[str] = None,
        expired_before: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> Sequence[AttendanceTarget]:
        """Targets with an open session, oldest expected check-out first.

        With ``expired_before`` only sessions whose expected check-out is
        earlier than it are returned.
        """

        raise NotImplementedError

    def list_for_tenant(self, tenant_id: str, *, target_model: Optional[str] = None) -> Sequence[AttendanceTarget]:
        raise NotImplementedError
