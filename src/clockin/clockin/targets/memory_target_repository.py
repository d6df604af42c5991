from __future__ import annotations

import threading
from datetime import datetime
from typing import Optional, Sequence

from ..core.exceptions import MemberNotFoundError
from .model import AttendanceTarget, TargetRef
from .repository import TargetMutator, TargetRepository


class InMemoryTargetRepository(TargetRepository):
    """Targets kept in a dict; targets are frozen so no copying is needed."""

    def __init__(self, targets: Optional[Sequence[AttendanceTarget]] = None):
        self._targets: dict[TargetRef, AttendanceTarget] = {}
        self._lock = threading.RLock()
        for target in targets or ():
            self.save(target)

    def get(self, ref: TargetRef) -> Optional[AttendanceTarget]:
        with self._lock:
            return self._targets.get(ref)

    def save(self, target: AttendanceTarget) -> None:
        with self._lock:
            self._targets[target.ref] = target

    def update_if(self, ref: TargetRef, mutator: TargetMutator) -> AttendanceTarget:
        with self._lock:
            current = self._targets.get(ref)
            if current is None:
                raise MemberNotFoundError(f"Target {ref} not found", context={"target": str(ref)})
            updated = mutator(current)
            self._targets[ref] = updated
            return updated

    def list_active_sessions(
        self,
        tenant_id: str,
        *,
        target_model: Optional[str] = None,
        expired_before: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> Sequence[AttendanceTarget]:
        with self._lock:
            found = [
                t
                for t in self._targets.values()
                if t.tenant_id == tenant_id
                and t.current_session.is_active
                and (target_model is None or t.target_model == target_model)
                and (
                    expired_before is None
                    or (
                        t.current_session.expected_check_out_at is not None
                        and t.current_session.expected_check_out_at < expired_before
                    )
                )
            ]
        found.sort(key=lambda t: (t.current_session.expected_check_out_at or datetime.max, t.target_id))
        return found[:limit] if limit is not None else found

    def list_for_tenant(self, tenant_id: str, *, target_model: Optional[str] = None) -> Sequence[AttendanceTarget]:
        with self._lock:
            found = [
                t
                for t in self._targets.values()
                if t.tenant_id == tenant_id and (target_model is None or t.target_model == target_model)
            ]
        found.sort(key=lambda t: (t.target_model, t.target_id))
        return found
