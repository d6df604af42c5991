from __future__ import annotations

import copy
import threading
from datetime import datetime
from typing import Optional, Sequence

from .model import AggregateKey, MonthlyAttendanceRecord
from .repository import AttendanceRepository, Mutator, Precondition


class InMemoryAttendanceRepository(AttendanceRepository):
    """Process-local store with per-key locks.

    Callers always receive copies; mutators work on a copy that only
    replaces the stored document when they return normally.
    """

    def __init__(self):
        self._docs: dict[AggregateKey, MonthlyAttendanceRecord] = {}
        self._locks: dict[AggregateKey, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, key: AggregateKey) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(key, threading.Lock())

    def find_or_create(self, key: AggregateKey, *, now: Optional[datetime] = None) -> MonthlyAttendanceRecord:
        with self._lock_for(key):
            record = self._docs.get(key)
            if record is None:
                record = MonthlyAttendanceRecord.empty(key, now=now)
                self._docs[key] = record
            return copy.deepcopy(record)

    def get(self, key: AggregateKey) -> Optional[MonthlyAttendanceRecord]:
        with self._lock_for(key):
            record = self._docs.get(key)
            return copy.deepcopy(record) if record is not None else None

    def update_if(
        self,
        key: AggregateKey,
        mutator: Mutator,
        *,
        precondition: Optional[Precondition] = None,
    ) -> Optional[MonthlyAttendanceRecord]:
        with self._lock_for(key):
            current = self._docs.get(key)
            if current is None:
                raise KeyError(str(key))
            working = copy.deepcopy(current)
            if precondition is not None and not precondition(working):
                return None
            mutator(working)
            working.version = current.version + 1
            self._docs[key] = copy.deepcopy(working)
            return working

    def find_key_for_check_in(
        self, tenant_id: str, target_model: str, target_id: str, check_in_id: str
    ) -> Optional[AggregateKey]:
        for key in self._keys_for(tenant_id, target_model, target_id):
            record = self._docs.get(key)
            if record is not None and record.find(check_in_id) is not None:
                return key
        return None

    def list_for_target(self, tenant_id: str, target_model: str, target_id: str) -> Sequence[MonthlyAttendanceRecord]:
        keys = sorted(self._keys_for(tenant_id, target_model, target_id), key=lambda k: (k.year, k.month))
        return [copy.deepcopy(self._docs[k]) for k in keys]

    def list_for_tenant(
        self,
        tenant_id: str,
        *,
        target_model: Optional[str] = None,
        year: Optional[int] = None,
        month: Optional[int] = None,
    ) -> Sequence[MonthlyAttendanceRecord]:
        with self._guard:
            keys = [
                k
                for k in self._docs
                if k.tenant_id == tenant_id
                and (target_model is None or k.target_model == target_model)
                and (year is None or k.year == year)
                and (month is None or k.month == month)
            ]
        keys.sort(key=lambda k: (k.year, k.month, k.target_model, k.target_id))
        return [copy.deepcopy(self._docs[k]) for k in keys]

    def _keys_for(self, tenant_id: str, target_model: str, target_id: str) -> list[AggregateKey]:
        with self._guard:
            return [
                k
                for k in self._docs
                if k.tenant_id == tenant_id and k.target_model == target_model and k.target_id == target_id
            ]
