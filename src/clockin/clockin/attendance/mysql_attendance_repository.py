from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from ..common.datetime_utils import now_local
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, dump_document, fetchall, fetchone, load_document
from .model import AggregateKey, MonthlyAttendanceRecord
from .repository import AttendanceRepository, Mutator, Precondition

_KEY_WHERE = "tenant_id=%s AND target_model=%s AND target_id=%s AND year=%s AND month=%s"


def _key_params(key: AggregateKey) -> tuple:
    return (key.tenant_id, key.target_model, key.target_id, key.year, key.month)


class MySQLAttendanceRepository(AttendanceRepository):
    """Monthly aggregates as JSON documents, one row per key.

    ``update_if`` locks the row with ``SELECT ... FOR UPDATE`` so the
    read-modify-write is atomic; ``db_cursor`` rolls back when the mutator
    raises.
    """

    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def find_or_create(self, key: AggregateKey, *, now: Optional[datetime] = None) -> MonthlyAttendanceRecord:
        empty = MonthlyAttendanceRecord.empty(key, now=now or now_local())
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT IGNORE INTO attendance_monthly(tenant_id, target_model, target_id, year, month, document, version)
                VALUES(%s,%s,%s,%s,%s,%s,0)
                """,
                _key_params(key) + (dump_document(empty.to_dict()),),
            )
            cur.execute(f"SELECT document, version FROM attendance_monthly WHERE {_KEY_WHERE}", _key_params(key))
            return self._to_record(fetchone(cur))

    def get(self, key: AggregateKey) -> Optional[MonthlyAttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT document, version FROM attendance_monthly WHERE {_KEY_WHERE}", _key_params(key))
            row = fetchone(cur)
            return self._to_record(row) if row else None

    def update_if(
        self,
        key: AggregateKey,
        mutator: Mutator,
        *,
        precondition: Optional[Precondition] = None,
    ) -> Optional[MonthlyAttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT document, version FROM attendance_monthly WHERE {_KEY_WHERE} FOR UPDATE",
                _key_params(key),
            )
            row = fetchone(cur)
            if not row:
                raise KeyError(str(key))
            record = self._to_record(row)
            if precondition is not None and not precondition(record):
                return None
            mutator(record)
            record.version += 1
            cur.execute(
                f"UPDATE attendance_monthly SET document=%s, version=%s WHERE {_KEY_WHERE}",
                (dump_document(record.to_dict()), record.version) + _key_params(key),
            )
            return record

    def find_key_for_check_in(
        self, tenant_id: str, target_model: str, target_id: str, check_in_id: str
    ) -> Optional[AggregateKey]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT year, month
                FROM attendance_monthly
                WHERE tenant_id=%s AND target_model=%s AND target_id=%s
                  AND JSON_SEARCH(document, 'one', %s, NULL, '$.check_ins[*].id') IS NOT NULL
                ORDER BY year DESC, month DESC
                LIMIT 1
                """,
                (tenant_id, target_model, target_id, check_in_id),
            )
            row = fetchone(cur)
            if not row:
                return None
            return AggregateKey(tenant_id, target_model, target_id, int(row["year"]), int(row["month"]))

    def list_for_target(self, tenant_id: str, target_model: str, target_id: str) -> Sequence[MonthlyAttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT document, version
                FROM attendance_monthly
                WHERE tenant_id=%s AND target_model=%s AND target_id=%s
                ORDER BY year, month
                """,
                (tenant_id, target_model, target_id),
            )
            return [self._to_record(r) for r in fetchall(cur)]

    def list_for_tenant(
        self,
        tenant_id: str,
        *,
        target_model: Optional[str] = None,
        year: Optional[int] = None,
        month: Optional[int] = None,
    ) -> Sequence[MonthlyAttendanceRecord]:
        where = ["tenant_id=%s"]
        params: list = [tenant_id]
        if target_model is not None:
            where.append("target_model=%s")
            params.append(target_model)
        if year is not None:
            where.append("year=%s")
            params.append(int(year))
        if month is not None:
            where.append("month=%s")
            params.append(int(month))

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT document, version
                FROM attendance_monthly
                WHERE {' AND '.join(where)}
                ORDER BY year, month, target_model, target_id
                """,
                tuple(params),
            )
            return [self._to_record(r) for r in fetchall(cur)]

    @staticmethod
    def _to_record(row) -> MonthlyAttendanceRecord:
        record = MonthlyAttendanceRecord.from_dict(load_document(row["document"]))
        record.version = int(row["version"])
        return record
