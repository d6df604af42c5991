from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from ..core.exceptions import MemberNotFoundError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, dump_document, fetchall, fetchone, load_document
from .model import AttendanceTarget, TargetRef
from .repository import TargetMutator, TargetRepository


class MySQLTargetRepository(TargetRepository):
    """Targets as JSON documents plus a few columns the sweep queries filter on."""

    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get(self, ref: TargetRef) -> Optional[AttendanceTarget]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT document FROM attendance_targets WHERE tenant_id=%s AND target_model=%s AND target_id=%s",
                (ref.tenant_id, ref.target_model, ref.target_id),
            )
            row = fetchone(cur)
            return AttendanceTarget.from_dict(load_document(row["document"])) if row else None

    def save(self, target: AttendanceTarget) -> None:
        session = target.current_session
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO attendance_targets(
                    tenant_id, target_model, target_id, attendance_enabled,
                    session_active, session_expected_check_out_at, document
                )
                VALUES(%s,%s,%s,%s,%s,%s,%s)
                ON DUPLICATE KEY UPDATE
                    attendance_enabled=VALUES(attendance_enabled),
                    session_active=VALUES(session_active),
                    session_expected_check_out_at=VALUES(session_expected_check_out_at),
                    document=VALUES(document)
                """,
                (
                    target.tenant_id,
                    target.target_model,
                    target.target_id,
                    int(target.attendance_enabled),
                    int(session.is_active),
                    session.expected_check_out_at,
                    dump_document(target.to_dict()),
                ),
            )

    def update_if(self, ref: TargetRef, mutator: TargetMutator) -> AttendanceTarget:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT document FROM attendance_targets
                WHERE tenant_id=%s AND target_model=%s AND target_id=%s
                FOR UPDATE
                """,
                (ref.tenant_id, ref.target_model, ref.target_id),
            )
            row = fetchone(cur)
            if not row:
                raise MemberNotFoundError(f"Target {ref} not found", context={"target": str(ref)})
            updated = mutator(AttendanceTarget.from_dict(load_document(row["document"])))
            session = updated.current_session
            cur.execute(
                """
                UPDATE attendance_targets
                SET attendance_enabled=%s, session_active=%s, session_expected_check_out_at=%s, document=%s
                WHERE tenant_id=%s AND target_model=%s AND target_id=%s
                """,
                (
                    int(updated.attendance_enabled),
                    int(session.is_active),
                    session.expected_check_out_at,
                    dump_document(updated.to_dict()),
                    ref.tenant_id,
                    ref.target_model,
                    ref.target_id,
                ),
            )
            return updated

    def list_active_sessions(
        self,
        tenant_id: str,
        *,
        target_model: Optional[str] = None,
        expired_before: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> Sequence[AttendanceTarget]:
        sql = "SELECT document FROM attendance_targets WHERE tenant_id=%s AND session_active=1"
        params: list = [tenant_id]
        if target_model is not None:
            sql += " AND target_model=%s"
            params.append(target_model)
        if expired_before is not None:
            sql += " AND session_expected_check_out_at < %s"
            params.append(expired_before)
        sql += " ORDER BY session_expected_check_out_at IS NULL, session_expected_check_out_at, target_id"
        if limit is not None:
            sql += " LIMIT %s"
            params.append(int(limit))

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(sql, tuple(params))
            return [AttendanceTarget.from_dict(load_document(r["document"])) for r in fetchall(cur)]

    def list_for_tenant(self, tenant_id: str, *, target_model: Optional[str] = None) -> Sequence[AttendanceTarget]:
        sql = "SELECT document FROM attendance_targets WHERE tenant_id=%s"
        params: list = [tenant_id]
        if target_model is not None:
            sql += " AND target_model=%s"
            params.append(target_model)
        sql += " ORDER BY target_model, target_id"

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(sql, tuple(params))
            return [AttendanceTarget.from_dict(load_document(r["document"])) for r in fetchall(cur)]
