from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from .connection import DatabaseConnection

logger = logging.getLogger(__name__)


@contextmanager
def db_cursor(conn_factory: DatabaseConnection, *, dictionary: bool = True) -> Iterator[tuple[Any, Any]]:
    """One connection per unit of work.

    Yields ``(conn, cursor)``. Commits when the block exits normally, rolls back
    (releasing any ``SELECT ... FOR UPDATE`` row locks) when it raises.
    """

    conn = conn_factory.connect()
    cur = conn.cursor(dictionary=dictionary)
    try:
        yield conn, cur
        conn.commit()
    except Exception as exc:
        logger.debug("Rolling back on %s: %s", type(exc).__name__, exc)
        conn.rollback()
        raise
    finally:
        cur.close()
        conn.close()


def fetchone(cur) -> Optional[Dict[str, Any]]:
    return cur.fetchone() or None


def fetchall(cur) -> List[Dict[str, Any]]:
    return list(cur.fetchall() or [])


def dump_document(document: dict) -> str:
    return json.dumps(document, ensure_ascii=False, separators=(",", ":"))


def load_document(value: Any) -> dict:
    """JSON columns come back as str, bytes or (C extension) already decoded."""

    if isinstance(value, dict):
        return value
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    return json.loads(value)
