"""
Audit log — records rotation runs in the audit_log table.

Event types:
  - secrets.rotation — rotation started / completed / failed / cancelled

Audit is best-effort: a missing table or unreachable database is logged and
never fails the caller.

Usage:
    from rekey.audit import log_event
    log_event("secrets.rotation", "Rotation started",
              target="cluster:prod", details={"source": "noop", "target": "vault"})
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from psycopg2.extras import Json

logger = logging.getLogger(__name__)

ROTATION_EVENT = "secrets.rotation"

# Overridden in tests; None means the shared pool
_conn_factory: Callable[[], Any] | None = None


def set_connection_factory(factory: Callable[[], Any] | None) -> None:
    global _conn_factory
    _conn_factory = factory


def reset_connection_factory() -> None:
    set_connection_factory(None)


def _insert(conn: Any, values: tuple) -> dict:
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO audit_log (event_type, category, actor, action, details, target, status)
        VALUES (%s, %s, %s, %s, %s, %s, %s)
        RETURNING id, timestamp
        """,
        values,
    )
    row = cur.fetchone()
    conn.commit()
    return {"id": row[0], "timestamp": row[1].isoformat()}


def log_event(
    event_type: str,
    action: str,
    *,
    category: str | None = "secrets",
    actor: str = "rekey",
    details: dict | None = None,
    target: str | None = None,
    status: str = "ok",
) -> dict | None:
    """Log a structured audit event.

    Returns {"id": int, "timestamp": str} on success, None on failure.
    """
    values = (event_type, category, actor, action, Json(details) if details else None, target, status)
    try:
        if _conn_factory is not None:
            conn = _conn_factory()
            try:
                return _insert(conn, values)
            finally:
                conn.close()

        from rekey.db.connection import get_connection

        with get_connection() as conn:
            return _insert(conn, values)
    except Exception as e:
        logger.warning("Audit log_event failed: %s", e)
        return None


def log_rotation(
    action: str,
    cluster_name: str,
    source: str,
    target: str,
    *,
    status: str = "ok",
    error: str | None = None,
) -> dict | None:
    details: dict[str, Any] = {"source": source, "target": target}
    if error:
        details["error"] = error
    return log_event(
        ROTATION_EVENT,
        action,
        target=f"cluster:{cluster_name}",
        details=details,
        status=status,
    )
