"""
PostgreSQL connection pool for the metadata store.

One ThreadedConnectionPool per process, sized for parallel rotation workers.

Usage:
    from rekey.db import get_connection

    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT 1")
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Generator
from contextlib import contextmanager

import psycopg2
import psycopg2.pool

from rekey.config import get_config

logger = logging.getLogger(__name__)

_pool: psycopg2.pool.ThreadedConnectionPool | None = None
_pool_lock = threading.Lock()


def get_pool(minconn: int = 1, maxconn: int | None = None) -> psycopg2.pool.ThreadedConnectionPool:
    """Get or create the connection pool.

    ``maxconn`` defaults to the rotation worker count plus headroom for the
    audit log and the database secrets manager.
    """
    global _pool
    if _pool is not None and not _pool.closed:
        return _pool

    with _pool_lock:
        if _pool is not None and not _pool.closed:
            return _pool

        cfg = get_config()
        if maxconn is None:
            maxconn = max(cfg.rotation.max_workers, 1) * 2 + 2
        db = cfg.db
        logger.info(
            "Creating connection pool: %s@%s:%s/%s (min=%d, max=%d)",
            db.user,
            db.host or "<socket>",
            db.port,
            db.name,
            minconn,
            maxconn,
        )
        try:
            _pool = psycopg2.pool.ThreadedConnectionPool(minconn=minconn, maxconn=maxconn, **db.dict)
        except psycopg2.OperationalError as e:
            raise ConnectionError(
                f"Cannot connect to PostgreSQL at {db.host}:{db.port}/{db.name}: {e}\n"
                f"Check REKEY_DB_* environment variables."
            ) from e
        return _pool


@contextmanager
def get_connection() -> Generator[psycopg2.extensions.connection, None, None]:
    """Borrow a pooled connection; commit on success, roll back on error."""
    pool = get_pool()
    conn = pool.getconn()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        pool.putconn(conn)


def close_pool() -> None:
    """Close all connections in the pool."""
    global _pool
    with _pool_lock:
        if _pool is not None:
            _pool.closeall()
            _pool = None
