"""Connection pool owned by the process for the lifetime of the app."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

import psycopg2
import psycopg2.pool
from psycopg2.extensions import connection as PgConnection

from . import app_context
from .config import Settings

logger = logging.getLogger("db")


class Database:
    """Thin wrapper around a psycopg2 threaded pool."""

    def __init__(self, pool: psycopg2.pool.AbstractConnectionPool) -> None:
        self._pool = pool

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        pool = psycopg2.pool.ThreadedConnectionPool(
            settings.db_pool_min,
            settings.db_pool_max,
            dsn=settings.database_url,
            connect_timeout=settings.db_connect_timeout,
        )
        logger.info(
            "Database pool ready min=%s max=%s", settings.db_pool_min, settings.db_pool_max
        )
        return cls(pool)

    @contextmanager
    def connection(self) -> Iterator[PgConnection]:
        """Borrow a connection; commit on success, roll back on error."""

        conn = self._pool.getconn()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._pool.putconn(conn)

    def close(self) -> None:
        self._pool.closeall()


@contextmanager
def managed_connection(conn: Optional[PgConnection] = None):
    """Yield ``(connection, managed)``; borrow from the app pool when none is given."""

    if conn is not None:
        yield conn, False
        return

    with app_context.get_database().connection() as connection:
        yield connection, True


__all__ = ["Database", "managed_connection"]
