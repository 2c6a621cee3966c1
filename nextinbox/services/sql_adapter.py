import os
import threading
import time
import logging
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Iterator

import psycopg2
import psycopg2.extensions
import psycopg2.extras
from psycopg2.pool import ThreadedConnectionPool

logger = logging.getLogger(__name__)

SSL_MODES = ("disable", "allow", "prefer", "require", "verify-ca", "verify-full")


def connection_kwargs() -> dict[str, Any]:
    """psycopg2 connect arguments for the platform database, read from the environment."""
    sslmode = os.getenv("DB_SSLMODE", "require")
    statement_timeout_ms = int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "15000"))
    return {
        "host": os.environ["DB_HOST"],
        "port": os.environ["DB_PORT"],
        "dbname": os.environ["DB_NAME"],
        "user": os.environ["DB_USER"],
        "password": os.environ["DB_PASSWORD"],
        "sslmode": sslmode if sslmode in SSL_MODES else "require",
        "connect_timeout": int(os.getenv("DB_CONNECT_TIMEOUT_SECONDS", "5")),
        "options": f"-c statement_timeout={statement_timeout_ms}",
        "application_name": os.getenv("APP_NAME", "NextInBox") + "-dashboard",
    }


class SqlAdapter:
    """Read-only access to the platform tables plus LISTEN connections for the push channel."""

    def __init__(self) -> None:
        self._pool: ThreadedConnectionPool | None = None
        self._pool_lock = threading.Lock()
        self._log_slow = os.getenv("DB_LOG_SLOW_QUERIES", "0") == "1"
        self._slow_threshold_ms = float(os.getenv("DB_SLOW_QUERY_THRESHOLD_MS", "200"))

    def _ensure_pool(self) -> ThreadedConnectionPool:
        with self._pool_lock:
            if self._pool is None:
                low = int(os.getenv("DB_POOL_MIN", "1"))
                high = max(low, int(os.getenv("DB_POOL_MAX", "8")))
                self._pool = ThreadedConnectionPool(low, high, **connection_kwargs())
            return self._pool

    @contextmanager
    def _borrow(self) -> Iterator[Any]:
        pool = self._ensure_pool()
        conn = pool.getconn()
        try:
            yield conn
        finally:
            # Reads never commit; a broken connection is discarded instead of returned.
            broken = bool(conn.closed)
            if not broken:
                conn.rollback()
            pool.putconn(conn, close=broken)

    def fetch_rows(self, query: str, params: tuple[Any, ...] = ()) -> list[dict[str, Any]]:
        started = time.perf_counter()
        with self._borrow() as conn, conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            cur.execute(query, params)
            rows = [self._plain(row) for row in cur.fetchall()]
        if self._log_slow:
            self._report_if_slow(started, query, len(rows))
        return rows

    def fetch_value(self, query: str, params: tuple[Any, ...] = ()) -> Any:
        """First column of the first row, or None when the query matched nothing."""
        rows = self.fetch_rows(query, params)
        return next(iter(rows[0].values()), None) if rows else None

    def open_listener(self, channel: str) -> Any:
        """Open a dedicated autocommit connection subscribed to ``channel``.

        Listener connections live outside the pool; the caller owns and closes them.
        """
        conn = psycopg2.connect(**connection_kwargs())
        conn.set_isolation_level(psycopg2.extensions.ISOLATION_LEVEL_AUTOCOMMIT)
        with conn.cursor() as cur:
            cur.execute(f"LISTEN {channel}")
        return conn

    def _report_if_slow(self, started: float, query: str, row_count: int) -> None:
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        if elapsed_ms >= self._slow_threshold_ms:
            logger.warning("Slow SQL query %.2fms rows=%s sql=%s", elapsed_ms, row_count, " ".join(query.split())[:180])

    def close(self) -> None:
        with self._pool_lock:
            if self._pool is not None:
                self._pool.closeall()
                self._pool = None

    @staticmethod
    def _plain(row: dict[str, Any]) -> dict[str, Any]:
        # numeric columns arrive as Decimal.
        return {
            key: (int(value) if value == value.to_integral_value() else float(value)) if isinstance(value, Decimal) else value
            for key, value in row.items()
        }
