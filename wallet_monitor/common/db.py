import contextlib
import logging
import time
from typing import Iterator, Optional, Dict, List, Tuple
from psycopg_pool import ConnectionPool
from psycopg.rows import dict_row
import psycopg
from tenacity import before_sleep_log, retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from . import config
from .logging_setup import get_logger

logger = get_logger(__name__)

# One pool per process; the poller, the CLI and the credential store share it
_pool: Optional[ConnectionPool] = None


def init_pool() -> None:
    """Open the connection pool.

    A polling cycle writes one snapshot and the refresher touches one
    credential row, so a small pool is enough.
    """
    global _pool
    if _pool is None:
        _pool = ConnectionPool(
            config.settings.database_url,
            min_size=1,
            max_size=5,
            name="wallet_monitor",
            kwargs={"application_name": "wallet-monitor"},
            timeout=30,
            max_idle=300,
            max_lifetime=3600,
            check=ConnectionPool.check_connection,
            open=True,
        )
        logger.info("Database connection pool initialized")


def get_pool() -> ConnectionPool:
    if _pool is None:
        init_pool()
    return _pool


@retry(
    stop=stop_after_attempt(config.settings.max_retries),
    wait=wait_exponential(multiplier=1, min=2, max=60),
    retry=retry_if_exception_type((psycopg.OperationalError, psycopg.InterfaceError)),
    before_sleep=before_sleep_log(logging.getLogger(__name__), logging.WARNING),
    reraise=True,
)
def execute_with_retry(query: str, params: Optional[Tuple] = None, fetch: bool = True) -> Optional[List[Dict]]:
    """Run one statement in its own transaction and return its rows.

    Dropped connections are retried with exponential backoff; the last
    error is re-raised so stores can map it to PersistenceError.
    """
    pool = get_pool()
    start_time = time.time()

    with pool.connection() as conn:
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(query, params)
            result = cur.fetchall() if fetch else None
            conn.commit()

    logger.log_operation(
        operation="db_query",
        params={"query_type": query.split()[0].upper()},
        status="completed",
        duration_ms=int((time.time() - start_time) * 1000)
    )

    return result


@contextlib.contextmanager
def get_cursor(readonly: bool = False) -> Iterator[psycopg.Cursor]:
    """Cursor on a pooled connection, committed on success and rolled back on error.

    Read-only cursors switch the session flags for their own use and restore
    them before the connection goes back to the pool.
    """
    pool = get_pool()

    with pool.connection() as conn:
        if readonly:
            conn.read_only = True
            conn.autocommit = True
        try:
            with conn.cursor(row_factory=dict_row) as cur:
                yield cur

            if not readonly:
                conn.commit()

        except Exception as e:
            if not readonly:
                conn.rollback()
            logger.log_operation(
                operation="db_cursor",
                status="failed",
                error=str(e)
            )
            raise
        finally:
            if readonly:
                conn.autocommit = False
                conn.read_only = False


def test_connection() -> bool:
    """True when the database answers a trivial query"""
    try:
        result = execute_with_retry("SELECT 1 as test", fetch=True)
        return result is not None and len(result) > 0
    except psycopg.Error as e:
        logger.error(f"Database connection test failed: {e}")
        return False


def close_pool() -> None:
    global _pool
    if _pool:
        _pool.close()
        _pool = None
        logger.info("Database connection pool closed")
