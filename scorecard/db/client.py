"""DoltDB client.

Thread-local connection reuse for DoltDB (MySQL-compatible protocol).
Each thread gets a persistent connection that reconnects on failure.
Statements autocommit unless they run inside transaction(), which is how a
vendor's deltas and summary land all-or-nothing.

Driver errors are translated to StorageFailure at this boundary.
"""

import logging
import os
import threading
from contextlib import contextmanager
from functools import lru_cache
from pathlib import Path
from typing import Any, Generator

import pymysql
from pymysql.cursors import DictCursor

from ..errors import StorageFailure

logger = logging.getLogger(__name__)

_thread_local = threading.local()

SCHEMA_PATH = Path(__file__).parent / "schema.sql"


@lru_cache(maxsize=1)
def _get_config() -> dict:
    """Get connection configuration.

    Environment variables:
        DOLT_HOST: Database host (default: 127.0.0.1)
        DOLT_PORT: Database port (default: 3306)
        DOLT_USER: Database user (default: root)
        DOLT_PASSWORD: Database password (default: empty)
        DOLT_DATABASE: Database name (default: vendor_scorecard)

    Returns:
        Connection config dict
    """
    return {
        "host": os.environ.get("DOLT_HOST", "127.0.0.1"),
        "port": int(os.environ.get("DOLT_PORT", "3306")),
        "user": os.environ.get("DOLT_USER", "root"),
        "password": os.environ.get("DOLT_PASSWORD", ""),
        "database": os.environ.get("DOLT_DATABASE", "vendor_scorecard"),
        "autocommit": True,
        "charset": "utf8mb4",
        "cursorclass": DictCursor,
    }


def _in_transaction() -> bool:
    return getattr(_thread_local, "tx_depth", 0) > 0


def get_connection() -> pymysql.Connection:
    """Get a thread-local database connection, reusing if alive.

    Inside a transaction the current connection is returned as-is; a
    reconnect there would silently drop the transaction.

    Raises:
        StorageFailure: if no connection can be established
    """
    conn = getattr(_thread_local, "conn", None)
    if conn is not None and _in_transaction():
        return conn
    if conn is not None:
        try:
            conn.ping(reconnect=False)
            return conn
        except pymysql.MySQLError:
            # Connection is dead, close and reconnect
            try:
                conn.close()
            except pymysql.MySQLError:
                pass
    try:
        conn = pymysql.connect(**_get_config())
    except pymysql.MySQLError as e:
        raise StorageFailure(f"Cannot connect to database: {e}") from e
    _thread_local.conn = conn
    return conn


@contextmanager
def get_cursor() -> Generator[Any, None, None]:
    """Context manager for a DictCursor on the thread-local connection.

    Raises:
        StorageFailure: wrapping any driver error raised while the cursor is in use

    Example:
        with get_cursor() as cursor:
            cursor.execute("SELECT * FROM projects WHERE project_id = %s", (project_id,))
            row = cursor.fetchone()
    """
    conn = get_connection()
    try:
        with conn.cursor() as cursor:
            yield cursor
    except pymysql.OperationalError as e:
        # Connection may have gone stale between ping and use
        if not _in_transaction():
            _thread_local.conn = None
        raise StorageFailure(f"Database operation failed: {e}") from e
    except pymysql.MySQLError as e:
        raise StorageFailure(f"Database operation failed: {e}") from e


@contextmanager
def transaction() -> Generator[None, None, None]:
    """All-or-nothing unit of work on the thread-local connection.

    Nested use joins the outermost transaction; only the outermost block
    commits or rolls back.

    Example:
        with transaction():
            rating_repo.delete(["RAT-2"])
            summary_repo.upsert(summary)
    """
    depth = getattr(_thread_local, "tx_depth", 0)
    if depth > 0:
        _thread_local.tx_depth = depth + 1
        try:
            yield
        finally:
            _thread_local.tx_depth -= 1
        return

    conn = get_connection()
    try:
        conn.begin()
    except pymysql.MySQLError as e:
        raise StorageFailure(f"Cannot begin transaction: {e}") from e
    _thread_local.tx_depth = 1
    try:
        yield
        conn.commit()
    except BaseException:
        try:
            conn.rollback()
        except pymysql.MySQLError as rollback_error:
            logger.error(f"Rollback failed: {rollback_error}")
        raise
    finally:
        _thread_local.tx_depth = 0


def execute_query(sql: str, params: tuple | None = None, fetch: str = "all") -> list[dict] | dict | None:
    """Execute a query and return results.

    Args:
        sql: SQL query with %s placeholders
        params: Query parameters
        fetch: 'all' for fetchall(), 'one' for fetchone(), 'none' for no fetch

    Returns:
        Query results as list of dicts, single dict, or None
    """
    with get_cursor() as cursor:
        cursor.execute(sql, params or ())

        if fetch == "all":
            return cursor.fetchall()
        elif fetch == "one":
            return cursor.fetchone()
        return None


def execute_many(sql: str, params_list: list[tuple]) -> int:
    """Execute a query with multiple parameter sets.

    Returns:
        Number of rows affected
    """
    if not params_list:
        return 0
    with get_cursor() as cursor:
        cursor.executemany(sql, params_list)
        return cursor.rowcount


def check_connection() -> bool:
    """Test database connectivity.

    Returns:
        True if connection succeeds, False otherwise
    """
    try:
        with get_cursor() as cursor:
            cursor.execute("SELECT 1")
            return True
    except StorageFailure:
        return False


def apply_schema(path: Path = SCHEMA_PATH) -> int:
    """Create any missing scorecard tables.

    Returns:
        Number of statements executed
    """
    statements = [s.strip() for s in path.read_text().split(";") if s.strip()]
    with get_cursor() as cursor:
        for statement in statements:
            cursor.execute(statement)
    logger.info(f"Applied {len(statements)} schema statements from {path.name}")
    return len(statements)
