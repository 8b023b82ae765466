"""
SQLite persistence infrastructure for nexusrag.

DatabaseManager owns the single connection, the schema, and the
translation of sqlite3 errors into the StoreError family. Table-specific
logic lives in the stores (rag/store).
"""

import asyncio
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, TypeVar, Union

from nexusrag.core.exceptions import (
    StoreError,
    StoreBusyError,
    StoreCorruptError,
    StoreConstraintError,
)
from nexusrag.core.logging import logger

T = TypeVar("T")

SCHEMA_PATH = Path(__file__).parent / "database_schemas" / "schemas.sql"


def _classify_sqlite_error(sqlite_error: sqlite3.Error) -> StoreError:
    """
    Map a sqlite3 error onto the StoreError family.

    - SQLITE_BUSY (5): StoreBusyError (retryable)
    - SQLITE_CORRUPT (11): StoreCorruptError
    - SQLITE_CONSTRAINT (19): StoreConstraintError
    - anything else: StoreError
    """
    error_msg = str(sqlite_error)
    lowered = error_msg.lower()
    error_code = getattr(sqlite_error, "sqlite_errorcode", None)
    context = {"sqlite_code": error_code, "original_error": error_msg}

    if error_code == 5 or "database is locked" in lowered or "busy" in lowered:
        exc: StoreError = StoreBusyError(
            f"Database temporarily locked: {error_msg}", context=context, cause=sqlite_error
        )
        exc.add_suggestion("Retry with exponential backoff")
        exc.add_suggestion("Check for long open transactions in other processes")
        return exc

    if error_code == 11 or "corrupt" in lowered or "malformed" in lowered:
        exc = StoreCorruptError(
            f"Database corruption detected: {error_msg}", context=context, cause=sqlite_error
        )
        exc.add_suggestion("Restore from the most recent backup")
        exc.add_suggestion("Run 'PRAGMA integrity_check' for diagnostics")
        return exc

    if isinstance(sqlite_error, sqlite3.IntegrityError) or error_code == 19 or any(
        constraint in lowered for constraint in ("unique", "foreign key", "check", "not null")
    ):
        exc = StoreConstraintError(
            f"Database constraint violation: {error_msg}", context=context, cause=sqlite_error
        )
        exc.add_suggestion("Verify that the data meets the table constraints")
        return exc

    exc = StoreError(f"SQLite error: {error_msg}", context=context, cause=sqlite_error)
    exc.add_suggestion("Verify the database path and file permissions")
    return exc


class FetchType(Enum):
    ONE = "one"
    ALL = "all"
    NONE = "none"


@dataclass
class QueryResult:
    data: Optional[Union[Dict[str, Any], List[Dict[str, Any]]]]
    rows_affected: int
    last_row_id: Optional[int]


class DatabaseManager:
    """
    Single-connection SQLite manager.

    Every statement runs in the default thread pool while holding an
    asyncio.Lock, which is what makes check_same_thread=False safe.
    Use ":memory:" as db_path for throwaway databases.
    """

    def __init__(self, db_path: Union[str, Path], query_timeout: float = 30.0):
        self.db_path = str(db_path)
        self.query_timeout = query_timeout
        self._connection: Optional[sqlite3.Connection] = None
        self._lock = asyncio.Lock()
        try:
            self._init_schema()
        except StoreError as e:
            logger.error("DatabaseManager initialization failed", error=str(e), db_path=self.db_path)
            raise
        logger.info("DatabaseManager ready", db_path=self.db_path)

    def _get_connection(self) -> sqlite3.Connection:
        if self._connection is None:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            try:
                self._connection = sqlite3.connect(self.db_path, check_same_thread=False)
            except sqlite3.Error as e:
                raise _classify_sqlite_error(e)
            self._connection.row_factory = sqlite3.Row
            self._connection.execute("PRAGMA foreign_keys = ON")
        return self._connection

    def _init_schema(self) -> None:
        if not SCHEMA_PATH.exists():
            logger.error("schemas.sql not found", path=str(SCHEMA_PATH))
            raise StoreError(f"Schema file not found: {SCHEMA_PATH}")

        schema_sql = SCHEMA_PATH.read_text(encoding="utf-8")
        conn = self._get_connection()
        try:
            conn.executescript(schema_sql)
            conn.commit()
        except sqlite3.Error as e:
            raise _classify_sqlite_error(e)

    @contextmanager
    def transaction(
        self, abandoned: Optional[threading.Event] = None
    ) -> Iterator[sqlite3.Connection]:
        """
        Synchronous transaction on the shared connection.

        Only call from inside run_in_transaction() or before the event loop
        uses this manager; it does not take the async lock.
        If abandoned is set by the time work finishes, nothing is committed.
        """
        conn = self._get_connection()
        try:
            conn.execute("BEGIN")
            yield conn
            if abandoned is not None and abandoned.is_set():
                raise StoreBusyError("Transaction abandoned after timeout")
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise _classify_sqlite_error(e)
        except Exception:
            conn.rollback()
            raise

    async def _run_locked(self, work: Callable[[threading.Event], T], description: str) -> T:
        """
        Run work in the thread pool while holding the lock.

        On timeout the running statement is interrupted and the lock is kept
        until the worker thread has finished, so its rollback completes
        before anything else touches the connection. work receives an event
        that is set once the caller has given up; it must not commit after that.
        """
        async with self._lock:
            loop = asyncio.get_running_loop()
            abandoned = threading.Event()
            future = loop.run_in_executor(None, work, abandoned)
            try:
                return await asyncio.wait_for(asyncio.shield(future), timeout=self.query_timeout)
            except asyncio.TimeoutError:
                abandoned.set()
                if self._connection is not None:
                    self._connection.interrupt()
                try:
                    await future
                except Exception as e:
                    logger.debug(
                        "Abandoned database operation ended", operation=description, error=str(e)
                    )
                logger.error(
                    "Database operation timed out",
                    operation=description,
                    timeout_seconds=self.query_timeout,
                )
                exc = StoreBusyError(
                    f"{description} timed out after {self.query_timeout} seconds",
                    context={"operation": description},
                )
                exc.add_suggestion("Check for long open transactions in other processes")
                raise exc
            except StoreError as e:
                logger.error("Database operation failed", operation=description, error=str(e))
                raise

    async def execute_async(
        self, query: str, params: tuple[Any, ...] = (), fetch: Optional[FetchType] = None
    ) -> QueryResult:
        """
        Execute one statement off the event loop.

        Statements without fetch (or FetchType.NONE) are committed.

        Raises:
            StoreError: classified from the underlying sqlite3 error
        """

        def _execute(abandoned: threading.Event) -> QueryResult:
            conn = self._get_connection()
            cursor = conn.cursor()
            try:
                cursor.execute(query, params)

                if fetch == FetchType.ONE:
                    row = cursor.fetchone()
                    return QueryResult(
                        data=dict(row) if row else None,
                        rows_affected=cursor.rowcount,
                        last_row_id=cursor.lastrowid,
                    )
                elif fetch == FetchType.ALL:
                    rows = cursor.fetchall()
                    return QueryResult(
                        data=[dict(row) for row in rows],
                        rows_affected=cursor.rowcount,
                        last_row_id=None,
                    )
                else:
                    if abandoned.is_set():
                        conn.rollback()
                        raise StoreBusyError("Statement abandoned after timeout")
                    conn.commit()
                    return QueryResult(
                        data=None, rows_affected=cursor.rowcount, last_row_id=cursor.lastrowid
                    )
            except sqlite3.Error as e:
                conn.rollback()
                raise _classify_sqlite_error(e)
            finally:
                cursor.close()

        return await self._run_locked(_execute, "query")

    async def run_in_transaction(self, work: Callable[[sqlite3.Connection], T]) -> T:
        """
        Run work(conn) inside a single transaction, off the event loop.

        Any exception raised by work rolls the whole transaction back.
        """

        def _execute(abandoned: threading.Event) -> T:
            with self.transaction(abandoned) as conn:
                return work(conn)

        return await self._run_locked(_execute, "transaction")

    async def close(self) -> None:
        async with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
                logger.info("Database connection closed", db_path=self.db_path)
