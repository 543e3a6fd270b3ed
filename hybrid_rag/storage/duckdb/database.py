"""
DuckDB Execution Surface

One database file per knowledge base. A root connection is opened once;
blocking calls run on a small thread pool owned by the database, and each
pool thread gets its own cursor (a child connection sharing the same
database instance), created lazily and cached in thread-local storage,
since DuckDB connections are not thread-safe. The pool outlives event
loops, so repeated asyncio.run() calls reuse the same threads and cursors.

Also provides:
    - transaction(): BEGIN/COMMIT/ROLLBACK around a block
    - identifier validation for table names interpolated into SQL
    - translation of duckdb exceptions into StorageError subclasses
"""

from __future__ import annotations

import asyncio
import logging
import re
import threading
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from functools import partial
from pathlib import Path
from typing import Any, TypeVar

import duckdb

from hybrid_rag.errors import (
    PermanentStorageError,
    StorageError,
    TransientStorageError,
    ValidationError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")

_RESERVED = frozenset({
    "all", "and", "as", "by", "create", "delete", "drop", "from", "group",
    "insert", "into", "join", "limit", "not", "null", "or", "order",
    "select", "table", "update", "where",
})


def validate_identifier(name: str) -> str:
    """
    Check a table or column name against the identifier grammar.

    Only names that pass this check are ever interpolated into SQL; all
    values go through bound parameters.

    Raises:
        ValidationError: If the name is not a plain identifier or is reserved
    """
    if not isinstance(name, str) or not _IDENTIFIER.match(name):
        raise ValidationError(f"invalid SQL identifier: {name!r}")
    if name.lower() in _RESERVED:
        raise ValidationError(f"reserved word used as SQL identifier: {name!r}")
    return name


def quote_identifier(name: str) -> str:
    """Validate and double-quote an identifier."""
    return f'"{validate_identifier(name)}"'


def is_transient(exc: BaseException) -> bool:
    """Whether a duckdb error is write contention worth retrying."""
    if isinstance(exc, duckdb.TransactionException):
        return True
    if isinstance(exc, duckdb.IOException):
        message = str(exc).lower()
        return "lock" in message or "busy" in message
    return False


def translate_error(exc: duckdb.Error) -> StorageError:
    """Map a duckdb exception onto the storage error hierarchy."""
    if is_transient(exc):
        return TransientStorageError(str(exc))
    return PermanentStorageError(str(exc))


@contextmanager
def translated_errors() -> Iterator[None]:
    """Re-raise duckdb errors raised in the block as StorageError."""
    try:
        yield
    except duckdb.Error as e:
        raise translate_error(e) from e


class DuckDBDatabase:
    """
    Shared DuckDB database with per-thread cursors.

    Args:
        path: Database file, or ":memory:" for an in-process database.
            In-memory databases are shared by every cursor of this object.
        max_workers: Threads (and so cursors) used by run()
    """

    def __init__(self, path: str | Path = ":memory:", max_workers: int = 4) -> None:
        self.path = str(path)
        self.max_workers = max_workers
        self._executor: ThreadPoolExecutor | None = None
        self._root: duckdb.DuckDBPyConnection | None = None
        self._local = threading.local()
        self._cursors: list[duckdb.DuckDBPyConnection] = []
        self._cursors_lock = threading.Lock()
        self._generation = 0

    @property
    def is_open(self) -> bool:
        return self._root is not None

    def open(self) -> None:
        """Open the root connection (idempotent)."""
        if self._root is not None:
            return
        with translated_errors():
            self._root = duckdb.connect(self.path)
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="hybrid-rag-duckdb"
        )
        self._generation += 1
        logger.debug(f"Opened DuckDB database at {self.path}")

    def cursor(self) -> duckdb.DuckDBPyConnection:
        """Get this thread's cursor, creating it if needed."""
        if self._root is None:
            raise RuntimeError("DuckDB not initialized. Call open() first.")

        conn = getattr(self._local, "conn", None)
        # A cursor cached before a close()/open() cycle belongs to the old root
        if conn is None or getattr(self._local, "generation", None) != self._generation:
            with translated_errors():
                conn = self._root.cursor()
            self._local.conn = conn
            self._local.generation = self._generation
            with self._cursors_lock:
                self._cursors.append(conn)
        return conn

    @contextmanager
    def transaction(self) -> Iterator[duckdb.DuckDBPyConnection]:
        """
        Run a block inside BEGIN/COMMIT on this thread's cursor.

        Rolls back and re-raises (translated) if the block fails.
        """
        conn = self.cursor()
        with translated_errors():
            conn.begin()
        try:
            yield conn
            with translated_errors():
                conn.commit()
        except BaseException:
            try:
                conn.rollback()
            except duckdb.Error as rollback_error:
                # Commit failures leave no open transaction to roll back
                logger.debug(f"Rollback after failed transaction: {rollback_error}")
            raise

    def execute(self, sql: str, params: list[Any] | None = None) -> duckdb.DuckDBPyConnection:
        """Execute one statement on this thread's cursor, translating errors."""
        conn = self.cursor()
        with translated_errors():
            return conn.execute(sql, params or [])

    async def run(self, fn: Callable[..., T], *args: Any) -> T:
        """Run a blocking function on the database thread pool."""
        if self._executor is None:
            raise RuntimeError("DuckDB not initialized. Call open() first.")
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, partial(fn, *args))

    def close(self) -> None:
        """Close every cursor and the root connection."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        with self._cursors_lock:
            cursors, self._cursors = self._cursors, []
        for conn in cursors:
            try:
                conn.close()
            except duckdb.Error as e:
                logger.debug(f"Closing cursor failed: {e}")
        if self._root is not None:
            self._root.close()
            self._root = None
        self._local = threading.local()
        logger.debug(f"Closed DuckDB database at {self.path}")


def rows_to_dicts(
    rows: list[tuple[Any, ...]],
    conn: duckdb.DuckDBPyConnection,
) -> list[dict[str, Any]]:
    """Pair fetched rows with column names from the cursor description."""
    col_names = [desc[0] for desc in conn.description]
    return [dict(zip(col_names, row)) for row in rows]
