"""
Tests for DatabaseManager: schema, fetch modes, transactions, error mapping.
"""

import sqlite3
import time

import pytest

from nexusrag.core.database import DatabaseManager, FetchType, _classify_sqlite_error
from nexusrag.core.exceptions import (
    StoreBusyError,
    StoreConstraintError,
    StoreCorruptError,
    StoreError,
)

INSERT_TAG = """
    INSERT INTO tags (id, name, usage_count, created_at, updated_at)
    VALUES (?, ?, 1, '2024-01-01T00:00:00Z', '2024-01-01T00:00:00Z')
"""


@pytest.mark.asyncio
async def test_schema_is_created(db):
    result = await db.execute_async(
        "SELECT name FROM sqlite_master WHERE type IN ('table') ORDER BY name", (), FetchType.ALL
    )
    names = {row["name"] for row in result.data}

    assert {"chunks", "chunks_fts", "tags", "tag_links"} <= names


@pytest.mark.asyncio
async def test_fetch_modes(db):
    write = await db.execute_async(INSERT_TAG, ("t1", "alpha"))
    assert write.rows_affected == 1
    assert write.data is None

    one = await db.execute_async("SELECT name FROM tags WHERE id = ?", ("t1",), FetchType.ONE)
    assert one.data == {"name": "alpha"}

    missing = await db.execute_async("SELECT name FROM tags WHERE id = ?", ("t2",), FetchType.ONE)
    assert missing.data is None


@pytest.mark.asyncio
async def test_unique_violation_is_constraint_error(db):
    await db.execute_async(INSERT_TAG, ("t1", "alpha"))

    with pytest.raises(StoreConstraintError):
        await db.execute_async(INSERT_TAG, ("t2", "alpha"))


@pytest.mark.asyncio
async def test_transaction_rolls_back_on_error(db):
    def work(conn):
        conn.execute(INSERT_TAG, ("t1", "alpha"))
        raise RuntimeError("abort")

    with pytest.raises(RuntimeError):
        await db.run_in_transaction(work)

    result = await db.execute_async("SELECT COUNT(*) AS n FROM tags", (), FetchType.ONE)
    assert result.data["n"] == 0


@pytest.fixture
async def slow_db():
    manager = DatabaseManager(":memory:", query_timeout=0.1)
    await manager.execute_async("CREATE TABLE t (x INTEGER)")
    await manager.execute_async("INSERT INTO t (x) VALUES (1)")
    yield manager
    await manager.close()


@pytest.mark.asyncio
async def test_timed_out_transaction_is_rolled_back(slow_db):
    def work(conn):
        conn.execute("DELETE FROM t")
        time.sleep(0.5)
        raise RuntimeError("too slow")

    with pytest.raises(StoreBusyError):
        await slow_db.run_in_transaction(work)

    await slow_db.execute_async("CREATE TABLE other (y INTEGER)")
    rows = await slow_db.execute_async("SELECT x FROM t", (), FetchType.ALL)
    assert rows.data == [{"x": 1}]


@pytest.mark.asyncio
async def test_timed_out_transaction_never_commits_late_success(slow_db):
    def work(conn):
        conn.execute("DELETE FROM t")
        time.sleep(0.5)
        return "done"

    with pytest.raises(StoreBusyError):
        await slow_db.run_in_transaction(work)

    rows = await slow_db.execute_async("SELECT x FROM t", (), FetchType.ALL)
    assert rows.data == [{"x": 1}]


@pytest.mark.asyncio
async def test_file_database_creates_parent_directory(tmp_path):
    path = tmp_path / "nested" / "dir" / "store.db"
    manager = DatabaseManager(path)
    try:
        assert path.exists()
    finally:
        await manager.close()


@pytest.mark.parametrize(
    "error, expected",
    [
        (sqlite3.OperationalError("database is locked"), StoreBusyError),
        (sqlite3.DatabaseError("database disk image is malformed"), StoreCorruptError),
        (sqlite3.IntegrityError("UNIQUE constraint failed: tags.name"), StoreConstraintError),
        (sqlite3.OperationalError("no such table: nope"), StoreError),
    ],
)
def test_classify_sqlite_error(error, expected):
    classified = _classify_sqlite_error(error)

    assert type(classified) is expected
    assert classified.cause is error
    assert classified.suggestions
