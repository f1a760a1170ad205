"""
DB Engine Tests — Database with in-memory SQLite.

Tests connection, query execution, fault wrapping and dialect helpers.
"""

import sqlite3

import pytest
import pytest_asyncio

from palmrecord.db import Database, SQLiteAdapter, configure_database, get_database, set_database
from palmrecord.faults import DatabaseConnectionFault, QueryFault


@pytest_asyncio.fixture
async def raw_db():
    database = Database("sqlite:///:memory:")
    await database.connect()
    await database.execute("CREATE TABLE test (id INTEGER PRIMARY KEY, name TEXT)")
    yield database
    await database.disconnect()


class TestDatabaseConnection:
    """Test database connection management."""

    @pytest.mark.asyncio
    async def test_connect_disconnect(self):
        """Connect and disconnect cleanly."""
        db = Database("sqlite:///:memory:")
        assert db.is_connected is False

        await db.connect()
        assert db.is_connected is True

        await db.disconnect()
        assert db.is_connected is False

    @pytest.mark.asyncio
    async def test_double_connect_and_disconnect_safe(self):
        db = Database("sqlite:///:memory:")
        await db.connect()
        await db.connect()
        assert db.is_connected is True
        await db.disconnect()
        await db.disconnect()

    @pytest.mark.asyncio
    async def test_lazy_connect_on_first_query(self):
        db = Database("sqlite:///:memory:")
        assert await db.fetch_val("SELECT 1") == 1
        assert db.is_connected
        await db.disconnect()

    def test_detect_driver(self):
        db = Database("sqlite:///test.db")
        assert db.driver == "sqlite"
        assert db.dialect == "sqlite"
        assert isinstance(db.adapter, SQLiteAdapter)

    def test_unsupported_driver(self):
        """Reject unsupported URL scheme."""
        with pytest.raises(DatabaseConnectionFault, match="Unsupported"):
            Database("postgresql://localhost/app")

    @pytest.mark.asyncio
    async def test_connect_failure_after_retries(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'missing' / 'app.db'}"
        db = Database(url, connect_retries=2, connect_retry_delay=0)

        with pytest.raises(DatabaseConnectionFault, match="after 2 attempts") as exc_info:
            await db.connect()

        assert isinstance(exc_info.value.__cause__, sqlite3.OperationalError)
        assert db.is_connected is False

    @pytest.mark.asyncio
    async def test_file_database(self, tmp_path):
        path = tmp_path / "app.db"
        db = Database(f"sqlite:///{path}")
        await db.connect()
        await db.execute("CREATE TABLE t (x INTEGER)")
        await db.execute("INSERT INTO t (x) VALUES (?)", [7])
        await db.disconnect()

        again = Database(f"sqlite:///{path}")
        assert await again.fetch_val("SELECT x FROM t") == 7
        await again.disconnect()


class TestDatabaseExecute:
    """Test SQL execution."""

    @pytest.mark.asyncio
    async def test_insert_and_fetch(self, raw_db):
        cursor = await raw_db.execute("INSERT INTO test (name) VALUES (?)", ["a"])
        assert raw_db.last_insert_id(cursor) == 1
        await raw_db.execute("INSERT INTO test (name) VALUES (?)", ["b"])

        rows = await raw_db.fetch_all("SELECT * FROM test ORDER BY id")
        assert rows == [{"id": 1, "name": "a"}, {"id": 2, "name": "b"}]

        row = await raw_db.fetch_one("SELECT * FROM test WHERE name = ?", ["b"])
        assert row == {"id": 2, "name": "b"}
        assert await raw_db.fetch_one("SELECT * FROM test WHERE id = ?", [99]) is None
        assert await raw_db.fetch_val("SELECT COUNT(*) FROM test") == 2

    @pytest.mark.asyncio
    async def test_query_counter(self, raw_db):
        raw_db.reset_query_count()
        await raw_db.fetch_all("SELECT * FROM test")
        await raw_db.fetch_val("SELECT 1")
        assert raw_db.queries_executed == 2

    @pytest.mark.asyncio
    async def test_sql_is_logged_at_debug(self, raw_db, sql_log):
        await raw_db.fetch_all("SELECT * FROM test WHERE id = ?", [3])
        assert sql_log("SELECT") == ["SELECT * FROM test WHERE id = ? [3]"]

    @pytest.mark.asyncio
    async def test_driver_error_is_wrapped(self, raw_db):
        with pytest.raises(QueryFault) as exc_info:
            await raw_db.fetch_all("SELECT * FROM no_such_table")
        fault = exc_info.value
        assert isinstance(fault.__cause__, sqlite3.OperationalError)
        assert fault.metadata["sql"] == "SELECT * FROM no_such_table"
        assert fault.metadata["operation"] == "fetch_all"

    @pytest.mark.asyncio
    async def test_invalid_savepoint_name(self, raw_db):
        with pytest.raises(QueryFault, match="Invalid savepoint name"):
            await raw_db.savepoint("sp; DROP TABLE test")

    @pytest.mark.asyncio
    async def test_savepoints(self, raw_db):
        await raw_db.begin()
        await raw_db.execute("INSERT INTO test (name) VALUES (?)", ["kept"])
        await raw_db.savepoint("sp_one")
        await raw_db.execute("INSERT INTO test (name) VALUES (?)", ["dropped"])
        await raw_db.rollback_to_savepoint("sp_one")
        await raw_db.release_savepoint("sp_one")
        await raw_db.commit()

        assert await raw_db.fetch_all("SELECT name FROM test") == [{"name": "kept"}]


class TestDialect:

    def test_quote_identifier(self):
        db = Database("sqlite:///:memory:")
        assert db.quote_identifier("users") == "`users`"
        assert db.quote_identifier("users.id") == "`users`.`id`"
        assert db.quote_identifier("users.*") == "`users`.*"
        assert db.quote_identifier("we`ird") == "`we``ird`"

    def test_limit_clause(self):
        adapter = SQLiteAdapter()
        assert adapter.limit_clause(None, None) == ""
        assert adapter.limit_clause(5, None) == "LIMIT 5"
        assert adapter.limit_clause(5, 10) == "LIMIT 5 OFFSET 10"
        assert adapter.limit_clause(None, 10) == "LIMIT -1 OFFSET 10"

    def test_date_part_sql(self):
        adapter = SQLiteAdapter()
        assert adapter.date_part_sql("date", "`d`") == "DATE(`d`)"
        assert adapter.date_part_sql("YEAR", "`d`") == "CAST(strftime('%Y', `d`) AS INTEGER)"
        with pytest.raises(ValueError):
            adapter.date_part_sql("week", "`d`")


class TestDatabaseRegistry:

    def test_unconfigured_default(self):
        set_database(None)
        with pytest.raises(DatabaseConnectionFault, match="No database configured"):
            get_database()

    def test_unknown_alias(self):
        with pytest.raises(DatabaseConnectionFault, match="alias 'missing'"):
            get_database("missing")

    def test_configure_and_lookup(self):
        try:
            default = configure_database("sqlite:///:memory:")
            reports = configure_database("sqlite:///:memory:", alias="reports")
            assert get_database() is default
            assert get_database("reports") is reports
            assert get_database("reports") is not default
        finally:
            set_database(None)
            set_database(None, alias="reports")
