"""
PalmRecord Database Engine — async connection manager.

Provides:
- Database: async connection manager delegating to a backend adapter
- Connection retries and transparent reconnection
- Structured faults instead of bare driver exceptions
- DEBUG-level SQL logging and an executed-statement counter
- Named database registry (``get_database`` / ``configure_database``)
"""

from __future__ import annotations

import asyncio
import logging
import re
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Union

from ..config import DatabaseConfig
from ..faults.domains import DatabaseConnectionFault, QueryFault
from .backends.base import DatabaseAdapter, AdapterCapabilities

logger = logging.getLogger("palmrecord.db")

# Savepoint names are interpolated into SQL, so only identifiers pass
_SP_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


def _sanitize_savepoint(name: str) -> str:
    if not _SP_NAME_RE.match(name):
        raise QueryFault(
            model="<transaction>",
            operation="savepoint",
            reason=f"Invalid savepoint name: {name!r}",
        )
    return name


def _create_adapter(driver: str) -> DatabaseAdapter:
    if driver == "sqlite":
        from .backends.sqlite import SQLiteAdapter
        return SQLiteAdapter()
    raise DatabaseConnectionFault(
        url=f"<{driver}>",
        reason=f"no adapter for driver {driver!r}",
    )


class Database:
    """
    Async database engine.

    All operations are async and use parameterized queries with ``?``
    placeholders. Driver exceptions are re-raised as ``QueryFault`` with
    the original exception chained.

    Usage:
        db = Database("sqlite:///app.db")
        await db.connect()
        rows = await db.fetch_all("SELECT * FROM users WHERE active = ?", [True])
        await db.disconnect()
    """

    __slots__ = (
        "_url",
        "_driver",
        "_adapter",
        "_connected",
        "_lock",
        "_options",
        "_in_transaction",
        "_connect_retries",
        "_connect_retry_delay",
        "_queries_executed",
    )

    def __init__(self, url: str = "sqlite:///:memory:", **options: Any):
        """
        Args:
            url: ``sqlite:///path/to/file.db`` or ``sqlite:///:memory:``
            **options: Passed to the adapter's connect call, except
                ``connect_retries`` (default 3) and ``connect_retry_delay``
                (seconds, default 0.5) which control ``connect()``.
        """
        self._url = url
        self._driver = self._detect_driver(url)
        self._adapter: DatabaseAdapter = _create_adapter(self._driver)
        self._connected = False
        self._lock = asyncio.Lock()
        self._options = options
        self._in_transaction = False
        self._connect_retries = int(options.pop("connect_retries", 3))
        self._connect_retry_delay = float(options.pop("connect_retry_delay", 0.5))
        self._queries_executed = 0

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> Database:
        """Build an engine from a ``DatabaseConfig``."""
        config.validate()
        return cls(
            config.url,
            connect_retries=config.connect_retries,
            connect_retry_delay=config.connect_retry_delay,
            **config.options,
        )

    @staticmethod
    def _detect_driver(url: str) -> str:
        """Detect database driver from URL scheme."""
        if url.startswith("sqlite"):
            return "sqlite"
        raise DatabaseConnectionFault(
            url=url,
            reason=f"Unsupported database URL scheme: {url}",
        )

    # ── Connection management ────────────────────────────────────────

    async def connect(self) -> None:
        """Open database connection with retry logic."""
        if self._connected:
            return

        async with self._lock:
            if self._connected:
                return

            last_exc: Optional[Exception] = None
            for attempt in range(1, self._connect_retries + 1):
                try:
                    await self._adapter.connect(self._url, **self._options)
                    self._connected = True
                    logger.info(f"Database connected ({self._driver}), attempt {attempt}")
                    return
                except DatabaseConnectionFault:
                    raise
                except Exception as exc:
                    last_exc = exc
                    if attempt < self._connect_retries:
                        logger.warning(
                            f"Connection attempt {attempt} failed: {exc}, "
                            f"retrying in {self._connect_retry_delay}s..."
                        )
                        await asyncio.sleep(self._connect_retry_delay)

            raise DatabaseConnectionFault(
                url=self._url,
                reason=f"Failed after {self._connect_retries} attempts: {last_exc}",
            ) from last_exc

    async def disconnect(self) -> None:
        """Close database connection."""
        if not self._connected:
            return
        async with self._lock:
            if not self._connected:
                return
            try:
                await self._adapter.disconnect()
                self._connected = False
                logger.info("Database disconnected")
            except Exception as exc:
                self._connected = False
                raise DatabaseConnectionFault(
                    url=self._url,
                    reason=f"Disconnect failed: {exc}",
                ) from exc

    async def ensure_connected(self) -> None:
        """Ensure a live connection exists, reconnecting if needed."""
        if not self._connected:
            await self.connect()
        elif not self._adapter.is_connected:
            self._connected = False
            await self.connect()

    # ── Transactions ─────────────────────────────────────────────────

    async def begin(self) -> None:
        """Start a transaction on the underlying connection."""
        await self.ensure_connected()
        logger.debug("BEGIN")
        await self._adapter.begin()
        self._in_transaction = True

    async def commit(self) -> None:
        """Commit the current transaction."""
        logger.debug("COMMIT")
        try:
            await self._adapter.commit()
        finally:
            self._in_transaction = False

    async def rollback(self) -> None:
        """Roll back the current transaction."""
        logger.debug("ROLLBACK")
        try:
            await self._adapter.rollback()
        finally:
            self._in_transaction = False

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """
        Async context manager for a flat transaction.

        For nesting with savepoints and commit hooks use
        ``palmrecord.models.transactions.atomic`` instead.

        Usage:
            async with db.transaction():
                await db.execute("INSERT INTO ...")
                await db.execute("UPDATE ...")
        """
        await self.begin()
        try:
            yield
            await self.commit()
        except BaseException:
            await self.rollback()
            raise

    async def savepoint(self, name: str) -> None:
        """Create a named savepoint within a transaction."""
        name = _sanitize_savepoint(name)
        await self.ensure_connected()
        logger.debug(f"SAVEPOINT {name}")
        await self._adapter.savepoint(name)

    async def release_savepoint(self, name: str) -> None:
        """Release (commit) a named savepoint."""
        name = _sanitize_savepoint(name)
        await self.ensure_connected()
        logger.debug(f"RELEASE SAVEPOINT {name}")
        await self._adapter.release_savepoint(name)

    async def rollback_to_savepoint(self, name: str) -> None:
        """Roll back to a named savepoint."""
        name = _sanitize_savepoint(name)
        await self.ensure_connected()
        logger.debug(f"ROLLBACK TO SAVEPOINT {name}")
        await self._adapter.rollback_to_savepoint(name)

    # ── Query execution ──────────────────────────────────────────────

    async def _run(self, operation: str, sql: str, params: Optional[Sequence[Any]]) -> Any:
        await self.ensure_connected()

        params = list(params) if params is not None else []
        logger.debug(f"{sql} {params}")
        try:
            self._queries_executed += 1
            return await getattr(self._adapter, operation)(sql, params)
        except (DatabaseConnectionFault, QueryFault):
            raise
        except Exception as exc:
            raise QueryFault(
                model="<raw>",
                operation=operation,
                reason=str(exc),
                metadata={"sql": sql[:200], "params": params},
            ) from exc

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
        """
        Execute a SQL statement.

        Args:
            sql: SQL query with ? placeholders
            params: Parameter values

        Returns:
            Cursor-like object (exposes lastrowid, rowcount)

        Raises:
            QueryFault: When query execution fails
        """
        return await self._run("execute", sql, params)

    async def fetch_all(
        self, sql: str, params: Optional[Sequence[Any]] = None
    ) -> List[Dict[str, Any]]:
        """
        Execute query and return all rows as dicts.

        Raises:
            QueryFault: When query execution fails
        """
        return await self._run("fetch_all", sql, params)

    async def fetch_one(
        self, sql: str, params: Optional[Sequence[Any]] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Execute query and return first row as dict, or None.

        Raises:
            QueryFault: When query execution fails
        """
        return await self._run("fetch_one", sql, params)

    async def fetch_val(
        self, sql: str, params: Optional[Sequence[Any]] = None
    ) -> Any:
        """
        Execute query and return scalar value from first row, first column.

        Raises:
            QueryFault: When query execution fails
        """
        return await self._run("fetch_val", sql, params)

    def last_insert_id(self, cursor: Any) -> Optional[int]:
        """Generated key of the row inserted by ``cursor``."""
        return self._adapter.last_insert_id(cursor)

    def quote_identifier(self, name: str) -> str:
        return self._adapter.quote_identifier(name)

    # ── Properties ───────────────────────────────────────────────────

    @property
    def is_connected(self) -> bool:
        return self._connected and self._adapter.is_connected

    @property
    def url(self) -> str:
        return self._url

    @property
    def driver(self) -> str:
        return self._driver

    @property
    def dialect(self) -> str:
        """Return the SQL dialect name."""
        return self._adapter.dialect

    @property
    def capabilities(self) -> AdapterCapabilities:
        """Return backend capabilities."""
        return self._adapter.capabilities

    @property
    def adapter(self) -> DatabaseAdapter:
        """Direct access to the underlying adapter (advanced use)."""
        return self._adapter

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    @property
    def queries_executed(self) -> int:
        """Number of statements sent through this engine."""
        return self._queries_executed

    def reset_query_count(self) -> None:
        self._queries_executed = 0


# ── Module-level registry ───────────────────────────────────────────────────

_default_database: Optional[Database] = None
_database_registry: Dict[str, Database] = {}


def get_database(alias: Optional[str] = None) -> Database:
    """
    Get a database instance by alias, or the default.

    Raises:
        DatabaseConnectionFault: If no database is configured.
    """
    if alias and alias != "default":
        db = _database_registry.get(alias)
        if db is None:
            raise DatabaseConnectionFault(
                url=f"<alias:{alias}>",
                reason=f"No database configured with alias '{alias}'. "
                       f"Available: {list(_database_registry.keys())}",
            )
        return db

    if _default_database is None:
        raise DatabaseConnectionFault(
            url="<not configured>",
            reason="No database configured. Call configure_database() first.",
        )
    return _default_database


def configure_database(
    url: Union[str, DatabaseConfig] = "sqlite:///:memory:",
    *,
    alias: str = "default",
    **options: Any,
) -> Database:
    """
    Configure, register and return a database instance.

    Args:
        url: Database connection URL or a ``DatabaseConfig``
        alias: Database alias (default "default"); a config carries its own
        **options: Driver-specific options
    """
    if isinstance(url, DatabaseConfig):
        db = Database.from_config(url)
        alias = url.alias
    else:
        db = Database(url, **options)
    set_database(db, alias=alias)
    return db


def set_database(db: Optional[Database], *, alias: str = "default") -> None:
    """Set an externally-created database as the default or by alias.

    Passing ``None`` unregisters the alias.
    """
    global _default_database
    if db is None:
        _database_registry.pop(alias, None)
        if alias == "default":
            _default_database = None
        return
    _database_registry[alias] = db
    if alias == "default":
        _default_database = db


def get_all_databases() -> Dict[str, Database]:
    """Return all configured database instances."""
    return dict(_database_registry)
