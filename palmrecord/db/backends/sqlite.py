"""
PalmRecord DB Backend — SQLite adapter via aiosqlite.

This is the default backend. It wraps aiosqlite and implements the full
DatabaseAdapter interface.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

import aiosqlite

from .base import DatabaseAdapter, AdapterCapabilities

logger = logging.getLogger("palmrecord.db.backends.sqlite")

__all__ = ["SQLiteAdapter"]

# Savepoint names are interpolated into SQL
_SP_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")

_STRFTIME_PARTS = {
    "month": "%m",
    "year": "%Y",
    "day": "%d",
}


class SQLiteAdapter(DatabaseAdapter):
    """
    SQLite adapter using aiosqlite.

    Features:
    - Foreign key enforcement
    - Autocommit outside explicit transactions
    - Savepoint-based nested transactions
    - strftime-based month/year extraction
    """

    capabilities = AdapterCapabilities(
        supports_savepoints=True,
        supports_right_join=True,
        param_style="qmark",
        identifier_quote="`",
        name="sqlite",
    )

    def __init__(self):
        self._connection: Any = None
        self._connected = False
        self._lock = asyncio.Lock()
        self._in_transaction = False

    async def connect(self, url: str, **options) -> None:
        if self._connected:
            return
        async with self._lock:
            if self._connected:
                return
            db_path = self._parse_url(url)
            self._connection = await aiosqlite.connect(db_path, **options)
            await self._connection.execute("PRAGMA foreign_keys=ON")
            self._connection.row_factory = aiosqlite.Row
            self._connected = True
            logger.info(f"SQLite connected: {db_path}")

    async def disconnect(self) -> None:
        if not self._connected:
            return
        async with self._lock:
            if self._connection:
                await self._connection.close()
                self._connection = None
            self._connected = False
            logger.info("SQLite disconnected")

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
        if not self._connected:
            raise RuntimeError("Not connected")
        cursor = await self._connection.execute(sql, list(params or []))
        if not self._in_transaction:
            await self._connection.commit()
        return cursor

    async def fetch_all(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        if not self._connected:
            raise RuntimeError("Not connected")
        cursor = await self._connection.execute(sql, list(params or []))
        rows = await cursor.fetchall()
        await cursor.close()
        return [dict(row) for row in rows]

    async def fetch_one(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[Dict[str, Any]]:
        if not self._connected:
            raise RuntimeError("Not connected")
        cursor = await self._connection.execute(sql, list(params or []))
        row = await cursor.fetchone()
        await cursor.close()
        if row is None:
            return None
        return dict(row)

    async def fetch_val(self, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
        if not self._connected:
            raise RuntimeError("Not connected")
        cursor = await self._connection.execute(sql, list(params or []))
        row = await cursor.fetchone()
        await cursor.close()
        if row is None:
            return None
        return row[0]

    # ── Transactions ─────────────────────────────────────────────────

    async def begin(self) -> None:
        await self._connection.execute("BEGIN")
        self._in_transaction = True

    async def commit(self) -> None:
        await self._connection.commit()
        self._in_transaction = False

    async def rollback(self) -> None:
        await self._connection.rollback()
        self._in_transaction = False

    async def savepoint(self, name: str) -> None:
        if not _SP_NAME_RE.match(name):
            raise ValueError(f"Invalid savepoint name: {name!r}")
        await self._connection.execute(f'SAVEPOINT "{name}"')

    async def release_savepoint(self, name: str) -> None:
        if not _SP_NAME_RE.match(name):
            raise ValueError(f"Invalid savepoint name: {name!r}")
        await self._connection.execute(f'RELEASE SAVEPOINT "{name}"')

    async def rollback_to_savepoint(self, name: str) -> None:
        if not _SP_NAME_RE.match(name):
            raise ValueError(f"Invalid savepoint name: {name!r}")
        await self._connection.execute(f'ROLLBACK TO SAVEPOINT "{name}"')

    # ── Dialect ──────────────────────────────────────────────────────

    def limit_clause(self, limit: Optional[int], offset: Optional[int]) -> str:
        # SQLite rejects OFFSET without LIMIT; -1 means "no limit"
        if limit is None and offset is not None:
            return f"LIMIT -1 OFFSET {int(offset)}"
        return super().limit_clause(limit, offset)

    def date_part_sql(self, part: str, quoted_column: str) -> str:
        part = part.lower()
        if part == "date":
            return f"DATE({quoted_column})"
        fmt = _STRFTIME_PARTS.get(part)
        if fmt is None:
            raise ValueError(f"Unsupported date part: {part!r}")
        return f"CAST(strftime('{fmt}', {quoted_column}) AS INTEGER)"

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    @property
    def dialect(self) -> str:
        return "sqlite"

    @staticmethod
    def _parse_url(url: str) -> str:
        """Extract file path from sqlite URL."""
        for prefix in ("sqlite:///", "sqlite://"):
            if url.startswith(prefix):
                path = url[len(prefix):]
                return path or ":memory:"
        return url.replace("sqlite:", "").lstrip("/") or ":memory:"
