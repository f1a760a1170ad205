"""
PalmRecord DB Backend — Base Adapter Interface.

All database backends implement this interface. The ``Database`` engine
delegates to the adapter selected from the connection URL.

The interface hides the dialect-specific parts the query builder needs:
- Identifier quoting (backticks by default)
- LIMIT/OFFSET syntax
- Date-part extraction for month/year filters
- Transaction and savepoint statements
- Generated primary key retrieval
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence


__all__ = [
    "DatabaseAdapter",
    "AdapterCapabilities",
]


@dataclass
class AdapterCapabilities:
    """Describes what a specific backend supports."""

    supports_savepoints: bool = True
    supports_right_join: bool = True
    param_style: str = "qmark"  # qmark (?) | format (%s) | numeric ($1)
    identifier_quote: str = "`"
    name: str = "base"


class DatabaseAdapter(ABC):
    """
    Abstract database adapter interface.

    All backends must implement the abstract methods. The SQL-shaping
    helpers have working defaults that a backend overrides where its
    dialect differs.
    """

    capabilities: AdapterCapabilities = AdapterCapabilities()

    @abstractmethod
    async def connect(self, url: str, **options) -> None:
        """Open a connection to the database."""
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the database connection."""
        ...

    @abstractmethod
    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
        """Execute a SQL statement. Returns a cursor-like object."""
        ...

    @abstractmethod
    async def fetch_all(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        """Execute and return all rows as dicts."""
        ...

    @abstractmethod
    async def fetch_one(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[Dict[str, Any]]:
        """Execute and return one row as dict, or None."""
        ...

    @abstractmethod
    async def fetch_val(self, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
        """Execute and return a scalar value."""
        ...

    # ── Transaction management ───────────────────────────────────────

    @abstractmethod
    async def begin(self) -> None:
        """Start a transaction."""
        ...

    @abstractmethod
    async def commit(self) -> None:
        """Commit the current transaction."""
        ...

    @abstractmethod
    async def rollback(self) -> None:
        """Rollback the current transaction."""
        ...

    @abstractmethod
    async def savepoint(self, name: str) -> None:
        """Create a savepoint."""
        ...

    @abstractmethod
    async def release_savepoint(self, name: str) -> None:
        """Release (commit) a savepoint."""
        ...

    @abstractmethod
    async def rollback_to_savepoint(self, name: str) -> None:
        """Rollback to a savepoint."""
        ...

    # ── SQL adaptation ───────────────────────────────────────────────

    def quote_identifier(self, name: str) -> str:
        """
        Quote a table or column name.

        Dotted names (``orders.user_id``) are quoted per segment and ``*``
        is left alone, so ``orders.*`` becomes ```orders`.*``.
        """
        q = self.capabilities.identifier_quote
        parts = []
        for part in name.split("."):
            if part == "*":
                parts.append(part)
            else:
                parts.append(f"{q}{part.replace(q, q + q)}{q}")
        return ".".join(parts)

    def limit_clause(self, limit: Optional[int], offset: Optional[int]) -> str:
        """Render LIMIT/OFFSET; empty string when neither is set."""
        if limit is None and offset is None:
            return ""
        if limit is None:
            return f"OFFSET {int(offset)}"
        sql = f"LIMIT {int(limit)}"
        if offset is not None:
            sql += f" OFFSET {int(offset)}"
        return sql

    def date_part_sql(self, part: str, quoted_column: str) -> str:
        """SQL expression extracting ``date``, ``month`` or ``year`` from a column."""
        return f"{part.upper()}({quoted_column})"

    def last_insert_id(self, cursor: Any) -> Optional[int]:
        """Extract last inserted ID from cursor."""
        if hasattr(cursor, "lastrowid"):
            return cursor.lastrowid
        return None

    @property
    def is_connected(self) -> bool:
        """Check if the adapter is connected."""
        return False

    @property
    def dialect(self) -> str:
        """Return the SQL dialect name."""
        return self.capabilities.name
