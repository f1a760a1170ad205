"""
PalmRecord DB — async database engine and backend adapters.
"""

from .engine import (
    Database,
    get_database,
    configure_database,
    set_database,
    get_all_databases,
)
from .backends import DatabaseAdapter, AdapterCapabilities, SQLiteAdapter

__all__ = [
    "Database",
    "get_database",
    "configure_database",
    "set_database",
    "get_all_databases",
    "DatabaseAdapter",
    "AdapterCapabilities",
    "SQLiteAdapter",
]
