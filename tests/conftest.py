"""
Shared fixtures for the PalmRecord test suite.

Every async test gets a fresh in-memory SQLite database with the blog
schema created and bound to all models.
"""

import logging

import pytest
import pytest_asyncio

from palmrecord.db import Database
from palmrecord.models import ModelRegistry
from palmrecord.models.signals import pre_save, post_save, pre_delete, post_delete


SCHEMA = [
    """
    CREATE TABLE users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        email TEXT UNIQUE,
        age INTEGER,
        active INTEGER DEFAULT 1,
        created_at TEXT,
        updated_at TEXT
    )
    """,
    """
    CREATE TABLE posts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER,
        title TEXT NOT NULL,
        views INTEGER DEFAULT 0,
        published_at TEXT
    )
    """,
    """
    CREATE TABLE profiles (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER,
        bio TEXT
    )
    """,
    """
    CREATE TABLE products (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        price REAL,
        category TEXT
    )
    """,
    """
    CREATE TABLE tickets (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        "case" INTEGER,
        "distinct" TEXT
    )
    """,
    """
    CREATE TABLE vendors (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT
    )
    """,
    """
    CREATE TABLE listings (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        vendor_id TEXT,
        label TEXT
    )
    """,
]


@pytest_asyncio.fixture
async def db():
    """Connected in-memory database with the test schema, bound to all models."""
    database = Database("sqlite:///:memory:")
    await database.connect()
    for statement in SCHEMA:
        await database.execute(statement)
    ModelRegistry.set_database(database)
    database.reset_query_count()
    yield database
    ModelRegistry.set_database(None)
    await database.disconnect()


@pytest.fixture
def offline_db():
    """Unconnected database bound to all models, for compiling SQL only."""
    database = Database("sqlite:///:memory:")
    ModelRegistry.set_database(database)
    yield database
    ModelRegistry.set_database(None)


@pytest.fixture(autouse=True)
def _clear_signals():
    yield
    for signal in (pre_save, post_save, pre_delete, post_delete):
        signal.clear()


@pytest.fixture
def sql_log(caplog):
    """Capture statements sent through the engine; call it to get the SQL lines."""
    caplog.set_level(logging.DEBUG, logger="palmrecord.db")

    def statements(prefix: str = ""):
        return [
            r.getMessage()
            for r in caplog.records
            if r.name == "palmrecord.db" and r.getMessage().startswith(prefix)
        ]

    statements.clear = caplog.clear
    return statements
