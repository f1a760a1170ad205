"""
PalmRecord Transactions — atomic() context manager with savepoint support.

Usage:
    from palmrecord.models.transactions import atomic

    async with atomic():
        user = await User.create({"name": "Alice"})
        await Profile.create({"user_id": user.id})
        # Both committed together

    async with atomic():
        await User.create({"name": "Bob"})
        try:
            async with atomic():
                await Post.create({"title": "Hello"})
                raise ValueError("oops")  # inner savepoint rolled back
        except ValueError:
            pass
        # Bob is still saved, the post is not

    async with atomic() as txn:
        order = await Order.create({"total": 100})
        txn.on_commit(lambda: notify(order.id))
"""

from __future__ import annotations

import contextvars
import inspect
import logging
import uuid
from typing import Callable, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from ..db.engine import Database

logger = logging.getLogger("palmrecord.models.transactions")

__all__ = [
    "atomic",
    "Atomic",
]

# Innermost open block for the current task
_current: contextvars.ContextVar[Optional["Atomic"]] = contextvars.ContextVar(
    "palmrecord_atomic", default=None
)


class Atomic:
    """
    Async context manager for database transactions.

    - The outermost block issues BEGIN and COMMIT/ROLLBACK
    - Nested blocks create, release or roll back a SAVEPOINT
    - An exception rolls back the innermost scope and propagates
    - ``on_commit`` hooks run after the outermost COMMIT only; hooks
      registered in a nested block are dropped if that block rolls back
    """

    def __init__(self, db: Optional[Database] = None):
        self._db = db
        self._savepoint_id: Optional[str] = None
        self._is_outermost = False
        self._parent: Optional[Atomic] = None
        self._token: Optional[contextvars.Token] = None
        self._commit_hooks: List[Callable] = []
        self._rollback_hooks: List[Callable] = []

    def _get_db(self) -> Database:
        if self._db is not None:
            return self._db
        from .registry import ModelRegistry
        return ModelRegistry.get_database()

    @property
    def is_outermost(self) -> bool:
        return self._is_outermost

    @property
    def savepoint_id(self) -> Optional[str]:
        return self._savepoint_id

    def on_commit(self, fn: Callable) -> None:
        """Register a sync or async callable to run after the outermost commit."""
        self._commit_hooks.append(fn)

    def on_rollback(self, fn: Callable) -> None:
        """Register a sync or async callable to run if this block rolls back."""
        self._rollback_hooks.append(fn)

    async def _fire_hooks(self, hooks: List[Callable]) -> None:
        for hook in hooks:
            try:
                result = hook()
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.error(f"Transaction hook failed: {exc}")

    async def __aenter__(self) -> Atomic:
        db = self._get_db()
        await db.ensure_connected()

        self._parent = _current.get()
        if not db.in_transaction:
            self._is_outermost = True
            self._parent = None
            await db.begin()
            logger.debug("Transaction started")
        else:
            self._savepoint_id = f"sp_{uuid.uuid4().hex[:12]}"
            await db.savepoint(self._savepoint_id)

        self._token = _current.set(self)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        db = self._get_db()
        _current.reset(self._token)

        if exc_type is not None:
            if self._savepoint_id:
                await db.rollback_to_savepoint(self._savepoint_id)
                # The savepoint stays on the stack after ROLLBACK TO
                await db.release_savepoint(self._savepoint_id)
                logger.debug(f"Rolled back savepoint {self._savepoint_id}")
            else:
                await db.rollback()
                logger.debug("Rolled back transaction")
            await self._fire_hooks(self._rollback_hooks)
            return False

        if self._savepoint_id:
            await db.release_savepoint(self._savepoint_id)
            logger.debug(f"Released savepoint {self._savepoint_id}")
            if self._parent is not None:
                self._parent._commit_hooks.extend(self._commit_hooks)
                self._parent._rollback_hooks.extend(self._rollback_hooks)
        else:
            await db.commit()
            logger.debug("Committed transaction")
            await self._fire_hooks(self._commit_hooks)
        return False


def atomic(db: Optional[Database] = None) -> Atomic:
    """
    Create an atomic transaction context manager.

    Args:
        db: Database instance. If None, uses the database models are bound to.
    """
    return Atomic(db)
