"""
PalmRecord Model Signals — pre/post save and delete hooks.

Receivers can be plain functions or coroutines and may be restricted to
one model class:

    from palmrecord.models.signals import pre_save, post_save

    @pre_save.connect(sender=User)
    def normalise_email(sender, instance, **kwargs):
        instance.email = instance.email.lower()

    @post_save.connect
    async def audit(sender, instance, created, **kwargs):
        if created:
            await AuditLog.create({"model": sender.__name__, "ref": instance.id})

A receiver that raises is logged and its exception is returned in the
``send()`` result list; the remaining receivers still run.
"""

from __future__ import annotations

import contextlib
import inspect
import logging
from typing import Any, Callable, List, Optional, Type

logger = logging.getLogger("palmrecord.models.signals")

__all__ = [
    "Signal",
    "pre_save",
    "post_save",
    "pre_delete",
    "post_delete",
    "receiver",
]


class Signal:
    """
    A named hook that model persistence fires.

    Receivers are called as ``receiver(sender=ModelClass, **kwargs)``,
    ordered by ascending ``priority`` and then by connection order.
    """

    def __init__(self, name: str):
        self.name = name
        # Each entry: (receiver, sender_filter, priority)
        self._receivers: List[tuple] = []

    def connect(
        self,
        receiver: Callable = None,
        *,
        sender: Optional[Type] = None,
        priority: int = 100,
    ):
        """
        Connect a receiver. Usable bare (``@sig.connect``), with options
        (``@sig.connect(sender=User)``), or as a plain call.
        """
        def _decorator(fn: Callable) -> Callable:
            self._add_receiver(fn, sender, priority)
            return fn

        if receiver is not None and callable(receiver):
            return _decorator(receiver)
        return _decorator

    def _add_receiver(self, fn: Callable, sender: Optional[Type], priority: int) -> None:
        for existing, existing_sender, _ in self._receivers:
            if existing is fn and existing_sender is sender:
                return  # Already connected

        self._receivers.append((fn, sender, priority))
        # Stable sort keeps insertion order for ties
        self._receivers.sort(key=lambda x: x[2])

    def disconnect(self, receiver: Callable, *, sender: Optional[Type] = None) -> bool:
        """
        Disconnect a receiver.

        Returns True if the receiver was found and removed.
        """
        for i, (fn, s, _) in enumerate(self._receivers):
            if fn is receiver and (sender is None or s is sender):
                self._receivers.pop(i)
                return True
        return False

    async def send(self, sender: Type, **kwargs) -> List[Any]:
        """
        Fire the signal, calling every matching receiver.

        Returns:
            List of receiver return values (or the exception a receiver raised)
        """
        results = []
        for fn, filter_sender, _ in list(self._receivers):
            if filter_sender is not None and sender is not filter_sender:
                continue
            try:
                result = fn(sender=sender, **kwargs)
                if inspect.isawaitable(result):
                    result = await result
                results.append(result)
            except Exception as exc:
                logger.error(
                    f"Signal '{self.name}' receiver {getattr(fn, '__name__', fn)!s} "
                    f"raised {exc.__class__.__name__}: {exc}"
                )
                results.append(exc)
        return results

    @property
    def receivers(self) -> List[Callable]:
        return [fn for fn, _, _ in self._receivers]

    def has_listeners(self, sender: Optional[Type] = None) -> bool:
        """Check if any receivers are connected (optionally for a sender)."""
        if sender is None:
            return bool(self._receivers)
        return any(s is None or s is sender for _, s, _ in self._receivers)

    @contextlib.contextmanager
    def connected(self, fn: Callable, *, sender: Optional[Type] = None, priority: int = 100):
        """
        Temporarily connect ``fn`` for the duration of a ``with`` block.

            with post_delete.connected(handler, sender=User):
                await user.delete()
        """
        self._add_receiver(fn, sender, priority)
        try:
            yield
        finally:
            self.disconnect(fn, sender=sender)

    def clear(self) -> None:
        """Remove all receivers (useful for testing)."""
        self._receivers.clear()

    def __repr__(self) -> str:
        return f"<Signal '{self.name}' receivers={len(self._receivers)}>"


# ── Built-in signals ─────────────────────────────────────────────────────────

pre_save = Signal("pre_save")
post_save = Signal("post_save")
pre_delete = Signal("pre_delete")
post_delete = Signal("post_delete")


def receiver(signal: Signal, *, sender: Optional[Type] = None):
    """
    Shorthand decorator to connect a function to a signal.

        @receiver(pre_delete, sender=Post)
        def forget(sender, instance, **kwargs):
            ...
    """
    def _decorator(fn: Callable) -> Callable:
        signal.connect(fn, sender=sender)
        return fn
    return _decorator
