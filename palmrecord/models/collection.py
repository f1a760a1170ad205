"""
PalmRecord Collection — ordered, densely indexed query results.

A ``Collection`` wraps the rows of one query execution. It behaves like a
list (indexing, assignment, ``del``, ``in``, slicing, iteration) and is
always re-indexed ``0..n-1``: deleting an element shifts the rest down,
so no gaps are ever exposed.

>>> c = Collection({3: "a", 7: "b"})
>>> c[0], c[1], len(c)
('a', 'b', 2)
>>> del c[0]
>>> c.first()
'b'
"""

from __future__ import annotations

import json
from collections.abc import Mapping, MutableSequence
from types import SimpleNamespace
from typing import Any, Callable, Iterable, Iterator, List, Optional, TypeVar, Union

T = TypeVar("T")

__all__ = ["Collection", "to_plain"]

_MISSING = object()


def to_plain(value: Any) -> Any:
    """
    Recursively convert models, collections and namespaces to plain data.

    Primitives pass through unchanged.
    """
    if hasattr(value, "to_dict") and callable(value.to_dict):
        return value.to_dict()
    if isinstance(value, Collection):
        return value.to_list()
    if isinstance(value, SimpleNamespace):
        return {k: to_plain(v) for k, v in vars(value).items()}
    if isinstance(value, Mapping):
        return {k: to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    return value


class Collection(MutableSequence):
    """List-like wrapper around a multi-row result."""

    __slots__ = ("_items",)

    def __init__(self, items: Union[Iterable[T], Mapping[Any, T], None] = None) -> None:
        if items is None:
            self._items: List[Any] = []
        elif isinstance(items, Mapping):
            # Source keys are discarded; only their order is kept
            self._items = list(items.values())
        else:
            self._items = list(items)

    # ── Container protocol ───────────────────────────────────────────

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Any]:
        return iter(self._items)

    def __getitem__(self, idx: Union[int, slice]) -> Any:
        if isinstance(idx, slice):
            return Collection(self._items[idx])
        return self._items[idx]

    def __setitem__(self, idx: Union[int, slice], value: Any) -> None:
        self._items[idx] = value

    def __delitem__(self, idx: Union[int, slice]) -> None:
        del self._items[idx]

    def insert(self, index: int, value: Any) -> None:
        self._items.insert(index, value)

    def __bool__(self) -> bool:
        return bool(self._items)

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, Collection):
            return self._items == other._items
        if isinstance(other, list):
            return self._items == other
        return NotImplemented

    def __repr__(self) -> str:
        return f"Collection({self._items!r})"

    # ── Queries ──────────────────────────────────────────────────────

    def first(self) -> Optional[Any]:
        """Element at index 0, or None if empty."""
        return self._items[0] if self._items else None

    def last(self) -> Optional[Any]:
        return self._items[-1] if self._items else None

    def count(self, value: Any = _MISSING) -> int:
        """
        Number of elements.

        With an argument, counts occurrences of ``value`` like ``list.count``.
        """
        if value is _MISSING:
            return len(self._items)
        return self._items.count(value)

    def is_empty(self) -> bool:
        return not self._items

    def map(self, fn: Callable[[Any], Any]) -> Collection:
        """New Collection with ``fn`` applied to every element."""
        return Collection(fn(item) for item in self._items)

    def filter(self, fn: Callable[[Any], bool]) -> Collection:
        return Collection(item for item in self._items if fn(item))

    def pluck(self, key: str) -> List[Any]:
        """Values of one attribute (or mapping key) from every element."""
        out = []
        for item in self._items:
            if isinstance(item, Mapping):
                out.append(item.get(key))
            elif hasattr(item, "get") and callable(item.get):
                out.append(item.get(key))
            else:
                out.append(getattr(item, key, None))
        return out

    # ── Serialization ────────────────────────────────────────────────

    def to_list(self) -> List[Any]:
        """Recursively convert every element to plain lists and dicts."""
        return [to_plain(item) for item in self._items]

    def to_json(self, **kwargs: Any) -> str:
        kwargs.setdefault("default", str)
        return json.dumps(self.to_list(), **kwargs)
