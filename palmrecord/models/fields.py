"""
PalmRecord Model Fields — typed read-through views over the attribute map.

A field never stores a value of its own. Reading ``user.age`` converts
``user._attributes["age"]`` with ``to_python``; assigning ``user.age = 3``
writes ``to_db(3)`` straight back into the map. Persistence therefore
always sees the latest value and needs no sync step.

    class User(Model):
        table = "users"

        name = CharField()
        age = IntegerField(null=True)
        active = BooleanField(default=True)
        joined = DateTimeField(null=True)
"""

from __future__ import annotations

import copy
import datetime
from typing import Any, Optional, Type, TYPE_CHECKING

if TYPE_CHECKING:
    from .base import Model

__all__ = [
    "UNSET",
    "Field",
    "IntegerField",
    "FloatField",
    "CharField",
    "TextField",
    "BooleanField",
    "DateTimeField",
]


# ── Sentinel ─────────────────────────────────────────────────────────────────

class _Unset:
    """Sentinel for distinguishing 'not set' from None."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "<UNSET>"

    def __bool__(self):
        return False

UNSET = _Unset()


class Field:
    """
    Base field descriptor.

    Parameters:
        null      – Column may hold NULL (informational)
        default   – Default value or callable, applied on construction
        db_column – Override column name
    """

    _python_type: type = object

    def __init__(
        self,
        *,
        null: bool = False,
        default: Any = UNSET,
        db_column: Optional[str] = None,
    ):
        self.null = null
        self.default = default
        self.db_column = db_column

        # Set by __set_name__
        self.name: str = ""
        self.attr_name: str = ""
        self.model: Optional[Type[Model]] = None

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = self.db_column or name
        self.attr_name = name
        self.model = owner

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {self.name}>"

    def __get__(self, instance: Any, owner: type) -> Any:
        if instance is None:
            return self
        return self.to_python(instance._attributes.get(self.column_name))

    def __set__(self, instance: Any, value: Any) -> None:
        instance._attributes[self.column_name] = self.to_db(value)

    @property
    def column_name(self) -> str:
        """Database column name."""
        return self.db_column or self.name

    def has_default(self) -> bool:
        return self.default is not UNSET

    def get_default(self) -> Any:
        """Get default value, calling it if callable."""
        if self.default is UNSET:
            return None
        if callable(self.default):
            return self.default()
        return copy.deepcopy(self.default)

    def to_python(self, value: Any) -> Any:
        """Convert database value to Python object."""
        return value

    def to_db(self, value: Any) -> Any:
        """Convert Python value to database-ready value."""
        return value


class IntegerField(Field):
    _python_type = int

    def to_python(self, value: Any) -> Any:
        if value is None:
            return None
        return int(value)

    def to_db(self, value: Any) -> Any:
        if value is None:
            return None
        return int(value)


class FloatField(Field):
    """Double-precision floating-point field."""

    _python_type = float

    def to_python(self, value: Any) -> Any:
        if value is None:
            return None
        return float(value)

    def to_db(self, value: Any) -> Any:
        if value is None:
            return None
        return float(value)


class CharField(Field):
    """Short text field."""

    _python_type = str

    def __init__(self, *, max_length: int = 255, **kwargs: Any):
        self.max_length = max_length
        super().__init__(**kwargs)

    def to_db(self, value: Any) -> Any:
        if value is None:
            return None
        return str(value)


class TextField(CharField):
    """Long text field — no length restriction."""

    def __init__(self, **kwargs: Any):
        super().__init__(max_length=0, **kwargs)


class BooleanField(Field):
    """Boolean field — stored as INTEGER 0/1 in SQLite."""

    _python_type = bool

    def to_python(self, value: Any) -> Any:
        if value is None:
            return None
        return bool(value)

    def to_db(self, value: Any) -> Any:
        if value is None:
            return None
        return 1 if value else 0


class DateTimeField(Field):
    """DateTime field stored as an ISO-8601 string."""

    _python_type = datetime.datetime

    def to_python(self, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, datetime.datetime):
            return value
        if isinstance(value, str):
            return datetime.datetime.fromisoformat(value)
        return value

    def to_db(self, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, datetime.datetime):
            return value.isoformat()
        return str(value)
