"""
PalmRecord Model Base — metaclass-driven ActiveRecord models.

Usage:
    from palmrecord.models import Model, CharField, FloatField, has_many

    class User(Model):
        table = "users"

        name = CharField()
        posts = has_many("Post", "user_id")

        class Meta:
            timestamps = True

    user = await User.create({"name": "Alice"})
    same = await User.find(user.id)
    adults = await User.where("age", ">=", 18).order_by("name").all()
    posts = await user.related("posts")

Every row value lives in one ordered attribute map. Declared fields are
typed views over that map, so assignments are visible to persistence
immediately and there is nothing to sync before ``save()``.
"""

from __future__ import annotations

import datetime
import json
import logging
from collections.abc import Mapping
from typing import Any, ClassVar, Dict, List, Optional, Tuple, TYPE_CHECKING

from ..faults.domains import RecordNotFoundFault, RelationFault, RelationNotLoadedFault
from .collection import to_plain
from .fields import Field
from .query import QueryBuilder
from .registry import ModelRegistry
from .relations import Relation, RelationshipLoader
from .signals import post_delete, post_save, pre_delete, pre_save

if TYPE_CHECKING:
    from ..db.engine import Database

logger = logging.getLogger("palmrecord.models")

__all__ = ["Model", "ModelMeta", "Options"]


# ── Model Options (parsed from Meta class) ───────────────────────────────────


class Options:
    """
    Parsed model options from the inner Meta class.

    Attributes:
        abstract: Abstract models are not registered and have no table
        timestamps: Maintain created/updated columns automatically
        created_at: Column stamped on insert
        updated_at: Column stamped on insert and update
        database: Alias of the database to use instead of the bound one
    """

    def __init__(self, model_name: str, meta: Optional[type] = None):
        self.model_name = model_name
        self.abstract: bool = getattr(meta, "abstract", False)
        self.timestamps: bool = getattr(meta, "timestamps", False)
        self.created_at: str = getattr(meta, "created_at", "created_at")
        self.updated_at: str = getattr(meta, "updated_at", "updated_at")
        self.database: Optional[str] = getattr(meta, "database", None)

    def __repr__(self) -> str:
        return f"<Options for {self.model_name}>"


class ModelMeta(type):
    """
    Metaclass for models.

    Handles:
    - Field collection (inherited fields first)
    - Meta class parsing
    - Default table naming
    - Model registration
    """

    def __new__(
        mcs,
        name: str,
        bases: Tuple[type, ...],
        namespace: Dict[str, Any],
        **kwargs,
    ) -> ModelMeta:
        # Don't process the base Model class itself
        parents = [b for b in bases if isinstance(b, ModelMeta)]
        if not parents:
            return super().__new__(mcs, name, bases, namespace)

        meta_class = namespace.pop("Meta", None)

        fields: Dict[str, Field] = {}
        for parent in bases:
            if hasattr(parent, "_fields"):
                fields.update(parent._fields)
        for key, value in namespace.items():
            if isinstance(value, Field):
                fields[key] = value

        cls = super().__new__(mcs, name, bases, namespace)

        cls._fields = fields
        cls._columns = {f.column_name: attr for attr, f in fields.items()}
        cls._meta = Options(name, meta_class)
        if not namespace.get("table"):
            cls.table = f"{name.lower()}s"

        if not cls._meta.abstract:
            ModelRegistry.register(cls)

        return cls


def _utc_now() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


class Model(metaclass=ModelMeta):
    """
    ActiveRecord base class: one subclass per table, one instance per row.

    Class attributes:
        table: Table name (defaults to the lowercased class name plus "s")
        primary_key: Primary key column (default ``id``)

    Query entry points are class methods returning a ``QueryBuilder``
    (``query``, ``where``, ``filter``, ``where_in`` ...) or coroutines
    (``find_one``, ``find_all``, ``find_or_fail``, ``count`` ...).
    Persistence methods (``save``, ``update``, ``delete``) are coroutines
    that return False instead of raising when there is nothing to do.

    Attribute names that collide with model methods (``count``, ``update``)
    are still reachable through ``get()`` and ``set()``.
    """

    table: ClassVar[str] = ""
    primary_key: ClassVar[str] = "id"

    _fields: ClassVar[Dict[str, Field]] = {}
    _columns: ClassVar[Dict[str, str]] = {}
    _meta: ClassVar[Options]

    def __init__(self, attributes: Optional[Mapping] = None, **kwargs: Any):
        """Create an in-memory instance; declared defaults fill missing values."""
        object.__setattr__(self, "_attributes", {})
        object.__setattr__(self, "_relations", {})
        object.__setattr__(self, "_deleted", False)

        data = dict(attributes or {})
        data.update(kwargs)
        for attr_name, field in self._fields.items():
            if field.has_default() and attr_name not in data and field.column_name not in data:
                field.__set__(self, field.get_default())
        self.fill(data)

    # ── Attribute access ─────────────────────────────────────────────

    def __getattr__(self, name: str) -> Any:
        # Only reached when normal lookup fails
        if name.startswith("_"):
            raise AttributeError(name)
        attributes = self.__dict__.get("_attributes", {})
        if name in attributes:
            return attributes[name]
        relations = self.__dict__.get("_relations", {})
        if name in relations:
            return relations[name]
        if name in ModelRegistry.relations_for(type(self)):
            raise RelationNotLoadedFault(type(self).__name__, name)
        if name == type(self).primary_key:
            # Unsaved instances have no key yet
            return None
        raise AttributeError(f"'{type(self).__name__}' object has no attribute '{name}'")

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_"):
            object.__setattr__(self, name, value)
            return
        declared = getattr(type(self), name, None)
        if isinstance(declared, (Field, property)):
            object.__setattr__(self, name, value)
        elif isinstance(declared, Relation):
            self._relations[name] = value
        else:
            self._attributes[name] = value

    def _column_for(self, key: str) -> str:
        field = self._fields.get(key)
        return field.column_name if field is not None else key

    def get(self, key: str, default: Any = None) -> Any:
        """Raw stored value of a column (or declared field name)."""
        return self._attributes.get(self._column_for(key), default)

    def set(self, key: str, value: Any) -> Model:
        """Store a value; declared fields convert it for the database first."""
        attr = key if key in self._fields else self._columns.get(key)
        if attr is not None:
            self._fields[attr].__set__(self, value)
        else:
            self._attributes[key] = value
        return self

    def fill(self, attributes: Mapping) -> Model:
        for key, value in attributes.items():
            self.set(key, value)
        return self

    @property
    def attributes(self) -> Dict[str, Any]:
        """Copy of the attribute map."""
        return dict(self._attributes)

    @property
    def primary_key_value(self) -> Any:
        return self._attributes.get(self.primary_key)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.primary_key}={self.primary_key_value!r}>"

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, self.__class__):
            return False
        if self.primary_key_value is None:
            return self is other
        return self.primary_key_value == other.primary_key_value

    def __hash__(self) -> int:
        return hash((self.__class__.__name__, self.primary_key_value or id(self)))

    # ── Class-level DB ───────────────────────────────────────────────

    @classmethod
    def get_database(cls) -> Database:
        """Database for this model: its Meta alias, else the bound default."""
        if cls._meta.database:
            from ..db.engine import get_database
            return get_database(cls._meta.database)
        return ModelRegistry.get_database()

    @classmethod
    def relations(cls) -> Dict[str, Relation]:
        return ModelRegistry.relations_for(cls)

    # ── Hydration ────────────────────────────────────────────────────

    @classmethod
    def from_row(cls, row: Mapping) -> Model:
        """Create an instance from a result row. Defaults are not applied."""
        instance = cls.__new__(cls)
        object.__setattr__(instance, "_attributes", dict(row))
        object.__setattr__(instance, "_relations", {})
        object.__setattr__(instance, "_deleted", False)
        return instance

    # ── Query entry points ───────────────────────────────────────────

    @classmethod
    def query(cls) -> QueryBuilder:
        """Start a fresh query chain for this model."""
        return QueryBuilder(cls).as_models()

    @classmethod
    def _apply_condition(cls, query: QueryBuilder, condition: Any) -> QueryBuilder:
        if isinstance(condition, QueryBuilder):
            return condition
        if isinstance(condition, Mapping):
            if set(condition) == {"column", "operator", "value"}:
                return query.where(condition["column"], condition["operator"], condition["value"])
            for column, value in condition.items():
                query.where(column, value)
            return query
        return query.where(cls.primary_key, condition)

    @classmethod
    def find(cls, condition: Any = None) -> Any:
        """
        ``find()`` returns a QueryBuilder; ``find(condition)`` returns the
        ``find_one(condition)`` coroutine.

            builder = User.find().where("active", True)
            user = await User.find(5)
        """
        if condition is None:
            return cls.query()
        return cls.find_one(condition)

    @classmethod
    async def find_one(cls, condition: Any = None) -> Optional[Model]:
        """
        First row matching ``condition``, or None.

        ``condition`` may be a primary key value, a ``{column: value}``
        mapping (ANDed), a ``{"column", "operator", "value"}`` triple or a
        QueryBuilder.
        """
        query = cls.query()
        if condition is not None:
            query = cls._apply_condition(query, condition)
        return await query.one()

    @classmethod
    async def find_all(cls, condition: Any = None) -> Any:
        query = cls.query()
        if condition is not None:
            query = cls._apply_condition(query, condition)
        return await query.all()

    @classmethod
    async def find_or_fail(cls, condition: Any) -> Model:
        """Like ``find_one`` but raises RecordNotFoundFault when nothing matches."""
        record = await cls.find_one(condition)
        if record is None:
            if isinstance(condition, Mapping):
                description = json.dumps(dict(condition), ensure_ascii=False, default=str)
            elif isinstance(condition, QueryBuilder):
                description = condition.to_sql()
            else:
                description = str(condition)
            raise RecordNotFoundFault(cls.__name__, description)
        return record

    @classmethod
    async def all(cls) -> Any:
        return await cls.query().all()

    @classmethod
    def where(cls, column: Any, *args: Any) -> QueryBuilder:
        return cls.query().where(column, *args)

    @classmethod
    def or_where(cls, column: Any, *args: Any) -> QueryBuilder:
        return cls.query().or_where(column, *args)

    @classmethod
    def filter(cls, column: Any, *args: Any) -> QueryBuilder:
        return cls.query().filter(column, *args)

    @classmethod
    def where_in(cls, column: str, values: Any) -> QueryBuilder:
        return cls.query().where_in(column, values)

    @classmethod
    def where_not_in(cls, column: str, values: Any) -> QueryBuilder:
        return cls.query().where_not_in(column, values)

    @classmethod
    def where_null(cls, column: str) -> QueryBuilder:
        return cls.query().where_null(column)

    @classmethod
    def where_not_null(cls, column: str) -> QueryBuilder:
        return cls.query().where_not_null(column)

    @classmethod
    def where_between(cls, column: str, values: Any) -> QueryBuilder:
        return cls.query().where_between(column, values)

    @classmethod
    def where_not_between(cls, column: str, values: Any) -> QueryBuilder:
        return cls.query().where_not_between(column, values)

    @classmethod
    def where_date(cls, column: str, *args: Any) -> QueryBuilder:
        return cls.query().where_date(column, *args)

    @classmethod
    def where_month(cls, column: str, month: int) -> QueryBuilder:
        return cls.query().where_month(column, month)

    @classmethod
    def where_year(cls, column: str, year: int) -> QueryBuilder:
        return cls.query().where_year(column, year)

    @classmethod
    def where_column(cls, first: str, *args: Any) -> QueryBuilder:
        return cls.query().where_column(first, *args)

    @classmethod
    def where_raw(cls, sql: str, bindings: Any = None) -> QueryBuilder:
        return cls.query().where_raw(sql, bindings)

    @classmethod
    def search(cls, term: Optional[str], columns: Any) -> QueryBuilder:
        return cls.query().search(term, columns)

    @classmethod
    def join(cls, table: str, first: str, operator: str, second: str) -> QueryBuilder:
        return cls.query().join(table, first, operator, second)

    @classmethod
    def left_join(cls, table: str, first: str, operator: str, second: str) -> QueryBuilder:
        return cls.query().left_join(table, first, operator, second)

    @classmethod
    def right_join(cls, table: str, first: str, operator: str, second: str) -> QueryBuilder:
        return cls.query().right_join(table, first, operator, second)

    @classmethod
    def select(cls, *columns: Any) -> QueryBuilder:
        return cls.query().select(*columns)

    @classmethod
    def order_by(cls, column: str, direction: str = "ASC") -> QueryBuilder:
        return cls.query().order_by(column, direction)

    @classmethod
    def with_relations(cls, *names: str) -> QueryBuilder:
        return cls.query().with_relations(*names)

    @classmethod
    async def count(cls, condition: Any = None) -> int:
        query = cls.query()
        if condition is not None:
            query = cls._apply_condition(query, condition)
        return await query.count()

    @classmethod
    async def exists(cls, condition: Any = None) -> bool:
        return (await cls.count(condition)) > 0

    @classmethod
    async def sum(cls, column: str) -> Any:
        return await cls.query().sum(column)

    @classmethod
    async def avg(cls, column: str) -> Any:
        return await cls.query().avg(column)

    @classmethod
    async def max(cls, column: str) -> Any:
        return await cls.query().max(column)

    @classmethod
    async def min(cls, column: str) -> Any:
        return await cls.query().min(column)

    @classmethod
    async def chunk(cls, size: int, callback: Any) -> bool:
        return await cls.query().chunk(size, callback)

    @classmethod
    async def chunk_by_id(cls, size: int, callback: Any, column: Optional[str] = None) -> bool:
        return await cls.query().chunk_by_id(size, callback, column or cls.primary_key)

    # ── Persistence ──────────────────────────────────────────────────

    @classmethod
    async def create(cls, attributes: Optional[Mapping] = None, **kwargs: Any) -> Optional[Model]:
        """
        Insert one row and return the populated instance.

        The primary key is taken from the driver's generated id; no SELECT
        follows the INSERT. Returns None when no columns were supplied.

            user = await User.create({"name": "Alice", "email": "a@example.com"})
        """
        supplied = dict(attributes or {}, **kwargs)
        if not any(k != cls.primary_key for k in supplied):
            return None
        instance = cls(supplied)
        if not await instance._insert():
            return None
        return instance

    def _stamp(self, *columns: str) -> None:
        now = _utc_now()
        for column in columns:
            self._attributes[column] = now

    async def _insert(self) -> bool:
        cls = self.__class__
        if not any(key != self.primary_key for key in self._attributes):
            return False

        if cls._meta.timestamps:
            if self._attributes.get(cls._meta.created_at) is None:
                self._stamp(cls._meta.created_at)
            self._stamp(cls._meta.updated_at)

        await pre_save.send(cls, instance=self)

        data = {k: v for k, v in self._attributes.items() if k != self.primary_key}
        db = cls.get_database()
        columns = ", ".join(db.quote_identifier(c) for c in data)
        placeholders = ", ".join("?" for _ in data)
        sql = f"INSERT INTO {db.quote_identifier(cls.table)} ({columns}) VALUES ({placeholders})"
        cursor = await db.execute(sql, list(data.values()))

        self._attributes[self.primary_key] = db.last_insert_id(cursor)
        self._deleted = False
        logger.debug(f"Created {cls.__name__} {self.primary_key}={self.primary_key_value}")

        await post_save.send(cls, instance=self, created=True)
        return True

    async def update(self, attributes: Optional[Mapping] = None) -> bool:
        """
        Write this record's columns back to its row.

        With ``attributes``, those values are assigned first and only those
        columns are written. Returns False when the instance has no primary
        key or there is nothing to write.
        """
        cls = self.__class__
        pk_value = self.primary_key_value
        if pk_value is None:
            return False

        if attributes:
            # the row is addressed by the stored key, so it is never reassigned here
            changes = {k: v for k, v in attributes.items() if self._column_for(k) != self.primary_key}
            if not changes:
                return False
            self.fill(changes)
            columns = [self._column_for(k) for k in changes]
        else:
            columns = [k for k in self._attributes if k != self.primary_key]
        if not columns:
            return False

        if cls._meta.timestamps:
            self._stamp(cls._meta.updated_at)
            if cls._meta.updated_at not in columns:
                columns.append(cls._meta.updated_at)

        await pre_save.send(cls, instance=self)

        db = cls.get_database()
        assignments = ", ".join(f"{db.quote_identifier(c)} = ?" for c in columns)
        params = [self._attributes.get(c) for c in columns] + [pk_value]
        sql = (
            f"UPDATE {db.quote_identifier(cls.table)} SET {assignments} "
            f"WHERE {db.quote_identifier(self.primary_key)} = ?"
        )
        await db.execute(sql, params)
        logger.debug(f"Updated {cls.__name__} {self.primary_key}={pk_value}")

        await post_save.send(cls, instance=self, created=False)
        return True

    async def save(self) -> bool:
        """
        Insert or update.

        An instance with a primary key is updated; otherwise it is inserted
        and gains the generated key. After ``delete()`` the stale key is
        dropped and ``save()`` inserts a new row.
        """
        if self._deleted:
            self._attributes.pop(self.primary_key, None)
            self._deleted = False
        if self.primary_key_value is not None:
            return await self.update()
        return await self._insert()

    async def delete(self) -> bool:
        """
        Delete this record's row by primary key.

        The in-memory instance keeps its attributes. Returns False, without
        touching the database, when there is no primary key.
        """
        cls = self.__class__
        pk_value = self.primary_key_value
        if pk_value is None:
            return False

        await pre_delete.send(cls, instance=self)

        db = cls.get_database()
        sql = f"DELETE FROM {db.quote_identifier(cls.table)} WHERE {db.quote_identifier(self.primary_key)} = ?"
        await db.execute(sql, [pk_value])
        self._deleted = True
        logger.debug(f"Deleted {cls.__name__} {self.primary_key}={pk_value}")

        await post_delete.send(cls, instance=self)
        return True

    async def refresh(self) -> Model:
        """Reload attributes from the database and forget loaded relations."""
        pk_value = self.primary_key_value
        if pk_value is None:
            raise RecordNotFoundFault(self.__class__.__name__, "<unsaved instance>")
        fresh = await self.__class__.find_one(pk_value)
        if fresh is None:
            raise RecordNotFoundFault(self.__class__.__name__, str(pk_value))
        self._attributes = dict(fresh._attributes)
        self._relations = {}
        return self

    # ── Relationships ────────────────────────────────────────────────

    async def related(self, name: str, *, refresh: bool = False) -> Any:
        """
        Resolve a declared relation for this record and cache it.

            author = await post.related("author")   # one query, then cached
        """
        relation = self.relations().get(name)
        if relation is None:
            raise RelationFault(self.__class__.__name__, name)
        if not refresh and name in self._relations:
            return self._relations[name]
        value = await relation.resolve(self)
        self._relations[name] = value
        return value

    async def load(self, *names: str) -> Model:
        """Eager-load relations onto this single instance."""
        await RelationshipLoader(self.__class__).load([self], names)
        return self

    def set_relation(self, name: str, value: Any) -> None:
        self._relations[name] = value

    def get_relation(self, name: str, default: Any = None) -> Any:
        return self._relations.get(name, default)

    def relation_loaded(self, name: str) -> bool:
        return name in self._relations

    # ── Serialization ────────────────────────────────────────────────

    def to_dict(self, *, exclude: Optional[List[str]] = None) -> Dict[str, Any]:
        """Attributes plus loaded relations, recursively converted to plain data."""
        exclude = set(exclude or [])
        result = {k: v for k, v in self._attributes.items() if k not in exclude}
        for name, value in self._relations.items():
            if name not in exclude:
                result[name] = to_plain(value)
        return result

    def to_json(self, **kwargs: Any) -> str:
        kwargs.setdefault("default", str)
        return json.dumps(self.to_dict(), **kwargs)
