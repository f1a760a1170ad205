"""
PalmRecord Relations — relationship descriptors and batched eager loading.

Relationships are declared as class attributes:

    class User(Model):
        table = "users"

        posts = has_many("Post", "user_id")
        profile = has_one("Profile", "user_id")

    class Post(Model):
        table = "posts"

        author = belongs_to("User", "user_id")

Declaring performs no I/O. A relation is resolved either for one record
(``await user.related("posts")``) or for a whole result batch with
``User.query().with_relations("posts").all()``, which always costs exactly
one extra query per relation name, however many records there are.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Type, Union, TYPE_CHECKING

from ..faults.domains import RelationFault, RelationNotLoadedFault
from .collection import Collection
from .registry import ModelRegistry

if TYPE_CHECKING:
    from .base import Model

logger = logging.getLogger("palmrecord.models.relations")

# TEXT-affinity key columns hand back "1" where INTEGER ones hand back 1
_INT_KEY_RE = re.compile(r"^-?\d+$")

__all__ = [
    "RelationType",
    "Relation",
    "RelationshipLoader",
    "has_one",
    "has_many",
    "belongs_to",
]


def _key(value: Any) -> Any:
    """Index form of a key value, so "1" and 1 address the same rows."""
    if isinstance(value, str) and _INT_KEY_RE.match(value):
        return int(value)
    return value


class RelationType(str, Enum):
    HAS_ONE = "has_one"
    HAS_MANY = "has_many"
    BELONGS_TO = "belongs_to"


@dataclass(eq=False)
class Relation:
    """
    Relationship declaration.

    Attributes:
        type: HAS_ONE, HAS_MANY or BELONGS_TO
        related: Related model class, or its registered class name
        foreign_key: Column on the related table (HAS_*) or on the owner (BELONGS_TO)
        local_key: Column on the owner (HAS_*) or on the related table (BELONGS_TO)
    """

    type: RelationType
    related: Union[str, Type[Model]]
    foreign_key: str
    local_key: str = "id"
    name: str = ""

    owner_name = "<unbound>"

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name
        self.owner_name = owner.__name__

    def __get__(self, instance: Any, owner: type) -> Any:
        if instance is None:
            return self
        loaded = instance._relations
        if self.name in loaded:
            return loaded[self.name]
        raise RelationNotLoadedFault(owner.__name__, self.name)

    @property
    def many(self) -> bool:
        return self.type is RelationType.HAS_MANY

    @property
    def owner_key(self) -> str:
        """Column read from the owning record."""
        if self.type is RelationType.BELONGS_TO:
            return self.foreign_key
        return self.local_key

    @property
    def match_column(self) -> str:
        """Column on the related table compared against owner key values."""
        if self.type is RelationType.BELONGS_TO:
            return self.local_key
        return self.foreign_key

    def related_model(self) -> Type[Model]:
        return ModelRegistry.resolve(self.related, owner=self.owner_name)

    def empty(self) -> Optional[Collection]:
        """Value attached when nothing matches."""
        return Collection() if self.many else None

    async def resolve(self, instance: Model) -> Any:
        """Load this relation for a single record (one query, or none for a null key)."""
        key = instance.get(self.owner_key)
        if key is None:
            return self.empty()
        query = self.related_model().query().where(self.match_column, key)
        if self.many:
            return await query.all()
        return await query.one()


def has_one(related: Union[str, Type[Model]], foreign_key: str, local_key: str = "id") -> Relation:
    """One related row whose ``foreign_key`` equals this record's ``local_key``."""
    return Relation(RelationType.HAS_ONE, related, foreign_key, local_key)


def has_many(related: Union[str, Type[Model]], foreign_key: str, local_key: str = "id") -> Relation:
    """All related rows whose ``foreign_key`` equals this record's ``local_key``."""
    return Relation(RelationType.HAS_MANY, related, foreign_key, local_key)


def belongs_to(related: Union[str, Type[Model]], foreign_key: str, local_key: str = "id") -> Relation:
    """The related row whose ``local_key`` equals this record's ``foreign_key``."""
    return Relation(RelationType.BELONGS_TO, related, foreign_key, local_key)


class RelationshipLoader:
    """
    Batch-resolves declared relations across already hydrated records.

    For each relation name:

    1. collect the distinct non-null owner key values, in first-seen order
    2. run one ``WHERE match_column IN (...)`` query on the related table
    3. index the related rows by their match column (HAS_MANY groups them,
       HAS_ONE/BELONGS_TO keep the last row seen for a key)
    4. attach the indexed value, or an empty Collection/None, to every record
    """

    def __init__(self, model_cls: Type[Model]):
        self.model_cls = model_cls

    def relation(self, name: str) -> Relation:
        relations = ModelRegistry.relations_for(self.model_cls)
        try:
            return relations[name]
        except KeyError:
            raise RelationFault(self.model_cls.__name__, name) from None

    async def load(self, records: Sequence[Model], names: Iterable[str]) -> None:
        """Load every relation in ``names`` onto ``records``."""
        for name in names:
            await self.load_one(records, name)

    async def load_one(self, records: Sequence[Model], name: str) -> None:
        relation = self.relation(name)
        if not records:
            return

        keys: List[Any] = []
        seen = set()
        for record in records:
            key = record.get(relation.owner_key)
            if key is None or _key(key) in seen:
                continue
            seen.add(_key(key))
            keys.append(key)

        index: Dict[Any, Any] = {}
        if keys:
            related_cls = relation.related_model()
            rows = await related_cls.query().where_in(relation.match_column, keys).all()
            logger.debug(
                f"Eager-loaded {len(rows)} {related_cls.__name__} row(s) for "
                f"{self.model_cls.__name__}.{name} over {len(keys)} key(s)"
            )
            index = self._index(relation, rows)
        else:
            logger.debug(f"{self.model_cls.__name__}.{name}: no keys, query skipped")

        for record in records:
            key = _key(record.get(relation.owner_key))
            if key in index:
                record.set_relation(name, index[key])
            else:
                record.set_relation(name, relation.empty())

    @staticmethod
    def _index(relation: Relation, rows: Iterable[Model]) -> Dict[Any, Any]:
        column = relation.match_column
        if relation.type is RelationType.HAS_MANY:
            grouped: Dict[Any, Collection] = {}
            for row in rows:
                grouped.setdefault(_key(row.get(column)), Collection()).append(row)
            return grouped
        if relation.type in (RelationType.HAS_ONE, RelationType.BELONGS_TO):
            return {_key(row.get(column)): row for row in rows}
        raise RelationFault(relation.owner_name, relation.name, reason=f"unknown type {relation.type!r}")
