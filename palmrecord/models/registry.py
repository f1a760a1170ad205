"""
PalmRecord Model Registry — per-process registry for Model subclasses.

Tracks every concrete model by class name, resolves string references in
relationship declarations, holds the database models are bound to, and
caches each model's collected relationship descriptors. The cache is
keyed by model class and cleared explicitly with ``invalidate()``.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Type, Union, TYPE_CHECKING

from ..faults.domains import RelationFault

if TYPE_CHECKING:
    from ..db.engine import Database
    from .base import Model
    from .relations import Relation

logger = logging.getLogger("palmrecord.models.registry")

__all__ = ["ModelRegistry"]


class ModelRegistry:
    """Registry of model classes, relation descriptors and the bound database."""

    _models: Dict[str, Type[Model]] = {}
    _db: Optional[Database] = None
    _relation_cache: Dict[Type[Model], Dict[str, Relation]] = {}

    @classmethod
    def register(cls, model_cls: Type[Model]) -> None:
        """Register a model class."""
        name = model_cls.__name__
        if name in cls._models and cls._models[name] is not model_cls:
            logger.warning(f"Model '{name}' re-registered; replacing previous class")
        cls._models[name] = model_cls
        cls.invalidate()

    @classmethod
    def get(cls, name: str) -> Optional[Type[Model]]:
        """Get model class by name."""
        return cls._models.get(name)

    @classmethod
    def all_models(cls) -> Dict[str, Type[Model]]:
        return dict(cls._models)

    @classmethod
    def resolve(cls, target: Union[str, Type[Model]], *, owner: str = "<unknown>") -> Type[Model]:
        """Turn a model name or class into the registered class."""
        if isinstance(target, str):
            model_cls = cls._models.get(target)
            if model_cls is None:
                raise RelationFault(owner, target, reason=f"model '{target}' is not registered")
            return model_cls
        return target

    # ── Relation cache ───────────────────────────────────────────────

    @classmethod
    def relations_for(cls, model_cls: Type[Model]) -> Dict[str, Relation]:
        """Relationship descriptors declared on ``model_cls`` and its bases."""
        cached = cls._relation_cache.get(model_cls)
        if cached is not None:
            return cached

        from .relations import Relation

        found: Dict[str, Relation] = {}
        for klass in reversed(model_cls.__mro__):
            for attr, value in vars(klass).items():
                if isinstance(value, Relation):
                    found[attr] = value
        cls._relation_cache[model_cls] = found
        return found

    @classmethod
    def invalidate(cls, model_cls: Optional[Type[Model]] = None) -> None:
        """Drop cached relation descriptors for one model, or for all."""
        if model_cls is None:
            cls._relation_cache.clear()
        else:
            cls._relation_cache.pop(model_cls, None)

    @classmethod
    def check_relations(cls) -> List[str]:
        """Return a list of relationship targets that do not resolve."""
        issues: List[str] = []
        for name, model_cls in cls._models.items():
            for rel_name, relation in cls.relations_for(model_cls).items():
                target = relation.related
                if isinstance(target, str) and target not in cls._models:
                    issues.append(f"{name}.{rel_name}: target '{target}' not registered")
        return issues

    # ── Database binding ─────────────────────────────────────────────

    @classmethod
    def set_database(cls, db: Optional[Database]) -> None:
        """Bind all models to ``db`` (``None`` falls back to the default)."""
        cls._db = db

    @classmethod
    def get_database(cls) -> Database:
        """The bound database, or the engine's default database."""
        if cls._db is not None:
            return cls._db
        from ..db.engine import get_database
        return get_database()

    @classmethod
    def reset(cls) -> None:
        """Clear registry (for testing)."""
        cls._models.clear()
        cls._relation_cache.clear()
        cls._db = None
