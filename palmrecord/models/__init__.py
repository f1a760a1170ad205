"""
PalmRecord Model System — ActiveRecord models over an async SQL engine.

Usage:
    from palmrecord.models import Model, CharField, FloatField, has_many

    class Product(Model):
        table = "products"

        name = CharField()
        price = FloatField()

    cheap = await Product.where("price", "<", 10).order_by("name").all()

Public API:
    - Model: Base class for all models
    - QueryBuilder: Fluent query chain returned by the Model entry points
    - Collection: List-like result container
    - Fields: IntegerField, FloatField, CharField, TextField, BooleanField, DateTimeField
    - Relations: has_one, has_many, belongs_to, RelationshipLoader
    - ModelRegistry: Model/relation registry and database binding
    - Signals: pre_save, post_save, pre_delete, post_delete
    - Transactions: atomic
"""

from .base import Model, ModelMeta, Options
from .collection import Collection, to_plain
from .fields import (
    UNSET,
    Field,
    IntegerField,
    FloatField,
    CharField,
    TextField,
    BooleanField,
    DateTimeField,
)
from .query import QueryBuilder, ResultMode
from .registry import ModelRegistry
from .relations import (
    Relation,
    RelationType,
    RelationshipLoader,
    has_one,
    has_many,
    belongs_to,
)
from .signals import Signal, pre_save, post_save, pre_delete, post_delete, receiver
from .transactions import Atomic, atomic

__all__ = [
    # Core
    "Model",
    "ModelMeta",
    "Options",
    "ModelRegistry",
    # Querying
    "QueryBuilder",
    "ResultMode",
    "Collection",
    "to_plain",
    # Fields
    "UNSET",
    "Field",
    "IntegerField",
    "FloatField",
    "CharField",
    "TextField",
    "BooleanField",
    "DateTimeField",
    # Relations
    "Relation",
    "RelationType",
    "RelationshipLoader",
    "has_one",
    "has_many",
    "belongs_to",
    # Signals
    "Signal",
    "pre_save",
    "post_save",
    "pre_delete",
    "post_delete",
    "receiver",
    # Transactions
    "Atomic",
    "atomic",
]
