"""
PalmRecord — async ActiveRecord data access for Python.

    from palmrecord import Model, CharField, configure_database

    configure_database("sqlite:///app.db")

    class User(Model):
        table = "users"
        name = CharField()

    user = await User.create({"name": "Alice"})
"""

from .config import DatabaseConfig
from .db import Database, configure_database, get_database, set_database
from .faults import (
    Fault,
    ModelFault,
    RecordNotFoundFault,
    QueryFault,
    QueryArgumentFault,
    RelationFault,
    RelationNotLoadedFault,
    DatabaseConnectionFault,
    ConfigInvalidFault,
)
from .models import (
    Model,
    QueryBuilder,
    Collection,
    ModelRegistry,
    IntegerField,
    FloatField,
    CharField,
    TextField,
    BooleanField,
    DateTimeField,
    has_one,
    has_many,
    belongs_to,
    atomic,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "DatabaseConfig",
    "Database",
    "configure_database",
    "get_database",
    "set_database",
    "Fault",
    "ModelFault",
    "RecordNotFoundFault",
    "QueryFault",
    "QueryArgumentFault",
    "RelationFault",
    "RelationNotLoadedFault",
    "DatabaseConnectionFault",
    "ConfigInvalidFault",
    "Model",
    "QueryBuilder",
    "Collection",
    "ModelRegistry",
    "IntegerField",
    "FloatField",
    "CharField",
    "TextField",
    "BooleanField",
    "DateTimeField",
    "has_one",
    "has_many",
    "belongs_to",
    "atomic",
]
