"""
PalmRecord Faults - structured failures for the data-access layer.
"""

from .core import Fault, FaultDomain, Severity, DOMAIN_DEFAULTS
from .domains import (
    ConfigInvalidFault,
    ModelFault,
    RecordNotFoundFault,
    QueryFault,
    QueryArgumentFault,
    RelationFault,
    RelationNotLoadedFault,
    DatabaseConnectionFault,
)

__all__ = [
    "Fault",
    "FaultDomain",
    "Severity",
    "DOMAIN_DEFAULTS",
    "ConfigInvalidFault",
    "ModelFault",
    "RecordNotFoundFault",
    "QueryFault",
    "QueryArgumentFault",
    "RelationFault",
    "RelationNotLoadedFault",
    "DatabaseConnectionFault",
]
