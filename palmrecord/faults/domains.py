"""
PalmRecord Faults - Domain-specific fault types.

Every failure raised by the model layer is a ``ModelFault``. "Nothing to do"
outcomes (saving without data, deleting without a key) are NOT faults: they
are reported as ``False``/``None`` return values.
"""

from __future__ import annotations

from typing import Any

from .core import Fault, FaultDomain, Severity


class ConfigInvalidFault(Fault):
    """Configuration value could not be parsed or is unsupported."""

    def __init__(self, key: str, reason: str, **kwargs):
        super().__init__(
            code="CONFIG_INVALID",
            message=f"Invalid configuration for '{key}': {reason}",
            domain=FaultDomain.CONFIG,
            metadata={"key": key, "reason": reason, **kwargs.get("metadata", {})},
        )


# ============================================================================
# Model Faults
# ============================================================================

class ModelFault(Fault):
    """Base class for model and database faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.ERROR,
        retryable: bool = False,
        metadata: dict | None = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.MODEL,
            severity=severity,
            retryable=retryable,
            metadata=metadata,
        )


class RecordNotFoundFault(ModelFault):
    """No row matched a condition that was required to match."""

    def __init__(self, model_name: str, condition: Any, **kwargs):
        super().__init__(
            code="RECORD_NOT_FOUND",
            message=f"Record {condition} not found in {model_name}",
            metadata={"model": model_name, "condition": condition, **kwargs.get("metadata", {})},
        )


class QueryFault(ModelFault):
    """Query execution failed at the driver."""

    def __init__(self, model: str, operation: str, reason: str, **kwargs):
        super().__init__(
            code="QUERY_FAILED",
            message=f"Query on '{model}' ({operation}) failed: {reason}",
            retryable=True,
            metadata={"model": model, "operation": operation, "reason": reason, **kwargs.get("metadata", {})},
        )


class QueryArgumentFault(ModelFault, ValueError):
    """A query-building call received arguments it cannot compile."""

    def __init__(self, operation: str, reason: str, **kwargs):
        super().__init__(
            code="QUERY_ARGUMENT_INVALID",
            message=f"{operation}: {reason}",
            metadata={"operation": operation, "reason": reason, **kwargs.get("metadata", {})},
        )


class RelationFault(ModelFault):
    """Relation name does not resolve to a declared relationship."""

    def __init__(self, model_name: str, relation: str, reason: str = "no such relation", **kwargs):
        super().__init__(
            code="RELATION_INVALID",
            message=f"Relation '{relation}' on {model_name}: {reason}",
            metadata={"model": model_name, "relation": relation, **kwargs.get("metadata", {})},
        )


class RelationNotLoadedFault(RelationFault, AttributeError):
    """A relation was read as an attribute before it was loaded."""

    def __init__(self, model_name: str, relation: str, **kwargs):
        super().__init__(
            model_name,
            relation,
            reason=(
                f"not loaded; use 'await instance.related(\"{relation}\")' "
                f"or with_relations(\"{relation}\")"
            ),
            **kwargs,
        )
        self.code = "RELATION_NOT_LOADED"


class DatabaseConnectionFault(ModelFault):
    """Database connection failed or is not configured."""

    def __init__(self, url: str, reason: str, **kwargs):
        super().__init__(
            code="DB_CONNECTION_FAILED",
            message=f"Database connection failed ({url}): {reason}",
            severity=Severity.FATAL,
            retryable=True,
            metadata={"url": url, "reason": reason, **kwargs.get("metadata", {})},
        )
