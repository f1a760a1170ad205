"""
Fault Tests — structured fault taxonomy.
"""

import pytest

from palmrecord.faults import (
    DatabaseConnectionFault,
    Fault,
    FaultDomain,
    ModelFault,
    QueryArgumentFault,
    QueryFault,
    RecordNotFoundFault,
    RelationFault,
    RelationNotLoadedFault,
    Severity,
)


class TestFaultBase:

    def test_str_and_dict(self):
        fault = Fault(code="X_FAILED", message="it broke", domain=FaultDomain.IO)
        assert str(fault) == "[X_FAILED] it broke"
        data = fault.to_dict()
        assert data["code"] == "X_FAILED"
        assert data["domain"] == "io"
        assert data["severity"] == "warn"
        assert data["retryable"] is True

    def test_missing_fields_rejected(self):
        with pytest.raises(TypeError):
            Fault(code="ONLY_CODE")


class TestModelFaults:

    def test_record_not_found(self):
        fault = RecordNotFoundFault("User", "42")
        assert isinstance(fault, ModelFault)
        assert fault.domain == FaultDomain.MODEL
        assert fault.message == "Record 42 not found in User"
        assert fault.metadata == {"model": "User", "condition": "42"}
        assert fault.severity is Severity.ERROR

    def test_query_argument_fault_is_value_error(self):
        fault = QueryArgumentFault("where_between", "expects exactly 2 values, got 3")
        assert isinstance(fault, ValueError)
        assert fault.code == "QUERY_ARGUMENT_INVALID"
        assert str(fault) == "[QUERY_ARGUMENT_INVALID] where_between: expects exactly 2 values, got 3"

    def test_query_fault_is_retryable(self):
        fault = QueryFault("<raw>", "execute", "database is locked", metadata={"sql": "SELECT 1"})
        assert fault.retryable is True
        assert fault.metadata["sql"] == "SELECT 1"

    def test_relation_not_loaded(self):
        fault = RelationNotLoadedFault("User", "posts")
        assert isinstance(fault, RelationFault)
        assert isinstance(fault, AttributeError)
        assert fault.code == "RELATION_NOT_LOADED"
        assert "related(\"posts\")" in fault.message

    def test_connection_fault_is_fatal(self):
        fault = DatabaseConnectionFault("sqlite:///x.db", "disk gone")
        assert fault.severity is Severity.FATAL
        assert fault.metadata["url"] == "sqlite:///x.db"
