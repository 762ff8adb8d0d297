"""
Tests for QueryExecutor failure classification.

Covers:
- Rejected statements logged with statement text and bound values
- Constraint violations surfacing as StatementFailureError through DbClient
- Invalidated connections and pool timeouts surfacing as ConnectionFatalError
"""

from uuid import uuid4

import pytest
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from budget_kernel.db.executor import QueryExecutor
from budget_kernel.exceptions import ConnectionFatalError, StatementFailureError


class _FailingSession:
    """Stands in for a Session whose every statement raises ``exc``."""

    def __init__(self, exc):
        self.exc = exc

    def execute(self, *args, **kwargs):
        raise self.exc

    def flush(self):
        raise self.exc


class TestStatementFailure:
    """Statements rejected by the store."""

    def test_bad_statement_raises_statement_failure(self, session, captured_logs):
        executor = QueryExecutor(session)

        with pytest.raises(StatementFailureError) as exc_info:
            executor.execute(
                text("SELECT * FROM no_such_table WHERE id = :id"), {"id": 7}
            )

        assert "no_such_table" in exc_info.value.statement
        assert exc_info.value.code == "STATEMENT_FAILURE"
        assert isinstance(exc_info.value.__cause__, DBAPIError)

        failures = [r for r in captured_logs() if r["message"] == "statement_failed"]
        assert len(failures) == 1
        assert "no_such_table" in failures[0]["statement"]
        assert failures[0]["level"] == "ERROR"

    def test_bound_values_recorded_as_key_value(self, captured_logs):
        orig = Exception("constraint violated")
        exc = DBAPIError("INSERT INTO plans (name) VALUES (:name)", {"name": "Pro"}, orig)
        executor = QueryExecutor(_FailingSession(exc))

        with pytest.raises(StatementFailureError) as exc_info:
            executor.execute(text("INSERT INTO plans (name) VALUES (:name)"))

        assert exc_info.value.params == {"name": "'Pro'"}
        record = next(r for r in captured_logs() if r["message"] == "statement_failed")
        assert record["params"] == {"name": "'Pro'"}

    def test_foreign_key_violation_through_client(self, client, captured_logs):
        """A budget for an unknown user violates the changeset foreign key."""
        with pytest.raises(StatementFailureError):
            client.create_budget(uuid4(), "Orphan")

        messages = [r["message"] for r in captured_logs()]
        assert "statement_failed" in messages
        assert "transaction_rolled_back" in messages


class TestConnectionFatal:
    """Pool-level failures are never reported as statement failures."""

    def test_invalidated_connection(self, captured_logs):
        exc = DBAPIError(
            "SELECT 1", {}, Exception("server closed the connection"),
            connection_invalidated=True,
        )
        executor = QueryExecutor(_FailingSession(exc))

        with pytest.raises(ConnectionFatalError) as exc_info:
            executor.execute(text("SELECT 1"))

        assert exc_info.value.code == "CONNECTION_FATAL"
        record = next(r for r in captured_logs() if r["message"] == "connection_fatal")
        assert record["level"] == "CRITICAL"

    def test_pool_timeout(self):
        executor = QueryExecutor(_FailingSession(PoolTimeoutError("QueuePool limit reached")))

        with pytest.raises(ConnectionFatalError):
            executor.flush()
