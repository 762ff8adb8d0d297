"""Database layer - engine, base classes, executor, and immutability."""

from budget_kernel.db.base import UUID, Base, UUIDString, VersionRow
from budget_kernel.db.engine import create_tables, get_engine, get_session, session_scope
from budget_kernel.db.executor import QueryExecutor

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "VersionRow",
    "UUIDString",
    "UUID",
    "QueryExecutor",
]
