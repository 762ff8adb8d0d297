"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every service in the kernel.  All concrete services receive the
    SQLAlchemy ``Session`` of the enclosing operation and issue statements
    through a QueryExecutor bound to it -- they flush, never commit.

Invariants enforced:
    Transaction boundaries: services flush within the caller's
    transaction and never commit or roll back themselves.  DbClient owns
    commit/rollback, so one top-level operation is all-or-nothing.
"""

from abc import ABC

from sqlalchemy.orm import Session

from budget_kernel.db.executor import QueryExecutor


class BaseService(ABC):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.
        - Every statement goes through ``self.executor`` so failures are
          logged and typed uniformly.
    """

    def __init__(self, session: Session):
        self.session = session
        self.executor = QueryExecutor(session)
