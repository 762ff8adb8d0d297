"""
QueryExecutor -- statement execution with structured failure reporting.

Responsibility:
    Issues statements through the caller's Session and classifies every
    driver failure.  A rejected statement is logged once, with its SQL text
    and bound values as a key/value record, before it propagates as
    StatementFailureError.  An invalidated connection or an exhausted pool
    propagates as ConnectionFatalError.

Architecture position:
    Kernel > DB.  Consumed by every service through BaseService.

Non-goals:
    - No retries.  Retrying belongs to the caller.
    - Does NOT commit or roll back; the enclosing transaction scope does.
"""

from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy.exc import DBAPIError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from budget_kernel.exceptions import ConnectionFatalError, StatementFailureError
from budget_kernel.logging_config import get_logger

logger = get_logger("db.executor")


def _describe_params(params: Any) -> Any:
    """Render bound values as plain strings for the diagnostic record."""
    if params is None:
        return None
    if isinstance(params, dict):
        return {str(k): repr(v) for k, v in params.items()}
    if isinstance(params, (list, tuple)):
        return [_describe_params(p) for p in params]
    return repr(params)


class QueryExecutor:
    """
    Thin execution wrapper around a SQLAlchemy Session.

    Every statement issued by the kernel goes through ``execute`` or
    ``flush`` so that failure classification and logging happen in one
    place.
    """

    def __init__(self, session: Session):
        self.session = session

    @contextmanager
    def _classified(self) -> Iterator[None]:
        try:
            yield
        except DBAPIError as exc:
            if exc.connection_invalidated:
                logger.critical(
                    "connection_fatal",
                    extra={"detail": str(exc.orig)},
                )
                raise ConnectionFatalError(str(exc.orig)) from exc
            diagnostic = {
                "statement": exc.statement,
                "params": _describe_params(exc.params),
            }
            logger.error("statement_failed", extra=diagnostic)
            raise StatementFailureError(
                statement=exc.statement,
                params=diagnostic["params"],
                detail=str(exc.orig),
            ) from exc
        except PoolTimeoutError as exc:
            logger.critical("connection_fatal", extra={"detail": str(exc)})
            raise ConnectionFatalError(str(exc)) from exc

    def execute(self, statement, params: dict | None = None):
        """Execute a statement and return the SQLAlchemy Result."""
        with self._classified():
            if params is None:
                return self.session.execute(statement)
            return self.session.execute(statement, params)

    def scalar_one_or_none(self, statement):
        with self._classified():
            return self.session.execute(statement).scalar_one_or_none()

    def scalars(self, statement) -> list:
        with self._classified():
            return list(self.session.execute(statement).scalars().all())

    def add(self, instance) -> None:
        self.session.add(instance)

    def flush(self) -> None:
        """Flush pending ORM writes, classifying any rejected statement."""
        with self._classified():
            self.session.flush()
