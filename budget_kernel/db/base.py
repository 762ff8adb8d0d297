"""
Module: budget_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the UUID primary key convention, the type annotation map for consistent
    column types, and the VersionRow mixin shared by every version-chain table.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  ALL model files import from here.  This module MUST NOT
    import from models/, services/, domain/, or outer layers.

Invariants enforced:
    - UUID primary keys: every model inherits a uuid4-generated primary key.
    - Decimal precision: Decimal maps to Numeric(38, 9).  Never float.
    - Version rows: every version table carries version_number, is_deleted,
      is_most_recent and changeset_id with identical types and defaults.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Transparently converts between Python UUID objects and their 36-character
    string representation.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is always a uuid4-generated UUID stored as String(36).
        - Decimal maps to Numeric(38, 9).
        - datetime maps to DateTime(timezone=True).
        - int maps to BigInteger -- safe for monotonic sequences.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class CreatedAtMixin:
    """Server-stamped creation time for append-only rows."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class VersionRow(CreatedAtMixin):
    """
    Columns shared by every version-chain table.

    Contract:
        One row per mutation of an identity.  Content columns are declared by
        the concrete model; the chain bookkeeping lives here.

    Guarantees:
        - version_number strictly increases by 1 per identity (enforced by
          the Versioned Entity Store and a UNIQUE constraint per table).
        - exactly one row per identity has is_most_recent = True (enforced
          by a partial unique index per table).
        - changeset_id references the changeset that produced the row.
    """

    version_number: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    is_deleted: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    is_most_recent: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    changeset_id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        ForeignKey("changesets.id"),
        nullable=False,
    )


# Re-export UUID for convenience
UUID = PyUUID
