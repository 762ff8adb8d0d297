"""
Module: budget_kernel.models.transaction
Responsibility: ORM persistence for ledger transactions and their postings,
    each as an identity row plus a version chain.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - A transaction's budget_id and a posting's transaction_id never change.
    - One most-recent version per transaction and per posting.

Non-goals:
    - Postings are not required to sum to zero at this layer; see
      LedgerTransactionManager(require_balanced=True).
"""

import datetime as dt
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Numeric, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from budget_kernel.db.base import Base, CreatedAtMixin, UUIDString, VersionRow


class Transaction(CreatedAtMixin, Base):
    """Immutable transaction identity, scoped to one budget."""

    __tablename__ = "transactions"

    __table_args__ = (Index("idx_transaction_budget", "budget_id"),)

    budget_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("budgets.id"),
        nullable=False,
    )


class TransactionVersion(VersionRow, Base):
    """One snapshot of a transaction's header."""

    __tablename__ = "transaction_versions"

    __table_args__ = (
        UniqueConstraint(
            "transaction_id", "version_number", name="uq_transaction_version_number"
        ),
        Index(
            "uq_transaction_versions_most_recent",
            "transaction_id",
            unique=True,
            postgresql_where=text("is_most_recent"),
            sqlite_where=text("is_most_recent"),
        ),
    )

    transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("transactions.id"),
        nullable=False,
    )

    date: Mapped[dt.date] = mapped_column(Date, nullable=False)

    description: Mapped[str] = mapped_column(String(4000), nullable=False, default="")


class Posting(CreatedAtMixin, Base):
    """Immutable posting identity, owned by one transaction."""

    __tablename__ = "postings"

    __table_args__ = (Index("idx_posting_transaction", "transaction_id"),)

    transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("transactions.id"),
        nullable=False,
    )


class PostingVersion(VersionRow, Base):
    """One snapshot of a posting line: an amount attributed to a node."""

    __tablename__ = "posting_versions"

    __table_args__ = (
        UniqueConstraint("posting_id", "version_number", name="uq_posting_version_number"),
        Index(
            "uq_posting_versions_most_recent",
            "posting_id",
            unique=True,
            postgresql_where=text("is_most_recent"),
            sqlite_where=text("is_most_recent"),
        ),
    )

    posting_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("postings.id"),
        nullable=False,
    )

    node_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("nodes.id"),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    description: Mapped[str] = mapped_column(String(4000), nullable=False, default="")
