"""
Module: budget_kernel.models.node
Responsibility: ORM persistence for the classification tree: node identities
    (with their immutable materialized path), node versions, and the roots
    mapping that pins the four protected roots of each budget.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - label is globally unique (uq_node_label) and drawn from the
      node_label sequence.
    - path is '<label>' for a root and '<parent path>.<label>' otherwise;
      path, label, budget_id and parent_id never change after insert.
    - Exactly one root per (budget_id, domain, layer) (uq_root_slot).
"""

from datetime import date
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Date,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from budget_kernel.db.base import Base, CreatedAtMixin, UUIDString, VersionRow

PATH_SEPARATOR = "."


class Domain(str, Enum):
    """Whether money is inside or outside the budget holder's control."""

    INTERNAL = "internal"
    EXTERNAL = "external"


class Layer(str, Enum):
    """Where money sits versus what it is for."""

    LOCATION = "location"
    PURPOSE = "purpose"


class Node(CreatedAtMixin, Base):
    """Immutable node identity with its materialized path."""

    __tablename__ = "nodes"

    __table_args__ = (
        UniqueConstraint("label", name="uq_node_label"),
        Index("idx_node_budget", "budget_id"),
        Index("idx_node_path", "path"),
    )

    budget_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("budgets.id"),
        nullable=False,
    )

    # None for the four roots
    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("nodes.id"),
        nullable=True,
    )

    # Dot-joined ancestor labels ending with this node's own label
    path: Mapped[str] = mapped_column(String(2000), nullable=False)

    label: Mapped[int] = mapped_column(BigInteger, nullable=False)

    def __repr__(self) -> str:
        return f"<Node {self.id} path={self.path}>"


class NodeVersion(VersionRow, Base):
    """One snapshot of a node's content."""

    __tablename__ = "node_versions"

    __table_args__ = (
        UniqueConstraint("node_id", "version_number", name="uq_node_version_number"),
        Index(
            "uq_node_versions_most_recent",
            "node_id",
            unique=True,
            postgresql_where=text("is_most_recent"),
            sqlite_where=text("is_most_recent"),
        ),
    )

    node_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("nodes.id"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    opening_date: Mapped[date] = mapped_column(Date, nullable=False)

    closing_date: Mapped[date | None] = mapped_column(Date, nullable=True)


class Root(Base):
    """Maps a (budget, domain, layer) slot to its root node."""

    __tablename__ = "roots"

    __table_args__ = (
        UniqueConstraint("budget_id", "domain", "layer", name="uq_root_slot"),
        UniqueConstraint("node_id", name="uq_root_node"),
    )

    budget_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("budgets.id"),
        nullable=False,
    )

    domain: Mapped[str] = mapped_column(String(10), nullable=False)

    layer: Mapped[str] = mapped_column(String(10), nullable=False)

    node_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("nodes.id"),
        nullable=False,
    )
