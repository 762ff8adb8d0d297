"""
Module: budget_kernel.models.budget
Responsibility: ORM persistence for budget identities, their version chain,
    and the per-(user, budget) permission rows.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - At most one Permission row per (user_id, budget_id)
      (uq_permission_user_budget); permissions are upserted, last write wins.
    - One most-recent BudgetVersion per budget (partial unique index).
"""

from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from budget_kernel.db.base import Base, CreatedAtMixin, UUIDString, VersionRow


class Budget(CreatedAtMixin, Base):
    """Immutable budget identity.  Content lives in BudgetVersion."""

    __tablename__ = "budgets"


class BudgetVersion(VersionRow, Base):
    """One snapshot of a budget's content."""

    __tablename__ = "budget_versions"

    __table_args__ = (
        UniqueConstraint("budget_id", "version_number", name="uq_budget_version_number"),
        Index(
            "uq_budget_versions_most_recent",
            "budget_id",
            unique=True,
            postgresql_where=text("is_most_recent"),
            sqlite_where=text("is_most_recent"),
        ),
    )

    budget_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("budgets.id"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)


class Permission(Base):
    """
    Capability flags a user holds on a budget.

    Mutable, not versioned.  Absence of a row means no capability at all.
    """

    __tablename__ = "permissions"

    __table_args__ = (
        UniqueConstraint("user_id", "budget_id", name="uq_permission_user_budget"),
        Index("idx_permission_budget", "budget_id"),
    )

    user_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("users.id"),
        nullable=False,
    )

    budget_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("budgets.id"),
        nullable=False,
    )

    can_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_write: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_share: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_delete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<Permission user={self.user_id} budget={self.budget_id}>"
