"""
Module: budget_kernel.models.changeset
Responsibility: ORM persistence for changesets -- the provenance record that
    explains every version row in the system.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Changesets are insert-only (ORM listeners in db/immutability.py).
    - Every version row references exactly one changeset via changeset_id.
    - hint is drawn from the closed ChangesetHint enumeration.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from budget_kernel.db.base import Base, CreatedAtMixin, UUIDString


class ChangesetHint(str, Enum):
    """The logical action a changeset records."""

    CREATE_USER = "create-user"
    UPDATE_USER = "update-user"
    DELETE_USER = "delete-user"
    CREATE_BUDGET = "create-budget"
    UPDATE_BUDGET = "update-budget"
    DELETE_BUDGET = "delete-budget"
    CREATE_NODE = "create-node"
    UPDATE_NODE = "update-node"
    DELETE_NODE = "delete-node"
    CREATE_TRANSACTION = "create-transaction"
    UPDATE_TRANSACTION = "update-transaction"
    DELETE_TRANSACTION = "delete-transaction"

    @property
    def is_user_scoped(self) -> bool:
        return self in _USER_HINTS


_USER_HINTS = frozenset(
    {ChangesetHint.CREATE_USER, ChangesetHint.UPDATE_USER, ChangesetHint.DELETE_USER}
)


class Changeset(CreatedAtMixin, Base):
    """
    Immutable provenance record for one top-level mutation.

    User-scoped changesets (create/update/delete user) carry no budget_id;
    every other hint is budget-scoped and requires one.
    """

    __tablename__ = "changesets"

    __table_args__ = (
        Index("idx_changeset_budget", "budget_id"),
        Index("idx_changeset_user", "user_id"),
    )

    # Acting user
    user_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("users.id"),
        nullable=False,
    )

    # Scope of the action (None for user-scoped changesets)
    budget_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("budgets.id"),
        nullable=True,
    )

    hint: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Changeset {self.id} {self.hint}>"
