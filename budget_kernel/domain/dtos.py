"""
Data Transfer Objects for the budget kernel.

Services return these frozen dataclasses instead of ORM instances, so
callers never hold session-bound objects and cannot mutate history by
accident.

Two groups:
    - Records: what the kernel reads back (UserInfo, BudgetInfo, NodeInfo,
      TransactionInfo, PostingInfo, ...).  Every versioned record carries the
      chain bookkeeping of the version it was read from.
    - Drafts: what callers submit for writes (TransactionDraft, PostingDraft).
"""

import datetime as dt
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any
from uuid import UUID


@dataclass(frozen=True)
class VersionRecord:
    """
    One row of a version chain, independent of entity family.

    ``content`` holds the versioned fields of the family by column name.
    """

    key: UUID
    version_number: int
    is_deleted: bool
    is_most_recent: bool
    changeset_id: UUID
    content: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PlanInfo:
    plan_id: UUID
    name: str
    cost: Decimal


@dataclass(frozen=True)
class UserInfo:
    user_id: UUID
    full_name: str
    display_name: str
    email: str
    plan_id: UUID | None
    version_number: int
    is_deleted: bool
    is_most_recent: bool
    changeset_id: UUID


@dataclass(frozen=True)
class BudgetInfo:
    budget_id: UUID
    name: str
    version_number: int
    is_deleted: bool
    is_most_recent: bool
    changeset_id: UUID


@dataclass(frozen=True)
class PermissionInfo:
    """Capability flags of one user on one budget."""

    user_id: UUID
    budget_id: UUID
    can_read: bool = False
    can_write: bool = False
    can_share: bool = False
    can_delete: bool = False

    @classmethod
    def full(cls, user_id: UUID, budget_id: UUID) -> "PermissionInfo":
        """All four capabilities, as granted to a budget's creator."""
        return cls(user_id, budget_id, True, True, True, True)


@dataclass(frozen=True)
class NodeInfo:
    node_id: UUID
    budget_id: UUID
    parent_node_id: UUID | None
    path: str
    label: int
    name: str
    opening_date: dt.date
    closing_date: dt.date | None
    version_number: int
    is_deleted: bool
    is_most_recent: bool
    changeset_id: UUID

    @property
    def depth(self) -> int:
        """Number of ancestors; 0 for a root."""
        return self.path.count(".")

    def is_ancestor_of(self, other: "NodeInfo") -> bool:
        """True if ``other`` lies strictly below this node in the tree."""
        return other.path.startswith(self.path + ".")


@dataclass(frozen=True)
class PostingInfo:
    posting_id: UUID
    transaction_id: UUID
    node_id: UUID
    amount: Decimal
    description: str
    version_number: int
    is_deleted: bool
    is_most_recent: bool
    changeset_id: UUID


@dataclass(frozen=True)
class TransactionInfo:
    transaction_id: UUID
    budget_id: UUID
    date: dt.date
    description: str
    version_number: int
    is_deleted: bool
    is_most_recent: bool
    changeset_id: UUID


@dataclass(frozen=True)
class TransactionWithPostings:
    transaction: TransactionInfo
    postings: tuple[PostingInfo, ...]

    @property
    def total(self) -> Decimal:
        return sum((p.amount for p in self.postings), Decimal("0"))


@dataclass(frozen=True)
class TransactionDraft:
    """Header content submitted for create/update of a transaction."""

    transaction_id: UUID
    date: dt.date
    description: str = ""


@dataclass(frozen=True)
class PostingDraft:
    """
    One posting line submitted for create/update.

    ``posting_id`` is optional: postings submitted without an id are
    matched to existing postings by value, or created fresh.  ``amount``
    is normalized to Decimal through its string form, so ``0.1`` becomes
    ``Decimal("0.1")``.
    """

    node_id: UUID
    amount: Decimal
    description: str = ""
    posting_id: UUID | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, "amount", Decimal(str(self.amount)))

    def content(self) -> dict[str, Any]:
        return {
            "node_id": self.node_id,
            "amount": self.amount,
            "description": self.description,
        }
