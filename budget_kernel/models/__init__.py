"""ORM models for the budget kernel."""

from budget_kernel.models.budget import Budget, BudgetVersion, Permission
from budget_kernel.models.changeset import Changeset, ChangesetHint
from budget_kernel.models.node import PATH_SEPARATOR, Domain, Layer, Node, NodeVersion, Root
from budget_kernel.models.plan import Plan
from budget_kernel.models.transaction import (
    Posting,
    PostingVersion,
    Transaction,
    TransactionVersion,
)
from budget_kernel.models.user import User, UserVersion

__all__ = [
    "Budget",
    "BudgetVersion",
    "Permission",
    "Changeset",
    "ChangesetHint",
    "PATH_SEPARATOR",
    "Domain",
    "Layer",
    "Node",
    "NodeVersion",
    "Root",
    "Plan",
    "Posting",
    "PostingVersion",
    "Transaction",
    "TransactionVersion",
    "User",
    "UserVersion",
    "import_all_models",
]


def import_all_models() -> None:
    """
    Ensure every ORM model is registered on Base.metadata.

    The kernel models are imported above; the sequence counter lives with
    its service and is imported here.  Idempotent.
    """
    import budget_kernel.services.sequence_service  # noqa: F401
