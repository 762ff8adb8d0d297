"""
Budget kernel: append-only, permission-gated storage for budgets,
classification nodes, transactions with postings, and users.

Entry point is BudgetDb / DbClient; every other module is a collaborator
composed by DbClient over one SQLAlchemy Session.
"""

from budget_kernel.client import BudgetDb, DbClient
from budget_kernel.domain.dtos import (
    BudgetInfo,
    NodeInfo,
    PermissionInfo,
    PlanInfo,
    PostingDraft,
    PostingInfo,
    TransactionDraft,
    TransactionInfo,
    TransactionWithPostings,
    UserInfo,
    VersionRecord,
)
from budget_kernel.models import Domain, Layer

__all__ = [
    "BudgetDb",
    "DbClient",
    "BudgetInfo",
    "NodeInfo",
    "PermissionInfo",
    "PlanInfo",
    "PostingDraft",
    "PostingInfo",
    "TransactionDraft",
    "TransactionInfo",
    "TransactionWithPostings",
    "UserInfo",
    "VersionRecord",
    "Domain",
    "Layer",
]
