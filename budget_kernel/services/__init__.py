"""
Kernel services.

Every service takes the caller's Session and only flushes; DbClient owns
the transaction boundary.
"""

from budget_kernel.services.budget_service import BudgetService
from budget_kernel.services.changeset_service import ChangesetLedger
from budget_kernel.services.hierarchy_service import HierarchyManager
from budget_kernel.services.ledger_service import LedgerTransactionManager
from budget_kernel.services.permission_service import PermissionGate
from budget_kernel.services.plan_service import PlanService
from budget_kernel.services.sequence_service import SequenceService
from budget_kernel.services.user_service import UserService
from budget_kernel.services.versioned_store import (
    BUDGETS,
    FAMILIES,
    NODES,
    POSTINGS,
    TRANSACTIONS,
    USERS,
    VersionedFamily,
    VersionedStore,
)

__all__ = [
    "BudgetService",
    "ChangesetLedger",
    "HierarchyManager",
    "LedgerTransactionManager",
    "PermissionGate",
    "PlanService",
    "SequenceService",
    "UserService",
    "VersionedFamily",
    "VersionedStore",
    "USERS",
    "BUDGETS",
    "NODES",
    "TRANSACTIONS",
    "POSTINGS",
    "FAMILIES",
]
