"""
BudgetDb and DbClient -- the public surface of the budget kernel.

Responsibility:
    ``BudgetDb`` hands out clients, each bound to one exclusive Session for
    its lifetime (acquire on entry, release on exit, unconditionally).
    ``DbClient`` runs every top-level operation inside one atomic database
    transaction: commit on success, rollback and re-raise on any failure.

Architecture position:
    Outermost kernel layer.  Composes the services over one Session by
    constructor injection; nothing else in the kernel commits.

Usage:
    db = BudgetDb()
    with db.with_client() as client:
        budget = client.create_budget(user_id, "Household")
        root = client.get_root_node(user_id, budget.budget_id,
                                    Domain.INTERNAL, Layer.LOCATION)

    # Several operations as one unit:
    with db.with_client() as client, client.transaction():
        client.create_child_node(...)
        client.create_transaction_and_postings(...)
"""

import datetime as dt
from collections.abc import Iterator
from contextlib import contextmanager, nullcontext
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from budget_kernel.db.engine import get_session_factory
from budget_kernel.db.immutability import register_immutability_listeners
from budget_kernel.domain.dtos import (
    BudgetInfo,
    NodeInfo,
    PermissionInfo,
    PlanInfo,
    PostingDraft,
    TransactionDraft,
    TransactionWithPostings,
    UserInfo,
    VersionRecord,
)
from budget_kernel.logging_config import LogContext, get_logger
from budget_kernel.models import Domain, Layer
from budget_kernel.services import (
    FAMILIES,
    BudgetService,
    ChangesetLedger,
    HierarchyManager,
    LedgerTransactionManager,
    PermissionGate,
    PlanService,
    SequenceService,
    UserService,
    VersionedStore,
)

logger = get_logger("client")


def _str(value) -> str | None:
    return str(value) if value is not None else None


class DbClient:
    """
    One Session, one transaction per top-level operation.

    Contract:
        Each public method is all-or-nothing.  Methods called inside an
        explicit ``transaction()`` block join it and commit with it.
    """

    def __init__(self, session: Session, require_balanced_postings: bool = False):
        self.session = session
        self._depth = 0

        self.permissions = PermissionGate(session)
        self.changesets = ChangesetLedger(session)
        self.sequences = SequenceService(session)
        self.hierarchy = HierarchyManager(
            session,
            permissions=self.permissions,
            changesets=self.changesets,
            sequences=self.sequences,
        )
        self.ledger = LedgerTransactionManager(
            session,
            permissions=self.permissions,
            changesets=self.changesets,
            require_balanced=require_balanced_postings,
        )
        self.budgets = BudgetService(
            session,
            permissions=self.permissions,
            changesets=self.changesets,
            hierarchy=self.hierarchy,
        )
        self.users = UserService(session, changesets=self.changesets)
        self.plans = PlanService(session)

    # =========================================================================
    # Transaction boundary
    # =========================================================================

    @contextmanager
    def transaction(self) -> Iterator["DbClient"]:
        """
        Atomic scope.  The outermost scope commits or rolls back.

        Every log line inside the outermost scope carries one fresh
        correlation_id.
        """
        outermost = self._depth == 0
        log_scope = (
            LogContext.scope(correlation_id=uuid4().hex) if outermost else nullcontext()
        )
        self._depth += 1
        try:
            with log_scope:
                try:
                    yield self
                    if outermost:
                        self.session.commit()
                        logger.debug("transaction_committed")
                except Exception:
                    if outermost:
                        self.session.rollback()
                        logger.warning("transaction_rolled_back", exc_info=True)
                    raise
        finally:
            self._depth -= 1

    @contextmanager
    def _operation(self, name: str, actor_id=None, budget_id=None) -> Iterator[None]:
        with LogContext.scope(
            operation=name,
            actor_id=_str(actor_id),
            budget_id=_str(budget_id),
            changeset_id=None,
        ), self.transaction():
            yield

    # =========================================================================
    # Users
    # =========================================================================

    def create_user(
        self,
        user_id: UUID,
        full_name: str,
        display_name: str,
        email: str,
        plan_id: UUID | None = None,
    ) -> UserInfo:
        with self._operation("create_user", user_id):
            return self.users.create_user(
                user_id, full_name, display_name, email, plan_id
            )

    def update_user(
        self,
        user_id: UUID,
        full_name: str,
        display_name: str,
        email: str,
        plan_id: UUID | None = None,
    ) -> UserInfo:
        with self._operation("update_user", user_id):
            return self.users.update_user(
                user_id, full_name, display_name, email, plan_id
            )

    def delete_user(self, user_id: UUID) -> UserInfo:
        with self._operation("delete_user", user_id):
            return self.users.delete_user(user_id)

    def get_user_by_id(self, user_id: UUID) -> UserInfo | None:
        with self._operation("get_user_by_id", user_id):
            return self.users.get_user_by_id(user_id)

    # =========================================================================
    # Plans
    # =========================================================================

    def create_plan(
        self, name: str, cost: Decimal, plan_id: UUID | None = None
    ) -> PlanInfo:
        with self._operation("create_plan"):
            return self.plans.create_plan(name, cost, plan_id)

    def get_plan_by_id(self, plan_id: UUID) -> PlanInfo | None:
        with self._operation("get_plan_by_id"):
            return self.plans.get_plan_by_id(plan_id)

    # =========================================================================
    # Budgets and permissions
    # =========================================================================

    def create_budget(
        self, user_id: UUID, name: str, budget_id: UUID | None = None
    ) -> BudgetInfo:
        with self._operation("create_budget", user_id, budget_id):
            return self.budgets.create_budget(user_id, name, budget_id)

    def update_budget(self, user_id: UUID, budget_id: UUID, name: str) -> BudgetInfo:
        with self._operation("update_budget", user_id, budget_id):
            return self.budgets.update_budget(user_id, budget_id, name)

    def delete_budget(self, user_id: UUID, budget_id: UUID) -> BudgetInfo:
        with self._operation("delete_budget", user_id, budget_id):
            return self.budgets.delete_budget(user_id, budget_id)

    def get_budget_by_id(self, user_id: UUID, budget_id: UUID) -> BudgetInfo | None:
        with self._operation("get_budget_by_id", user_id, budget_id):
            return self.budgets.get_budget_by_id(user_id, budget_id)

    def get_readable_budgets(self, user_id: UUID) -> list[BudgetInfo]:
        with self._operation("get_readable_budgets", user_id):
            return self.budgets.get_readable_budgets(user_id)

    def get_budget_version_history(
        self, user_id: UUID, budget_id: UUID
    ) -> list[BudgetInfo]:
        with self._operation("get_budget_version_history", user_id, budget_id):
            return self.budgets.get_version_history(user_id, budget_id)

    def set_permissions(
        self, acting_user_id: UUID, target: PermissionInfo
    ) -> PermissionInfo:
        with self._operation("set_permissions", acting_user_id, target.budget_id):
            return self.permissions.set_permissions(acting_user_id, target)

    def get_permissions(self, user_id: UUID, budget_id: UUID) -> PermissionInfo | None:
        with self._operation("get_permissions", user_id, budget_id):
            return self.permissions.get_permissions(user_id, budget_id)

    # =========================================================================
    # Nodes
    # =========================================================================

    def create_child_node(
        self,
        user_id: UUID,
        budget_id: UUID,
        parent_node_id: UUID,
        name: str,
        opening_date: dt.date,
        closing_date: dt.date | None = None,
        node_id: UUID | None = None,
    ) -> NodeInfo:
        with self._operation("create_child_node", user_id, budget_id):
            return self.hierarchy.create_child_node(
                user_id,
                budget_id,
                parent_node_id,
                name,
                opening_date,
                closing_date,
                node_id,
            )

    def update_node(
        self,
        user_id: UUID,
        budget_id: UUID,
        node_id: UUID,
        name: str,
        opening_date: dt.date,
        closing_date: dt.date | None = None,
    ) -> NodeInfo:
        with self._operation("update_node", user_id, budget_id):
            return self.hierarchy.update_node(
                user_id, budget_id, node_id, name, opening_date, closing_date
            )

    def delete_node(self, user_id: UUID, budget_id: UUID, node_id: UUID) -> NodeInfo:
        with self._operation("delete_node", user_id, budget_id):
            return self.hierarchy.delete_node(user_id, budget_id, node_id)

    def get_node_by_id(
        self, user_id: UUID, budget_id: UUID, node_id: UUID
    ) -> NodeInfo | None:
        with self._operation("get_node_by_id", user_id, budget_id):
            return self.hierarchy.get_node_by_id(user_id, budget_id, node_id)

    def get_nodes_for_budget(self, user_id: UUID, budget_id: UUID) -> list[NodeInfo]:
        with self._operation("get_nodes_for_budget", user_id, budget_id):
            return self.hierarchy.get_nodes_for_budget(user_id, budget_id)

    def get_root_node(
        self, user_id: UUID, budget_id: UUID, domain: Domain, layer: Layer
    ) -> NodeInfo:
        with self._operation("get_root_node", user_id, budget_id):
            return self.hierarchy.get_root_node(user_id, budget_id, domain, layer)

    def get_subtree(
        self, user_id: UUID, budget_id: UUID, node_id: UUID
    ) -> list[NodeInfo]:
        with self._operation("get_subtree", user_id, budget_id):
            return self.hierarchy.get_subtree(user_id, budget_id, node_id)

    # =========================================================================
    # Transactions and postings
    # =========================================================================

    def create_transaction_and_postings(
        self,
        user_id: UUID,
        budget_id: UUID,
        transaction: TransactionDraft,
        postings: list[PostingDraft],
    ) -> TransactionWithPostings:
        with self._operation("create_transaction_and_postings", user_id, budget_id):
            return self.ledger.create_transaction_and_postings(
                user_id, budget_id, transaction, postings
            )

    def update_transaction_and_postings(
        self,
        user_id: UUID,
        budget_id: UUID,
        transaction: TransactionDraft,
        postings: list[PostingDraft],
    ) -> TransactionWithPostings:
        with self._operation("update_transaction_and_postings", user_id, budget_id):
            return self.ledger.update_transaction_and_postings(
                user_id, budget_id, transaction, postings
            )

    def delete_transaction_and_postings(
        self, user_id: UUID, budget_id: UUID, transaction_id: UUID
    ) -> TransactionWithPostings:
        with self._operation("delete_transaction_and_postings", user_id, budget_id):
            return self.ledger.delete_transaction_and_postings(
                user_id, budget_id, transaction_id
            )

    def get_transaction_and_postings_by_id(
        self, user_id: UUID, budget_id: UUID, transaction_id: UUID
    ) -> TransactionWithPostings | None:
        with self._operation("get_transaction_and_postings_by_id", user_id, budget_id):
            return self.ledger.get_transaction_and_postings_by_id(
                user_id, budget_id, transaction_id
            )

    def get_transactions_for_budget(
        self, user_id: UUID, budget_id: UUID
    ) -> list[TransactionWithPostings]:
        with self._operation("get_transactions_for_budget", user_id, budget_id):
            return self.ledger.get_transactions_for_budget(user_id, budget_id)

    # =========================================================================
    # Audit
    # =========================================================================

    def get_version_history(self, entity: str, key: UUID) -> list[VersionRecord]:
        """
        Raw version chain of any versioned entity, in version order.

        ``entity`` is one of "user", "budget", "node", "transaction",
        "posting".  Not permission-gated; intended for audit tooling.
        """
        with self._operation("get_version_history"):
            return VersionedStore(self.session, FAMILIES[entity]).history(key)


class BudgetDb:
    """
    Session provider for DbClient.

    Registers the immutability listeners once on construction.
    """

    def __init__(
        self,
        session_factory: sessionmaker | None = None,
        require_balanced_postings: bool = False,
    ):
        self._session_factory = session_factory or get_session_factory()
        self._require_balanced_postings = require_balanced_postings
        register_immutability_listeners()

    def acquire(self) -> DbClient:
        return DbClient(
            self._session_factory(),
            require_balanced_postings=self._require_balanced_postings,
        )

    def release(self, client: DbClient) -> None:
        client.session.close()

    @contextmanager
    def with_client(self) -> Iterator[DbClient]:
        """A client for the duration of the block; released on any exit."""
        client = self.acquire()
        try:
            yield client
        finally:
            self.release(client)
