"""
BudgetService -- budget lifecycle and budget reads.

Responsibility:
    Creates a budget together with its creator's permissions and its four
    root nodes, and appends update/delete versions under the budget's row
    lock.

Invariants enforced:
    - Budget creation is one changeset: identity row, changeset, full
      self-grant, version 0, four roots and the roots mapping all commit
      together or not at all.
    - Update requires can_write; delete requires can_delete.
    - Consumer reads hide deleted budgets.
"""

from uuid import UUID, uuid4

from sqlalchemy import select

from budget_kernel.domain.dtos import BudgetInfo, VersionRecord
from budget_kernel.exceptions import NotFoundError
from budget_kernel.logging_config import get_logger
from budget_kernel.models import BudgetVersion, ChangesetHint
from budget_kernel.services.base import BaseService
from budget_kernel.services.changeset_service import ChangesetLedger
from budget_kernel.services.hierarchy_service import HierarchyManager
from budget_kernel.services.permission_service import PermissionGate
from budget_kernel.services.versioned_store import BUDGETS, VersionedStore

logger = get_logger("services.budget")


class BudgetService(BaseService):
    """Budget create/update/delete and reads."""

    def __init__(
        self,
        session,
        permissions: PermissionGate | None = None,
        changesets: ChangesetLedger | None = None,
        hierarchy: HierarchyManager | None = None,
    ):
        super().__init__(session)
        self.permissions = permissions or PermissionGate(session)
        self.changesets = changesets or ChangesetLedger(session)
        self.hierarchy = hierarchy or HierarchyManager(
            session, permissions=self.permissions, changesets=self.changesets
        )
        self.store = VersionedStore(session, BUDGETS)

    def create_budget(
        self, user_id: UUID, name: str, budget_id: UUID | None = None
    ) -> BudgetInfo:
        """
        Create a budget owned by ``user_id``.

        The identity row goes in before the changeset that references it.

        Raises:
            DuplicateIdentityError: If ``budget_id`` already exists.
        """
        budget_id = budget_id or uuid4()
        self.store.create_identity(budget_id)
        changeset_id = self.changesets.record(
            user_id, ChangesetHint.CREATE_BUDGET, budget_id
        )
        self.permissions.grant_all(user_id, budget_id)
        record = self.store.append_initial_version(
            budget_id, {"name": name}, changeset_id
        )
        self.hierarchy.create_roots(budget_id, changeset_id)

        logger.info(
            "budget_created",
            extra={"created_budget_id": str(budget_id), "owner_id": str(user_id)},
        )
        return _to_info(record)

    def update_budget(self, user_id: UUID, budget_id: UUID, name: str) -> BudgetInfo:
        """Rename a budget.  Requires can_write."""
        self.permissions.assert_can_write(user_id, budget_id)
        self.store.lock_for_update(budget_id)
        changeset_id = self.changesets.record(
            user_id, ChangesetHint.UPDATE_BUDGET, budget_id
        )
        return _to_info(self.store.update(budget_id, {"name": name}, changeset_id))

    def delete_budget(self, user_id: UUID, budget_id: UUID) -> BudgetInfo:
        """Soft-delete a budget.  Requires can_delete."""
        self.permissions.assert_can_delete(user_id, budget_id)
        self.store.lock_for_update(budget_id)
        changeset_id = self.changesets.record(
            user_id, ChangesetHint.DELETE_BUDGET, budget_id
        )
        return _to_info(self.store.delete(budget_id, changeset_id))

    def get_budget_by_id(self, user_id: UUID, budget_id: UUID) -> BudgetInfo | None:
        """Current budget, or None if absent or deleted."""
        self.permissions.assert_can_read(user_id, budget_id)
        record = self.store.read_current(budget_id)
        if record is None or record.is_deleted:
            return None
        return _to_info(record)

    def get_readable_budgets(self, user_id: UUID) -> list[BudgetInfo]:
        """Current, non-deleted budgets on which ``user_id`` holds can_read."""
        budget_ids = self.permissions.readable_budget_ids(user_id)
        if not budget_ids:
            return []
        rows = self.executor.scalars(
            select(BudgetVersion)
            .where(
                BudgetVersion.budget_id.in_(budget_ids),
                *self.store.current_criteria(),
            )
            .order_by(BudgetVersion.name, BudgetVersion.budget_id)
            .execution_options(populate_existing=True)
        )
        return [_to_info(self.store.to_record(row)) for row in rows]

    def get_version_history(self, user_id: UUID, budget_id: UUID) -> list[BudgetInfo]:
        """
        Every version of a budget, deleted ones included.

        Raises:
            NotFoundError: If the budget does not exist.
        """
        self.permissions.assert_can_read(user_id, budget_id)
        history = self.store.history(budget_id)
        if not history:
            raise NotFoundError("budget", str(budget_id))
        return [_to_info(record) for record in history]


def _to_info(record: VersionRecord) -> BudgetInfo:
    return BudgetInfo(
        budget_id=record.key,
        name=record.content["name"],
        version_number=record.version_number,
        is_deleted=record.is_deleted,
        is_most_recent=record.is_most_recent,
        changeset_id=record.changeset_id,
    )
