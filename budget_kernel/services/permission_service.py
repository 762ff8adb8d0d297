"""
PermissionGate -- per (user, budget) capability checks.

Responsibility:
    Looks up the Permission row for a (user, budget) pair and rejects the
    operation unless the required flag is set.  Also owns the only two
    ways permissions are written: the creator's self-grant at budget
    creation and ``set_permissions`` (share).

Architecture position:
    Kernel > Services.  Consulted by every budget-scoped operation before
    any lock is taken or any version row is written.

Invariants enforced:
    - A missing Permission row means no capability at all.
    - set_permissions requires the acting user to hold can_share first.
    - At most one Permission row per (user, budget); writes are upserts,
      last write wins.

Failure modes:
    - PermissionDeniedError: missing row or unset flag.
"""

from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite

from budget_kernel.domain.dtos import PermissionInfo
from budget_kernel.exceptions import PermissionDeniedError
from budget_kernel.logging_config import get_logger
from budget_kernel.models import Permission
from budget_kernel.services.base import BaseService

logger = get_logger("services.permission")

READ = "read"
WRITE = "write"
SHARE = "share"
DELETE = "delete"

_FLAG_BY_CAPABILITY = {
    READ: "can_read",
    WRITE: "can_write",
    SHARE: "can_share",
    DELETE: "can_delete",
}

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class PermissionGate(BaseService):
    """Capability checks and permission writes for budgets."""

    def _row(self, user_id: UUID, budget_id: UUID) -> Permission | None:
        return self.executor.scalar_one_or_none(
            select(Permission)
            .where(
                Permission.user_id == user_id,
                Permission.budget_id == budget_id,
            )
            .execution_options(populate_existing=True)
        )

    def _assert(self, user_id: UUID, budget_id: UUID, capability: str) -> None:
        row = self._row(user_id, budget_id)
        if row is None or not getattr(row, _FLAG_BY_CAPABILITY[capability]):
            logger.warning(
                "permission_denied",
                extra={
                    "user_id": str(user_id),
                    "target_budget_id": str(budget_id),
                    "capability": capability,
                    "has_row": row is not None,
                },
            )
            raise PermissionDeniedError(str(user_id), str(budget_id), capability)

    def assert_can_read(self, user_id: UUID, budget_id: UUID) -> None:
        self._assert(user_id, budget_id, READ)

    def assert_can_write(self, user_id: UUID, budget_id: UUID) -> None:
        self._assert(user_id, budget_id, WRITE)

    def assert_can_share(self, user_id: UUID, budget_id: UUID) -> None:
        self._assert(user_id, budget_id, SHARE)

    def assert_can_delete(self, user_id: UUID, budget_id: UUID) -> None:
        self._assert(user_id, budget_id, DELETE)

    def get_permissions(self, user_id: UUID, budget_id: UUID) -> PermissionInfo | None:
        """Flags held by ``user_id`` on ``budget_id``, or None if no row."""
        row = self._row(user_id, budget_id)
        if row is None:
            return None
        return PermissionInfo(
            user_id=row.user_id,
            budget_id=row.budget_id,
            can_read=row.can_read,
            can_write=row.can_write,
            can_share=row.can_share,
            can_delete=row.can_delete,
        )

    def readable_budget_ids(self, user_id: UUID) -> list[UUID]:
        return self.executor.scalars(
            select(Permission.budget_id).where(
                Permission.user_id == user_id,
                Permission.can_read.is_(True),
            )
        )

    def grant_all(self, user_id: UUID, budget_id: UUID) -> PermissionInfo:
        """
        Self-grant of a budget's creator.

        Called only by budget creation, inside the same transaction that
        inserts the budget row.
        """
        granted = PermissionInfo.full(user_id, budget_id)
        self._upsert(granted)
        return granted

    def set_permissions(self, acting_user_id: UUID, target: PermissionInfo) -> PermissionInfo:
        """
        Share a budget: overwrite the target user's flags.

        Raises:
            PermissionDeniedError: If ``acting_user_id`` lacks can_share.
        """
        self.assert_can_share(acting_user_id, target.budget_id)
        self._upsert(target)
        logger.info(
            "permissions_set",
            extra={
                "acting_user_id": str(acting_user_id),
                "target_user_id": str(target.user_id),
                "target_budget_id": str(target.budget_id),
                "can_read": target.can_read,
                "can_write": target.can_write,
                "can_share": target.can_share,
                "can_delete": target.can_delete,
            },
        )
        return target

    def _upsert(self, target: PermissionInfo) -> None:
        dialect = self.session.get_bind().dialect.name
        insert = _UPSERT_DIALECTS[dialect]
        flags = {
            "can_read": target.can_read,
            "can_write": target.can_write,
            "can_share": target.can_share,
            "can_delete": target.can_delete,
        }
        stmt = insert(Permission).values(
            id=uuid4(),
            user_id=target.user_id,
            budget_id=target.budget_id,
            **flags,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "budget_id"],
            set_=flags,
        )
        # Pending ORM writes (the budget row) must reach the store first.
        self.executor.flush()
        self.executor.execute(stmt)
