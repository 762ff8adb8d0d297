"""
ChangesetLedger -- provenance stamping for every mutation.

Responsibility:
    Inserts one immutable Changeset row per top-level mutation and returns
    its id, which the caller threads through every version row it writes in
    the same transaction.

Invariants enforced:
    - Insert-only: the ledger never updates or deletes (see also
      db/immutability.py).
    - Budget-scoped hints carry a budget_id; user-scoped hints carry none.
    - The recorded id is bound into LogContext, so every later line of the
      enclosing DbClient transaction carries it.
"""

from uuid import UUID

from budget_kernel.logging_config import LogContext, get_logger
from budget_kernel.models import Changeset, ChangesetHint
from budget_kernel.services.base import BaseService

logger = get_logger("services.changeset")


class ChangesetLedger(BaseService):
    """Records changesets inside the caller's transaction."""

    def record(
        self,
        actor_user_id: UUID,
        hint: ChangesetHint,
        budget_id: UUID | None = None,
    ) -> UUID:
        """
        Record one changeset and return its id.

        Raises:
            ValueError: If the scope does not fit the hint.
        """
        if hint.is_user_scoped and budget_id is not None:
            raise ValueError(f"{hint.value} changesets carry no budget_id")
        if not hint.is_user_scoped and budget_id is None:
            raise ValueError(f"{hint.value} changesets require a budget_id")

        changeset = Changeset(
            user_id=actor_user_id,
            budget_id=budget_id,
            hint=hint.value,
        )
        self.executor.add(changeset)
        self.executor.flush()
        LogContext.set(changeset_id=str(changeset.id))

        logger.info(
            "changeset_recorded",
            extra={
                "changeset_id": str(changeset.id),
                "hint": hint.value,
                "user_id": str(actor_user_id),
                "scope_budget_id": str(budget_id) if budget_id else None,
            },
        )
        return changeset.id
