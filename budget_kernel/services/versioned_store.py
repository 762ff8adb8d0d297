"""
VersionedStore -- the append-only version-chain protocol shared by every
versioned entity family.

Responsibility:
    Owns the identity-plus-version-chain pattern used by Users, Budgets,
    Nodes, Transactions and Postings.  An identity row is written once;
    every mutation appends a version row and retires the previous one.

Architecture position:
    Kernel > Services.  Used by every family service (users, budgets,
    hierarchy, ledger).  Permission checks and changeset recording happen
    in the callers; the store only locks, reads and appends.

Invariants enforced:
    - For every identity exactly one version row has is_most_recent = True
      (also enforced by a partial unique index per table).
    - version_number starts at 0 (1 for roots) and grows by exactly 1 per
      mutation, with no gaps (also enforced by UNIQUE(key, version_number)).
    - update/delete lock the identity row (SELECT ... FOR UPDATE) before
      reading the current version, so concurrent writers on one key
      serialize and never produce a duplicate version number.
    - delete carries the previous content forward unchanged.
    - Deletion is one-way: update/delete of a deleted head is rejected.

Failure modes:
    - DuplicateIdentityError: create on an existing key.
    - NotFoundError: lock target absent.
    - EntityDeletedError: mutation of an entity whose head is deleted.
    - ValueError: content names a field the family does not version.
"""

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import select

from budget_kernel.domain.dtos import VersionRecord
from budget_kernel.exceptions import (
    DuplicateIdentityError,
    EntityDeletedError,
    NotFoundError,
)
from budget_kernel.logging_config import get_logger
from budget_kernel.models import (
    Budget,
    BudgetVersion,
    Node,
    NodeVersion,
    Posting,
    PostingVersion,
    Transaction,
    TransactionVersion,
    User,
    UserVersion,
)
from budget_kernel.services.base import BaseService

logger = get_logger("services.versioned_store")


@dataclass(frozen=True)
class VersionedFamily:
    """
    Describes one entity family to the store.

    ``key_column`` is the version table's foreign key to the identity table;
    ``content_fields`` are the versioned columns.
    """

    entity: str
    identity_model: type
    version_model: type
    key_column: str
    content_fields: tuple[str, ...]

    @property
    def key_attr(self):
        return getattr(self.version_model, self.key_column)


USERS = VersionedFamily(
    "user",
    User,
    UserVersion,
    "user_id",
    ("full_name", "display_name", "email", "plan_id"),
)
BUDGETS = VersionedFamily("budget", Budget, BudgetVersion, "budget_id", ("name",))
NODES = VersionedFamily(
    "node",
    Node,
    NodeVersion,
    "node_id",
    ("name", "opening_date", "closing_date"),
)
TRANSACTIONS = VersionedFamily(
    "transaction",
    Transaction,
    TransactionVersion,
    "transaction_id",
    ("date", "description"),
)
POSTINGS = VersionedFamily(
    "posting",
    Posting,
    PostingVersion,
    "posting_id",
    ("node_id", "amount", "description"),
)

FAMILIES: dict[str, VersionedFamily] = {
    f.entity: f for f in (USERS, BUDGETS, NODES, TRANSACTIONS, POSTINGS)
}


class VersionedStore(BaseService):
    """
    Lock, read and append version rows for one entity family.

    Contract:
        All mutating calls run inside the caller's transaction and only
        flush.  The row lock taken by ``lock_for_update`` is held until the
        caller commits or rolls back.
    """

    def __init__(self, session, family: VersionedFamily):
        super().__init__(session)
        self.family = family

    # =========================================================================
    # Reads
    # =========================================================================

    def exists(self, key: UUID) -> bool:
        identity = self.family.identity_model
        found = self.executor.scalar_one_or_none(
            select(identity.id).where(identity.id == key)
        )
        return found is not None

    def read_current(self, key: UUID) -> VersionRecord | None:
        """
        Return the most recent version of ``key``, or None if absent.

        A deleted head is still current; callers check ``is_deleted``.
        """
        row = self._current_row(key)
        return self.to_record(row) if row is not None else None

    def history(self, key: UUID) -> list[VersionRecord]:
        """Full version chain of ``key`` in version order."""
        model = self.family.version_model
        rows = self.executor.scalars(
            select(model)
            .where(self.family.key_attr == key)
            .order_by(model.version_number)
            .execution_options(populate_existing=True)
        )
        return [self.to_record(row) for row in rows]

    def current_criteria(self, include_deleted: bool = False) -> list:
        """WHERE clauses selecting current version rows of this family."""
        model = self.family.version_model
        criteria = [model.is_most_recent.is_(True)]
        if not include_deleted:
            criteria.append(model.is_deleted.is_(False))
        return criteria

    def to_record(self, row) -> VersionRecord:
        return VersionRecord(
            key=getattr(row, self.family.key_column),
            version_number=row.version_number,
            is_deleted=row.is_deleted,
            is_most_recent=row.is_most_recent,
            changeset_id=row.changeset_id,
            content={name: getattr(row, name) for name in self.family.content_fields},
        )

    # =========================================================================
    # Create
    # =========================================================================

    def create_identity(self, key: UUID, **immutable: Any) -> None:
        """
        Insert the identity row for ``key``.

        ``immutable`` carries the identity's write-once columns (a node's
        path, a posting's transaction_id, ...).

        Raises:
            DuplicateIdentityError: If ``key`` already exists.
        """
        if self.exists(key):
            raise DuplicateIdentityError(self.family.entity, str(key))
        self.executor.add(self.family.identity_model(id=key, **immutable))
        self.executor.flush()

    def append_initial_version(
        self,
        key: UUID,
        content: dict[str, Any],
        changeset_id: UUID,
        version_number: int = 0,
    ) -> VersionRecord:
        """Insert the first version of an identity created by create_identity."""
        self._check_fields(content)
        row = self._insert_version(
            key,
            content,
            changeset_id,
            version_number=version_number,
            is_deleted=False,
        )
        return self.to_record(row)

    def create(
        self,
        key: UUID,
        content: dict[str, Any],
        changeset_id: UUID,
        version_number: int = 0,
        **immutable: Any,
    ) -> VersionRecord:
        """
        Insert the identity row, then its first version.

        Postconditions:
            read_current(key) returns ``content`` with the given
            version_number (0, or 1 for roots), is_deleted False.
        """
        self._check_fields(content)
        self.create_identity(key, **immutable)
        return self.append_initial_version(
            key, content, changeset_id, version_number=version_number
        )

    # =========================================================================
    # Lock, update, delete
    # =========================================================================

    def lock_for_update(self, key: UUID) -> VersionRecord:
        """
        Take an exclusive lock on the identity row of ``key`` and return its
        current version.

        The lock blocks other lockers of the same key until the enclosing
        transaction ends; the current version is read after the lock is
        granted, so it reflects any writer that held the lock before.

        Raises:
            NotFoundError: If ``key`` has no identity row.
        """
        identity = self.family.identity_model
        locked = self.executor.scalar_one_or_none(
            select(identity.id).where(identity.id == key).with_for_update()
        )
        if locked is None:
            raise NotFoundError(self.family.entity, str(key))

        current = self.read_current(key)
        if current is None:
            raise NotFoundError(
                self.family.entity, str(key), reason="no current version"
            )
        return current

    def update(
        self,
        key: UUID,
        content: dict[str, Any],
        changeset_id: UUID,
    ) -> VersionRecord:
        """
        Append a version with ``content`` merged over the current content.

        Raises:
            NotFoundError: If ``key`` does not exist.
            EntityDeletedError: If the current version is deleted.
        """
        self._check_fields(content)
        current = self.lock_for_update(key)
        if current.is_deleted:
            raise EntityDeletedError(self.family.entity, str(key))
        merged = {**current.content, **content}
        return self._append(key, merged, changeset_id, is_deleted=False)

    def delete(self, key: UUID, changeset_id: UUID) -> VersionRecord:
        """
        Append a deleted version carrying the current content forward.

        Raises:
            NotFoundError: If ``key`` does not exist.
            EntityDeletedError: If the current version is already deleted.
        """
        current = self.lock_for_update(key)
        if current.is_deleted:
            raise EntityDeletedError(self.family.entity, str(key))
        return self._append(key, current.content, changeset_id, is_deleted=True)

    # =========================================================================
    # Internals
    # =========================================================================

    def _check_fields(self, content: dict[str, Any]) -> None:
        unknown = set(content) - set(self.family.content_fields)
        if unknown:
            raise ValueError(
                f"Unknown {self.family.entity} fields: {sorted(unknown)}"
            )

    def _current_row(self, key: UUID):
        model = self.family.version_model
        return self.executor.scalar_one_or_none(
            select(model)
            .where(self.family.key_attr == key, model.is_most_recent.is_(True))
            .execution_options(populate_existing=True)
        )

    def _append(
        self,
        key: UUID,
        content: dict[str, Any],
        changeset_id: UUID,
        is_deleted: bool,
    ) -> VersionRecord:
        # Caller holds the identity lock.
        previous = self._current_row(key)
        previous.is_most_recent = False
        self.executor.flush()

        row = self._insert_version(
            key,
            content,
            changeset_id,
            version_number=previous.version_number + 1,
            is_deleted=is_deleted,
        )
        return self.to_record(row)

    def _insert_version(
        self,
        key: UUID,
        content: dict[str, Any],
        changeset_id: UUID,
        version_number: int,
        is_deleted: bool,
    ):
        row = self.family.version_model(
            **{self.family.key_column: key},
            **content,
            version_number=version_number,
            is_deleted=is_deleted,
            is_most_recent=True,
            changeset_id=changeset_id,
        )
        self.executor.add(row)
        self.executor.flush()

        logger.info(
            "version_appended",
            extra={
                "entity": self.family.entity,
                "key": str(key),
                "version_number": version_number,
                "is_deleted": is_deleted,
                "changeset_id": str(changeset_id),
            },
        )
        return row
