"""
LedgerTransactionManager -- transactions and their posting sets.

Responsibility:
    Composes the transaction and posting version chains into one
    double-entry record per transaction, and reconciles the posting set
    when a transaction is updated.

Architecture position:
    Kernel > Services.  Composes PermissionGate, ChangesetLedger and two
    VersionedStores (transactions, postings).

Invariants enforced:
    - One changeset per operation, shared by the transaction version and
      every posting version it writes.
    - The transaction identity row is locked before its postings are
      touched, so concurrent updates of one transaction serialize.
    - Every posting references a current, non-deleted node of the
      transaction's budget.
    - Reconciliation is keyed by posting_id.  Postings submitted without
      an id are matched by value (node_id, amount, description) against
      current postings not already claimed by id; the rest are created.
      Current postings left unmatched are soft-deleted.

Failure modes:
    - PermissionDeniedError, NotFoundError, EntityDeletedError,
      DuplicateIdentityError.
    - InvalidPostingError: foreign node, repeated posting id, or a
      posting id owned by another transaction.
    - UnbalancedTransactionError: only with ``require_balanced=True``.
"""

from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select

from budget_kernel.domain.dtos import (
    PostingDraft,
    PostingInfo,
    TransactionDraft,
    TransactionInfo,
    TransactionWithPostings,
)
from budget_kernel.exceptions import (
    InvalidPostingError,
    NotFoundError,
    UnbalancedTransactionError,
)
from budget_kernel.logging_config import get_logger
from budget_kernel.models import (
    ChangesetHint,
    Node,
    NodeVersion,
    Posting,
    PostingVersion,
    Transaction,
    TransactionVersion,
)
from budget_kernel.services.base import BaseService
from budget_kernel.services.changeset_service import ChangesetLedger
from budget_kernel.services.permission_service import PermissionGate
from budget_kernel.services.versioned_store import (
    NODES,
    POSTINGS,
    TRANSACTIONS,
    VersionedStore,
)

logger = get_logger("services.ledger")


class LedgerTransactionManager(BaseService):
    """
    Create, update, delete and read transactions with their postings.

    Contract:
        ``require_balanced`` makes every write reject posting sets whose
        amounts do not sum to zero.  Off by default.
    """

    def __init__(
        self,
        session,
        permissions: PermissionGate | None = None,
        changesets: ChangesetLedger | None = None,
        require_balanced: bool = False,
    ):
        super().__init__(session)
        self.permissions = permissions or PermissionGate(session)
        self.changesets = changesets or ChangesetLedger(session)
        self.require_balanced = require_balanced
        self.transactions = VersionedStore(session, TRANSACTIONS)
        self.postings = VersionedStore(session, POSTINGS)
        self._nodes = VersionedStore(session, NODES)

    # =========================================================================
    # Writes
    # =========================================================================

    def create_transaction_and_postings(
        self,
        user_id: UUID,
        budget_id: UUID,
        transaction: TransactionDraft,
        postings: list[PostingDraft],
    ) -> TransactionWithPostings:
        """
        Create a transaction and its postings under one changeset.

        Raises:
            PermissionDeniedError: If the user cannot write the budget.
            DuplicateIdentityError: If the transaction or a posting id exists.
            InvalidPostingError, UnbalancedTransactionError.
        """
        self.permissions.assert_can_write(user_id, budget_id)
        self._validate_postings(transaction.transaction_id, budget_id, postings)
        changeset_id = self.changesets.record(
            user_id, ChangesetHint.CREATE_TRANSACTION, budget_id
        )

        self.transactions.create(
            transaction.transaction_id,
            {"date": transaction.date, "description": transaction.description},
            changeset_id,
            budget_id=budget_id,
        )
        for draft in postings:
            self._create_posting(transaction.transaction_id, draft, changeset_id)

        return self._read(transaction.transaction_id)

    def update_transaction_and_postings(
        self,
        user_id: UUID,
        budget_id: UUID,
        transaction: TransactionDraft,
        postings: list[PostingDraft],
    ) -> TransactionWithPostings:
        """
        Append a new header version and reconcile the posting set.

        Raises:
            PermissionDeniedError, NotFoundError, EntityDeletedError,
            InvalidPostingError, UnbalancedTransactionError.
        """
        transaction_id = transaction.transaction_id
        self.permissions.assert_can_write(user_id, budget_id)
        self._lock_in_budget(transaction_id, budget_id)
        self._validate_postings(transaction_id, budget_id, postings)
        changeset_id = self.changesets.record(
            user_id, ChangesetHint.UPDATE_TRANSACTION, budget_id
        )

        self.transactions.update(
            transaction_id,
            {"date": transaction.date, "description": transaction.description},
            changeset_id,
        )
        self._reconcile(transaction_id, postings, changeset_id)
        return self._read(transaction_id)

    def delete_transaction_and_postings(
        self, user_id: UUID, budget_id: UUID, transaction_id: UUID
    ) -> TransactionWithPostings:
        """
        Soft-delete a transaction and every current posting.

        Returns the deleted header with the postings as they stood.
        """
        self.permissions.assert_can_write(user_id, budget_id)
        self._lock_in_budget(transaction_id, budget_id)
        changeset_id = self.changesets.record(
            user_id, ChangesetHint.DELETE_TRANSACTION, budget_id
        )

        current = self._current_postings(transaction_id)
        self.transactions.delete(transaction_id, changeset_id)
        for posting in current:
            self.postings.delete(posting.posting_id, changeset_id)

        return TransactionWithPostings(
            transaction=self._transaction_info(transaction_id),
            postings=tuple(current),
        )

    # =========================================================================
    # Reads
    # =========================================================================

    def get_transaction_and_postings_by_id(
        self, user_id: UUID, budget_id: UUID, transaction_id: UUID
    ) -> TransactionWithPostings | None:
        """Current transaction with current postings, or None."""
        self.permissions.assert_can_read(user_id, budget_id)
        headers = self._current_transactions(
            Transaction.id == transaction_id,
            Transaction.budget_id == budget_id,
        )
        if not headers:
            return None
        return TransactionWithPostings(
            transaction=headers[0],
            postings=tuple(self._current_postings(transaction_id)),
        )

    def get_transactions_for_budget(
        self, user_id: UUID, budget_id: UUID
    ) -> list[TransactionWithPostings]:
        """Current transactions of a budget by date, each with its postings."""
        self.permissions.assert_can_read(user_id, budget_id)
        return [
            TransactionWithPostings(
                transaction=header,
                postings=tuple(self._current_postings(header.transaction_id)),
            )
            for header in self._current_transactions(Transaction.budget_id == budget_id)
        ]

    # =========================================================================
    # Reconciliation
    # =========================================================================

    def _reconcile(
        self,
        transaction_id: UUID,
        drafts: list[PostingDraft],
        changeset_id: UUID,
    ) -> None:
        old = {p.posting_id: p for p in self._current_postings(transaction_id)}

        matched: list[tuple[UUID, PostingDraft]] = []
        to_create: list[tuple[UUID, PostingDraft]] = []
        unkeyed: list[PostingDraft] = []

        for draft in drafts:
            if draft.posting_id is None:
                unkeyed.append(draft)
            elif draft.posting_id in old:
                matched.append((draft.posting_id, draft))
            elif self.postings.exists(draft.posting_id):
                raise InvalidPostingError(
                    str(transaction_id),
                    f"posting {draft.posting_id} is not a current posting "
                    "of this transaction",
                )
            else:
                to_create.append((draft.posting_id, draft))

        claimed = {posting_id for posting_id, _ in matched}
        for draft in unkeyed:
            twin = _find_twin(draft, old, claimed)
            if twin is None:
                to_create.append((uuid4(), draft))
            else:
                claimed.add(twin)
                matched.append((twin, draft))

        to_delete = [key for key in old if key not in claimed]

        for posting_id in to_delete:
            self.postings.delete(posting_id, changeset_id)
        for posting_id, draft in to_create:
            self._create_posting(transaction_id, draft, changeset_id, posting_id)
        for posting_id, draft in matched:
            self.postings.update(posting_id, draft.content(), changeset_id)

        logger.info(
            "postings_reconciled",
            extra={
                "transaction_id": str(transaction_id),
                "postings_deleted": len(to_delete),
                "postings_created": len(to_create),
                "postings_updated": len(matched),
            },
        )

    def _create_posting(
        self,
        transaction_id: UUID,
        draft: PostingDraft,
        changeset_id: UUID,
        posting_id: UUID | None = None,
    ) -> None:
        posting_id = posting_id or draft.posting_id or uuid4()
        self.postings.create(
            posting_id,
            draft.content(),
            changeset_id,
            transaction_id=transaction_id,
        )

    # =========================================================================
    # Validation and locking
    # =========================================================================

    def _lock_in_budget(self, transaction_id: UUID, budget_id: UUID) -> None:
        self.transactions.lock_for_update(transaction_id)
        owner = self.session.get(Transaction, transaction_id)
        if owner.budget_id != budget_id:
            raise NotFoundError(
                "transaction", str(transaction_id), reason="not in budget"
            )

    def _validate_postings(
        self,
        transaction_id: UUID,
        budget_id: UUID,
        postings: list[PostingDraft],
    ) -> None:
        ids = [p.posting_id for p in postings if p.posting_id is not None]
        if len(ids) != len(set(ids)):
            raise InvalidPostingError(str(transaction_id), "repeated posting_id")

        node_ids = {p.node_id for p in postings}
        if node_ids:
            found = set(
                self.executor.scalars(
                    select(Node.id)
                    .join(NodeVersion, NodeVersion.node_id == Node.id)
                    .where(
                        Node.id.in_(node_ids),
                        Node.budget_id == budget_id,
                        *self._nodes.current_criteria(),
                    )
                )
            )
            missing = node_ids - found
            if missing:
                raise InvalidPostingError(
                    str(transaction_id),
                    f"nodes not current in budget: {sorted(str(n) for n in missing)}",
                )

        if self.require_balanced:
            total = sum((p.amount for p in postings), Decimal("0"))
            if total != 0:
                raise UnbalancedTransactionError(str(transaction_id), str(total))

    # =========================================================================
    # Internals
    # =========================================================================

    def _current_transactions(self, *criteria) -> list[TransactionInfo]:
        result = self.executor.execute(
            select(Transaction, TransactionVersion)
            .join(TransactionVersion, TransactionVersion.transaction_id == Transaction.id)
            .where(*criteria, *self.transactions.current_criteria())
            .order_by(TransactionVersion.date, Transaction.created_at, Transaction.id)
            .execution_options(populate_existing=True)
        )
        return [_transaction_to_info(t, v) for t, v in result.all()]

    def _transaction_info(self, transaction_id: UUID) -> TransactionInfo:
        """Header with its current version, deleted or not."""
        result = self.executor.execute(
            select(Transaction, TransactionVersion)
            .join(TransactionVersion, TransactionVersion.transaction_id == Transaction.id)
            .where(
                Transaction.id == transaction_id,
                *self.transactions.current_criteria(include_deleted=True),
            )
            .execution_options(populate_existing=True)
        )
        transaction, version = result.one()
        return _transaction_to_info(transaction, version)

    def _current_postings(self, transaction_id: UUID) -> list[PostingInfo]:
        result = self.executor.execute(
            select(Posting, PostingVersion)
            .join(PostingVersion, PostingVersion.posting_id == Posting.id)
            .where(
                Posting.transaction_id == transaction_id,
                *self.postings.current_criteria(),
            )
            .order_by(Posting.created_at, Posting.id)
            .execution_options(populate_existing=True)
        )
        return [_posting_to_info(p, v) for p, v in result.all()]

    def _read(self, transaction_id: UUID) -> TransactionWithPostings:
        return TransactionWithPostings(
            transaction=self._transaction_info(transaction_id),
            postings=tuple(self._current_postings(transaction_id)),
        )


def _find_twin(
    draft: PostingDraft, old: dict[UUID, PostingInfo], claimed: set[UUID]
) -> UUID | None:
    """First unclaimed current posting equal to ``draft`` by value."""
    for posting_id, posting in old.items():
        if posting_id in claimed:
            continue
        if (
            posting.node_id == draft.node_id
            and posting.amount == draft.amount
            and posting.description == draft.description
        ):
            return posting_id
    return None


def _transaction_to_info(
    transaction: Transaction, version: TransactionVersion
) -> TransactionInfo:
    return TransactionInfo(
        transaction_id=transaction.id,
        budget_id=transaction.budget_id,
        date=version.date,
        description=version.description,
        version_number=version.version_number,
        is_deleted=version.is_deleted,
        is_most_recent=version.is_most_recent,
        changeset_id=version.changeset_id,
    )


def _posting_to_info(posting: Posting, version: PostingVersion) -> PostingInfo:
    return PostingInfo(
        posting_id=posting.id,
        transaction_id=posting.transaction_id,
        node_id=version.node_id,
        amount=version.amount,
        description=version.description,
        version_number=version.version_number,
        is_deleted=version.is_deleted,
        is_most_recent=version.is_most_recent,
        changeset_id=version.changeset_id,
    )
