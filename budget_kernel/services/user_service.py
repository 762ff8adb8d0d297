"""
UserService -- self-managed user accounts on the version-chain store.

Users act on themselves: there is no permission gate, and every changeset
names the user as its own actor with no budget scope.
"""

from uuid import UUID

from budget_kernel.domain.dtos import UserInfo, VersionRecord
from budget_kernel.models import ChangesetHint
from budget_kernel.services.base import BaseService
from budget_kernel.services.changeset_service import ChangesetLedger
from budget_kernel.services.versioned_store import USERS, VersionedStore


class UserService(BaseService):
    """Create, update, delete and read users."""

    def __init__(self, session, changesets: ChangesetLedger | None = None):
        super().__init__(session)
        self.changesets = changesets or ChangesetLedger(session)
        self.store = VersionedStore(session, USERS)

    def create_user(
        self,
        user_id: UUID,
        full_name: str,
        display_name: str,
        email: str,
        plan_id: UUID | None = None,
    ) -> UserInfo:
        """
        Create a user at version 0.

        Raises:
            DuplicateIdentityError: If ``user_id`` already exists.
        """
        self.store.create_identity(user_id)
        changeset_id = self.changesets.record(user_id, ChangesetHint.CREATE_USER)
        record = self.store.append_initial_version(
            user_id,
            {
                "full_name": full_name,
                "display_name": display_name,
                "email": email,
                "plan_id": plan_id,
            },
            changeset_id,
        )
        return _to_info(record)

    def update_user(
        self,
        user_id: UUID,
        full_name: str,
        display_name: str,
        email: str,
        plan_id: UUID | None = None,
    ) -> UserInfo:
        self.store.lock_for_update(user_id)
        changeset_id = self.changesets.record(user_id, ChangesetHint.UPDATE_USER)
        record = self.store.update(
            user_id,
            {
                "full_name": full_name,
                "display_name": display_name,
                "email": email,
                "plan_id": plan_id,
            },
            changeset_id,
        )
        return _to_info(record)

    def delete_user(self, user_id: UUID) -> UserInfo:
        self.store.lock_for_update(user_id)
        changeset_id = self.changesets.record(user_id, ChangesetHint.DELETE_USER)
        return _to_info(self.store.delete(user_id, changeset_id))

    def get_user_by_id(self, user_id: UUID) -> UserInfo | None:
        """Current user, or None if absent or deleted."""
        record = self.store.read_current(user_id)
        if record is None or record.is_deleted:
            return None
        return _to_info(record)


def _to_info(record: VersionRecord) -> UserInfo:
    content = record.content
    return UserInfo(
        user_id=record.key,
        full_name=content["full_name"],
        display_name=content["display_name"],
        email=content["email"],
        plan_id=content["plan_id"],
        version_number=record.version_number,
        is_deleted=record.is_deleted,
        is_most_recent=record.is_most_recent,
        changeset_id=record.changeset_id,
    )
