"""
HierarchyManager -- the per-budget classification tree as materialized
paths.

Responsibility:
    Creates, mutates and reads nodes.  A node's path is the dot-joined
    chain of ancestor labels ending in its own label, with labels drawn
    from the global node_label sequence, so subtree queries are path-prefix
    comparisons and inserting a node never renumbers its siblings.

Architecture position:
    Kernel > Services.  Composes PermissionGate, ChangesetLedger,
    SequenceService and a VersionedStore over the node family.

Invariants enforced:
    - Each budget has exactly four roots, one per (domain, layer), created
      only by ``create_root_node`` during budget creation, with version 1.
    - Roots are never updated or deleted (CannotMutateRootError).
    - A child's parent is a current, non-deleted node of the same budget.
    - Permission is checked before any lock is taken or row written; the
      node's identity row is locked before the root check.

Failure modes:
    - PermissionDeniedError, NotFoundError, EntityDeletedError,
      CannotMutateRootError.
"""

import datetime as dt
from uuid import UUID, uuid4

from sqlalchemy import select

from budget_kernel.domain.dtos import NodeInfo, VersionRecord
from budget_kernel.exceptions import CannotMutateRootError, NotFoundError
from budget_kernel.logging_config import get_logger
from budget_kernel.models import (
    PATH_SEPARATOR,
    ChangesetHint,
    Domain,
    Layer,
    Node,
    NodeVersion,
    Root,
)
from budget_kernel.services.base import BaseService
from budget_kernel.services.changeset_service import ChangesetLedger
from budget_kernel.services.permission_service import PermissionGate
from budget_kernel.services.sequence_service import SequenceService
from budget_kernel.services.versioned_store import NODES, VersionedStore

logger = get_logger("services.hierarchy")

ROOT_VERSION_NUMBER = 1

ROOT_NAMES: dict[tuple[Domain, Layer], str] = {
    (Domain.INTERNAL, Layer.LOCATION): "Internal Location",
    (Domain.INTERNAL, Layer.PURPOSE): "Internal Purpose",
    (Domain.EXTERNAL, Layer.LOCATION): "External Location",
    (Domain.EXTERNAL, Layer.PURPOSE): "External Purpose",
}


class HierarchyManager(BaseService):
    """
    Node tree operations for budgets.

    Contract:
        Mutations take the acting user and the budget the permission check
        is made against; the node must belong to that budget.
    """

    def __init__(
        self,
        session,
        permissions: PermissionGate | None = None,
        changesets: ChangesetLedger | None = None,
        sequences: SequenceService | None = None,
    ):
        super().__init__(session)
        self.permissions = permissions or PermissionGate(session)
        self.changesets = changesets or ChangesetLedger(session)
        self.sequences = sequences or SequenceService(session)
        self.store = VersionedStore(session, NODES)

    # =========================================================================
    # Creation
    # =========================================================================

    def _next_label(self) -> int:
        label = self.sequences.next_value(SequenceService.NODE_LABEL)
        logger.debug("node_label_allocated", extra={"label": label})
        return label

    def create_root_node(
        self,
        budget_id: UUID,
        name: str,
        domain: Domain,
        layer: Layer,
        changeset_id: UUID,
        node_id: UUID | None = None,
    ) -> NodeInfo:
        """
        Create one of a budget's four roots.

        Runs inside budget creation and shares its changeset; no permission
        check of its own.  The root is its own path segment and starts at
        version 1, opened today.
        """
        node_id = node_id or uuid4()
        label = self._next_label()
        path = str(label)

        self.store.create(
            node_id,
            {"name": name, "opening_date": dt.date.today(), "closing_date": None},
            changeset_id,
            version_number=ROOT_VERSION_NUMBER,
            budget_id=budget_id,
            parent_id=None,
            path=path,
            label=label,
        )
        self.executor.add(
            Root(
                budget_id=budget_id,
                domain=Domain(domain).value,
                layer=Layer(layer).value,
                node_id=node_id,
            )
        )
        self.executor.flush()
        return self._node_info(node_id)

    def create_roots(self, budget_id: UUID, changeset_id: UUID) -> list[NodeInfo]:
        """The four roots of a new budget, one per (domain, layer)."""
        return [
            self.create_root_node(budget_id, name, domain, layer, changeset_id)
            for (domain, layer), name in ROOT_NAMES.items()
        ]

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
        """
        Create a node beneath ``parent_node_id``.

        Raises:
            PermissionDeniedError: If the user cannot write the budget.
            NotFoundError: If the parent is absent, deleted, or belongs to
                another budget.
        """
        self.permissions.assert_can_write(user_id, budget_id)
        changeset_id = self.changesets.record(
            user_id, ChangesetHint.CREATE_NODE, budget_id
        )

        parent = self._current_node(parent_node_id)
        if parent is None or parent.budget_id != budget_id:
            raise NotFoundError(
                "node", str(parent_node_id), reason="parent not in budget"
            )

        node_id = node_id or uuid4()
        label = self._next_label()
        self.store.create(
            node_id,
            {
                "name": name,
                "opening_date": opening_date,
                "closing_date": closing_date,
            },
            changeset_id,
            budget_id=budget_id,
            parent_id=parent_node_id,
            path=f"{parent.path}{PATH_SEPARATOR}{label}",
            label=label,
        )
        return self._node_info(node_id)

    # =========================================================================
    # Mutation
    # =========================================================================

    def _lock_node_in_budget(
        self, node_id: UUID, budget_id: UUID, operation: str
    ) -> VersionRecord:
        current = self.store.lock_for_update(node_id)
        node = self.session.get(Node, node_id)
        if node.budget_id != budget_id:
            raise NotFoundError("node", str(node_id), reason="not in budget")
        if self.is_root_node(budget_id, node_id):
            raise CannotMutateRootError(str(node_id), operation)
        return current

    def update_node(
        self,
        user_id: UUID,
        budget_id: UUID,
        node_id: UUID,
        name: str,
        opening_date: dt.date,
        closing_date: dt.date | None = None,
    ) -> NodeInfo:
        """
        Append a new version of a node's content.

        Raises:
            PermissionDeniedError, NotFoundError, EntityDeletedError,
            CannotMutateRootError.
        """
        self.permissions.assert_can_write(user_id, budget_id)
        self._lock_node_in_budget(node_id, budget_id, "update")
        changeset_id = self.changesets.record(
            user_id, ChangesetHint.UPDATE_NODE, budget_id
        )
        self.store.update(
            node_id,
            {
                "name": name,
                "opening_date": opening_date,
                "closing_date": closing_date,
            },
            changeset_id,
        )
        return self._node_info(node_id)

    def delete_node(self, user_id: UUID, budget_id: UUID, node_id: UUID) -> NodeInfo:
        """
        Soft-delete a node.  Descendants are left untouched.

        Raises:
            PermissionDeniedError, NotFoundError, EntityDeletedError,
            CannotMutateRootError.
        """
        self.permissions.assert_can_write(user_id, budget_id)
        self._lock_node_in_budget(node_id, budget_id, "delete")
        changeset_id = self.changesets.record(
            user_id, ChangesetHint.DELETE_NODE, budget_id
        )
        self.store.delete(node_id, changeset_id)
        return self._node_info(node_id)

    # =========================================================================
    # Reads
    # =========================================================================

    def is_root_node(self, budget_id: UUID, node_id: UUID) -> bool:
        found = self.executor.scalar_one_or_none(
            select(Root.id).where(Root.budget_id == budget_id, Root.node_id == node_id)
        )
        return found is not None

    def get_root_node(
        self, user_id: UUID, budget_id: UUID, domain: Domain, layer: Layer
    ) -> NodeInfo:
        """
        The root in the (domain, layer) slot of a budget.

        Raises:
            NotFoundError: If the slot is empty.
        """
        self.permissions.assert_can_read(user_id, budget_id)
        domain, layer = Domain(domain), Layer(layer)
        node_id = self.executor.scalar_one_or_none(
            select(Root.node_id).where(
                Root.budget_id == budget_id,
                Root.domain == domain.value,
                Root.layer == layer.value,
            )
        )
        if node_id is None:
            raise NotFoundError(
                "root", f"{budget_id}/{domain.value}/{layer.value}"
            )
        return self._node_info(node_id)

    def get_node_by_id(
        self, user_id: UUID, budget_id: UUID, node_id: UUID
    ) -> NodeInfo | None:
        """Current node in the budget, or None if absent or deleted."""
        self.permissions.assert_can_read(user_id, budget_id)
        node = self._current_node(node_id)
        if node is None or node.budget_id != budget_id:
            return None
        return node

    def get_nodes_for_budget(self, user_id: UUID, budget_id: UUID) -> list[NodeInfo]:
        """Current, non-deleted nodes of a budget in path order."""
        self.permissions.assert_can_read(user_id, budget_id)
        return self._current_nodes(Node.budget_id == budget_id)

    def get_subtree(
        self, user_id: UUID, budget_id: UUID, node_id: UUID
    ) -> list[NodeInfo]:
        """
        A node and its current descendants, in path order.

        Raises:
            NotFoundError: If the node is absent, deleted, or elsewhere.
        """
        self.permissions.assert_can_read(user_id, budget_id)
        top = self._current_node(node_id)
        if top is None or top.budget_id != budget_id:
            raise NotFoundError("node", str(node_id))
        descendants = self._current_nodes(
            Node.budget_id == budget_id,
            Node.path.startswith(top.path + PATH_SEPARATOR, autoescape=True),
        )
        return [top, *descendants]

    # =========================================================================
    # Internals
    # =========================================================================

    def _current_nodes(self, *criteria) -> list[NodeInfo]:
        result = self.executor.execute(
            select(Node, NodeVersion)
            .join(NodeVersion, NodeVersion.node_id == Node.id)
            .where(*criteria, *self.store.current_criteria())
            .order_by(Node.path)
            .execution_options(populate_existing=True)
        )
        return [_to_info(node, version) for node, version in result.all()]

    def _current_node(self, node_id: UUID) -> NodeInfo | None:
        nodes = self._current_nodes(Node.id == node_id)
        return nodes[0] if nodes else None

    def _node_info(self, node_id: UUID) -> NodeInfo:
        """Node with its current version, deleted or not."""
        result = self.executor.execute(
            select(Node, NodeVersion)
            .join(NodeVersion, NodeVersion.node_id == Node.id)
            .where(Node.id == node_id, NodeVersion.is_most_recent.is_(True))
            .execution_options(populate_existing=True)
        )
        node, version = result.one()
        return _to_info(node, version)


def _to_info(node: Node, version: NodeVersion) -> NodeInfo:
    return NodeInfo(
        node_id=node.id,
        budget_id=node.budget_id,
        parent_node_id=node.parent_id,
        path=node.path,
        label=node.label,
        name=version.name,
        opening_date=version.opening_date,
        closing_date=version.closing_date,
        version_number=version.version_number,
        is_deleted=version.is_deleted,
        is_most_recent=version.is_most_recent,
        changeset_id=version.changeset_id,
    )
