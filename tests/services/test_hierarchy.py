"""
Tests for HierarchyManager -- roots, materialized paths and node versions.

Covers:
- Four roots per budget, version 1, one per (domain, layer)
- Roots reject update and delete
- Child paths extend the parent path with a fresh global label
- Subtree queries by path prefix; path order is a pre-order traversal
- Cross-budget guard
"""

from datetime import date
from uuid import uuid4

import pytest

from budget_kernel.exceptions import (
    CannotMutateRootError,
    EntityDeletedError,
    NotFoundError,
    PermissionDeniedError,
)
from budget_kernel.domain.dtos import PermissionInfo
from budget_kernel.models import Domain, Layer
from budget_kernel.services import SequenceService

OPENED = date(2024, 1, 1)


@pytest.fixture
def location_root(client, owner_id, budget):
    return client.get_root_node(owner_id, budget.budget_id, Domain.INTERNAL, Layer.LOCATION)


@pytest.fixture
def add_node(client, owner_id, budget):
    """Factory: create a child node in ``budget`` as its owner."""

    def _add(parent, name, opening_date=OPENED, closing_date=None):
        return client.create_child_node(
            owner_id, budget.budget_id, parent.node_id, name, opening_date, closing_date
        )

    return _add


class TestRoots:

    def test_four_roots_one_per_slot(self, client, owner_id, budget):
        roots = {
            (domain, layer): client.get_root_node(owner_id, budget.budget_id, domain, layer)
            for domain in Domain
            for layer in Layer
        }

        assert len({r.node_id for r in roots.values()}) == 4
        assert roots[(Domain.EXTERNAL, Layer.PURPOSE)].name == "External Purpose"
        for root in roots.values():
            assert root.version_number == 1
            assert root.parent_node_id is None
            assert root.path == str(root.label)
            assert root.depth == 0
            assert root.opening_date == date.today()
            assert root.closing_date is None

    def test_roots_are_the_only_initial_nodes(self, client, owner_id, budget):
        nodes = client.get_nodes_for_budget(owner_id, budget.budget_id)

        assert len(nodes) == 4
        assert all(client.hierarchy.is_root_node(budget.budget_id, n.node_id) for n in nodes)

    def test_root_lookup_accepts_string_slots(self, client, owner_id, budget, location_root):
        by_value = client.get_root_node(owner_id, budget.budget_id, "internal", "location")

        assert by_value == location_root

    def test_roots_cannot_be_updated(self, client, owner_id, budget):
        for node in client.get_nodes_for_budget(owner_id, budget.budget_id):
            with pytest.raises(CannotMutateRootError) as exc_info:
                client.update_node(owner_id, budget.budget_id, node.node_id, "New name", OPENED)
            assert exc_info.value.operation == "update"

    def test_roots_cannot_be_deleted(self, client, owner_id, budget):
        for node in client.get_nodes_for_budget(owner_id, budget.budget_id):
            with pytest.raises(CannotMutateRootError) as exc_info:
                client.delete_node(owner_id, budget.budget_id, node.node_id)
            assert exc_info.value.operation == "delete"

    def test_root_unchanged_after_rejection(self, client, owner_id, budget, location_root):
        with pytest.raises(CannotMutateRootError):
            client.update_node(owner_id, budget.budget_id, location_root.node_id, "Nope", OPENED)

        chain = client.get_version_history("node", location_root.node_id)
        assert [v.version_number for v in chain] == [1]

    def test_root_lookup_requires_read(self, client, other_user_id, budget):
        with pytest.raises(PermissionDeniedError):
            client.get_root_node(other_user_id, budget.budget_id, Domain.INTERNAL, Layer.PURPOSE)


class TestChildNodes:

    def test_child_path_extends_parent(self, add_node, location_root):
        child = add_node(location_root, "Bank account")

        assert child.path == f"{location_root.path}.{child.label}"
        assert child.parent_node_id == location_root.node_id
        assert child.version_number == 0
        assert child.opening_date == OPENED
        assert child.depth == 1
        assert location_root.is_ancestor_of(child)

    def test_labels_strictly_increase(self, add_node, location_root):
        first = add_node(location_root, "First")
        second = add_node(location_root, "Second")
        grandchild = add_node(first, "Grandchild")

        assert location_root.label < first.label < second.label < grandchild.label
        assert grandchild.path == f"{location_root.path}.{first.label}.{grandchild.label}"

    def test_node_label_allocation_logged(self, add_node, location_root, captured_logs):
        child = add_node(location_root, "Logged")

        labels = [r["label"] for r in captured_logs() if r["message"] == "node_label_allocated"]
        assert labels == [child.label]

    def test_label_counter_tracks_last_label(self, client, add_node, location_root):
        child = add_node(location_root, "Counted")

        assert client.sequences.current_value(SequenceService.NODE_LABEL) == child.label

    def test_failed_create_releases_no_label(self, client, owner_id, budget):
        before = client.sequences.current_value(SequenceService.NODE_LABEL)

        with pytest.raises(NotFoundError):
            client.create_child_node(owner_id, budget.budget_id, uuid4(), "Orphan", OPENED)

        assert client.sequences.current_value(SequenceService.NODE_LABEL) == before

    def test_unknown_parent(self, client, owner_id, budget):
        with pytest.raises(NotFoundError):
            client.create_child_node(owner_id, budget.budget_id, uuid4(), "Orphan", OPENED)

    def test_parent_from_other_budget(self, client, owner_id, budget):
        other = client.create_budget(owner_id, "Other")
        foreign_root = client.get_root_node(
            owner_id, other.budget_id, Domain.INTERNAL, Layer.LOCATION
        )

        with pytest.raises(NotFoundError):
            client.create_child_node(
                owner_id, budget.budget_id, foreign_root.node_id, "Smuggled", OPENED
            )

    def test_deleted_parent(self, client, owner_id, budget, add_node, location_root):
        parent = add_node(location_root, "Closed account")
        client.delete_node(owner_id, budget.budget_id, parent.node_id)

        with pytest.raises(NotFoundError):
            add_node(parent, "Under deleted")

    def test_write_required(self, client, owner_id, other_user_id, budget, location_root):
        client.set_permissions(
            owner_id, PermissionInfo(other_user_id, budget.budget_id, can_read=True)
        )

        with pytest.raises(PermissionDeniedError):
            client.create_child_node(
                other_user_id, budget.budget_id, location_root.node_id, "Nope", OPENED
            )


class TestNodeMutation:

    def test_update_appends_version(self, client, owner_id, budget, add_node, location_root):
        node = add_node(location_root, "Savings")

        updated = client.update_node(
            owner_id, budget.budget_id, node.node_id, "Rainy day", OPENED, date(2030, 1, 1)
        )

        assert updated.version_number == 1
        assert updated.name == "Rainy day"
        assert updated.closing_date == date(2030, 1, 1)
        assert updated.path == node.path
        assert client.get_node_by_id(owner_id, budget.budget_id, node.node_id) == updated

    def test_delete_hides_node(self, client, owner_id, budget, add_node, location_root):
        node = add_node(location_root, "Old wallet")

        deleted = client.delete_node(owner_id, budget.budget_id, node.node_id)

        assert deleted.is_deleted is True
        assert deleted.name == "Old wallet"
        assert client.get_node_by_id(owner_id, budget.budget_id, node.node_id) is None
        listed = {n.node_id for n in client.get_nodes_for_budget(owner_id, budget.budget_id)}
        assert node.node_id not in listed

    def test_deleted_node_cannot_be_updated(self, client, owner_id, budget, add_node, location_root):
        node = add_node(location_root, "Gone")
        client.delete_node(owner_id, budget.budget_id, node.node_id)

        with pytest.raises(EntityDeletedError):
            client.update_node(owner_id, budget.budget_id, node.node_id, "Back", OPENED)

    def test_unknown_node(self, client, owner_id, budget):
        with pytest.raises(NotFoundError):
            client.update_node(owner_id, budget.budget_id, uuid4(), "Ghost", OPENED)

    def test_node_from_other_budget(self, client, owner_id, budget, add_node, location_root):
        node = add_node(location_root, "Mine")
        other = client.create_budget(owner_id, "Other")

        with pytest.raises(NotFoundError):
            client.update_node(owner_id, other.budget_id, node.node_id, "Yours", OPENED)
        assert client.get_node_by_id(owner_id, other.budget_id, node.node_id) is None


class TestTraversal:

    def test_path_order_is_preorder(self, client, owner_id, budget, add_node, location_root):
        a = add_node(location_root, "A")
        b = add_node(location_root, "B")
        a1 = add_node(a, "A1")
        b1 = add_node(b, "B1")
        a2 = add_node(a, "A2")

        nodes = client.get_nodes_for_budget(owner_id, budget.budget_id)
        positions = {n.node_id: i for i, n in enumerate(nodes)}

        # Every node comes after its parent.
        for node in nodes:
            if node.parent_node_id is not None:
                assert positions[node.parent_node_id] < positions[node.node_id]
        # Each subtree is contiguous.
        subtree_a = [a.node_id, a1.node_id, a2.node_id]
        span = sorted(positions[n] for n in subtree_a)
        assert span == list(range(span[0], span[0] + 3))
        assert positions[b1.node_id] == positions[b.node_id] + 1

    def test_subtree(self, client, owner_id, budget, add_node, location_root):
        a = add_node(location_root, "A")
        a1 = add_node(a, "A1")
        a11 = add_node(a1, "A11")
        add_node(location_root, "Sibling")

        subtree = client.get_subtree(owner_id, budget.budget_id, a.node_id)

        assert [n.node_id for n in subtree] == [a.node_id, a1.node_id, a11.node_id]

    def test_subtree_skips_deleted(self, client, owner_id, budget, add_node, location_root):
        a = add_node(location_root, "A")
        a1 = add_node(a, "A1")
        client.delete_node(owner_id, budget.budget_id, a1.node_id)

        subtree = client.get_subtree(owner_id, budget.budget_id, a.node_id)

        assert [n.node_id for n in subtree] == [a.node_id]

    def test_subtree_of_unknown_node(self, client, owner_id, budget):
        with pytest.raises(NotFoundError):
            client.get_subtree(owner_id, budget.budget_id, uuid4())
