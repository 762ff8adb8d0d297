"""Tests for UserService and PlanService."""

from decimal import Decimal
from uuid import uuid4

import pytest

from budget_kernel.exceptions import (
    DuplicateIdentityError,
    EntityDeletedError,
    NotFoundError,
)
from budget_kernel.models import Changeset, ChangesetHint


class TestUsers:

    def test_create_and_read(self, client):
        user_id = uuid4()

        created = client.create_user(user_id, "Ada Lovelace", "Ada", "ada@example.com")

        assert created.version_number == 0
        assert created.plan_id is None
        assert client.get_user_by_id(user_id) == created

    def test_create_is_self_acted(self, client, session):
        user_id = uuid4()
        created = client.create_user(user_id, "Grace Hopper", "Grace", "grace@example.com")

        changeset = session.get(Changeset, created.changeset_id)
        assert changeset.user_id == user_id
        assert changeset.budget_id is None
        assert changeset.hint == ChangesetHint.CREATE_USER.value

    def test_duplicate_user(self, client, owner_id):
        with pytest.raises(DuplicateIdentityError):
            client.create_user(owner_id, "Someone", "Some", "some@example.com")

    def test_update_with_plan(self, client, owner_id):
        plan = client.create_plan("Pro", Decimal("4.99"))

        updated = client.update_user(
            owner_id, "Budget Owner", "Owner", "owner@example.com", plan.plan_id
        )

        assert updated.version_number == 1
        assert updated.display_name == "Owner"
        assert updated.plan_id == plan.plan_id
        assert client.get_user_by_id(owner_id) == updated

    def test_delete_hides_user(self, client, owner_id):
        deleted = client.delete_user(owner_id)

        assert deleted.is_deleted is True
        assert deleted.full_name == "Budget Owner"
        assert client.get_user_by_id(owner_id) is None

    def test_update_after_delete(self, client, owner_id):
        client.delete_user(owner_id)

        with pytest.raises(EntityDeletedError):
            client.update_user(owner_id, "Back Again", "Back", "back@example.com")

    def test_unknown_user(self, client):
        assert client.get_user_by_id(uuid4()) is None
        with pytest.raises(NotFoundError):
            client.delete_user(uuid4())

    def test_history(self, client, owner_id):
        client.update_user(owner_id, "Renamed Owner", "Renamed", "r@example.com")
        client.delete_user(owner_id)

        chain = client.get_version_history("user", owner_id)

        assert [r.version_number for r in chain] == [0, 1, 2]
        assert [r.is_most_recent for r in chain] == [False, False, True]
        assert chain[1].content["full_name"] == "Renamed Owner"


class TestPlans:

    def test_create_and_read(self, client):
        plan = client.create_plan("Family", Decimal("9.99"))

        assert client.get_plan_by_id(plan.plan_id) == plan
        assert plan.cost == Decimal("9.99")

    def test_explicit_id(self, client):
        plan_id = uuid4()

        plan = client.create_plan("Basic", Decimal("0"), plan_id=plan_id)

        assert plan.plan_id == plan_id

    def test_duplicate_plan(self, client):
        plan = client.create_plan("Basic", Decimal("0"))

        with pytest.raises(DuplicateIdentityError):
            client.create_plan("Basic again", Decimal("1"), plan_id=plan.plan_id)

    def test_unknown_plan(self, client):
        assert client.get_plan_by_id(uuid4()) is None
