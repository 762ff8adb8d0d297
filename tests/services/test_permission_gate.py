"""
Tests for PermissionGate.

Covers:
- Scenario B: sharing read+write without share
- set_permissions requires can_share
- Upsert: last write wins, one row per (user, budget)
- permission_denied / permissions_set logging
"""

from uuid import uuid4

import pytest
from sqlalchemy import func, select

from budget_kernel.domain.dtos import PermissionInfo
from budget_kernel.exceptions import PermissionDeniedError
from budget_kernel.models import Permission


class TestAssertions:

    def test_missing_row_denies_every_capability(self, client, other_user_id, budget):
        gate = client.permissions
        for check in (
            gate.assert_can_read,
            gate.assert_can_write,
            gate.assert_can_share,
            gate.assert_can_delete,
        ):
            with pytest.raises(PermissionDeniedError):
                check(other_user_id, budget.budget_id)

    def test_flags_checked_individually(self, client, owner_id, other_user_id, budget):
        client.set_permissions(
            owner_id,
            PermissionInfo(other_user_id, budget.budget_id, can_read=True, can_delete=True),
        )
        gate = client.permissions

        gate.assert_can_read(other_user_id, budget.budget_id)
        gate.assert_can_delete(other_user_id, budget.budget_id)
        with pytest.raises(PermissionDeniedError):
            gate.assert_can_write(other_user_id, budget.budget_id)
        with pytest.raises(PermissionDeniedError):
            gate.assert_can_share(other_user_id, budget.budget_id)

    def test_denial_logged(self, client, other_user_id, budget, captured_logs):
        with pytest.raises(PermissionDeniedError):
            client.permissions.assert_can_write(other_user_id, budget.budget_id)

        record = next(r for r in captured_logs() if r["message"] == "permission_denied")
        assert record["capability"] == "write"
        assert record["has_row"] is False


class TestSetPermissions:

    def test_scenario_b(self, client, owner_id, other_user_id, make_user, budget):
        client.set_permissions(
            owner_id,
            PermissionInfo(
                other_user_id,
                budget.budget_id,
                can_read=True,
                can_write=True,
                can_share=False,
                can_delete=False,
            ),
        )

        assert client.get_budget_by_id(other_user_id, budget.budget_id) == budget

        third = make_user("Third Party")
        with pytest.raises(PermissionDeniedError) as exc_info:
            client.set_permissions(
                other_user_id, PermissionInfo(third, budget.budget_id, can_read=True)
            )
        assert exc_info.value.capability == "share"
        assert client.get_permissions(third, budget.budget_id) is None

    def test_last_write_wins(self, session, client, owner_id, other_user_id, budget):
        client.set_permissions(
            owner_id, PermissionInfo(other_user_id, budget.budget_id, can_read=True, can_write=True)
        )
        client.set_permissions(
            owner_id, PermissionInfo(other_user_id, budget.budget_id, can_share=True)
        )

        flags = client.get_permissions(other_user_id, budget.budget_id)
        assert flags == PermissionInfo(other_user_id, budget.budget_id, can_share=True)

        rows = session.execute(
            select(func.count()).select_from(Permission).where(
                Permission.user_id == other_user_id,
                Permission.budget_id == budget.budget_id,
            )
        ).scalar_one()
        assert rows == 1

    def test_revoking_read(self, client, owner_id, other_user_id, budget):
        client.set_permissions(
            owner_id, PermissionInfo(other_user_id, budget.budget_id, can_read=True)
        )
        client.set_permissions(owner_id, PermissionInfo(other_user_id, budget.budget_id))

        with pytest.raises(PermissionDeniedError):
            client.get_budget_by_id(other_user_id, budget.budget_id)

    def test_permissions_set_logged(self, client, owner_id, other_user_id, budget, captured_logs):
        client.set_permissions(
            owner_id, PermissionInfo(other_user_id, budget.budget_id, can_read=True)
        )

        record = next(r for r in captured_logs() if r["message"] == "permissions_set")
        assert record["target_user_id"] == str(other_user_id)
        assert record["can_read"] is True
        assert record["can_write"] is False
        assert record["actor_id"] == str(owner_id)

    def test_no_implicit_grants(self, client, owner_id, other_user_id, budget):
        """Only budget creation and set_permissions write permission rows."""
        client.update_budget(owner_id, budget.budget_id, "Renamed")

        assert client.get_permissions(other_user_id, budget.budget_id) is None
        assert client.get_permissions(owner_id, uuid4()) is None
