"""PlanService -- flat, write-once subscription plans."""

from decimal import Decimal
from uuid import UUID, uuid4

from budget_kernel.domain.dtos import PlanInfo
from budget_kernel.exceptions import DuplicateIdentityError
from budget_kernel.models import Plan
from budget_kernel.services.base import BaseService


class PlanService(BaseService):
    def create_plan(
        self, name: str, cost: Decimal, plan_id: UUID | None = None
    ) -> PlanInfo:
        """
        Insert a plan.  Plans are never updated afterwards.

        Raises:
            DuplicateIdentityError: If ``plan_id`` already exists.
        """
        plan_id = plan_id or uuid4()
        if self.session.get(Plan, plan_id) is not None:
            raise DuplicateIdentityError("plan", str(plan_id))
        plan = Plan(id=plan_id, name=name, cost=Decimal(cost))
        self.executor.add(plan)
        self.executor.flush()
        return _to_info(plan)

    def get_plan_by_id(self, plan_id: UUID) -> PlanInfo | None:
        plan = self.session.get(Plan, plan_id)
        return _to_info(plan) if plan is not None else None


def _to_info(plan: Plan) -> PlanInfo:
    return PlanInfo(plan_id=plan.id, name=plan.name, cost=plan.cost)
