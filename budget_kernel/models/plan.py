"""
Module: budget_kernel.models.plan
Responsibility: ORM persistence for subscription plans.  Plans are flat
    reference rows: written once, read-only thereafter, not versioned.
"""

from decimal import Decimal

from sqlalchemy import Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from budget_kernel.db.base import Base, CreatedAtMixin


class Plan(CreatedAtMixin, Base):
    """Subscription plan referenced by user versions."""

    __tablename__ = "plans"

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    cost: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Plan {self.name}>"
