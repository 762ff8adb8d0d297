"""
Module: budget_kernel.models.user
Responsibility: ORM persistence for user identities and their version chain.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from budget_kernel.db.base import Base, CreatedAtMixin, UUIDString, VersionRow


class User(CreatedAtMixin, Base):
    """Immutable user identity.  Content lives in UserVersion."""

    __tablename__ = "users"


class UserVersion(VersionRow, Base):
    """One snapshot of a user's profile."""

    __tablename__ = "user_versions"

    __table_args__ = (
        UniqueConstraint("user_id", "version_number", name="uq_user_version_number"),
        Index(
            "uq_user_versions_most_recent",
            "user_id",
            unique=True,
            postgresql_where=text("is_most_recent"),
            sqlite_where=text("is_most_recent"),
        ),
    )

    user_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("users.id"),
        nullable=False,
    )

    full_name: Mapped[str] = mapped_column(String(255), nullable=False)

    display_name: Mapped[str] = mapped_column(String(255), nullable=False)

    email: Mapped[str] = mapped_column(String(320), nullable=False)

    plan_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("plans.id"),
        nullable=True,
    )
