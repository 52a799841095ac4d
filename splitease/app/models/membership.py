"""
models/membership.py — Who belongs to which group.

No business logic. No imports from services or routes.

Every group-scoped read and write checks for a row here first. The set of
memberships is also the seed for balance computation: each member appears in
the balances payload even with no expenses.

Rows are hard-deleted when a member leaves or is removed. group_service only
allows that while the member appears in no active expense and no live
settlement, so removing a membership never hides a non-zero balance.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from splitease.app.extensions import db


class Membership(db.Model):
    __tablename__ = "memberships"

    __table_args__ = (
        UniqueConstraint("user_id", "group_id", name="uq_memberships_user_group"),
    )

    # Members are listed in id order (join order); simplify_debts() breaks
    # ties between equal balances in that order.
    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    user: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="memberships",
    )

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="memberships",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Membership user_id={self.user_id} group_id={self.group_id}>"
