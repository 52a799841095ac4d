"""
models/group.py — Group table definition.

A group is the unit of balance computation: expenses and settlements are
scoped to one group, and balances are only ever netted within it.

No business logic. No imports from services or routes.

  - owner_user_id is the member who created the group. The owner may edit any
    expense and remove other members; ownership is never transferred.
  - invite_code lets a user join without being added by a member. It is
    generated on insert and is unique across all groups.
"""

from __future__ import annotations

import secrets
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from splitease.app.extensions import db

INVITE_CODE_LENGTH = 8


def new_invite_code() -> str:
    """Eight uppercase hex characters, e.g. "3FA91C0D"."""
    return secrets.token_hex(INVITE_CODE_LENGTH // 2).upper()


class Group(db.Model):
    __tablename__ = "groups"

    __table_args__ = (
        CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_groups_name_nonempty",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    owner_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    invite_code: Mapped[str] = mapped_column(
        String(INVITE_CODE_LENGTH),
        nullable=False,
        unique=True,
        default=new_invite_code,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    owner: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[owner_user_id],
    )

    memberships: Mapped[list["Membership"]] = relationship(  # noqa: F821
        "Membership",
        back_populates="group",
    )

    expenses: Mapped[list["Expense"]] = relationship(  # noqa: F821
        "Expense",
        back_populates="group",
    )

    settlements: Mapped[list["Settlement"]] = relationship(  # noqa: F821
        "Settlement",
        back_populates="group",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Group id={self.id} name={self.name!r} invite_code={self.invite_code!r}>"
