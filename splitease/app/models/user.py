"""
models/user.py — User table definition.

No business logic. No imports from services or routes.

Users are created by the identity provider sync (external). The balance
engine only reads `name` and `wallet_address` as display metadata for
simplified-debt edges.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from splitease.app.extensions import db


class User(db.Model):
    __tablename__ = "users"

    __table_args__ = (
        CheckConstraint(
            "email LIKE '%@%'",
            name="ck_users_email_format",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    # Display name; optional until the user completes their profile.
    name: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
    )

    # 0x address on the settlement network, stored lowercase. Null until linked.
    wallet_address: Mapped[str | None] = mapped_column(
        String(42),
        nullable=True,
        unique=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    memberships: Mapped[list["Membership"]] = relationship(  # noqa: F821
        "Membership",
        back_populates="user",
    )

    expenses_paid: Mapped[list["Expense"]] = relationship(  # noqa: F821
        "Expense",
        back_populates="payer",
        foreign_keys="[Expense.paid_by_user_id]",
    )

    splits: Mapped[list["Split"]] = relationship(  # noqa: F821
        "Split",
        back_populates="user",
    )

    settlements_sent: Mapped[list["Settlement"]] = relationship(  # noqa: F821
        "Settlement",
        back_populates="sender",
        foreign_keys="[Settlement.from_user_id]",
    )

    settlements_received: Mapped[list["Settlement"]] = relationship(  # noqa: F821
        "Settlement",
        back_populates="recipient",
        foreign_keys="[Settlement.to_user_id]",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<User id={self.id} name={self.name!r}>"
