"""
models/payment_request.py — PaymentRequest table definition.

A payment request is a creditor asking a fellow member to settle up. It is a
message, not money: it never affects balances. Paying it happens through a
settlement, whose tx_hash may be attached when the request is marked PAID.

No business logic. No imports from services or routes.

Direction:
  from_user_id — the requester (the creditor)
  to_user_id   — the member asked to pay (the debtor)

Lifecycle: PENDING → PAID | DECLINED (by to_user) or CANCELLED (by from_user).
All three outcomes are terminal.
"""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, Enum, ForeignKey, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from splitease.app.extensions import db


class PaymentRequestStatus(str, enum.Enum):
    PENDING   = "PENDING"
    PAID      = "PAID"
    DECLINED  = "DECLINED"
    CANCELLED = "CANCELLED"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class PaymentRequest(db.Model):
    __tablename__ = "payment_requests"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payment_requests_amount_positive"),
        CheckConstraint(
            "from_user_id <> to_user_id",
            name="ck_payment_requests_no_self_request",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    from_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    to_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    message: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    status: Mapped[PaymentRequestStatus] = mapped_column(
        Enum(
            PaymentRequestStatus,
            name="payment_request_status_enum",
            values_callable=_enum_values,
        ),
        nullable=False,
        default=PaymentRequestStatus.PENDING,
        server_default=PaymentRequestStatus.PENDING.value,
    )

    # Required when DECLINED, null otherwise.
    rejection_reason: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # Optional on PAID; lowercase like Settlement.tx_hash.
    tx_hash: Mapped[str | None] = mapped_column(
        String(66),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    group: Mapped["Group"] = relationship("Group")  # noqa: F821

    requester: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[from_user_id],
    )

    payer: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[to_user_id],
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<PaymentRequest id={self.id} "
            f"from={self.from_user_id} "
            f"to={self.to_user_id} "
            f"amount={self.amount} "
            f"status={self.status.value if self.status else None}>"
        )
