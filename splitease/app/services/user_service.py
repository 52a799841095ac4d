"""
services/user_service.py — The caller's own profile.

Users are created by the identity provider; this service reads them and
lets the owner of a profile set a display name and link a wallet. The name
and wallet are what simplify_debts() puts on each transfer edge.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from splitease.app.errors import AppError, ErrorCode
from splitease.app.models.expense import Expense
from splitease.app.models.membership import Membership
from splitease.app.models.settlement import Settlement, SettlementStatus
from splitease.app.models.user import User
from splitease.app.money import ZERO, to_cents


def _get_user_or_404(user_id: int, session: Session) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} does not exist.",
            404,
        )
    return user


def _count(stmt, session: Session) -> int:
    return session.execute(stmt).scalar_one()


def _build_profile(user: User, session: Session) -> dict:
    groups_joined = _count(
        select(func.count(Membership.id)).where(Membership.user_id == user.id),
        session,
    )
    expenses_paid = _count(
        select(func.count(Expense.id)).where(
            Expense.paid_by_user_id == user.id,
            Expense.deleted_at.is_(None),
        ),
        session,
    )
    settlements_count = _count(
        select(func.count(Settlement.id)).where(
            or_(Settlement.from_user_id == user.id, Settlement.to_user_id == user.id),
        ),
        session,
    )
    total_settled = session.execute(
        select(func.coalesce(func.sum(Settlement.amount), 0)).where(
            Settlement.from_user_id == user.id,
            Settlement.status == SettlementStatus.CONFIRMED,
        )
    ).scalar_one()

    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "wallet_address": user.wallet_address,
        "created_at": user.created_at.isoformat() if user.created_at else None,
        "stats": {
            "groups_joined": groups_joined,
            "expenses_paid": expenses_paid,
            "settlements_count": settlements_count,
            "total_settled": str(to_cents(total_settled or ZERO)),
        },
    }


def get_profile(user_id: int, session: Session) -> dict:
    """
    Returns the user's profile plus activity counts.

    total_settled is the sum of CONFIRMED settlements the user has sent.
    """
    return _build_profile(_get_user_or_404(user_id, session), session)


def update_profile(user_id: int, data: dict, session: Session) -> dict:
    """
    Applies a validated UpdateProfileSchema dict to the user.

    Raises:
        AppError(USER_NOT_FOUND, 404) -- no user for the token's subject.
        AppError(WALLET_IN_USE, 409)  -- another user already linked this wallet.
    """
    user = _get_user_or_404(user_id, session)

    if "name" in data:
        user.name = data["name"]

    if "wallet_address" in data:
        wallet = data["wallet_address"]
        if wallet is not None:
            owner = session.execute(
                select(User.id).where(
                    func.lower(User.wallet_address) == wallet,
                    User.id != user_id,
                )
            ).scalar_one_or_none()
            if owner is not None:
                raise AppError(
                    ErrorCode.WALLET_IN_USE,
                    "This wallet address is already linked to another account.",
                    409,
                    field="wallet_address",
                )
        user.wallet_address = wallet

    session.flush()
    return _build_profile(user, session)
