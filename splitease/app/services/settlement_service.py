"""
services/settlement_service.py — Settlement business logic.

A settlement is the record of an on-chain transfer. The client submits the
transfer to the network itself, then reports it here with the transaction
hash. The record starts PENDING; once the network confirms or rejects the
transaction it moves to CONFIRMED or FAILED. Only CONFIRMED settlements
count in balance_service.compute_balances().

The server never reads the chain; status reports are taken as given. Only
the recipient may confirm a settlement. Either party may report a failure.

Transaction hashes are stored lowercase and looked up lowercase.

Rules enforced here:
  SELF_SETTLEMENT (422)           — from_user_id must not equal to_user_id
  RECIPIENT_NOT_MEMBER (422)      — to_user_id must be a group member
  DUPLICATE_TX_HASH (409)         — one settlement per transaction
  INVALID_STATUS_TRANSITION (409) — CONFIRMED and FAILED are terminal
  FORBIDDEN (403)                 — caller must be a group member
  FORBIDDEN (403)                 — confirm: recipient only; fail: sender or recipient
  OVERPAYMENT warning             — recorded anyway; pre-payment is valid

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from splitease.app.errors import AppError, ErrorCode, WarningCode
from splitease.app.models.group import Group
from splitease.app.models.settlement import Settlement, SettlementStatus
from splitease.app.services import balance_service

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _get_group_or_404(group_id: int, session: Session) -> Group:
    group = session.get(Group, group_id)
    if group is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )
    return group


def _require_member(group_id: int, user_id: int, member_ids: list[int]) -> None:
    """Raises FORBIDDEN (403) if user_id is not a member of group_id."""
    if user_id not in member_ids:
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of group {group_id}.",
            403,
        )


def _get_settlement_by_tx_hash(tx_hash: str, session: Session) -> Settlement | None:
    stmt = select(Settlement).where(Settlement.tx_hash == tx_hash)
    return session.execute(stmt).scalar_one_or_none()


def _require_party(settlement: Settlement, caller_id: int, status: SettlementStatus) -> None:
    """
    CONFIRMED may only be reported by the recipient; FAILED by either party.
    """
    if status == SettlementStatus.CONFIRMED:
        allowed = {settlement.to_user_id}
    else:
        allowed = {settlement.from_user_id, settlement.to_user_id}

    if caller_id not in allowed:
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You may not mark settlement {settlement.tx_hash} as {status.value}.",
            403,
        )


# ── Public service functions ───────────────────────────────────────────────

def create_settlement(
        group_id: int,
        from_user_id: int,
        data: dict,
        session: Session,
) -> tuple[Settlement, list[dict]]:
    """
    Records a PENDING settlement from from_user_id to data["to_user_id"].

    Args:
        group_id:     The group this settlement belongs to.
        from_user_id: The authenticated user who sent the transfer (from flask.g).
        data:         Validated dict from CreateSettlementSchema.
                      Keys: to_user_id (int), amount (Decimal), tx_hash (str).

    Returns:
        (Settlement, warnings) where warnings is a list of warning dicts.
    """
    _get_group_or_404(group_id, session)
    member_ids = balance_service.get_member_ids(group_id, session)
    _require_member(group_id, from_user_id, member_ids)

    to_user_id: int = data["to_user_id"]
    amount: Decimal = data["amount"]
    tx_hash: str = data["tx_hash"].lower()

    if from_user_id == to_user_id:
        raise AppError(
            ErrorCode.SELF_SETTLEMENT,
            "A settlement cannot be made to yourself.",
            422,
            field="to_user_id",
        )

    if to_user_id not in member_ids:
        raise AppError(
            ErrorCode.RECIPIENT_NOT_MEMBER,
            f"User {to_user_id} is not a member of group {group_id}.",
            422,
            field="to_user_id",
        )

    if _get_settlement_by_tx_hash(tx_hash, session) is not None:
        raise AppError(
            ErrorCode.DUPLICATE_TX_HASH,
            f"A settlement for transaction {tx_hash} has already been recorded.",
            409,
            field="tx_hash",
        )

    warnings: list[dict] = []
    current_debt = balance_service.get_outstanding_debt(
        group_id, from_user_id, to_user_id, session
    )
    if amount > current_debt:
        warnings.append({
            "code": WarningCode.OVERPAYMENT,
            "message": (
                f"Settlement of {amount} exceeds current outstanding debt of "
                f"{current_debt} from user {from_user_id} to user {to_user_id}. "
                f"Recording anyway — pre-payment is valid."
            ),
        })

    settlement = Settlement(
        group_id=group_id,
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        amount=amount,
        tx_hash=tx_hash,
        status=SettlementStatus.PENDING,
    )
    session.add(settlement)
    session.flush()

    return settlement, warnings


def update_settlement_status(
        tx_hash: str,
        status: SettlementStatus,
        caller_id: int,
        session: Session,
) -> Settlement:
    """
    Records the network outcome of a settlement's transaction.

    PENDING → CONFIRMED or FAILED. Re-reporting the current status is a no-op
    so clients can retry safely; any other move out of a terminal status is
    rejected.

    Raises:
        AppError(SETTLEMENT_NOT_FOUND, 404)       -- no settlement for tx_hash.
        AppError(FORBIDDEN, 403)                  -- caller not in the settlement's group.
        AppError(FORBIDDEN, 403)                  -- caller may not report this status.
        AppError(INVALID_STATUS_TRANSITION, 409)  -- e.g. FAILED → CONFIRMED.
    """
    tx_hash = tx_hash.lower()
    settlement = _get_settlement_by_tx_hash(tx_hash, session)
    if settlement is None:
        raise AppError(
            ErrorCode.SETTLEMENT_NOT_FOUND,
            f"No settlement recorded for transaction {tx_hash}.",
            404,
        )

    _require_member(
        settlement.group_id,
        caller_id,
        balance_service.get_member_ids(settlement.group_id, session),
    )
    _require_party(settlement, caller_id, status)

    if settlement.status == status:
        return settlement

    if settlement.status != SettlementStatus.PENDING or status == SettlementStatus.PENDING:
        raise AppError(
            ErrorCode.INVALID_STATUS_TRANSITION,
            f"Settlement {tx_hash} cannot move from "
            f"{settlement.status.value} to {status.value}.",
            409,
        )

    settlement.status = status
    settlement.updated_at = datetime.now(timezone.utc)
    session.flush()

    logger.info(
        "Settlement %s (%s from user %s to user %s) marked %s.",
        tx_hash,
        settlement.amount,
        settlement.from_user_id,
        settlement.to_user_id,
        status.value,
    )
    return settlement


def list_settlements(
        group_id: int,
        caller_id: int,
        session: Session,
) -> list[Settlement]:
    """Returns all settlements for a group, newest first."""
    _get_group_or_404(group_id, session)
    _require_member(group_id, caller_id, balance_service.get_member_ids(group_id, session))

    stmt = (
        select(Settlement)
        .where(Settlement.group_id == group_id)
        .order_by(Settlement.created_at.desc(), Settlement.id.desc())
    )
    return list(session.execute(stmt).scalars().all())
