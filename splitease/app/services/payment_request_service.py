"""
services/payment_request_service.py — Payment request business logic.

A payment request asks a fellow group member to settle up. It never moves a
balance; the debtor pays with a settlement and may attach its tx_hash when
marking the request PAID.

Who may do what:
  create     — any member, asking another member of the same group
  PAID       — the member who was asked (to_user_id)
  DECLINED   — the member who was asked, with a rejection reason
  CANCELLED  — the requester (from_user_id)

Only PENDING requests change (REQUEST_ALREADY_RESOLVED, 409).

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from splitease.app.errors import AppError, ErrorCode
from splitease.app.models.group import Group
from splitease.app.models.payment_request import PaymentRequest, PaymentRequestStatus
from splitease.app.money import ZERO
from splitease.app.services import balance_service

logger = logging.getLogger(__name__)

_ALLOWED_ACTOR = {
    PaymentRequestStatus.PAID: "to_user_id",
    PaymentRequestStatus.DECLINED: "to_user_id",
    PaymentRequestStatus.CANCELLED: "from_user_id",
}


def _get_request_or_404(request_id: int, session: Session) -> PaymentRequest:
    payment_request = session.get(PaymentRequest, request_id)
    if payment_request is None:
        raise AppError(
            ErrorCode.PAYMENT_REQUEST_NOT_FOUND,
            f"Payment request {request_id} does not exist.",
            404,
        )
    return payment_request


def create_payment_request(
        from_user_id: int,
        data: dict,
        session: Session,
) -> PaymentRequest:
    """
    Records a PENDING request from the caller to data["to_user_id"].

    Args:
        from_user_id: The authenticated requester.
        data:         Validated dict from CreatePaymentRequestSchema.
                      Keys: group_id, to_user_id, amount (Decimal | None), message.

    Raises:
        AppError(GROUP_NOT_FOUND, 404)
        AppError(FORBIDDEN, 403)              -- requester not in the group.
        AppError(SELF_REQUEST, 422)
        AppError(RECIPIENT_NOT_MEMBER, 422)
        AppError(NO_OUTSTANDING_DEBT, 422)    -- amount omitted, nothing owed.
    """
    group_id: int = data["group_id"]
    to_user_id: int = data["to_user_id"]

    if session.get(Group, group_id) is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )

    member_ids = balance_service.get_member_ids(group_id, session)
    if from_user_id not in member_ids:
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of group {group_id}.",
            403,
        )

    if to_user_id == from_user_id:
        raise AppError(
            ErrorCode.SELF_REQUEST,
            "You cannot request a payment from yourself.",
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

    amount = data.get("amount")
    if amount is None:
        amount = balance_service.get_outstanding_debt(
            group_id, to_user_id, from_user_id, session
        )
        if amount <= ZERO:
            raise AppError(
                ErrorCode.NO_OUTSTANDING_DEBT,
                f"User {to_user_id} does not currently owe you anything in "
                f"group {group_id}. Provide an amount to request one anyway.",
                422,
                field="amount",
            )

    payment_request = PaymentRequest(
        group_id=group_id,
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        amount=amount,
        message=data.get("message"),
        status=PaymentRequestStatus.PENDING,
    )
    session.add(payment_request)
    session.flush()
    return payment_request


def list_payment_requests(user_id: int, session: Session) -> dict:
    """
    Returns the caller's requests, newest first.

    incoming: PENDING requests asking the caller to pay.
    outgoing: every request the caller has made, any status.
    """
    newest_first = (PaymentRequest.created_at.desc(), PaymentRequest.id.desc())

    incoming = session.execute(
        select(PaymentRequest)
        .where(
            PaymentRequest.to_user_id == user_id,
            PaymentRequest.status == PaymentRequestStatus.PENDING,
        )
        .order_by(*newest_first)
    ).scalars().all()

    outgoing = session.execute(
        select(PaymentRequest)
        .where(PaymentRequest.from_user_id == user_id)
        .order_by(*newest_first)
    ).scalars().all()

    return {"incoming": list(incoming), "outgoing": list(outgoing)}


def update_payment_request(
        request_id: int,
        caller_id: int,
        data: dict,
        session: Session,
) -> PaymentRequest:
    """
    Resolves a PENDING request as PAID, DECLINED or CANCELLED.

    Raises:
        AppError(PAYMENT_REQUEST_NOT_FOUND, 404)
        AppError(FORBIDDEN, 403)                 -- caller may not set this status.
        AppError(REQUEST_ALREADY_RESOLVED, 409)
    """
    payment_request = _get_request_or_404(request_id, session)
    status: PaymentRequestStatus = data["status"]

    if caller_id != getattr(payment_request, _ALLOWED_ACTOR[status]):
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You may not mark payment request {request_id} as {status.value}.",
            403,
        )

    if payment_request.status != PaymentRequestStatus.PENDING:
        raise AppError(
            ErrorCode.REQUEST_ALREADY_RESOLVED,
            f"Payment request {request_id} is already {payment_request.status.value}.",
            409,
        )

    payment_request.status = status
    if status == PaymentRequestStatus.DECLINED:
        payment_request.rejection_reason = data["rejection_reason"]
    if status == PaymentRequestStatus.PAID and data.get("tx_hash"):
        payment_request.tx_hash = data["tx_hash"]
    payment_request.updated_at = datetime.now(timezone.utc)
    session.flush()

    logger.info(
        "Payment request %s (%s owed by user %s to user %s) marked %s.",
        request_id,
        payment_request.amount,
        payment_request.to_user_id,
        payment_request.from_user_id,
        status.value,
    )
    return payment_request
