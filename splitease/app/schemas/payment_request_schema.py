"""
schemas/payment_request_schema.py — Marshmallow schemas for payment requests.

Validation responsibility:
  - This file: field types, decimal precision, message length, status values,
    REJECTION_REASON_REQUIRED for DECLINED, tx hash format.
  - services/payment_request_service.py:
      - FORBIDDEN (403)                — membership and per-status actor rules
      - SELF_REQUEST (422)             — needs the caller's user_id
      - RECIPIENT_NOT_MEMBER (422)     — DB membership lookup
      - NO_OUTSTANDING_DEBT (422)      — amount omitted and nothing is owed
      - REQUEST_ALREADY_RESOLVED (409) — only PENDING requests change

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import (
    Schema,
    ValidationError,
    fields,
    post_load,
    validate,
    validates_schema,
)

from splitease.app.errors import ErrorCode
from splitease.app.models.payment_request import PaymentRequestStatus


def _validate_monetary_amount(value: Decimal) -> None:
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")

    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


class CreatePaymentRequestSchema(Schema):
    """
    POST /payment-requests

    The requester (from_user_id) is the authenticated caller. When amount is
    omitted the service fills in what to_user_id currently owes the caller
    according to the group's simplified debts.
    """

    group_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="group_id must be a positive integer."),
    )

    to_user_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="to_user_id must be a positive integer."),
    )

    amount = fields.Decimal(
        load_default=None,
        validate=_validate_monetary_amount,
    )

    message = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=500),
    )

    @post_load
    def strip_message(self, data: dict, **kwargs) -> dict:
        if data["message"] is not None:
            data["message"] = data["message"].strip() or None
        return data


class UpdatePaymentRequestSchema(Schema):
    """
    PATCH /payment-requests/:id

    status is one of the terminal outcomes; PENDING cannot be set.
    """

    status = fields.Enum(
        PaymentRequestStatus,
        required=True,
        by_value=True,
        validate=validate.NoneOf(
            [PaymentRequestStatus.PENDING],
            error="status must be one of 'PAID', 'DECLINED' or 'CANCELLED'.",
        ),
    )

    rejection_reason = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=500),
    )

    tx_hash = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Regexp(
            r"^0x[0-9a-fA-F]{64}$",
            error="tx_hash must be a 0x-prefixed 32-byte hex string.",
        ),
    )

    @validates_schema
    def validate_outcome(self, data: dict, **kwargs) -> None:
        if data.get("status") != PaymentRequestStatus.DECLINED:
            return
        reason = data.get("rejection_reason")
        if reason is None or not reason.strip():
            raise ValidationError({"rejection_reason": [ErrorCode.REJECTION_REASON_REQUIRED]})

    @post_load
    def normalise(self, data: dict, **kwargs) -> dict:
        if data["rejection_reason"] is not None:
            data["rejection_reason"] = data["rejection_reason"].strip()
        if data["tx_hash"] is not None:
            data["tx_hash"] = data["tx_hash"].lower()
        return data
