"""
schemas/settlement_schema.py — Marshmallow schema for settlement endpoints.

Validation responsibility:
  - This file: field types, decimal precision, positive amount, tx hash format.
    Hashes are lowercased on load; hex digits are case-insensitive, so
    "0xAB.." and "0xab.." name the same transaction.
  - services/settlement_service.py:
      - SELF_SETTLEMENT (422)       — needs the caller's user_id from flask.g
      - RECIPIENT_NOT_MEMBER (422)  — DB membership lookup
      - DUPLICATE_TX_HASH (409)     — DB uniqueness lookup
      - OVERPAYMENT warning (201)   — needs current balances

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import Schema, ValidationError, fields, post_load, validate

from splitease.app.errors import ErrorCode


def _validate_monetary_amount(value: Decimal) -> None:
    """
    Strictly greater than zero, at most 2 decimal places.

    Kept here rather than imported from expense_schema so each schema file
    is self-contained.
    """
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")

    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


class CreateSettlementSchema(Schema):
    """
    POST /groups/:id/settlements

    Records a transfer the authenticated user (from_user_id, taken from
    flask.g in the route) has just submitted on-chain. The settlement starts
    PENDING and only affects balances once confirmed.
    """

    to_user_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(
            min=1,
            error="to_user_id must be a positive integer.",
        ),
    )

    amount = fields.Decimal(
        required=True,
        validate=_validate_monetary_amount,
    )

    tx_hash = fields.Str(
        required=True,
        validate=validate.Regexp(
            r"^0x[0-9a-fA-F]{64}$",
            error="tx_hash must be a 0x-prefixed 32-byte hex string.",
        ),
    )

    @post_load
    def normalise_tx_hash(self, data: dict, **kwargs) -> dict:
        data["tx_hash"] = data["tx_hash"].lower()
        return data
