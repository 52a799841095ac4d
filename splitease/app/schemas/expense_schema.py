"""
schemas/expense_schema.py — Marshmallow schemas for expense endpoints.

Validation responsibility:
  - This file (request shape, 400):
      - Field types, lengths, enum values, decimal precision
      - Per-split-type entry shape:
          EQUAL       entries carry user_id only      (SPLIT_VALUE_NOT_ALLOWED)
          EXACT       entries carry user_id + amount  (SPLIT_VALUE_REQUIRED)
          PERCENTAGE  entries carry user_id + percentage
      - DUPLICATE_SPLIT_USER
      - PATCH: split_type must accompany any change to amount or splits
      - Non-empty-after-trim enforcement for description
  - services/split_service.py (422):
      - SPLIT_MISMATCH, PERCENTAGE_MISMATCH, EMPTY_PARTICIPANT_SET
  - services/expense_service.py:
      - PAYER_NOT_MEMBER, SPLIT_USER_NOT_MEMBER (422) — DB membership lookups
      - EXPENSE_DELETED (422), FORBIDDEN (403)

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import (
    Schema,
    ValidationError,
    fields,
    validate,
    validates_schema,
)

from splitease.app.errors import ErrorCode
from splitease.app.models.expense import SplitType


# ── Shared validators ──────────────────────────────────────────────────────
#
# Input with more than 2 decimal places is REJECTED with INVALID_AMOUNT_PRECISION
# — never rounded or truncated.
# ──────────────────────────────────────────────────────────────────────────

def _check_precision(value: Decimal) -> None:
    # Decimal("10.123").as_tuple().exponent == -3  → 3 dp → reject
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def _validate_monetary_amount(value: Decimal) -> None:
    """Expense totals: strictly positive, at most 2 decimal places."""
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")
    _check_precision(value)


def _validate_split_amount(value: Decimal) -> None:
    """Split lines: zero is a legitimate share, negative is not."""
    if value < Decimal("0"):
        raise ValidationError("Split amount must not be negative.")
    _check_precision(value)


def _validate_non_empty_after_trim(value: str) -> None:
    """
    Raises ValidationError if the string is blank or contains only whitespace.
    validate.Length(min=1) alone would accept "   ".
    """
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


def _check_split_entries(split_type: SplitType, splits: list[dict] | None) -> None:
    """
    Shape rules shared by create and patch.

    EQUAL accepts no entries at all (split among every member) or a list of
    participants without values. EXACT and PERCENTAGE need a list whose every
    entry carries that policy's value and nothing else. An empty list is left
    to the allocator, which rejects it with EMPTY_PARTICIPANT_SET.
    """
    if split_type == SplitType.EQUAL:
        for entry in splits or []:
            if "amount" in entry or "percentage" in entry:
                raise ValidationError({"splits": [ErrorCode.SPLIT_VALUE_NOT_ALLOWED]})
    else:
        if splits is None:
            raise ValidationError(
                {"splits": [f"splits is required when split_type is '{split_type.value}'."]}
            )

        required = "amount" if split_type == SplitType.EXACT else "percentage"
        forbidden = "percentage" if split_type == SplitType.EXACT else "amount"
        for entry in splits:
            if required not in entry:
                raise ValidationError({"splits": [ErrorCode.SPLIT_VALUE_REQUIRED]})
            if forbidden in entry:
                raise ValidationError({"splits": [ErrorCode.SPLIT_VALUE_NOT_ALLOWED]})

    if splits:
        user_ids = [s["user_id"] for s in splits]
        if len(user_ids) != len(set(user_ids)):
            raise ValidationError({"splits": [ErrorCode.DUPLICATE_SPLIT_USER]})


# ── Sub-schema: one entry in the `splits` array ───────────────────────────

class SplitInputSchema(Schema):
    """
    One participant in a split.

    Which of amount / percentage must be present depends on the parent's
    split_type; the parent schema enforces that. Group membership of user_id
    is checked in expense_service.py.
    """

    user_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="user_id must be a positive integer."),
    )

    amount = fields.Decimal(
        required=False,
        validate=_validate_split_amount,
    )

    percentage = fields.Decimal(
        required=False,
        validate=validate.Range(
            min=Decimal("0"),
            max=Decimal("100"),
            error="percentage must be between 0 and 100.",
        ),
    )


# ── Create expense ─────────────────────────────────────────────────────────

class CreateExpenseSchema(Schema):
    """
    POST /groups/:id/expenses

    paid_by_user_id defaults to the caller in the service when omitted.
    split_type defaults to EQUAL; with no splits array an EQUAL expense is
    divided among every current group member.
    """

    paid_by_user_id = fields.Int(
        required=False,
        strict=True,
        load_default=None,
        validate=validate.Range(min=1, error="paid_by_user_id must be a positive integer."),
    )

    description = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=1,
                max=255,
                error="Description must be between 1 and 255 characters.",
            ),
            _validate_non_empty_after_trim,
        ],
    )

    amount = fields.Decimal(
        required=True,
        validate=_validate_monetary_amount,
    )

    split_type = fields.Enum(
        SplitType,
        load_default=SplitType.EQUAL,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_SPLIT_TYPE},
    )

    splits = fields.List(
        fields.Nested(SplitInputSchema),
        load_default=None,
    )

    incurred_at = fields.AwareDateTime(
        required=False,
        load_default=None,
        default_timezone=None,
    )

    @validates_schema
    def validate_splits_coherence(self, data: dict, **kwargs) -> None:
        _check_split_entries(data.get("split_type", SplitType.EQUAL), data.get("splits"))


# ── Patch expense ──────────────────────────────────────────────────────────

class PatchExpenseSchema(Schema):
    """
    PATCH /expenses/:id

    All fields are optional. Only provided fields are updated.

    Re-allocation rule:
      Changing amount, split_type or splits re-runs the split allocator, so
      split_type must be present whenever amount or splits are. The service
      then treats the request exactly like a create for the split part.
      For EQUAL without a splits array the previous participants are reused.
    """

    paid_by_user_id = fields.Int(
        required=False,
        strict=True,
        validate=validate.Range(min=1, error="paid_by_user_id must be a positive integer."),
    )

    description = fields.Str(
        required=False,
        validate=[
            validate.Length(
                min=1,
                max=255,
                error="Description must be between 1 and 255 characters.",
            ),
            _validate_non_empty_after_trim,
        ],
    )

    amount = fields.Decimal(
        required=False,
        validate=_validate_monetary_amount,
    )

    split_type = fields.Enum(
        SplitType,
        required=False,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_SPLIT_TYPE},
    )

    splits = fields.List(
        fields.Nested(SplitInputSchema),
        required=False,
    )

    incurred_at = fields.AwareDateTime(required=False)

    @validates_schema
    def validate_patch_coherence(self, data: dict, **kwargs) -> None:
        split_type = data.get("split_type")

        if split_type is None:
            if "amount" in data or "splits" in data:
                raise ValidationError(
                    {
                        "split_type": [
                            "split_type must be provided when amount or splits are being updated."
                        ],
                    }
                )
            return

        _check_split_entries(split_type, data.get("splits"))
