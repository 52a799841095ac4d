"""
schemas/group_schema.py — Marshmallow schemas for group and membership endpoints.

Validation responsibility:
  - This file: field types, string lengths, non-empty checks (including trim),
    invite code format, exactly one lookup key when inviting a member.
  - services/group_service.py:
      - FORBIDDEN (403)               — caller must be a member
      - USER_NOT_FOUND (404)          — invitee lookup needs the DB
      - ALREADY_MEMBER (409)          — membership lookup
      - INVITE_CODE_NOT_FOUND (404)   — invite code lookup
      - MEMBER_HAS_HISTORY (422)      — expense / settlement lookups

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from marshmallow import (
    Schema,
    ValidationError,
    fields,
    post_load,
    validate,
    validates_schema,
)

from splitease.app.errors import ErrorCode
from splitease.app.models.group import INVITE_CODE_LENGTH

WALLET_ADDRESS_PATTERN = r"^0x[0-9a-fA-F]{40}$"


def _validate_non_empty_after_trim(value: str) -> None:
    """
    Raises ValidationError if the string is blank or contains only whitespace.
    Mirrors the DB CHECK(LENGTH(TRIM(name)) > 0) constraint at the API layer.
    """
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


class CreateGroupSchema(Schema):
    """
    POST /groups

    The creator becomes the owner and the first member. The invite code is
    generated server-side.
    """

    name = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=1,
                max=100,
                error="Group name must be between 1 and 100 characters.",
            ),
            _validate_non_empty_after_trim,
        ],
    )

    description = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=500),
    )

    @post_load
    def strip_text(self, data: dict, **kwargs) -> dict:
        data["name"] = data["name"].strip()
        if data["description"] is not None:
            data["description"] = data["description"].strip() or None
        return data


class JoinGroupSchema(Schema):
    """POST /groups/join — codes are matched case-insensitively."""

    invite_code = fields.Str(
        required=True,
        validate=validate.Regexp(
            rf"^\s*[0-9a-fA-F]{{{INVITE_CODE_LENGTH}}}\s*$",
            error=f"invite_code must be {INVITE_CODE_LENGTH} hex characters.",
        ),
    )

    @post_load
    def normalise_code(self, data: dict, **kwargs) -> dict:
        data["invite_code"] = data["invite_code"].strip().upper()
        return data


class AddMemberSchema(Schema):
    """
    POST /groups/:id/members

    The invitee is identified by exactly one of user_id, email or
    wallet_address. Whether that user exists is a DB concern
    (USER_NOT_FOUND, 404), checked in group_service.py.
    """

    user_id = fields.Int(
        strict=True,
        validate=validate.Range(
            min=1,
            error="user_id must be a positive integer.",
        ),
    )

    email = fields.Email()

    wallet_address = fields.Str(
        validate=validate.Regexp(
            WALLET_ADDRESS_PATTERN,
            error="wallet_address must be a 0x-prefixed 20-byte hex string.",
        ),
    )

    @validates_schema
    def validate_single_lookup(self, data: dict, **kwargs) -> None:
        provided = [key for key in ("user_id", "email", "wallet_address") if key in data]
        if len(provided) != 1:
            raise ValidationError(ErrorCode.INVALID_MEMBER_LOOKUP)

    @post_load
    def normalise_keys(self, data: dict, **kwargs) -> dict:
        if "wallet_address" in data:
            data["wallet_address"] = data["wallet_address"].lower()
        if "email" in data:
            data["email"] = data["email"].strip().lower()
        return data
