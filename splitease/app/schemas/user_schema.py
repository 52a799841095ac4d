"""
schemas/user_schema.py — Marshmallow schema for the caller's profile.

Validation responsibility:
  - This file: name length and trim, wallet address format.
  - services/user_service.py: WALLET_IN_USE (409) — uniqueness needs the DB.

Wallet addresses are lowercased on load so the unique column compares
addresses, not spellings.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, post_load, validate

from splitease.app.schemas.group_schema import WALLET_ADDRESS_PATTERN


def _validate_name(value: str) -> None:
    if not value.strip():
        raise ValidationError("Name must not be blank.")


class UpdateProfileSchema(Schema):
    """
    PATCH /users/me

    Both fields are optional. Sending wallet_address: null unlinks the wallet.
    """

    name = fields.Str(
        validate=[
            validate.Length(min=1, max=100, error="Name must be between 1 and 100 characters."),
            _validate_name,
        ],
    )

    wallet_address = fields.Str(
        allow_none=True,
        validate=validate.Regexp(
            WALLET_ADDRESS_PATTERN,
            error="wallet_address must be a 0x-prefixed 20-byte hex string.",
        ),
    )

    @post_load
    def normalise(self, data: dict, **kwargs) -> dict:
        if "name" in data:
            data["name"] = data["name"].strip()
        if data.get("wallet_address") is not None:
            data["wallet_address"] = data["wallet_address"].lower()
        return data
