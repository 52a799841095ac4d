"""
errors.py — AppError base class, error code registry, and the split allocator's
validation errors.

Every error returned by the SplitEase API uses a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Never conflate 401 (unauthenticated) with 403 (unauthorized).
"""

from __future__ import annotations

from decimal import Decimal


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"AppError(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
#
# IMPORTANT: these are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_AMOUNT_PRECISION   = "INVALID_AMOUNT_PRECISION"
    INVALID_SPLIT_TYPE         = "INVALID_SPLIT_TYPE"
    INVALID_SETTLEMENT_STATUS  = "INVALID_SETTLEMENT_STATUS"
    SPLIT_VALUE_NOT_ALLOWED    = "SPLIT_VALUE_NOT_ALLOWED"
    SPLIT_VALUE_REQUIRED       = "SPLIT_VALUE_REQUIRED"
    DUPLICATE_SPLIT_USER       = "DUPLICATE_SPLIT_USER"
    INVALID_MEMBER_LOOKUP      = "INVALID_MEMBER_LOOKUP"
    REJECTION_REASON_REQUIRED  = "REJECTION_REASON_REQUIRED"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    DUPLICATE_TX_HASH          = "DUPLICATE_TX_HASH"
    INVALID_STATUS_TRANSITION  = "INVALID_STATUS_TRANSITION"
    ALREADY_MEMBER             = "ALREADY_MEMBER"
    WALLET_IN_USE              = "WALLET_IN_USE"
    REQUEST_ALREADY_RESOLVED   = "REQUEST_ALREADY_RESOLVED"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"
    GROUP_NOT_FOUND            = "GROUP_NOT_FOUND"
    EXPENSE_NOT_FOUND          = "EXPENSE_NOT_FOUND"
    SETTLEMENT_NOT_FOUND       = "SETTLEMENT_NOT_FOUND"
    INVITE_CODE_NOT_FOUND      = "INVITE_CODE_NOT_FOUND"
    PAYMENT_REQUEST_NOT_FOUND  = "PAYMENT_REQUEST_NOT_FOUND"

    # ── Business Rule Violations (422) ────────────────────────────────────
    PAYER_NOT_MEMBER           = "PAYER_NOT_MEMBER"
    SPLIT_USER_NOT_MEMBER      = "SPLIT_USER_NOT_MEMBER"
    SPLIT_MISMATCH             = "SPLIT_MISMATCH"
    PERCENTAGE_MISMATCH        = "PERCENTAGE_MISMATCH"
    EMPTY_PARTICIPANT_SET      = "EMPTY_PARTICIPANT_SET"
    RECIPIENT_NOT_MEMBER       = "RECIPIENT_NOT_MEMBER"
    SELF_SETTLEMENT            = "SELF_SETTLEMENT"
    EXPENSE_DELETED            = "EXPENSE_DELETED"
    MEMBER_HAS_HISTORY         = "MEMBER_HAS_HISTORY"
    OWNER_CANNOT_LEAVE         = "OWNER_CANNOT_LEAVE"
    SELF_REQUEST               = "SELF_REQUEST"
    NO_OUTSTANDING_DEBT        = "NO_OUTSTANDING_DEBT"

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed (unauthorized)
    TOKEN_MISSING              = "TOKEN_MISSING"          # 401
    TOKEN_INVALID              = "TOKEN_INVALID"          # 401
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"          # 401
    FORBIDDEN                  = "FORBIDDEN"              # 403

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR             = "INTERNAL_ERROR"


# ── Warning Code Registry ──────────────────────────────────────────────────
#
# Warnings are returned alongside a 2xx response in the `warnings` array.
# They do not block the request.
# ──────────────────────────────────────────────────────────────────────────

class WarningCode:

    # Settlement amount exceeds what the sender currently owes the recipient.
    # Still recorded — pre-payment is valid.
    OVERPAYMENT = "OVERPAYMENT"


# ── Split allocator errors ─────────────────────────────────────────────────
#
# Raised by services/split_service.py. They are local validation failures:
# never retried, always surfaced to the caller with both sides of the
# comparison so the user can correct the input.
# ──────────────────────────────────────────────────────────────────────────

class SplitMismatch(AppError):
    """EXACT split amounts do not sum to the expense total within one cent."""

    def __init__(self, split_total: Decimal, expense_total: Decimal) -> None:
        super().__init__(
            ErrorCode.SPLIT_MISMATCH,
            f"Split amounts ({split_total}) do not equal expense amount ({expense_total}).",
            422,
            field="splits",
        )
        self.split_total   = split_total
        self.expense_total = expense_total


class PercentageMismatch(AppError):
    """PERCENTAGE split values do not sum to 100 within 0.01."""

    def __init__(self, percentage_total: Decimal) -> None:
        super().__init__(
            ErrorCode.PERCENTAGE_MISMATCH,
            f"Percentages sum to {percentage_total}, not 100.",
            422,
            field="splits",
        )
        self.percentage_total = percentage_total


class EmptyParticipantSet(AppError):
    """A split was requested over zero participants."""

    def __init__(self) -> None:
        super().__init__(
            ErrorCode.EMPTY_PARTICIPANT_SET,
            "An expense must be split among at least one participant.",
            422,
            field="splits",
        )
