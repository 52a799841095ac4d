"""
services/split_service.py — Expense split allocation.

Partitions an expense total into per-member owed amounts under one of three
policies. This is the ONLY place split amounts are computed; expense_service
calls it on create and on every edit that touches amount, split type or splits.

Policies (one payload shape per variant):
  EqualSplit       participant_ids            → even division, first participant
                                                absorbs the rounding remainder
  ExactSplit       (user_id, amount) pairs    → caller-supplied amounts, must sum
                                                to the total within one cent
  PercentageSplit  (user_id, percentage) pairs → percentages must sum to 100
                                                within 0.01; remainder NOT reconciled

Layer rules:
  - No Flask imports, no session, no DB access. Pure computation.
  - Membership of the resulting user_ids is NOT checked here; the caller
    (expense_service) validates against the group before persisting.
  - Returns plain lists of {"user_id": int, "amount": Decimal} in input order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from typing import Iterable, Union

from splitease.app.errors import EmptyParticipantSet, PercentageMismatch, SplitMismatch
from splitease.app.models.expense import SplitType
from splitease.app.money import CENT, HUNDRED, ZERO, as_decimal, to_cents

logger = logging.getLogger(__name__)


# ── Split policies ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class EqualSplit:
    participant_ids: tuple[int, ...]


@dataclass(frozen=True)
class ExactSplit:
    amounts: tuple[tuple[int, Decimal], ...]


@dataclass(frozen=True)
class PercentageSplit:
    percentages: tuple[tuple[int, Decimal], ...]


SplitPolicy = Union[EqualSplit, ExactSplit, PercentageSplit]


# ── Allocation per policy ──────────────────────────────────────────────────

def _allocate_equal(total: Decimal, participant_ids: tuple[int, ...]) -> list[dict]:
    """
    Divides total evenly, rounding the per-person share to cents.

    The first participant in iteration order receives per_person + remainder,
    where remainder = total - per_person * n. The remainder is negative when
    the share was rounded up: 20.00 / 3 gives 6.67 per person and a remainder
    of -0.01, so the first participant owes 6.66. The result always sums
    exactly to total.

    If rounding up would push the first share below zero (a sub-cent share
    spread across a large group), the share is rounded down instead so the
    remainder is non-negative.
    """
    if not participant_ids:
        raise EmptyParticipantSet()

    count = Decimal(len(participant_ids))
    per_person = to_cents(total / count)
    remainder = total - per_person * count

    if per_person + remainder < ZERO:
        per_person = (total / count).quantize(CENT, rounding=ROUND_DOWN)
        remainder = total - per_person * count

    return [
        {
            "user_id": uid,
            "amount": per_person + remainder if index == 0 else per_person,
        }
        for index, uid in enumerate(participant_ids)
    ]


def _allocate_exact(total: Decimal, amounts: tuple[tuple[int, Decimal], ...]) -> list[dict]:
    """
    Uses the caller's amounts (rounded to cents) after checking they sum to total.

    The one-cent tolerance exists for rounding noise in client input. When the
    sum is off by exactly one cent, the first line that can absorb it without
    going negative takes the difference, so accepted splits sum exactly to total.
    """
    if not amounts:
        raise EmptyParticipantSet()

    splits = [{"user_id": uid, "amount": to_cents(amount)} for uid, amount in amounts]
    split_total = sum((s["amount"] for s in splits), ZERO)

    if abs(split_total - total) > CENT:
        raise SplitMismatch(split_total, total)

    residual = total - split_total
    if residual != ZERO:
        absorber = next(s for s in splits if s["amount"] + residual >= ZERO)
        absorber["amount"] += residual

    return splits


def _allocate_percentage(
        total: Decimal,
        percentages: tuple[tuple[int, Decimal], ...],
) -> list[dict]:
    """
    Converts each percentage into an amount rounded to cents.

    The rounding remainder is deliberately left in place: the resulting splits
    may drift from total by a few cents. Drift is logged, not corrected.
    """
    if not percentages:
        raise EmptyParticipantSet()

    percentage_total = sum((as_decimal(pct) for _, pct in percentages), Decimal("0"))
    if abs(percentage_total - HUNDRED) > CENT:
        raise PercentageMismatch(percentage_total)

    splits = [
        {"user_id": uid, "amount": to_cents(as_decimal(pct) / HUNDRED * total)}
        for uid, pct in percentages
    ]

    drift = total - sum((s["amount"] for s in splits), ZERO)
    if drift != ZERO:
        logger.warning(
            "Percentage split of %s leaves %s unallocated across %d participants.",
            total,
            drift,
            len(splits),
        )

    return splits


# ── Public API ─────────────────────────────────────────────────────────────

def allocate(total_amount, policy: SplitPolicy) -> list[dict]:
    """
    Partitions total_amount according to policy.

    Returns:
        List of {"user_id": int, "amount": Decimal} in the policy's input order.

    Raises:
        EmptyParticipantSet -- the policy names zero participants.
        SplitMismatch       -- EXACT amounts are more than one cent off total.
        PercentageMismatch  -- PERCENTAGE values are more than 0.01 off 100.
    """
    total = to_cents(total_amount)

    if isinstance(policy, EqualSplit):
        return _allocate_equal(total, policy.participant_ids)
    if isinstance(policy, ExactSplit):
        return _allocate_exact(total, policy.amounts)
    if isinstance(policy, PercentageSplit):
        return _allocate_percentage(total, policy.percentages)

    raise TypeError(f"Unsupported split policy: {type(policy).__name__}")


def build_policy(
        split_type: SplitType,
        entries: Iterable[dict] | None,
        default_participants: Iterable[int] = (),
) -> SplitPolicy:
    """
    Builds a policy from validated request entries.

    Args:
        split_type:           EQUAL, EXACT or PERCENTAGE.
        entries:              {"user_id", "amount"?, "percentage"?} dicts from the
                              expense schema. May be None or empty.
        default_participants: Used by EQUAL when no entries are supplied
                              (split among every group member).
    """
    entries = list(entries or [])

    if split_type == SplitType.EQUAL:
        if entries:
            return EqualSplit(tuple(e["user_id"] for e in entries))
        return EqualSplit(tuple(default_participants))

    if split_type == SplitType.EXACT:
        return ExactSplit(tuple((e["user_id"], e["amount"]) for e in entries))

    if split_type == SplitType.PERCENTAGE:
        return PercentageSplit(tuple((e["user_id"], e["percentage"]) for e in entries))

    raise ValueError(f"Unknown split type: {split_type!r}")


def allocate_split(
        total_amount,
        split_type: SplitType,
        entries: Iterable[dict] | None,
        default_participants: Iterable[int] = (),
) -> list[dict]:
    """Convenience wrapper: build_policy() followed by allocate()."""
    policy = build_policy(split_type, entries, default_participants)
    return allocate(total_amount, policy)
