"""
tests/unit/test_split_allocation.py — Unit tests for split_service.

What this file proves:
  - EQUAL splits sum exactly to the total; the first participant absorbs the
    rounding remainder (positive or negative)
  - EXACT splits are accepted within one cent and rejected beyond it, with the
    tolerated cent absorbed so the splits sum exactly
  - PERCENTAGE splits are accepted within 0.01 of 100 and rounding drift is
    left in place (and logged)
  - Zero participants raise EmptyParticipantSet for every policy
  - build_policy() maps validated request entries onto the policy variants

Unit test constraints:
  - No database, no Flask application context. Pure Decimal arithmetic.
"""

from __future__ import annotations

import logging
from decimal import Decimal

import pytest

from splitease.app.errors import (
    EmptyParticipantSet,
    ErrorCode,
    PercentageMismatch,
    SplitMismatch,
)
from splitease.app.models.expense import SplitType
from splitease.app.services.split_service import (
    EqualSplit,
    ExactSplit,
    PercentageSplit,
    allocate,
    allocate_split,
    build_policy,
)


def _amounts(splits: list[dict]) -> list[Decimal]:
    return [s["amount"] for s in splits]


def _total(splits: list[dict]) -> Decimal:
    return sum(_amounts(splits), Decimal("0.00"))


# ── EQUAL ──────────────────────────────────────────────────────────────────

def test_equal_split_divides_evenly():
    splits = allocate(Decimal("30.00"), EqualSplit((1, 2, 3)))

    assert splits == [
        {"user_id": 1, "amount": Decimal("10.00")},
        {"user_id": 2, "amount": Decimal("10.00")},
        {"user_id": 3, "amount": Decimal("10.00")},
    ]


def test_equal_split_first_participant_absorbs_positive_remainder():
    """10.00 / 3 → 3.33 each, remainder 0.01 goes to the first participant."""
    splits = allocate(Decimal("10.00"), EqualSplit((1, 2, 3)))

    assert _amounts(splits) == [Decimal("3.34"), Decimal("3.33"), Decimal("3.33")]
    assert _total(splits) == Decimal("10.00")


def test_equal_split_first_participant_absorbs_negative_remainder():
    """20.00 / 3 → 6.67 each (half-up), remainder -0.01 lowers the first share."""
    splits = allocate(Decimal("20.00"), EqualSplit((1, 2, 3)))

    assert _amounts(splits) == [Decimal("6.66"), Decimal("6.67"), Decimal("6.67")]
    assert _total(splits) == Decimal("20.00")


def test_equal_split_single_participant_gets_everything():
    splits = allocate(Decimal("42.50"), EqualSplit((7,)))

    assert splits == [{"user_id": 7, "amount": Decimal("42.50")}]


def test_equal_split_preserves_participant_order():
    splits = allocate(Decimal("10.00"), EqualSplit((9, 4, 6)))

    assert [s["user_id"] for s in splits] == [9, 4, 6]
    assert splits[0]["amount"] == Decimal("3.34")


def test_equal_split_sub_cent_share_never_goes_negative():
    """0.04 over 6 people: rounding up would leave the first share at -0.01."""
    splits = allocate(Decimal("0.04"), EqualSplit((1, 2, 3, 4, 5, 6)))

    assert all(amount >= Decimal("0.00") for amount in _amounts(splits))
    assert _amounts(splits)[0] == Decimal("0.04")
    assert _total(splits) == Decimal("0.04")


@pytest.mark.parametrize("total,count", [
    ("100.00", 3),
    ("0.01", 2),
    ("99.99", 7),
    ("1000.00", 6),
    ("33.33", 4),
])
def test_equal_split_always_sums_to_total(total, count):
    splits = allocate(Decimal(total), EqualSplit(tuple(range(1, count + 1))))

    assert _total(splits) == Decimal(total)
    assert len(splits) == count


def test_equal_split_empty_participants_raises():
    with pytest.raises(EmptyParticipantSet) as exc_info:
        allocate(Decimal("10.00"), EqualSplit(()))

    assert exc_info.value.code == ErrorCode.EMPTY_PARTICIPANT_SET
    assert exc_info.value.http_status == 422


def test_total_is_rounded_to_cents_before_allocation():
    splits = allocate(Decimal("10.005"), EqualSplit((1, 2)))

    assert _total(splits) == Decimal("10.01")


# ── EXACT ──────────────────────────────────────────────────────────────────

def test_exact_split_returns_amounts_unchanged():
    splits = allocate(
        Decimal("50.00"),
        ExactSplit(((1, Decimal("20.00")), (2, Decimal("30.00")))),
    )

    assert splits == [
        {"user_id": 1, "amount": Decimal("20.00")},
        {"user_id": 2, "amount": Decimal("30.00")},
    ]


def test_exact_split_one_cent_short_is_absorbed():
    splits = allocate(
        Decimal("50.00"),
        ExactSplit(((1, Decimal("20.00")), (2, Decimal("29.99")))),
    )

    assert _amounts(splits) == [Decimal("20.01"), Decimal("29.99")]
    assert _total(splits) == Decimal("50.00")


def test_exact_split_one_cent_over_skips_zero_line():
    """A zero line cannot absorb -0.01, so the next line takes it."""
    splits = allocate(
        Decimal("10.00"),
        ExactSplit(((1, Decimal("0.00")), (2, Decimal("10.01")))),
    )

    assert _amounts(splits) == [Decimal("0.00"), Decimal("10.00")]


def test_exact_split_mismatch_beyond_tolerance_raises():
    with pytest.raises(SplitMismatch) as exc_info:
        allocate(
            Decimal("50.00"),
            ExactSplit(((1, Decimal("20.00")), (2, Decimal("29.98")))),
        )

    err = exc_info.value
    assert err.code == ErrorCode.SPLIT_MISMATCH
    assert err.http_status == 422
    assert err.split_total == Decimal("49.98")
    assert err.expense_total == Decimal("50.00")


def test_exact_split_empty_raises():
    with pytest.raises(EmptyParticipantSet):
        allocate(Decimal("10.00"), ExactSplit(()))


# ── PERCENTAGE ─────────────────────────────────────────────────────────────

def test_percentage_split_converts_to_amounts():
    splits = allocate(
        Decimal("200.00"),
        PercentageSplit(((1, Decimal("25")), (2, Decimal("75")))),
    )

    assert _amounts(splits) == [Decimal("50.00"), Decimal("150.00")]


def test_percentage_split_drift_is_not_reconciled(caplog):
    """10.00 at 33.33/33.33/33.34 → 3.33 + 3.33 + 3.33 = 9.99; the cent stays unallocated."""
    with caplog.at_level(logging.WARNING, logger="splitease.app.services.split_service"):
        splits = allocate(
            Decimal("10.00"),
            PercentageSplit((
                (1, Decimal("33.33")),
                (2, Decimal("33.33")),
                (3, Decimal("33.34")),
            )),
        )

    assert _amounts(splits) == [Decimal("3.33"), Decimal("3.33"), Decimal("3.33")]
    assert _total(splits) == Decimal("9.99")
    assert "unallocated" in caplog.text


def test_percentage_within_tolerance_is_accepted():
    splits = allocate(
        Decimal("100.00"),
        PercentageSplit(((1, Decimal("50.005")), (2, Decimal("50")))),
    )

    assert len(splits) == 2


def test_percentage_mismatch_raises():
    with pytest.raises(PercentageMismatch) as exc_info:
        allocate(
            Decimal("100.00"),
            PercentageSplit(((1, Decimal("50")), (2, Decimal("49")))),
        )

    err = exc_info.value
    assert err.code == ErrorCode.PERCENTAGE_MISMATCH
    assert err.percentage_total == Decimal("99")


def test_percentage_empty_raises():
    with pytest.raises(EmptyParticipantSet):
        allocate(Decimal("10.00"), PercentageSplit(()))


def test_unknown_policy_type_raises_type_error():
    with pytest.raises(TypeError):
        allocate(Decimal("10.00"), object())


# ── build_policy / allocate_split ──────────────────────────────────────────

def test_build_policy_equal_without_entries_uses_default_participants():
    policy = build_policy(SplitType.EQUAL, None, default_participants=[3, 1, 2])

    assert policy == EqualSplit((3, 1, 2))


def test_build_policy_equal_with_entries_uses_listed_users():
    policy = build_policy(SplitType.EQUAL, [{"user_id": 2}, {"user_id": 5}], [1, 2, 5])

    assert policy == EqualSplit((2, 5))


def test_build_policy_exact_and_percentage():
    exact = build_policy(SplitType.EXACT, [{"user_id": 1, "amount": Decimal("5.00")}])
    pct = build_policy(SplitType.PERCENTAGE, [{"user_id": 1, "percentage": Decimal("100")}])

    assert exact == ExactSplit(((1, Decimal("5.00")),))
    assert pct == PercentageSplit(((1, Decimal("100")),))


def test_build_policy_unknown_type_raises_value_error():
    with pytest.raises(ValueError):
        build_policy("SHARES", [])


def test_allocate_split_equal_over_all_members():
    splits = allocate_split("30.00", SplitType.EQUAL, [], default_participants=[1, 2, 3])

    assert _amounts(splits) == [Decimal("10.00")] * 3


def test_exact_split_far_off_total_produces_no_splits():
    """EXACT 50.00 with 20 + 35 → sum 55 is rejected outright."""
    with pytest.raises(SplitMismatch) as exc_info:
        allocate_split(
            Decimal("50.00"),
            SplitType.EXACT,
            [{"user_id": 1, "amount": Decimal("20")}, {"user_id": 2, "amount": Decimal("35")}],
        )

    assert exc_info.value.split_total == Decimal("55.00")
