"""
services/balance_service.py — Balance computation and debt simplification.

This file is the SINGLE SOURCE OF TRUTH for how balances are computed.
The canonical formula must not be reimplemented elsewhere in the codebase.

The module has two halves:

  Core algorithms (pure):
    compute_balances()  expenses + CONFIRMED settlements → {user_id: net balance}
    round_balances()    cent rounding applied at the point of output
    simplify_debts()    net balances → minimal-ish list of transfer edges

    These take plain in-memory records (ORM rows or any object with the same
    attributes), perform no I/O and keep no state between calls. Every query
    recomputes from the full history.

  Data access + response builders:
    get_active_expenses(), get_settlements(), get_member_ids(), get_members()
    get_group_balances(), get_outstanding_debt()
    get_balance_response(), get_member_summary()

    These load a group's records through a SQLAlchemy session and feed the
    core algorithms. Soft-deleted expenses are filtered here and never reach
    compute_balances().

Layer rules:
  - No Flask imports. No current_app, request, g, or HTTP knowledge.
  - Returns plain Python dicts and lists.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Mapping

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from splitease.app.errors import AppError, ErrorCode
from splitease.app.models.expense import Expense
from splitease.app.models.group import Group
from splitease.app.models.membership import Membership
from splitease.app.models.settlement import Settlement, SettlementStatus
from splitease.app.models.user import User
from splitease.app.money import CENT, ZERO, as_decimal, to_cents

logger = logging.getLogger(__name__)

# Display name used on debt edges when a member's profile is unavailable.
UNKNOWN_MEMBER_NAME = "Unknown"


# ── Core algorithms ────────────────────────────────────────────────────────

def compute_balances(
        expenses: Iterable,
        settlements: Iterable,
        member_ids: Iterable[int] = (),
) -> dict[int, Decimal]:
    """
    Canonical net balance computation.

    Positive balance: the group owes this member. Negative: the member owes.

    Algorithm:
      1. Seed every id in member_ids with 0.00 so zero-balance members appear.
      2. Credit each payer the full expense amount.
      3. Debit each split participant their split amount. The payer is debited
         too when they appear in their own expense's splits.
      4. For each CONFIRMED settlement: credit the sender, debit the recipient.
         PENDING and FAILED settlements are ignored.

    Values are NOT rounded; call round_balances() at the output boundary.
    When every expense's splits sum to its amount, the values sum to exactly 0.

    Args:
        expenses:    objects with paid_by_user_id, amount, splits
                     (each split with user_id, amount).
        settlements: objects with from_user_id, to_user_id, amount, status.
        member_ids:  optional ids to include even if they never transacted.
    """
    balances: dict[int, Decimal] = defaultdict(lambda: ZERO)

    for member_id in member_ids:
        balances.setdefault(member_id, ZERO)

    for expense in expenses:
        balances[expense.paid_by_user_id] += as_decimal(expense.amount)
        for split in expense.splits:
            balances[split.user_id] -= as_decimal(split.amount)

    for settlement in settlements:
        if settlement.status != SettlementStatus.CONFIRMED:
            continue
        amount = as_decimal(settlement.amount)
        balances[settlement.from_user_id] += amount
        balances[settlement.to_user_id] -= amount

    return dict(balances)


def round_balances(balances: Mapping[int, Decimal]) -> dict[int, Decimal]:
    """Rounds every balance to cents, preserving key order."""
    return {uid: to_cents(balance) for uid, balance in balances.items()}


def _display_info(user_id: int, member_info: Mapping[int, Mapping]) -> tuple[str, str | None]:
    info = member_info.get(user_id) or {}
    return info.get("name") or UNKNOWN_MEMBER_NAME, info.get("wallet_address")


def simplify_debts(
        balances: Mapping[int, Decimal],
        member_info: Mapping[int, Mapping] | None = None,
) -> list[dict]:
    """
    Greedy minimum cash flow debt simplification.

    Pairs the largest creditor with the largest debtor, transfers the smaller
    of the two amounts, and repeats until one side is exhausted. Balances
    within one cent of zero are treated as settled. For N members this yields
    at most N-1 edges; it is not guaranteed to find the absolute minimum edge
    count (that problem is NP-hard).

    Tie-break: creditors and debtors are each sorted by magnitude, descending,
    with a stable sort, so equal amounts keep the order of the input mapping.

    Args:
        balances:    {user_id: net_balance} from compute_balances().
        member_info: {user_id: {"name": str | None, "wallet_address": str | None}}.
                     Display metadata only; missing members fall back to
                     UNKNOWN_MEMBER_NAME and a None wallet.

    Returns:
        List of {"from_user_id", "from_name", "from_wallet_address",
                 "to_user_id", "to_name", "to_wallet_address", "amount"}
        with amount a cent-rounded Decimal. Empty when everyone is settled.
    """
    member_info = member_info or {}

    creditors: list[list] = []
    debtors: list[list] = []
    for uid, balance in balances.items():
        rounded = to_cents(balance)
        if rounded > CENT:
            creditors.append([uid, rounded])
        elif rounded < -CENT:
            debtors.append([uid, -rounded])

    creditors.sort(key=lambda entry: entry[1], reverse=True)
    debtors.sort(key=lambda entry: entry[1], reverse=True)

    debts: list[dict] = []
    i = j = 0

    while i < len(creditors) and j < len(debtors):
        creditor_id, credit = creditors[i]
        debtor_id, debt = debtors[j]

        transfer = min(credit, debt)
        amount = to_cents(transfer)

        if amount > CENT:
            from_name, from_wallet = _display_info(debtor_id, member_info)
            to_name, to_wallet = _display_info(creditor_id, member_info)
            debts.append({
                "from_user_id": debtor_id,
                "from_name": from_name,
                "from_wallet_address": from_wallet,
                "to_user_id": creditor_id,
                "to_name": to_name,
                "to_wallet_address": to_wallet,
                "amount": amount,
            })

        creditors[i][1] = credit - transfer
        debtors[j][1] = debt - transfer

        if creditors[i][1] < CENT:
            i += 1
        if debtors[j][1] < CENT:
            j += 1

    return debts


# ── Data access helpers ────────────────────────────────────────────────────
# The only sanctioned way to load expense data for balance purposes.
# They exist to keep soft-deleted expenses out of every balance.

def get_active_expenses(group_id: int, session: Session) -> list[Expense]:
    """Returns a group's expenses WHERE deleted_at IS NULL, splits eager-loaded."""
    stmt = (
        select(Expense)
        .options(selectinload(Expense.splits))
        .where(
            Expense.group_id == group_id,
            Expense.deleted_at.is_(None),
        )
        .order_by(Expense.id)
    )
    return list(session.execute(stmt).scalars().all())


def get_settlements(group_id: int, session: Session) -> list[Settlement]:
    """Returns every settlement for a group; compute_balances() filters by status."""
    stmt = (
        select(Settlement)
        .where(Settlement.group_id == group_id)
        .order_by(Settlement.id)
    )
    return list(session.execute(stmt).scalars().all())


def get_member_ids(group_id: int, session: Session) -> list[int]:
    """Returns the user_ids of all current members of a group, in join order."""
    stmt = (
        select(Membership.user_id)
        .where(Membership.group_id == group_id)
        .order_by(Membership.id)
    )
    return list(session.execute(stmt).scalars().all())


def get_members(group_id: int, session: Session) -> list[User]:
    """Returns full User objects for all current group members, in join order."""
    stmt = (
        select(User)
        .join(Membership, User.id == Membership.user_id)
        .where(Membership.group_id == group_id)
        .order_by(Membership.id)
    )
    return list(session.execute(stmt).scalars().all())


def get_user_groups(user_id: int, session: Session) -> list[Group]:
    """Returns every group the user belongs to."""
    stmt = (
        select(Group)
        .join(Membership, Group.id == Membership.group_id)
        .where(Membership.user_id == user_id)
        .order_by(Group.id)
    )
    return list(session.execute(stmt).scalars().all())


def build_member_info(members: Iterable[User]) -> dict[int, dict]:
    """Maps user_id → display metadata consumed by simplify_debts()."""
    return {
        m.id: {"name": m.name, "wallet_address": m.wallet_address}
        for m in members
    }


def get_group_balances(group_id: int, session: Session) -> dict[int, Decimal]:
    """Loads a group's history and returns unrounded net balances."""
    return compute_balances(
        get_active_expenses(group_id, session),
        get_settlements(group_id, session),
        get_member_ids(group_id, session),
    )


def get_outstanding_debt(
        group_id: int,
        debtor_id: int,
        creditor_id: int,
        session: Session,
) -> Decimal:
    """
    What the simplified debt list currently tells debtor_id to pay creditor_id.

    This is the amount the settle-up screen and payment requests pre-fill;
    ZERO when no such edge exists.
    """
    balances = get_group_balances(group_id, session)
    return sum(
        (
            edge["amount"]
            for edge in simplify_debts(balances)
            if edge["from_user_id"] == debtor_id and edge["to_user_id"] == creditor_id
        ),
        ZERO,
    )


# ── Response builders ──────────────────────────────────────────────────────

def get_balance_response(
        group_id: int,
        caller_id: int,
        session: Session,
) -> dict:
    """
    Builds the payload for GET /groups/:id/balances.

    Raises:
        AppError(GROUP_NOT_FOUND, 404) -- group does not exist.
        AppError(FORBIDDEN, 403)       -- caller is not a group member.
    """
    group = session.get(Group, group_id)
    if group is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )

    if caller_id not in get_member_ids(group_id, session):
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of group {group_id}.",
            403,
        )

    balances = get_group_balances(group_id, session)
    member_info = build_member_info(get_members(group_id, session))

    balance_list = []
    for uid, balance in round_balances(balances).items():
        name, wallet = _display_info(uid, member_info)
        balance_list.append({
            "user_id": uid,
            "name": name,
            "wallet_address": wallet,
            "balance": str(balance),
        })

    simplified_debts = [
        {**edge, "amount": str(edge["amount"])}
        for edge in simplify_debts(balances, member_info)
    ]

    # A non-zero sum can only come from PERCENTAGE rounding drift, which is
    # accepted behaviour. Report it rather than failing the request.
    balance_sum = to_cents(sum(balances.values(), ZERO))
    if balance_sum != ZERO:
        logger.warning(
            "Group %s balances sum to %s instead of 0.00.",
            group_id,
            balance_sum,
        )

    return {
        "group_id": group_id,
        "current_user_id": caller_id,
        "balances": balance_list,
        "simplified_debts": simplified_debts,
        "balance_sum": str(balance_sum),
    }


def get_member_summary(user_id: int, session: Session) -> dict:
    """
    Dashboard aggregation: the user's net position in every group they belong to.

    total_owed is the sum of the user's positive group balances (what others
    owe them); total_owing is the sum of the magnitudes of negative ones.
    """
    total_owed = ZERO
    total_owing = ZERO
    group_summaries = []

    for group in get_user_groups(user_id, session):
        expenses = get_active_expenses(group.id, session)
        member_ids = get_member_ids(group.id, session)
        balances = compute_balances(
            expenses,
            get_settlements(group.id, session),
            member_ids,
        )

        balance = to_cents(balances.get(user_id, ZERO))
        if balance > ZERO:
            total_owed += balance
        else:
            total_owing += abs(balance)

        total_expenses = to_cents(sum((as_decimal(e.amount) for e in expenses), ZERO))

        group_summaries.append({
            "group_id": group.id,
            "group_name": group.name,
            "member_count": len(member_ids),
            "balance": str(balance),
            "total_expenses": str(total_expenses),
        })

    return {
        "user_id": user_id,
        "total_owed": str(total_owed),
        "total_owing": str(total_owing),
        "groups": group_summaries,
    }
