"""
services/expense_service.py — Expense business logic.

Rules enforced here:
  PAYER_NOT_MEMBER (422)      — paid_by_user_id must be a group member
  SPLIT_USER_NOT_MEMBER (422) — every allocated split user must be a group member
  EXPENSE_DELETED (422)       — cannot edit a soft-deleted expense
  FORBIDDEN (403)             — caller must be a group member; only the payer or
                                the group owner may edit or delete

Split amounts are never computed here. Every create, and every edit that
touches amount / split_type / splits, goes through split_service.allocate_split(),
which raises SplitMismatch / PercentageMismatch / EmptyParticipantSet.

Layer rules:
  - No Flask imports. No current_app, request, g, or HTTP knowledge.
  - Receives plain ints and dicts; returns ORM objects or raises AppError.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from splitease.app.errors import AppError, ErrorCode
from splitease.app.models.expense import Expense, SplitType
from splitease.app.models.group import Group
from splitease.app.models.membership import Membership
from splitease.app.models.split import Split
from splitease.app.services import split_service


# ── Private helpers ────────────────────────────────────────────────────────

def _get_group_or_404(group_id: int, session: Session) -> Group:
    """Returns the Group or raises GROUP_NOT_FOUND (404)."""
    group = session.get(Group, group_id)
    if group is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )
    return group


def _get_expense_or_404(expense_id: int, session: Session) -> Expense:
    """Returns the Expense (active or deleted) or raises EXPENSE_NOT_FOUND (404)."""
    expense = session.get(Expense, expense_id)
    if expense is None:
        raise AppError(
            ErrorCode.EXPENSE_NOT_FOUND,
            f"Expense {expense_id} does not exist.",
            404,
        )
    return expense


def _get_member_ids(group_id: int, session: Session) -> list[int]:
    """Returns the user_ids of all current members of a group, in join order."""
    stmt = (
        select(Membership.user_id)
        .where(Membership.group_id == group_id)
        .order_by(Membership.id)
    )
    return list(session.execute(stmt).scalars().all())


def _require_member(group_id: int, user_id: int, member_ids: list[int]) -> None:
    """Raises FORBIDDEN (403) if user_id is not a member of group_id."""
    if user_id not in member_ids:
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of group {group_id}.",
            403,
        )


def _require_payer_or_owner(expense: Expense, group: Group, caller_id: int, action: str) -> None:
    if caller_id not in (expense.paid_by_user_id, group.owner_user_id):
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"Only the original payer or group owner may {action} this expense.",
            403,
        )


def _validate_payer_is_member(
        paid_by_user_id: int,
        group_id: int,
        member_ids: list[int],
) -> None:
    """Raises PAYER_NOT_MEMBER (422) if paid_by_user_id is not in the group."""
    if paid_by_user_id not in member_ids:
        raise AppError(
            ErrorCode.PAYER_NOT_MEMBER,
            f"User {paid_by_user_id} is not a member of group {group_id}.",
            422,
            field="paid_by_user_id",
        )


def _validate_split_users_are_members(
        splits: list[dict],
        group_id: int,
        member_ids: list[int],
) -> None:
    """Raises SPLIT_USER_NOT_MEMBER (422) for the first split user not in the group."""
    member_set = set(member_ids)
    for split in splits:
        if split["user_id"] not in member_set:
            raise AppError(
                ErrorCode.SPLIT_USER_NOT_MEMBER,
                f"User {split['user_id']} is not a member of group {group_id}.",
                422,
                field="splits",
            )


def _allocate(
        amount,
        split_type: SplitType,
        entries: list[dict] | None,
        group_id: int,
        member_ids: list[int],
) -> list[dict]:
    """Runs the split allocator and checks the result against group membership."""
    splits_data = split_service.allocate_split(amount, split_type, entries, member_ids)
    _validate_split_users_are_members(splits_data, group_id, member_ids)
    return splits_data


def _delete_splits(expense: Expense, session: Session) -> None:
    """Removes all existing splits for an expense before re-creating them."""
    for split in list(expense.splits):
        session.delete(split)
    session.flush()


def _create_split_rows(
        expense: Expense,
        splits_data: list[dict],
        session: Session,
) -> None:
    """
    Creates Split rows from a list of {user_id, amount} dicts.
    The payer's own share is recorded as already paid.
    """
    for s in splits_data:
        session.add(Split(
            expense_id=expense.id,
            user_id=s["user_id"],
            amount=s["amount"],
            is_paid=(s["user_id"] == expense.paid_by_user_id),
        ))
    session.flush()


# ── Public service functions ───────────────────────────────────────────────

def create_expense(
        group_id: int,
        caller_id: int,
        data: dict,
        session: Session,
) -> Expense:
    """
    Records a new expense for a group.

    Args:
        group_id:  The group this expense belongs to.
        caller_id: The authenticated user creating the expense (from flask.g).
        data:      Validated dict from CreateExpenseSchema.

    Returns:
        The newly created Expense ORM object (with splits loaded).
    """
    _get_group_or_404(group_id, session)
    member_ids = _get_member_ids(group_id, session)
    _require_member(group_id, caller_id, member_ids)

    paid_by_user_id: int = data.get("paid_by_user_id") or caller_id
    _validate_payer_is_member(paid_by_user_id, group_id, member_ids)

    split_type: SplitType = data.get("split_type", SplitType.EQUAL)

    # Allocate before writing anything so validation failures leave no rows.
    splits_data = _allocate(data["amount"], split_type, data.get("splits"), group_id, member_ids)

    expense = Expense(
        group_id=group_id,
        paid_by_user_id=paid_by_user_id,
        description=data["description"].strip(),
        amount=data["amount"],
        split_type=split_type,
    )
    if data.get("incurred_at") is not None:
        expense.incurred_at = data["incurred_at"]

    session.add(expense)
    session.flush()  # populate expense.id before creating splits

    _create_split_rows(expense, splits_data, session)

    session.refresh(expense)
    return expense


def list_expenses(
        group_id: int,
        caller_id: int,
        session: Session,
) -> list[Expense]:
    """Returns all active (non-deleted) expenses for a group, newest first."""
    _get_group_or_404(group_id, session)
    _require_member(group_id, caller_id, _get_member_ids(group_id, session))

    stmt = (
        select(Expense)
        .where(
            Expense.group_id == group_id,
            Expense.deleted_at.is_(None),
        )
        .order_by(Expense.incurred_at.desc(), Expense.id.desc())
    )
    return list(session.execute(stmt).scalars().all())


def get_expense(
        expense_id: int,
        caller_id: int,
        session: Session,
) -> Expense:
    """
    Returns a single expense including its splits.

    Soft-deleted expenses are still returned; deleted_at tells the client.
    """
    expense = _get_expense_or_404(expense_id, session)
    _require_member(expense.group_id, caller_id, _get_member_ids(expense.group_id, session))
    return expense


def edit_expense(
        expense_id: int,
        caller_id: int,
        data: dict,
        session: Session,
) -> Expense:
    """
    Partially updates an expense.

    Rules:
      - Only the original payer or group owner may edit (FORBIDDEN, 403).
      - Cannot edit a soft-deleted expense (EXPENSE_DELETED, 422).
      - When split_type is present (the schema requires it alongside amount or
        splits), the splits are re-allocated from scratch against the effective
        amount. EQUAL without a splits array reuses the current participants.
      - Changing only the payer keeps the split amounts but moves the
        is_paid flag to the new payer's share.
      - updated_at is set on every successful PATCH.
    """
    expense = _get_expense_or_404(expense_id, session)
    member_ids = _get_member_ids(expense.group_id, session)
    _require_member(expense.group_id, caller_id, member_ids)

    if expense.is_deleted:
        raise AppError(
            ErrorCode.EXPENSE_DELETED,
            f"Expense {expense_id} has been deleted and cannot be edited.",
            422,
        )

    group = _get_group_or_404(expense.group_id, session)
    _require_payer_or_owner(expense, group, caller_id, "edit")

    if "description" in data:
        expense.description = data["description"].strip()

    if "incurred_at" in data:
        expense.incurred_at = data["incurred_at"]

    payer_changed = False
    if "paid_by_user_id" in data:
        _validate_payer_is_member(data["paid_by_user_id"], expense.group_id, member_ids)
        payer_changed = data["paid_by_user_id"] != expense.paid_by_user_id
        expense.paid_by_user_id = data["paid_by_user_id"]

    split_type = data.get("split_type")
    if split_type is not None:
        amount = data.get("amount", expense.amount)
        entries = data.get("splits")
        if split_type == SplitType.EQUAL and entries is None:
            entries = [{"user_id": s.user_id} for s in expense.splits]

        splits_data = _allocate(amount, split_type, entries, expense.group_id, member_ids)

        expense.amount = amount
        expense.split_type = split_type
        _delete_splits(expense, session)
        _create_split_rows(expense, splits_data, session)

    elif payer_changed:
        for split in expense.splits:
            split.is_paid = (split.user_id == expense.paid_by_user_id)

    expense.updated_at = datetime.now(timezone.utc)
    session.flush()
    session.refresh(expense)
    return expense


def delete_expense(
        expense_id: int,
        caller_id: int,
        session: Session,
) -> None:
    """
    Soft-deletes an expense by setting deleted_at = NOW().

    The row and its splits stay for audit; balance computation excludes it.
    Idempotent: deleting an already-deleted expense is a no-op.
    """
    expense = _get_expense_or_404(expense_id, session)
    _require_member(expense.group_id, caller_id, _get_member_ids(expense.group_id, session))

    group = _get_group_or_404(expense.group_id, session)
    _require_payer_or_owner(expense, group, caller_id, "delete")

    if not expense.is_deleted:
        expense.deleted_at = datetime.now(timezone.utc)
        session.flush()
