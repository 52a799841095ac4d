"""
services/group_service.py — Group and membership business logic.

Authorization rules:
  - Reading a group, inviting a member: any member (FORBIDDEN 403 otherwise).
  - Joining by invite code: any authenticated user.
  - Removing a member: the owner may remove anyone else; any member may
    remove themselves. The owner cannot leave their own group.

A member can only be removed while they appear in no active expense (as
payer or split participant) and no PENDING or CONFIRMED settlement. Their
balance in the group is therefore zero and stays zero after removal.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

from sqlalchemy import exists, func, or_, select
from sqlalchemy.orm import Session

from splitease.app.errors import AppError, ErrorCode
from splitease.app.models.expense import Expense
from splitease.app.models.group import Group
from splitease.app.models.membership import Membership
from splitease.app.models.settlement import Settlement, SettlementStatus
from splitease.app.models.split import Split
from splitease.app.models.user import User


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


def _get_membership(group_id: int, user_id: int, session: Session) -> Membership | None:
    return session.execute(
        select(Membership).where(
            Membership.group_id == group_id,
            Membership.user_id == user_id,
        )
    ).scalar_one_or_none()


def _require_member(group_id: int, user_id: int, session: Session) -> None:
    """Raises FORBIDDEN (403) if user_id is not a member of group_id."""
    if _get_membership(group_id, user_id, session) is None:
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of group {group_id}.",
            403,
        )


def _get_members(group_id: int, session: Session) -> list[User]:
    stmt = (
        select(User)
        .join(Membership, User.id == Membership.user_id)
        .where(Membership.group_id == group_id)
        .order_by(Membership.id)
    )
    return list(session.execute(stmt).scalars().all())


def _find_invitee(data: dict, session: Session) -> User | None:
    """Resolves the single lookup key AddMemberSchema lets through."""
    if "user_id" in data:
        return session.get(User, data["user_id"])
    if "email" in data:
        stmt = select(User).where(func.lower(User.email) == data["email"])
    else:
        stmt = select(User).where(func.lower(User.wallet_address) == data["wallet_address"])
    return session.execute(stmt).scalar_one_or_none()


def _has_history(group_id: int, user_id: int, session: Session) -> bool:
    """True if the user is part of anything that feeds the group's balances."""
    in_expense = exists().where(
        Expense.group_id == group_id,
        Expense.deleted_at.is_(None),
        or_(
            Expense.paid_by_user_id == user_id,
            Expense.id.in_(select(Split.expense_id).where(Split.user_id == user_id)),
        ),
    )
    in_settlement = exists().where(
        Settlement.group_id == group_id,
        Settlement.status != SettlementStatus.FAILED,
        or_(Settlement.from_user_id == user_id, Settlement.to_user_id == user_id),
    )
    return bool(session.execute(select(or_(in_expense, in_settlement))).scalar())


def _build_group_dict(group: Group, members: list[User]) -> dict:
    """Serialises a Group with its member list to a plain dict."""
    return {
        "id": group.id,
        "name": group.name,
        "description": group.description,
        "owner_user_id": group.owner_user_id,
        "invite_code": group.invite_code,
        "created_at": group.created_at.isoformat() if group.created_at else None,
        "members": [
            {
                "id": m.id,
                "name": m.name,
                "email": m.email,
                "wallet_address": m.wallet_address,
            }
            for m in members
        ],
    }


# ── Public service functions ───────────────────────────────────────────────

def create_group(data: dict, owner_id: int, session: Session) -> dict:
    """
    Creates a new group. The creator becomes the owner and the first member.

    Args:
        data:     Validated dict from CreateGroupSchema (name, description).
        owner_id: The authenticated user creating the group.
    """
    group = Group(
        name=data["name"],
        description=data.get("description"),
        owner_user_id=owner_id,
    )
    session.add(group)
    session.flush()  # populate group.id before creating membership

    session.add(Membership(user_id=owner_id, group_id=group.id))
    session.flush()
    session.refresh(group)

    return _build_group_dict(group, _get_members(group.id, session))


def list_groups(user_id: int, session: Session) -> list[dict]:
    """
    Returns every group the user belongs to, newest first, with member and
    active expense counts. The member list itself is served by get_group().
    """
    member_count = (
        select(func.count(Membership.id))
        .where(Membership.group_id == Group.id)
        .correlate(Group)
        .scalar_subquery()
    )
    expense_count = (
        select(func.count(Expense.id))
        .where(Expense.group_id == Group.id, Expense.deleted_at.is_(None))
        .correlate(Group)
        .scalar_subquery()
    )
    stmt = (
        select(Group, member_count, expense_count)
        .join(Membership, Group.id == Membership.group_id)
        .where(Membership.user_id == user_id)
        .order_by(Group.created_at.desc(), Group.id.desc())
    )

    return [
        {
            "id": group.id,
            "name": group.name,
            "description": group.description,
            "owner_user_id": group.owner_user_id,
            "created_at": group.created_at.isoformat() if group.created_at else None,
            "member_count": members,
            "expense_count": expenses,
        }
        for group, members, expenses in session.execute(stmt).all()
    ]


def get_group(group_id: int, caller_id: int, session: Session) -> dict:
    """
    Returns full group details including the member list.

    Non-members get FORBIDDEN (403), not 404.
    """
    group = _get_group_or_404(group_id, session)
    _require_member(group_id, caller_id, session)
    return _build_group_dict(group, _get_members(group_id, session))


def join_group(invite_code: str, caller_id: int, session: Session) -> tuple[dict, bool]:
    """
    Adds the caller to the group whose invite code matches.

    Joining a group the caller already belongs to is not an error.

    Returns:
        (group dict, joined) where joined is False if the caller was already
        a member.

    Raises:
        AppError(INVITE_CODE_NOT_FOUND, 404) -- no group has this code.
    """
    group = session.execute(
        select(Group).where(Group.invite_code == invite_code)
    ).scalar_one_or_none()
    if group is None:
        raise AppError(
            ErrorCode.INVITE_CODE_NOT_FOUND,
            "No group matches this invite code.",
            404,
            field="invite_code",
        )

    joined = False
    if _get_membership(group.id, caller_id, session) is None:
        session.add(Membership(user_id=caller_id, group_id=group.id))
        session.flush()
        joined = True

    return _build_group_dict(group, _get_members(group.id, session)), joined


def add_member(
        group_id: int,
        caller_id: int,
        data: dict,
        session: Session,
) -> dict:
    """
    Adds an existing user to a group. Any member may invite.

    Args:
        data: Validated dict from AddMemberSchema, holding exactly one of
              user_id, email, wallet_address.

    Raises:
      AppError(GROUP_NOT_FOUND, 404)  — group does not exist
      AppError(FORBIDDEN, 403)        — caller is not a member
      AppError(USER_NOT_FOUND, 404)   — no user matches the lookup key
      AppError(ALREADY_MEMBER, 409)   — user is already in the group
    """
    _get_group_or_404(group_id, session)
    _require_member(group_id, caller_id, session)

    target_user = _find_invitee(data, session)
    if target_user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            "No user matches this invite. They must sign up first.",
            404,
        )

    if _get_membership(group_id, target_user.id, session) is not None:
        raise AppError(
            ErrorCode.ALREADY_MEMBER,
            f"User {target_user.id} is already a member of group {group_id}.",
            409,
        )

    membership = Membership(user_id=target_user.id, group_id=group_id)
    session.add(membership)
    session.flush()

    return {
        "group_id": group_id,
        "user_id": target_user.id,
        "name": target_user.name,
        "joined_at": membership.joined_at.isoformat() if membership.joined_at else None,
    }


def remove_member(
        group_id: int,
        caller_id: int,
        target_user_id: int,
        session: Session,
) -> None:
    """
    Removes a user from a group.

    Raises:
      AppError(GROUP_NOT_FOUND, 404)     — group does not exist
      AppError(FORBIDDEN, 403)           — caller not authorised to remove this user
      AppError(OWNER_CANNOT_LEAVE, 422)  — the owner tried to remove themselves
      AppError(USER_NOT_FOUND, 404)      — target user is not a member of the group
      AppError(MEMBER_HAS_HISTORY, 422)  — target appears in expenses or settlements
    """
    group = _get_group_or_404(group_id, session)
    _require_member(group_id, caller_id, session)

    is_owner = caller_id == group.owner_user_id
    is_self = caller_id == target_user_id

    if not (is_owner or is_self):
        raise AppError(
            ErrorCode.FORBIDDEN,
            "You may only remove yourself from a group unless you are the owner.",
            403,
        )

    if target_user_id == group.owner_user_id:
        raise AppError(
            ErrorCode.OWNER_CANNOT_LEAVE,
            "The group owner cannot be removed from the group.",
            422,
        )

    membership = _get_membership(group_id, target_user_id, session)
    if membership is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {target_user_id} is not a member of group {group_id}.",
            404,
        )

    if _has_history(group_id, target_user_id, session):
        raise AppError(
            ErrorCode.MEMBER_HAS_HISTORY,
            f"User {target_user_id} is part of expenses or settlements in group "
            f"{group_id} and cannot be removed.",
            422,
        )

    session.delete(membership)
    session.flush()
