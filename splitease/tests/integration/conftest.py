"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - Tests run against the TestingConfig database (in-memory SQLite unless
    TEST_DATABASE_URL points elsewhere).
  - The app is created once per session using create_app("testing").
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.

Users come from the identity provider and have no create endpoint, so they are
seeded straight through the ORM. Groups and memberships are seeded the same
way to keep unrelated tests short; test_groups.py covers their endpoints.
Tokens are minted with the same secret the app verifies against, standing in
for the external identity provider.

Helper functions (not fixtures) are provided for common operations:
  - make_user(app, ...)      → user id
  - make_group(app, ...)     → group id (owner becomes the first member)
  - add_member(app, ...)     → None
  - token_for(app, user_id)  → signed bearer token
  - auth_headers(token)      → {"Authorization": "Bearer <token>"}
  - make_expense(...)        → HTTP response
  - settle(...)              → HTTP response
  - tx_hash(n)               → a well-formed, unique transaction hash
"""

from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from sqlalchemy import text

from splitease.app import create_app
from splitease.app.extensions import db as _db
from splitease.app.models.group import Group
from splitease.app.models.membership import Membership
from splitease.app.models.user import User


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """
    Creates the Flask application in 'testing' mode once for the entire test session.
    """
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """
    Deletes all rows between tests in FK-safe order.
    """
    yield

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test

        with _db.engine.connect() as conn:
            conn.execute(text("DELETE FROM payment_requests"))
            conn.execute(text("DELETE FROM splits"))
            conn.execute(text("DELETE FROM settlements"))
            conn.execute(text("DELETE FROM expenses"))
            conn.execute(text("DELETE FROM memberships"))
            conn.execute(text('DELETE FROM "groups"'))
            conn.execute(text("DELETE FROM users"))
            conn.commit()


@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

_user_seq = itertools.count(1)


def make_user(app, name: str | None = "alice", wallet_address: str | None = None) -> int:
    """Creates a user and returns its id."""
    email = f"user{next(_user_seq)}@test.com"
    with app.app_context():
        user = User(name=name, email=email, wallet_address=wallet_address)
        _db.session.add(user)
        _db.session.commit()
        return user.id


def make_group(app, owner_id: int, name: str = "Test Group") -> int:
    """Creates a group owned by owner_id, who becomes its first member."""
    with app.app_context():
        group = Group(name=name, owner_user_id=owner_id)
        _db.session.add(group)
        _db.session.flush()
        _db.session.add(Membership(user_id=owner_id, group_id=group.id))
        _db.session.commit()
        return group.id


def add_member(app, group_id: int, user_id: int) -> None:
    with app.app_context():
        _db.session.add(Membership(user_id=user_id, group_id=group_id))
        _db.session.commit()


def token_for(app, user_id: int, expires_in: timedelta = timedelta(minutes=15)) -> str:
    """Mints an access token the way the identity provider would."""
    now = datetime.now(timezone.utc)
    return jwt.encode(
        {"sub": str(user_id), "iat": now, "exp": now + expires_in},
        app.config["JWT_SECRET_KEY"],
        algorithm=app.config["JWT_ALGORITHM"],
    )


def auth_headers(token: str) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {token}"}


def make_expense(
    client,
    token: str,
    group_id: int,
    amount: str,
    split_type: str = "EQUAL",
    splits: list[dict] | None = None,
    paid_by_user_id: int | None = None,
    description: str = "Test Expense",
):
    """
    Creates an expense and returns the HTTP response.
    For EQUAL with splits=None the server splits among every member.
    """
    payload: dict = {
        "description": description,
        "amount": amount,
        "split_type": split_type,
    }
    if splits is not None:
        payload["splits"] = splits
    if paid_by_user_id is not None:
        payload["paid_by_user_id"] = paid_by_user_id

    return client.post(
        f"/api/v1/groups/{group_id}/expenses",
        json=payload,
        headers=auth_headers(token),
    )


def tx_hash(n: int) -> str:
    """Returns a 0x-prefixed 64-hex-digit hash unique per n."""
    return "0x" + format(n, "064x")


def settle(client, token: str, group_id: int, to_user_id: int, amount: str, hash_: str):
    """POSTs a settlement and returns the HTTP response."""
    return client.post(
        f"/api/v1/groups/{group_id}/settlements",
        json={"to_user_id": to_user_id, "amount": amount, "tx_hash": hash_},
        headers=auth_headers(token),
    )


def get_balances(client, token: str, group_id: int) -> dict:
    resp = client.get(f"/api/v1/groups/{group_id}/balances", headers=auth_headers(token))
    assert resp.status_code == 200, f"get_balances failed: {resp.get_json()}"
    return resp.get_json()["data"]


def balance_of(data: dict, user_id: int) -> str:
    return next(b["balance"] for b in data["balances"] if b["user_id"] == user_id)
