"""
tests/integration/test_groups.py — Group and membership endpoints.

Endpoints covered:
  POST   /groups/                  → 201
  GET    /groups/                  → 200
  GET    /groups/:id               → 200 / 403 / 404
  POST   /groups/join              → 201 / 200 / 404
  POST   /groups/:id/members       → 201 / 403 / 404 / 409
  DELETE /groups/:id/members/:uid  → 200 / 403 / 422
"""

from __future__ import annotations

from .conftest import (
    add_member,
    auth_headers,
    get_balances,
    make_expense,
    make_group,
    make_user,
    settle,
    token_for,
    tx_hash,
)


def _create(client, token: str, **payload):
    return client.post("/api/v1/groups/", json=payload, headers=auth_headers(token))


def _join(client, token: str, code: str):
    return client.post(
        "/api/v1/groups/join",
        json={"invite_code": code},
        headers=auth_headers(token),
    )


def _invite(client, token: str, group_id: int, **lookup):
    return client.post(
        f"/api/v1/groups/{group_id}/members",
        json=lookup,
        headers=auth_headers(token),
    )


def _remove(client, token: str, group_id: int, user_id: int):
    return client.delete(
        f"/api/v1/groups/{group_id}/members/{user_id}",
        headers=auth_headers(token),
    )


# ═══════════════════════════════════════════════════════════════════════════
# Create / list / get
# ═══════════════════════════════════════════════════════════════════════════

def test_create_group_makes_caller_owner_and_member(app, client):
    alice = make_user(app, "Alice")

    resp = _create(client, token_for(app, alice), name="  Lisbon trip ", description="May")

    assert resp.status_code == 201
    data = resp.get_json()["data"]
    assert data["name"] == "Lisbon trip"
    assert data["description"] == "May"
    assert data["owner_user_id"] == alice
    assert len(data["invite_code"]) == 8
    assert [m["id"] for m in data["members"]] == [alice]


def test_create_group_blank_name_400(app, client):
    alice = make_user(app, "Alice")

    resp = _create(client, token_for(app, alice), name="   ")

    assert resp.status_code == 400
    assert resp.get_json()["error"]["field"] == "name"


def test_list_groups_only_returns_callers_groups(app, client):
    alice = make_user(app, "Alice")
    bob = make_user(app, "Bob")
    trip = make_group(app, alice, name="Trip")
    flat = make_group(app, bob, name="Flat")
    add_member(app, trip, bob)
    make_expense(client, token_for(app, alice), trip, "30.00")

    resp = client.get("/api/v1/groups/", headers=auth_headers(token_for(app, alice)))

    assert resp.status_code == 200
    groups = resp.get_json()["data"]
    assert [g["id"] for g in groups] == [trip]
    assert groups[0]["member_count"] == 2
    assert groups[0]["expense_count"] == 1
    assert flat not in [g["id"] for g in groups]


def test_get_group_lists_members_in_join_order(app, client):
    alice = make_user(app, "Alice")
    bob = make_user(app, "Bob", wallet_address="0x" + "1" * 40)
    group_id = make_group(app, alice)
    add_member(app, group_id, bob)

    resp = client.get(f"/api/v1/groups/{group_id}", headers=auth_headers(token_for(app, bob)))

    assert resp.status_code == 200
    members = resp.get_json()["data"]["members"]
    assert [m["id"] for m in members] == [alice, bob]
    assert members[1]["wallet_address"] == "0x" + "1" * 40


def test_get_group_non_member_403(app, client):
    alice = make_user(app, "Alice")
    outsider = make_user(app, "Mallory")
    group_id = make_group(app, alice)

    resp = client.get(f"/api/v1/groups/{group_id}", headers=auth_headers(token_for(app, outsider)))

    assert resp.status_code == 403


def test_get_unknown_group_404(app, client):
    alice = make_user(app, "Alice")

    resp = client.get("/api/v1/groups/99999", headers=auth_headers(token_for(app, alice)))

    assert resp.status_code == 404
    assert resp.get_json()["error"]["code"] == "GROUP_NOT_FOUND"


# ═══════════════════════════════════════════════════════════════════════════
# Join by invite code
# ═══════════════════════════════════════════════════════════════════════════

def test_join_by_invite_code(app, client):
    alice = make_user(app, "Alice")
    bob = make_user(app, "Bob")
    code = _create(client, token_for(app, alice), name="Flat").get_json()["data"]["invite_code"]

    resp = _join(client, token_for(app, bob), code.lower())

    assert resp.status_code == 201
    assert [m["id"] for m in resp.get_json()["data"]["members"]] == [alice, bob]


def test_join_twice_is_not_an_error(app, client):
    alice = make_user(app, "Alice")
    code = _create(client, token_for(app, alice), name="Flat").get_json()["data"]["invite_code"]

    resp = _join(client, token_for(app, alice), code)

    assert resp.status_code == 200
    assert len(resp.get_json()["data"]["members"]) == 1


def test_join_unknown_code_404(app, client):
    bob = make_user(app, "Bob")

    resp = _join(client, token_for(app, bob), "00000000")

    assert resp.status_code == 404
    assert resp.get_json()["error"]["code"] == "INVITE_CODE_NOT_FOUND"


def test_joined_member_is_included_in_equal_splits(app, client):
    alice = make_user(app, "Alice")
    bob = make_user(app, "Bob")
    created = _create(client, token_for(app, alice), name="Flat").get_json()["data"]
    _join(client, token_for(app, bob), created["invite_code"])

    make_expense(client, token_for(app, alice), created["id"], "50.00")

    data = get_balances(client, token_for(app, bob), created["id"])
    assert {b["user_id"]: b["balance"] for b in data["balances"]} == {
        alice: "25.00",
        bob: "-25.00",
    }


# ═══════════════════════════════════════════════════════════════════════════
# Invite an existing user
# ═══════════════════════════════════════════════════════════════════════════

def test_any_member_can_invite_by_user_id(app, client):
    alice = make_user(app, "Alice")
    bob = make_user(app, "Bob")
    carol = make_user(app, "Carol")
    group_id = make_group(app, alice)
    add_member(app, group_id, bob)

    resp = _invite(client, token_for(app, bob), group_id, user_id=carol)

    assert resp.status_code == 201
    assert resp.get_json()["data"]["user_id"] == carol


def test_invite_by_wallet_address_ignores_case(app, client):
    alice = make_user(app, "Alice")
    bob = make_user(app, "Bob", wallet_address="0x" + "ab" * 20)
    group_id = make_group(app, alice)

    resp = _invite(client, token_for(app, alice), group_id, wallet_address="0x" + "AB" * 20)

    assert resp.status_code == 201
    assert resp.get_json()["data"]["user_id"] == bob


def test_invite_unknown_email_404(app, client):
    alice = make_user(app, "Alice")
    group_id = make_group(app, alice)

    resp = _invite(client, token_for(app, alice), group_id, email="nobody@test.com")

    assert resp.status_code == 404
    assert resp.get_json()["error"]["code"] == "USER_NOT_FOUND"


def test_invite_existing_member_409(app, client):
    alice = make_user(app, "Alice")
    bob = make_user(app, "Bob")
    group_id = make_group(app, alice)
    add_member(app, group_id, bob)

    resp = _invite(client, token_for(app, alice), group_id, user_id=bob)

    assert resp.status_code == 409
    assert resp.get_json()["error"]["code"] == "ALREADY_MEMBER"


def test_invite_with_two_lookup_keys_400(app, client):
    alice = make_user(app, "Alice")
    bob = make_user(app, "Bob")
    group_id = make_group(app, alice)

    resp = _invite(client, token_for(app, alice), group_id, user_id=bob, email="b@test.com")

    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "INVALID_MEMBER_LOOKUP"


def test_non_member_cannot_invite(app, client):
    alice = make_user(app, "Alice")
    outsider = make_user(app, "Mallory")
    carol = make_user(app, "Carol")
    group_id = make_group(app, alice)

    resp = _invite(client, token_for(app, outsider), group_id, user_id=carol)

    assert resp.status_code == 403


# ═══════════════════════════════════════════════════════════════════════════
# Remove
# ═══════════════════════════════════════════════════════════════════════════

def test_owner_removes_member_without_history(app, client):
    alice = make_user(app, "Alice")
    bob = make_user(app, "Bob")
    group_id = make_group(app, alice)
    add_member(app, group_id, bob)

    resp = _remove(client, token_for(app, alice), group_id, bob)

    assert resp.status_code == 200
    assert resp.get_json()["data"] == {"removed": True, "group_id": group_id, "user_id": bob}
    members = client.get(
        f"/api/v1/groups/{group_id}", headers=auth_headers(token_for(app, alice))
    ).get_json()["data"]["members"]
    assert [m["id"] for m in members] == [alice]


def test_member_can_leave(app, client):
    alice = make_user(app, "Alice")
    bob = make_user(app, "Bob")
    group_id = make_group(app, alice)
    add_member(app, group_id, bob)

    resp = _remove(client, token_for(app, bob), group_id, bob)

    assert resp.status_code == 200


def test_member_cannot_remove_someone_else(app, client):
    alice = make_user(app, "Alice")
    bob = make_user(app, "Bob")
    carol = make_user(app, "Carol")
    group_id = make_group(app, alice)
    add_member(app, group_id, bob)
    add_member(app, group_id, carol)

    resp = _remove(client, token_for(app, bob), group_id, carol)

    assert resp.status_code == 403


def test_owner_cannot_leave(app, client):
    alice = make_user(app, "Alice")
    group_id = make_group(app, alice)

    resp = _remove(client, token_for(app, alice), group_id, alice)

    assert resp.status_code == 422
    assert resp.get_json()["error"]["code"] == "OWNER_CANNOT_LEAVE"


def test_member_in_an_expense_cannot_be_removed(app, client):
    alice = make_user(app, "Alice")
    bob = make_user(app, "Bob")
    group_id = make_group(app, alice)
    add_member(app, group_id, bob)
    make_expense(client, token_for(app, alice), group_id, "40.00")

    resp = _remove(client, token_for(app, alice), group_id, bob)

    assert resp.status_code == 422
    assert resp.get_json()["error"]["code"] == "MEMBER_HAS_HISTORY"


def test_member_with_deleted_expense_only_can_be_removed(app, client):
    alice = make_user(app, "Alice")
    bob = make_user(app, "Bob")
    group_id = make_group(app, alice)
    add_member(app, group_id, bob)
    token = token_for(app, alice)
    expense_id = make_expense(client, token, group_id, "40.00").get_json()["data"]["id"]
    client.delete(f"/api/v1/expenses/{expense_id}", headers=auth_headers(token))

    resp = _remove(client, token, group_id, bob)

    assert resp.status_code == 200


def test_member_with_pending_settlement_cannot_be_removed(app, client):
    alice = make_user(app, "Alice")
    bob = make_user(app, "Bob")
    group_id = make_group(app, alice)
    add_member(app, group_id, bob)
    token = token_for(app, alice)
    expense_id = make_expense(client, token, group_id, "40.00").get_json()["data"]["id"]
    settle(client, token_for(app, bob), group_id, alice, "20.00", tx_hash(1))
    client.delete(f"/api/v1/expenses/{expense_id}", headers=auth_headers(token))

    resp = _remove(client, token, group_id, bob)

    assert resp.status_code == 422
    assert resp.get_json()["error"]["code"] == "MEMBER_HAS_HISTORY"
