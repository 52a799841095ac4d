"""
tests/integration/test_balances.py — GET /groups/:id/balances.

Verifies end-to-end that:
  - balances are recomputed from expenses and CONFIRMED settlements
  - balance_sum is "0.00" for EQUAL / EXACT histories
  - simplified_debts carry names and wallet addresses
  - PERCENTAGE rounding drift is reported, not hidden
  - only members may read balances
"""

from __future__ import annotations

from .conftest import (
    add_member,
    auth_headers,
    balance_of,
    get_balances,
    make_expense,
    make_group,
    make_user,
    token_for,
)

_ALICE_WALLET = "0x" + "a1" * 20
_BOB_WALLET = "0x" + "b2" * 20


def _setup(app):
    alice = make_user(app, "Alice", wallet_address=_ALICE_WALLET)
    bob = make_user(app, "Bob", wallet_address=_BOB_WALLET)
    carol = make_user(app, "Carol")
    group_id = make_group(app, alice)
    add_member(app, group_id, bob)
    add_member(app, group_id, carol)
    return alice, bob, carol, group_id


def test_empty_group_has_zero_balances(app, client):
    alice, bob, carol, group_id = _setup(app)

    data = get_balances(client, token_for(app, alice), group_id)

    assert data["group_id"] == group_id
    assert data["current_user_id"] == alice
    assert [b["user_id"] for b in data["balances"]] == [alice, bob, carol]
    assert all(b["balance"] == "0.00" for b in data["balances"])
    assert data["simplified_debts"] == []
    assert data["balance_sum"] == "0.00"


def test_equal_expense_balances_and_debts(app, client):
    alice, bob, carol, group_id = _setup(app)
    token = token_for(app, alice)
    make_expense(client, token, group_id, "30.00")

    data = get_balances(client, token, group_id)

    assert balance_of(data, alice) == "20.00"
    assert balance_of(data, bob) == "-10.00"
    assert balance_of(data, carol) == "-10.00"
    assert data["balance_sum"] == "0.00"

    debts = data["simplified_debts"]
    assert [(d["from_user_id"], d["to_user_id"], d["amount"]) for d in debts] == [
        (bob, alice, "10.00"),
        (carol, alice, "10.00"),
    ]
    assert debts[0]["from_name"] == "Bob"
    assert debts[0]["from_wallet_address"] == _BOB_WALLET
    assert debts[0]["to_wallet_address"] == _ALICE_WALLET
    assert debts[1]["from_wallet_address"] is None


def test_multiple_payers_net_out(app, client):
    alice, bob, carol, group_id = _setup(app)
    make_expense(client, token_for(app, alice), group_id, "90.00")
    make_expense(client, token_for(app, bob), group_id, "30.00")

    data = get_balances(client, token_for(app, carol), group_id)

    assert balance_of(data, alice) == "50.00"
    assert balance_of(data, bob) == "-10.00"
    assert balance_of(data, carol) == "-40.00"
    assert data["balance_sum"] == "0.00"
    assert len(data["simplified_debts"]) == 2


def test_percentage_drift_is_reported(app, client):
    alice, bob, carol, group_id = _setup(app)
    token = token_for(app, alice)
    resp = make_expense(
        client, token, group_id, "10.00",
        split_type="PERCENTAGE",
        splits=[
            {"user_id": alice, "percentage": "33.33"},
            {"user_id": bob, "percentage": "33.33"},
            {"user_id": carol, "percentage": "33.34"},
        ],
    )
    assert resp.status_code == 201

    data = get_balances(client, token, group_id)

    assert data["balance_sum"] == "0.01"


def test_non_member_forbidden(app, client):
    _alice, _bob, _carol, group_id = _setup(app)
    outsider = make_user(app, "Mallory")

    resp = client.get(
        f"/api/v1/groups/{group_id}/balances",
        headers=auth_headers(token_for(app, outsider)),
    )

    assert resp.status_code == 403


def test_unknown_group_404(app, client):
    alice = make_user(app, "Alice")

    resp = client.get(
        "/api/v1/groups/999999/balances",
        headers=auth_headers(token_for(app, alice)),
    )

    assert resp.status_code == 404
    assert resp.get_json()["error"]["code"] == "GROUP_NOT_FOUND"
