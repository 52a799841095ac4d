"""
routes/balances.py — Balance route handlers.

Layer rules:
  - Call ONE service, return envelope.
  - No business logic. No DB queries.

Endpoints (base url_prefix=/api/v1/groups):
  GET /groups/:id/balances  → 200  net balances + simplified debts
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify

from splitease.app.extensions import db
from splitease.app.middleware.auth_middleware import require_auth
from splitease.app.services import balance_service

balances_bp = Blueprint("balances", __name__)


@balances_bp.route("/<int:group_id>/balances", methods=["GET"])
@require_auth
def get_balances(group_id: int):
    """
    GET /groups/:id/balances

    Balances are recomputed from the full expense and settlement history on
    every request. Membership is enforced inside the service.
    """
    result = balance_service.get_balance_response(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200
