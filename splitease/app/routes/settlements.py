"""
routes/settlements.py — Settlement route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries.

Special: create_settlement returns (Settlement, warnings[]).
  If warnings is non-empty (e.g. OVERPAYMENT), they are included in the
  envelope. The HTTP status is still 201.

Endpoints:
  POST /groups/:id/settlements          → 201  record a submitted transfer (PENDING)
  GET  /groups/:id/settlements          → 200  list settlements for a group
  POST /settlements/:tx_hash/confirm    → 200  transaction confirmed on-chain
  POST /settlements/:tx_hash/fail       → 200  transaction failed on-chain
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from splitease.app.extensions import db
from splitease.app.middleware.auth_middleware import require_auth
from splitease.app.models.settlement import Settlement, SettlementStatus
from splitease.app.schemas.settlement_schema import CreateSettlementSchema
from splitease.app.services import settlement_service

settlements_bp = Blueprint("settlements", __name__)


def _serialize_settlement(s: Settlement) -> dict:
    """Converts a Settlement ORM object to a plain dict for JSON output."""
    return {
        "id": s.id,
        "group_id": s.group_id,
        "from_user_id": s.from_user_id,
        "to_user_id": s.to_user_id,
        "amount": str(s.amount),
        "status": s.status.value,
        "tx_hash": s.tx_hash,
        "created_at": s.created_at.isoformat(),
        "updated_at": s.updated_at.isoformat() if s.updated_at else None,
    }


@settlements_bp.route("/groups/<int:group_id>/settlements", methods=["POST"])
@require_auth
def create_settlement(group_id: int):
    """
    POST /groups/:id/settlements — from_user_id is the authenticated caller.
    """
    data = CreateSettlementSchema().load(request.get_json(force=True) or {})
    settlement, warnings = settlement_service.create_settlement(
        group_id=group_id,
        from_user_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": _serialize_settlement(settlement), "warnings": warnings}), 201


@settlements_bp.route("/groups/<int:group_id>/settlements", methods=["GET"])
@require_auth
def list_settlements(group_id: int):
    settlements = settlement_service.list_settlements(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({
        "data": [_serialize_settlement(s) for s in settlements],
        "warnings": [],
    }), 200


def _set_status(tx_hash: str, status: SettlementStatus):
    settlement = settlement_service.update_settlement_status(
        tx_hash=tx_hash,
        status=status,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": _serialize_settlement(settlement), "warnings": []}), 200


@settlements_bp.route("/settlements/<string:tx_hash>/confirm", methods=["POST"])
@require_auth
def confirm_settlement(tx_hash: str):
    return _set_status(tx_hash, SettlementStatus.CONFIRMED)


@settlements_bp.route("/settlements/<string:tx_hash>/fail", methods=["POST"])
@require_auth
def fail_settlement(tx_hash: str):
    return _set_status(tx_hash, SettlementStatus.FAILED)
