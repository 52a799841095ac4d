"""
routes/payment_requests.py — Payment request route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries.

Endpoints (base url_prefix=/api/v1/payment-requests):
  POST  /payment-requests/      → 201  ask a member to pay (amount pre-filled if omitted)
  GET   /payment-requests/      → 200  {incoming, outgoing}
  PATCH /payment-requests/:id   → 200  PAID / DECLINED / CANCELLED
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from splitease.app.extensions import db
from splitease.app.middleware.auth_middleware import require_auth
from splitease.app.models.payment_request import PaymentRequest
from splitease.app.schemas.payment_request_schema import (
    CreatePaymentRequestSchema,
    UpdatePaymentRequestSchema,
)
from splitease.app.services import payment_request_service

payment_requests_bp = Blueprint("payment_requests", __name__)


def _serialize_request(r: PaymentRequest) -> dict:
    return {
        "id": r.id,
        "group_id": r.group_id,
        "group_name": r.group.name if r.group else None,
        "from_user_id": r.from_user_id,
        "from_name": r.requester.name if r.requester else None,
        "to_user_id": r.to_user_id,
        "to_name": r.payer.name if r.payer else None,
        "amount": str(r.amount),
        "message": r.message,
        "status": r.status.value,
        "rejection_reason": r.rejection_reason,
        "tx_hash": r.tx_hash,
        "created_at": r.created_at.isoformat() if r.created_at else None,
        "updated_at": r.updated_at.isoformat() if r.updated_at else None,
    }


@payment_requests_bp.route("/", methods=["POST"])
@require_auth
def create_payment_request():
    data = CreatePaymentRequestSchema().load(request.get_json(force=True) or {})
    payment_request = payment_request_service.create_payment_request(
        from_user_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": _serialize_request(payment_request), "warnings": []}), 201


@payment_requests_bp.route("/", methods=["GET"])
@require_auth
def list_payment_requests():
    result = payment_request_service.list_payment_requests(
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({
        "data": {
            "incoming": [_serialize_request(r) for r in result["incoming"]],
            "outgoing": [_serialize_request(r) for r in result["outgoing"]],
        },
        "warnings": [],
    }), 200


@payment_requests_bp.route("/<int:request_id>", methods=["PATCH"])
@require_auth
def update_payment_request(request_id: int):
    data = UpdatePaymentRequestSchema().load(request.get_json(force=True) or {})
    payment_request = payment_request_service.update_payment_request(
        request_id=request_id,
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": _serialize_request(payment_request), "warnings": []}), 200
