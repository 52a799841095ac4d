"""
routes/users.py — Caller-scoped user endpoints.

Endpoints (base url_prefix=/api/v1/users):
  GET   /users/me          → 200  profile + activity counts
  PATCH /users/me          → 200  set display name / link or unlink wallet
  GET   /users/me/summary  → 200  net position across all of the caller's groups
"""

from flask import Blueprint, g, jsonify, request

from splitease.app.extensions import db
from splitease.app.middleware.auth_middleware import require_auth
from splitease.app.schemas.user_schema import UpdateProfileSchema
from splitease.app.services import balance_service, user_service

users_bp = Blueprint("users", __name__)


@users_bp.route("/me", methods=["GET"])
@require_auth
def get_me():
    profile = user_service.get_profile(
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": profile, "warnings": []}), 200


@users_bp.route("/me", methods=["PATCH"])
@require_auth
def update_me():
    data = UpdateProfileSchema().load(request.get_json(force=True) or {})
    profile = user_service.update_profile(
        user_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": profile, "warnings": []}), 200


@users_bp.route("/me/summary", methods=["GET"])
@require_auth
def get_my_summary():
    summary = balance_service.get_member_summary(
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": summary, "warnings": []}), 200
