"""
routes/settlements.py: Bulk settlement route handler.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.

Endpoints (base url_prefix=/api/v1/sharing):
  POST /settle-all → 200  mark every PENDING share a user owes the caller
                          in one currency as PAID
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_auth
from backend.app.schemas.sharing_schema import SettleAllSchema
from backend.app.services import participant_service

settlements_bp = Blueprint("settlements", __name__)


@settlements_bp.route("/settle-all", methods=["POST"])
@require_auth
def settle_all():
    """
    POST /sharing/settle-all

    Body: {user_id, currency}. The caller is the owner confirming receipt;
    shares the caller owes the other user are left alone.
    """
    data = SettleAllSchema().load(request.get_json(force=True) or {})
    result = participant_service.settle_all_with_user(
        acting_user_id=g.user_id,
        counterparty_id=data["user_id"],
        currency=data["currency"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({
        "data": {
            "settled_count": result["settled_count"],
            "paid_at": result["paid_at"].isoformat(),
        },
        "warnings": [],
    }), 200
