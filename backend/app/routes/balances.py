"""
routes/balances.py: Settlement balance route handler.

Layer rules:
  - Call ONE service, return envelope.
  - No business logic. No DB queries. No bare SQL.

Endpoints (base url_prefix=/api/v1/sharing):
  GET /balances → 200  net amounts per counterparty and currency
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify

from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_auth
from backend.app.services import balance_service

balances_bp = Blueprint("balances", __name__)


@balances_bp.route("/balances", methods=["GET"])
@require_auth
def get_balances():
    """
    GET /sharing/balances

    Each entry: {user_id, email, display_name, currency, you_owe, they_owe,
    net_balance}. Positive net_balance means the counterparty owes the caller.
    """
    balances = balance_service.get_settlement_balance(g.user_id, db.session)
    return jsonify({"data": balances, "warnings": []}), 200
