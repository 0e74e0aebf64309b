# backend/app/routes/users.py
from flask import Blueprint, g, jsonify, request

from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_auth
from backend.app.schemas.sharing_schema import LookupUserSchema
from backend.app.services import sharing_service

users_bp = Blueprint("users", __name__)


@users_bp.route("/lookup", methods=["GET"])
@require_auth
def lookup_user():
    # Resolve an email before sharing so the client can show who it is
    params = LookupUserSchema().load(request.args.to_dict())
    user = sharing_service.lookup_user_for_sharing(g.user_id, params["email"], db.session)
    return jsonify({"data": user, "warnings": []}), 200
