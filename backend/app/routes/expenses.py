"""
routes/expenses.py: Shared expense and participant route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.

Endpoints (base url_prefix=/api/v1/expenses):
  POST   /share                          → 201  split a transaction among participants
  DELETE /shared/:id                     → 200  cancel a shared expense (owner)
  GET    /shared-by-me                   → 200  paginated owner view
  GET    /shared-with-me                 → 200  participant view
  POST   /shares/:participant_id/paid    → 200  owner confirms payment
  POST   /shares/:participant_id/decline → 200  participant declines
  POST   /shares/:participant_id/remind  → 200  owner sends a payment reminder

Share creation commits BEFORE emailing participants: a failed email never
undoes a committed share.
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_auth
from backend.app.schemas.sharing_schema import (
    DeclineShareSchema,
    ShareExpenseSchema,
    SharedExpenseListQuerySchema,
)
from backend.app.services import participant_service, query_service, sharing_service

expenses_bp = Blueprint("expenses", __name__)


def _iso(value):
    return value.isoformat() if value is not None else None


# ── Shared expenses ────────────────────────────────────────────────────────

@expenses_bp.route("/share", methods=["POST"])
@require_auth
def share_expense():
    """
    POST /expenses/share: Split an EXPENSE transaction among participants.

    Body: {transaction_id, split_type?, participants: [{email, share_amount?,
    share_percentage?}], description?}
    """
    data = ShareExpenseSchema().load(request.get_json(force=True) or {})
    expense = sharing_service.create_shared_expense(
        owner_id=g.user_id,
        data=data,
        session=db.session,
        include_owner=current_app.config["EQUAL_SPLIT_INCLUDES_OWNER"],
        require_full_percentage=current_app.config["REQUIRE_FULL_PERCENTAGE_SPLIT"],
    )
    db.session.commit()

    sharing_service.notify_participants(expense, current_app.extensions["notifier"])

    return jsonify({
        "data": query_service.summarize_shared_expense(expense),
        "warnings": [],
    }), 201


@expenses_bp.route("/shared/<int:shared_expense_id>", methods=["DELETE"])
@require_auth
def cancel_shared_expense(shared_expense_id: int):
    """DELETE /expenses/shared/:id: Soft-delete a shared expense. Owner only."""
    expense = sharing_service.cancel_shared_expense(
        shared_expense_id=shared_expense_id,
        acting_user_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({
        "data": {"id": expense.id, "deleted_at": _iso(expense.deleted_at)},
        "warnings": [],
    }), 200


@expenses_bp.route("/shared-by-me", methods=["GET"])
@require_auth
def list_shared_by_me():
    """GET /expenses/shared-by-me?status=all|pending|settled&limit=&offset="""
    params = SharedExpenseListQuerySchema().load(request.args.to_dict())
    max_limit = current_app.config["SHARED_EXPENSES_MAX_LIMIT"]
    limit = min(params["limit"] or current_app.config["SHARED_EXPENSES_PAGE_LIMIT"], max_limit)

    page = query_service.paginate_shared_expenses(
        user_id=g.user_id,
        session=db.session,
        status=params["status"],
        limit=limit,
        offset=params["offset"],
    )
    return jsonify({"data": page, "warnings": []}), 200


@expenses_bp.route("/shared-with-me", methods=["GET"])
@require_auth
def list_shared_with_me():
    """GET /expenses/shared-with-me: Shares the caller holds on others' expenses."""
    items = query_service.get_expenses_shared_with_me(g.user_id, db.session)
    return jsonify({"data": items, "warnings": []}), 200


# ── Participant lifecycle ──────────────────────────────────────────────────

@expenses_bp.route("/shares/<int:participant_id>/paid", methods=["POST"])
@require_auth
def mark_share_paid(participant_id: int):
    """POST /expenses/shares/:id/paid: Owner confirms the share was paid."""
    result = participant_service.mark_paid(participant_id, g.user_id, db.session)
    db.session.commit()
    result["paid_at"] = _iso(result["paid_at"])
    return jsonify({"data": result, "warnings": []}), 200


@expenses_bp.route("/shares/<int:participant_id>/decline", methods=["POST"])
@require_auth
def decline_share(participant_id: int):
    """POST /expenses/shares/:id/decline: Participant refuses their share."""
    data = DeclineShareSchema().load(request.get_json(silent=True) or {})
    result = participant_service.decline(
        participant_id,
        g.user_id,
        db.session,
        reason=data["reason"],
    )
    db.session.commit()
    result["declined_at"] = _iso(result["declined_at"])
    return jsonify({"data": result, "warnings": []}), 200


@expenses_bp.route("/shares/<int:participant_id>/remind", methods=["POST"])
@require_auth
def remind_participant(participant_id: int):
    """
    POST /expenses/shares/:id/remind: Owner sends a payment reminder.

    participant_service.send_reminder commits on its own (the email sits
    between the cooldown write and its compensation), so there is no
    commit here.
    """
    result = participant_service.send_reminder(
        participant_id,
        g.user_id,
        db.session,
        notifier=current_app.extensions["notifier"],
        cooldown_hours=current_app.config["REMINDER_COOLDOWN_HOURS"],
    )
    result["reminder_sent_at"] = _iso(result["reminder_sent_at"])
    return jsonify({"data": result, "warnings": []}), 200
