"""
services/query_service.py: Read-side views over shared expenses.

  get_shared_expenses(user_id)          expenses the user owns, annotated
  paginate_shared_expenses(user_id,...) same, filtered by status and paged
  get_expenses_shared_with_me(user_id)  the user's own participant rows

Every query is scoped by the caller's id in its WHERE clause; there is no
separate authorization step. Cancelled shares are excluded everywhere.
Results are ordered newest first (created_at DESC, id DESC).

Annotations on each owned expense:
  total_owed   sum of PENDING shares
  total_paid   sum of PAID shares
  all_settled  True when no participant is PENDING
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from backend.app.models.expense_participant import ExpenseParticipant, ParticipantStatus
from backend.app.models.shared_expense import SharedExpense
from backend.app.models.user import User

STATUS_FILTERS = ("all", "pending", "settled")


def _iso(value):
    return value.isoformat() if value is not None else None


def _user_dict(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "display_name": user.display_name,
    }


def _participant_dict(p: ExpenseParticipant) -> dict:
    return {
        "id": p.id,
        "user": _user_dict(p.user),
        "share_amount": p.share_amount,
        "share_percentage": p.share_percentage,
        "status": p.status.value,
        "paid_at": _iso(p.paid_at),
        "declined_at": _iso(p.declined_at),
        "decline_reason": p.decline_reason,
        "reminder_sent_at": _iso(p.reminder_sent_at),
    }


def _transaction_dict(expense: SharedExpense) -> dict | None:
    tx = expense.transaction
    if tx is None:
        return None
    return {
        "id": tx.id,
        "date": _iso(tx.occurred_on),
        "description": tx.description,
    }


def summarize_shared_expense(expense: SharedExpense) -> dict:
    """Owner's view of one shared expense, with participants and totals."""
    participants = list(expense.participants)
    total_owed = sum(
        (p.share_amount for p in participants if p.status == ParticipantStatus.PENDING),
        Decimal("0.00"),
    )
    total_paid = sum(
        (p.share_amount for p in participants if p.status == ParticipantStatus.PAID),
        Decimal("0.00"),
    )
    return {
        "id": expense.id,
        "transaction_id": expense.transaction_id,
        "split_type": expense.split_type.value,
        "total_amount": expense.total_amount,
        "currency": expense.currency.value,
        "description": expense.description,
        "created_at": _iso(expense.created_at),
        "transaction": _transaction_dict(expense),
        "participants": [_participant_dict(p) for p in participants],
        "total_owed": total_owed,
        "total_paid": total_paid,
        "all_settled": all(p.status != ParticipantStatus.PENDING for p in participants),
    }


def summarize_participation(p: ExpenseParticipant) -> dict:
    """Participant's view of one share they hold."""
    expense = p.shared_expense
    return {
        "id": p.id,
        "share_amount": p.share_amount,
        "share_percentage": p.share_percentage,
        "status": p.status.value,
        "paid_at": _iso(p.paid_at),
        "declined_at": _iso(p.declined_at),
        "shared_expense": {
            "id": expense.id,
            "split_type": expense.split_type.value,
            "total_amount": expense.total_amount,
            "currency": expense.currency.value,
            "description": expense.description,
            "created_at": _iso(expense.created_at),
            "transaction": _transaction_dict(expense),
            "owner": _user_dict(expense.owner),
        },
    }


# ── Public service functions ───────────────────────────────────────────────

def get_shared_expenses(user_id: int, session: Session) -> list[dict]:
    """All live shared expenses owned by `user_id`, newest first, annotated."""
    expenses = session.execute(
        select(SharedExpense)
        .options(
            selectinload(SharedExpense.participants).selectinload(ExpenseParticipant.user),
            selectinload(SharedExpense.transaction),
        )
        .where(
            SharedExpense.owner_id == user_id,
            SharedExpense.deleted_at.is_(None),
        )
        .order_by(SharedExpense.created_at.desc(), SharedExpense.id.desc())
    ).scalars().all()
    return [summarize_shared_expense(e) for e in expenses]


def paginate_shared_expenses(
        user_id: int,
        session: Session,
        status: str = "all",
        limit: int = 20,
        offset: int = 0,
) -> dict:
    """
    Page through the owner's shared expenses.

    status: "all", "pending" (some participant still PENDING) or
            "settled" (all_settled). The filter depends on the computed
            annotation, so it runs after loading rather than in SQL.

    Returns {"items": [...], "total": int, "has_more": bool}.
    """
    items = get_shared_expenses(user_id, session)
    if status == "pending":
        items = [i for i in items if not i["all_settled"]]
    elif status == "settled":
        items = [i for i in items if i["all_settled"]]

    total = len(items)
    page = items[offset:offset + limit]
    return {
        "items": page,
        "total": total,
        "has_more": offset + len(page) < total,
    }


def get_expenses_shared_with_me(user_id: int, session: Session) -> list[dict]:
    """Every share `user_id` holds on a live expense, newest first."""
    participations = session.execute(
        select(ExpenseParticipant)
        .join(ExpenseParticipant.shared_expense)
        .options(
            selectinload(ExpenseParticipant.shared_expense).selectinload(SharedExpense.owner),
            selectinload(ExpenseParticipant.shared_expense).selectinload(SharedExpense.transaction),
        )
        .where(
            ExpenseParticipant.user_id == user_id,
            SharedExpense.deleted_at.is_(None),
        )
        .order_by(ExpenseParticipant.created_at.desc(), ExpenseParticipant.id.desc())
    ).scalars().all()
    return [summarize_participation(p) for p in participations]
