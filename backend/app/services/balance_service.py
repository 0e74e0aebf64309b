"""
services/balance_service.py: Settlement balances between a user and everyone
they share expenses with.

This file is the SINGLE SOURCE OF TRUTH for how "who owes whom" is computed.
Balances are derived on every read from the participant rows; nothing is
cached or stored as a running ledger.

Formula, per (counterparty, currency):
    they_owe    = sum of PENDING shares the counterparty holds on MY expenses
    you_owe     = sum of PENDING shares I hold on the counterparty's expenses
    net_balance = they_owe - you_owe      (positive: they owe me)

Rules:
  - Cancelled shared expenses contribute nothing.
  - DECLINED shares contribute nothing and do not create an entry.
  - PAID shares contribute zero but keep the counterparty in the list, so a
    fully settled relationship shows up as 0.00 rather than disappearing.
  - Currencies are never converted or summed together. One counterparty
    with USD and EUR shares produces two entries.
  - Entries are sorted by |net_balance| descending, then currency, then
    counterparty id.

Layer rules:
  - No Flask imports. Receives user_id and session, returns plain dicts.
  - compute_settlement_balances() is pure and unit-testable without a DB.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from typing import NamedTuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.models.expense_participant import ExpenseParticipant, ParticipantStatus
from backend.app.models.shared_expense import SharedExpense
from backend.app.models.user import User

_ZERO = Decimal("0.00")


class ShareLine(NamedTuple):
    """One participant share seen from the current user's side."""
    counterparty_id: int
    currency: str
    amount: Decimal
    status: ParticipantStatus


# ── Data access helpers ────────────────────────────────────────────────────
# Both helpers filter out cancelled expenses and DECLINED shares at the
# query level. Balance code must not query participants any other way.

def get_shares_owed_to_user(user_id: int, session: Session) -> list[ShareLine]:
    """Shares other users hold on expenses `user_id` owns (they owe me)."""
    rows = session.execute(
        select(
            ExpenseParticipant.user_id,
            SharedExpense.currency,
            ExpenseParticipant.share_amount,
            ExpenseParticipant.status,
        )
        .join(SharedExpense, ExpenseParticipant.shared_expense_id == SharedExpense.id)
        .where(
            SharedExpense.owner_id == user_id,
            SharedExpense.deleted_at.is_(None),
            ExpenseParticipant.status != ParticipantStatus.DECLINED,
        )
    ).all()
    return [ShareLine(*row) for row in rows]


def get_shares_owed_by_user(user_id: int, session: Session) -> list[ShareLine]:
    """Shares `user_id` holds on other users' expenses (I owe them)."""
    rows = session.execute(
        select(
            SharedExpense.owner_id,
            SharedExpense.currency,
            ExpenseParticipant.share_amount,
            ExpenseParticipant.status,
        )
        .join(SharedExpense, ExpenseParticipant.shared_expense_id == SharedExpense.id)
        .where(
            ExpenseParticipant.user_id == user_id,
            SharedExpense.deleted_at.is_(None),
            ExpenseParticipant.status != ParticipantStatus.DECLINED,
        )
    ).all()
    return [ShareLine(*row) for row in rows]


# ── Pure computation ───────────────────────────────────────────────────────

def _currency_code(currency) -> str:
    return getattr(currency, "value", currency)


def compute_settlement_balances(
        owed_to_me: list[ShareLine],
        owed_by_me: list[ShareLine],
) -> list[dict]:
    """
    Merges both directions into one entry per (counterparty, currency).

    Returns:
        [{"user_id", "currency", "you_owe", "they_owe", "net_balance"}, ...]
        Amounts are Decimal with 2 decimal places.
    """
    they_owe: dict[tuple[int, str], Decimal] = defaultdict(lambda: _ZERO)
    you_owe: dict[tuple[int, str], Decimal] = defaultdict(lambda: _ZERO)

    for line in owed_to_me:
        key = (line.counterparty_id, _currency_code(line.currency))
        they_owe[key] += line.amount if line.status == ParticipantStatus.PENDING else _ZERO

    for line in owed_by_me:
        key = (line.counterparty_id, _currency_code(line.currency))
        you_owe[key] += line.amount if line.status == ParticipantStatus.PENDING else _ZERO

    entries = []
    for key in set(they_owe) | set(you_owe):
        counterparty_id, currency = key
        theirs = Decimal(they_owe[key]).quantize(_ZERO)
        mine = Decimal(you_owe[key]).quantize(_ZERO)
        entries.append({
            "user_id":     counterparty_id,
            "currency":    currency,
            "you_owe":     mine,
            "they_owe":    theirs,
            "net_balance": theirs - mine,
        })

    entries.sort(key=lambda e: (-abs(e["net_balance"]), e["currency"], e["user_id"]))
    return entries


# ── Public service function ────────────────────────────────────────────────

def get_settlement_balance(user_id: int, session: Session) -> list[dict]:
    """
    Settlement balances for `user_id`, one entry per counterparty and currency,
    each with the counterparty's email and display name attached.
    """
    entries = compute_settlement_balances(
        get_shares_owed_to_user(user_id, session),
        get_shares_owed_by_user(user_id, session),
    )
    if not entries:
        return []

    counterparty_ids = {e["user_id"] for e in entries}
    users = {
        u.id: u
        for u in session.execute(
            select(User).where(User.id.in_(counterparty_ids))
        ).scalars().all()
    }

    for entry in entries:
        user = users.get(entry["user_id"])
        entry["email"] = user.email if user else None
        entry["display_name"] = user.display_name if user else None
    return entries
