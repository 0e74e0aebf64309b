"""
tests/integration/helpers.py: Seeding and request helpers for integration tests.

Users, accounts and transactions belong to other parts of Balance Beacon
and have no endpoints here, so they are inserted directly through the ORM.
Every helper returns plain ids or dicts, never ORM instances, so nothing
outlives the app context it was loaded in.

These are plain functions (not pytest fixtures) so they can be called with
arbitrary arguments in any test.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import jwt
from sqlalchemy import text

from backend.app.extensions import db
from backend.app.models.account import Account
from backend.app.models.transaction import Currency, Transaction, TransactionType
from backend.app.models.user import User


# ═══════════════════════════════════════════════════════════════════════════
# Seeding
# ═══════════════════════════════════════════════════════════════════════════

def make_user(app, name: str, display_name: str | None = None) -> dict:
    """
    Creates a user with one account.
    Returns {"id", "email", "account_id"}. The email is f"{name}@test.com".
    """
    email = f"{name}@test.com"
    with app.app_context():
        user = User(email=email, display_name=display_name)
        db.session.add(user)
        db.session.flush()

        account = Account(user_id=user.id, name=f"{name} checking")
        db.session.add(account)
        db.session.commit()
        return {"id": user.id, "email": email, "account_id": account.id}


def make_transaction(
    app,
    account_id: int,
    amount: str = "300.00",
    tx_type: TransactionType = TransactionType.EXPENSE,
    currency: Currency = Currency.USD,
    description: str | None = "Dinner",
    deleted: bool = False,
) -> int:
    """Inserts a transaction and returns its id."""
    with app.app_context():
        tx = Transaction(
            account_id=account_id,
            type=tx_type,
            amount=Decimal(amount),
            currency=currency,
            description=description,
            occurred_on=date(2026, 10, 1),
            deleted_at=datetime.now(timezone.utc) if deleted else None,
        )
        db.session.add(tx)
        db.session.commit()
        return tx.id


def empty_tables(app) -> None:
    """
    Deletes every row in FK-safe order, leaving the schema in place.

    Participants before shared expenses, shared expenses before
    transactions, transactions before accounts, accounts before users.
    """
    with app.app_context():
        db.session.rollback()  # discard any uncommitted state from a failed test

        with db.engine.begin() as conn:
            conn.execute(text("DELETE FROM expense_participants"))
            conn.execute(text("DELETE FROM shared_expenses"))
            conn.execute(text("DELETE FROM transactions"))
            conn.execute(text("DELETE FROM accounts"))
            conn.execute(text("DELETE FROM users"))


# ═══════════════════════════════════════════════════════════════════════════
# Auth
# ═══════════════════════════════════════════════════════════════════════════

def token_for(app, user_id: int, expires_in: timedelta = timedelta(minutes=15)) -> str:
    """Mints an access token the way the auth service does: sub = str(user id)."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + expires_in,
    }
    return jwt.encode(
        payload,
        app.config["JWT_SECRET_KEY"],
        algorithm=app.config["JWT_ALGORITHM"],
    )


def auth_headers(token: str) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {token}"}


def headers_for(app, user: dict) -> dict:
    return auth_headers(token_for(app, user["id"]))


# ═══════════════════════════════════════════════════════════════════════════
# API shortcuts
# ═══════════════════════════════════════════════════════════════════════════

def share_expense(
    client,
    app,
    owner: dict,
    transaction_id: int,
    participants: list[dict],
    split_type: str = "EQUAL",
    description: str | None = None,
):
    """POST /expenses/share as `owner`. Returns the HTTP response."""
    payload: dict = {
        "transaction_id": transaction_id,
        "split_type": split_type,
        "participants": participants,
    }
    if description is not None:
        payload["description"] = description

    return client.post(
        "/api/v1/expenses/share",
        json=payload,
        headers=headers_for(app, owner),
    )


def share_equally(client, app, owner: dict, others: list[dict], amount: str = "300.00") -> dict:
    """
    Creates a transaction for `owner` and shares it EQUAL with `others`.
    Returns the response data (the shared expense summary).
    """
    tx_id = make_transaction(app, owner["account_id"], amount=amount)
    resp = share_expense(
        client, app, owner, tx_id,
        participants=[{"email": o["email"]} for o in others],
    )
    assert resp.status_code == 201, f"share_equally failed: {resp.get_json()}"
    return resp.get_json()["data"]


def participant_id_for(expense: dict, user: dict) -> int:
    """Finds the participant row id of `user` in a shared expense summary."""
    for p in expense["participants"]:
        if p["user"]["id"] == user["id"]:
            return p["id"]
    raise AssertionError(f"user {user['id']} is not a participant of expense {expense['id']}")
