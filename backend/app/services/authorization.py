"""
services/authorization.py: Ownership checks shared by the sharing services.

Middleware answers "who are you" (401). These helpers answer "may you touch
this resource" (403). They take an already-loaded aggregate and the acting
user id, and never query the database themselves.

Each require_* helper raises ForbiddenError with its own code and message so
the caller can tell "not your share to confirm" apart from "not your
expense to cancel".
"""

from __future__ import annotations

from backend.app.errors import ErrorCode, ForbiddenError
from backend.app.models.expense_participant import ExpenseParticipant
from backend.app.models.shared_expense import SharedExpense
from backend.app.models.transaction import Transaction


def is_transaction_owner(transaction: Transaction, user_id: int) -> bool:
    return transaction.account is not None and transaction.account.user_id == user_id


def is_expense_owner(expense: SharedExpense, user_id: int) -> bool:
    return expense.owner_id == user_id


def is_share_participant(participant: ExpenseParticipant, user_id: int) -> bool:
    return participant.user_id == user_id


def require_transaction_owner(transaction: Transaction, user_id: int) -> None:
    if not is_transaction_owner(transaction, user_id):
        raise ForbiddenError(
            ErrorCode.NOT_TRANSACTION_OWNER,
            "You can only share your own transactions.",
            details={"resource": "transaction", "id": transaction.id},
        )


def require_expense_owner(expense: SharedExpense, user_id: int, action: str) -> None:
    """
    Raises NOT_EXPENSE_OWNER (403) unless user_id owns the shared expense.

    `action` completes the message, e.g. "mark payments as received".
    """
    if not is_expense_owner(expense, user_id):
        raise ForbiddenError(
            ErrorCode.NOT_EXPENSE_OWNER,
            f"Only the expense owner can {action}.",
            details={"resource": "shared_expense", "id": expense.id},
        )


def require_share_participant(participant: ExpenseParticipant, user_id: int, action: str) -> None:
    if not is_share_participant(participant, user_id):
        raise ForbiddenError(
            ErrorCode.NOT_SHARE_PARTICIPANT,
            f"You can only {action} your own share.",
            details={"resource": "expense_participant", "id": participant.id},
        )
