"""
services/sharing_service.py: Shared expense creation, cancellation, lookup.

Preconditions for create_shared_expense, checked in this order before any
write:
  1. Transaction exists and is live             TRANSACTION_NOT_FOUND (404)
     and belongs to the acting user             NOT_TRANSACTION_OWNER (403)
  2. Transaction is an EXPENSE                  INCOME_NOT_SHAREABLE  (422)
  3. Transaction has no live share              ALREADY_SHARED        (409)
  4. No participant is the owner                SELF_SHARE            (422)
  5. No duplicate participant emails            DUPLICATE_PARTICIPANT (422)
  6. Every email resolves to a user             PARTICIPANTS_NOT_FOUND (422)
  7. Split amounts are valid                    InvalidSplitError     (422)

Race on precondition 3:
  Two requests can both pass the "no live share" check. The partial unique
  index on shared_expenses.transaction_id rejects the second INSERT; the
  IntegrityError is converted to the same ALREADY_SHARED ConflictError.

Notifications:
  notify_participants() is called by the route AFTER the commit. A failed
  email is logged and never fails the request: the committed share is the
  source of truth.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility; only flush here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from backend.app.errors import (
    ConflictError,
    ErrorCode,
    NotFoundError,
    ValidationError,
)
from backend.app.models.account import Account
from backend.app.models.expense_participant import ExpenseParticipant, ParticipantStatus
from backend.app.models.shared_expense import SharedExpense, SplitType
from backend.app.models.transaction import Transaction, TransactionType
from backend.app.models.user import User
from backend.app.services import authorization
from backend.app.services.notification_service import expense_shared_context
from backend.app.services.split_calculator import build_share_specs, calculate_shares

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _get_transaction_or_404(transaction_id: int, session: Session) -> Transaction:
    """Raises TRANSACTION_NOT_FOUND (404) if the transaction is absent or soft-deleted."""
    transaction = session.execute(
        select(Transaction)
        .options(selectinload(Transaction.account))
        .where(
            Transaction.id == transaction_id,
            Transaction.deleted_at.is_(None),
        )
    ).scalar_one_or_none()

    if transaction is None:
        raise NotFoundError(
            ErrorCode.TRANSACTION_NOT_FOUND,
            "Transaction not found.",
            field="transaction_id",
            details={"resource": "transaction", "id": transaction_id},
        )
    return transaction


def _get_user_or_404(user_id: int, session: Session) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} does not exist.",
            details={"resource": "user", "id": user_id},
        )
    return user


def _get_shared_expense_or_404(shared_expense_id: int, session: Session) -> SharedExpense:
    expense = session.get(SharedExpense, shared_expense_id)
    if expense is None:
        raise NotFoundError(
            ErrorCode.SHARED_EXPENSE_NOT_FOUND,
            "Shared expense not found.",
            details={"resource": "shared_expense", "id": shared_expense_id},
        )
    return expense


def _has_live_share(transaction_id: int, session: Session) -> bool:
    existing = session.execute(
        select(SharedExpense.id).where(
            SharedExpense.transaction_id == transaction_id,
            SharedExpense.deleted_at.is_(None),
        )
    ).scalar_one_or_none()
    return existing is not None


def _already_shared_error(transaction_id: int) -> ConflictError:
    return ConflictError(
        ErrorCode.ALREADY_SHARED,
        "This transaction is already shared.",
        field="transaction_id",
        details={"resource": "transaction", "id": transaction_id},
    )


def _resolve_participants(emails: list[str], session: Session) -> dict[str, User]:
    """
    Returns {email: User} for every email, in input order.
    Raises PARTICIPANTS_NOT_FOUND (422) listing every unknown email.
    """
    users = session.execute(
        select(User).where(func.lower(User.email).in_(emails))
    ).scalars().all()
    by_email = {u.email.lower(): u for u in users}

    missing = [e for e in emails if e not in by_email]
    if missing:
        raise ValidationError(
            ErrorCode.PARTICIPANTS_NOT_FOUND,
            f"Users not found: {', '.join(missing)}",
            field="participants",
            details={"emails": missing},
        )
    return {e: by_email[e] for e in emails}


def load_shared_expense(shared_expense_id: int, session: Session) -> SharedExpense:
    """Fetches a shared expense with its participants and their users eagerly loaded."""
    return session.execute(
        select(SharedExpense)
        .options(
            selectinload(SharedExpense.participants).selectinload(ExpenseParticipant.user),
            selectinload(SharedExpense.owner),
            selectinload(SharedExpense.transaction),
        )
        .where(SharedExpense.id == shared_expense_id)
    ).scalar_one()


def display_name(user: User) -> str:
    return user.display_name or user.email


def expense_description(expense: SharedExpense) -> str:
    """Share description, falling back to the transaction's, then a generic label."""
    if expense.description:
        return expense.description
    if expense.transaction is not None and expense.transaction.description:
        return expense.transaction.description
    return "Shared expense"


# ── Public service functions ───────────────────────────────────────────────

def create_shared_expense(
        owner_id: int,
        data: dict,
        session: Session,
        include_owner: bool = True,
        require_full_percentage: bool = False,
) -> SharedExpense:
    """
    Splits an EXPENSE transaction among participants.

    Args:
        owner_id: The authenticated user (from flask.g).
        data:     Validated dict from ShareExpenseSchema.
                  Keys: transaction_id, split_type, participants, description.
        include_owner:           EQUAL divisor policy (EQUAL_SPLIT_INCLUDES_OWNER).
        require_full_percentage: PERCENTAGE must total 100 (REQUIRE_FULL_PERCENTAGE_SPLIT).

    Returns:
        The new SharedExpense with participants, owner and transaction loaded.
        Not yet committed.
    """
    transaction_id: int = data["transaction_id"]
    split_type = SplitType(data.get("split_type", SplitType.EQUAL))
    participants: list[dict] = data["participants"]

    # 1. Exists, live, owned by the caller.
    transaction = _get_transaction_or_404(transaction_id, session)
    authorization.require_transaction_owner(transaction, owner_id)

    # 2. Only expenses can be split.
    if transaction.type != TransactionType.EXPENSE:
        raise ValidationError(
            ErrorCode.INCOME_NOT_SHAREABLE,
            "Only expense transactions can be shared.",
            field="transaction_id",
            details={"type": transaction.type.value},
        )

    # 3. At most one live share per transaction.
    if _has_live_share(transaction_id, session):
        raise _already_shared_error(transaction_id)

    owner = _get_user_or_404(owner_id, session)
    emails = [p["email"].strip().lower() for p in participants]

    # 4. No self-share.
    if owner.email.lower() in emails:
        raise ValidationError(
            ErrorCode.SELF_SHARE,
            "Expenses can only be shared with others.",
            field="participants",
            details={"email": owner.email.lower()},
        )

    # 5. No duplicates. The schema already rejects these; direct callers
    #    of the service get the same answer.
    seen: set[str] = set()
    duplicates: list[str] = []
    for e in emails:
        if e in seen and e not in duplicates:
            duplicates.append(e)
        seen.add(e)
    if duplicates:
        raise ValidationError(
            ErrorCode.DUPLICATE_PARTICIPANT,
            f"Each participant can only be added once: {', '.join(duplicates)}",
            field="participants",
            details={"emails": duplicates},
        )

    # 6. Every participant is a known user.
    users_by_email = _resolve_participants(emails, session)

    # 7. Split computation (raises InvalidSplitError).
    shares = calculate_shares(
        split_type,
        transaction.amount,
        build_share_specs(split_type, participants),
        include_owner=include_owner,
        require_full_percentage=require_full_percentage,
    )

    expense = SharedExpense(
        transaction_id=transaction.id,
        owner_id=owner_id,
        split_type=split_type,
        total_amount=transaction.amount,
        currency=transaction.currency,
        description=data.get("description"),
    )
    for email, share in shares.items():
        expense.participants.append(
            ExpenseParticipant(
                user_id=users_by_email[email].id,
                share_amount=share.amount,
                share_percentage=share.percentage,
                status=ParticipantStatus.PENDING,
            )
        )

    session.add(expense)
    try:
        # Parent and participants go out in one flush inside the request's
        # transaction, so a reader never sees a partial participant set.
        session.flush()
    except IntegrityError:
        session.rollback()
        logger.info(
            "Lost share race for transaction %s (owner %s)", transaction_id, owner_id,
        )
        raise _already_shared_error(transaction_id)

    logger.info(
        "Shared expense %s created: transaction=%s owner=%s split=%s participants=%d",
        expense.id,
        transaction_id,
        owner_id,
        split_type.value,
        len(shares),
    )
    return load_shared_expense(expense.id, session)


def notify_participants(expense: SharedExpense, notifier) -> int:
    """
    Sends the "expense shared" email to every participant.

    Must run after the share is committed. Failures are logged as warnings
    and never raised. Returns the number of emails reported as delivered.
    """
    owner_name = display_name(expense.owner)
    description = expense_description(expense)
    delivered = 0

    for participant in expense.participants:
        context = expense_shared_context(
            participant_name=display_name(participant.user),
            owner_name=owner_name,
            description=description,
            amount=participant.share_amount,
            total_amount=expense.total_amount,
            currency=expense.currency,
        )
        try:
            result = notifier.send(participant.user.email, context)
        except Exception:  # noqa: BLE001
            logger.warning(
                "Failed to send expense share email to %s (shared expense %s)",
                participant.user.email,
                expense.id,
                exc_info=True,
            )
            continue

        if result.success:
            delivered += 1
        else:
            logger.warning(
                "Failed to send expense share email to %s (shared expense %s): %s",
                participant.user.email,
                expense.id,
                result.error,
            )
    return delivered


def cancel_shared_expense(
        shared_expense_id: int,
        acting_user_id: int,
        session: Session,
) -> SharedExpense:
    """
    Soft-deletes a shared expense. Owner only.

    Participant rows are left untouched as historical record, including any
    already marked PAID. Cancelling an already-cancelled share is a no-op and
    keeps the original deleted_at.
    """
    expense = _get_shared_expense_or_404(shared_expense_id, session)
    authorization.require_expense_owner(expense, acting_user_id, "cancel this shared expense")

    if not expense.is_cancelled:
        expense.deleted_at = datetime.now(timezone.utc)
        session.flush()
        logger.info("Shared expense %s cancelled by user %s", expense.id, acting_user_id)

    return expense


def lookup_user_for_sharing(acting_user_id: int, email: str, session: Session) -> dict:
    """
    Resolves an email to {id, email, display_name} before sharing.

    Raises SELF_SHARE (422) for the caller's own email and USER_NOT_FOUND (404)
    for an unknown one.
    """
    normalized = email.strip().lower()
    acting_user = _get_user_or_404(acting_user_id, session)

    if acting_user.email.lower() == normalized:
        raise ValidationError(
            ErrorCode.SELF_SHARE,
            "You cannot share expenses with yourself.",
            field="email",
        )

    user = session.execute(
        select(User).where(func.lower(User.email) == normalized)
    ).scalar_one_or_none()

    if user is None:
        raise NotFoundError(
            ErrorCode.USER_NOT_FOUND,
            "No user found with this email address.",
            field="email",
            details={"resource": "user"},
        )

    return {
        "id": user.id,
        "email": user.email,
        "display_name": user.display_name,
    }
