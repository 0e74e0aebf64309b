"""
services/participant_service.py: Participant payment lifecycle.

State machine:

    PENDING ──mark_paid (owner)──────> PAID      (terminal)
       │
       └────decline (participant)────> DECLINED  (terminal)

Every transition is ONE conditional UPDATE:

    UPDATE expense_participants
       SET status = :new, <timestamp> = :now
     WHERE id = :id AND status = 'PENDING'

and the affected row count decides the outcome. The row loaded beforehand
is only used for the 404/403 checks, never for the status precondition, so
two racing requests cannot both succeed: the loser matches zero rows and
gets SHARE_NOT_PENDING (422) naming the status the winner wrote.

Reminder cooldown:
  send_reminder() folds the cooldown into the same kind of UPDATE
  (reminder_sent_at IS NULL OR reminder_sent_at <= now - cooldown). Only
  after that write is committed is the email sent. If the email fails, a
  compensating UPDATE restores the previous timestamp, guarded on the value
  this call wrote, and NOTIFICATION_FAILED (502) is returned so the owner
  can retry.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - mark_paid, decline and settle_all_with_user only flush; the route commits.
  - send_reminder commits itself: the email sits between two writes that
    must each be durable on their own.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session, contains_eager

from backend.app.errors import (
    ErrorCode,
    NotFoundError,
    NotificationError,
    ValidationError,
)
from backend.app.models.expense_participant import ExpenseParticipant, ParticipantStatus
from backend.app.models.shared_expense import SharedExpense
from backend.app.services import authorization
from backend.app.services.notification_service import payment_reminder_context
from backend.app.services.sharing_service import display_name, expense_description

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _utcnow() -> datetime:
    """Server clock. Patched in tests to move time forward."""
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; every stored timestamp is UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _get_participant_or_404(participant_id: int, session: Session) -> ExpenseParticipant:
    """
    Loads a participant together with its live parent expense.

    Participants of a cancelled share are reported as not found: the share
    no longer exists from the API's point of view.
    """
    participant = session.execute(
        select(ExpenseParticipant)
        .join(ExpenseParticipant.shared_expense)
        .options(contains_eager(ExpenseParticipant.shared_expense))
        .where(
            ExpenseParticipant.id == participant_id,
            SharedExpense.deleted_at.is_(None),
        )
    ).scalar_one_or_none()

    if participant is None:
        raise NotFoundError(
            ErrorCode.PARTICIPANT_NOT_FOUND,
            "Participant record not found.",
            details={"resource": "expense_participant", "id": participant_id},
        )
    return participant


def _current_state(participant_id: int, session: Session) -> tuple[ParticipantStatus, datetime | None]:
    """Reads status and reminder_sent_at straight from the DB, bypassing the identity map."""
    status, reminder_sent_at = session.execute(
        select(ExpenseParticipant.status, ExpenseParticipant.reminder_sent_at)
        .where(ExpenseParticipant.id == participant_id)
    ).one()
    return ParticipantStatus(status), _as_utc(reminder_sent_at)


def _not_pending_error(status: ParticipantStatus, action: str) -> ValidationError:
    return ValidationError(
        ErrorCode.SHARE_NOT_PENDING,
        f"Cannot {action}: this share is already {status.value}.",
        details={"status": status.value},
    )


def _transition(
        participant_id: int,
        session: Session,
        **values,
) -> int:
    """Applies `values` only if the row is still PENDING. Returns the row count."""
    result = session.execute(
        update(ExpenseParticipant)
        .where(
            ExpenseParticipant.id == participant_id,
            ExpenseParticipant.status == ParticipantStatus.PENDING,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


# ── Public service functions ───────────────────────────────────────────────

def mark_paid(participant_id: int, acting_user_id: int, session: Session) -> dict:
    """
    Owner confirms receipt of a participant's share.

    Raises:
        PARTICIPANT_NOT_FOUND (404), NOT_EXPENSE_OWNER (403),
        SHARE_NOT_PENDING (422) with details.status = current status.
    """
    participant = _get_participant_or_404(participant_id, session)
    authorization.require_expense_owner(
        participant.shared_expense, acting_user_id, "mark payments as received",
    )

    paid_at = _utcnow()
    if _transition(participant_id, session, status=ParticipantStatus.PAID, paid_at=paid_at) == 0:
        status, _ = _current_state(participant_id, session)
        raise _not_pending_error(status, "mark this share as paid")

    logger.info("Participant %s marked PAID by owner %s", participant_id, acting_user_id)
    return {
        "id": participant_id,
        "status": ParticipantStatus.PAID.value,
        "paid_at": paid_at,
    }


def decline(
        participant_id: int,
        acting_user_id: int,
        session: Session,
        reason: str | None = None,
) -> dict:
    """
    Participant refuses their own share.

    Raises:
        PARTICIPANT_NOT_FOUND (404), NOT_SHARE_PARTICIPANT (403),
        SHARE_NOT_PENDING (422) with details.status = current status.
    """
    participant = _get_participant_or_404(participant_id, session)
    authorization.require_share_participant(participant, acting_user_id, "decline")

    declined_at = _utcnow()
    updated = _transition(
        participant_id,
        session,
        status=ParticipantStatus.DECLINED,
        declined_at=declined_at,
        decline_reason=reason,
    )
    if updated == 0:
        status, _ = _current_state(participant_id, session)
        raise _not_pending_error(status, "decline this share")

    logger.info(
        "Participant %s DECLINED by user %s (reason: %s)",
        participant_id,
        acting_user_id,
        reason or "-",
    )
    return {
        "id": participant_id,
        "status": ParticipantStatus.DECLINED.value,
        "declined_at": declined_at,
        "decline_reason": reason,
    }


def send_reminder(
        participant_id: int,
        acting_user_id: int,
        session: Session,
        notifier,
        cooldown_hours: int = 24,
) -> dict:
    """
    Owner nudges a participant who has not paid yet.

    Raises:
        PARTICIPANT_NOT_FOUND (404), NOT_EXPENSE_OWNER (403),
        SHARE_NOT_PENDING (422), REMINDER_COOLDOWN_ACTIVE (422) with
        details.next_allowed_at, NOTIFICATION_FAILED (502) after the
        cooldown timestamp has been restored.
    """
    participant = _get_participant_or_404(participant_id, session)
    expense = participant.shared_expense
    authorization.require_expense_owner(expense, acting_user_id, "send payment reminders")

    previous_sent_at = participant.reminder_sent_at
    now = _utcnow()
    threshold = now - timedelta(hours=cooldown_hours)

    result = session.execute(
        update(ExpenseParticipant)
        .where(
            ExpenseParticipant.id == participant_id,
            ExpenseParticipant.status == ParticipantStatus.PENDING,
            or_(
                ExpenseParticipant.reminder_sent_at.is_(None),
                ExpenseParticipant.reminder_sent_at <= threshold,
            ),
        )
        .values(reminder_sent_at=now)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        status, sent_at = _current_state(participant_id, session)
        if status != ParticipantStatus.PENDING:
            raise _not_pending_error(status, "send a reminder")

        next_allowed_at = sent_at + timedelta(hours=cooldown_hours) if sent_at else now
        raise ValidationError(
            ErrorCode.REMINDER_COOLDOWN_ACTIVE,
            f"A reminder was already sent in the last {cooldown_hours} hours. "
            f"You can send another after {next_allowed_at.isoformat()}.",
            details={
                "reminder_sent_at": sent_at.isoformat() if sent_at else None,
                "next_allowed_at": next_allowed_at.isoformat(),
            },
        )

    # The cooldown slot is ours. Make it durable before talking to SMTP.
    session.commit()

    owner = expense.owner
    context = payment_reminder_context(
        participant_name=display_name(participant.user),
        owner_name=display_name(owner),
        description=expense_description(expense),
        amount=participant.share_amount,
        currency=expense.currency,
    )
    try:
        delivery = notifier.send(participant.user.email, context)
        delivered, error = delivery.success, delivery.error
    except Exception as exc:  # noqa: BLE001
        delivered, error = False, str(exc)

    if not delivered:
        session.execute(
            update(ExpenseParticipant)
            .where(
                ExpenseParticipant.id == participant_id,
                ExpenseParticipant.reminder_sent_at == now,
            )
            .values(reminder_sent_at=previous_sent_at)
            .execution_options(synchronize_session=False)
        )
        session.commit()
        logger.warning(
            "Reminder email for participant %s failed, cooldown reverted: %s",
            participant_id,
            error,
        )
        raise NotificationError(
            ErrorCode.NOTIFICATION_FAILED,
            "Failed to send reminder email. Please try again.",
            details={"participant_id": participant_id},
        )

    logger.info("Reminder sent for participant %s by owner %s", participant_id, acting_user_id)
    return {
        "id": participant_id,
        "reminder_sent_at": now,
    }


def settle_all_with_user(
        acting_user_id: int,
        counterparty_id: int,
        currency: str,
        session: Session,
) -> dict:
    """
    Marks every PENDING share `counterparty_id` owes `acting_user_id` in
    `currency` as PAID, in one conditional bulk UPDATE.

    Only the owner direction is settled: confirming receipt is the owner's
    call, exactly as in mark_paid.

    Raises:
        NO_PENDING_SHARES (422) when nothing matched.
    """
    owned_live_expenses = (
        select(SharedExpense.id)
        .where(
            SharedExpense.owner_id == acting_user_id,
            SharedExpense.currency == currency,
            SharedExpense.deleted_at.is_(None),
        )
    )

    paid_at = _utcnow()
    result = session.execute(
        update(ExpenseParticipant)
        .where(
            ExpenseParticipant.user_id == counterparty_id,
            ExpenseParticipant.status == ParticipantStatus.PENDING,
            ExpenseParticipant.shared_expense_id.in_(owned_live_expenses),
        )
        .values(status=ParticipantStatus.PAID, paid_at=paid_at)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        raise ValidationError(
            ErrorCode.NO_PENDING_SHARES,
            "No pending shares to settle with this user.",
            details={"user_id": counterparty_id, "currency": getattr(currency, "value", currency)},
        )

    logger.info(
        "Settled %d share(s) owed by user %s to user %s in %s",
        result.rowcount,
        counterparty_id,
        acting_user_id,
        getattr(currency, "value", currency),
    )
    return {
        "settled_count": result.rowcount,
        "paid_at": paid_at,
    }
