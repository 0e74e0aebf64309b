"""
models/expense_participant.py: ExpenseParticipant table definition.

One row per non-owner party to a SharedExpense.

Key design points:
  - UNIQUE(shared_expense_id, user_id): a user appears at most once per share.
  - `status` moves PENDING -> PAID or PENDING -> DECLINED exactly once.
    The participant service performs every transition as a conditional
    UPDATE ... WHERE status = 'PENDING'; nothing here enforces it.
  - `reminder_sent_at` is the per-row cooldown tracker for payment reminders.
  - `share_percentage` is only set for PERCENTAGE splits.
"""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db
from backend.app.models.transaction import enum_values


class ParticipantStatus(str, enum.Enum):
    PENDING  = "PENDING"
    PAID     = "PAID"
    DECLINED = "DECLINED"


class ExpenseParticipant(db.Model):
    __tablename__ = "expense_participants"

    __table_args__ = (
        UniqueConstraint(
            "shared_expense_id",
            "user_id",
            name="uq_expense_participants_expense_user",
        ),
        CheckConstraint(
            "share_amount >= 0",
            name="ck_expense_participants_share_nonnegative",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    # ON DELETE CASCADE: participant rows are owned by their shared expense.
    shared_expense_id: Mapped[int] = mapped_column(
        ForeignKey("shared_expenses.id", ondelete="CASCADE"),
        nullable=False,
    )

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    share_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    share_percentage: Mapped[Decimal | None] = mapped_column(
        Numeric(5, 2),
        nullable=True,
    )

    status: Mapped[ParticipantStatus] = mapped_column(
        Enum(
            ParticipantStatus,
            name="participant_status_enum",
            native_enum=False,
            length=16,
            values_callable=enum_values,
        ),
        nullable=False,
        default=ParticipantStatus.PENDING,
        server_default=ParticipantStatus.PENDING.value,
        index=True,
    )

    paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    declined_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    decline_reason: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    reminder_sent_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    shared_expense: Mapped["SharedExpense"] = relationship(  # noqa: F821
        "SharedExpense",
        back_populates="participants",
    )

    user: Mapped["User"] = relationship(  # noqa: F821
        "User",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<ExpenseParticipant id={self.id} "
            f"shared_expense_id={self.shared_expense_id} "
            f"user_id={self.user_id} "
            f"amount={self.share_amount} "
            f"status={self.status}>"
        )
