"""
models/shared_expense.py: SharedExpense table definition.

One row binds one EXPENSE transaction to the set of participants it is
split with. No business logic. No imports from services or routes.

Key design points:
  - `total_amount` and `currency` are snapshots of the transaction at share
    time. Editing the transaction later does not move existing shares.
  - `deleted_at` is NULL for live shares. Cancelling sets it; participant
    rows are kept as historical record.
  - A transaction is shared at most once among LIVE shares. The partial
    unique index below enforces this at the DB level, so a cancelled share
    can be recreated (cancel-and-recreate is the correction path).
  - Rows are immutable after creation apart from `deleted_at`.
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
    Index,
    Numeric,
    String,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db
from backend.app.models.transaction import Currency, enum_values


class SplitType(str, enum.Enum):
    EQUAL      = "EQUAL"
    PERCENTAGE = "PERCENTAGE"
    FIXED      = "FIXED"


class SharedExpense(db.Model):
    __tablename__ = "shared_expenses"

    __table_args__ = (
        CheckConstraint("total_amount > 0", name="ck_shared_expenses_total_positive"),

        # At most one live share per transaction. The sharing service checks
        # this first (ALREADY_SHARED, 409); the index catches the concurrent
        # case where two requests pass the check at the same time.
        Index(
            "uq_shared_expenses_live_transaction",
            "transaction_id",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
        Index("idx_shared_expenses_owner", "owner_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    transaction_id: Mapped[int] = mapped_column(
        ForeignKey("transactions.id", ondelete="RESTRICT"),
        nullable=False,
    )

    owner_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    split_type: Mapped[SplitType] = mapped_column(
        Enum(
            SplitType,
            name="split_type_enum",
            native_enum=False,
            length=16,
            values_callable=enum_values,
        ),
        nullable=False,
        default=SplitType.EQUAL,
    )

    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    currency: Mapped[Currency] = mapped_column(
        Enum(
            Currency,
            name="currency_enum",
            native_enum=False,
            length=3,
            values_callable=enum_values,
        ),
        nullable=False,
    )

    # Optional override of the transaction description.
    description: Mapped[str | None] = mapped_column(
        String(240),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    transaction: Mapped["Transaction"] = relationship(  # noqa: F821
        "Transaction",
    )

    owner: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[owner_id],
    )

    # Participants are created in the same DB transaction as their parent
    # and are never created independently.
    participants: Mapped[list["ExpenseParticipant"]] = relationship(  # noqa: F821
        "ExpenseParticipant",
        back_populates="shared_expense",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ExpenseParticipant.id",
    )

    @property
    def is_cancelled(self) -> bool:
        """True if the owner has cancelled this share."""
        return self.deleted_at is not None

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<SharedExpense id={self.id} "
            f"transaction_id={self.transaction_id} "
            f"owner_id={self.owner_id} "
            f"split={self.split_type} "
            f"total={self.total_amount} {self.currency}>"
        )
