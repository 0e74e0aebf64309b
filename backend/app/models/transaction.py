"""
models/transaction.py: Transaction table definition.

Transactions are created by the ledger side of Balance Beacon; the sharing
engine references them but never writes to them. Only the columns the
engine reads are mapped here.

Key design points:
  - `amount` uses Numeric(12, 2), never Float.
  - `deleted_at` is NULL for live transactions. A soft-deleted transaction
    cannot be shared.
  - TransactionType and Currency are Python enums so schemas and services
    can import them without repeating string literals.
"""

from __future__ import annotations

import enum
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db


# ── Enum Definitions ───────────────────────────────────────────────────────
# Defined here so they can be imported by schemas and services without
# pulling in the full model. Do not duplicate these as plain string constants
# anywhere else in the codebase.

class TransactionType(str, enum.Enum):
    INCOME  = "INCOME"
    EXPENSE = "EXPENSE"


class Currency(str, enum.Enum):
    USD = "USD"
    EUR = "EUR"
    ILS = "ILS"


def enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Ensure SQLAlchemy stores enum values (e.g., 'EXPENSE'), not member names."""
    return [member.value for member in enum_cls]


# ── Model ──────────────────────────────────────────────────────────────────

class Transaction(db.Model):
    __tablename__ = "transactions"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    # ON DELETE RESTRICT: cannot delete an account that has transactions.
    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Enum columns are stored as VARCHAR + CHECK (native_enum=False) so the
    # same metadata works on PostgreSQL and on the SQLite test database.
    type: Mapped[TransactionType] = mapped_column(
        Enum(
            TransactionType,
            name="transaction_type_enum",
            native_enum=False,
            length=16,
            values_callable=enum_values,
        ),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
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
        default=Currency.USD,
        server_default=Currency.USD.value,
    )

    description: Mapped[str | None] = mapped_column(
        String(240),
        nullable=True,
    )

    # Attribute renamed so it does not shadow datetime.date in annotations.
    occurred_on: Mapped[date] = mapped_column(
        "date",
        Date,
        nullable=False,
        server_default=func.current_date(),
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

    account: Mapped["Account"] = relationship(  # noqa: F821
        "Account",
        back_populates="transactions",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Transaction id={self.id} "
            f"account_id={self.account_id} "
            f"type={self.type} "
            f"amount={self.amount} {self.currency}>"
        )
