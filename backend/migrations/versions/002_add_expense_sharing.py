"""Add expense sharing: shared_expenses and expense_participants.

Revision: 002_add_expense_sharing
Created:  2026-10-18

Append-only:
  This file must NEVER be edited after it has been applied to any database.

Key constraints:
  uq_shared_expenses_live_transaction
      Partial UNIQUE(transaction_id) WHERE deleted_at IS NULL. A transaction
      has at most one live share; a cancelled share can be recreated. The
      sharing service converts a violation into ALREADY_SHARED (409).
  uq_expense_participants_expense_user
      UNIQUE(shared_expense_id, user_id). One row per participant per share.
  ck_expense_participants_share_nonnegative
      share_amount >= 0.

ON DELETE policies:
  shared_expenses.transaction_id          → RESTRICT
  shared_expenses.owner_id                → RESTRICT
  expense_participants.shared_expense_id  → CASCADE   (rows owned by the share)
  expense_participants.user_id            → RESTRICT
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "002_add_expense_sharing"
down_revision: str | None = "001_core_tables"
branch_labels: tuple | None = None
depends_on: tuple | None = None


def upgrade() -> None:

    # ── shared_expenses ────────────────────────────────────────────────────
    op.create_table(
        "shared_expenses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "transaction_id",
            sa.Integer(),
            sa.ForeignKey(
                "transactions.id",
                ondelete="RESTRICT",
                name="fk_shared_expenses_transaction",
            ),
            nullable=False,
        ),
        sa.Column(
            "owner_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_shared_expenses_owner"),
            nullable=False,
        ),
        sa.Column("split_type", sa.String(16), nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("description", sa.String(240), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_shared_expenses"),
        sa.CheckConstraint("total_amount > 0", name="ck_shared_expenses_total_positive"),
        sa.CheckConstraint(
            "split_type IN ('EQUAL', 'PERCENTAGE', 'FIXED')",
            name="ck_shared_expenses_split_type",
        ),
        sa.CheckConstraint(
            "currency IN ('USD', 'EUR', 'ILS')",
            name="ck_shared_expenses_currency",
        ),
    )
    op.create_index(
        "uq_shared_expenses_live_transaction",
        "shared_expenses",
        ["transaction_id"],
        unique=True,
        postgresql_where=sa.text("deleted_at IS NULL"),
    )
    op.create_index("idx_shared_expenses_owner", "shared_expenses", ["owner_id"])

    # ── expense_participants ───────────────────────────────────────────────
    op.create_table(
        "expense_participants",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "shared_expense_id",
            sa.Integer(),
            sa.ForeignKey(
                "shared_expenses.id",
                ondelete="CASCADE",
                name="fk_expense_participants_shared_expense",
            ),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_expense_participants_user"),
            nullable=False,
        ),
        sa.Column("share_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("share_percentage", sa.Numeric(5, 2), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("declined_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("decline_reason", sa.String(500), nullable=True),
        sa.Column("reminder_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_expense_participants"),
        sa.UniqueConstraint(
            "shared_expense_id",
            "user_id",
            name="uq_expense_participants_expense_user",
        ),
        sa.CheckConstraint(
            "share_amount >= 0",
            name="ck_expense_participants_share_nonnegative",
        ),
        sa.CheckConstraint(
            "status IN ('PENDING', 'PAID', 'DECLINED')",
            name="ck_expense_participants_status",
        ),
    )
    op.create_index("ix_expense_participants_user_id", "expense_participants", ["user_id"])
    op.create_index("ix_expense_participants_status", "expense_participants", ["status"])


def downgrade() -> None:
    op.drop_index("ix_expense_participants_status", table_name="expense_participants")
    op.drop_index("ix_expense_participants_user_id", table_name="expense_participants")
    op.drop_table("expense_participants")
    op.drop_index("idx_shared_expenses_owner", table_name="shared_expenses")
    op.drop_index("uq_shared_expenses_live_transaction", table_name="shared_expenses")
    op.drop_table("shared_expenses")
