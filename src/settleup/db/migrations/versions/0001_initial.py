"""initial schema

Revision ID: 0001
Revises: 
Create Date: 2026-10-19 00:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "groups",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="EUR"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "participants",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("group_id", sa.BigInteger(), sa.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
    )
    op.create_index("idx_participants_group", "participants", ["group_id"])

    op.create_table(
        "expenses",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("group_id", sa.BigInteger(), sa.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("payer_id", sa.BigInteger(), sa.ForeignKey("participants.id"), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("split_type", sa.Text(), nullable=False, server_default="equal"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("amount_cents > 0", name="expenses_amount_positive"),
        sa.CheckConstraint(
            "split_type in ('equal','amount','share','percent')",
            name="expenses_split_type_check",
        ),
    )
    op.create_index("idx_expenses_group", "expenses", ["group_id"])

    op.create_table(
        "splits",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("expense_id", sa.BigInteger(), sa.ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("participant_id", sa.BigInteger(), sa.ForeignKey("participants.id"), nullable=False),
        sa.Column("owed_cents", sa.BigInteger(), nullable=False),
        sa.CheckConstraint("owed_cents >= 0", name="splits_owed_non_negative"),
        sa.UniqueConstraint("expense_id", "participant_id", name="splits_expense_participant_key"),
    )

    op.create_table(
        "payments",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("group_id", sa.BigInteger(), sa.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("payer_id", sa.BigInteger(), sa.ForeignKey("participants.id"), nullable=False),
        sa.Column("payee_id", sa.BigInteger(), sa.ForeignKey("participants.id"), nullable=False),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("amount_cents > 0", name="payments_amount_positive"),
        sa.CheckConstraint("payer_id <> payee_id", name="payments_distinct_parties"),
    )
    op.create_index("idx_payments_group", "payments", ["group_id"])

    op.create_table(
        "debts",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("group_id", sa.BigInteger(), sa.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("lender_id", sa.BigInteger(), sa.ForeignKey("participants.id"), nullable=False),
        sa.Column("debtor_id", sa.BigInteger(), sa.ForeignKey("participants.id"), nullable=False),
        sa.Column("debt_cents", sa.BigInteger(), nullable=False),
        sa.Column("paid_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.CheckConstraint("lender_id <> debtor_id", name="debts_distinct_parties"),
        sa.CheckConstraint("paid_cents >= 0", name="debts_paid_non_negative"),
        sa.UniqueConstraint("group_id", "lender_id", "debtor_id", name="debts_group_pair_key"),
    )


def downgrade() -> None:
    op.drop_table("debts")
    op.drop_index("idx_payments_group", table_name="payments")
    op.drop_table("payments")
    op.drop_table("splits")
    op.drop_index("idx_expenses_group", table_name="expenses")
    op.drop_table("expenses")
    op.drop_index("idx_participants_group", table_name="participants")
    op.drop_table("participants")
    op.drop_table("groups")
