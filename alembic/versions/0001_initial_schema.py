"""Initial schema: users, accounts, categories, transactions, recurring rules

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TXN_TYPES = ("INCOME", "EXPENSE")
FREQUENCIES = ("DAILY", "WEEKLY", "MONTHLY", "YEARLY")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "user",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=320), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "userprofile",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False, unique=True),
        sa.Column("display_name", sa.String(length=100), nullable=True),
        sa.Column("base_currency", sa.String(length=3), nullable=True),
        sa.Column("locale", sa.String(length=32), nullable=True),
        sa.Column("timezone", sa.String(length=64), nullable=True),
        sa.Column("notifications_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notification_token", sa.String(length=255), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "account",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("current_balance", sa.Numeric(18, 4), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "name", name="uq_account_name"),
    )

    op.create_table(
        "categorygroup",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("type", sa.String(length=1), nullable=False),
        sa.Column("code_gg", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("type", "code_gg", name="uq_group_code"),
    )

    op.create_table(
        "category",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("group_id", sa.Integer(), sa.ForeignKey("categorygroup.id"), nullable=False),
        sa.Column("code_cc", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("full_code", sa.String(length=5), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("group_id", "code_cc", name="uq_category_cc"),
        sa.UniqueConstraint("full_code", name="uq_category_full_code"),
    )

    op.create_table(
        "recurringrule",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("account_id", sa.Integer(), sa.ForeignKey("account.id"), nullable=False),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("category.id"), nullable=True),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("amount", sa.Numeric(18, 4), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("type", sa.Enum(*TXN_TYPES, name="txntype"), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("frequency", sa.Enum(*FREQUENCIES, name="recurringfrequency"), nullable=False),
        sa.Column("frequency_interval", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("day_of_week", sa.Integer(), nullable=True),
        sa.Column("day_of_month", sa.Integer(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("total_occurrences", sa.Integer(), nullable=True),
        sa.Column("is_installment", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("next_due_date", sa.Date(), nullable=False),
        sa.Column("occurrences_generated", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_first_occurrence_generated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("last_processed_at", sa.DateTime(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("processing_key", sa.String(length=64), nullable=True),
        sa.Column("processing_expires_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("frequency_interval >= 1", name="ck_recurring_interval_positive"),
        sa.CheckConstraint("occurrences_generated >= 0", name="ck_recurring_occurrences_nonneg"),
        sa.CheckConstraint("next_due_date >= start_date", name="ck_recurring_due_after_start"),
        sa.CheckConstraint(
            "day_of_week IS NULL OR (day_of_week >= 0 AND day_of_week <= 6)",
            name="ck_recurring_day_of_week",
        ),
        sa.CheckConstraint(
            "day_of_month IS NULL OR (day_of_month >= 1 AND day_of_month <= 31)",
            name="ck_recurring_day_of_month",
        ),
    )
    op.create_index("ix_recurring_due", "recurringrule", ["is_active", "next_due_date"])

    op.create_table(
        "transaction",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("account_id", sa.Integer(), sa.ForeignKey("account.id"), nullable=False),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("category.id"), nullable=True),
        sa.Column("occurred_at", sa.Date(), nullable=False),
        sa.Column("type", sa.Enum(*TXN_TYPES, name="txn_type"), nullable=False),
        sa.Column("amount", sa.Numeric(18, 4), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("external_id", sa.String(length=64), nullable=True),
        sa.Column("is_recurring_instance", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("recurring_rule_id", sa.Integer(), sa.ForeignKey("recurringrule.id"), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "external_id", name="uq_txn_external_id"),
        sa.CheckConstraint(
            "recurring_rule_id IS NULL OR is_recurring_instance = 1",
            name="ck_txn_recurring_tag",
        ),
    )
    op.create_index("ix_txn_user_date", "transaction", ["user_id", "occurred_at"])
    op.create_index("ix_txn_recurring_rule", "transaction", ["recurring_rule_id"])


def downgrade() -> None:
    op.drop_index("ix_txn_recurring_rule", table_name="transaction")
    op.drop_index("ix_txn_user_date", table_name="transaction")
    op.drop_table("transaction")
    op.drop_index("ix_recurring_due", table_name="recurringrule")
    op.drop_table("recurringrule")
    op.drop_table("category")
    op.drop_table("categorygroup")
    op.drop_table("account")
    op.drop_table("userprofile")
    op.drop_table("user")
