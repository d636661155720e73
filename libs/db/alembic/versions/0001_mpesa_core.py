# ruff: noqa: I001
"""M-Pesa transactions and category mapping tables.

Revision ID: 0001_mpesa_core
Revises: None
Create Date: 2026-10-19
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_mpesa_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "mpesa_transactions",
        sa.Column("receipt_number", sa.String(), primary_key=True),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("direction", sa.String(length=8), nullable=False),
        sa.Column("kind", sa.String(length=16), nullable=False),
        sa.Column("merchant_name", sa.Text(), nullable=True),
        sa.Column("merchant_key", sa.Text(), nullable=True),
        sa.Column("phone_number", sa.String(), nullable=True),
        sa.Column("paybill_number", sa.String(), nullable=True),
        sa.Column("till_number", sa.String(), nullable=True),
        sa.Column("account_number", sa.String(), nullable=True),
        sa.Column("agent_number", sa.String(), nullable=True),
        sa.Column("transaction_cost", sa.Numeric(18, 2), nullable=True),
        sa.Column("new_balance", sa.Numeric(18, 2), nullable=True),
        sa.Column("clues", sa.JSON(), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("raw_body", sa.Text(), nullable=True),
        sa.Column("parser_version", sa.Integer(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("direction in ('INCOME','EXPENSE')", name="ck_mpesa_tx_direction"),
        sa.CheckConstraint(
            "kind in ('SEND_MONEY','RECEIVE_MONEY','PAYBILL','TILL',"
            "'AIRTIME','WITHDRAW','DEPOSIT')",
            name="ck_mpesa_tx_kind",
        ),
        sa.CheckConstraint("amount >= 0", name="ck_mpesa_tx_amount_non_negative"),
    )
    op.create_index(
        "ix_mpesa_transactions_merchant_key", "mpesa_transactions", ["merchant_key"]
    )
    op.create_index(
        "ix_mpesa_transactions_paybill_number", "mpesa_transactions", ["paybill_number"]
    )
    op.create_index(
        "ix_mpesa_transactions_occurred_at", "mpesa_transactions", ["occurred_at"]
    )

    op.create_table(
        "mpesa_category_mappings",
        sa.Column("mapping_key", sa.String(), nullable=False),
        sa.Column("key_kind", sa.String(length=16), nullable=False),
        sa.Column("category_name", sa.String(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("mapping_key", "key_kind"),
        sa.CheckConstraint(
            "key_kind in ('merchant','receipt')", name="ck_mpesa_mapping_key_kind"
        ),
    )


def downgrade() -> None:
    op.drop_table("mpesa_category_mappings")
    op.drop_index("ix_mpesa_transactions_occurred_at", table_name="mpesa_transactions")
    op.drop_index("ix_mpesa_transactions_paybill_number", table_name="mpesa_transactions")
    op.drop_index("ix_mpesa_transactions_merchant_key", table_name="mpesa_transactions")
    op.drop_table("mpesa_transactions")
