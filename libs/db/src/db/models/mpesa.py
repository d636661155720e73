from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# ---------------------------
# Core: mpesa_transactions
# ---------------------------


class MpesaTransactionRow(Base):
    __tablename__ = "mpesa_transactions"

    # Receipt code is the dedup key; inserts use ON CONFLICT DO NOTHING on it.
    receipt_number: Mapped[str] = mapped_column(String, primary_key=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    direction: Mapped[str] = mapped_column(String(8), nullable=False)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    merchant_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Upper-cased, whitespace-collapsed merchant name; matches
    # `mpesa_analysis.aggregates.normalize_merchant_key`.
    merchant_key: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    phone_number: Mapped[str | None] = mapped_column(String, nullable=True)
    paybill_number: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    till_number: Mapped[str | None] = mapped_column(String, nullable=True)
    account_number: Mapped[str | None] = mapped_column(String, nullable=True)
    agent_number: Mapped[str | None] = mapped_column(String, nullable=True)
    transaction_cost: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    new_balance: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    # Sorted list of "CATEGORY:KEYWORD" tags.
    clues: Mapped[list[Any]] = mapped_column(JSON, nullable=False)
    occurred_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    raw_body: Mapped[str | None] = mapped_column(Text, nullable=True)
    parser_version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("direction in ('INCOME','EXPENSE')", name="ck_mpesa_tx_direction"),
        CheckConstraint(
            "kind in ('SEND_MONEY','RECEIVE_MONEY','PAYBILL','TILL',"
            "'AIRTIME','WITHDRAW','DEPOSIT')",
            name="ck_mpesa_tx_kind",
        ),
        CheckConstraint("amount >= 0", name="ck_mpesa_tx_amount_non_negative"),
    )


# ---------------------------
# User overrides: mpesa_category_mappings
# ---------------------------


class MpesaCategoryMapping(Base):
    __tablename__ = "mpesa_category_mappings"

    # Normalized merchant key or a receipt number, depending on key_kind.
    mapping_key: Mapped[str] = mapped_column(String, primary_key=True)
    key_kind: Mapped[str] = mapped_column(String(16), primary_key=True)
    category_name: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("key_kind in ('merchant','receipt')", name="ck_mpesa_mapping_key_kind"),
    )


__all__ = [
    "Base",
    "MpesaCategoryMapping",
    "MpesaTransactionRow",
]
