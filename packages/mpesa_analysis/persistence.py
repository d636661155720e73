# ruff: noqa: I001
"""Persistence integration for mpesa_analysis.

Functions here read and write transactions and category mappings in the
shared database owned by ``libs/db``. They rely on the SQLAlchemy ORM models
in ``db.models.mpesa`` and take an active ``Session``; committing is the
caller's job (see ``db.client.session_scope``).

Scope:
- Insert-or-ignore transactions into ``mpesa_transactions`` keyed by receipt.
- Read transactions back as :class:`~mpesa_analysis.models.Transaction`.
- Read/write user category overrides in ``mpesa_category_mappings``.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from db.models.mpesa import MpesaCategoryMapping, MpesaTransactionRow
from .aggregates import normalize_merchant_key
from .models import Direction, Transaction, TransactionKind, quantize_amount
from .parser import PARSER_VERSION

MAPPING_KIND_MERCHANT = "merchant"
MAPPING_KIND_RECEIPT = "receipt"

# Rows per INSERT statement; keeps bound parameters under SQLite's limit.
_INSERT_CHUNK = 500


def _insert_for(session: Session) -> Callable[..., Any]:
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise RuntimeError(f"unsupported database dialect for upserts: {dialect}")


def _to_utc(ts: datetime | None) -> datetime | None:
    if ts is None:
        return None
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)


def _to_decimal_2(raw: Any) -> Decimal | None:
    if raw is None:
        return None
    return quantize_amount(Decimal(str(raw)))


def transaction_to_values(
    tx: Transaction, *, parser_version: int = PARSER_VERSION
) -> dict[str, Any]:
    """Column values for one ``mpesa_transactions`` row."""

    return {
        "receipt_number": tx.receipt_number,
        "amount": tx.amount,
        "direction": tx.direction.value,
        "kind": tx.kind.value,
        "merchant_name": tx.merchant_name,
        "merchant_key": normalize_merchant_key(tx.merchant_name),
        "phone_number": tx.phone_number,
        "paybill_number": tx.paybill_number,
        "till_number": tx.till_number,
        "account_number": tx.account_number,
        "agent_number": tx.agent_number,
        "transaction_cost": tx.transaction_cost,
        "new_balance": tx.new_balance,
        "clues": sorted(tx.clues),
        "occurred_at": _to_utc(tx.timestamp),
        "raw_body": tx.raw_body,
        "parser_version": parser_version,
    }


def row_to_transaction(row: MpesaTransactionRow) -> Transaction:
    # SQLite hands back naive datetimes; values are written in UTC.
    return Transaction(
        receipt_number=row.receipt_number,
        amount=_to_decimal_2(row.amount) or Decimal("0.00"),
        direction=Direction(row.direction),
        kind=TransactionKind(row.kind),
        merchant_name=row.merchant_name,
        phone_number=row.phone_number,
        paybill_number=row.paybill_number,
        till_number=row.till_number,
        account_number=row.account_number,
        agent_number=row.agent_number,
        transaction_cost=_to_decimal_2(row.transaction_cost),
        new_balance=_to_decimal_2(row.new_balance),
        clues=frozenset(row.clues or ()),
        timestamp=_to_utc(row.occurred_at),
        raw_body=row.raw_body,
    )


# ---- Transactions ------------------------------------------------------------


def count_transactions(session: Session) -> int:
    return int(session.scalar(select(func.count()).select_from(MpesaTransactionRow)) or 0)


def upsert_transactions(
    session: Session,
    transactions: Iterable[Transaction],
    *,
    parser_version: int = PARSER_VERSION,
) -> int:
    """Insert transactions whose receipt is not stored yet; return how many were new.

    Existing rows are never modified (``ON CONFLICT (receipt_number) DO
    NOTHING``), so re-running on the same messages is a no-op. Duplicate
    receipts within ``transactions`` keep the first occurrence.

    The returned count is measured as rows-after minus rows-before, which is
    exact only while this session is the sole writer.
    """

    payloads: dict[str, dict[str, Any]] = {}
    for tx in transactions:
        payloads.setdefault(
            tx.receipt_number, transaction_to_values(tx, parser_version=parser_version)
        )
    if not payloads:
        return 0

    insert = _insert_for(session)
    before = count_transactions(session)
    values = list(payloads.values())
    for start in range(0, len(values), _INSERT_CHUNK):
        stmt = insert(MpesaTransactionRow).values(values[start : start + _INSERT_CHUNK])
        stmt = stmt.on_conflict_do_nothing(index_elements=[MpesaTransactionRow.receipt_number])
        session.execute(stmt)
    session.flush()
    return count_transactions(session) - before


def _chronological(stmt):
    # Undated rows last; receipt number keeps ties stable.
    return stmt.order_by(
        MpesaTransactionRow.occurred_at.is_(None),
        MpesaTransactionRow.occurred_at,
        MpesaTransactionRow.receipt_number,
    )


def query_transactions(session: Session) -> list[Transaction]:
    """All stored transactions, oldest first."""

    rows = session.scalars(_chronological(select(MpesaTransactionRow))).all()
    return [row_to_transaction(r) for r in rows]


def query_by_merchant(
    session: Session, merchant_name: str, *, limit: int = 20
) -> list[Transaction]:
    """Most recent transactions for one merchant (normalized name match)."""

    if limit < 1:
        raise ValueError("limit must be >= 1")
    key = normalize_merchant_key(merchant_name)
    if key is None:
        return []
    stmt = (
        select(MpesaTransactionRow)
        .where(MpesaTransactionRow.merchant_key == key)
        .order_by(
            MpesaTransactionRow.occurred_at.is_(None),
            MpesaTransactionRow.occurred_at.desc(),
            MpesaTransactionRow.receipt_number,
        )
        .limit(limit)
    )
    return [row_to_transaction(r) for r in session.scalars(stmt).all()]


def delete_all_transactions(session: Session) -> int:
    """Delete every stored transaction; return the number of rows removed."""

    result = session.execute(delete(MpesaTransactionRow))
    return int(result.rowcount or 0)


# ---- Category mappings -------------------------------------------------------


def get_mapped_keys(session: Session, *, key_kind: str) -> set[str]:
    stmt = select(MpesaCategoryMapping.mapping_key).where(
        MpesaCategoryMapping.key_kind == key_kind
    )
    return set(session.scalars(stmt).all())


def get_mapping_table(session: Session, *, key_kind: str) -> dict[str, str]:
    """``mapping_key -> category_name`` for every mapping of one key kind."""

    stmt = select(MpesaCategoryMapping.mapping_key, MpesaCategoryMapping.category_name).where(
        MpesaCategoryMapping.key_kind == key_kind
    )
    return {key: category for key, category in session.execute(stmt).all()}


def set_category_mapping(
    session: Session,
    *,
    mapping_key: str,
    key_kind: str,
    category_name: str,
) -> None:
    """Create or replace one mapping override.

    Merchant keys are stored normalized so lookups match
    :func:`~mpesa_analysis.aggregates.normalize_merchant_key`.
    """

    if key_kind not in (MAPPING_KIND_MERCHANT, MAPPING_KIND_RECEIPT):
        raise ValueError(f"unknown mapping key kind: {key_kind!r}")
    key = (
        normalize_merchant_key(mapping_key)
        if key_kind == MAPPING_KIND_MERCHANT
        else mapping_key.strip()
    )
    category = category_name.strip()
    if not key:
        raise ValueError("mapping key must be non-empty")
    if not category:
        raise ValueError("category_name must be non-empty")

    now = func.now()
    insert = _insert_for(session)
    stmt = insert(MpesaCategoryMapping).values(
        mapping_key=key, key_kind=key_kind, category_name=category
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[MpesaCategoryMapping.mapping_key, MpesaCategoryMapping.key_kind],
        set_={"category_name": stmt.excluded.category_name, "updated_at": now},
    )
    session.execute(stmt)


__all__ = [
    "MAPPING_KIND_MERCHANT",
    "MAPPING_KIND_RECEIPT",
    "count_transactions",
    "delete_all_transactions",
    "get_mapped_keys",
    "get_mapping_table",
    "query_by_merchant",
    "query_transactions",
    "row_to_transaction",
    "set_category_mapping",
    "transaction_to_values",
    "upsert_transactions",
]
