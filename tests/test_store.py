# ruff: noqa: E402, I001
from __future__ import annotations

import sys
from decimal import Decimal
from pathlib import Path

import pytest

# Make sure the workspace `packages/` dir is on sys.path so `mpesa_analysis` is importable
_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]

from mpesa_analysis.categorize import resolve_category
from mpesa_analysis.models import Direction, TransactionKind
from mpesa_analysis.parser import parse_message
from mpesa_analysis.store import (
    CategoryMappingStore,
    SqlCategoryMappingStore,
    SqlTransactionStore,
    TransactionStore,
)

from tests.helpers.db import bootstrap_sqlite_db, stored_receipts
from tests.helpers.factories import at, make_tx

NAMED_PAYBILL = (
    "QK87ABCD15 Confirmed. Ksh500.00 paid to KPLC PREPAID. Paybill 888880, "
    "account number 123456 on 21/1/26 at 8:00 PM."
)


@pytest.fixture()
def db_url(tmp_path: Path) -> str:
    return bootstrap_sqlite_db(tmp_path / "mpesa.sqlite")


def test_sql_stores_satisfy_protocols(db_url: str) -> None:
    assert isinstance(SqlTransactionStore(database_url=db_url), TransactionStore)
    assert isinstance(SqlCategoryMappingStore(database_url=db_url), CategoryMappingStore)


def test_upsert_is_idempotent_on_receipt(db_url: str) -> None:
    store = SqlTransactionStore(database_url=db_url)
    tx = make_tx("QS01AAAAAA", 100, merchant="NAIVAS")
    assert store.upsert(tx) is True
    assert store.upsert(tx) is False
    # A second record with the same receipt does not overwrite the first.
    assert store.upsert(make_tx("QS01AAAAAA", 999, merchant="OTHER")) is False
    assert store.count() == 1
    (row,) = store.query_all()
    assert row.amount == Decimal("100.00")
    assert row.merchant_name == "NAIVAS"


def test_upsert_many_counts_only_new_rows(db_url: str) -> None:
    store = SqlTransactionStore(database_url=db_url)
    batch = [make_tx(f"QS0{i}AAAAAA", 10, merchant="X") for i in range(4)]
    assert store.upsert_many(batch[:2]) == 2
    # In-batch duplicates collapse to the first occurrence.
    assert store.upsert_many(batch + batch) == 2
    assert store.upsert_many([]) == 0
    assert stored_receipts(db_url) == [f"QS0{i}AAAAAA" for i in range(4)]


def test_round_trip_preserves_parsed_fields(db_url: str) -> None:
    store = SqlTransactionStore(database_url=db_url)
    tx = parse_message(NAMED_PAYBILL)
    assert tx is not None
    store.upsert(tx)
    (back,) = store.query_all()
    assert back.receipt_number == tx.receipt_number
    assert back.amount == tx.amount
    assert back.direction is Direction.EXPENSE
    assert back.kind is TransactionKind.PAYBILL
    assert back.merchant_name == "KPLC PREPAID"
    assert back.paybill_number == "888880"
    assert back.account_number == "123456"
    assert back.clues == tx.clues
    assert back.raw_body == NAMED_PAYBILL
    assert back.timestamp is not None and tx.timestamp is not None
    assert back.timestamp == tx.timestamp  # same instant, UTC on the way back
    assert back.timestamp.utcoffset() is not None


def test_query_all_is_oldest_first_with_undated_last(db_url: str) -> None:
    store = SqlTransactionStore(database_url=db_url)
    store.upsert_many(
        [
            make_tx("QO03AAAAAA", 1, when=at(2026, 3)),
            make_tx("QO00AAAAAA", 1),
            make_tx("QO01AAAAAA", 1, when=at(2026, 1)),
        ]
    )
    assert [t.receipt_number for t in store.query_all()] == [
        "QO01AAAAAA",
        "QO03AAAAAA",
        "QO00AAAAAA",
    ]


def test_query_by_merchant_normalizes_and_limits(db_url: str) -> None:
    store = SqlTransactionStore(database_url=db_url)
    store.upsert_many(
        [
            make_tx(f"QM0{i}AAAAAA", 10, merchant="Java  House", when=at(2026, 1, i + 1))
            for i in range(4)
        ]
        + [make_tx("QM9ZAAAAAA", 10, merchant="KFC")]
    )
    recent = store.query_by_merchant("java house", limit=2)
    assert [t.receipt_number for t in recent] == ["QM03AAAAAA", "QM02AAAAAA"]
    assert store.query_by_merchant("nobody") == []
    assert store.query_by_merchant("   ") == []


def test_delete_all(db_url: str) -> None:
    store = SqlTransactionStore(database_url=db_url)
    store.upsert_many([make_tx(f"QD0{i}AAAAAA", 10) for i in range(3)])
    assert store.delete_all() == 3
    assert store.count() == 0
    assert store.query_all() == []


def test_category_mappings_are_normalized_and_upserted(db_url: str) -> None:
    mappings = SqlCategoryMappingStore(database_url=db_url)
    mappings.set_mapping("  java   house ", "Food")
    mappings.set_mapping("JAVA HOUSE", "Coffee")
    mappings.set_receipt_mapping("QK87ABCD15", "Utilities")
    assert mappings.get_mapped_merchants() == {"JAVA HOUSE"}
    assert mappings.get_mapped_receipts() == {"QK87ABCD15"}


def test_category_mapping_rejects_blank_values(db_url: str) -> None:
    mappings = SqlCategoryMappingStore(database_url=db_url)
    with pytest.raises(ValueError):
        mappings.set_mapping("   ", "Food")
    with pytest.raises(ValueError):
        mappings.set_mapping("JAVA", " ")
    assert mappings.get_mapped_merchants() == set()


def test_mapping_tables_hold_latest_category(db_url: str) -> None:
    mappings = SqlCategoryMappingStore(database_url=db_url)
    mappings.set_mapping("  java   house ", "Food")
    mappings.set_mapping("JAVA HOUSE", "Coffee")
    mappings.set_receipt_mapping("QK87ABCD15", "Rent")
    assert mappings.get_merchant_mappings() == {"JAVA HOUSE": "Coffee"}
    assert mappings.get_receipt_mappings() == {"QK87ABCD15": "Rent"}


def test_stored_mappings_drive_category_resolution(db_url: str) -> None:
    store = SqlTransactionStore(database_url=db_url)
    mappings = SqlCategoryMappingStore(database_url=db_url)
    tx = parse_message(NAMED_PAYBILL)
    assert tx is not None
    store.upsert(tx)
    (stored,) = store.query_all()

    def resolved() -> str:
        return resolve_category(
            stored, mappings.get_receipt_mappings(), mappings.get_merchant_mappings()
        )

    assert resolved() == "Utilities"
    mappings.set_mapping("kplc prepaid", "Electricity")
    assert resolved() == "Electricity"
    mappings.set_receipt_mapping("QK87ABCD15", "Rent")
    assert resolved() == "Rent"
