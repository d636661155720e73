"""Transaction and category-mapping stores.

The protocols describe what the analytics and the sync pipeline need from
storage. The SQL implementations wrap the session-level functions in
:mod:`mpesa_analysis.persistence`, opening one ``session_scope`` per call.
Every write goes through a per-store lock so there is exactly one writer at a
time.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from db.client import session_scope

from . import persistence
from .logging_setup import get_logger
from .models import Transaction

_logger = get_logger("mpesa_analysis.store")


@runtime_checkable
class TransactionStore(Protocol):
    def upsert(self, transaction: Transaction) -> bool:
        """Insert if the receipt is new; return True when a row was added."""
        ...

    def upsert_many(self, transactions: Iterable[Transaction]) -> int:
        """Insert-or-ignore a batch; return the number of new rows."""
        ...

    def query_all(self) -> list[Transaction]: ...

    def query_by_merchant(self, name: str, limit: int = 20) -> list[Transaction]: ...

    def count(self) -> int: ...

    def delete_all(self) -> int: ...


@runtime_checkable
class CategoryMappingStore(Protocol):
    def get_mapped_merchants(self) -> set[str]: ...

    def get_mapped_receipts(self) -> set[str]: ...

    def get_merchant_mappings(self) -> dict[str, str]: ...

    def get_receipt_mappings(self) -> dict[str, str]: ...

    def set_mapping(self, merchant_name: str, category_name: str) -> None: ...

    def set_receipt_mapping(self, receipt_number: str, category_name: str) -> None: ...


class SqlTransactionStore:
    """:class:`TransactionStore` over the shared SQL database."""

    def __init__(self, *, database_url: str | None = None) -> None:
        self._database_url = database_url
        self._write_lock = threading.Lock()

    def upsert(self, transaction: Transaction) -> bool:
        return self.upsert_many([transaction]) == 1

    def upsert_many(self, transactions: Iterable[Transaction]) -> int:
        batch = list(transactions)
        if not batch:
            return 0
        with self._write_lock, session_scope(database_url=self._database_url) as session:
            inserted = persistence.upsert_transactions(session, batch)
        _logger.debug("upsert_many: batch=%d inserted=%d", len(batch), inserted)
        return inserted

    def query_all(self) -> list[Transaction]:
        with session_scope(database_url=self._database_url) as session:
            return persistence.query_transactions(session)

    def query_by_merchant(self, name: str, limit: int = 20) -> list[Transaction]:
        with session_scope(database_url=self._database_url) as session:
            return persistence.query_by_merchant(session, name, limit=limit)

    def count(self) -> int:
        with session_scope(database_url=self._database_url) as session:
            return persistence.count_transactions(session)

    def delete_all(self) -> int:
        with self._write_lock, session_scope(database_url=self._database_url) as session:
            deleted = persistence.delete_all_transactions(session)
        _logger.info("delete_all: removed=%d", deleted)
        return deleted


class SqlCategoryMappingStore:
    """:class:`CategoryMappingStore` over the shared SQL database.

    Merchant names come back normalized (upper-cased, whitespace collapsed).
    """

    def __init__(self, *, database_url: str | None = None) -> None:
        self._database_url = database_url
        self._write_lock = threading.Lock()

    def get_mapped_merchants(self) -> set[str]:
        with session_scope(database_url=self._database_url) as session:
            return persistence.get_mapped_keys(
                session, key_kind=persistence.MAPPING_KIND_MERCHANT
            )

    def get_mapped_receipts(self) -> set[str]:
        with session_scope(database_url=self._database_url) as session:
            return persistence.get_mapped_keys(
                session, key_kind=persistence.MAPPING_KIND_RECEIPT
            )

    def get_merchant_mappings(self) -> dict[str, str]:
        with session_scope(database_url=self._database_url) as session:
            return persistence.get_mapping_table(
                session, key_kind=persistence.MAPPING_KIND_MERCHANT
            )

    def get_receipt_mappings(self) -> dict[str, str]:
        with session_scope(database_url=self._database_url) as session:
            return persistence.get_mapping_table(
                session, key_kind=persistence.MAPPING_KIND_RECEIPT
            )

    def _set(self, key: str, key_kind: str, category_name: str) -> None:
        with self._write_lock, session_scope(database_url=self._database_url) as session:
            persistence.set_category_mapping(
                session, mapping_key=key, key_kind=key_kind, category_name=category_name
            )

    def set_mapping(self, merchant_name: str, category_name: str) -> None:
        self._set(merchant_name, persistence.MAPPING_KIND_MERCHANT, category_name)

    def set_receipt_mapping(self, receipt_number: str, category_name: str) -> None:
        self._set(receipt_number, persistence.MAPPING_KIND_RECEIPT, category_name)


__all__ = [
    "CategoryMappingStore",
    "SqlCategoryMappingStore",
    "SqlTransactionStore",
    "TransactionStore",
]
