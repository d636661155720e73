"""Merchant and paybill frequency aggregation.

Grouping keys:

- merchant: :func:`normalize_merchant_key` of ``merchant_name``
  (NFKC, collapsed whitespace, upper-cased);
- paybill: ``paybill_number`` as stored.

Transactions without a key are grouped under ``None`` rather than dropped, so
for each dimension the totals over all groups add up to the input total.
Everything here is a pure function of its input.
"""

from __future__ import annotations

import unicodedata
from collections.abc import Callable, Iterable, Sequence
from datetime import UTC, datetime
from decimal import Decimal

from .clues import detect_clues, suggest_category
from .models import MerchantFrequency, PaybillFrequency, Transaction, quantize_amount

RECENT_RECEIPTS_LIMIT = 5

_EPOCH = datetime.min.replace(tzinfo=UTC)


def normalize_merchant_key(raw: str | None) -> str | None:
    """Return a case/whitespace-insensitive merchant key, or ``None`` when empty."""

    if raw is None:
        return None
    s = unicodedata.normalize("NFKC", str(raw)).strip()
    if not s:
        return None
    return " ".join(s.split()).upper()


def _group(
    transactions: Iterable[Transaction], key_fn: Callable[[Transaction], str | None]
) -> dict[str | None, list[Transaction]]:
    groups: dict[str | None, list[Transaction]] = {}
    for tx in transactions:
        groups.setdefault(key_fn(tx), []).append(tx)
    return groups


def group_by_merchant(transactions: Iterable[Transaction]) -> dict[str | None, list[Transaction]]:
    """Group by normalized merchant name; keys appear in encounter order."""

    return _group(transactions, lambda tx: normalize_merchant_key(tx.merchant_name))


def group_by_paybill(transactions: Iterable[Transaction]) -> dict[str | None, list[Transaction]]:
    """Group by paybill number; keys appear in encounter order."""

    return _group(transactions, lambda tx: tx.paybill_number or None)


def total_amount(transactions: Iterable[Transaction]) -> Decimal:
    return sum((tx.amount for tx in transactions), Decimal("0"))


def average_amount(transactions: Sequence[Transaction]) -> Decimal:
    if not transactions:
        raise ValueError("average_amount requires at least one transaction")
    return quantize_amount(total_amount(transactions) / len(transactions))


def most_recent_first(transactions: Sequence[Transaction]) -> list[Transaction]:
    """Order by timestamp descending; undated records go last, in encounter order."""

    dated = [tx for tx in transactions if tx.timestamp is not None]
    undated = [tx for tx in transactions if tx.timestamp is None]
    dated.sort(key=lambda tx: tx.timestamp or _EPOCH, reverse=True)
    return dated + undated


def _sort_key(key: str | None, count: int, total: Decimal) -> tuple[int, Decimal, bool, str]:
    return (-count, -total, key is None, key or "")


def aggregate_by_merchant(transactions: Iterable[Transaction]) -> list[MerchantFrequency]:
    """Per-merchant count, total and average, most frequent first.

    Each entry also carries a best-guess category (keywords in the merchant
    name) and the receipts of its most recent transactions.
    """

    out: list[MerchantFrequency] = []
    for key, group in group_by_merchant(list(transactions)).items():
        recent = most_recent_first(group)[:RECENT_RECEIPTS_LIMIT]
        out.append(
            MerchantFrequency(
                name=key,
                count=len(group),
                total_amount=total_amount(group),
                average_amount=average_amount(group),
                suggested_category=suggest_category(detect_clues(key, "")) if key else None,
                recent_receipts=tuple(tx.receipt_number for tx in recent),
            )
        )
    out.sort(key=lambda m: _sort_key(m.name, m.count, m.total_amount))
    return out


def aggregate_by_paybill(transactions: Iterable[Transaction]) -> list[PaybillFrequency]:
    """Per-paybill count, total and average, most frequent first."""

    out: list[PaybillFrequency] = []
    for key, group in group_by_paybill(list(transactions)).items():
        latest = most_recent_first(group)[0]
        out.append(
            PaybillFrequency(
                paybill_number=key,
                merchant_name=latest.merchant_name if key is not None else None,
                count=len(group),
                total_amount=total_amount(group),
                average_amount=average_amount(group),
            )
        )
    out.sort(key=lambda p: _sort_key(p.paybill_number, p.count, p.total_amount))
    return out


__all__ = [
    "RECENT_RECEIPTS_LIMIT",
    "aggregate_by_merchant",
    "aggregate_by_paybill",
    "average_amount",
    "group_by_merchant",
    "group_by_paybill",
    "most_recent_first",
    "normalize_merchant_key",
    "total_amount",
]
