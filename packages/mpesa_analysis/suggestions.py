"""Category suggestions for transactions the user has not mapped yet.

Transactions are bucketed by their best-guess category (from clues) under the
category's display style, so AIRTIME and DATA land together in
"Airtime & Data". Buckets smaller than ``min_group_size`` are dropped.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable
from decimal import Decimal

from .aggregates import normalize_merchant_key
from .clues import suggest_category
from .logging_setup import get_logger
from .models import CategorySuggestion, Transaction
from .taxonomy import CATEGORY_STYLES, CategoryStyle

_logger = get_logger("mpesa_analysis.suggestions")


def _is_mapped(tx: Transaction, receipts: Collection[str], merchants: Collection[str]) -> bool:
    if tx.receipt_number in receipts:
        return True
    key = normalize_merchant_key(tx.merchant_name)
    return key is not None and key in merchants


def analyze_suggestions(
    transactions: Iterable[Transaction],
    already_mapped: Collection[str],
    min_group_size: int,
) -> list[CategorySuggestion]:
    """Propose categories for unmapped transactions.

    ``already_mapped`` holds receipt numbers and merchant names the user has
    already categorised; matching transactions are excluded. Merchant names
    are compared after normalization.

    Output is sorted by transaction count descending, then total amount
    descending, then category name.
    """

    if min_group_size < 1:
        raise ValueError("min_group_size must be >= 1")

    mapped_receipts = frozenset(already_mapped)
    mapped_merchants = frozenset(
        key for key in (normalize_merchant_key(m) for m in already_mapped) if key
    )

    buckets: dict[str, tuple[CategoryStyle, list[Transaction]]] = {}
    excluded = 0
    for tx in transactions:
        if _is_mapped(tx, mapped_receipts, mapped_merchants):
            excluded += 1
            continue
        category = suggest_category(tx.clues)
        style = CATEGORY_STYLES.get(category) if category else None
        if style is None:
            continue
        buckets.setdefault(style.category_name, (style, []))[1].append(tx)

    out: list[CategorySuggestion] = []
    for name, (style, group) in buckets.items():
        if len(group) < min_group_size:
            continue
        out.append(
            CategorySuggestion(
                category_name=name,
                icon_tag=style.icon_tag,
                color_tag=style.color_tag,
                transaction_count=len(group),
                total_amount=sum((tx.amount for tx in group), Decimal("0")),
                receipt_numbers=tuple(tx.receipt_number for tx in group),
            )
        )
    out.sort(key=lambda s: (-s.transaction_count, -s.total_amount, s.category_name))
    _logger.debug(
        "analyze_suggestions: suggestions=%d excluded_mapped=%d", len(out), excluded
    )
    return out


__all__ = ["analyze_suggestions"]
