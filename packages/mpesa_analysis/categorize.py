"""Final category for a stored transaction.

Resolution order:

1. a receipt mapping (the user re-categorised this one payment);
2. a merchant mapping (the user's rule for every payment to that merchant);
3. the best clue category, under its display name;
4. a fallback chosen by transaction kind.

Everything here is pure; callers read the mapping tables once (see
``SqlCategoryMappingStore.get_receipt_mappings`` / ``get_merchant_mappings``)
and resolve as many transactions as they like against them.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType

from .aggregates import normalize_merchant_key
from .clues import suggest_category
from .models import Transaction, TransactionKind
from .taxonomy import CATEGORY_STYLES

DEFAULT_CATEGORY = "Mobile Money"

KIND_FALLBACK_CATEGORY: Mapping[TransactionKind, str] = MappingProxyType(
    {
        TransactionKind.AIRTIME: "Airtime & Data",
        TransactionKind.PAYBILL: DEFAULT_CATEGORY,
        TransactionKind.TILL: DEFAULT_CATEGORY,
        TransactionKind.SEND_MONEY: "Transfers",
        TransactionKind.RECEIVE_MONEY: "Transfers",
        TransactionKind.WITHDRAW: "Cash",
        TransactionKind.DEPOSIT: "Cash",
    }
)

# Clue categories emitted by fixed shapes rather than the keyword taxonomy.
_FIXED_CLUE_CATEGORIES: Mapping[str, str] = MappingProxyType(
    {"SAVINGS": "Savings", "BILLS": "Bills & Utilities"}
)


def clue_category_name(clues: Iterable[str]) -> str | None:
    """Display name of the best clue category, or ``None`` when nothing applies."""

    category = suggest_category(clues)
    if category is None:
        return None
    style = CATEGORY_STYLES.get(category)
    if style is not None:
        return style.category_name
    return _FIXED_CLUE_CATEGORIES.get(category)


def resolve_category(
    tx: Transaction,
    receipt_map: Mapping[str, str],
    merchant_map: Mapping[str, str],
) -> str:
    """Return the category ``tx`` should be reported under.

    ``merchant_map`` is keyed by normalized merchant name, as stored by
    ``set_mapping``.
    """

    by_receipt = receipt_map.get(tx.receipt_number)
    if by_receipt:
        return by_receipt
    key = normalize_merchant_key(tx.merchant_name)
    if key is not None and (by_merchant := merchant_map.get(key)):
        return by_merchant
    return clue_category_name(tx.clues) or KIND_FALLBACK_CATEGORY.get(
        tx.kind, DEFAULT_CATEGORY
    )


def is_user_categorised(
    tx: Transaction,
    receipt_map: Mapping[str, str],
    merchant_map: Mapping[str, str],
) -> bool:
    if tx.receipt_number in receipt_map:
        return True
    key = normalize_merchant_key(tx.merchant_name)
    return key is not None and key in merchant_map


__all__ = [
    "DEFAULT_CATEGORY",
    "KIND_FALLBACK_CATEGORY",
    "clue_category_name",
    "is_user_categorised",
    "resolve_category",
]
