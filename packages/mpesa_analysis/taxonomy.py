"""Keyword taxonomy and per-category styling.

The taxonomy maps a category tag (``"TRANSPORT"``, ``"FOOD"``...) to the
upper-case keywords whose presence in a message hints at that category. It is
built once at import time and exposed read-only; nothing mutates it at
runtime.

Category order matters: :data:`CATEGORY_ORDER` is the declaration order used
to break ties when several categories score equally (see
``clues.suggest_category``).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    (
        "TRANSPORT",
        (
            "UBER", "BOLT", "LITTLE", "MATATU", "BUS", "TAXI", "PETROL", "FUEL",
            "SHELL", "TOTAL", "ASTROL", "LEADWAY", "ENGEN", "KOBIL", "RUBIS", "OLA",
            "PARKING", "NICCO MOVERS", "SUPER METRO",
        ),
    ),
    (
        "FOOD",
        (
            "RESTAURANT", "CAFE", "COFFEE", "PIZZA", "CHICKEN", "KFC", "SUBWAY", "JAVA",
            "ARTCAFFE", "TUSKYS", "UCHUMI", "GROCERY", "BUTCHERY", "BAKERY", "HOTEL",
            "LOUNGE",
        ),
    ),
    (
        "SUPERMARKET",
        (
            "SUPERMARKET", "SUPERMARKETS", "NAIVAS", "CARREFOUR", "QUICK MART",
            "CHANDARANA", "CLEANSHELF", "MATHAI", "UCHUMI",
        ),
    ),
    (
        "UTILITIES",
        (
            "KPLC", "POWER", "ELECTRICITY", "WATER", "NAIROBI WATER", "DSTV", "GOTV",
            "ZUKU", "TELKOM", "FAIBA", "INTERNET", "WIFI",
        ),
    ),
    ("TRANSFER", ("AIRTEL MONEY", "T-KASH", "MTN MONEY", "ORANGE MONEY", "PAYPAL")),
    (
        "ENTERTAINMENT",
        (
            "CINEMA", "MOVIE", "IMAX", "NETFLIX", "SPOTIFY", "SHOWMAX", "GYM", "FITNESS",
            "CLUB", "BAR", "PUB",
        ),
    ),
    (
        "HEALTH",
        (
            "HOSPITAL", "CLINIC", "PHARMACY", "MEDICAL", "DOCTOR", "DENTIST",
            "LABORATORY", "LAB", "NHIF",
        ),
    ),
    (
        "SHOPPING",
        (
            "JUMIA", "AMAZON", "KILIMALL", "JIJI", "ALIBABA", "EBAY", "ALIEXPRESS", "SHOP",
            "STORE", "MALL", "BOUTIQUE", "FASHION", "CLOTHING", "SHOES",
        ),
    ),
    ("AIRTIME", ("AIRTIME", "SAFARICOM AIRTIME", "AIRTEL AIRTIME")),
    ("DATA", ("SAFARICOM DATA BUNDLES", "AIRTEL DATA BUNDLES")),
    (
        "EDUCATION",
        (
            "SCHOOL", "UNIVERSITY", "COLLEGE", "COURSERA", "UDEMY", "TRAINING", "TUITION",
            "BOOK",
        ),
    ),
)

CATEGORY_ORDER: tuple[str, ...] = tuple(category for category, _ in _KEYWORDS)

TAXONOMY: Mapping[str, frozenset[str]] = MappingProxyType(
    {category: frozenset(keywords) for category, keywords in _KEYWORDS}
)
"""Read-only ``category -> keywords`` table."""


@dataclass(frozen=True, slots=True)
class CategoryStyle:
    """Display name and representative icon/color for a suggested category."""

    category_name: str
    icon_tag: str
    color_tag: str


_AIRTIME_AND_DATA = CategoryStyle("Airtime & Data", "phone_android", "#26A69A")

CATEGORY_STYLES: Mapping[str, CategoryStyle] = MappingProxyType(
    {
        "TRANSPORT": CategoryStyle("Transport", "directions_car", "#FF6B35"),
        "FOOD": CategoryStyle("Food", "restaurant", "#FFA726"),
        "SUPERMARKET": CategoryStyle("Supermarket", "shopping_cart", "#4CAF50"),
        "UTILITIES": CategoryStyle("Utilities", "bolt", "#42A5F5"),
        "TRANSFER": CategoryStyle("Transfers", "swap_horiz", "#78909C"),
        "ENTERTAINMENT": CategoryStyle("Entertainment", "movie", "#AB47BC"),
        "HEALTH": CategoryStyle("Healthcare", "local_hospital", "#EF5350"),
        "SHOPPING": CategoryStyle("Online shopping", "shopping_bag", "#EC407A"),
        "AIRTIME": _AIRTIME_AND_DATA,
        "DATA": _AIRTIME_AND_DATA,
        "EDUCATION": CategoryStyle("Education", "school", "#5C6BC0"),
    }
)


def category_rank(category: str) -> tuple[int, str]:
    """Sort key placing taxonomy categories first, in declaration order.

    Categories outside the taxonomy (fixed clues such as ``LOAN`` or
    ``SAVINGS``) sort after all taxonomy categories, alphabetically.
    """

    try:
        return (CATEGORY_ORDER.index(category), "")
    except ValueError:
        return (len(CATEGORY_ORDER), category)


__all__ = [
    "CATEGORY_ORDER",
    "CATEGORY_STYLES",
    "TAXONOMY",
    "CategoryStyle",
    "category_rank",
]
