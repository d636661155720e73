"""Public interface for the ``mpesa_analysis`` package.

This module exposes the package's pure analytics functions and public
models/types as the stable import surface. There is no runtime logic here,
only symbol re-exports. Database-backed stores and the sync pipeline live in
``mpesa_analysis.store`` and ``mpesa_analysis.sync``.
"""

from .aggregates import (
    aggregate_by_merchant,
    aggregate_by_paybill,
    group_by_merchant,
    group_by_paybill,
)
from .categorize import resolve_category
from .clues import detect_clues, suggest_category
from .insights import InsightsError, assemble, build_insights
from .models import (
    CategorySuggestion,
    Direction,
    InsightsReport,
    MerchantFrequency,
    PaybillFrequency,
    RecurringBill,
    SmsMessage,
    Transaction,
    TransactionKind,
)
from .parser import PARSER_VERSION, is_mpesa_sender, parse_message
from .recurring import detect_recurring
from .suggestions import analyze_suggestions

__all__ = [
    # API
    "parse_message",
    "is_mpesa_sender",
    "detect_clues",
    "suggest_category",
    "group_by_merchant",
    "group_by_paybill",
    "aggregate_by_merchant",
    "aggregate_by_paybill",
    "detect_recurring",
    "analyze_suggestions",
    "resolve_category",
    "assemble",
    "build_insights",
    "InsightsError",
    "PARSER_VERSION",
    # Models / types
    "Transaction",
    "TransactionKind",
    "Direction",
    "SmsMessage",
    "MerchantFrequency",
    "PaybillFrequency",
    "RecurringBill",
    "CategorySuggestion",
    "InsightsReport",
]
