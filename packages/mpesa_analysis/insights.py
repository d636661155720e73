"""Insights report assembly.

:func:`assemble` is a pure composition of the aggregators over an in-memory
transaction list. :func:`build_insights` reads a snapshot from the stores and
then assembles; if any read fails it raises :class:`InsightsError` and no
report is produced.
"""

from __future__ import annotations

from collections.abc import Collection, Sequence

from .aggregates import aggregate_by_merchant, group_by_paybill
from .logging_setup import get_logger
from .models import InsightsReport, Transaction
from .recurring import detect_recurring
from .store import CategoryMappingStore, TransactionStore
from .suggestions import analyze_suggestions

DEFAULT_TOP_N = 5
DEFAULT_RECURRING_THRESHOLD = 2
DEFAULT_SUGGESTION_MIN_GROUP_SIZE = 2

_logger = get_logger("mpesa_analysis.insights")


class InsightsError(RuntimeError):
    """Raised when the transaction snapshot for a report cannot be read."""


def assemble(
    transactions: Sequence[Transaction],
    already_mapped: Collection[str],
    recurring_threshold: int,
    suggestion_min_group_size: int,
    *,
    top_n: int = DEFAULT_TOP_N,
) -> InsightsReport:
    """Build an :class:`InsightsReport` from the full transaction set.

    ``frequent_merchants`` holds the ``top_n`` most frequent named merchants;
    the group of transactions without a merchant is never listed.
    """

    if top_n < 0:
        raise ValueError("top_n must be >= 0")

    merchants = [m for m in aggregate_by_merchant(transactions) if m.name is not None]
    return InsightsReport(
        total_transactions=len(transactions),
        frequent_merchants=tuple(merchants[:top_n]),
        recurring_bills=tuple(
            detect_recurring(group_by_paybill(transactions), recurring_threshold)
        ),
        category_suggestions=tuple(
            analyze_suggestions(transactions, already_mapped, suggestion_min_group_size)
        ),
    )


def build_insights(
    store: TransactionStore,
    mappings: CategoryMappingStore,
    *,
    recurring_threshold: int = DEFAULT_RECURRING_THRESHOLD,
    suggestion_min_group_size: int = DEFAULT_SUGGESTION_MIN_GROUP_SIZE,
    top_n: int = DEFAULT_TOP_N,
) -> InsightsReport:
    """Read the current store contents and assemble a report."""

    try:
        transactions = store.query_all()
        already_mapped = mappings.get_mapped_merchants() | mappings.get_mapped_receipts()
    except Exception as e:
        _logger.error("build_insights: snapshot read failed (%s)", e.__class__.__name__)
        raise InsightsError(f"could not read transactions for insights: {e}") from e

    report = assemble(
        transactions,
        already_mapped,
        recurring_threshold,
        suggestion_min_group_size,
        top_n=top_n,
    )
    _logger.info(
        "build_insights: transactions=%d merchants=%d recurring=%d suggestions=%d",
        report.total_transactions,
        len(report.frequent_merchants),
        len(report.recurring_bills),
        len(report.category_suggestions),
    )
    return report


__all__ = [
    "DEFAULT_RECURRING_THRESHOLD",
    "DEFAULT_SUGGESTION_MIN_GROUP_SIZE",
    "DEFAULT_TOP_N",
    "InsightsError",
    "assemble",
    "build_insights",
]
