"""Recurring bill detection over paybill groups."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from .aggregates import average_amount, most_recent_first
from .clues import suggest_category
from .models import RecurringBill, Transaction


def distinct_periods(transactions: Sequence[Transaction]) -> int:
    """Number of distinct calendar months among dated transactions."""

    return len({(tx.timestamp.year, tx.timestamp.month) for tx in transactions if tx.timestamp})


def detect_recurring(
    paybill_groups: Mapping[str | None, Sequence[Transaction]],
    min_occurrences: int,
    *,
    min_periods: int = 1,
) -> list[RecurringBill]:
    """Flag paybills paid at least ``min_occurrences`` times.

    Parameters
    ----------
    paybill_groups:
        Output of :func:`~mpesa_analysis.aggregates.group_by_paybill`. The
        ``None`` group (transactions without a paybill) is never flagged.
    min_occurrences:
        Minimum group size; must be >= 1.
    min_periods:
        Minimum number of distinct calendar months the payments span. The
        default of 1 disables the check, so undated payments still count.

    Name and category come from the most recent payment in each group. Output
    is sorted by occurrence count descending, then paybill number.
    """

    if min_occurrences < 1:
        raise ValueError("min_occurrences must be >= 1")
    if min_periods < 1:
        raise ValueError("min_periods must be >= 1")

    out: list[RecurringBill] = []
    for paybill, group in paybill_groups.items():
        if paybill is None or len(group) < min_occurrences:
            continue
        periods = distinct_periods(group)
        if min_periods > 1 and periods < min_periods:
            continue
        latest = most_recent_first(group)[0]
        out.append(
            RecurringBill(
                paybill_number=paybill,
                merchant_name=latest.merchant_name,
                occurrence_count=len(group),
                distinct_periods=periods,
                average_amount=average_amount(group),
                suggested_category=suggest_category(latest.clues),
            )
        )
    out.sort(key=lambda b: (-b.occurrence_count, b.paybill_number))
    return out


__all__ = ["detect_recurring", "distinct_periods"]
