# ruff: noqa: E402, I001
from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Make sure the workspace `packages/` dir is on sys.path so `mpesa_analysis` is importable
_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]

from mpesa_analysis.insights import InsightsError, assemble, build_insights
from mpesa_analysis.models import InsightsReport

from tests.helpers.factories import at, make_tx


def _ledger():
    txs = [
        make_tx(f"QI0{i}AAAAAA", 1000 + i, merchant="KPLC PREPAID", paybill="888880",
                when=at(2026, i + 1, 10), clues={"UTILITIES:KPLC"})
        for i in range(3)
    ]
    txs += [
        make_tx(f"QJ0{i}AAAAAA", 250, merchant=f"JAVA HOUSE {i % 2}", when=at(2026, 3, i + 1),
                clues={"FOOD:JAVA"})
        for i in range(4)
    ]
    txs.append(make_tx("QK01AAAAAA", 40, when=at(2026, 3, 20)))
    return txs


class _ListStore:
    def __init__(self, transactions):
        self._transactions = list(transactions)

    def query_all(self):
        return list(self._transactions)


class _Mappings:
    def __init__(self, merchants=(), receipts=()):
        self._merchants = set(merchants)
        self._receipts = set(receipts)

    def get_mapped_merchants(self):
        return set(self._merchants)

    def get_mapped_receipts(self):
        return set(self._receipts)


class _BrokenStore:
    def query_all(self):
        raise OSError("disk I/O error")


def test_assemble_builds_every_section() -> None:
    report = assemble(_ledger(), set(), 2, 2)
    assert isinstance(report, InsightsReport)
    assert report.total_transactions == 8
    assert [m.name for m in report.frequent_merchants] == [
        "KPLC PREPAID",
        "JAVA HOUSE 0",
        "JAVA HOUSE 1",
    ]
    assert [b.paybill_number for b in report.recurring_bills] == ["888880"]
    assert [s.category_name for s in report.category_suggestions] == ["Food", "Utilities"]


def test_assemble_never_lists_the_unnamed_group() -> None:
    report = assemble([make_tx(f"QX0{i}AAAAAA", 5) for i in range(3)], set(), 2, 2)
    assert report.frequent_merchants == ()
    assert report.total_transactions == 3


def test_top_n_limits_merchants() -> None:
    report = assemble(_ledger(), set(), 2, 2, top_n=1)
    assert [m.name for m in report.frequent_merchants] == ["KPLC PREPAID"]
    assert assemble(_ledger(), set(), 2, 2, top_n=0).frequent_merchants == ()
    with pytest.raises(ValueError):
        assemble(_ledger(), set(), 2, 2, top_n=-1)


def test_assemble_is_deterministic() -> None:
    txs = _ledger()
    assert assemble(txs, {"KPLC PREPAID"}, 2, 2) == assemble(txs, {"KPLC PREPAID"}, 2, 2)


def test_empty_ledger_yields_empty_report() -> None:
    report = assemble([], set(), 2, 2)
    assert report == InsightsReport(total_transactions=0)


def test_build_insights_reads_both_stores() -> None:
    report = build_insights(
        _ListStore(_ledger()),
        _Mappings(merchants={"JAVA HOUSE 0"}, receipts={"QI00AAAAAA"}),
        recurring_threshold=3,
        suggestion_min_group_size=2,
    )
    assert report.total_transactions == 8
    assert [b.paybill_number for b in report.recurring_bills] == ["888880"]
    # Two transactions each after exclusions; Utilities wins on total.
    utilities, food = report.category_suggestions
    assert utilities.category_name == "Utilities"
    assert utilities.receipt_numbers == ("QI01AAAAAA", "QI02AAAAAA")
    assert food.category_name == "Food"
    assert food.receipt_numbers == ("QJ01AAAAAA", "QJ03AAAAAA")


def test_build_insights_wraps_read_failures() -> None:
    with pytest.raises(InsightsError) as ei:
        build_insights(_BrokenStore(), _Mappings())
    assert isinstance(ei.value.__cause__, OSError)
