# ruff: noqa: E402, I001
from __future__ import annotations

import sys
from datetime import UTC, datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

import pytest

# Make sure the workspace `packages/` dir is on sys.path so `mpesa_analysis` is importable
_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]

from mpesa_analysis.clues import suggest_category
from mpesa_analysis.models import Direction, TransactionKind
from mpesa_analysis.parser import (
    MATCHERS,
    UNKNOWN_RECEIPT_PREFIX,
    clean_merchant_name,
    is_mpesa_sender,
    parse_amount,
    parse_message,
)

EAT = timezone(timedelta(hours=3))

SEND = (
    "Confirmed. Ksh1,000.00 sent to JOHN DOE 0712345678 on 21/1/26 at 10:00 AM. "
    "New M-PESA balance is Ksh5,000.00. Transaction cost, Ksh0.00. QK87ABCD12"
)
RECEIVE = (
    "QK87ABCD13 Confirmed. You have received Ksh2,000.00 from JANE DOE 0712345678 "
    "on 21/1/26 at 11:00 AM. New M-PESA balance is Ksh2,500.00."
)
PAYBILL = (
    "QK87ABCD14 Confirmed. Ksh300.00 paid to Paybill 400200, account number 12345 "
    "on 21/1/26 at 9:15 AM. New M-PESA balance is Ksh4,700.00."
)
NAMED_PAYBILL = (
    "QK87ABCD15 Confirmed. Ksh500.00 paid to KPLC PREPAID. Paybill 888880, "
    "account number 123456 on 21/1/26 at 8:00 PM."
)


# ---- Gate --------------------------------------------------------------------


@pytest.mark.parametrize(
    "text",
    [
        "",
        "Ksh1,000.00 sent to JOHN DOE 0712345678 on 21/1/26 at 10:00 AM.",
        "Get 1GB for Ksh50 today only! Dial *544#",
        "QK87ABCD12 Failed. Insufficient funds in your M-PESA account.",
    ],
)
def test_text_without_confirmed_is_not_parsed(text: str) -> None:
    assert parse_message(text) is None


def test_confirmed_text_matching_no_shape_returns_none() -> None:
    assert parse_message("QK87ABCD12 Confirmed. Your M-PESA PIN has been changed.") is None


# ---- Core shapes -------------------------------------------------------------


def test_send_money() -> None:
    tx = parse_message(SEND)
    assert tx is not None
    assert tx.receipt_number == "QK87ABCD12"
    assert tx.amount == Decimal("1000.00")
    assert tx.direction is Direction.EXPENSE
    assert tx.kind is TransactionKind.SEND_MONEY
    assert tx.merchant_name == "JOHN DOE"
    assert tx.phone_number == "0712345678"
    assert tx.new_balance == Decimal("5000.00")
    assert tx.transaction_cost == Decimal("0.00")
    assert tx.timestamp == datetime(2026, 1, 21, 10, 0, tzinfo=EAT)
    assert tx.raw_body == SEND


def test_send_money_for_account() -> None:
    tx = parse_message(
        "QK87ABCD31 Confirmed. Ksh2,500.00 sent to EQUITY BANK for account 1234567 "
        "on 2/2/26 at 1:05 PM."
    )
    assert tx is not None
    assert tx.kind is TransactionKind.SEND_MONEY
    assert tx.merchant_name == "EQUITY BANK"
    assert tx.account_number == "1234567"
    assert tx.phone_number is None


def test_receive_money() -> None:
    tx = parse_message(RECEIVE)
    assert tx is not None
    assert tx.receipt_number == "QK87ABCD13"
    assert tx.amount == Decimal("2000.00")
    assert tx.direction is Direction.INCOME
    assert tx.kind is TransactionKind.RECEIVE_MONEY
    assert tx.merchant_name == "JANE DOE"
    assert tx.phone_number == "0712345678"


def test_receive_from_bulk_account() -> None:
    tx = parse_message(
        "QK87ABCD32 Confirmed. You have received Ksh10,000.00 from EQUITY BULK ACCOUNT 300600 "
        "on 3/10/25 at 6:00 PM."
    )
    assert tx is not None
    assert tx.kind is TransactionKind.RECEIVE_MONEY
    assert tx.merchant_name == "EQUITY"
    assert tx.account_number == "300600"
    assert tx.phone_number is None


def test_paybill_without_business_name() -> None:
    tx = parse_message(PAYBILL)
    assert tx is not None
    assert tx.kind is TransactionKind.PAYBILL
    assert tx.direction is Direction.EXPENSE
    assert tx.paybill_number == "400200"
    assert tx.account_number == "12345"
    assert tx.merchant_name == "PAYBILL 400200"
    assert tx.amount == Decimal("300.00")


def test_paybill_with_business_name() -> None:
    tx = parse_message(NAMED_PAYBILL)
    assert tx is not None
    assert tx.kind is TransactionKind.PAYBILL
    assert tx.merchant_name == "KPLC PREPAID"
    assert tx.paybill_number == "888880"
    assert tx.account_number == "123456"
    assert "UTILITIES:KPLC" in tx.clues
    assert suggest_category(tx.clues) == "UTILITIES"


def test_till() -> None:
    tx = parse_message(
        "QK87ABCD18 Confirmed. Ksh250.00 paid to JAVA HOUSE till number 654321 "
        "on 22/1/26 at 1:00 PM."
    )
    assert tx is not None
    assert tx.kind is TransactionKind.TILL
    assert tx.till_number == "654321"
    assert tx.merchant_name == "JAVA HOUSE"
    assert "FOOD:JAVA" in tx.clues


def test_till_without_name_falls_back_to_number() -> None:
    tx = parse_message("QK87ABCD33 Confirmed. Ksh80.00 paid to till 112233 on 22/1/26 at 7:00 AM.")
    assert tx is not None
    assert tx.kind is TransactionKind.TILL
    assert tx.merchant_name == "TILL 112233"


def test_airtime_carries_airtime_clue() -> None:
    tx = parse_message("Confirmed. Ksh100.00 airtime purchase on 21/1/26 at 10:00 AM. QK87ABCD34")
    assert tx is not None
    assert tx.kind is TransactionKind.AIRTIME
    assert tx.direction is Direction.EXPENSE
    assert "AIRTIME:AIRTIME" in tx.clues


def test_airtime_for_other_number() -> None:
    tx = parse_message(
        "QK87ABCD15 confirmed. You bought Ksh50.00 of airtime for 0722000111 on 21/1/26 at 8:00 AM."
    )
    assert tx is not None
    assert tx.kind is TransactionKind.AIRTIME
    assert tx.phone_number == "0722000111"
    assert tx.amount == Decimal("50.00")


def test_withdraw() -> None:
    tx = parse_message(
        "QK87ABCD19 Confirmed. Ksh2,000.00 withdrawn from 123456 - JANE SHOP "
        "on 22/1/26 at 9:00 AM. "
        "New M-PESA balance is Ksh3,000.00. Transaction cost, Ksh29.00."
    )
    assert tx is not None
    assert tx.kind is TransactionKind.WITHDRAW
    assert tx.direction is Direction.EXPENSE
    assert tx.agent_number == "123456"
    assert tx.merchant_name == "AGENT 123456"
    assert tx.transaction_cost == Decimal("29.00")
    assert tx.new_balance == Decimal("3000.00")


def test_deposit() -> None:
    tx = parse_message(
        "QK87ABCD20 Confirmed. Ksh1,500.00 deposited to 654321 - CITY AGENCY on 23/1/26 at 4:00 PM."
    )
    assert tx is not None
    assert tx.kind is TransactionKind.DEPOSIT
    assert tx.direction is Direction.INCOME
    assert tx.agent_number == "654321"


# ---- Supplementary shapes ----------------------------------------------------


def test_wallet_transfer() -> None:
    tx = parse_message(
        "QK87ABCD21 Confirmed. Ksh700.00 sent to AIRTEL MONEY for account 254733123456 "
        "on 24/1/26 at 2:00 PM."
    )
    assert tx is not None
    assert tx.kind is TransactionKind.SEND_MONEY
    assert tx.merchant_name == "AIRTEL MONEY"
    assert tx.account_number == "254733123456"
    assert {"TRANSFER:WALLET", "TRANSFER:AIRTEL MONEY"} <= tx.clues


def test_virtual_card_payment_is_paybill_to_real_merchant() -> None:
    tx = parse_message(
        "QL22CARD01 Confirmed. Ksh1,100.00 sent to M-PESA CARD for account NETFLIX.COM 4321 "
        "on 2/2/26 at 9:00 PM. New M-PESA balance is Ksh900.00. Transaction cost, Ksh0.00."
    )
    assert tx is not None
    assert tx.receipt_number == "QL22CARD01"
    assert tx.kind is TransactionKind.PAYBILL
    assert tx.direction is Direction.EXPENSE
    assert tx.amount == Decimal("1100.00")
    assert tx.merchant_name == "NETFLIX.COM"
    assert tx.account_number == "4321"
    assert tx.paybill_number is None
    assert "ENTERTAINMENT:NETFLIX" in tx.clues


def test_data_bundles() -> None:
    tx = parse_message(
        "QK87ABCD22 Confirmed. Ksh99.00 sent to SAFARICOM DATA BUNDLES for account "
        "SAFARICOM DATA BUNDLES on 24/1/26 at 3:00 PM."
    )
    assert tx is not None
    assert tx.kind is TransactionKind.PAYBILL
    assert tx.merchant_name == "SAFARICOM DATA BUNDLES"
    assert "DATA:BUNDLES" in tx.clues
    assert suggest_category(tx.clues) == "DATA"


@pytest.mark.parametrize(
    ("way", "direction", "clue"),
    [
        ("to", Direction.EXPENSE, "TRANSFER:OUT"),
        ("from", Direction.INCOME, "TRANSFER:IN"),
    ],
)
def test_mshwari_transfer(way: str, direction: Direction, clue: str) -> None:
    tx = parse_message(
        f"QK87ABCD23 Confirmed. Ksh1,000.00 transferred {way} M-Shwari account "
        "on 25/1/26 at 10:00 AM."
    )
    assert tx is not None
    assert tx.kind is TransactionKind.SEND_MONEY
    assert tx.direction is direction
    assert tx.merchant_name == "M-SHWARI"
    assert {"SAVINGS:MSHWARI", clue} <= tx.clues


def test_fuliza() -> None:
    tx = parse_message(
        "QK87ABCD24 Confirmed. Ksh200.00 from Fuliza M-PESA has been credited to your account."
    )
    assert tx is not None
    assert tx.kind is TransactionKind.DEPOSIT
    assert tx.direction is Direction.INCOME
    assert tx.merchant_name == "FULIZA M-PESA"
    assert "LOAN:FULIZA" in tx.clues


@pytest.mark.parametrize(
    "text",
    [
        "QK87ABCD16 Confirmed. Ksh150.00 paid to SUPERMARKET. on 21/1/26 at 12:00 PM.",
        "QK87ABCD17 Confirmed. Ksh150.00 paid to SUPERMARKET on 21/1/26 at 12:30 PM.",
    ],
)
def test_buy_goods_is_recorded_as_till(text: str) -> None:
    tx = parse_message(text)
    assert tx is not None
    assert tx.kind is TransactionKind.TILL
    assert tx.till_number is None
    assert tx.merchant_name == "SUPERMARKET"
    assert suggest_category(tx.clues) == "SUPERMARKET"


# ---- Ordering and identity ---------------------------------------------------


def test_matcher_order_starts_with_send_slot_and_keeps_core_order() -> None:
    names = [name for name, _ in MATCHERS]
    core = ["send_money", "receive_money", "paybill", "till", "airtime", "withdraw", "deposit"]
    assert [n for n in names if n in core] == core
    assert names.index("wallet_transfer") < names.index("send_money")
    assert names.index("global_pay") < names.index("send_money")
    assert names.index("buy_goods") > names.index("deposit")


def test_send_wins_over_airtime_keyword() -> None:
    tx = parse_message(
        "QK87ABCD30 Confirmed. Ksh50.00 sent to AIRTIME VENDOR 0712345678 on 21/1/26 at 10:00 AM."
    )
    assert tx is not None
    assert tx.kind is TransactionKind.SEND_MONEY
    assert "AIRTIME:AIRTIME" in tx.clues


def test_parse_is_idempotent() -> None:
    assert parse_message(NAMED_PAYBILL) == parse_message(NAMED_PAYBILL)


def test_caller_timestamp_wins_over_text_date() -> None:
    delivered = datetime(2026, 1, 21, 7, 0, 5, tzinfo=UTC)
    tx = parse_message(SEND, timestamp=delivered)
    assert tx is not None
    assert tx.timestamp == delivered


def test_missing_date_leaves_timestamp_empty() -> None:
    tx = parse_message("QK87ABCD35 Confirmed. Ksh100.00 airtime purchase.")
    assert tx is not None
    assert tx.timestamp is None


def test_missing_receipt_gets_stable_distinct_identity() -> None:
    a = "Confirmed. Ksh100.00 airtime purchase on 21/1/26 at 10:00 AM."
    b = "Confirmed. Ksh200.00 airtime purchase on 21/1/26 at 10:00 AM."
    ra = parse_message(a)
    rb = parse_message(b)
    assert ra is not None and rb is not None
    assert ra.receipt_number.startswith(UNKNOWN_RECEIPT_PREFIX)
    assert ra.receipt_number != rb.receipt_number
    assert parse_message(a).receipt_number == ra.receipt_number  # type: ignore[union-attr]


@pytest.mark.parametrize(
    "layout",
    [
        "{receipt} Confirmed. Ksh500.00 paid to ACME LTD. Paybill 400200, "
        "account number AB12345678 on 21/1/26 at 9:15 AM.",
        "Confirmed. Ksh500.00 paid to ACME LTD. Paybill 400200, "
        "account number AB12345678 on 21/1/26 at 9:15 AM. "
        "New M-PESA balance is Ksh4,700.00. {receipt}",
    ],
)
def test_alphanumeric_account_is_never_the_receipt(layout: str) -> None:
    first = parse_message(layout.format(receipt="QK87ABCD12"))
    second = parse_message(layout.format(receipt="QL11WXYZ99"))
    assert first is not None and second is not None
    assert first.account_number == second.account_number == "AB12345678"
    assert first.receipt_number == "QK87ABCD12"
    assert second.receipt_number == "QL11WXYZ99"


def test_send_account_shaped_like_a_receipt_is_skipped() -> None:
    tx = parse_message(
        "Confirmed. Ksh2,500.00 sent to ACME SACCO for account XY98765432 "
        "on 2/2/26 at 1:05 PM. QK87ABCD36"
    )
    assert tx is not None
    assert tx.account_number == "XY98765432"
    assert tx.receipt_number == "QK87ABCD36"


def test_whole_words_option_reaches_clue_detection() -> None:
    text = (
        "QK87ABCD37 Confirmed. Ksh300.00 paid to BUSINESS HUB till number 445566 "
        "on 22/1/26 at 1:00 PM."
    )
    loose = parse_message(text)
    strict = parse_message(text, whole_words=True)
    assert loose is not None and strict is not None
    assert "TRANSPORT:BUS" in loose.clues
    assert "TRANSPORT:BUS" not in strict.clues


# ---- Helpers -----------------------------------------------------------------


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("1,234.50", Decimal("1234.50")),
        ("100", Decimal("100.00")),
        ("0.5", Decimal("0.50")),
        ("", None),
        (",", None),
        ("abc", None),
        ("NaN", None),
        ("-5", None),
        (None, None),
    ],
)
def test_parse_amount(raw: str | None, expected: Decimal | None) -> None:
    assert parse_amount(raw) == expected


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("  kplc   prepaid.  ", "KPLC PREPAID"),
        ("John Doe for account 123", "JOHN DOE"),
        ("Corner Shop - AGENT 12", "CORNER SHOP"),
        ("   ", None),
        (None, None),
    ],
)
def test_clean_merchant_name(raw: str | None, expected: str | None) -> None:
    assert clean_merchant_name(raw) == expected


@pytest.mark.parametrize(
    ("sender", "expected"),
    [
        ("MPESA", True),
        ("m-pesa", True),
        ("Safaricom", True),
        ("MPESA-ALERTS", True),
        ("EQUITYBANK", False),
        ("", False),
        (None, False),
    ],
)
def test_is_mpesa_sender(sender: str | None, expected: bool) -> None:
    assert is_mpesa_sender(sender) is expected
