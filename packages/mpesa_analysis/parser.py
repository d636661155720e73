"""M-Pesa confirmation message parser.

Public API:
    - :func:`parse_message`: raw text -> :class:`~mpesa_analysis.models.Transaction`
      or ``None``.
    - :func:`is_mpesa_sender`: sender allow-list check used before parsing.

Parsing tries an explicit, ordered tuple of shape matchers (:data:`MATCHERS`).
Each matcher is a plain function returning the shape-specific fields or
``None``; the first hit wins. The core order is send-money, receive-money,
paybill, till, airtime, withdraw, deposit. Specialised "sent to" shapes
(wallet transfers, data bundles, virtual-card payments) run inside the
send-money slot, ahead of the generic send matcher, and the looser shapes
(M-Shwari, Fuliza, buy-goods) run after deposit so they never shadow a core
shape.

Fields shared by every shape (receipt, fee, balance, date, clues) are extracted
once in :func:`parse_message`.
"""

from __future__ import annotations

import hashlib
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation

from .clues import detect_clues
from .logging_setup import get_logger
from .models import Direction, Transaction, TransactionKind, quantize_amount

# Bump when shape grammars change so stored rows can be traced to a parser.
PARSER_VERSION: int = 1

MPESA_SENDERS: frozenset[str] = frozenset({"MPESA", "M-PESA", "SAFARICOM"})

UNKNOWN_RECEIPT_PREFIX = "UNKNOWN-"

_EAT = timezone(timedelta(hours=3), "EAT")

_logger = get_logger("mpesa_analysis.parser")


# ---- Shared grammar ----------------------------------------------------------

_I = re.IGNORECASE

_AMOUNT = r"ksh\.?\s*(?P<amount>\d[\d,]*(?:\.\d{1,2})?)"
_CONFIRMED_AMOUNT = r"confirmed\.?\s*" + _AMOUNT
_DATE = r"\d{1,2}/\d{1,2}/\d{2,4}"
_PHONE = r"(?:\+?254|0)\d{9}"
_NUMBER_LABEL = r"(?:no\.?\s*|number\s+)?"

_CONFIRMED_RE = re.compile(r"confirmed", _I)
_RECEIPT_TOKEN = r"[A-Z]{2}\d{2}[A-Z0-9]{6,10}"
_RECEIPT_RE = re.compile(r"\b(" + _RECEIPT_TOKEN + r")\b")
_LEADING_RECEIPT_RE = re.compile(r"\s*(" + _RECEIPT_TOKEN + r")\b")
_COST_RE = re.compile(
    r"transaction\s+cost[.:,]?\s*ksh\.?\s*(?P<amount>\d[\d,]*(?:\.\d{1,2})?)", _I
)
_BALANCE_RE = re.compile(
    r"new\s+m-?pesa\s+balance\s+is\s+ksh\.?\s*(?P<amount>\d[\d,]*(?:\.\d{1,2})?)", _I
)
_DATE_TIME_RE = re.compile(
    r"\bon\s+(?P<date>" + _DATE + r")\s+at\s+(?P<time>\d{1,2}:\d{2}\s*[AP]M)", _I
)
_PHONE_RE = re.compile(_PHONE)

# ---- Shape grammars ----------------------------------------------------------

_WALLET_RE = re.compile(
    _CONFIRMED_AMOUNT
    + r"\s+sent\s+to\s+(?P<wallet>AIRTEL\s+MONEY|T-?KASH|MTN(?:\s+MONEY)?|ORANGE\s+MONEY"
    r"|PAYPAL|EAZZY\s+PAY).*?account\s+(?P<account>\d{9,12})",
    _I,
)
_DATA_BUNDLES_RE = re.compile(
    _CONFIRMED_AMOUNT + r"\s+sent\s+to\s+(?P<name>(?:SAFARICOM|AIRTEL)\s+DATA\s+BUNDLES)",
    _I,
)
_GLOBAL_PAY_RE = re.compile(
    _CONFIRMED_AMOUNT
    + r"\s+sent\s+to\s+M-?PESA\s+CARD\s+for\s+account\s+(?P<name>.+?)\s+(?P<ref>\d+)"
    r"\s+on\s+" + _DATE,
    _I,
)
_SEND_RE = re.compile(
    _CONFIRMED_AMOUNT
    + r"\s+sent\s+to\s+(?P<name>.+?)"
    r"(?:\s+for\s+account\s+(?P<account>.+?))?"
    r"(?:\s+(?P<phone>" + _PHONE + r"))?"
    r"\s+on\s+" + _DATE,
    _I,
)
_RECEIVE_RE = re.compile(
    r"confirmed\.?\s*(?:you\s+have\s+)?received\s+"
    + _AMOUNT
    + r"\s+from\s+(?P<name>.+?)"
    r"(?:\s+(?:bulk\s+)?account\s+(?P<account>\d+)|\s+(?P<number>\+?\d{6,13}))?"
    r"\s+on\s+" + _DATE,
    _I,
)
_PAYBILL_RE = re.compile(
    _CONFIRMED_AMOUNT
    + r"\s+paid\s+to\s+(?P<name>.*?)[\s.,]*\bpaybill\s+"
    + _NUMBER_LABEL
    + r"(?P<paybill>\d{5,7})"
    r"(?:[\s.,]*(?:for\s+)?account\s+" + _NUMBER_LABEL + r"(?P<account>[A-Z0-9][A-Z0-9-]*))?",
    _I,
)
_TILL_RE = re.compile(
    _CONFIRMED_AMOUNT
    + r"\s+paid\s+(?:to|for)\s+(?:(?P<name>.+?)[\s.,]+)?till\s+"
    + _NUMBER_LABEL
    + r"(?P<till>\d{5,8})",
    _I,
)
_AIRTIME_RE = re.compile(
    r"confirmed.*?" + _AMOUNT + r".*?\bairtime\b(?:\s+for\s+(?P<phone>" + _PHONE + r"))?",
    _I | re.DOTALL,
)
_AGENT_TAIL = (
    r"(?:agent\s+)?(?P<agent>[^\s.,-]+)"
    r"(?:\s*-\s*(?P<name>.+?)(?=\s+on\s+\d|\s+new\s+m-?pesa|[.,](?:\s|$)|$))?"
)
_WITHDRAW_RE = re.compile(
    _CONFIRMED_AMOUNT + r"\s+withdrawn\b.*?\bfrom\s+" + _AGENT_TAIL, _I
)
_DEPOSIT_RE = re.compile(
    _CONFIRMED_AMOUNT + r"\s+deposited\b.*?\bto\s+" + _AGENT_TAIL, _I
)
_MSHWARI_RE = re.compile(
    _CONFIRMED_AMOUNT + r"\s+transferred\s+(?P<way>from|to)\s+m-?shwari\s+account", _I
)
_FULIZA_RE = re.compile(_CONFIRMED_AMOUNT + r"\s+.*?\bfuliza\b", _I | re.DOTALL)
_BUY_GOODS_RE = re.compile(
    _CONFIRMED_AMOUNT + r"\s+paid\s+to\s+(?P<name>[^.]+?)(?:\s+on\s+" + _DATE + r"|\.)",
    _I,
)

_ACCOUNT_SUFFIX_RE = re.compile(r"\s+for\s+account\s+.*$", _I)
_AGENT_SUFFIX_RE = re.compile(r"\s*-\s*AGENT.*$", _I)
_TRAILING_PUNCT_RE = re.compile(r"[.,]+$")


# ---- Helpers -----------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class _Shape:
    """Shape-specific fields produced by a matcher."""

    kind: TransactionKind
    direction: Direction
    amount: Decimal
    merchant_name: str | None = None
    phone_number: str | None = None
    paybill_number: str | None = None
    till_number: str | None = None
    account_number: str | None = None
    agent_number: str | None = None
    fixed_clues: frozenset[str] = frozenset()


def parse_amount(raw: str | None) -> Decimal | None:
    """Parse ``"1,234.50"`` into ``Decimal("1234.50")``; ``None`` when unparseable."""

    if raw is None:
        return None
    cleaned = raw.replace(",", "").strip()
    if not cleaned:
        return None
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not value.is_finite() or value < 0:
        return None
    return quantize_amount(value)


def _amount_or_none(m: re.Match[str], matcher: str) -> Decimal | None:
    amount = parse_amount(m.group("amount"))
    if amount is None:
        _logger.warning(
            "parse_message:amount_unparseable matcher=%s raw=%r", matcher, m.group("amount")
        )
    return amount


def clean_merchant_name(raw: str | None) -> str | None:
    """Normalize a counterparty name: strip suffixes, collapse spaces, upper-case."""

    if raw is None:
        return None
    s = _ACCOUNT_SUFFIX_RE.sub("", raw.strip())
    s = _AGENT_SUFFIX_RE.sub("", s)
    s = " ".join(s.split())
    s = _TRAILING_PUNCT_RE.sub("", s).strip()
    return s.upper() or None


def _opt(value: str | None) -> str | None:
    if value is None:
        return None
    s = value.strip()
    return s or None


def _extract_receipt(text: str, shape: _Shape) -> str | None:
    """Receipt token: the leading one, else the first not already captured as a field.

    Account, paybill, till, phone and agent values can share the receipt
    grammar (``AB12345678``), so they never count as the receipt.
    """

    m = _LEADING_RECEIPT_RE.match(text)
    if m:
        return m.group(1)
    captured = {
        value
        for value in (
            shape.account_number,
            shape.paybill_number,
            shape.till_number,
            shape.phone_number,
            shape.agent_number,
        )
        if value
    }
    for token in _RECEIPT_RE.findall(text):
        if token not in captured:
            return token
    return None


def _fallback_receipt(text: str) -> str:
    digest = hashlib.sha256(text.strip().encode("utf-8")).hexdigest()
    return f"{UNKNOWN_RECEIPT_PREFIX}{digest[:12]}"


def _extract_optional_amount(pattern: re.Pattern[str], text: str) -> Decimal | None:
    m = pattern.search(text)
    return parse_amount(m.group("amount")) if m else None


def _extract_timestamp(text: str) -> datetime | None:
    m = _DATE_TIME_RE.search(text)
    if not m:
        return None
    day, month, year = (int(p) for p in m.group("date").split("/"))
    if year < 100:
        year += 2000
    clock = "".join(m.group("time").split()).upper()
    try:
        t = datetime.strptime(clock, "%I:%M%p")
        return datetime(year, month, day, t.hour, t.minute, tzinfo=_EAT)
    except ValueError:
        return None


def _agent_shape(
    m: re.Match[str], *, kind: TransactionKind, direction: Direction, amount: Decimal
) -> _Shape:
    agent = m.group("agent").strip()
    return _Shape(
        kind=kind,
        direction=direction,
        amount=amount,
        merchant_name=clean_merchant_name(f"AGENT {agent}"),
        agent_number=agent if agent.isdigit() else None,
    )


# ---- Matchers ----------------------------------------------------------------


def _match_wallet_transfer(text: str) -> _Shape | None:
    m = _WALLET_RE.search(text)
    if not m or (amount := _amount_or_none(m, "wallet_transfer")) is None:
        return None
    wallet = " ".join(m.group("wallet").upper().split())
    return _Shape(
        kind=TransactionKind.SEND_MONEY,
        direction=Direction.EXPENSE,
        amount=amount,
        merchant_name=clean_merchant_name(wallet),
        account_number=m.group("account"),
        fixed_clues=frozenset({"TRANSFER:WALLET", f"TRANSFER:{wallet}"}),
    )


def _match_data_bundles(text: str) -> _Shape | None:
    m = _DATA_BUNDLES_RE.search(text)
    if not m or (amount := _amount_or_none(m, "data_bundles")) is None:
        return None
    return _Shape(
        kind=TransactionKind.PAYBILL,
        direction=Direction.EXPENSE,
        amount=amount,
        merchant_name=clean_merchant_name(m.group("name")),
        fixed_clues=frozenset({"DATA:BUNDLES"}),
    )


def _match_global_pay(text: str) -> _Shape | None:
    # Virtual-card spend: the real merchant sits in the account text.
    m = _GLOBAL_PAY_RE.search(text)
    if not m or (amount := _amount_or_none(m, "global_pay")) is None:
        return None
    return _Shape(
        kind=TransactionKind.PAYBILL,
        direction=Direction.EXPENSE,
        amount=amount,
        merchant_name=clean_merchant_name(m.group("name")),
        account_number=m.group("ref"),
    )


def _match_send_money(text: str) -> _Shape | None:
    m = _SEND_RE.search(text)
    if not m or (amount := _amount_or_none(m, "send_money")) is None:
        return None
    return _Shape(
        kind=TransactionKind.SEND_MONEY,
        direction=Direction.EXPENSE,
        amount=amount,
        merchant_name=clean_merchant_name(m.group("name")),
        phone_number=_opt(m.group("phone")),
        account_number=_opt(m.group("account")),
    )


def _match_receive_money(text: str) -> _Shape | None:
    m = _RECEIVE_RE.search(text)
    if not m or (amount := _amount_or_none(m, "receive_money")) is None:
        return None
    number = _opt(m.group("number"))
    is_phone = number is not None and _PHONE_RE.fullmatch(number) is not None
    return _Shape(
        kind=TransactionKind.RECEIVE_MONEY,
        direction=Direction.INCOME,
        amount=amount,
        merchant_name=clean_merchant_name(m.group("name")),
        phone_number=number if is_phone else None,
        account_number=_opt(m.group("account")) or (None if is_phone else number),
    )


def _match_paybill(text: str) -> _Shape | None:
    m = _PAYBILL_RE.search(text)
    if not m or (amount := _amount_or_none(m, "paybill")) is None:
        return None
    paybill = m.group("paybill")
    return _Shape(
        kind=TransactionKind.PAYBILL,
        direction=Direction.EXPENSE,
        amount=amount,
        merchant_name=clean_merchant_name(m.group("name")) or f"PAYBILL {paybill}",
        paybill_number=paybill,
        account_number=_opt(m.group("account")),
    )


def _match_till(text: str) -> _Shape | None:
    m = _TILL_RE.search(text)
    if not m or (amount := _amount_or_none(m, "till")) is None:
        return None
    till = m.group("till")
    return _Shape(
        kind=TransactionKind.TILL,
        direction=Direction.EXPENSE,
        amount=amount,
        merchant_name=clean_merchant_name(m.group("name")) or f"TILL {till}",
        till_number=till,
    )


def _match_airtime(text: str) -> _Shape | None:
    m = _AIRTIME_RE.search(text)
    if not m or (amount := _amount_or_none(m, "airtime")) is None:
        return None
    return _Shape(
        kind=TransactionKind.AIRTIME,
        direction=Direction.EXPENSE,
        amount=amount,
        merchant_name="AIRTIME PURCHASE",
        phone_number=_opt(m.group("phone")),
        fixed_clues=frozenset({"AIRTIME:AIRTIME"}),
    )


def _match_withdraw(text: str) -> _Shape | None:
    m = _WITHDRAW_RE.search(text)
    if not m or (amount := _amount_or_none(m, "withdraw")) is None:
        return None
    return _agent_shape(
        m, kind=TransactionKind.WITHDRAW, direction=Direction.EXPENSE, amount=amount
    )


def _match_deposit(text: str) -> _Shape | None:
    m = _DEPOSIT_RE.search(text)
    if not m or (amount := _amount_or_none(m, "deposit")) is None:
        return None
    return _agent_shape(
        m, kind=TransactionKind.DEPOSIT, direction=Direction.INCOME, amount=amount
    )


def _match_mshwari_transfer(text: str) -> _Shape | None:
    m = _MSHWARI_RE.search(text)
    if not m or (amount := _amount_or_none(m, "mshwari_transfer")) is None:
        return None
    incoming = m.group("way").lower() == "from"
    return _Shape(
        kind=TransactionKind.SEND_MONEY,
        direction=Direction.INCOME if incoming else Direction.EXPENSE,
        amount=amount,
        merchant_name="M-SHWARI",
        fixed_clues=frozenset({"SAVINGS:MSHWARI", "TRANSFER:IN" if incoming else "TRANSFER:OUT"}),
    )


def _match_fuliza(text: str) -> _Shape | None:
    m = _FULIZA_RE.search(text)
    if not m or (amount := _amount_or_none(m, "fuliza")) is None:
        return None
    return _Shape(
        kind=TransactionKind.DEPOSIT,
        direction=Direction.INCOME,
        amount=amount,
        merchant_name="FULIZA M-PESA",
        fixed_clues=frozenset({"LOAN:FULIZA"}),
    )


def _match_buy_goods(text: str) -> _Shape | None:
    # Lipa-na-M-Pesa merchant with no number in the text; never a paybill.
    m = _BUY_GOODS_RE.search(text)
    if not m or (amount := _amount_or_none(m, "buy_goods")) is None:
        return None
    return _Shape(
        kind=TransactionKind.TILL,
        direction=Direction.EXPENSE,
        amount=amount,
        merchant_name=clean_merchant_name(m.group("name")),
    )


Matcher = Callable[[str], _Shape | None]

MATCHERS: tuple[tuple[str, Matcher], ...] = (
    ("wallet_transfer", _match_wallet_transfer),
    ("data_bundles", _match_data_bundles),
    ("global_pay", _match_global_pay),
    ("send_money", _match_send_money),
    ("receive_money", _match_receive_money),
    ("paybill", _match_paybill),
    ("till", _match_till),
    ("airtime", _match_airtime),
    ("withdraw", _match_withdraw),
    ("deposit", _match_deposit),
    ("mshwari_transfer", _match_mshwari_transfer),
    ("fuliza", _match_fuliza),
    ("buy_goods", _match_buy_goods),
)
"""Shape matchers in priority order; the first non-``None`` result wins."""


# ---- Public API --------------------------------------------------------------


def is_mpesa_sender(sender: str | None) -> bool:
    """Return True when ``sender`` contains a known M-Pesa sender id (any case)."""

    if not sender:
        return False
    upper = sender.upper()
    return any(token in upper for token in MPESA_SENDERS)


def parse_message(
    text: str, *, timestamp: datetime | None = None, whole_words: bool = False
) -> Transaction | None:
    """Parse one confirmation message into a :class:`Transaction`.

    Returns ``None`` when the text is not a confirmed M-Pesa event or matches
    no known shape; both are normal outcomes, not errors.

    ``timestamp`` (the message's delivery time) wins over any date stated in
    the text. Without either the record has ``timestamp=None``.

    A message that matches a shape but carries no receipt token is given a
    synthetic identity derived from a hash of its text (``UNKNOWN-<hex>``), so
    re-parsing the same message yields the same key and distinct messages
    never collapse into one record.

    ``whole_words`` is passed to :func:`~mpesa_analysis.clues.detect_clues`.
    """

    if not text or not _CONFIRMED_RE.search(text):
        return None

    shape: _Shape | None = None
    for name, matcher in MATCHERS:
        shape = matcher(text)
        if shape is not None:
            _logger.debug("parse_message:matched matcher=%s", name)
            break
    if shape is None:
        return None

    receipt = _extract_receipt(text, shape)
    if receipt is None:
        receipt = _fallback_receipt(text)
        _logger.warning(
            "parse_message:receipt_missing kind=%s fallback=%s", shape.kind.value, receipt
        )

    clues = (
        detect_clues(shape.merchant_name, text, whole_words=whole_words) | shape.fixed_clues
    )

    return Transaction(
        receipt_number=receipt,
        amount=shape.amount,
        direction=shape.direction,
        kind=shape.kind,
        merchant_name=shape.merchant_name,
        phone_number=shape.phone_number,
        paybill_number=shape.paybill_number,
        till_number=shape.till_number,
        account_number=shape.account_number,
        agent_number=shape.agent_number,
        transaction_cost=_extract_optional_amount(_COST_RE, text),
        new_balance=_extract_optional_amount(_BALANCE_RE, text),
        clues=clues,
        timestamp=timestamp if timestamp is not None else _extract_timestamp(text),
        raw_body=text,
    )


__all__ = [
    "MATCHERS",
    "MPESA_SENDERS",
    "PARSER_VERSION",
    "UNKNOWN_RECEIPT_PREFIX",
    "clean_merchant_name",
    "is_mpesa_sender",
    "parse_amount",
    "parse_message",
]
