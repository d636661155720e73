"""Data models for ``mpesa_analysis``.

Two families live here:

- :class:`Transaction`, the unit of truth produced by the message parser. It is
  a frozen ``dataclass`` with a ``kind`` discriminator and per-kind optional
  fields (one type for every shape; no subclass per transaction kind).
- Derived views (:class:`MerchantFrequency`, :class:`PaybillFrequency`,
  :class:`RecurringBill`, :class:`CategorySuggestion`, :class:`InsightsReport`)
  plus the validated input record :class:`SmsMessage`. These are pydantic
  models so reports serialize to JSON without extra glue.

Derived views carry no identity and are never persisted; they are recomputed
from the full transaction set on every run.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

_CENTS = Decimal("0.01")


def quantize_amount(value: Decimal) -> Decimal:
    """Round ``value`` to two decimal places (half-up)."""

    return value.quantize(_CENTS, rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------------
# Core record
# ---------------------------------------------------------------------------


class Direction(StrEnum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class TransactionKind(StrEnum):
    SEND_MONEY = "SEND_MONEY"
    RECEIVE_MONEY = "RECEIVE_MONEY"
    PAYBILL = "PAYBILL"
    TILL = "TILL"
    AIRTIME = "AIRTIME"
    WITHDRAW = "WITHDRAW"
    DEPOSIT = "DEPOSIT"


@dataclass(frozen=True, slots=True)
class Transaction:
    """A single confirmed mobile-money event.

    ``receipt_number`` is the identity used for deduplication. ``amount`` is
    always a non-negative magnitude; whether money came in or went out is
    carried by ``direction`` alone.

    Attributes
    ----------
    receipt_number:
        Receipt code from the message (e.g. ``QK87ABCD12``).
    amount:
        Magnitude with two decimal places.
    direction / kind:
        Money flow and message shape.
    merchant_name:
        Cleaned, upper-cased counterparty (person, business, agent).
    phone_number, paybill_number, till_number, account_number, agent_number:
        Counterparty identifiers; which ones are set depends on ``kind``.
    transaction_cost / new_balance:
        Fee and post-transaction balance when the message states them.
    clues:
        ``"CATEGORY:KEYWORD"`` tags from the keyword taxonomy.
    timestamp:
        Timezone-aware instant of the event, when known.
    raw_body:
        Full message text the record was parsed from.
    """

    receipt_number: str
    amount: Decimal
    direction: Direction
    kind: TransactionKind
    merchant_name: str | None = None
    phone_number: str | None = None
    paybill_number: str | None = None
    till_number: str | None = None
    account_number: str | None = None
    agent_number: str | None = None
    transaction_cost: Decimal | None = None
    new_balance: Decimal | None = None
    clues: frozenset[str] = frozenset()
    timestamp: datetime | None = None
    raw_body: str | None = None

    def __post_init__(self) -> None:
        if not self.receipt_number:
            raise ValueError("Transaction.receipt_number must be non-empty")
        if self.amount < 0:
            raise ValueError("Transaction.amount must be a non-negative magnitude")


# ---------------------------------------------------------------------------
# Input record
# ---------------------------------------------------------------------------


class SmsMessage(BaseModel):
    """One message as delivered by a message source (SMS inbox export)."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    sender: str
    body: str
    timestamp_millis: int = Field(ge=0)

    @property
    def timestamp(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp_millis / 1000, tz=UTC)


# ---------------------------------------------------------------------------
# Derived views
# ---------------------------------------------------------------------------


class _DerivedView(BaseModel):
    model_config = ConfigDict(frozen=True)


class MerchantFrequency(_DerivedView):
    """Per-merchant statistics over the full transaction set.

    ``name`` is ``None`` for the group of transactions without a merchant.
    """

    name: str | None
    count: int
    total_amount: Decimal
    average_amount: Decimal
    suggested_category: str | None = None
    recent_receipts: tuple[str, ...] = ()


class PaybillFrequency(_DerivedView):
    paybill_number: str | None
    merchant_name: str | None = None
    count: int
    total_amount: Decimal
    average_amount: Decimal


class RecurringBill(_DerivedView):
    paybill_number: str
    merchant_name: str | None = None
    occurrence_count: int
    distinct_periods: int
    average_amount: Decimal
    suggested_category: str | None = None


class CategorySuggestion(_DerivedView):
    """A proposed spending category built from similarly-clued transactions.

    ``receipt_numbers`` keeps discovery order so a suggestion can be traced
    back to the exact messages that produced it.
    """

    category_name: str
    icon_tag: str
    color_tag: str
    transaction_count: int
    total_amount: Decimal
    receipt_numbers: tuple[str, ...]


class InsightsReport(_DerivedView):
    total_transactions: int
    frequent_merchants: tuple[MerchantFrequency, ...] = ()
    recurring_bills: tuple[RecurringBill, ...] = ()
    category_suggestions: tuple[CategorySuggestion, ...] = ()

    @field_validator("total_transactions")
    @classmethod
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("total_transactions must be >= 0")
        return v


__all__ = [
    "CategorySuggestion",
    "Direction",
    "InsightsReport",
    "MerchantFrequency",
    "PaybillFrequency",
    "RecurringBill",
    "SmsMessage",
    "Transaction",
    "TransactionKind",
    "quantize_amount",
]
