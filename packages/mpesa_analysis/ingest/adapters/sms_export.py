"""Adapters mapping SMS inbox exports to :class:`SmsMessage` records.

Supported row shapes (CSV rows or JSON objects):

- sender: ``address`` (Android SMS backup) or ``sender``
- text: ``body``
- delivery time: ``date`` or ``timestamp_millis``, epoch milliseconds

Rows that fail validation are skipped and counted in a warning; one bad row
does not abort an import.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from typing import Any

from pydantic import ValidationError

from ...logging_setup import get_logger
from ...models import SmsMessage

_SENDER_KEYS = ("address", "sender")
_TIME_KEYS = ("date", "timestamp_millis")

_logger = get_logger("mpesa_analysis.ingest.sms_export")


def _first(row: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for k in keys:
        v = row.get(k)
        if v is not None and str(v).strip() != "":
            return v
    return None


def _to_millis(raw: Any) -> Any:
    # CSV cells arrive as strings; "1737450000000.0" is seen in some exports.
    if isinstance(raw, str):
        s = raw.strip()
        if s.endswith(".0"):
            s = s[:-2]
        return s
    return raw


def to_messages(rows: Iterable[Mapping[str, Any]]) -> Iterator[SmsMessage]:
    """Validate export rows into messages, skipping malformed rows."""

    skipped = 0
    for row in rows:
        try:
            yield SmsMessage(
                sender=_first(row, _SENDER_KEYS),
                body=row.get("body"),
                timestamp_millis=_to_millis(_first(row, _TIME_KEYS)),
            )
        except ValidationError as e:
            skipped += 1
            _logger.debug("to_messages: skipping row (%d errors)", e.error_count())
    if skipped:
        _logger.warning("to_messages: skipped %d malformed rows", skipped)


__all__ = ["to_messages"]
