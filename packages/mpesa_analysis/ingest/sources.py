"""Message sources: where the sync pipeline reads SMS messages from.

A source is anything with ``read_messages(since)``; the file-backed
:class:`ExportFileSource` reads an SMS export (CSV, JSON or JSON Lines)
chosen by file extension. I/O failures (``OSError``) propagate so the caller
can retry.
"""

from __future__ import annotations

import csv
import json
from collections.abc import Iterable, Mapping
from datetime import datetime
from os import PathLike
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from ..models import SmsMessage
from .adapters.sms_export import to_messages


@runtime_checkable
class MessageSource(Protocol):
    def read_messages(self, since: datetime | None) -> Iterable[SmsMessage]:
        """Return messages delivered at or after ``since`` (all when ``None``)."""
        ...


def _json_rows(text: str, *, path: Path) -> list[Mapping[str, Any]]:
    data = json.loads(text)
    if isinstance(data, Mapping):
        data = data.get("messages")
    if not isinstance(data, list):
        raise ValueError(f"JSON export must be a list or have a 'messages' list: {path}")
    return [row for row in data if isinstance(row, Mapping)]


def _jsonl_rows(text: str) -> list[Mapping[str, Any]]:
    rows: list[Mapping[str, Any]] = []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        obj = json.loads(line)
        if isinstance(obj, Mapping):
            rows.append(obj)
    return rows


def load_messages(export_path: str | PathLike[str]) -> list[SmsMessage]:
    """Read an SMS export file and return validated messages in file order.

    Format by extension: ``.csv``, ``.json`` or ``.jsonl``/``.ndjson``.
    """

    p = Path(export_path)
    suffix = p.suffix.lower()
    if suffix == ".csv":
        with p.open(encoding="utf-8", newline="") as f:
            reader = csv.DictReader(f)
            headers = set(reader.fieldnames or [])
            if "body" not in headers:
                raise csv.Error(f"SMS export CSV has no 'body' column: {export_path}")
            return list(to_messages(reader))
    text = p.read_text(encoding="utf-8")
    if suffix == ".json":
        return list(to_messages(_json_rows(text, path=p)))
    if suffix in (".jsonl", ".ndjson"):
        return list(to_messages(_jsonl_rows(text)))
    raise ValueError(f"unsupported SMS export format {suffix!r}: {export_path}")


class ExportFileSource:
    """:class:`MessageSource` reading one SMS export file on every call."""

    def __init__(self, export_path: str | PathLike[str]) -> None:
        self.export_path = Path(export_path)

    def read_messages(self, since: datetime | None) -> list[SmsMessage]:
        messages = load_messages(self.export_path)
        if since is None:
            return messages
        return [m for m in messages if m.timestamp >= since]


__all__ = ["ExportFileSource", "MessageSource", "load_messages"]
