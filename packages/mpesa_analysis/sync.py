"""Batch sync: message source -> parser -> transaction store.

One call to :func:`run_sync` processes one bounded batch:

1. read messages delivered within the lookback window, retrying transient
   I/O failures (``OSError``) with backoff;
2. keep messages from M-Pesa sender ids;
3. parse them concurrently on a bounded thread pool (:func:`p_map`);
4. hand the parsed records to the store in a single insert-or-ignore write.

A ``threading.Event`` passed as ``cancel`` stops the run between stages (and
stops submitting parse work). Nothing is written once cancellation is seen,
so a cancelled run leaves the store as it was.
"""

from __future__ import annotations

import os
import random
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import IntEnum, StrEnum

from .ingest import MessageSource
from .logging_setup import get_logger
from .models import SmsMessage, Transaction
from .parser import is_mpesa_sender, parse_message
from .pmap import p_map, p_map_skip
from .store import TransactionStore

_MAX_ATTEMPTS: int = 3
_BACKOFF_SCHEDULE_SEC: tuple[float, ...] = (0.5, 2.0)
_JITTER_PCT: float = 0.20

_WORKERS_ENV_VAR = "MPESA_SYNC_MAX_WORKERS"
_DEFAULT_WORKERS = 4
_MAX_WORKERS_CAP = 32

_logger = get_logger("mpesa_analysis.sync")


class LookbackPeriod(IntEnum):
    """How far back a sync reads, in calendar months."""

    ONE_MONTH = 1
    THREE_MONTHS = 3
    SIX_MONTHS = 6
    TWELVE_MONTHS = 12

    @classmethod
    def from_months(cls, months: int) -> LookbackPeriod:
        try:
            return cls(months)
        except ValueError:
            allowed = ", ".join(str(p.value) for p in cls)
            raise ValueError(f"lookback must be one of {allowed} months, got {months}") from None

    def start(self, now: datetime) -> datetime:
        """Same day-of-month ``self`` months before ``now``, clamped to month end."""

        total = now.year * 12 + (now.month - 1) - int(self)
        year, month = divmod(total, 12)
        month += 1
        day = now.day
        while True:
            try:
                return now.replace(year=year, month=month, day=day)
            except ValueError:
                day -= 1


DEFAULT_LOOKBACK = LookbackPeriod.THREE_MONTHS


class SyncStatus(StrEnum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class SyncResult:
    status: SyncStatus
    scanned: int
    parsed: int
    inserted: int
    skipped_duplicates: int


class SyncError(RuntimeError):
    """Terminal sync failure; ``status`` is a short human-readable summary."""

    def __init__(self, status: str) -> None:
        super().__init__(status)
        self.status = status


def resolve_max_workers(n_items: int) -> int:
    """Parse concurrency from ``MPESA_SYNC_MAX_WORKERS`` (default 4).

    Capped to ``n_items`` and to 32; never below 1.
    """

    env_workers = os.getenv(_WORKERS_ENV_VAR)
    try:
        max_workers = int(env_workers) if env_workers else None
    except ValueError:
        max_workers = None
    if max_workers is None or max_workers < 1:
        max_workers = _DEFAULT_WORKERS
    return max(1, min(max_workers, n_items, _MAX_WORKERS_CAP))


def _sleep_backoff(attempt_no: int) -> None:
    if attempt_no - 1 < len(_BACKOFF_SCHEDULE_SEC):
        base = _BACKOFF_SCHEDULE_SEC[attempt_no - 1]
    else:
        base = _BACKOFF_SCHEDULE_SEC[-1]
    jitter = base * _JITTER_PCT
    time.sleep(max(0.0, base + random.uniform(-jitter, jitter)))


def _read_with_retry(
    source: MessageSource,
    since: datetime,
    *,
    max_attempts: int,
    backoff: Callable[[int], None],
) -> list[SmsMessage]:
    attempt = 1
    while True:
        try:
            return list(source.read_messages(since))
        except OSError as e:
            if attempt >= max_attempts:
                _logger.error(
                    "run_sync:read_failed_terminal attempts=%d error=%s",
                    attempt,
                    e.__class__.__name__,
                )
                raise SyncError(f"Failed after {attempt} attempts: {e}") from e
            _logger.warning(
                "run_sync:read_retry attempt=%d error=%s", attempt, e.__class__.__name__
            )
            backoff(attempt)
            attempt += 1


def run_sync(
    source: MessageSource,
    store: TransactionStore,
    *,
    lookback: LookbackPeriod = DEFAULT_LOOKBACK,
    now: datetime | None = None,
    concurrency: int | None = None,
    cancel: threading.Event | None = None,
    max_attempts: int = _MAX_ATTEMPTS,
    backoff: Callable[[int], None] = _sleep_backoff,
    whole_words: bool = False,
) -> SyncResult:
    """Run one sync batch and report what happened.

    Parameters
    ----------
    source:
        Where messages come from; ``read_messages(since)`` may raise
        ``OSError`` for transient failures.
    store:
        Destination; receives one ``upsert_many`` call per completed run.
    lookback:
        Reading window ending at ``now`` (default three months).
    now:
        Reference instant; defaults to the current UTC time.
    concurrency:
        Parser threads; defaults to :func:`resolve_max_workers`.
    cancel:
        Optional event; once set, the run stops before its next stage and
        returns with ``status=CANCELLED``.
    max_attempts / backoff:
        Read retry budget and the sleep function called with the attempt
        number between attempts.
    whole_words:
        Clue matching mode passed to :func:`~mpesa_analysis.parser.parse_message`.

    Raises
    ------
    SyncError
        When reading still fails after ``max_attempts`` attempts.
    """

    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    def _cancelled() -> bool:
        return cancel is not None and cancel.is_set()

    since = lookback.start(now or datetime.now(UTC))
    t0 = time.perf_counter()
    _logger.info("run_sync:start lookback_months=%d since=%s", int(lookback), since.isoformat())

    if _cancelled():
        return SyncResult(SyncStatus.CANCELLED, 0, 0, 0, 0)

    messages = _read_with_retry(source, since, max_attempts=max_attempts, backoff=backoff)
    candidates = [m for m in messages if is_mpesa_sender(m.sender)]
    scanned = len(messages)
    if _cancelled():
        return SyncResult(SyncStatus.CANCELLED, scanned, 0, 0, 0)

    def _parse_one(msg: SmsMessage) -> Transaction | object:
        if _cancelled():
            return p_map_skip
        tx = parse_message(msg.body, timestamp=msg.timestamp, whole_words=whole_words)
        return p_map_skip if tx is None else tx

    parsed: list[Transaction] = []
    if candidates:
        workers = concurrency if concurrency is not None else resolve_max_workers(len(candidates))
        parsed = p_map(candidates, _parse_one, concurrency=workers, cancel=cancel)
    if _cancelled():
        _logger.info("run_sync:cancelled scanned=%d parsed=%d", scanned, len(parsed))
        return SyncResult(SyncStatus.CANCELLED, scanned, len(parsed), 0, 0)

    inserted = store.upsert_many(parsed) if parsed else 0
    result = SyncResult(
        status=SyncStatus.COMPLETED,
        scanned=scanned,
        parsed=len(parsed),
        inserted=inserted,
        skipped_duplicates=len(parsed) - inserted,
    )
    _logger.info(
        "run_sync:done scanned=%d mpesa=%d parsed=%d inserted=%d duplicates=%d latency_ms=%.2f",
        result.scanned,
        len(candidates),
        result.parsed,
        result.inserted,
        result.skipped_duplicates,
        (time.perf_counter() - t0) * 1000.0,
    )
    return result


__all__ = [
    "DEFAULT_LOOKBACK",
    "LookbackPeriod",
    "SyncError",
    "SyncResult",
    "SyncStatus",
    "resolve_max_workers",
    "run_sync",
]
