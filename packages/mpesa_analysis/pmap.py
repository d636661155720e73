"""Bounded, order-preserving parallel map over a thread pool.

Used by the sync pipeline to parse message batches concurrently. The caller
gives an iterable, a mapper and a ``concurrency`` cap; the pool mechanics
(submission window, shutdown, cancellation) stay in here.

- ``stop_on_error`` (default True): fail fast on the first mapper error; when
  False, wait for every task and raise an ``ExceptionGroup`` of all failures.
- ``p_map_skip``: a mapper returns this sentinel to drop an item from the
  output without disturbing the order of the rest.
- ``cancel``: an optional ``threading.Event``; once set, no further items are
  submitted. Work already running finishes and its results are kept.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import TypeVar

InT = TypeVar("InT")
OutT = TypeVar("OutT")


class _Skip:
    __slots__ = ()

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return "p_map_skip"


p_map_skip: object = _Skip()


def p_map(
    iterable: Iterable[InT],
    mapper: Callable[[InT], OutT | object],
    *,
    concurrency: int,
    stop_on_error: bool = True,
    cancel: threading.Event | None = None,
) -> list[OutT]:
    """Map ``iterable`` through ``mapper`` with at most ``concurrency`` calls in flight.

    The result keeps input order and omits items mapped to ``p_map_skip``
    as well as items never submitted because ``cancel`` was set.
    """

    if not isinstance(concurrency, int) or concurrency < 1:
        raise ValueError("concurrency must be a positive integer")

    it = enumerate(iterable)
    results: dict[int, OutT | object] = {}
    errors: list[Exception] = []
    submitted = 0
    future_to_idx: dict[Future, int] = {}

    def _submit(pool: ThreadPoolExecutor) -> Future | None:
        nonlocal submitted
        if cancel is not None and cancel.is_set():
            return None
        try:
            idx, item = next(it)
        except StopIteration:
            return None
        fut = pool.submit(mapper, item)
        future_to_idx[fut] = idx
        submitted += 1
        return fut

    with ThreadPoolExecutor(max_workers=concurrency) as pool:
        active: set[Future] = set()
        for _ in range(concurrency):
            fut = _submit(pool)
            if fut is None:
                break
            active.add(fut)

        while active:
            done, active = wait(active, return_when=FIRST_COMPLETED)
            for fut in done:
                idx = future_to_idx.pop(fut)
                try:
                    results[idx] = fut.result()
                except Exception as e:  # noqa: BLE001
                    if stop_on_error:
                        try:
                            pool.shutdown(wait=False, cancel_futures=True)
                        finally:
                            raise
                    errors.append(e)

            for _ in range(len(done)):
                fut = _submit(pool)
                if fut is None:
                    break
                active.add(fut)

    if errors:
        raise ExceptionGroup("p_map: one or more mapper calls failed", errors)

    out: list[OutT] = []
    for i in range(submitted):
        val = results.get(i, p_map_skip)
        if val is p_map_skip:
            continue
        out.append(val)  # type: ignore[arg-type]
    return out


__all__ = ["p_map", "p_map_skip"]
