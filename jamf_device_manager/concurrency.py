"""
Concurrency utilities for parallel API calls.

Provides thread-based concurrency for I/O-bound lookups. Only inventory search
uses it; bulk operations stay sequential.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Iterable, List, Optional, Sequence, TypeVar

from .utils import chunked

T = TypeVar("T")


def execute_window(
    func: Callable[[Any], Optional[T]],
    items: Iterable[Any],
    max_workers: int = 5,
    logger: Optional[logging.Logger] = None,
    description: str = "Processing items",
) -> List[Optional[T]]:
    """
    Run ``func`` over ``items`` with at most ``max_workers`` calls in flight.

    Results come back in input order. A call that raises is logged and
    yields ``None`` in its slot, so one bad lookup cannot sink the window.

    Examples:
        >>> execute_window(lambda x: x * 2, [1, 2, 3], max_workers=2)
        [2, 4, 6]
    """
    log = logger or logging.getLogger(__name__)
    items_list = list(items)
    total = len(items_list)

    if total == 0:
        return []

    results: List[Optional[T]] = [None] * total
    errors = 0

    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, total))) as executor:
        future_to_index = {executor.submit(func, item): idx for idx, item in enumerate(items_list)}
        for future in as_completed(future_to_index):
            idx = future_to_index[future]
            try:
                results[idx] = future.result()
            except Exception as exc:
                errors += 1
                log.warning("%s: skipped item at index %d: %s", description, idx, exc)

    log.debug("%s: completed %d/%d items (%d errors)", description, total - errors, total, errors)
    return results


def execute_in_batches(
    func: Callable[[Any], Optional[T]],
    items: Sequence[Any],
    batch_size: int = 20,
    max_workers: int = 5,
    cancel_event: Optional[threading.Event] = None,
    on_batch: Optional[Callable[[int, int, List[T]], bool]] = None,
    logger: Optional[logging.Logger] = None,
    description: str = "Processing items",
) -> List[T]:
    """
    Process ``items`` batch by batch, each batch through ``execute_window``.

    Non-``None`` results are merged in discovery order. Cancellation is
    checked before every batch. ``on_batch(done, total_batches, results)``
    runs after each batch; returning False stops early.
    """
    log = logger or logging.getLogger(__name__)
    batches = list(chunked(items, batch_size))
    merged: List[T] = []

    for index, batch in enumerate(batches):
        if cancel_event is not None and cancel_event.is_set():
            log.info("%s cancelled at batch %d/%d", description, index, len(batches))
            break
        for result in execute_window(func, batch, max_workers=max_workers, logger=log, description=description):
            if result is not None:
                merged.append(result)
        if on_batch is not None and on_batch(index + 1, len(batches), merged) is False:
            log.debug("%s stopped early after batch %d/%d", description, index + 1, len(batches))
            break

    return merged
