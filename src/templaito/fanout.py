"""Bounded thread-pool fan-out for independent per-URL and per-country work."""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import TypeVar

from templaito.errors import OperationCancelled

T = TypeVar("T")
R = TypeVar("R")


def fan_out(
    func: Callable[[T], R],
    items: Sequence[T],
    max_workers: int = 4,
    cancel: threading.Event | None = None,
) -> list[R]:
    """Run ``func`` over ``items`` concurrently and return results in input order.

    ``func`` is expected to capture its own per-item failures. An exception
    that escapes it is re-raised here after the pool shuts down.

    If ``cancel`` is set, work not yet started is skipped and
    OperationCancelled is raised once in-flight calls return.
    """
    if not items:
        return []

    def _guarded(item: T) -> R:
        if cancel is not None and cancel.is_set():
            raise OperationCancelled("Request was cancelled")
        return func(item)

    results: list = [None] * len(items)
    workers = max(1, min(max_workers, len(items)))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = {pool.submit(_guarded, item): i for i, item in enumerate(items)}
        try:
            for future in as_completed(futures):
                results[futures[future]] = future.result()
        except BaseException:
            for future in futures:
                future.cancel()
            raise
    return results
