"""
Bounded batch execution.

Work is split into fixed-size batches; each batch runs on its own thread pool
and must finish completely before the next one starts. Peak concurrency is
therefore the batch size, which matters when every unit of work is an
external process (``mas install``, ``code --install-extension``) or a full
read of a large archive.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def run_bounded(
    items: Sequence[T],
    batch_size: int,
    worker: Callable[[T], R],
    on_batch_done: Optional[Callable[[int, int], None]] = None,
) -> List[R]:
    """
    Run *worker* over *items*, at most *batch_size* at a time.

    Args:
        items: Units of work.
        batch_size: Number of concurrent workers per batch.
        worker: Function applied to each item. Exceptions propagate.
        on_batch_done: Called with ``(processed, total)`` after each batch.

    Returns:
        Worker results. Batches appear in source order; results inside a
        batch appear in completion order.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    total = len(items)
    results: List[R] = []
    processed = 0

    for start in range(0, total, batch_size):
        batch = items[start : start + batch_size]
        with ThreadPoolExecutor(max_workers=len(batch)) as pool:
            futures = [pool.submit(worker, item) for item in batch]
            for future in as_completed(futures):
                results.append(future.result())

        processed += len(batch)
        if on_batch_done:
            on_batch_done(processed, total)

    return results
