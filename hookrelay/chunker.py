from __future__ import annotations

from typing import Optional, Sequence, TypeVar

T = TypeVar("T")

DEFAULT_MIN_BATCH = 20
DEFAULT_DIVISOR = 10


def batch_size_for(
    count: int,
    min_batch: int = DEFAULT_MIN_BATCH,
    divisor: int = DEFAULT_DIVISOR,
) -> int:
    """Fewer than ``min_batch`` targets go out in one batch; otherwise a tenth."""

    if count < min_batch:
        return min_batch
    return max(1, count // divisor)


def chunk(
    targets: Sequence[T],
    max_batch_items: Optional[int] = None,
    min_batch: int = DEFAULT_MIN_BATCH,
    divisor: int = DEFAULT_DIVISOR,
) -> list[list[T]]:
    """Split ``targets`` into ordered batches that concatenate back to it."""

    size = max_batch_items
    if size is None:
        size = batch_size_for(len(targets), min_batch, divisor)
    if size < 1:
        raise ValueError("batch size must be positive")
    return [list(targets[start : start + size]) for start in range(0, len(targets), size)]
