"""Bounded fan-out for coroutine-producing callables."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Iterable, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def chunked(items: Sequence[T], size: int) -> list[Sequence[T]]:
    if size < 1:
        raise ValueError("size must be a positive integer")
    return [items[start : start + size] for start in range(0, len(items), size)]


async def gather_in_batches(
    items: Iterable[T],
    size: int,
    func: Callable[[T], Awaitable[R]],
) -> list[R]:
    """Run ``func`` over ``items`` with at most ``size`` calls in flight.

    Each batch is awaited in full before the next one starts. Results keep the
    input order. The first exception propagates and later batches never run.
    """

    results: list[R] = []
    for batch in chunked(list(items), size):
        results.extend(await asyncio.gather(*(func(item) for item in batch)))
    return results


__all__ = ["chunked", "gather_in_batches"]
