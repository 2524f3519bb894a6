from __future__ import annotations

import threading
from typing import Callable, Generic, TypeVar

T = TypeVar("T")


class BatchBuffer(Generic[T]):
    """Thread-safe accumulator that hands off a batch every ``max_size`` items.

    ``push`` and ``drain`` both swap the whole list out under one lock, so an
    item is either still resident or in exactly one batch.  ``on_batch`` runs
    while the lock is held and must only enqueue work (no I/O); if it raises,
    the batch stays in the buffer.
    """

    def __init__(self, max_size: int, on_batch: Callable[[list[T]], None]) -> None:
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        self._max_size = max_size
        self._on_batch = on_batch
        self._items: list[T] = []
        self._lock = threading.Lock()

    @property
    def max_size(self) -> int:
        return self._max_size

    def push(self, item: T) -> None:
        with self._lock:
            self._items.append(item)
            if len(self._items) < self._max_size:
                return
            batch = self._items
            self._items = []
            try:
                self._on_batch(batch)
            except BaseException:
                # Not handed off: keep the items resident.
                self._items = batch
                raise

    def drain(self) -> list[T]:
        """Take everything currently buffered, in insertion order."""
        with self._lock:
            batch = self._items
            self._items = []
        return batch

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
