"""
Operation queue feeding the entry point.

Operations are pushed as requests arrive and drained into bundles for a single
``handleOps`` call. The relayer drains bundles of one, so every request
settles its own operation; aggregating more per call only means raising
``max_bundle_size`` and letting the caller wait for a fuller queue.
"""

from collections import deque
from typing import Generic, TypeVar

T = TypeVar("T")


class BundleQueue(Generic[T]):
    """FIFO queue drained in bundles of at most ``max_bundle_size`` items."""

    def __init__(self, max_bundle_size: int = 1, max_pending: int = 1000) -> None:
        """
        Initialize the queue.

        Args:
            max_bundle_size: Largest bundle ``drain`` returns
            max_pending: Largest number of operations waiting at once

        Raises:
            ValueError: If either limit is below one
        """
        if max_bundle_size < 1:
            raise ValueError(f"Bundle size must be at least 1, got {max_bundle_size}")
        if max_pending < 1:
            raise ValueError(f"Pending limit must be at least 1, got {max_pending}")

        self.max_bundle_size = max_bundle_size
        self.max_pending = max_pending
        self._pending: deque[T] = deque()

    def push(self, item: T) -> None:
        """
        Queue an operation.

        Raises:
            OverflowError: If the queue already holds ``max_pending`` items
        """
        if len(self._pending) >= self.max_pending:
            raise OverflowError(f"Bundle queue is full ({self.max_pending} pending)")
        self._pending.append(item)

    def drain(self) -> list[T]:
        """Remove and return the oldest bundle, possibly empty."""
        bundle: list[T] = []
        while self._pending and len(bundle) < self.max_bundle_size:
            bundle.append(self._pending.popleft())
        return bundle

    def __len__(self) -> int:
        return len(self._pending)

    def get_stats(self) -> dict:
        return {
            "pending": len(self._pending),
            "max_bundle_size": self.max_bundle_size,
            "max_pending": self.max_pending,
        }
