"""
Bounded column history backed by a pre-allocated ring.

Keeps the most recent ``capacity`` spectrogram columns with FIFO eviction.
Storage is a single (capacity, band_count) numpy array so that long
sessions (10k+ columns) do not allocate one object per column.

Usage:
    history = ColumnHistory(capacity=10320, band_count=128)
    history.append(column)

    latest = history.latest()
    snapshot = history.snapshot()  # (len, band_count), oldest first
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np


@dataclass
class HistoryStats:
    """Statistics for column history operations."""
    appends: int = 0
    evictions: int = 0     # Columns dropped because the ring was full
    capacity: int = 0
    current_fill: int = 0

    def reset(self):
        """Reset all counters."""
        self.appends = 0
        self.evictions = 0
        self.current_fill = 0


class ColumnHistory:
    """
    Fixed-capacity FIFO of equal-length float columns.

    Index 0 is always the oldest retained column; ``len(history) - 1`` is
    the newest. Single-owner: not safe for concurrent writers.

    Attributes:
        capacity: Maximum number of columns retained
        band_count: Length of every column
    """

    def __init__(self, capacity: int, band_count: int):
        """
        Initialize the history.

        Args:
            capacity: Maximum columns kept before the oldest is evicted
            band_count: Values per column
        """
        if capacity <= 0 or band_count <= 0:
            raise ValueError(
                f"capacity and band_count must be positive, got: {capacity}, {band_count}"
            )
        self.capacity = capacity
        self.band_count = band_count

        # Pre-allocate storage (avoid allocations in hot path)
        self._data = np.zeros((capacity, band_count), dtype=np.float64)

        self._start = 0  # Slot of the oldest column
        self._count = 0

        self._stats = HistoryStats(capacity=capacity)

    def append(self, column: np.ndarray) -> bool:
        """
        Append a column, evicting the oldest one if the ring is full.

        Args:
            column: Array of band_count values

        Returns:
            True if an older column was evicted
        """
        values = np.asarray(column, dtype=np.float64)
        if values.shape != (self.band_count,):
            raise ValueError(
                f"Column must have shape ({self.band_count},), got {values.shape}"
            )

        evicted = self._count == self.capacity
        if evicted:
            slot = self._start
            self._start = (self._start + 1) % self.capacity
            self._stats.evictions += 1
        else:
            slot = (self._start + self._count) % self.capacity
            self._count += 1

        self._data[slot] = values
        self._stats.appends += 1
        return evicted

    def _slot(self, index: int) -> int:
        if index < 0:
            index += self._count
        if not 0 <= index < self._count:
            raise IndexError(f"Column index {index} out of range (0..{self._count - 1})")
        return (self._start + index) % self.capacity

    def __getitem__(self, index: int) -> np.ndarray:
        """Copy of the column at ``index`` (0 = oldest)."""
        return self._data[self._slot(index)].copy()

    def __len__(self) -> int:
        return self._count

    def latest(self) -> Optional[np.ndarray]:
        """Newest column, or None if empty."""
        if self._count == 0:
            return None
        return self[self._count - 1]

    def snapshot(self) -> np.ndarray:
        """
        Copy of all retained columns in insertion order.

        Returns:
            Array of shape (len, band_count), oldest first
        """
        if self._count == 0:
            return np.zeros((0, self.band_count), dtype=np.float64)
        order = (self._start + np.arange(self._count)) % self.capacity
        return self._data[order]

    def view(self) -> np.ndarray:
        """
        Read-only view of the retained columns, oldest first.

        Shares memory with the ring while nothing has been evicted, so the
        result changes with later appends. Falls back to snapshot() once
        the ring has wrapped.
        """
        if self._start != 0:
            return self.snapshot()
        view = self._data[: self._count]
        view.flags.writeable = False
        return view

    def clear(self):
        """Drop all columns."""
        self._start = 0
        self._count = 0

    @property
    def is_empty(self) -> bool:
        return self._count == 0

    @property
    def is_full(self) -> bool:
        return self._count == self.capacity

    @property
    def stats(self) -> HistoryStats:
        """Get history statistics."""
        self._stats.current_fill = self._count
        return self._stats

    def reset_stats(self):
        """Reset statistics counters."""
        self._stats.reset()
