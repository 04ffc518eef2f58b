"""
Bounded trail histories.

Both buffers are fixed-size rings of 3D points backed by a single NumPy
array. Consumers read chronological copies (oldest first); only the
engine appends.
"""

import numpy as np


class _RingBuffer:
    def __init__(self, capacity: int):
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity <= 0:
            raise ValueError(f"capacity must be a positive integer, got {capacity!r}")
        self.capacity = capacity
        self._data = np.zeros((capacity, 3), dtype=np.float64)
        self._start = 0
        self._size = 0

    def __len__(self) -> int:
        return self._size

    def _push(self, point: np.ndarray) -> None:
        idx = (self._start + self._size) % self.capacity
        self._data[idx] = point
        if self._size < self.capacity:
            self._size += 1
        else:
            self._start = (self._start + 1) % self.capacity

    def points(self) -> np.ndarray:
        """Stored points as a read-only (n, 3) array, oldest first."""
        idx = (self._start + np.arange(self._size)) % self.capacity
        out = self._data[idx]
        out.setflags(write=False)
        return out

    def last(self) -> np.ndarray | None:
        if self._size == 0:
            return None
        return self._data[(self._start + self._size - 1) % self.capacity].copy()

    def clear(self) -> None:
        self._start = 0
        self._size = 0


class CometBuffer(_RingBuffer):
    """Short, dense history: one point per tick."""

    def append(self, point) -> bool:
        point = np.asarray(point, dtype=np.float64)
        if point.shape != (3,) or not np.all(np.isfinite(point)):
            return False
        self._push(point)
        return True


class StructureBuffer(_RingBuffer):
    """
    Long, spatially decimated history.

    A point is stored only when it lies more than ``threshold`` away from the
    previously stored point, so a resting cursor adds nothing.
    """

    def __init__(self, capacity: int, threshold: float = 0.3):
        super().__init__(capacity)
        if threshold <= 0:
            raise ValueError(f"threshold must be positive, got {threshold}")
        self.threshold = threshold

    def append(self, point) -> bool:
        point = np.asarray(point, dtype=np.float64)
        if point.shape != (3,) or not np.all(np.isfinite(point)):
            return False
        last = self.last()
        if last is not None and np.linalg.norm(point - last) <= self.threshold:
            return False
        self._push(point)
        return True
