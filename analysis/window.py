from __future__ import annotations

from collections import deque
from typing import Deque

import numpy as np

from .normalize import VECTOR_SIZE


class WindowBuffer:
    """
    Fixed-capacity FIFO of normalized vectors feeding the sequence classifier.

    Pushing onto a full buffer evicts the oldest vector. snapshot() always returns
    a fresh (n, 132) array so an in-flight classification never sees later pushes.
    """

    def __init__(self, capacity: int = 45) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = int(capacity)
        self._items: Deque[np.ndarray] = deque(maxlen=self.capacity)

    def __len__(self) -> int:
        return len(self._items)

    def push(self, vector: np.ndarray) -> None:
        vec = np.asarray(vector, dtype=np.float32)
        if vec.shape != (VECTOR_SIZE,):
            raise ValueError(f"vector must have shape ({VECTOR_SIZE},), got {vec.shape}")
        self._items.append(vec)

    def is_full(self) -> bool:
        return len(self._items) == self.capacity

    def snapshot(self) -> np.ndarray:
        if not self._items:
            return np.empty((0, VECTOR_SIZE), dtype=np.float32)
        return np.stack(list(self._items)).astype(np.float32, copy=True)

    def clear(self) -> None:
        self._items.clear()
