"""Fixed-capacity ring buffer with overwrite semantics and ordered reads."""

import numpy as np


class RingBuffer:
    """Fixed-size ring buffer holding the most recent ``size`` values.

    Writes never fail: once the buffer has wrapped, each write overwrites the
    oldest value. Reads return copies, either in storage order
    (``read_unordered``) or oldest to newest (``read_ordered_all`` /
    ``read_ordered_last``).

    Interface:
      ring = RingBuffer(size=5, dtype=np.int64)
      for v in range(1, 7):
          ring.put(v)
      ring.read_ordered_all()      # [2, 3, 4, 5, 6]
      ring.read_ordered_last(3)    # [4, 5, 6]
      ring.read_unordered()        # [6, 2, 3, 4, 5]
    """

    def __init__(self, size: int, dtype: type = np.float32):
        if size <= 0:
            raise ValueError("size must be > 0")
        self.size = size
        self.dtype = dtype
        self._data = np.zeros(size, dtype=dtype)
        self._write_idx = 0
        self._count = 0
        self._wraps = 0
        self._written = 0

    def put(self, item) -> None:
        """Write one value at the cursor; overwrites the oldest when full."""
        self._data[self._write_idx] = item
        self._write_idx = (self._write_idx + 1) % self.size
        if self._write_idx == 0:
            self._wraps += 1
        if self._count < self.size:
            self._count += 1
        self._written += 1

    def extend(self, chunk: np.ndarray) -> None:
        """Write every value of ``chunk`` in order, same result as repeated ``put``."""
        n = len(chunk)
        if n == 0:
            return
        if n >= self.size:
            # Only the last `size` values survive; lay them out where
            # sequential puts would have left them.
            end = (self._write_idx + n) % self.size
            tail = np.asarray(chunk[-self.size :], dtype=self.dtype)
            self._data[:] = np.roll(tail, end)
            self._wraps += (self._write_idx + n) // self.size
            self._write_idx = end
            self._count = self.size
            self._written += n
            return
        start = self._write_idx
        end = start + n
        if end <= self.size:
            self._data[start:end] = chunk
        else:
            head = self.size - start
            self._data[start:] = chunk[:head]
            self._data[: end - self.size] = chunk[head:]
        self._wraps += end // self.size
        self._write_idx = end % self.size
        self._count = min(self._count + n, self.size)
        self._written += n

    def read_unordered(self) -> np.ndarray:
        """All occupied slots in storage order (not time order)."""
        if self._count < self.size:
            # Before the first wrap the occupied slots are exactly [0, count).
            return self._data[: self._count].copy()
        return self._data.copy()

    def read_ordered_all(self) -> np.ndarray:
        """All occupied slots, oldest to newest."""
        if self._count < self.size:
            return self._data[: self._count].copy()
        return np.roll(self._data, -self._write_idx)

    def read_ordered_last(self, k: int) -> np.ndarray:
        """The ``k`` most recent writes, oldest to newest.

        The window starts at ``(cursor - k) mod size``; slots in the window
        that were never written are skipped.
        """
        if k < 0 or k > self.size:
            raise ValueError(f"k must be in [0, {self.size}], got {k}")
        if k == 0:
            return np.array([], dtype=self.dtype)
        start = (self._write_idx - k) % self.size
        idx = (start + np.arange(k)) % self.size
        if self._count < self.size:
            idx = idx[idx < self._count]
        return self._data[idx]

    def is_full(self) -> bool:
        """True once every slot has been written at least once."""
        return self._wraps > 0

    @property
    def written(self) -> int:
        """Total number of values written since creation (or ``clear``)."""
        return self._written

    def __len__(self) -> int:
        return self._count

    def clear(self) -> None:
        """Reset buffer."""
        self._data[:] = 0
        self._write_idx = 0
        self._count = 0
        self._wraps = 0
        self._written = 0
