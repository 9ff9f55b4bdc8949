"""Adaptive detection threshold from a rolling history of loudness readings.

Once the history has filled, the noise floor is its median and the
detection threshold is its 90th percentile plus a fixed margin. Short loud
events (doors, alarms) barely move either value; because the history rolls,
the threshold follows slow changes in the room.
"""

from __future__ import annotations

import math
from typing import Optional

import numpy as np

from noise_recorder.audio.ring_buffer import RingBuffer

# 4 readings per second -> one minute of history
DEFAULT_HISTORY_SIZE = 240
DEFAULT_MARGIN_DB = 6.0


class NoiseFloorEstimator:
    """Rolling-quantile noise floor and detection threshold.

    Interface:
      estimator = NoiseFloorEstimator(default_threshold_db=-40.0)
      estimator.observe(db)          # once per tick
      estimator.recompute_if_full()  # no-op until the history has filled
      estimator.threshold, estimator.noise_floor
    """

    def __init__(
        self,
        default_threshold_db: float,
        history_size: int = DEFAULT_HISTORY_SIZE,
        margin_db: float = DEFAULT_MARGIN_DB,
        default_noise_floor_db: Optional[float] = None,
    ):
        """
        Args:
            default_threshold_db: Threshold used until the history fills.
            history_size: Number of readings in the rolling history.
            margin_db: Added to the 90th percentile to form the threshold.
            default_noise_floor_db: Noise floor reported until the history
                fills (default: ``default_threshold_db - margin_db``).
        """
        if history_size < 1:
            raise ValueError("history_size must be >= 1")
        if default_noise_floor_db is None:
            default_noise_floor_db = default_threshold_db - margin_db
        for name, value in (
            ("default_threshold_db", default_threshold_db),
            ("margin_db", margin_db),
            ("default_noise_floor_db", default_noise_floor_db),
        ):
            if not math.isfinite(value):
                raise ValueError(f"{name} must be finite")

        self.history_size = history_size
        self.margin_db = float(margin_db)
        self._history = RingBuffer(history_size, dtype=np.float64)
        self._threshold = float(default_threshold_db)
        self._noise_floor = float(default_noise_floor_db)

    def observe(self, db: float) -> None:
        """Add one loudness reading to the history (no recompute)."""
        self._history.put(db)

    def recompute_if_full(self) -> bool:
        """Recompute floor and threshold from the history once it is full.

        Returns:
            True if the derived values were recomputed.
        """
        if not self._history.is_full():
            return False
        values = np.sort(self._history.read_unordered())
        n = len(values)
        self._noise_floor = float(values[n * 5 // 10])
        self._threshold = float(values[n * 9 // 10]) + self.margin_db
        return True

    def update(self, db: float) -> bool:
        """Observe a reading and recompute if possible."""
        self.observe(db)
        return self.recompute_if_full()

    @property
    def is_full(self) -> bool:
        """Whether the history has been filled at least once."""
        return self._history.is_full()

    @property
    def noise_floor(self) -> float:
        """Median of the history (or the configured default)."""
        return self._noise_floor

    @property
    def threshold(self) -> float:
        """Detection threshold in dB (or the configured fallback)."""
        return self._threshold
