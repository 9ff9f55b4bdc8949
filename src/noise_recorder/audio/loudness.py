"""Time-domain loudness: RMS amplitude and its decibel value."""

import math

import numpy as np

# Lowest reported level. Silence, empty windows and invalid input map here so
# the classifier never sees NaN or -inf.
DB_FLOOR = -120.0


def rms(samples) -> float:
    """Root-mean-square amplitude of a sample window.

    Computed in float64. An empty window has no energy and returns 0.0.
    """
    data = np.asarray(samples, dtype=np.float64)
    if data.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(data))))


def to_decibel(value: float, floor_db: float = DB_FLOOR) -> float:
    """Convert a linear amplitude to dB (``20 * log10``), clamped at ``floor_db``.

    Non-positive and non-finite amplitudes return ``floor_db``.
    """
    if not math.isfinite(value) or value <= 0.0:
        return floor_db
    return max(20.0 * math.log10(value), floor_db)


def loudness_db(samples, floor_db: float = DB_FLOOR) -> float:
    """Loudness of a sample window in dB."""
    return to_decibel(rms(samples), floor_db=floor_db)
