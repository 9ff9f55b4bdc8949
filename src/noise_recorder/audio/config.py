"""Centralized audio capture configuration.

Capture standards:
- Audio: mono float32, 16 kHz by default
- Rolling sample history: ring buffer sized in seconds
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class AudioConfig:
    """Audio capture configuration."""

    # Recording
    sample_rate: int = 16_000
    channels: int = 1  # mono only
    dtype: str = "float32"

    # Rolling history kept for loudness windows and pre-roll
    ring_buffer_sec: float = 5.0

    def __post_init__(self) -> None:
        if self.sample_rate <= 0:
            raise ValueError("sample_rate must be > 0")
        if self.channels != 1:
            raise ValueError("only mono capture (channels=1) is supported")
        if self.ring_buffer_sec <= 0:
            raise ValueError("ring_buffer_sec must be > 0")

    @property
    def ring_buffer_samples(self) -> int:
        """Ring buffer capacity in samples."""
        return int(self.ring_buffer_sec * self.sample_rate)

    def seconds_to_samples(self, seconds: float) -> int:
        """Convert a duration to a whole number of samples."""
        return int(seconds * self.sample_rate)
