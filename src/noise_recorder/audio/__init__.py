"""Audio capture, rolling sample history and loudness."""

from noise_recorder.audio.config import AudioConfig
from noise_recorder.audio.collector import AudioCollector
from noise_recorder.audio.loudness import DB_FLOOR, loudness_db, rms, to_decibel
from noise_recorder.audio.ring_buffer import RingBuffer

__all__ = [
    "AudioConfig",
    "AudioCollector",
    "DB_FLOOR",
    "RingBuffer",
    "loudness_db",
    "rms",
    "to_decibel",
]
