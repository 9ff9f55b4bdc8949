"""Audio sources: live mono capture and WAV-file replay."""

import logging
from typing import Callable, Iterator, Optional, Tuple

import numpy as np

try:
    import sounddevice as sd
except (ImportError, OSError):
    sd = None  # type: ignore

from noise_recorder.audio.config import AudioConfig

logger = logging.getLogger(__name__)

SampleCallback = Callable[[np.ndarray], None]


def _require_sounddevice() -> None:
    if sd is None:
        raise ImportError("sounddevice is required for live capture. pip install sounddevice")


def to_mono_float32(data: np.ndarray) -> np.ndarray:
    """Flatten a (frames,) or (frames, 1) block to float32 in [-1, 1].

    Integer PCM is scaled by its full-scale value. More than one channel is
    rejected: mixing is not supported.
    """
    data = np.asarray(data)
    if data.ndim == 2:
        if data.shape[1] != 1:
            raise ValueError(f"expected mono audio, got {data.shape[1]} channels")
        data = data[:, 0]
    elif data.ndim > 2:
        raise ValueError(f"expected 1-D or (frames, 1) audio, got shape {data.shape}")

    if data.dtype == np.int16:
        return data.astype(np.float32) / 32768.0
    if data.dtype == np.int32:
        return data.astype(np.float32) / 2147483648.0
    if data.dtype == np.uint8:
        return (data.astype(np.float32) - 128.0) / 128.0
    return data.astype(np.float32, copy=False)


class AudioCollector:
    """Delivers mono float32 samples from the microphone or a WAV file."""

    def __init__(self, config: Optional[AudioConfig] = None):
        self.config = config or AudioConfig()

    def open_stream(
        self,
        on_samples: SampleCallback,
        device: Optional[int] = None,
        blocksize: int = 0,
    ) -> "sd.InputStream":
        """Start a live input stream that pushes every block to ``on_samples``.

        Args:
            on_samples: Called from the audio thread with a 1-D float32 block.
                Must not block.
            device: Input device index (None = default).
            blocksize: Frames per callback (0 = let the host decide).

        Returns:
            The started stream; close it (or use it as a context manager) to stop.
        """
        _require_sounddevice()

        def callback(indata: np.ndarray, _frames: int, _time: object, status: object) -> None:
            if status:
                logger.warning("Audio input status: %s", status)
            on_samples(indata[:, 0])

        stream = sd.InputStream(
            samplerate=self.config.sample_rate,
            channels=self.config.channels,
            dtype=self.config.dtype,
            blocksize=blocksize,
            device=device,
            callback=callback,
        )
        stream.start()
        return stream

    @staticmethod
    def list_devices():
        """Available audio devices as reported by the host API."""
        _require_sounddevice()
        return sd.query_devices()

    def log_default_device(self, device: Optional[int] = None) -> None:
        """Log the input device that will be used and its default settings."""
        _require_sounddevice()
        info = sd.query_devices(device, kind="input")
        logger.info(
            "Input device: %s (default rate %.0f Hz, max input channels %d)",
            info["name"],
            info["default_samplerate"],
            info["max_input_channels"],
        )

    def read_wav(self, filepath: str) -> Tuple[int, np.ndarray]:
        """Load a mono WAV file for replay.

        Returns:
            (sample_rate, samples) with samples as 1-D float32 in [-1, 1].
        """
        import scipy.io.wavfile as wavfile

        sample_rate, audio = wavfile.read(filepath)
        return int(sample_rate), to_mono_float32(audio)

    @staticmethod
    def iter_chunks(samples: np.ndarray, chunk_samples: int) -> Iterator[np.ndarray]:
        """Split ``samples`` into consecutive chunks of ``chunk_samples`` (last may be short)."""
        if chunk_samples <= 0:
            raise ValueError("chunk_samples must be > 0")
        for start in range(0, len(samples), chunk_samples):
            yield samples[start : start + chunk_samples]
