"""Audio sinks: where triggered recordings are persisted.

A sink has three operations, called by the capture session at the exact
phase transitions of the recorder state machine:

- ``open(path_hint, sample_rate)`` -> handle, with the pre-roll written next
- ``append(handle, samples)`` for each tick while recording
- ``finalize(handle)`` once per successful ``open``

Any failure is raised as ``SinkError`` so the session can abandon the
recording without stopping the tick loop.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, Union

import numpy as np
import soundfile as sf

logger = logging.getLogger(__name__)


class SinkError(Exception):
    """A sink operation failed (disk full, permissions, codec error, ...)."""


class AudioSink(Protocol):
    def open(self, path_hint: str, sample_rate: int) -> Any: ...

    def append(self, handle: Any, samples: np.ndarray) -> None: ...

    def finalize(self, handle: Any) -> Any: ...


@dataclass
class RecordingHandle:
    """An open WAV recording."""

    path: Path
    writer: sf.SoundFile
    sample_rate: int
    opened_at: float = field(default_factory=time.time)
    frames: int = 0

    @property
    def duration_sec(self) -> float:
        return self.frames / self.sample_rate


class WavFileSink:
    """Writes each recording to a new timestamped mono WAV file.

    The RIFF header (and with it the duration) is completed when the file is
    finalized.
    """

    def __init__(self, output_dir: Union[Path, str], subtype: str = "PCM_16"):
        self.output_dir = Path(output_dir)
        self.subtype = subtype

    def _unique_path(self, path_hint: str) -> Path:
        path = self.output_dir / f"{path_hint}.wav"
        seq = 1
        while path.exists():
            path = self.output_dir / f"{path_hint}_{seq:02d}.wav"
            seq += 1
        return path

    def open(self, path_hint: str, sample_rate: int) -> RecordingHandle:
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            path = self._unique_path(path_hint)
            writer = sf.SoundFile(
                str(path),
                mode="w",
                samplerate=sample_rate,
                channels=1,
                format="WAV",
                subtype=self.subtype,
            )
        except (OSError, RuntimeError) as e:
            raise SinkError(f"cannot open recording {path_hint!r}: {e}") from e
        logger.info("Recording started: %s", path)
        return RecordingHandle(path=path, writer=writer, sample_rate=sample_rate)

    def append(self, handle: RecordingHandle, samples: np.ndarray) -> None:
        if len(samples) == 0:
            return
        try:
            handle.writer.write(np.asarray(samples, dtype=np.float32))
        except (OSError, RuntimeError) as e:
            raise SinkError(f"cannot write to {handle.path}: {e}") from e
        handle.frames += len(samples)

    def finalize(self, handle: RecordingHandle) -> Path:
        try:
            handle.writer.close()
        except (OSError, RuntimeError) as e:
            raise SinkError(f"cannot finalize {handle.path}: {e}") from e
        logger.info("Recording saved: %s (%.2fs)", handle.path, handle.duration_sec)
        return handle.path
