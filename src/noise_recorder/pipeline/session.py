"""Capture session: the shared state between the audio callback and the tick loop.

The producer (audio callback) only writes samples into the ring buffer under
a short lock. Everything else happens on the consumer side, once per tick:

  ring buffer -> loudness (dB) -> noise floor estimator -> state machine -> sink

Sink I/O runs outside the buffer lock so the audio thread never waits on
disk. One session owns one ring buffer, one estimator, one state machine and
at most one open recording.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple

import numpy as np

from noise_recorder.audio.collector import to_mono_float32
from noise_recorder.audio.config import AudioConfig
from noise_recorder.audio.loudness import DB_FLOOR, loudness_db
from noise_recorder.audio.ring_buffer import RingBuffer
from noise_recorder.detector.noise_floor import NoiseFloorEstimator
from noise_recorder.recorder.sink import AudioSink, SinkError
from noise_recorder.recorder.state_machine import (
    NoiseState,
    RecorderStateMachine,
    RecordingPhase,
    SinkCommand,
    TriggerTiming,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

RECORDING_NAME_FORMAT = "%Y-%m-%d_%H-%M-%S"


@dataclass(frozen=True)
class MonitorConfig:
    """Loudness, threshold and trigger parameters for a capture session."""

    # Tick loop
    tick_interval_sec: float = 0.25
    # Samples that make up one loudness reading
    loudness_window_sec: float = 0.25

    # History written into a new recording before the trigger point
    pre_roll_sec: float = 2.0

    # Adaptive threshold: 240 readings at 4 Hz = one minute
    history_size: int = 240
    margin_db: float = 6.0
    # Used until the history has filled once
    default_threshold_db: float = -40.0
    db_floor: float = DB_FLOOR

    # Debounce / hold
    pre_roll_debounce_sec: float = 0.75
    hold_sec: float = 30.0

    def __post_init__(self) -> None:
        if self.tick_interval_sec <= 0:
            raise ValueError("tick_interval_sec must be > 0")
        if self.loudness_window_sec <= 0:
            raise ValueError("loudness_window_sec must be > 0")
        if self.pre_roll_sec < 0:
            raise ValueError("pre_roll_sec must be >= 0")
        if self.history_size < 1:
            raise ValueError("history_size must be >= 1")
        TriggerTiming(self.pre_roll_debounce_sec, self.hold_sec)

    @property
    def timing(self) -> TriggerTiming:
        return TriggerTiming(
            pre_roll_debounce_sec=self.pre_roll_debounce_sec,
            hold_sec=self.hold_sec,
        )

    def validate_against(self, audio_config: AudioConfig) -> None:
        """Check that every window fits in the ring buffer."""
        ring_sec = audio_config.ring_buffer_sec
        if self.loudness_window_sec > ring_sec:
            raise ValueError("loudness_window_sec must not exceed ring_buffer_sec")
        if self.pre_roll_sec > ring_sec:
            raise ValueError("pre_roll_sec must not exceed ring_buffer_sec")
        if self.tick_interval_sec >= ring_sec:
            raise ValueError("tick_interval_sec must be shorter than ring_buffer_sec")
        if audio_config.seconds_to_samples(self.loudness_window_sec) < 1:
            raise ValueError("loudness_window_sec is shorter than one sample")


@dataclass(frozen=True)
class TickReport:
    """What one tick measured and decided."""

    current_db: float
    noise_floor: float
    threshold: float
    phase: RecordingPhase
    noise_state: NoiseState
    event_count: int
    commands: Tuple[SinkCommand, ...] = ()


class CaptureSession:
    """Owns the sample history, estimator, state machine and open recording.

    Interface:
      session = CaptureSession(WavFileSink("recordings"))
      stream = AudioCollector().open_stream(session.on_samples)  # producer
      report = session.tick()                                    # every 250 ms
      session.snapshot()                                         # telemetry
      session.close()                                            # finalize on exit
    """

    def __init__(
        self,
        sink: AudioSink,
        audio_config: Optional[AudioConfig] = None,
        config: Optional[MonitorConfig] = None,
        clock: Clock = time.monotonic,
        start_time: Optional[float] = None,
    ):
        self.audio_config = audio_config or AudioConfig()
        self.config = config or MonitorConfig()
        self.config.validate_against(self.audio_config)

        self.sink = sink
        self._clock = clock
        self.started_at = clock() if start_time is None else start_time

        self._ring = RingBuffer(self.audio_config.ring_buffer_samples, dtype=np.float32)
        self._window_samples = self.audio_config.seconds_to_samples(self.config.loudness_window_sec)
        self._pre_roll_samples = self.audio_config.seconds_to_samples(self.config.pre_roll_sec)
        self.estimator = NoiseFloorEstimator(
            default_threshold_db=self.config.default_threshold_db,
            history_size=self.config.history_size,
            margin_db=self.config.margin_db,
        )
        self.machine = RecorderStateMachine(self.config.timing, start_time=self.started_at)

        # Held by the audio callback: keep critical sections to array copies.
        self._buffer_lock = threading.Lock()
        # Serializes sink access between tick() and close().
        self._sink_lock = threading.Lock()

        self._handle: Any = None
        self._drained = 0  # ring.written up to which samples reached the sink
        self._current_db = self.config.db_floor
        self._dropped_samples = 0
        self._last_recording: Any = None
        self._closed = False

    # -- producer ---------------------------------------------------------

    def on_samples(self, data: np.ndarray) -> None:
        """Audio callback entry: store a block of mono samples. No I/O."""
        samples = to_mono_float32(data)
        with self._buffer_lock:
            self._ring.extend(samples)

    # -- consumer ---------------------------------------------------------

    def tick(self, now: Optional[float] = None) -> TickReport:
        """Measure loudness, update the threshold and advance the recorder.

        Sink failures are handled here (logged, recording abandoned); they
        never propagate to the caller's loop. After ``close()`` the level is
        still measured but the recorder no longer advances.
        """
        if now is None:
            now = self._clock()
        with self._buffer_lock:
            window = self._ring.read_ordered_last(self._window_samples)

        db = loudness_db(window, floor_db=self.config.db_floor)
        self._current_db = db
        self.estimator.update(db)

        # Advancing the machine and applying its commands is one step with
        # respect to close().
        commands = []
        with self._sink_lock:
            if not self._closed:
                commands = self.machine.update(db, now, self.estimator.threshold)
                for command in commands:
                    if not self._apply(command, now):
                        break

        logger.debug(
            "level %.2f dB, floor %.2f dB, threshold %.2f dB, %s/%s",
            db,
            self.estimator.noise_floor,
            self.estimator.threshold,
            self.machine.noise_state.value,
            self.machine.phase.value,
        )
        return TickReport(
            current_db=db,
            noise_floor=self.estimator.noise_floor,
            threshold=self.estimator.threshold,
            phase=self.machine.phase,
            noise_state=self.machine.noise_state,
            event_count=self.machine.event_count,
            commands=tuple(commands),
        )

    def _apply(self, command: SinkCommand, now: float) -> bool:
        """Run one sink command. Returns False if the recording was abandoned."""
        if command is SinkCommand.OPEN:
            return self._open(now)
        if command is SinkCommand.APPEND:
            if self._handle is None or self.machine.phase not in (
                RecordingPhase.RECORDING,
                RecordingPhase.POST_ROLL,
            ):
                raise AssertionError(f"append while {self.machine.phase.value} with no open recording")
            try:
                self.sink.append(self._handle, self._take_new_samples())
            except SinkError as e:
                logger.error("Append failed, abandoning recording: %s", e)
                self._abandon(now)
                return False
            return True
        # FINALIZE
        if self._handle is None:
            raise AssertionError("finalize with no open recording")
        handle, self._handle = self._handle, None
        try:
            self._last_recording = self.sink.finalize(handle)
        except SinkError as e:
            logger.error("Finalize failed: %s", e)
            self.machine.sink_failed(now)
            return False
        return True

    def _open(self, now: float) -> bool:
        if self._handle is not None:
            raise AssertionError("open while a recording is already open")
        with self._buffer_lock:
            pre_roll = self._ring.read_ordered_last(min(self._pre_roll_samples, self._ring.size))
            self._drained = self._ring.written

        hint = datetime.now().strftime(RECORDING_NAME_FORMAT)
        try:
            self._handle = self.sink.open(hint, self.audio_config.sample_rate)
        except SinkError as e:
            logger.error("Could not start recording: %s", e)
            self.machine.open_failed(now)
            return False
        try:
            self.sink.append(self._handle, pre_roll)
        except SinkError as e:
            logger.error("Pre-roll write failed, abandoning recording: %s", e)
            self._abandon(now)
            return False
        return True

    def _take_new_samples(self) -> np.ndarray:
        """Samples captured since the last drain, oldest first."""
        lost = 0
        with self._buffer_lock:
            new = self._ring.written - self._drained
            if new > self._ring.size:
                lost = new - self._ring.size
                new = self._ring.size
            samples = self._ring.read_ordered_last(new)
            self._drained = self._ring.written
        if lost:
            self._dropped_samples += lost
            logger.warning("Ring buffer overran by %d samples before they were saved", lost)
        return samples

    def _abandon(self, now: float) -> None:
        """Close the current recording best-effort and return to idle."""
        handle, self._handle = self._handle, None
        if handle is not None:
            try:
                self.sink.finalize(handle)
            except SinkError as e:
                logger.error("Finalize after failure also failed: %s", e)
        self.machine.sink_failed(now)

    # -- lifecycle --------------------------------------------------------

    def close(self, now: Optional[float] = None) -> None:
        """Finalize any open recording (with its remaining samples) and go idle."""
        if now is None:
            now = self._clock()
        with self._sink_lock:
            if self._closed:
                return
            self._closed = True
            if self._handle is None:
                self.machine.force_idle(now)
                return
            handle, self._handle = self._handle, None
            try:
                self.sink.append(handle, self._take_new_samples())
            except SinkError as e:
                logger.error("Could not write trailing audio on shutdown: %s", e)
            try:
                self._last_recording = self.sink.finalize(handle)
            except SinkError as e:
                logger.error("Finalize on shutdown failed: %s", e)
            self.machine.force_idle(now)

    def __enter__(self) -> "CaptureSession":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -- telemetry --------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        """Flat status fields for a telemetry sink."""
        state = self.machine.state
        handle = self._handle
        return {
            "current_db": round(self._current_db, 2),
            "noise_floor_db": round(self.estimator.noise_floor, 2),
            "threshold_db": round(self.estimator.threshold, 2),
            "event_count": state.event_count,
            "phase": state.phase.value,
            "noise_state": state.noise_state.value,
            "open_failures": state.open_failures,
            "sink_failures": state.sink_failures,
            "dropped_samples": self._dropped_samples,
            "recording_path": str(handle.path) if getattr(handle, "path", None) else "",
        }

    @property
    def recording_open(self) -> bool:
        return self._handle is not None

    @property
    def last_recording(self) -> Any:
        """Whatever the sink returned from the last successful finalize."""
        return self._last_recording

    @property
    def dropped_samples(self) -> int:
        return self._dropped_samples

    @property
    def ring(self) -> RingBuffer:
        return self._ring
