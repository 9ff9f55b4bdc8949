"""Noise/quiet classifier and recording lifecycle with debounce timers.

Two coupled machines advance together once per tick:

- Noise classifier: NOISE when the tick's loudness is above the detection
  threshold, QUIET otherwise. The classification itself changes immediately;
  only its consequences for the recording phase are debounced.
- Recording phase: IDLE -> PRE_ROLL -> RECORDING -> POST_ROLL -> IDLE.

  ==========  ==============================================  ==========  ==================
  Phase       Condition                                       Next        Commands
  ==========  ==============================================  ==========  ==================
  IDLE        QUIET                                           IDLE
  IDLE        NOISE for >= pre_roll_debounce_sec              PRE_ROLL
  PRE_ROLL    next tick                                       RECORDING   OPEN
  RECORDING   NOISE, or QUIET for < hold_sec                  RECORDING   APPEND
  RECORDING   QUIET for >= hold_sec                           POST_ROLL   APPEND, FINALIZE
  POST_ROLL   next tick                                       IDLE
  ==========  ==============================================  ==========  ==================

``transition`` is a pure function of (state, noise, now, timing) so the table
can be tested with plain numbers for timestamps. ``RecorderStateMachine``
holds the current state for a capture session.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, replace
from typing import List, Optional, Tuple


class NoiseState(enum.Enum):
    NOISE = "noise"
    QUIET = "quiet"


class RecordingPhase(enum.Enum):
    IDLE = "idle"
    PRE_ROLL = "pre_roll"
    RECORDING = "recording"
    POST_ROLL = "post_roll"


class SinkCommand(enum.Enum):
    """Side effects the caller must apply to the audio sink, in order."""

    OPEN = "open"
    APPEND = "append"
    FINALIZE = "finalize"


@dataclass(frozen=True)
class TriggerTiming:
    """Debounce and hold durations in seconds."""

    # Noise must persist this long before a recording is triggered
    pre_roll_debounce_sec: float = 0.75
    # Quiet must persist this long before an open recording is finalized
    hold_sec: float = 30.0

    def __post_init__(self) -> None:
        if self.pre_roll_debounce_sec < 0:
            raise ValueError("pre_roll_debounce_sec must be >= 0")
        if self.hold_sec < 0:
            raise ValueError("hold_sec must be >= 0")


@dataclass(frozen=True)
class RecorderState:
    noise_state: NoiseState
    phase: RecordingPhase
    last_noise_change: float
    last_phase_change: float
    event_count: int = 0
    open_failures: int = 0
    sink_failures: int = 0

    @classmethod
    def initial(cls, now: float) -> "RecorderState":
        return cls(
            noise_state=NoiseState.QUIET,
            phase=RecordingPhase.IDLE,
            last_noise_change=now,
            last_phase_change=now,
        )


def classify(instant_db: float, threshold_db: float) -> NoiseState:
    """NOISE if strictly above the threshold. NaN readings count as QUIET."""
    if math.isnan(instant_db):
        return NoiseState.QUIET
    return NoiseState.NOISE if instant_db > threshold_db else NoiseState.QUIET


def _enter(state: RecorderState, phase: RecordingPhase, now: float, **changes) -> RecorderState:
    return replace(state, phase=phase, last_phase_change=now, **changes)


def transition(
    state: RecorderState,
    noise: NoiseState,
    now: float,
    timing: TriggerTiming,
) -> Tuple[RecorderState, List[SinkCommand]]:
    """Advance both machines by one tick.

    Args:
        state: Current state.
        noise: Classification of this tick's loudness.
        now: Current time in seconds (any monotonic origin).
        timing: Debounce and hold durations.

    Returns:
        (new_state, commands) where commands must be applied in order.
    """
    if noise != state.noise_state:
        state = replace(state, noise_state=noise, last_noise_change=now)

    phase = state.phase

    if phase is RecordingPhase.IDLE:
        if state.noise_state is NoiseState.QUIET:
            return state, []
        # Debounce from whichever happened last: noise onset or returning to idle
        since = max(state.last_noise_change, state.last_phase_change)
        if now - since >= timing.pre_roll_debounce_sec:
            return _enter(state, RecordingPhase.PRE_ROLL, now), []
        return state, []

    if phase is RecordingPhase.PRE_ROLL:
        state = _enter(state, RecordingPhase.RECORDING, now, event_count=state.event_count + 1)
        return state, [SinkCommand.OPEN]

    if phase is RecordingPhase.RECORDING:
        if state.noise_state is NoiseState.NOISE:
            return state, [SinkCommand.APPEND]
        if now - state.last_noise_change >= timing.hold_sec:
            state = _enter(state, RecordingPhase.POST_ROLL, now)
            return state, [SinkCommand.APPEND, SinkCommand.FINALIZE]
        return state, [SinkCommand.APPEND]

    # POST_ROLL: the recording was finalized on the previous tick
    return _enter(state, RecordingPhase.IDLE, now), []


class RecorderStateMachine:
    """Mutable holder for one capture session's ``RecorderState``.

    Phase only moves through ``observe_noise`` (or ``update``, which
    classifies first). The failure hooks return the machine to IDLE after
    the caller could not apply a sink command.
    """

    def __init__(self, timing: Optional[TriggerTiming] = None, start_time: float = 0.0):
        self.timing = timing or TriggerTiming()
        self._state = RecorderState.initial(start_time)

    def observe_noise(self, noise: NoiseState, now: float) -> List[SinkCommand]:
        self._state, commands = transition(self._state, noise, now, self.timing)
        return commands

    def update(self, instant_db: float, now: float, threshold_db: float) -> List[SinkCommand]:
        """Classify ``instant_db`` against ``threshold_db`` and advance."""
        return self.observe_noise(classify(instant_db, threshold_db), now)

    def open_failed(self, now: float) -> None:
        """The sink could not be opened: abandon this trigger.

        The trigger is not counted as an event.
        """
        self._state = _enter(
            self._state,
            RecordingPhase.IDLE,
            now,
            open_failures=self._state.open_failures + 1,
            event_count=self._state.event_count - 1,
        )

    def sink_failed(self, now: float) -> None:
        """Append or finalize failed mid-recording: abandon the recording."""
        self._state = _enter(
            self._state,
            RecordingPhase.IDLE,
            now,
            sink_failures=self._state.sink_failures + 1,
        )

    def force_idle(self, now: float) -> None:
        """Return to IDLE after the caller finalized a recording on shutdown."""
        if self._state.phase is not RecordingPhase.IDLE:
            self._state = _enter(self._state, RecordingPhase.IDLE, now)

    @property
    def state(self) -> RecorderState:
        return self._state

    @property
    def phase(self) -> RecordingPhase:
        return self._state.phase

    @property
    def noise_state(self) -> NoiseState:
        return self._state.noise_state

    @property
    def event_count(self) -> int:
        return self._state.event_count
