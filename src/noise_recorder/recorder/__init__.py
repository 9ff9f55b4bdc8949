"""Recording lifecycle state machine and audio sinks."""

from noise_recorder.recorder.sink import AudioSink, RecordingHandle, SinkError, WavFileSink
from noise_recorder.recorder.state_machine import (
    NoiseState,
    RecorderState,
    RecorderStateMachine,
    RecordingPhase,
    SinkCommand,
    TriggerTiming,
    classify,
    transition,
)

__all__ = [
    "AudioSink",
    "NoiseState",
    "RecorderState",
    "RecorderStateMachine",
    "RecordingHandle",
    "RecordingPhase",
    "SinkCommand",
    "SinkError",
    "TriggerTiming",
    "WavFileSink",
    "classify",
    "transition",
]
