"""Unit tests for the noise classifier and recording phase machine."""

from __future__ import annotations

import random
import unittest
from typing import List, Sequence, Tuple

from noise_recorder.recorder import (
    NoiseState,
    RecorderState,
    RecorderStateMachine,
    RecordingPhase,
    SinkCommand,
    TriggerTiming,
    classify,
    transition,
)

NOISE = NoiseState.NOISE
QUIET = NoiseState.QUIET
TICK = 0.25
TIMING = TriggerTiming(pre_roll_debounce_sec=0.75, hold_sec=10.0)


def _drive(
    machine: RecorderStateMachine,
    states: Sequence[NoiseState],
    start_tick: int = 1,
) -> List[Tuple[RecordingPhase, List[SinkCommand]]]:
    """Feed one classification per tick; returns (phase, commands) per tick."""
    out = []
    for i, noise in enumerate(states, start=start_tick):
        commands = machine.observe_noise(noise, i * TICK)
        out.append((machine.phase, commands))
    return out


def _count(trace, command: SinkCommand) -> int:
    return sum(cmds.count(command) for _, cmds in trace)


class TestClassify(unittest.TestCase):
    def test_strictly_above(self) -> None:
        self.assertIs(classify(-30.0, -40.0), NOISE)
        self.assertIs(classify(-40.0, -40.0), QUIET)
        self.assertIs(classify(-50.0, -40.0), QUIET)

    def test_nan_is_quiet(self) -> None:
        self.assertIs(classify(float("nan"), -40.0), QUIET)


class TestTriggerTiming(unittest.TestCase):
    def test_negative_rejected(self) -> None:
        with self.assertRaises(ValueError):
            TriggerTiming(pre_roll_debounce_sec=-1.0)
        with self.assertRaises(ValueError):
            TriggerTiming(hold_sec=-0.5)


class TestTransition(unittest.TestCase):
    """Table-driven checks of the pure transition function."""

    def setUp(self) -> None:
        self.idle = RecorderState.initial(0.0)

    def test_idle_quiet_stays_idle(self) -> None:
        state, cmds = transition(self.idle, QUIET, 5.0, TIMING)
        self.assertIs(state.phase, RecordingPhase.IDLE)
        self.assertEqual(cmds, [])
        self.assertEqual(state.last_noise_change, 0.0)

    def test_noise_change_recorded_immediately(self) -> None:
        state, cmds = transition(self.idle, NOISE, 5.0, TIMING)
        self.assertIs(state.noise_state, NOISE)
        self.assertEqual(state.last_noise_change, 5.0)
        self.assertIs(state.phase, RecordingPhase.IDLE)
        self.assertEqual(cmds, [])

    def test_idle_to_pre_roll_after_debounce(self) -> None:
        state, _ = transition(self.idle, NOISE, 1.0, TIMING)
        state, _ = transition(state, NOISE, 1.5, TIMING)
        self.assertIs(state.phase, RecordingPhase.IDLE)
        state, cmds = transition(state, NOISE, 1.75, TIMING)
        self.assertIs(state.phase, RecordingPhase.PRE_ROLL)
        self.assertEqual(state.last_phase_change, 1.75)
        self.assertEqual(cmds, [])

    def test_pre_roll_opens(self) -> None:
        state = RecorderState(NOISE, RecordingPhase.PRE_ROLL, 0.0, 1.0)
        state, cmds = transition(state, NOISE, 1.25, TIMING)
        self.assertIs(state.phase, RecordingPhase.RECORDING)
        self.assertEqual(cmds, [SinkCommand.OPEN])
        self.assertEqual(state.event_count, 1)

    def test_recording_appends_during_hold(self) -> None:
        state = RecorderState(NOISE, RecordingPhase.RECORDING, 0.0, 1.0)
        state, cmds = transition(state, QUIET, 2.0, TIMING)
        self.assertEqual(cmds, [SinkCommand.APPEND])
        state, cmds = transition(state, QUIET, 11.75, TIMING)
        self.assertIs(state.phase, RecordingPhase.RECORDING)
        self.assertEqual(cmds, [SinkCommand.APPEND])

    def test_recording_finalizes_after_hold(self) -> None:
        state = RecorderState(QUIET, RecordingPhase.RECORDING, 2.0, 1.0)
        state, cmds = transition(state, QUIET, 12.0, TIMING)
        self.assertIs(state.phase, RecordingPhase.POST_ROLL)
        self.assertEqual(cmds, [SinkCommand.APPEND, SinkCommand.FINALIZE])

    def test_post_roll_returns_to_idle(self) -> None:
        state = RecorderState(QUIET, RecordingPhase.POST_ROLL, 2.0, 12.0)
        state, cmds = transition(state, NOISE, 12.25, TIMING)
        self.assertIs(state.phase, RecordingPhase.IDLE)
        self.assertEqual(cmds, [])

    def test_input_state_untouched(self) -> None:
        """transition never mutates its input."""
        before = RecorderState.initial(0.0)
        transition(before, NOISE, 3.0, TIMING)
        self.assertEqual(before, RecorderState.initial(0.0))


class TestRecorderStateMachine(unittest.TestCase):
    """Lifecycle scenarios through RecorderStateMachine."""

    def test_single_event_cycle(self) -> None:
        """Sustained noise opens once; sustained quiet finalizes once."""
        machine = RecorderStateMachine(TIMING, start_time=0.0)
        noise_ticks = 20
        quiet_ticks = int(TIMING.hold_sec / TICK) + 4
        trace = _drive(machine, [QUIET] * 4 + [NOISE] * noise_ticks + [QUIET] * quiet_ticks)

        self.assertEqual(_count(trace, SinkCommand.OPEN), 1)
        self.assertEqual(_count(trace, SinkCommand.FINALIZE), 1)
        self.assertEqual(machine.event_count, 1)
        self.assertIs(machine.phase, RecordingPhase.IDLE)

        phases = [p for p, _ in trace]
        # Noise starts at tick 5 (t=1.25); debounce complete at t=2.0 (tick 8)
        self.assertIs(phases[6], RecordingPhase.IDLE)
        self.assertIs(phases[7], RecordingPhase.PRE_ROLL)
        self.assertIs(phases[8], RecordingPhase.RECORDING)
        self.assertEqual(trace[8][1], [SinkCommand.OPEN])

    def test_short_burst_does_not_trigger(self) -> None:
        """Noise shorter than the debounce never leaves IDLE."""
        machine = RecorderStateMachine(TIMING, start_time=0.0)
        trace = _drive(machine, [NOISE, NOISE, NOISE, QUIET] * 10)
        self.assertEqual(_count(trace, SinkCommand.OPEN), 0)
        self.assertTrue(all(p is RecordingPhase.IDLE for p, _ in trace))

    def test_event_count_per_cycle_not_per_tick(self) -> None:
        machine = RecorderStateMachine(TriggerTiming(0.75, 1.0), start_time=0.0)
        cycle = [NOISE] * 12 + [QUIET] * 8
        trace = _drive(machine, cycle * 3)
        self.assertEqual(machine.event_count, 3)
        self.assertEqual(_count(trace, SinkCommand.OPEN), 3)
        self.assertEqual(_count(trace, SinkCommand.FINALIZE), 3)

    def test_noise_during_hold_extends_recording(self) -> None:
        machine = RecorderStateMachine(TriggerTiming(0.75, 2.0), start_time=0.0)
        states = [NOISE] * 8 + [QUIET] * 6 + [NOISE] + [QUIET] * 6
        trace = _drive(machine, states)
        self.assertEqual(_count(trace, SinkCommand.FINALIZE), 0)
        self.assertIs(machine.phase, RecordingPhase.RECORDING)

    def test_update_uses_threshold(self) -> None:
        machine = RecorderStateMachine(TIMING, start_time=0.0)
        machine.update(-20.0, 0.25, threshold_db=-30.0)
        self.assertIs(machine.noise_state, NOISE)
        machine.update(-35.0, 0.5, threshold_db=-30.0)
        self.assertIs(machine.noise_state, QUIET)

    def test_open_failed_returns_to_idle(self) -> None:
        machine = RecorderStateMachine(TIMING, start_time=0.0)
        _drive(machine, [NOISE] * 5)
        self.assertIs(machine.phase, RecordingPhase.RECORDING)
        machine.open_failed(2.0)
        self.assertIs(machine.phase, RecordingPhase.IDLE)
        self.assertEqual(machine.state.open_failures, 1)
        self.assertEqual(machine.state.sink_failures, 0)
        self.assertEqual(machine.event_count, 0)

    def test_sink_failed_returns_to_idle(self) -> None:
        machine = RecorderStateMachine(TIMING, start_time=0.0)
        _drive(machine, [NOISE] * 6)
        machine.sink_failed(2.0)
        self.assertIs(machine.phase, RecordingPhase.IDLE)
        self.assertEqual(machine.state.sink_failures, 1)

    def test_retrigger_after_idle_needs_new_debounce(self) -> None:
        """After a forced return to IDLE, noise must persist again before PRE_ROLL."""
        machine = RecorderStateMachine(TIMING, start_time=0.0)
        _drive(machine, [NOISE] * 5)
        machine.open_failed(1.25)
        trace = _drive(machine, [NOISE] * 3, start_tick=6)
        self.assertEqual([p for p, _ in trace], [RecordingPhase.IDLE] * 2 + [RecordingPhase.PRE_ROLL])

    def test_randomized_invariants(self) -> None:
        """Over random inputs: no append outside recording, every open finalized once."""
        timing = TriggerTiming(pre_roll_debounce_sec=0.75, hold_sec=1.5)
        for seed in range(50):
            rnd = random.Random(seed)
            machine = RecorderStateMachine(timing, start_time=0.0)
            states = []
            while len(states) < 400:
                states.extend([rnd.choice((NOISE, QUIET))] * rnd.randint(1, 12))
            # Long quiet tail so any open recording completes
            states.extend([QUIET] * (int(timing.hold_sec / TICK) + 3))

            opened = 0
            previous = machine.phase
            for i, noise in enumerate(states, start=1):
                commands = machine.observe_noise(noise, i * TICK)
                if SinkCommand.APPEND in commands:
                    self.assertIs(previous, RecordingPhase.RECORDING)
                    self.assertIn(machine.phase, (RecordingPhase.RECORDING, RecordingPhase.POST_ROLL))
                if SinkCommand.OPEN in commands:
                    self.assertIs(previous, RecordingPhase.PRE_ROLL)
                    self.assertEqual(opened, 0)
                    opened += 1
                if SinkCommand.FINALIZE in commands:
                    self.assertEqual(opened, 1)
                    opened -= 1
                previous = machine.phase
            self.assertEqual(opened, 0)
            self.assertIs(machine.phase, RecordingPhase.IDLE)


if __name__ == "__main__":
    unittest.main(verbosity=2)
