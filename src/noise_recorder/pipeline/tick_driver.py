"""Fixed-period tick loop for a capture session.

Live: the audio callback fills the session's ring buffer on its own thread
while ``run`` ticks the session every ``interval_sec``.

Offline: ``run_offline`` feeds pre-recorded chunks and ticks once per chunk
on a synthetic clock, so a WAV file replays exactly as it would have live.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Iterable, List, Optional

import numpy as np

from noise_recorder.pipeline.session import CaptureSession, TickReport

logger = logging.getLogger(__name__)

ReportCallback = Callable[[TickReport], None]


class TickDriver:
    """Ticks a ``CaptureSession`` on a fixed grid until stopped."""

    def __init__(
        self,
        session: CaptureSession,
        interval_sec: Optional[float] = None,
        on_report: Optional[ReportCallback] = None,
    ):
        self.session = session
        self.interval_sec = session.config.tick_interval_sec if interval_sec is None else interval_sec
        if self.interval_sec <= 0:
            raise ValueError("interval_sec must be > 0")
        self.on_report = on_report or (lambda r: None)
        self._stop_event = threading.Event()

    def stop(self) -> None:
        """Signal the run loop to exit; wakes it if it is waiting."""
        self._stop_event.set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def run(self, clock: Callable[[], float] = time.monotonic) -> None:
        """Tick every ``interval_sec`` until ``stop()``.

        Ticks are scheduled on a fixed grid from the first tick; if a tick
        overruns, the missed slots are skipped rather than run back to back.
        """
        self._stop_event.clear()
        next_tick = clock() + self.interval_sec
        while not self._stop_event.wait(max(0.0, next_tick - clock())):
            now = clock()
            self.on_report(self.session.tick(now))
            next_tick += self.interval_sec
            if next_tick <= clock():
                skipped = int((clock() - next_tick) // self.interval_sec) + 1
                logger.warning("Tick overran, skipping %d tick(s)", skipped)
                next_tick += skipped * self.interval_sec

    def run_offline(self, chunks: Iterable[np.ndarray]) -> List[TickReport]:
        """Feed each chunk then tick, advancing a synthetic clock by ``interval_sec``."""
        return self._run_chunks(chunks, limit=None)

    def run_for_n_ticks(self, n: int, chunks: Iterable[np.ndarray]) -> List[TickReport]:
        """Run for at most n ticks; used for tests."""
        return self._run_chunks(chunks, limit=n)

    def _run_chunks(self, chunks: Iterable[np.ndarray], limit: Optional[int]) -> List[TickReport]:
        self._stop_event.clear()
        now = self.session.started_at
        reports: List[TickReport] = []
        for chunk in chunks:
            if self._stop_event.is_set() or (limit is not None and len(reports) >= limit):
                break
            self.session.on_samples(np.asarray(chunk, dtype=np.float32))
            now += self.interval_sec
            report = self.session.tick(now)
            reports.append(report)
            self.on_report(report)
        return reports
