"""
Publish session status fields on a timer, independent of the tick loop.

The publisher pulls ``snapshot()`` from the session and hands the flat dict to
a sink callable. Sinks are opaque: logging, a JSON-lines file, or anything a
deployment plugs in (MQTT, HTTP, ...).
"""

import json
import logging
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

logger = logging.getLogger(__name__)

Fields = Dict[str, Any]
TelemetrySink = Callable[[Fields], None]

DEFAULT_INTERVAL_SEC = 5.0


def log_telemetry(fields: Fields) -> None:
    """Log one line with every field."""
    logger.info("status %s", " ".join(f"{k}={v}" for k, v in fields.items()))


class JsonLinesTelemetrySink:
    """Append each publish as one JSON object with a wall-clock timestamp."""

    def __init__(self, path: Union[Path, str]):
        self.path = Path(path)
        self._lock = threading.Lock()

    def __call__(self, fields: Fields) -> None:
        record = {"timestamp": time.time(), **fields}
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(record) + "\n")


class TelemetryPublisher:
    """
    Calls ``sink(snapshot())`` every ``interval_sec`` on a daemon timer thread
    until ``stop()``. A failing sink is logged and retried on the next
    interval.
    """

    def __init__(
        self,
        snapshot: Callable[[], Fields],
        sink: TelemetrySink = log_telemetry,
        interval_sec: float = DEFAULT_INTERVAL_SEC,
    ):
        if interval_sec <= 0:
            raise ValueError("interval_sec must be > 0")
        self.snapshot = snapshot
        self.sink = sink
        self.interval_sec = interval_sec
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._stop = False
        self.published = 0

    def publish_now(self) -> None:
        try:
            self.sink(self.snapshot())
        except Exception:
            logger.exception("Telemetry publish failed")
            return
        self.published += 1

    def _schedule(self) -> None:
        def fire():
            if self._stop:
                return
            self.publish_now()
            with self._lock:
                if not self._stop:
                    self._schedule()

        self._timer = threading.Timer(self.interval_sec, fire)
        self._timer.daemon = True
        self._timer.start()

    def start(self) -> None:
        with self._lock:
            self._stop = False
            self._schedule()

    def stop(self) -> None:
        with self._lock:
            self._stop = True
            if self._timer:
                self._timer.cancel()
