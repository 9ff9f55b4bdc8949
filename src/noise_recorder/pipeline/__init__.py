"""Capture session and the tick loop that drives it."""

from noise_recorder.pipeline.session import CaptureSession, MonitorConfig, TickReport
from noise_recorder.pipeline.tick_driver import TickDriver

__all__ = ["CaptureSession", "MonitorConfig", "TickDriver", "TickReport"]
