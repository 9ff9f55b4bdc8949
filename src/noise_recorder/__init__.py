"""Noise-triggered recorder - ring buffer, loudness, adaptive threshold, recording state machine."""

from noise_recorder.pipeline import CaptureSession, MonitorConfig, TickDriver

__all__ = ["CaptureSession", "MonitorConfig", "TickDriver"]
