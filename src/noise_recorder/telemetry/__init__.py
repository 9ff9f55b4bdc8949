"""Periodic status publishing."""

from noise_recorder.telemetry.publisher import JsonLinesTelemetrySink, TelemetryPublisher, log_telemetry

__all__ = ["JsonLinesTelemetrySink", "TelemetryPublisher", "log_telemetry"]
