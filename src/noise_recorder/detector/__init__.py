"""Noise floor estimation and adaptive detection threshold."""

from noise_recorder.detector.noise_floor import NoiseFloorEstimator

__all__ = ["NoiseFloorEstimator"]
