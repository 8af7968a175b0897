"""Finger contact detection with perceptive models."""

from percex.errors import (
    CalibrationFailed,
    ConfigError,
    IOLinkLost,
    LinkUnavailable,
    NotCalibrated,
    PercexError,
    SensorUnavailable,
)
from percex.fingers import FINGERS, JointLimits, SafeRange

__version__ = "0.1.0"

__all__ = [
    "CalibrationFailed",
    "ConfigError",
    "FINGERS",
    "IOLinkLost",
    "JointLimits",
    "LinkUnavailable",
    "NotCalibrated",
    "PercexError",
    "SafeRange",
    "SensorUnavailable",
]
