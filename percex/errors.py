"""
Error kinds raised by adapters, perceptive models and the scan driver.

Each error carries the process exit status the CLI reports when the error
ends a session.
"""


class PercexError(Exception):
    """Base class for all percex errors."""

    exit_code = 1


class LinkUnavailable(PercexError):
    """The controller link could not be established (no port, bad handshake)."""

    exit_code = 1


class ConfigError(PercexError):
    """Bad command-line option, config file or property tree."""

    exit_code = 2


class CalibrationFailed(PercexError):
    """Calibration collected too little data or hit the safety bound."""

    exit_code = 3


class IOLinkLost(PercexError):
    """The joint controller stopped answering mid-session."""

    exit_code = 4


class SensorUnavailable(PercexError):
    """No sensor reading within one tick. Transient."""


class NotCalibrated(PercexError):
    """A node was queried before its calibration completed."""
