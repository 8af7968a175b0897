"""
Finger table and joint range helpers.

Joint indices refer to the arm control board. Ring and little share joint 15:
both fingers are driven by the same motor on the hand.
"""

from dataclasses import dataclass

from percex.errors import ConfigError

FINGERS = ("thumb", "index", "middle", "ring", "little")

FINGER_JOINTS = {
    "thumb": 10,
    "index": 12,
    "middle": 14,
    "ring": 15,
    "little": 15,
}

# Outer fingers have longer travel and coarser actuation
FAST_FINGERS = ("ring", "little")
FAST_CRUISE_SPEED = 60.0  # deg/s
SLOW_CRUISE_SPEED = 30.0  # deg/s

DISTAL_JOINTS = 2   # passively coupled segments observed per finger
TAXELS = 12         # tactile elements per fingertip


@dataclass(frozen=True)
class JointLimits:
    """Mechanical limits of one joint (degrees, inclusive)."""

    min: float
    max: float

    def __post_init__(self):
        if not self.min < self.max:
            raise ConfigError(f"Invalid joint limits: min={self.min} max={self.max}")

    @property
    def span(self) -> float:
        return self.max - self.min

    def safe_range(self, margin: float = 0.1) -> "SafeRange":
        """Inset the limits by `margin` of the span at each end."""
        inset = margin * self.span
        return SafeRange(lo=self.min + inset, hi=self.max - inset)


@dataclass(frozen=True)
class SafeRange:
    """Commandable interval of a joint."""

    lo: float
    hi: float

    @property
    def span(self) -> float:
        return self.hi - self.lo

    def contains(self, value: float) -> bool:
        return self.lo <= value <= self.hi


def check_finger(finger: str) -> str:
    """Return `finger` if known, else raise ConfigError."""
    if finger not in FINGER_JOINTS:
        raise ConfigError(f"unknown finger: {finger!r} (choose from {', '.join(FINGERS)})")
    return finger


def finger_joint(finger: str) -> int:
    return FINGER_JOINTS[check_finger(finger)]


def cruise_speed(finger: str) -> float:
    """Reference speed used while scanning `finger`."""
    if check_finger(finger) in FAST_FINGERS:
        return FAST_CRUISE_SPEED
    return SLOW_CRUISE_SPEED
