"""
Simulated hand for running the scan loop without hardware.

Produces joint, distal and taxel signals in the same shapes as the serial
adapters, so calibration and scanning can be exercised end to end:

- SimulatedArm: joints that travel toward their target at the reference speed
- SimulatedDistalJoints: distal angles linearly coupled to the motor joint,
  blocked by an optional obstacle
- SimulatedTaxels: Gaussian resting noise plus an optional press level
"""

import time
from typing import Optional

import numpy as np

from percex.errors import IOLinkLost
from percex.fingers import DISTAL_JOINTS, TAXELS, finger_joint


class SimulatedArm:
    """In-memory joint controller."""

    def __init__(self, limits: Optional[dict[int, tuple[float, float]]] = None,
                 default_limits: tuple[float, float] = (0.0, 90.0)):
        self.limits = dict(limits or {})
        self.default_limits = default_limits
        self.positions: dict[int, float] = {}
        self.targets: dict[int, float] = {}
        self.speeds: dict[int, float] = {}
        self.accelerations: dict[int, float] = {}
        self.commands: list[tuple[int, float]] = []  # every position_move
        self.stuck: set[int] = set()
        self.link_up = True
        self.close_count = 0

    def _check_link(self):
        if not self.link_up:
            raise IOLinkLost("simulated link down")

    def _position(self, joint: int) -> float:
        if joint not in self.positions:
            lo, hi = self.get_limits(joint)
            self.positions[joint] = 0.5 * (lo + hi)
        return self.positions[joint]

    def get_limits(self, joint: int) -> tuple[float, float]:
        self._check_link()
        return self.limits.get(joint, self.default_limits)

    def set_ref_acceleration(self, joint: int, acc: float):
        self._check_link()
        self.accelerations[joint] = acc

    def set_ref_speed(self, joint: int, speed: float):
        self._check_link()
        self.speeds[joint] = speed

    def position_move(self, joint: int, target: float):
        self._check_link()
        self._position(joint)
        self.targets[joint] = target
        self.commands.append((joint, target))

    def get_encoder(self, joint: int) -> float:
        self._check_link()
        return self._position(joint)

    def set_encoder(self, joint: int, value: float):
        self.positions[joint] = value

    def advance(self, dt: float):
        """Move every joint toward its target for `dt` seconds."""
        for joint, target in self.targets.items():
            if joint in self.stuck:
                continue
            lo, hi = self.limits.get(joint, self.default_limits)
            pos = self._position(joint)
            step = self.speeds.get(joint, 10.0) * dt
            if abs(target - pos) <= step:
                pos = target
            else:
                pos += step if target > pos else -step
            self.positions[joint] = min(max(pos, lo), hi)

    def close(self):
        self.close_count += 1


class SimulatedDistalJoints:
    """Distal joint angles passively coupled to the motor joint."""

    def __init__(self, arm: SimulatedArm, gains: tuple[float, ...] = (0.8, 0.5),
                 noise: float = 0.0, seed: Optional[int] = None):
        if len(gains) != DISTAL_JOINTS:
            raise ValueError(f"Expected {DISTAL_JOINTS} gains, got {len(gains)}")
        self.arm = arm
        self.gains = np.asarray(gains, dtype=np.float64)
        self.noise = noise
        self.rng = np.random.default_rng(seed)
        self.obstacles: dict[str, float] = {}     # finger -> blocking motor angle
        self.offsets: dict[str, np.ndarray] = {}  # finger -> added distal offset
        self.dropouts = 0                          # next N reads return None

    def read(self, finger: str) -> Optional[list[float]]:
        if self.dropouts > 0:
            self.dropouts -= 1
            return None

        q = self.arm.get_encoder(finger_joint(finger))
        if finger in self.obstacles:
            q = min(q, self.obstacles[finger])
        distal = self.gains * q
        if finger in self.offsets:
            distal = distal + self.offsets[finger]
        if self.noise > 0:
            distal = distal + self.rng.normal(0.0, self.noise, size=distal.shape)
        return distal.tolist()


class SimulatedTaxels:
    """Fingertip taxels with Gaussian resting noise."""

    def __init__(self, mean: float = 10.0, sigma: float = 1.0,
                 n_taxels: int = TAXELS, seed: Optional[int] = None):
        self.mean = mean
        self.sigma = sigma
        self.n_taxels = n_taxels
        self.rng = np.random.default_rng(seed)
        self.press: dict[str, float] = {}  # finger -> added activation on every taxel
        self.dropouts = 0

    def read(self, finger: str) -> Optional[list[float]]:
        if self.dropouts > 0:
            self.dropouts -= 1
            return None

        taxels = self.rng.normal(self.mean, self.sigma, size=self.n_taxels)
        taxels += self.press.get(finger, 0.0)
        return taxels.tolist()


class SimulatedHand:
    """Arm plus both sensor kinds, advanced by `sleep`.

    `time_scale` is wall-clock seconds per simulated second: 1.0 runs in real
    time, 0.0 runs as fast as possible.
    """

    def __init__(self, seed: Optional[int] = None, time_scale: float = 0.0,
                 limits: Optional[dict[int, tuple[float, float]]] = None):
        self.arm = SimulatedArm(limits)
        self.distal = SimulatedDistalJoints(self.arm, seed=seed)
        self.taxels = SimulatedTaxels(seed=seed)
        self.time_scale = time_scale
        self.now = 0.0

    def sensors(self, model_type: str):
        return self.distal if model_type == "springy" else self.taxels

    def clock(self) -> float:
        """Simulated time (s)."""
        return self.now

    def sleep(self, dt: float):
        """Advance simulated time by `dt`."""
        if self.time_scale > 0:
            time.sleep(dt * self.time_scale)
        self.now += dt
        self.arm.advance(dt)


__all__ = [
    "SimulatedArm",
    "SimulatedDistalJoints",
    "SimulatedHand",
    "SimulatedTaxels",
]
