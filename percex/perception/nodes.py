"""
Perceptive nodes: one contact estimator per finger.

Both node kinds share the same capabilities:
- get_sensors_data(): fresh sample from the sensor source
- get_output(): non-negative contact score for the latest sample
- calibrate(options): synchronous (re)training
- to_property() / from_property(): parameter round trip

SpringyNode scores the discrepancy between the distal joints predicted from
the motor joint and those measured; contact breaks the passive coupling.
TactileNode scores taxel activation above the resting baseline.

Parameter groups round-trip exactly for groups this module emits. A loaded
group comes back with its numbers as floats (`(in_mean 45)` -> `45.0`), and
`residual_max` is emitted only when the node has one.
"""

import logging
import time
from typing import Callable, Optional, Protocol

import numpy as np

from percex.config import PercexConfig
from percex.errors import ConfigError, NotCalibrated, SensorUnavailable
from percex.fingers import finger_joint
from percex.hardware.joints import JointController
from percex.hardware.sensors import SensorSource
from percex.perception.calibration import (
    CalibrationState,
    collect_rest,
    fit_springy,
    fit_tactile,
    sweep_springy,
    tactile_activation,
)
from percex.perception.rbf import RBFRegressor

logger = logging.getLogger(__name__)

_RBF_KEYS = ("centers", "widths", "weights", "tail", "in_mean", "in_std", "out_mean", "out_std")


class Node(Protocol):
    name: str
    state: CalibrationState

    def get_name(self) -> str: ...

    def get_sensors_data(self) -> np.ndarray: ...

    def get_output(self) -> float: ...

    def calibrate(self, options: dict) -> None: ...

    def to_property(self) -> dict: ...

    def from_property(self, group: dict) -> None: ...


def _check_options(node_name: str, options: dict):
    finger = options.get("finger")
    if finger is None:
        raise ConfigError("calibration options need a 'finger'")
    if finger != node_name:
        raise ConfigError(f"node {node_name!r} cannot calibrate finger {finger!r}")


def _check_keys(node_name: str, group: dict, allowed: tuple[str, ...]):
    if not isinstance(group, dict):
        raise ConfigError(f"{node_name}: parameters must be a group, got {group!r}")
    unknown = set(group) - set(allowed)
    if unknown:
        raise ConfigError(f"{node_name}: unknown parameters {sorted(unknown)}")
    if group.get("name", node_name) != node_name:
        raise ConfigError(f"{node_name}: group is named {group['name']!r}")


class SpringyNode:
    """Contact from the residual of the motor -> distal joint coupling."""

    def __init__(
        self,
        name: str,
        sensors: SensorSource,
        joints: JointController,
        config: Optional[PercexConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.name = name
        self.joint = finger_joint(name)
        self.sensors = sensors
        self.joints = joints
        self.config = config or PercexConfig()
        self.sleep = sleep
        self.state = CalibrationState.UNCALIBRATED
        self.regressor: Optional[RBFRegressor] = None
        self.residual_max: Optional[float] = None  # None when loaded without one
        self._sample: Optional[np.ndarray] = None

    def get_name(self) -> str:
        return self.name

    def get_sensors_data(self) -> np.ndarray:
        """Sample (motor joint, distal joints...)."""
        q = self.joints.get_encoder(self.joint)
        values = self.sensors.read(self.name)
        if values is None:
            raise SensorUnavailable(f"{self.name}: no distal joint reading")
        self._sample = np.concatenate([[q], np.asarray(values, dtype=np.float64)])
        return self._sample

    def get_output(self) -> float:
        if self.state is not CalibrationState.READY:
            raise NotCalibrated(f"{self.name} springy node queried before calibration")
        if self._sample is None:
            self.get_sensors_data()
        q, distal = self._sample[0], self._sample[1:]
        predicted = self.regressor.predict(q)
        if distal.shape != predicted.shape:
            raise SensorUnavailable(
                f"{self.name}: got {len(distal)} distal joints, model has {len(predicted)}"
            )
        return float(np.linalg.norm(distal - predicted))

    def calibrate(self, options: dict):
        _check_options(self.name, options)
        self.state = CalibrationState.CALIBRATING
        self.regressor = None
        self._sample = None
        try:
            motor, distal = sweep_springy(
                self.name, self.joints, self.sensors,
                self.config.springy, self.config.scan, self.sleep,
            )
            fit = fit_springy(motor, distal, self.config.springy)
        except Exception:
            self.state = CalibrationState.UNCALIBRATED
            raise

        self.regressor = fit.regressor
        self.residual_max = fit.residual_max
        self.state = CalibrationState.READY
        logger.info("%s springy fit on %d samples, max residual %.4g",
                    self.name, fit.num_samples, fit.residual_max)

    def to_property(self) -> dict:
        group = {"name": self.name}
        if self.state is CalibrationState.READY:
            group.update(self.regressor.state_dict())
            if self.residual_max is not None:
                group["residual_max"] = self.residual_max
        return group

    def from_property(self, group: dict):
        _check_keys(self.name, group, ("name", "residual_max") + _RBF_KEYS)
        self._sample = None
        if not any(key in group for key in _RBF_KEYS):
            self.regressor = None
            self.residual_max = None
            self.state = CalibrationState.UNCALIBRATED
            return

        regressor = RBFRegressor.from_state_dict(group)
        residual_max = None
        if "residual_max" in group:
            try:
                residual_max = float(group["residual_max"])
            except (TypeError, ValueError):
                raise ConfigError(f"{self.name}: residual_max must be a number")
        self.regressor = regressor
        self.residual_max = residual_max
        self.state = CalibrationState.READY


class TactileNode:
    """Contact from fingertip taxel activation above the resting baseline."""

    def __init__(
        self,
        name: str,
        sensors: SensorSource,
        config: Optional[PercexConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.name = name
        self.sensors = sensors
        self.config = config or PercexConfig()
        self.sleep = sleep
        self.state = CalibrationState.UNCALIBRATED
        self.bias: Optional[np.ndarray] = None
        self.scale: Optional[np.ndarray] = None
        self.threshold = 0.0
        self._sample: Optional[np.ndarray] = None

    def get_name(self) -> str:
        return self.name

    def get_sensors_data(self) -> np.ndarray:
        values = self.sensors.read(self.name)
        if values is None:
            raise SensorUnavailable(f"{self.name}: no taxel reading")
        self._sample = np.asarray(values, dtype=np.float64)
        return self._sample

    def get_output(self) -> float:
        if self.state is not CalibrationState.READY:
            raise NotCalibrated(f"{self.name} tactile node queried before calibration")
        if self._sample is None:
            self.get_sensors_data()
        if self._sample.shape != self.bias.shape:
            raise SensorUnavailable(
                f"{self.name}: got {len(self._sample)} taxels, baseline has {len(self.bias)}"
            )
        return float(tactile_activation(self._sample, self.bias))

    def in_contact(self) -> bool:
        """True when the latest output exceeds the calibrated threshold."""
        return self.get_output() > self.threshold

    def calibrate(self, options: dict):
        _check_options(self.name, options)
        self.state = CalibrationState.CALIBRATING
        self._sample = None
        try:
            samples = collect_rest(
                self.name, self.sensors, self.config.tactile, self.config.scan, self.sleep,
            )
            baseline = fit_tactile(samples, self.config.tactile)
        except Exception:
            self.bias = self.scale = None
            self.state = CalibrationState.UNCALIBRATED
            raise

        self.bias = baseline.bias
        self.scale = baseline.scale
        self.threshold = baseline.threshold
        self.state = CalibrationState.READY
        logger.info("%s tactile baseline on %d samples, threshold %.4g",
                    self.name, baseline.num_samples, baseline.threshold)

    def to_property(self) -> dict:
        group = {"name": self.name}
        if self.state is CalibrationState.READY:
            group["bias"] = self.bias.tolist()
            group["scale"] = self.scale.tolist()
            group["threshold"] = self.threshold
        return group

    def from_property(self, group: dict):
        _check_keys(self.name, group, ("name", "bias", "scale", "threshold"))
        self._sample = None
        if not any(key in group for key in ("bias", "scale", "threshold")):
            self.bias = self.scale = None
            self.threshold = 0.0
            self.state = CalibrationState.UNCALIBRATED
            return

        try:
            bias = np.atleast_1d(np.array(group["bias"], dtype=np.float64))
            scale = np.atleast_1d(np.array(group["scale"], dtype=np.float64))
            threshold = float(group["threshold"])
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigError(f"{self.name}: invalid tactile parameters: {e}")
        if bias.ndim != 1 or bias.shape != scale.shape:
            raise ConfigError(f"{self.name}: bias and scale must be vectors of equal length")
        if np.any(scale <= 0):
            raise ConfigError(f"{self.name}: taxel scale must be positive")
        if threshold < 0:
            raise ConfigError(f"{self.name}: threshold must be non-negative")

        self.bias = bias
        self.scale = scale
        self.threshold = threshold
        self.state = CalibrationState.READY


NODE_TYPES = {
    "springy": SpringyNode,
    "tactile": TactileNode,
}
