"""
Calibration procedures for perceptive nodes.

Springy: sweep the finger joint lo -> hi -> lo across its SafeRange, sampling
(motor joint, distal joints) pairs every tick, then fit an RBF regressor from
motor angle to distal angles.

Tactile: sample the resting fingertip for a short window and derive a per-taxel
baseline (bias, scale) and an activation threshold.

Both procedures are synchronous: they run to completion (or fail with
CalibrationFailed) before returning.
"""

import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable

import numpy as np

from percex.config import ScanConfig, SpringyCalibration, TactileCalibration
from percex.errors import CalibrationFailed
from percex.fingers import JointLimits, SafeRange, cruise_speed, finger_joint
from percex.hardware.joints import JointController
from percex.hardware.sensors import SensorSource
from percex.perception.rbf import RBFRegressor, fit_rbf

logger = logging.getLogger(__name__)


class CalibrationState(Enum):
    """Calibration lifecycle of a node."""

    UNCALIBRATED = auto()  # No parameters yet, or last calibration failed
    CALIBRATING = auto()   # Procedure running
    READY = auto()         # Parameters fitted, outputs available


@dataclass
class SpringyFit:
    """Result of a springy calibration."""

    regressor: RBFRegressor
    residual_max: float   # Largest training residual norm
    num_samples: int


@dataclass
class TactileBaseline:
    """Result of a tactile calibration."""

    bias: np.ndarray      # (T,) per-taxel resting mean
    scale: np.ndarray     # (T,) per-taxel resting std, floored
    threshold: float
    num_samples: int


def tactile_activation(taxels: np.ndarray, bias: np.ndarray) -> np.ndarray:
    """L1 activation above baseline; works on (T,) or (N, T)."""
    return np.clip(taxels - bias, 0.0, None).sum(axis=-1)


def safe_range(joints: JointController, joint: int, margin: float) -> SafeRange:
    lo, hi = joints.get_limits(joint)
    return JointLimits(float(lo), float(hi)).safe_range(margin)


# ============================================================
# Springy
# ============================================================

def sweep_springy(
    finger: str,
    joints: JointController,
    sensors: SensorSource,
    config: SpringyCalibration,
    scan: ScanConfig,
    sleep: Callable[[float], None],
) -> tuple[np.ndarray, np.ndarray]:
    """Sweep `finger` lo -> hi -> lo and collect (motor, distal) samples.

    Returns:
        motor: (N,) motor joint angles
        distal: (N, D) distal joint angles
    """
    joint = finger_joint(finger)
    limits = safe_range(joints, joint, scan.margin)
    eps = config.settle_fraction * limits.span

    joints.set_ref_acceleration(joint, scan.acceleration)
    joints.set_ref_speed(joint, cruise_speed(finger))

    # Step 1: reach lo without sampling
    joints.position_move(joint, limits.lo)
    for _ in range(config.max_settle_ticks):
        if abs(limits.lo - joints.get_encoder(joint)) < eps:
            break
        sleep(scan.period)
    else:
        raise CalibrationFailed(f"{finger}: joint {joint} did not settle at {limits.lo:.1f}")

    motor: list[float] = []
    distal: list[np.ndarray] = []

    # Steps 2-3: sweep to hi and back to lo, sampling every tick
    for target in (limits.hi, limits.lo):
        joints.position_move(joint, target)
        for _ in range(config.max_settle_ticks):
            sleep(scan.period)
            q = joints.get_encoder(joint)
            values = sensors.read(finger)
            if values is not None:
                d = np.asarray(values, dtype=np.float64)
                if distal:
                    if d.shape != distal[-1].shape:
                        raise CalibrationFailed(f"{finger}: distal vector changed length")
                    jump = float(np.max(np.abs(d - distal[-1])))
                    if jump > config.collision_bound:
                        raise CalibrationFailed(
                            f"{finger}: distal jump {jump:.1f} exceeds {config.collision_bound:.1f}, "
                            "sweep aborted"
                        )
                motor.append(q)
                distal.append(d)
            if abs(target - q) < eps:
                break
        else:
            raise CalibrationFailed(f"{finger}: joint {joint} did not reach {target:.1f}")

    logger.debug("%s sweep collected %d samples", finger, len(motor))
    if len(motor) < config.min_samples:
        raise CalibrationFailed(
            f"{finger}: only {len(motor)} samples collected (need {config.min_samples})"
        )

    return np.array(motor), np.stack(distal)


def fit_springy(motor: np.ndarray, distal: np.ndarray, config: SpringyCalibration) -> SpringyFit:
    """Fit the motor -> distal regressor and measure its training residual."""
    regressor = fit_rbf(motor, distal, n_centers=config.n_centers, ridge=config.ridge)
    residuals = np.linalg.norm(distal - regressor.predict(motor), axis=1)
    return SpringyFit(
        regressor=regressor,
        residual_max=float(residuals.max()),
        num_samples=len(motor),
    )


# ============================================================
# Tactile
# ============================================================

def collect_rest(
    finger: str,
    sensors: SensorSource,
    config: TactileCalibration,
    scan: ScanConfig,
    sleep: Callable[[float], None],
) -> np.ndarray:
    """Sample the resting fingertip for `rest_ticks` ticks -> (N, T)."""
    samples: list[np.ndarray] = []
    for _ in range(config.rest_ticks):
        values = sensors.read(finger)
        if values is not None:
            taxels = np.asarray(values, dtype=np.float64)
            if samples and taxels.shape != samples[0].shape:
                raise CalibrationFailed(f"{finger}: taxel vector changed length")
            samples.append(taxels)
        sleep(scan.period)

    if len(samples) < config.min_samples:
        raise CalibrationFailed(
            f"{finger}: only {len(samples)} resting samples (need {config.min_samples})"
        )
    return np.stack(samples)


def fit_tactile(samples: np.ndarray, config: TactileCalibration) -> TactileBaseline:
    """Per-taxel baseline; threshold covers every resting output of the window."""
    bias = samples.mean(axis=0)
    scale = np.maximum(samples.std(axis=0), config.scale_floor)
    rest_outputs = tactile_activation(samples, bias)
    threshold = max(config.threshold_gain * float(scale.max()), float(rest_outputs.max()))
    return TactileBaseline(
        bias=bias,
        scale=scale,
        threshold=threshold,
        num_samples=len(samples),
    )
