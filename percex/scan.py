"""
Finger scan driver.

Calibrates one finger's node, then drives the finger joint back and forth
between the ends of its SafeRange, reporting the node's sensor data and
contact output every tick.

    INIT --first tick--> CALIBRATING --> SCANNING --stop()--> STOPPED

Each scanning tick runs: read sensors -> emit report -> read encoder ->
maybe flip target and command the move.
"""

import logging
import time
from enum import Enum, auto
from typing import Callable, Optional

from percex.config import ScanConfig
from percex.errors import SensorUnavailable
from percex.fingers import JointLimits, SafeRange, check_finger, cruise_speed, finger_joint
from percex.hardware.joints import JointController
from percex.perception.model import PerceptiveModel
from percex.properties import format_value

logger = logging.getLogger(__name__)


class ScanState(Enum):
    INIT = auto()
    CALIBRATING = auto()
    SCANNING = auto()
    STOPPED = auto()


def format_report(finger: str, data, output: float) -> str:
    return f"{finger} sensors data = {format_value(data)}; output = {format_value(output)}"


class ScanDriver:
    """Tick-driven scan of a single finger.

    The driver owns `joints` and closes it in `close()`; the model is shared.
    """

    def __init__(
        self,
        model: PerceptiveModel,
        joints: JointController,
        finger: str,
        config: Optional[ScanConfig] = None,
        emit: Callable[[str], None] = print,
    ):
        self.model = model
        self.joints = joints
        self.finger = check_finger(finger)
        self.joint = finger_joint(finger)
        self.config = config or ScanConfig()
        self.emit = emit

        lo, hi = joints.get_limits(self.joint)
        self.limits = JointLimits(float(lo), float(hi))
        self.range: SafeRange = self.limits.safe_range(self.config.margin)

        self.state = ScanState.INIT
        self.ticks = 0
        self._at_hi = False
        self._closed = False
        self._stop_requested = False

    @property
    def target(self) -> float:
        return self.range.hi if self._at_hi else self.range.lo

    @property
    def running(self) -> bool:
        return self.state is not ScanState.STOPPED and not self._stop_requested

    def stop(self):
        """Request shutdown; takes effect at the next tick boundary."""
        self._stop_requested = True

    def close(self):
        """Release the joint controller. Safe to call more than once."""
        if not self._closed:
            self._closed = True
            self.joints.close()

    def tick(self):
        """Run one tick of the state machine."""
        if self._stop_requested:
            self.state = ScanState.STOPPED
        if self.state is ScanState.STOPPED:
            return
        self.ticks += 1

        if self.state is ScanState.INIT:
            self._calibrate()
            return

        self._scan()

    def _calibrate(self):
        self.state = ScanState.CALIBRATING
        self.emit(f"calibrating {self.finger} ({self.model.model_type}) ...")
        self.model.calibrate({"finger": self.finger})
        self.emit(f"calibration of {self.finger} done")

        self.joints.set_ref_acceleration(self.joint, self.config.acceleration)
        self.joints.set_ref_speed(self.joint, cruise_speed(self.finger))

        self._at_hi = False
        self.joints.position_move(self.joint, self.target)
        self.state = ScanState.SCANNING

    def _scan(self):
        node = self.model.get_node(self.finger)
        if node is not None:
            try:
                data = node.get_sensors_data()
                output = node.get_output()
            except SensorUnavailable as e:
                logger.warning("tick %d skipped: %s", self.ticks, e)
                return
            self.emit(format_report(node.get_name(), data, output))

        fb = self.joints.get_encoder(self.joint)
        if abs(self.target - fb) < self.config.tolerance:
            self._at_hi = not self._at_hi
            self.joints.position_move(self.joint, self.target)


def run_periodic(
    driver: ScanDriver,
    period: float = 0.1,
    max_ticks: Optional[int] = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> int:
    """Tick `driver` every `period` seconds until it stops.

    Ticks never overlap: a tick that overruns its slot delays the next one.
    Returns the number of ticks run.
    """
    count = 0
    next_tick = clock()
    while driver.running and (max_ticks is None or count < max_ticks):
        driver.tick()
        count += 1
        next_tick += period
        delay = next_tick - clock()
        if delay > 0:
            sleep(delay)
        else:
            next_tick = clock()
    return count
