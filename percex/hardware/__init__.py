"""Joint and sensor adapters: serial hardware and an in-memory simulation."""

from percex.hardware.joints import (
    JointController,
    SerialJointController,
    arm_endpoints,
    find_controller_port,
)
from percex.hardware.sensors import SensorReading, SensorSource, SerialSensorStream
from percex.hardware.simulated import (
    SimulatedArm,
    SimulatedDistalJoints,
    SimulatedHand,
    SimulatedTaxels,
)

__all__ = [
    "JointController",
    "SensorReading",
    "SensorSource",
    "SerialJointController",
    "SerialSensorStream",
    "SimulatedArm",
    "SimulatedDistalJoints",
    "SimulatedHand",
    "SimulatedTaxels",
    "arm_endpoints",
    "find_controller_port",
]
