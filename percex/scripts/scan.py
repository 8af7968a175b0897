"""
Finger scan with contact detection.

Calibrates the perceptive model of one finger, then moves the finger back and
forth inside its safe range printing the sensor data and the contact output:
the larger the output, the stronger the contact with an external object.

Usage:
    percex --finger index --modelType springy
    percex --finger ring --modelType tactile --hand left --port /dev/ttyUSB0
    percex --sim --ticks 200 --model-file percex_model.txt

Exit codes: 0 ok, 1 controller unavailable, 2 configuration error,
3 calibration failed, 4 joint I/O lost.
"""

import argparse
import logging
import signal
import sys
import time
from pathlib import Path
from typing import Optional

from percex.config import load_config
from percex.errors import CalibrationFailed, ConfigError, IOLinkLost, LinkUnavailable
from percex.fingers import check_finger
from percex.hardware.joints import SerialJointController, arm_endpoints
from percex.hardware.sensors import SerialSensorStream
from percex.hardware.simulated import SimulatedHand
from percex.perception.model import HANDS, build_options, create_model
from percex.perception.nodes import NODE_TYPES
from percex.properties import format_property, parse_property
from percex.scan import ScanDriver, run_periodic

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Scan a finger and detect external contacts")
    parser.add_argument("--name", default="percex", help="Module name (local endpoint)")
    parser.add_argument("--robot", default="icub", help="Robot name, e.g. icub or icubSim")
    parser.add_argument("--hand", default="right", help="Hand to use: left or right")
    parser.add_argument("--modelType", "--model", dest="model_type", default="springy",
                        help="Perceptive model: springy or tactile")
    parser.add_argument("--finger", default="index",
                        help="Finger: thumb, index, middle, ring or little")
    parser.add_argument("--config", default="configs/default.yaml", help="Config file")
    parser.add_argument("--port", help="Arm controller serial port (auto-detect if not specified)")
    parser.add_argument("--sensor-port", help="Sensor board serial port (auto-detect if not specified)")
    parser.add_argument("--sim", action="store_true", help="Use the simulated hand")
    parser.add_argument("--time-scale", type=float, default=1.0,
                        help="Simulated hand: wall seconds per simulated second")
    parser.add_argument("--seed", type=int, default=None, help="Simulated hand noise seed")
    parser.add_argument("--ticks", type=int, default=None, help="Stop after this many ticks")
    parser.add_argument("--model-file", help="Load model parameters from / save them to this file")
    parser.add_argument("--log-dir", help="Log raw sensor readings as CSV here (serial only)")
    parser.add_argument("--verbose", action="store_true", help="Print debug info")
    return parser


def validate_args(args: argparse.Namespace):
    """Reject unknown finger, model type or hand before anything is opened."""
    check_finger(args.finger)
    if args.model_type not in NODE_TYPES:
        raise ConfigError(f"unknown model type: {args.model_type!r}")
    if args.hand not in HANDS:
        raise ConfigError(f"unknown hand: {args.hand!r}")


def load_model_file(path: Optional[str]) -> Optional[dict]:
    if not path or not Path(path).exists():
        return None
    try:
        text = Path(path).read_text()
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}")
    return parse_property(text)


def open_hardware(args: argparse.Namespace):
    """Open joint and sensor adapters -> (joints, sensors, sleep, clock, closers)."""
    if args.sim:
        hand = SimulatedHand(seed=args.seed, time_scale=args.time_scale)
        return hand.arm, hand.sensors(args.model_type), hand.sleep, hand.clock, []

    remote, local = arm_endpoints(args.name, args.robot, args.hand)
    joints = SerialJointController(args.port)
    joints.connect(remote, local)

    sensors = SerialSensorStream(args.sensor_port, exclude=[joints.port])
    try:
        if sensors.port == joints.port:
            raise LinkUnavailable(f"Sensor board and arm controller both on {joints.port}")
        try:
            connected = sensors.connect()
        except ValueError as e:
            raise LinkUnavailable(str(e))
        if not connected:
            raise LinkUnavailable(f"Sensor board on {sensors.port} unavailable")
        if args.log_dir:
            try:
                sensors.start_logging(Path(args.log_dir))
            except OSError as e:
                raise ConfigError(f"Cannot log to {args.log_dir}: {e}")
    except (LinkUnavailable, ConfigError):
        sensors.disconnect()
        joints.close()
        raise
    return joints, sensors, time.sleep, time.monotonic, [sensors.disconnect]


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        validate_args(args)
        config = load_config(args.config)
        saved = load_model_file(args.model_file)
    except ConfigError as e:
        print(f"ERROR: {e}")
        return e.exit_code

    try:
        joints, sensors, sleep, clock, closers = open_hardware(args)
    except (LinkUnavailable, ConfigError) as e:
        print(f"ERROR: {e}")
        return e.exit_code

    model = None
    driver = None
    status = 0
    # A rejected model file is left as it is on disk
    save_model = saved is None
    previous_handlers = {sig: signal.getsignal(sig) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        model = create_model(args.model_type, sensors, joints=joints, config=config, sleep=sleep)
        options = build_options(args.name, args.robot, args.hand, args.model_type)
        print(f"configuring options: {format_property(options)}")
        model.from_property(options)
        if saved is not None:
            print(f"loading model parameters from {args.model_file}")
            model.from_property(saved)
            save_model = True

        driver = ScanDriver(model, joints, args.finger, config.scan)

        def request_stop(signum, frame):
            driver.stop()

        signal.signal(signal.SIGINT, request_stop)
        signal.signal(signal.SIGTERM, request_stop)

        run_periodic(driver, config.scan.period, args.ticks, sleep=sleep, clock=clock)

    except (ConfigError, CalibrationFailed, IOLinkLost) as e:
        print(f"ERROR: {e}")
        status = e.exit_code

    finally:
        if driver is not None:
            driver.close()
        else:
            joints.close()
        for close in closers:
            close()
        for sig, handler in previous_handlers.items():
            signal.signal(sig, handler)

        if model is not None:
            tree = model.to_property()
            print(f"model options: {format_property(tree)}")
            if args.model_file and not save_model:
                print(f"{args.model_file} was not loaded, leaving it unchanged")
            elif args.model_file:
                try:
                    Path(args.model_file).write_text(format_property(tree) + "\n")
                    print(f"Saved to: {args.model_file}")
                except OSError as e:
                    print(f"ERROR: cannot save model to {args.model_file}: {e}")

    return status


if __name__ == "__main__":
    sys.exit(main())
