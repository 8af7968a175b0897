"""
Joint I/O over a serial link to the arm controller.

The controller speaks a line protocol, one request and one reply per command:

    open <remote> <local>   -> ok
    lim <j>                 -> <j>,<min>,<max>
    acc <j> <a>             -> ok
    spd <j> <v>             -> ok
    pos <j> <target>        -> ok
    enc <j>                 -> <j>,<value>

Lines starting with '#' are controller comments and are skipped. Units are
degrees and degrees/second.
"""

import logging
import time
from typing import Optional, Protocol, Sequence

import serial
import serial.tools.list_ports

from percex.errors import IOLinkLost, LinkUnavailable

logger = logging.getLogger(__name__)

# Common USB-serial chip identifiers on controller boards
_CONTROLLER_IDS = ["CP210", "CH340", "SLAB", "Silicon Labs", "USB Serial", "FTDI"]


class JointController(Protocol):
    """Capabilities the scan driver and calibration need from the arm."""

    def get_limits(self, joint: int) -> tuple[float, float]: ...

    def set_ref_acceleration(self, joint: int, acc: float) -> None: ...

    def set_ref_speed(self, joint: int, speed: float) -> None: ...

    def position_move(self, joint: int, target: float) -> None: ...

    def get_encoder(self, joint: int) -> float: ...

    def close(self) -> None: ...


def arm_endpoints(name: str, robot: str, hand: str) -> tuple[str, str]:
    """Remote and local endpoint names for the arm of `hand`."""
    return f"/{robot}/{hand}_arm", f"/{name}"


def find_controller_port(exclude: Sequence[str] = ()) -> Optional[str]:
    """Auto-detect a controller board serial port, skipping ports in `exclude`."""
    ports = [p for p in serial.tools.list_ports.comports() if p.device not in exclude]

    for port in ports:
        desc = f"{port.description} {port.manufacturer or ''}"
        if any(id in desc for id in _CONTROLLER_IDS):
            return port.device

    # Fallback to first available
    if ports:
        return ports[0].device

    return None


class SerialJointController:
    """Joint controller reached through a serial port."""

    def __init__(
        self,
        port: Optional[str] = None,
        baudrate: int = 115200,
        timeout: float = 0.05,
        retries: int = 3,
    ):
        self.port = port or find_controller_port()
        self.baudrate = baudrate
        self.timeout = timeout
        self.retries = retries
        self.serial: Optional[serial.Serial] = None

    def connect(self, remote: str, local: str, reset_delay: float = 2.0):
        """Open the port and register `local` with the `remote` board."""
        if not self.port:
            raise LinkUnavailable("No serial port specified and auto-detect failed")

        try:
            self.serial = serial.Serial(self.port, self.baudrate, timeout=self.timeout)
            time.sleep(reset_delay)  # Wait for controller reset
            self.serial.reset_input_buffer()
        except serial.SerialException as e:
            self.serial = None
            raise LinkUnavailable(f"Connection to {self.port} failed: {e}")

        try:
            self._expect_ok(f"open {remote} {local}")
        except IOLinkLost as e:
            self.close()
            raise LinkUnavailable(f"Controller on {self.port} refused {remote}: {e}")

        logger.info("Connected %s -> %s on %s", local, remote, self.port)

    def close(self):
        """Close the serial connection."""
        if self.serial:
            self.serial.close()
            self.serial = None

    # -- Protocol ------------------------------------------------------------

    def _request(self, command: str) -> str:
        if not self.serial:
            raise IOLinkLost("Joint controller is not connected")

        try:
            self.serial.write((command + "\n").encode("ascii"))
            for _ in range(self.retries):
                line = self.serial.readline().decode("utf-8").strip()
                # Skip comments and empty lines
                if line and not line.startswith("#"):
                    return line
        except (serial.SerialException, UnicodeDecodeError) as e:
            raise IOLinkLost(f"'{command}' failed: {e}")

        raise IOLinkLost(f"No reply to '{command}'")

    def _expect_ok(self, command: str):
        reply = self._request(command)
        if reply != "ok":
            raise IOLinkLost(f"'{command}' rejected: {reply}")

    def _expect_values(self, command: str, joint: int, count: int) -> list[float]:
        reply = self._request(command)
        parts = reply.split(",")
        try:
            if len(parts) != count + 1 or int(parts[0]) != joint:
                raise ValueError(reply)
            return [float(p) for p in parts[1:]]
        except ValueError:
            raise IOLinkLost(f"Unexpected reply to '{command}': {reply}")

    # -- JointController -----------------------------------------------------

    def get_limits(self, joint: int) -> tuple[float, float]:
        lo, hi = self._expect_values(f"lim {joint}", joint, 2)
        return lo, hi

    def set_ref_acceleration(self, joint: int, acc: float):
        self._expect_ok(f"acc {joint} {acc:g}")

    def set_ref_speed(self, joint: int, speed: float):
        self._expect_ok(f"spd {joint} {speed:g}")

    def position_move(self, joint: int, target: float):
        self._expect_ok(f"pos {joint} {target:.6f}")

    def get_encoder(self, joint: int) -> float:
        (value,) = self._expect_values(f"enc {joint}", joint, 1)
        return value

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
