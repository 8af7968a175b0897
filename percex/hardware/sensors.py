"""
Finger sensor streams.

A sensor board streams one line per finger reading:

    <finger>,<timestamp_ms>,<v1>,...,<vn>

where the values are distal joint angles (degrees) for springy models or
taxel activations for tactile models.
"""

import csv
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol, Sequence

import serial

from percex.fingers import FINGERS
from percex.hardware.joints import find_controller_port

logger = logging.getLogger(__name__)


class SensorSource(Protocol):
    """Pull-based source of per-finger raw signals."""

    def read(self, finger: str) -> Optional[Sequence[float]]: ...


@dataclass
class SensorReading:
    """Single reading from one finger's sensors."""

    finger: str
    timestamp_ms: int   # Board timestamp
    values: list[float]
    local_time: float   # Host timestamp (time.time())

    def to_dict(self) -> dict:
        return {
            "finger": self.finger,
            "timestamp_ms": self.timestamp_ms,
            "values": list(self.values),
            "local_time": self.local_time,
        }

    def to_array(self) -> list[float]:
        return list(self.values)


def parse_reading(line: str) -> Optional[SensorReading]:
    """Parse one stream line, or return None if it is not a reading."""
    line = line.strip()

    # Skip comments and empty lines
    if not line or line.startswith("#"):
        return None

    parts = line.split(",")
    if len(parts) < 3 or parts[0] not in FINGERS:
        return None

    try:
        return SensorReading(
            finger=parts[0],
            timestamp_ms=int(parts[1]),
            values=[float(p) for p in parts[2:]],
            local_time=time.time(),
        )
    except ValueError:
        return None


class SerialSensorStream:
    """Keeps the latest reading per finger from a serial sensor board."""

    def __init__(
        self,
        port: Optional[str] = None,
        baudrate: int = 115200,
        timeout: float = 0.05,
        max_lines: int = 64,
        exclude: Sequence[str] = (),
    ):
        # Auto-detect skips `exclude`, e.g. the port the arm controller holds
        self.port = port or find_controller_port(exclude)
        self.baudrate = baudrate
        self.timeout = timeout
        self.max_lines = max_lines
        self.serial: Optional[serial.Serial] = None
        self._latest: dict[str, SensorReading] = {}
        self._log_file: Optional[Path] = None
        self._csv_writer = None
        self._file_handle = None

    def connect(self) -> bool:
        """Open the serial port."""
        if not self.port:
            raise ValueError("No serial port specified and auto-detect failed")

        try:
            self.serial = serial.Serial(self.port, self.baudrate, timeout=self.timeout)
            self.serial.reset_input_buffer()
            return True
        except serial.SerialException as e:
            logger.error("Sensor connection failed: %s", e)
            return False

    def disconnect(self):
        """Close serial connection and any open log files."""
        if self.serial:
            self.serial.close()
            self.serial = None
        self.stop_logging()

    def start_logging(self, session_dir: Path):
        """Begin logging every reading to CSV."""
        session_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self._log_file = session_dir / f"sensors_{timestamp}.csv"

        self._file_handle = open(self._log_file, "w", newline="")
        self._csv_writer = csv.writer(self._file_handle)
        self._csv_writer.writerow(["local_time", "board_timestamp_ms", "finger", "values"])

    def stop_logging(self) -> Optional[Path]:
        """Stop logging and return path to log file."""
        if self._file_handle:
            self._file_handle.close()
            self._file_handle = None
            self._csv_writer = None
        return self._log_file

    def _ingest(self, line: str) -> Optional[SensorReading]:
        reading = parse_reading(line)
        if reading is None:
            return None

        self._latest[reading.finger] = reading
        if self._csv_writer:
            self._csv_writer.writerow([
                reading.local_time,
                reading.timestamp_ms,
                reading.finger,
                " ".join(f"{v:g}" for v in reading.values),
            ])
            self._file_handle.flush()
        return reading

    def poll(self) -> int:
        """Consume buffered lines; return how many readings were parsed."""
        if not self.serial:
            return 0

        count = 0
        for _ in range(self.max_lines):
            try:
                if not self.serial.in_waiting:
                    break
                line = self.serial.readline().decode("utf-8")
            except (serial.SerialException, UnicodeDecodeError) as e:
                logger.warning("Sensor read failed: %s", e)
                break
            if self._ingest(line):
                count += 1
        return count

    def read(self, finger: str) -> Optional[list[float]]:
        """Return the newest unread values for `finger`, or None."""
        self.poll()
        reading = self._latest.pop(finger, None)
        if reading is None and self.serial:
            # Wait at most one read timeout for a fresh line
            try:
                line = self.serial.readline().decode("utf-8")
            except (serial.SerialException, UnicodeDecodeError) as e:
                logger.warning("Sensor read failed: %s", e)
                return None
            if self._ingest(line) is not None:
                reading = self._latest.pop(finger, None)
        return reading.to_array() if reading else None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()
