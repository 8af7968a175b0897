"""End-to-end tests for the percex command line."""

import pytest
import serial
import serial.tools.list_ports

from percex.properties import parse_property
from percex.scripts import scan as cli


@pytest.fixture
def no_serial(monkeypatch):
    """Fail the test if the CLI tries to open real hardware."""

    class Forbidden:
        def __init__(self, *args, **kwargs):
            raise AssertionError("hardware opened")

    monkeypatch.setattr(cli, "SerialJointController", Forbidden)
    monkeypatch.setattr(cli, "SerialSensorStream", Forbidden)


@pytest.fixture
def config_file(tmp_path):
    def write(text):
        path = tmp_path / "config.yaml"
        path.write_text(text)
        return str(path)

    return write


def run_sim(tmp_path, *extra):
    argv = [
        "--sim", "--time-scale", "0", "--seed", "0",
        "--config", str(tmp_path / "missing.yaml"),
    ]
    return cli.main(argv + list(extra))


class TestArguments:
    def test_unknown_finger_fails_before_hardware(self, no_serial, capsys):
        assert cli.main(["--finger", "pinky"]) == 2
        assert "unknown finger" in capsys.readouterr().out

    def test_unknown_model_type(self, no_serial):
        assert cli.main(["--modelType", "magnetic"]) == 2

    def test_unknown_hand(self, no_serial):
        assert cli.main(["--hand", "middle"]) == 2

    def test_model_alias(self):
        args = cli.build_parser().parse_args(["--model", "tactile"])
        assert args.model_type == "tactile"

    def test_defaults(self):
        args = cli.build_parser().parse_args([])
        assert args.name == "percex"
        assert args.robot == "icub"
        assert args.hand == "right"
        assert args.model_type == "springy"
        assert args.finger == "index"


class TestSimulatedSession:
    def test_springy_scan(self, no_serial, tmp_path, capsys):
        assert run_sim(tmp_path, "--ticks", "30") == 0

        out = capsys.readouterr().out
        assert "configuring options: (name percex/springy)" in out
        assert "calibration of index done" in out
        assert "index sensors data = (" in out
        assert "model options: " in out

    def test_tactile_scan_on_ring(self, no_serial, tmp_path, capsys):
        assert run_sim(tmp_path, "--modelType", "tactile", "--finger", "ring", "--ticks", "10") == 0
        assert "ring sensors data = (" in capsys.readouterr().out

    def test_model_file_saved_and_reloaded(self, no_serial, tmp_path, capsys):
        model_file = tmp_path / "model.txt"

        assert run_sim(tmp_path, "--ticks", "5", "--model-file", str(model_file)) == 0
        tree = parse_property(model_file.read_text())
        assert tree["name"] == "percex/springy"
        assert "centers" in tree["index"]
        assert tree["thumb"] == {"name": "thumb"}

        capsys.readouterr()
        assert run_sim(tmp_path, "--ticks", "5", "--model-file", str(model_file)) == 0
        assert f"loading model parameters from {model_file}" in capsys.readouterr().out

    def test_corrupt_model_file(self, no_serial, tmp_path):
        model_file = tmp_path / "model.txt"
        model_file.write_text("(index (name index)")

        assert run_sim(tmp_path, "--model-file", str(model_file)) == 2

    def test_calibration_failure(self, no_serial, tmp_path, config_file, capsys):
        path = config_file("springy:\n  min_samples: 1000\n")

        assert cli.main(["--sim", "--time-scale", "0", "--config", path, "--ticks", "5"]) == 3

        out = capsys.readouterr().out
        assert "ERROR:" in out
        assert "model options: " in out

    def test_invalid_config(self, no_serial, config_file):
        path = config_file("scan:\n  period: -0.1\n")
        assert cli.main(["--sim", "--config", path]) == 2

    def test_malformed_config(self, no_serial, config_file):
        path = config_file("scan: [1, 2\n")
        assert cli.main(["--sim", "--config", path]) == 2


def test_unavailable_port(tmp_path):
    argv = ["--port", "/nonexistent/tty", "--config", str(tmp_path / "missing.yaml")]
    assert cli.main(argv) == 1


def test_link_lost_mid_session(no_serial, tmp_path, monkeypatch, capsys):
    class FlakyHand(cli.SimulatedHand):
        def sleep(self, dt):
            super().sleep(dt)
            if self.now > 6.0:
                self.arm.link_up = False

    monkeypatch.setattr(cli, "SimulatedHand", FlakyHand)

    assert run_sim(tmp_path, "--modelType", "tactile", "--ticks", "100") == 4
    assert "ERROR: simulated link down" in capsys.readouterr().out


def test_rejected_model_file_is_kept(no_serial, tmp_path, capsys):
    model_file = tmp_path / "model.txt"
    text = (
        "(name percex/tactile) "
        "(index (name index) (bias (1.0 2.0)) (scale (1.0 -1.0)) (threshold 3.0))\n"
    )
    model_file.write_text(text)

    assert run_sim(tmp_path, "--modelType", "tactile", "--model-file", str(model_file)) == 2

    assert model_file.read_text() == text
    assert "Saved to:" not in capsys.readouterr().out


class StubJoints:
    def __init__(self, port=None):
        self.port = port or "/dev/ttyUSB0"
        self.closed = 0

    def connect(self, remote, local, reset_delay=2.0):
        pass

    def close(self):
        self.closed += 1


class TestSerialSession:
    @pytest.fixture
    def joints(self, monkeypatch):
        opened = []

        def factory(port=None):
            opened.append(StubJoints(port))
            return opened[-1]

        monkeypatch.setattr(cli, "SerialJointController", factory)
        return opened

    def test_unwritable_log_dir_releases_ports(self, joints, monkeypatch, tmp_path, capsys):
        streams = []

        class StubSensors:
            def __init__(self, port=None, exclude=()):
                self.port = port or "/dev/ttyUSB1"
                self.disconnected = 0
                streams.append(self)

            def connect(self):
                return True

            def start_logging(self, session_dir):
                raise OSError("read-only file system")

            def disconnect(self):
                self.disconnected += 1

        monkeypatch.setattr(cli, "SerialSensorStream", StubSensors)
        argv = ["--log-dir", str(tmp_path / "logs"), "--config", str(tmp_path / "missing.yaml")]

        assert cli.main(argv) == 2

        assert joints[0].closed == 1
        assert streams[0].disconnected == 1
        assert "Cannot log to" in capsys.readouterr().out

    def test_sensors_never_share_the_arm_port(self, joints, monkeypatch, tmp_path):
        class Port:
            device = "/dev/ttyUSB0"
            description = "CP2102 USB to UART"
            manufacturer = "Silicon Labs"

        def forbidden(*args, **kwargs):
            raise AssertionError("serial port opened")

        monkeypatch.setattr(serial.tools.list_ports, "comports", lambda: [Port()])
        monkeypatch.setattr(serial, "Serial", forbidden)
        argv = ["--port", "/dev/ttyUSB0", "--config", str(tmp_path / "missing.yaml")]

        assert cli.main(argv) == 1
        assert joints[0].closed == 1

    def test_same_port_for_both_boards(self, joints, tmp_path):
        argv = [
            "--port", "/dev/ttyUSB0", "--sensor-port", "/dev/ttyUSB0",
            "--config", str(tmp_path / "missing.yaml"),
        ]
        assert cli.main(argv) == 1
        assert joints[0].closed == 1
