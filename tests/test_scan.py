"""Tests for the finger scan driver."""

import pytest

from percex.config import ScanConfig
from percex.errors import IOLinkLost
from percex.fingers import SafeRange, cruise_speed, finger_joint
from percex.hardware.simulated import SimulatedHand
from percex.perception.model import build_options, create_model
from percex.scan import ScanDriver, ScanState, format_report, run_periodic


@pytest.fixture
def hand():
    return SimulatedHand(seed=2, limits={12: (0.0, 90.0), 14: (0.0, 90.0), 15: (0.0, 90.0)})


def make_driver(hand, finger="index", model_type="tactile"):
    sensors = hand.sensors(model_type)
    model = create_model(model_type, sensors, joints=hand.arm, sleep=hand.sleep)
    model.from_property(build_options("percex", "icub", "right", model_type))
    lines = []
    driver = ScanDriver(model, hand.arm, finger, emit=lines.append)
    return driver, lines


def run_ticks(driver, hand, n):
    for _ in range(n):
        driver.tick()
        hand.sleep(0.1)


class TestFingerTable:
    def test_joint_mapping(self):
        assert [finger_joint(f) for f in ("thumb", "index", "middle", "ring", "little")] == [
            10, 12, 14, 15, 15
        ]

    def test_cruise_speeds(self):
        assert cruise_speed("ring") == 60.0
        assert cruise_speed("little") == 60.0
        assert cruise_speed("middle") == 30.0
        assert cruise_speed("thumb") == 30.0


class TestScanDriver:
    def test_first_target_and_flip(self, hand):
        driver, lines = make_driver(hand, "index", "tactile")
        assert driver.range == SafeRange(9.0, 81.0)

        driver.tick()
        assert driver.state is ScanState.SCANNING
        assert hand.arm.commands == [(12, 9.0)]

        for _ in range(100):
            hand.sleep(0.1)
            driver.tick()
            if len(hand.arm.commands) > 1:
                break

        assert hand.arm.commands[1] == (12, 81.0)
        assert abs(9.0 - hand.arm.get_encoder(12)) < 5.0

    @pytest.mark.parametrize("finger,joint,speed", [("ring", 15, 60.0), ("middle", 14, 30.0)])
    def test_finger_resolves_joint_and_speed(self, hand, finger, joint, speed):
        driver, _ = make_driver(hand, finger, "tactile")
        driver.tick()

        assert driver.joint == joint
        assert hand.arm.speeds[joint] == speed
        assert hand.arm.accelerations[joint] == 1e9

    def test_calibration_markers_and_reports(self, hand):
        driver, lines = make_driver(hand, "index", "tactile")
        run_ticks(driver, hand, 4)

        assert lines[0].startswith("calibrating index")
        assert lines[1] == "calibration of index done"
        assert len(lines) == 5
        for line in lines[2:]:
            assert line.startswith("index sensors data = (")
            assert "; output = " in line

    def test_targets_stay_in_safe_range_and_alternate(self, hand):
        driver, _ = make_driver(hand, "index", "springy")
        driver.tick()
        first_scan_command = len(hand.arm.commands) - 1

        run_ticks(driver, hand, 300)

        targets = [t for _, t in hand.arm.commands]
        assert all(driver.range.contains(t) for t in targets)
        scan_targets = targets[first_scan_command:]
        assert len(scan_targets) > 4
        for a, b in zip(scan_targets, scan_targets[1:]):
            assert a != b

    def test_sensor_failure_skips_tick(self, hand):
        driver, lines = make_driver(hand, "index", "tactile")
        driver.tick()
        reported = len(lines)

        hand.taxels.dropouts = 1
        driver.tick()
        assert len(lines) == reported

        driver.tick()
        assert len(lines) == reported + 1

    def test_short_reading_skips_tick(self, hand):
        driver, lines = make_driver(hand, "index", "tactile")
        driver.tick()
        reported = len(lines)
        commands = list(hand.arm.commands)

        hand.taxels.n_taxels = 3
        driver.tick()

        assert driver.state is ScanState.SCANNING
        assert len(lines) == reported
        assert hand.arm.commands == commands

        hand.taxels.n_taxels = 12
        driver.tick()
        assert len(lines) == reported + 1

    def test_link_loss_is_fatal(self, hand):
        driver, _ = make_driver(hand, "index", "tactile")
        driver.tick()

        hand.arm.link_up = False
        with pytest.raises(IOLinkLost):
            driver.tick()

    def test_stop_at_tick_boundary(self, hand):
        driver, lines = make_driver(hand, "index", "tactile")
        run_ticks(driver, hand, 3)

        driver.stop()
        assert not driver.running
        before = len(lines)
        driver.tick()

        assert driver.state is ScanState.STOPPED
        assert len(lines) == before

    def test_close_releases_joints_once(self, hand):
        driver, _ = make_driver(hand)
        driver.close()
        driver.close()
        assert hand.arm.close_count == 1


class TestRunPeriodic:
    def test_runs_requested_ticks(self, hand):
        driver, lines = make_driver(hand, "index", "tactile")

        count = run_periodic(driver, ScanConfig().period, max_ticks=20, sleep=hand.sleep, clock=hand.clock)

        assert count == 20
        assert driver.ticks == 20
        assert len(lines) == 2 + 19

    def test_stops_when_driver_stops(self, hand):
        driver, _ = make_driver(hand, "index", "tactile")

        def sleep(dt):
            hand.sleep(dt)
            if driver.ticks >= 5:
                driver.stop()

        count = run_periodic(driver, 0.1, sleep=sleep, clock=hand.clock)

        assert count == 5
        assert not driver.running


def test_format_report():
    line = format_report("index", [1.0, 2.5], 0.25)
    assert line == "index sensors data = (1.0 2.5); output = 0.25"
