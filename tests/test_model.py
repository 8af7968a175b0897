"""Tests for the perceptive model composite and its property tree."""

import pytest

from percex.errors import ConfigError
from percex.fingers import FINGERS
from percex.hardware.simulated import SimulatedHand
from percex.perception.calibration import CalibrationState
from percex.perception.model import PerceptiveModel, build_options, create_model
from percex.properties import format_property, parse_property


@pytest.fixture
def hand():
    return SimulatedHand(seed=1, limits={12: (0.0, 90.0), 15: (0.0, 120.0)})


def springy_model(hand):
    return create_model("springy", hand.distal, joints=hand.arm, sleep=hand.sleep)


def tactile_model(hand):
    return create_model("tactile", hand.taxels, sleep=hand.sleep)


TACTILE_TREE = (
    "(name percex/tactile) (robot icubSim) (type left) (verbose 0) "
    "(thumb (name thumb)) "
    "(index (name index) (bias (10.5 9.75 10.0)) (scale (1.0 0.5 0.25)) (threshold 3.0)) "
    "(middle (name middle)) "
    "(ring (name ring) (bias (1.0 2.0 3.0)) (scale (0.125 0.125 0.125)) (threshold 0.5)) "
    "(little (name little))"
)


class TestConstruction:
    def test_build_options(self):
        options = build_options("percex", "icub", "right", "springy")

        assert options["name"] == "percex/springy"
        assert options["robot"] == "icub"
        assert options["type"] == "right"
        assert options["verbose"] == 1
        for finger in FINGERS:
            assert options[finger] == {"name": finger}

    def test_one_node_per_finger(self, hand):
        model = tactile_model(hand)
        model.from_property(build_options("percex", "icub", "right", "tactile"))

        for finger in FINGERS:
            node = model.get_node(finger)
            assert node.get_name() == finger
            assert node.state is CalibrationState.UNCALIBRATED
        assert model.get_node("pinky") is None

    def test_unknown_model_type(self, hand):
        with pytest.raises(ConfigError):
            create_model("magnetic", hand.taxels)

    def test_springy_needs_joints(self, hand):
        with pytest.raises(ConfigError):
            PerceptiveModel("springy", hand.distal)


class TestCalibrate:
    def test_dispatches_to_named_node(self, hand):
        model = springy_model(hand)
        model.calibrate({"finger": "index"})

        assert model.get_node("index").state is CalibrationState.READY
        assert model.get_node("thumb").state is CalibrationState.UNCALIBRATED

    def test_unknown_finger(self, hand):
        model = tactile_model(hand)
        with pytest.raises(ConfigError):
            model.calibrate({"finger": "pinky"})

    def test_ring_and_little_share_joint(self, hand):
        model = springy_model(hand)
        model.calibrate({"finger": "ring"})

        targets = [t for j, t in hand.arm.commands if j == 15]
        assert targets == pytest.approx([12.0, 108.0, 12.0])
        assert hand.arm.speeds[15] == 60.0


class TestPropertyTree:
    def test_round_trip_of_valid_tree(self, hand):
        tree = parse_property(TACTILE_TREE)
        model = tactile_model(hand)

        model.from_property(tree)

        assert model.to_property() == tree
        assert model.get_node("index").state is CalibrationState.READY
        assert model.hand == "left"
        assert model.robot == "icubSim"

    def test_shutdown_tree_reproduces_model(self, hand):
        model = springy_model(hand)
        model.from_property(build_options("percex", "icub", "right", "springy"))
        model.calibrate({"finger": "index"})

        text = format_property(model.to_property())
        tree = parse_property(text)
        for finger in FINGERS:
            assert isinstance(tree[finger], dict)
            assert tree[finger]["name"] == finger

        restored = springy_model(hand)
        restored.from_property(tree)

        assert restored.to_property() == model.to_property()
        hand.arm.set_encoder(12, 33.0)
        model.get_node("index").get_sensors_data()
        restored.get_node("index").get_sensors_data()
        assert restored.get_node("index").get_output() == pytest.approx(
            model.get_node("index").get_output()
        )

    def test_missing_fingers_start_uncalibrated(self, hand):
        model = tactile_model(hand)
        model.from_property(parse_property(TACTILE_TREE))

        model.from_property({"name": "percex/tactile", "ring": {"name": "ring"}})

        assert model.get_node("index").state is CalibrationState.UNCALIBRATED
        assert model.to_property()["index"] == {"name": "index"}

    def test_unknown_finger_rejected(self, hand):
        model = tactile_model(hand)
        with pytest.raises(ConfigError):
            model.from_property({"name": "percex/tactile", "pinky": {"name": "pinky"}})

    def test_bad_node_parameters_leave_model_untouched(self, hand):
        model = tactile_model(hand)
        model.from_property(parse_property(TACTILE_TREE))
        before = model.to_property()

        bad = parse_property(TACTILE_TREE)
        bad["ring"]["scale"] = [0.125, -1.0, 0.125]
        with pytest.raises(ConfigError):
            model.from_property(bad)

        assert model.to_property() == before

    def test_unknown_hand(self, hand):
        model = tactile_model(hand)
        with pytest.raises(ConfigError):
            model.from_property({"type": "middle"})
