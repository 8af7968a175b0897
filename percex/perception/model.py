"""
Perceptive model: one node per finger, addressed by finger name.

The model serializes to a property tree

    (name percex/springy) (robot icub) (type right) (verbose 1)
    (thumb (name thumb)) (index (name index) (centers (...)) ...) ...

with one subgroup per finger. Fingers absent from a loaded tree start
uncalibrated; keys that are neither header fields nor fingers are rejected.
"""

import logging
import time
from typing import Callable, Optional

from percex.config import PercexConfig
from percex.errors import ConfigError
from percex.fingers import FINGERS
from percex.hardware.joints import JointController
from percex.hardware.sensors import SensorSource
from percex.perception.nodes import NODE_TYPES, Node, SpringyNode, TactileNode

logger = logging.getLogger(__name__)

HEADER_KEYS = ("name", "robot", "type", "verbose")
HANDS = ("left", "right")


def build_options(name: str, robot: str, hand: str, model_type: str, verbose: int = 1) -> dict:
    """Initial property tree for a fresh model."""
    options = {
        "name": f"{name}/{model_type}",
        "robot": robot,
        "type": hand,
        "verbose": verbose,
    }
    for finger in FINGERS:
        options[finger] = {"name": finger}
    return options


class PerceptiveModel:
    """Composite of perceptive nodes, one per finger."""

    def __init__(
        self,
        model_type: str,
        sensors: SensorSource,
        joints: Optional[JointController] = None,
        config: Optional[PercexConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if model_type not in NODE_TYPES:
            raise ConfigError(f"unknown model type: {model_type!r} (choose from {', '.join(NODE_TYPES)})")
        if model_type == "springy" and joints is None:
            raise ConfigError("springy model needs a joint controller")

        self.model_type = model_type
        self.sensors = sensors
        self.joints = joints
        self.config = config or PercexConfig()
        self.sleep = sleep

        self.name = model_type
        self.robot = ""
        self.hand = "right"
        self.verbose = 0
        self.nodes: dict[str, Node] = {finger: self._new_node(finger) for finger in FINGERS}

    def _new_node(self, finger: str) -> Node:
        if self.model_type == "springy":
            return SpringyNode(finger, self.sensors, self.joints, self.config, self.sleep)
        return TactileNode(finger, self.sensors, self.config, self.sleep)

    def get_node(self, finger: str) -> Optional[Node]:
        return self.nodes.get(finger)

    def calibrate(self, options: dict):
        """Calibrate the node named by options['finger']."""
        finger = options.get("finger")
        node = self.get_node(finger)
        if node is None:
            raise ConfigError(f"unknown finger: {finger!r}")

        if self.verbose:
            logger.info("%s: calibrating %s", self.name, finger)
        node.calibrate(options)
        if self.verbose:
            logger.info("%s: %s calibrated", self.name, finger)

    # -- Property tree -------------------------------------------------------

    def from_property(self, tree: dict):
        """Configure the model from a property tree. Raises ConfigError."""
        if not isinstance(tree, dict):
            raise ConfigError(f"model options must be a group, got {tree!r}")

        unknown = [key for key in tree if key not in HEADER_KEYS and key not in FINGERS]
        if unknown:
            raise ConfigError(f"unknown entries in model options: {unknown}")

        hand = tree.get("type", self.hand)
        if hand not in HANDS:
            raise ConfigError(f"unknown hand type: {hand!r}")

        try:
            verbose = int(tree.get("verbose", self.verbose))
        except (TypeError, ValueError):
            raise ConfigError(f"verbose must be an integer, got {tree.get('verbose')!r}")

        # Parse every node before touching the model
        nodes = {}
        for finger in FINGERS:
            node = self._new_node(finger)
            if finger in tree:
                node.from_property(tree[finger])
            nodes[finger] = node

        self.name = str(tree.get("name", self.name))
        self.robot = str(tree.get("robot", self.robot))
        self.hand = hand
        self.verbose = verbose
        self.nodes = nodes

    def to_property(self) -> dict:
        tree = {
            "name": self.name,
            "robot": self.robot,
            "type": self.hand,
            "verbose": self.verbose,
        }
        for finger in FINGERS:
            tree[finger] = self.nodes[finger].to_property()
        return tree


def create_model(
    model_type: str,
    sensors: SensorSource,
    joints: Optional[JointController] = None,
    config: Optional[PercexConfig] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> PerceptiveModel:
    """Build an empty springy or tactile model."""
    return PerceptiveModel(model_type, sensors, joints=joints, config=config, sleep=sleep)
