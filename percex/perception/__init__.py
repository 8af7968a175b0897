"""Perceptive nodes, models and their calibration."""

from percex.perception.calibration import CalibrationState, SpringyFit, TactileBaseline
from percex.perception.model import PerceptiveModel, build_options, create_model
from percex.perception.nodes import NODE_TYPES, SpringyNode, TactileNode
from percex.perception.rbf import RBFRegressor, fit_rbf

__all__ = [
    "CalibrationState",
    "NODE_TYPES",
    "PerceptiveModel",
    "RBFRegressor",
    "SpringyFit",
    "SpringyNode",
    "TactileBaseline",
    "TactileNode",
    "build_options",
    "create_model",
    "fit_rbf",
]
