"""
Radial-basis-function regressor from a scalar input to a vector output.

Gaussian kernels uniformly spread over the observed input range, plus an
affine tail, fitted by ridge-regularized least squares in z-normalized space.
The ridge penalty applies to the kernel weights only, so an affine relation
is reproduced exactly.
"""

from dataclasses import dataclass

import numpy as np
from scipy.linalg import lstsq

from percex.errors import ConfigError

_STD_FLOOR = 1e-6


def _safe_std(std: np.ndarray) -> np.ndarray:
    return np.where(std < _STD_FLOOR, 1.0, std)


@dataclass
class RBFRegressor:
    """Fitted regressor; all kernel quantities live in normalized input space."""

    centers: np.ndarray   # (K,)
    widths: np.ndarray    # (K,)
    weights: np.ndarray   # (K, D)
    tail: np.ndarray      # (2, D) bias and slope
    in_mean: float
    in_std: float
    out_mean: np.ndarray  # (D,)
    out_std: np.ndarray   # (D,)

    @property
    def output_dim(self) -> int:
        return self.weights.shape[1]

    def _features(self, z: np.ndarray) -> np.ndarray:
        d = (z[:, None] - self.centers[None, :]) / self.widths[None, :]
        return np.exp(-0.5 * d**2)

    def predict(self, x) -> np.ndarray:
        """Predict outputs for scalar or (N,) inputs -> (D,) or (N, D)."""
        x_arr = np.atleast_1d(np.asarray(x, dtype=np.float64))
        z = (x_arr - self.in_mean) / self.in_std
        y_norm = self._features(z) @ self.weights + self.tail[0] + z[:, None] * self.tail[1]
        y = y_norm * self.out_std + self.out_mean
        return y[0] if np.ndim(x) == 0 else y

    def state_dict(self) -> dict:
        return {
            "centers": self.centers.tolist(),
            "widths": self.widths.tolist(),
            "weights": self.weights.tolist(),
            "tail": self.tail.tolist(),
            "in_mean": float(self.in_mean),
            "in_std": float(self.in_std),
            "out_mean": self.out_mean.tolist(),
            "out_std": self.out_std.tolist(),
        }

    @classmethod
    def from_state_dict(cls, d: dict) -> "RBFRegressor":
        try:
            centers = np.atleast_1d(np.array(d["centers"], dtype=np.float64))
            widths = np.atleast_1d(np.array(d["widths"], dtype=np.float64))
            weights = np.array(d["weights"], dtype=np.float64)
            tail = np.array(d["tail"], dtype=np.float64)
            out_mean = np.atleast_1d(np.array(d["out_mean"], dtype=np.float64))
            out_std = np.atleast_1d(np.array(d["out_std"], dtype=np.float64))
            in_mean = float(d["in_mean"])
            in_std = float(d["in_std"])
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigError(f"Invalid RBF parameters: {e}")

        if centers.ndim != 1 or len(centers) < 1:
            raise ConfigError("RBF needs at least one center")
        if widths.shape != centers.shape or np.any(widths <= 0):
            raise ConfigError("RBF widths must be positive, one per center")
        dim = len(out_mean)
        if weights.shape != (len(centers), dim) or tail.shape != (2, dim):
            raise ConfigError(
                f"RBF shape mismatch: weights {weights.shape}, tail {tail.shape}, output dim {dim}"
            )
        if out_std.shape != (dim,) or np.any(out_std <= 0) or in_std <= 0:
            raise ConfigError("RBF normalization std must be positive")

        return cls(
            centers=centers,
            widths=widths,
            weights=weights,
            tail=tail,
            in_mean=in_mean,
            in_std=in_std,
            out_mean=out_mean,
            out_std=out_std,
        )


def fit_rbf(x: np.ndarray, y: np.ndarray, n_centers: int = 8, ridge: float = 1e-6) -> RBFRegressor:
    """Fit an RBF regressor.

    Args:
        x: (N,) scalar inputs (motor joint angles)
        y: (N, D) outputs (distal joint angles)
        n_centers: Requested kernel count, capped by the number of distinct inputs
        ridge: Penalty on kernel weights

    Returns:
        Fitted RBFRegressor.
    """
    x = np.asarray(x, dtype=np.float64).reshape(-1)
    y = np.asarray(y, dtype=np.float64)
    if y.ndim == 1:
        y = y[:, None]
    if len(x) == 0 or len(x) != len(y):
        raise ValueError(f"Need matching non-empty samples, got x={x.shape} y={y.shape}")

    in_mean = float(x.mean())
    in_std = float(_safe_std(np.array(x.std())))
    out_mean = y.mean(axis=0)
    out_std = _safe_std(y.std(axis=0))

    z = (x - in_mean) / in_std
    y_norm = (y - out_mean) / out_std

    # Centers uniformly across the observed range, width = neighbor spacing
    k = max(1, min(n_centers, len(np.unique(z))))
    centers = np.linspace(z.min(), z.max(), k)
    spacing = (centers[-1] - centers[0]) / (k - 1) if k > 1 else 1.0
    widths = np.full(k, spacing if spacing > 0 else 1.0)

    d = (z[:, None] - centers[None, :]) / widths[None, :]
    phi = np.exp(-0.5 * d**2)
    design = np.hstack([phi, np.ones((len(z), 1)), z[:, None]])

    # Ridge as extra rows penalizing the kernel weights only
    penalty = np.hstack([np.sqrt(ridge) * np.eye(k), np.zeros((k, 2))])
    a = np.vstack([design, penalty])
    b = np.vstack([y_norm, np.zeros((k, y.shape[1]))])
    theta, *_ = lstsq(a, b)

    return RBFRegressor(
        centers=centers,
        widths=widths,
        weights=theta[:k],
        tail=theta[k:],
        in_mean=in_mean,
        in_std=in_std,
        out_mean=out_mean,
        out_std=out_std,
    )
