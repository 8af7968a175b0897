"""
Configuration for scanning and calibration.

Defaults live in the dataclasses below; a YAML file (see configs/default.yaml)
can override any field:

    scan:
      period: 0.1
    springy:
      n_centers: 8
    tactile:
      rest_ticks: 50
"""

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path

from omegaconf import OmegaConf
from omegaconf.errors import OmegaConfBaseException
from yaml import YAMLError

from percex.errors import ConfigError


@dataclass
class ScanConfig:
    """Scan driver settings."""

    period: float = 0.1             # Tick period (s)
    tolerance: float = 5.0          # Target reached when |target - encoder| < tolerance (deg)
    margin: float = 0.1             # SafeRange inset, fraction of the joint span
    acceleration: float = 1e9       # Reference acceleration (deg/s^2)


@dataclass
class SpringyCalibration:
    """Sweep and RBF fit settings for springy nodes."""

    n_centers: int = 8
    ridge: float = 1e-6
    min_samples: int = 20
    settle_fraction: float = 0.02   # Settle epsilon as a fraction of the SafeRange span
    max_settle_ticks: int = 200     # Per leg of the sweep
    collision_bound: float = 20.0   # Max distal jump between consecutive samples (deg)


@dataclass
class TactileCalibration:
    """Resting baseline settings for tactile nodes."""

    rest_ticks: int = 50
    min_samples: int = 10
    scale_floor: float = 1e-3
    threshold_gain: float = 3.0


@dataclass
class PercexConfig:
    scan: ScanConfig = field(default_factory=ScanConfig)
    springy: SpringyCalibration = field(default_factory=SpringyCalibration)
    tactile: TactileCalibration = field(default_factory=TactileCalibration)

    def validate(self) -> "PercexConfig":
        if self.scan.period <= 0:
            raise ConfigError(f"scan.period must be positive, got {self.scan.period}")
        if self.scan.tolerance <= 0:
            raise ConfigError(f"scan.tolerance must be positive, got {self.scan.tolerance}")
        if not 0 <= self.scan.margin < 0.5:
            raise ConfigError(f"scan.margin must be in [0, 0.5), got {self.scan.margin}")
        if self.springy.n_centers < 1:
            raise ConfigError(f"springy.n_centers must be >= 1, got {self.springy.n_centers}")
        if self.springy.ridge < 0:
            raise ConfigError(f"springy.ridge must be >= 0, got {self.springy.ridge}")
        if self.tactile.scale_floor <= 0:
            raise ConfigError(f"tactile.scale_floor must be positive, got {self.tactile.scale_floor}")
        if self.tactile.rest_ticks < self.tactile.min_samples:
            raise ConfigError("tactile.rest_ticks must be >= tactile.min_samples")
        return self


def _section(cls, values) -> object:
    if not isinstance(values, dict):
        raise ConfigError(f"{cls.__name__} section must be a mapping, got {values!r}")
    # Filter to only the dataclass fields
    valid_fields = {f.name for f in dataclasses.fields(cls)}
    kwargs = {k: v for k, v in values.items() if k in valid_fields}
    defaults = cls()
    for name, value in kwargs.items():
        expected = type(getattr(defaults, name))
        try:
            kwargs[name] = expected(value)
        except (TypeError, ValueError):
            raise ConfigError(f"{cls.__name__}.{name}: cannot use {value!r}")
    return cls(**kwargs)


def load_config(path: str | Path | None = None) -> PercexConfig:
    """Load config from a YAML file, falling back to defaults.

    A missing `path` (None or nonexistent file) yields the defaults.
    """
    if path is None or not Path(path).exists():
        return PercexConfig().validate()

    try:
        cfg = OmegaConf.load(str(path))
        raw = OmegaConf.to_container(cfg, resolve=True) or {}
    except (OmegaConfBaseException, YAMLError, OSError) as e:
        raise ConfigError(f"Cannot read config {path}: {e}")

    if not isinstance(raw, dict):
        raise ConfigError(f"Config {path} must be a mapping")

    return PercexConfig(
        scan=_section(ScanConfig, raw.get("scan") or {}),
        springy=_section(SpringyCalibration, raw.get("springy") or {}),
        tactile=_section(TactileCalibration, raw.get("tactile") or {}),
    ).validate()
