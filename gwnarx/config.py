"""
gwnarx.config
=============
Central configuration: constants, dataclasses, and sane defaults.

Every run is fully described by a `PipelineConfig` dataclass that is
serialised alongside results for reproducibility.
"""

from __future__ import annotations

import hashlib
import json
import platform
import subprocess
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Any, Dict, List, Optional


# ---------------------------------------------------------------------------
# Fixed model constants
# ---------------------------------------------------------------------------
SEASONAL_PERIOD: int = 12      # monthly groundwater readings → yearly season
ENSEMBLE_SIZE: int = 20        # networks averaged per forecast

# Parameters that are never tuned; injected into every grid configuration.
FIXED_PARAMS = ("seasonal_period", "num_networks")


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------
class Metric(str, Enum):
    """Error metric used to rank configurations (lower is better)."""
    RMSE = "rmse"
    MAE = "mae"


class ScalePolicy(str, Enum):
    """What to do with a zero-variance channel during normalization."""
    REJECT = "reject"        # raise DegenerateScaleError
    IDENTITY = "identity"    # pass the channel through unscaled (mean 0, std 1)


class ParamKind(str, Enum):
    """Value domain of a tuned hyperparameter."""
    INTEGER = "integer"
    CONTINUOUS = "continuous"


# ---------------------------------------------------------------------------
# Configuration dataclasses
# ---------------------------------------------------------------------------
@dataclass
class ParamRange:
    """
    Typed range descriptor for one tuned hyperparameter.

    Bounds are inclusive.  With ``log10=True`` the levels of a continuous
    range are spaced evenly in log10 space (bounds must be > 0).
    """
    name: str
    kind: ParamKind
    min: float
    max: float
    log10: bool = False

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "kind": self.kind.value,
            "min": self.min,
            "max": self.max,
            "log10": self.log10,
        }

    @classmethod
    def from_dict(cls, raw: dict) -> "ParamRange":
        raw = dict(raw)
        raw["kind"] = ParamKind(raw["kind"])
        return cls(**raw)


def default_param_ranges() -> List[ParamRange]:
    """Search ranges for the lagged-autoregressive ensemble."""
    return [
        ParamRange("non_seasonal_ar", ParamKind.INTEGER, 1, 5),
        ParamRange("seasonal_ar", ParamKind.INTEGER, 0, 2),
        ParamRange("hidden_units", ParamKind.INTEGER, 1, 10),
        ParamRange("penalty", ParamKind.CONTINUOUS, 1e-10, 1.0, log10=True),
        ParamRange("epochs", ParamKind.INTEGER, 10, 1000),
    ]


@dataclass
class CVConfig:
    """Rolling-origin cross-validation parameters."""
    initial_fraction: float = 0.5     # share of the train segment in fold 0
    n_slices: int = 5                 # number of folds / assessment slices
    cumulative: bool = True           # expanding (True) or sliding window

    def to_dict(self) -> dict:
        return {
            "initial_fraction": self.initial_fraction,
            "n_slices": self.n_slices,
            "cumulative": self.cumulative,
        }


@dataclass
class GridConfig:
    """Hyperparameter grid: per-parameter ranges and resolution."""
    levels: int = 3
    ranges: List[ParamRange] = field(default_factory=default_param_ranges)

    def to_dict(self) -> dict:
        return {
            "levels": self.levels,
            "ranges": [r.to_dict() for r in self.ranges],
        }


@dataclass
class PipelineConfig:
    """Master configuration for one grid search + final forecast."""

    # -- Data --
    data_path: Optional[str] = None
    time_col: str = "time"
    target_col: str = "level"
    output_dir: Optional[str] = "experiments"

    # -- Validation scheme --
    train_proportion: float = 0.9
    cv_config: CVConfig = field(default_factory=CVConfig)

    # -- Search --
    grid_config: GridConfig = field(default_factory=GridConfig)
    metric: Metric = Metric.RMSE
    scale_policy: ScalePolicy = ScalePolicy.REJECT

    # -- Fixed model constants --
    seasonal_period: int = SEASONAL_PERIOD
    ensemble_size: int = ENSEMBLE_SIZE

    # -- Performance / reproducibility --
    random_seed: int = 42
    n_jobs: int = 1

    created_at: str = field(default_factory=lambda: datetime.now().isoformat())

    # ----- helpers -----
    @property
    def fixed_params(self) -> Dict[str, Any]:
        return dict(zip(FIXED_PARAMS, (self.seasonal_period, self.ensemble_size)))

    def to_dict(self) -> dict:
        return {
            "data_path": self.data_path,
            "time_col": self.time_col,
            "target_col": self.target_col,
            "output_dir": self.output_dir,
            "train_proportion": self.train_proportion,
            "cv_config": self.cv_config.to_dict(),
            "grid_config": self.grid_config.to_dict(),
            "metric": self.metric.value,
            "scale_policy": self.scale_policy.value,
            "seasonal_period": self.seasonal_period,
            "ensemble_size": self.ensemble_size,
            "random_seed": self.random_seed,
            "n_jobs": self.n_jobs,
            "created_at": self.created_at,
        }

    def save(self, path: str | Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2))

    @classmethod
    def load(cls, path: str | Path) -> "PipelineConfig":
        raw = json.loads(Path(path).read_text())
        raw["cv_config"] = CVConfig(**raw["cv_config"])
        gc = raw["grid_config"]
        raw["grid_config"] = GridConfig(
            levels=gc["levels"],
            ranges=[ParamRange.from_dict(r) for r in gc["ranges"]],
        )
        raw["metric"] = Metric(raw["metric"])
        raw["scale_policy"] = ScalePolicy(raw["scale_policy"])
        return cls(**raw)


# ---------------------------------------------------------------------------
# Environment / reproducibility snapshot
# ---------------------------------------------------------------------------
def get_environment_info() -> dict:
    """Capture runtime environment for metadata."""
    info = {
        "python": platform.python_version(),
        "platform": platform.platform(),
        "timestamp": datetime.now().isoformat(),
    }
    for dist in ("numpy", "pandas", "scikit-learn", "torch"):
        try:
            info[dist] = version(dist)
        except PackageNotFoundError:
            info[dist] = None
    try:
        info["git_commit"] = (
            subprocess.check_output(
                ["git", "rev-parse", "HEAD"], stderr=subprocess.DEVNULL
            )
            .decode()
            .strip()
        )
    except (OSError, subprocess.CalledProcessError):
        info["git_commit"] = None
    return info


def file_hash(filepath: str | Path, algo: str = "sha256") -> str:
    """Compute hash of a file for provenance tracking."""
    h = hashlib.new(algo)
    with open(filepath, "rb") as f:
        for chunk in iter(lambda: f.read(1 << 20), b""):
            h.update(chunk)
    return h.hexdigest()
