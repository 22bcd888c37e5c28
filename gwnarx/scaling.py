"""
gwnarx.scaling
==============
Per-channel z-score normalization with leakage-safe statistics.

Statistics are fitted on **one window only** (a fold's training range or
the full training segment) and then applied — never refitted — to any later
data, including assessment / test values being compared in original units.

Public API
----------
fit_normalizer(window, columns, policy)   → NormalizationStats
transform(value, stats, column)           → (value - mean) / std
inverse(value, stats, column)             → value * std + mean
NormalizeStep(columns, policy)            → pipeline step wrapper

Zero-variance policy
--------------------
``ScalePolicy.REJECT``   — raise ``DegenerateScaleError`` (default).
``ScalePolicy.IDENTITY`` — pass the channel through unchanged
(mean 0, std 1) and warn.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.preprocessing import StandardScaler

from .config import ScalePolicy
from .errors import DegenerateScaleError

# Relative tolerance below which a standard deviation counts as zero.
_ZERO_STD_RTOL = 1e-12


@dataclass(frozen=True)
class NormalizationStats:
    """Per-channel ``{mean, std}`` computed from a single fitting window."""
    mean: Dict[str, float]
    std: Dict[str, float]
    n_obs: int = 0

    @property
    def columns(self) -> List[str]:
        return list(self.mean)

    def transform(self, df: pd.DataFrame) -> pd.DataFrame:
        """Z-score every fitted channel present in *df* (returns a copy)."""
        out = df.copy()
        for col in self.columns:
            if col in out.columns:
                out[col] = transform(out[col].to_numpy(dtype=float), self, col)
        return out

    def inverse_frame(self, df: pd.DataFrame) -> pd.DataFrame:
        out = df.copy()
        for col in self.columns:
            if col in out.columns:
                out[col] = inverse(out[col].to_numpy(dtype=float), self, col)
        return out

    def to_dict(self) -> dict:
        return {"mean": dict(self.mean), "std": dict(self.std), "n_obs": self.n_obs}


def fit_normalizer(
    window: pd.DataFrame,
    columns: Optional[Sequence[str]] = None,
    policy: ScalePolicy = ScalePolicy.REJECT,
) -> NormalizationStats:
    """
    Fit mean / standard deviation per channel on *window*.

    Parameters
    ----------
    window : pd.DataFrame
        The training rows only.
    columns : sequence of str, optional
        Channels used by the model.  None = all numeric columns.
    policy : ScalePolicy

    Raises
    ------
    DegenerateScaleError
        If a channel is constant and ``policy`` is REJECT.
    """
    if columns is None:
        columns = list(window.select_dtypes("number").columns)
    columns = list(columns)
    if window.empty or not columns:
        raise ValueError("Cannot fit normalization on an empty window.")

    scaler = StandardScaler()
    scaler.fit(window[columns].to_numpy(dtype=float))

    mean: Dict[str, float] = {}
    std: Dict[str, float] = {}
    for col, mu, var in zip(columns, scaler.mean_, scaler.var_):
        sd = float(np.sqrt(var))
        if not np.isfinite(sd) or sd <= _ZERO_STD_RTOL * max(1.0, abs(mu)):
            if policy == ScalePolicy.REJECT:
                raise DegenerateScaleError(col, float(mu))
            warnings.warn(
                f"Channel '{col}' is constant over the fitting window; "
                f"passing it through unscaled.",
                RuntimeWarning,
            )
            mean[col], std[col] = 0.0, 1.0
        else:
            mean[col], std[col] = float(mu), sd

    return NormalizationStats(mean=mean, std=std, n_obs=len(window))


def _like(value, out: np.ndarray):
    return float(out) if np.ndim(value) == 0 else out


def transform(value, stats: NormalizationStats, column: str):
    """``(value - mean) / std`` for a scalar or array."""
    out = (np.asarray(value, dtype=float) - stats.mean[column]) / stats.std[column]
    return _like(value, out)


def inverse(value, stats: NormalizationStats, column: str):
    """``value * std + mean`` for a scalar or array."""
    out = np.asarray(value, dtype=float) * stats.std[column] + stats.mean[column]
    return _like(value, out)


class NormalizeStep:
    """Preprocessing step for :class:`gwnarx.workflow.Pipeline`."""

    def __init__(
        self,
        columns: Optional[Sequence[str]] = None,
        policy: ScalePolicy = ScalePolicy.REJECT,
    ):
        self.columns = list(columns) if columns is not None else None
        self.policy = policy

    def fit(self, df: pd.DataFrame) -> NormalizationStats:
        return fit_normalizer(df, self.columns, self.policy)

    def __repr__(self) -> str:
        return f"NormalizeStep(columns={self.columns}, policy={self.policy.value})"
