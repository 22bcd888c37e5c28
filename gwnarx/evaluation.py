"""
gwnarx.evaluation
=================
Forecast-error metrics and single-trial scoring.

Metrics
-------
* **RMSE** — ``sqrt(mean((actual - predicted)²))``
* **MAE**  — ``mean(|actual - predicted|)``

Both are computed in **original units**: forecasts are inverse-transformed
with the statistics of the window the model was trained on before they are
compared with the untouched actual values.

Public API
----------
compute_metrics(y_true, y_pred)                   → dict
score(metric, y_true, y_pred)                     → float
run_trial(train, fold, params, config_index, ...) → TrialResult
"""

from __future__ import annotations

import time
import warnings
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import numpy as np
import pandas as pd
from sklearn.metrics import mean_absolute_error, mean_squared_error

from .config import Metric, ScalePolicy
from .errors import AlignmentError, DegenerateScaleError, FitFailure
from .models.narx import build_estimator, member_seed_sequence
from .splitting import CVFold, fold_windows
from .workflow import make_narx_pipeline


# ======================================================================== #
#  Metrics                                                                  #
# ======================================================================== #

def _check_pair(y_true, y_pred):
    y_true = np.asarray(y_true, dtype=np.float64).ravel()
    y_pred = np.asarray(y_pred, dtype=np.float64).ravel()
    if y_true.shape != y_pred.shape:
        raise AlignmentError(
            f"{len(y_pred)} predictions for {len(y_true)} actual values"
        )
    if len(y_true) == 0:
        raise AlignmentError("Cannot score an empty window.")
    return y_true, y_pred


def rmse(y_true, y_pred) -> float:
    y_true, y_pred = _check_pair(y_true, y_pred)
    return float(np.sqrt(mean_squared_error(y_true, y_pred)))


def mae(y_true, y_pred) -> float:
    y_true, y_pred = _check_pair(y_true, y_pred)
    return float(mean_absolute_error(y_true, y_pred))


METRICS: Dict[Metric, Callable[[Any, Any], float]] = {
    Metric.RMSE: rmse,
    Metric.MAE: mae,
}


def score(metric: Metric, y_true, y_pred) -> float:
    return METRICS[Metric(metric)](y_true, y_pred)


def compute_metrics(y_true, y_pred) -> Dict[str, float]:
    """
    Compute every supported metric.

    Raises
    ------
    AlignmentError
        If the arrays differ in length or are empty.
    """
    return {m.value: fn(y_true, y_pred) for m, fn in METRICS.items()}


# ======================================================================== #
#  Single trial                                                             #
# ======================================================================== #

@dataclass
class TrialResult:
    """Score of one (fold, configuration) pair.  ``value is None`` = failed."""
    fold_id: int
    config_index: int
    params: Dict[str, Any]
    metric: str
    value: Optional[float]
    error: Optional[str] = None
    elapsed_s: float = 0.0
    extra: Dict[str, float] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.value is not None

    def to_row(self) -> Dict[str, Any]:
        row = {
            "fold_id": self.fold_id,
            "config_index": self.config_index,
            **self.params,
            "metric": self.metric,
            "value": self.value,
            "error": self.error,
            "elapsed_s": round(self.elapsed_s, 3),
        }
        row.update(self.extra)
        return row


def run_trial(
    train: pd.DataFrame,
    fold: CVFold,
    params: Dict[str, Any],
    config_index: int,
    target_col: str,
    metric: Metric = Metric.RMSE,
    scale_policy: ScalePolicy = ScalePolicy.REJECT,
    random_seed: int = 42,
    estimator_factory: Callable = build_estimator,
) -> TrialResult:
    """
    Fit one configuration on one fold and score it on the fold's
    assessment window.

    Normalization statistics come from the fold's train window only.
    ``FitFailure``, ``DegenerateScaleError`` and ``AlignmentError`` are
    recovered here: the trial is returned with ``value=None`` and the
    reason in ``error``.  Anything else propagates.
    """
    t0 = time.time()
    train_window, assess_window = fold_windows(train, fold)
    seeds = member_seed_sequence(random_seed, fold.fold_id + 1, config_index)
    pipe = make_narx_pipeline(
        params, target_col, scale_policy, seeds, estimator_factory
    )

    try:
        fitted = pipe.fit(train_window)
        y_pred = fitted.forecast(len(assess_window))
        y_true = assess_window[target_col].to_numpy(dtype=float)
        if not np.all(np.isfinite(y_pred)):
            raise FitFailure("Forecast contains non-finite values")
        metrics = compute_metrics(y_true, y_pred)
        value = metrics[Metric(metric).value]
        losses = getattr(fitted.estimator, "train_loss_", None)
        if losses:
            metrics["train_loss"] = float(np.mean(losses))
    except (FitFailure, DegenerateScaleError, AlignmentError) as e:
        warnings.warn(
            f"Trial fold={fold.fold_id} config={config_index} failed: "
            f"{type(e).__name__}: {e}"
        )
        return TrialResult(
            fold_id=fold.fold_id,
            config_index=config_index,
            params=dict(params),
            metric=Metric(metric).value,
            value=None,
            error=f"{type(e).__name__}: {e}",
            elapsed_s=time.time() - t0,
        )

    return TrialResult(
        fold_id=fold.fold_id,
        config_index=config_index,
        params=dict(params),
        metric=Metric(metric).value,
        value=float(value),
        elapsed_s=time.time() - t0,
        extra=dict(metrics),
    )
