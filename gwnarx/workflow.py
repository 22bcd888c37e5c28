"""
gwnarx.workflow
===============
Preprocessing + model bound into one fitting unit.

``Pipeline`` is a plain value: an ordered list of preprocessing steps and a
trainer closure.  ``Pipeline.fit(data)`` fits every step on ``data`` only,
transforms it, and hands the normalized target to the trainer.  The result
is a frozen ``FittedPipeline`` (the model artifact) that owns the fitted
estimator together with the statistics it was trained on, so forecasts can
always be mapped back to physical units.

.. code-block:: text

    Pipeline([NormalizeStep(["level"])], trainer, "level")
        .fit(train_window)            → FittedPipeline
        .forecast(horizon)            → np.ndarray   (original units)
        .predict(test_frame)          → DataFrame[time, actual, predicted]
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from .config import ScalePolicy
from .errors import AlignmentError
from .models.narx import build_estimator
from .scaling import NormalizeStep

# trainer(normalized_target) -> fitted estimator exposing forecast(horizon)
Trainer = Callable[[np.ndarray], Any]


@dataclass(frozen=True)
class FittedPipeline:
    """Fitted estimator + the preprocessing state used to train it."""
    steps: tuple
    estimator: Any
    target_col: str
    train_end: pd.Timestamp
    n_train: int
    params: Dict[str, Any] = field(default_factory=dict)
    freq: Optional[str] = None

    def forecast_normalized(self, horizon: int) -> np.ndarray:
        return np.asarray(self.estimator.forecast(horizon), dtype=float)

    def forecast(self, horizon: int) -> np.ndarray:
        """``horizon``-step forecast after the training end, original units."""
        frame = pd.DataFrame({self.target_col: self.forecast_normalized(horizon)})
        for stats in reversed(self.steps):
            frame = stats.inverse_frame(frame)
        return frame[self.target_col].to_numpy()

    def expected_index(self, horizon: int) -> pd.DatetimeIndex:
        """The *horizon* timestamps that follow the training end."""
        if self.freq is None:
            raise AlignmentError(
                "Training index has no regular frequency; cannot place forecast steps."
            )
        return pd.date_range(self.train_end, periods=horizon + 1, freq=self.freq)[1:]

    def predict(self, new_data: pd.DataFrame) -> pd.DataFrame:
        """
        Forecast across *new_data* and pair each timestamp with its actual.

        Raises
        ------
        AlignmentError
            Duplicate timestamps, data that does not start after the
            training end, timestamps that are not the consecutive steps
            after it (gaps, wrong frequency), or a forecast whose length
            differs from the number of timestamps.
        """
        idx = new_data.index
        if idx.has_duplicates:
            raise AlignmentError(
                f"Duplicate timestamps in forecast window: "
                f"{idx[idx.duplicated()].unique()[:5].tolist()}"
            )
        if not idx.is_monotonic_increasing:
            raise AlignmentError("Forecast window timestamps are not sorted.")
        if len(idx) and idx[0] <= self.train_end:
            raise AlignmentError(
                f"Forecast window starts at {idx[0]}, not after the training "
                f"end {self.train_end}"
            )
        if self.freq is not None and not idx.equals(self.expected_index(len(idx))):
            raise AlignmentError(
                f"Forecast window {idx[0]} .. {idx[-1]} is not the next {len(idx)} "
                f"'{self.freq}' steps after the training end {self.train_end}"
            )

        predicted = self.forecast(len(idx))
        if len(predicted) != len(idx):
            raise AlignmentError(
                f"Model produced {len(predicted)} predictions for "
                f"{len(idx)} timestamps"
            )

        return pd.DataFrame({
            "time": idx,
            "actual": new_data[self.target_col].to_numpy(dtype=float),
            "predicted": predicted,
        })


def _index_freq(index) -> Optional[str]:
    if not isinstance(index, pd.DatetimeIndex) or len(index) < 3:
        return None
    return index.freqstr or pd.infer_freq(index)


class Pipeline:
    """
    Ordered preprocessing steps plus a model-training closure.

    Parameters
    ----------
    steps : sequence
        Objects with ``fit(df) -> fitted`` where ``fitted`` exposes
        ``transform(df)`` and ``inverse(values, column)``.
    trainer : callable
        ``trainer(y_normalized) -> estimator`` with ``forecast(horizon)``.
    target_col : str
    params : dict, optional
        HyperparameterSet recorded on the fitted artifact.
    """

    def __init__(
        self,
        steps: Sequence[Any],
        trainer: Trainer,
        target_col: str,
        params: Optional[Dict[str, Any]] = None,
    ):
        self.steps: List[Any] = list(steps)
        self.trainer = trainer
        self.target_col = target_col
        self.params = dict(params or {})

    def fit(self, data: pd.DataFrame) -> FittedPipeline:
        if self.target_col not in data.columns:
            raise KeyError(f"Target column '{self.target_col}' not in {list(data.columns)}")
        if data.empty:
            raise ValueError("Cannot fit a pipeline on an empty window.")

        fitted = []
        frame = data
        for step in self.steps:
            stats = step.fit(frame)
            frame = stats.transform(frame)
            fitted.append(stats)

        estimator = self.trainer(frame[self.target_col].to_numpy(dtype=float))
        return FittedPipeline(
            steps=tuple(fitted),
            estimator=estimator,
            target_col=self.target_col,
            train_end=data.index[-1],
            n_train=len(data),
            params=dict(self.params),
            freq=_index_freq(data.index),
        )


def make_narx_pipeline(
    params: Dict[str, Any],
    target_col: str,
    scale_policy: ScalePolicy = ScalePolicy.REJECT,
    seed_sequence: Optional[np.random.SeedSequence] = None,
    estimator_factory: Callable = build_estimator,
) -> Pipeline:
    """Normalize the target, then train ``estimator_factory(params, seeds)``."""

    def trainer(y: np.ndarray):
        return estimator_factory(params, seed_sequence).fit(y)

    return Pipeline(
        steps=[NormalizeStep([target_col], scale_policy)],
        trainer=trainer,
        target_col=target_col,
        params=params,
    )
