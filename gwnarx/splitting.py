"""
gwnarx.splitting
================
Time-ordered train / test splitting and rolling-origin CV fold planning.

Public API
----------
train_test_split(series, proportion)          → (train, test)
make_cv_folds(n_train, initial_fraction, ...) → List[CVFold]
fold_windows(train, fold)                     → (train_window, assess_window)

Rolling origin (cumulative)
---------------------------
::

    initial = floor(n_train * initial_fraction)
    slice   = floor((n_train - initial) / n_slices)

    fold k :  train  = [0, initial + k*slice)
              assess = [initial + k*slice, initial + (k+1)*slice)

Each fold's assessment window immediately follows its training window and
no two assessment windows overlap.  Any trailing remainder
``n_train - initial - n_slices*slice`` is left unused.

Leakage checklist
-----------------
✓  Boundaries are element counts, never calendar arithmetic.
✓  Assessment rows are strictly after every training row of their fold.
✓  Normalization is fitted per fold on the train window (see ``scaling``).
"""

from __future__ import annotations

import math
import warnings
from dataclasses import dataclass
from typing import List, Tuple

import pandas as pd

from .errors import ConfigError


# ======================================================================== #
#  1.  Train / test split                                                   #
# ======================================================================== #

def train_test_split(
    series: pd.DataFrame,
    proportion: float = 0.9,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Split a time-ordered frame into a leading train and trailing test part.

    ``train`` holds the first ``floor(proportion * N)`` rows.

    Raises
    ------
    ConfigError
        If ``proportion`` is outside (0, 1) or leaves either part empty.
    """
    if not 0.0 < proportion < 1.0:
        raise ConfigError(f"train_proportion must be in (0, 1), got {proportion}")

    n = len(series)
    boundary = math.floor(proportion * n)
    if boundary <= 0 or boundary >= n:
        raise ConfigError(
            f"train_proportion={proportion} on {n} observations leaves an "
            f"empty {'train' if boundary <= 0 else 'test'} segment"
        )

    return series.iloc[:boundary], series.iloc[boundary:]


# ======================================================================== #
#  2.  Rolling-origin folds                                                 #
# ======================================================================== #

@dataclass(frozen=True)
class CVFold:
    """One rolling-origin fold: half-open index ranges into the train segment."""
    fold_id: int
    train_range: Tuple[int, int]
    assess_range: Tuple[int, int]

    def __post_init__(self):
        tr_start, tr_stop = self.train_range
        as_start, as_stop = self.assess_range
        if not 0 <= tr_start < tr_stop:
            raise ConfigError(f"Fold {self.fold_id}: empty train range {self.train_range}")
        if as_stop <= as_start:
            raise ConfigError(f"Fold {self.fold_id}: empty assess range {self.assess_range}")
        if as_start != tr_stop:
            raise ConfigError(
                f"Fold {self.fold_id}: assess range {self.assess_range} does not "
                f"immediately follow train range {self.train_range}"
            )

    @property
    def train_size(self) -> int:
        return self.train_range[1] - self.train_range[0]

    @property
    def assess_size(self) -> int:
        return self.assess_range[1] - self.assess_range[0]

    @property
    def label(self) -> str:
        return f"Slice{self.fold_id + 1:02d}"

    @property
    def info(self) -> dict:
        return {
            "fold_id": self.fold_id,
            "label": self.label,
            "train_range": list(self.train_range),
            "assess_range": list(self.assess_range),
        }


def make_cv_folds(
    n_train: int,
    initial_fraction: float = 0.5,
    n_slices: int = 5,
    cumulative: bool = True,
) -> List[CVFold]:
    """
    Plan rolling-origin folds over a training segment of length *n_train*.

    Parameters
    ----------
    n_train : int
    initial_fraction : float
        Share of ``n_train`` used as the first fold's training window.
    n_slices : int
        Number of folds; each assesses one slice.
    cumulative : bool
        True → expanding train window starting at 0.  False → sliding
        window of constant length ``initial``.

    Raises
    ------
    ConfigError
        If the parameters are out of range or ``slice <= 0`` (too few
        training observations for ``n_slices``).
    """
    if not 0.0 < initial_fraction < 1.0:
        raise ConfigError(
            f"cv_initial_fraction must be in (0, 1), got {initial_fraction}"
        )
    if n_slices < 1:
        raise ConfigError(f"cv_n_slices must be >= 1, got {n_slices}")

    initial = math.floor(n_train * initial_fraction)
    if initial <= 0:
        raise ConfigError(
            f"Initial training window is empty (n_train={n_train}, "
            f"initial_fraction={initial_fraction})"
        )
    slice_len = (n_train - initial) // n_slices
    if slice_len <= 0:
        raise ConfigError(
            f"Too few training observations ({n_train}) for {n_slices} slices "
            f"after an initial window of {initial}"
        )

    unused = n_train - initial - n_slices * slice_len
    if unused:
        warnings.warn(
            f"Rolling-origin CV leaves the last {unused} training observation(s) unused."
        )

    folds = []
    for k in range(n_slices):
        origin = initial + k * slice_len
        start = 0 if cumulative else k * slice_len
        folds.append(
            CVFold(
                fold_id=k,
                train_range=(start, origin),
                assess_range=(origin, origin + slice_len),
            )
        )
    return folds


def fold_windows(
    train: pd.DataFrame,
    fold: CVFold,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Return the (train_window, assess_window) slices of *train* for *fold*."""
    if fold.assess_range[1] > len(train):
        raise ConfigError(
            f"Fold {fold.fold_id} reaches row {fold.assess_range[1]} but the "
            f"train segment has only {len(train)} rows"
        )
    tr = train.iloc[fold.train_range[0]:fold.train_range[1]]
    te = train.iloc[fold.assess_range[0]:fold.assess_range[1]]
    return tr, te
