"""
gwnarx.checks
=============
Leakage and fold-integrity assertions.

Can be run standalone (``python -m gwnarx.checks``) or imported.
"""

from __future__ import annotations

from typing import List

import pandas as pd

from .splitting import CVFold


# ======================================================================== #
#  Series checks                                                            #
# ======================================================================== #

def assert_time_index(series: pd.DataFrame) -> None:
    """Index must be strictly increasing with no duplicate timestamps."""
    idx = series.index
    assert isinstance(idx, pd.DatetimeIndex), (
        f"Expected a DatetimeIndex, got {type(idx).__name__}"
    )
    assert not idx.has_duplicates, (
        f"Duplicate timestamps: {idx[idx.duplicated()].unique()[:5].tolist()}"
    )
    assert idx.is_monotonic_increasing, "Timestamps are not sorted ascending"


def assert_no_leakage(train: pd.DataFrame, test: pd.DataFrame) -> None:
    """Every training timestamp precedes every test timestamp."""
    assert len(train) > 0, "Train set is empty"
    assert len(test) > 0, "Test set is empty"
    assert train.index.max() < test.index.min(), (
        f"LEAKAGE: max train time ({train.index.max()}) >= "
        f"min test time ({test.index.min()})"
    )
    overlap = train.index.intersection(test.index)
    assert overlap.empty, f"LEAKAGE: train ∩ test != ∅ ({len(overlap)} rows)"


# ======================================================================== #
#  Fold checks                                                              #
# ======================================================================== #

def assert_fold_integrity(folds: List[CVFold], n_train: int, cumulative: bool = True) -> None:
    """
    Verify the rolling-origin plan:

    1. every range lies within ``[0, n_train)``;
    2. assessment windows of consecutive folds do not overlap;
    3. (cumulative) every train window starts at 0 and strictly contains the
       previous fold's window.
    """
    assert folds, "No CV folds planned"
    for fold in folds:
        assert fold.assess_range[1] <= n_train, (
            f"Fold {fold.fold_id} assess range {fold.assess_range} exceeds "
            f"n_train={n_train}"
        )
        assert fold.train_range[1] <= fold.assess_range[0], (
            f"LEAKAGE: fold {fold.fold_id} trains on rows it assesses"
        )

    for prev, nxt in zip(folds, folds[1:]):
        assert prev.assess_range[1] <= nxt.assess_range[0], (
            f"Assessment windows of folds {prev.fold_id} and {nxt.fold_id} overlap"
        )
        if cumulative:
            assert nxt.train_range[0] == 0 and prev.train_range[0] == 0, (
                "Cumulative folds must start at row 0"
            )
            assert prev.train_range[1] < nxt.train_range[1], (
                f"Train window of fold {nxt.fold_id} does not grow"
            )


def run_all_checks(
    series: pd.DataFrame,
    train: pd.DataFrame,
    test: pd.DataFrame,
    folds: List[CVFold],
    cumulative: bool = True,
) -> None:
    """Run the full battery of ordering and leakage checks."""
    assert_time_index(series)
    assert len(train) + len(test) == len(series), "Split lost observations"
    assert_no_leakage(train, test)
    assert_fold_integrity(folds, len(train), cumulative=cumulative)


if __name__ == "__main__":
    print("gwnarx.checks — import and call run_all_checks() from your pipeline.")
