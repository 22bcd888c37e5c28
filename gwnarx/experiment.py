"""
gwnarx.experiment
=================
Grid-search runner: orchestrates the (fold × configuration) trials,
aggregates and selects, refits and calibrates on the test segment.

The runner threads every intermediate value explicitly:

.. code-block:: text

    series ─→ train_test_split ─→ (train, test)
    train  ─→ make_cv_folds    ─→ folds
    ranges ─→ build_grid       ─→ grid
    folds × grid ─→ run_trials (worker pool) ─→ TrialResults
    TrialResults ─→ aggregate_results ─→ metric table ─→ select_best
    best params + train ─→ final_fit ─→ FittedPipeline
    FittedPipeline + test ─→ calibrate ─→ forecast records

Concurrency
-----------
Trials are independent: each reads its own slice of the immutable train
segment and returns one ``TrialResult``.  They run on a bounded
``ThreadPoolExecutor``; the coordinating thread collects results as they
complete, so arrival order does not matter.  Network seeds are derived
from ``(random_seed, fold, config_index, member)`` only, so sequential
and parallel runs produce identical metric tables.

Setting the optional ``abort`` event stops trials that have not started
yet.  A run with missing (fold, configuration) pairs never proceeds to
selection (``IncompleteSearchError``).

Public API
----------
GridSearchRunner(config) – instantiate once, call .run(series)
"""

from __future__ import annotations

import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from .checks import run_all_checks
from .config import PipelineConfig, ScalePolicy
from .errors import ConfigError, FitFailure, IncompleteSearchError
from .evaluation import TrialResult, compute_metrics, run_trial
from .export import save_model, save_run_metadata, save_table
from .grid import build_grid, grid_frame
from .models.narx import build_estimator, member_seed_sequence
from .splitting import CVFold, make_cv_folds, train_test_split
from .workflow import FittedPipeline, make_narx_pipeline


@dataclass
class SearchPlan:
    """Everything decided before the first fit."""
    train: pd.DataFrame
    test: pd.DataFrame
    folds: List[CVFold]
    grid: List[Dict[str, Any]]

    @property
    def n_trials(self) -> int:
        return len(self.folds) * len(self.grid)


@dataclass
class PipelineResult:
    best_index: int
    best_params: Dict[str, Any]
    best_score: float
    metric_table: pd.DataFrame
    trials: List[TrialResult]
    model: FittedPipeline
    forecast: pd.DataFrame
    test_metrics: Dict[str, float]
    folds: List[CVFold] = field(default_factory=list)


# ======================================================================== #
#  Aggregation / selection                                                  #
# ======================================================================== #

def trials_frame(trials: List[TrialResult]) -> pd.DataFrame:
    """One row per trial, sorted by (config_index, fold_id)."""
    if not trials:
        return pd.DataFrame(columns=["fold_id", "config_index", "value", "error"])
    df = pd.DataFrame([t.to_row() for t in trials])
    return df.sort_values(["config_index", "fold_id"]).reset_index(drop=True)


def aggregate_results(
    trials: List[TrialResult],
    grid: List[Dict[str, Any]],
    folds: List[CVFold],
) -> pd.DataFrame:
    """
    Build the configuration × fold metric table.

    Columns: the grid parameters, ``fold_<k>`` per fold (NaN = failed),
    ``mean`` over successful folds, ``n_folds_ok`` and ``disqualified``
    (no successful fold at all).

    Raises
    ------
    IncompleteSearchError
        If any (fold, configuration) pair has no TrialResult.
    """
    expected = {(f.fold_id, i) for f in folds for i in range(len(grid))}
    seen = {(t.fold_id, t.config_index) for t in trials}
    missing = expected - seen
    if missing:
        raise IncompleteSearchError(
            f"{len(missing)} of {len(expected)} trials have no result — "
            f"refusing to select from an incomplete search"
        )

    table = grid_frame(grid)
    fold_cols = [f"fold_{f.fold_id}" for f in folds]
    for col in fold_cols:
        table[col] = np.nan
    for t in trials:
        if t.ok:
            table.loc[t.config_index, f"fold_{t.fold_id}"] = t.value

    table["n_folds_ok"] = table[fold_cols].notna().sum(axis=1)
    table["mean"] = table[fold_cols].mean(axis=1, skipna=True)
    table["disqualified"] = table["n_folds_ok"] == 0
    return table


def select_best(table: pd.DataFrame) -> Tuple[int, float]:
    """
    ``(config_index, mean)`` of the lowest mean metric among configurations
    with at least one successful fold.  Ties go to the lowest config_index.
    """
    eligible = table.loc[~table["disqualified"]]
    if eligible.empty:
        raise FitFailure("Every configuration failed on every fold — nothing to select.")
    best_index = eligible["mean"].idxmin()
    return int(best_index), float(eligible.loc[best_index, "mean"])


# ======================================================================== #
#  Final fit / calibration                                                  #
# ======================================================================== #

def final_fit(
    train: pd.DataFrame,
    params: Dict[str, Any],
    config_index: int,
    target_col: str,
    scale_policy: ScalePolicy = ScalePolicy.REJECT,
    random_seed: int = 42,
    estimator_factory: Callable = build_estimator,
) -> FittedPipeline:
    """Refit the selected configuration on the whole train segment."""
    seeds = member_seed_sequence(random_seed, 0, config_index)
    pipe = make_narx_pipeline(params, target_col, scale_policy, seeds, estimator_factory)
    return pipe.fit(train)


def calibrate(model: FittedPipeline, test: pd.DataFrame) -> pd.DataFrame:
    """Forecast the test segment → ``DataFrame[time, actual, predicted]``."""
    return model.predict(test)


# ======================================================================== #
#  Runner                                                                   #
# ======================================================================== #

class GridSearchRunner:
    """
    End-to-end grid-search orchestrator.

    Parameters
    ----------
    config : PipelineConfig
    estimator_factory : callable
        ``factory(params, seed_sequence) -> estimator`` with ``fit(y)`` and
        ``forecast(horizon)``.  Defaults to the NARX ensemble.
    verbose : bool
        Print progress.
    skip_checks : bool
        If True, skip the leakage/fold-integrity assertions.
    """

    def __init__(
        self,
        config: PipelineConfig,
        estimator_factory: Callable = build_estimator,
        verbose: bool = True,
        skip_checks: bool = False,
    ):
        self.cfg = config
        self.estimator_factory = estimator_factory
        self.verbose = verbose
        self.skip_checks = skip_checks

    def _log(self, msg: str) -> None:
        if self.verbose:
            print(msg, flush=True)

    def _n_workers(self) -> int:
        n_jobs = self.cfg.n_jobs
        if n_jobs == -1:
            return os.cpu_count() or 1
        if n_jobs < 1:
            raise ConfigError(f"n_jobs must be >= 1 or -1, got {n_jobs}")
        return n_jobs

    # ------------------------------------------------------------------ #
    #  Planning (all ConfigErrors surface here)                            #
    # ------------------------------------------------------------------ #

    def plan(self, series: pd.DataFrame) -> SearchPlan:
        cfg = self.cfg
        if cfg.target_col not in series.columns:
            raise ConfigError(
                f"Target column '{cfg.target_col}' not in {list(series.columns)}"
            )
        if not isinstance(series.index, pd.DatetimeIndex):
            raise ConfigError(
                f"Series must be indexed by a DatetimeIndex, got "
                f"{type(series.index).__name__} (see ingestion.prepare_series)"
            )
        self._n_workers()

        train, test = train_test_split(series, cfg.train_proportion)
        cv = cfg.cv_config
        folds = make_cv_folds(
            len(train),
            initial_fraction=cv.initial_fraction,
            n_slices=cv.n_slices,
            cumulative=cv.cumulative,
        )
        grid = build_grid(
            cfg.grid_config.ranges, cfg.grid_config.levels, cfg.fixed_params
        )

        if not self.skip_checks:
            run_all_checks(series, train, test, folds, cumulative=cv.cumulative)

        self._log(
            f"  Split — train: {len(train):,}  test: {len(test):,}  "
            f"({train.index[0].date()} → {train.index[-1].date()} | "
            f"{test.index[0].date()} → {test.index[-1].date()})"
        )
        self._log(
            f"  CV — {len(folds)} folds, assess window {folds[0].assess_size}, "
            f"first train window {folds[0].train_size}"
        )
        self._log(f"  Grid — {len(grid)} configurations → {len(folds) * len(grid)} fits")
        return SearchPlan(train=train, test=test, folds=folds, grid=grid)

    # ------------------------------------------------------------------ #
    #  Trials                                                              #
    # ------------------------------------------------------------------ #

    def _trial(
        self,
        train: pd.DataFrame,
        fold: CVFold,
        config_index: int,
        params: Dict[str, Any],
        abort: Optional[threading.Event],
    ) -> Optional[TrialResult]:
        if abort is not None and abort.is_set():
            return None
        return run_trial(
            train,
            fold,
            params,
            config_index,
            target_col=self.cfg.target_col,
            metric=self.cfg.metric,
            scale_policy=self.cfg.scale_policy,
            random_seed=self.cfg.random_seed,
            estimator_factory=self.estimator_factory,
        )

    def run_trials(
        self,
        plan: SearchPlan,
        abort: Optional[threading.Event] = None,
    ) -> List[TrialResult]:
        """
        Run every (fold, configuration) trial on the worker pool.

        Returns the results collected so far; if ``abort`` was set, trials
        that had not started are absent.
        """
        t0 = time.time()
        results: List[TrialResult] = []
        with ThreadPoolExecutor(max_workers=self._n_workers()) as executor:
            futures = [
                executor.submit(self._trial, plan.train, fold, i, params, abort)
                for fold in plan.folds
                for i, params in enumerate(plan.grid)
            ]
            for fut in as_completed(futures):
                res = fut.result()
                if res is None:
                    continue
                results.append(res)
                status = (
                    f"{res.metric}={res.value:.4f}" if res.ok else f"FAILED ({res.error})"
                )
                self._log(
                    f"    → [{len(results)}/{plan.n_trials}] {plan.folds[res.fold_id].label} "
                    f"config {res.config_index}: {status}  ({res.elapsed_s:.1f}s)"
                )

        n_failed = sum(not r.ok for r in results)
        self._log(
            f"  Trials done: {len(results)}/{plan.n_trials} "
            f"({n_failed} failed) in {time.time() - t0:.1f}s"
        )
        return results

    # ------------------------------------------------------------------ #
    #  Main entry point                                                    #
    # ------------------------------------------------------------------ #

    def run(
        self,
        series: pd.DataFrame,
        abort: Optional[threading.Event] = None,
    ) -> PipelineResult:
        """
        Execute the full search, refit the winner and forecast the test segment.

        Returns
        -------
        PipelineResult
        """
        cfg = self.cfg
        t0 = time.time()

        plan = self.plan(series)
        if cfg.output_dir:
            cfg.save(Path(cfg.output_dir) / "pipeline_config.json")

        trials = self.run_trials(plan, abort=abort)
        table = aggregate_results(trials, plan.grid, plan.folds)
        best_index, best_score = select_best(table)
        best_params = plan.grid[best_index]
        self._log(
            f"  Best config {best_index}: {best_params}  "
            f"mean {cfg.metric.value}={best_score:.4f}"
        )

        model = final_fit(
            plan.train,
            best_params,
            best_index,
            target_col=cfg.target_col,
            scale_policy=cfg.scale_policy,
            random_seed=cfg.random_seed,
            estimator_factory=self.estimator_factory,
        )
        forecast = calibrate(model, plan.test)
        test_metrics = compute_metrics(forecast["actual"], forecast["predicted"])
        self._log(
            "  Test — " + "  ".join(f"{k}={v:.4f}" for k, v in test_metrics.items())
        )

        result = PipelineResult(
            best_index=best_index,
            best_params=best_params,
            best_score=best_score,
            metric_table=table,
            trials=trials,
            model=model,
            forecast=forecast,
            test_metrics=test_metrics,
            folds=plan.folds,
        )

        if cfg.output_dir:
            self.export(result, cfg.output_dir)

        self._log(f"\n✓ Pipeline completed in {time.time() - t0:.1f}s")
        return result

    def export(self, result: PipelineResult, out_dir: str | Path) -> None:
        out_dir = Path(out_dir)
        save_table(result.metric_table, out_dir / "cv_metrics.csv", index=True)
        save_table(trials_frame(result.trials), out_dir / "trials.csv")
        save_table(result.forecast, out_dir / "forecast.parquet")
        save_model(result.model, out_dir / "model.joblib")
        save_run_metadata(
            out_dir,
            config=self.cfg,
            best_index=result.best_index,
            best_params=result.best_params,
            cv_score=result.best_score,
            test_metrics=result.test_metrics,
            n_trials=len(result.trials),
            n_failed=sum(not t.ok for t in result.trials),
            folds=[f.info for f in result.folds],
            normalization=[s.to_dict() for s in result.model.steps],
            input_files=[self.cfg.data_path] if self.cfg.data_path else None,
        )
