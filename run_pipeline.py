#!/usr/bin/env python3
"""
run_pipeline.py
===============
Batch entry point for the groundwater-level NARX forecasting pipeline.

Usage
-----
  # Full grid search with defaults
  python run_pipeline.py --data data/groundwater.csv

  # Quick smoke-test (coarse grid, small ensembles)
  python run_pipeline.py --data data/groundwater.csv --quick

  # Custom config from JSON
  python run_pipeline.py --data data/groundwater.csv --config experiments/my_config.json

Pipeline Flow
-------------
::

  CSV / Parquet  ──→  validate timestamps (no duplicates, sorted)
       │
       ▼
  split  (first 90 % train, last 10 % test — by count)
       │
       ▼
  rolling-origin folds on train  (initial 50 %, 5 slices, expanding)
       │
       ▼
  for fold in folds:
      for params in grid:
          normalize (fold-train stats) → fit ensemble → forecast → score
       │
       ▼
  mean metric per configuration → best configuration
       │
       ▼
  refit on full train → forecast test → inverse-normalize
       │
       ▼
  cv_metrics.csv + trials.csv + forecast.parquet + model.joblib + metadata.json
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Ensure the project root is on sys.path
PROJECT_ROOT = Path(__file__).resolve().parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from gwnarx.config import (
    CVConfig,
    GridConfig,
    Metric,
    ParamKind,
    ParamRange,
    PipelineConfig,
    ScalePolicy,
)
from gwnarx.experiment import GridSearchRunner
from gwnarx.ingestion import load_series, snake_case


# ======================================================================== #
#  Preset configurations                                                    #
# ======================================================================== #

def default_config() -> PipelineConfig:
    """Full production configuration."""
    return PipelineConfig(
        time_col="time",
        target_col="level",
        output_dir="experiments",
        train_proportion=0.9,
        cv_config=CVConfig(initial_fraction=0.5, n_slices=5, cumulative=True),
        grid_config=GridConfig(levels=3),
        metric=Metric.RMSE,
        scale_policy=ScalePolicy.REJECT,
        random_seed=42,
        n_jobs=-1,
    )


def quick_config() -> PipelineConfig:
    """Fast smoke-test configuration (coarse grid, small ensembles)."""
    cfg = default_config()
    cfg.output_dir = "experiments_quick"
    # smoke tests only: production runs keep the fixed ensemble of 20
    cfg.ensemble_size = 3
    cfg.cv_config.n_slices = 3
    cfg.grid_config = GridConfig(
        levels=2,
        ranges=[
            ParamRange("non_seasonal_ar", ParamKind.INTEGER, 1, 3),
            ParamRange("seasonal_ar", ParamKind.INTEGER, 0, 1),
            ParamRange("hidden_units", ParamKind.INTEGER, 2, 5),
            ParamRange("penalty", ParamKind.CONTINUOUS, 1e-4, 1e-1, log10=True),
            ParamRange("epochs", ParamKind.INTEGER, 20, 100),
        ],
    )
    return cfg


# ======================================================================== #
#  CLI                                                                      #
# ======================================================================== #

def parse_args():
    parser = argparse.ArgumentParser(
        description="Groundwater-level NARX forecasting pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--data",
        type=str,
        default=None,
        help="CSV or Parquet file with a timestamp column and value columns.",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a pipeline_config.json file.",
    )
    parser.add_argument(
        "--quick",
        action="store_true",
        help="Run a fast smoke-test with a coarse grid and 3-network ensembles "
        "(instead of the fixed 20); results are not comparable to full runs.",
    )
    parser.add_argument("--target", type=str, default=None, help="Target column.")
    parser.add_argument("--time-col", type=str, default=None, help="Timestamp column.")
    parser.add_argument(
        "--n-jobs",
        type=int,
        default=None,
        help="Worker threads for the grid search (-1 = all cores).",
    )
    parser.add_argument(
        "--skip-checks",
        action="store_true",
        help="Skip leakage/fold-integrity checks.",
    )
    return parser.parse_args()


def apply_overrides(cfg: PipelineConfig, args) -> PipelineConfig:
    """
    Copy CLI overrides onto *cfg*.  Column names are snake_cased the same
    way ``load_series`` cleans the file headers.
    """
    if args.data:
        cfg.data_path = args.data
    if args.target:
        cfg.target_col = args.target
    if args.time_col:
        cfg.time_col = args.time_col
    if args.n_jobs is not None:
        cfg.n_jobs = args.n_jobs
    cfg.target_col = snake_case(cfg.target_col)
    cfg.time_col = snake_case(cfg.time_col)
    return cfg


def main():
    args = parse_args()

    # Build config
    if args.config:
        cfg = PipelineConfig.load(args.config)
        print(f"Loaded config from {args.config}")
    elif args.quick:
        cfg = quick_config()
        print("Using QUICK config (smoke-test mode)")
    else:
        cfg = default_config()
        print("Using DEFAULT config")

    apply_overrides(cfg, args)

    if not cfg.data_path:
        sys.exit("No input data: pass --data or set data_path in the config.")

    print(f"\nPipeline Configuration:")
    print(f"  Data           : {cfg.data_path}")
    print(f"  Target         : {cfg.target_col}")
    print(f"  Output dir     : {cfg.output_dir}")
    print(f"  Train share    : {cfg.train_proportion}")
    print(f"  CV             : initial={cfg.cv_config.initial_fraction} "
          f"slices={cfg.cv_config.n_slices} cumulative={cfg.cv_config.cumulative}")
    print(f"  Grid levels    : {cfg.grid_config.levels}")
    print(f"  Tuned params   : {[r.name for r in cfg.grid_config.ranges]}")
    print(f"  Metric         : {cfg.metric.value}")
    print(f"  Ensemble size  : {cfg.ensemble_size}")
    print(f"  Seasonal period: {cfg.seasonal_period}")
    print(f"  Workers        : {cfg.n_jobs}")
    print()

    series = load_series(cfg.data_path, time_col=cfg.time_col)

    runner = GridSearchRunner(config=cfg, skip_checks=args.skip_checks)
    result = runner.run(series)

    print(f"\n{'='*60}")
    print("  SUMMARY")
    print(f"{'='*60}")
    top = result.metric_table.sort_values("mean").head(10)
    print(top.to_string())
    print(f"\nBest configuration: {result.best_params}")
    print(f"Test metrics: {result.test_metrics}")
    if cfg.output_dir:
        print(f"\nResults saved to: {cfg.output_dir}/")


if __name__ == "__main__":
    main()
