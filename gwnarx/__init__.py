"""
gwnarx — Groundwater-level forecasting with a NARX-style neural ensemble.

Flow:
  raw table → validation → train/test split → rolling-origin folds
  → (fold × hyperparameter grid) trials → aggregation & selection
  → final refit → test-set calibration → export

Modules
-------
config      : Configuration dataclasses, enums, parameter ranges
errors      : Exception hierarchy (ConfigError, FitFailure, …)
ingestion   : load_series, prepare_series, clean_column_names
scaling     : Leakage-safe z-score normalization (NormalizationStats)
splitting   : train_test_split, make_cv_folds, fold_windows
checks      : Leakage / fold-integrity assertions
grid        : Hyperparameter grid construction
models/     : NARXEnsemble (PyTorch lagged-autoregressive ensemble)
workflow    : Pipeline / FittedPipeline (preprocessing + model)
evaluation  : Metrics (RMSE, MAE) and single-trial scoring
experiment  : GridSearchRunner — pool, aggregation, selection, refit
export      : Parquet/CSV/joblib export and run metadata
"""

__version__ = "0.1.0"
