"""
gwnarx.export
=============
Persistence of search results, the final model artifact and run metadata.

Folder layout
-------------
::

    experiments/
        pipeline_config.json     ← config snapshot (written before fitting)
        cv_metrics.csv           ← configuration × fold metric table
        trials.csv               ← one row per (fold, configuration) trial
        forecast.parquet         ← test-segment records (time, actual, predicted)
        model.joblib             ← final FittedPipeline
        metadata.json            ← best params, scores, environment
"""

from __future__ import annotations

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import joblib
import numpy as np
import pandas as pd

from .config import PipelineConfig, file_hash, get_environment_info

_TABLE_WRITERS = {
    ".parquet": lambda df, path, index: df.to_parquet(path, index=index),
    ".csv": lambda df, path, index: df.to_csv(path, index=index),
}


def save_table(df: pd.DataFrame, path: str | Path, index: bool = False) -> Path:
    """
    Write *df* to ``path``; the suffix (``.parquet`` / ``.csv``) picks the
    format.
    """
    path = Path(path)
    writer = _TABLE_WRITERS.get(path.suffix.lower())
    if writer is None:
        raise ValueError(
            f"Unsupported table format '{path.suffix}' "
            f"(expected one of {sorted(_TABLE_WRITERS)})"
        )
    path.parent.mkdir(parents=True, exist_ok=True)
    writer(df, path, index)
    return path


def save_model(model: Any, path: str | Path) -> Path:
    """Persist a FittedPipeline with joblib."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    joblib.dump(model, path)
    return path


def load_model(path: str | Path) -> Any:
    return joblib.load(Path(path))


def save_run_metadata(
    out_dir: str | Path,
    config: PipelineConfig,
    best_index: int,
    best_params: Dict[str, Any],
    cv_score: float,
    test_metrics: Dict[str, float],
    n_trials: int,
    n_failed: int,
    input_files: Optional[Iterable[str]] = None,
    folds: Optional[List[Dict[str, Any]]] = None,
    normalization: Optional[List[Dict[str, Any]]] = None,
) -> Path:
    """
    Write ``metadata.json``: the winning configuration, its mean CV score,
    test-segment metrics, trial counts, the CV fold plan, the final
    normalization statistics, input file hashes and the runtime environment.
    """
    meta = {
        "written_at": datetime.now().isoformat(),
        "config": config.to_dict(),
        "selection": {
            "best_index": best_index,
            "best_params": best_params,
            "metric": config.metric.value,
            "cv_mean": cv_score,
        },
        "test_metrics": test_metrics,
        "trials": {"total": n_trials, "failed": n_failed},
        "folds": folds or [],
        "normalization": normalization or [],
        "inputs": {
            os.path.basename(f): file_hash(f)
            for f in (input_files or [])
            if os.path.exists(f)
        },
        "environment": get_environment_info(),
    }

    out_path = Path(out_dir) / "metadata.json"
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(json.dumps(meta, indent=2, default=_json_default))
    return out_path


def _json_default(obj: Any) -> Any:
    # numpy scalars / arrays and timestamps are not JSON-native
    if isinstance(obj, np.generic):
        return obj.item()
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    return str(obj)
