"""
gwnarx.grid
===========
Regular hyperparameter grids from typed range descriptors.

Each tuned parameter contributes ``levels`` representative values; the grid
is their Cartesian product in declared order (last range varies fastest),
so ``config_index`` is stable and reproducible across runs.  Fixed
constants (seasonal period, ensemble size) are injected into every
configuration rather than multiplied into the product.
"""

from __future__ import annotations

import math
from itertools import product
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from .config import ParamKind, ParamRange
from .errors import ConfigError


def validate_range(rng: ParamRange) -> None:
    if rng.min is None or rng.max is None or np.isnan(rng.min) or np.isnan(rng.max):
        raise ConfigError(f"Range '{rng.name}' has undefined bounds")
    if rng.min > rng.max:
        raise ConfigError(f"Range '{rng.name}' is inverted: min={rng.min} > max={rng.max}")
    if rng.kind == ParamKind.INTEGER and math.ceil(rng.min) > math.floor(rng.max):
        raise ConfigError(
            f"Integer range '{rng.name}' [{rng.min}, {rng.max}] contains no integer"
        )
    if rng.log10 and (rng.kind != ParamKind.CONTINUOUS or rng.min <= 0):
        raise ConfigError(
            f"log10 spacing needs a continuous range with min > 0 ('{rng.name}')"
        )


def param_levels(rng: ParamRange, levels: int) -> List[Any]:
    """
    Representative values spanning *rng*.

    * continuous → ``levels`` evenly spaced floats (log10-spaced if flagged);
    * integer    → evenly spaced distinct integers, ``levels`` clamped to the
      number of integers in the range;
    * a degenerate range (``min == max``) → one level, so no configuration
      is fitted twice.
    """
    if levels < 1:
        raise ConfigError(f"grid_levels must be >= 1, got {levels}")
    validate_range(rng)

    if rng.kind == ParamKind.INTEGER:
        lo, hi = math.ceil(rng.min), math.floor(rng.max)
        n = min(levels, hi - lo + 1)
        # round half up; the spacing is >= 1 so values stay distinct
        vals = np.floor(np.linspace(lo, hi, n) + 0.5).astype(int)
        return [int(v) for v in vals]

    if rng.min == rng.max:
        return [float(rng.min)]
    if rng.log10:
        vals = np.logspace(np.log10(rng.min), np.log10(rng.max), levels)
    else:
        vals = np.linspace(rng.min, rng.max, levels)
    return [float(v) for v in vals]


def build_grid(
    ranges: Sequence[ParamRange],
    levels: int,
    fixed: Optional[Mapping[str, Any]] = None,
) -> List[Dict[str, Any]]:
    """
    Enumerate every configuration of the regular grid.

    Returns
    -------
    list of dict
        ``grid[i]`` is the HyperparameterSet with ``config_index == i``.
        Without integer clamping ``len(grid) == levels ** len(ranges)``.

    Raises
    ------
    ConfigError
        Empty / inverted ranges, ``levels < 1``, duplicate names, or a fixed
        constant that is also tuned.
    """
    fixed = dict(fixed or {})
    names = [r.name for r in ranges]
    if len(set(names)) != len(names):
        raise ConfigError(f"Duplicate parameter names in grid: {names}")
    clash = set(names) & set(fixed)
    if clash:
        raise ConfigError(f"Parameters both tuned and fixed: {sorted(clash)}")

    values = [param_levels(r, levels) for r in ranges]
    grid = []
    for combo in product(*values):
        params = dict(zip(names, combo))
        params.update(fixed)
        grid.append(params)
    return grid


def grid_frame(grid: List[Dict[str, Any]]) -> pd.DataFrame:
    """Tabular view of a grid, indexed by ``config_index``."""
    df = pd.DataFrame(grid)
    df.index.name = "config_index"
    return df
