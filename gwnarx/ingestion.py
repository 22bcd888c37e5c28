"""
gwnarx.ingestion
================
Load a wide-layout groundwater table and turn it into a validated
TimeSeries frame.

A TimeSeries is a ``pd.DataFrame`` indexed by a strictly increasing,
unique ``DatetimeIndex`` named ``time`` with one numeric column per
channel (e.g. ``level``).

Public API
----------
snake_case(name)                       → header as cleaned by the loader
clean_column_names(df)                 → df with snake_case headers
prepare_series(df, time_col, ...)      → TimeSeries frame
load_series(path, time_col, ...)       → TimeSeries frame (CSV / Parquet)
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import List, Optional

import pandas as pd

from .errors import DataQualityError


# ======================================================================== #
#  1.  Column cleanup                                                       #
# ======================================================================== #

def snake_case(name: str) -> str:
    """``"Water Level (m)"`` → ``"water_level_m"``, ``"wellID"`` → ``"well_id"``."""
    name = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", str(name).strip())
    name = re.sub(r"[^0-9a-zA-Z]+", "_", name)
    return name.strip("_").lower()


def clean_column_names(df: pd.DataFrame) -> pd.DataFrame:
    """
    Return a copy with headers normalised to snake_case
    (``"Water Level (m)"`` → ``"water_level_m"``).

    Raises
    ------
    DataQualityError
        If two headers collapse onto the same name.
    """
    new_cols = [snake_case(c) for c in df.columns]
    dupes = sorted({c for c in new_cols if new_cols.count(c) > 1})
    if dupes:
        raise DataQualityError(f"Column names collide after cleanup: {dupes}")
    out = df.copy()
    out.columns = new_cols
    return out


# ======================================================================== #
#  2.  Validation                                                           #
# ======================================================================== #

def prepare_series(
    df: pd.DataFrame,
    time_col: str = "time",
    value_cols: Optional[List[str]] = None,
) -> pd.DataFrame:
    """
    Validate a wide table and index it by timestamp.

    Parameters
    ----------
    df : pd.DataFrame
        One timestamp column plus one or more numeric value columns.
    time_col : str
    value_cols : list of str, optional
        Channels to keep.  None = every column except ``time_col``.

    Returns
    -------
    pd.DataFrame
        Sorted by time, indexed by a ``DatetimeIndex`` named ``time``.

    Raises
    ------
    DataQualityError
        On missing columns, unparseable timestamps, duplicate timestamps,
        or non-numeric channels.  Nothing is merged or dropped silently.
    """
    if time_col not in df.columns:
        raise DataQualityError(
            f"Timestamp column '{time_col}' not found in {list(df.columns)}"
        )
    if value_cols is None:
        value_cols = [c for c in df.columns if c != time_col]
    missing = [c for c in value_cols if c not in df.columns]
    if missing:
        raise DataQualityError(f"Value columns not found: {missing}")
    if not value_cols:
        raise DataQualityError("No value columns to forecast.")

    times = pd.to_datetime(df[time_col], errors="coerce")
    if times.isna().any():
        bad = df.loc[times.isna(), time_col].head(5).tolist()
        raise DataQualityError(f"Unparseable timestamps, e.g. {bad}")

    dupes = times[times.duplicated(keep=False)]
    if not dupes.empty:
        raise DataQualityError(
            f"{dupes.nunique()} duplicate timestamp(s) in '{time_col}', "
            f"e.g. {sorted(dupes.unique())[:5]}"
        )

    values = df[value_cols].copy()
    non_numeric = [c for c in value_cols if not pd.api.types.is_numeric_dtype(values[c])]
    if non_numeric:
        raise DataQualityError(f"Non-numeric value columns: {non_numeric}")

    n_missing = values.isna().sum()
    if n_missing.any():
        raise DataQualityError(
            f"Missing values in channels: {n_missing[n_missing > 0].to_dict()}"
        )

    values.index = pd.DatetimeIndex(times, name="time")
    return values.sort_index().astype(float)


# ======================================================================== #
#  3.  File loading                                                         #
# ======================================================================== #

def load_series(
    path: str | Path,
    time_col: str = "time",
    value_cols: Optional[List[str]] = None,
    clean_names: bool = True,
) -> pd.DataFrame:
    """
    Read a CSV or Parquet file and return a validated TimeSeries frame.

    With ``clean_names=True`` headers (and ``time_col`` / ``value_cols``)
    are normalised to snake_case before validation.
    """
    path = Path(path)
    if path.suffix.lower() == ".parquet":
        raw = pd.read_parquet(path)
    elif path.suffix.lower() in (".csv", ".txt"):
        raw = pd.read_csv(path)
    else:
        raise ValueError(f"Unsupported file type: {path.suffix}")

    if clean_names:
        raw = clean_column_names(raw)
        time_col = snake_case(time_col)
        if value_cols is not None:
            value_cols = [snake_case(c) for c in value_cols]

    return prepare_series(raw, time_col=time_col, value_cols=value_cols)
