"""
gwnarx.errors
=============
Exceptions raised by the forecast-validation pipeline.

``ConfigError`` and ``AlignmentError`` are fatal and surface before any
fitting where they can be detected in advance.  ``FitFailure``,
``DegenerateScaleError`` and ``AlignmentError`` raised inside a single
(fold, configuration) trial are recovered by the trial runner and recorded
as a missing result.
"""

from __future__ import annotations


class ConfigError(ValueError):
    """Invalid split proportion, empty CV window, bad parameter range, …"""


class AlignmentError(ConfigError):
    """Forecast length or timestamps do not match the expected window."""


class DegenerateScaleError(ValueError):
    """A channel has zero standard deviation and cannot be z-scored."""

    def __init__(self, column: str, mean: float):
        self.column = column
        self.mean = mean
        super().__init__(
            f"Channel '{column}' is constant (value={mean!r}) over the fitting "
            f"window — cannot z-score it."
        )


class FitFailure(RuntimeError):
    """Training an estimator failed (too little data, non-finite loss, …)."""


class IncompleteSearchError(RuntimeError):
    """Selection was attempted before every (fold, configuration) trial ran."""


class DataQualityError(ValueError):
    """Input table is malformed: duplicate timestamps, non-numeric values, …"""
