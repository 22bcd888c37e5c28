"""
gwnarx.models.narx
==================
PyTorch ensemble of lagged-autoregressive networks (NARX-style).

Lag structure
-------------
Inputs at time ``t`` are the series values at lags

  ``{1, …, p}  ∪  {m, 2m, …, P·m}``

with ``p = non_seasonal_ar``, ``P = seasonal_ar`` and ``m = seasonal_period``.

Members
-------
Each member is a single-hidden-layer network (logistic hidden units,
linear output) trained full-batch with L-BFGS for ``epochs`` iterations
on the sum of squared errors plus ``penalty · ‖w‖²``.  Initial weights are
drawn uniformly from ``[-0.7, 0.7]`` with a member-specific NumPy
generator, so results never depend on global RNG state or on which worker
thread fits the member.

Forecasting
-----------
The ensemble prediction is the mean over members.  Multi-step forecasts
are recursive: each step's ensemble mean is fed back as the newest lag.

Exposes a sklearn-style ``fit(y)`` / ``forecast(horizon)`` API so it plugs
into :class:`gwnarx.workflow.Pipeline` as the trainer.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Tuple

import numpy as np
import torch
import torch.nn as nn

from ..errors import FitFailure

INIT_RANGE = 0.7


# ======================================================================== #
#  Lag helpers                                                              #
# ======================================================================== #

def lag_set(non_seasonal_ar: int, seasonal_ar: int, seasonal_period: int) -> List[int]:
    """Sorted, de-duplicated input lags."""
    lags = set(range(1, non_seasonal_ar + 1))
    lags.update(seasonal_period * k for k in range(1, seasonal_ar + 1))
    return sorted(lags)


def lag_matrix(y: np.ndarray, lags: List[int]) -> Tuple[np.ndarray, np.ndarray]:
    """
    Design matrix of lagged values and the aligned target.

    Row ``i`` corresponds to ``t = max(lags) + i``; column ``j`` holds
    ``y[t - lags[j]]``.
    """
    max_lag = max(lags)
    n_rows = len(y) - max_lag
    X = np.column_stack([y[max_lag - lag: max_lag - lag + n_rows] for lag in lags])
    return X, y[max_lag:]


def member_seed_sequence(
    random_seed: int,
    fold_key: int,
    config_index: int,
) -> np.random.SeedSequence:
    """
    Seed material for one fit.  Members use the children returned by
    :func:`member_seeds`.

    ``fold_key`` is ``fold_id + 1`` for CV trials and ``0`` for the final fit.
    """
    return np.random.SeedSequence([int(random_seed), int(fold_key), int(config_index)])


def member_seeds(seed_sequence: np.random.SeedSequence, n: int) -> List[np.random.SeedSequence]:
    """
    Children ``0..n-1`` of *seed_sequence*.

    Unlike ``SeedSequence.spawn`` this does not advance the parent, so
    refitting with the same seed material gives the same members.
    """
    return [
        np.random.SeedSequence(
            seed_sequence.entropy, spawn_key=tuple(seed_sequence.spawn_key) + (i,)
        )
        for i in range(n)
    ]


# ======================================================================== #
#  PyTorch module                                                           #
# ======================================================================== #

class _NARXNet(nn.Module):
    """Lag vector → logistic hidden layer → linear output."""

    def __init__(self, n_inputs: int, hidden_units: int):
        super().__init__()
        self.hidden = nn.Linear(n_inputs, hidden_units)
        self.out = nn.Linear(hidden_units, 1)

    def forward(self, x):
        # x: (B, n_lags)
        return self.out(torch.sigmoid(self.hidden(x))).squeeze(-1)

    def reset_from(self, rng: np.random.Generator) -> None:
        with torch.no_grad():
            for p in self.parameters():
                w = rng.uniform(-INIT_RANGE, INIT_RANGE, size=tuple(p.shape))
                p.copy_(torch.from_numpy(w).to(p.dtype))


# ======================================================================== #
#  Ensemble wrapper                                                         #
# ======================================================================== #

class NARXEnsemble:
    """
    Ensemble of ``num_networks`` independently initialised lag networks.

    Parameters
    ----------
    non_seasonal_ar, seasonal_ar : int
        Lag depths (``p`` and ``P``).
    hidden_units : int, optional
        Hidden width.  None = ``round((n_lags + 1) / 2)``.
    penalty : float
        L2 weight decay added to the squared-error loss.
    epochs : int
        L-BFGS iterations per member.
    num_networks : int
    seasonal_period : int
    seed_sequence : np.random.SeedSequence, optional
        Spawned into one child per member.  None = ``SeedSequence(0)``.
    """

    def __init__(
        self,
        non_seasonal_ar: int = 1,
        seasonal_ar: int = 0,
        hidden_units: Optional[int] = None,
        penalty: float = 0.0,
        epochs: int = 100,
        num_networks: int = 20,
        seasonal_period: int = 12,
        seed_sequence: Optional[np.random.SeedSequence] = None,
    ):
        self.non_seasonal_ar = int(non_seasonal_ar)
        self.seasonal_ar = int(seasonal_ar)
        self.penalty = float(penalty)
        self.epochs = int(epochs)
        self.num_networks = int(num_networks)
        self.seasonal_period = int(seasonal_period)
        self.seed_sequence = seed_sequence or np.random.SeedSequence(0)
        self.lags = lag_set(self.non_seasonal_ar, self.seasonal_ar, self.seasonal_period)
        if hidden_units is None:
            hidden_units = max(1, round((len(self.lags) + 1) / 2))
        self.hidden_units = int(hidden_units)
        self.members_: Optional[List[_NARXNet]] = None
        self.history_: Optional[np.ndarray] = None
        self.train_loss_: List[float] = []

    @classmethod
    def from_params(
        cls,
        params: Mapping[str, Any],
        seed_sequence: Optional[np.random.SeedSequence] = None,
    ) -> "NARXEnsemble":
        """Build from a HyperparameterSet (extra keys are ignored)."""
        keys = (
            "non_seasonal_ar", "seasonal_ar", "hidden_units", "penalty",
            "epochs", "num_networks", "seasonal_period",
        )
        return cls(**{k: params[k] for k in keys if k in params}, seed_sequence=seed_sequence)

    def get_params(self) -> Dict[str, Any]:
        return {
            "non_seasonal_ar": self.non_seasonal_ar,
            "seasonal_ar": self.seasonal_ar,
            "hidden_units": self.hidden_units,
            "penalty": self.penalty,
            "epochs": self.epochs,
            "num_networks": self.num_networks,
            "seasonal_period": self.seasonal_period,
        }

    @property
    def max_lag(self) -> int:
        return max(self.lags) if self.lags else 0

    # ------------------------------------------------------------------ #

    def fit(self, y) -> "NARXEnsemble":
        """Fit every member on a normalized 1-D series."""
        y = np.asarray(y, dtype=np.float64).ravel()
        if not self.lags:
            raise FitFailure("No lag inputs: non_seasonal_ar and seasonal_ar are both 0.")
        if self.num_networks < 1 or self.hidden_units < 1 or self.epochs < 1:
            raise FitFailure(f"Degenerate network settings: {self.get_params()}")
        if not np.all(np.isfinite(y)):
            raise FitFailure("Training series contains NaN / inf values.")
        if len(y) <= self.max_lag:
            raise FitFailure(
                f"Series of length {len(y)} is too short for a maximum lag of "
                f"{self.max_lag}."
            )

        X, target = lag_matrix(y, self.lags)
        X_t = torch.from_numpy(X)
        y_t = torch.from_numpy(target)

        members, losses = [], []
        for child in member_seeds(self.seed_sequence, self.num_networks):
            net, loss = self._fit_member(X_t, y_t, np.random.default_rng(child))
            members.append(net)
            losses.append(loss)

        self.members_ = members
        self.train_loss_ = losses
        self.history_ = y[-self.max_lag:].copy()
        return self

    def _fit_member(self, X_t, y_t, rng: np.random.Generator) -> Tuple[_NARXNet, float]:
        net = _NARXNet(X_t.shape[1], self.hidden_units).double()
        net.reset_from(rng)
        opt = torch.optim.LBFGS(
            net.parameters(),
            lr=1.0,
            max_iter=self.epochs,
            line_search_fn="strong_wolfe",
        )
        penalty = self.penalty

        def closure():
            opt.zero_grad()
            sse = ((net(X_t) - y_t) ** 2).sum()
            decay = sum((p ** 2).sum() for p in net.parameters())
            loss = sse + penalty * decay
            loss.backward()
            return loss

        try:
            opt.step(closure)
        except RuntimeError as e:
            raise FitFailure(f"Network training failed: {e}") from e

        with torch.no_grad():
            loss = float(((net(X_t) - y_t) ** 2).mean())
            finite = all(torch.isfinite(p).all() for p in net.parameters())
        if not finite or not np.isfinite(loss):
            raise FitFailure("Network training diverged (non-finite weights or loss).")

        net.eval()
        return net, loss

    # ------------------------------------------------------------------ #

    def predict(self, X) -> np.ndarray:
        """Ensemble-mean one-step predictions for a lag design matrix."""
        if self.members_ is None:
            raise RuntimeError("NARXEnsemble is not fitted yet.")
        X_t = torch.from_numpy(np.asarray(X, dtype=np.float64))
        with torch.no_grad():
            preds = torch.stack([net(X_t) for net in self.members_])
        return preds.mean(dim=0).numpy()

    def forecast(self, horizon: int) -> np.ndarray:
        """Recursive ``horizon``-step forecast in normalized units."""
        if self.history_ is None:
            raise RuntimeError("NARXEnsemble is not fitted yet.")
        if horizon < 0:
            raise ValueError(f"horizon must be >= 0, got {horizon}")

        history = list(self.history_)
        out = np.empty(horizon, dtype=np.float64)
        for h in range(horizon):
            x = np.array([[history[-lag] for lag in self.lags]])
            yhat = float(self.predict(x)[0])
            out[h] = yhat
            history.append(yhat)
        if not np.all(np.isfinite(out)):
            raise FitFailure("Forecast contains non-finite values.")
        return out


def build_estimator(
    params: Mapping[str, Any],
    seed_sequence: Optional[np.random.SeedSequence] = None,
) -> NARXEnsemble:
    """Default estimator factory used by the grid-search runner."""
    return NARXEnsemble.from_params(params, seed_sequence=seed_sequence)
