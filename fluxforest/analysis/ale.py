# -*- coding: utf-8 -*-
"""
Accumulated Local Effects
=========================

Main-effect curves that stay faithful under correlated inputs (lagged
drivers are strongly autocorrelated, so partial dependence would
extrapolate into empty regions of feature space).

For feature j with quantile edges z_0 < z_1 < … < z_K:

    local effect of interval k   mean over rows with x_j ∈ (z_{k-1}, z_k] of
                                 f(x with x_j = z_k) - f(x with x_j = z_{k-1})
    uncentred curve at z_k       sum of local effects of intervals 1..k
    centred curve                uncentred minus the occupancy-weighted
                                 mean of the interval midpoint values

The first interval also holds rows equal to z_0.  Forest predictions use
every tree.

References:
    - Apley & Zhu (2020). "Visualizing the Effects of Predictor Variables
      in Black Box Supervised Learning Models" JRSS-B 82(4)
"""

import logging
import threading
import warnings
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from ..errors import (
    InvalidConfiguration,
    NumericDegeneracy,
    NumericDegeneracyWarning,
)
from ..forecasting.cforest import FittedEnsemble, predict
from ..parallel import fork_join

logger = logging.getLogger('fluxforest.ale')


@dataclass
class ALECurve:
    """
    ALE of one feature.

    Attributes:
        feature: Column name
        edges: K + 1 interval boundaries (distinct quantiles)
        effects: Centred ALE at every edge
        counts: Rows per interval (length K)
    """
    feature: str
    edges: np.ndarray
    effects: np.ndarray
    counts: np.ndarray

    @property
    def n_intervals(self) -> int:
        return len(self.counts)

    def weighted_mean(self) -> float:
        """Occupancy-weighted mean of the interval midpoints (≈ 0)."""
        mids = 0.5 * (self.effects[:-1] + self.effects[1:])
        return float(np.sum(self.counts * mids) / np.sum(self.counts))

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            'feature': self.feature,
            'value': self.edges,
            'effect': self.effects,
            'count': np.concatenate([[0], self.counts]),
        })


def _as_matrix(model: FittedEnsemble, data) -> np.ndarray:
    if data is None:
        return np.array(model.X_train, dtype=float)
    if isinstance(data, pd.DataFrame):
        return data[list(model.feature_names)].to_numpy(dtype=float)
    return np.array(data, dtype=float)


def _check_bins(n_bins: int) -> None:
    if n_bins < 1:
        raise InvalidConfiguration("must be at least 1", stage="ale",
                                   parameter="n_bins", value=n_bins)


def ale(model: FittedEnsemble, data, feature: str,
        n_bins: int = 40) -> ALECurve:
    """
    Accumulated local effect curve of *feature*.

    Args:
        model: Fitted forest
        data: Frame (or matrix in model column order) whose rows are
            averaged; None uses the training matrix
        feature: Model feature name
        n_bins: Requested number of quantile intervals

    Returns:
        ALECurve

    Raises:
        InvalidConfiguration: n_bins below 1
        NumericDegeneracy: Fewer than two distinct edges
    """
    _check_bins(n_bins)
    j = model.feature_index(feature)
    X = _as_matrix(model, data)
    x = X[:, j]

    edges = np.unique(np.quantile(x, np.linspace(0.0, 1.0, n_bins + 1)))
    if len(edges) < 2:
        raise NumericDegeneracy("fewer than two distinct bin edges",
                                stage="ale", parameter="feature", value=feature)
    K = len(edges) - 1

    interval = np.clip(np.searchsorted(edges, x, side='left'), 1, K) - 1
    X_lo = X.copy()
    X_hi = X.copy()
    X_lo[:, j] = edges[interval]
    X_hi[:, j] = edges[interval + 1]
    diff = predict(model, X_hi) - predict(model, X_lo)

    counts = np.bincount(interval, minlength=K)
    sums = np.bincount(interval, weights=diff, minlength=K)
    local = np.zeros(K)
    occupied = counts > 0
    local[occupied] = sums[occupied] / counts[occupied]

    effects = np.concatenate([[0.0], np.cumsum(local)])
    mids = 0.5 * (effects[:-1] + effects[1:])
    effects = effects - np.sum(counts * mids) / np.sum(counts)
    return ALECurve(feature=feature, edges=edges, effects=effects, counts=counts)


def ale_curves(model: FittedEnsemble, data=None,
               features: Optional[Sequence[str]] = None,
               n_bins: int = 40,
               n_jobs: int = 1,
               cancel_event: Optional[threading.Event] = None) -> Dict[str, ALECurve]:
    """
    ALE curves for several features, each lag treated on its own.

    Degenerate features are skipped with a NumericDegeneracyWarning.

    Returns:
        ``feature -> ALECurve`` in the order requested
    """
    _check_bins(n_bins)
    features = list(features) if features is not None else list(model.feature_names)
    for name in features:
        model.feature_index(name)

    def one(name: str) -> Optional[ALECurve]:
        try:
            return ale(model, data, name, n_bins=n_bins)
        except NumericDegeneracy as exc:
            warnings.warn(f"ALE skipped for {name}: {exc}",
                          NumericDegeneracyWarning)
            logger.warning("ALE skipped for %s: %s", name, exc.reason)
            return None

    logger.info("Computing ALE for %d features (%d bins)", len(features), n_bins)
    results: List[Optional[ALECurve]] = fork_join(
        one, features, n_jobs=n_jobs, cancel_event=cancel_event, stage="ale")
    return {name: curve for name, curve in zip(features, results)
            if curve is not None}


__all__ = ['ALECurve', 'ale', 'ale_curves']
