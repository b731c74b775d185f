# -*- coding: utf-8 -*-
"""
SMOGN-style Resampling for Regression Targets
=============================================

Rebalances the training set's target distribution before fitting:

    over-represented (common) ranges   → random undersampling
    under-represented (rare) ranges    → synthetic oversampling
    ranges with percentage 1           → kept unchanged

Synthetic rows are interpolations between a real row and one of its k
nearest neighbours inside the same relevance range.  Distances are taken
over standardized features; interpolation happens in the original units
and the target is interpolated at the same fraction, so
``y_new = y + r (y_nb - y)`` equals the distance-weighted target of
SMOTER for the new point.

Algorithm (per range of n rows with percentage pct):
    pct < 1:  keep floor(pct · n) rows drawn without replacement
    pct > 1:  keep all rows, add round((pct - 1) · n) synthetic rows,
              floor(pct - 1) from every row plus the remainder from
              randomly chosen rows

References:
    - Torgo et al. (2013). "SMOTE for Regression" EPIA
    - Branco, Torgo & Ribeiro (2017). "SMOGN: a Pre-processing Approach
      for Imbalanced Regression" PMLR 74
"""

import logging
import warnings
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Union

import numpy as np
import pandas as pd
from sklearn.neighbors import NearestNeighbors
from sklearn.preprocessing import StandardScaler

from ..config import DistanceMetric
from ..errors import (
    InsufficientData,
    InvalidConfiguration,
    NumericDegeneracyWarning,
)
from .partition import Partition
from .relevance import RelevanceFunction, RelevanceThresholds, find_bumps

logger = logging.getLogger('fluxforest.resample')

_METRICS = {
    DistanceMetric.EUCLIDEAN: 'euclidean',
    DistanceMetric.MANHATTAN: 'manhattan',
    DistanceMetric.CHEBYSHEV: 'chebyshev',
    DistanceMetric.P_NORM: 'minkowski',
}


@dataclass
class BumpSummary:
    """Bookkeeping for one contiguous relevance range."""
    label: str
    rare: bool
    y_min: float
    y_max: float
    percentage: float
    n_before: int
    n_after: int
    k_used: Optional[int] = None


@dataclass
class ResampledTrainingSet:
    """Training rows after under/over-sampling.

    Attributes:
        frame: Feature columns plus target, positional index
        feature_cols: Model inputs
        target_col: Target column name
        is_synthetic: Boolean mask of interpolated rows
        source_positions: Dataset position of real rows, -1 for synthetic
        bumps: Per-range summaries in order of increasing target
        relevance: The relevance function that defined the ranges
    """
    frame: pd.DataFrame
    feature_cols: List[str]
    target_col: str
    is_synthetic: np.ndarray
    source_positions: np.ndarray
    bumps: List[BumpSummary] = field(default_factory=list)
    relevance: Optional[RelevanceFunction] = None

    def __len__(self) -> int:
        return len(self.frame)

    @property
    def n_synthetic(self) -> int:
        return int(self.is_synthetic.sum())

    @property
    def n_removed(self) -> int:
        return int(sum(b.n_before - b.n_after for b in self.bumps
                       if b.n_after < b.n_before))

    @property
    def counts_before(self) -> Dict[str, int]:
        return {b.label: b.n_before for b in self.bumps}

    @property
    def counts_after(self) -> Dict[str, int]:
        return {b.label: b.n_after for b in self.bumps}

    @property
    def X(self) -> np.ndarray:
        return self.frame[self.feature_cols].to_numpy(dtype=float)

    @property
    def y(self) -> np.ndarray:
        return self.frame[self.target_col].to_numpy(dtype=float)


def resample(training: Union[Partition, pd.DataFrame],
             target_column: str,
             relevance_thresholds: Optional[RelevanceThresholds] = None,
             k_neighbors: int = 5,
             distance: Union[str, DistanceMetric] = "euclidean",
             p: Optional[float] = None,
             feature_columns: Optional[Sequence[str]] = None,
             seed: int = 500) -> ResampledTrainingSet:
    """
    Under-sample common target ranges and oversample rare ones.

    Args:
        training: Training partition (or frame)
        target_column: Name of the target
        relevance_thresholds: Relevance definition and percentages
            (default: box-plot extremes, 0.7 under / 2.0 over)
        k_neighbors: Neighbours considered per synthetic row
        distance: 'euclidean', 'manhattan', 'chebyshev' or 'p-norm'
        p: Exponent for 'p-norm'
        feature_columns: Inputs (default: numeric columns except target)
        seed: Seed of the sampling generator

    Returns:
        ResampledTrainingSet
    """
    frame = training.frame if isinstance(training, Partition) else training
    thresholds = relevance_thresholds or RelevanceThresholds()
    metric = _distance_metric(distance)

    if target_column not in frame.columns:
        raise InvalidConfiguration(
            "column not found in training data", stage="resample",
            parameter="target_column", value=target_column)
    if k_neighbors < 1:
        raise InvalidConfiguration(
            "must be at least 1", stage="resample",
            parameter="k_neighbors", value=k_neighbors)
    if metric is DistanceMetric.P_NORM and (p is None or p < 1):
        raise InvalidConfiguration(
            "p-norm distance needs p >= 1", stage="resample",
            parameter="p", value=p)
    if len(frame) < 2:
        raise InsufficientData(
            "need at least two training rows", stage="resample",
            parameter="n_rows", value=len(frame))

    if feature_columns is None:
        feature_columns = [c for c in frame.columns if c != target_column
                           and pd.api.types.is_numeric_dtype(frame[c])]
    feature_columns = list(feature_columns)

    X = frame[feature_columns].to_numpy(dtype=float)
    y = frame[target_column].to_numpy(dtype=float)
    positions = frame.index.to_numpy()

    if thresholds.control_points is not None:
        relevance = RelevanceFunction(thresholds.control_points)
    else:
        relevance = RelevanceFunction.from_extremes(
            y, thresholds.extremes, thresholds.whisker_coef)
    phi = relevance(y)
    bumps = find_bumps(y, phi, thresholds.threshold)

    if thresholds.bump_percentages is not None \
            and len(thresholds.bump_percentages) != len(bumps):
        raise InvalidConfiguration(
            f"expected one percentage per relevance range ({len(bumps)})",
            stage="resample", parameter="bump_percentages",
            value=thresholds.bump_percentages)

    rng = np.random.RandomState(seed)
    X_parts: List[np.ndarray] = []
    y_parts: List[np.ndarray] = []
    synth_parts: List[np.ndarray] = []
    pos_parts: List[np.ndarray] = []
    summaries: List[BumpSummary] = []

    for b, (idx, rare) in enumerate(bumps):
        if thresholds.bump_percentages is not None:
            pct = float(thresholds.bump_percentages[b])
        else:
            pct = thresholds.over_percentage if rare else thresholds.under_percentage
        label = f"{'rare' if rare else 'common'}_{b}"
        summary = BumpSummary(label=label, rare=rare,
                              y_min=float(y[idx].min()), y_max=float(y[idx].max()),
                              percentage=pct, n_before=len(idx), n_after=len(idx))

        if pct < 1.0:
            n_keep = int(np.floor(pct * len(idx)))
            keep = np.sort(rng.choice(idx, size=n_keep, replace=False))
            X_parts.append(X[keep])
            y_parts.append(y[keep])
            synth_parts.append(np.zeros(n_keep, dtype=bool))
            pos_parts.append(positions[keep])
            summary.n_after = n_keep
        else:
            X_parts.append(X[idx])
            y_parts.append(y[idx])
            synth_parts.append(np.zeros(len(idx), dtype=bool))
            pos_parts.append(positions[idx])
            if pct > 1.0:
                X_new, y_new, k_used = _synthesize(
                    X[idx], y[idx], pct, k_neighbors, metric, p, rng,
                    label, feature_columns)
                X_parts.append(X_new)
                y_parts.append(y_new)
                synth_parts.append(np.ones(len(y_new), dtype=bool))
                pos_parts.append(np.full(len(y_new), -1, dtype=int))
                summary.n_after = len(idx) + len(y_new)
                summary.k_used = k_used

        summaries.append(summary)
        logger.info(
            "  %s [%.4g, %.4g]: %d -> %d rows (x%.2f)",
            label, summary.y_min, summary.y_max,
            summary.n_before, summary.n_after, pct,
        )

    out = pd.DataFrame(np.vstack(X_parts), columns=feature_columns)
    out[target_column] = np.concatenate(y_parts)
    result = ResampledTrainingSet(
        frame=out,
        feature_cols=feature_columns,
        target_col=target_column,
        is_synthetic=np.concatenate(synth_parts),
        source_positions=np.concatenate(pos_parts).astype(int),
        bumps=summaries,
        relevance=relevance,
    )
    logger.info(
        "Resampled training set: %d -> %d rows (%d removed, %d synthetic)",
        len(frame), len(result), result.n_removed, result.n_synthetic,
    )
    return result


def _distance_metric(distance: Union[str, DistanceMetric]) -> DistanceMetric:
    if isinstance(distance, DistanceMetric):
        return distance
    try:
        return DistanceMetric(str(distance).lower())
    except ValueError:
        raise InvalidConfiguration(
            "must be one of " + ", ".join(m.value for m in DistanceMetric),
            stage="resample", parameter="distance", value=distance) from None


def _synthesize(Xb: np.ndarray, yb: np.ndarray, pct: float, k: int,
                metric: DistanceMetric, p: Optional[float],
                rng: np.random.RandomState, label: str,
                feature_columns: Sequence[str]):
    """Interpolate ``round((pct - 1) n)`` new rows inside one range."""
    n = len(yb)
    if n < 2:
        raise InsufficientData(
            "an oversampled relevance range needs at least two rows",
            stage="resample", parameter=f"{label}.n_rows", value=n)

    k_used = min(k, n - 1)
    if k_used < k:
        logger.info("  %s: only %d rows, k_neighbors reduced %d -> %d",
                    label, n, k, k_used)

    std = Xb.std(axis=0)
    varying = std > 0
    if not varying.all():
        dropped = [c for c, v in zip(feature_columns, varying) if not v]
        warnings.warn(
            f"{label}: zero-variance features excluded from the neighbour "
            f"distance: {dropped}",
            NumericDegeneracyWarning,
        )
        logger.warning("  %s: constant features skipped in distance: %s",
                       label, dropped)
    if varying.any():
        Z = StandardScaler().fit_transform(Xb[:, varying])
    else:
        Z = np.zeros((n, 1))

    nn_kwargs = {'n_neighbors': k_used + 1, 'metric': _METRICS[metric]}
    if metric is DistanceMetric.P_NORM:
        nn_kwargs['p'] = p
    _, raw = NearestNeighbors(**nn_kwargs).fit(Z).kneighbors(Z)
    neighbours = np.empty((n, k_used), dtype=int)
    for i, row in enumerate(raw):
        neighbours[i] = row[row != i][:k_used]

    n_new = int(round((pct - 1.0) * n))
    per_row = int(np.floor(pct - 1.0))
    seeds = np.repeat(np.arange(n), per_row)
    remainder = n_new - len(seeds)
    if remainder > 0:
        seeds = np.concatenate(
            [seeds, rng.choice(n, size=min(remainder, n), replace=False)])

    picks = neighbours[seeds, rng.randint(k_used, size=len(seeds))]
    r = rng.uniform(size=len(seeds))
    r = np.clip(r, 1e-12, 1.0 - 1e-12)
    X_new = Xb[seeds] + r[:, None] * (Xb[picks] - Xb[seeds])
    y_new = yb[seeds] + r * (yb[picks] - yb[seeds])
    return X_new, y_new, k_used


__all__ = ['resample', 'ResampledTrainingSet', 'BumpSummary']
