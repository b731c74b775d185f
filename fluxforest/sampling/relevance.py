# -*- coding: utf-8 -*-
"""
Target Relevance for Imbalanced Regression
==========================================

A relevance function φ(y) ∈ [0, 1] marks which target values are rare
(under-represented, φ ≥ threshold) and which are common
(over-represented, φ < threshold).  It is a monotone piecewise cubic
Hermite interpolant through control points ``(y, φ)``.

Automatic control points ("extremes" method) come from box-plot
statistics of the target:

    lower whisker → φ = 1 if values lie below it, else range minimum → 0
    median        → φ = 0
    upper whisker → φ = 1 if values lie above it, else range maximum → 0

References:
    - Ribeiro (2011). "Utility-based Regression" PhD thesis, Porto
    - Branco, Torgo & Ribeiro (2017). "SMOGN: a Pre-processing Approach
      for Imbalanced Regression" PMLR 74
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy.interpolate import PchipInterpolator

from ..errors import InvalidConfiguration


@dataclass(frozen=True)
class RelevanceThresholds:
    """Relevance definition and per-class sampling percentages.

    Parameters:
        under_percentage: Fraction of rows kept in over-represented ranges
        over_percentage: Size multiple reached by under-represented ranges
        threshold: φ at or above which a target value is rare
        control_points: Optional ``(y, φ)`` pairs, y strictly increasing
        bump_percentages: Optional explicit percentage per bump, in order of
            increasing target; ``1.0`` keeps a bump unchanged
        extremes: Which tails the automatic method may mark as rare
        whisker_coef: Box-plot whisker coefficient
    """
    under_percentage: float = 0.7
    over_percentage: float = 2.0
    threshold: float = 0.5
    control_points: Optional[Tuple[Tuple[float, float], ...]] = None
    bump_percentages: Optional[Tuple[float, ...]] = None
    extremes: str = "both"
    whisker_coef: float = 1.5

    def __post_init__(self):
        if not 0.0 < self.under_percentage <= 1.0:
            raise InvalidConfiguration(
                "must lie in (0, 1]", stage="resample",
                parameter="under_percentage", value=self.under_percentage)
        if self.over_percentage < 1.0:
            raise InvalidConfiguration(
                "must be at least 1", stage="resample",
                parameter="over_percentage", value=self.over_percentage)
        if not 0.0 < self.threshold < 1.0:
            raise InvalidConfiguration(
                "must lie strictly between 0 and 1", stage="resample",
                parameter="threshold", value=self.threshold)
        if self.extremes not in ("both", "high", "low"):
            raise InvalidConfiguration(
                "must be 'both', 'high' or 'low'", stage="resample",
                parameter="extremes", value=self.extremes)
        if self.control_points is not None:
            pts = np.asarray(self.control_points, dtype=float)
            if pts.ndim != 2 or pts.shape[1] != 2 or len(pts) < 2:
                raise InvalidConfiguration(
                    "need at least two (y, relevance) pairs", stage="resample",
                    parameter="control_points", value=self.control_points)
            if np.any(np.diff(pts[:, 0]) <= 0):
                raise InvalidConfiguration(
                    "target values must be strictly increasing",
                    stage="resample", parameter="control_points",
                    value=self.control_points)
            if np.any((pts[:, 1] < 0) | (pts[:, 1] > 1)):
                raise InvalidConfiguration(
                    "relevance values must lie in [0, 1]", stage="resample",
                    parameter="control_points", value=self.control_points)
        if self.bump_percentages is not None and any(
                p <= 0 for p in self.bump_percentages):
            raise InvalidConfiguration(
                "percentages must be positive", stage="resample",
                parameter="bump_percentages", value=self.bump_percentages)


class RelevanceFunction:
    """φ(y) interpolated through control points, clamped outside them."""

    def __init__(self, control_points: Sequence[Tuple[float, float]]):
        pts = np.asarray(control_points, dtype=float)
        self.control_points = pts
        if len(pts) >= 2:
            self._interp = PchipInterpolator(pts[:, 0], pts[:, 1],
                                             extrapolate=False)
        else:
            self._interp = None

    @classmethod
    def from_extremes(cls, y: np.ndarray, extremes: str = "both",
                      coef: float = 1.5) -> 'RelevanceFunction':
        """Derive control points from the box-plot statistics of *y*."""
        y = np.asarray(y, dtype=float)
        q1, median, q3 = np.percentile(y, [25, 50, 75])
        iqr = q3 - q1
        inside = y[(y >= q1 - coef * iqr) & (y <= q3 + coef * iqr)]
        low_whisker, high_whisker = inside.min(), inside.max()

        points: List[Tuple[float, float]] = []
        if extremes in ("both", "low") and np.any(y < low_whisker):
            points.append((low_whisker, 1.0))
        else:
            points.append((y.min(), 0.0))
        points.append((median, 0.0))
        if extremes in ("both", "high") and np.any(y > high_whisker):
            points.append((high_whisker, 1.0))
        else:
            points.append((y.max(), 0.0))

        # Collapse coincident abscissae (e.g. median equal to the minimum)
        dedup: List[Tuple[float, float]] = []
        for x, phi in points:
            if dedup and x <= dedup[-1][0]:
                dedup[-1] = (dedup[-1][0], max(dedup[-1][1], phi))
            else:
                dedup.append((x, phi))
        return cls(dedup)

    def __call__(self, y: np.ndarray) -> np.ndarray:
        y = np.asarray(y, dtype=float)
        pts = self.control_points
        if self._interp is None:
            return np.full(y.shape, pts[0, 1] if len(pts) else 0.0)
        phi = self._interp(y)
        phi = np.where(y < pts[0, 0], pts[0, 1], phi)
        phi = np.where(y > pts[-1, 0], pts[-1, 1], phi)
        return np.clip(phi, 0.0, 1.0)


def find_bumps(y: np.ndarray, relevance: np.ndarray,
               threshold: float) -> List[Tuple[np.ndarray, bool]]:
    """
    Group rows into contiguous target ranges of equal rarity.

    Returns:
        List of ``(row_indices, is_rare)`` in order of increasing target
    """
    order = np.argsort(y, kind="mergesort")
    rare = relevance[order] >= threshold
    bumps: List[Tuple[np.ndarray, bool]] = []
    start = 0
    for i in range(1, len(order) + 1):
        if i == len(order) or rare[i] != rare[start]:
            bumps.append((order[start:i], bool(rare[start])))
            start = i
    return bumps


__all__ = ['RelevanceThresholds', 'RelevanceFunction', 'find_bumps']
