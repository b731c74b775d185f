# -*- coding: utf-8 -*-
"""
Conditional Inference Regression Tree
=====================================

Recursive binary partitioning in which variable selection and split
search are separated, removing the bias of impurity-based trees towards
features with many distinct values.

Variable selection (per node, among ``mtry`` random candidates):
    For case weights w, centred response hc and centred covariate xc the
    linear statistic T = Σ w x y has conditional mean and variance under
    the permutation null; its standardized quadratic form is

        c² = (n - 1) · (Σ w xc hc)² / (Σ w hc² · Σ w xc²)

    which is asymptotically χ²(1).  The candidate with the largest
    criterion 1 - p is selected; the node splits only when that criterion
    exceeds ``mincriterion``.

Split search (selected feature only):
    For every cutpoint c between distinct values the two-sample statistic
    of the indicator x ≤ c is standardized the same way; the cutpoint
    with the largest statistic that leaves at least ``min_bucket`` weight
    on both sides wins.  When no cutpoint is admissible the next best
    feature is tried.

References:
    - Hothorn, Hornik & Zeileis (2006). "Unbiased Recursive Partitioning:
      A Conditional Inference Framework" JCGS 15(3)
    - Strasser & Weber (1999). "On the Asymptotic Theory of Permutation
      Statistics" Math. Methods of Statistics
"""

from typing import List, Optional, Tuple

import numpy as np
from scipy.stats import chi2

LEAF = -1


def permutation_statistic(X: np.ndarray, h: np.ndarray,
                          w: Optional[np.ndarray] = None) -> np.ndarray:
    """
    Standardized quadratic permutation statistic of each column against *h*.

    Args:
        X: Covariates of shape (n_samples, n_features)
        h: Response of shape (n_samples,)
        w: Case weights (default: ones)

    Returns:
        Array of shape (n_features,) with c² ≥ 0; constant columns give 0
    """
    X = np.asarray(X, dtype=float)
    if X.ndim == 1:
        X = X[:, None]
    if w is None:
        w = np.ones(len(h))
    n = w.sum()
    c2 = np.zeros(X.shape[1])
    if n <= 1:
        return c2

    hc = h - (w @ h) / n
    shh = w @ (hc ** 2)
    if shh <= 0:
        return c2
    xc = X - (w @ X) / n
    sxx = w @ (xc ** 2)
    sxh = (w * hc) @ xc

    varying = (np.ptp(X, axis=0) > 0) & (sxx > 0)
    c2[varying] = (n - 1.0) * sxh[varying] ** 2 / (shh * sxx[varying])
    return c2


def criterion(c2: np.ndarray) -> np.ndarray:
    """1 - p-value of χ²(1) statistics."""
    return chi2.cdf(c2, df=1)


class ConditionalInferenceTree:
    """
    Single conditional inference tree for a numeric response.

    Parameters:
        mtry: Candidate features drawn at each node
        min_split: Minimum node weight required to attempt a split
        min_bucket: Minimum weight in each child
        max_depth: Maximum depth (None = unlimited)
        mincriterion: Criterion (1 - p) a split must exceed

    Attributes (after fit):
        feature_, threshold_, left_, right_: Node arrays; ``feature_ == -1``
            marks a leaf. Rows with ``x <= threshold`` go left.
        value_: Weighted mean response per node
        weight_: Case weight per node
        criterion_: Selection criterion of the split (0 for leaves)
    """

    def __init__(self,
                 mtry: int,
                 min_split: int = 20,
                 min_bucket: int = 7,
                 max_depth: Optional[int] = None,
                 mincriterion: float = 0.0):
        self.mtry = mtry
        self.min_split = min_split
        self.min_bucket = min_bucket
        self.max_depth = max_depth
        self.mincriterion = mincriterion

        self.feature_: Optional[np.ndarray] = None
        self.threshold_: Optional[np.ndarray] = None
        self.left_: Optional[np.ndarray] = None
        self.right_: Optional[np.ndarray] = None
        self.value_: Optional[np.ndarray] = None
        self.weight_: Optional[np.ndarray] = None
        self.criterion_: Optional[np.ndarray] = None

    # ------------------------------------------------------------------
    # Growing
    # ------------------------------------------------------------------

    def fit(self, X: np.ndarray, y: np.ndarray,
            weights: Optional[np.ndarray] = None,
            rng: Optional[np.random.RandomState] = None) -> 'ConditionalInferenceTree':
        """
        Grow the tree.

        Args:
            X: Feature matrix of shape (n_samples, n_features)
            y: Response of shape (n_samples,)
            weights: Case weights, e.g. bootstrap counts (default: ones)
            rng: Generator for the per-node feature draws

        Returns:
            Self for method chaining
        """
        X = np.asarray(X, dtype=float)
        y = np.asarray(y, dtype=float)
        w = np.ones(len(y)) if weights is None else np.asarray(weights, dtype=float)
        rng = rng if rng is not None else np.random.RandomState(0)
        n_features = X.shape[1]
        mtry = min(self.mtry, n_features)

        feature: List[int] = []
        threshold: List[float] = []
        left: List[int] = []
        right: List[int] = []
        value: List[float] = []
        weight: List[float] = []
        crit: List[float] = []

        def new_node(idx: np.ndarray) -> int:
            wi = w[idx]
            feature.append(LEAF)
            threshold.append(np.nan)
            left.append(LEAF)
            right.append(LEAF)
            value.append(float(wi @ y[idx] / wi.sum()))
            weight.append(float(wi.sum()))
            crit.append(0.0)
            return len(feature) - 1

        root = new_node(np.arange(len(y)))
        stack: List[Tuple[int, np.ndarray, int]] = [(root, np.arange(len(y)), 0)]

        while stack:
            node, idx, depth = stack.pop()
            wi = w[idx]
            if wi.sum() < self.min_split:
                continue
            if self.max_depth is not None and depth >= self.max_depth:
                continue
            h = y[idx]
            if np.ptp(h) == 0:
                continue

            candidates = rng.choice(n_features, size=mtry, replace=False)
            stats = permutation_statistic(X[np.ix_(idx, candidates)], h, wi)
            crits = criterion(stats)

            split = None
            for j in np.argsort(-stats, kind='stable'):
                if crits[j] <= self.mincriterion:
                    break
                cut = self._best_cutpoint(X[idx, candidates[j]], h, wi)
                if cut is not None:
                    split = (int(candidates[j]), cut, float(crits[j]))
                    break
            if split is None:
                continue

            f, cut, c = split
            go_left = X[idx, f] <= cut
            left_idx, right_idx = idx[go_left], idx[~go_left]
            l_node = new_node(left_idx)
            r_node = new_node(right_idx)
            feature[node] = f
            threshold[node] = cut
            left[node] = l_node
            right[node] = r_node
            crit[node] = c
            stack.append((r_node, right_idx, depth + 1))
            stack.append((l_node, left_idx, depth + 1))

        self.feature_ = np.asarray(feature, dtype=int)
        self.threshold_ = np.asarray(threshold, dtype=float)
        self.left_ = np.asarray(left, dtype=int)
        self.right_ = np.asarray(right, dtype=int)
        self.value_ = np.asarray(value, dtype=float)
        self.weight_ = np.asarray(weight, dtype=float)
        self.criterion_ = np.asarray(crit, dtype=float)
        return self

    def _best_cutpoint(self, x: np.ndarray, h: np.ndarray,
                       w: np.ndarray) -> Optional[float]:
        """Cutpoint maximizing the standardized two-sample statistic."""
        order = np.argsort(x, kind='mergesort')
        xs, hs, ws = x[order], h[order], w[order]
        n = ws.sum()
        hc = hs - (ws @ hs) / n
        var_h = (ws @ (hc ** 2)) / n
        if var_h <= 0:
            return None

        cw = np.cumsum(ws)[:-1]
        s = np.cumsum(ws * hc)[:-1]
        admissible = (xs[:-1] < xs[1:]) & (cw >= self.min_bucket) \
            & (n - cw >= self.min_bucket)
        if not admissible.any():
            return None

        v = var_h / (n - 1.0) * (n * cw - cw ** 2)
        stat = np.full(len(cw), -np.inf)
        ok = admissible & (v > 0)
        if not ok.any():
            return None
        stat[ok] = s[ok] ** 2 / v[ok]
        return float(xs[int(np.argmax(stat))])

    # ------------------------------------------------------------------
    # Prediction
    # ------------------------------------------------------------------

    def apply(self, X: np.ndarray) -> np.ndarray:
        """Terminal node id of every row."""
        X = np.asarray(X, dtype=float)
        node = np.zeros(X.shape[0], dtype=int)
        active = np.nonzero(self.feature_[node] != LEAF)[0]
        while active.size:
            cur = node[active]
            go_left = X[active, self.feature_[cur]] <= self.threshold_[cur]
            node[active] = np.where(go_left, self.left_[cur], self.right_[cur])
            active = active[self.feature_[node[active]] != LEAF]
        return node

    def predict(self, X: np.ndarray) -> np.ndarray:
        return self.value_[self.apply(X)]

    # ------------------------------------------------------------------
    # Structure queries
    # ------------------------------------------------------------------

    @property
    def split_features(self) -> np.ndarray:
        """Sorted indices of features used in at least one split."""
        return np.unique(self.feature_[self.feature_ != LEAF])

    def cutpoints(self, feature: int) -> np.ndarray:
        """Sorted distinct thresholds this tree uses on *feature*."""
        return np.unique(self.threshold_[self.feature_ == feature])

    @property
    def n_leaves(self) -> int:
        return int((self.feature_ == LEAF).sum())

    @property
    def depth(self) -> int:
        depth = np.zeros(len(self.feature_), dtype=int)
        for node in range(len(self.feature_)):
            if self.feature_[node] != LEAF:
                depth[self.left_[node]] = depth[node] + 1
                depth[self.right_[node]] = depth[node] + 1
        return int(depth.max())


__all__ = [
    'ConditionalInferenceTree',
    'permutation_statistic',
    'criterion',
    'LEAF',
]
