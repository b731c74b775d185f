# -*- coding: utf-8 -*-
"""
Random Forest of Conditional Inference Trees
============================================

Bagged ensemble of :class:`ConditionalInferenceTree` with unbiased
variable selection.  The per-tree in-bag counts are retained, so every
tree's out-of-bag set is recoverable for OOB prediction and permutation
importance.

Sampling:
    replace=True   bootstrap of size ``sample_fraction · n`` (default n)
    replace=False  subsample of ``sample_fraction · n`` rows (0.632 gives
                   the unbiased subsampling scheme)

Prediction modes:
    out_of_bag  average of the trees for which a training row was OOB
                (NaN if the row was in-bag everywhere)
    external    average of all trees

Tree ``t`` draws from ``RandomState(seed + t)``, so the ensemble is the
same whatever the worker count.

References:
    - Hothorn, Lausen, Benner & Radespiel-Tröger (2004). "Bagging Survival
      Trees" Statistics in Medicine 23(1)
    - Strobl, Boulesteix, Zeileis & Hothorn (2007). "Bias in Random Forest
      Variable Importance Measures" BMC Bioinformatics 8:25
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .base import BaseForecaster
from .ctree import ConditionalInferenceTree
from ..config import PredictionMode
from ..errors import InvalidConfiguration, InsufficientData
from ..parallel import fork_join

logger = logging.getLogger('fluxforest.forest')


@dataclass(frozen=True)
class FittedEnsemble:
    """
    Immutable fitted forest.

    Attributes:
        trees: Grown trees, index t grown with ``RandomState(seed + t)``
        inbag: In-bag counts of shape (n_trees, n_train)
        X_train: Training matrix (read-only)
        y_train: Training target (read-only)
        feature_names: Column names of X_train
        params: Growing parameters
        seed: Base seed
        target_name: Name of the response column
    """
    trees: Tuple[ConditionalInferenceTree, ...]
    inbag: np.ndarray
    X_train: np.ndarray
    y_train: np.ndarray
    feature_names: Tuple[str, ...]
    params: Dict[str, Any] = field(default_factory=dict)
    seed: int = 500
    target_name: str = "y"

    @property
    def n_trees(self) -> int:
        return len(self.trees)

    @property
    def n_features(self) -> int:
        return len(self.feature_names)

    def oob_rows(self, tree: int) -> np.ndarray:
        """Training row positions not drawn for *tree*."""
        return np.nonzero(self.inbag[tree] == 0)[0]

    def feature_index(self, name: str) -> int:
        try:
            return self.feature_names.index(name)
        except ValueError:
            raise InvalidConfiguration(
                "not a model feature", stage="forest",
                parameter="feature", value=name) from None

    def tree_predictions(self, X: np.ndarray) -> np.ndarray:
        """Per-tree predictions of shape (n_trees, n_rows)."""
        return np.vstack([tree.predict(X) for tree in self.trees])


# =========================================================================
# Functional interface
# =========================================================================

def _check_params(n_features: int, mtry: int, n_trees: int, min_split: int,
                  min_bucket: int, replace: bool, sample_fraction: float) -> None:
    if n_trees < 1:
        raise InvalidConfiguration("must be at least 1", stage="forest",
                                   parameter="n_trees", value=n_trees)
    if not 1 <= mtry <= n_features:
        raise InvalidConfiguration(
            f"must lie in [1, {n_features}] (number of features)",
            stage="forest", parameter="mtry", value=mtry)
    if min_split < 2:
        raise InvalidConfiguration("must be at least 2", stage="forest",
                                   parameter="min_split", value=min_split)
    if min_bucket < 1:
        raise InvalidConfiguration("must be at least 1", stage="forest",
                                   parameter="min_bucket", value=min_bucket)
    if sample_fraction <= 0 or (not replace and sample_fraction > 1):
        raise InvalidConfiguration(
            "must lie in (0, 1] when sampling without replacement",
            stage="forest", parameter="sample_fraction", value=sample_fraction)


def _draw_inbag(n: int, rng: np.random.RandomState, replace: bool,
                sample_fraction: float) -> np.ndarray:
    m = max(1, int(round(sample_fraction * n)))
    if replace:
        draws = rng.randint(n, size=m)
    else:
        draws = rng.choice(n, size=min(m, n), replace=False)
    return np.bincount(draws, minlength=n)


def fit_forest(X: np.ndarray,
               y: np.ndarray,
               feature_names: Optional[Sequence[str]] = None,
               mtry: int = 18,
               n_trees: int = 500,
               seed: int = 500,
               min_split: int = 20,
               min_bucket: int = 7,
               max_depth: Optional[int] = None,
               mincriterion: float = 0.0,
               replace: bool = True,
               sample_fraction: float = 1.0,
               n_jobs: int = 1,
               cancel_event: Optional[threading.Event] = None,
               target_name: str = "y") -> FittedEnsemble:
    """
    Grow a conditional inference forest on a feature matrix.

    Args:
        X: Feature matrix of shape (n_samples, n_features)
        y: Target of shape (n_samples,)
        feature_names: Column names (default ``x0 .. x{p-1}``)
        mtry: Candidate features per node
        n_trees: Number of trees
        seed: Base seed; tree t uses ``seed + t``
        min_split, min_bucket, max_depth, mincriterion: Tree controls
        replace, sample_fraction: Per-tree sampling scheme
        n_jobs: Worker threads (-1 = all cores but one)
        cancel_event: Checked between trees
        target_name: Response name kept for later scoring of data frames

    Returns:
        FittedEnsemble

    Raises:
        InvalidConfiguration: Out-of-range parameter
        InsufficientData: Fewer than two training rows
        ComputationCancelled: *cancel_event* was set
    """
    X = np.array(X, dtype=float)
    y = np.array(y, dtype=float).ravel()
    if X.ndim != 2 or X.shape[0] != len(y):
        raise InvalidConfiguration(
            "X must be 2-D with one row per target value", stage="forest",
            parameter="X.shape", value=X.shape)
    if len(y) < 2:
        raise InsufficientData("need at least two training rows",
                               stage="forest", parameter="n_rows", value=len(y))
    if np.isnan(X).any() or np.isnan(y).any():
        raise InvalidConfiguration("training data contains NaN",
                                   stage="forest", parameter="X", value="NaN")
    n, p = X.shape
    _check_params(p, mtry, n_trees, min_split, min_bucket, replace,
                  sample_fraction)
    names = tuple(feature_names) if feature_names is not None \
        else tuple(f"x{j}" for j in range(p))
    if len(names) != p:
        raise InvalidConfiguration(
            f"expected {p} names", stage="forest",
            parameter="feature_names", value=len(names))

    def grow(t: int) -> Tuple[ConditionalInferenceTree, np.ndarray]:
        rng = np.random.RandomState(seed + t)
        counts = _draw_inbag(n, rng, replace, sample_fraction)
        rows = np.nonzero(counts)[0]
        tree = ConditionalInferenceTree(
            mtry=mtry, min_split=min_split, min_bucket=min_bucket,
            max_depth=max_depth, mincriterion=mincriterion)
        tree.fit(X[rows], y[rows], weights=counts[rows], rng=rng)
        return tree, counts

    logger.info("Growing %d conditional inference trees (n=%d, p=%d, mtry=%d)",
                n_trees, n, p, mtry)
    grown = fork_join(grow, list(range(n_trees)), n_jobs=n_jobs,
                      cancel_event=cancel_event, stage="forest")

    inbag = np.vstack([counts for _, counts in grown])
    X.setflags(write=False)
    y.setflags(write=False)
    inbag.setflags(write=False)
    model = FittedEnsemble(
        trees=tuple(tree for tree, _ in grown),
        inbag=inbag,
        X_train=X,
        y_train=y,
        feature_names=names,
        params={
            'mtry': mtry, 'n_trees': n_trees, 'min_split': min_split,
            'min_bucket': min_bucket, 'max_depth': max_depth,
            'mincriterion': mincriterion, 'replace': replace,
            'sample_fraction': sample_fraction,
        },
        seed=seed,
        target_name=target_name,
    )
    n_never_oob = int((inbag > 0).all(axis=0).sum())
    logger.info("Forest grown: mean %.1f leaves/tree, %d rows never OOB",
                np.mean([t.n_leaves for t in model.trees]), n_never_oob)
    return model


def fit(training_data,
        mtry: int = 18,
        n_trees: int = 500,
        seed: int = 500,
        target_column: Optional[str] = None,
        feature_columns: Optional[Sequence[str]] = None,
        **kwargs) -> FittedEnsemble:
    """
    Fit a forest on a resampled training set or a data frame.

    Args:
        training_data: :class:`ResampledTrainingSet` or DataFrame
        mtry, n_trees, seed: Forest size and reproducibility
        target_column: Required for a DataFrame
        feature_columns: Inputs (default: numeric columns except target)
        **kwargs: Passed to :func:`fit_forest`
    """
    if isinstance(training_data, pd.DataFrame):
        if target_column is None or target_column not in training_data.columns:
            raise InvalidConfiguration(
                "target column not found", stage="forest",
                parameter="target_column", value=target_column)
        if feature_columns is None:
            feature_columns = [
                c for c in training_data.columns if c != target_column
                and pd.api.types.is_numeric_dtype(training_data[c])]
        feature_columns = list(feature_columns)
        X = training_data[feature_columns].to_numpy(dtype=float)
        y = training_data[target_column].to_numpy(dtype=float)
    else:
        target_column = training_data.target_col
        feature_columns = list(feature_columns or training_data.feature_cols)
        X = training_data.frame[feature_columns].to_numpy(dtype=float)
        y = training_data.y
    return fit_forest(X, y, feature_names=feature_columns, mtry=mtry,
                      n_trees=n_trees, seed=seed, target_name=target_column,
                      **kwargs)


def _as_matrix(model: FittedEnsemble, rows) -> np.ndarray:
    if isinstance(rows, pd.DataFrame):
        missing = [c for c in model.feature_names if c not in rows.columns]
        if missing:
            raise InvalidConfiguration(
                "rows lack model features", stage="predict",
                parameter="columns", value=missing)
        return rows[list(model.feature_names)].to_numpy(dtype=float)
    X = np.asarray(rows, dtype=float)
    if X.ndim != 2 or X.shape[1] != model.n_features:
        raise InvalidConfiguration(
            f"expected shape (n, {model.n_features})", stage="predict",
            parameter="rows.shape", value=X.shape)
    return X


def predict(model: FittedEnsemble, rows=None,
            mode: Union[str, PredictionMode] = "external") -> np.ndarray:
    """
    Forest predictions.

    Args:
        model: Fitted ensemble
        rows: DataFrame or matrix; for ``out_of_bag`` the training rows
            (default: ``model.X_train``)
        mode: ``"external"`` averages every tree, ``"out_of_bag"`` only the
            trees that did not see the row

    Returns:
        Array of shape (n_rows,); OOB rows in-bag for every tree are NaN
    """
    if not isinstance(mode, PredictionMode):
        try:
            mode = PredictionMode(str(mode).lower())
        except ValueError:
            raise InvalidConfiguration(
                "must be 'external' or 'out_of_bag'", stage="predict",
                parameter="mode", value=mode) from None
    X = model.X_train if rows is None else _as_matrix(model, rows)
    per_tree = model.tree_predictions(X)

    if mode is PredictionMode.EXTERNAL:
        return per_tree.mean(axis=0)

    if X.shape[0] != model.inbag.shape[1]:
        raise InvalidConfiguration(
            "out-of-bag prediction needs the training rows", stage="predict",
            parameter="n_rows", value=X.shape[0])
    oob = model.inbag == 0
    n_oob = oob.sum(axis=0)
    total = np.where(oob, per_tree, 0.0).sum(axis=0)
    out = np.full(X.shape[0], np.nan)
    has = n_oob > 0
    out[has] = total[has] / n_oob[has]
    return out


# =========================================================================
# Estimator facade
# =========================================================================

class ConditionalInferenceForest(BaseForecaster):
    """
    Estimator-style wrapper around :func:`fit_forest`.

    Parameters:
        n_trees: Number of trees
        mtry: Candidate features per node
        min_split, min_bucket, max_depth, mincriterion: Tree controls
        replace, sample_fraction: Per-tree sampling scheme
        conditional: Conditional permutation importance
        importance_threshold: 1 - p cut for conditioning variables
        n_jobs: Worker threads
        seed: Base seed
    """

    def __init__(self,
                 n_trees: int = 500,
                 mtry: int = 18,
                 min_split: int = 20,
                 min_bucket: int = 7,
                 max_depth: Optional[int] = None,
                 mincriterion: float = 0.0,
                 replace: bool = True,
                 sample_fraction: float = 1.0,
                 conditional: bool = True,
                 importance_threshold: float = 0.2,
                 n_jobs: int = 1,
                 seed: int = 500):
        self.n_trees = n_trees
        self.mtry = mtry
        self.min_split = min_split
        self.min_bucket = min_bucket
        self.max_depth = max_depth
        self.mincriterion = mincriterion
        self.replace = replace
        self.sample_fraction = sample_fraction
        self.conditional = conditional
        self.importance_threshold = importance_threshold
        self.n_jobs = n_jobs
        self.seed = seed

        self.ensemble_: Optional[FittedEnsemble] = None
        self.feature_importance_: Optional[np.ndarray] = None

    def fit(self, X, y, feature_names: Optional[List[str]] = None
            ) -> 'ConditionalInferenceForest':
        if feature_names is None and isinstance(X, pd.DataFrame):
            feature_names = list(X.columns)
        self.ensemble_ = fit_forest(
            np.asarray(X, dtype=float), np.asarray(y, dtype=float),
            feature_names=feature_names, mtry=self.mtry, n_trees=self.n_trees,
            seed=self.seed, min_split=self.min_split,
            min_bucket=self.min_bucket, max_depth=self.max_depth,
            mincriterion=self.mincriterion, replace=self.replace,
            sample_fraction=self.sample_fraction, n_jobs=self.n_jobs)
        self.feature_importance_ = None
        return self

    def _fitted(self) -> FittedEnsemble:
        if self.ensemble_ is None:
            raise ValueError("Model not fitted yet")
        return self.ensemble_

    def predict(self, X) -> np.ndarray:
        return predict(self._fitted(), X, PredictionMode.EXTERNAL)

    def predict_oob(self) -> np.ndarray:
        """Out-of-bag predictions for the training rows."""
        return predict(self._fitted(), None, PredictionMode.OUT_OF_BAG)

    def get_feature_importance(self) -> np.ndarray:
        """Permutation importance per feature (computed once, then cached)."""
        model = self._fitted()
        if self.feature_importance_ is None:
            from ..analysis.importance import importance
            table = importance(model, conditional=self.conditional,
                               threshold=self.importance_threshold,
                               n_jobs=self.n_jobs, seed=self.seed)
            self.feature_importance_ = table.features.reindex(
                list(model.feature_names)).to_numpy()
        return self.feature_importance_


__all__ = [
    'FittedEnsemble',
    'fit_forest',
    'fit',
    'predict',
    'ConditionalInferenceForest',
]
