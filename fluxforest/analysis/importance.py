# -*- coding: utf-8 -*-
"""
Permutation Variable Importance for Conditional Inference Forests
=================================================================

Mean increase of a tree's squared error when one feature is permuted,
averaged over the trees that split on that feature.

Marginal importance permutes the feature over all evaluation rows.
Conditional importance (Strobl et al. 2008) permutes it only inside
strata of correlated covariates, so a driver is not credited for the
information its lags or companion drivers carry:

    1. conditioning set Z(F) = {G ≠ F : 1 - p(G, F) > threshold}, with
       the same permutation test used to grow the trees
    2. per tree, strata = cells of the grid formed by that tree's own
       cutpoints on the members of Z(F)
    3. F is shuffled within each cell

Evaluation rows are each tree's out-of-bag rows, or every row of an
externally supplied frame.

References:
    - Breiman (2001). "Random Forests" Machine Learning 45(1)
    - Strobl, Boulesteix, Kneib, Augustin & Zeileis (2008). "Conditional
      Variable Importance for Random Forests" BMC Bioinformatics 9:307
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

import numpy as np
import pandas as pd

from ..dataset import LagIndex
from ..errors import InvalidConfiguration
from ..forecasting.cforest import FittedEnsemble
from ..forecasting.ctree import ConditionalInferenceTree, criterion, permutation_statistic
from ..parallel import fork_join

logger = logging.getLogger('fluxforest.importance')


@dataclass
class ImportanceTable:
    """
    Importance scores of a fitted forest.

    Attributes:
        features: Score per feature column, descending
        drivers: Summed score per driver (own + lags), descending; None
            until a lag index is supplied
        conditional: Whether strata-conditional permutation was used
        conditioning_sets: Conditioning features of every feature
        n_trees_used: Trees splitting on each feature
    """
    features: pd.Series
    drivers: Optional[pd.Series] = None
    conditional: bool = True
    conditioning_sets: Dict[str, List[str]] = field(default_factory=dict)
    n_trees_used: Optional[pd.Series] = None

    def top_drivers(self, n: int = 5) -> pd.Series:
        if self.drivers is None:
            raise ValueError("driver importance not computed")
        return self.drivers.head(n)

    def to_frame(self) -> pd.DataFrame:
        out = pd.DataFrame({'importance': self.features})
        if self.n_trees_used is not None:
            out['n_trees'] = self.n_trees_used.reindex(out.index)
        out.index.name = 'feature'
        return out


def aggregate_by_driver(table: Union[ImportanceTable, pd.Series],
                        lag_index: LagIndex) -> pd.Series:
    """
    Sum each driver's own and lagged scores.

    Args:
        table: ImportanceTable or per-feature Series
        lag_index: ``(driver, lag) -> column`` mapping

    Returns:
        Series indexed by driver, descending
    """
    scores = table.features if isinstance(table, ImportanceTable) else table
    totals = {}
    for driver in lag_index.drivers:
        cols = [c for c in lag_index.columns_of(driver) if c in scores.index]
        if cols:
            totals[driver] = float(scores[cols].sum())
    out = pd.Series(totals, dtype=float, name='importance')
    out.index.name = 'driver'
    return out.sort_values(ascending=False, kind='mergesort')


def conditioning_sets(X: np.ndarray, threshold: float = 0.2) -> List[np.ndarray]:
    """
    Indices of the covariates associated with each feature.

    Feature G conditions F when the permutation test of G against F has
    criterion ``1 - p > threshold``.
    """
    p = X.shape[1]
    sets = []
    for f in range(p):
        others = np.array([g for g in range(p) if g != f], dtype=int)
        if len(others) == 0 or np.ptp(X[:, f]) == 0:
            sets.append(np.array([], dtype=int))
            continue
        crit = criterion(permutation_statistic(X[:, others], X[:, f]))
        sets.append(others[crit > threshold])
    return sets


def _strata(tree: ConditionalInferenceTree, X: np.ndarray,
            conditioning: np.ndarray) -> Optional[np.ndarray]:
    """Grid-cell id of each row from the tree's cutpoints on *conditioning*."""
    codes = []
    for g in conditioning:
        cuts = tree.cutpoints(int(g))
        if len(cuts):
            codes.append(np.searchsorted(cuts, X[:, g], side='left'))
    if not codes:
        return None
    _, cell = np.unique(np.column_stack(codes), axis=0, return_inverse=True)
    return cell.reshape(-1)


def _permute(values: np.ndarray, strata: Optional[np.ndarray],
             rng: np.random.RandomState) -> np.ndarray:
    if strata is None:
        return values[rng.permutation(len(values))]
    out = values.copy()
    for s in np.unique(strata):
        idx = np.nonzero(strata == s)[0]
        if len(idx) > 1:
            out[idx] = values[rng.permutation(idx)]
    return out


def importance(model: FittedEnsemble,
               data: Optional[pd.DataFrame] = None,
               conditional: bool = True,
               threshold: float = 0.2,
               n_permutations: int = 1,
               lag_index: Optional[LagIndex] = None,
               seed: Optional[int] = None,
               n_jobs: int = 1,
               cancel_event: Optional[threading.Event] = None) -> ImportanceTable:
    """
    Permutation importance of every model feature.

    Args:
        model: Fitted forest
        data: External frame with the features and ``model.target_name``
            (default: each tree's out-of-bag training rows)
        conditional: Permute within strata of correlated covariates
        threshold: 1 - p cut defining the conditioning set
        n_permutations: Repeats averaged per tree and feature
        lag_index: If given, driver totals are filled in
        seed: Base seed of the permutations (default: the model's seed)
        n_jobs: Worker threads over trees
        cancel_event: Checked between trees

    Returns:
        ImportanceTable with non-negative scores; a feature used by no
        tree scores exactly zero
    """
    if n_permutations < 1:
        raise InvalidConfiguration("must be at least 1", stage="importance",
                                   parameter="n_permutations",
                                   value=n_permutations)
    if not 0.0 <= threshold < 1.0:
        raise InvalidConfiguration("must lie in [0, 1)", stage="importance",
                                   parameter="threshold", value=threshold)

    names = list(model.feature_names)
    if data is None:
        X, y = model.X_train, model.y_train
    else:
        missing = [c for c in names + [model.target_name] if c not in data.columns]
        if missing:
            raise InvalidConfiguration("columns missing from data",
                                       stage="importance",
                                       parameter="columns", value=missing)
        X = data[names].to_numpy(dtype=float)
        y = data[model.target_name].to_numpy(dtype=float)

    seed = model.seed if seed is None else seed
    cond = conditioning_sets(X, threshold) if conditional else None
    all_rows = np.arange(X.shape[0])

    def per_tree(t: int) -> np.ndarray:
        tree = model.trees[t]
        rows = model.oob_rows(t) if data is None else all_rows
        out = np.full(len(names), np.nan)
        used = tree.split_features
        if len(rows) == 0 or len(used) == 0:
            return out
        Xt, yt = X[rows], y[rows]
        baseline = np.mean((yt - tree.predict(Xt)) ** 2)
        rng = np.random.RandomState(seed + t)
        for f in used:
            strata = _strata(tree, Xt, cond[f]) if conditional else None
            increase = 0.0
            for _ in range(n_permutations):
                Xp = Xt.copy()
                Xp[:, f] = _permute(Xt[:, f], strata, rng)
                increase += np.mean((yt - tree.predict(Xp)) ** 2) - baseline
            out[f] = increase / n_permutations
        return out

    logger.info("%s permutation importance over %d trees",
                "Conditional" if conditional else "Marginal", model.n_trees)
    per = np.vstack(fork_join(per_tree, list(range(model.n_trees)),
                              n_jobs=n_jobs, cancel_event=cancel_event,
                              stage="importance"))

    counts = (~np.isnan(per)).sum(axis=0)
    totals = np.nansum(per, axis=0)
    scores = np.zeros(len(names))
    has = counts > 0
    scores[has] = totals[has] / counts[has]
    scores = np.clip(scores, 0.0, None)

    features = pd.Series(scores, index=names, name='importance')
    features.index.name = 'feature'
    features = features.sort_values(ascending=False, kind='mergesort')
    table = ImportanceTable(
        features=features,
        conditional=conditional,
        conditioning_sets=({names[f]: [names[g] for g in cond[f]]
                            for f in range(len(names))} if conditional else {}),
        n_trees_used=pd.Series(counts, index=names, name='n_trees'),
    )
    if lag_index is not None:
        table.drivers = aggregate_by_driver(table, lag_index)
    return table


__all__ = [
    'ImportanceTable',
    'importance',
    'aggregate_by_driver',
    'conditioning_sets',
]
