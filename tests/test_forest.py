# -*- coding: utf-8 -*-
"""
Tests for conditional inference trees and forests.

Covers:
    - Permutation statistic and split selection
    - Stopping rules (min_split, min_bucket, max_depth, constant target)
    - Forest determinism, OOB bookkeeping and prediction modes
    - Parameter validation, cancellation, estimator facade

Run with:
    pytest tests/test_forest.py -v
"""

import threading

import numpy as np
import pandas as pd
import pytest

from fluxforest.errors import ComputationCancelled, InsufficientData, InvalidConfiguration
from fluxforest.forecasting import (
    ConditionalInferenceForest,
    ConditionalInferenceTree,
    fit,
    fit_forest,
    permutation_statistic,
    predict,
)
from fluxforest.forecasting.ctree import LEAF


@pytest.fixture
def linear_data(rng):
    n = 300
    X = rng.randn(n, 4)
    y = 2.0 * X[:, 0] + 0.1 * rng.randn(n)
    return X, y


# ---------------------------------------------------------------------------
# Tree
# ---------------------------------------------------------------------------

class TestPermutationStatistic:

    def test_signal_beats_noise(self, linear_data):
        X, y = linear_data
        c2 = permutation_statistic(X, y)
        assert np.argmax(c2) == 0
        assert c2[0] > 100 * c2[1:].max()

    def test_constant_column_is_zero(self, rng):
        X = np.column_stack([np.ones(50), rng.randn(50)])
        c2 = permutation_statistic(X, rng.randn(50))
        assert c2[0] == 0.0

    def test_weights_act_as_replication(self, rng):
        X = rng.randn(30, 2)
        y = X[:, 0] + rng.randn(30)
        w = rng.randint(1, 4, size=30)
        expanded = permutation_statistic(np.repeat(X, w, axis=0), np.repeat(y, w))
        weighted = permutation_statistic(X, y, w.astype(float))
        np.testing.assert_allclose(weighted, expanded)


class TestConditionalInferenceTree:

    def test_first_split_on_signal(self, linear_data):
        X, y = linear_data
        tree = ConditionalInferenceTree(mtry=4).fit(X, y)
        assert tree.feature_[0] == 0
        assert 0 in tree.split_features

    def test_min_bucket_respected(self, linear_data):
        X, y = linear_data
        tree = ConditionalInferenceTree(mtry=4, min_split=20, min_bucket=7).fit(X, y)
        leaves = tree.feature_ == LEAF
        assert tree.weight_[leaves].min() >= 7

    def test_min_split_stops_growth(self, linear_data):
        X, y = linear_data
        tree = ConditionalInferenceTree(mtry=4, min_split=1000).fit(X, y)
        assert tree.n_leaves == 1
        np.testing.assert_allclose(tree.predict(X), y.mean())

    def test_max_depth(self, linear_data):
        X, y = linear_data
        tree = ConditionalInferenceTree(mtry=4, max_depth=2).fit(X, y)
        assert tree.depth <= 2

    def test_constant_target_is_leaf(self, rng):
        X = rng.randn(100, 3)
        tree = ConditionalInferenceTree(mtry=3).fit(X, np.full(100, 4.0))
        assert tree.n_leaves == 1

    def test_leaf_value_is_weighted_mean(self, rng):
        X = rng.randn(40, 2)
        y = rng.randn(40)
        w = rng.randint(1, 3, size=40).astype(float)
        tree = ConditionalInferenceTree(mtry=2, min_split=1000).fit(X, y, weights=w)
        assert tree.value_[0] == pytest.approx(np.sum(w * y) / np.sum(w))

    def test_split_goes_left_at_threshold(self, linear_data):
        X, y = linear_data
        tree = ConditionalInferenceTree(mtry=4, max_depth=1).fit(X, y)
        row = X[:1].copy()
        row[0, tree.feature_[0]] = tree.threshold_[0]
        assert tree.apply(row)[0] == tree.left_[0]

    def test_cutpoints(self, linear_data):
        X, y = linear_data
        tree = ConditionalInferenceTree(mtry=4).fit(X, y)
        cuts = tree.cutpoints(0)
        assert len(cuts) >= 1
        assert np.all(np.diff(cuts) > 0)

    def test_mincriterion_blocks_noise_splits(self, rng):
        X = rng.randn(200, 3)
        y = rng.randn(200)
        tree = ConditionalInferenceTree(mtry=3, mincriterion=0.999999).fit(X, y)
        assert tree.n_leaves == 1


# ---------------------------------------------------------------------------
# Forest
# ---------------------------------------------------------------------------

class TestFitForest:

    def test_same_seed_same_ensemble(self, linear_data):
        X, y = linear_data
        a = fit_forest(X, y, mtry=2, n_trees=8, seed=500)
        b = fit_forest(X, y, mtry=2, n_trees=8, seed=500, n_jobs=2)
        np.testing.assert_array_equal(a.inbag, b.inbag)
        np.testing.assert_allclose(predict(a, X), predict(b, X))
        for ta, tb in zip(a.trees, b.trees):
            np.testing.assert_array_equal(ta.feature_, tb.feature_)

    def test_different_seed_differs(self, linear_data):
        X, y = linear_data
        a = fit_forest(X, y, mtry=2, n_trees=5, seed=1)
        b = fit_forest(X, y, mtry=2, n_trees=5, seed=2)
        assert not np.array_equal(a.inbag, b.inbag)

    def test_bootstrap_inbag(self, linear_data):
        X, y = linear_data
        model = fit_forest(X, y, mtry=2, n_trees=6)
        assert model.inbag.shape == (6, len(y))
        np.testing.assert_array_equal(model.inbag.sum(axis=1), len(y))
        oob = model.oob_rows(0)
        assert np.all(model.inbag[0, oob] == 0)

    def test_subsampling_without_replacement(self, linear_data):
        X, y = linear_data
        model = fit_forest(X, y, mtry=2, n_trees=4, replace=False,
                           sample_fraction=0.632)
        assert model.inbag.max() == 1
        np.testing.assert_array_equal(model.inbag.sum(axis=1),
                                      int(round(0.632 * len(y))))

    def test_ensemble_is_read_only(self, linear_data):
        X, y = linear_data
        model = fit_forest(X, y, mtry=2, n_trees=3)
        with pytest.raises(ValueError):
            model.X_train[0, 0] = 1.0
        with pytest.raises(AttributeError):
            model.seed = 1

    def test_external_prediction_fits_signal(self, linear_data, rng):
        X, y = linear_data
        model = fit_forest(X, y, mtry=3, n_trees=20)
        X_new = rng.randn(100, 4)
        pred = predict(model, X_new, 'external')
        assert np.corrcoef(pred, 2.0 * X_new[:, 0])[0, 1] > 0.9

    def test_oob_prediction(self, linear_data):
        X, y = linear_data
        model = fit_forest(X, y, mtry=3, n_trees=20)
        oob = predict(model, None, 'out_of_bag')
        assert oob.shape == y.shape
        ok = ~np.isnan(oob)
        assert ok.sum() > 0.95 * len(y)
        assert np.corrcoef(oob[ok], y[ok])[0, 1] > 0.8

    def test_oob_nan_when_always_inbag(self, linear_data):
        X, y = linear_data
        model = fit_forest(X, y, mtry=2, n_trees=1)
        oob = predict(model, None, 'out_of_bag')
        np.testing.assert_array_equal(np.isnan(oob), model.inbag[0] > 0)

    def test_oob_needs_training_rows(self, linear_data):
        X, y = linear_data
        model = fit_forest(X, y, mtry=2, n_trees=2)
        with pytest.raises(InvalidConfiguration):
            predict(model, X[:10], 'out_of_bag')

    def test_unknown_prediction_mode(self, linear_data):
        X, y = linear_data
        model = fit_forest(X, y, mtry=2, n_trees=2)
        with pytest.raises(InvalidConfiguration) as info:
            predict(model, X, 'oob')
        assert info.value.stage == 'predict'
        assert info.value.parameter == 'mode'
        np.testing.assert_array_equal(predict(model, X, 'External'),
                                      predict(model, X, 'external'))

    def test_external_is_mean_of_trees(self, linear_data):
        X, y = linear_data
        model = fit_forest(X, y, mtry=2, n_trees=4)
        np.testing.assert_allclose(predict(model, X[:5]),
                                   model.tree_predictions(X[:5]).mean(axis=0))

    @pytest.mark.parametrize('kwargs', [
        {'n_trees': 0},
        {'mtry': 0},
        {'mtry': 5},
        {'min_bucket': 0},
        {'min_split': 1},
        {'replace': False, 'sample_fraction': 1.5},
        {'sample_fraction': 0.0},
    ])
    def test_invalid_parameters(self, linear_data, kwargs):
        X, y = linear_data
        params = {'mtry': 2, 'n_trees': 2}
        params.update(kwargs)
        with pytest.raises(InvalidConfiguration) as exc:
            fit_forest(X, y, **params)
        assert exc.value.stage == 'forest'

    def test_too_few_rows(self):
        with pytest.raises(InsufficientData):
            fit_forest(np.ones((1, 2)), np.ones(1), mtry=1, n_trees=1)

    def test_cancellation(self, linear_data):
        X, y = linear_data
        event = threading.Event()
        event.set()
        with pytest.raises(ComputationCancelled):
            fit_forest(X, y, mtry=2, n_trees=5, cancel_event=event)

    def test_fit_from_frame(self, linear_data):
        X, y = linear_data
        frame = pd.DataFrame(X, columns=['a', 'b', 'c', 'd'])
        frame['flux'] = y
        model = fit(frame, mtry=2, n_trees=3, target_column='flux')
        assert model.feature_names == ('a', 'b', 'c', 'd')
        assert model.target_name == 'flux'
        pred = predict(model, frame.drop(columns='flux'))
        assert pred.shape == (len(frame),)
        with pytest.raises(InvalidConfiguration):
            predict(model, frame[['a', 'b']])


class TestConditionalInferenceForest:

    def test_estimator_interface(self, linear_data):
        X, y = linear_data
        model = ConditionalInferenceForest(n_trees=10, mtry=2, seed=3)
        assert model.fit(X, y) is model
        assert model.predict(X).shape == (len(y),)
        assert model.predict_oob().shape == (len(y),)
        importance = model.get_feature_importance()
        assert importance.shape == (4,)
        assert np.argmax(importance) == 0
        assert np.all(importance >= 0)

    def test_not_fitted(self):
        with pytest.raises(ValueError, match="not fitted"):
            ConditionalInferenceForest().predict(np.zeros((1, 2)))

    def test_fit_predict(self, linear_data):
        X, y = linear_data
        pred = ConditionalInferenceForest(n_trees=5, mtry=2).fit_predict(
            X[:200], y[:200], X[200:])
        assert pred.shape == (100,)
