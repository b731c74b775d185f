# -*- coding: utf-8 -*-
"""
Tests for accumulated local effects.

Run with:
    pytest tests/test_ale.py -v
"""

import threading

import numpy as np
import pandas as pd
import pytest

from fluxforest.analysis import ale, ale_curves
from fluxforest.errors import (
    ComputationCancelled,
    InvalidConfiguration,
    NumericDegeneracy,
    NumericDegeneracyWarning,
)
from fluxforest.forecasting import fit_forest


@pytest.fixture
def model(rng):
    n = 300
    X = np.column_stack([
        rng.uniform(-2, 2, n),      # up
        rng.uniform(-2, 2, n),      # down
        np.full(n, 1.0),            # flat
        rng.randint(0, 2, n),       # binary
    ])
    y = 2.0 * X[:, 0] - 1.5 * X[:, 1] + 0.1 * rng.randn(n)
    return fit_forest(X, y, feature_names=['up', 'down', 'flat', 'binary'],
                      mtry=2, n_trees=15, seed=5)


class TestALE:

    def test_shapes(self, model):
        curve = ale(model, None, 'up', n_bins=20)
        assert len(curve.edges) == curve.n_intervals + 1
        assert len(curve.effects) == len(curve.edges)
        assert curve.counts.sum() == model.X_train.shape[0]
        assert np.all(np.diff(curve.edges) > 0)

    def test_centred(self, model):
        for name in ('up', 'down', 'binary'):
            curve = ale(model, None, name)
            assert curve.weighted_mean() == pytest.approx(0.0, abs=1e-10)

    def test_direction_follows_coefficient(self, model):
        up = ale(model, None, 'up')
        down = ale(model, None, 'down')
        assert up.effects[-1] - up.effects[0] > 4.0
        assert down.effects[-1] - down.effects[0] < -3.0
        assert np.mean(np.diff(up.effects) >= -1e-9) > 0.8
        assert np.mean(np.diff(down.effects) <= 1e-9) > 0.8

    def test_quantile_edges(self, model):
        curve = ale(model, None, 'up', n_bins=4)
        x = model.X_train[:, 0]
        np.testing.assert_allclose(curve.edges,
                                   np.quantile(x, [0, 0.25, 0.5, 0.75, 1.0]))
        assert curve.counts.min() >= 70

    def test_duplicate_edges_removed(self, model):
        curve = ale(model, None, 'binary', n_bins=40)
        np.testing.assert_array_equal(curve.edges, [0.0, 1.0])
        assert curve.n_intervals == 1

    def test_degenerate_feature(self, model):
        with pytest.raises(NumericDegeneracy):
            ale(model, None, 'flat')

    def test_unknown_feature(self, model):
        with pytest.raises(InvalidConfiguration):
            ale(model, None, 'missing')

    def test_zero_bins_rejected(self, model):
        with pytest.raises(InvalidConfiguration) as info:
            ale(model, None, 'up', n_bins=0)
        assert info.value.parameter == 'n_bins'

    def test_external_frame(self, model):
        data = pd.DataFrame(model.X_train[:100], columns=list(model.feature_names))
        curve = ale(model, data, 'up', n_bins=10)
        assert curve.counts.sum() == 100

    def test_to_frame(self, model):
        frame = ale(model, None, 'up', n_bins=5).to_frame()
        assert list(frame.columns) == ['feature', 'value', 'effect', 'count']
        assert frame['count'].iloc[0] == 0


class TestALECurves:

    def test_skips_degenerate_with_warning(self, model):
        with pytest.warns(NumericDegeneracyWarning):
            curves = ale_curves(model, n_bins=10)
        assert list(curves) == ['up', 'down', 'binary']

    def test_zero_bins_rejected_before_any_feature(self, model):
        with pytest.raises(InvalidConfiguration) as info:
            ale_curves(model, n_bins=0)
        assert info.value.stage == 'ale'
        assert info.value.value == 0

    def test_selected_features_parallel(self, model):
        serial = ale_curves(model, features=['down', 'up'], n_bins=10)
        parallel = ale_curves(model, features=['down', 'up'], n_bins=10, n_jobs=2)
        assert list(serial) == ['down', 'up']
        for name in serial:
            np.testing.assert_allclose(serial[name].effects, parallel[name].effects)

    def test_cancellation(self, model):
        event = threading.Event()
        event.set()
        with pytest.raises(ComputationCancelled):
            ale_curves(model, features=['up'], cancel_event=event)
