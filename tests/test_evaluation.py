# -*- coding: utf-8 -*-
"""
Tests for prediction skill metrics.

Run with:
    pytest tests/test_evaluation.py -v
"""

import numpy as np
import pytest

from fluxforest.errors import InsufficientData, InvalidConfiguration, NumericDegeneracyWarning
from fluxforest.forecasting import METRIC_NAMES, evaluate


class TestEvaluate:

    def test_perfect_prediction(self, rng):
        x = rng.randn(50)
        scores = evaluate(x, x)
        assert tuple(scores) == METRIC_NAMES
        assert scores['rmse'] == pytest.approx(0.0)
        assert scores['r_squared'] == pytest.approx(1.0)

    def test_known_values(self):
        scores = evaluate([1.0, 2.0, 3.0, 4.0], [2.0, 3.0, 4.0, 5.0])
        assert scores['rmse'] == pytest.approx(1.0)
        assert scores['r_squared'] == pytest.approx(1.0)

    def test_anticorrelated_r_squared_is_positive(self):
        scores = evaluate([1.0, 2.0, 3.0], [3.0, 2.0, 1.0])
        assert scores['r_squared'] == pytest.approx(1.0)

    def test_nan_pairs_dropped(self):
        pred = np.array([1.0, np.nan, 3.0, 4.0])
        obs = np.array([1.0, 2.0, 3.0, np.nan])
        scores = evaluate(pred, obs)
        assert scores['rmse'] == pytest.approx(0.0)
        assert scores['r_squared'] == pytest.approx(1.0)

    def test_fewer_than_two_pairs(self):
        with pytest.raises(InsufficientData) as exc:
            evaluate([1.0, np.nan], [1.0, 2.0], stage='eval_future')
        assert exc.value.stage == 'eval_future'
        with pytest.raises(InsufficientData):
            evaluate([], [])

    def test_zero_variance_warns(self):
        with pytest.warns(NumericDegeneracyWarning):
            scores = evaluate([2.0, 2.0, 2.0], [1.0, 2.0, 3.0])
        assert np.isnan(scores['r_squared'])
        assert scores['rmse'] == pytest.approx(np.sqrt(2.0 / 3.0))

    def test_length_mismatch(self):
        with pytest.raises(InvalidConfiguration):
            evaluate([1.0, 2.0, 3.0], [1.0, 2.0])
