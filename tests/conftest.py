# -*- coding: utf-8 -*-
"""Shared fixtures: synthetic daily flux series."""

import numpy as np
import pandas as pd
import pytest

from fluxforest.dataset import add_lagged_features


def make_flux_frame(n_days=1460, max_lag=2, seed=0, coef=3.0, noise=0.3,
                    start="2015-01-01"):
    """Daily series whose flux is linear in ``moist`` plus noise.

    ``noise_drv`` is an unrelated driver; both carry ``_1 .. _max_lag``
    lags.  Leading rows without full lag history are dropped.
    """
    rng = np.random.RandomState(seed)
    n = n_days + max_lag
    moist = np.empty(n)
    moist[0] = rng.randn()
    for t in range(1, n):
        moist[t] = 0.5 * moist[t - 1] + rng.randn()
    frame = pd.DataFrame({
        'date': pd.date_range(start, periods=n, freq='D'),
        'moist': moist,
        'noise_drv': rng.randn(n),
    })
    frame['n2o'] = coef * frame['moist'] + noise * rng.randn(n)
    return add_lagged_features(frame, ['moist', 'noise_drv'], max_lag=max_lag)


@pytest.fixture
def rng():
    return np.random.RandomState(42)


@pytest.fixture
def flux_frame():
    """1460 days, drivers ``moist`` (signal) and ``noise_drv``, 2 lags."""
    return make_flux_frame()


@pytest.fixture
def short_flux_frame():
    """400 days of the same process, for fast component tests."""
    return make_flux_frame(n_days=400, seed=1)


@pytest.fixture(scope='session')
def shared_flux_frame():
    """Session-wide copy of :func:`flux_frame` for expensive end-to-end runs."""
    return make_flux_frame()
