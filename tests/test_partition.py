# -*- coding: utf-8 -*-
"""
Tests for temporal + random partitioning.

Run with:
    pytest tests/test_partition.py -v
"""

import numpy as np
import pandas as pd
import pytest

from fluxforest.dataset import FluxDataset
from fluxforest.errors import InvalidConfiguration
from fluxforest.sampling import PARTITION_NAMES, partition


@pytest.fixture
def dataset(flux_frame):
    return FluxDataset.from_frame(flux_frame, drivers=None, max_lag=2)


class TestPartition:

    def test_disjoint_and_covering(self, dataset):
        parts = partition(dataset, cutoff_day=1095, train_fraction=0.7, seed=500)
        positions = [set(p.positions) for p in parts]
        assert not positions[0] & positions[1]
        assert not positions[0] & positions[2]
        assert not positions[1] & positions[2]
        assert set.union(*positions) == set(range(len(dataset)))

    def test_future_strictly_after_cutoff(self, dataset):
        parts = partition(dataset, cutoff_day=1095)
        ts = dataset.timestamps
        assert parts.cutoff == ts.iloc[0] + pd.Timedelta(days=1094)
        assert (parts.eval_future.frame['date'] > parts.cutoff).all()
        assert (parts.training.frame['date'] <= parts.cutoff).all()
        assert (parts.eval_within.frame['date'] <= parts.cutoff).all()
        assert len(parts.eval_future) == len(dataset) - 1095

    def test_training_size(self, dataset):
        parts = partition(dataset, cutoff_day=1095, train_fraction=0.7)
        assert len(parts.training) == round(0.7 * 1095)
        assert len(parts.training) + len(parts.eval_within) == 1095

    def test_same_seed_same_split(self, dataset):
        a = partition(dataset, seed=500)
        b = partition(dataset, seed=500)
        c = partition(dataset, seed=501)
        np.testing.assert_array_equal(a.training.positions, b.training.positions)
        assert not np.array_equal(a.training.positions, c.training.positions)

    def test_frames_are_copies(self, dataset):
        parts = partition(dataset)
        parts.training.frame.loc[parts.training.positions[0], 'n2o'] = 1e9
        assert dataset.frame['n2o'].max() < 1e9

    def test_names_and_sizes(self, dataset):
        parts = partition(dataset)
        assert tuple(parts.as_dict()) == PARTITION_NAMES
        assert sum(parts.sizes().values()) == len(dataset)

    def test_cutoff_at_last_day_leaves_future_empty(self, dataset):
        parts = partition(dataset, cutoff_day=len(dataset))
        assert len(parts.eval_future) == 0

    @pytest.mark.parametrize('cutoff_day', [0, -5, 10_000])
    def test_cutoff_out_of_range(self, dataset, cutoff_day):
        with pytest.raises(InvalidConfiguration) as exc:
            partition(dataset, cutoff_day=cutoff_day)
        assert exc.value.parameter == 'cutoff_day'
        assert exc.value.stage == 'partition'

    @pytest.mark.parametrize('fraction', [0.0, 1.0, 1.5])
    def test_fraction_out_of_range(self, dataset, fraction):
        with pytest.raises(InvalidConfiguration):
            partition(dataset, train_fraction=fraction)
