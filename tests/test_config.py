# -*- coding: utf-8 -*-
"""
Tests for the configuration dataclasses.

Run with:
    pytest tests/test_config.py -v
"""

import json

import pytest

from fluxforest.config import (
    Config,
    DistanceMetric,
    get_config,
    get_default_config,
    reset_config,
    set_config,
)
from fluxforest.errors import InvalidConfiguration


class TestValidate:

    def test_defaults_are_valid(self):
        Config().validate()

    def test_reference_defaults(self):
        config = Config()
        assert config.random.seed == 500
        assert config.partition.cutoff_day == 1095
        assert config.partition.train_fraction == 0.7
        assert config.resample.under_percentage == 0.7
        assert config.resample.over_percentage == 2.0
        assert config.forest.n_trees == 500
        assert config.forest.mtry == 18
        assert config.dataset.max_lag == 7
        assert config.importance.conditional

    @pytest.mark.parametrize('group, name, value, stage', [
        ('partition', 'cutoff_day', 0, 'partition'),
        ('partition', 'train_fraction', 1.0, 'partition'),
        ('resample', 'under_percentage', 0.0, 'resample'),
        ('resample', 'over_percentage', 0.5, 'resample'),
        ('resample', 'relevance_threshold', 1.0, 'resample'),
        ('resample', 'k_neighbors', 0, 'resample'),
        ('resample', 'extremes', 'middle', 'resample'),
        ('forest', 'n_trees', 0, 'forest'),
        ('forest', 'mtry', 0, 'forest'),
        ('forest', 'min_split', 1, 'forest'),
        ('forest', 'min_bucket', 0, 'forest'),
        ('forest', 'mincriterion', 1.0, 'forest'),
        ('importance', 'threshold', 1.0, 'importance'),
        ('importance', 'n_permutations', 0, 'importance'),
        ('ale', 'n_bins', 0, 'ale'),
        ('dataset', 'max_lag', -1, 'dataset'),
    ])
    def test_out_of_range(self, group, name, value, stage):
        config = Config()
        setattr(getattr(config, group), name, value)
        with pytest.raises(InvalidConfiguration) as exc:
            config.validate()
        assert exc.value.parameter == name
        assert exc.value.stage == stage
        assert name in str(exc.value)

    def test_p_norm_needs_p(self):
        config = Config()
        config.resample.distance = DistanceMetric.P_NORM
        with pytest.raises(InvalidConfiguration):
            config.validate()
        config.resample.p = 3.0
        config.validate()

    def test_n_repeats(self):
        config = Config(n_repeats=0)
        with pytest.raises(InvalidConfiguration):
            config.validate()


class TestSerialisation:

    def test_to_dict(self):
        data = Config().to_dict()
        assert data['forest']['n_trees'] == 500
        assert data['resample']['distance'] == 'euclidean'
        assert isinstance(data['paths']['base_dir'], str)

    def test_save(self, tmp_path):
        path = tmp_path / 'config.json'
        Config().save(path)
        with open(path) as f:
            data = json.load(f)
        assert data['partition']['cutoff_day'] == 1095

    def test_summary(self):
        text = Config().summary()
        assert 'n2o' in text
        assert '500 / 18' in text

    def test_output_dir(self, tmp_path):
        config = Config()
        config.paths.base_dir = tmp_path
        config.paths.ensure_directories()
        assert (tmp_path / 'result' / 'logs').is_dir()
        assert config.output_dir == str(tmp_path / 'result')


class TestSingleton:

    def test_set_and_reset(self):
        custom = Config(n_repeats=3)
        set_config(custom)
        assert get_config() is custom
        reset_config()
        assert get_config().n_repeats == 1
        assert get_default_config() is not get_config()
