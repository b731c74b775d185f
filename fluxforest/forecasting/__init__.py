# -*- coding: utf-8 -*-
"""
Forecasting
===========

Conditional inference trees, their bagged forest and skill metrics.
"""

from .base import BaseForecaster
from .ctree import ConditionalInferenceTree, permutation_statistic, criterion
from .cforest import (
    FittedEnsemble,
    ConditionalInferenceForest,
    fit,
    fit_forest,
    predict,
)
from .evaluation import evaluate, METRIC_NAMES

__all__ = [
    'BaseForecaster',
    'ConditionalInferenceTree',
    'permutation_statistic',
    'criterion',
    'FittedEnsemble',
    'ConditionalInferenceForest',
    'fit',
    'fit_forest',
    'predict',
    'evaluate',
    'METRIC_NAMES',
]
