# -*- coding: utf-8 -*-
"""
Flux Forest
===========

Explaining daily soil greenhouse gas fluxes (N2O) from environmental
drivers and their lags with a random forest of conditional inference
trees trained on a SMOGN-rebalanced target distribution.

Usage::

    from fluxforest import FluxModelingPipeline, get_default_config

    config = get_default_config()
    result = FluxModelingPipeline(config).run(frame)
    result.metrics_frame()
    result.driver_importance
"""

__version__ = '1.0.0'

from .config import Config, get_config, get_default_config, set_config, reset_config
from .errors import (
    FluxForestError,
    InvalidConfiguration,
    InsufficientData,
    NumericDegeneracy,
    NumericDegeneracyWarning,
    ComputationCancelled,
)
from .dataset import FluxDataset, LagIndex, FeatureKey, add_lagged_features
from .sampling import partition, resample, RelevanceThresholds
from .forecasting import (
    ConditionalInferenceForest,
    FittedEnsemble,
    fit,
    fit_forest,
    predict,
    evaluate,
)
from .analysis import importance, aggregate_by_driver, ale, ale_curves, ImportanceTable, ALECurve
from .pipeline import FluxModelingPipeline, PipelineResult, run_pipeline

__all__ = [
    'Config',
    'get_config',
    'get_default_config',
    'set_config',
    'reset_config',
    'FluxForestError',
    'InvalidConfiguration',
    'InsufficientData',
    'NumericDegeneracy',
    'NumericDegeneracyWarning',
    'ComputationCancelled',
    'FluxDataset',
    'LagIndex',
    'FeatureKey',
    'add_lagged_features',
    'partition',
    'resample',
    'RelevanceThresholds',
    'ConditionalInferenceForest',
    'FittedEnsemble',
    'fit',
    'fit_forest',
    'predict',
    'evaluate',
    'importance',
    'aggregate_by_driver',
    'ale',
    'ale_curves',
    'ImportanceTable',
    'ALECurve',
    'FluxModelingPipeline',
    'PipelineResult',
    'run_pipeline',
]
