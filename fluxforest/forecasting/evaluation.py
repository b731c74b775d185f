# -*- coding: utf-8 -*-
"""
Prediction Skill Metrics
========================

RMSE and squared Pearson correlation between predicted and observed
fluxes, the two skill scores reported for the OOB, in-period and future
evaluation sets.

Out-of-bag predictions may be NaN (rows in-bag for every tree); such
pairs are dropped before scoring.
"""

import logging
import warnings
from typing import Dict

import numpy as np
from sklearn.metrics import mean_squared_error

from ..errors import InsufficientData, InvalidConfiguration, NumericDegeneracyWarning

logger = logging.getLogger('fluxforest.evaluation')

METRIC_NAMES = ('rmse', 'r_squared')


def evaluate(predictions, observed, stage: str = "evaluate") -> Dict[str, float]:
    """
    Score predictions against observations.

    Args:
        predictions: Predicted values
        observed: Observed values, same length
        stage: Stage name used in error messages (e.g. the partition)

    Returns:
        ``{"rmse": ..., "r_squared": ...}``; ``r_squared`` is NaN when either
        side has zero variance

    Raises:
        InsufficientData: Fewer than two non-NaN pairs
    """
    p = np.asarray(predictions, dtype=float).ravel()
    o = np.asarray(observed, dtype=float).ravel()
    if p.shape != o.shape:
        raise InvalidConfiguration(
            "predictions and observations differ in length", stage=stage,
            parameter="n_predictions", value=(len(p), len(o)))

    keep = ~(np.isnan(p) | np.isnan(o))
    p, o = p[keep], o[keep]
    if len(p) < 2:
        raise InsufficientData(
            "need at least two prediction/observation pairs", stage=stage,
            parameter="n_pairs", value=int(len(p)))

    rmse = float(np.sqrt(mean_squared_error(o, p)))
    if np.ptp(p) == 0 or np.ptp(o) == 0:
        warnings.warn(f"{stage}: zero variance, r_squared undefined",
                      NumericDegeneracyWarning)
        r_squared = float('nan')
    else:
        r_squared = float(np.corrcoef(p, o)[0, 1] ** 2)

    if not keep.all():
        logger.debug("%s: %d NaN pairs dropped", stage, int((~keep).sum()))
    return {"rmse": rmse, "r_squared": r_squared}


__all__ = ['evaluate', 'METRIC_NAMES']
