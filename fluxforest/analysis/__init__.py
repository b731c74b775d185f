# -*- coding: utf-8 -*-
"""
Model Explanation
=================

    - importance: (conditional) permutation importance, driver totals
    - ale: accumulated local effect curves
"""

from .importance import (
    ImportanceTable,
    importance,
    aggregate_by_driver,
    conditioning_sets,
)
from .ale import ALECurve, ale, ale_curves

__all__ = [
    'ImportanceTable',
    'importance',
    'aggregate_by_driver',
    'conditioning_sets',
    'ALECurve',
    'ale',
    'ale_curves',
]
