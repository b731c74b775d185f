# -*- coding: utf-8 -*-
"""
Data Sampling
=============

Partitioning of the daily series and rebalancing of the training set.

    - partition: temporal cutoff + random in-period split
    - relevance: target relevance function and relevance ranges
    - smogn: under/over-sampling with neighbour interpolation
"""

from .partition import Partition, PartitionSet, partition, PARTITION_NAMES
from .relevance import RelevanceThresholds, RelevanceFunction, find_bumps
from .smogn import resample, ResampledTrainingSet, BumpSummary

__all__ = [
    'Partition',
    'PartitionSet',
    'partition',
    'PARTITION_NAMES',
    'RelevanceThresholds',
    'RelevanceFunction',
    'find_bumps',
    'resample',
    'ResampledTrainingSet',
    'BumpSummary',
]
