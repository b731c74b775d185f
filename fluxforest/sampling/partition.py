# -*- coding: utf-8 -*-
"""
Temporal + Random Partitioning
==============================

Splits a daily series into three disjoint subsets:

    training      random ``train_fraction`` of the days up to the cutoff
    eval_within   the remaining days up to the cutoff
    eval_future   every day strictly after the cutoff

The cutoff is the ``cutoff_day``-th calendar day of the series (1095 =
end of year three), so the future set is never seen while fitting and
the in-period set measures interpolation skill.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterator

import numpy as np
import pandas as pd

from ..dataset import FluxDataset
from ..errors import InvalidConfiguration

logger = logging.getLogger('fluxforest.partition')

PARTITION_NAMES = ('training', 'eval_within', 'eval_future')


@dataclass(frozen=True)
class Partition:
    """A named subset of dataset rows; the frame index is the row position."""
    name: str
    frame: pd.DataFrame

    def __len__(self) -> int:
        return len(self.frame)

    @property
    def positions(self) -> np.ndarray:
        return self.frame.index.to_numpy()


@dataclass(frozen=True)
class PartitionSet:
    """The three partitions plus the cutoff that separated them."""
    training: Partition
    eval_within: Partition
    eval_future: Partition
    cutoff: pd.Timestamp
    seed: int

    def __iter__(self) -> Iterator[Partition]:
        return iter((self.training, self.eval_within, self.eval_future))

    def as_dict(self) -> Dict[str, Partition]:
        return {p.name: p for p in self}

    def sizes(self) -> Dict[str, int]:
        return {p.name: len(p) for p in self}


def partition(dataset: FluxDataset,
              cutoff_day: int = 1095,
              train_fraction: float = 0.7,
              seed: int = 500) -> PartitionSet:
    """
    Split *dataset* at a temporal cutoff, then randomly within the past.

    Args:
        dataset: Validated daily series
        cutoff_day: 1-based day number of the last pre-cutoff day
        train_fraction: Share of pre-cutoff rows used for training
        seed: Seed of the sampling generator

    Returns:
        PartitionSet with ``training``, ``eval_within`` and ``eval_future``

    Raises:
        InvalidConfiguration: ``cutoff_day`` outside ``[1, len(dataset)]``
            or ``train_fraction`` outside (0, 1)
    """
    n = len(dataset)
    if not isinstance(cutoff_day, (int, np.integer)) or cutoff_day < 1 \
            or cutoff_day > n:
        raise InvalidConfiguration(
            f"must be an integer in [1, {n}] (dataset length)",
            stage="partition", parameter="cutoff_day", value=cutoff_day)
    if not 0.0 < train_fraction < 1.0:
        raise InvalidConfiguration(
            "must lie strictly between 0 and 1", stage="partition",
            parameter="train_fraction", value=train_fraction)

    frame = dataset.frame
    ts = dataset.timestamps
    cutoff = ts.iloc[0].normalize() + pd.Timedelta(days=int(cutoff_day) - 1)

    before = ts <= cutoff
    pre_positions = frame.index[before.to_numpy()].to_numpy()
    post_positions = frame.index[~before.to_numpy()].to_numpy()

    n_train = int(round(train_fraction * len(pre_positions)))
    rng = np.random.RandomState(seed)
    train_positions = np.sort(
        rng.choice(pre_positions, size=n_train, replace=False))
    within_positions = np.setdiff1d(pre_positions, train_positions)

    parts = PartitionSet(
        training=Partition('training', frame.loc[train_positions].copy()),
        eval_within=Partition('eval_within', frame.loc[within_positions].copy()),
        eval_future=Partition('eval_future', frame.loc[post_positions].copy()),
        cutoff=cutoff,
        seed=seed,
    )
    logger.info(
        "Partition at %s: training=%d, eval_within=%d, eval_future=%d",
        cutoff.date(), len(parts.training), len(parts.eval_within),
        len(parts.eval_future),
    )
    return parts


__all__ = ['Partition', 'PartitionSet', 'partition', 'PARTITION_NAMES']
