# -*- coding: utf-8 -*-
"""Daily flux dataset with a (driver, lag) feature index.

This module handles:
1. Validating a time-indexed frame (strictly increasing, unique timestamps)
   and assigning the positional row index used by the partitioner.
2. Addressing feature columns by ``(driver, lag)`` pairs instead of by
   name, so that importance aggregation and ALE iterate generically over
   any number of drivers and lags.
3. Building ``driver_k`` lag columns from unlagged daily measurements.

Notes
-----
Lag 0 is the unlagged column ``driver``; lag *k* is ``driver_k``.  Driver
names may themselves end in ``_<digit>`` (``t_5`` is the 5 cm soil
temperature), so drivers are declared or inferred from complete lag sets
rather than parsed from the suffix.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, NamedTuple, Optional, Sequence

import numpy as np
import pandas as pd

from .errors import InvalidConfiguration, InsufficientData

logger = logging.getLogger('fluxforest.dataset')


class FeatureKey(NamedTuple):
    """Identity of one feature column."""
    driver: str
    lag: int


def lag_column(driver: str, lag: int, separator: str = '_') -> str:
    """Column name of *driver* lagged by *lag* days."""
    return driver if lag == 0 else f"{driver}{separator}{lag}"


def infer_drivers(columns: Sequence[str], max_lag: int = 7,
                  separator: str = '_') -> List[str]:
    """Return columns that have every lag variant ``_1 .. _max_lag``."""
    present = set(columns)
    if max_lag < 1:
        return list(columns)
    drivers = []
    for col in columns:
        if all(lag_column(col, k, separator) in present
               for k in range(1, max_lag + 1)):
            drivers.append(col)
    return drivers


@dataclass
class LagIndex:
    """Mapping ``FeatureKey -> column`` over the model's feature set.

    Columns that belong to no driver are kept as their own lag-0 driver
    so that every feature appears exactly once.
    """
    keys: Dict[FeatureKey, str] = field(default_factory=dict)

    @classmethod
    def build(cls, feature_columns: Sequence[str],
              drivers: Optional[Sequence[str]] = None,
              max_lag: int = 7, separator: str = '_') -> 'LagIndex':
        columns = list(feature_columns)
        if drivers is None:
            drivers = infer_drivers(columns, max_lag, separator)
        keys: Dict[FeatureKey, str] = {}
        claimed = set()
        for driver in drivers:
            for lag in range(0, max_lag + 1):
                col = lag_column(driver, lag, separator)
                if col in columns and col not in claimed:
                    keys[FeatureKey(driver, lag)] = col
                    claimed.add(col)
        for col in columns:
            if col not in claimed:
                keys[FeatureKey(col, 0)] = col
        return cls(keys=keys)

    def __iter__(self) -> Iterator[FeatureKey]:
        return iter(self.keys)

    def __len__(self) -> int:
        return len(self.keys)

    def column(self, key: FeatureKey) -> str:
        return self.keys[key]

    def key_of(self, column: str) -> FeatureKey:
        for key, col in self.keys.items():
            if col == column:
                return key
        raise KeyError(column)

    @property
    def drivers(self) -> List[str]:
        """Driver names in first-seen order."""
        seen: Dict[str, None] = {}
        for key in self.keys:
            seen.setdefault(key.driver, None)
        return list(seen)

    def columns_of(self, driver: str) -> List[str]:
        """All columns of *driver*, ordered by lag."""
        return [col for key, col in sorted(
            ((k, c) for k, c in self.keys.items() if k.driver == driver),
            key=lambda kc: kc[0].lag)]


@dataclass
class FluxDataset:
    """A validated daily series: timestamp, target and numeric features.

    Attributes
    ----------
    frame : pd.DataFrame
        Rows in timestamp order with a positional ``RangeIndex``.
    timestamp_col, target_col : str
        Column names.
    feature_cols : list of str
        Numeric model inputs.
    lag_index : LagIndex
        ``(driver, lag)`` view of *feature_cols*.
    """
    frame: pd.DataFrame
    timestamp_col: str
    target_col: str
    feature_cols: List[str]
    lag_index: LagIndex

    @classmethod
    def from_frame(cls, frame: pd.DataFrame,
                   timestamp_col: str = 'date',
                   target_col: str = 'n2o',
                   feature_cols: Optional[Sequence[str]] = None,
                   drivers: Optional[Sequence[str]] = None,
                   max_lag: int = 7,
                   separator: str = '_') -> 'FluxDataset':
        """Validate *frame* and build the dataset.

        Raises
        ------
        InvalidConfiguration
            Missing columns, non-numeric features, or timestamps that are
            not strictly increasing and unique.
        InsufficientData
            Empty frame.
        """
        for col in (timestamp_col, target_col):
            if col not in frame.columns:
                raise InvalidConfiguration(
                    "column not found in frame", stage="dataset",
                    parameter="column", value=col)
        if len(frame) == 0:
            raise InsufficientData("dataset has no rows", stage="dataset",
                                   parameter="n_rows", value=0)

        df = frame.copy()
        df[timestamp_col] = pd.to_datetime(df[timestamp_col])
        ts = df[timestamp_col]
        if ts.isna().any():
            raise InvalidConfiguration(
                "timestamps must be parseable dates", stage="dataset",
                parameter=timestamp_col, value=int(ts.isna().sum()))
        if not ts.is_monotonic_increasing or ts.duplicated().any():
            raise InvalidConfiguration(
                "timestamps must be strictly increasing and unique",
                stage="dataset", parameter=timestamp_col,
                value=int(ts.duplicated().sum()))
        df = df.reset_index(drop=True)

        if feature_cols is None:
            feature_cols = [c for c in df.columns
                            if c not in (timestamp_col, target_col)
                            and pd.api.types.is_numeric_dtype(df[c])]
        feature_cols = list(feature_cols)
        non_numeric = [c for c in feature_cols
                       if c not in df.columns
                       or not pd.api.types.is_numeric_dtype(df[c])]
        if non_numeric:
            raise InvalidConfiguration(
                "feature columns must exist and be numeric", stage="dataset",
                parameter="feature_cols", value=non_numeric)

        lag_index = LagIndex.build(feature_cols, drivers, max_lag, separator)
        logger.info(
            "Dataset: %d days (%s .. %s), %d features, %d drivers",
            len(df), ts.iloc[0].date(), ts.iloc[-1].date(),
            len(feature_cols), len(lag_index.drivers),
        )
        return cls(frame=df, timestamp_col=timestamp_col,
                   target_col=target_col, feature_cols=feature_cols,
                   lag_index=lag_index)

    def __len__(self) -> int:
        return len(self.frame)

    @property
    def timestamps(self) -> pd.Series:
        return self.frame[self.timestamp_col]

    @property
    def X(self) -> np.ndarray:
        return self.frame[self.feature_cols].to_numpy(dtype=float)

    @property
    def y(self) -> np.ndarray:
        return self.frame[self.target_col].to_numpy(dtype=float)


def add_lagged_features(frame: pd.DataFrame, drivers: Sequence[str],
                        max_lag: int = 7, separator: str = '_',
                        dropna: bool = True) -> pd.DataFrame:
    """Append ``driver_1 .. driver_max_lag`` columns by shifting each driver.

    The frame must already be in daily timestamp order.  Leading rows that
    lack a complete lag history are dropped when *dropna* is set.
    """
    out = frame.copy()
    lagged = {}
    for driver in drivers:
        if driver not in out.columns:
            raise InvalidConfiguration(
                "driver column not found", stage="dataset",
                parameter="driver", value=driver)
        for lag in range(1, max_lag + 1):
            lagged[lag_column(driver, lag, separator)] = out[driver].shift(lag)
    out = pd.concat([out, pd.DataFrame(lagged, index=out.index)], axis=1)
    if dropna and max_lag > 0:
        out = out.iloc[max_lag:].reset_index(drop=True)
    return out


__all__ = [
    'FeatureKey',
    'LagIndex',
    'FluxDataset',
    'lag_column',
    'infer_drivers',
    'add_lagged_features',
]
