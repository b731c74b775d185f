# -*- coding: utf-8 -*-
"""
Centralised Configuration for the Flux Modeling Pipeline
========================================================

All configurable parameters are defined here as typed dataclasses.
The master ``Config`` class composes every sub-config and provides
validation, serialisation, summary printing, and global singleton
management.

Configuration Groups
--------------------
- PathConfig          output directory structure
- DatasetConfig       column names, drivers and lag depth
- RandomConfig        reproducibility seed
- PartitionConfig     temporal cutoff and random train fraction
- ResampleConfig      SMOGN relevance and percentages
- ForestConfig        conditional inference forest settings
- ImportanceConfig    permutation importance settings
- ALEConfig           accumulated local effects settings
- ParallelConfig      worker count

The defaults are the reference configuration of the N2O study.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Dict, Optional, Tuple
from enum import Enum
import json

from .errors import InvalidConfiguration


# =========================================================================
# Enumerations
# =========================================================================

class DistanceMetric(Enum):
    """Distances available for the resampler's neighbour search."""
    EUCLIDEAN = "euclidean"
    MANHATTAN = "manhattan"
    CHEBYSHEV = "chebyshev"
    P_NORM = "p-norm"


class PredictionMode(Enum):
    """Which trees contribute to a forest prediction."""
    OUT_OF_BAG = "out_of_bag"
    EXTERNAL = "external"


# =========================================================================
# Path Configuration
# =========================================================================

@dataclass
class PathConfig:
    """Output paths, all derived from *base_dir*."""
    base_dir: Path = field(default_factory=lambda: Path.cwd())

    @property
    def output_dir(self) -> Path:
        return self.base_dir / "result"

    @property
    def logs_dir(self) -> Path:
        return self.output_dir / "logs"

    def ensure_directories(self) -> None:
        """Create every output directory if missing."""
        for d in [self.output_dir, self.logs_dir]:
            d.mkdir(parents=True, exist_ok=True)


# =========================================================================
# Data Configuration
# =========================================================================

@dataclass
class DatasetConfig:
    """Column naming and the (driver, lag) layout of the feature set.

    ``drivers=None`` infers drivers from the columns: a column is a driver
    when all of its ``_1 .. _max_lag`` variants are present.
    """
    timestamp_col: str = "date"
    target_col: str = "n2o"
    drivers: Optional[List[str]] = field(default_factory=lambda: [
        "moist7", "moist20", "wtl", "precip", "t_air", "t_surface", "t_5",
    ])
    max_lag: int = 7
    lag_separator: str = "_"


# =========================================================================
# Reproducibility
# =========================================================================

@dataclass
class RandomConfig:
    """Random-state defaults."""
    seed: int = 500


# =========================================================================
# Pipeline Stage Parameters
# =========================================================================

@dataclass
class PartitionConfig:
    """Temporal holdout followed by a random in-period split.

    Rows after day ``cutoff_day`` (1095 = end of year three) are the
    future evaluation set; ``train_fraction`` of the remaining rows train.
    """
    cutoff_day: int = 1095
    train_fraction: float = 0.7


@dataclass
class ResampleConfig:
    """SMOGN resampling of the training set.

    ``control_points`` is an optional list of ``(target_value, relevance)``
    pairs; ``None`` derives relevance from box-plot extremes.
    """
    enabled: bool = True
    under_percentage: float = 0.7     # fraction of over-represented rows kept
    over_percentage: float = 2.0      # growth factor of under-represented ranges
    relevance_threshold: float = 0.5
    control_points: Optional[List[Tuple[float, float]]] = None
    bump_percentages: Optional[List[float]] = None
    extremes: str = "both"            # 'both', 'high', 'low'
    whisker_coef: float = 1.5
    k_neighbors: int = 5
    distance: DistanceMetric = DistanceMetric.EUCLIDEAN
    p: Optional[float] = None         # only for DistanceMetric.P_NORM


@dataclass
class ForestConfig:
    """Random forest of conditional inference trees (unbiased settings)."""
    n_trees: int = 500
    mtry: int = 18
    min_split: int = 20
    min_bucket: int = 7
    max_depth: Optional[int] = None
    mincriterion: float = 0.0
    replace: bool = True
    sample_fraction: float = 1.0


@dataclass
class ImportanceConfig:
    """Permutation variable importance."""
    conditional: bool = True
    threshold: float = 0.2            # 1 - p cut for conditioning variables
    n_permutations: int = 1


@dataclass
class ALEConfig:
    """Accumulated local effects."""
    enabled: bool = True
    n_bins: int = 40
    features: Optional[List[str]] = None   # None → every feature


@dataclass
class ParallelConfig:
    """Worker threads for tree fitting, importance and ALE (-1 = all cores)."""
    n_jobs: int = 1


# =========================================================================
# Master Configuration
# =========================================================================

@dataclass
class Config:
    """Master configuration composing every sub-config."""
    paths: PathConfig = field(default_factory=PathConfig)
    dataset: DatasetConfig = field(default_factory=DatasetConfig)
    random: RandomConfig = field(default_factory=RandomConfig)

    partition: PartitionConfig = field(default_factory=PartitionConfig)
    resample: ResampleConfig = field(default_factory=ResampleConfig)
    forest: ForestConfig = field(default_factory=ForestConfig)
    importance: ImportanceConfig = field(default_factory=ImportanceConfig)
    ale: ALEConfig = field(default_factory=ALEConfig)
    parallel: ParallelConfig = field(default_factory=ParallelConfig)

    # Repeated fits with seeds seed, seed+1, ... averaged by the pipeline
    n_repeats: int = 1

    # --- convenience properties ---

    @property
    def output_dir(self) -> str:
        return str(self.paths.output_dir)

    # --- validation ---

    def validate(self) -> None:
        """Check every range constraint; raise before any computation runs."""
        p = self.partition
        if not isinstance(p.cutoff_day, int) or p.cutoff_day < 1:
            raise InvalidConfiguration(
                "must be a positive integer", stage="partition",
                parameter="cutoff_day", value=p.cutoff_day)
        if not 0.0 < p.train_fraction < 1.0:
            raise InvalidConfiguration(
                "must lie strictly between 0 and 1", stage="partition",
                parameter="train_fraction", value=p.train_fraction)

        r = self.resample
        if not 0.0 < r.under_percentage <= 1.0:
            raise InvalidConfiguration(
                "must lie in (0, 1]", stage="resample",
                parameter="under_percentage", value=r.under_percentage)
        if r.over_percentage < 1.0:
            raise InvalidConfiguration(
                "must be at least 1", stage="resample",
                parameter="over_percentage", value=r.over_percentage)
        if not 0.0 < r.relevance_threshold < 1.0:
            raise InvalidConfiguration(
                "must lie strictly between 0 and 1", stage="resample",
                parameter="relevance_threshold", value=r.relevance_threshold)
        if r.k_neighbors < 1:
            raise InvalidConfiguration(
                "must be at least 1", stage="resample",
                parameter="k_neighbors", value=r.k_neighbors)
        if r.extremes not in ("both", "high", "low"):
            raise InvalidConfiguration(
                "must be 'both', 'high' or 'low'", stage="resample",
                parameter="extremes", value=r.extremes)
        if r.distance is DistanceMetric.P_NORM and (r.p is None or r.p < 1):
            raise InvalidConfiguration(
                "p-norm distance needs p >= 1", stage="resample",
                parameter="p", value=r.p)

        f = self.forest
        if f.n_trees < 1:
            raise InvalidConfiguration(
                "must be at least 1", stage="forest",
                parameter="n_trees", value=f.n_trees)
        if f.mtry < 1:
            raise InvalidConfiguration(
                "must be at least 1", stage="forest",
                parameter="mtry", value=f.mtry)
        if f.min_split < 2:
            raise InvalidConfiguration(
                "must be at least 2", stage="forest",
                parameter="min_split", value=f.min_split)
        if f.min_bucket < 1:
            raise InvalidConfiguration(
                "must be at least 1", stage="forest",
                parameter="min_bucket", value=f.min_bucket)
        if not 0.0 <= f.mincriterion < 1.0:
            raise InvalidConfiguration(
                "must lie in [0, 1)", stage="forest",
                parameter="mincriterion", value=f.mincriterion)
        if f.sample_fraction <= 0.0 or (not f.replace and f.sample_fraction > 1.0):
            raise InvalidConfiguration(
                "must lie in (0, 1] when sampling without replacement",
                stage="forest", parameter="sample_fraction",
                value=f.sample_fraction)

        if not 0.0 <= self.importance.threshold < 1.0:
            raise InvalidConfiguration(
                "must lie in [0, 1)", stage="importance",
                parameter="threshold", value=self.importance.threshold)
        if self.importance.n_permutations < 1:
            raise InvalidConfiguration(
                "must be at least 1", stage="importance",
                parameter="n_permutations",
                value=self.importance.n_permutations)
        if self.ale.n_bins < 1:
            raise InvalidConfiguration(
                "must be at least 1", stage="ale",
                parameter="n_bins", value=self.ale.n_bins)
        if self.n_repeats < 1:
            raise InvalidConfiguration(
                "must be at least 1", stage="pipeline",
                parameter="n_repeats", value=self.n_repeats)
        if self.dataset.max_lag < 0:
            raise InvalidConfiguration(
                "must be non-negative", stage="dataset",
                parameter="max_lag", value=self.dataset.max_lag)

    # --- serialisation ---

    def to_dict(self) -> Dict:
        def _cvt(obj):
            if hasattr(obj, '__dataclass_fields__'):
                return {k: _cvt(v) for k, v in obj.__dict__.items()}
            if isinstance(obj, Enum):
                return obj.value
            if isinstance(obj, Path):
                return str(obj)
            if isinstance(obj, (list, tuple)):
                return [_cvt(i) for i in obj]
            if isinstance(obj, dict):
                return {k: _cvt(v) for k, v in obj.items()}
            return obj
        return _cvt(self)

    def save(self, filepath: Path) -> None:
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def summary(self) -> str:
        drivers = self.dataset.drivers
        return (
            f"\n{'='*72}\n"
            f"  Flux Forest Configuration Summary\n"
            f"{'='*72}\n\n"
            f"  DATA\n"
            f"    Target          : {self.dataset.target_col}\n"
            f"    Drivers         : "
            f"{', '.join(drivers) if drivers else '(inferred)'}\n"
            f"    Max lag         : {self.dataset.max_lag} days\n\n"
            f"  PARTITION\n"
            f"    Cutoff day      : {self.partition.cutoff_day}\n"
            f"    Train fraction  : {self.partition.train_fraction}\n"
            f"    Seed            : {self.random.seed}\n\n"
            f"  RESAMPLING (SMOGN)\n"
            f"    Under / over    : {self.resample.under_percentage} / "
            f"{self.resample.over_percentage}\n"
            f"    Neighbours      : {self.resample.k_neighbors} "
            f"({self.resample.distance.value})\n\n"
            f"  FOREST\n"
            f"    Trees / mtry    : {self.forest.n_trees} / {self.forest.mtry}\n"
            f"    Min split/bucket: {self.forest.min_split} / "
            f"{self.forest.min_bucket}\n\n"
            f"  EXPLANATION\n"
            f"    Conditional VI  : {self.importance.conditional}\n"
            f"    ALE bins        : {self.ale.n_bins}\n"
            f"{'='*72}\n"
        )


# =========================================================================
# Global Config Singleton
# =========================================================================

_config: Optional[Config] = None


def get_config() -> Config:
    """Return global config (create default on first call)."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def get_default_config() -> Config:
    """Return a *fresh* default Config instance."""
    return Config()


def set_config(config: Config) -> None:
    """Replace the global config singleton."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset to a fresh default Config."""
    global _config
    _config = Config()
