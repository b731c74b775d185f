# -*- coding: utf-8 -*-
"""
Flux Modeling Pipeline Orchestrator
===================================

Seven-phase pipeline from a daily flux series to explained forest
predictions:

  Phase 1  Dataset            (validation, (driver, lag) index)
  Phase 2  Partition          (temporal cutoff + random in-period split)
  Phase 3  Resample           (SMOGN under/over-sampling of training rows)
  Phase 4  Forest             (conditional inference forest)
  Phase 5  Evaluation         (OOB, eval_within, eval_future)
  Phase 6  Importance         (conditional permutation, driver totals)
  Phase 7  Accumulated Local Effects

Phases 1-4 are prerequisites of everything after them and abort the run
on failure.  Evaluation of one partition, importance and single ALE
features fail independently; their errors are collected in
``PipelineResult.errors``.

With ``n_repeats > 1`` phases 3-6 are repeated with seeds ``seed + r``;
metrics and importances are averaged over repeats, while predictions,
the model and ALE curves come from the first repeat.
"""

import logging
import threading
import time
import warnings
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

import numpy as np
import pandas as pd

from .analysis import ALECurve, ImportanceTable, aggregate_by_driver, ale_curves, importance
from .config import Config, get_default_config
from .dataset import FluxDataset, LagIndex
from .errors import (
    ComputationCancelled,
    FluxForestError,
    InsufficientData,
    NumericDegeneracyWarning,
)
from .forecasting import FittedEnsemble, evaluate, fit, predict
from .loggers import log_context, log_execution, setup_logging, timed_operation
from .sampling import (
    PartitionSet,
    RelevanceThresholds,
    ResampledTrainingSet,
    partition,
    resample,
)

OOB = 'oob'
EVAL_PARTITIONS = ('eval_within', 'eval_future')


# =========================================================================
# Result container
# =========================================================================

@dataclass
class PipelineResult:
    """Everything a presentation layer needs from one run."""
    dataset: FluxDataset
    partitions: PartitionSet
    resampled: Optional[ResampledTrainingSet]
    model: FittedEnsemble

    metrics: Dict[str, Dict[str, float]] = field(default_factory=dict)
    predictions: Dict[str, pd.Series] = field(default_factory=dict)
    importance: Optional[ImportanceTable] = None
    driver_importance: Optional[pd.Series] = None
    ale_curves: Dict[str, ALECurve] = field(default_factory=dict)

    repeat_metrics: Optional[pd.DataFrame] = None
    errors: Dict[str, str] = field(default_factory=dict)
    execution_time: float = 0.0
    config: Optional[Config] = None

    @property
    def lag_index(self) -> LagIndex:
        return self.dataset.lag_index

    @property
    def partition_sizes(self) -> Dict[str, int]:
        return self.partitions.sizes()

    def metrics_frame(self) -> pd.DataFrame:
        """One row per scored partition: rmse, r_squared."""
        rows = [(name, m['rmse'], m['r_squared'])
                for name, m in self.metrics.items()]
        df = pd.DataFrame(rows, columns=['partition', 'rmse', 'r_squared'])
        return df.set_index('partition')

    def ale_frame(self) -> pd.DataFrame:
        """Long format: feature, driver, lag, value, effect, count."""
        frames = []
        for feature, curve in self.ale_curves.items():
            key = self.lag_index.key_of(feature)
            df = curve.to_frame()
            df.insert(1, 'driver', key.driver)
            df.insert(2, 'lag', key.lag)
            frames.append(df)
        if not frames:
            return pd.DataFrame(
                columns=['feature', 'driver', 'lag', 'value', 'effect', 'count'])
        return pd.concat(frames, ignore_index=True)

    def time_series_frame(self) -> pd.DataFrame:
        """Observed vs predicted flux per day: timestamp, observed, predicted, partition.

        Training days carry their out-of-bag prediction; synthetic rows
        have no timestamp and are left out.
        """
        ts_col = self.dataset.timestamp_col
        y_col = self.dataset.target_col
        frames = []

        if OOB in self.predictions:
            oob = self.predictions[OOB]
            if self.resampled is not None:
                real = ~self.resampled.is_synthetic
                positions = self.resampled.source_positions[real]
                values = oob.to_numpy()[real]
            else:
                positions = self.partitions.training.positions
                values = oob.to_numpy()
            src = self.dataset.frame.loc[positions]
            frames.append(pd.DataFrame({
                'timestamp': src[ts_col].to_numpy(),
                'observed': src[y_col].to_numpy(),
                'predicted': values,
                'partition': 'training',
            }))

        for name in EVAL_PARTITIONS:
            if name not in self.predictions:
                continue
            part = self.partitions.as_dict()[name].frame
            frames.append(pd.DataFrame({
                'timestamp': part[ts_col].to_numpy(),
                'observed': part[y_col].to_numpy(),
                'predicted': self.predictions[name].to_numpy(),
                'partition': name,
            }))

        if not frames:
            return pd.DataFrame(
                columns=['timestamp', 'observed', 'predicted', 'partition'])
        out = pd.concat(frames, ignore_index=True)
        return out.sort_values('timestamp', kind='mergesort').reset_index(drop=True)


@dataclass
class _RepeatOutput:
    resampled: Optional[ResampledTrainingSet]
    model: FittedEnsemble
    metrics: Dict[str, Dict[str, float]]
    predictions: Dict[str, pd.Series]
    importance: Optional[ImportanceTable]


# =========================================================================
# Pipeline
# =========================================================================

class FluxModelingPipeline:
    """
    Conditional inference forest pipeline for daily greenhouse gas fluxes.

    Integrates
    ----------
    * Temporal + random partitioning
    * SMOGN resampling of the training target distribution
    * Random forest of conditional inference trees
    * Conditional permutation importance aggregated per driver
    * Accumulated local effect curves per (driver, lag) feature
    """

    def __init__(self, config: Optional[Config] = None,
                 cancel_event: Optional[threading.Event] = None,
                 use_color: Optional[bool] = None):
        self.config = config or get_default_config()
        self.config.validate()
        self.cancel_event = cancel_event
        self.use_color = use_color
        self.console = None
        self.debug_log = None
        self.logger = logging.getLogger('fluxforest.pipeline')

    # -----------------------------------------------------------------
    # Main entry point
    # -----------------------------------------------------------------

    def run(self, data: Union[pd.DataFrame, FluxDataset]) -> PipelineResult:
        """Execute the full pipeline on a frame or validated dataset."""
        start_time = time.time()
        cfg = self.config
        errors: Dict[str, str] = {}

        # Fresh loggers per run
        self.config.paths.ensure_directories()
        self.console, self.debug_log = setup_logging(cfg.output_dir,
                                                     use_color=self.use_color)
        try:
            self.console.banner('Flux Forest Modeling Pipeline',
                                subtitle='SMOGN + conditional inference forest '
                                         '+ conditional importance + ALE')
            self.debug_log.log_data('config', cfg.to_dict())

            # Phase 1: Dataset
            with self.console.phase('Dataset', number=1) as ph:
                dataset = self._build_dataset(data)
                ph.detail(f'{len(dataset)} days, {len(dataset.feature_cols)} '
                          f'features, {len(dataset.lag_index.drivers)} drivers')

            # Phase 2: Partition
            with self.console.phase('Partition', number=2) as ph:
                parts = partition(dataset, cfg.partition.cutoff_day,
                                  cfg.partition.train_fraction, cfg.random.seed)
                ph.metrics(parts.sizes())

            repeats: List[_RepeatOutput] = []
            for r in range(cfg.n_repeats):
                with log_context(repeat=r):
                    repeats.append(self._run_repeat(
                        dataset, parts, cfg.random.seed + r, errors,
                        first=(r == 0)))
            first = repeats[0]

            metrics, repeat_metrics = self._average_metrics(repeats)
            table = self._average_importance(repeats, dataset.lag_index)

            # Phase 7: ALE
            curves: Dict[str, ALECurve] = {}
            with self.console.phase('Accumulated Local Effects', number=7) as ph:
                if cfg.ale.enabled:
                    curves = self._run_ale(first, errors)
                    ph.detail(f'{len(curves)} curves, up to {cfg.ale.n_bins} bins')
                else:
                    ph.detail('disabled')

            execution_time = time.time() - start_time
            result = PipelineResult(
                dataset=dataset,
                partitions=parts,
                resampled=first.resampled,
                model=first.model,
                metrics=metrics,
                predictions=first.predictions,
                importance=table,
                driver_importance=table.drivers if table is not None else None,
                ale_curves=curves,
                repeat_metrics=repeat_metrics,
                errors=errors,
                execution_time=execution_time,
                config=cfg,
            )
            self.console.show_run_summary(result)
            self.debug_log.log_data('metrics', metrics)
            if errors:
                self.debug_log.log_data('errors', errors)
            return result
        finally:
            self.debug_log.close()

    # -----------------------------------------------------------------
    # Phases 1, 3-6
    # -----------------------------------------------------------------

    def _build_dataset(self, data) -> FluxDataset:
        if isinstance(data, FluxDataset):
            return data
        ds = self.config.dataset
        return FluxDataset.from_frame(
            data, timestamp_col=ds.timestamp_col, target_col=ds.target_col,
            drivers=ds.drivers, max_lag=ds.max_lag, separator=ds.lag_separator)

    def _run_repeat(self, dataset: FluxDataset, parts: PartitionSet, seed: int,
                    errors: Dict[str, str], first: bool) -> _RepeatOutput:
        cfg = self.config
        suffix = '' if cfg.n_repeats == 1 else f' (repeat seed {seed})'

        # Phase 3: Resample
        resampled = None
        with self.console.phase('Resample' + suffix, number=3) as ph:
            if cfg.resample.enabled:
                try:
                    resampled = self._resample(dataset, parts, seed)
                    ph.detail(f'{len(parts.training)} -> {len(resampled)} rows '
                              f'({resampled.n_removed} removed, '
                              f'{resampled.n_synthetic} synthetic)')
                except InsufficientData as e:
                    errors['resample'] = str(e)
                    ph.warning(f'Resampling skipped, fitting raw training rows: {e}')
            else:
                ph.detail('disabled')

        # Phase 4: Forest
        with self.console.phase('Forest' + suffix, number=4) as ph:
            f = cfg.forest
            training = resampled if resampled is not None else parts.training.frame
            model = fit(training, mtry=f.mtry, n_trees=f.n_trees, seed=seed,
                        target_column=dataset.target_col,
                        feature_columns=dataset.feature_cols,
                        min_split=f.min_split, min_bucket=f.min_bucket,
                        max_depth=f.max_depth, mincriterion=f.mincriterion,
                        replace=f.replace, sample_fraction=f.sample_fraction,
                        n_jobs=cfg.parallel.n_jobs,
                        cancel_event=self.cancel_event)
            ph.metric('Trees', model.n_trees)
            ph.metric('Mean leaves', float(np.mean([t.n_leaves for t in model.trees])))

        # Phase 5: Evaluation
        metrics: Dict[str, Dict[str, float]] = {}
        predictions: Dict[str, pd.Series] = {}
        with self.console.phase('Evaluation' + suffix, number=5) as ph:
            with timed_operation(self.logger, 'out-of-bag prediction', logging.DEBUG):
                oob = predict(model, None, 'out_of_bag')
            predictions[OOB] = pd.Series(oob, name='predicted')
            self._score(OOB, oob, model.y_train, metrics, errors, ph, first)

            for name in EVAL_PARTITIONS:
                part = parts.as_dict()[name]
                if len(part) == 0:
                    if first:
                        errors[f'evaluate:{name}'] = 'partition is empty'
                        ph.warning(f'{name}: partition is empty')
                    continue
                pred = predict(model, part.frame, 'external')
                predictions[name] = pd.Series(pred, index=part.positions,
                                              name='predicted')
                observed = part.frame[dataset.target_col].to_numpy(dtype=float)
                self._score(name, pred, observed, metrics, errors, ph, first)

        # Phase 6: Importance
        table = None
        with self.console.phase('Importance' + suffix, number=6) as ph:
            imp = cfg.importance
            try:
                table = importance(
                    model, conditional=imp.conditional, threshold=imp.threshold,
                    n_permutations=imp.n_permutations,
                    lag_index=dataset.lag_index, seed=seed,
                    n_jobs=cfg.parallel.n_jobs, cancel_event=self.cancel_event)
                top = table.drivers.head(3)
                ph.detail('top drivers: ' + ', '.join(
                    f'{d} ({s:.3g})' for d, s in top.items()))
            except ComputationCancelled:
                raise
            except FluxForestError as e:
                errors['importance'] = str(e)
                ph.warning(f'Importance skipped: {e}')
                self.debug_log.exception('importance failed', e,
                                         module=self.logger.name,
                                         function='_run_repeat')

        return _RepeatOutput(resampled=resampled, model=model, metrics=metrics,
                             predictions=predictions, importance=table)

    @log_execution(logging.getLogger('fluxforest.pipeline'))
    def _resample(self, dataset: FluxDataset, parts: PartitionSet,
                  seed: int) -> ResampledTrainingSet:
        r = self.config.resample
        thresholds = RelevanceThresholds(
            under_percentage=r.under_percentage,
            over_percentage=r.over_percentage,
            threshold=r.relevance_threshold,
            control_points=(tuple(tuple(p) for p in r.control_points)
                            if r.control_points is not None else None),
            bump_percentages=(tuple(r.bump_percentages)
                              if r.bump_percentages is not None else None),
            extremes=r.extremes,
            whisker_coef=r.whisker_coef,
        )
        return resample(parts.training, dataset.target_col, thresholds,
                        k_neighbors=r.k_neighbors, distance=r.distance, p=r.p,
                        feature_columns=dataset.feature_cols, seed=seed)

    def _score(self, name: str, predicted: np.ndarray, observed: np.ndarray,
               metrics: Dict[str, Dict[str, float]], errors: Dict[str, str],
               ph, report: bool) -> None:
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter('always', NumericDegeneracyWarning)
            try:
                metrics[name] = evaluate(predicted, observed, stage=name)
            except InsufficientData as e:
                if report:
                    errors[f'evaluate:{name}'] = str(e)
                    ph.warning(f'{name}: {e}')
                return
        for w in caught:
            if report and issubclass(w.category, NumericDegeneracyWarning):
                errors[f'evaluate:{name}'] = str(w.message)
                ph.warning(str(w.message))
        if report:
            ph.metrics({'partition': name, **metrics[name]})

    @log_execution(logging.getLogger('fluxforest.pipeline'))
    def _run_ale(self, run: _RepeatOutput, errors: Dict[str, str]) -> Dict[str, ALECurve]:
        a = self.config.ale
        features = a.features or list(run.model.feature_names)
        with warnings.catch_warnings(record=True):
            warnings.simplefilter('always', NumericDegeneracyWarning)
            curves = ale_curves(run.model, None, features=features,
                                n_bins=a.n_bins, n_jobs=self.config.parallel.n_jobs,
                                cancel_event=self.cancel_event)
        for name in features:
            if name not in curves:
                errors[f'ale:{name}'] = 'fewer than two distinct bin edges'
        return curves

    # -----------------------------------------------------------------
    # Repeat aggregation
    # -----------------------------------------------------------------

    def _average_metrics(self, repeats: List[_RepeatOutput]):
        rows = [{'repeat': r, 'partition': name, **m}
                for r, rep in enumerate(repeats) for name, m in rep.metrics.items()]
        frame = pd.DataFrame(rows, columns=['repeat', 'partition', 'rmse', 'r_squared'])
        if frame.empty:
            return {}, frame
        mean = frame.groupby('partition', sort=False)[['rmse', 'r_squared']].mean()
        metrics = {name: {'rmse': float(row['rmse']),
                          'r_squared': float(row['r_squared'])}
                   for name, row in mean.iterrows()}
        return metrics, frame

    def _average_importance(self, repeats: List[_RepeatOutput],
                            lag_index: LagIndex) -> Optional[ImportanceTable]:
        tables = [rep.importance for rep in repeats if rep.importance is not None]
        if not tables:
            return None
        if len(tables) == 1:
            return tables[0]
        scores = pd.concat([t.features for t in tables], axis=1).mean(axis=1)
        scores = scores.sort_values(ascending=False, kind='mergesort')
        scores.name = 'importance'
        scores.index.name = 'feature'
        table = ImportanceTable(
            features=scores,
            conditional=tables[0].conditional,
            conditioning_sets=tables[0].conditioning_sets,
        )
        table.drivers = aggregate_by_driver(table, lag_index)
        return table


def run_pipeline(data: Union[pd.DataFrame, FluxDataset],
                 config: Optional[Config] = None) -> PipelineResult:
    """Run the full pipeline. Returns PipelineResult."""
    return FluxModelingPipeline(config).run(data)


__all__ = ['FluxModelingPipeline', 'PipelineResult', 'run_pipeline']
