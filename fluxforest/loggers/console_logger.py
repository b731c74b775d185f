# -*- coding: utf-8 -*-
"""
Console Logger for the Flux Modeling Pipeline
=============================================

Concise, colour-coded progress output: phase banners with timing,
one-line steps and metrics, compact tables and an end-of-run summary
of skill scores and leading drivers.
"""

from __future__ import annotations

import sys
import time
from contextlib import contextmanager
from typing import Any, Dict, Generator, List, Optional, Sequence

from .context import Colors, LogContext, PhaseMetrics

_LINE_W = 72


class ConsoleLogger:
    """Structured console output for pipeline runs."""

    def __init__(self, use_color: Optional[bool] = None, stream=None):
        self._color = Colors.supports_color() if use_color is None else use_color
        self._stream = stream
        self._phase_stack: List[PhaseMetrics] = []
        self._all_phases: List[PhaseMetrics] = []

    def _c(self, text: str, *codes: str) -> str:
        if not self._color:
            return text
        return ''.join(codes) + text + Colors.RESET

    def _write(self, msg: str) -> None:
        stream = self._stream or sys.stdout
        stream.write(msg + '\n')
        stream.flush()

    @property
    def phases(self) -> List[PhaseMetrics]:
        return list(self._all_phases)

    # ------------------------------------------------------------------
    # Banners
    # ------------------------------------------------------------------

    def banner(self, title: str, subtitle: str = '') -> None:
        self._write('')
        self._write(self._c('=' * _LINE_W, Colors.BOLD, Colors.BLUE))
        self._write(self._c(f'  {title}', Colors.BOLD, Colors.BRIGHT_WHITE))
        if subtitle:
            self._write(self._c(f'  {subtitle}', Colors.DIM))
        self._write(self._c('=' * _LINE_W, Colors.BOLD, Colors.BLUE))

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    @contextmanager
    def phase(self, name: str, number: int = None,
              total_phases: int = 7) -> Generator[_PhaseCtx, None, None]:
        """Print phase start and end with timing.

        Example::

            with console.phase('Partition') as p:
                parts = partition(dataset)
                p.detail(f'{len(parts.training)} training rows')
        """
        if number is None:
            number = len(self._all_phases) + 1
        label = f'[{number}/{total_phases}] {name}'
        metrics = PhaseMetrics(name=name, start_time=time.time())
        self._phase_stack.append(metrics)
        self._all_phases.append(metrics)
        LogContext.set('phase', name)

        self._write('')
        self._write(self._c(f'>> {label}', Colors.BOLD, Colors.CYAN))

        ctx = _PhaseCtx(self, metrics)
        try:
            yield ctx
        except Exception as exc:
            metrics.end_time = time.time()
            metrics.status = 'failed'
            LogContext.remove('phase')
            self._phase_stack.pop()
            self._write(self._c(
                f'   FAIL  {label}  ({metrics.elapsed:.2f}s) '
                f'{type(exc).__name__}: {exc}',
                Colors.RED, Colors.BOLD,
            ))
            raise
        else:
            metrics.end_time = time.time()
            metrics.status = 'completed'
            LogContext.remove('phase')
            self._phase_stack.pop()
            self._write(self._c(
                f'   OK    {label}  ({metrics.elapsed:.2f}s)', Colors.GREEN))

    # ------------------------------------------------------------------
    # Steps, metrics, tables
    # ------------------------------------------------------------------

    def step(self, message: str) -> None:
        self._write(self._c(f'   . {message}', Colors.WHITE))

    def metric(self, label: str, value: Any, unit: str = '') -> None:
        val_str = f'{value:.4f}' if isinstance(value, float) else str(value)
        suffix = f' {unit}' if unit else ''
        self._write(self._c(f'     {label}: ', Colors.DIM) + f'{val_str}{suffix}')

    def metrics(self, data: Dict[str, Any]) -> None:
        parts = [f'{k}={v:.4f}' if isinstance(v, float) else f'{k}={v}'
                 for k, v in data.items()]
        self._write(self._c('     ', Colors.DIM) + ', '.join(parts))

    def table(self, headers: Sequence[str], rows: Sequence[Sequence[str]],
              col_widths: Optional[Sequence[int]] = None, indent: int = 6) -> None:
        """Fixed-width table; numeric cells right-aligned."""
        if col_widths is None:
            col_widths = [max(len(h) + 2, 12) for h in headers]
        pad = ' ' * indent
        self._write(self._c(
            pad + '  '.join(f'{h:^{w}}' for h, w in zip(headers, col_widths)),
            Colors.BOLD))
        self._write(pad + '  '.join('-' * w for w in col_widths))
        for row in rows:
            cells = []
            for c, w in zip(row, col_widths):
                try:
                    float(str(c))
                    cells.append(f'{c:>{w}}')
                except ValueError:
                    cells.append(f'{c:<{w}}')
            self._write(pad + '  '.join(cells))

    # ------------------------------------------------------------------
    # Warnings
    # ------------------------------------------------------------------

    def warning(self, message: str) -> None:
        self._write(self._c(f'  ! {message}', Colors.YELLOW))

    # ------------------------------------------------------------------
    # Run summary
    # ------------------------------------------------------------------

    def show_run_summary(self, result: Any, top_n: int = 7) -> None:
        """Skill per partition, leading drivers, skipped stages, runtime."""
        self._write('')
        self._write(self._c('=' * _LINE_W, Colors.BOLD, Colors.BLUE))
        self._write(self._c('  RESULTS SUMMARY', Colors.BOLD, Colors.BRIGHT_WHITE))
        self._write(self._c('=' * _LINE_W, Colors.BOLD, Colors.BLUE))

        self._write(self._c('\n  DATA', Colors.BOLD))
        for name, size in result.partition_sizes.items():
            self.metric(name, size, 'rows')
        if result.resampled is not None:
            self.metric('resampled training', len(result.resampled), 'rows')

        metrics = result.metrics_frame()
        if not metrics.empty:
            self._write(self._c('\n  SKILL', Colors.BOLD))
            rows = [[name, f'{row["rmse"]:.4f}', f'{row["r_squared"]:.4f}']
                    for name, row in metrics.iterrows()]
            self.table(['Partition', 'RMSE', 'R²'], rows, [16, 10, 10])

        if result.driver_importance is not None and len(result.driver_importance):
            self._write(self._c('\n  TOP DRIVERS (summed over lags)', Colors.BOLD))
            rows = [[str(i + 1), driver, f'{score:.4g}'] for i, (driver, score)
                    in enumerate(result.driver_importance.head(top_n).items())]
            self.table(['Rank', 'Driver', 'Importance'], rows, [6, 16, 12])

        if result.errors:
            self._write(self._c('\n  SKIPPED', Colors.BOLD, Colors.YELLOW))
            for stage, message in result.errors.items():
                self.warning(f'{stage}: {message}')

        self._write(self._c(f'\n  RUNTIME : {result.execution_time:.2f}s',
                            Colors.BOLD))
        self._write(self._c('=' * _LINE_W, Colors.BOLD, Colors.BLUE))


class _PhaseCtx:
    """Proxy for logging detail inside a phase block."""

    def __init__(self, logger: ConsoleLogger, metrics: PhaseMetrics):
        self._logger = logger
        self._metrics = metrics

    def detail(self, message: str) -> None:
        self._logger.step(message)

    def metric(self, label: str, value: Any, unit: str = '') -> None:
        self._logger.metric(label, value, unit)

    def metrics(self, data: Dict[str, Any]) -> None:
        self._logger.metrics(data)

    def warning(self, message: str) -> None:
        self._logger.warning(message)


__all__ = ['ConsoleLogger']
