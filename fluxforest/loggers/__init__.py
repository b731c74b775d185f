# -*- coding: utf-8 -*-
"""
Flux Forest Logging Package
===========================

Two-channel logging system:
  * **ConsoleLogger**: concise, colour-coded progress output
  * **DebugLogger**: exhaustive structured JSON for post-hoc inspection

Usage::

    from fluxforest.loggers import setup_logging
    console, debug = setup_logging('result')
"""

from typing import Tuple

from .context import Colors, LogContext, PhaseMetrics
from .console_logger import ConsoleLogger
from .debug_logger import DebugLogger, ROOT_LOGGER
from .decorators import log_execution, log_context, timed_operation


def setup_logging(output_dir: str = 'result',
                  use_color: bool = None) -> Tuple[ConsoleLogger, DebugLogger]:
    """Create both loggers; debug JSON goes to ``<output_dir>/logs/``."""
    console = ConsoleLogger(use_color=use_color)
    debug = DebugLogger(output_dir=f'{output_dir}/logs')
    return console, debug


__all__ = [
    'setup_logging',
    'ConsoleLogger',
    'DebugLogger',
    'ROOT_LOGGER',
    'Colors',
    'LogContext',
    'PhaseMetrics',
    'log_execution',
    'log_context',
    'timed_operation',
]
