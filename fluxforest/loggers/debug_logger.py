# -*- coding: utf-8 -*-
"""
Structured Debug Logger
=======================

Collects every record of a run into one JSON array
(``<output_dir>/logs/debug_<timestamp>.json``), including the stdlib
``fluxforest.*`` module loggers, for post-hoc inspection.

Each entry carries timestamp, level, module, function, line, phase,
message and an optional structured ``data`` payload.
"""

from __future__ import annotations

import json
import logging
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .context import Colors, LogContext

ROOT_LOGGER = 'fluxforest'


class DebugLogger:
    """Accumulates structured log entries and flushes them to JSON."""

    def __init__(self, output_dir: str = 'result/logs',
                 logger_name: str = ROOT_LOGGER):
        self._dir = Path(output_dir)
        self._dir.mkdir(parents=True, exist_ok=True)
        ts = datetime.now().strftime('%Y%m%d_%H%M%S_%f')
        self._path = self._dir / f'debug_{ts}.json'
        self._entries: List[Dict[str, Any]] = []

        self._stdlib_logger = logging.getLogger(logger_name)
        self._saved_level = self._stdlib_logger.level
        self._stdlib_logger.setLevel(logging.DEBUG)
        self._handler = _InterceptHandler(self)
        self._stdlib_logger.addHandler(self._handler)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def exception(self, message: str, exc: Optional[BaseException] = None,
                  *, module: str = '', function: str = '', line: int = 0) -> None:
        """Store *message* at ERROR with the formatted traceback of *exc*."""
        tb = traceback.format_exc() if exc is None else traceback.format_exception(
            type(exc), exc, exc.__traceback__)
        self._add('ERROR', message, data={'traceback': tb},
                  module=module, function=function, line=line)

    def log_data(self, label: str, payload: Any, *,
                 module: str = '', function: str = '') -> None:
        """Store a structured payload (arrays, frames, dicts)."""
        self._add('DATA', label, data=payload, module=module, function=function)

    # ------------------------------------------------------------------
    # Flush / close
    # ------------------------------------------------------------------

    def flush(self) -> str:
        """Write accumulated entries to disk and return the file path."""
        with open(self._path, 'w', encoding='utf-8') as fh:
            json.dump(self._entries, fh, indent=2, default=_json_default,
                      ensure_ascii=False)
        return str(self._path)

    def close(self) -> str:
        """Flush and detach from the stdlib logger."""
        path = self.flush()
        self._stdlib_logger.removeHandler(self._handler)
        self._stdlib_logger.setLevel(self._saved_level)
        return path

    @property
    def path(self) -> str:
        return str(self._path)

    @property
    def entries(self) -> List[Dict[str, Any]]:
        return list(self._entries)

    @property
    def entry_count(self) -> int:
        return len(self._entries)

    def _add(self, level: str, message: str, *, data: Any = None,
             module: str = '', function: str = '', line: int = 0) -> None:
        entry: Dict[str, Any] = {
            'timestamp': datetime.now().isoformat(),
            'level': level,
            'module': module,
            'function': function,
            'line': line,
            'phase': LogContext.get().get('phase', ''),
            'message': Colors.strip(str(message)),
        }
        if data is not None:
            entry['data'] = data
        self._entries.append(entry)


class _InterceptHandler(logging.Handler):
    """Bridges stdlib ``logging`` records into :class:`DebugLogger`."""

    def __init__(self, debug_logger: DebugLogger):
        super().__init__(level=logging.DEBUG)
        self._dl = debug_logger

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._dl._add(
                level=record.levelname,
                message=record.getMessage(),
                module=record.name,
                function=record.funcName,
                line=record.lineno,
            )
        except Exception:
            self.handleError(record)


def _json_default(obj: Any) -> Any:
    """Fallback serialiser for numpy / pandas objects."""
    import numpy as np
    import pandas as pd
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.floating):
        return float(obj)
    if isinstance(obj, pd.DataFrame):
        return obj.to_dict(orient='list')
    if isinstance(obj, pd.Series):
        return obj.to_dict()
    if isinstance(obj, pd.Timestamp):
        return obj.isoformat()
    return str(obj)


__all__ = ['DebugLogger', 'ROOT_LOGGER']
