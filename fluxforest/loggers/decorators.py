# -*- coding: utf-8 -*-
"""
Logging Decorators and Context Managers
=======================================

``log_execution`` wraps a function with entry/exit/timing records;
``log_context`` and ``timed_operation`` scope annotations and timings
to a block.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from functools import wraps
from typing import Any, Callable, Generator, Optional

from .context import LogContext


def log_execution(logger: Optional[logging.Logger] = None,
                  level: int = logging.DEBUG) -> Callable:
    """Decorator that logs function entry, exit and timing."""

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            log = logger or logging.getLogger('fluxforest')
            name = func.__qualname__
            log.log(level, 'Calling %s', name)
            start = time.time()
            try:
                result = func(*args, **kwargs)
            except Exception as exc:
                log.error('%s failed after %.3fs: %s', name,
                          time.time() - start, exc)
                raise
            log.log(level, '%s completed (%.3fs)', name, time.time() - start)
            return result
        return wrapper
    return decorator


@contextmanager
def log_context(**kwargs: Any) -> Generator[None, None, None]:
    """Temporarily inject key/value pairs into the thread-local context."""
    for key, value in kwargs.items():
        LogContext.set(key, value)
    try:
        yield
    finally:
        for key in kwargs:
            LogContext.remove(key)


@contextmanager
def timed_operation(logger: logging.Logger, operation: str,
                    level: int = logging.INFO) -> Generator[None, None, None]:
    """Log start and finish of a block with elapsed time."""
    start = time.time()
    logger.log(level, 'Starting: %s', operation)
    try:
        yield
    finally:
        logger.log(level, 'Finished: %s (%.3fs)', operation, time.time() - start)


__all__ = ['log_execution', 'log_context', 'timed_operation']
