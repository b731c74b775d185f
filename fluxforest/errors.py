# -*- coding: utf-8 -*-
"""
Error Types for the Flux Modeling Pipeline
==========================================

Every fatal error names the pipeline stage, the offending parameter and
its value so that a failed run can be diagnosed from the message alone.

Kinds
-----
- InvalidConfiguration   out-of-range partition / resampling / model parameter
- InsufficientData       a partition, relevance class or pair set is too small
- NumericDegeneracy      zero-variance feature or bin (recovered locally)
- ComputationCancelled   cooperative cancellation of a long computation
"""

from typing import Any, Optional


class FluxForestError(Exception):
    """Base class for all pipeline errors."""

    def __init__(self, message: str, stage: str = '',
                 parameter: Optional[str] = None, value: Any = None):
        self.stage = stage
        self.parameter = parameter
        self.value = value
        self.reason = message
        super().__init__(self._format())

    def _format(self) -> str:
        parts = []
        if self.stage:
            parts.append(f"[{self.stage}]")
        if self.parameter is not None:
            parts.append(f"{self.parameter}={self.value!r}:")
        parts.append(self.reason)
        return ' '.join(parts)


class InvalidConfiguration(FluxForestError, ValueError):
    """A configuration value is outside its admissible range."""


class InsufficientData(FluxForestError, ValueError):
    """Not enough rows to satisfy a stage's minimum."""


class NumericDegeneracy(FluxForestError):
    """A zero-variance feature or bin prevents a computation."""


class ComputationCancelled(FluxForestError):
    """Raised when a cancellation event is set during a long computation."""


class NumericDegeneracyWarning(UserWarning):
    """Issued when a degenerate feature or bin is skipped."""


def check_cancelled(cancel_event, stage: str) -> None:
    """Raise :class:`ComputationCancelled` if *cancel_event* is set."""
    if cancel_event is not None and cancel_event.is_set():
        raise ComputationCancelled('cancellation requested', stage=stage)


__all__ = [
    'FluxForestError',
    'InvalidConfiguration',
    'InsufficientData',
    'NumericDegeneracy',
    'ComputationCancelled',
    'NumericDegeneracyWarning',
    'check_cancelled',
]
