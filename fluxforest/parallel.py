# -*- coding: utf-8 -*-
"""
Fork-Join Helpers
=================

Independent per-tree and per-feature tasks are fanned out over a
thread pool (numpy releases the GIL in the heavy kernels) and joined in
task order, so results never depend on completion order.  A shared
cancellation event is checked before every task.
"""

import multiprocessing
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional, Sequence, TypeVar

from .errors import check_cancelled

T = TypeVar('T')
R = TypeVar('R')


def resolve_n_jobs(n_jobs: int) -> int:
    """Worker count for *n_jobs* (-1 = all cores but one, <= 0 relative)."""
    if n_jobs == -1:
        return max(1, multiprocessing.cpu_count() - 1)
    if n_jobs <= 0:
        return max(1, multiprocessing.cpu_count() + n_jobs)
    return min(n_jobs, multiprocessing.cpu_count())


def fork_join(func: Callable[[T], R],
              items: Sequence[T],
              n_jobs: int = 1,
              cancel_event: Optional[threading.Event] = None,
              stage: str = '') -> List[R]:
    """
    Apply *func* to every item, optionally on a thread pool.

    Args:
        func: Task body
        items: Task inputs
        n_jobs: Worker count (see :func:`resolve_n_jobs`)
        cancel_event: Set to abort; pending tasks are skipped
        stage: Stage name reported by ComputationCancelled

    Returns:
        ``[func(item) for item in items]`` in input order

    Raises:
        ComputationCancelled: *cancel_event* was set before all tasks ran
    """
    workers = resolve_n_jobs(n_jobs)
    if workers <= 1 or len(items) <= 1:
        results = []
        for item in items:
            check_cancelled(cancel_event, stage)
            results.append(func(item))
        return results

    def run(item):
        check_cancelled(cancel_event, stage)
        return func(item)

    results: List[Optional[R]] = [None] * len(items)
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {executor.submit(run, item): i for i, item in enumerate(items)}
        try:
            for future in as_completed(futures):
                results[futures[future]] = future.result()
        except BaseException:
            for future in futures:
                future.cancel()
            raise
    return results


__all__ = ['resolve_n_jobs', 'fork_join']
