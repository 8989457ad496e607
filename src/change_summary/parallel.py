# src/change_summary/parallel.py
"""
Fork/join execution of stateless per-pixel work on a joblib worker pool.

Work is split into contiguous pixel-index ranges (``WorkItem``). Workers
only read their slice and return a new array; the coordinator sorts results
by each item's ``start`` after the join, so output order never depends on
which worker finished first. Any failure aborts the whole batch.
"""

import logging
from dataclasses import dataclass

import joblib
from joblib import Parallel, delayed
from tqdm import tqdm

from .exceptions import WorkerFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkItem:
    """Pixels ``[start, stop)`` and the per-pixel arrays sliced to that range."""
    start: int
    stop: int
    payload: tuple


def resolve_n_jobs(n_jobs=0):
    """
    Translate the configured pool size into a worker count.

    ``0`` or ``None`` uses every available core, negative values follow the
    joblib convention (``-1`` = all, ``-2`` = all but one) and positive values
    are used as given.
    """
    n_cpus = joblib.cpu_count()
    if n_jobs is None or n_jobs == 0:
        return n_cpus
    n_jobs = int(n_jobs)
    if n_jobs < 0:
        return max(1, n_cpus + 1 + n_jobs)
    return n_jobs


def partition(n_items, chunk_size):
    """Yield ``(start, stop)`` ranges covering ``range(n_items)`` in order."""
    if chunk_size is None or chunk_size < 1:
        raise ValueError(f"chunk_size must be a positive integer, got {chunk_size}")
    for start in range(0, n_items, chunk_size):
        yield start, min(start + chunk_size, n_items)


def make_work_items(arrays, chunk_size):
    """Slice every array along axis 0 into aligned ``WorkItem`` ranges."""
    arrays = tuple(arrays)
    lengths = {len(a) for a in arrays}
    if len(lengths) != 1:
        raise ValueError(f"Work arrays must share their first dimension, got lengths {sorted(lengths)}")
    n_items = lengths.pop()
    return [
        WorkItem(start, stop, tuple(a[start:stop] for a in arrays))
        for start, stop in partition(n_items, chunk_size)
    ]


def _run_item(func, item, args):
    try:
        return item.start, func(*item.payload, *args)
    except WorkerFailure:
        raise
    except Exception as e:
        raise WorkerFailure(item.start, item.stop, e) from e


def run_parallel(func, work_items, n_jobs=0, args=(), desc=None):
    """
    Apply ``func(*item.payload, *args)`` to every work item.

    Parameters:
    -----------
    func : callable
        Pure, picklable function of one item's payload.
    work_items : iterable of WorkItem
    n_jobs : int
        Pool size (see ``resolve_n_jobs``).
    args : tuple
        Extra positional arguments passed to every call.
    desc : str, optional
        tqdm progress label.

    Returns:
    --------
    list
        Results ordered by ``WorkItem.start``.

    Raises:
    -------
    WorkerFailure
        If any item fails; no partial results are returned.
    """
    items = list(work_items)
    if not items:
        return []

    n_workers = min(resolve_n_jobs(n_jobs), len(items))
    logger.debug(f"Running {len(items)} work items on {n_workers} worker(s)")

    try:
        if n_workers == 1:
            results = [_run_item(func, item, args) for item in tqdm(items, desc=desc, disable=desc is None)]
        else:
            tasks = Parallel(n_jobs=n_workers, backend="loky", return_as="generator_unordered")(
                delayed(_run_item)(func, item, args) for item in items
            )
            results = list(tqdm(tasks, total=len(items), desc=desc, disable=desc is None))
    except WorkerFailure as e:
        logger.error(f"❌ {e}")
        raise
    except Exception as e:
        # pool-level failures (e.g. a worker process dying) carry no item range
        logger.error(f"❌ Worker pool failed: {e}")
        raise WorkerFailure(items[0].start, items[-1].stop, e) from e

    results.sort(key=lambda r: r[0])
    return [result for _, result in results]
