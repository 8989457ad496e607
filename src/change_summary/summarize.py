# src/change_summary/summarize.py
"""
Whole-grid change summaries and query point export.

``summarize_grid`` flattens the change event slots, runs change selection on
pixel ranges in the worker pool and rebuilds the six summary grids on the
source geometry. Selection is never filtered by a probability cutoff here;
use ``reconstruct.mask_for_display`` for thresholded display layers.
"""

import logging

import numpy as np

from .decomposition import template_from_decomposition, valid_pixel_mask
from .export import build_event_table, build_trend_table
from .flatten import flatten_grid
from .lookup import build_index_grid, resolve_query_points
from .parallel import make_work_items, run_parallel
from .raster import grid_shape
from .reconstruct import check_shape, reconstruct_summary
from .selection import SUMMARY_FIELDS, select_block

logger = logging.getLogger(__name__)


def summarize_grid(ds, n_jobs=0, chunk_size=None, template=None):
    """
    Compute most-recent and most-probable change grids for every pixel.

    Parameters:
    -----------
    ds : xr.Dataset
        Decomposition output with ``cp_time``, ``cp_prob`` and ``cp_mag``.
    n_jobs : int
        Worker pool size (0 = all cores).
    chunk_size : int, optional
        Pixels per work item; defaults to one grid row.
    template : xr.DataArray, optional
        Source raster the outputs must match; defaults to the dataset's own
        geometry.

    Returns:
    --------
    xr.Dataset
        Six (y, x) variables named as ``SUMMARY_FIELDS``.
    """
    source = template_from_decomposition(ds)
    if template is None:
        template = source
    shape = check_shape(grid_shape(source), template, stage="summary raster export")
    n_pixels = shape[0] * shape[1]

    times, probabilities, magnitudes = (flatten_grid(ds[name]) for name in ("cp_time", "cp_prob", "cp_mag"))
    logger.info(f"🚀 Summarizing {n_pixels} pixels with {times.shape[1]} change slots each")

    items = make_work_items((times, probabilities, magnitudes), chunk_size or shape[1])
    blocks = run_parallel(select_block, items, n_jobs=n_jobs, desc="Selecting changes")
    block = np.concatenate(blocks) if blocks else np.empty((0, len(SUMMARY_FIELDS)))

    empty = int(np.isnan(times).all(axis=1).sum())
    logger.info(f"   Pixels without change events: {empty}/{n_pixels}")

    summary = reconstruct_summary(block, shape, template)
    summary.attrs["pixels_without_changes"] = empty
    return summary


def export_query_points(ds, points, p_min, n_jobs=1):
    """
    Event and series tables for the query points that resolve to valid cells.

    Returns:
    --------
    tuple
        (events DataFrame, series DataFrame, list of CoordinateLookupError)
    """
    index_grid = build_index_grid(template_from_decomposition(ds), valid=valid_pixel_mask(ds))
    resolved, failures = resolve_query_points(index_grid, points)

    events = build_event_table(ds, resolved, p_min, n_jobs=n_jobs)
    series = build_trend_table(ds, resolved)
    if failures:
        logger.warning(f"⚠️ Dropped query points: {[f.label for f in failures]}")
    return events, series, failures
