"""
change_summary: per-pixel change event summaries from trend/seasonal
decomposition output.

The main public entry points are:
  - `summarize_grid` (most recent / most probable change rasters)
  - `export_query_points` (filtered event and reconstructed series tables)
"""

from .exceptions import CoordinateLookupError, ShapeMismatch, WorkerFailure
from .decomposition import (
    DecompositionSettings,
    decomposition_from_arrays,
    load_decomposition,
    save_decomposition,
)
from .selection import SUMMARY_FIELDS, PixelSummary, select_changes
from .reconstruct import mask_for_display, reconstruct_grid, write_summary_rasters
from .lookup import QueryPoint, load_query_points
from .export import filter_events, write_tables
from .summarize import export_query_points, summarize_grid

__all__ = [
    "CoordinateLookupError",
    "ShapeMismatch",
    "WorkerFailure",
    "DecompositionSettings",
    "decomposition_from_arrays",
    "load_decomposition",
    "save_decomposition",
    "SUMMARY_FIELDS",
    "PixelSummary",
    "select_changes",
    "mask_for_display",
    "reconstruct_grid",
    "write_summary_rasters",
    "QueryPoint",
    "load_query_points",
    "filter_events",
    "write_tables",
    "export_query_points",
    "summarize_grid",
]
