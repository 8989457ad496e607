# src/change_summary/lookup.py
"""
Resolve labelled query coordinates to (row, col) grid cells.

An index grid holds each cell's own row and column (two bands) on the same
geometry as the data. A point resolves to the cell that contains it; cells
are half-open, so a point on the right or bottom outer edge is outside.
Points outside the grid, or on cells whose index is missing, fail with
``CoordinateLookupError`` instead of defaulting to any cell.
"""

import math
import logging
from dataclasses import dataclass
from pathlib import Path

import geopandas as gpd
import numpy as np
import pandas as pd

from .exceptions import CoordinateLookupError
from .raster import copy_geometry, grid_shape

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryPoint:
    x: float
    y: float
    label: str


@dataclass(frozen=True)
class ResolvedPoint:
    label: str
    row: int
    col: int
    x: float
    y: float


def build_index_grid(template, valid=None):
    """
    Build the (row, col) index grid for a template.

    Parameters:
    -----------
    template : xr.DataArray
        2-D grid providing the geometry.
    valid : np.ndarray of bool, optional
        (rows, cols) mask; cells that are False get a missing index.

    Returns:
    --------
    xr.DataArray
        Dims (band, y, x) with ``band = ["row", "col"]``.
    """
    n_rows, n_cols = grid_shape(template)
    rows, cols = np.meshgrid(np.arange(n_rows), np.arange(n_cols), indexing="ij")
    index = np.stack([rows, cols], axis=-1).astype(np.float64)

    if valid is not None:
        valid = np.asarray(valid, dtype=bool)
        if valid.shape != (n_rows, n_cols):
            raise ValueError(f"Valid mask shape {valid.shape} does not match grid {(n_rows, n_cols)}")
        index[~valid] = np.nan

    grid = copy_geometry(index, template, dims=("y", "x", "band"),
                         extra_coords={"band": ["row", "col"]})
    return grid.transpose("band", "y", "x")


def lookup_cell(index_grid, x, y, label=""):
    """Return the ``(row, col)`` of the cell containing ``(x, y)``."""
    if not (np.isfinite(x) and np.isfinite(y)):
        raise CoordinateLookupError(label, f"invalid coordinates ({x}, {y})")

    n_rows, n_cols = grid_shape(index_grid)
    col_f, row_f = ~index_grid.rio.transform() * (x, y)
    row, col = math.floor(row_f), math.floor(col_f)
    if not (0 <= row < n_rows and 0 <= col < n_cols):
        raise CoordinateLookupError(label, f"({x}, {y}) is outside the grid extent")

    cell = index_grid.isel(y=row, x=col)
    found_row = float(cell.sel(band="row"))
    found_col = float(cell.sel(band="col"))
    if np.isnan(found_row) or np.isnan(found_col):
        raise CoordinateLookupError(label, f"({x}, {y}) falls on a cell with no index value")
    return int(found_row), int(found_col)


def resolve_query_points(index_grid, points):
    """
    Resolve every query point, collecting failures instead of stopping.

    Returns:
    --------
    tuple
        (list of ResolvedPoint, list of CoordinateLookupError)
    """
    resolved = []
    failures = []
    for point in points:
        try:
            row, col = lookup_cell(index_grid, point.x, point.y, label=point.label)
        except CoordinateLookupError as e:
            logger.warning(f"⚠️ Dropping query point: {e}")
            failures.append(e)
            continue
        resolved.append(ResolvedPoint(point.label, row, col, point.x, point.y))

    logger.info(f"📍 Resolved {len(resolved)}/{len(resolved) + len(failures)} query points")
    return resolved, failures


def query_points_from_records(records):
    """Build query points from dicts with ``x``, ``y`` (or ``lon``, ``lat``) and ``label``."""
    records = list(records or [])
    if not records:
        return []
    return list(_points_from_frame(pd.DataFrame(records)))


def _points_from_frame(df):
    df = df.rename(columns={"lon": "x", "lat": "y"})
    missing = [c for c in ("x", "y", "label") if c not in df.columns]
    if missing:
        raise ValueError(f"Query points are missing columns: {missing}")
    for row in df.itertuples(index=False):
        yield QueryPoint(x=float(row.x), y=float(row.y), label=str(row.label))


def load_query_points(path, crs=None, source_crs=None):
    """
    Load labelled query points from a CSV or a vector file.

    Parameters:
    -----------
    path : str or Path
        CSV with ``x, y, label`` (``lon``/``lat`` accepted) or any point
        vector file geopandas can read, with a ``label`` column.
    crs : optional
        Target CRS (normally the raster CRS) the points are projected to.
    source_crs : optional
        CRS of CSV coordinates; vector files carry their own.

    Returns:
    --------
    list of QueryPoint
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Query point file not found: {path}")

    if path.suffix.lower() == ".csv":
        df = pd.read_csv(path).rename(columns={"lon": "x", "lat": "y"})
        if source_crs is not None and crs is None:
            logger.warning(
                f"⚠️ Raster has no CRS; query points in {path} are used as given in {source_crs}"
            )
        if source_crs is None or crs is None:
            return list(_points_from_frame(df))
        gdf = gpd.GeoDataFrame(df, geometry=gpd.points_from_xy(df["x"], df["y"]), crs=source_crs)
    else:
        gdf = gpd.read_file(path)

    if "label" not in gdf.columns:
        raise ValueError(f"Query point file {path} has no 'label' column")
    if crs is not None and gdf.crs is not None and gdf.crs != crs:
        logger.info(f"   Converting query points from {gdf.crs} to {crs}...")
        gdf = gdf.to_crs(crs)

    return [
        QueryPoint(x=float(geom.x), y=float(geom.y), label=str(label))
        for geom, label in zip(gdf.geometry, gdf["label"])
    ]
