# src/change_summary/reconstruct.py
"""
Rebuild 2-D grids from row-major per-pixel values and write summary rasters.

Output grids take their coordinates, CRS and transform from the source
template; nothing about the geometry is recomputed here.
"""

import logging
from pathlib import Path

import numpy as np
import xarray as xr

from .exceptions import ShapeMismatch
from .raster import copy_geometry, grid_shape
from .selection import SUMMARY_FIELDS

logger = logging.getLogger(__name__)

SUMMARY_ATTRS = {
    "recent_yr": "Time of most recent change (fractional year)",
    "recent_pr": "Probability of most recent change",
    "recent_mg": "Magnitude of most recent change",
    "biggest_yr": "Time of most probable change (fractional year)",
    "biggest_pr": "Probability of most probable change",
    "biggest_mg": "Magnitude of most probable change",
}


def check_shape(shape, template, stage="grid reconstruction"):
    """Raise ``ShapeMismatch`` unless ``shape`` equals the template's (rows, cols)."""
    expected = grid_shape(template)
    actual = tuple(int(n) for n in shape)
    if actual != expected:
        raise ShapeMismatch(stage, expected, actual)
    return expected


def reconstruct_grid(values, shape, template, name=None, depth_dim=None, depth_coords=None):
    """
    Map row-major per-pixel values back onto the template grid.

    Parameters:
    -----------
    values : array-like
        (rows * cols,) scalars or (rows * cols, depth) slices.
    shape : tuple
        Declared (rows, cols) of the target grid.
    template : xr.DataArray
        Source grid whose geometry the output inherits.
    name : str, optional
        Name of the returned DataArray.
    depth_dim : str, optional
        Name of the trailing dimension for 2-D ``values``.
    depth_coords : array-like, optional
        Coordinate values for ``depth_dim``.

    Returns:
    --------
    xr.DataArray
    """
    n_rows, n_cols = check_shape(shape, template)
    values = np.asarray(values)
    if values.ndim == 0 or values.shape[0] != n_rows * n_cols:
        raise ShapeMismatch(
            "grid reconstruction", (n_rows * n_cols,), values.shape[:1]
        )

    data = values.reshape((n_rows, n_cols) + values.shape[1:])
    if data.ndim == 2:
        grid = copy_geometry(data, template)
    elif data.ndim == 3:
        depth_dim = depth_dim or "depth"
        extra = None
        if depth_coords is not None:
            extra = {depth_dim: np.asarray(depth_coords)}
        grid = copy_geometry(data, template, dims=("y", "x", depth_dim), extra_coords=extra)
    else:
        raise ValueError(f"Cannot reconstruct values of shape {values.shape}")

    if name is not None:
        grid = grid.rename(name)
    return grid


def reconstruct_summary(block, shape, template):
    """Build the six summary grids from a (pixels, 6) selection block."""
    block = np.asarray(block)
    if block.ndim != 2 or block.shape[1] != len(SUMMARY_FIELDS):
        raise ValueError(
            f"Summary block must have shape (pixels, {len(SUMMARY_FIELDS)}), got {block.shape}"
        )

    grids = {}
    for i, field in enumerate(SUMMARY_FIELDS):
        grid = reconstruct_grid(block[:, i], shape, template, name=field)
        grid.attrs["long_name"] = SUMMARY_ATTRS[field]
        grids[field] = grid

    return xr.Dataset(grids)


def mask_for_display(summary, p_min):
    """
    Mask summary pixels whose selected probability is below ``p_min``.

    Recent fields are masked on ``recent_pr`` and biggest fields on
    ``biggest_pr``; missing probabilities are masked as well. The input
    dataset is left untouched.
    """
    if not 0.0 <= p_min <= 1.0:
        raise ValueError(f"p_min must be within [0, 1], got {p_min}")

    masked = {}
    for prefix in ("recent", "biggest"):
        keep = summary[f"{prefix}_pr"] >= p_min
        for suffix in ("yr", "pr", "mg"):
            field = f"{prefix}_{suffix}"
            masked[field] = summary[field].where(keep)
    return xr.Dataset(masked, attrs=dict(summary.attrs))


def _write_raster(grid, path, tags=None):
    grid.rio.write_nodata(np.nan, encoded=False).rio.to_raster(path, driver="GTiff", tags=dict(tags or {}))


def write_summary_rasters(summary, output_dir, template=None, prefix="", tags=None):
    """
    Write one single-band GeoTIFF per summary field.

    When ``template`` is given every field is checked against its shape first,
    and nothing is written on a mismatch. Fields are written to temporary
    files and only renamed once all of them succeeded, so a failed run leaves
    no partial set of rasters behind.

    Parameters:
    -----------
    tags : dict, optional
        GeoTIFF metadata tags added to every raster.

    Returns:
    --------
    dict
        Field name -> written path.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    missing = [f for f in SUMMARY_FIELDS if f not in summary.data_vars]
    if missing:
        raise ValueError(f"Summary is missing fields: {missing}")

    if template is not None:
        for field in SUMMARY_FIELDS:
            check_shape(grid_shape(summary[field]), template, stage=f"raster export ({field})")

    staged = {}
    try:
        for field in SUMMARY_FIELDS:
            partial = output_dir / f"{prefix}{field}.partial.tif"
            staged[field] = partial
            _write_raster(summary[field], partial, tags=tags)
    except Exception:
        logger.error("❌ Raster export failed, removing partial outputs")
        for partial in staged.values():
            partial.unlink(missing_ok=True)
        raise

    paths = {}
    for field, partial in staged.items():
        path = output_dir / f"{prefix}{field}.tif"
        partial.replace(path)
        paths[field] = path
        logger.info(f"💾 Wrote {field} to {path}")
    return paths
