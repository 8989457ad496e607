# src/change_summary/raster.py
"""
Raster geometry helpers shared by reconstruction and coordinate lookup.

Grids are ``xarray.DataArray`` objects with ``y`` and ``x`` dimensions whose
CRS and affine transform are managed by rioxarray.
"""

import os
import logging

import numpy as np
import rioxarray as rxr
import xarray as xr

logger = logging.getLogger(__name__)


def load_template(path):
    """Open a single-band reference raster whose geometry outputs inherit."""
    if not os.path.exists(path):
        raise FileNotFoundError(f"Template raster not found: {path}")
    template = rxr.open_rasterio(path, masked=True).squeeze(drop=True)
    if template.ndim != 2:
        raise ValueError(f"Template raster must be single band, got dims {template.dims}")
    logger.info(f"✅ Using template raster {path} with shape {template.shape}")
    return template


def grid_shape(grid):
    """(rows, cols) of a grid with ``y``/``x`` dimensions."""
    return int(grid.sizes["y"]), int(grid.sizes["x"])


def as_template(grid):
    """Reduce any grid sharing the target geometry to a 2-D ``(y, x)`` template."""
    extra = [d for d in grid.dims if d not in ("y", "x")]
    template = grid.isel({d: 0 for d in extra}, drop=True) if extra else grid
    return template.transpose("y", "x")


def copy_geometry(data, template, dims=("y", "x"), extra_coords=None):
    """
    Wrap ``data`` in a DataArray carrying the template's geometry.

    Parameters:
    -----------
    data : np.ndarray
        Array whose leading two axes are (rows, cols).
    template : xr.DataArray
        Grid providing x/y coordinates, CRS and transform.
    dims : tuple
        Dimension names for ``data``; must start with ``("y", "x")``.
    extra_coords : dict, optional
        Coordinates for any trailing dimensions.

    Returns:
    --------
    xr.DataArray
    """
    coords = {"y": template["y"].values, "x": template["x"].values}
    if extra_coords:
        coords.update(extra_coords)

    da = xr.DataArray(data, dims=dims, coords=coords)
    if template.rio.crs is not None:
        da = da.rio.write_crs(template.rio.crs)
    return da.rio.write_transform(template.rio.transform())
