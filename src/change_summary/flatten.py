# src/change_summary/flatten.py
"""
Flatten (rows, cols, depth) grids into per-pixel records.

Pixel order is row-major: ``index = row * n_cols + col``. This is the order
every downstream stage reassembles into, so reconstruction is the exact
inverse of flattening.
"""

from dataclasses import dataclass

import numpy as np
import xarray as xr


@dataclass(frozen=True)
class PixelRecord:
    """One pixel's depth slice tagged with its grid position."""
    index: int
    row: int
    col: int
    values: np.ndarray


def _grid_values(grid):
    if isinstance(grid, xr.DataArray):
        if "y" in grid.dims and "x" in grid.dims:
            grid = grid.transpose("y", "x", ...)
        values = grid.values
    else:
        values = np.asarray(grid)

    if values.ndim != 3:
        raise ValueError(f"Expected a (rows, cols, depth) grid, got shape {values.shape}")
    return values


def flatten_grid(grid):
    """
    Reshape a 3-D grid into a read-only (rows * cols, depth) array.

    Parameters:
    -----------
    grid : xr.DataArray or np.ndarray
        Grid with dims (y, x, depth); DataArrays are transposed to that order.

    Returns:
    --------
    np.ndarray
        Row ``i`` holds the depth slice of pixel ``i`` in row-major order.
    """
    values = _grid_values(grid)
    n_rows, n_cols, depth = values.shape
    flat = values.reshape(n_rows * n_cols, depth)
    flat.setflags(write=False)
    return flat


def iter_pixel_records(grid):
    """Yield a ``PixelRecord`` per pixel in row-major order."""
    values = _grid_values(grid)
    n_rows, n_cols, _ = values.shape
    flat = flatten_grid(values)
    for index in range(n_rows * n_cols):
        row, col = divmod(index, n_cols)
        yield PixelRecord(index=index, row=row, col=col, values=flat[index])


def pixel_index(row, col, n_cols):
    return row * n_cols + col
