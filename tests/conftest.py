"""Shared fixtures: small georeferenced grids and decomposition outputs."""

from __future__ import annotations

import numpy as np
import pytest
import rioxarray  # noqa: F401  (registers the .rio accessor)
import xarray as xr

from change_summary.decomposition import decomposition_from_arrays

CRS = "EPSG:32618"
RES = 30.0
X0 = 500000.0
Y0 = 4000060.0


def _template(n_rows, n_cols):
    x = X0 + RES * (np.arange(n_cols) + 0.5)
    y = Y0 - RES * (np.arange(n_rows) + 0.5)
    da = xr.DataArray(np.zeros((n_rows, n_cols)), dims=("y", "x"), coords={"y": y, "x": x})
    return da.rio.write_crs(CRS)


@pytest.fixture
def make_template():
    return _template


@pytest.fixture
def template():
    return _template(2, 2)


def cell_center(row, col):
    return X0 + RES * (col + 0.5), Y0 - RES * (row + 0.5)


@pytest.fixture
def center():
    return cell_center


@pytest.fixture
def scenario_ds(template):
    """
    2x2 grid, 3 change slots, 4 time steps.

    Top slot years [[2010, NA], [2015, 2016]] with probabilities
    [[0.9, NA], [0.4, 0.95]]; every other slot is missing.
    """
    nan = np.nan
    cp_time = np.full((2, 2, 3), nan)
    cp_prob = np.full((2, 2, 3), nan)
    cp_mag = np.full((2, 2, 3), nan)

    cp_time[:, :, 0] = [[2010.0, nan], [2015.0, 2016.0]]
    cp_prob[:, :, 0] = [[0.9, nan], [0.4, 0.95]]
    cp_mag[:, :, 0] = [[1.5, nan], [-0.7, 2.0]]

    times = np.array([2009.0, 2011.5, 2014.0, 2016.5])
    trend = np.broadcast_to(np.arange(4, dtype=float), (2, 2, 4)).copy()
    season = np.broadcast_to(np.array([0.5, -0.5, 0.25, -0.25]), (2, 2, 4)).copy()

    return decomposition_from_arrays(trend, season, cp_time, cp_prob, cp_mag, times, template)


@pytest.fixture
def random_ds(make_template):
    """Larger grid with random events, some pixels and slots missing."""
    rng = np.random.default_rng(7)
    n_rows, n_cols, k, t = 9, 7, 5, 6
    template = make_template(n_rows, n_cols)

    cp_time = np.round(rng.uniform(2000, 2020, (n_rows, n_cols, k)), 1)
    cp_prob = np.round(rng.uniform(0, 1, (n_rows, n_cols, k)), 1)
    cp_mag = rng.normal(0, 1, (n_rows, n_cols, k))

    slot_missing = rng.uniform(size=(n_rows, n_cols, k)) < 0.3
    for arr in (cp_time, cp_prob, cp_mag):
        arr[slot_missing] = np.nan
        arr[0, 0, :] = np.nan

    trend = rng.normal(size=(n_rows, n_cols, t))
    season = rng.normal(size=(n_rows, n_cols, t))
    times = 2000 + np.arange(t) * 0.5
    return decomposition_from_arrays(trend, season, cp_time, cp_prob, cp_mag, times, template)
