# src/change_summary/decomposition.py
"""
Input boundary for the trend/seasonal decomposition output.

The decomposition itself runs outside this package. Its per-pixel results are
exchanged as an ``xarray.Dataset`` (NetCDF on disk) with:

    trend   (y, x, time)   reconstructed trend series
    season  (y, x, time)   reconstructed seasonal series
    cp_time (y, x, slot)   change times (fractional year)
    cp_prob (y, x, slot)   change probabilities in [0, 1]
    cp_mag  (y, x, slot)   signed change magnitudes

Slots beyond the number of detected changes are NaN in all three event
variables.
"""

import logging
import os
from dataclasses import asdict, dataclass

import numpy as np
import xarray as xr

from .exceptions import ShapeMismatch
from .raster import as_template, copy_geometry, grid_shape

logger = logging.getLogger(__name__)

SERIES_VARS = ("trend", "season")
EVENT_VARS = ("cp_time", "cp_prob", "cp_mag")


@dataclass
class DecompositionSettings:
    """Settings handed to the decomposition; recorded here, not interpreted."""
    is_regular_ordered: bool = False
    which_dim_is_time: int = 3
    delta_time: float = 14 / 365
    period: float = 1.0
    max_missing_rate: float = 0.99
    trend_max_order: int = 0
    season_max_order: int = 1
    compute_trend_slope: bool = True
    compute_season_amp: bool = True
    compute_trend_chngpt: bool = True
    compute_season_chngpt: bool = False
    compute_credible: bool = False
    tally_pos_neg_trend_jump: bool = True
    threads_per_cpu: int = 2
    par_threads: int = 0
    quiet: bool = True

    @classmethod
    def from_dict(cls, values):
        values = dict(values or {})
        unknown = sorted(set(values) - set(cls.__dataclass_fields__))
        if unknown:
            raise ValueError(f"Unknown decomposition settings: {unknown}")
        return cls(**values)

    def to_dict(self):
        return asdict(self)

    def as_options(self):
        """``metadata``, ``prior`` and ``extra`` option dicts in the decomposition's naming."""
        metadata = {
            "isRegularOrdered": self.is_regular_ordered,
            "whichDimIsTime": self.which_dim_is_time,
            "deltaTime": self.delta_time,
            "period": self.period,
            "maxMissingRate": self.max_missing_rate,
        }
        prior = {
            "trendMaxOrder": self.trend_max_order,
            "seasonMaxOrder": self.season_max_order,
        }
        extra = {
            "dumpInputData": True,
            "numThreadsPerCPU": self.threads_per_cpu,
            "numParThreads": self.par_threads,
            "tallyPosNegTrendJump": self.tally_pos_neg_trend_jump,
            "computeCredible": self.compute_credible,
            "computeSeasonOrder": False,
            "computeTrendOrder": False,
            "computeSeasonChngpt": self.compute_season_chngpt,
            "computeTrendChngpt": self.compute_trend_chngpt,
            "computeSeasonAmp": self.compute_season_amp,
            "computeTrendSlope": self.compute_trend_slope,
            "printOptions": not self.quiet,
            "printProgressBar": not self.quiet,
        }
        return {"metadata": metadata, "prior": prior, "extra": extra}

    def as_tags(self):
        """Flat ``section.option`` -> string tags recording the options on outputs."""
        return {
            f"{section}.{key}": str(value)
            for section, options in self.as_options().items()
            for key, value in options.items()
        }


def decomposition_from_arrays(trend, season, cp_time, cp_prob, cp_mag, times, template):
    """
    Assemble decomposition output arrays into a dataset on the template grid.

    Parameters:
    -----------
    trend, season : np.ndarray
        (rows, cols, T) reconstructed series.
    cp_time, cp_prob, cp_mag : np.ndarray
        (rows, cols, K) change event slots.
    times : array-like
        T observation times (fractional year).
    template : xr.DataArray
        Source raster providing geometry.

    Returns:
    --------
    xr.Dataset
    """
    times = np.asarray(times, dtype=np.float64)
    expected = grid_shape(template)

    series = {name: np.asarray(a, dtype=np.float64) for name, a in zip(SERIES_VARS, (trend, season))}
    events = {name: np.asarray(a, dtype=np.float64) for name, a in zip(EVENT_VARS, (cp_time, cp_prob, cp_mag))}

    for name, values in {**series, **events}.items():
        if values.ndim != 3:
            raise ValueError(f"{name} must be (rows, cols, depth), got shape {values.shape}")
        if values.shape[:2] != expected:
            raise ShapeMismatch(f"decomposition input ({name})", expected, values.shape[:2])

    for name, values in series.items():
        if values.shape[2] != times.size:
            raise ValueError(f"{name} has {values.shape[2]} time steps but {times.size} times were given")

    depths = {values.shape[2] for values in events.values()}
    if len(depths) != 1:
        raise ValueError(f"Change event arrays differ in slot count: {sorted(depths)}")
    n_slots = depths.pop()

    data_vars = {}
    for name, values in series.items():
        data_vars[name] = copy_geometry(values, template, dims=("y", "x", "time"),
                                        extra_coords={"time": times})
    for name, values in events.items():
        data_vars[name] = copy_geometry(values, template, dims=("y", "x", "slot"),
                                        extra_coords={"slot": np.arange(n_slots)})

    return xr.Dataset(data_vars)


def validate_decomposition(ds):
    """Check variables and dimensions, returning the dataset in (y, x, depth) order."""
    missing = [v for v in SERIES_VARS + EVENT_VARS if v not in ds.data_vars]
    if missing:
        raise ValueError(f"Decomposition output is missing variables: {missing}")

    for name in SERIES_VARS:
        if set(ds[name].dims) != {"y", "x", "time"}:
            raise ValueError(f"{name} must have dims (y, x, time), got {ds[name].dims}")
    for name in EVENT_VARS:
        if set(ds[name].dims) != {"y", "x", "slot"}:
            raise ValueError(f"{name} must have dims (y, x, slot), got {ds[name].dims}")

    return ds.transpose("y", "x", ...)


def load_decomposition(path):
    """Open a decomposition NetCDF written by ``save_decomposition``."""
    if not os.path.exists(path):
        raise FileNotFoundError(f"Decomposition output not found: {path}")
    ds = xr.open_dataset(path, decode_coords="all")
    ds = validate_decomposition(ds)
    logger.info(
        f"📦 Loaded decomposition {path}: grid {grid_shape(ds)}, "
        f"{ds.sizes['time']} time steps, {ds.sizes['slot']} change slots"
    )
    return ds


def save_decomposition(ds, path):
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    validate_decomposition(ds).to_netcdf(path)
    logger.info(f"✅ Saved decomposition output to {path}")


def template_from_decomposition(ds):
    """2-D grid carrying the decomposition's geometry."""
    return as_template(ds["cp_time"])


def valid_pixel_mask(ds):
    """Pixels holding any present value in the series or the change event slots."""
    present = None
    for name in SERIES_VARS + EVENT_VARS:
        depth = "time" if name in SERIES_VARS else "slot"
        has_value = ds[name].notnull().any(dim=depth).transpose("y", "x").values
        present = has_value if present is None else present | has_value
    return present
