# src/change_summary/export.py
"""
Tabular export of change events and reconstructed series for query points.

Change events are filtered by a probability cutoff; the reconstructed
trend + season series is exported for every time step without filtering.
Both tables are keyed by the query point label.
"""

import logging
from pathlib import Path

import numpy as np
import pandas as pd

from .parallel import make_work_items, run_parallel

logger = logging.getLogger(__name__)

EVENT_COLUMNS = ["label", "time", "probability", "magnitude"]
TREND_COLUMNS = ["label", "time", "trend", "season", "reconstructed"]
UNRESOLVED_COLUMNS = ["label", "reason"]


def validate_threshold(p_min):
    p_min = float(p_min)
    if not 0.0 <= p_min <= 1.0:
        raise ValueError(f"p_min must be within [0, 1], got {p_min}")
    return p_min


def filter_events(times, probabilities, magnitudes, p_min):
    """
    Keep the event slots whose probability is present and at least ``p_min``.

    Dropped slots are removed, not nulled. Kept slots stay in slot order.

    Returns:
    --------
    tuple of np.ndarray
        (times, probabilities, magnitudes) of the kept slots.
    """
    p_min = validate_threshold(p_min)
    times, probabilities, magnitudes = (
        np.asarray(a, dtype=np.float64) for a in (times, probabilities, magnitudes)
    )
    if not times.shape == probabilities.shape == magnitudes.shape:
        raise ValueError("Event time/probability/magnitude arrays differ in shape")

    with np.errstate(invalid="ignore"):
        keep = ~np.isnan(probabilities) & (probabilities >= p_min)
    return times[keep], probabilities[keep], magnitudes[keep]


def _filter_block(times, probabilities, magnitudes, p_min):
    """Filter a block of points; returns (point offset, time, probability, magnitude) rows."""
    rows = []
    for offset in range(times.shape[0]):
        kept = filter_events(times[offset], probabilities[offset], magnitudes[offset], p_min)
        rows.extend((offset, t, p, m) for t, p, m in zip(*kept))
    return rows


def _point_values(ds, name, points):
    da = ds[name].transpose("y", "x", ...)
    rows = np.array([p.row for p in points], dtype=int)
    cols = np.array([p.col for p in points], dtype=int)
    return da.values[rows, cols]


def build_event_table(ds, points, p_min, n_jobs=1, chunk_size=64):
    """
    One row per retained (query point, slot) change event.

    Parameters:
    -----------
    ds : xr.Dataset
        Decomposition output (see ``decomposition``).
    points : list of ResolvedPoint
    p_min : float
        Probability cutoff in [0, 1].
    n_jobs : int
        Worker pool size.

    Returns:
    --------
    pd.DataFrame
        Columns ``EVENT_COLUMNS``, ordered by query point then slot.
    """
    p_min = validate_threshold(p_min)
    if not points:
        return pd.DataFrame(columns=EVENT_COLUMNS)

    arrays = [_point_values(ds, name, points) for name in ("cp_time", "cp_prob", "cp_mag")]
    items = make_work_items(arrays, chunk_size)
    blocks = run_parallel(_filter_block, items, n_jobs=n_jobs, args=(p_min,))

    records = []
    for item, rows in zip(items, blocks):
        for offset, t, p, m in rows:
            records.append((points[item.start + offset].label, t, p, m))

    table = pd.DataFrame.from_records(records, columns=EVENT_COLUMNS)
    logger.info(f"📊 Kept {len(table)} change events with probability >= {p_min}")
    return table


def build_trend_table(ds, points):
    """Full reconstructed trend + season series for every query point."""
    if not points:
        return pd.DataFrame(columns=TREND_COLUMNS)

    times = ds["time"].values
    trend = _point_values(ds, "trend", points)
    season = _point_values(ds, "season", points)

    frames = []
    for i, point in enumerate(points):
        frames.append(pd.DataFrame({
            "label": point.label,
            "time": times,
            "trend": trend[i],
            "season": season[i],
            "reconstructed": trend[i] + season[i],
        }))
    return pd.concat(frames, ignore_index=True)[TREND_COLUMNS]


def unresolved_table(failures):
    return pd.DataFrame(
        [(f.label, f.reason) for f in failures], columns=UNRESOLVED_COLUMNS
    )


def write_tables(events, trends, output_dir, failures=None):
    """Write the export tables as CSV; returns the written paths."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    paths = {
        "events": output_dir / "change_events.csv",
        "series": output_dir / "reconstructed_series.csv",
    }
    events.to_csv(paths["events"], index=False)
    trends.to_csv(paths["series"], index=False)

    if failures:
        paths["unresolved"] = output_dir / "unresolved_points.csv"
        unresolved_table(failures).to_csv(paths["unresolved"], index=False)
        logger.warning(f"⚠️ {len(failures)} query point(s) could not be resolved, see {paths['unresolved']}")

    for name, path in paths.items():
        logger.info(f"💾 Wrote {name} table to {path}")
    return paths
