# src/change_summary/selection.py
"""
Change selection: reduce a pixel's K change-event slots to its summary values.

For every pixel two slots are selected independently:

- most recent: the slot with the largest present change time
- most probable: the slot with the largest present change probability

Missing values are NaN. A pixel with no present key yields NaN for all three
fields of that selection, and the companion fields of a selected slot are
copied as-is, so a missing magnitude stays missing.

Ties on the selection key resolve to the lowest slot index. ``np.argmax``
returns the first maximum, and NaN keys are ranked below every present value
in the same way as ``np.nanargmax``.
"""

from typing import NamedTuple

import numpy as np

SUMMARY_FIELDS = (
    "recent_yr",
    "recent_pr",
    "recent_mg",
    "biggest_yr",
    "biggest_pr",
    "biggest_mg",
)


class PixelSummary(NamedTuple):
    recent_yr: float
    recent_pr: float
    recent_mg: float
    biggest_yr: float
    biggest_pr: float
    biggest_mg: float


def _event_arrays(times, probabilities, magnitudes):
    arrays = [np.asarray(a, dtype=np.float64) for a in (times, probabilities, magnitudes)]
    shapes = {a.shape for a in arrays}
    if len(shapes) != 1:
        raise ValueError(
            f"Event time/probability/magnitude arrays differ in shape: "
            f"{[a.shape for a in arrays]}"
        )
    if arrays[0].ndim != 2:
        raise ValueError(f"Expected (pixels, slots) event arrays, got shape {arrays[0].shape}")
    return arrays


def _select_slot(key):
    """Slot index of the first maximum present key per row, and which rows have one."""
    present = ~np.isnan(key)
    has_event = present.any(axis=1)
    ranked = np.where(present, key, -np.inf)
    # missing slots also rank as -inf, so only present slots may hold the maximum
    best = present & (ranked == ranked.max(axis=1, keepdims=True))
    return np.argmax(best, axis=1), has_event


def select_block(times, probabilities, magnitudes):
    """
    Summarize a block of pixels.

    Parameters:
    -----------
    times, probabilities, magnitudes : array-like
        (pixels, slots) arrays of change time, probability and magnitude.

    Returns:
    --------
    np.ndarray
        (pixels, 6) array with columns ordered as ``SUMMARY_FIELDS``.
    """
    times, probabilities, magnitudes = _event_arrays(times, probabilities, magnitudes)
    n_pixels = times.shape[0]
    summary = np.full((n_pixels, len(SUMMARY_FIELDS)), np.nan)
    if times.shape[1] == 0:
        return summary

    for offset, key in ((0, times), (3, probabilities)):
        slot, has_event = _select_slot(key)
        rows = np.flatnonzero(has_event)
        picked = slot[rows]
        summary[rows, offset] = times[rows, picked]
        summary[rows, offset + 1] = probabilities[rows, picked]
        summary[rows, offset + 2] = magnitudes[rows, picked]

    return summary


def select_changes(times, probabilities, magnitudes):
    """Summarize one pixel's event slots into a ``PixelSummary``."""
    times, probabilities, magnitudes = (
        np.asarray(a, dtype=np.float64).reshape(1, -1)
        for a in (times, probabilities, magnitudes)
    )
    row = select_block(times, probabilities, magnitudes)[0]
    return PixelSummary(*(float(v) for v in row))
