"""Tests for threshold filtering and the query point tables."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from change_summary.exceptions import CoordinateLookupError
from change_summary.export import (
    EVENT_COLUMNS,
    TREND_COLUMNS,
    build_event_table,
    build_trend_table,
    filter_events,
    write_tables,
)
from change_summary.lookup import ResolvedPoint

NAN = np.nan


def _points(*cells):
    return [ResolvedPoint(f"p{r}{c}", r, c, 0.0, 0.0) for r, c in cells]


class TestFilterEvents:

    def test_drops_missing_and_low_probability_slots(self):
        times, probs, mags = filter_events(
            [2001.0, 2005.0, 2010.0, NAN],
            [0.2, NAN, 0.5, NAN],
            [1.0, 2.0, 3.0, NAN],
            p_min=0.5,
        )
        np.testing.assert_array_equal(times, [2010.0])
        np.testing.assert_array_equal(probs, [0.5])
        np.testing.assert_array_equal(mags, [3.0])

    def test_kept_slots_stay_in_slot_order(self):
        times, _, _ = filter_events([2010.0, 2001.0, 2005.0], [0.9, 0.8, 0.7], [0, 0, 0], 0.0)
        np.testing.assert_array_equal(times, [2010.0, 2001.0, 2005.0])

    def test_missing_magnitude_is_kept_missing(self):
        _, _, mags = filter_events([2010.0], [0.9], [NAN], 0.5)
        assert np.isnan(mags[0])

    def test_higher_cutoff_gives_subset(self):
        rng = np.random.default_rng(3)
        times = rng.uniform(2000, 2020, 40)
        probs = rng.uniform(0, 1, 40)
        probs[::7] = NAN
        mags = rng.normal(size=40)

        for low, high in [(0.0, 0.1), (0.25, 0.5), (0.5, 0.9), (0.9, 1.0)]:
            kept_low = set(filter_events(times, probs, mags, low)[0])
            kept_high = set(filter_events(times, probs, mags, high)[0])
            assert kept_high <= kept_low

    @pytest.mark.parametrize("p_min", [-0.1, 1.01])
    def test_rejects_threshold_outside_unit_interval(self, p_min):
        with pytest.raises(ValueError):
            filter_events([2010.0], [0.9], [1.0], p_min)


class TestEventTable:

    def test_scenario_keeps_two_events(self, scenario_ds):
        points = _points((0, 0), (0, 1), (1, 0), (1, 1))

        table = build_event_table(scenario_ds, points, p_min=0.5)

        assert list(table.columns) == EVENT_COLUMNS
        assert table["label"].tolist() == ["p00", "p11"]
        assert table["time"].tolist() == [2010.0, 2016.0]
        assert table["probability"].tolist() == [0.9, 0.95]
        assert table["magnitude"].tolist() == [1.5, 2.0]

    def test_parallel_and_sequential_tables_agree(self, random_ds):
        points = _points(*[(r, c) for r in range(9) for c in range(7)])

        sequential = build_event_table(random_ds, points, 0.3, n_jobs=1, chunk_size=5)
        parallel = build_event_table(random_ds, points, 0.3, n_jobs=2, chunk_size=5)

        pd.testing.assert_frame_equal(sequential, parallel)

    def test_no_points_gives_empty_table(self, scenario_ds):
        table = build_event_table(scenario_ds, [], 0.5)
        assert table.empty
        assert list(table.columns) == EVENT_COLUMNS


class TestTrendTable:

    def test_every_time_step_is_exported_unfiltered(self, scenario_ds):
        table = build_trend_table(scenario_ds, _points((0, 1), (1, 1)))

        assert list(table.columns) == TREND_COLUMNS
        assert len(table) == 2 * scenario_ds.sizes["time"]
        p01 = table[table["label"] == "p01"]
        np.testing.assert_array_equal(p01["time"], scenario_ds["time"].values)
        np.testing.assert_allclose(p01["reconstructed"], p01["trend"] + p01["season"])
        assert p01["reconstructed"].tolist() == [0.5, 0.5, 2.25, 2.75]

    def test_missing_series_value_propagates(self, scenario_ds):
        ds = scenario_ds.copy(deep=True)
        ds["season"].values[0, 0, 2] = NAN

        table = build_trend_table(ds, _points((0, 0)))

        assert np.isnan(table["reconstructed"].iloc[2])
        assert table["trend"].iloc[2] == 2.0


class TestWriteTables:

    def test_writes_csvs_and_unresolved_report(self, scenario_ds, tmp_path):
        points = _points((0, 0), (1, 1))
        events = build_event_table(scenario_ds, points, 0.5)
        series = build_trend_table(scenario_ds, points)
        failures = [CoordinateLookupError("far_away", "outside the grid extent")]

        paths = write_tables(events, series, tmp_path, failures=failures)

        assert pd.read_csv(paths["events"])["label"].tolist() == ["p00", "p11"]
        assert len(pd.read_csv(paths["series"])) == 8
        unresolved = pd.read_csv(paths["unresolved"])
        assert unresolved["label"].tolist() == ["far_away"]

    def test_no_unresolved_report_without_failures(self, scenario_ds, tmp_path):
        paths = write_tables(pd.DataFrame(columns=EVENT_COLUMNS),
                             pd.DataFrame(columns=TREND_COLUMNS), tmp_path)
        assert "unresolved" not in paths
        assert not (tmp_path / "unresolved_points.csv").exists()
