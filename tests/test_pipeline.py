"""End-to-end runs of the pipeline command line."""

from __future__ import annotations

import pandas as pd
import pytest
import rasterio
import yaml

import pipeline
from change_summary.decomposition import save_decomposition
from change_summary.selection import SUMMARY_FIELDS


@pytest.fixture
def workspace(tmp_path, monkeypatch, scenario_ds, center):
    monkeypatch.chdir(tmp_path)
    save_decomposition(scenario_ds, tmp_path / "decomposition.nc")

    x, y = center(1, 1)
    config = {
        "paths": {
            "decomposition": str(tmp_path / "decomposition.nc"),
            "output_dir": str(tmp_path / "results"),
        },
        "summary": {"n_jobs": 1},
        "query_points": {
            "points": [
                {"x": float(x), "y": float(y), "label": "site_a"},
                {"x": 0.0, "y": 0.0, "label": "far_away"},
            ]
        },
    }
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(config))
    return tmp_path, path


def test_full_run_writes_rasters_and_tables(workspace):
    root, config_path = workspace

    assert pipeline.main(["--config", str(config_path)]) == 0

    results = root / "results"
    for field in SUMMARY_FIELDS:
        assert (results / f"{field}.tif").exists()

    events = pd.read_csv(results / "change_events.csv")
    assert events["label"].tolist() == ["site_a"]
    assert events["probability"].tolist() == [0.95]

    series = pd.read_csv(results / "reconstructed_series.csv")
    assert set(series["label"]) == {"site_a"}

    unresolved = pd.read_csv(results / "unresolved_points.csv")
    assert unresolved["label"].tolist() == ["far_away"]

    with rasterio.open(results / "recent_yr.tif") as src:
        assert src.tags()["metadata.period"] == "1.0"


def test_p_min_flag_filters_events(workspace):
    root, config_path = workspace

    assert pipeline.main(["--config", str(config_path), "--steps", "export", "--p-min", "0.99"]) == 0

    events = pd.read_csv(root / "results" / "change_events.csv")
    assert events.empty
    assert not (root / "results" / "recent_yr.tif").exists()


def test_missing_decomposition_fails(workspace):
    root, config_path = workspace
    (root / "decomposition.nc").unlink()
    assert pipeline.main(["--config", str(config_path)]) == 1


def test_invalid_config_fails(workspace):
    _, config_path = workspace
    assert pipeline.main(["--config", str(config_path), "--p-min", "2"]) == 1


def _with_template(config_path, template_path):
    config = yaml.safe_load(config_path.read_text())
    config["paths"]["template"] = str(template_path)
    config_path.write_text(yaml.safe_dump(config))


def test_summarize_against_matching_template(workspace, template):
    root, config_path = workspace
    template.rio.to_raster(root / "template.tif")
    _with_template(config_path, root / "template.tif")

    assert pipeline.main(["--config", str(config_path), "--steps", "summarize"]) == 0
    assert (root / "results" / "biggest_pr.tif").exists()


def test_template_shape_mismatch_writes_nothing(workspace, make_template):
    root, config_path = workspace
    make_template(2, 3).rio.to_raster(root / "template.tif")
    _with_template(config_path, root / "template.tif")

    assert pipeline.main(["--config", str(config_path), "--steps", "summarize"]) == 1
    assert list((root / "results").glob("*.tif")) == []
