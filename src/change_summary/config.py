# src/change_summary/config.py
"""
Pipeline configuration loaded from YAML.

Sections missing from the file are filled in from ``DEFAULT_CONFIG`` so older
config files keep working.
"""

import copy
import logging
from pathlib import Path

import yaml

from .decomposition import DecompositionSettings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "src/config.yaml"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

DEFAULT_CONFIG = {
    "paths": {
        "decomposition": "data/processed/decomposition.nc",
        "template": None,
        "output_dir": "results",
        "raster_prefix": "",
    },
    "summary": {
        "p_min": 0.5,
        "n_jobs": 0,
        "chunk_size": None,
    },
    "query_points": {
        "file": None,
        "source_crs": None,
        "points": [],
    },
    "decomposition": DecompositionSettings().to_dict(),
    "logging": {
        "level": "INFO",
    },
}


def _merge(defaults, overrides):
    merged = copy.deepcopy(defaults)
    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def validate_config(config):
    """Check value ranges and types; returns the config unchanged."""
    summary = config["summary"]

    p_min = summary["p_min"]
    if isinstance(p_min, bool) or not isinstance(p_min, (int, float)) or not 0.0 <= p_min <= 1.0:
        raise ValueError(f"summary.p_min must be a number within [0, 1], got {p_min!r}")

    n_jobs = summary["n_jobs"]
    if isinstance(n_jobs, bool) or not isinstance(n_jobs, int):
        raise ValueError(f"summary.n_jobs must be an integer, got {n_jobs!r}")

    chunk_size = summary.get("chunk_size")
    if chunk_size is not None and (not isinstance(chunk_size, int) or chunk_size < 1):
        raise ValueError(f"summary.chunk_size must be a positive integer, got {chunk_size!r}")

    if not isinstance(config["query_points"].get("points") or [], list):
        raise ValueError("query_points.points must be a list")

    DecompositionSettings.from_dict(config["decomposition"])

    level = str(config["logging"]["level"]).upper()
    if level not in LOG_LEVELS:
        raise ValueError(f"Unknown logging level: {config['logging']['level']!r}")

    return config


def load_config(path=DEFAULT_CONFIG_PATH, overrides=None):
    """
    Load the YAML config at ``path`` merged over the defaults.

    Parameters:
    -----------
    path : str or Path, optional
        Config file; ``None`` uses the defaults only.
    overrides : dict, optional
        Values applied on top of the file (e.g. from command line flags).

    Returns:
    --------
    dict
    """
    file_config = {}
    if path is not None:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file '{path}' not found!")
        with open(path, "r") as f:
            file_config = yaml.safe_load(f) or {}
        if not isinstance(file_config, dict):
            raise ValueError(f"Configuration file '{path}' must contain a mapping")

    config = _merge(DEFAULT_CONFIG, file_config)
    config = _merge(config, overrides)
    return validate_config(config)
