#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Configuration settings for the raster algebra walkthrough.

This module centralizes all configuration parameters used across the
processing steps, making it easier to modify settings in one place.
Defaults can be overridden per run with a YAML file (see ``load_config``).
"""
from typing import Dict, List, Union, Any, Optional
import copy
from pathlib import Path

import yaml

# General configuration
DEFAULT_NODATA_VALUE: float = -9999.0
DEFAULT_OUTPUT_DIR: Path = Path.cwd() / "output"

# Band configuration (1-based band indexes, Landsat TM ordering)
BAND_CONFIG: Dict[str, Any] = {
    "red": 3,
    "nir": 4,
    "rgb": [3, 2, 1],
}

# Aggregation configuration
AGGREGATION_CONFIG: Dict[str, Any] = {
    "factor": 3,
    "fun": "mean",   # Options: 'mean', 'sum', 'min', 'max', 'median'
    "na_rm": True,
}

# Resampling configuration (used when the mask grid differs from the image)
RESAMPLE_CONFIG: Dict[str, Any] = {
    "method": "nearest",  # Options: see operations.resample.RESAMPLING_METHODS
}

# Classification configuration
CLASSIFY_CONFIG: Dict[str, Any] = {
    "threshold": 0.3,
    "forest_value": 1,
}

# Plot configuration
PLOT_CONFIG: Dict[str, Any] = {
    "cmap": "terrain",
    "ndvi_cmap": "RdYlGn",
    "class_cmap": "Greens",
    "figsize": (10, 8),
    "dpi": 150,
    "stretch": "lin",       # Options: 'lin', 'hist', None
    "histogram_bins": 50,
}

# Export configuration
EXPORT_CONFIG: Dict[str, Any] = {
    "chunk_export": True,   # Export in chunks for large tables
    "chunk_size": 10000,    # Rows per chunk when exporting
    "float_format": None,
}

# Logging configuration
LOGGING_CONFIG: Dict[str, Any] = {
    "level": "INFO",  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    "log_to_file": False,
    "log_file": DEFAULT_OUTPUT_DIR / "walkthrough.log",
    "log_format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}

CONFIG_SECTIONS: Dict[str, Dict[str, Any]] = {
    "bands": BAND_CONFIG,
    "aggregation": AGGREGATION_CONFIG,
    "resample": RESAMPLE_CONFIG,
    "classify": CLASSIFY_CONFIG,
    "plot": PLOT_CONFIG,
    "export": EXPORT_CONFIG,
}


def load_config(path: Optional[Union[str, Path]] = None) -> Dict[str, Dict[str, Any]]:
    """
    Build the run configuration, optionally overridden from a YAML file.

    Parameters
    ----------
    path : str or Path, optional
        YAML file whose top-level keys name sections ('bands', 'aggregation',
        'resample', 'classify', 'plot', 'export'). If None, the defaults are
        returned.

    Returns
    -------
    dict
        Mapping of section name to a copy of its settings.
    """
    config = copy.deepcopy(CONFIG_SECTIONS)
    if path is None:
        return config

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path, 'r') as f:
        overrides = yaml.safe_load(f) or {}

    if not isinstance(overrides, dict):
        raise ValueError(f"Configuration file must contain a mapping: {path}")

    for section, values in overrides.items():
        if section not in config:
            raise ValueError(
                f"Unknown configuration section '{section}'. "
                f"Valid sections: {sorted(config)}"
            )
        if not isinstance(values, dict):
            raise ValueError(f"Section '{section}' must be a mapping")
        config[section].update(values)

    return config
