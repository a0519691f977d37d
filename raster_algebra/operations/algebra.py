#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Band algebra module.

This module combines co-registered layers cell by cell, including the
normalized difference and the Normalized Difference Vegetation Index (NDVI).
"""
from typing import Callable, Optional, Union
import numpy as np

from raster_algebra.core.config import BAND_CONFIG
from raster_algebra.core.logging_config import get_module_logger
from raster_algebra.core.raster import RasterData, RasterStack, check_geometry, from_array

# Initialize logger
logger = get_module_logger(__name__)


def band_math(
    func: Callable[..., np.ndarray],
    *rasters: RasterData,
    name: Optional[str] = None
) -> RasterData:
    """
    Apply a function elementwise over co-registered layers.

    Parameters
    ----------
    func : Callable
        Function taking one array per layer and returning an array of the
        same shape.
    *rasters : RasterData
        Input layers; all must share the grid of the first one.
    name : str, optional
        Name of the output layer.

    Returns
    -------
    RasterData
        Derived layer. A cell is nodata when it is nodata in any input or
        when the function returns a non-finite value for it.
    """
    if not rasters:
        raise ValueError("band_math requires at least one raster")

    first = rasters[0]
    for other in rasters[1:]:
        check_geometry(first, other)

    with np.errstate(divide='ignore', invalid='ignore'):
        result = func(*[r.array for r in rasters])

    result = np.asarray(result, dtype=np.float64)
    if result.shape != first.shape:
        raise ValueError(f"Function returned shape {result.shape}, expected {first.shape}")

    valid = np.logical_and.reduce([r.mask for r in rasters])
    result = np.where(valid, result, np.nan)

    return from_array(result, first.transform, first.meta, name=name or func.__name__)


def normalized_difference(a: RasterData, b: RasterData, name: str = "normalized_difference") -> RasterData:
    """
    Compute (a - b) / (a + b) cell by cell.

    Cells where a + b is zero are nodata.
    """
    def _nd(x, y):
        denominator = x + y
        return np.where(denominator == 0, np.nan, (x - y) / denominator)

    return band_math(_nd, a, b, name=name)


def ndvi(
    stack: RasterStack,
    red: Union[int, str] = BAND_CONFIG["red"],
    nir: Union[int, str] = BAND_CONFIG["nir"]
) -> RasterData:
    """
    Compute the Normalized Difference Vegetation Index.

    NDVI = (NIR - Red) / (NIR + Red)

    Parameters
    ----------
    stack : RasterStack
        Multi-band image holding the red and near-infrared bands.
    red : int or str, optional
        Red band number (1-based) or name, by default from BAND_CONFIG.
    nir : int or str, optional
        Near-infrared band number (1-based) or name, by default from BAND_CONFIG.

    Returns
    -------
    RasterData
        NDVI layer. Values lie in [-1, 1] for non-negative reflectances with
        a non-zero sum.
    """
    red_band = stack.band(red)
    nir_band = stack.band(nir)
    logger.info(f"Computing NDVI from NIR '{nir_band.name}' and red '{red_band.name}'")

    result = normalized_difference(nir_band, red_band, name="ndvi")

    valid_values = result.array[result.mask]
    if valid_values.size:
        logger.info(
            f"NDVI range {valid_values.min():.4f} to {valid_values.max():.4f}, "
            f"mean {valid_values.mean():.4f}"
        )
    else:
        logger.warning("NDVI has no valid cells")

    return result
