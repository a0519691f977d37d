#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Resampling and cropping module.

Rasters that do not share a grid are brought onto a common one before they
are combined: ``resample`` warps a raster onto the grid of a target raster,
and ``crop`` clips a raster to a bounding box.
"""
import math
from typing import Dict, Sequence
import numpy as np
from affine import Affine
from rasterio.crs import CRS
from rasterio.enums import Resampling
from rasterio.warp import reproject

from raster_algebra.core.config import RESAMPLE_CONFIG
from raster_algebra.core.logging_config import get_module_logger
from raster_algebra.core.raster import Raster, RasterData, RasterStack, derive_meta
from raster_algebra.utils.utils import timer

# Initialize logger
logger = get_module_logger(__name__)

RESAMPLING_METHODS: Dict[str, Resampling] = {
    'nearest': Resampling.nearest,
    'bilinear': Resampling.bilinear,
    'cubic': Resampling.cubic,
    'average': Resampling.average,
    'mode': Resampling.mode,
    'min': Resampling.min,
    'max': Resampling.max,
    'median': Resampling.med,
}


def _warp_band(
    values: np.ndarray,
    source: Raster,
    target: Raster,
    resampling: Resampling
) -> np.ndarray:
    destination = np.full(target.shape, np.nan, dtype=np.float64)
    src_crs = CRS.from_user_input(source.crs or target.crs)
    dst_crs = CRS.from_user_input(target.crs or source.crs)
    reproject(
        source=np.ascontiguousarray(values, dtype=np.float64),
        destination=destination,
        src_transform=source.transform,
        src_crs=src_crs,
        src_nodata=np.nan,
        dst_transform=target.transform,
        dst_crs=dst_crs,
        dst_nodata=np.nan,
        resampling=resampling,
    )
    return destination


@timer
def resample(
    raster: Raster,
    target: Raster,
    method: str = RESAMPLE_CONFIG["method"]
) -> Raster:
    """
    Warp a raster onto the grid of another raster.

    Parameters
    ----------
    raster : RasterData or RasterStack
        Raster to resample.
    target : RasterData or RasterStack
        Raster providing the destination grid (shape, transform, CRS).
    method : str, optional
        Resampling method, one of RESAMPLING_METHODS. By default 'nearest',
        which keeps class values of categorical layers such as masks intact.

    Returns
    -------
    RasterData or RasterStack
        Raster on the target grid. Target cells not covered by the source
        are nodata.
    """
    if method not in RESAMPLING_METHODS:
        raise ValueError(
            f"Unknown resampling method '{method}'. "
            f"Options are: {sorted(RESAMPLING_METHODS)}"
        )
    if raster.crs is None and target.crs is None:
        raise ValueError("Resampling requires a coordinate reference system on at least one raster")

    resampling = RESAMPLING_METHODS[method]
    logger.info(
        f"Resampling {tuple(raster.shape)} at {raster.res} onto "
        f"{tuple(target.shape)} at {target.res} using {method}"
    )

    if isinstance(raster, RasterStack):
        arrays = np.stack([_warp_band(values, raster, target, resampling) for values in raster.array])
    else:
        arrays = _warp_band(raster.array, raster, target, resampling)

    mask = np.isfinite(arrays)
    meta = derive_meta(raster.meta, arrays.shape, target.transform, crs=target.crs or raster.crs)

    if isinstance(raster, RasterStack):
        return RasterStack(arrays, mask, target.transform, meta, list(raster.names))
    return RasterData(arrays, mask, target.transform, meta)


def crop(raster: Raster, bounds: Sequence[float]) -> Raster:
    """
    Clip a raster to a bounding box.

    Parameters
    ----------
    raster : RasterData or RasterStack
        Raster to clip.
    bounds : sequence of float
        (left, bottom, right, top) in the raster's coordinate system.

    Returns
    -------
    RasterData or RasterStack
        The cells of the raster whose footprint intersects the bounds.
    """
    left, bottom, right, top = bounds
    if left >= right or bottom >= top:
        raise ValueError(f"Invalid bounds: {tuple(bounds)}")

    r_left, r_bottom, r_right, r_top = raster.bounds
    if left >= r_right or right <= r_left or bottom >= r_top or top <= r_bottom:
        raise ValueError(f"Bounds {tuple(bounds)} do not overlap the raster extent {raster.bounds}")

    height, width = raster.shape
    inverse = ~raster.transform
    col_a, row_a = inverse * (left, top)
    col_b, row_b = inverse * (right, bottom)

    # Snap outwards to whole cells, tolerating float noise on exact edges
    row_start = max(0, math.floor(min(row_a, row_b) + 1e-9))
    row_stop = min(height, math.ceil(max(row_a, row_b) - 1e-9))
    col_start = max(0, math.floor(min(col_a, col_b) + 1e-9))
    col_stop = min(width, math.ceil(max(col_a, col_b) - 1e-9))

    rows = slice(row_start, row_stop)
    cols = slice(col_start, col_stop)
    transform = raster.transform * Affine.translation(col_start, row_start)

    arrays = raster.array[..., rows, cols].copy()
    mask = raster.mask[..., rows, cols].copy()
    meta = derive_meta(raster.meta, arrays.shape, transform)

    logger.info(f"Cropped {tuple(raster.shape)} to {tuple(arrays.shape[-2:])}")

    if isinstance(raster, RasterStack):
        return RasterStack(arrays, mask, transform, meta, list(raster.names))
    return RasterData(arrays, mask, transform, meta)
