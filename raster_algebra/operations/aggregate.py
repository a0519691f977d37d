#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Block aggregation module.

This module coarsens rasters by reducing non-overlapping blocks of cells
(e.g. 3x3 block means) and refines them again by cell repetition.
"""
import math
import warnings
from typing import Callable, Dict, Tuple, Union
import numpy as np
from affine import Affine

from raster_algebra.core.config import AGGREGATION_CONFIG
from raster_algebra.core.logging_config import get_module_logger
from raster_algebra.core.raster import Raster, RasterData, RasterStack, derive_meta
from raster_algebra.utils.utils import timer

# Initialize logger
logger = get_module_logger(__name__)

# Reducers ignoring NaN; all-NaN blocks come out as NaN
AGGREGATION_FUNCTIONS: Dict[str, Callable[..., np.ndarray]] = {
    'mean': np.nanmean,
    'sum': np.nansum,
    'min': np.nanmin,
    'max': np.nanmax,
    'median': np.nanmedian,
}

Factor = Union[int, Tuple[int, int]]


def _parse_factor(factor: Factor) -> Tuple[int, int]:
    if isinstance(factor, (tuple, list)):
        if len(factor) != 2:
            raise ValueError(f"Factor must be an int or a (rows, cols) pair, got {factor}")
        fy, fx = int(factor[0]), int(factor[1])
    else:
        fy = fx = int(factor)
    if fy < 1 or fx < 1:
        raise ValueError(f"Aggregation factor must be >= 1, got {factor}")
    return fy, fx


def _aggregate_array(
    values: np.ndarray,
    mask: np.ndarray,
    fy: int,
    fx: int,
    fun: str,
    na_rm: bool
) -> np.ndarray:
    """
    Reduce a 2D array block by block.

    Parameters
    ----------
    values : np.ndarray
        2D float array with NaN in invalid cells.
    mask : np.ndarray
        2D boolean mask of valid data.
    fy, fx : int
        Block height and width.
    fun : str
        Name of the reducer in AGGREGATION_FUNCTIONS.
    na_rm : bool
        Ignore invalid cells; otherwise any invalid cell poisons its block.

    Returns
    -------
    np.ndarray
        Array of shape (ceil(rows / fy), ceil(cols / fx)).
    """
    rows, cols = values.shape
    out_rows = math.ceil(rows / fy)
    out_cols = math.ceil(cols / fx)

    # Pad to whole blocks; padding cells are NaN and never count as invalid data
    padded = np.full((out_rows * fy, out_cols * fx), np.nan)
    padded[:rows, :cols] = np.where(mask, values, np.nan)
    blocks = padded.reshape(out_rows, fy, out_cols, fx)

    reducer = AGGREGATION_FUNCTIONS[fun]
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", category=RuntimeWarning)
        result = reducer(blocks, axis=(1, 3))

    valid_blocks = np.zeros((out_rows * fy, out_cols * fx), dtype=bool)
    valid_blocks[:rows, :cols] = mask
    valid_count = valid_blocks.reshape(out_rows, fy, out_cols, fx).sum(axis=(1, 3))

    # nansum returns 0 for empty blocks
    result = np.where(valid_count > 0, result, np.nan)

    if not na_rm:
        invalid_blocks = np.zeros((out_rows * fy, out_cols * fx), dtype=bool)
        invalid_blocks[:rows, :cols] = ~mask
        has_invalid = invalid_blocks.reshape(out_rows, fy, out_cols, fx).any(axis=(1, 3))
        result = np.where(has_invalid, np.nan, result)

    return result


@timer
def aggregate(
    raster: Raster,
    factor: Factor = AGGREGATION_CONFIG["factor"],
    fun: str = AGGREGATION_CONFIG["fun"],
    na_rm: bool = AGGREGATION_CONFIG["na_rm"]
) -> Raster:
    """
    Downsample a raster by reducing blocks of cells.

    Parameters
    ----------
    raster : RasterData or RasterStack
        Raster to aggregate. Stacks are aggregated band by band.
    factor : int or tuple, optional
        Block size in cells, either one value for both axes or (rows, cols).
        By default 3.
    fun : str, optional
        Reducer: 'mean', 'sum', 'min', 'max' or 'median'. By default 'mean'.
    na_rm : bool, optional
        Whether to ignore nodata cells inside a block, by default True.

    Returns
    -------
    RasterData or RasterStack
        Aggregated raster with ceil(rows / factor) x ceil(cols / factor) cells.
        The origin is kept and the cell size is multiplied by the factor; edge
        blocks that extend past the raster reduce only the cells they contain.

    Notes
    -----
    Blocks without any valid cell are nodata whatever the value of ``na_rm``.
    """
    if fun not in AGGREGATION_FUNCTIONS:
        raise ValueError(
            f"Unknown aggregation function '{fun}'. "
            f"Options are: {sorted(AGGREGATION_FUNCTIONS)}"
        )
    fy, fx = _parse_factor(factor)

    transform = raster.transform * Affine.scale(fx, fy)

    if isinstance(raster, RasterStack):
        arrays = np.stack([
            _aggregate_array(values, mask, fy, fx, fun, na_rm)
            for values, mask in zip(raster.array, raster.mask)
        ])
    else:
        arrays = _aggregate_array(raster.array, raster.mask, fy, fx, fun, na_rm)

    logger.info(
        f"Aggregated {tuple(raster.shape)} to {tuple(arrays.shape[-2:])} "
        f"with factor ({fy}, {fx}) using {fun}"
    )

    mask = np.isfinite(arrays)
    meta = derive_meta(raster.meta, arrays.shape, transform, dtype='float64')

    if isinstance(raster, RasterStack):
        return RasterStack(arrays, mask, transform, meta, list(raster.names))
    return RasterData(arrays, mask, transform, meta)


def disaggregate(raster: Raster, factor: Factor) -> Raster:
    """
    Refine a raster by splitting each cell into factor x factor cells.

    Parameters
    ----------
    raster : RasterData or RasterStack
        Raster to refine.
    factor : int or tuple
        Number of sub-cells per cell along each axis.

    Returns
    -------
    RasterData or RasterStack
        Raster whose values repeat those of the parent cells.
    """
    fy, fx = _parse_factor(factor)
    transform = raster.transform * Affine.scale(1.0 / fx, 1.0 / fy)

    arrays = np.repeat(np.repeat(raster.array, fy, axis=-2), fx, axis=-1)
    mask = np.repeat(np.repeat(raster.mask, fy, axis=-2), fx, axis=-1)
    meta = derive_meta(raster.meta, arrays.shape, transform)

    logger.info(f"Disaggregated {tuple(raster.shape)} to {tuple(arrays.shape[-2:])}")

    if isinstance(raster, RasterStack):
        return RasterStack(arrays, mask, transform, meta, list(raster.names))
    return RasterData(arrays, mask, transform, meta)
