#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Raster masking module.

Cells of a raster are set to nodata where a second, co-registered raster
(e.g. a county boundary raster) is nodata or carries one of a set of values.
"""
from typing import Optional, Sequence
import numpy as np

from raster_algebra.core.logging_config import get_module_logger
from raster_algebra.core.raster import Raster, RasterData, RasterStack, check_geometry

# Initialize logger
logger = get_module_logger(__name__)


def mask(
    raster: Raster,
    mask_layer: RasterData,
    inverse: bool = False,
    maskvalues: Optional[Sequence[float]] = None,
    updatevalue: float = np.nan
) -> Raster:
    """
    Mask a raster by another raster.

    Parameters
    ----------
    raster : RasterData or RasterStack
        Raster to mask. Every band of a stack is masked the same way.
    mask_layer : RasterData
        Layer on the same grid. By default its nodata cells are masked out.
    inverse : bool, optional
        Mask the cells that would otherwise be kept instead, by default False.
    maskvalues : sequence of float, optional
        Values of ``mask_layer`` to mask out in addition to its nodata cells.
    updatevalue : float, optional
        Value written to masked cells, by default NaN (nodata).

    Returns
    -------
    RasterData or RasterStack
        Masked raster. Cells that are not selected are unchanged.
    """
    check_geometry(raster, mask_layer)

    selected = ~mask_layer.mask
    if maskvalues is not None:
        selected |= np.isin(mask_layer.array, np.asarray(maskvalues, dtype=np.float64))
    if inverse:
        selected = ~selected

    arrays = raster.array.copy()
    if arrays.ndim == 3:
        arrays[:, selected] = updatevalue
    else:
        arrays[selected] = updatevalue

    new_mask = np.isfinite(arrays)

    logger.info(
        f"Masked {int(selected.sum())} of {selected.size} cells"
        f"{' (inverse)' if inverse else ''}"
    )

    meta = dict(raster.meta)
    if isinstance(raster, RasterStack):
        return RasterStack(arrays, new_mask, raster.transform, meta, list(raster.names))
    return RasterData(arrays, new_mask, raster.transform, meta)
