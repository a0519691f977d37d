#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Classification module.

Thresholding of index rasters (e.g. NDVI into a forest marker), interval
reclassification, and class area summaries.
"""
from typing import Any, Dict, Optional, Sequence
import numpy as np

from raster_algebra.core.config import CLASSIFY_CONFIG
from raster_algebra.core.logging_config import get_module_logger
from raster_algebra.core.raster import RasterData, from_array

# Initialize logger
logger = get_module_logger(__name__)


def threshold(
    raster: RasterData,
    threshold: float = CLASSIFY_CONFIG["threshold"],
    value: float = CLASSIFY_CONFIG["forest_value"],
    name: str = "forest"
) -> RasterData:
    """
    Mark cells at or above a threshold.

    Parameters
    ----------
    raster : RasterData
        Layer to classify, typically NDVI.
    threshold : float, optional
        Lower bound (inclusive) of the marked class, by default 0.3.
    value : float, optional
        Marker written to selected cells, by default 1.
    name : str, optional
        Name of the output layer, by default "forest".

    Returns
    -------
    RasterData
        Layer holding ``value`` where raster >= threshold and nodata
        everywhere else, including cells that were nodata in the input.
    """
    selected = raster.mask & (np.nan_to_num(raster.array, nan=-np.inf) >= threshold)
    result = np.where(selected, float(value), np.nan)

    logger.info(
        f"Threshold {threshold}: {int(selected.sum())} of {int(raster.mask.sum())} "
        f"valid cells classified as {name}"
    )

    return from_array(result, raster.transform, raster.meta, name=name)


def reclassify(
    raster: RasterData,
    breaks: Sequence[float],
    values: Sequence[float],
    right: bool = False,
    name: str = "class"
) -> RasterData:
    """
    Map value intervals to class values.

    Parameters
    ----------
    raster : RasterData
        Layer to classify.
    breaks : sequence of float
        Increasing interval edges.
    values : sequence of float
        Class values; one more than the number of breaks. values[0] is used
        below breaks[0] and values[-1] at or above breaks[-1].
    right : bool, optional
        Whether intervals include their right edge, as in ``numpy.digitize``.
    name : str, optional
        Name of the output layer.

    Returns
    -------
    RasterData
        Classified layer; nodata cells stay nodata.
    """
    breaks = np.asarray(breaks, dtype=np.float64)
    values = np.asarray(values, dtype=np.float64)
    if len(values) != len(breaks) + 1:
        raise ValueError(
            f"Expected {len(breaks) + 1} class values for {len(breaks)} breaks, got {len(values)}"
        )
    if np.any(np.diff(breaks) <= 0):
        raise ValueError("Breaks must be strictly increasing")

    indices = np.digitize(np.nan_to_num(raster.array), breaks, right=right)
    result = np.where(raster.mask, values[indices], np.nan)

    return from_array(result, raster.transform, raster.meta, name=name)


def class_area(
    raster: RasterData,
    value: float = CLASSIFY_CONFIG["forest_value"],
    reference: Optional[RasterData] = None
) -> Dict[str, Any]:
    """
    Count the cells carrying a class value and the area they cover.

    Parameters
    ----------
    raster : RasterData
        Classified layer.
    value : float, optional
        Class value to count, by default the forest marker.
    reference : RasterData, optional
        Layer whose valid cells form the denominator of 'fraction' (e.g. the
        NDVI that was thresholded). By default the valid cells of ``raster``.

    Returns
    -------
    dict
        'cells', 'area' (in squared map units), 'fraction' of reference cells.
    """
    selected = raster.mask & (raster.array == value)
    cells = int(selected.sum())
    cell_area = raster.res[0] * raster.res[1]
    valid = int((reference if reference is not None else raster).mask.sum())

    return {
        'cells': cells,
        'area': cells * cell_area,
        'fraction': cells / valid if valid else 0.0,
    }
