#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Utility functions for the raster algebra walkthrough.

This module provides common helpers used across the processing steps and
plots: timing and value scaling for display.
"""
import numpy as np
import time
import functools
from typing import Callable, Optional, Tuple

from raster_algebra.core.logging_config import get_module_logger

# Initialize logger
logger = get_module_logger(__name__)


def timer(func: Callable) -> Callable:
    """
    Decorator to time function execution.

    Parameters
    ----------
    func : Callable
        Function to time.

    Returns
    -------
    Callable
        Wrapped function with timing.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.time()
        result = func(*args, **kwargs)
        elapsed = time.time() - start_time
        logger.debug(f"Function {func.__name__} took {elapsed:.2f} seconds to run")
        return result
    return wrapper


def normalize_array(
    array: np.ndarray,
    min_val: Optional[float] = None,
    max_val: Optional[float] = None,
    clip: bool = True
) -> np.ndarray:
    """
    Normalize array to range [0, 1].

    Parameters
    ----------
    array : np.ndarray
        Input array.
    min_val : float, optional
        Minimum value for normalization. If None, uses array minimum.
    max_val : float, optional
        Maximum value for normalization. If None, uses array maximum.
    clip : bool, optional
        Whether to clip values outside [min_val, max_val], by default True.

    Returns
    -------
    np.ndarray
        Normalized array.
    """
    if min_val is None:
        min_val = np.nanmin(array)
    if max_val is None:
        max_val = np.nanmax(array)

    # Check for division by zero
    if min_val == max_val:
        return np.zeros_like(array, dtype=np.float64)

    normalized = (array - min_val) / (max_val - min_val)

    if clip:
        normalized = np.clip(normalized, 0, 1)

    return normalized


def stretch(
    array: np.ndarray,
    method: Optional[str] = "lin",
    percentiles: Tuple[float, float] = (2, 98)
) -> np.ndarray:
    """
    Contrast stretch a band to [0, 1] for display.

    Parameters
    ----------
    array : np.ndarray
        Band values, NaN where nodata.
    method : str, optional
        'lin' clips to the given percentiles and scales linearly, 'hist'
        equalizes the histogram, None scales between min and max.
    percentiles : tuple, optional
        Lower and upper percentiles for the linear stretch, by default (2, 98).

    Returns
    -------
    np.ndarray
        Stretched values; NaN cells stay NaN.
    """
    valid = np.isfinite(array)
    if not valid.any():
        return np.full(array.shape, np.nan)

    if method is None:
        result = normalize_array(array)
    elif method == "lin":
        low, high = np.nanpercentile(array, percentiles)
        result = normalize_array(array, low, high)
    elif method == "hist":
        # Rank of each value within the sorted valid values
        sorted_values = np.sort(array[valid])
        ranks = np.searchsorted(sorted_values, array[valid], side='right')
        result = np.full(array.shape, np.nan)
        result[valid] = ranks / sorted_values.size
    else:
        raise ValueError(f"Unknown stretch method '{method}'. Options are: 'lin', 'hist', None")

    return np.where(valid, result, np.nan)
