#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Input/output handling for the raster algebra walkthrough.

This module handles loading raster layers and band stacks, writing derived
rasters, coordinate mapping, the tabular (x, y, value) projection, and
exporting tables and run metadata.
"""
import os
import json
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union, Any
import numpy as np
import pandas as pd
import rasterio
from rasterio.errors import RasterioIOError
from datetime import datetime
from tqdm import tqdm

from raster_algebra.core.config import DEFAULT_NODATA_VALUE, EXPORT_CONFIG
from raster_algebra.core.logging_config import get_module_logger
from raster_algebra.core.raster import Raster, RasterData, RasterStack

# Initialize logger
logger = get_module_logger(__name__)


def _read_meta(src) -> Dict[str, Any]:
    """Collect the metadata dictionary for an open rasterio dataset."""
    nodata = src.nodata
    if nodata is None:
        nodata = DEFAULT_NODATA_VALUE
        logger.warning(f"No nodata value found, using default: {nodata}")

    return {
        'width': src.width,
        'height': src.height,
        'crs': src.crs.to_wkt() if src.crs else None,
        'bounds': src.bounds._asdict(),
        'nodata': nodata,
        'dtype': 'float64',
        'source_dtype': src.dtypes[0],
        'count': src.count,
        'driver': src.driver,
        'res': src.res,
        'source': str(src.name),
    }


def _valid_float(arr: np.ndarray, nodata: float) -> np.ndarray:
    """Convert a band to float64 with NaN in nodata cells."""
    values = arr.astype(np.float64)
    invalid = ~np.isfinite(values)
    if nodata is not None and not np.isnan(nodata):
        invalid |= values == nodata
    values[invalid] = np.nan
    return values


def load_raster(path: Union[str, Path], band: int = 1) -> RasterData:
    """
    Load a single raster layer from file.

    Parameters
    ----------
    path : str or Path
        Path to the raster file (GeoTIFF or any format rasterio reads).
    band : int, optional
        1-based band number to read, by default 1.

    Returns
    -------
    RasterData
        - 2D float array of values (NaN where nodata)
        - 2D boolean mask of valid data
        - Affine transform
        - Additional metadata dictionary
    """
    logger.info(f"Loading raster from {path}")

    try:
        with rasterio.open(path) as src:
            if not 1 <= band <= src.count:
                raise ValueError(f"Band {band} out of range 1..{src.count} in {path}")

            meta = _read_meta(src)
            arr = _valid_float(src.read(band), meta['nodata'])
            transform = src.transform
            description = src.descriptions[band - 1]
    except RasterioIOError as e:
        logger.error(f"Rasterio loading failed: {str(e)}")
        raise RuntimeError(f"Failed to load raster: {path}") from e

    meta['name'] = description or Path(path).stem
    meta['count'] = 1
    mask = np.isfinite(arr)

    logger.info(f"Loaded raster with shape {arr.shape}, {np.sum(mask)} valid cells")

    return RasterData(arr, mask, transform, meta)


def load_stack(
    path: Union[str, Path],
    bands: Optional[Sequence[int]] = None,
    progress: bool = False
) -> RasterStack:
    """
    Load a multi-band raster as a stack of co-registered layers.

    Parameters
    ----------
    path : str or Path
        Path to the multi-band raster file.
    bands : sequence of int, optional
        1-based band numbers to read. If None, all bands are read.
    progress : bool, optional
        Whether to show a progress bar while reading bands, by default False.

    Returns
    -------
    RasterStack
        Stack with one layer per band; band names come from the file's
        band descriptions, or ``band_<n>`` when absent.
    """
    logger.info(f"Loading raster stack from {path}")

    try:
        with rasterio.open(path) as src:
            indexes = list(bands) if bands is not None else list(src.indexes)
            for idx in indexes:
                if not 1 <= idx <= src.count:
                    raise ValueError(f"Band {idx} out of range 1..{src.count} in {path}")

            meta = _read_meta(src)
            arrays = []
            names = []
            for idx in tqdm(indexes, desc="Reading bands", disable=not progress):
                arrays.append(_valid_float(src.read(idx), meta['nodata']))
                names.append(src.descriptions[idx - 1] or f"band_{idx}")
            transform = src.transform
    except RasterioIOError as e:
        logger.error(f"Rasterio loading failed: {str(e)}")
        raise RuntimeError(f"Failed to load raster: {path}") from e

    array = np.stack(arrays)
    mask = np.isfinite(array)
    meta['count'] = len(indexes)

    logger.info(f"Loaded stack with {len(indexes)} bands of shape {array.shape[1:]}")

    return RasterStack(array, mask, transform, meta, names)


def write_raster(raster: Raster, output_path: Union[str, Path]) -> str:
    """
    Write a layer or stack to a GeoTIFF.

    Parameters
    ----------
    raster : RasterData or RasterStack
        Raster to write. Invalid cells are written as the nodata marker.
    output_path : str or Path
        Destination path.

    Returns
    -------
    str
        Path of the written file.
    """
    output_path = str(output_path)
    output_dir = os.path.dirname(output_path)
    if output_dir:
        os.makedirs(output_dir, exist_ok=True)

    if isinstance(raster, RasterStack):
        data = raster.array
        names = raster.names
    else:
        data = raster.array[np.newaxis, ...]
        names = [raster.name]

    nodata = raster.nodata
    if nodata is None or np.isnan(nodata):
        nodata = DEFAULT_NODATA_VALUE

    out = np.where(np.isfinite(data), data, nodata).astype(np.float32)

    with rasterio.open(
        output_path,
        'w',
        driver='GTiff',
        height=out.shape[1],
        width=out.shape[2],
        count=out.shape[0],
        dtype='float32',
        crs=raster.crs,
        transform=raster.transform,
        nodata=nodata
    ) as dst:
        dst.write(out)
        for i, name in enumerate(names, start=1):
            dst.set_band_description(i, name)

    logger.info(f"Saved raster to {output_path}")
    return output_path


def create_coordinates(raster: Raster) -> Dict[str, np.ndarray]:
    """
    Create x,y coordinates for the center of each cell in the raster.

    Parameters
    ----------
    raster : RasterData or RasterStack
        Raster whose grid is used.

    Returns
    -------
    dict
        Dictionary with 'x' and 'y' arrays matching the raster shape.
    """
    height, width = raster.shape
    transform = raster.transform

    # Create meshgrid of pixel indices, offset to cell centers
    cols, rows = np.meshgrid(np.arange(width) + 0.5, np.arange(height) + 0.5)

    # Apply affine transform to get real-world coordinates
    x_coords = transform.c + cols * transform.a + rows * transform.b
    y_coords = transform.f + cols * transform.d + rows * transform.e

    return {'x': x_coords, 'y': y_coords}


def to_dataframe(raster: Raster, na_rm: bool = True) -> pd.DataFrame:
    """
    Convert a raster to a row-per-cell table.

    Parameters
    ----------
    raster : RasterData or RasterStack
        Raster to convert.
    na_rm : bool, optional
        Drop cells that are invalid (in every band, for stacks), by default True.

    Returns
    -------
    pd.DataFrame
        Columns 'x', 'y' (cell centers), then one column per layer.
    """
    coordinates = create_coordinates(raster)
    df = pd.DataFrame({
        'x': coordinates['x'].ravel(),
        'y': coordinates['y'].ravel(),
    })

    if isinstance(raster, RasterStack):
        for name, values in zip(raster.names, raster.array):
            df[name] = values.ravel()
        valid = raster.mask.any(axis=0).ravel()
    else:
        df[raster.name] = raster.array.ravel()
        valid = raster.mask.ravel()

    if na_rm:
        df = df[valid].reset_index(drop=True)

    logger.debug(f"Tabulated {len(df)} cells into columns {list(df.columns)}")
    return df


def export_table(df: pd.DataFrame, output_path: Union[str, Path]) -> None:
    """
    Export a table to a CSV file.

    Parameters
    ----------
    df : pd.DataFrame
        Table to export.
    output_path : str or Path
        Path to output CSV file.
    """
    output_path = str(output_path)
    output_dir = os.path.dirname(output_path)
    if output_dir:
        os.makedirs(output_dir, exist_ok=True)

    float_format = EXPORT_CONFIG.get('float_format')
    chunk_size = EXPORT_CONFIG.get('chunk_size', 10000)

    if EXPORT_CONFIG.get('chunk_export', True) and len(df) > chunk_size:
        n_chunks = (len(df) + chunk_size - 1) // chunk_size

        logger.info(f"Exporting {len(df)} rows in {n_chunks} chunks of size {chunk_size}")

        # First chunk carries the header
        df.iloc[:chunk_size].to_csv(output_path, index=False, float_format=float_format)

        for i in range(1, n_chunks):
            start_idx = i * chunk_size
            end_idx = min((i + 1) * chunk_size, len(df))
            df.iloc[start_idx:end_idx].to_csv(
                output_path,
                mode='a',
                header=False,
                index=False,
                float_format=float_format
            )
    else:
        logger.info(f"Exporting {len(df)} rows to {output_path}")
        df.to_csv(output_path, index=False, float_format=float_format)


def raster_summary(raster: Raster) -> Dict[str, Any]:
    """
    Compute summary statistics for a layer or for each band of a stack.

    Parameters
    ----------
    raster : RasterData or RasterStack
        Raster to summarize.

    Returns
    -------
    dict
        Grid description plus per-layer statistics (min, max, mean, std,
        valid count). Layers without valid cells report None statistics.
    """
    layers = raster.layers() if isinstance(raster, RasterStack) else [raster]

    layer_stats = {}
    for layer in layers:
        valid_values = layer.array[layer.mask]
        if valid_values.size:
            stats = {
                'min': float(np.min(valid_values)),
                'max': float(np.max(valid_values)),
                'mean': float(np.mean(valid_values)),
                'std': float(np.std(valid_values)),
            }
        else:
            stats = {'min': None, 'max': None, 'mean': None, 'std': None}
        stats['valid_count'] = int(layer.mask.sum())
        stats['total_cells'] = int(layer.mask.size)
        stats['valid_percentage'] = float(layer.mask.sum() / layer.mask.size * 100)
        layer_stats[layer.name] = stats

    left, bottom, right, top = raster.bounds
    return {
        'shape': list(raster.shape),
        'count': len(layers),
        'res': list(raster.res),
        'extent': {'left': left, 'bottom': bottom, 'right': right, 'top': top},
        'crs': raster.crs,
        'nodata': raster.nodata,
        'layers': layer_stats,
    }


def log_raster_stats(raster: Raster, label: Optional[str] = None) -> None:
    """
    Log basic statistics about a layer or stack.

    Parameters
    ----------
    raster : RasterData or RasterStack
        Raster to describe.
    label : str, optional
        Prefix for the log lines.
    """
    summary = raster_summary(raster)
    prefix = f"[{label}] " if label else ""

    logger.info(f"{prefix}Raster shape: {tuple(summary['shape'])}, bands: {summary['count']}")
    logger.info(f"{prefix}Resolution: {summary['res'][0]:g} x {summary['res'][1]:g}")
    extent = summary['extent']
    logger.info(
        f"{prefix}Extent: {extent['left']:.2f}, {extent['bottom']:.2f}, "
        f"{extent['right']:.2f}, {extent['top']:.2f}"
    )
    logger.info(f"{prefix}Nodata: {summary['nodata']}")

    for name, stats in summary['layers'].items():
        if stats['mean'] is None:
            logger.info(f"{prefix}{name}: no valid cells")
            continue
        logger.info(
            f"{prefix}{name}: {stats['valid_count']} / {stats['total_cells']} valid "
            f"({stats['valid_percentage']:.2f}%), range {stats['min']:.4f} to {stats['max']:.4f}, "
            f"mean {stats['mean']:.4f} ± {stats['std']:.4f}"
        )


def save_metadata(
    rasters: Dict[str, Raster],
    parameters: Dict[str, Any],
    output_path: Union[str, Path]
) -> None:
    """
    Save metadata about the rasters produced by a run.

    Parameters
    ----------
    rasters : dict
        Mapping of step name to the raster produced by that step.
    parameters : dict
        Parameters used for the run.
    output_path : str or Path
        Path to output JSON file.
    """
    metadata = {
        'timestamp': datetime.now().isoformat(),
        'parameters': parameters,
        'rasters': {name: raster_summary(raster) for name, raster in rasters.items()},
    }

    output_dir = os.path.dirname(str(output_path))
    if output_dir:
        os.makedirs(output_dir, exist_ok=True)

    with open(output_path, 'w') as f:
        json.dump(metadata, f, indent=2, default=str)

    logger.info(f"Saved metadata to {output_path}")
