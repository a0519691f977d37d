#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Raster containers shared by the walkthrough steps.

A single layer is carried as ``RasterData`` and a multi-band image as
``RasterStack``. Both are named tuples, so they unpack like the plain
``(array, mask, transform, meta)`` tuples used throughout the pipeline.
Invalid cells are stored as NaN in float arrays and as False in the mask.
"""
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple, Union, Any
import numpy as np
from affine import Affine
from rasterio.crs import CRS
from rasterio.transform import array_bounds

from raster_algebra.core.logging_config import get_module_logger

# Initialize logger
logger = get_module_logger(__name__)


class RasterData(NamedTuple):
    """A single raster layer: values, validity mask, geotransform and metadata."""

    array: np.ndarray
    mask: np.ndarray
    transform: Affine
    meta: Dict[str, Any]

    @property
    def shape(self) -> Tuple[int, int]:
        return self.array.shape

    @property
    def res(self) -> Tuple[float, float]:
        return abs(self.transform.a), abs(self.transform.e)

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        return array_bounds(self.shape[0], self.shape[1], self.transform)

    @property
    def crs(self) -> Optional[str]:
        return self.meta.get('crs')

    @property
    def nodata(self) -> Optional[float]:
        return self.meta.get('nodata')

    @property
    def name(self) -> str:
        return self.meta.get('name') or 'value'


class RasterStack(NamedTuple):
    """Co-registered bands sharing one grid, stored as (bands, rows, cols)."""

    array: np.ndarray
    mask: np.ndarray
    transform: Affine
    meta: Dict[str, Any]
    names: List[str]

    @property
    def count(self) -> int:
        return self.array.shape[0]

    @property
    def shape(self) -> Tuple[int, int]:
        return self.array.shape[1:]

    @property
    def res(self) -> Tuple[float, float]:
        return abs(self.transform.a), abs(self.transform.e)

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        return array_bounds(self.shape[0], self.shape[1], self.transform)

    @property
    def crs(self) -> Optional[str]:
        return self.meta.get('crs')

    @property
    def nodata(self) -> Optional[float]:
        return self.meta.get('nodata')

    def _index(self, key: Union[int, str]) -> int:
        """Translate a 1-based band number or a band name into an array index."""
        if isinstance(key, str):
            if key not in self.names:
                raise ValueError(f"Unknown band '{key}'. Available bands: {self.names}")
            return self.names.index(key)
        if not 1 <= key <= self.count:
            raise ValueError(f"Band index {key} out of range 1..{self.count}")
        return key - 1

    def band(self, key: Union[int, str]) -> RasterData:
        """
        Extract one band as a layer.

        Parameters
        ----------
        key : int or str
            1-based band number or band name.

        Returns
        -------
        RasterData
            The selected band.
        """
        idx = self._index(key)
        meta = dict(self.meta, name=self.names[idx], count=1)
        return RasterData(self.array[idx].copy(), self.mask[idx].copy(), self.transform, meta)

    def select(self, keys: Sequence[Union[int, str]]) -> "RasterStack":
        """Return a new stack holding only the given bands, in the given order."""
        indexes = [self._index(k) for k in keys]
        if not indexes:
            raise ValueError("At least one band must be selected")
        meta = dict(self.meta, count=len(indexes))
        return RasterStack(
            self.array[indexes].copy(),
            self.mask[indexes].copy(),
            self.transform,
            meta,
            [self.names[i] for i in indexes],
        )

    def layers(self) -> List[RasterData]:
        return [self.band(i + 1) for i in range(self.count)]


Raster = Union[RasterData, RasterStack]


def derive_meta(
    meta: Dict[str, Any],
    shape: Tuple[int, ...],
    transform: Affine,
    **updates: Any
) -> Dict[str, Any]:
    """
    Metadata for a raster derived onto a (possibly) new grid.

    Parameters
    ----------
    meta : dict
        Metadata of the source raster.
    shape : tuple
        Shape of the derived array; the last two entries are rows, columns.
    transform : Affine
        Geotransform of the derived grid.
    **updates
        Extra keys to set (e.g. name, dtype).

    Returns
    -------
    dict
        A new metadata dictionary.
    """
    height, width = shape[-2:]
    left, bottom, right, top = array_bounds(height, width, transform)
    new_meta = dict(meta)
    new_meta.update({
        'width': int(width),
        'height': int(height),
        'res': (abs(transform.a), abs(transform.e)),
        'bounds': {'left': left, 'bottom': bottom, 'right': right, 'top': top},
    })
    new_meta.update(updates)
    return new_meta


def from_array(
    array: np.ndarray,
    transform: Affine,
    meta: Optional[Dict[str, Any]] = None,
    name: Optional[str] = None,
    nodata: Optional[float] = None
) -> RasterData:
    """
    Build a derived layer from an array.

    Parameters
    ----------
    array : np.ndarray
        2D array of values.
    transform : Affine
        Geotransform of the grid.
    meta : dict, optional
        Metadata to inherit (CRS, nodata marker, ...).
    name : str, optional
        Layer name.
    nodata : float, optional
        Marker value to treat as invalid in addition to NaN.

    Returns
    -------
    RasterData
        Float64 layer with NaN in invalid cells.
    """
    arr = np.array(array, dtype=np.float64)
    if arr.ndim != 2:
        raise ValueError(f"Expected a 2D array, got shape {arr.shape}")

    invalid = ~np.isfinite(arr)
    if nodata is not None:
        invalid |= arr == nodata
    arr[invalid] = np.nan

    updates = {'dtype': 'float64', 'count': 1}
    if name is not None:
        updates['name'] = name
    new_meta = derive_meta(meta or {}, arr.shape, transform, **updates)
    return RasterData(arr, ~invalid, transform, new_meta)


def stack_from_layers(layers: Sequence[RasterData], names: Optional[List[str]] = None) -> RasterStack:
    """Combine co-registered layers into a stack."""
    if not layers:
        raise ValueError("Cannot build a stack from zero layers")
    first = layers[0]
    for layer in layers[1:]:
        check_geometry(first, layer)
    names = names or [layer.name for layer in layers]
    meta = dict(first.meta, count=len(layers))
    meta.pop('name', None)
    return RasterStack(
        np.stack([layer.array for layer in layers]),
        np.stack([layer.mask for layer in layers]),
        first.transform,
        meta,
        list(names),
    )


def _crs_equal(a: Optional[str], b: Optional[str]) -> bool:
    # Grids without a CRS are compared by shape and transform only
    if a is None or b is None:
        return True
    return CRS.from_user_input(a) == CRS.from_user_input(b)


def geometry_mismatches(a: Raster, b: Raster, tolerance: float = 1e-9) -> List[str]:
    """List the ways in which two rasters' grids differ (empty when they match)."""
    problems = []
    if tuple(a.shape) != tuple(b.shape):
        problems.append(f"dimensions differ: {tuple(a.shape)} vs {tuple(b.shape)}")
    if not a.transform.almost_equals(b.transform, precision=tolerance):
        problems.append(f"transforms differ: {tuple(a.transform)[:6]} vs {tuple(b.transform)[:6]}")
    if not _crs_equal(a.crs, b.crs):
        problems.append("coordinate reference systems differ")
    return problems


def same_geometry(a: Raster, b: Raster, tolerance: float = 1e-9) -> bool:
    return not geometry_mismatches(a, b, tolerance)


def check_geometry(a: Raster, b: Raster, tolerance: float = 1e-9) -> None:
    """
    Ensure two rasters share grid geometry.

    Raises
    ------
    ValueError
        If dimensions, transform or CRS differ.
    """
    problems = geometry_mismatches(a, b, tolerance)
    if problems:
        raise ValueError("Rasters do not share grid geometry: " + "; ".join(problems))
