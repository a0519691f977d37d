#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Test suite for raster input/output and the tabular projection.
"""

import os
import json
import tempfile
import unittest
from unittest import mock

import numpy as np
import pandas as pd

from raster_algebra.core import io
from synthetic import (
    NODATA, TRANSFORM, create_synthetic_stack, create_county_mask,
    save_synthetic_raster, make_layer
)


class TestLoading(unittest.TestCase):
    """Test reading GeoTIFFs."""

    def setUp(self):
        """Set up test fixtures."""
        self.tmp = tempfile.TemporaryDirectory()
        self.bands = create_synthetic_stack(shape=(12, 15), seed=3)
        self.image_path = save_synthetic_raster(
            os.path.join(self.tmp.name, "image.tif"),
            self.bands,
            descriptions=("blue", "green", "red", "nir")
        )

    def tearDown(self):
        self.tmp.cleanup()

    def test_load_stack(self):
        stack = io.load_stack(self.image_path)
        self.assertEqual(stack.count, 4)
        self.assertEqual(stack.shape, (12, 15))
        self.assertEqual(stack.names, ["blue", "green", "red", "nir"])
        self.assertEqual(stack.transform, TRANSFORM)
        self.assertEqual(stack.nodata, NODATA)
        self.assertIsNotNone(stack.crs)
        self.assertEqual(stack.array.dtype, np.float64)
        self.assertEqual(stack.meta['dtype'], 'float64')
        self.assertEqual(stack.meta['source_dtype'], 'float32')

        missing = self.bands == NODATA
        np.testing.assert_array_equal(stack.mask, ~missing)
        self.assertTrue(np.all(np.isnan(stack.array[missing])))
        np.testing.assert_allclose(stack.array[~missing], self.bands[~missing].astype(np.float64))

    def test_load_stack_selected_bands(self):
        stack = io.load_stack(self.image_path, bands=[4, 3])
        self.assertEqual(stack.names, ["nir", "red"])
        self.assertEqual(stack.meta['count'], 2)

    def test_load_raster_band(self):
        layer = io.load_raster(self.image_path, band=4)
        self.assertEqual(layer.name, "nir")
        self.assertEqual(layer.shape, (12, 15))

    def test_band_out_of_range(self):
        with self.assertRaises(ValueError):
            io.load_raster(self.image_path, band=5)
        with self.assertRaises(ValueError):
            io.load_stack(self.image_path, bands=[1, 9])

    def test_missing_file(self):
        with self.assertRaises(RuntimeError):
            io.load_raster(os.path.join(self.tmp.name, "missing.tif"))

    def test_default_nodata(self):
        path = save_synthetic_raster(
            os.path.join(self.tmp.name, "no_nodata.tif"),
            np.ones((4, 4), dtype=np.float32),
            nodata=None
        )
        with self.assertLogs("raster_algebra", level="WARNING"):
            layer = io.load_raster(path)
        self.assertEqual(layer.nodata, -9999.0)
        self.assertTrue(layer.mask.all())
        self.assertEqual(layer.name, "no_nodata")


class TestWriting(unittest.TestCase):
    """Test writing derived rasters."""

    def setUp(self):
        """Set up test fixtures."""
        self.tmp = tempfile.TemporaryDirectory()

    def tearDown(self):
        self.tmp.cleanup()

    def test_write_layer(self):
        values = np.array([[0.1, np.nan], [0.5, 0.9]])
        layer = make_layer(values, name="ndvi")
        path = io.write_raster(layer, os.path.join(self.tmp.name, "out", "ndvi.tif"))

        loaded = io.load_raster(path)
        self.assertEqual(loaded.name, "ndvi")
        np.testing.assert_array_equal(loaded.mask, [[True, False], [True, True]])
        np.testing.assert_allclose(loaded.array[loaded.mask], values[np.isfinite(values)], rtol=1e-6)
        self.assertEqual(loaded.transform, TRANSFORM)

    def test_write_stack(self):
        bands = create_synthetic_stack(shape=(6, 6), seed=5)
        image_path = save_synthetic_raster(os.path.join(self.tmp.name, "image.tif"), bands)
        stack = io.load_stack(image_path)

        path = io.write_raster(stack, os.path.join(self.tmp.name, "copy.tif"))
        copy = io.load_stack(path)
        self.assertEqual(copy.count, 4)
        self.assertEqual(copy.names, stack.names)
        np.testing.assert_array_equal(copy.mask, stack.mask)


class TestTabular(unittest.TestCase):
    """Test the tabular projection and exports."""

    def setUp(self):
        """Set up test fixtures."""
        self.tmp = tempfile.TemporaryDirectory()
        values = np.arange(12, dtype=np.float64).reshape(3, 4)
        values[1, 2] = np.nan
        self.layer = make_layer(values, name="ndvi")

    def tearDown(self):
        self.tmp.cleanup()

    def test_coordinates_are_cell_centers(self):
        coords = io.create_coordinates(self.layer)
        self.assertEqual(coords['x'].shape, (3, 4))
        self.assertAlmostEqual(coords['x'][0, 0], 500015.0)
        self.assertAlmostEqual(coords['y'][0, 0], 3999985.0)
        self.assertAlmostEqual(coords['x'][2, 3], 500105.0)
        self.assertAlmostEqual(coords['y'][2, 3], 3999925.0)

    def test_to_dataframe(self):
        df = io.to_dataframe(self.layer)
        self.assertEqual(list(df.columns), ['x', 'y', 'ndvi'])
        self.assertEqual(len(df), int(self.layer.mask.sum()))
        self.assertFalse(df['ndvi'].isna().any())

        full = io.to_dataframe(self.layer, na_rm=False)
        self.assertEqual(len(full), 12)
        self.assertEqual(int(full['ndvi'].isna().sum()), 1)

    def test_stack_to_dataframe(self):
        bands = create_synthetic_stack(shape=(5, 5), seed=1)
        path = save_synthetic_raster(os.path.join(self.tmp.name, "image.tif"), bands)
        stack = io.load_stack(path)
        df = io.to_dataframe(stack)
        self.assertEqual(list(df.columns), ['x', 'y', 'band_1', 'band_2', 'band_3', 'band_4'])
        self.assertEqual(len(df), int(stack.mask.any(axis=0).sum()))

    def test_export_table_in_chunks(self):
        df = io.to_dataframe(self.layer)
        path = os.path.join(self.tmp.name, "tables", "ndvi.csv")
        with mock.patch.dict(io.EXPORT_CONFIG, {'chunk_export': True, 'chunk_size': 4}):
            io.export_table(df, path)

        loaded = pd.read_csv(path)
        self.assertEqual(len(loaded), len(df))
        np.testing.assert_allclose(loaded['ndvi'].values, df['ndvi'].values)

    def test_summary_and_metadata(self):
        summary = io.raster_summary(self.layer)
        stats = summary['layers']['ndvi']
        self.assertEqual(stats['valid_count'], 11)
        self.assertEqual(stats['min'], 0.0)
        self.assertEqual(stats['max'], 11.0)

        path = os.path.join(self.tmp.name, "report.json")
        io.save_metadata({'ndvi': self.layer}, {'threshold': 0.3}, path)
        with open(path) as f:
            report = json.load(f)
        self.assertEqual(report['parameters']['threshold'], 0.3)
        self.assertEqual(report['rasters']['ndvi']['shape'], [3, 4])

    def test_summary_without_valid_cells(self):
        layer = make_layer(np.full((2, 2), np.nan), name="empty")
        stats = io.raster_summary(layer)['layers']['empty']
        self.assertIsNone(stats['mean'])
        self.assertEqual(stats['valid_count'], 0)

    def test_load_county_mask(self):
        county = create_county_mask((10, 10))
        path = save_synthetic_raster(os.path.join(self.tmp.name, "county.tif"), county)

        layer = io.load_raster(path)
        np.testing.assert_array_equal(layer.mask, county == 1)
        self.assertTrue(np.all(layer.array[layer.mask] == 1.0))
        self.assertTrue(np.all(np.isnan(layer.array[~layer.mask])))


if __name__ == '__main__':
    unittest.main()
