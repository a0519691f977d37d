#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Test suite for the raster operations: aggregation, resampling, masking,
band algebra and classification.
"""

import math
import unittest
import numpy as np
from affine import Affine

from raster_algebra.operations import aggregate, resample, mask, algebra, classify
from synthetic import TRANSFORM, make_layer, make_stack


class TestAggregate(unittest.TestCase):
    """Test block aggregation."""

    def setUp(self):
        """Set up test fixtures."""
        self.values = np.arange(100, dtype=np.float64).reshape(10, 10)
        self.layer = make_layer(self.values)

    def test_output_shape_is_ceiling_of_dimension(self):
        for rows, cols in [(10, 10), (9, 9), (7, 11), (1, 4)]:
            layer = make_layer(np.ones((rows, cols)))
            result = aggregate.aggregate(layer, factor=3)
            self.assertEqual(result.shape, (math.ceil(rows / 3), math.ceil(cols / 3)))

    def test_block_means(self):
        result = aggregate.aggregate(self.layer, factor=3, fun="mean")
        self.assertAlmostEqual(result.array[0, 0], 11.0)
        # Edge blocks only reduce the cells they contain
        self.assertAlmostEqual(result.array[0, 3], np.mean([9, 19, 29]))
        self.assertAlmostEqual(result.array[3, 3], 99.0)
        self.assertTrue(result.mask.all())

    def test_grid_geometry(self):
        result = aggregate.aggregate(self.layer, factor=3)
        self.assertEqual(result.res, (90.0, 90.0))
        self.assertEqual(result.transform.c, TRANSFORM.c)
        self.assertEqual(result.transform.f, TRANSFORM.f)
        self.assertEqual(result.meta['width'], 4)
        self.assertEqual(result.meta['height'], 4)

    def test_na_rm(self):
        values = self.values.copy()
        values[0, 0] = np.nan
        layer = make_layer(values)

        kept = aggregate.aggregate(layer, factor=3, na_rm=True)
        self.assertAlmostEqual(kept.array[0, 0], 99.0 / 8)

        dropped = aggregate.aggregate(layer, factor=3, na_rm=False)
        self.assertTrue(np.isnan(dropped.array[0, 0]))
        self.assertFalse(dropped.mask[0, 0])
        self.assertTrue(dropped.mask[1, 1])

    def test_empty_block_is_nodata(self):
        values = self.values.copy()
        values[0:3, 0:3] = np.nan
        result = aggregate.aggregate(make_layer(values), factor=3, fun="sum")
        self.assertTrue(np.isnan(result.array[0, 0]))
        self.assertFalse(result.mask[0, 0])

    def test_other_functions(self):
        self.assertAlmostEqual(aggregate.aggregate(self.layer, 3, fun="sum").array[0, 0], 99.0)
        self.assertAlmostEqual(aggregate.aggregate(self.layer, 3, fun="min").array[0, 0], 0.0)
        self.assertAlmostEqual(aggregate.aggregate(self.layer, 3, fun="max").array[0, 0], 22.0)
        self.assertAlmostEqual(aggregate.aggregate(self.layer, 3, fun="median").array[0, 0], 11.0)

    def test_rectangular_factor(self):
        result = aggregate.aggregate(self.layer, factor=(2, 5))
        self.assertEqual(result.shape, (5, 2))
        self.assertEqual(result.res, (150.0, 60.0))

    def test_factor_one_is_identity(self):
        result = aggregate.aggregate(self.layer, factor=1)
        np.testing.assert_array_equal(result.array, self.values)

    def test_invalid_arguments(self):
        with self.assertRaises(ValueError):
            aggregate.aggregate(self.layer, factor=0)
        with self.assertRaises(ValueError):
            aggregate.aggregate(self.layer, fun="mode")

    def test_stack(self):
        stack = make_stack(np.stack([self.values, self.values * 2]))
        result = aggregate.aggregate(stack, factor=3)
        self.assertEqual(result.array.shape, (2, 4, 4))
        self.assertEqual(result.names, stack.names)
        self.assertAlmostEqual(result.array[1, 0, 0], 22.0)

    def test_disaggregate(self):
        coarse = aggregate.aggregate(self.layer, factor=2)
        fine = aggregate.disaggregate(coarse, 2)
        self.assertEqual(fine.shape, (10, 10))
        self.assertEqual(fine.res, (30.0, 30.0))
        self.assertEqual(fine.array[0, 0], fine.array[1, 1])


class TestResample(unittest.TestCase):
    """Test resampling and cropping."""

    def setUp(self):
        """Set up test fixtures."""
        self.coarse_transform = Affine(60.0, 0.0, 500000.0, 0.0, -60.0, 4000000.0)
        self.coarse = make_layer(np.array([[1.0, 2.0], [3.0, np.nan]]), transform=self.coarse_transform)
        self.fine = make_layer(np.zeros((4, 4)))

    def test_nearest_onto_finer_grid(self):
        result = resample.resample(self.coarse, self.fine, method="nearest")
        expected = np.repeat(np.repeat(self.coarse.array, 2, axis=0), 2, axis=1)
        self.assertEqual(result.shape, (4, 4))
        np.testing.assert_array_equal(result.array, expected)
        np.testing.assert_array_equal(result.mask, np.isfinite(expected))
        self.assertEqual(result.transform, self.fine.transform)

    def test_unknown_method(self):
        with self.assertRaises(ValueError):
            resample.resample(self.coarse, self.fine, method="spline")

    def test_crop(self):
        layer = make_layer(np.arange(100, dtype=np.float64).reshape(10, 10))
        bounds = (500060.0, 4000000.0 - 150.0, 500150.0, 4000000.0 - 60.0)
        result = resample.crop(layer, bounds)
        self.assertEqual(result.shape, (3, 3))
        self.assertEqual(result.array[0, 0], 22.0)
        self.assertAlmostEqual(result.transform.c, 500060.0)
        self.assertAlmostEqual(result.transform.f, 4000000.0 - 60.0)

    def test_crop_outside_extent(self):
        layer = make_layer(np.ones((10, 10)))
        with self.assertRaises(ValueError):
            resample.crop(layer, (0.0, 0.0, 10.0, 10.0))


class TestMask(unittest.TestCase):
    """Test masking by a second raster."""

    def setUp(self):
        """Set up test fixtures."""
        self.values = np.arange(16, dtype=np.float64).reshape(4, 4)
        self.values[3, 3] = np.nan
        self.layer = make_layer(self.values)

        mask_values = np.ones((4, 4))
        mask_values[0, :] = np.nan
        mask_values[2, 1] = np.nan
        mask_values[1, 1] = 2.0
        self.mask_layer = make_layer(mask_values)

    def test_drops_exactly_nodata_cells(self):
        result = mask.mask(self.layer, self.mask_layer)
        dropped = ~self.mask_layer.mask

        self.assertTrue(np.all(np.isnan(result.array[dropped])))
        kept = ~dropped
        np.testing.assert_array_equal(result.array[kept], self.values[kept])
        np.testing.assert_array_equal(result.mask, self.layer.mask & self.mask_layer.mask)

    def test_inverse(self):
        result = mask.mask(self.layer, self.mask_layer, inverse=True)
        self.assertEqual(result.array[0, 0], 0.0)
        self.assertTrue(np.isnan(result.array[1, 0]))

    def test_maskvalues(self):
        result = mask.mask(self.layer, self.mask_layer, maskvalues=[2.0])
        self.assertTrue(np.isnan(result.array[1, 1]))
        self.assertEqual(result.array[1, 2], self.values[1, 2])

    def test_updatevalue(self):
        result = mask.mask(self.layer, self.mask_layer, updatevalue=0.0)
        self.assertEqual(result.array[0, 2], 0.0)
        self.assertTrue(result.mask[0, 2])

    def test_stack(self):
        stack = make_stack(np.stack([self.values, self.values + 100]))
        result = mask.mask(stack, self.mask_layer)
        self.assertTrue(np.all(np.isnan(result.array[:, 0, :])))
        self.assertEqual(result.array[1, 1, 0], self.values[1, 0] + 100)

    def test_geometry_mismatch(self):
        other = make_layer(np.ones((5, 5)))
        with self.assertRaises(ValueError):
            mask.mask(self.layer, other)

    def test_input_not_modified(self):
        before = self.layer.array.copy()
        mask.mask(self.layer, self.mask_layer)
        np.testing.assert_array_equal(self.layer.array, before)


class TestAlgebra(unittest.TestCase):
    """Test band algebra and NDVI."""

    def setUp(self):
        """Set up test fixtures."""
        rng = np.random.default_rng(0)
        self.bands = rng.uniform(0.0, 1.0, size=(4, 20, 20))
        self.stack = make_stack(self.bands)

    def test_known_value(self):
        bands = np.zeros((4, 1, 2))
        bands[2] = [[0.1, 0.3]]
        bands[3] = [[0.5, 0.1]]
        result = algebra.ndvi(make_stack(bands), red=3, nir=4)
        np.testing.assert_allclose(result.array, [[0.4 / 0.6, -0.2 / 0.4]])
        self.assertEqual(result.name, "ndvi")

    def test_ndvi_range(self):
        result = algebra.ndvi(self.stack, red=3, nir=4)
        valid = result.array[result.mask]
        self.assertGreater(valid.size, 0)
        self.assertTrue(np.all(valid >= -1.0))
        self.assertTrue(np.all(valid <= 1.0))

    def test_ndvi_uses_red_plus_nir_denominator(self):
        result = algebra.ndvi(self.stack, red=3, nir=4)
        nir, red = self.bands[3], self.bands[2]
        np.testing.assert_allclose(result.array, (nir - red) / (nir + red))

    def test_band_names(self):
        result = algebra.ndvi(self.stack, red="band_3", nir="band_4")
        np.testing.assert_allclose(result.array, algebra.ndvi(self.stack, red=3, nir=4).array)

    def test_zero_denominator_is_nodata(self):
        bands = np.zeros((4, 2, 2))
        bands[3, 0, 0] = 0.5
        result = algebra.ndvi(make_stack(bands), red=3, nir=4)
        self.assertEqual(result.array[0, 0], 1.0)
        self.assertEqual(int(result.mask.sum()), 1)

    def test_nodata_propagates(self):
        bands = self.bands.copy()
        bands[2, 5, 5] = np.nan
        result = algebra.ndvi(make_stack(bands), red=3, nir=4)
        self.assertFalse(result.mask[5, 5])
        self.assertTrue(result.mask[5, 6])

    def test_band_math(self):
        a = make_layer(np.full((3, 3), 2.0))
        b = make_layer(np.full((3, 3), 5.0))
        result = algebra.band_math(lambda x, y: x * y + 1, a, b, name="combined")
        np.testing.assert_array_equal(result.array, np.full((3, 3), 11.0))
        self.assertEqual(result.name, "combined")

    def test_band_math_geometry_mismatch(self):
        a = make_layer(np.ones((3, 3)))
        b = make_layer(np.ones((3, 3)), transform=TRANSFORM * Affine.translation(1, 0))
        with self.assertRaises(ValueError):
            algebra.band_math(np.add, a, b)


class TestClassify(unittest.TestCase):
    """Test thresholding and reclassification."""

    def setUp(self):
        """Set up test fixtures."""
        self.ndvi = make_layer(np.array([[-0.2, 0.3], [0.5, np.nan]]), name="ndvi")

    def test_threshold(self):
        result = classify.threshold(self.ndvi, threshold=0.3, value=1)
        np.testing.assert_array_equal(result.array, [[np.nan, 1.0], [1.0, np.nan]])
        np.testing.assert_array_equal(result.mask, [[False, True], [True, False]])
        self.assertEqual(result.name, "forest")

    def test_threshold_only_marker_or_nodata(self):
        rng = np.random.default_rng(1)
        layer = make_layer(rng.uniform(-1, 1, size=(20, 20)))
        result = classify.threshold(layer, threshold=0.3, value=7)
        valid = result.array[result.mask]
        self.assertTrue(np.all(valid == 7))
        self.assertEqual(int(result.mask.sum()), int((layer.array >= 0.3).sum()))

    def test_reclassify(self):
        result = classify.reclassify(self.ndvi, breaks=[0.0, 0.5], values=[0, 1, 2])
        np.testing.assert_array_equal(result.array, [[0.0, 1.0], [2.0, np.nan]])

    def test_reclassify_invalid(self):
        with self.assertRaises(ValueError):
            classify.reclassify(self.ndvi, breaks=[0.0, 0.5], values=[0, 1])
        with self.assertRaises(ValueError):
            classify.reclassify(self.ndvi, breaks=[0.5, 0.0], values=[0, 1, 2])

    def test_class_area(self):
        forest = classify.threshold(self.ndvi, threshold=0.3)
        summary = classify.class_area(forest, value=1, reference=self.ndvi)
        self.assertEqual(summary['cells'], 2)
        self.assertAlmostEqual(summary['area'], 2 * 30.0 * 30.0)
        self.assertAlmostEqual(summary['fraction'], 2 / 3)


if __name__ == '__main__':
    unittest.main()
