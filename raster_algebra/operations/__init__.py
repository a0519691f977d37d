#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Raster operations for the walkthrough.

This package contains the steps applied to loaded rasters: block aggregation,
resampling and cropping, masking, band algebra and thresholding.
"""
