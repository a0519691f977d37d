#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Raster Algebra Walkthrough Package.

Load, inspect, resample, mask and algebraically combine multi-band satellite
rasters, ending with a vegetation index (NDVI), a forest classification and
its visualization.
"""

__version__ = "0.1.0"
__author__ = "Elena Project Team"
__email__ = "user@example.com"
