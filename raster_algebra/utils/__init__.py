#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Utility modules for the raster algebra walkthrough.

This package contains helper functions and plotting used across the steps.
"""
