#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Core functionality for the raster algebra walkthrough.

This module contains the core components for raster data handling,
configuration management, and logging setup.
"""
