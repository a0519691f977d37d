#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Visualization utilities for the raster algebra walkthrough.

This module provides functions for visualizing rasters at each step: single
layers, RGB composites, band panels, value histograms, and maps drawn from
the tabular (x, y, value) projection of a raster.
"""
import os
import numpy as np
import matplotlib.pyplot as plt
from typing import List, Optional, Tuple, Union
import pandas as pd
from pathlib import Path

from raster_algebra.core.config import PLOT_CONFIG, BAND_CONFIG
from raster_algebra.core.logging_config import get_module_logger
from raster_algebra.core.raster import Raster, RasterData, RasterStack
from raster_algebra.utils.utils import stretch

# Initialize logger
logger = get_module_logger(__name__)


def _extent(raster: Raster) -> Tuple[float, float, float, float]:
    """Map extent in the (left, right, bottom, top) order imshow expects."""
    left, bottom, right, top = raster.bounds
    return left, right, bottom, top


def _finish(fig: plt.Figure, output_path: Optional[str], show_plot: bool) -> plt.Figure:
    """Save and/or show a figure, then release it if not shown."""
    fig.tight_layout()

    if output_path:
        os.makedirs(os.path.dirname(os.path.abspath(output_path)), exist_ok=True)
        fig.savefig(output_path, dpi=PLOT_CONFIG.get("dpi", 150), bbox_inches='tight')
        logger.info(f"Saved plot to {output_path}")

    if show_plot:
        plt.show()
    else:
        plt.close(fig)

    return fig


def _cell_step(coords: np.ndarray) -> Optional[float]:
    """Smallest positive spacing between distinct coordinates, None for a single value."""
    steps = np.diff(np.unique(coords))
    steps = steps[steps > 1e-9]
    return float(steps.min()) if steps.size else None


def _table_grid(
    df: pd.DataFrame,
    value_column: str,
    res: Optional[Tuple[float, float]] = None
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Place table rows back onto a regular grid of cell centers.

    Rows and columns absent from the table stay NaN, so gaps keep their
    width instead of being closed up by the neighbouring cells.

    Parameters
    ----------
    df : pd.DataFrame
        Table with 'x', 'y' and the value column.
    value_column : str
        Column to place on the grid.
    res : tuple, optional
        Cell size (x, y). If None, it is taken from the smallest spacing
        between distinct coordinates.

    Returns
    -------
    tuple
        Ascending x and y cell edges and the (y, x) value grid.
    """
    xs = df['x'].to_numpy(dtype=np.float64)
    ys = df['y'].to_numpy(dtype=np.float64)

    if res is not None:
        x_step, y_step = abs(float(res[0])), abs(float(res[1]))
    else:
        x_step, y_step = _cell_step(xs), _cell_step(ys)
        x_step = x_step or y_step or 1.0
        y_step = y_step or x_step

    cols = np.rint((xs - xs.min()) / x_step).astype(int)
    rows = np.rint((ys - ys.min()) / y_step).astype(int)

    grid = np.full((rows.max() + 1, cols.max() + 1), np.nan)
    grid[rows, cols] = df[value_column].to_numpy(dtype=np.float64)

    x_edges = xs.min() + (np.arange(grid.shape[1] + 1) - 0.5) * x_step
    y_edges = ys.min() + (np.arange(grid.shape[0] + 1) - 0.5) * y_step
    return x_edges, y_edges, grid


def plot_raster(
    raster: RasterData,
    title: Optional[str] = None,
    cmap: Optional[str] = None,
    vmin: Optional[float] = None,
    vmax: Optional[float] = None,
    figsize: Optional[Tuple[int, int]] = None,
    output_path: Optional[str] = None,
    show_plot: bool = True
) -> plt.Figure:
    """
    Plot a raster layer in map coordinates.

    Parameters
    ----------
    raster : RasterData
        Layer to plot; nodata cells are left blank.
    title : str, optional
        Plot title, by default the layer name.
    cmap : str, optional
        Colormap name, by default PLOT_CONFIG["cmap"].
    vmin, vmax : float, optional
        Color scale limits, by default the data range.
    figsize : tuple, optional
        Figure size, by default PLOT_CONFIG["figsize"].
    output_path : str, optional
        Path to save the plot, by default None.
    show_plot : bool, optional
        Whether to show the plot, by default True.

    Returns
    -------
    plt.Figure
        Matplotlib figure.
    """
    masked_raster = np.ma.array(raster.array, mask=~raster.mask)

    fig, ax = plt.subplots(figsize=figsize or PLOT_CONFIG["figsize"])
    im = ax.imshow(
        masked_raster,
        cmap=cmap or PLOT_CONFIG["cmap"],
        vmin=vmin,
        vmax=vmax,
        extent=_extent(raster),
        interpolation='nearest'
    )
    fig.colorbar(im, ax=ax, shrink=0.8, label=raster.name)
    ax.set_title(title or raster.name)
    ax.set_xlabel("x")
    ax.set_ylabel("y")

    # Add some basic statistics to the plot
    valid_data = masked_raster.compressed()
    if len(valid_data) > 0:
        stats_text = (
            f"Min: {np.min(valid_data):.2f}\n"
            f"Max: {np.max(valid_data):.2f}\n"
            f"Mean: {np.mean(valid_data):.2f}"
        )
        ax.text(0.02, 0.02, stats_text, transform=ax.transAxes, fontsize=8,
                bbox=dict(facecolor='white', alpha=0.7))

    return _finish(fig, output_path, show_plot)


def plot_rgb(
    stack: RasterStack,
    bands: Optional[List[Union[int, str]]] = None,
    stretch_method: Optional[str] = "config",
    title: str = "RGB composite",
    figsize: Optional[Tuple[int, int]] = None,
    output_path: Optional[str] = None,
    show_plot: bool = True
) -> plt.Figure:
    """
    Plot three bands of a stack as a true or false color composite.

    Parameters
    ----------
    stack : RasterStack
        Multi-band image.
    bands : list, optional
        Bands mapped to red, green and blue, by default BAND_CONFIG["rgb"].
    stretch_method : str, optional
        Display stretch ('lin', 'hist' or None), by default PLOT_CONFIG["stretch"].
    title : str, optional
        Plot title.
    figsize : tuple, optional
        Figure size.
    output_path : str, optional
        Path to save the plot, by default None.
    show_plot : bool, optional
        Whether to show the plot, by default True.

    Returns
    -------
    plt.Figure
        Matplotlib figure.
    """
    bands = bands or BAND_CONFIG["rgb"]
    if len(bands) != 3:
        raise ValueError(f"RGB plots need exactly 3 bands, got {len(bands)}")
    if stretch_method == "config":
        stretch_method = PLOT_CONFIG.get("stretch")

    channels = [stretch(stack.band(b).array, stretch_method) for b in bands]
    rgb = np.dstack(channels)

    # Cells missing in any band are drawn transparent
    alpha = np.all(np.isfinite(rgb), axis=2).astype(np.float64)
    rgba = np.dstack([np.nan_to_num(rgb), alpha])

    fig, ax = plt.subplots(figsize=figsize or PLOT_CONFIG["figsize"])
    ax.imshow(rgba, extent=_extent(stack), interpolation='nearest')
    ax.set_title(f"{title} ({', '.join(str(b) for b in bands)})")
    ax.set_xlabel("x")
    ax.set_ylabel("y")

    return _finish(fig, output_path, show_plot)


def plot_bands(
    stack: RasterStack,
    max_bands: int = 9,
    cmap: Optional[str] = None,
    figsize: Tuple[int, int] = (15, 15),
    output_path: Optional[str] = None,
    show_plot: bool = True
) -> plt.Figure:
    """
    Plot each band of a stack in its own panel.

    Parameters
    ----------
    stack : RasterStack
        Multi-band image.
    max_bands : int, optional
        Maximum number of bands to plot, by default 9.
    cmap : str, optional
        Colormap name, by default "gray".
    figsize : tuple, optional
        Figure size, by default (15, 15).
    output_path : str, optional
        Path to save the plot, by default None.
    show_plot : bool, optional
        Whether to show the plot, by default True.

    Returns
    -------
    plt.Figure
        Matplotlib figure.
    """
    n_bands = min(stack.count, max_bands)

    # Determine grid layout
    n_cols = min(3, n_bands)
    n_rows = (n_bands + n_cols - 1) // n_cols

    fig, axes = plt.subplots(n_rows, n_cols, figsize=figsize, squeeze=False)

    for i in range(n_bands):
        ax = axes[i // n_cols, i % n_cols]
        masked_band = np.ma.array(stack.array[i], mask=~stack.mask[i])
        im = ax.imshow(masked_band, cmap=cmap or "gray", extent=_extent(stack),
                       interpolation='nearest')
        fig.colorbar(im, ax=ax, shrink=0.8)
        ax.set_title(stack.names[i], fontsize=10)
        ax.set_xticks([])
        ax.set_yticks([])

    # Hide empty subplots
    for i in range(n_bands, n_rows * n_cols):
        axes[i // n_cols, i % n_cols].set_visible(False)

    return _finish(fig, output_path, show_plot)


def plot_histogram(
    raster: Raster,
    bins: Optional[int] = None,
    figsize: Tuple[int, int] = (10, 6),
    output_path: Optional[str] = None,
    show_plot: bool = True
) -> plt.Figure:
    """
    Plot histograms of the valid values of a layer or of each band.

    Parameters
    ----------
    raster : RasterData or RasterStack
        Raster to summarize.
    bins : int, optional
        Number of bins, by default PLOT_CONFIG["histogram_bins"].
    figsize : tuple, optional
        Figure size, by default (10, 6).
    output_path : str, optional
        Path to save the plot, by default None.
    show_plot : bool, optional
        Whether to show the plot, by default True.

    Returns
    -------
    plt.Figure
        Matplotlib figure.
    """
    layers = raster.layers() if isinstance(raster, RasterStack) else [raster]
    bins = bins or PLOT_CONFIG.get("histogram_bins", 50)

    fig, ax = plt.subplots(figsize=figsize)
    for layer in layers:
        valid_data = layer.array[layer.mask]
        if valid_data.size == 0:
            logger.warning(f"No valid values to plot for {layer.name}")
            continue
        ax.hist(valid_data, bins=bins, alpha=0.6, label=layer.name)
        if len(layers) == 1:
            mean_val = np.mean(valid_data)
            ax.axvline(mean_val, color='r', linestyle='--', alpha=0.7)
            ax.text(0.05, 0.95, f"Mean: {mean_val:.2f}\nStd: {np.std(valid_data):.2f}",
                    transform=ax.transAxes, fontsize=8, verticalalignment='top',
                    bbox=dict(facecolor='white', alpha=0.7))

    ax.set_xlabel("Value")
    ax.set_ylabel("Count")
    if len(layers) > 1:
        ax.legend()
    else:
        ax.set_title(layers[0].name)

    return _finish(fig, output_path, show_plot)


def plot_dataframe(
    df: pd.DataFrame,
    value_column: str,
    res: Optional[Tuple[float, float]] = None,
    title: Optional[str] = None,
    cmap: Optional[str] = None,
    vmin: Optional[float] = None,
    vmax: Optional[float] = None,
    figsize: Optional[Tuple[int, int]] = None,
    output_path: Optional[str] = None,
    show_plot: bool = True
) -> plt.Figure:
    """
    Draw a map from the tabular projection of a raster.

    The rows are placed back onto the regular grid of cell centers, so
    cells missing from the table (e.g. dropped nodata) are left blank.

    Parameters
    ----------
    df : pd.DataFrame
        Table with 'x', 'y' and the value column.
    value_column : str
        Column to draw.
    res : tuple, optional
        Cell size (x, y) of the source raster. Needed when whole rows or
        columns are missing at the table's finest spacing; by default it
        is inferred from the coordinates.
    title : str, optional
        Plot title, by default the value column.
    cmap : str, optional
        Colormap name, by default PLOT_CONFIG["cmap"].
    vmin, vmax : float, optional
        Color scale limits.
    figsize : tuple, optional
        Figure size.
    output_path : str, optional
        Path to save the plot, by default None.
    show_plot : bool, optional
        Whether to show the plot, by default True.

    Returns
    -------
    plt.Figure
        Matplotlib figure.
    """
    missing = [col for col in ('x', 'y', value_column) if col not in df.columns]
    if missing:
        raise ValueError(f"Table is missing required columns: {', '.join(missing)}")
    if df.empty:
        raise ValueError("Cannot plot an empty table")

    x_edges, y_edges, grid = _table_grid(df, value_column, res)
    values = np.ma.masked_invalid(grid)

    fig, ax = plt.subplots(figsize=figsize or PLOT_CONFIG["figsize"])
    mesh = ax.pcolormesh(x_edges, y_edges, values, cmap=cmap or PLOT_CONFIG["cmap"],
                         vmin=vmin, vmax=vmax, shading='flat')
    fig.colorbar(mesh, ax=ax, shrink=0.8, label=value_column)
    ax.set_aspect('equal')
    ax.set_title(title or value_column)
    ax.set_xlabel("x")
    ax.set_ylabel("y")

    return _finish(fig, output_path, show_plot)


def visualize_csv(
    csv_file: str,
    value_column: Optional[str] = None,
    output_dir: Optional[str] = None,
    cmap: Optional[str] = None,
    show_plots: bool = False
) -> List[str]:
    """
    Visualize columns of an exported table without the original raster.

    Parameters
    ----------
    csv_file : str
        Path to a CSV file with 'x', 'y' and value columns.
    value_column : str, optional
        Column to draw. If None, every column other than 'x' and 'y' is drawn.
    output_dir : str, optional
        Directory to save plots, by default <csv_dir>/visualizations.
    cmap : str, optional
        Colormap name.
    show_plots : bool, optional
        Whether to display plots interactively, by default False.

    Returns
    -------
    list
        Paths of the saved images.
    """
    csv_path = Path(csv_file)
    output_dir = Path(output_dir) if output_dir else csv_path.parent / "visualizations"
    os.makedirs(output_dir, exist_ok=True)

    df = pd.read_csv(csv_path)
    logger.info(f"Loaded {len(df)} rows from {csv_path}")

    if value_column is not None:
        if value_column not in df.columns:
            raise ValueError(f"Column '{value_column}' not found in {csv_path}")
        columns = [value_column]
    else:
        columns = [col for col in df.columns if col not in ('x', 'y')]

    if not columns:
        raise ValueError(f"No value columns to visualize in {csv_path}")

    saved = []
    for column in columns:
        output_path = str(output_dir / f"{csv_path.stem}_{column}.png")
        plot_dataframe(df, column, cmap=cmap, output_path=output_path, show_plot=show_plots)
        saved.append(output_path)

    logger.info(f"Saved {len(saved)} visualizations to {output_dir}")
    return saved
