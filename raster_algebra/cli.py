#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Main entry point for the raster algebra walkthrough.

This script runs the walkthrough end to end: it loads a multi-band image and
a county mask, aggregates the image, masks it, computes NDVI, thresholds it
into a forest layer, tabulates the results and renders the plots.
"""
import sys
import time
import argparse
from pathlib import Path
from typing import Dict, List, Optional, Any

from raster_algebra import __version__
from raster_algebra.core.config import DEFAULT_OUTPUT_DIR, load_config
from raster_algebra.core.logging_config import setup_logging, get_module_logger

# Initialize logger
logger = get_module_logger(__name__)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Parameters
    ----------
    argv : list, optional
        Arguments to parse, by default sys.argv[1:].

    Returns
    -------
    argparse.Namespace
        Parsed command line arguments.
    """
    parser = argparse.ArgumentParser(
        description="Load, aggregate, mask and combine satellite raster bands into NDVI."
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Raster Algebra Walkthrough v{__version__}"
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')
    subparsers.required = True

    # Inspect command
    info_parser = subparsers.add_parser('info', help='Describe a raster file')
    info_parser.add_argument(
        "--input", "-i",
        required=True,
        help="Path to input raster file"
    )
    info_parser.add_argument(
        "--log-level", "-l",
        choices=LOG_LEVELS,
        default="INFO",
        help="Logging level (default: INFO)"
    )

    # Full walkthrough command
    run_parser = subparsers.add_parser('run', help='Run the NDVI walkthrough')
    run_parser.add_argument(
        "--image",
        required=True,
        help="Path to the multi-band satellite image"
    )
    run_parser.add_argument(
        "--mask",
        required=True,
        help="Path to the single-band county mask raster"
    )
    run_parser.add_argument(
        "--output-dir", "-o",
        help=f"Directory for tables, plots and rasters (default: {DEFAULT_OUTPUT_DIR})"
    )
    run_parser.add_argument(
        "--config", "-c",
        help="Path to a YAML configuration file overriding the defaults"
    )
    run_parser.add_argument(
        "--factor", "-f",
        type=int,
        help="Aggregation factor in cells (default: from config, 3)"
    )
    run_parser.add_argument(
        "--fun",
        choices=["mean", "sum", "min", "max", "median"],
        help="Aggregation function (default: from config, mean)"
    )
    run_parser.add_argument(
        "--red-band",
        type=int,
        help="1-based index of the red band (default: from config)"
    )
    run_parser.add_argument(
        "--nir-band",
        type=int,
        help="1-based index of the near-infrared band (default: from config)"
    )
    run_parser.add_argument(
        "--threshold", "-t",
        type=float,
        help="NDVI threshold for the forest class (default: from config, 0.3)"
    )
    run_parser.add_argument(
        "--resample-method",
        help="Method used when the mask grid differs from the image grid (default: nearest)"
    )
    run_parser.add_argument(
        "--save-rasters",
        action="store_true",
        help="Write the derived rasters as GeoTIFFs"
    )
    run_parser.add_argument(
        "--save-metadata", "-m",
        action="store_true",
        help="Save a JSON report about the rasters produced"
    )
    run_parser.add_argument(
        "--no-plots",
        action="store_true",
        help="Skip rendering plots"
    )
    run_parser.add_argument(
        "--show-plots",
        action="store_true",
        help="Show plots interactively (default: save to files only)"
    )
    run_parser.add_argument(
        "--progress",
        action="store_true",
        help="Show a progress bar while reading bands"
    )
    run_parser.add_argument(
        "--log-level", "-l",
        choices=LOG_LEVELS,
        default="INFO",
        help="Logging level (default: INFO)"
    )
    run_parser.add_argument(
        "--log-file",
        help="Also write the log to this file"
    )

    # Visualize CSV command
    visualize_parser = subparsers.add_parser('visualize-csv', help='Plot a table exported by run')
    visualize_parser.add_argument(
        "--csv",
        required=True,
        help="Path to CSV file with x, y and value columns"
    )
    visualize_parser.add_argument(
        "--value-column", "-v",
        help="Column to plot (default: all value columns)"
    )
    visualize_parser.add_argument(
        "--output", "-o",
        help="Output directory for visualizations (default: <csv_dir>/visualizations)"
    )
    visualize_parser.add_argument(
        "--show-plots",
        action="store_true",
        help="Show plots interactively (default: save to files only)"
    )
    visualize_parser.add_argument(
        "--log-level", "-l",
        choices=LOG_LEVELS,
        default="INFO",
        help="Logging level (default: INFO)"
    )

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main function to run the walkthrough commands.

    Returns
    -------
    int
        Exit code.
    """
    args = parse_arguments(argv)

    setup_logging(
        log_level=args.log_level,
        log_file=getattr(args, 'log_file', None)
    )

    if args.command == 'info':
        return describe_raster(args)
    elif args.command == 'run':
        return run_walkthrough(args)
    elif args.command == 'visualize-csv':
        return visualize_table(args)

    logger.error(f"Unknown command: {args.command}")
    return 1


def describe_raster(args: argparse.Namespace) -> int:
    """
    Log the metadata and per-band statistics of a raster file.

    Parameters
    ----------
    args : argparse.Namespace
        Command line arguments.

    Returns
    -------
    int
        Exit code.
    """
    try:
        from raster_algebra.core.io import load_stack, log_raster_stats

        stack = load_stack(args.input)
        logger.info(f"Bands: {', '.join(stack.names)}")
        logger.info(f"CRS: {stack.crs}")
        log_raster_stats(stack, label=Path(args.input).name)
        return 0

    except Exception as e:
        logger.exception(f"Error while describing raster: {str(e)}")
        return 1


def _resolve_parameters(args: argparse.Namespace) -> Dict[str, Any]:
    """Merge config file values with command line overrides."""
    config = load_config(args.config)

    def pick(value, section, key):
        return value if value is not None else config[section][key]

    return {
        'factor': pick(args.factor, 'aggregation', 'factor'),
        'fun': pick(args.fun, 'aggregation', 'fun'),
        'na_rm': config['aggregation']['na_rm'],
        'red_band': pick(args.red_band, 'bands', 'red'),
        'nir_band': pick(args.nir_band, 'bands', 'nir'),
        'rgb_bands': config['bands']['rgb'],
        'threshold': pick(args.threshold, 'classify', 'threshold'),
        'forest_value': config['classify']['forest_value'],
        'resample_method': pick(args.resample_method, 'resample', 'method'),
        'plot': config['plot'],
    }


def run_walkthrough(args: argparse.Namespace) -> int:
    """
    Run the walkthrough: read, inspect, aggregate, mask, NDVI, threshold,
    tabulate and plot.

    Parameters
    ----------
    args : argparse.Namespace
        Command line arguments.

    Returns
    -------
    int
        Exit code.
    """
    logger.info(f"Starting walkthrough for {args.image}")

    output_dir = Path(args.output_dir) if args.output_dir else DEFAULT_OUTPUT_DIR
    start_time = time.time()

    try:
        # Import here to avoid loading rasterio and matplotlib for --help
        from raster_algebra.core.io import (
            load_stack, load_raster, log_raster_stats, to_dataframe,
            export_table, write_raster, save_metadata
        )
        from raster_algebra.core.raster import same_geometry, geometry_mismatches
        from raster_algebra.operations.aggregate import aggregate
        from raster_algebra.operations.resample import resample
        from raster_algebra.operations.mask import mask
        from raster_algebra.operations.algebra import ndvi
        from raster_algebra.operations.classify import threshold, class_area

        params = _resolve_parameters(args)
        run_parameters = {k: v for k, v in params.items() if k != 'plot'}
        logger.info(f"Parameters: {run_parameters}")

        # Read and inspect
        image = load_stack(args.image, progress=args.progress)
        county = load_raster(args.mask)
        log_raster_stats(image, label="image")
        log_raster_stats(county, label="mask")

        # Keep only the bands the walkthrough uses
        wanted = []
        for band in list(params['rgb_bands']) + [params['red_band'], params['nir_band']]:
            if band not in wanted:
                wanted.append(band)
        image = image.select(wanted)
        # Positions in the selected stack, band names may repeat
        red_band = wanted.index(params['red_band']) + 1
        nir_band = wanted.index(params['nir_band']) + 1
        rgb_bands = [wanted.index(b) + 1 for b in params['rgb_bands']]

        # Downsample
        coarse = aggregate(image, factor=params['factor'], fun=params['fun'], na_rm=params['na_rm'])
        log_raster_stats(coarse, label="aggregated")

        # Bring the mask onto the image grid when needed
        if not same_geometry(coarse, county):
            logger.warning(
                "Mask grid differs from the aggregated image: "
                + "; ".join(geometry_mismatches(coarse, county))
            )
            county = resample(county, coarse, method=params['resample_method'])

        # Mask, combine, classify
        masked = mask(coarse, county)
        ndvi_layer = ndvi(masked, red=red_band, nir=nir_band)
        forest = threshold(ndvi_layer, threshold=params['threshold'], value=params['forest_value'])
        forest_summary = class_area(forest, value=params['forest_value'], reference=ndvi_layer)
        logger.info(
            f"Forest: {forest_summary['cells']} cells, area {forest_summary['area']:.2f}, "
            f"{forest_summary['fraction'] * 100:.2f}% of valid NDVI cells"
        )

        # Tabulate
        ndvi_df = to_dataframe(ndvi_layer)
        forest_df = to_dataframe(forest)
        export_table(ndvi_df, output_dir / "ndvi.csv")
        export_table(forest_df, output_dir / "forest.csv")

        if args.save_rasters:
            write_raster(coarse, output_dir / "aggregated.tif")
            write_raster(masked, output_dir / "masked.tif")
            write_raster(ndvi_layer, output_dir / "ndvi.tif")
            write_raster(forest, output_dir / "forest.tif")

        if args.save_metadata:
            parameters = dict(run_parameters, forest=forest_summary)
            save_metadata(
                {'image': image, 'aggregated': coarse, 'masked': masked,
                 'ndvi': ndvi_layer, 'forest': forest},
                parameters,
                output_dir / "walkthrough.json"
            )

        if not args.no_plots:
            render_plots(image, masked, ndvi_layer, forest, forest_df, rgb_bands,
                         params['plot'], output_dir, args.show_plots)

        elapsed_time = time.time() - start_time
        logger.info(f"Walkthrough completed in {elapsed_time:.2f} seconds")
        return 0

    except Exception as e:
        logger.exception(f"Error during walkthrough: {str(e)}")
        return 1


def render_plots(image, masked, ndvi_layer, forest, forest_df, rgb_bands, plot_config, output_dir, show_plots):
    """Render the walkthrough figures into output_dir/plots."""
    from raster_algebra.utils.visualization import (
        plot_rgb, plot_bands, plot_raster, plot_histogram, plot_dataframe
    )

    plot_dir = Path(output_dir) / "plots"
    logger.info(f"Rendering plots to {plot_dir}")

    plot_bands(image, output_path=str(plot_dir / "bands.png"), show_plot=show_plots)
    plot_rgb(image, bands=rgb_bands, stretch_method=plot_config.get("stretch"),
             output_path=str(plot_dir / "rgb.png"), show_plot=show_plots)
    plot_rgb(masked, bands=rgb_bands, stretch_method=plot_config.get("stretch"),
             title="Aggregated and masked",
             output_path=str(plot_dir / "rgb_masked.png"), show_plot=show_plots)
    plot_raster(ndvi_layer, title="NDVI", cmap=plot_config.get("ndvi_cmap"), vmin=-1, vmax=1,
                output_path=str(plot_dir / "ndvi.png"), show_plot=show_plots)
    plot_histogram(ndvi_layer, output_path=str(plot_dir / "ndvi_histogram.png"), show_plot=show_plots)

    if forest_df.empty:
        logger.warning("No forest cells to plot")
    else:
        plot_dataframe(forest_df, "forest", res=forest.res, title="Forest (NDVI threshold)",
                       cmap=plot_config.get("class_cmap"),
                       output_path=str(plot_dir / "forest.png"), show_plot=show_plots)


def visualize_table(args: argparse.Namespace) -> int:
    """
    Visualize columns of an exported CSV table.

    Parameters
    ----------
    args : argparse.Namespace
        Command line arguments.

    Returns
    -------
    int
        Exit code.
    """
    logger.info(f"Starting visualization of {args.csv}")
    start_time = time.time()

    try:
        from raster_algebra.utils.visualization import visualize_csv

        visualize_csv(
            csv_file=args.csv,
            value_column=args.value_column,
            output_dir=args.output,
            show_plots=args.show_plots
        )

        elapsed_time = time.time() - start_time
        logger.info(f"Visualization completed in {elapsed_time:.2f} seconds")
        return 0

    except Exception as e:
        logger.exception(f"Error during visualization: {str(e)}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
