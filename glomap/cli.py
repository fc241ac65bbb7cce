#!/usr/bin/env python3
"""
GloMap Command-Line Interface

Pipeline for the global study-site map: read observations, project them and
the basemap to Robinson, correct graticule labels, and export the map as
PDF, PNG and interactive HTML.
"""

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import Optional

import matplotlib

from . import __version__, basemap, config, graticule, metadata, projection, utils, visualization

logger = logging.getLogger(__name__)


def run_pipeline(
    input_path: Path,
    output_dir: Path,
    cfg: config.PipelineConfig,
    basename: Optional[str] = None,
) -> bool:
    """
    Run the complete map pipeline.

    All state (configuration, projector, shift table, layers) is built inside
    this call; nothing is shared between runs.

    Parameters
    ----------
    input_path : Path
        Observation table
    output_dir : Path
        Output directory
    cfg : config.PipelineConfig
        Pipeline configuration
    basename : str, optional
        Stem of the output files (default: ``cfg.basename``)

    Returns
    -------
    bool
        True if successful, False otherwise
    """
    basename = utils.sanitize_filename(basename or cfg.basename)
    start = time.time()

    logger.info("=" * 80)
    logger.info(f"GloMap Pipeline - {basename}")
    logger.info("=" * 80)
    logger.info(f"Input table: {input_path}")
    logger.info(f"Output directory: {output_dir}")
    logger.info(f"Projection: {cfg.projection.projection}")
    logger.info("")

    utils.create_output_directory(output_dir)

    viz = cfg.visualization
    outputs = {
        fmt.lower(): output_dir / f"{basename}.{fmt.lower()}"
        for fmt in viz.figure_format
    }
    if viz.write_html:
        outputs['html'] = output_dir / f"{basename}.html"
    outputs['projected'] = output_dir / f"{basename}_projected.csv"
    outputs['parameters'] = output_dir / f"{basename}_parameters.json"

    if not cfg.overwrite_existing:
        existing = [str(p) for p in outputs.values() if p.exists()]
        if existing:
            logger.error(f"Output files already exist (overwrite disabled): {existing}")
            return False

    params = {
        'input': str(input_path),
        'projection': cfg.projection.projection,
        'source_crs': cfg.projection.source_crs,
        'longitude_shift': list(cfg.graticule.longitude_shift),
        'nudge_lon': cfg.graticule.nudge_lon,
        'nudge_lat': cfg.graticule.nudge_lat,
        'width_cm': cfg.visualization.width_cm,
        'height_cm': cfg.visualization.height_cm,
        'dpi': cfg.visualization.dpi,
        'created': utils.get_timestamp(),
    }
    with open(outputs['parameters'], 'w') as f:
        json.dump(params, f, indent=2)
    logger.info(f"Saved pipeline parameters to {outputs['parameters']}")

    # ========================================================================
    # PHASE 1: Read and Validate Observations
    # ========================================================================
    logger.info("PHASE 1: Read and Validate Observations")
    logger.info("-" * 80)

    inp = cfg.input
    try:
        points, df = metadata.load_geo_points(
            input_path,
            id_col=inp.id_column,
            lon_col=inp.lon_column,
            lat_col=inp.lat_column,
            sep=inp.delimiter,
            na_values=inp.na_values,
            drop_missing=inp.drop_missing_coordinates,
        )
        logger.info(f"  ✓ {len(points)} study sites with valid coordinates")
    except Exception as e:
        logger.error(f"Phase 1 failed: {e}", exc_info=True)
        return False

    # ========================================================================
    # PHASE 2: Project Study Sites
    # ========================================================================
    logger.info("")
    logger.info("PHASE 2: Project Study Sites")
    logger.info("-" * 80)

    try:
        projector = projection.Projector(cfg.projection.projection, cfg.projection.source_crs)
        projected = projection.project_points(points, projector)

        df['X_prj'] = [p.x for p in projected]
        df['Y_prj'] = [p.y for p in projected]
        df.to_csv(outputs['projected'], index=False)
        logger.info(f"  ✓ Projected {len(projected)} sites -> {outputs['projected']}")
    except Exception as e:
        logger.error(f"Phase 2 failed: {e}", exc_info=True)
        return False

    # ========================================================================
    # PHASE 3: Basemap and Graticule Labels
    # ========================================================================
    logger.info("")
    logger.info("PHASE 3: Basemap and Graticule Labels")
    logger.info("-" * 80)

    try:
        base = basemap.load_basemap(cfg, projector)
        logger.info(
            f"  ✓ {len(base.countries)} countries, {len(base.graticules)} graticule "
            f"lines, {len(base.lon_labels)} longitude and {len(base.lat_labels)} "
            "latitude labels"
        )
    except graticule.AlignmentError as e:
        logger.error(f"Graticule labels do not match the longitude shift table: {e}")
        return False
    except Exception as e:
        logger.error(f"Phase 3 failed: {e}", exc_info=True)
        return False

    # ========================================================================
    # PHASE 4: Render and Export
    # ========================================================================
    logger.info("")
    logger.info("PHASE 4: Render and Export")
    logger.info("-" * 80)

    try:
        if viz.figure_format:
            fig = visualization.plot_global_map(df, base, viz)
            written = visualization.export_map(fig, output_dir, basename, viz)
            for fmt, path in written.items():
                size = utils.format_file_size(path.stat().st_size)
                logger.info(f"  ✓ {fmt.upper()}: {path} ({size})")
        else:
            logger.info("  ⊘ No static formats configured")

        if viz.write_html:
            html = visualization.write_interactive_map(
                df, outputs['html'], id_col=inp.id_column
            )
            logger.info(f"  ✓ HTML: {html}")
        else:
            logger.info("  ⊘ Interactive map disabled")
    except Exception as e:
        logger.error(f"Phase 4 failed: {e}", exc_info=True)
        return False

    logger.info("")
    logger.info("=" * 80)
    logger.info(f"Pipeline completed in {utils.format_elapsed_time(time.time() - start)}")
    logger.info("=" * 80)
    return True


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='glomap',
        description='GloMap: global map of study sites in the Robinson projection',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Basic usage (Natural Earth countries are downloaded on first use)
  glomap Output/GloPL_with_id_updated_ES.csv

  # Use local shapefiles and a custom output name
  glomap data.csv --countries Data/ne_110m_admin_0_countries.shp \\
      --graticules Data/ne_graticules.shp --box Data/ne_box.shp \\
      --basename Global_map_draft_11

  # Load settings from a configuration file, lower PNG resolution
  glomap data.csv --config my_map.yaml --dpi 300

  # Write a configuration template
  glomap --write-config my_map.yaml
        """
    )

    parser.add_argument(
        'input',
        type=Path,
        nargs='?',
        help='Observation table with identifier, longitude and latitude columns'
    )
    parser.add_argument(
        '--output', '--output-dir',
        type=Path,
        default=None,
        help='Output directory (default: Output)'
    )
    parser.add_argument(
        '--config',
        type=Path,
        default=None,
        help='YAML or JSON configuration file'
    )
    parser.add_argument(
        '--write-config',
        type=Path,
        default=None,
        metavar='PATH',
        help='Write the default configuration to PATH and exit'
    )
    parser.add_argument(
        '--basename',
        type=str,
        default=None,
        help='Stem of the output files (default: Global_map)'
    )
    parser.add_argument('--id-column', type=str, default=None, help='Identifier column')
    parser.add_argument('--lon-column', type=str, default=None, help='Longitude column')
    parser.add_argument('--lat-column', type=str, default=None, help='Latitude column')
    parser.add_argument('--countries', type=Path, default=None, help='Countries vector file')
    parser.add_argument('--graticules', type=Path, default=None, help='Graticule lines vector file')
    parser.add_argument('--box', type=Path, default=None, help='Bounding box vector file')
    parser.add_argument('--lon-labels', type=Path, default=None, help='Longitude label CSV (lon, lat, lbl)')
    parser.add_argument('--lat-labels', type=Path, default=None, help='Latitude label CSV (lon, lat, lbl)')
    parser.add_argument(
        '--dpi',
        type=int,
        default=None,
        help='PNG resolution (default: 1000)'
    )
    parser.add_argument(
        '--no-html',
        action='store_true',
        help='Skip the interactive HTML map'
    )
    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default=None,
        help='Logging verbosity (default: INFO)'
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'GloMap {__version__}'
    )
    return parser


def build_config(args: argparse.Namespace) -> config.PipelineConfig:
    """Combine defaults, config file, environment and command-line options."""
    cfg = config.load_config_from_file(args.config) if args.config else config.get_default_config()

    env = config.load_config_from_env()
    if env:
        cfg = cfg.update(**env)

    overrides = {
        'output_dir': args.output,
        'basename': args.basename,
        'log_level': args.log_level,
        'input__id_column': args.id_column,
        'input__lon_column': args.lon_column,
        'input__lat_column': args.lat_column,
        'basemap__countries_path': args.countries,
        'basemap__graticules_path': args.graticules,
        'basemap__box_path': args.box,
        'basemap__lon_labels_path': args.lon_labels,
        'basemap__lat_labels_path': args.lat_labels,
        'visualization__dpi': args.dpi,
    }
    if args.no_html:
        overrides['visualization__write_html'] = False

    return cfg.update(**{k: v for k, v in overrides.items() if v is not None})


def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.write_config is not None:
        fmt = "json" if args.write_config.suffix.lower() == ".json" else "yaml"
        config.create_config_template(args.write_config, format=fmt)
        print(f"Wrote configuration template: {args.write_config}")
        return 0

    if args.input is None:
        parser.error("the input table is required")

    if not args.input.exists():
        print(f"Error: Input table not found: {args.input}", file=sys.stderr)
        return 1

    try:
        cfg = build_config(args)
    except (ValueError, TypeError, FileNotFoundError) as e:
        print(f"Error: Invalid configuration: {e}", file=sys.stderr)
        return 1

    output_dir = cfg.output_dir.resolve()
    output_dir.mkdir(parents=True, exist_ok=True)
    log_file = utils.safe_file_path(output_dir, cfg.basename, ".log")
    utils.setup_logging(log_level=cfg.log_level, log_file=str(log_file))

    for warning in config.validate_config(cfg):
        logger.warning(f"Configuration: {warning}")

    # Render off-screen
    matplotlib.use("Agg")

    try:
        success = run_pipeline(
            input_path=args.input,
            output_dir=output_dir,
            cfg=cfg,
        )
        return 0 if success else 1

    except KeyboardInterrupt:
        print("\n\nPipeline interrupted by user", file=sys.stderr)
        return 130
    except Exception as e:
        logger.error(f"Pipeline failed with error: {e}", exc_info=True)
        print(f"\nError: Pipeline failed. Check log file: {log_file}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
