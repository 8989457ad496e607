# pipeline.py - Change summary pipeline
"""
Change Event Summary Pipeline

Turns per-pixel change events from a trend/seasonal decomposition into
summary rasters and query point tables.

Usage:
    python pipeline.py --steps all                    # Run complete pipeline
    python pipeline.py --steps summarize              # Summary rasters only
    python pipeline.py --steps export --p-min 0.8     # Query point tables with a stricter cutoff
    python pipeline.py --n-jobs 8                     # Limit the worker pool

Available steps:
    - summarize: Most recent / most probable change rasters for the whole grid
    - export: Filtered change events and reconstructed series for query points
    - all: Run all steps
"""

import argparse
import logging
import os
import sys
from datetime import datetime
from pathlib import Path
import traceback

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from change_summary.config import DEFAULT_CONFIG_PATH, load_config
from change_summary.decomposition import (
    DecompositionSettings,
    load_decomposition,
    template_from_decomposition,
)
from change_summary.export import write_tables
from change_summary.lookup import load_query_points, query_points_from_records
from change_summary.raster import load_template
from change_summary.reconstruct import write_summary_rasters
from change_summary.summarize import export_query_points, summarize_grid


def setup_logging(level="INFO"):
    """Set up logging configuration."""
    log_dir = Path("logs")
    log_dir.mkdir(exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"pipeline_{timestamp}.log"

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(sys.stdout)
        ]
    )

    return logging.getLogger('change-summary-pipeline')


def check_requirements(config):
    """Check that the decomposition output exists and create output directories."""
    Path(config['paths']['output_dir']).mkdir(exist_ok=True, parents=True)

    decomposition_path = config['paths']['decomposition']
    if not Path(decomposition_path).exists():
        raise FileNotFoundError(f"Decomposition output '{decomposition_path}' not found!")

    return True


def collect_query_points(config, crs):
    """Query points from the configured file plus any listed inline."""
    settings = config['query_points']
    points = []
    if settings.get('file'):
        points.extend(load_query_points(settings['file'], crs=crs,
                                        source_crs=settings.get('source_crs')))
    points.extend(query_points_from_records(settings.get('points')))
    return points


def run_summarize_step(logger, config, ds):
    """Write the six summary rasters."""
    logger.info("STEP 1: Summarizing change events over the whole grid...")

    try:
        paths = config['paths']
        template = load_template(paths['template']) if paths.get('template') else None

        summary = summarize_grid(
            ds,
            n_jobs=config['summary']['n_jobs'],
            chunk_size=config['summary']['chunk_size'],
            template=template,
        )
        settings = DecompositionSettings.from_dict(config['decomposition'])
        logger.info(f"Decomposition options: {settings.as_options()}")
        write_summary_rasters(summary, paths['output_dir'], template=template,
                              prefix=paths['raster_prefix'], tags=settings.as_tags())
        logger.info("✅ Summary rasters completed successfully")
        return True
    except Exception as e:
        logger.error(f"❌ Summary raster export failed: {str(e)}")
        logger.debug(traceback.format_exc())
        return False


def run_export_step(logger, config, ds):
    """Write event and reconstructed series tables for the query points."""
    logger.info("STEP 2: Exporting query point tables...")

    try:
        points = collect_query_points(config, template_from_decomposition(ds).rio.crs)
        if not points:
            logger.warning("⚠️ No query points configured, skipping table export")
            return True

        events, series, failures = export_query_points(
            ds, points,
            p_min=config['summary']['p_min'],
            n_jobs=config['summary']['n_jobs'],
        )
        write_tables(events, series, config['paths']['output_dir'], failures=failures)

        if failures:
            logger.warning(f"⚠️ Exported {len(points) - len(failures)}/{len(points)} query points")
        logger.info("✅ Query point export completed successfully")
        return True
    except Exception as e:
        logger.error(f"❌ Query point export failed: {str(e)}")
        logger.debug(traceback.format_exc())
        return False


def main(argv=None):
    """Main pipeline execution."""
    parser = argparse.ArgumentParser(
        description="Change Event Summary Pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    parser.add_argument(
        '--steps',
        type=str,
        default='all',
        help='Comma-separated list of steps to run (summarize,export,all)'
    )

    parser.add_argument(
        '--config',
        type=str,
        default=DEFAULT_CONFIG_PATH,
        help=f'Path to the YAML configuration (default: {DEFAULT_CONFIG_PATH})'
    )

    parser.add_argument(
        '--p-min',
        type=float,
        help='Probability cutoff for exported change events'
    )

    parser.add_argument(
        '--n-jobs',
        type=int,
        help='Worker pool size (0 = all available cores)'
    )

    args = parser.parse_args(argv)

    overrides = {'summary': {}}
    if args.p_min is not None:
        overrides['summary']['p_min'] = args.p_min
    if args.n_jobs is not None:
        overrides['summary']['n_jobs'] = args.n_jobs

    try:
        config = load_config(args.config, overrides=overrides)
    except Exception as e:
        print(f"❌ Setup failed: {str(e)}")
        return 1

    # Setup
    logger = setup_logging(config['logging']['level'])
    logger.info("Starting change event summary pipeline")

    try:
        check_requirements(config)
        ds = load_decomposition(config['paths']['decomposition'])
    except Exception as e:
        logger.error(f"Setup failed: {str(e)}")
        return 1

    # Parse steps
    if args.steps.lower() == 'all':
        steps = ['summarize', 'export']
    else:
        steps = [s.strip().lower() for s in args.steps.split(',')]

    logger.info(f"Pipeline will run steps: {steps}")
    logger.info(f"Probability cutoff: {config['summary']['p_min']}, "
                f"workers: {config['summary']['n_jobs'] or 'all'}")

    # Execute steps
    step_functions = {
        'summarize': lambda: run_summarize_step(logger, config, ds),
        'export': lambda: run_export_step(logger, config, ds),
    }

    failed_steps = []

    for step in steps:
        if step not in step_functions:
            logger.warning(f"Unknown step '{step}', skipping...")
            continue

        success = step_functions[step]()

        if not success:
            failed_steps.append(step)
            logger.error(f"Step '{step}' failed, stopping pipeline")
            break

    # Summary
    if failed_steps:
        logger.error(f"Pipeline failed at step(s): {failed_steps}")
        return 1

    logger.info("Pipeline completed successfully!")

    output_dir = Path(config['paths']['output_dir'])
    logger.info("\n" + "="*60)
    logger.info("PIPELINE OUTPUTS:")
    rasters = sorted(output_dir.glob("*.tif"))
    if rasters:
        logger.info("  - Summary rasters:")
        for raster in rasters:
            logger.info(f"    * {raster}")
    tables = sorted(output_dir.glob("*.csv"))
    if tables:
        logger.info("  - Tables:")
        for table in tables:
            logger.info(f"    * {table}")
    logger.info("="*60)

    return 0


if __name__ == "__main__":
    sys.exit(main())
