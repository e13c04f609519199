"""
Tornado Season Timing Analysis - Main Entry Point.

Usage:
    python -m tornado_season --output output/run1/
    python -m tornado_season --demo --models nls wgls bayes_mixture
"""

import argparse
import sys
from pathlib import Path

from loguru import logger

from .config import SeasonConfig
from .data_ingestion import simulate_tracks
from .models import ModelKind
from .pipeline import TornadoSeasonPipeline


def build_parser() -> argparse.ArgumentParser:
    """Command line arguments for the analysis."""
    parser = argparse.ArgumentParser(
        description="Seasonal timing of US tornadoes: cumulative-count curve models",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Download the SPC archive and fit every model
  python -m tornado_season

  # Synthetic data, least-squares fits only
  python -m tornado_season --demo --models nls wgls

  # Short sampler run over a few years
  python -m tornado_season --models bayes_mixture_re --years 2011 2012 2013 --draws 500 --tune 500
        """
    )

    parser.add_argument('--demo', action='store_true', help='Run with synthetic track data')
    parser.add_argument('--config', type=str, help='YAML file with configuration overrides')
    parser.add_argument(
        '--data-dir',
        type=str,
        default=None,
        help=f'Directory for the downloaded archive (default: {SeasonConfig.DATA_DIR})'
    )
    parser.add_argument(
        '--output',
        type=str,
        default=None,
        help=f'Output directory (default: {SeasonConfig.OUTPUT_DIR})'
    )
    parser.add_argument('--url', type=str, default=None, help='Archive URL override')
    parser.add_argument('--force-download', action='store_true', help='Download even if extracted')
    parser.add_argument('--min-year', type=int, default=None, help='Earliest year kept')
    parser.add_argument('--min-mag', type=int, default=None, help='Smallest magnitude kept')
    parser.add_argument(
        '--models',
        nargs='+',
        choices=[kind.value for kind in ModelKind],
        default=None,
        help='Models to fit (default: all)'
    )
    parser.add_argument('--years', nargs='+', type=int, default=None,
                        help='Restrict curve fits to these years')
    parser.add_argument('--draws', type=int, default=None, help='MCMC draws per chain')
    parser.add_argument('--tune', type=int, default=None, help='MCMC tuning steps')
    parser.add_argument('--chains', type=int, default=None, help='MCMC chains')
    parser.add_argument('--no-save', action='store_true', help='Do not write tables and plots')

    return parser


def main(argv=None):
    """Main entry point for CLI."""
    args = build_parser().parse_args(argv)

    if args.config:
        SeasonConfig.apply_overrides(SeasonConfig.load_from_yaml(args.config))
    SeasonConfig.validate_config()

    output_dir = Path(args.output) if args.output else SeasonConfig.OUTPUT_DIR
    output_dir.mkdir(parents=True, exist_ok=True)

    # Configure logger
    logger.remove()
    logger.add(
        sys.stdout,
        format=SeasonConfig.LOG_FORMAT,
        level=SeasonConfig.LOG_LEVEL
    )
    logger.add(
        output_dir / SeasonConfig.LOG_FILE_NAME,
        format=SeasonConfig.LOG_FORMAT,
        level="DEBUG"
    )

    tracks = None
    if args.demo:
        logger.info("Generating synthetic tornado tracks...")
        first_year = args.min_year or SeasonConfig.MIN_YEAR
        tracks = simulate_tracks(range(first_year, first_year + 10))

    pipeline = TornadoSeasonPipeline(
        output_dir=output_dir,
        data_dir=Path(args.data_dir) if args.data_dir else None,
        archive_url=args.url,
        save_outputs=not args.no_save
    )

    pipeline.run(
        tracks=tracks,
        min_year=args.min_year,
        min_magnitude=args.min_mag,
        models=args.models,
        years=args.years,
        draws=args.draws,
        tune=args.tune,
        chains=args.chains,
        force_download=args.force_download
    )

    if not args.no_save:
        pipeline.generate_report(output_path=output_dir / "report.md")
        logger.info(f"\n✓ All outputs saved to: {output_dir}")

    return pipeline.results


if __name__ == "__main__":
    main()
