"""
Run the Latent Proxy Monte Carlo Study
======================================

Runs the full factorial grid (or a quick reduced grid) and writes
checkpointed summaries to the output directory:

    summaries.csv        one row per condition x method
    summaries_wide.csv   one row per condition
    replicates.csv       per-replicate records (if enabled)
    study_meta.json      settings used

Usage:
    python scripts/run_simulation.py
    python scripts/run_simulation.py --quick --workers 4
    python scripts/run_simulation.py --config config/simulation_config.json --no-resume
"""

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

import pandas as pd

# =============================================================================
# PROJECT ROOT SETUP
# =============================================================================
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from latentsim import constants as C
from latentsim.config import load_settings, validate_settings
from latentsim.exceptions import ConfigError
from latentsim.utils.logging_config import setup_logging, configure_warnings, get_logger
from latentsim.validation.monte_carlo import MonteCarloStudy

logger = get_logger("latentsim.cli")

SUMMARY_COLUMNS = ['mean_coef', 'mean_se', 'bias', 'empirical_coverage', 'failure_rate']


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description='Monte Carlo comparison of single-item, sum-score, '
                    'factor-score and SEM estimates of a latent effect'
    )
    parser.add_argument('--config', type=str, default=None,
                        help=f'Path to JSON config (default: {C.CONFIG_PATH} if present)')
    parser.add_argument('--replications', type=int, default=None,
                        help='Replications per condition')
    parser.add_argument('--workers', type=int, default=None,
                        help='Parallel worker processes (1 = sequential)')
    parser.add_argument('--seed', type=int, default=None, help='Base random seed')
    parser.add_argument('--output', type=str, default=None, help='Output directory')
    parser.add_argument('--sem-timeout', type=float, default=None,
                        help='Wall-clock budget per SEM fit in seconds (0 disables)')
    parser.add_argument('--quick', action='store_true',
                        help=f'Reduced grid: N in {C.SAMPLE_SIZES_QUICK}, '
                             f'{C.N_REPLICATIONS_QUICK} replications')
    parser.add_argument('--no-resume', action='store_true',
                        help='Ignore existing checkpoint and start over')
    parser.add_argument('--save-replicates', action='store_true',
                        help='Also write per-replicate records')
    parser.add_argument('--log-level', type=str, default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    parser.add_argument('--log-file', type=str, default=None, help='Optional log file')
    parser.add_argument('--debug', action='store_true', help='Show all library warnings')
    return parser.parse_args(argv)


def resolve_settings(args: argparse.Namespace):
    config_path = args.config
    if config_path is None and (PROJECT_ROOT / C.CONFIG_PATH).exists():
        config_path = PROJECT_ROOT / C.CONFIG_PATH
    settings = load_settings(config_path)

    if args.quick:
        settings = replace(settings, sample_sizes=list(C.SAMPLE_SIZES_QUICK),
                           n_replications=C.N_REPLICATIONS_QUICK)
    if args.replications is not None:
        settings = replace(settings, n_replications=args.replications)
    if args.workers is not None:
        settings = replace(settings, n_workers=args.workers)
    if args.seed is not None:
        settings = replace(settings, seed=args.seed)
    if args.output is not None:
        settings = replace(settings, output_dir=args.output)
    if args.sem_timeout is not None:
        settings = replace(settings, sem_timeout=args.sem_timeout or None)
    if args.save_replicates:
        settings = replace(settings, save_replicates=True)
    return validate_settings(settings)


def print_summary(wide: pd.DataFrame) -> None:
    """Print the headline statistics per condition and method."""
    if wide.empty:
        print("No results.")
        return

    cols = ['condition', 'mean_reliability']
    for method in C.METHODS:
        cols += [f'{method}_{stat}' for stat in SUMMARY_COLUMNS
                 if f'{method}_{stat}' in wide.columns]

    print("\n" + "=" * 80)
    print("SIMULATION SUMMARY")
    print("=" * 80)
    with pd.option_context('display.max_columns', None, 'display.width', 200,
                           'display.float_format', '{:.3f}'.format):
        print(wide[cols].to_string(index=False))


def main(argv=None) -> int:
    args = parse_args(argv)

    setup_logging(level=getattr(logging, args.log_level), log_file=args.log_file)
    configure_warnings(debug_mode=args.debug)

    try:
        settings = resolve_settings(args)
    except ConfigError as e:
        logger.error(str(e))
        return 2

    output_dir = Path(settings.output_dir)
    if not output_dir.is_absolute():
        output_dir = PROJECT_ROOT / output_dir

    study = MonteCarloStudy(settings, checkpoint_dir=output_dir)
    result = study.run(resume=not args.no_resume)

    print_summary(result.wide_table())
    print(f"\nResults saved to: {output_dir}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
