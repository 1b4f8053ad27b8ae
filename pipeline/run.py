"""
Pipeline runner CLI - makes the feature jobs human-visible.
Usage: python pipeline/run.py compute-indicators --tickers AAPL MSFT
"""

import argparse
import logging
import os
import sys
from datetime import date
from pathlib import Path

from dotenv import load_dotenv

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from analysis.settings import ConfigError, load_correlation_config
from pipeline.correlation_dag import run_correlation_matrix
from pipeline.features_dag import (
    FeatureJobConfig, PipelineError, run_build_snapshots, run_compute_indicators
)
from storage.loaders import init_database, get_connection

load_dotenv()

DEFAULT_DB_PATH = './data/research.db'


def build_parser() -> argparse.ArgumentParser:
    """Argument parser with one subcommand per job."""
    parser = argparse.ArgumentParser(
        description='Compute indicators, feature snapshots and correlations',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python pipeline/run.py compute-indicators --tickers AAPL MSFT --from 2024-01-01
  python pipeline/run.py build-snapshots --tickers AAPL --preview
  python pipeline/run.py correlation-matrix --window 20 --lookback 120
        """
    )
    parser.add_argument('--db',
                        default=os.getenv('RESEARCH_DB_PATH', DEFAULT_DB_PATH),
                        help=f'Path to SQLite database (default: $RESEARCH_DB_PATH or {DEFAULT_DB_PATH})')
    parser.add_argument('--verbose', '-v',
                        action='store_true',
                        help='Debug logging')

    subparsers = parser.add_subparsers(dest='command', required=True)

    compute = subparsers.add_parser('compute-indicators', help='Compute and route indicators')
    _add_selection_args(compute)
    compute.add_argument('--indicators', nargs='*', default=[],
                         help='Indicator names, e.g. sma_50 rsi macd (default: every configured tier)')
    compute.add_argument('--no-snapshots', action='store_true',
                         help='Do not fold snapshot-tier rows into daily snapshots')

    snapshots = subparsers.add_parser('build-snapshots', help='Build daily feature snapshots')
    _add_selection_args(snapshots)
    snapshots.add_argument('--preview', action='store_true',
                           help='Count snapshots without writing')

    correlation = subparsers.add_parser('correlation-matrix', help='Compute pairwise correlations')
    correlation.add_argument('--as-of', type=date.fromisoformat,
                             help='As-of date (YYYY-MM-DD, default: today)')
    correlation.add_argument('--window', type=int, help='Aligned returns per pair')
    correlation.add_argument('--lookback', type=int, help='Calendar days of closes to load')
    correlation.add_argument('--chunk-size', type=int, help='Tile edge length')
    correlation.add_argument('--limit', type=int, help='Cap on the number of instruments (0 = all)')
    correlation.add_argument('--min-overlap', type=int, help='Minimum shared return dates per pair')

    return parser


def _add_selection_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('--tickers', nargs='*', default=[],
                        help='Symbols to process (default: all active instruments)')
    parser.add_argument('--from', dest='start', type=date.fromisoformat,
                        help='Start date (YYYY-MM-DD)')
    parser.add_argument('--to', dest='end', type=date.fromisoformat,
                        help='End date (YYYY-MM-DD)')
    parser.add_argument('--include-inactive', action='store_true',
                        help='Include inactive instruments')


def main(argv=None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    level = 'DEBUG' if args.verbose else os.getenv('LOG_LEVEL', 'INFO').upper()
    logging.basicConfig(level=level, format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    db_path = Path(args.db)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(str(db_path))
    init_database(conn)

    try:
        if args.command == 'correlation-matrix':
            config = load_correlation_config(
                window=args.window,
                lookback_days=args.lookback,
                chunk_size=args.chunk_size,
                limit=args.limit,
                min_overlap=args.min_overlap
            )
            print(f"🚀 Running correlation matrix (window {config.window}, lookback {config.lookback_days}d)")
            print()
            result = run_correlation_matrix(config, conn, as_of=args.as_of)
            _display_correlation_results(result)
        else:
            config = FeatureJobConfig(
                tickers=args.tickers,
                indicators=getattr(args, 'indicators', []),
                start_date=args.start,
                end_date=args.end,
                include_inactive=args.include_inactive,
                build_snapshots=not getattr(args, 'no_snapshots', False),
                preview=getattr(args, 'preview', False)
            )
            selection = ', '.join(config.tickers) if config.tickers else 'all active instruments'
            print(f"🚀 Running {args.command} for {selection}")
            print(f"📅 Date range: {config.start_date or 'earliest'} to {config.end_date or 'latest'}")
            print()

            if args.command == 'compute-indicators':
                result = run_compute_indicators(config, conn)
            else:
                result = run_build_snapshots(config, conn)
            _display_feature_results(result)

    except (ConfigError, PipelineError) as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1
    finally:
        conn.close()

    print(f"💾 Database: {db_path}")
    return 0


def _display_feature_results(result: dict):
    """Display feature job results."""
    print("📊 Pipeline Results:")
    print(f"   Status: {result['status'].upper()}")
    print(f"   Run ID: {result['run_id']}")
    print(f"   Duration: {result['duration_seconds']:.1f}s")
    print(f"   Instruments: {result['instruments']}")
    if 'inserted' in result:
        print(f"   Core rows: {result['inserted']}")
    print(f"   Snapshots: {result['snapshots']}")
    if result.get('preview'):
        print("   Preview only, nothing written")
    print()


def _display_correlation_results(result: dict):
    """Display correlation matrix results."""
    print("📊 Correlation Results:")
    print(f"   Status: {result['status'].upper()}")
    print(f"   Run ID: {result['run_id']}")
    print(f"   As of: {result['as_of_date']}")
    print(f"   Duration: {result['duration_seconds']:.1f}s")
    print(f"   Tickers: {result['tickers']}")
    print(f"   Pairs considered: {result['pairs_considered']}")
    print(f"   Pairs written: {result['pairs_written']}")
    print(f"   Skipped (overlap): {result['skipped_overlap']}")
    print(f"   Skipped (degenerate): {result['skipped_degenerate']}")
    print()


if __name__ == '__main__':
    sys.exit(main())
