"""Main CLI entry point for flowmate."""

import argparse
import sys
from typing import Optional

from .commands import run_flow


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the flowmate CLI."""
    parser = argparse.ArgumentParser(
        prog='flowmate',
        description='Browser flow automation engine'
    )

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # Run command
    run_parser = subparsers.add_parser('run', help='Run a flow')
    run_parser.add_argument(
        'flow',
        type=str,
        help='Path to flow YAML or JSON file'
    )
    run_parser.add_argument(
        '--var',
        action='append',
        metavar='KEY=VALUE',
        help='Initial variables (can be specified multiple times)'
    )
    run_parser.add_argument(
        '--url',
        type=str,
        help='Open this URL in a tab before the first block runs'
    )
    run_parser.add_argument(
        '--headless',
        action='store_true',
        help='Run the browser without a window'
    )
    run_parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Validate without execution'
    )
    run_parser.add_argument(
        '--block-timeout',
        type=float,
        metavar='SECONDS',
        help='Ceiling for one block or one whole repeater'
    )
    run_parser.add_argument(
        '--load-timeout',
        type=float,
        metavar='SECONDS',
        help='How long to wait for a tab to finish loading'
    )
    run_parser.add_argument(
        '--max-retries',
        type=int,
        help='Retry attempts after a transient dispatch failure'
    )
    run_parser.add_argument(
        '--retry-delay',
        type=int,
        metavar='MS',
        help='Retry delay in milliseconds'
    )
    run_parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )
    run_parser.add_argument(
        '--quiet',
        action='store_true',
        help='Suppress non-error output'
    )
    run_parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose output'
    )
    run_parser.add_argument(
        '--log-level',
        choices=['debug', 'info', 'warn', 'error'],
        default='info',
        help='Set log level'
    )

    return parser


def main(args: Optional[list] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 1

    if parsed_args.command == 'run':
        return run_flow(parsed_args)

    parser.print_help()
    return 1


if __name__ == '__main__':
    sys.exit(main())
