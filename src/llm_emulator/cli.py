"""
LLM Emulator CLI

Command-line interface for running and inspecting the emulator.

Commands:
    serve       - Start the emulator server
    validate    - Load a configuration and print a summary
    match       - Show which case a piece of text routes to

Examples:
    # Start the emulator
    llm-emulator serve config.yaml --port 11434

    # Run the chaos environment with a scripted conversation
    llm-emulator serve config.yaml -e chaos -s checkout

    # Check routing
    llm-emulator match config.yaml "what is the capital city of nj"
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from .common.utils import env_setting
from .config import ConfigError, apply_env_overrides, load_config
from .mock.matcher import CaseMatcher


def _load(args):
    """Load the config named on the command line, exiting on errors."""
    if not args.config:
        print("❌ No configuration file given (argument or LLM_EMULATOR_CONFIG)")
        sys.exit(1)

    try:
        return load_config(args.config)
    except ConfigError as e:
        print(f"❌ Invalid configuration: {e}")
        sys.exit(1)


def cmd_serve(args):
    """
    Start the emulator server.

    Args:
        args: Parsed command-line arguments
    """
    from .mock.server import EmulatorServer

    config = _load(args)
    try:
        config = apply_env_overrides(
            config,
            env=args.env,
            seed=args.seed,
            test_tag=args.test_tag,
            port=args.port,
            use_scenario=args.scenario
        )
    except ConfigError as e:
        print(f"❌ {e}")
        sys.exit(1)

    if args.log_level:
        config.log_level = args.log_level

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s %(message)s'
    )

    print(f"🧪 LLM Emulator")
    print(f"   Config: {args.config}")

    server = EmulatorServer(config)
    server.start(host=args.host)


def cmd_validate(args):
    """
    Load a configuration and print what it defines.

    Args:
        args: Parsed command-line arguments
    """
    config = _load(args)

    print(f"✓ Configuration OK: {args.config}")
    print(f"   Env: {config.env} | Seed: {config.seed} | Port: {config.server.port}")
    print(f"   Matching order: {', '.join(config.matching.order)}")
    print(f"   Cases: {len(config.cases)}")
    for case in config.cases:
        print(f"     - {case.id or '(no id)'}: {case.pattern}")
    print(f"   Scenarios: {len(config.scenarios)}")
    for scenario in config.scenarios:
        print(f"     - {scenario.id} ({scenario.mode})")
    print(f"   HTTP mocks: {len(config.http_mocks)}")
    print(f"   Contracts: {config.contracts.mode} | VCR: {'on' if config.vcr.enabled else 'off'} ({config.vcr.mode})")


def cmd_match(args):
    """
    Print the MatchResult for a text as JSON.

    Args:
        args: Parsed command-line arguments
    """
    config = _load(args)
    matcher = CaseMatcher(config.cases, config.matching)
    result = asyncio.run(matcher.route(args.text))
    print(json.dumps(result.to_dict(), indent=2))

    if not result.matched:
        sys.exit(2)


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog='llm-emulator',
        description="LLM Emulator - deterministic mock server for LLM provider APIs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start the emulator
  %(prog)s serve config.yaml --port 11434

  # Chaos environment with a scripted conversation
  %(prog)s serve config.yaml -e chaos -s checkout

  # Validate a configuration
  %(prog)s validate config.yaml

  # Check which case a text routes to
  %(prog)s match config.yaml "what is the capital city of nj"
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to run')
    default_config = env_setting('CONFIG')

    # --- SERVE command ---
    serve_parser = subparsers.add_parser('serve', help='Start the emulator server')
    serve_parser.add_argument('config', nargs='?', default=default_config, help='Config file (.yaml, .yml or .py)')
    serve_parser.add_argument('--host', help='Host to bind (default: from config, 127.0.0.1)')
    serve_parser.add_argument('-p', '--port', type=int, help='Port to bind (default: from config, 11434)')
    serve_parser.add_argument('-e', '--env', help='Environment name used by fault/latency predicates')
    serve_parser.add_argument('-s', '--scenario', help='Active scenario id')
    serve_parser.add_argument('--test-tag', help='Test tag used by fault/latency predicates')
    serve_parser.add_argument('--seed', type=int, help='Random seed for latency and faults')
    serve_parser.add_argument('--log-level', choices=['debug', 'info', 'warning', 'error'],
                              help='Log level (default: from config, info)')

    # --- VALIDATE command ---
    validate_parser = subparsers.add_parser('validate', help='Validate a configuration file')
    validate_parser.add_argument('config', nargs='?', default=default_config, help='Config file')

    # --- MATCH command ---
    match_parser = subparsers.add_parser('match', help='Route a text to a case and print the result')
    match_parser.add_argument('config', help='Config file')
    match_parser.add_argument('text', help='Input text')

    # Parse arguments
    args = parser.parse_args(argv)

    # Dispatch to command handler
    if args.command == 'serve':
        cmd_serve(args)
    elif args.command == 'validate':
        cmd_validate(args)
    elif args.command == 'match':
        cmd_match(args)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == '__main__':
    main()
