#!/usr/bin/env python3
"""HLTB Title Resolver - command line entry point."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

# Add project root directory to path
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

# Local imports
from src.config import config
from src.core.logging import logger, setup_logging
from src.services.playtime_service import build_default_service
from src.version import __app_name__, __version__

__all__ = ["build_parser", "main"]


def build_parser() -> argparse.ArgumentParser:
    """Builds the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="hltb-resolve",
        description="Look up HowLongToBeat completion times for a game title.",
    )
    parser.add_argument("names", nargs="*", help="Game title(s) to resolve")
    parser.add_argument("--id", dest="stable_id", help="Stable identifier (e.g. Steam app id) of a single title")
    parser.add_argument("--sweep", action="store_true", help="Purge expired cache entries and exit")
    parser.add_argument(
        "--explain", action="store_true", help="Show per-source match scores instead of resolving"
    )
    parser.add_argument("--health", action="store_true", help="Print health status and diagnostics")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"{__app_name__} {__version__}")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI execution flow.

    Returns:
        Exit code (0 = success, 1 = nothing found or unhealthy, 2 = usage error).
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    # 1. Setup logging
    setup_logging(logging.DEBUG if args.verbose else logging.WARNING, config.LOG_FILE)
    logger.debug("%s %s starting", __app_name__, __version__)

    if args.stable_id and len(args.names) != 1:
        parser.error("--id requires exactly one title")
    if args.explain and not args.names:
        parser.error("--explain requires at least one title")
    if not (args.names or args.sweep or args.health):
        parser.print_help()
        return 2

    # 2. Build the service stack from configuration
    service = build_default_service(config)
    exit_code = 0

    # 3. Maintenance commands
    if args.sweep:
        removed = service.sweep_cache()
        print(json.dumps({"swept": removed}))

    # 4. Lookups
    if args.explain:
        reports = {name: service.explain(name) for name in args.names}
        print(json.dumps(reports, indent=2, ensure_ascii=False, default=str))
    elif len(args.names) == 1:
        result = service.resolve_entity(args.names[0], args.stable_id)
        print(json.dumps(result, indent=2, ensure_ascii=False))
        exit_code = 0 if result["found"] else 1
    elif args.names:
        results = service.resolve_many(args.names)
        print(json.dumps(dict(zip(args.names, results)), indent=2, ensure_ascii=False))
        exit_code = 0 if all(result["found"] for result in results) else 1

    # 5. Diagnostics last, so they include the lookups above
    if args.health:
        health = service.health_check()
        print(json.dumps(health, indent=2, default=str))
        if not health["healthy"]:
            exit_code = 1

    orchestrator_cache = service.orchestrator.cache
    if orchestrator_cache is not None:
        orchestrator_cache.flush()
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
