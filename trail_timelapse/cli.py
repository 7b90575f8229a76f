"""
Command line entry points for regenerating, building and fetching trail timelapses.
"""

from __future__ import annotations

import argparse
import logging
import shutil
from pathlib import Path
from typing import Optional, Sequence

from dotenv import load_dotenv

from . import scheduler as scheduler_module
from .app import TimelapseService
from .errors import TimelapseError
from .logging_setup import DEFAULT_LOGGER_NAME, configure_logging


def _copy_out(source: Path, destination: Path) -> Path:
    destination.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(source, destination)
    return destination


def cmd_regenerate(service: TimelapseService, args: argparse.Namespace) -> int:
    outcome = service.regenerate(args.organization, args.trail)
    service.logger.info("Regeneration of '%s' (%s): %s", args.trail, args.organization, outcome.value)
    return 0 if outcome.published else 1


def cmd_generate(service: TimelapseService, args: argparse.Namespace) -> int:
    result = service.generate_time_lapse(args.organization, args.trails)
    try:
        written = _copy_out(result.local_path, Path(args.output))
    finally:
        service.cleanup(result.scratch_paths, result.local_path)
    service.logger.info("Wrote %s-frame timelapse to %s", result.frame_count, written)
    return 0


def cmd_fetch_cached(service: TimelapseService, args: argparse.Namespace) -> int:
    local_path = service.get_cached_or_generate(args.organization, args.trail)
    try:
        written = _copy_out(local_path, Path(args.output))
    finally:
        service.cleanup((), local_path)
    service.logger.info("Wrote timelapse for '%s' to %s", args.trail, written)
    return 0


def cmd_sweep(service: TimelapseService, args: argparse.Namespace) -> int:
    removed = service.sweep_scratch()
    service.logger.info("Removed %s stale scratch files", removed)
    return 0


def cmd_janitor(service: TimelapseService, args: argparse.Namespace) -> int:
    scheduler_module.run(service)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Trail timelapse generation and caching.")
    parser.add_argument("--config", default="config.json", help="Path to the JSON configuration file.")
    parser.add_argument("--log-file", default=None, help="Also write logs to this file.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")

    subparsers = parser.add_subparsers(dest="command", required=True)

    regenerate = subparsers.add_parser("regenerate", help="Rebuild and publish a trail's cached timelapse.")
    regenerate.add_argument("organization")
    regenerate.add_argument("trail")
    regenerate.set_defaults(handler=cmd_regenerate)

    generate = subparsers.add_parser("generate", help="Build a timelapse without publishing it.")
    generate.add_argument("organization")
    generate.add_argument("trails", nargs="*", help="Trail names; all trails when omitted.")
    generate.add_argument("--output", required=True)
    generate.set_defaults(handler=cmd_generate)

    fetch_cached = subparsers.add_parser("fetch-cached", help="Download a trail's cached timelapse.")
    fetch_cached.add_argument("organization")
    fetch_cached.add_argument("trail")
    fetch_cached.add_argument("--output", required=True)
    fetch_cached.set_defaults(handler=cmd_fetch_cached)

    sweep = subparsers.add_parser("sweep", help="Delete stale scratch files once.")
    sweep.set_defaults(handler=cmd_sweep)

    janitor = subparsers.add_parser("janitor", help="Sweep scratch space on a schedule.")
    janitor.set_defaults(handler=cmd_janitor)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    logger = configure_logging(
        DEFAULT_LOGGER_NAME,
        level=logging.DEBUG if args.verbose else logging.INFO,
        log_file=args.log_file,
    )
    service = TimelapseService.from_config(args.config, logger=logger)

    try:
        return args.handler(service, args)
    except TimelapseError as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1
    except OSError as exc:
        logger.error("%s failed writing output: %s", args.command, exc)
        return 1


__all__ = ["build_parser", "main"]
