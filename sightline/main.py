"""
sightline - command-line entry point.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import structlog

from sightline import __version__
from sightline.cache.cleanup import clean_up_cache
from sightline.config import Settings, settings
from sightline.core.runner import TestRunner
from sightline.errors import SightlineError


def select_renderer(config: Settings):
    """JSON lines in CI or when asked for, a console renderer otherwise."""
    if config.log_format == "json" or config.is_ci:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def configure_logging():
    """Configure structured logging."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=logging.DEBUG if settings.app_debug else settings.log_level.upper(),
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            select_renderer(settings),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sightline",
        description="Run AI-driven end-to-end tests.",
    )
    parser.add_argument("pattern", nargs="?", help="Test file or glob pattern")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--no-cache", action="store_true", help="Disable the replay cache")
    parser.add_argument(
        "--clear-cache",
        action="store_true",
        help="Delete every cached AI decision and exit",
    )
    parser.add_argument("--headless", action=argparse.BooleanOptionalAction, default=None)
    parser.add_argument("--target", help="Base URL of the application under test")
    return parser


async def run(args: argparse.Namespace) -> int:
    logger = structlog.get_logger()

    overrides = {}
    if args.no_cache:
        overrides["caching_enabled"] = False
    if args.headless is not None:
        overrides["playwright_headless"] = args.headless
    if args.target:
        overrides["base_url"] = args.target
    run_settings = settings.model_copy(update=overrides)

    if args.clear_cache:
        removed = clean_up_cache(run_settings.cache_dir, force_purge=True)
        logger.info("cache_cleared", files=removed)
        return 0

    runner = TestRunner(cwd=Path.cwd(), settings=run_settings)
    try:
        await runner.initialize()
        passed = await runner.run_tests(args.pattern)
    except SightlineError as e:
        logger.error("run_aborted", error=str(e), error_type=type(e).__name__)
        return 2

    return 0 if passed else 1


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    args = build_parser().parse_args(argv)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
