"""CLI entry point for NFT Activity Bot.

This module replays a batch of marketplace event payloads through the
relay and waits until every message has been delivered.

Usage:
    python -m nft_activity_bot [options] events.json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import logging.config
import sys
from pathlib import Path
from typing import Any, NoReturn

from pydantic import ValidationError

from nft_activity_bot import __version__
from nft_activity_bot.alerter.relay import EventRelay
from nft_activity_bot.config import Settings, clear_settings_cache, get_settings
from nft_activity_bot.events.models import parse_events

# Application info
APP_NAME = "NFT Activity Bot"
APP_VERSION = __version__

# Exit codes
EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI.

    Returns:
        Configured ArgumentParser instance.
    """
    parser = argparse.ArgumentParser(
        prog="nft-activity-bot",
        description="Post NFT marketplace activity to Discord and Twitter.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m nft_activity_bot events.json             Dispatch a batch of events
  cat events.json | python -m nft_activity_bot -     Read the batch from stdin
  python -m nft_activity_bot --config-check          Validate config and exit
  python -m nft_activity_bot --dry-run events.json   Log messages instead of sending
        """,
    )

    parser.add_argument(
        "events",
        nargs="?",
        default=None,
        help="JSON file with a list of event payloads ('-' for stdin)",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {APP_VERSION}",
    )

    parser.add_argument(
        "--config-check",
        action="store_true",
        help="Validate configuration and exit without dispatching",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override logging level (default: from settings)",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log messages instead of sending them",
    )

    return parser


def configure_logging(level: str) -> None:
    """Configure structured logging for the application.

    Args:
        level: Logging level string (DEBUG, INFO, etc.)
    """
    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "detailed": {
                "format": (
                    "%(asctime)s [%(levelname)s] %(name)s (%(filename)s:%(lineno)d): %(message)s"
                ),
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "detailed" if level == "DEBUG" else "standard",
                "stream": "ext://sys.stderr",
            },
        },
        "root": {
            "level": level,
            "handlers": ["console"],
        },
        # Quieter logging for noisy libraries
        "loggers": {
            "httpx": {"level": "WARNING"},
            "httpcore": {"level": "WARNING"},
            "web3": {"level": "WARNING"},
            "urllib3": {"level": "WARNING"},
            "requests_oauthlib": {"level": "WARNING"},
            "oauthlib": {"level": "WARNING"},
        },
    }
    logging.config.dictConfig(config)


def print_config_summary(settings: Settings, dry_run: bool) -> None:
    """Print a summary of the configuration.

    Args:
        settings: Application settings.
        dry_run: Whether dry-run mode is enabled.
    """
    summary = settings.redacted_summary()
    print(f"{APP_NAME} v{APP_VERSION}")
    print("Configuration:")
    for key, value in summary.items():
        if isinstance(value, dict):
            print(f"  {key}:")
            for sub_key, sub_value in value.items():
                print(f"    {sub_key}: {sub_value}")
        else:
            print(f"  {key}: {value}")
    print(f"  effective_dry_run: {dry_run}")
    print()


def validate_config() -> Settings | None:
    """Validate and load configuration.

    Returns:
        Settings instance if valid, None if invalid.
    """
    try:
        # Clear cache to force reload
        clear_settings_cache()
        return get_settings()
    except ValidationError as e:
        print("Configuration validation failed:", file=sys.stderr)
        for error in e.errors():
            field = ".".join(str(loc) for loc in error["loc"])
            msg = error["msg"]
            print(f"  {field}: {msg}", file=sys.stderr)
        return None


def run_config_check(settings: Settings) -> int:
    """Run configuration check and exit.

    Args:
        settings: Validated settings.

    Returns:
        Exit code (0 for success).
    """
    print("Configuration is valid!")
    print()
    print_config_summary(settings, dry_run=settings.dry_run)

    relay = EventRelay.from_settings(settings, dry_run=True)
    print("Routes:")
    routes = relay.routing.describe()
    for line in routes:
        print(f"  {line}")
    if not routes:
        print("  WARNING: no destinations configured, events will be ignored")

    print()
    print(f"  Discord: {'configured' if settings.discord.enabled else 'not configured'}")
    print(f"  Twitter: {'configured' if settings.twitter.enabled else 'not configured'}")
    return EXIT_SUCCESS


def load_payloads(source: str) -> list[dict[str, Any]]:
    """Load event payloads from a JSON file or stdin.

    Accepts a list of payloads, an object with an ``events`` list, or a
    single payload object.

    Raises:
        ValueError: If the document is not valid JSON or has no payloads.
    """
    text = sys.stdin.read() if source == "-" else Path(source).read_text(encoding="utf-8")
    data = json.loads(text)
    if isinstance(data, dict):
        data = data.get("events", [data])
    if not isinstance(data, list):
        raise ValueError("expected a list of event payloads")
    return [payload for payload in data if isinstance(payload, dict)]


async def run_batch(settings: Settings, payloads: list[dict[str, Any]], dry_run: bool) -> int:
    """Dispatch one batch of payloads and wait for delivery.

    Args:
        settings: Application settings.
        payloads: Raw marketplace event payloads.
        dry_run: Whether to log messages instead of sending them.

    Returns:
        Exit code.
    """
    logger = logging.getLogger(__name__)
    try:
        relay = EventRelay.from_settings(settings, dry_run=dry_run)
        events = parse_events(payloads)
        logger.info(f"Parsed {len(events)} of {len(payloads)} payloads")

        await relay.handle_event_batch(events)
        await relay.join()
        return EXIT_SUCCESS
    except asyncio.CancelledError:
        logger.info("Interrupted by user")
        return EXIT_INTERRUPTED
    except Exception as e:
        logger.exception("Dispatch failed: %s", e)
        return EXIT_ERROR


def main(argv: list[str] | None = None) -> NoReturn:
    """Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:]).
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    # Validate configuration first
    settings = validate_config()
    if settings is None:
        sys.exit(EXIT_CONFIG_ERROR)

    # Determine effective log level
    log_level = args.log_level or ("DEBUG" if settings.debug else settings.log_level)
    configure_logging(log_level)

    # Config check mode
    if args.config_check:
        sys.exit(run_config_check(settings))

    if args.events is None:
        parser.print_usage(sys.stderr)
        print("error: an events file is required unless --config-check is given", file=sys.stderr)
        sys.exit(EXIT_ERROR)

    # Determine dry-run mode
    dry_run = args.dry_run or settings.dry_run

    try:
        payloads = load_payloads(args.events)
    except (OSError, ValueError) as e:
        print(f"Cannot read events from {args.events}: {e}", file=sys.stderr)
        sys.exit(EXIT_ERROR)

    try:
        exit_code = asyncio.run(run_batch(settings, payloads, dry_run))
    except KeyboardInterrupt:
        exit_code = EXIT_INTERRUPTED
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
