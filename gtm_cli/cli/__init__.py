"""Command-line interface for GTM CLI.

Usage:
    gtm auth login [--service-account PATH | --adc]
    gtm auth status [-o json]
    gtm config set defaultAccountId 123456
    gtm containers list --account-id 123456
    gtm tags list -a 123 -c 456 -w 1
    gtm tags update -a 123 -c 456 -w 1 --tag-id 7 --name "Renamed"
    gtm versions publish -a 123 -c 456 --version-id 42
"""

from __future__ import annotations

import argparse
import logging

from googleapiclient.errors import HttpError

from gtm_cli.cli import auth, config, resources
from gtm_cli.config.constants import APP_DESCRIPTION, APP_VERSION
from gtm_cli.utils.errors import GtmCliError, handle_error
from gtm_cli.utils.output import error

logger = logging.getLogger(__name__)

# Conventional exit status for SIGINT
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gtm", description=APP_DESCRIPTION)
    parser.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging on stderr",
    )
    subparsers = parser.add_subparsers(dest="command", metavar="<command>", required=True)

    auth.register(subparsers)
    config.register(subparsers)
    resources.register(subparsers)
    return parser


def dispatch(args: argparse.Namespace) -> int:
    """Run the handler selected by ``args`` and return its exit status.

    Known errors are reported on stderr and exit with status 1.
    """
    try:
        result: int = args.func(args)
    except KeyboardInterrupt:
        error("Cancelled")
        return EXIT_INTERRUPTED
    except (GtmCliError, HttpError) as e:
        handle_error(e)
    return result


__all__ = ["build_parser", "dispatch"]
