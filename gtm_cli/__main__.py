"""Entry point for GTM CLI."""

from __future__ import annotations

import logging
import os
import sys

from dotenv import load_dotenv


def configure_logging(verbose: bool = False) -> None:
    """Configure logging to stderr.

    Keeps stdout free for command output, which may be piped JSON.

    Respects LOG_LEVEL env var (DEBUG, INFO, WARNING, ERROR, CRITICAL);
    ``--verbose`` forces DEBUG.
    """
    log_level_str = "DEBUG" if verbose else os.getenv("LOG_LEVEL", "WARNING").upper()
    log_level = logging.getLevelNamesMapping().get(log_level_str, logging.WARNING)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    # Reduce noise from Google libraries
    logging.getLogger("googleapiclient").setLevel(logging.WARNING)
    logging.getLogger("google.auth").setLevel(logging.WARNING)


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Loads environment, configures logging and runs the selected command.
    """
    # Load .env file if present, before constants read the environment
    load_dotenv()

    from gtm_cli.cli import build_parser, dispatch

    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    return dispatch(args)


if __name__ == "__main__":
    sys.exit(main())
