"""``gtm config`` commands for default IDs and output preferences."""

from __future__ import annotations

import argparse
import sys

from gtm_cli.cli.common import add_output_option, resolve_output_format
from gtm_cli.config.store import CONFIG_KEYS, config_store
from gtm_cli.utils.errors import ValidationError
from gtm_cli.utils.output import OUTPUT_FORMATS, output, success


def _check_key(key: str) -> None:
    if key not in CONFIG_KEYS:
        raise ValidationError(
            f"Invalid key: {key}. Valid keys: {', '.join(CONFIG_KEYS)}",
            field="key",
        )


def cmd_get(args: argparse.Namespace) -> int:
    if args.key is None:
        return cmd_list(args)

    _check_key(args.key)
    value = config_store.get(args.key)
    if resolve_output_format(args) == "json":
        output({args.key: value}, "json")
    else:
        sys.stdout.write(f"{value if value is not None else '(not set)'}\n")
    return 0


def cmd_set(args: argparse.Namespace) -> int:
    _check_key(args.key)
    if args.key == "outputFormat" and args.value not in OUTPUT_FORMATS:
        raise ValidationError(
            f"outputFormat must be one of: {', '.join(OUTPUT_FORMATS)}",
            field="outputFormat",
        )
    config_store.set(args.key, args.value)
    success(f"Set {args.key} = {args.value}")
    return 0


def cmd_unset(args: argparse.Namespace) -> int:
    _check_key(args.key)
    config_store.unset(args.key)
    success(f"Unset {args.key}")
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    output(config_store.load().to_dict(), resolve_output_format(args))
    return 0


def cmd_clear(args: argparse.Namespace) -> int:
    config_store.clear()
    success("Configuration cleared")
    return 0


def register(subparsers: argparse._SubParsersAction) -> None:
    parser = subparsers.add_parser("config", help="Manage GTM CLI configuration")
    commands = parser.add_subparsers(dest="operation", metavar="<operation>", required=True)

    get = commands.add_parser("get", help="Get a configuration value")
    get.add_argument("key", nargs="?", help=f"One of: {', '.join(CONFIG_KEYS)}")
    add_output_option(get)
    get.set_defaults(func=cmd_get)

    set_ = commands.add_parser("set", help="Set a configuration value")
    set_.add_argument("key", help=f"One of: {', '.join(CONFIG_KEYS)}")
    set_.add_argument("value")
    set_.set_defaults(func=cmd_set)

    unset = commands.add_parser("unset", help="Remove a configuration value")
    unset.add_argument("key", help=f"One of: {', '.join(CONFIG_KEYS)}")
    unset.set_defaults(func=cmd_unset)

    list_ = commands.add_parser("list", help="Show all configuration values")
    add_output_option(list_)
    list_.set_defaults(func=cmd_list)

    clear = commands.add_parser("clear", help="Reset configuration to defaults")
    clear.set_defaults(func=cmd_clear)


__all__ = ["register"]
