"""Shared option parsing for command modules."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any

from gtm_cli.config.store import config_store
from gtm_cli.utils.errors import ValidationError, require_options
from gtm_cli.utils.output import OUTPUT_FORMATS, get_output_format, warn

# Scope levels and the IDs each one needs, outermost first
SCOPE_IDS: dict[str, tuple[str, ...]] = {
    "root": (),
    "account": ("account_id",),
    "container": ("account_id", "container_id"),
    "workspace": ("account_id", "container_id", "workspace_id"),
}

# ID options that fall back to a configured default
ID_CONFIG_KEYS = {
    "account_id": "defaultAccountId",
    "container_id": "defaultContainerId",
    "workspace_id": "defaultWorkspaceId",
}

ID_SHORT_FLAGS = {
    "account_id": "-a",
    "container_id": "-c",
    "workspace_id": "-w",
}


def flag_for(name: str) -> str:
    return "--" + name.replace("_", "-")


def add_id_option(parser: argparse.ArgumentParser, name: str, required: bool = False) -> None:
    label = name.removesuffix("_id").replace("_", " ").title()
    flags = [flag_for(name)]
    if name in ID_SHORT_FLAGS:
        flags.insert(0, ID_SHORT_FLAGS[name])
    # Required-ness is checked after config defaults are applied
    parser.add_argument(
        *flags,
        dest=name,
        metavar="ID",
        help=f"GTM {label} ID" + (" (required)" if required else ""),
    )


def add_scope_options(parser: argparse.ArgumentParser, level: str) -> None:
    for name in SCOPE_IDS[level]:
        add_id_option(parser, name)


def add_output_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-o",
        "--output",
        choices=OUTPUT_FORMATS,
        help="Output format (default: table on a terminal, json when piped)",
    )


def add_body_options(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--data", metavar="JSON", help="Resource body as a JSON string")
    group.add_argument("--file", metavar="PATH", help="Read the resource body from a JSON file")


def resolve_ids(args: argparse.Namespace, names: tuple[str, ...]) -> dict[str, str]:
    """Resolve ID options, falling back to configured defaults.

    Raises:
        ValidationError: Naming every ID that is still missing.
    """
    resolved: dict[str, Any] = {}
    for name in names:
        value = getattr(args, name, None)
        config_key = ID_CONFIG_KEYS.get(name)
        if config_key is not None:
            value = config_store.get_effective_value(value, config_key)
        resolved[name] = value
    require_options(resolved, list(names))
    return resolved


def resolve_output_format(args: argparse.Namespace) -> str:
    """``-o`` flag > configured ``outputFormat`` > terminal detection."""
    requested = getattr(args, "output", None) or config_store.load().output_format
    return get_output_format(requested)


def load_body(args: argparse.Namespace) -> dict[str, Any]:
    """Parse the resource body from ``--data`` or ``--file``."""
    if getattr(args, "data", None):
        source, text = "--data", args.data
    elif getattr(args, "file", None):
        path = Path(args.file).expanduser()
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ValidationError(f"Cannot read {path}: {e}", field="file") from e
        source = str(path)
    else:
        return {}

    try:
        body = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON in {source}: {e.msg}", field="data") from e
    if not isinstance(body, dict):
        raise ValidationError(f"Expected a JSON object in {source}", field="data")
    return body


def split_csv(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def require_force(args: argparse.Namespace, what: str) -> bool:
    """Return True if ``--force`` was given, warning otherwise."""
    if args.force:
        return True
    warn(f"This will delete the {what}. Use --force to confirm.")
    return False


__all__ = [
    "SCOPE_IDS",
    "flag_for",
    "add_id_option",
    "add_scope_options",
    "add_output_option",
    "add_body_options",
    "resolve_ids",
    "resolve_output_format",
    "load_body",
    "split_csv",
    "require_force",
]
