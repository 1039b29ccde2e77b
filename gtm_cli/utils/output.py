"""Output formatting for command results.

Structured data (JSON, tables, compact lines) goes to stdout. Status
messages go to stderr so piping ``gtm ... -o json`` into another tool never
sees them.
"""

from __future__ import annotations

import json
import re
import sys
from typing import Any, Literal

from rich.console import Console
from rich.markup import escape
from rich.table import Table

OutputFormat = Literal["json", "table", "compact"]
OUTPUT_FORMATS: tuple[str, ...] = ("json", "table", "compact")

stdout_console = Console(highlight=False)
stderr_console = Console(stderr=True, highlight=False)

# Preferred identifier column per resource, in lookup order
ID_COLUMNS = [
    "accountId",
    "containerId",
    "workspaceId",
    "tagId",
    "triggerId",
    "variableId",
    "folderId",
    "containerVersionId",
    "environmentId",
    "clientId",
    "templateId",
    "zoneId",
    "transformationId",
]


def is_tty() -> bool:
    return sys.stdout.isatty()


def get_output_format(requested: str | None = None) -> OutputFormat:
    """Return the effective output format.

    An explicit request wins; otherwise tables on a terminal and JSON when
    output is piped.
    """
    if requested in OUTPUT_FORMATS:
        return requested  # type: ignore[return-value]
    return "table" if is_tty() else "json"


def output(
    data: Any,
    fmt: str | None = None,
    columns: list[str] | None = None,
    headers: list[str] | None = None,
) -> None:
    """Render ``data`` to stdout in the requested format."""
    match get_output_format(fmt):
        case "json":
            sys.stdout.write(json.dumps(data, indent=2, default=str) + "\n")
        case "compact":
            _output_compact(data)
        case _:
            if isinstance(data, list):
                _output_table(data, columns, headers)
            elif isinstance(data, dict):
                _output_object(data)
            else:
                stdout_console.print(escape(str(data)))


def _output_compact(data: Any) -> None:
    if not isinstance(data, list):
        sys.stdout.write(json.dumps(data, default=str) + "\n")
        return
    for item in data:
        if isinstance(item, dict):
            ident = next((item[c] for c in ID_COLUMNS if item.get(c)), "")
            sys.stdout.write(f"{ident}\t{item.get('name', '')}\n")
        else:
            sys.stdout.write(f"{item}\n")


def _output_table(
    data: list[Any],
    columns: list[str] | None = None,
    headers: list[str] | None = None,
) -> None:
    if not data:
        stderr_console.print("No results found.")
        return

    first = data[0]
    if not isinstance(first, dict):
        for item in data:
            stdout_console.print(escape(str(item)))
        return

    cols = columns or get_default_columns(first)
    hdrs = headers or [format_header(c) for c in cols]

    table = Table(show_lines=False)
    for header in hdrs:
        table.add_column(header, style=None, header_style="bold")
    for item in data:
        table.add_row(*(format_value(item.get(col)) for col in cols))
    stdout_console.print(table)


def _output_object(data: dict[str, Any]) -> None:
    table = Table(show_header=False)
    table.add_column(style="bold")
    table.add_column()
    for key, value in data.items():
        if value is not None:
            table.add_row(format_header(key), format_value(value))
    stdout_console.print(table)


def get_default_columns(item: dict[str, Any]) -> list[str]:
    """Pick a small, useful column set for a resource dictionary."""
    columns: list[str] = []
    for id_col in ID_COLUMNS:
        if id_col in item:
            columns.append(id_col)
            break
    for extra in ("name", "type", "publicId", "fingerprint"):
        if extra in item:
            columns.append(extra)
    return columns


def format_header(key: str) -> str:
    """camelCase -> Title Case."""
    spaced = re.sub(r"([A-Z])", r" \1", key).strip()
    return spaced[:1].upper() + spaced[1:]


def format_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "[green]✓[/green]" if value else "[red]✗[/red]"
    if isinstance(value, list):
        return "[]" if not value else f"[{len(value)} items]"
    if isinstance(value, dict):
        return escape(json.dumps(value, default=str))
    return escape(str(value))


def success(message: str) -> None:
    stderr_console.print(f"[green]✓[/green] {escape(message)}")


def error(message: str) -> None:
    stderr_console.print(f"[red]✗[/red] {escape(message)}")


def warn(message: str) -> None:
    stderr_console.print(f"[yellow]⚠[/yellow] {escape(message)}")


def info(message: str) -> None:
    stderr_console.print(f"[blue]ℹ[/blue] {escape(message)}")


__all__ = [
    "OutputFormat",
    "OUTPUT_FORMATS",
    "get_output_format",
    "output",
    "get_default_columns",
    "format_header",
    "format_value",
    "success",
    "error",
    "warn",
    "info",
]
