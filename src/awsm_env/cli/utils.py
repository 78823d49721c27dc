"""
CLI utility helpers — consoles, ``KEY=value`` parsing and error output.
"""

from __future__ import annotations

from typing import NoReturn

import typer
from rich.console import Console
from rich.markup import escape

from awsm_env.core.errors import AwsmEnvError

err_console = Console(stderr=True)


def parse_key_value(pair: str) -> tuple[str, str]:
    """Split ``KEY=value`` on the first ``=``; the value may contain more ``=``."""
    key, sep, value = pair.partition("=")
    if not sep or not key.strip():
        raise typer.BadParameter(f"'{pair}' should be of the form key=value")
    return key.strip(), value


def parse_pairs(pairs: list[str] | None) -> dict[str, str]:
    """Parse repeated ``KEY=value`` options into an ordered dict (last one wins)."""
    result: dict[str, str] = {}
    for pair in pairs or []:
        key, value = parse_key_value(pair)
        result[key] = value
    return result


def fail(phase: str, error: Exception) -> NoReturn:
    """Print ``Error <phase>: <message>`` to stderr and exit with status 1."""
    message = error.message if isinstance(error, AwsmEnvError) else str(error)
    err_console.print(f"[bold red]Error {escape(phase)}[/bold red]: {escape(message)}", soft_wrap=True)
    raise typer.Exit(code=1)
