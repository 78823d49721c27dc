"""
Output formatters for resolved environments.

Each formatter turns the resolver's ordered ``KEY → value`` mapping into
text.  Values are always JSON string literals::

    env    KEY1="value1"
           KEY2="val\\"ue2"

    shell  export KEY1="value1"
           export KEY2="val\\"ue2"

    json   {"KEY1":"value1","KEY2":"val\\"ue2"}

Re-parsing env output gives back the same values only when they are
printable and single-line.  The spec parser unescapes just ``\\"`` and
``\\\\`` inside quotes, so control characters written as JSON escapes
(``\\n``, ``\\t``) come back as a literal backslash and letter.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Mapping
from enum import Enum


class OutputFormat(str, Enum):
    """Output formats selectable from the CLI."""

    ENV = "env"
    SHELL = "shell"
    JSON = "json"


def _quote(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


class Formatter(ABC):
    """Render an ordered mapping of environment variables."""

    @abstractmethod
    def format(self, entries: Mapping[str, str]) -> str:
        ...


class EnvFormatter(Formatter):
    """``.env`` format: ``KEY="value"`` per line."""

    def format(self, entries: Mapping[str, str]) -> str:
        return "".join(f"{key}={_quote(value)}\n" for key, value in entries.items())


class ShellFormatter(Formatter):
    """Shell export commands: ``export KEY="value"`` per line."""

    def format(self, entries: Mapping[str, str]) -> str:
        return "".join(f"export {key}={_quote(value)}\n" for key, value in entries.items())


class JsonFormatter(Formatter):
    """A single compact JSON object followed by a newline."""

    def format(self, entries: Mapping[str, str]) -> str:
        return json.dumps(dict(entries), ensure_ascii=False, separators=(",", ":")) + "\n"


_FORMATTERS: dict[OutputFormat, type[Formatter]] = {
    OutputFormat.ENV: EnvFormatter,
    OutputFormat.SHELL: ShellFormatter,
    OutputFormat.JSON: JsonFormatter,
}


def get_formatter(output_format: OutputFormat | str) -> Formatter:
    """Return a formatter instance for *output_format*.

    Raises:
        ValueError: If the format is unknown.
    """
    return _FORMATTERS[OutputFormat(output_format)]()


__all__ = [
    "OutputFormat",
    "Formatter",
    "EnvFormatter",
    "ShellFormatter",
    "JsonFormatter",
    "get_formatter",
]
