"""
Declaration grammar for awsm-env spec files.

A spec file is an ``.env`` file whose comments may carry secret directives::

    # Database credentials
    # @aws-sm app/$env/db-password
    DB_PASSWORD=local-dev-password

    # @aws-ps /app/$env/feature-flags @optional
    export FEATURE_FLAGS: "beta,dark-mode"

    LOG_LEVEL=info   # trailing comments are fine

Grammar:
    ::

        line         := blank | comment | declaration
        comment      := "#" text                         (plain)
                      | "#" "@" tag pattern ["@optional"] ["#" text] (directive)
        tag          := "aws-sm" | "aws-ps"
        declaration  := ["export" ws] key ws? ("=" | ":") ws? value ws? [comment]
        key          := [A-Za-z_][A-Za-z0-9_.]*
        value        := raw | '"' chars '"' | "'" chars "'" | "`" chars "`"

    Raw values run until end of line or an unescaped ``#`` and are trimmed.
    Inside quotes ``\\<delimiter>`` and ``\\\\`` are the only escapes; all
    whitespace is kept.  An empty value means "no default".

    A directive attaches to the next declaration; plain comments and blank
    lines in between do not break the association.

Duplicate keys:
    The last declaration of a key wins (value *and* directive) but the key
    keeps the position of its first appearance.  Each duplicate logs a
    ``duplicate_declaration`` warning.

Examples:
    >>> entries = parse("# @aws-sm foo/bar\\nKEY1=fallback\\n")
    >>> entries[0].secret_directive.id_pattern
    'foo/bar'
    >>> parse('KEY="val"ue"')
    Traceback (most recent call last):
    ...
    ParseError: line 1, column 10: unescaped " inside quoted value

Tags:
    parser, grammar, dotenv, awsm-env
"""

from __future__ import annotations

import re
from enum import Enum, auto

from awsm_env.core.errors import ParseError
from awsm_env.core.logging import get_logger
from awsm_env.core.models import Backend, Declaration, EnvEntries, SecretDirective

logger = get_logger(__name__)

_DIRECTIVE_RE = re.compile(
    r"""
    ^\#\s*                          # comment marker
    @(?P<tag>[\w-]+)\s+             # backend tag
    (?P<pattern>\S+)                # secret id pattern
    (?:\s+(?P<optional>@optional))? # optional marker
    (?:\s+\#.*)?                    # trailing note
    \s*$
    """,
    re.VERBOSE,
)

_DECLARATION_RE = re.compile(
    r"""
    (?:export[ \t]+)?               # optional "export " prefix
    (?P<key>[A-Za-z_][A-Za-z0-9_.]*)
    [ \t]*[=:]                      # separator
    """,
    re.VERBOSE,
)

_BACKEND_TAGS = {backend.value for backend in Backend}

_QUOTE_NAMES = {
    '"': "double-quoted",
    "'": "single-quoted",
    "`": "backtick-quoted",
}

_WHITESPACE = " \t"


class _QuoteState(Enum):
    OPEN = auto()
    ESCAPE = auto()
    CLOSED = auto()


def parse(text: str, *, source: str | None = None) -> EnvEntries:
    """Parse spec file contents into declarations.

    Args:
        text: Contents of the spec file.
        source: Name of the file, used in error messages.

    Returns:
        Declarations in first-seen key order, duplicates collapsed to the
        last declaration.

    Raises:
        ParseError: On the first malformed line.
    """
    entries: dict[str, Declaration] = {}
    pending: SecretDirective | None = None

    for lineno, raw_line in enumerate(text.split("\n"), start=1):
        line = raw_line.rstrip("\r")
        stripped = line.strip()

        if not stripped:
            continue

        if stripped.startswith("#"):
            directive = _parse_directive(stripped, lineno)
            if directive is not None:
                if pending is not None:
                    logger.debug("directive_replaced", line=lineno, replaced=pending.id_pattern)
                pending = directive
            continue

        declaration = _parse_declaration(line, lineno, pending, source)
        pending = None

        if declaration.key in entries:
            logger.warning(
                "duplicate_declaration",
                key=declaration.key,
                line=lineno,
                previous_line=entries[declaration.key].line,
            )
        entries[declaration.key] = declaration

    if pending is not None:
        logger.debug("directive_discarded", pattern=pending.id_pattern)

    return list(entries.values())


def _parse_directive(comment: str, lineno: int) -> SecretDirective | None:
    match = _DIRECTIVE_RE.match(comment)
    if match is None:
        if re.match(r"#\s*@aws-", comment):
            logger.warning("malformed_directive_ignored", line=lineno)
        return None

    tag = match.group("tag")
    if tag not in _BACKEND_TAGS:
        logger.warning("unknown_directive_ignored", line=lineno, tag=tag)
        return None

    return SecretDirective(
        backend=Backend.from_tag(tag),
        id_pattern=match.group("pattern"),
        required=match.group("optional") is None,
    )


def _parse_declaration(
    line: str,
    lineno: int,
    directive: SecretDirective | None,
    source: str | None,
) -> Declaration:
    start = len(line) - len(line.lstrip(_WHITESPACE))
    match = _DECLARATION_RE.match(line, start)
    if match is None:
        raise ParseError(
            "expected a comment or a KEY=value declaration",
            line=lineno,
            column=start + 1,
            source=source,
        )

    pos = match.end()
    while pos < len(line) and line[pos] in _WHITESPACE:
        pos += 1

    if pos < len(line) and line[pos] in _QUOTE_NAMES:
        value = _scan_quoted(line, pos, lineno, source)
    else:
        value = _scan_raw(line, pos)

    return Declaration(
        key=match.group("key"),
        default_value=value or None,
        secret_directive=directive,
        line=lineno,
    )


def _scan_raw(line: str, pos: int) -> str:
    """Read an unquoted value up to end of line or an unescaped ``#``."""
    chars: list[str] = []
    while pos < len(line):
        ch = line[pos]
        if ch == "\\" and line.startswith("#", pos + 1):
            chars.append("#")
            pos += 2
            continue
        if ch == "#":
            break
        chars.append(ch)
        pos += 1
    return "".join(chars).strip(_WHITESPACE)


def _scan_quoted(line: str, pos: int, lineno: int, source: str | None) -> str:
    """Read a quoted value starting at the opening delimiter ``line[pos]``."""
    delimiter = line[pos]
    opened_at = pos + 1
    state = _QuoteState.OPEN
    chars: list[str] = []
    pos += 1

    while pos < len(line) and state is not _QuoteState.CLOSED:
        ch = line[pos]
        if state is _QuoteState.ESCAPE:
            if ch not in (delimiter, "\\"):
                chars.append("\\")
            chars.append(ch)
            state = _QuoteState.OPEN
        elif ch == "\\":
            state = _QuoteState.ESCAPE
        elif ch == delimiter:
            state = _QuoteState.CLOSED
        else:
            chars.append(ch)
        pos += 1

    if state is not _QuoteState.CLOSED:
        raise ParseError(
            f"unterminated {_QUOTE_NAMES[delimiter]} value",
            line=lineno,
            column=opened_at,
            source=source,
        )

    while pos < len(line) and line[pos] in _WHITESPACE:
        pos += 1

    if pos < len(line) and line[pos] != "#":
        if delimiter in line[pos:]:
            description = f"unescaped {delimiter} inside quoted value"
        else:
            description = f"unexpected characters after {_QUOTE_NAMES[delimiter]} value"
        raise ParseError(description, line=lineno, column=pos + 1, source=source)

    return "".join(chars)


__all__ = ["parse"]
