"""
``$name`` placeholder expansion for secret identifier patterns.

Directives can be parameterised so one spec file serves several
environments::

    # @aws-sm app/$env/db-password
    DB_PASSWORD=

    $ awsm-env -p env=prod      →  fetches "app/prod/db-password"

Rules:
    - A token is ``$`` followed by one or more word characters.
    - ``$$`` is a literal ``$`` and never starts a token.
    - Every token must have a placeholder value; the first missing one
      (left to right) is reported.
    - Expansion is single-pass: a substituted value is never rescanned, so a
      value containing ``$other`` stays verbatim.

Examples:
    >>> expand("app/$env/db", {"env": "prod"})
    'app/prod/db'
    >>> expand("cost$$center/$env", {"env": "dev"})
    'cost$center/dev'
    >>> expand("app/$env/$missing", {"env": "prod"})
    Traceback (most recent call last):
    ...
    PlaceholderMissingError: Placeholder value missing for 'missing'
"""

from __future__ import annotations

import re
from collections.abc import Mapping

from awsm_env.core.errors import PlaceholderMissingError

_TOKEN_RE = re.compile(r"\$(\w+)")
_ESCAPE = "$$"


def find_placeholders(pattern: str) -> list[str]:
    """Return placeholder names referenced by *pattern*, in order of appearance."""
    # "$$" still ends a name: "$a$$b" references "a"
    return _TOKEN_RE.findall(pattern.replace(_ESCAPE, " "))


def expand(pattern: str, placeholders: Mapping[str, str]) -> str:
    """Substitute ``$name`` tokens in *pattern* from *placeholders*.

    Raises:
        PlaceholderMissingError: Naming the first token without a value.
    """
    if "$" not in pattern:
        return pattern

    for name in find_placeholders(pattern):
        if name not in placeholders:
            raise PlaceholderMissingError(name)

    marker = _escape_marker(pattern, placeholders)
    neutralised = pattern.replace(_ESCAPE, marker)

    substituted = _TOKEN_RE.sub(lambda m: placeholders[m.group(1)], neutralised)
    return substituted.replace(marker, "$")


def _escape_marker(pattern: str, placeholders: Mapping[str, str]) -> str:
    """Pick a marker that occurs in neither the pattern nor any placeholder value."""
    haystack = [pattern, *placeholders.values()]
    marker = "\x00"
    while any(marker in text for text in haystack):
        marker += "\x00"
    return marker


__all__ = ["expand", "find_placeholders"]
