"""
Data model shared by the parser and the resolver.

A spec file becomes a list of :class:`Declaration` objects; declarations that
carry a ``# @aws-sm`` / ``# @aws-ps`` directive hold a :class:`SecretDirective`.
The resolver turns each declaration into a :class:`ResolvedEntry`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Backend(str, Enum):
    """Secret backends, valued by their directive tag.

    Declaration order matters: when several backend groups fail during a
    concurrent resolution, the error of the earliest one is reported.
    """

    SECRETS_MANAGER = "aws-sm"
    PARAMETER_STORE = "aws-ps"

    @classmethod
    def from_tag(cls, tag: str) -> Backend:
        """Look up a backend by its directive tag (``aws-sm`` / ``aws-ps``)."""
        return cls(tag)


@dataclass(frozen=True, slots=True)
class SecretDirective:
    """A comment-encoded instruction to fetch a declaration's value.

    Attributes:
        backend: Which store to query.
        id_pattern: Secret identifier, possibly containing ``$name`` placeholders.
        required: False only when the directive carries ``@optional``.
    """

    backend: Backend
    id_pattern: str
    required: bool = True


@dataclass(frozen=True, slots=True)
class Declaration:
    """One ``KEY=value`` line, with the directive that preceded it (if any)."""

    key: str
    default_value: str | None = None
    secret_directive: SecretDirective | None = None
    line: int | None = field(default=None, compare=False)


EnvEntries = list[Declaration]


@dataclass(slots=True)
class ResolvedEntry:
    """A declaration plus its final value.

    ``value`` starts as the declaration's default and is replaced by the
    fetched secret when the backend finds one.  ``identifier`` is the
    placeholder-expanded secret id, ``None`` for plain declarations.
    """

    declaration: Declaration
    value: str | None = None
    identifier: str | None = None

    @property
    def key(self) -> str:
        return self.declaration.key

    @property
    def directive(self) -> SecretDirective | None:
        return self.declaration.secret_directive

    @classmethod
    def from_declaration(cls, declaration: Declaration) -> ResolvedEntry:
        return cls(declaration=declaration, value=declaration.default_value)


__all__ = [
    "Backend",
    "SecretDirective",
    "Declaration",
    "EnvEntries",
    "ResolvedEntry",
]
