"""
Structured error types for awsm-env.

Every failure the pipeline can produce is one of a small, typed hierarchy so
that the CLI (and library callers) can tell a malformed spec file apart from a
missing placeholder, a missing secret, or a broken backend call, without
string matching.

Manifesto:
    The pipeline is all-or-nothing: a caller receives either a fully resolved
    mapping or exactly one error.  That error has to carry enough metadata to
    be actionable on its own:

    - **Category:** What kind of failure (parse, config, not found, backend)
    - **Retryable:** Whether re-running the same command may succeed
    - **Context:** Source file, line/column, backend and identifier
    - **Cause:** The chained botocore exception, when there is one

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                       AwsmEnvError                           │
        │  (category, retryable, context, cause)                       │
        ├─────────────────────────────────────────────────────────────┤
        │                                                              │
        │  ParseError              ResolutionError                     │
        │  (PARSE)                      │                              │
        │                   ┌───────────┼────────────────┐             │
        │                   │           │                │             │
        │      PlaceholderMissingError  SecretNotFound   BackendError  │
        │      (CONFIG)                 (NOT_FOUND)      (SOURCE /     │
        │                                                 NETWORK)     │
        └─────────────────────────────────────────────────────────────┘

Examples:
    >>> error = SecretNotFoundError("app/prod/db")
    >>> error.identifier
    'app/prod/db'
    >>> error.to_dict()["category"]
    'NOT_FOUND'

    >>> try:
    ...     raise ConnectionError("DNS failure")
    ... except ConnectionError as e:
    ...     raise BackendError("Could not reach AWS", cause=e, retryable=True)
    Traceback (most recent call last):
    ...
    BackendError: Could not reach AWS

Guardrails:
    ❌ DON'T: Put secret values into messages or context
    ✅ DO: Name the identifier that failed, never what it resolved to

    ❌ DON'T: Swallow the botocore exception
    ✅ DO: Pass it as cause= for error chaining

Tags:
    error-handling, exception-hierarchy, awsm-env
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories used for classification and CLI reporting."""

    PARSE = "PARSE"               # Malformed spec file
    CONFIG = "CONFIG"             # Missing placeholder, bad settings
    NOT_FOUND = "NOT_FOUND"       # Required secret absent from its backend
    SOURCE = "SOURCE"             # Backend API rejected the request
    NETWORK = "NETWORK"           # Transport-level failure talking to a backend
    INTERNAL = "INTERNAL"         # Bugs, unexpected state


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only the fields relevant to a failure are set; ``to_dict()`` drops the
    rest so log lines stay short.

    Attributes:
        source: Name of the spec file being processed
        line: 1-based line number in the spec file
        column: 1-based column number in the spec file
        backend: Backend tag (``aws-sm`` / ``aws-ps``)
        identifier: Expanded secret identifier
        metadata: Additional key-value pairs
    """

    source: str | None = None
    line: int | None = None
    column: int | None = None
    backend: str | None = None
    identifier: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["source", "line", "column", "backend", "identifier"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class AwsmEnvError(Exception):
    """
    Base exception for all awsm-env errors.

    Subclasses set ``default_category`` and ``default_retryable`` so call
    sites only pass what differs from the norm.

    Examples:
        >>> error = AwsmEnvError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.with_context(source=".env.example").context.source
        '.env.example'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> AwsmEnvError:
        """
        Add context to this error (fluent API).

        Usage:
            raise ParseError("bad line").with_context(source="app.env")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# PARSE ERRORS
# =============================================================================


class ParseError(AwsmEnvError):
    """
    Structural error in a spec file.

    Raised for malformed quoting and for lines that are neither a comment nor
    a declaration.  Parsing stops at the first such error, so there is never
    more than one.

    Examples:
        >>> error = ParseError("unterminated quoted value", line=3, column=6)
        >>> str(error)
        'line 3, column 6: unterminated quoted value'
    """

    default_category = ErrorCategory.PARSE

    def __init__(
        self,
        description: str,
        *,
        line: int,
        column: int,
        source: str | None = None,
        **kwargs: Any,
    ):
        self.description = description
        self.line = line
        self.column = column
        location = f"line {line}, column {column}"
        if source:
            location = f"{source}: {location}"
        super().__init__(f"{location}: {description}", **kwargs)
        self.with_context(source=source, line=line, column=column)


# =============================================================================
# RESOLUTION ERRORS
# =============================================================================


class ResolutionError(AwsmEnvError):
    """Base class for every failure raised while resolving entries."""


class PlaceholderMissingError(ResolutionError):
    """An identifier pattern references a placeholder nobody supplied."""

    default_category = ErrorCategory.CONFIG

    def __init__(self, name: str, **kwargs: Any):
        self.name = name
        super().__init__(f"Placeholder value missing for '{name}'", **kwargs)


class SecretNotFoundError(ResolutionError):
    """
    A required directive's backend reported the identifier as absent.

    ``identifier`` is the post-expansion value that was sent to the backend.
    """

    default_category = ErrorCategory.NOT_FOUND

    def __init__(self, identifier: str, *, backend: str | None = None, **kwargs: Any):
        self.identifier = identifier
        self.backend = backend
        super().__init__(f"Secret not found: {identifier}", **kwargs)
        self.with_context(identifier=identifier, backend=backend)


class BackendError(ResolutionError):
    """
    The backend call itself failed (transport, auth, throttling, API fault).

    Anything a backend reports other than "not found" lands here and aborts
    the whole resolution.
    """

    default_category = ErrorCategory.SOURCE

    def __init__(
        self,
        message: str,
        *,
        backend: str | None = None,
        code: str | None = None,
        **kwargs: Any,
    ):
        self.backend = backend
        self.code = code
        super().__init__(message, **kwargs)
        self.with_context(backend=backend)
        if code is not None:
            self.context.metadata["code"] = code


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "AwsmEnvError",
    "ParseError",
    "ResolutionError",
    "PlaceholderMissingError",
    "SecretNotFoundError",
    "BackendError",
]
