"""
Structured logging for awsm-env.

Manifesto:
    awsm-env is usually run inside ``eval "$(awsm-env -f shell)"`` or piped
    into a file, so stdout belongs to the rendered output and nothing else.
    All diagnostics go through structlog to **stderr**:

    - **Structured:** ``logger.info("backend_batch_fetched", size=20)``
    - **Two renderers:** coloured console for humans, JSON for CI logs
    - **Quiet by default:** WARNING level unless asked otherwise

Architecture:
    ::

        configure_logging(level="INFO", json_format=False)
            │
            ▼
        structlog processor chain:
          1. merge_contextvars      (LogContext / bind_context)
          2. add_log_level
          3. add_logger_name
          4. TimeStamper(iso, utc)
          5. format_exc_info
          6. JSONRenderer | ConsoleRenderer
            │
            ▼
        PrintLogger(file=sys.stderr)

Examples:
    >>> from awsm_env.core.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG")
    >>> logger = get_logger(__name__)
    >>> logger.debug("directive_attached", key="DB_PASSWORD")

    Timing a step:

    >>> with log_step("fetch_secrets", backend="aws-sm"):
    ...     fetch()

Guardrails:
    - Never log secret values, only keys and identifiers
    - Configure once at CLI startup; library code only calls get_logger()

Tags:
    logging, structlog, observability, awsm-env
"""

from __future__ import annotations

import logging
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.types import Processor

_configured = False


class _StderrLogger(structlog.PrintLogger):
    """PrintLogger bound to the current ``sys.stderr`` and carrying a name."""

    def __init__(self, name: str | None = None):
        super().__init__(file=sys.stderr)
        self.name = name


def _stderr_logger_factory(*args: Any) -> _StderrLogger:
    # Looked up per log call so redirected stderr (tests, wrappers) is honoured
    return _StderrLogger(args[0] if args else None)


def configure_logging(
    level: str = "WARNING",
    json_format: bool = False,
    force: bool = False,
) -> None:
    """Configure structured logging for the application.

    Subsequent calls are no-ops unless ``force=True``.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON lines, False for coloured console output
        force: Reconfigure even if already configured
    """
    global _configured

    if _configured and not force:
        return

    log_level = getattr(logging, level.upper())

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=_stderr_logger_factory,
        cache_logger_on_first_use=False,
    )

    # botocore logs through stdlib logging
    logging.basicConfig(
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        stream=sys.stderr,
        level=log_level,
        force=True,
    )

    _configured = True


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger (usually ``get_logger(__name__)``)."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context to include in all subsequent logs."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


class LogContext:
    """Context manager for scoped logging context.

    Example:
        with LogContext(source=".env.example"):
            logger.info("parse_started")
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs

    def __enter__(self) -> "LogContext":
        bind_context(**self._context)
        return self

    def __exit__(self, *args) -> None:
        unbind_context(*self._context.keys())


@contextmanager
def log_step(event: str, **fields: Any) -> Iterator[dict[str, Any]]:
    """
    Log the start (DEBUG) and end (INFO, with ``duration_ms``) of a step.

    The yielded dict can be filled with extra fields for the end event.
    Failures are logged at WARNING with the exception type and re-raised.

    Usage:
        with log_step("backend_fetch", backend="aws-sm") as step:
            values = provider.try_provide(ids)
            step["found"] = sum(v is not None for v in values)
    """
    logger = get_logger("awsm_env.timing")
    extra: dict[str, Any] = {}
    started = time.perf_counter()
    logger.debug(f"{event}.start", **fields)
    try:
        yield extra
    except Exception as e:
        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        logger.warning(
            f"{event}.failed",
            duration_ms=duration_ms,
            error_type=type(e).__name__,
            **fields,
        )
        raise
    duration_ms = round((time.perf_counter() - started) * 1000, 2)
    logger.info(f"{event}.end", duration_ms=duration_ms, **fields, **extra)


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "LogContext",
    "log_step",
]
