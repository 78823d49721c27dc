"""
Resolution engine: declarations in, ordered ``KEY → value`` mapping out.

Manifesto:
    A spec file may reference dozens of secrets across two AWS stores, many
    of them shared between keys.  Fetching them one call per key is slow and
    burns API quota, so the engine:

    - **Groups** directive entries by backend
    - **Expands** ``$name`` placeholders in every identifier (fail-fast)
    - **Deduplicates** identifiers, so each is fetched once per backend
    - **Batches** distinct identifiers by the provider's ``max_batch_size``
    - **Scatters** results back onto every entry sharing an identifier
    - **Enforces** required/optional: a required miss aborts everything

    There is no partial success.  A caller gets the whole mapping or the
    first error.

Architecture:
    ::

        entries (declaration order)
            │
            ├── no directive ───────────────────────────────┐
            │                                               │
            ├── aws-sm group ─┐                             │
            │                 ├─ expand → dedup → chunk ──┐ │
            └── aws-ps group ─┘     (per group, optionally │ │
                                     in parallel threads)  │ │
                                                           ▼ ▼
                              try_provide(chunk) × N → id → value table
                                                           │
                              required/optional policy ◄───┘
                                                           │
                              ordered mapping (entries with a value)
                                                           │
                              overrides (replace in place or append)

Examples:
    >>> from awsm_env.core.parser import parse
    >>> from awsm_env.core.providers import DictSecretProvider
    >>> provider = DictSecretProvider({"shared/secret": "s3cr3t"})
    >>> resolver = Resolver({Backend.SECRETS_MANAGER: provider})
    >>> entries = parse("# @aws-sm shared/secret\\nA=\\n# @aws-sm shared/secret\\nB=\\n")
    >>> resolver.resolve(entries)
    {'A': 's3cr3t', 'B': 's3cr3t'}
    >>> provider.calls
    [['shared/secret']]

Guardrails:
    ❌ DON'T: Expand placeholders in overrides
    ✅ DO: Treat overrides as final literal values

    ❌ DON'T: Log resolved values
    ✅ DO: Log keys, identifiers and counts

Tags:
    resolver, batching, deduplication, secrets, awsm-env
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from awsm_env.core.errors import BackendError, ResolutionError, SecretNotFoundError
from awsm_env.core.logging import get_logger, log_step
from awsm_env.core.models import Backend, Declaration, ResolvedEntry
from awsm_env.core.placeholders import expand
from awsm_env.core.providers import SecretProvider

logger = get_logger(__name__)


def chunked(items: Sequence[str], size: int) -> list[list[str]]:
    """Split *items* into consecutive lists of at most *size* elements."""
    if size < 1:
        raise ValueError(f"Chunk size must be positive, got {size}")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


@dataclass
class _BackendGroup:
    """Entries that share a backend, with their expanded identifiers."""

    backend: Backend
    entries: list[ResolvedEntry] = field(default_factory=list)

    @property
    def identifiers(self) -> list[str]:
        """Distinct identifiers in first-reference order."""
        return list(dict.fromkeys(entry.identifier for entry in self.entries))


class Resolver:
    """Resolve parsed declarations against secret providers.

    Args:
        providers: Provider per backend.  A backend only needs a provider
            when the spec actually references it.
        concurrent: Resolve backend groups in parallel threads.
    """

    def __init__(
        self,
        providers: Mapping[Backend, SecretProvider] | None = None,
        *,
        concurrent: bool = True,
    ):
        self._providers = dict(providers or {})
        self._concurrent = concurrent

    def resolve(
        self,
        entries: Sequence[Declaration],
        overrides: Mapping[str, str] | None = None,
        placeholders: Mapping[str, str] | None = None,
    ) -> dict[str, str]:
        """Resolve *entries* into an ordered ``KEY → value`` mapping.

        Args:
            entries: Declarations in spec order (as returned by ``parse``).
            overrides: Applied last; replace existing keys in place, new keys
                are appended in iteration order.
            placeholders: Values for ``$name`` tokens in identifier patterns.

        Raises:
            PlaceholderMissingError: A pattern references an unknown placeholder.
            SecretNotFoundError: A required secret does not exist.
            BackendError: A provider call failed.
        """
        resolved = self.resolve_entries(entries, placeholders)

        result = {entry.key: entry.value for entry in resolved if entry.value is not None}
        for key, value in (overrides or {}).items():
            result[key] = value

        logger.info(
            "resolution_complete",
            keys=len(result),
            overrides=len(overrides or {}),
        )
        return result

    def resolve_entries(
        self,
        entries: Sequence[Declaration],
        placeholders: Mapping[str, str] | None = None,
    ) -> list[ResolvedEntry]:
        """Resolve values onto entries without dropping or overriding any."""
        placeholders = placeholders or {}
        resolved = [ResolvedEntry.from_declaration(declaration) for declaration in entries]
        groups = self._group(resolved, placeholders)

        if self._concurrent and len(groups) > 1:
            self._resolve_concurrently(groups)
        else:
            for group in groups:
                self._resolve_group(group)

        return resolved

    def _group(
        self,
        resolved: list[ResolvedEntry],
        placeholders: Mapping[str, str],
    ) -> list[_BackendGroup]:
        groups: dict[Backend, _BackendGroup] = {}
        for entry in resolved:
            directive = entry.directive
            if directive is None:
                continue
            try:
                entry.identifier = expand(directive.id_pattern, placeholders)
            except ResolutionError as e:
                e.with_context(key=entry.key, line=entry.declaration.line)
                raise
            groups.setdefault(directive.backend, _BackendGroup(directive.backend)).entries.append(entry)

        # Backend declaration order keeps error reporting deterministic
        return [groups[backend] for backend in Backend if backend in groups]

    def _resolve_concurrently(self, groups: list[_BackendGroup]) -> None:
        with ThreadPoolExecutor(max_workers=len(groups), thread_name_prefix="awsm-env") as pool:
            futures = [pool.submit(self._resolve_group, group) for group in groups]
            errors = [future.exception() for future in futures]

        for error in errors:
            if error is not None:
                raise error

    def _resolve_group(self, group: _BackendGroup) -> None:
        provider = self._providers.get(group.backend)
        if provider is None:
            raise BackendError(
                f"No provider configured for {group.backend.value}",
                backend=group.backend.value,
            )

        values = self._fetch(provider, group.identifiers)

        for entry in group.entries:
            value = values.get(entry.identifier)
            if value is not None:
                entry.value = value
            elif entry.directive.required:
                raise SecretNotFoundError(entry.identifier, backend=group.backend.value).with_context(
                    key=entry.key,
                    line=entry.declaration.line,
                )
            else:
                logger.info(
                    "optional_secret_missing",
                    key=entry.key,
                    identifier=entry.identifier,
                    has_default=entry.value is not None,
                )

    def _fetch(self, provider: SecretProvider, identifiers: list[str]) -> dict[str, str | None]:
        values: dict[str, str | None] = {}
        batches = chunked(identifiers, provider.max_batch_size)

        with log_step(
            "backend_fetch",
            backend=provider.backend.value,
            identifiers=len(identifiers),
            batches=len(batches),
        ) as step:
            for batch in batches:
                results = provider.try_provide(batch)
                if len(results) != len(batch):
                    raise BackendError(
                        f"{provider.backend.value} returned {len(results)} results for "
                        f"{len(batch)} identifiers",
                        backend=provider.backend.value,
                    )
                values.update(zip(batch, results))
            step["found"] = sum(value is not None for value in values.values())

        return values


def resolve(
    entries: Sequence[Declaration],
    providers: Mapping[Backend, SecretProvider],
    overrides: Mapping[str, str] | None = None,
    placeholders: Mapping[str, str] | None = None,
    *,
    concurrent: bool = True,
) -> dict[str, str]:
    """Convenience wrapper around :meth:`Resolver.resolve`."""
    return Resolver(providers, concurrent=concurrent).resolve(entries, overrides, placeholders)


__all__ = ["Resolver", "resolve", "chunked"]
