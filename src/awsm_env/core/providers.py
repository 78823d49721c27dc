"""
Provider capability: the boundary between the resolver and secret stores.

The resolver never talks to AWS directly.  It hands each provider a batch of
identifiers and gets back one optional value per identifier::

    provider.try_provide(["app/db", "app/api-key", "app/db"])
        → ["s3cr3t", None, "s3cr3t"]

``None`` means "not found" and nothing else.  Every other failure (auth,
throttling, transport, malformed response) raises :class:`BackendError`.
Backend-specific "not found" reporting is normalised inside each provider so
the resolver has no backend-specific branches.

Architecture:
    ::

        SecretProvider (ABC)
        ├── DictSecretProvider        in-memory, records calls (tests, dry runs)
        ├── SecretsManagerProvider    awsm_env.core.aws, batches of ≤ 20
        └── ParameterStoreProvider    awsm_env.core.aws, batches of ≤ 10

    Each provider declares ``max_batch_size``; splitting identifiers into
    chunks of that size is the resolver's job, providers reject larger
    batches.

Tags:
    secrets, providers, abc, awsm-env
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence

from awsm_env.core.errors import BackendError
from awsm_env.core.models import Backend


class SecretProvider(ABC):
    """Abstract base for secret providers.

    Subclasses set ``backend`` and ``max_batch_size`` and implement
    :meth:`_fetch`.
    """

    backend: Backend
    max_batch_size: int

    def try_provide(self, ids: Sequence[str]) -> list[str | None]:
        """Fetch one batch of identifiers.

        Args:
            ids: At most ``max_batch_size`` identifiers; duplicates allowed.

        Returns:
            Values aligned positionally with *ids*, ``None`` for "not found".

        Raises:
            BackendError: On any failure other than "not found".
        """
        if len(ids) > self.max_batch_size:
            raise BackendError(
                f"Batch of {len(ids)} identifiers exceeds the limit of "
                f"{self.max_batch_size} for {self.backend.value}",
                backend=self.backend.value,
            )
        if not ids:
            return []

        found = self._fetch(list(dict.fromkeys(ids)))
        return [found.get(identifier) for identifier in ids]

    @abstractmethod
    def _fetch(self, ids: list[str]) -> Mapping[str, str]:
        """Fetch distinct *ids*; return a mapping containing only those found."""
        ...


class DictSecretProvider(SecretProvider):
    """In-memory provider.

    Stores secrets in plain memory and records every batch it receives in
    ``calls``, which makes it the test double for the resolver.
    """

    def __init__(
        self,
        secrets: Mapping[str, str] | None = None,
        *,
        backend: Backend = Backend.SECRETS_MANAGER,
        max_batch_size: int = 20,
    ):
        self._secrets = dict(secrets) if secrets else {}
        self.backend = backend
        self.max_batch_size = max_batch_size
        self.calls: list[list[str]] = []

    def _fetch(self, ids: list[str]) -> Mapping[str, str]:
        self.calls.append(list(ids))
        return {identifier: self._secrets[identifier] for identifier in ids if identifier in self._secrets}

    def set(self, identifier: str, value: str) -> None:
        """Set a secret value."""
        self._secrets[identifier] = value


__all__ = ["SecretProvider", "DictSecretProvider"]
