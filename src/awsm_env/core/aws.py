"""
AWS-backed secret providers.

Two stores, two very different ways of saying "not found":

    ┌──────────────────────┬───────────────────────────┬──────────────────────────┐
    │ Provider             │ API call                  │ "not found" signal       │
    ├──────────────────────┼───────────────────────────┼──────────────────────────┤
    │ SecretsManager       │ BatchGetSecretValue (≤20) │ Errors[] entry with      │
    │ (# @aws-sm)          │                           │ ResourceNotFoundException│
    │ ParameterStore       │ GetParameters (≤10)       │ InvalidParameters[] name │
    │ (# @aws-ps)          │                           │                          │
    └──────────────────────┴───────────────────────────┴──────────────────────────┘

Both are normalised to the ``SecretProvider`` contract: a value or ``None``
per identifier.  Any other error entry, ``ClientError`` or ``BotoCoreError``
becomes a :class:`BackendError` and aborts resolution.

Clients are created lazily so a spec file without directives never needs AWS
credentials or a region.  Timeouts and retries live in the botocore
``Config`` built by :func:`build_providers`.

Tags:
    aws, boto3, secrets-manager, ssm, parameter-store, awsm-env
"""

from __future__ import annotations

import re
import threading
from collections.abc import Callable, Mapping
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from awsm_env.core.errors import BackendError, ErrorCategory
from awsm_env.core.logging import get_logger
from awsm_env.core.models import Backend
from awsm_env.core.providers import SecretProvider
from awsm_env.core.settings import AwsmEnvSettings

logger = get_logger(__name__)

_NOT_FOUND_CODE = "ResourceNotFoundException"
# Secrets Manager appends "-" and six random characters to every secret ARN
_ARN_SUFFIX = r"-[A-Za-z0-9]{6}"
_THROTTLING_CODES = frozenset({"ThrottlingException", "TooManyRequestsException", "Throttling"})
_TRANSPORT_ERRORS = (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError)


class _BotoProvider(SecretProvider):
    """Shared client handling and botocore error translation."""

    service_name: str

    def __init__(
        self,
        client: Any | None = None,
        *,
        client_factory: Callable[[], Any] | None = None,
    ):
        if client is None and client_factory is None:
            raise ValueError("Either client or client_factory is required")
        self._client = client
        self._client_factory = client_factory

    @property
    def client(self) -> Any:
        if self._client is None:
            try:
                self._client = self._client_factory()
            except BotoCoreError as e:
                raise self._backend_error(f"Could not create {self.service_name} client: {e}", e) from e
        return self._client

    def _call(self, operation: str, **params: Any) -> dict[str, Any]:
        try:
            return getattr(self.client, operation)(**params)
        except ClientError as e:
            error = e.response.get("Error", {})
            code = error.get("Code", "Unknown")
            raise BackendError(
                f"{self.backend.value} {operation} failed ({code}): {error.get('Message', e)}",
                backend=self.backend.value,
                code=code,
                retryable=code in _THROTTLING_CODES,
                cause=e,
            ) from e
        except BotoCoreError as e:
            raise self._backend_error(f"{self.backend.value} {operation} failed: {e}", e) from e

    def _backend_error(self, message: str, cause: BotoCoreError) -> BackendError:
        transport = isinstance(cause, _TRANSPORT_ERRORS)
        return BackendError(
            message,
            backend=self.backend.value,
            code=type(cause).__name__,
            category=ErrorCategory.NETWORK if transport else None,
            retryable=transport,
            cause=cause,
        )


class SecretsManagerProvider(_BotoProvider):
    """AWS Secrets Manager via ``BatchGetSecretValue``.

    Identifiers may be secret names, full ARNs or partial ARNs (without the
    random six-character suffix).
    """

    backend = Backend.SECRETS_MANAGER
    max_batch_size = 20
    service_name = "secretsmanager"

    def _fetch(self, ids: list[str]) -> Mapping[str, str]:
        secret_values: list[dict[str, Any]] = []
        params: dict[str, Any] = {"SecretIdList": ids}

        while True:
            response = self._call("batch_get_secret_value", **params)
            secret_values.extend(response.get("SecretValues", []))

            for error in response.get("Errors", []):
                code = error.get("ErrorCode")
                if code == _NOT_FOUND_CODE:
                    logger.debug("secret_not_found", backend=self.backend.value, identifier=error.get("SecretId"))
                    continue
                raise BackendError(
                    f"{self.backend.value} could not fetch '{error.get('SecretId')}' ({code}): "
                    f"{error.get('Message', '')}",
                    backend=self.backend.value,
                    code=code,
                    retryable=code in _THROTTLING_CODES,
                ).with_context(identifier=error.get("SecretId"))

            next_token = response.get("NextToken")
            if not next_token:
                break
            params["NextToken"] = next_token

        return _match_secret_values(ids, secret_values)


def _secret_text(secret: dict[str, Any]) -> str:
    if secret.get("SecretString") is not None:
        return secret["SecretString"]
    binary = secret.get("SecretBinary")
    if binary is not None:
        try:
            return binary.decode("utf-8")
        except UnicodeDecodeError as e:
            raise BackendError(
                f"Secret '{secret.get('Name')}' holds binary data that is not UTF-8 text",
                backend=Backend.SECRETS_MANAGER.value,
                cause=e,
            ) from e
    raise BackendError(
        f"Secret '{secret.get('Name')}' has no value",
        backend=Backend.SECRETS_MANAGER.value,
    )


def _match_secret_values(ids: list[str], secret_values: list[dict[str, Any]]) -> dict[str, str]:
    """Map requested identifiers onto returned secrets by name, ARN or partial ARN."""
    by_ref: dict[str, str] = {}
    arns: list[tuple[str, str]] = []
    for secret in secret_values:
        text = _secret_text(secret)
        if secret.get("Name"):
            by_ref[secret["Name"]] = text
        if secret.get("ARN"):
            by_ref[secret["ARN"]] = text
            arns.append((secret["ARN"], text))

    found: dict[str, str] = {}
    for identifier in ids:
        if identifier in by_ref:
            found[identifier] = by_ref[identifier]
            continue
        for arn, text in arns:
            if re.fullmatch(re.escape(identifier) + _ARN_SUFFIX, arn):
                found[identifier] = text
                break
    return found


class ParameterStoreProvider(_BotoProvider):
    """AWS SSM Parameter Store via ``GetParameters`` (decrypted).

    Names reported in ``InvalidParameters`` resolve to ``None``; the other
    names in the same batch still resolve.
    """

    backend = Backend.PARAMETER_STORE
    max_batch_size = 10
    service_name = "ssm"

    def _fetch(self, ids: list[str]) -> Mapping[str, str]:
        response = self._call("get_parameters", Names=ids, WithDecryption=True)

        for name in response.get("InvalidParameters", []):
            logger.debug("parameter_not_found", backend=self.backend.value, identifier=name)

        by_ref: dict[str, str] = {}
        for parameter in response.get("Parameters", []):
            value = parameter.get("Value")
            if value is None:
                continue
            name = parameter.get("Name")
            if name:
                by_ref[name] = value
                if parameter.get("Selector"):
                    by_ref[f"{name}{parameter['Selector']}"] = value
            if parameter.get("ARN"):
                by_ref[parameter["ARN"]] = value

        return {identifier: by_ref[identifier] for identifier in ids if identifier in by_ref}


def build_providers(settings: AwsmEnvSettings) -> dict[Backend, SecretProvider]:
    """Create both AWS providers from settings.

    Clients share one ``boto3.Session`` and are only instantiated when a
    provider is first asked for values.
    """
    config = Config(
        connect_timeout=settings.connect_timeout,
        read_timeout=settings.read_timeout,
        retries={"max_attempts": settings.max_attempts, "mode": "standard"},
    )
    client_kwargs: dict[str, Any] = {"config": config}
    if settings.endpoint_url:
        client_kwargs["endpoint_url"] = settings.endpoint_url

    session_holder: list[boto3.Session] = []
    lock = threading.Lock()

    def session() -> boto3.Session:
        with lock:
            if not session_holder:
                session_holder.append(
                    boto3.Session(profile_name=settings.profile, region_name=settings.region)
                )
                logger.debug("aws_session_created", profile=settings.profile, region=settings.region)
            return session_holder[0]

    return {
        Backend.SECRETS_MANAGER: SecretsManagerProvider(
            client_factory=lambda: session().client("secretsmanager", **client_kwargs)
        ),
        Backend.PARAMETER_STORE: ParameterStoreProvider(
            client_factory=lambda: session().client("ssm", **client_kwargs)
        ),
    }


__all__ = [
    "SecretsManagerProvider",
    "ParameterStoreProvider",
    "build_providers",
]
