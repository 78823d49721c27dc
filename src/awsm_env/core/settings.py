"""Runtime settings for awsm-env.

Manifesto:
    The tool's own knobs (AWS region/profile, client timeouts, logging) come
    from ``AWSM_ENV_*`` environment variables and CLI flags, never from the
    spec file being resolved.  Settings are validated by pydantic at startup so
    a typo in ``AWSM_ENV_MAX_ATTEMPTS`` fails fast instead of mid-fetch.

Features:
    - **AwsmEnvSettings:** region, profile, endpoint_url, client timeouts,
      retry attempts, concurrency switch, log level and format
    - **load_settings():** environment plus explicit CLI values
    - **No .env loading:** the input spec *is* an env file; reading ``.env``
      implicitly would mix the two

Examples:
    >>> import os
    >>> os.environ["AWSM_ENV_REGION"] = "eu-west-1"
    >>> load_settings(profile="dev").region
    'eu-west-1'

Tags:
    settings, configuration, pydantic, environment, awsm-env
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AwsmEnvSettings(BaseSettings):
    """Settings read from ``AWSM_ENV_*`` environment variables.

    Fields
    ──────
    region          : AWS region; falls back to the boto3 default chain
    profile         : Named AWS profile; falls back to the default chain
    endpoint_url    : Custom endpoint (LocalStack, VPC endpoints)
    connect_timeout : botocore connect timeout in seconds
    read_timeout    : botocore read timeout in seconds
    max_attempts    : botocore retry attempts (standard retry mode)
    concurrent      : Resolve backend groups in parallel threads
    log_level       : structlog level
    log_format      : console or json
    """

    model_config = SettingsConfigDict(
        env_prefix="AWSM_ENV_",
        extra="ignore",
    )

    # ── AWS ──────────────────────────────────────────────────────
    region: str | None = None
    profile: str | None = None
    endpoint_url: str | None = None
    connect_timeout: float = Field(default=5.0, gt=0)
    read_timeout: float = Field(default=10.0, gt=0)
    max_attempts: int = Field(default=3, ge=1)

    # ── Resolution ───────────────────────────────────────────────
    concurrent: bool = True

    # ── Observability ────────────────────────────────────────────
    log_level: str = "WARNING"
    log_format: Literal["console", "json"] = "console"

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return level


def load_settings(**overrides: object) -> AwsmEnvSettings:
    """Load settings with explicit values (e.g. CLI flags) taking precedence.

    ``None`` values are ignored so unset flags fall through to the
    environment.

    Raises:
        pydantic.ValidationError: If a value is invalid.
    """
    explicit = {key: value for key, value in overrides.items() if value is not None}
    return AwsmEnvSettings(**explicit)


__all__ = ["AwsmEnvSettings", "load_settings"]
