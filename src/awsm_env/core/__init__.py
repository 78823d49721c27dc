"""awsm-env core -- parsing, placeholder expansion, providers and resolution.

Architecture::

    Layer 1 -- Types & Errors
        errors.py          Structured error hierarchy (AwsmEnvError, ParseError, ...)
        models.py          Backend, SecretDirective, Declaration, ResolvedEntry

    Layer 2 -- Pipeline
        parser.py          Declaration grammar (spec text -> declarations)
        placeholders.py    $name expansion for identifier patterns
        providers.py       SecretProvider ABC + in-memory provider
        aws.py             Secrets Manager / Parameter Store providers (boto3)
        resolver.py        Grouping, dedup, batching, required/optional policy
        formatters.py      env / shell / json rendering

    Layer 3 -- Cross-Cutting Concerns
        logging.py         structlog configuration (stderr)
        settings.py        AWSM_ENV_* settings (pydantic-settings)

The AWS providers are not re-exported here so that importing the core does
not import boto3; use ``awsm_env.core.aws`` directly.
"""

from awsm_env.core.errors import (
    AwsmEnvError,
    BackendError,
    ErrorCategory,
    ErrorContext,
    ParseError,
    PlaceholderMissingError,
    ResolutionError,
    SecretNotFoundError,
)
from awsm_env.core.formatters import (
    EnvFormatter,
    Formatter,
    JsonFormatter,
    OutputFormat,
    ShellFormatter,
    get_formatter,
)
from awsm_env.core.models import Backend, Declaration, EnvEntries, ResolvedEntry, SecretDirective
from awsm_env.core.parser import parse
from awsm_env.core.placeholders import expand
from awsm_env.core.providers import DictSecretProvider, SecretProvider
from awsm_env.core.resolver import Resolver, resolve

__all__ = [
    # Errors
    "AwsmEnvError",
    "BackendError",
    "ErrorCategory",
    "ErrorContext",
    "ParseError",
    "PlaceholderMissingError",
    "ResolutionError",
    "SecretNotFoundError",
    # Models
    "Backend",
    "Declaration",
    "EnvEntries",
    "ResolvedEntry",
    "SecretDirective",
    # Pipeline
    "parse",
    "expand",
    "SecretProvider",
    "DictSecretProvider",
    "Resolver",
    "resolve",
    # Formatting
    "OutputFormat",
    "Formatter",
    "EnvFormatter",
    "ShellFormatter",
    "JsonFormatter",
    "get_formatter",
]
