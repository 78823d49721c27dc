"""
Shared pytest fixtures and configuration for awsm-env tests.

This module provides:
- Environment isolation (no AWSM_ENV_* / AWS_* leakage from the host)
- In-memory providers for both backends
- A helper for writing spec files to a temporary directory

Usage:
    Fixtures are auto-discovered by pytest::

        def test_something(sm_provider, write_spec):
            path = write_spec("KEY=value\\n")
"""

import sys
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
import structlog

# Ensure awsm_env package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from awsm_env.core import logging as logging_module
from awsm_env.core.models import Backend
from awsm_env.core.providers import DictSecretProvider


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)

        if "integration" in str(test_path):
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Environment Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """
    Strip awsm-env and AWS settings from the environment for every test.

    Also resets the structlog configuration so each test sees unfiltered
    log capture.
    """
    import os

    for name in list(os.environ):
        if name.startswith(("AWSM_ENV_", "AWS_")):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")

    yield
    logging_module._configured = False
    structlog.reset_defaults()


# =============================================================================
# Provider Fixtures
# =============================================================================


@pytest.fixture
def sm_provider() -> DictSecretProvider:
    """In-memory Secrets Manager stand-in (batch limit 20)."""
    return DictSecretProvider(backend=Backend.SECRETS_MANAGER, max_batch_size=20)


@pytest.fixture
def ps_provider() -> DictSecretProvider:
    """In-memory Parameter Store stand-in (batch limit 10)."""
    return DictSecretProvider(backend=Backend.PARAMETER_STORE, max_batch_size=10)


@pytest.fixture
def providers(sm_provider, ps_provider) -> dict[Backend, DictSecretProvider]:
    """Both in-memory providers keyed by backend."""
    return {
        Backend.SECRETS_MANAGER: sm_provider,
        Backend.PARAMETER_STORE: ps_provider,
    }


# =============================================================================
# Spec File Fixtures
# =============================================================================


@pytest.fixture
def write_spec(tmp_path: Path) -> Callable[[str], Path]:
    """Return a function that writes spec text to ``tmp_path/.env.example``."""

    def _write(text: str, name: str = ".env.example") -> Path:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path

    return _write
