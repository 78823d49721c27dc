"""
Tests for the resolution engine.

Covers:
- Defaults, fetched values and overrides precedence
- Required vs optional directives
- Deduplication and batching per backend
- Concurrent vs sequential group resolution
- Error propagation and context
"""

import threading

import pytest
from structlog.testing import capture_logs

from awsm_env.core.errors import (
    BackendError,
    PlaceholderMissingError,
    SecretNotFoundError,
)
from awsm_env.core.models import Backend, Declaration, SecretDirective
from awsm_env.core.parser import parse
from awsm_env.core.providers import DictSecretProvider, SecretProvider
from awsm_env.core.resolver import Resolver, chunked, resolve


def _sm(pattern, required=True):
    return SecretDirective(Backend.SECRETS_MANAGER, pattern, required)


def _ps(pattern, required=True):
    return SecretDirective(Backend.PARAMETER_STORE, pattern, required)


class _FailingProvider(SecretProvider):
    def __init__(self, backend, error):
        self.backend = backend
        self.max_batch_size = 10
        self.error = error

    def _fetch(self, ids):
        raise self.error


class TestPlainDeclarations:
    """Entries without directives."""

    def test_defaults_pass_through(self, providers):
        entries = parse("KEY1=value1\nKEY2=value2")
        assert Resolver(providers).resolve(entries) == {"KEY1": "value1", "KEY2": "value2"}

    def test_entry_without_value_is_dropped(self, providers):
        entries = parse("KEY1=value1\nKEY2=")
        assert Resolver(providers).resolve(entries) == {"KEY1": "value1"}

    def test_no_provider_call_without_directives(self, sm_provider, ps_provider, providers):
        Resolver(providers).resolve(parse("A=1"))
        assert sm_provider.calls == []
        assert ps_provider.calls == []

    def test_no_providers_needed_without_directives(self):
        assert Resolver().resolve(parse("A=1")) == {"A": "1"}

    def test_empty_entries(self, providers):
        assert Resolver(providers).resolve([]) == {}

    def test_preserves_declaration_order(self, providers, sm_provider):
        sm_provider.set("s", "secret")
        entries = parse("Z=1\n# @aws-sm s\nA=\nM=2")
        assert list(Resolver(providers).resolve(entries)) == ["Z", "A", "M"]


class TestSecretDirectives:
    """Fetched values, required and optional directives."""

    def test_fetched_value_replaces_default(self, providers, sm_provider):
        sm_provider.set("foo/bar", "from-aws")
        entries = parse("# @aws-sm foo/bar\nKEY1=fallback")
        assert Resolver(providers).resolve(entries) == {"KEY1": "from-aws"}

    def test_fetched_value_without_default(self, providers, ps_provider):
        ps_provider.set("/app/flag", "on")
        entries = parse("# @aws-ps /app/flag\nFLAG=")
        assert Resolver(providers).resolve(entries) == {"FLAG": "on"}

    def test_required_missing_fails(self, providers):
        entries = parse("# @aws-sm foo/bar\nKEY1=fallback")
        with pytest.raises(SecretNotFoundError) as exc_info:
            Resolver(providers).resolve(entries)
        error = exc_info.value
        assert error.identifier == "foo/bar"
        assert error.backend == "aws-sm"
        assert error.context.line == 2
        assert error.context.metadata["key"] == "KEY1"

    def test_optional_missing_keeps_default(self, providers):
        entries = parse("# @aws-sm foo/bar @optional\nKEY1=fallback")
        assert Resolver(providers).resolve(entries) == {"KEY1": "fallback"}

    def test_optional_missing_without_default_is_dropped(self, providers):
        entries = parse("# @aws-sm foo/bar @optional\nKEY1=\nKEY2=x")
        assert Resolver(providers).resolve(entries) == {"KEY2": "x"}

    def test_optional_missing_is_logged(self, providers):
        entries = parse("# @aws-ps /x @optional\nKEY=")
        with capture_logs() as logs:
            Resolver(providers).resolve(entries)
        missing = [log for log in logs if log["event"] == "optional_secret_missing"]
        assert missing == [
            {
                "event": "optional_secret_missing",
                "log_level": "info",
                "key": "KEY",
                "identifier": "/x",
                "has_default": False,
            }
        ]

    def test_optional_found_uses_fetched_value(self, providers, sm_provider):
        sm_provider.set("foo", "bar")
        entries = parse("# @aws-sm foo @optional\nKEY=default")
        assert Resolver(providers).resolve(entries) == {"KEY": "bar"}

    def test_missing_required_aborts_everything(self, providers, sm_provider):
        """No partial mapping is produced when any required secret is missing."""
        sm_provider.set("present", "yes")
        entries = parse("# @aws-sm present\nA=\n# @aws-sm absent\nB=")
        with pytest.raises(SecretNotFoundError):
            Resolver(providers).resolve(entries)

    def test_first_missing_required_in_declaration_order(self, providers):
        entries = parse("# @aws-sm first\nA=\n# @aws-sm second\nB=")
        with pytest.raises(SecretNotFoundError) as exc_info:
            Resolver(providers).resolve(entries)
        assert exc_info.value.identifier == "first"

    def test_values_are_not_interpreted(self, providers, sm_provider):
        """A fetched value is final, even if it looks like a placeholder."""
        sm_provider.set("s", "$env \"quoted\" # not a comment")
        entries = parse("# @aws-sm s\nA=")
        assert Resolver(providers).resolve(entries, placeholders={"env": "prod"}) == {
            "A": "$env \"quoted\" # not a comment"
        }


class TestPlaceholders:
    """Identifier expansion inside the resolver."""

    def test_identifiers_are_expanded(self, providers, sm_provider):
        sm_provider.set("app/prod/db", "pw")
        entries = parse("# @aws-sm app/$env/db\nDB=")
        assert Resolver(providers).resolve(entries, placeholders={"env": "prod"}) == {"DB": "pw"}
        assert sm_provider.calls == [["app/prod/db"]]

    def test_missing_placeholder_fails_before_any_fetch(self, providers, sm_provider):
        entries = parse("# @aws-sm ok\nA=\n# @aws-ps /app/$missing\nB=")
        with pytest.raises(PlaceholderMissingError) as exc_info:
            Resolver(providers).resolve(entries, placeholders={"env": "prod"})
        assert exc_info.value.name == "missing"
        assert exc_info.value.context.metadata["key"] == "B"
        assert exc_info.value.context.line == 4
        assert sm_provider.calls == []

    def test_placeholders_not_applied_to_defaults(self, providers):
        entries = parse("KEY=$env")
        assert Resolver(providers).resolve(entries, placeholders={"env": "prod"}) == {"KEY": "$env"}


class TestDeduplication:
    """Identifiers shared by several entries are fetched once."""

    def test_shared_identifier_fetched_once(self, providers, sm_provider):
        sm_provider.set("shared/secret", "s3cr3t")
        entries = parse("# @aws-sm shared/secret\nA=\n# @aws-sm shared/secret\nB=")
        assert Resolver(providers).resolve(entries) == {"A": "s3cr3t", "B": "s3cr3t"}
        assert sm_provider.calls == [["shared/secret"]]

    def test_dedup_after_expansion(self, providers, sm_provider):
        sm_provider.set("app/prod", "v")
        entries = parse("# @aws-sm app/$env\nA=\n# @aws-sm app/prod\nB=")
        Resolver(providers).resolve(entries, placeholders={"env": "prod"})
        assert sm_provider.calls == [["app/prod"]]

    def test_same_identifier_on_different_backends(self, providers, sm_provider, ps_provider):
        sm_provider.set("/x", "from-sm")
        ps_provider.set("/x", "from-ps")
        entries = parse("# @aws-sm /x\nA=\n# @aws-ps /x\nB=")
        assert Resolver(providers).resolve(entries) == {"A": "from-sm", "B": "from-ps"}
        assert sm_provider.calls == [["/x"]]
        assert ps_provider.calls == [["/x"]]


class TestBatching:
    """Distinct identifiers are chunked by the provider's batch limit."""

    def test_secrets_manager_batches_of_twenty(self, providers, sm_provider):
        lines = []
        for i in range(25):
            sm_provider.set(f"s/{i}", str(i))
            lines.append(f"# @aws-sm s/{i}\nK{i}=")
        env = Resolver(providers).resolve(parse("\n".join(lines)))

        assert [len(batch) for batch in sm_provider.calls] == [20, 5]
        assert sm_provider.calls[0][0] == "s/0"
        assert sm_provider.calls[1] == [f"s/{i}" for i in range(20, 25)]
        assert env == {f"K{i}": str(i) for i in range(25)}

    def test_parameter_store_batches_of_ten(self, providers, ps_provider):
        lines = [f"# @aws-ps /p/{i} @optional\nK{i}=d" for i in range(21)]
        Resolver(providers).resolve(parse("\n".join(lines)))
        assert [len(batch) for batch in ps_provider.calls] == [10, 10, 1]

    def test_exact_multiple_has_no_empty_batch(self, providers, ps_provider):
        lines = [f"# @aws-ps /p/{i} @optional\nK{i}=" for i in range(10)]
        Resolver(providers).resolve(parse("\n".join(lines)))
        assert [len(batch) for batch in ps_provider.calls] == [10]

    def test_batches_count_distinct_identifiers(self, providers, ps_provider):
        """Duplicates do not push a batch over the limit."""
        lines = [f"# @aws-ps /p/{i % 10} @optional\nK{i}=" for i in range(30)]
        Resolver(providers).resolve(parse("\n".join(lines)))
        assert [len(batch) for batch in ps_provider.calls] == [10]


class TestChunked:
    def test_chunks(self):
        assert chunked(["a", "b", "c"], 2) == [["a", "b"], ["c"]]

    def test_empty(self):
        assert chunked([], 3) == []

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            chunked(["a"], 0)


class TestOverrides:
    """Caller overrides are applied last."""

    def test_override_replaces_default_in_place(self, providers):
        entries = parse("A=1\nB=2\nC=3")
        assert list(Resolver(providers).resolve(entries, overrides={"B": "x"}).items()) == [
            ("A", "1"),
            ("B", "x"),
            ("C", "3"),
        ]

    def test_override_beats_fetched_value(self, providers, sm_provider):
        sm_provider.set("foo", "fetched")
        entries = parse("# @aws-sm foo\nKEY=default")
        assert Resolver(providers).resolve(entries, overrides={"KEY": "mine"}) == {"KEY": "mine"}

    def test_new_keys_are_appended_in_order(self, providers):
        entries = parse("A=1")
        env = Resolver(providers).resolve(entries, overrides={"Z": "z", "B": "b"})
        assert list(env.items()) == [("A", "1"), ("Z", "z"), ("B", "b")]

    def test_override_restores_dropped_key(self, providers):
        """A key with no value is dropped, so its override is appended."""
        entries = parse("A=\nB=1")
        env = Resolver(providers).resolve(entries, overrides={"A": "set"})
        assert list(env.items()) == [("B", "1"), ("A", "set")]

    def test_override_does_not_rescue_missing_required_secret(self, providers):
        entries = parse("# @aws-sm absent\nKEY=")
        with pytest.raises(SecretNotFoundError):
            Resolver(providers).resolve(entries, overrides={"KEY": "x"})

    def test_override_values_are_literal(self, providers):
        env = Resolver(providers).resolve([], overrides={"A": "$env"}, placeholders={"env": "prod"})
        assert env == {"A": "$env"}


class TestConcurrency:
    """Backend groups run in parallel unless disabled."""

    def test_concurrent_and_sequential_agree(self, sm_provider, ps_provider, providers):
        sm_provider.set("sm/a", "1")
        ps_provider.set("/ps/b", "2")
        entries = parse("# @aws-sm sm/a\nA=\n# @aws-ps /ps/b\nB=\nC=3")

        concurrent = Resolver(providers, concurrent=True).resolve(entries)
        sequential = Resolver(providers, concurrent=False).resolve(entries)
        assert concurrent == sequential == {"A": "1", "B": "2", "C": "3"}

    def test_groups_run_in_parallel(self):
        """Both providers are inside _fetch at the same time."""
        barrier = threading.Barrier(2, timeout=5)

        class BarrierProvider(DictSecretProvider):
            def _fetch(self, ids):
                barrier.wait()
                return super()._fetch(ids)

        providers = {
            Backend.SECRETS_MANAGER: BarrierProvider({"a": "1"}, backend=Backend.SECRETS_MANAGER),
            Backend.PARAMETER_STORE: BarrierProvider({"b": "2"}, backend=Backend.PARAMETER_STORE),
        }
        entries = [
            Declaration("A", secret_directive=_sm("a")),
            Declaration("B", secret_directive=_ps("b")),
        ]
        assert Resolver(providers, concurrent=True).resolve(entries) == {"A": "1", "B": "2"}

    def test_error_reporting_is_deterministic(self, providers):
        """When both groups fail, the Secrets Manager error is reported."""
        entries = parse("# @aws-ps /missing\nB=\n# @aws-sm missing\nA=")
        for _ in range(5):
            with pytest.raises(SecretNotFoundError) as exc_info:
                Resolver(providers, concurrent=True).resolve(entries)
            assert exc_info.value.backend == "aws-sm"

    def test_sequential_reports_same_error(self, providers):
        entries = parse("# @aws-ps /missing\nB=\n# @aws-sm missing\nA=")
        with pytest.raises(SecretNotFoundError) as exc_info:
            Resolver(providers, concurrent=False).resolve(entries)
        assert exc_info.value.backend == "aws-sm"


class TestBackendErrors:
    """Provider failures abort resolution."""

    def test_backend_error_propagates(self, ps_provider):
        error = BackendError("access denied", backend="aws-sm", code="AccessDeniedException")
        providers = {
            Backend.SECRETS_MANAGER: _FailingProvider(Backend.SECRETS_MANAGER, error),
            Backend.PARAMETER_STORE: ps_provider,
        }
        entries = parse("# @aws-sm foo\nA=\n# @aws-ps /bar @optional\nB=")
        with pytest.raises(BackendError) as exc_info:
            Resolver(providers).resolve(entries)
        assert exc_info.value is error

    def test_backend_error_beats_not_found_in_later_group(self):
        error = BackendError("throttled", backend="aws-sm", code="ThrottlingException")
        providers = {
            Backend.SECRETS_MANAGER: _FailingProvider(Backend.SECRETS_MANAGER, error),
            Backend.PARAMETER_STORE: DictSecretProvider(backend=Backend.PARAMETER_STORE),
        }
        entries = parse("# @aws-ps /missing\nB=\n# @aws-sm foo\nA=")
        with pytest.raises(BackendError):
            Resolver(providers).resolve(entries)

    def test_missing_provider_for_referenced_backend(self, sm_provider):
        entries = parse("# @aws-ps /x\nA=")
        with pytest.raises(BackendError) as exc_info:
            Resolver({Backend.SECRETS_MANAGER: sm_provider}).resolve(entries)
        assert "aws-ps" in str(exc_info.value)

    def test_misaligned_provider_results(self):
        class ShortProvider(SecretProvider):
            backend = Backend.SECRETS_MANAGER
            max_batch_size = 20

            def try_provide(self, ids):
                return []

            def _fetch(self, ids):
                return {}

        entries = parse("# @aws-sm foo\nA=")
        with pytest.raises(BackendError):
            Resolver({Backend.SECRETS_MANAGER: ShortProvider()}).resolve(entries)

    def test_failed_fetch_is_logged(self):
        error = BackendError("boom", backend="aws-sm")
        providers = {Backend.SECRETS_MANAGER: _FailingProvider(Backend.SECRETS_MANAGER, error)}
        with capture_logs() as logs:
            with pytest.raises(BackendError):
                Resolver(providers).resolve(parse("# @aws-sm foo\nA="))
        failed = [log for log in logs if log["event"] == "backend_fetch.failed"]
        assert failed[0]["error_type"] == "BackendError"
        assert failed[0]["backend"] == "aws-sm"


class TestResolveEntries:
    def test_keeps_every_entry(self, providers, sm_provider):
        sm_provider.set("s", "v")
        entries = parse("# @aws-sm s\nA=\nB=")
        resolved = Resolver(providers).resolve_entries(entries)
        assert [(r.key, r.value, r.identifier) for r in resolved] == [
            ("A", "v", "s"),
            ("B", None, None),
        ]


class TestResolveFunction:
    def test_module_level_resolve(self, providers, sm_provider):
        sm_provider.set("foo", "bar")
        env = resolve(parse("# @aws-sm foo\nA="), providers, {"B": "c"}, concurrent=False)
        assert env == {"A": "bar", "B": "c"}
