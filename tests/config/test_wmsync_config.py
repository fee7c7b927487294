from __future__ import annotations

import pytest

from wmsync.config import (
    ConfigurationError,
    MissingConfigurationError,
    get_backend_config,
    get_probe_policy,
    require_env_var,
    require_env_vars,
)
from wmsync.config.backend import WATCHED_TABLES
from wmsync.config.http_resilience import IDEMPOTENT_METHODS, RetryPolicy


def test_require_env_vars_returns_stripped_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXAMPLE_VAR", "  value ")

    assert require_env_vars(["EXAMPLE_VAR"]) == {"EXAMPLE_VAR": "value"}


def test_require_env_vars_lists_every_missing_name(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MISSING_A", raising=False)
    monkeypatch.setenv("MISSING_B", "   ")

    with pytest.raises(MissingConfigurationError) as exc:
        require_env_vars(["MISSING_B", "MISSING_A"])

    assert "MISSING_A, MISSING_B" in str(exc.value)


def test_require_env_var_handles_blank_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXAMPLE_VAR", "")

    with pytest.raises(MissingConfigurationError):
        require_env_var("EXAMPLE_VAR")


def test_backend_config_derives_client_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WMSYNC_BACKEND_URL", "https://project.backend.test/")
    monkeypatch.setenv("WMSYNC_BACKEND_KEY", "anon-key")
    monkeypatch.delenv("WMSYNC_CHANGE_FEED_INTERVAL_SECONDS", raising=False)

    config = get_backend_config()

    assert config.url == "https://project.backend.test"
    assert config.rest.base_url == "https://project.backend.test/rest/v1"
    assert config.storage.base_url == "https://project.backend.test/storage/v1"
    assert config.auth.base_url == "https://project.backend.test/auth/v1"
    assert config.rest.default_headers == {"apikey": "anon-key", "Accept": "application/json"}
    assert config.rest.cache is None
    assert config.storage.cache is not None
    assert config.watched_tables == WATCHED_TABLES
    assert config.change_feed_interval_seconds == 5.0


def test_backend_config_requires_url_and_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("WMSYNC_BACKEND_URL", raising=False)
    monkeypatch.delenv("WMSYNC_BACKEND_KEY", raising=False)

    with pytest.raises(MissingConfigurationError) as exc:
        get_backend_config()

    assert "WMSYNC_BACKEND_KEY" in str(exc.value)


def test_invalid_interval_is_a_configuration_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WMSYNC_BACKEND_URL", "https://project.backend.test")
    monkeypatch.setenv("WMSYNC_BACKEND_KEY", "anon-key")
    monkeypatch.setenv("WMSYNC_CHANGE_FEED_INTERVAL_SECONDS", "soon")

    with pytest.raises(ConfigurationError):
        get_backend_config()


def test_probe_policy_reads_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WMSYNC_PROBE_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("WMSYNC_PROBE_TIMEOUT_SECONDS", "1.5")

    policy = get_probe_policy()

    assert policy.max_attempts == 5
    assert policy.per_attempt_timeout == 1.5


def test_probe_policy_rejects_zero_attempts(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WMSYNC_PROBE_MAX_ATTEMPTS", "0")

    with pytest.raises(ConfigurationError):
        get_probe_policy()


def test_transport_retries_never_replay_writes() -> None:
    policy = RetryPolicy()

    assert policy.allowed_methods == IDEMPOTENT_METHODS
    assert "POST" not in policy.allowed_methods
    assert "PATCH" not in policy.allowed_methods


def test_storage_cache_skips_error_envelopes(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WMSYNC_BACKEND_URL", "https://project.backend.test")
    monkeypatch.setenv("WMSYNC_BACKEND_KEY", "anon-key")

    cache = get_backend_config().storage.cache
    assert cache is not None
    should_cache = cache.should_cache
    assert should_cache is not None

    assert should_cache(b"%PDF-1.7 binary")
    assert should_cache(b'{"Key": "solicitacoes-anexos/client-1/N1/file.pdf"}')
    assert not should_cache(b'{"statusCode": "404", "error": "not_found", "message": "x"}')
    assert not should_cache(b"")
