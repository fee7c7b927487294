"""Application configuration helpers."""

from __future__ import annotations

from .backend import BackendConfig, get_backend_config
from .env import require_env_var, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import CacheConfig, RateLimit, ResilienceConfig, RetryPolicy
from .identity import get_probe_policy
from .logging import AUDIT_LOGGER_NAME, configure_logging

__all__ = [
    "AUDIT_LOGGER_NAME",
    "BackendConfig",
    "CacheConfig",
    "ConfigurationError",
    "MissingConfigurationError",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "configure_logging",
    "get_backend_config",
    "get_probe_policy",
    "require_env_var",
    "require_env_vars",
]
