"""Backend (REST, storage and change feed) configuration values."""

from __future__ import annotations

import json
from dataclasses import dataclass

from .env import optional_float, require_env_vars
from .http_resilience import CacheConfig, RateLimit, ResilienceConfig

REST_PATH = "/rest/v1"
STORAGE_PATH = "/storage/v1"
AUTH_PATH = "/auth/v1"
ATTACHMENTS_BUCKET = "solicitacoes-anexos"
BACKEND_TIMEOUT_SECONDS = 15.0
DEFAULT_CHANGE_FEED_INTERVAL_SECONDS = 5.0

WATCHED_TABLES: tuple[tuple[str, str], ...] = (
    ("notas_fiscais", "updated_at"),
    ("solicitacoes_carregamento", "updated_at"),
    ("documentos_financeiros", "updated_at"),
    ("event_log", "created_at"),
)


@dataclass(frozen=True, slots=True)
class BackendConfig:
    """Holds the backend endpoint, its API key and the derived client settings."""

    url: str
    api_key: str
    rest: ResilienceConfig
    storage: ResilienceConfig
    auth: ResilienceConfig
    attachments_bucket: str = ATTACHMENTS_BUCKET
    change_feed_interval_seconds: float = DEFAULT_CHANGE_FEED_INTERVAL_SECONDS
    watched_tables: tuple[tuple[str, str], ...] = WATCHED_TABLES


def _rest_resilience(base_url: str, api_key: str) -> ResilienceConfig:
    return ResilienceConfig(
        name="backend-rest",
        base_url=f"{base_url}{REST_PATH}",
        timeout_seconds=BACKEND_TIMEOUT_SECONDS,
        ratelimit=RateLimit(max_calls=20, per_seconds=1.0),
        default_headers={"apikey": api_key, "Accept": "application/json"},
    )


def _is_stored_object(body: bytes) -> bool:
    """Reject empty bodies and the object store's JSON error envelope."""

    if not body:
        return False
    try:
        payload = json.loads(body)
    except ValueError:
        return True
    return not (isinstance(payload, dict) and "error" in payload and "statusCode" in payload)


def _storage_resilience(base_url: str, api_key: str) -> ResilienceConfig:
    # Attachment objects are written with upsert disabled, so a path always names
    # the same bytes and downloads can be cached.
    return ResilienceConfig(
        name="backend-storage",
        base_url=f"{base_url}{STORAGE_PATH}",
        timeout_seconds=BACKEND_TIMEOUT_SECONDS * 4,
        cache=CacheConfig(should_cache=_is_stored_object),
        default_headers={"apikey": api_key},
    )


def _auth_resilience(base_url: str, api_key: str) -> ResilienceConfig:
    return ResilienceConfig(
        name="backend-auth",
        base_url=f"{base_url}{AUTH_PATH}",
        timeout_seconds=BACKEND_TIMEOUT_SECONDS,
        default_headers={"apikey": api_key},
    )


def get_backend_config() -> BackendConfig:
    values = require_env_vars(("WMSYNC_BACKEND_URL", "WMSYNC_BACKEND_KEY"))
    url = values["WMSYNC_BACKEND_URL"].rstrip("/")
    api_key = values["WMSYNC_BACKEND_KEY"]
    return BackendConfig(
        url=url,
        api_key=api_key,
        rest=_rest_resilience(url, api_key),
        storage=_storage_resilience(url, api_key),
        auth=_auth_resilience(url, api_key),
        change_feed_interval_seconds=optional_float(
            "WMSYNC_CHANGE_FEED_INTERVAL_SECONDS", DEFAULT_CHANGE_FEED_INTERVAL_SECONDS
        ),
    )
