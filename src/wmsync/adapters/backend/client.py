"""Thin PostgREST client on top of ``ResilientClient``.

Maps transport and HTTP failures onto the port error contract so that nothing
above the adapter ever sees an ``httpx`` exception.
"""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from pydantic import ValidationError

from wmsync.adapters.http_resilience import ResilientClient
from wmsync.domain.ports.errors import (
    BackendAuthError,
    BackendError,
    BackendRejectedError,
    BackendUnavailableError,
)

from .schema import PostgrestError

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from types import TracebackType

    from wmsync.config.http_resilience import ResilienceConfig

log = getLogger(__name__)

type Filters = Mapping[str, str]

_UNAVAILABLE_STATUSES = frozenset({408, 425, 429, 500, 502, 503, 504})
_AUTH_STATUSES = frozenset({401, 403})


def _default_client_factory(config: ResilienceConfig) -> ResilientClient:
    return ResilientClient(config)


def eq(value: object) -> str:
    return f"eq.{value}"


class BackendClient:
    def __init__(
        self,
        resilience: ResilienceConfig,
        *,
        access_token: str | None = None,
        client_factory: Callable[[ResilienceConfig], ResilientClient] = _default_client_factory,
    ) -> None:
        self.resilience = resilience
        self._client = client_factory(resilience)
        self._access_token = access_token

    async def __aenter__(self) -> BackendClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def select(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: Filters | None = None,
        order: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, object]]:
        params: dict[str, str] = {"select": columns, **(filters or {})}
        if order is not None:
            params["order"] = order
        if limit is not None:
            params["limit"] = str(limit)
        payload = await self._call("GET", f"/{table}", params=params)
        return _rows(payload, table)

    async def select_one(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: Filters,
    ) -> dict[str, object] | None:
        rows = await self.select(table, columns=columns, filters=filters, limit=1)
        return rows[0] if rows else None

    async def update(
        self,
        table: str,
        *,
        filters: Filters,
        values: Mapping[str, object],
        columns: str = "*",
    ) -> list[dict[str, object]]:
        payload = await self._call(
            "PATCH",
            f"/{table}",
            params={"select": columns, **filters},
            json=dict(values),
            headers={"Prefer": "return=representation"},
        )
        return _rows(payload, table)

    async def rpc(self, name: str, args: Mapping[str, object] | None = None) -> object:
        return await self._call("POST", f"/rpc/{name}", json=dict(args or {}))

    async def _call(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        json: object = None,
        headers: Mapping[str, str] | None = None,
    ) -> object:
        request_headers = {**self._auth_headers(), **(headers or {})}
        try:
            response = await self._client.request(
                method, path, params=params, json=json, headers=request_headers
            )
        except httpx.TimeoutException as exc:
            raise BackendUnavailableError(f"{method} {path} timed out") from exc
        except httpx.TransportError as exc:
            raise BackendUnavailableError(f"{method} {path} failed: {exc}") from exc

        if response.is_error:
            raise _error_for(response, f"{method} {path}")
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise BackendError(f"Unexpected non-JSON response from {method} {path}") from exc

    def _auth_headers(self) -> dict[str, str]:
        if self._access_token is None:
            return {}
        return {"Authorization": f"Bearer {self._access_token}"}


def _error_for(response: httpx.Response, operation: str) -> BackendError:
    try:
        error = PostgrestError.model_validate(response.json())
    except (ValueError, ValidationError):
        error = PostgrestError(message=response.text or response.reason_phrase)

    message = f"{operation} -> {response.status_code}: {error.message}"
    log.debug("Backend error %s (code=%s, hint=%s)", message, error.code, error.hint)
    if response.status_code in _AUTH_STATUSES or error.code == "42501":
        return BackendAuthError(message)
    if response.status_code in _UNAVAILABLE_STATUSES:
        return BackendUnavailableError(message)
    return BackendRejectedError(message, code=error.code, status_code=response.status_code)


def _rows(payload: object, table: str) -> list[dict[str, object]]:
    if payload is None:
        return []
    if not isinstance(payload, list):
        raise BackendError(f"Unexpected payload for table {table}: expected a list")
    return [row for row in payload if isinstance(row, dict)]
