"""Attachment storage on the backend's object store."""

from __future__ import annotations

import mimetypes
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING
from urllib.parse import quote

import httpx

from wmsync.adapters.http_resilience import ResilientClient
from wmsync.domain.model import AttachmentDescriptor
from wmsync.domain.ports.errors import (
    BackendAuthError,
    BackendRejectedError,
    BackendUnavailableError,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path
    from types import TracebackType

    from wmsync.config.http_resilience import ResilienceConfig
    from wmsync.domain.ports.storage import AttachmentStorage

log = getLogger(__name__)

_UNSAFE_NAME_CHARS = str.maketrans({"/": "_", "\\": "_"})


def _default_client_factory(config: ResilienceConfig) -> ResilientClient:
    return ResilientClient(config)


def attachment_path(
    *,
    owner_scope: str,
    shipment_id: str,
    file_name: str,
    uploaded_at: datetime | None = None,
) -> str:
    """``{owner}/{shipment}/solicitacao_{shipment}_{epoch_ms}_{name}``."""

    moment = uploaded_at or datetime.now(UTC)
    epoch_ms = int(moment.timestamp() * 1000)
    safe_name = file_name.translate(_UNSAFE_NAME_CHARS)
    return f"{owner_scope}/{shipment_id}/solicitacao_{shipment_id}_{epoch_ms}_{safe_name}"


class BackendAttachmentStorage:
    def __init__(
        self,
        resilience: ResilienceConfig,
        *,
        bucket: str,
        access_token: str | None = None,
        client_factory: Callable[[ResilienceConfig], ResilientClient] = _default_client_factory,
    ) -> None:
        self.bucket = bucket
        self._client = client_factory(resilience)
        self._access_token = access_token

    async def __aenter__(self) -> BackendAttachmentStorage:
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

    async def upload(self, path: str, content: bytes, *, content_type: str | None = None) -> None:
        headers = {
            **self._auth_headers(),
            "Content-Type": content_type or "application/octet-stream",
            "x-upsert": "false",
        }
        response = await self._send(
            "POST", f"/object/{self.bucket}/{quote(path)}", content=content, headers=headers
        )
        log.debug("Uploaded %d bytes to %s (%s)", len(content), path, response.status_code)

    async def download(self, path: str) -> bytes:
        response = await self._send(
            "GET",
            f"/object/authenticated/{self.bucket}/{quote(path)}",
            headers=self._auth_headers(),
        )
        return response.content

    async def upload_file(
        self, source: Path, *, owner_scope: str, shipment_id: str
    ) -> AttachmentDescriptor:
        """Upload a local file for a pickup request and describe it for the request payload."""

        uploaded_at = datetime.now(UTC)
        path = attachment_path(
            owner_scope=owner_scope,
            shipment_id=shipment_id,
            file_name=source.name,
            uploaded_at=uploaded_at,
        )
        content = source.read_bytes()
        content_type = mimetypes.guess_type(source.name)[0]
        await self.upload(path, content, content_type=content_type)
        return AttachmentDescriptor(
            name=source.name,
            path=path,
            size=len(content),
            content_type=content_type,
            uploaded_at=uploaded_at,
        )

    async def _send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        content: bytes | None = None,
    ) -> httpx.Response:
        try:
            response = await self._client.request(method, url, content=content, headers=headers)
        except httpx.TimeoutException as exc:
            raise BackendUnavailableError(f"Storage {method} {url} timed out") from exc
        except httpx.TransportError as exc:
            raise BackendUnavailableError(f"Storage {method} {url} failed: {exc}") from exc

        if response.status_code in {401, 403}:
            raise BackendAuthError(f"Storage {method} {url} denied")
        if response.status_code >= 500 or response.status_code == 429:
            raise BackendUnavailableError(f"Storage {method} {url} -> {response.status_code}")
        if response.is_error:
            raise BackendRejectedError(
                f"Storage {method} {url} -> {response.status_code}: {response.text}",
                status_code=response.status_code,
            )
        return response

    def _auth_headers(self) -> dict[str, str]:
        if self._access_token is None:
            return {}
        return {"Authorization": f"Bearer {self._access_token}"}


if TYPE_CHECKING:

    def _port_checks(storage: BackendAttachmentStorage) -> None:
        _storage: AttachmentStorage = storage
