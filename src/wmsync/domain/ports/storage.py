"""Opaque blob storage for request attachments."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class AttachmentStorage(Protocol):
    async def upload(
        self, path: str, content: bytes, *, content_type: str | None = None
    ) -> None: ...

    async def download(self, path: str) -> bytes: ...
