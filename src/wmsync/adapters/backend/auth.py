"""Password sign-in against the backend's auth endpoint."""

from __future__ import annotations

from datetime import datetime
from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from pydantic import ValidationError

from wmsync.adapters.http_resilience import ResilientClient
from wmsync.domain.model import Session
from wmsync.domain.ports.errors import BackendAuthError, BackendError, BackendUnavailableError

from .schema import BackendBaseModel

if TYPE_CHECKING:
    from collections.abc import Callable

    from wmsync.config.http_resilience import ResilienceConfig

log = getLogger(__name__)


class AuthUser(BackendBaseModel):
    id: str
    email: str | None = None
    email_confirmed_at: datetime | None = None


class TokenResponse(BackendBaseModel):
    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None
    user: AuthUser


def session_from_token(payload: object) -> Session:
    try:
        token = TokenResponse.model_validate(payload)
    except ValidationError as exc:
        raise BackendError(f"Unexpected sign-in payload: {exc}") from exc
    return Session(
        user_id=token.user.id,
        email=token.user.email,
        email_verified=token.user.email_confirmed_at is not None,
        access_token=token.access_token,
    )


def _default_client_factory(config: ResilienceConfig) -> ResilientClient:
    return ResilientClient(config)


async def sign_in_with_password(
    resilience: ResilienceConfig,
    *,
    email: str,
    password: str,
    client_factory: Callable[[ResilienceConfig], ResilientClient] = _default_client_factory,
) -> Session:
    async with client_factory(resilience) as client:
        try:
            response = await client.request(
                "POST",
                "/token",
                params={"grant_type": "password"},
                json={"email": email, "password": password},
            )
        except httpx.TransportError as exc:
            raise BackendUnavailableError(f"Sign-in failed: {exc}") from exc

    if response.status_code in {400, 401, 403}:
        raise BackendAuthError(f"Sign-in rejected for {email}")
    if response.is_error:
        raise BackendUnavailableError(f"Sign-in failed with status {response.status_code}")
    session = session_from_token(response.json())
    log.info("Signed in as %s", session.email or session.user_id)
    return session
