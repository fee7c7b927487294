"""Resolved identities of signed-in principals."""

from __future__ import annotations

from dataclasses import dataclass

from .enums import ActorKind, CarrierRole


@dataclass(slots=True, frozen=True, kw_only=True)
class Session:
    """Opaque authenticated session as handed over by the auth provider."""

    user_id: str
    email: str | None = None
    email_verified: bool = False
    access_token: str | None = None


@dataclass(slots=True, frozen=True, kw_only=True)
class Actor:
    principal_id: str
    kind: ActorKind
    scope_id: str | None = None
    role: CarrierRole | None = None
    email: str | None = None
    display_name: str | None = None
    fallback: bool = False

    def __post_init__(self) -> None:
        if self.kind is ActorKind.CARRIER and self.role is None:
            raise ValueError("Carrier actors require a role")
        if self.kind is ActorKind.CLIENT and self.role is not None:
            raise ValueError("Client actors do not carry a carrier role")

    @property
    def is_client(self) -> bool:
        return self.kind is ActorKind.CLIENT

    def owns(self, *, client_id: str | None = None, carrier_id: str | None = None) -> bool:
        """Whether this actor's scope covers a record with the given owners."""
        if self.scope_id is None:
            return False
        if self.is_client:
            return client_id == self.scope_id
        return carrier_id == self.scope_id


def fallback_actor(session: Session) -> Actor:
    return Actor(
        principal_id=session.user_id,
        kind=ActorKind.CLIENT,
        email=session.email,
        display_name=display_name_from_email(session.email),
        fallback=True,
    )


def display_name_from_email(email: str | None) -> str:
    if not email:
        return "user"
    return email.split("@", 1)[0] or "user"
