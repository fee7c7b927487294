"""Lookups used to classify an authenticated principal."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from wmsync.domain.model import CarrierRole


@dataclass(slots=True, frozen=True, kw_only=True)
class RoleBinding:
    """Active link between a principal and a carrier."""

    carrier_id: str
    role: CarrierRole


@dataclass(slots=True, frozen=True, kw_only=True)
class ClientLink:
    """Active client record matched by e-mail."""

    client_id: str
    name: str
    tax_id: str | None = None
    carrier_id: str | None = None


@runtime_checkable
class IdentityDirectory(Protocol):
    async def find_role_binding(self, user_id: str) -> RoleBinding | None: ...

    async def find_active_client(self, email: str) -> ClientLink | None: ...
