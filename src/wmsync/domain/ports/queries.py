"""Read-side ports onto the backend's tables.

Absence of rows is never an error: list queries return empty lists and single-row
lookups return ``None``. Failures are reported through ``domain.ports.errors``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from wmsync.domain.model import ActorKind

if TYPE_CHECKING:
    from wmsync.domain.model import (
        Actor,
        AuditLogEntry,
        DashboardSummary,
        EventLogEntry,
        FinancialDocument,
        RequestRecord,
        RequestStatus,
        Shipment,
        ShipmentStatus,
    )


@dataclass(slots=True, frozen=True)
class QueryScope:
    """Visibility filter derived from an actor."""

    kind: ActorKind
    scope_id: str | None

    @classmethod
    def for_actor(cls, actor: Actor) -> QueryScope:
        return cls(kind=actor.kind, scope_id=actor.scope_id)

    @property
    def is_empty(self) -> bool:
        return self.scope_id is None

    @property
    def client_id(self) -> str | None:
        return self.scope_id if self.kind is ActorKind.CLIENT else None

    @property
    def carrier_id(self) -> str | None:
        return self.scope_id if self.kind is ActorKind.CARRIER else None


@runtime_checkable
class ShipmentQueries(Protocol):
    async def list_shipments(
        self, *, scope: QueryScope, status: ShipmentStatus | None = None
    ) -> list[Shipment]: ...

    async def get_shipment(self, shipment_id: str) -> Shipment | None: ...


@runtime_checkable
class RequestQueries(Protocol):
    async def list_requests(
        self, *, scope: QueryScope, status: RequestStatus | None = None
    ) -> list[RequestRecord]: ...

    async def get_request(self, request_id: str) -> RequestRecord | None: ...

    async def find_pending_request(self, shipment_id: str) -> RequestRecord | None: ...


@runtime_checkable
class ReadModelQueries(Protocol):
    async def dashboard_summary(self, *, scope: QueryScope) -> DashboardSummary: ...

    async def list_financial_documents(self, *, scope: QueryScope) -> list[FinancialDocument]: ...

    async def list_event_log(self, *, limit: int = 100) -> list[EventLogEntry]: ...

    async def list_audit_log(self, *, limit: int = 100) -> list[AuditLogEntry]: ...
