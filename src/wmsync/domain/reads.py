"""Cached read operations scoped to the current actor."""

from __future__ import annotations

from typing import TYPE_CHECKING

from wmsync.domain.cache import ScopeKey
from wmsync.domain.model import EntityKind, RequestStatus
from wmsync.domain.ports.queries import QueryScope

if TYPE_CHECKING:
    from collections.abc import Callable

    from wmsync.domain.cache import QueryCache
    from wmsync.domain.model import (
        Actor,
        AuditLogEntry,
        DashboardSummary,
        EventLogEntry,
        FinancialDocument,
        RequestView,
        Shipment,
        ShipmentStatus,
    )
    from wmsync.domain.ports.queries import ReadModelQueries, ShipmentQueries
    from wmsync.domain.reconciliation import RequestReconciler

LOG_PAGE_SIZE = 100


class WorkflowReads:
    def __init__(
        self,
        *,
        cache: QueryCache,
        actor_provider: Callable[[], Actor | None],
        reconciler: RequestReconciler,
        shipments: ShipmentQueries,
        read_models: ReadModelQueries,
    ) -> None:
        self._cache = cache
        self._actor_provider = actor_provider
        self._reconciler = reconciler
        self._shipments = shipments
        self._read_models = read_models

    def scope(self) -> QueryScope | None:
        actor = self._actor_provider()
        return None if actor is None else QueryScope.for_actor(actor)

    async def unified_requests(
        self,
        status: RequestStatus | None = RequestStatus.PENDING,
        *,
        scope: QueryScope | None = None,
    ) -> list[RequestView]:
        scope = scope or self.scope()
        if scope is None:
            return []
        key = ScopeKey.for_scope(EntityKind.REQUESTS, scope, status.value if status else None)
        return await self._cache.fetch(
            key, lambda: self._reconciler.unified_requests(scope, status=status)
        )

    async def shipments(self, status: ShipmentStatus | None = None) -> list[Shipment]:
        scope = self.scope()
        if scope is None or scope.is_empty:
            return []
        key = ScopeKey.for_scope(EntityKind.SHIPMENTS, scope, status.value if status else None)
        return await self._cache.fetch(
            key, lambda: self._shipments.list_shipments(scope=scope, status=status)
        )

    async def dashboard(self) -> DashboardSummary | None:
        scope = self.scope()
        if scope is None or scope.is_empty:
            return None
        key = ScopeKey.for_scope(EntityKind.DASHBOARD, scope)
        return await self._cache.fetch(
            key, lambda: self._read_models.dashboard_summary(scope=scope)
        )

    async def financial_documents(self) -> list[FinancialDocument]:
        scope = self.scope()
        if scope is None or scope.is_empty:
            return []
        key = ScopeKey.for_scope(EntityKind.FINANCIAL_DOCUMENTS, scope)
        return await self._cache.fetch(
            key, lambda: self._read_models.list_financial_documents(scope=scope)
        )

    async def event_log(self, limit: int = LOG_PAGE_SIZE) -> list[EventLogEntry]:
        return await self._cache.fetch(
            ScopeKey(EntityKind.EVENT_LOG, status=str(limit)),
            lambda: self._read_models.list_event_log(limit=limit),
        )

    async def audit_log(self, limit: int = LOG_PAGE_SIZE) -> list[AuditLogEntry]:
        return await self._cache.fetch(
            ScopeKey(EntityKind.AUDIT_LOG, status=str(limit)),
            lambda: self._read_models.list_audit_log(limit=limit),
        )
