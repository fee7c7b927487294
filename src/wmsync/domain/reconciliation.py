"""Merge normalized request records with legacy inline shipment status.

Shipments requested before request records existed carry their request only in
their own ``REQUESTED`` status. ``RequestReconciler`` surfaces both shapes as one
ordered list of ``RequestView`` values and resolves ids back to views for the
state machine.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from wmsync.domain.model import (
    LegacyRequest,
    NormalizedRequest,
    RequestStatus,
    ShipmentStatus,
    parse_legacy_request_id,
)
from wmsync.domain.ports.errors import BackendError

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from wmsync.domain.model import RequestRecord, RequestView, Shipment
    from wmsync.domain.ports.queries import QueryScope, RequestQueries, ShipmentQueries

log = getLogger(__name__)

_OLDEST = datetime.min.replace(tzinfo=UTC)


def sort_views(views: Iterable[RequestView]) -> list[RequestView]:
    """Newest request first; entries without a timestamp go last."""

    return sorted(
        views,
        key=lambda view: (view.requested_at is not None, view.requested_at or _OLDEST),
        reverse=True,
    )


def newest_pending_per_shipment(records: Sequence[RequestRecord]) -> list[RequestRecord]:
    """Keep one pending record per shipment, the newest; other statuses pass through."""

    newest: dict[str, RequestRecord] = {}
    for record in records:
        if record.status is not RequestStatus.PENDING:
            continue
        current = newest.get(record.shipment_id)
        if current is None or (record.requested_at or _OLDEST) > (
            current.requested_at or _OLDEST
        ):
            newest[record.shipment_id] = record

    kept: list[RequestRecord] = []
    for record in records:
        if record.status is RequestStatus.PENDING and newest[record.shipment_id] is not record:
            log.warning(
                "Reconciliation anomaly: shipment %s has several pending requests; dropping %s",
                record.shipment_id,
                record.id,
            )
            continue
        kept.append(record)
    return kept


class RequestReconciler:
    def __init__(self, *, requests: RequestQueries, shipments: ShipmentQueries) -> None:
        self._requests = requests
        self._shipments = shipments

    async def unified_requests(
        self,
        scope: QueryScope,
        *,
        status: RequestStatus | None = RequestStatus.PENDING,
    ) -> list[RequestView]:
        """Return request views visible in ``scope``.

        ``status=None`` lists records of every status plus the legacy entries;
        ``APPROVED``/``REFUSED`` list records only, since a legacy request is
        pending by construction.
        """

        if scope.is_empty:
            return []

        records, requested = await asyncio.gather(
            self._requests.list_requests(scope=scope, status=status),
            self._shipments.list_shipments(scope=scope, status=ShipmentStatus.REQUESTED),
        )
        records = newest_pending_per_shipment(records)
        by_id = {shipment.id: shipment for shipment in requested}

        views: list[RequestView] = []
        for record in records:
            shipment = await self._hydrate(record, by_id)
            if shipment is not None:
                views.append(NormalizedRequest(record=record, shipment=shipment))

        if status in (RequestStatus.PENDING, None):
            views.extend(self._legacy_entries(records, requested))
        return sort_views(views)

    async def locate(self, target_id: str) -> RequestView | None:
        """Resolve a request id, synthetic legacy id or shipment id to its pending view."""

        shipment_id = parse_legacy_request_id(target_id)
        if shipment_id is None:
            record = await self._requests.get_request(target_id)
            if record is not None:
                shipment = await self._hydrate(record, {})
                return None if shipment is None else NormalizedRequest(record, shipment)
            shipment_id = target_id

        shipment = await self._shipments.get_shipment(shipment_id)
        if shipment is None:
            return None
        pending = await self._requests.find_pending_request(shipment.id)
        if pending is not None:
            return NormalizedRequest(record=pending, shipment=shipment)
        return LegacyRequest(shipment=shipment)

    async def _hydrate(self, record: RequestRecord, known: dict[str, Shipment]) -> Shipment | None:
        if record.shipment is not None:
            return record.shipment
        cached = known.get(record.shipment_id)
        if cached is not None:
            return cached
        try:
            shipment = await self._shipments.get_shipment(record.shipment_id)
        except BackendError as exc:
            log.warning(
                "Reconciliation anomaly: could not hydrate request %s (shipment %s): %s",
                record.id,
                record.shipment_id,
                exc,
            )
            return None
        if shipment is None:
            log.warning(
                "Reconciliation anomaly: request %s references missing shipment %s",
                record.id,
                record.shipment_id,
            )
        return shipment

    def _legacy_entries(
        self,
        records: Sequence[RequestRecord],
        requested: Sequence[Shipment],
    ) -> list[RequestView]:
        covered = {r.shipment_id for r in records if r.status is RequestStatus.PENDING}
        approved = {r.shipment_id for r in records if r.status is RequestStatus.APPROVED}
        requested_ids = {shipment.id for shipment in requested}

        for record in records:
            if record.status is RequestStatus.PENDING and record.shipment_id not in requested_ids:
                log.warning(
                    "Reconciliation anomaly: pending request %s but shipment %s is not requested",
                    record.id,
                    record.shipment_id,
                )

        entries: list[RequestView] = []
        for shipment in requested:
            if shipment.id in covered:
                continue
            if shipment.id in approved:
                log.warning(
                    "Reconciliation desync: shipment %s is requested but its request was approved",
                    shipment.id,
                )
            entries.append(LegacyRequest(shipment=shipment))
        return entries
