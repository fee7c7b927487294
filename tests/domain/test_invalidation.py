from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from tests.helpers.backend import BASE_TIME, carrier_actor, client_actor, make_shipment
from tests.helpers.workflow import build_harness
from wmsync.domain.cache import EntryState, ScopeKey
from wmsync.domain.invalidation import is_invalidated
from wmsync.domain.model import (
    ActorKind,
    EntityKind,
    EventLogEntry,
    RequestStatus,
    ShipmentStatus,
)


def _event(index: int) -> EventLogEntry:
    return EventLogEntry(
        id=f"evt-{index}",
        entity_type="shipment",
        entity_id="N1",
        event_type="STATUS_CHANGED",
        actor_id=None,
        actor_role=None,
        created_at=BASE_TIME + timedelta(minutes=index),
    )


@pytest.mark.parametrize(
    "key",
    [
        ScopeKey(EntityKind.REQUESTS, RequestStatus.REFUSED.value, ActorKind.CARRIER, "C1"),
        ScopeKey(EntityKind.SHIPMENTS, ShipmentStatus.CONFIRMED.value, ActorKind.CLIENT, "X"),
        ScopeKey(EntityKind.DASHBOARD, None, ActorKind.CLIENT, "X"),
        ScopeKey(EntityKind.FINANCIAL_DOCUMENTS, None, ActorKind.CARRIER, "C1"),
        ScopeKey(EntityKind.EVENT_LOG, "25"),
        ScopeKey(EntityKind.AUDIT_LOG),
    ],
)
def test_every_entity_kind_is_invalidated(key: ScopeKey) -> None:
    assert is_invalidated(key)


def test_invalidate_all_covers_every_status_and_log_page() -> None:
    harness = build_harness(carrier_actor())
    harness.backend.add_shipment(make_shipment("N1"))

    async def scenario() -> dict[ScopeKey, EntryState]:
        await harness.reads.shipments()
        await harness.reads.shipments(ShipmentStatus.STORED)
        await harness.reads.shipments(ShipmentStatus.REQUESTED)
        await harness.reads.unified_requests()
        await harness.reads.unified_requests(RequestStatus.APPROVED)
        await harness.reads.unified_requests(None)
        await harness.reads.event_log(5)
        await harness.reads.event_log(50)
        await harness.reads.audit_log()
        harness.coordinator.invalidate_all()
        return {key: state for key, (state, _) in harness.cache.snapshot().items()}

    states = asyncio.run(scenario())

    assert len(states) == 9
    assert set(states.values()) == {EntryState.FETCHING}


def test_event_log_pages_are_cached_per_limit() -> None:
    harness = build_harness(carrier_actor())
    harness.backend.event_log.extend(_event(index) for index in range(3))

    async def scenario() -> tuple[int, int]:
        short = await harness.reads.event_log(1)
        full = await harness.reads.event_log(3)
        return len(short), len(full)

    assert asyncio.run(scenario()) == (1, 3)


def test_reset_drops_every_cached_scope() -> None:
    harness = build_harness(client_actor())
    harness.backend.add_shipment(make_shipment("N1"))

    async def scenario() -> None:
        await harness.reads.shipments()
        await harness.reads.dashboard()
        harness.coordinator.reset(reason="test")

    asyncio.run(scenario())

    assert harness.cache.keys() == ()
    assert harness.coordinator.invalidations == 0


def test_invalidate_all_stales_every_cached_view() -> None:
    harness = build_harness(client_actor())
    harness.backend.add_shipment(make_shipment("N1"))

    async def scenario() -> dict[ScopeKey, EntryState]:
        await harness.reads.shipments()
        await harness.reads.unified_requests()
        await harness.reads.dashboard()
        await harness.reads.event_log()
        harness.coordinator.invalidate_all()
        return {key: state for key, (state, _) in harness.cache.snapshot().items()}

    states = asyncio.run(scenario())

    assert len(states) == 4
    assert set(states.values()) == {EntryState.FETCHING}
    assert harness.coordinator.invalidations == 1


def test_invalidate_all_is_idempotent() -> None:
    harness = build_harness(client_actor())
    harness.backend.add_shipment(make_shipment("N1"))

    async def scenario() -> list[object]:
        await harness.reads.shipments()
        harness.coordinator.invalidate_all()
        harness.coordinator.invalidate_all()
        return list(await harness.reads.shipments())

    shipments = asyncio.run(scenario())

    assert [shipment.id for shipment in shipments] == ["N1"]
    assert harness.coordinator.invalidations == 2


def test_refetch_after_invalidation_reflects_backend_change() -> None:
    harness = build_harness(client_actor())
    harness.backend.add_shipment(make_shipment("N1"))

    async def scenario() -> list[ShipmentStatus]:
        await harness.reads.shipments()
        shipment = harness.backend.shipments["N1"]
        shipment.status = ShipmentStatus.REQUESTED
        shipment.requested_at = BASE_TIME
        harness.coordinator.invalidate_all(reason="test")
        return [s.status for s in await harness.reads.shipments()]

    assert asyncio.run(scenario()) == [ShipmentStatus.REQUESTED]


def test_cancel_queries_discards_in_flight_loads() -> None:
    harness = build_harness(client_actor())
    harness.backend.add_shipment(make_shipment("N1"))
    harness.backend.delays["list_shipments"] = 0.01

    async def scenario() -> int:
        task = asyncio.create_task(harness.reads.shipments())
        await asyncio.sleep(0)
        cancelled = harness.coordinator.cancel_queries()
        await task
        return cancelled

    assert asyncio.run(scenario()) == 1
