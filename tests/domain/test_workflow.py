from __future__ import annotations

import asyncio
import contextlib
import random
from typing import TYPE_CHECKING

import pytest

from tests.helpers.backend import (
    BASE_TIME,
    CLIENT_ID,
    OTHER_CARRIER_ID,
    OTHER_CLIENT_ID,
    carrier_actor,
    client_actor,
    make_request,
    make_session,
    make_shipment,
)
from tests.helpers.workflow import Harness, build_harness
from wmsync.domain.cache import EntryState
from wmsync.domain.errors import (
    AuthorizationError,
    DataIntegrityError,
    PreconditionError,
    TransientBackendError,
    WorkflowError,
)
from wmsync.domain.model import (
    CarrierRole,
    LegacyRequest,
    NormalizedRequest,
    RequestStatus,
    ShipmentStatus,
    fallback_actor,
    legacy_request_id,
)
from wmsync.domain.ports import (
    AuditLevel,
    BackendAuthError,
    BackendRejectedError,
    BackendUnavailableError,
    TransitionPayload,
)
from wmsync.domain.workflow import TransitionKind, is_legal, rule_for

if TYPE_CHECKING:
    from wmsync.domain.model import Shipment


def _requested(shipment_id: str) -> Shipment:
    return make_shipment(shipment_id, status=ShipmentStatus.REQUESTED, requested_at=BASE_TIME)


def test_transition_table_only_allows_the_three_edges() -> None:
    assert is_legal(ShipmentStatus.STORED, ShipmentStatus.REQUESTED)
    assert is_legal(ShipmentStatus.REQUESTED, ShipmentStatus.CONFIRMED)
    assert is_legal(ShipmentStatus.REQUESTED, ShipmentStatus.STORED)
    assert not is_legal(ShipmentStatus.STORED, ShipmentStatus.CONFIRMED)
    assert not is_legal(ShipmentStatus.CONFIRMED, ShipmentStatus.STORED)
    assert not is_legal(ShipmentStatus.CONFIRMED, ShipmentStatus.REQUESTED)
    assert rule_for(ShipmentStatus.REQUESTED).kind is TransitionKind.REQUEST


def test_client_requests_pickup_of_stored_shipment() -> None:
    harness = build_harness(client_actor())
    harness.backend.add_shipment(make_shipment("N1"))

    async def scenario() -> tuple[list[object], list[object]]:
        before = await harness.reads.unified_requests()
        await harness.workflow.request_transition(
            "N1",
            ShipmentStatus.REQUESTED,
            TransitionPayload(notes="dock 3"),
        )
        after = await harness.reads.unified_requests()
        return list(before), list(after)

    before, after = asyncio.run(scenario())

    assert before == []
    assert harness.backend.shipments["N1"].status is ShipmentStatus.REQUESTED
    pending = harness.backend.pending_records("N1")
    assert len(pending) == 1
    assert pending[0].notes == "dock 3"
    assert harness.coordinator.invalidations == 1
    assert harness.audit_sink.actions() == ["PICKUP_REQUESTED"]
    assert len(after) == 1
    view = after[0]
    assert isinstance(view, NormalizedRequest)
    assert view.shipment.id == "N1"
    assert view.id == pending[0].id


def test_request_result_carries_new_record_id() -> None:
    harness = build_harness(client_actor())
    harness.backend.add_shipment(make_shipment("N1"))

    result = asyncio.run(harness.workflow.request_transition("N1", ShipmentStatus.REQUESTED))

    assert result.kind is TransitionKind.REQUEST
    assert result.status is ShipmentStatus.REQUESTED
    assert result.request_id == harness.backend.pending_records("N1")[0].id
    assert not result.legacy
    assert harness.audit_sink.entries[0].correlation_id == result.correlation_id


def test_operator_refuses_legacy_request() -> None:
    harness = build_harness(carrier_actor(CarrierRole.OPERATOR))
    harness.backend.add_shipment(_requested("N2"))

    async def scenario() -> tuple[list[object], list[object]]:
        before = await harness.reads.unified_requests()
        await harness.workflow.request_transition(
            legacy_request_id("N2"), ShipmentStatus.STORED
        )
        after = await harness.reads.unified_requests()
        return list(before), list(after)

    before, after = asyncio.run(scenario())

    assert [type(view) for view in before] == [LegacyRequest]
    assert harness.backend.procedure_calls() == ["refuse_shipment"]
    assert harness.backend.shipments["N2"].status is ShipmentStatus.STORED
    assert harness.backend.requests == {}
    assert after == []
    assert harness.audit_sink.actions() == ["PICKUP_REFUSED"]
    assert harness.audit_sink.entries[0].meta["legacy"] is True


def test_request_of_confirmed_shipment_is_rejected_without_side_effects() -> None:
    harness = build_harness(client_actor())
    harness.backend.add_shipment(make_shipment("N3", status=ShipmentStatus.CONFIRMED))

    async def scenario() -> None:
        await harness.reads.shipments()
        await harness.reads.unified_requests()
        snapshot = harness.cache.snapshot()
        with pytest.raises(PreconditionError):
            await harness.workflow.request_transition("N3", ShipmentStatus.REQUESTED)
        assert harness.cache.snapshot() == snapshot

    asyncio.run(scenario())

    assert harness.backend.procedure_calls() == []
    assert harness.backend.shipments["N3"].status is ShipmentStatus.CONFIRMED
    assert harness.coordinator.invalidations == 0
    assert harness.audit_sink.actions() == ["PRECONDITION_FAILED"]
    assert harness.audit_sink.entries[0].level is AuditLevel.WARN


def test_client_cannot_approve_and_no_io_happens() -> None:
    harness = build_harness(client_actor())
    harness.backend.add_shipment(_requested("N1"))

    with pytest.raises(AuthorizationError):
        asyncio.run(harness.workflow.request_transition("N1", ShipmentStatus.CONFIRMED))

    assert harness.backend.calls == []
    assert harness.backend.shipments["N1"].status is ShipmentStatus.REQUESTED
    assert harness.audit_sink.actions() == ["AUTHORIZATION_DENIED"]


def test_carrier_cannot_request_pickup() -> None:
    harness = build_harness(carrier_actor(CarrierRole.CARRIER_ADMIN))
    harness.backend.add_shipment(make_shipment("N1"))

    with pytest.raises(AuthorizationError):
        asyncio.run(harness.workflow.request_transition("N1", ShipmentStatus.REQUESTED))

    assert harness.backend.calls == []


@pytest.mark.parametrize("target", [ShipmentStatus.REQUESTED, ShipmentStatus.CONFIRMED])
def test_fallback_actor_is_denied_every_mutation(target: ShipmentStatus) -> None:
    harness = build_harness(fallback_actor(make_session()))
    harness.backend.add_shipment(make_shipment("N1"))

    with pytest.raises(AuthorizationError):
        asyncio.run(harness.workflow.request_transition("N1", target))

    assert harness.backend.calls == []


def test_unresolved_actor_is_denied() -> None:
    harness = build_harness(None)
    harness.backend.add_shipment(make_shipment("N1"))

    with pytest.raises(AuthorizationError):
        asyncio.run(harness.workflow.request_transition("N1", ShipmentStatus.REQUESTED))

    assert harness.backend.calls == []
    assert harness.audit_sink.entries[0].actor_id is None


def test_client_cannot_request_shipment_of_other_client() -> None:
    harness = build_harness(client_actor())
    harness.backend.add_shipment(make_shipment("N1", client_id=OTHER_CLIENT_ID))

    with pytest.raises(AuthorizationError):
        asyncio.run(harness.workflow.request_transition("N1", ShipmentStatus.REQUESTED))

    assert harness.backend.procedure_calls() == []


def test_operator_of_other_carrier_cannot_approve() -> None:
    harness = build_harness(carrier_actor(scope_id=OTHER_CARRIER_ID))
    shipment = harness.backend.add_shipment(_requested("N1"))
    harness.backend.add_request(make_request("req-a", shipment))

    with pytest.raises(AuthorizationError):
        asyncio.run(harness.workflow.request_transition("req-a", ShipmentStatus.CONFIRMED))

    assert harness.backend.procedure_calls() == []
    assert harness.backend.requests["req-a"].status is RequestStatus.PENDING


@pytest.mark.parametrize("target_id", ["req-a", "N4"])
def test_approve_normalized_request_updates_record_then_shipment(target_id: str) -> None:
    harness = build_harness(carrier_actor(CarrierRole.OPERATOR))
    shipment = harness.backend.add_shipment(_requested("N4"))
    harness.backend.add_request(make_request("req-a", shipment))

    result = asyncio.run(harness.workflow.request_transition(target_id, ShipmentStatus.CONFIRMED))

    assert harness.backend.procedure_calls() == ["approve_request", "confirm_shipment"]
    assert harness.backend.requests["req-a"].status is RequestStatus.APPROVED
    assert harness.backend.shipments["N4"].status is ShipmentStatus.CONFIRMED
    assert result.request_id == "req-a"
    assert not result.legacy
    assert harness.audit_sink.actions() == ["PICKUP_APPROVED"]


def test_refuse_normalized_request_returns_shipment_to_stored() -> None:
    harness = build_harness(carrier_actor(CarrierRole.CARRIER_ADMIN))
    shipment = harness.backend.add_shipment(_requested("N4"))
    harness.backend.add_request(make_request("req-a", shipment))

    asyncio.run(harness.workflow.request_transition("req-a", ShipmentStatus.STORED))

    assert harness.backend.procedure_calls() == ["refuse_request", "refuse_shipment"]
    assert harness.backend.requests["req-a"].status is RequestStatus.REFUSED
    assert harness.backend.shipments["N4"].status is ShipmentStatus.STORED


def test_approve_legacy_request_touches_only_the_shipment() -> None:
    harness = build_harness(carrier_actor(CarrierRole.SUPER_ADMIN))
    harness.backend.add_shipment(_requested("N5"))

    result = asyncio.run(
        harness.workflow.request_transition(legacy_request_id("N5"), ShipmentStatus.CONFIRMED)
    )

    assert result.legacy
    assert harness.backend.procedure_calls() == ["confirm_shipment"]
    assert harness.backend.shipments["N5"].status is ShipmentStatus.CONFIRMED


def test_second_step_failure_raises_data_integrity_error() -> None:
    harness = build_harness(carrier_actor())
    shipment = harness.backend.add_shipment(_requested("N4"))
    harness.backend.add_request(make_request("req-a", shipment))
    harness.backend.failures["confirm_shipment"] = BackendUnavailableError("timed out")

    with pytest.raises(DataIntegrityError) as excinfo:
        asyncio.run(harness.workflow.request_transition("req-a", ShipmentStatus.CONFIRMED))

    assert excinfo.value.request_id == "req-a"
    assert excinfo.value.shipment_id == "N4"
    assert harness.backend.procedure_calls() == ["approve_request", "confirm_shipment"]
    assert harness.backend.requests["req-a"].status is RequestStatus.APPROVED
    assert harness.backend.shipments["N4"].status is ShipmentStatus.REQUESTED
    assert harness.coordinator.invalidations == 1
    entry = harness.audit_sink.entries[-1]
    assert entry.action == "DATA_INTEGRITY_VIOLATION"
    assert entry.level is AuditLevel.ERROR


def test_already_decided_record_is_a_precondition_failure() -> None:
    harness = build_harness(carrier_actor())
    shipment = harness.backend.add_shipment(_requested("N4"))
    harness.backend.add_request(make_request("req-a", shipment, status=RequestStatus.APPROVED))

    with pytest.raises(PreconditionError):
        asyncio.run(harness.workflow.request_transition("req-a", ShipmentStatus.CONFIRMED))

    assert harness.backend.procedure_calls() == []
    assert harness.coordinator.invalidations == 1


def test_out_of_band_confirmation_refreshes_the_cached_pending_list() -> None:
    harness = build_harness(carrier_actor())
    shipment = harness.backend.add_shipment(_requested("N4"))
    harness.backend.add_request(make_request("req-a", shipment))

    async def scenario() -> set[EntryState]:
        listed = await harness.reads.unified_requests()
        assert [view.id for view in listed] == ["req-a"]
        harness.backend.requests["req-a"].status = RequestStatus.APPROVED
        harness.backend.shipments["N4"].status = ShipmentStatus.CONFIRMED
        with pytest.raises(PreconditionError):
            await harness.workflow.request_transition("req-a", ShipmentStatus.CONFIRMED)
        return {state for state, _ in harness.cache.snapshot().values()}

    states = asyncio.run(scenario())

    assert states == {EntryState.FETCHING}
    assert harness.coordinator.invalidations == 1
    assert harness.backend.procedure_calls() == []
    assert harness.audit_sink.actions() == ["PRECONDITION_FAILED"]


def test_unknown_target_is_a_precondition_failure() -> None:
    harness = build_harness(carrier_actor())

    with pytest.raises(PreconditionError):
        asyncio.run(harness.workflow.request_transition("missing", ShipmentStatus.STORED))


def test_backend_rejection_invalidates_cached_views() -> None:
    harness = build_harness(client_actor())
    harness.backend.add_shipment(make_shipment("N1"))
    harness.backend.failures["request_pickup"] = BackendRejectedError(
        "already requested", code="P0001", status_code=400
    )

    with pytest.raises(PreconditionError):
        asyncio.run(harness.workflow.request_transition("N1", ShipmentStatus.REQUESTED))

    assert harness.coordinator.invalidations == 1
    assert harness.audit_sink.actions() == ["PRECONDITION_FAILED"]


def test_concurrent_approvals_of_the_same_request_apply_once() -> None:
    harness = build_harness(carrier_actor())
    shipment = harness.backend.add_shipment(_requested("N4"))
    harness.backend.add_request(make_request("req-a", shipment))
    harness.backend.delays["approve_request"] = 0.01

    async def scenario() -> list[object]:
        return await asyncio.gather(
            harness.workflow.request_transition("req-a", ShipmentStatus.CONFIRMED),
            harness.workflow.request_transition("req-a", ShipmentStatus.CONFIRMED),
            return_exceptions=True,
        )

    outcomes = asyncio.run(scenario())

    failures = [outcome for outcome in outcomes if isinstance(outcome, BaseException)]
    assert len(failures) == 1
    assert isinstance(failures[0], PreconditionError)
    assert harness.backend.procedure_calls().count("confirm_shipment") == 1
    assert harness.backend.shipments["N4"].status is ShipmentStatus.CONFIRMED


def test_unreachable_backend_is_transient() -> None:
    harness = build_harness(client_actor())
    harness.backend.add_shipment(make_shipment("N1"))
    harness.backend.failures["request_pickup"] = BackendUnavailableError("connect timeout")

    with pytest.raises(TransientBackendError) as excinfo:
        asyncio.run(harness.workflow.request_transition("N1", ShipmentStatus.REQUESTED))

    assert excinfo.value.user_message
    assert harness.coordinator.invalidations == 0
    assert harness.backend.shipments["N1"].status is ShipmentStatus.STORED


def test_backend_permission_denial_is_authorization_error() -> None:
    harness = build_harness(client_actor())
    harness.backend.add_shipment(make_shipment("N1"))
    harness.backend.failures["request_pickup"] = BackendAuthError("permission denied")

    with pytest.raises(AuthorizationError):
        asyncio.run(harness.workflow.request_transition("N1", ShipmentStatus.REQUESTED))


def test_is_pending_tracks_the_in_flight_transition() -> None:
    harness = build_harness(client_actor())
    harness.backend.add_shipment(make_shipment("N1"))
    observed: list[bool] = []

    def on_call(name: str) -> None:
        if name == "request_pickup":
            observed.append(harness.workflow.is_pending(TransitionKind.REQUEST))
            observed.append(harness.workflow.is_pending(TransitionKind.APPROVE))

    harness.backend.on_call = on_call
    asyncio.run(harness.workflow.request_transition("N1", ShipmentStatus.REQUESTED))

    assert observed == [True, False]
    assert not harness.workflow.is_pending(TransitionKind.REQUEST)


def test_is_pending_clears_after_failure() -> None:
    harness = build_harness(client_actor())
    harness.backend.add_shipment(make_shipment("N1", status=ShipmentStatus.CONFIRMED))

    with pytest.raises(PreconditionError):
        asyncio.run(harness.workflow.request_transition("N1", ShipmentStatus.REQUESTED))

    assert not harness.workflow.is_pending(TransitionKind.REQUEST)


def _seeded_harness(rng: random.Random) -> Harness:
    harness = build_harness(client_actor())
    for index in range(6):
        shipment_id = f"S{index}"
        status = rng.choice(list(ShipmentStatus))
        if status is ShipmentStatus.REQUESTED:
            shipment = harness.backend.add_shipment(_requested(shipment_id))
            if rng.random() < 0.5:
                harness.backend.add_request(make_request(f"r{index}", shipment))
        else:
            harness.backend.add_shipment(make_shipment(shipment_id, status=status))
    return harness


def test_random_transitions_keep_statuses_monotonic() -> None:
    rng = random.Random(20240501)
    harness = _seeded_harness(rng)
    actors = [
        client_actor(CLIENT_ID),
        client_actor(OTHER_CLIENT_ID),
        carrier_actor(CarrierRole.OPERATOR),
        carrier_actor(CarrierRole.CARRIER_ADMIN),
        carrier_actor(scope_id=OTHER_CARRIER_ID),
    ]
    targets = list(ShipmentStatus)

    async def scenario() -> None:
        for _ in range(200):
            harness.actor = rng.choice(actors)
            shipment_id = rng.choice(sorted(harness.backend.shipments))
            target_id = rng.choice(
                [shipment_id, legacy_request_id(shipment_id), *harness.backend.requests]
            )
            before = {key: s.status for key, s in harness.backend.shipments.items()}
            with contextlib.suppress(WorkflowError):
                await harness.workflow.request_transition(target_id, rng.choice(targets))
            after = {key: s.status for key, s in harness.backend.shipments.items()}
            changed = [key for key in before if before[key] is not after[key]]
            assert len(changed) <= 1
            for key in changed:
                assert is_legal(before[key], after[key])
            for key in harness.backend.shipments:
                assert len(harness.backend.pending_records(key)) <= 1

    asyncio.run(scenario())
