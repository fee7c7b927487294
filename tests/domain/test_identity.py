from __future__ import annotations

import asyncio

import pytest

from tests.helpers.backend import CARRIER_ID, CLIENT_ID, InMemoryBackend, make_session
from wmsync.domain.identity import IdentityResolver, ResolutionState, SessionEvent
from wmsync.domain.model import ActorKind, CarrierRole
from wmsync.domain.ports import BackendAuthError, BackendUnavailableError, ClientLink, RoleBinding
from wmsync.domain.retry import ProbePolicy

FAST = ProbePolicy(max_attempts=2, per_attempt_timeout=0.05, backoff=0.0, max_backoff=0.0)


def _directory() -> InMemoryBackend:
    backend = InMemoryBackend()
    backend.clients["buyer@example.com"] = ClientLink(client_id=CLIENT_ID, name="Buyer Ltd")
    return backend


def _probe_calls(backend: InMemoryBackend, name: str) -> int:
    return sum(1 for call, _ in backend.calls if call == name)


def test_role_binding_resolves_carrier_actor() -> None:
    backend = _directory()
    backend.role_bindings["user-1"] = RoleBinding(
        carrier_id=CARRIER_ID, role=CarrierRole.CARRIER_ADMIN
    )
    resolver = IdentityResolver(backend, policy=FAST)

    actor = asyncio.run(resolver.resolve_actor(make_session("user-1", "ops@carrier.example.com")))

    assert actor.kind is ActorKind.CARRIER
    assert actor.role is CarrierRole.CARRIER_ADMIN
    assert actor.scope_id == CARRIER_ID
    assert actor.display_name == "ops"
    assert resolver.state is ResolutionState.RESOLVED
    assert _probe_calls(backend, "find_active_client") == 0


def test_verified_email_resolves_client_case_insensitively() -> None:
    backend = _directory()
    resolver = IdentityResolver(backend, policy=FAST)

    actor = asyncio.run(resolver.resolve_actor(make_session("user-2", " Buyer@Example.COM ")))

    assert actor.kind is ActorKind.CLIENT
    assert actor.scope_id == CLIENT_ID
    assert actor.display_name == "Buyer Ltd"
    assert not actor.fallback
    assert resolver.actor is actor


def test_unverified_email_never_links_a_client() -> None:
    backend = _directory()
    resolver = IdentityResolver(backend, policy=FAST)

    actor = asyncio.run(
        resolver.resolve_actor(make_session("user-2", "buyer@example.com", verified=False))
    )

    assert actor.fallback
    assert actor.scope_id is None
    assert resolver.state is ResolutionState.FALLBACK
    assert _probe_calls(backend, "find_active_client") == 0


def test_unknown_principal_gets_fallback_named_after_email() -> None:
    resolver = IdentityResolver(_directory(), policy=FAST)

    actor = asyncio.run(resolver.resolve_actor(make_session("user-3", "stranger@example.com")))

    assert actor.fallback
    assert actor.kind is ActorKind.CLIENT
    assert actor.display_name == "stranger"


def test_hanging_probes_end_in_fallback_within_budget() -> None:
    backend = _directory()
    backend.delays["find_role_binding"] = 10.0
    backend.delays["find_active_client"] = 10.0
    resolver = IdentityResolver(backend, policy=FAST)

    async def scenario() -> tuple[float, bool]:
        loop = asyncio.get_running_loop()
        started = loop.time()
        actor = await resolver.resolve_actor(make_session("user-1"))
        return loop.time() - started, actor.fallback

    elapsed, fallback = asyncio.run(scenario())

    assert fallback
    assert elapsed <= resolver.budget() + 0.1
    assert _probe_calls(backend, "find_role_binding") == FAST.max_attempts
    assert _probe_calls(backend, "find_active_client") == FAST.max_attempts


def test_unavailable_probe_is_retried_then_treated_as_not_found() -> None:
    backend = _directory()
    backend.failures["find_role_binding"] = BackendUnavailableError("503")
    resolver = IdentityResolver(backend, policy=FAST)

    actor = asyncio.run(resolver.resolve_actor(make_session("user-2")))

    assert _probe_calls(backend, "find_role_binding") == FAST.max_attempts
    assert actor.kind is ActorKind.CLIENT
    assert actor.scope_id == CLIENT_ID


def test_rejected_probe_is_not_retried() -> None:
    backend = _directory()
    backend.failures["find_role_binding"] = BackendAuthError("jwt expired")
    resolver = IdentityResolver(backend, policy=FAST)

    asyncio.run(resolver.resolve_actor(make_session("user-2")))

    assert _probe_calls(backend, "find_role_binding") == 1


def test_sign_out_clears_actor_and_notifies() -> None:
    changes: list[object] = []
    resolver = IdentityResolver(_directory(), policy=FAST, on_change=changes.append)

    async def scenario() -> None:
        await resolver.handle_session_event(SessionEvent.SIGNED_IN, make_session("user-2"))
        await resolver.handle_session_event(SessionEvent.SIGNED_OUT, None)

    asyncio.run(scenario())

    assert resolver.actor is None
    assert resolver.state is ResolutionState.UNRESOLVED
    assert len(changes) == 2
    assert changes[-1] is None


@pytest.mark.parametrize(
    "event",
    [
        SessionEvent.INITIAL_SESSION,
        SessionEvent.SIGNED_IN,
        SessionEvent.TOKEN_REFRESHED,
        SessionEvent.USER_UPDATED,
    ],
)
def test_session_events_trigger_resolution(event: SessionEvent) -> None:
    resolver = IdentityResolver(_directory(), policy=FAST)

    actor = asyncio.run(resolver.handle_session_event(event, make_session("user-2")))

    assert actor is not None
    assert actor.scope_id == CLIENT_ID


def test_sign_out_during_resolution_discards_the_result() -> None:
    backend = _directory()
    backend.delays["find_role_binding"] = 0.01
    resolver = IdentityResolver(backend, policy=FAST)

    async def scenario() -> None:
        task = asyncio.create_task(resolver.resolve_actor(make_session("user-2")))
        await asyncio.sleep(0)
        assert resolver.state is ResolutionState.RESOLVING
        resolver.sign_out()
        await task

    asyncio.run(scenario())

    assert resolver.actor is None
    assert resolver.state is ResolutionState.UNRESOLVED


def test_budget_covers_both_probes() -> None:
    policy = ProbePolicy(max_attempts=3, per_attempt_timeout=1.0, backoff=0.5, max_backoff=2.0)
    resolver = IdentityResolver(_directory(), policy=policy)

    assert policy.backoff_waits() == (0.5, 1.0)
    assert resolver.budget() == pytest.approx(2 * (3.0 + 1.5))
