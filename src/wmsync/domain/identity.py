"""Resolve an authenticated session into a typed ``Actor``.

Two probes run in order: a carrier role binding for the principal, then an active
client record matching the principal's verified e-mail. Each probe is bounded by a
``ProbePolicy``; a probe that cannot answer in time counts as "not found", so
resolution always ends in an actor, at worst the unscoped fallback.
"""

from __future__ import annotations

from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from wmsync.domain.model import (
    Actor,
    ActorKind,
    display_name_from_email,
    fallback_actor,
)
from wmsync.domain.ports.errors import BackendError, BackendUnavailableError
from wmsync.domain.retry import ProbePolicy, RetriesExhaustedError, retry_with_timeout

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from wmsync.domain.model import Session
    from wmsync.domain.ports.identity import IdentityDirectory

log = getLogger(__name__)


class ResolutionState(StrEnum):
    UNRESOLVED = "unresolved"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    FALLBACK = "fallback"


class SessionEvent(StrEnum):
    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    SIGNED_OUT = "SIGNED_OUT"


_RESOLVING_EVENTS = frozenset(
    {
        SessionEvent.INITIAL_SESSION,
        SessionEvent.SIGNED_IN,
        SessionEvent.TOKEN_REFRESHED,
        SessionEvent.USER_UPDATED,
    }
)


class IdentityResolver:
    def __init__(
        self,
        directory: IdentityDirectory,
        *,
        policy: ProbePolicy | None = None,
        on_change: Callable[[Actor | None], None] | None = None,
    ) -> None:
        self._directory = directory
        self._policy = policy or ProbePolicy()
        self._on_change = on_change
        self._state = ResolutionState.UNRESOLVED
        self._actor: Actor | None = None
        self._epoch = 0

    @property
    def state(self) -> ResolutionState:
        return self._state

    @property
    def actor(self) -> Actor | None:
        return self._actor

    @property
    def policy(self) -> ProbePolicy:
        return self._policy

    def budget(self) -> float:
        """Worst-case duration of one resolution (two probes)."""
        return 2 * self._policy.budget()

    async def resolve_actor(self, session: Session) -> Actor:
        self._epoch += 1
        epoch = self._epoch
        self._state = ResolutionState.RESOLVING
        try:
            actor = await self._classify(session)
        except BaseException:
            if epoch == self._epoch:
                self._state = ResolutionState.UNRESOLVED
            raise

        if epoch != self._epoch:
            log.debug("Discarding superseded resolution for %s", session.user_id)
            return actor
        self._actor = actor
        self._state = ResolutionState.FALLBACK if actor.fallback else ResolutionState.RESOLVED
        log.info(
            "Resolved %s as %s%s",
            session.user_id,
            actor.role or actor.kind,
            " (fallback)" if actor.fallback else "",
        )
        self._notify()
        return actor

    async def handle_session_event(
        self, event: SessionEvent, session: Session | None
    ) -> Actor | None:
        if event is SessionEvent.SIGNED_OUT or session is None:
            self.sign_out()
            return None
        if event in _RESOLVING_EVENTS:
            return await self.resolve_actor(session)
        return self._actor

    def sign_out(self) -> None:
        self._epoch += 1
        self._actor = None
        self._state = ResolutionState.UNRESOLVED
        self._notify()

    async def _classify(self, session: Session) -> Actor:
        binding = await self._probe(
            "role binding", lambda: self._directory.find_role_binding(session.user_id)
        )
        if binding is not None:
            return Actor(
                principal_id=session.user_id,
                kind=ActorKind.CARRIER,
                scope_id=binding.carrier_id,
                role=binding.role,
                email=session.email,
                display_name=display_name_from_email(session.email),
            )

        email = (session.email or "").strip().lower()
        if email and session.email_verified:
            client = await self._probe(
                "client lookup", lambda: self._directory.find_active_client(email)
            )
            if client is not None:
                return Actor(
                    principal_id=session.user_id,
                    kind=ActorKind.CLIENT,
                    scope_id=client.client_id,
                    email=session.email,
                    display_name=client.name,
                )

        log.warning("No carrier or client link for %s, using fallback actor", session.user_id)
        return fallback_actor(session)

    async def _probe[T](self, name: str, lookup: Callable[[], Awaitable[T | None]]) -> T | None:
        try:
            return await retry_with_timeout(
                self._policy,
                lookup,
                name=name,
                retry_on=(BackendUnavailableError,),
            )
        except RetriesExhaustedError as exc:
            log.warning("Identity probe %s gave up: %s", name, exc)
        except BackendError as exc:
            log.warning("Identity probe %s rejected: %s", name, exc)
        return None

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self._actor)
