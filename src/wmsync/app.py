"""Application composition: wires the workflow core onto its ports."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from wmsync.adapters.backend import (
    BackendAttachmentStorage,
    BackendAuditSink,
    BackendClient,
    BackendGateway,
    PollingChangeFeed,
)
from wmsync.adapters.logging_audit import LoggingAuditSink
from wmsync.config import get_backend_config, get_probe_policy
from wmsync.domain.audit import AuditTrail
from wmsync.domain.cache import QueryCache
from wmsync.domain.identity import IdentityResolver
from wmsync.domain.invalidation import InvalidationCoordinator
from wmsync.domain.model import RequestStatus
from wmsync.domain.realtime import RealtimeMultiplexer
from wmsync.domain.reads import WorkflowReads
from wmsync.domain.reconciliation import RequestReconciler
from wmsync.domain.workflow import ShipmentWorkflow

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterable

    from wmsync.config import BackendConfig
    from wmsync.domain.model import Actor, RequestView, Session, ShipmentStatus
    from wmsync.domain.ports import (
        AuditSink,
        ChangeFeed,
        IdentityDirectory,
        ReadModelQueries,
        RemoteProcedures,
        RequestQueries,
        ShipmentQueries,
        StatusListener,
        TransitionPayload,
    )
    from wmsync.domain.ports.queries import QueryScope
    from wmsync.domain.retry import ProbePolicy
    from wmsync.domain.workflow import TransitionKind, TransitionResult

log = getLogger(__name__)


@dataclass(slots=True, frozen=True, kw_only=True)
class Ports:
    shipments: ShipmentQueries
    requests: RequestQueries
    read_models: ReadModelQueries
    procedures: RemoteProcedures
    directory: IdentityDirectory
    change_feed: ChangeFeed
    audit_sinks: tuple[AuditSink, ...] = ()


class WorkflowCore:
    """One consumer root: an actor, its cache, its subscription and its workflow."""

    def __init__(
        self,
        ports: Ports,
        *,
        policy: ProbePolicy | None = None,
        cache: QueryCache | None = None,
        on_connectivity: StatusListener | None = None,
    ) -> None:
        self.cache = cache or QueryCache()
        self.identity = IdentityResolver(ports.directory, policy=policy)
        self.coordinator = InvalidationCoordinator(self.cache)
        self.reconciler = RequestReconciler(requests=ports.requests, shipments=ports.shipments)
        self.audit = AuditTrail(ports.audit_sinks)
        self.reads = WorkflowReads(
            cache=self.cache,
            actor_provider=lambda: self.identity.actor,
            reconciler=self.reconciler,
            shipments=ports.shipments,
            read_models=ports.read_models,
        )
        self.workflow = ShipmentWorkflow(
            actor_provider=lambda: self.identity.actor,
            shipments=ports.shipments,
            procedures=ports.procedures,
            reconciler=self.reconciler,
            coordinator=self.coordinator,
            audit=self.audit,
        )
        self.realtime = RealtimeMultiplexer(
            ports.change_feed, self.coordinator, on_connectivity=on_connectivity
        )

    @property
    def actor(self) -> Actor | None:
        return self.identity.actor

    async def resolve_actor(self, session: Session) -> Actor:
        previous = self.identity.actor
        actor = await self.identity.resolve_actor(session)
        if previous != actor:
            self.coordinator.reset(reason=f"actor:{actor.principal_id}")
        return actor

    async def request_transition(
        self,
        target_id: str,
        target_state: ShipmentStatus,
        payload: TransitionPayload | None = None,
    ) -> TransitionResult:
        return await self.workflow.request_transition(target_id, target_state, payload)

    async def get_unified_pending_requests(
        self, scope: QueryScope | None = None
    ) -> list[RequestView]:
        return await self.reads.unified_requests(RequestStatus.PENDING, scope=scope)

    def invalidate_all(self) -> int:
        return self.coordinator.invalidate_all(reason="manual")

    def is_pending(self, kind: TransitionKind) -> bool:
        return self.workflow.is_pending(kind)


def backend_ports(
    client: BackendClient,
    *,
    config: BackendConfig,
    extra_sinks: Iterable[AuditSink] = (),
) -> Ports:
    gateway = BackendGateway(client)
    return Ports(
        shipments=gateway,
        requests=gateway,
        read_models=gateway,
        procedures=gateway,
        directory=gateway,
        change_feed=PollingChangeFeed(
            client,
            tables=config.watched_tables,
            interval=config.change_feed_interval_seconds,
        ),
        audit_sinks=(LoggingAuditSink(), BackendAuditSink(client), *extra_sinks),
    )


@dataclass(slots=True, frozen=True)
class BackendSession:
    core: WorkflowCore
    actor: Actor
    storage: BackendAttachmentStorage


@asynccontextmanager
async def open_backend_session(
    session: Session,
    *,
    config: BackendConfig | None = None,
    watch: bool = False,
    on_connectivity: StatusListener | None = None,
) -> AsyncIterator[BackendSession]:
    """Resolve ``session`` against the configured backend and yield a ready core.

    With ``watch`` the change-feed subscription is held for the whole block.
    """

    effective = config or get_backend_config()
    async with (
        BackendClient(effective.rest, access_token=session.access_token) as client,
        BackendAttachmentStorage(
            effective.storage,
            bucket=effective.attachments_bucket,
            access_token=session.access_token,
        ) as storage,
    ):
        core = WorkflowCore(
            backend_ports(client, config=effective),
            policy=get_probe_policy(),
            on_connectivity=on_connectivity,
        )
        actor = await core.resolve_actor(session)
        log.info("Session ready for %s (%s)", actor.display_name, actor.role or actor.kind)
        if not watch:
            yield BackendSession(core=core, actor=actor, storage=storage)
            return
        async with core.realtime.mounted():
            yield BackendSession(core=core, actor=actor, storage=storage)
