"""Shipment lifecycle state machine.

Each transition is validated client-side (actor kind and role, then scope, then
the target's current state) before a single dispatch to the backend, which
re-validates and applies it atomically. A successful transition invalidates the
cached views synchronously before returning.
"""

from __future__ import annotations

from collections import Counter
from contextlib import contextmanager
from dataclasses import dataclass
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from wmsync.domain.errors import (
    AuthorizationError,
    DataIntegrityError,
    PreconditionError,
    TransientBackendError,
    WorkflowError,
)
from wmsync.domain.model import (
    ActorKind,
    CarrierRole,
    LegacyRequest,
    NormalizedRequest,
    RequestStatus,
    ShipmentStatus,
)
from wmsync.domain.ports.audit import new_correlation_id
from wmsync.domain.ports.errors import (
    BackendAuthError,
    BackendError,
    BackendRejectedError,
    BackendUnavailableError,
)
from wmsync.domain.ports.procedures import TransitionPayload

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterator

    from wmsync.domain.audit import AuditTrail
    from wmsync.domain.invalidation import InvalidationCoordinator
    from wmsync.domain.model import Actor, Shipment
    from wmsync.domain.ports.procedures import RemoteProcedures
    from wmsync.domain.ports.queries import ShipmentQueries
    from wmsync.domain.reconciliation import RequestReconciler

log = getLogger(__name__)


class TransitionKind(StrEnum):
    REQUEST = "request"
    APPROVE = "approve"
    REFUSE = "refuse"


@dataclass(slots=True, frozen=True)
class TransitionRule:
    kind: TransitionKind
    source: ShipmentStatus
    target: ShipmentStatus
    actor_kind: ActorKind
    roles: frozenset[CarrierRole] = frozenset()
    audit_action: str = ""


_CARRIER_ROLES = frozenset(CarrierRole)

TRANSITIONS: dict[TransitionKind, TransitionRule] = {
    TransitionKind.REQUEST: TransitionRule(
        TransitionKind.REQUEST,
        ShipmentStatus.STORED,
        ShipmentStatus.REQUESTED,
        ActorKind.CLIENT,
        audit_action="PICKUP_REQUESTED",
    ),
    TransitionKind.APPROVE: TransitionRule(
        TransitionKind.APPROVE,
        ShipmentStatus.REQUESTED,
        ShipmentStatus.CONFIRMED,
        ActorKind.CARRIER,
        _CARRIER_ROLES,
        audit_action="PICKUP_APPROVED",
    ),
    TransitionKind.REFUSE: TransitionRule(
        TransitionKind.REFUSE,
        ShipmentStatus.REQUESTED,
        ShipmentStatus.STORED,
        ActorKind.CARRIER,
        _CARRIER_ROLES,
        audit_action="PICKUP_REFUSED",
    ),
}

_BY_TARGET = {rule.target: rule for rule in TRANSITIONS.values()}


def rule_for(target_state: ShipmentStatus) -> TransitionRule:
    return _BY_TARGET[target_state]


def is_legal(source: ShipmentStatus, target: ShipmentStatus) -> bool:
    rule = _BY_TARGET.get(target)
    return rule is not None and rule.source is source


def check_actor(rule: TransitionRule, actor: Actor) -> None:
    """Kind and role gate; needs no I/O and runs before anything else."""

    if actor.kind is not rule.actor_kind:
        raise AuthorizationError(
            f"{actor.kind} actor {actor.principal_id} cannot {rule.kind} pickups",
            user_message=f"Only {rule.actor_kind} users can {rule.kind} pickups.",
        )
    if rule.roles and actor.role not in rule.roles:
        raise AuthorizationError(f"Role {actor.role} cannot {rule.kind} pickups")
    if actor.scope_id is None:
        raise AuthorizationError(
            f"Actor {actor.principal_id} has no client or carrier scope",
            user_message="Your account is not linked to a client or carrier yet.",
        )


def check_scope(actor: Actor, shipment: Shipment) -> None:
    if not actor.owns(client_id=shipment.client_id, carrier_id=shipment.carrier_id):
        raise AuthorizationError(
            f"Shipment {shipment.id} is outside the scope of actor {actor.principal_id}"
        )


def check_state(rule: TransitionRule, shipment: Shipment) -> None:
    if shipment.status is not rule.source:
        raise PreconditionError(
            f"Shipment {shipment.id} is {shipment.status}, {rule.kind} requires {rule.source}",
            user_message=(
                f"Invoice {shipment.invoice_number} is {shipment.status} and cannot be changed "
                "this way."
            ),
        )


@dataclass(slots=True, frozen=True, kw_only=True)
class TransitionResult:
    kind: TransitionKind
    shipment_id: str
    status: ShipmentStatus
    request_id: str | None = None
    legacy: bool = False
    correlation_id: str


class ShipmentWorkflow:
    def __init__(
        self,
        *,
        actor_provider: Callable[[], Actor | None],
        shipments: ShipmentQueries,
        procedures: RemoteProcedures,
        reconciler: RequestReconciler,
        coordinator: InvalidationCoordinator,
        audit: AuditTrail,
    ) -> None:
        self._actor_provider = actor_provider
        self._shipments = shipments
        self._procedures = procedures
        self._reconciler = reconciler
        self._coordinator = coordinator
        self._audit = audit
        self._in_flight: Counter[TransitionKind] = Counter()

    def is_pending(self, kind: TransitionKind) -> bool:
        return self._in_flight[kind] > 0

    async def request_transition(
        self,
        target_id: str,
        target_state: ShipmentStatus,
        payload: TransitionPayload | None = None,
    ) -> TransitionResult:
        """Move the shipment behind ``target_id`` to ``target_state``.

        ``target_id`` is a shipment id for a pickup request, and a request id, a
        synthetic legacy id or a shipment id for approval and refusal.
        """

        rule = rule_for(target_state)
        correlation_id = new_correlation_id()
        actor = self._actor_provider()
        with self._tracking(rule.kind):
            try:
                if actor is None:
                    raise AuthorizationError("No resolved actor", user_message="Please sign in.")
                check_actor(rule, actor)
                if rule.kind is TransitionKind.REQUEST:
                    result = await self._request(
                        rule, actor, target_id, payload or TransitionPayload(), correlation_id
                    )
                else:
                    result = await self._decide(rule, actor, target_id, correlation_id)
            except WorkflowError as exc:
                log.warning("%s %s failed: %s", rule.kind, target_id, exc)
                await self._audit.failure(
                    exc,
                    actor=actor,
                    entity_type="shipment",
                    entity_id=target_id,
                    correlation_id=correlation_id,
                    meta={"transition": rule.kind.value},
                )
                raise

        self._coordinator.invalidate_all(reason=f"{rule.kind}:{result.shipment_id}")
        await self._audit.success(
            rule.audit_action,
            actor=actor,
            entity_type="shipment",
            entity_id=result.shipment_id,
            correlation_id=correlation_id,
            meta={
                "transition": rule.kind.value,
                "request_id": result.request_id,
                "legacy": result.legacy,
            },
        )
        log.info("%s %s -> %s", rule.kind, result.shipment_id, result.status)
        return result

    async def _request(
        self,
        rule: TransitionRule,
        actor: Actor,
        shipment_id: str,
        payload: TransitionPayload,
        correlation_id: str,
    ) -> TransitionResult:
        shipment = await self._load_shipment(shipment_id)
        check_scope(actor, shipment)
        check_state(rule, shipment)

        self._coordinator.cancel_queries()
        request_id = await self._dispatch(
            self._procedures.request_pickup(
                shipment_id=shipment.id, actor_id=actor.principal_id, payload=payload
            )
        )
        return TransitionResult(
            kind=rule.kind,
            shipment_id=shipment.id,
            status=rule.target,
            request_id=request_id,
            correlation_id=correlation_id,
        )

    async def _decide(
        self,
        rule: TransitionRule,
        actor: Actor,
        target_id: str,
        correlation_id: str,
    ) -> TransitionResult:
        try:
            view = await self._reconciler.locate(target_id)
        except BackendError as exc:
            raise self._translate(exc) from exc
        if view is None:
            raise PreconditionError(
                f"No request or shipment {target_id}",
                user_message="This request no longer exists.",
            )
        shipment = view.shipment
        check_scope(actor, shipment)
        try:
            check_state(rule, shipment)
            if (
                isinstance(view, NormalizedRequest)
                and view.record.status is not RequestStatus.PENDING
            ):
                raise PreconditionError(
                    f"Request {view.record.id} is {view.record.status}, expected pending"
                )
        except PreconditionError:
            # Another session decided first; the cached lists are behind.
            self._coordinator.invalidate_all(reason=f"conflict:{shipment.id}")
            raise

        approve = rule.kind is TransitionKind.APPROVE
        match view:
            case NormalizedRequest(record=record):
                self._coordinator.cancel_queries()
                step = (
                    self._procedures.approve_request
                    if approve
                    else self._procedures.refuse_request
                )
                await self._dispatch(step(request_id=record.id, actor_id=actor.principal_id))
                await self._finish_shipment(approve, actor, record.id, shipment.id)
                return TransitionResult(
                    kind=rule.kind,
                    shipment_id=shipment.id,
                    status=rule.target,
                    request_id=record.id,
                    correlation_id=correlation_id,
                )
            case LegacyRequest():
                self._coordinator.cancel_queries()
                shipment_step = (
                    self._procedures.confirm_shipment
                    if approve
                    else self._procedures.refuse_shipment
                )
                await self._dispatch(
                    shipment_step(shipment_id=shipment.id, actor_id=actor.principal_id)
                )
                return TransitionResult(
                    kind=rule.kind,
                    shipment_id=shipment.id,
                    status=rule.target,
                    legacy=True,
                    correlation_id=correlation_id,
                )

    async def _finish_shipment(
        self, approve: bool, actor: Actor, request_id: str, shipment_id: str
    ) -> None:
        shipment_step = (
            self._procedures.confirm_shipment if approve else self._procedures.refuse_shipment
        )
        try:
            await shipment_step(shipment_id=shipment_id, actor_id=actor.principal_id)
        except BackendError as exc:
            log.error(
                "Data integrity violation: request %s updated but shipment %s was not: %s",
                request_id,
                shipment_id,
                exc,
            )
            self._coordinator.invalidate_all(reason=f"integrity:{shipment_id}")
            raise DataIntegrityError(
                f"Request {request_id} was updated but shipment {shipment_id} was not: {exc}",
                request_id=request_id,
                shipment_id=shipment_id,
            ) from exc

    async def _load_shipment(self, shipment_id: str) -> Shipment:
        try:
            shipment = await self._shipments.get_shipment(shipment_id)
        except BackendError as exc:
            raise self._translate(exc) from exc
        if shipment is None:
            raise PreconditionError(
                f"Shipment {shipment_id} not found",
                user_message="This shipment no longer exists.",
            )
        return shipment

    async def _dispatch[T](self, call: Awaitable[T]) -> T:
        try:
            return await call
        except BackendError as exc:
            raise self._translate(exc) from exc

    def _translate(self, exc: BackendError) -> WorkflowError:
        if isinstance(exc, BackendRejectedError):
            self._coordinator.invalidate_all(reason="backend-conflict")
            return PreconditionError(f"Backend rejected the transition: {exc}")
        if isinstance(exc, BackendAuthError):
            return AuthorizationError(f"Backend denied the transition: {exc}")
        if isinstance(exc, BackendUnavailableError):
            return TransientBackendError(str(exc))
        return TransientBackendError(f"Unexpected backend failure: {exc}")

    @contextmanager
    def _tracking(self, kind: TransitionKind) -> Iterator[None]:
        self._in_flight[kind] += 1
        try:
            yield
        finally:
            self._in_flight[kind] -= 1
