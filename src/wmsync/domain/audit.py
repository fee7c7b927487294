"""Fan-out of structured audit entries to the configured sinks."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from wmsync.domain.errors import DataIntegrityError
from wmsync.domain.ports.audit import AuditEntry, AuditLevel
from wmsync.domain.ports.errors import BackendError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from wmsync.domain.errors import WorkflowError
    from wmsync.domain.model import Actor
    from wmsync.domain.ports.audit import AuditSink

log = getLogger(__name__)


class AuditTrail:
    """Records every entry on each sink; a sink failing never masks the audited outcome."""

    def __init__(self, sinks: Iterable[AuditSink] = ()) -> None:
        self._sinks = tuple(sinks)

    async def record(self, entry: AuditEntry) -> None:
        for sink in self._sinks:
            try:
                await sink.record(entry)
            except BackendError as exc:
                log.warning("Audit sink %s dropped %s: %s", type(sink).__name__, entry.action, exc)

    async def success(
        self,
        action: str,
        *,
        actor: Actor,
        entity_type: str,
        entity_id: str | None,
        correlation_id: str,
        message: str | None = None,
        meta: dict[str, object] | None = None,
    ) -> None:
        await self.record(
            entry_for(
                action,
                actor=actor,
                entity_type=entity_type,
                entity_id=entity_id,
                correlation_id=correlation_id,
                level=AuditLevel.INFO,
                message=message,
                meta=meta,
            )
        )

    async def failure(
        self,
        error: WorkflowError,
        *,
        actor: Actor | None,
        entity_type: str,
        entity_id: str | None,
        correlation_id: str,
        meta: dict[str, object] | None = None,
    ) -> None:
        level = AuditLevel.ERROR if isinstance(error, DataIntegrityError) else AuditLevel.WARN
        await self.record(
            entry_for(
                error.audit_action,
                actor=actor,
                entity_type=entity_type,
                entity_id=entity_id,
                correlation_id=correlation_id,
                level=level,
                message=str(error),
                meta={"error": type(error).__name__, **(meta or {})},
            )
        )


def entry_for(
    action: str,
    *,
    actor: Actor | None,
    entity_type: str,
    entity_id: str | None,
    correlation_id: str,
    level: AuditLevel,
    message: str | None,
    meta: dict[str, object] | None,
) -> AuditEntry:
    client_id = carrier_id = None
    if actor is not None and actor.is_client:
        client_id = actor.scope_id
    elif actor is not None:
        carrier_id = actor.scope_id
    return AuditEntry(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        level=level,
        message=message,
        actor_id=actor.principal_id if actor is not None else None,
        actor_role=_role_label(actor),
        client_id=client_id,
        carrier_id=carrier_id,
        correlation_id=correlation_id,
        meta=dict(meta or {}),
    )


def _role_label(actor: Actor | None) -> str | None:
    if actor is None:
        return None
    return actor.role.value if actor.role is not None else actor.kind.value
