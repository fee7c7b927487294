"""Audit sink writing to the backend's system log through ``log_system_event``."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from wmsync.domain.ports.audit import AuditEntry, AuditSink

    from .client import BackendClient


class BackendAuditSink:
    def __init__(self, client: BackendClient) -> None:
        self._client = client

    async def record(self, entry: AuditEntry) -> None:
        await self._client.rpc(
            "log_system_event",
            {
                "p_entity_type": entry.entity_type,
                "p_action": entry.action,
                "p_status": entry.level.value,
                "p_message": entry.message,
                "p_meta": {
                    **entry.meta,
                    "actor_id": entry.actor_id,
                    "actor_role": entry.actor_role,
                },
                "p_entity_id": entry.entity_id,
                "p_correlation_id": entry.correlation_id,
                "p_cliente_id": entry.client_id,
                "p_transportadora_id": entry.carrier_id,
            },
        )


if TYPE_CHECKING:

    def _port_checks(sink: BackendAuditSink) -> None:
        _sink: AuditSink = sink
