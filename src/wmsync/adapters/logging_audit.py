"""Audit sink that writes entries to the ``wmsync.audit`` logger."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from wmsync.config.logging import AUDIT_LOGGER_NAME
from wmsync.domain.ports.audit import AuditLevel

if TYPE_CHECKING:
    from wmsync.domain.ports.audit import AuditEntry, AuditSink

_LEVELS = {
    AuditLevel.INFO: logging.INFO,
    AuditLevel.WARN: logging.WARNING,
    AuditLevel.ERROR: logging.ERROR,
}


class LoggingAuditSink:
    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._log = logger or logging.getLogger(AUDIT_LOGGER_NAME)

    async def record(self, entry: AuditEntry) -> None:
        self._log.log(
            _LEVELS[entry.level],
            "%s %s:%s actor=%s role=%s correlation=%s %s",
            entry.action,
            entry.entity_type,
            entry.entity_id,
            entry.actor_id,
            entry.actor_role,
            entry.correlation_id,
            entry.message or "",
            extra={"audit": entry},
        )


if TYPE_CHECKING:

    def _port_checks(sink: LoggingAuditSink) -> None:
        _sink: AuditSink = sink
