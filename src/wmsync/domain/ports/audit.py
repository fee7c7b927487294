"""Structured audit trail port."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol, runtime_checkable
from uuid import uuid4


class AuditLevel(StrEnum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


def new_correlation_id() -> str:
    return str(uuid4())


@dataclass(slots=True, frozen=True, kw_only=True)
class AuditEntry:
    action: str
    entity_type: str
    entity_id: str | None = None
    level: AuditLevel = AuditLevel.INFO
    message: str | None = None
    actor_id: str | None = None
    actor_role: str | None = None
    client_id: str | None = None
    carrier_id: str | None = None
    correlation_id: str = field(default_factory=new_correlation_id)
    meta: dict[str, object] = field(default_factory=dict[str, object])


@runtime_checkable
class AuditSink(Protocol):
    async def record(self, entry: AuditEntry) -> None: ...
