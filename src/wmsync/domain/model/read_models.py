"""Secondary read models refreshed alongside the workflow views."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import date, datetime


@dataclass(slots=True, frozen=True, kw_only=True)
class DashboardSummary:
    pending_requests: int = 0
    stored_shipments: int = 0
    confirmed_shipments: int = 0
    documents_due_soon: int = 0
    documents_overdue: int = 0
    amount_pending: float | None = None
    amount_overdue: float | None = None


@dataclass(slots=True, frozen=True, kw_only=True)
class FinancialDocument:
    id: str
    carrier_id: str
    client_id: str
    cte_number: str
    due_date: date
    status: str
    amount: float | None = None
    paid_at: date | None = None
    cte_file_path: str | None = None
    invoice_file_path: str | None = None
    notes: str | None = None


@dataclass(slots=True, frozen=True, kw_only=True)
class EventLogEntry:
    id: str
    entity_type: str
    entity_id: str | None
    event_type: str
    actor_id: str | None
    actor_role: str | None
    created_at: datetime
    message: str | None = None
    payload: dict[str, object] = field(default_factory=dict["str", "object"])


@dataclass(slots=True, frozen=True, kw_only=True)
class AuditLogEntry:
    id: str
    entity_type: str
    entity_id: str | None
    action: str
    status: str
    created_at: datetime
    message: str | None = None
    actor_user_id: str | None = None
    actor_role: str | None = None
    correlation_id: str | None = None
    meta: dict[str, object] = field(default_factory=dict["str", "object"])
