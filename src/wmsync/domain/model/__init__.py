"""Domain model for the shipment lifecycle."""

from __future__ import annotations

from .actor import Actor, Session, display_name_from_email, fallback_actor
from .enums import (
    ActorKind,
    CarrierRole,
    EntityKind,
    RequestStatus,
    SeparationStatus,
    ShipmentStatus,
)
from .read_models import AuditLogEntry, DashboardSummary, EventLogEntry, FinancialDocument
from .request import AttachmentDescriptor, RequestRecord
from .shipment import Shipment
from .views import (
    LegacyRequest,
    NormalizedRequest,
    RequestView,
    legacy_request_id,
    parse_legacy_request_id,
)

__all__ = [
    "Actor",
    "ActorKind",
    "AttachmentDescriptor",
    "AuditLogEntry",
    "CarrierRole",
    "DashboardSummary",
    "EntityKind",
    "EventLogEntry",
    "FinancialDocument",
    "LegacyRequest",
    "NormalizedRequest",
    "RequestRecord",
    "RequestStatus",
    "RequestView",
    "SeparationStatus",
    "Session",
    "Shipment",
    "ShipmentStatus",
    "display_name_from_email",
    "fallback_actor",
    "legacy_request_id",
    "parse_legacy_request_id",
]
