"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class ShipmentStatus(StrEnum):
    STORED = "stored"
    REQUESTED = "requested"
    CONFIRMED = "confirmed"


class SeparationStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    COMPLETED_WITH_ISSUES = "completed_with_issues"


class RequestStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REFUSED = "refused"


class ActorKind(StrEnum):
    CLIENT = "client"
    CARRIER = "carrier"


class CarrierRole(StrEnum):
    OPERATOR = "operator"
    CARRIER_ADMIN = "carrier_admin"
    SUPER_ADMIN = "super_admin"


class EntityKind(StrEnum):
    """First component of a cache scope key."""

    DASHBOARD = "dashboard"
    REQUESTS = "requests"
    SHIPMENTS = "shipments"
    FINANCIAL_DOCUMENTS = "financial_documents"
    EVENT_LOG = "event_log"
    AUDIT_LOG = "audit_log"
