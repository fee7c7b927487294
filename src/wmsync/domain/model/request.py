"""Pickup-authorization request records (the normalized model)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .enums import RequestStatus

if TYPE_CHECKING:
    from datetime import datetime

    from .shipment import Shipment


@dataclass(slots=True, frozen=True, kw_only=True)
class AttachmentDescriptor:
    name: str
    path: str
    size: int
    content_type: str | None = None
    uploaded_at: datetime | None = None


@dataclass(slots=True, kw_only=True)
class RequestRecord:
    id: str
    shipment_id: str
    carrier_id: str
    client_id: str
    status: RequestStatus
    schedule_date: datetime | None = None
    notes: str | None = None
    attachments: tuple[AttachmentDescriptor, ...] = field(default_factory=tuple)
    requested_by: str | None = None
    requested_at: datetime | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    shipment: Shipment | None = None
