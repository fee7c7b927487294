"""Shipment (invoice-backed lot of goods) records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .enums import SeparationStatus, ShipmentStatus

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(slots=True, kw_only=True)
class Shipment:
    id: str
    invoice_number: str
    order_number: str
    client_id: str
    carrier_id: str
    status: ShipmentStatus
    separation_status: SeparationStatus = SeparationStatus.PENDING
    purchase_order: str | None = None
    product: str | None = None
    supplier: str | None = None
    weight: float = 0.0
    volume: float = 0.0
    quantity: int = 0
    location: str | None = None
    received_at: datetime | None = None
    requested_at: datetime | None = None
    requested_by: str | None = None
    approved_at: datetime | None = None
    approved_by: str | None = None

    @property
    def was_refused(self) -> bool:
        """A stored shipment carrying approval metadata went through a refusal."""
        return self.status is ShipmentStatus.STORED and self.approved_by is not None
