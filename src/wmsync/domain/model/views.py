"""Unified request views.

A pending pickup request is backed either by a normalized request record or, for
shipments requested before request records existed, by nothing but the shipment's
own status. Both shapes are surfaced through ``RequestView`` so that callers route
on the variant, never on field presence.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .enums import RequestStatus

if TYPE_CHECKING:
    from datetime import datetime

    from .request import AttachmentDescriptor, RequestRecord
    from .shipment import Shipment

LEGACY_ID_PREFIX = "legacy:"


def legacy_request_id(shipment_id: str) -> str:
    return f"{LEGACY_ID_PREFIX}{shipment_id}"


def parse_legacy_request_id(value: str) -> str | None:
    """Return the shipment id encoded in a synthetic legacy id, else ``None``."""
    if value.startswith(LEGACY_ID_PREFIX) and len(value) > len(LEGACY_ID_PREFIX):
        return value[len(LEGACY_ID_PREFIX) :]
    return None


@dataclass(slots=True, frozen=True)
class NormalizedRequest:
    record: RequestRecord
    shipment: Shipment

    @property
    def id(self) -> str:
        return self.record.id

    @property
    def status(self) -> RequestStatus:
        return self.record.status

    @property
    def requested_at(self) -> datetime | None:
        return self.record.requested_at

    @property
    def schedule_date(self) -> datetime | None:
        return self.record.schedule_date

    @property
    def notes(self) -> str | None:
        return self.record.notes

    @property
    def attachments(self) -> tuple[AttachmentDescriptor, ...]:
        return self.record.attachments


@dataclass(slots=True, frozen=True)
class LegacyRequest:
    shipment: Shipment

    @property
    def id(self) -> str:
        return legacy_request_id(self.shipment.id)

    @property
    def status(self) -> RequestStatus:
        return RequestStatus.PENDING

    @property
    def requested_at(self) -> datetime | None:
        return self.shipment.requested_at

    @property
    def schedule_date(self) -> datetime | None:
        return None

    @property
    def notes(self) -> str | None:
        return None

    @property
    def attachments(self) -> tuple[AttachmentDescriptor, ...]:
        return ()


type RequestView = NormalizedRequest | LegacyRequest
