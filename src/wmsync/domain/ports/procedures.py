"""Remote procedures that mutate shipments and request records.

The backend applies each call atomically and re-validates every guard; callers
treat a ``BackendRejectedError`` as the authoritative verdict.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from datetime import datetime

    from wmsync.domain.model import AttachmentDescriptor, RequestRecord


@dataclass(slots=True, frozen=True, kw_only=True)
class TransitionPayload:
    schedule_date: datetime | None = None
    notes: str | None = None
    attachments: tuple[AttachmentDescriptor, ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return self.schedule_date is None and not self.notes and not self.attachments


@runtime_checkable
class RemoteProcedures(Protocol):
    async def request_pickup(
        self,
        *,
        shipment_id: str,
        actor_id: str,
        payload: TransitionPayload,
    ) -> str | None:
        """Move a stored shipment to requested; return the request record id if any."""
        ...

    async def approve_request(self, *, request_id: str, actor_id: str) -> RequestRecord:
        """Mark a pending request record approved; fails if it is no longer pending."""
        ...

    async def refuse_request(self, *, request_id: str, actor_id: str) -> RequestRecord:
        """Mark a pending request record refused; fails if it is no longer pending."""
        ...

    async def confirm_shipment(self, *, shipment_id: str, actor_id: str) -> None: ...

    async def refuse_shipment(self, *, shipment_id: str, actor_id: str) -> None: ...
