"""Port for the backend's change-notification stream."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from datetime import datetime


class ConnectivityStatus(StrEnum):
    CONNECTED = "connected"
    DEGRADED = "degraded"
    DISCONNECTED = "disconnected"


@dataclass(slots=True, frozen=True, kw_only=True)
class ChangeNotification:
    """Something changed in the actor's scope. Consumers must not rely on the fields."""

    table: str
    row_id: str | None = None
    changed_at: datetime | None = None


ChangeListener = Callable[[ChangeNotification], None]
StatusListener = Callable[[ConnectivityStatus], None]


@runtime_checkable
class Subscription(Protocol):
    async def close(self) -> None: ...


@runtime_checkable
class ChangeFeed(Protocol):
    async def subscribe(
        self,
        on_change: ChangeListener,
        *,
        on_status: StatusListener,
    ) -> Subscription:
        """Start delivering notifications; raise ``BackendError`` if it cannot start."""
        ...
