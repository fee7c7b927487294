"""Single change-feed subscription per consumer root."""

from __future__ import annotations

from contextlib import asynccontextmanager
from logging import getLogger
from typing import TYPE_CHECKING

from wmsync.domain.ports.change_feed import ConnectivityStatus
from wmsync.domain.ports.errors import BackendError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from wmsync.domain.invalidation import InvalidationCoordinator
    from wmsync.domain.ports.change_feed import (
        ChangeFeed,
        ChangeNotification,
        StatusListener,
        Subscription,
    )

log = getLogger(__name__)


class RealtimeMultiplexer:
    """Owns the subscription handle; every notification invalidates the cached views.

    ``acquire`` is idempotent for the lifetime of the handle, so mounting the same
    root twice never opens a second subscription. Subscription failures degrade the
    connectivity state instead of raising.
    """

    def __init__(
        self,
        feed: ChangeFeed,
        coordinator: InvalidationCoordinator,
        *,
        on_connectivity: StatusListener | None = None,
    ) -> None:
        self._feed = feed
        self._coordinator = coordinator
        self._on_connectivity = on_connectivity
        self._acquired = False
        self._subscription: Subscription | None = None
        self._connectivity = ConnectivityStatus.DISCONNECTED
        self.notifications = 0

    @property
    def connectivity(self) -> ConnectivityStatus:
        return self._connectivity

    @property
    def active(self) -> bool:
        return self._subscription is not None

    async def acquire(self) -> None:
        if self._acquired:
            return
        self._acquired = True
        try:
            subscription = await self._feed.subscribe(self._on_change, on_status=self._set_status)
        except BackendError as exc:
            log.warning("Change feed unavailable, falling back to refresh on interaction: %s", exc)
            self._set_status(ConnectivityStatus.DEGRADED)
            return
        if not self._acquired:
            # released while subscribing
            await subscription.close()
            return
        self._subscription = subscription
        if self._connectivity is not ConnectivityStatus.DEGRADED:
            self._set_status(ConnectivityStatus.CONNECTED)

    async def release(self) -> None:
        if not self._acquired:
            return
        self._acquired = False
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.close()
        self._set_status(ConnectivityStatus.DISCONNECTED)

    @asynccontextmanager
    async def mounted(self) -> AsyncIterator[RealtimeMultiplexer]:
        await self.acquire()
        try:
            yield self
        finally:
            await self.release()

    def _on_change(self, notification: ChangeNotification) -> None:
        self.notifications += 1
        self._coordinator.invalidate_all(reason=f"realtime:{notification.table}")

    def _set_status(self, status: ConnectivityStatus) -> None:
        if status is self._connectivity:
            return
        log.info("Change feed %s", status)
        self._connectivity = status
        if self._on_connectivity is not None:
            self._on_connectivity(status)
