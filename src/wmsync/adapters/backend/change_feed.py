"""Change feed that polls the watched tables' timestamp columns over REST."""

from __future__ import annotations

import asyncio
import contextlib
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from pydantic import ValidationError

from wmsync.config.backend import DEFAULT_CHANGE_FEED_INTERVAL_SECONDS, WATCHED_TABLES
from wmsync.domain.ports.change_feed import ChangeNotification, ConnectivityStatus
from wmsync.domain.ports.errors import BackendError

from .schema import ChangeCursorRow

if TYPE_CHECKING:
    from wmsync.domain.ports.change_feed import (
        ChangeFeed,
        ChangeListener,
        StatusListener,
        Subscription,
    )

    from .client import BackendClient

log = getLogger(__name__)

_POLL_PAGE_SIZE = 100


class PollingSubscription:
    def __init__(
        self,
        client: BackendClient,
        *,
        tables: tuple[tuple[str, str], ...],
        interval: float,
        on_change: ChangeListener,
        on_status: StatusListener,
    ) -> None:
        self._client = client
        self._tables = tables
        self._interval = interval
        self._on_change = on_change
        self._on_status = on_status
        self._cursors: dict[str, datetime] = {}
        self._status = ConnectivityStatus.DISCONNECTED
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        """Anchor every cursor at the newest row; raises ``BackendError`` if unreachable."""

        for table, column in self._tables:
            rows = await self._client.select(
                table, columns=f"id,changed_at:{column}", order=f"{column}.desc", limit=1
            )
            latest = _parse_rows(rows, table)
            self._cursors[table] = latest[0].changed_at if latest else datetime.now(UTC)
        self._set_status(ConnectivityStatus.CONNECTED)
        self._task = asyncio.get_running_loop().create_task(self._run(), name="change-feed-poll")

    async def close(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._set_status(ConnectivityStatus.DISCONNECTED)

    async def poll_once(self) -> int:
        """Fetch rows changed since the cursors and emit one notification per row."""

        emitted = 0
        for table, column in self._tables:
            rows = await self._client.select(
                table,
                columns=f"id,changed_at:{column}",
                filters={column: f"gt.{self._cursors[table].isoformat()}"},
                order=f"{column}.asc",
                limit=_POLL_PAGE_SIZE,
            )
            for row in _parse_rows(rows, table):
                self._cursors[table] = max(self._cursors[table], row.changed_at)
                self._on_change(
                    ChangeNotification(table=table, row_id=row.id, changed_at=row.changed_at)
                )
                emitted += 1
        return emitted

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.poll_once()
            except BackendError as exc:
                log.warning("Change feed poll failed: %s", exc)
                self._set_status(ConnectivityStatus.DEGRADED)
                continue
            self._set_status(ConnectivityStatus.CONNECTED)

    def _set_status(self, status: ConnectivityStatus) -> None:
        if status is self._status:
            return
        self._status = status
        self._on_status(status)


class PollingChangeFeed:
    def __init__(
        self,
        client: BackendClient,
        *,
        tables: tuple[tuple[str, str], ...] = WATCHED_TABLES,
        interval: float = DEFAULT_CHANGE_FEED_INTERVAL_SECONDS,
    ) -> None:
        self._client = client
        self._tables = tables
        self._interval = interval

    async def subscribe(
        self,
        on_change: ChangeListener,
        *,
        on_status: StatusListener,
    ) -> Subscription:
        subscription = PollingSubscription(
            self._client,
            tables=self._tables,
            interval=self._interval,
            on_change=on_change,
            on_status=on_status,
        )
        await subscription.start()
        log.info("Watching %d table(s) every %.1fs", len(self._tables), self._interval)
        return subscription


def _parse_rows(rows: list[dict[str, object]], table: str) -> list[ChangeCursorRow]:
    try:
        return [ChangeCursorRow.model_validate(row) for row in rows]
    except ValidationError as exc:
        raise BackendError(f"Malformed change rows from {table}: {exc}") from exc


if TYPE_CHECKING:

    def _port_checks(feed: PollingChangeFeed) -> None:
        _feed: ChangeFeed = feed
