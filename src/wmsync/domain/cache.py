"""Explicit query cache shared by every read of the workflow views.

Entries are keyed by ``ScopeKey`` and remember the loader that produced them, so an
invalidation can trigger the refetch without knowing what the query was. Each
entry carries a generation counter: a load that finishes after its entry was
invalidated or cancelled is discarded instead of overwriting fresher state.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING, cast

from wmsync.domain.model import EntityKind

if TYPE_CHECKING:
    from wmsync.domain.model import ActorKind
    from wmsync.domain.ports.queries import QueryScope

log = getLogger(__name__)

type Loader = Callable[[], Awaitable[object]]


@dataclass(slots=True, frozen=True)
class ScopeKey:
    entity: EntityKind
    status: str | None = None
    actor_kind: ActorKind | None = None
    scope_id: str | None = None

    @classmethod
    def for_scope(
        cls,
        entity: EntityKind,
        scope: QueryScope | None = None,
        status: str | None = None,
    ) -> ScopeKey:
        if scope is None:
            return cls(entity=entity, status=status)
        return cls(entity=entity, status=status, actor_kind=scope.kind, scope_id=scope.scope_id)


class EntryState(StrEnum):
    EMPTY = "empty"
    FRESH = "fresh"
    STALE = "stale"
    FETCHING = "fetching"


@dataclass(slots=True)
class _Entry:
    loader: Loader
    data: object = None
    has_data: bool = False
    stale: bool = True
    generation: int = 0
    task: asyncio.Task[None] | None = None
    fetched_at: datetime | None = None

    @property
    def fresh(self) -> bool:
        return self.has_data and not self.stale

    @property
    def state(self) -> EntryState:
        if self.task is not None:
            return EntryState.FETCHING
        if not self.has_data:
            return EntryState.EMPTY
        return EntryState.STALE if self.stale else EntryState.FRESH


@dataclass(slots=True)
class QueryCache:
    _entries: dict[ScopeKey, _Entry] = field(default_factory=dict["ScopeKey", "_Entry"])
    _background: set[asyncio.Task[None]] = field(default_factory=set["asyncio.Task[None]"])

    async def fetch[T](self, key: ScopeKey, loader: Callable[[], Awaitable[T]]) -> T:
        """Return the cached value for ``key``, loading it when absent or stale."""

        entry = self._entries.get(key)
        if entry is None:
            entry = _Entry(loader=loader)
            self._entries[key] = entry
        else:
            entry.loader = loader

        while not entry.fresh:
            task = entry.task or self._spawn(key, entry)
            await asyncio.shield(task)
        return cast("T", entry.data)

    def peek(self, key: ScopeKey) -> object | None:
        entry = self._entries.get(key)
        return entry.data if entry is not None and entry.has_data else None

    def state(self, key: ScopeKey) -> EntryState:
        entry = self._entries.get(key)
        return EntryState.EMPTY if entry is None else entry.state

    def keys(self) -> tuple[ScopeKey, ...]:
        return tuple(self._entries)

    def snapshot(self) -> dict[ScopeKey, tuple[EntryState, object]]:
        return {key: (entry.state, entry.data) for key, entry in self._entries.items()}

    def invalidate_where(self, predicate: Callable[[ScopeKey], bool]) -> int:
        """Mark matching entries stale and restart their loads.

        Runs synchronously; the refetches are scheduled on the running loop when
        there is one, otherwise the next ``fetch`` performs them.
        """

        loop = _running_loop()
        touched = 0
        for key, entry in self._entries.items():
            if not predicate(key):
                continue
            touched += 1
            entry.stale = True
            entry.generation += 1
            entry.task = None
            if loop is not None and entry.has_data:
                self._spawn(key, entry)
        return touched

    def cancel_in_flight(self) -> int:
        """Discard the results of every running load; the loads themselves finish."""

        cancelled = 0
        for entry in self._entries.values():
            if entry.task is None:
                continue
            cancelled += 1
            entry.generation += 1
            entry.task = None
            entry.stale = True
        return cancelled

    def clear(self) -> None:
        for entry in self._entries.values():
            entry.generation += 1
            entry.task = None
        self._entries.clear()

    def _spawn(self, key: ScopeKey, entry: _Entry) -> asyncio.Task[None]:
        task = asyncio.get_running_loop().create_task(
            self._load(key, entry, entry.generation),
            name=f"cache-load:{key.entity}",
        )
        entry.task = task
        self._background.add(task)
        task.add_done_callback(self._finished)
        return task

    async def _load(self, key: ScopeKey, entry: _Entry, generation: int) -> None:
        try:
            data = await entry.loader()
        finally:
            if entry.generation == generation:
                entry.task = None
        if entry.generation != generation:
            log.debug("Discarding superseded load for %s", key)
            return
        entry.data = data
        entry.has_data = True
        entry.stale = False
        entry.fetched_at = datetime.now(UTC)

    def _finished(self, task: asyncio.Task[None]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.warning("Cache load %s failed: %r", task.get_name(), exc)


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None
