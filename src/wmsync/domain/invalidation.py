"""Invalidation coordinator: the single writer of staleness into the query cache."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from wmsync.domain.model import EntityKind

if TYPE_CHECKING:
    from wmsync.domain.cache import QueryCache, ScopeKey

log = getLogger(__name__)

# Dashboard, request and shipment lists of every status, financial documents and
# both logs, for every actor kind and scope that has a cached entry.
INVALIDATED_KINDS = frozenset(EntityKind)


def is_invalidated(key: ScopeKey) -> bool:
    return key.entity in INVALIDATED_KINDS


class InvalidationCoordinator:
    """Maps "something changed" onto the set of cached scopes that are now stale.

    The mapping is deliberately coarse: a lost or duplicated notification costs a
    redundant refetch, never a stale view.
    """

    def __init__(self, cache: QueryCache) -> None:
        self._cache = cache
        self.invalidations = 0

    @property
    def cache(self) -> QueryCache:
        return self._cache

    def invalidate_all(self, *, reason: str = "mutation") -> int:
        """Mark every cached scope stale and trigger refetches; safe to call repeatedly."""

        touched = self._cache.invalidate_where(is_invalidated)
        self.invalidations += 1
        log.debug("Invalidated %d cached scope(s) (%s)", touched, reason)
        return touched

    def cancel_queries(self) -> int:
        """Discard the results of in-flight refetches ahead of a mutation."""

        cancelled = self._cache.cancel_in_flight()
        if cancelled:
            log.debug("Cancelled %d in-flight query load(s)", cancelled)
        return cancelled

    def reset(self, *, reason: str) -> None:
        """Drop every cached scope, e.g. when another principal takes over."""

        self._cache.clear()
        log.debug("Cleared query cache (%s)", reason)
