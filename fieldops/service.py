"""
Scoped collection subscriptions and the write path.

Readers get whatever the cache holds immediately and a refresh in the
background; writers invalidate the collection as soon as the store confirms
the write, then nudge any open subscriptions to re-read.
"""

import asyncio
import logging
import weakref
from typing import Any, Callable, Dict, List, Optional

from fieldops.cache import ResultCache, cache_key, result_cache
from fieldops.fetcher import fetch_scoped_collection
from fieldops.models import AccessScope, CollectionState
from fieldops.normalizer import entity_for_collection
from fieldops.store import RemoteStore

logger = logging.getLogger(__name__)

Listener = Callable[[CollectionState], None]

_open_handles: "weakref.WeakSet[ScopedCollection]" = weakref.WeakSet()


class ScopedCollection:
    """One collection as seen through one access scope."""

    def __init__(
        self,
        store: RemoteStore,
        collection: str,
        scope: AccessScope,
        cache: ResultCache = result_cache,
    ):
        self.store = store
        self.collection = collection
        self.entity_type = entity_for_collection(collection)
        self.scope = scope
        self.cache = cache
        self._generation = 0
        self._error: Optional[str] = None
        self._incomplete = False
        self._listeners: List[Listener] = []
        self.task: Optional[asyncio.Task] = None

    @property
    def key(self):
        return cache_key(self.collection, self.scope)

    def snapshot(self) -> CollectionState:
        """Current cached view; never suspends."""
        entry = self.cache.get(self.key)
        if entry is None:
            return CollectionState(records=[], is_stale=True, error=self._error, incomplete=self._incomplete)
        return CollectionState(
            records=entry.records,
            is_stale=not entry.fresh,
            error=self._error,
            incomplete=self._incomplete,
        )

    def needs_refresh(self) -> bool:
        return self.cache.get_fresh(self.key) is None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` and hand it the current snapshot right away."""
        self._listeners.append(listener)
        _open_handles.add(self)
        listener(self.snapshot())

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
            if not self._listeners:
                _open_handles.discard(self)

        return unsubscribe

    def _publish(self, state: CollectionState) -> None:
        for listener in list(self._listeners):
            listener(state)

    def set_scope(self, scope: AccessScope) -> bool:
        """Switch scope; results still in flight for the old scope are discarded."""
        if scope == self.scope:
            return False
        self.scope = scope
        self._generation += 1
        self._error = None
        self._incomplete = False
        self._publish(self.snapshot())
        return True

    async def refresh(self, force: bool = False) -> CollectionState:
        """Re-read the collection unless the cache is fresh (or ``force``)."""
        if not force and not self.needs_refresh():
            state = self.snapshot()
            self._publish(state)
            return state

        generation = self._generation
        scope = self.scope
        key = self.key
        epoch = self.cache.epoch(self.collection)
        result = await fetch_scoped_collection(self.store, self.collection, scope, self.entity_type)

        if generation != self._generation:
            logger.debug("Discarding %s result for superseded scope %s", self.collection, scope.key())
            return self.snapshot()

        if result.error is not None:
            self._error = result.error
            self._incomplete = True
            state = self.snapshot()
            state.is_stale = True
            self._publish(state)
            return state

        if epoch != self.cache.epoch(self.collection):
            # Invalidated while in flight; the invalidating write schedules a new read.
            return self.snapshot()

        self._error = None
        self._incomplete = result.incomplete
        if result.incomplete:
            # Partial results are shown but not cached, so the next reader retries.
            state = CollectionState(records=result.records, is_stale=False, incomplete=True)
        elif self.cache.put(key, result.records, epoch=epoch):
            state = CollectionState(records=result.records, is_stale=False)
        else:
            # Invalidated from another thread between the check and the put.
            return self.snapshot()
        self._publish(state)
        return state

    def schedule_refresh(self, force: bool = False) -> Optional[asyncio.Task]:
        """Start a refresh on the running loop, if there is one."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return None
        self.task = loop.create_task(self.refresh(force=force))
        return self.task


def use_scoped_collection(
    store: RemoteStore,
    collection: str,
    scope: AccessScope,
    listener: Listener,
    cache: ResultCache = result_cache,
) -> ScopedCollection:
    """Subscribe to a collection: snapshot now, refreshed state when it lands.

    Must be called from inside the event loop for the background refresh to
    start; otherwise call ``await handle.refresh()`` yourself.
    """
    handle = ScopedCollection(store, collection, scope, cache)
    handle.subscribe(listener)
    if handle.needs_refresh():
        handle.schedule_refresh()
    return handle


async def load_collection(
    store: RemoteStore,
    collection: str,
    scope: AccessScope,
    cache: ResultCache = result_cache,
) -> CollectionState:
    """One-shot read: fresh cache hit, or fetch (stale snapshot plus error on failure)."""
    return await ScopedCollection(store, collection, scope, cache).refresh()


# ── Write path ───────────────────────────────────────────────────────

def _after_write(collection: str, cache: ResultCache) -> None:
    cache.invalidate(collection)
    for handle in list(_open_handles):
        if handle.collection == collection and handle.cache is cache:
            handle.schedule_refresh(force=True)


async def create_record(
    store: RemoteStore,
    collection: str,
    data: Dict[str, Any],
    cache: ResultCache = result_cache,
) -> str:
    """Store a new record under a generated key and return the key."""
    entity_for_collection(collection)
    key = await store.push(collection, data)
    _after_write(collection, cache)
    logger.info("Created %s/%s", collection, key)
    return key


async def update_record(
    store: RemoteStore,
    collection: str,
    record_id: str,
    values: Dict[str, Any],
    cache: ResultCache = result_cache,
) -> None:
    entity_for_collection(collection)
    await store.update(f"{collection}/{record_id}", values)
    _after_write(collection, cache)
    logger.info("Updated %s/%s", collection, record_id)


async def delete_record(
    store: RemoteStore,
    collection: str,
    record_id: str,
    cache: ResultCache = result_cache,
) -> None:
    entity_for_collection(collection)
    await store.delete(f"{collection}/{record_id}")
    _after_write(collection, cache)
    logger.info("Deleted %s/%s", collection, record_id)
