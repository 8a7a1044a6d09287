"""Aggregate Store.

Holds the current canonical record set as an immutable Snapshot. Readers
take the current snapshot without locking; writers build a new snapshot
under a single lock and swap it in atomically, so a reader sees either
the whole of a merge batch or none of it.
"""

import logging
import queue
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from types import MappingProxyType
from typing import Callable, Mapping

from quakefeed.core.dedup import MergeState, Redirect
from quakefeed.core.earthquake import CanonicalRecord


logger = logging.getLogger(__name__)


def _empty_mapping() -> Mapping:
    return MappingProxyType({})


@dataclass(frozen=True)
class SnapshotChange:
    """What changed between a snapshot and its predecessor.

    Attributes:
        created: Keys of new records
        enriched: Keys of records whose attributes or provenance changed
        redirects: Records retired into another record
        evicted: Keys of records removed by retention or disappearance
    """
    created: tuple[str, ...] = ()
    enriched: tuple[str, ...] = ()
    redirects: tuple[Redirect, ...] = ()
    evicted: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.created or self.enriched or self.redirects or self.evicted)


@dataclass(frozen=True, eq=False)
class Snapshot:
    """Immutable view of the aggregate at one version.

    Attributes:
        version: Increases by one on every published change
        published_at: When this version was published
        state: Canonical records and redirect table
        last_seen: (provider_id, provider_record_id) -> last time reported
        provider_reported: Provider ID -> record IDs in its last payload
        stale_providers: Providers currently flagged stale
        known_providers: Providers configured for polling
        last_change: Changes relative to the previous version
    """
    version: int = 0
    published_at: datetime | None = None
    state: MergeState = field(default_factory=MergeState)
    last_seen: Mapping[tuple[str, str], datetime] = field(default_factory=_empty_mapping)
    provider_reported: Mapping[str, tuple[str, ...]] = field(default_factory=_empty_mapping)
    stale_providers: frozenset[str] = frozenset()
    known_providers: frozenset[str] = frozenset()
    last_change: SnapshotChange = field(default_factory=SnapshotChange)

    @property
    def records(self) -> tuple[CanonicalRecord, ...]:
        return self.state.records

    def get(self, event_key: str) -> CanonicalRecord | None:
        """Look up a record, following redirects of retired keys."""
        key = self.state.resolve_key(event_key)
        return self.state.get(key) if key is not None else None

    def is_stale(self, record: CanonicalRecord) -> bool:
        """True if every provider of the record is stale."""
        providers = record.provider_ids
        return bool(providers) and providers <= self.stale_providers

    @property
    def fully_stale(self) -> bool:
        """True if every known provider is stale."""
        return bool(self.known_providers) and self.known_providers <= self.stale_providers


SnapshotCallback = Callable[[Snapshot], None]


class AggregateStore:
    """Single-writer, lock-free-reader snapshot holder.

    Change notifications are delivered in version order by a dispatcher
    thread, so a slow subscriber never holds up the next write.
    """

    def __init__(self, initial: Snapshot | None = None) -> None:
        self._snapshot = initial or Snapshot()
        self._lock = threading.RLock()
        self._subscribers: list[SnapshotCallback] = []
        self._pending: queue.Queue[Snapshot] = queue.Queue()
        self._dispatcher: threading.Thread | None = None

    def snapshot(self) -> Snapshot:
        """Return the current snapshot. Never blocks."""
        return self._snapshot

    def update(self, fn: Callable[[Snapshot], Snapshot]) -> Snapshot:
        """Apply a change to the store atomically.

        fn receives the current snapshot and returns the next one. It runs
        under the writer lock. Returning the same snapshot publishes
        nothing; raising leaves the store untouched.

        Subscribers are notified asynchronously after the swap.

        Args:
            fn: Snapshot transition

        Returns:
            The current snapshot after the update
        """
        with self._lock:
            current = self._snapshot
            proposed = fn(current)
            if proposed is current:
                return current

            published = replace(proposed, version=current.version + 1)
            self._snapshot = published

            logger.debug(
                "Published snapshot v%d with %d records",
                published.version,
                len(published.records),
            )

            # Queued under the lock to keep version order
            if self._subscribers:
                self._pending.put(published)
                self._ensure_dispatcher()

            return published

    def _ensure_dispatcher(self) -> None:
        if self._dispatcher is None or not self._dispatcher.is_alive():
            self._dispatcher = threading.Thread(
                target=self._dispatch,
                name="snapshot-notify",
                daemon=True,
            )
            self._dispatcher.start()

    def _dispatch(self) -> None:
        while True:
            published = self._pending.get()
            try:
                with self._lock:
                    subscribers = list(self._subscribers)
                for callback in subscribers:
                    try:
                        callback(published)
                    except Exception:
                        logger.exception("Snapshot subscriber failed")
            finally:
                self._pending.task_done()

    def flush(self) -> None:
        """Block until every queued notification has been delivered."""
        self._pending.join()

    def subscribe(self, callback: SnapshotCallback) -> Callable[[], None]:
        """Register a change callback.

        Callbacks run on the store's dispatcher thread, one snapshot at a
        time, in version order.

        Returns:
            Function that removes the callback
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe
