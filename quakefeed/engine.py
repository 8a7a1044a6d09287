"""Engine - Wires Functional Core and Imperative Shell.

This module coordinates the flow of data between the pure functional
core and the I/O-performing shell components:

    adapter poll -> normalize -> merge -> evict -> publish snapshot

Every poll result becomes exactly one snapshot transition, applied under
the store's writer lock so concurrent adapters never interleave.
"""

import logging
import threading
from collections import Counter
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Callable, Mapping

from quakefeed.core.config import Config
from quakefeed.core.dedup import MergeResult, MergeState, merge_batch
from quakefeed.core.earthquake import CanonicalRecord, Rejection
from quakefeed.core.filters import SnapshotFilter, filter_records
from quakefeed.core.normalizer import normalize_batch
from quakefeed.core.retention import EvictionResult, compute_evictions
from quakefeed.core.schedule import AdapterState
from quakefeed.core.statistics import StatisticsSummary, summarize
from quakefeed.shell.adapter import PollResult, ProviderAdapter
from quakefeed.shell.registry import create_adapter
from quakefeed.shell.scheduler import PollingScheduler
from quakefeed.store import AggregateStore, Snapshot, SnapshotChange


logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class EngineHealth:
    """Operational status of the engine.

    Attributes:
        adapters: Provider ID -> polling state
        rejections: Provider ID -> records rejected since start
        snapshot_version: Version of the current snapshot
        record_count: Records in the current snapshot
        stale_providers: Providers currently flagged stale
        fully_stale: True if every provider is stale
        published_at: When the current snapshot was published
    """
    adapters: Mapping[str, AdapterState]
    rejections: Mapping[str, int]
    snapshot_version: int
    record_count: int
    stale_providers: frozenset[str]
    fully_stale: bool
    published_at: datetime | None = None


class Engine:
    """Aggregates earthquake reports from every configured provider.

    This class wires together:
    - Provider adapters (fetch raw payloads)
    - Core functions (normalize, merge, evict, filter, summarize)
    - Polling scheduler (threads, backoff, staleness)
    - Aggregate store (published snapshots)
    """

    def __init__(
        self,
        config: Config,
        adapters: list[ProviderAdapter] | None = None,
        store: AggregateStore | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize engine with configuration.

        Args:
            config: Application configuration
            adapters: Provider adapters (created from config if not provided)
            store: Aggregate store (created if not provided)
            clock: Returns the current UTC time
        """
        self.config = config
        self.clock = clock or _utc_now

        if adapters is None:
            adapters = [create_adapter(p) for p in config.enabled_providers]
        self.adapters = {a.provider_id: a for a in adapters}

        known = frozenset(self.adapters)
        if store is None:
            store = AggregateStore(Snapshot(known_providers=known))
        elif store.snapshot().known_providers != known:
            store.update(lambda s: replace(s, known_providers=known, last_change=SnapshotChange()))
        self.store = store

        self._ranks = config.authority_ranks
        self._rolling = config.rolling_providers
        self._rejections: Counter = Counter()
        self._rejection_lock = threading.Lock()

        self.scheduler = PollingScheduler(
            adapters=list(self.adapters.values()),
            policy=config.backoff,
            on_result=self.ingest,
            on_state_change=self._on_state_change,
            maintenance=self.run_eviction,
            maintenance_interval=config.retention.eviction_interval_seconds,
            clock=self.clock,
        )

    # ----- lifecycle -----

    def start(self) -> None:
        """Start polling every provider in the background."""
        logger.info("Starting engine with providers: %s", ", ".join(self.adapters))
        self.scheduler.start()

    def stop(self, timeout: float = 5.0) -> None:
        """Stop polling; the last published snapshot stays readable."""
        self.scheduler.stop(timeout)

    def poll_once(self, provider_id: str | None = None) -> dict[str, PollResult | None]:
        """Poll one provider, or every provider in order, synchronously.

        Returns:
            Provider ID -> delivered poll result
        """
        provider_ids = [provider_id] if provider_id else list(self.adapters)
        return {pid: self.scheduler.poll_once(pid) for pid in provider_ids}

    # ----- ingestion -----

    def _count_rejections(self, provider_id: str, rejections: tuple[Rejection, ...]) -> None:
        if not rejections:
            return
        with self._rejection_lock:
            self._rejections[provider_id] += len(rejections)
        logger.info("Rejected %d records from %s", len(rejections), provider_id)
        for rejection in rejections:
            logger.debug(
                "Rejected %s record %s: %s",
                rejection.provider_id,
                rejection.provider_record_id,
                rejection.reason,
            )

    def _evict(
        self,
        snapshot: Snapshot,
        state: MergeState,
        last_seen: dict[tuple[str, str], datetime],
        now: datetime,
    ) -> EvictionResult:
        return compute_evictions(
            state.records,
            now,
            self.config.retention,
            last_seen,
            rolling_providers=self._rolling,
            stale_providers=snapshot.stale_providers,
        )

    @staticmethod
    def _forget(
        state: MergeState,
        evicted: frozenset[str],
        last_seen: dict[tuple[str, str], datetime],
    ) -> None:
        """Drop last_seen entries of evicted records."""
        for record in state.records:
            if record.event_key in evicted:
                for source_key in record.source_keys:
                    last_seen.pop(source_key, None)

    def ingest(
        self,
        provider_id: str,
        result: PollResult,
        now: datetime | None = None,
    ) -> Snapshot:
        """Merge one poll result into the store as a single snapshot.

        Failed polls change nothing. An unchanged payload only refreshes
        the last-seen times of the provider's records.

        Args:
            provider_id: Provider that was polled
            result: Poll result from the adapter
            now: Current time (defaults to the clock)

        Returns:
            The snapshot after ingestion
        """
        if not result.success:
            return self.store.snapshot()

        now = now or self.clock()

        if result.unchanged:
            logger.debug("Payload of %s unchanged, skipping normalization", provider_id)
            batch = None
        else:
            batch = normalize_batch(result.candidates, provider_id, result.fetched_at)
            self._count_rejections(provider_id, result.rejections + batch.rejections)

        outcome: list[MergeResult] = []

        def apply(snapshot: Snapshot) -> Snapshot:
            last_seen = dict(snapshot.last_seen)
            reported = dict(snapshot.provider_reported)

            if batch is None:
                record_ids = reported.get(provider_id, ())
                merged = MergeResult(state=snapshot.state)
            else:
                record_ids = tuple(r.provider_record_id for r in batch.reports)
                merged = merge_batch(
                    snapshot.state,
                    batch.reports,
                    self._ranks,
                    self.config.thresholds,
                )
                reported[provider_id] = record_ids
            outcome.append(merged)

            for record_id in record_ids:
                last_seen[(provider_id, record_id)] = now

            eviction = self._evict(snapshot, merged.state, last_seen, now)
            evicted = eviction.evicted_keys
            self._forget(merged.state, evicted, last_seen)

            return replace(
                snapshot,
                published_at=now,
                state=merged.state.without(evicted),
                last_seen=MappingProxyType(last_seen),
                provider_reported=MappingProxyType(reported),
                last_change=SnapshotChange(
                    created=tuple(k for k in merged.created if k not in evicted),
                    enriched=tuple(k for k in merged.enriched if k not in evicted),
                    redirects=merged.redirects,
                    evicted=eviction.expired + eviction.disappeared,
                ),
            )

        published = self.store.update(apply)
        merged = outcome[-1]

        for ambiguity in merged.ambiguities:
            logger.warning(
                "Report %s/%s matched %d records (%s); merged into %s",
                ambiguity.provider_id,
                ambiguity.provider_record_id,
                len(ambiguity.candidate_keys),
                ", ".join(ambiguity.candidate_keys),
                ambiguity.chosen_key,
            )
        for redirect in merged.redirects:
            logger.info("Record %s merged into %s", redirect.retired_key, redirect.survivor_key)

        change = published.last_change
        logger.info(
            "Ingested %s: %d new, %d enriched, %d duplicates, %d evicted (v%d, %d records)",
            provider_id,
            len(change.created),
            len(change.enriched),
            merged.duplicates,
            len(change.evicted),
            published.version,
            len(published.records),
            extra={"provider": provider_id, "snapshot_version": published.version},
        )
        return published

    def run_eviction(self, now: datetime | None = None) -> Snapshot:
        """Evict expired and disappeared records outside of ingestion.

        Publishes a snapshot only if something was evicted.
        """
        now = now or self.clock()
        evicted_count: list[int] = []

        def apply(snapshot: Snapshot) -> Snapshot:
            last_seen = dict(snapshot.last_seen)
            eviction = self._evict(snapshot, snapshot.state, last_seen, now)
            evicted = eviction.evicted_keys
            if not evicted:
                return snapshot
            evicted_count.append(len(evicted))
            self._forget(snapshot.state, evicted, last_seen)
            return replace(
                snapshot,
                published_at=now,
                state=snapshot.state.without(evicted),
                last_seen=MappingProxyType(last_seen),
                last_change=SnapshotChange(evicted=eviction.expired + eviction.disappeared),
            )

        published = self.store.update(apply)
        if evicted_count:
            logger.info(
                "Evicted %d records (%d remain)",
                evicted_count[-1],
                len(published.records),
            )
        return published

    def mark_stale(self, provider_id: str, stale: bool) -> Snapshot:
        """Set or clear a provider's stale flag in the store."""
        def apply(snapshot: Snapshot) -> Snapshot:
            if (provider_id in snapshot.stale_providers) == stale:
                return snapshot
            if stale:
                stale_providers = snapshot.stale_providers | {provider_id}
            else:
                stale_providers = snapshot.stale_providers - {provider_id}
            return replace(
                snapshot,
                published_at=self.clock(),
                stale_providers=frozenset(stale_providers),
                last_change=SnapshotChange(),
            )

        published = self.store.update(apply)
        if published.fully_stale:
            logger.error("All providers are stale; serving last known data")
        return published

    def _on_state_change(self, provider_id: str, state: AdapterState) -> None:
        self.mark_stale(provider_id, state.stale)

    # ----- reads -----

    def subscribe(self, callback: Callable[[Snapshot], None]) -> Callable[[], None]:
        """Register a callback for every published snapshot."""
        return self.store.subscribe(callback)

    def get_snapshot(self, criteria: SnapshotFilter | None = None) -> list[CanonicalRecord]:
        """Return current records matching a filter, in snapshot order."""
        return filter_records(self.store.snapshot().records, criteria)

    def get_statistics(self, criteria: SnapshotFilter | None = None) -> StatisticsSummary:
        """Summarize current records matching a filter."""
        return summarize(
            self.get_snapshot(criteria),
            top_n=self.config.top_locations,
            strong_threshold=self.config.strong_magnitude,
            utc_offset_hours=self.config.statistics_utc_offset_hours,
            now=self.clock(),
        )

    def resolve_event(self, event_key: str) -> CanonicalRecord | None:
        """Look up a record by key, following redirects of merged records."""
        return self.store.snapshot().get(event_key)

    def health(self) -> EngineHealth:
        """Report adapter states, rejection counters and snapshot status."""
        snapshot = self.store.snapshot()
        with self._rejection_lock:
            rejections = dict(self._rejections)
        return EngineHealth(
            adapters=self.scheduler.states(),
            rejections=MappingProxyType(rejections),
            snapshot_version=snapshot.version,
            record_count=len(snapshot.records),
            stale_providers=snapshot.stale_providers,
            fully_stale=snapshot.fully_stale,
            published_at=snapshot.published_at,
        )
