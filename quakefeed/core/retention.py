"""Eviction logic - Pure functions.

Decides which canonical records leave the aggregate store: records older
than the retention window, and records known only from rolling
'latest N' feeds that stopped reporting them.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Mapping

from quakefeed.core.config import RetentionPolicy
from quakefeed.core.earthquake import CanonicalRecord


@dataclass(frozen=True)
class EvictionResult:
    """Records split by the eviction pass.

    Attributes:
        kept: Records that stay, in original order
        expired: Keys evicted by the retention window
        disappeared: Keys evicted because rolling feeds dropped them
    """
    kept: tuple[CanonicalRecord, ...]
    expired: tuple[str, ...] = ()
    disappeared: tuple[str, ...] = ()

    @property
    def evicted_keys(self) -> frozenset[str]:
        """All evicted keys."""
        return frozenset(self.expired) | frozenset(self.disappeared)


def retention_cutoff(now: datetime, policy: RetentionPolicy) -> datetime:
    """Oldest origin time still inside the retention window."""
    return now - timedelta(days=policy.retention_days)


def last_seen_at(
    record: CanonicalRecord,
    last_seen: Mapping[tuple[str, str], datetime],
) -> datetime | None:
    """Most recent time any provider reported this record.

    Pure function. Falls back to ingestion times for reports that have
    no entry in last_seen.
    """
    times = [
        last_seen.get(p.source_key, p.ingested_at)
        for p in record.provenance
    ]
    return max(times) if times else None


def has_disappeared(
    record: CanonicalRecord,
    now: datetime,
    policy: RetentionPolicy,
    last_seen: Mapping[tuple[str, str], datetime],
    rolling_providers: frozenset[str],
    stale_providers: frozenset[str],
) -> bool:
    """Check if a rolling-feed record stopped being reported.

    Pure function. Only applies when every provider of the record is a
    rolling feed and none of them is stale; a stale provider's last
    contribution is retained.
    """
    providers = record.provider_ids
    if not providers or not providers <= rolling_providers:
        return False
    if providers & stale_providers:
        return False

    seen = last_seen_at(record, last_seen)
    if seen is None:
        return False
    return now - seen > timedelta(minutes=policy.disappearance_minutes)


def compute_evictions(
    records: tuple[CanonicalRecord, ...],
    now: datetime,
    policy: RetentionPolicy,
    last_seen: Mapping[tuple[str, str], datetime],
    rolling_providers: frozenset[str] = frozenset(),
    stale_providers: frozenset[str] = frozenset(),
) -> EvictionResult:
    """Split records into kept and evicted.

    Pure function.

    Args:
        records: Current canonical records
        now: Current time (UTC)
        policy: Retention settings
        last_seen: (provider_id, provider_record_id) -> last report time
        rolling_providers: Providers publishing only a rolling feed
        stale_providers: Providers currently flagged stale

    Returns:
        EvictionResult
    """
    cutoff = retention_cutoff(now, policy)
    kept: list[CanonicalRecord] = []
    expired: list[str] = []
    disappeared: list[str] = []

    for record in records:
        if record.occurred_at < cutoff:
            expired.append(record.event_key)
        elif has_disappeared(
            record, now, policy, last_seen, rolling_providers, stale_providers
        ):
            disappeared.append(record.event_key)
        else:
            kept.append(record)

    return EvictionResult(
        kept=tuple(kept),
        expired=tuple(expired),
        disappeared=tuple(disappeared),
    )
