"""Snapshot filtering - Pure functions.

Applies consumer-supplied predicates to a snapshot's records.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from quakefeed.core.earthquake import CanonicalRecord
from quakefeed.core.geo import BoundingBox


@dataclass(frozen=True)
class SnapshotFilter:
    """Predicates applied to canonical records.

    Attributes:
        min_magnitude: Minimum magnitude (inclusive)
        max_depth_km: Maximum depth (inclusive); unknown depths are excluded
        since: Only records that occurred at or after this time
        until: Only records that occurred at or before this time
        bounds: Only records inside this box
        limit: Maximum number of records returned
    """
    min_magnitude: float = 0.0
    max_depth_km: float | None = None
    since: datetime | None = None
    until: datetime | None = None
    bounds: BoundingBox | None = None
    limit: int | None = None


def matches_filter(record: CanonicalRecord, criteria: SnapshotFilter) -> bool:
    """Check if a record satisfies every predicate of a filter.

    Pure function.
    """
    if record.magnitude < criteria.min_magnitude:
        return False

    if criteria.max_depth_km is not None:
        if record.depth_km is None or record.depth_km > criteria.max_depth_km:
            return False

    if criteria.since is not None and record.occurred_at < criteria.since:
        return False

    if criteria.until is not None and record.occurred_at > criteria.until:
        return False

    if criteria.bounds is not None and not criteria.bounds.contains(
        record.latitude, record.longitude
    ):
        return False

    return True


def filter_records(
    records: tuple[CanonicalRecord, ...] | list[CanonicalRecord],
    criteria: SnapshotFilter | None = None,
) -> list[CanonicalRecord]:
    """Project records through a filter.

    Pure function. Output keeps the input order, so a fixed snapshot and
    a fixed filter always produce the same list.

    Args:
        records: Records of one snapshot
        criteria: Filter to apply (None returns every record)

    Returns:
        Matching records
    """
    if criteria is None:
        return list(records)

    result = [r for r in records if matches_filter(r, criteria)]

    if criteria.limit is not None:
        result = result[:max(criteria.limit, 0)]

    return result


def parse_filter(
    now: datetime,
    min_magnitude: float = 0.0,
    max_depth_km: float | None = None,
    since_hours: float | None = None,
    limit: int | None = None,
    bounds: BoundingBox | None = None,
) -> SnapshotFilter:
    """Build a filter from request-style parameters.

    Pure function. since_hours is relative to now.
    """
    since = None
    if since_hours is not None:
        since = now - timedelta(hours=since_hours)

    return SnapshotFilter(
        min_magnitude=min_magnitude,
        max_depth_km=max_depth_km,
        since=since,
        bounds=bounds,
        limit=limit,
    )
