"""Deduplication and merge logic - Pure functions.

Providers assign different IDs to the same physical event and report
slightly different times, coordinates and magnitudes. This module resolves
cross-provider identity with a time/distance/magnitude similarity match
and folds matching reports into one canonical record per event.

All functions are pure and deterministic in input order. Logging of
merge ambiguities is left to the caller (see MergeResult.ambiguities).
"""

import hashlib
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Mapping

from quakefeed.core.config import MatchThresholds
from quakefeed.core.earthquake import CanonicalRecord, Report
from quakefeed.core.geo import calculate_distance


# Absorbs float noise such as 3.7 - 3.2 == 0.5000000000000004
MAGNITUDE_EPSILON = 1e-9


@dataclass(frozen=True)
class Redirect:
    """A canonical record retired into another one.

    Attributes:
        retired_key: Key that no longer exists in the store
        survivor_key: Key that now carries the merged event
    """
    retired_key: str
    survivor_key: str


@dataclass(frozen=True)
class MergeAmbiguity:
    """A report that matched more than one existing record.

    Attributes:
        provider_id: Provider of the report
        provider_record_id: Provider's event ID
        candidate_keys: Every record the report matched, in store order
        chosen_key: Record the report was merged into
    """
    provider_id: str
    provider_record_id: str
    candidate_keys: tuple[str, ...]
    chosen_key: str


@dataclass(frozen=True, eq=False)
class MergeState:
    """Canonical records plus the redirect table.

    Attributes:
        records: Canonical records in creation order
        redirects: Retired event key -> surviving event key
    """
    records: tuple[CanonicalRecord, ...] = ()
    redirects: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    def get(self, event_key: str) -> CanonicalRecord | None:
        """Look up a record by its current key."""
        for record in self.records:
            if record.event_key == event_key:
                return record
        return None

    def resolve_key(self, event_key: str) -> str | None:
        """Follow redirects to the live key, or None if unknown."""
        key = self.redirects.get(event_key, event_key)
        return key if self.get(key) is not None else None

    def without(self, event_keys: set[str] | frozenset[str]) -> "MergeState":
        """Return a state with the given records removed.

        Redirects pointing at removed records are pruned as well.
        """
        if not event_keys:
            return self
        return MergeState(
            records=tuple(r for r in self.records if r.event_key not in event_keys),
            redirects=MappingProxyType({
                retired: survivor
                for retired, survivor in self.redirects.items()
                if survivor not in event_keys
            }),
        )


@dataclass(frozen=True)
class MergeResult:
    """Outcome of merging one batch of reports.

    Attributes:
        state: New merge state
        created: Keys of records created by this batch
        enriched: Keys of existing records that changed
        redirects: Records retired by record-to-record merges
        ambiguities: Reports that matched several records
        duplicates: Reports already merged with identical attributes
    """
    state: MergeState
    created: tuple[str, ...] = ()
    enriched: tuple[str, ...] = ()
    redirects: tuple[Redirect, ...] = ()
    ambiguities: tuple[MergeAmbiguity, ...] = ()
    duplicates: int = 0


def is_same_event(
    a: Report | CanonicalRecord,
    b: Report | CanonicalRecord,
    thresholds: MatchThresholds,
) -> bool:
    """Check whether two reports or records denote the same physical event.

    Pure function. All three conditions must hold (inclusive bounds):
    origin times within the time window, epicenters within the distance
    threshold, magnitudes within the magnitude delta.

    Args:
        a: First report or record
        b: Second report or record
        thresholds: Matching thresholds

    Returns:
        True if they match
    """
    time_delta = abs((a.occurred_at - b.occurred_at).total_seconds())
    if time_delta > thresholds.time_window_seconds:
        return False

    if abs(a.magnitude - b.magnitude) > thresholds.magnitude_delta + MAGNITUDE_EPSILON:
        return False

    distance = calculate_distance(a.latitude, a.longitude, b.latitude, b.longitude)
    return distance <= thresholds.distance_km


def select_preferred_report(
    reports: tuple[Report, ...],
    ranks: Mapping[str, int],
) -> Report:
    """Pick the report whose attributes a record displays.

    Pure function. Highest authority rank wins; ties go to the earliest
    ingestion time, then to merge order. Unknown providers rank 0.

    Args:
        reports: Non-empty reports of one record
        ranks: Provider ID -> authority rank

    Returns:
        The preferred report
    """
    _, best = min(
        enumerate(reports),
        key=lambda item: (
            -ranks.get(item[1].provider_id, 0),
            item[1].ingested_at,
            item[0],
        ),
    )
    return best


def make_event_key(report: Report, taken: set[str] | frozenset[str] = frozenset()) -> str:
    """Derive a stable event key from the report that created a record.

    Pure function. The same first report always yields the same key.
    """
    digest = hashlib.sha1(
        f"{report.provider_id}:{report.provider_record_id}".encode("utf-8")
    ).hexdigest()[:12]
    key = f"eq-{digest}"

    suffix = 2
    candidate = key
    while candidate in taken:
        candidate = f"{key}-{suffix}"
        suffix += 1
    return candidate


def build_record(
    event_key: str,
    reports: tuple[Report, ...],
    ranks: Mapping[str, int],
) -> CanonicalRecord:
    """Build a canonical record from its reports.

    Pure function. Provenance follows the order of reports.
    """
    preferred = select_preferred_report(reports, ranks)
    return CanonicalRecord(
        event_key=event_key,
        occurred_at=preferred.occurred_at,
        latitude=preferred.latitude,
        longitude=preferred.longitude,
        depth_km=preferred.depth_km,
        magnitude=preferred.magnitude,
        location_label=preferred.location_label,
        provenance=tuple(r.provenance for r in reports),
        reports=reports,
    )


def _combine(
    survivor: CanonicalRecord,
    retired: CanonicalRecord,
    ranks: Mapping[str, int],
) -> CanonicalRecord:
    """Merge a retired record's reports into the survivor."""
    known = survivor.source_keys
    extra = tuple(r for r in retired.reports if r.source_key not in known)
    return build_record(survivor.event_key, survivor.reports + extra, ranks)


class _Workspace:
    """Mutable working copy of a merge state, local to one merge_batch call."""

    def __init__(self, state: MergeState) -> None:
        self.records: list[CanonicalRecord | None] = list(state.records)
        self.redirects: dict[str, str] = dict(state.redirects)
        self.by_source: dict[tuple[str, str], int] = {}
        self.by_key: dict[str, int] = {}
        for pos, record in enumerate(state.records):
            self._index(pos, record)

    def _index(self, pos: int, record: CanonicalRecord) -> None:
        self.by_key[record.event_key] = pos
        for source_key in record.source_keys:
            self.by_source[source_key] = pos

    def put(self, pos: int, record: CanonicalRecord) -> None:
        self.records[pos] = record
        self._index(pos, record)

    def append(self, record: CanonicalRecord) -> None:
        self.records.append(record)
        self._index(len(self.records) - 1, record)

    def retire(self, pos: int, survivor_key: str) -> None:
        record = self.records[pos]
        self.records[pos] = None
        del self.by_key[record.event_key]
        for retired, current in list(self.redirects.items()):
            if current == record.event_key:
                self.redirects[retired] = survivor_key
        self.redirects[record.event_key] = survivor_key

    def taken_keys(self) -> set[str]:
        return set(self.by_key) | set(self.redirects)

    def live(self) -> list[tuple[int, CanonicalRecord]]:
        return [(pos, r) for pos, r in enumerate(self.records) if r is not None]

    def to_state(self) -> MergeState:
        return MergeState(
            records=tuple(r for r in self.records if r is not None),
            redirects=MappingProxyType(dict(self.redirects)),
        )


def _reconcile(
    ws: _Workspace,
    dirty: dict[str, None],
    ranks: Mapping[str, int],
    thresholds: MatchThresholds,
) -> list[Redirect]:
    """Merge canonical records that match after this batch changed them.

    The survivor is the record with the earlier occurred_at; ties go to
    the record created first.
    """
    redirects: list[Redirect] = []
    pending = sorted(
        (k for k in dirty if k in ws.by_key),
        key=lambda k: ws.by_key[k],
    )

    while pending:
        key = pending.pop(0)
        if key not in ws.by_key:
            continue
        pos = ws.by_key[key]
        record = ws.records[pos]

        for other_pos, other in ws.live():
            if other_pos == pos or not is_same_event(record, other, thresholds):
                continue

            first, second = sorted(
                ((pos, record), (other_pos, other)),
                key=lambda item: (item[1].occurred_at, item[0]),
            )
            survivor_pos, survivor = first
            retired_pos, retired = second

            ws.put(survivor_pos, _combine(survivor, retired, ranks))
            ws.retire(retired_pos, survivor.event_key)
            redirects.append(Redirect(
                retired_key=retired.event_key,
                survivor_key=survivor.event_key,
            ))
            # Attributes may have changed again
            pending.append(survivor.event_key)
            break

    return redirects


def merge_batch(
    state: MergeState,
    reports: list[Report] | tuple[Report, ...],
    ranks: Mapping[str, int],
    thresholds: MatchThresholds,
) -> MergeResult:
    """Merge one batch of normalized reports into the canonical set.

    Pure function. Given the same state and the same reports in the same
    order, the result is always identical.

    Rules, per report:
    - Already merged (same provider and provider record ID) with identical
      attributes: counted as a duplicate, nothing changes.
    - Already merged with different attributes: replaces the old report
      in place and the record's attributes are re-derived.
    - Matches no record: starts a new record.
    - Matches one record: appended to its provenance.
    - Matches several records: merged into the one with the earliest
      occurred_at and reported as a MergeAmbiguity.

    Afterwards, changed records that now match another record are merged
    into one; the retired key is recorded as a redirect.

    Args:
        state: Current merge state
        reports: Normalized reports from one provider poll
        ranks: Provider ID -> authority rank
        thresholds: Matching thresholds

    Returns:
        MergeResult with the new state and a change summary
    """
    ws = _Workspace(state)
    created: dict[str, None] = {}
    enriched: dict[str, None] = {}
    dirty: dict[str, None] = {}
    ambiguities: list[MergeAmbiguity] = []
    duplicates = 0

    for report in reports:
        pos = ws.by_source.get(report.source_key)

        if pos is not None and ws.records[pos] is not None:
            record = ws.records[pos]
            index = next(
                i for i, r in enumerate(record.reports)
                if r.source_key == report.source_key
            )
            existing = record.reports[index]

            if existing.same_observation(report):
                duplicates += 1
                continue

            # Provider revised its report; keep first ingestion time
            revised = replace(report, ingested_at=existing.ingested_at)
            new_reports = record.reports[:index] + (revised,) + record.reports[index + 1:]
            ws.put(pos, build_record(record.event_key, new_reports, ranks))
            if record.event_key not in created:
                enriched[record.event_key] = None
            dirty[record.event_key] = None
            continue

        matches = [
            (p, r) for p, r in ws.live()
            if is_same_event(report, r, thresholds)
        ]

        if not matches:
            key = make_event_key(report, ws.taken_keys())
            ws.append(build_record(key, (report,), ranks))
            created[key] = None
            continue

        target_pos, target = min(matches, key=lambda item: (item[1].occurred_at, item[0]))

        if len(matches) > 1:
            ambiguities.append(MergeAmbiguity(
                provider_id=report.provider_id,
                provider_record_id=report.provider_record_id,
                candidate_keys=tuple(r.event_key for _, r in matches),
                chosen_key=target.event_key,
            ))

        ws.put(target_pos, build_record(target.event_key, target.reports + (report,), ranks))
        if target.event_key not in created:
            enriched[target.event_key] = None
        dirty[target.event_key] = None

    redirects = _reconcile(ws, dirty, ranks, thresholds)

    return MergeResult(
        state=ws.to_state(),
        created=tuple(k for k in created if k in ws.by_key),
        enriched=tuple(k for k in enriched if k in ws.by_key),
        redirects=tuple(redirects),
        ambiguities=tuple(ambiguities),
        duplicates=duplicates,
    )
