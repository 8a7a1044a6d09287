"""Unit tests for eviction logic.

Pure function tests - no mocks needed, fast execution.
"""

from datetime import datetime, timedelta, timezone

from quakefeed.core.config import RetentionPolicy
from quakefeed.core.earthquake import CanonicalRecord, Provenance
from quakefeed.core.retention import (
    compute_evictions,
    has_disappeared,
    last_seen_at,
    retention_cutoff,
)


NOW = datetime(2023, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
POLICY = RetentionPolicy(retention_days=30, disappearance_minutes=120)
ROLLING = frozenset({"kandilli"})


def make_record(
    key: str,
    occurred_at: datetime,
    providers: tuple[tuple[str, str], ...] = (("kandilli", "k1"),),
    ingested_at: datetime = NOW - timedelta(hours=1),
) -> CanonicalRecord:
    return CanonicalRecord(
        event_key=key,
        occurred_at=occurred_at,
        latitude=37.0,
        longitude=37.0,
        depth_km=10.0,
        magnitude=4.0,
        location_label="Test",
        provenance=tuple(
            Provenance(provider_id=p, provider_record_id=r, ingested_at=ingested_at)
            for p, r in providers
        ),
    )


class TestRetentionWindow:
    """Records older than the retention window are evicted."""

    def test_cutoff(self):
        assert retention_cutoff(NOW, POLICY) == NOW - timedelta(days=30)

    def test_old_record_expires(self):
        old = make_record("eq-old", NOW - timedelta(days=31), providers=(("afad", "a1"),))
        fresh = make_record("eq-new", NOW - timedelta(days=1), providers=(("afad", "a2"),))

        result = compute_evictions((old, fresh), NOW, POLICY, {})

        assert result.expired == ("eq-old",)
        assert result.kept == (fresh,)
        assert result.evicted_keys == frozenset({"eq-old"})

    def test_record_at_cutoff_is_kept(self):
        edge = make_record("eq-edge", NOW - timedelta(days=30), providers=(("afad", "a1"),))
        assert compute_evictions((edge,), NOW, POLICY, {}).kept == (edge,)


class TestDisappearance:
    """Rolling-feed records no longer reported are evicted."""

    def test_last_seen_falls_back_to_ingestion(self):
        record = make_record("eq-1", NOW, ingested_at=NOW - timedelta(hours=5))
        assert last_seen_at(record, {}) == NOW - timedelta(hours=5)

    def test_last_seen_uses_newest_report(self):
        record = make_record("eq-1", NOW, providers=(("kandilli", "k1"), ("kandilli", "k2")))
        seen = {("kandilli", "k1"): NOW - timedelta(hours=3), ("kandilli", "k2"): NOW - timedelta(minutes=5)}
        assert last_seen_at(record, seen) == NOW - timedelta(minutes=5)

    def test_unseen_rolling_record_disappears(self):
        record = make_record("eq-1", NOW - timedelta(hours=4))
        seen = {("kandilli", "k1"): NOW - timedelta(hours=3)}

        result = compute_evictions((record,), NOW, POLICY, seen, rolling_providers=ROLLING)

        assert result.disappeared == ("eq-1",)
        assert result.kept == ()

    def test_recently_seen_rolling_record_kept(self):
        record = make_record("eq-1", NOW - timedelta(hours=4))
        seen = {("kandilli", "k1"): NOW - timedelta(minutes=10)}

        assert not has_disappeared(record, NOW, POLICY, seen, ROLLING, frozenset())

    def test_stale_provider_contribution_retained(self):
        """A stale feed cannot prove that a record disappeared."""
        record = make_record("eq-1", NOW - timedelta(hours=4))
        seen = {("kandilli", "k1"): NOW - timedelta(hours=3)}

        assert not has_disappeared(record, NOW, POLICY, seen, ROLLING, frozenset({"kandilli"}))

    def test_range_query_provider_never_disappears(self):
        record = make_record("eq-1", NOW - timedelta(hours=4), providers=(("afad", "a1"),))
        seen = {("afad", "a1"): NOW - timedelta(hours=3)}

        assert not has_disappeared(record, NOW, POLICY, seen, ROLLING, frozenset())

    def test_mixed_provenance_never_disappears(self):
        """Confirmation by a range-query provider keeps the record."""
        record = make_record("eq-1", NOW - timedelta(hours=4), providers=(("kandilli", "k1"), ("afad", "a1")))
        seen = {("kandilli", "k1"): NOW - timedelta(hours=3), ("afad", "a1"): NOW - timedelta(hours=3)}

        assert not has_disappeared(record, NOW, POLICY, seen, ROLLING, frozenset())

    def test_order_preserved(self):
        records = tuple(
            make_record(f"eq-{i}", NOW - timedelta(hours=i), providers=(("afad", str(i)),))
            for i in range(5)
        )
        result = compute_evictions(records, NOW, POLICY, {})
        assert result.kept == records
