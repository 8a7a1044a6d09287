"""Tests for the Aggregate Store.

Snapshot publication, atomicity and change notification.
"""

import threading
from dataclasses import replace
from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from quakefeed.core.dedup import MergeState
from quakefeed.core.earthquake import CanonicalRecord, Provenance
from quakefeed.store import AggregateStore, Snapshot, SnapshotChange


NOW = datetime(2023, 2, 6, 2, 0, 0, tzinfo=timezone.utc)


def make_record(key: str, providers: tuple[str, ...] = ("afad",)) -> CanonicalRecord:
    return CanonicalRecord(
        event_key=key,
        occurred_at=NOW,
        latitude=37.0,
        longitude=37.0,
        depth_km=10.0,
        magnitude=4.0,
        location_label="Test",
        provenance=tuple(Provenance(p, key, NOW) for p in providers),
    )


def with_records(*records: CanonicalRecord):
    def apply(snapshot: Snapshot) -> Snapshot:
        return replace(
            snapshot,
            state=MergeState(records=snapshot.records + records),
            last_change=SnapshotChange(created=tuple(r.event_key for r in records)),
        )
    return apply


class TestSnapshot:
    """Tests for Snapshot helpers."""

    def test_is_stale_requires_every_provider_stale(self):
        snapshot = Snapshot(stale_providers=frozenset({"kandilli"}))

        assert snapshot.is_stale(make_record("a", ("kandilli",)))
        assert not snapshot.is_stale(make_record("b", ("kandilli", "afad")))

    def test_fully_stale(self):
        known = frozenset({"afad", "kandilli"})
        assert not Snapshot(known_providers=known, stale_providers=frozenset({"afad"})).fully_stale
        assert Snapshot(known_providers=known, stale_providers=known).fully_stale

    def test_no_known_providers_is_not_fully_stale(self):
        assert not Snapshot().fully_stale

    def test_change_is_empty(self):
        assert SnapshotChange().is_empty
        assert not SnapshotChange(evicted=("a",)).is_empty


class TestAggregateStore:
    """Tests for AggregateStore."""

    def test_update_bumps_version(self):
        store = AggregateStore()

        published = store.update(with_records(make_record("a")))

        assert published.version == 1
        assert store.snapshot() is published
        assert [r.event_key for r in published.records] == ["a"]

    def test_returning_same_snapshot_publishes_nothing(self):
        store = AggregateStore()
        callback = Mock()
        store.subscribe(callback)

        result = store.update(lambda s: s)
        store.flush()

        assert result.version == 0
        callback.assert_not_called()

    def test_failed_update_leaves_store_untouched(self):
        store = AggregateStore()
        store.update(with_records(make_record("a")))
        before = store.snapshot()

        def broken(snapshot):
            raise ValueError("merge failed")

        with pytest.raises(ValueError):
            store.update(broken)

        assert store.snapshot() is before

    def test_old_snapshots_are_unchanged(self):
        """Readers holding a snapshot never see later changes."""
        store = AggregateStore()
        store.update(with_records(make_record("a")))
        held = store.snapshot()

        store.update(with_records(make_record("b")))

        assert [r.event_key for r in held.records] == ["a"]
        assert [r.event_key for r in store.snapshot().records] == ["a", "b"]

    def test_subscribers_notified(self):
        store = AggregateStore()
        callback = Mock()
        store.subscribe(callback)

        published = store.update(with_records(make_record("a")))
        store.flush()

        callback.assert_called_once_with(published)
        assert callback.call_args.args[0].last_change.created == ("a",)

    def test_unsubscribe(self):
        store = AggregateStore()
        callback = Mock()
        unsubscribe = store.subscribe(callback)

        unsubscribe()
        store.update(with_records(make_record("a")))
        store.flush()

        callback.assert_not_called()

    def test_failing_subscriber_does_not_break_writer(self):
        store = AggregateStore()
        good = Mock()
        store.subscribe(Mock(side_effect=RuntimeError("boom")))
        store.subscribe(good)

        published = store.update(with_records(make_record("a")))
        store.flush()

        assert published.version == 1
        good.assert_called_once()

    def test_slow_subscriber_does_not_block_writers(self):
        store = AggregateStore()
        release = threading.Event()
        delivered = []

        def slow(snapshot):
            release.wait(5)
            delivered.append(snapshot.version)

        store.subscribe(slow)

        store.update(with_records(make_record("a")))
        # Second write completes while the first notification is still blocked
        second = store.update(with_records(make_record("b")))
        assert second.version == 2
        assert delivered == []

        release.set()
        store.flush()
        assert delivered == [1, 2]

    def test_concurrent_writers_are_serialized(self):
        store = AggregateStore()

        def writer(prefix: str):
            for i in range(50):
                store.update(with_records(make_record(f"{prefix}-{i}")))

        threads = [threading.Thread(target=writer, args=(p,)) for p in "abcd"]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        snapshot = store.snapshot()
        assert snapshot.version == 200
        assert len(snapshot.records) == 200
