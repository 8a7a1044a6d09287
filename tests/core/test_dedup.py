"""Unit tests for cross-provider deduplication and merging.

Pure function tests - no mocks needed, fast execution.
"""

from datetime import datetime, timedelta, timezone

from quakefeed.core.config import MatchThresholds
from quakefeed.core.dedup import (
    MergeState,
    Redirect,
    build_record,
    is_same_event,
    make_event_key,
    merge_batch,
    select_preferred_report,
)
from quakefeed.core.earthquake import Report


T0 = datetime(2023, 2, 6, 1, 17, 34, tzinfo=timezone.utc)
INGESTED = datetime(2023, 2, 6, 1, 30, 0, tzinfo=timezone.utc)
THRESHOLDS = MatchThresholds(time_window_seconds=60, distance_km=25, magnitude_delta=0.5)
RANKS = {"afad": 100, "usgs": 90, "emsc": 80, "kandilli": 50}

# One degree of latitude is ~111.2 km
KM_PER_DEGREE = 111.195


def make_report(
    provider_id: str = "usgs",
    record_id: str = "us1",
    seconds: float = 0,
    latitude: float = 37.0,
    longitude: float = 37.0,
    magnitude: float = 4.1,
    depth_km: float | None = 10.0,
    label: str = "Test",
    ingested_at: datetime = INGESTED,
) -> Report:
    """Create a report relative to T0."""
    return Report(
        provider_id=provider_id,
        provider_record_id=record_id,
        ingested_at=ingested_at,
        occurred_at=T0 + timedelta(seconds=seconds),
        latitude=latitude,
        longitude=longitude,
        depth_km=depth_km,
        magnitude=magnitude,
        location_label=label,
    )


def north_of(latitude: float, km: float) -> float:
    return latitude + km / KM_PER_DEGREE


def merge(reports, state=None):
    return merge_batch(state or MergeState(), reports, RANKS, THRESHOLDS)


class TestIsSameEvent:
    """Tests for is_same_event()."""

    def test_close_reports_match(self):
        """10 s, ~5 km and 0.2 magnitude apart are the same event."""
        a = make_report(magnitude=4.1)
        b = make_report(provider_id="emsc", seconds=10, latitude=north_of(37.0, 5), magnitude=4.3)
        assert is_same_event(a, b, THRESHOLDS)

    def test_far_apart_do_not_match(self):
        """200 km apart are different events even at the same time."""
        a = make_report()
        b = make_report(provider_id="emsc", latitude=north_of(37.0, 200))
        assert not is_same_event(a, b, THRESHOLDS)

    def test_time_window_is_inclusive(self):
        a = make_report()
        assert is_same_event(a, make_report(seconds=60), THRESHOLDS)
        assert not is_same_event(a, make_report(seconds=60.5), THRESHOLDS)

    def test_magnitude_delta_is_inclusive(self):
        """Exactly 0.5 apart matches despite float noise."""
        a = make_report(magnitude=3.2)
        assert is_same_event(a, make_report(magnitude=3.7), THRESHOLDS)
        assert not is_same_event(a, make_report(magnitude=3.8), THRESHOLDS)

    def test_symmetric(self):
        a = make_report()
        b = make_report(seconds=30, latitude=north_of(37.0, 20), magnitude=4.5)
        assert is_same_event(a, b, THRESHOLDS) == is_same_event(b, a, THRESHOLDS)


class TestSelectPreferredReport:
    """Tests for select_preferred_report()."""

    def test_highest_rank_wins(self):
        reports = (make_report("kandilli", "k1"), make_report("afad", "a1"), make_report("usgs", "u1"))
        assert select_preferred_report(reports, RANKS).provider_id == "afad"

    def test_tie_goes_to_earliest_ingestion(self):
        early = make_report("x", "1", ingested_at=INGESTED)
        late = make_report("y", "2", ingested_at=INGESTED + timedelta(minutes=1))
        assert select_preferred_report((late, early), {}).provider_record_id == "1"

    def test_full_tie_goes_to_merge_order(self):
        first = make_report("x", "1")
        second = make_report("y", "2")
        assert select_preferred_report((first, second), {}) is first

    def test_unknown_provider_ranks_zero(self):
        reports = (make_report("unknown", "1"), make_report("kandilli", "2"))
        assert select_preferred_report(reports, RANKS).provider_id == "kandilli"


class TestMakeEventKey:
    """Tests for make_event_key()."""

    def test_stable_for_same_report(self):
        assert make_event_key(make_report()) == make_event_key(make_report())

    def test_prefix(self):
        assert make_event_key(make_report()).startswith("eq-")

    def test_collision_gets_suffix(self):
        key = make_event_key(make_report())
        assert make_event_key(make_report(), {key}) == f"{key}-2"
        assert make_event_key(make_report(), {key, f"{key}-2"}) == f"{key}-3"


class TestBuildRecord:
    """Tests for build_record()."""

    def test_attributes_from_preferred_report(self):
        kandilli = make_report("kandilli", "k1", magnitude=4.3, label="KANDILLI LABEL")
        afad = make_report("afad", "a1", seconds=5, magnitude=4.1, depth_km=None, label="AFAD LABEL")

        record = build_record("eq-1", (kandilli, afad), RANKS)

        assert record.magnitude == 4.1
        assert record.location_label == "AFAD LABEL"
        assert record.occurred_at == T0 + timedelta(seconds=5)
        assert record.depth_km is None

    def test_provenance_follows_report_order(self):
        reports = (make_report("kandilli", "k1"), make_report("afad", "a1"))
        record = build_record("eq-1", reports, RANKS)
        assert [p.provider_id for p in record.provenance] == ["kandilli", "afad"]


class TestMergeBatch:
    """Tests for merge_batch()."""

    def test_new_reports_create_records(self):
        result = merge([
            make_report("usgs", "u1"),
            make_report("usgs", "u2", latitude=north_of(37.0, 200)),
        ])

        assert len(result.state.records) == 2
        assert result.created == tuple(r.event_key for r in result.state.records)
        assert result.enriched == ()

    def test_cross_provider_reports_merge(self):
        """USGS and EMSC reports of one event become one record."""
        first = merge([make_report("usgs", "u1", magnitude=4.1)])
        second = merge(
            [make_report("emsc", "e1", seconds=10, latitude=north_of(37.0, 5), magnitude=4.3)],
            first.state,
        )

        assert len(second.state.records) == 1
        record = second.state.records[0]
        assert record.provider_ids == frozenset({"usgs", "emsc"})
        assert second.enriched == (record.event_key,)
        assert second.created == ()
        # USGS outranks EMSC
        assert record.magnitude == 4.1

    def test_far_apart_reports_stay_separate(self):
        first = merge([make_report("usgs", "u1")])
        second = merge([make_report("emsc", "e1", latitude=north_of(37.0, 200))], first.state)
        assert len(second.state.records) == 2

    def test_higher_rank_report_takes_over_attributes(self):
        first = merge([make_report("kandilli", "k1", magnitude=4.4, label="K")])
        second = merge([make_report("afad", "a1", seconds=3, magnitude=4.2, label="A")], first.state)

        record = second.state.records[0]
        assert record.event_key == first.state.records[0].event_key
        assert record.magnitude == 4.2
        assert record.location_label == "A"

    def test_redelivered_report_is_noop(self):
        """Merging the same batch twice changes nothing."""
        reports = [make_report("usgs", "u1"), make_report("emsc", "e1", seconds=5)]
        first = merge(reports)
        second = merge(reports, first.state)

        assert second.state.records == first.state.records
        assert second.duplicates == 2
        assert second.created == ()
        assert second.enriched == ()

    def test_redelivery_with_new_ingestion_time_is_noop(self):
        first = merge([make_report(ingested_at=INGESTED)])
        second = merge([make_report(ingested_at=INGESTED + timedelta(minutes=5))], first.state)

        assert second.state.records == first.state.records
        assert second.duplicates == 1

    def test_revised_report_replaces_old_one(self):
        """A provider revising its magnitude updates the record in place."""
        first = merge([make_report("usgs", "u1", magnitude=4.1)])
        revised = make_report(
            "usgs", "u1", magnitude=4.4, ingested_at=INGESTED + timedelta(minutes=5),
        )
        second = merge([revised], first.state)

        record = second.state.records[0]
        assert len(record.reports) == 1
        assert record.magnitude == 4.4
        # First ingestion time is kept
        assert record.provenance[0].ingested_at == INGESTED
        assert second.enriched == (record.event_key,)

    def test_deterministic(self):
        reports = [
            make_report("usgs", "u1"),
            make_report("emsc", "e1", seconds=10),
            make_report("afad", "a1", latitude=north_of(37.0, 100)),
        ]
        assert merge(reports).state.records == merge(reports).state.records

    def test_ambiguous_report_joins_earliest_record(self):
        """A report matching two records joins the earlier one."""
        base = merge([
            make_report("afad", "a1", seconds=0, latitude=37.0),
            make_report("afad", "a2", seconds=30, latitude=north_of(37.0, 40)),
        ])
        early_key, late_key = (r.event_key for r in base.state.records)

        result = merge(
            [make_report("kandilli", "k1", seconds=15, latitude=north_of(37.0, 20))],
            base.state,
        )

        assert len(result.ambiguities) == 1
        ambiguity = result.ambiguities[0]
        assert ambiguity.chosen_key == early_key
        assert ambiguity.candidate_keys == (early_key, late_key)
        assert result.state.get(early_key).provider_ids == frozenset({"afad", "kandilli"})
        assert len(result.state.get(late_key).reports) == 1

    def test_records_that_converge_are_merged_with_redirect(self):
        """A revision that moves a record onto another merges the two."""
        base = merge([
            make_report("usgs", "u1", seconds=0, latitude=37.0),
            make_report("emsc", "e1", seconds=20, latitude=north_of(37.0, 40)),
        ])
        early_key, late_key = (r.event_key for r in base.state.records)

        revised = make_report("usgs", "u1", seconds=0, latitude=north_of(37.0, 35))
        result = merge([revised], base.state)

        assert len(result.state.records) == 1
        survivor = result.state.records[0]
        assert survivor.event_key == early_key
        assert survivor.provider_ids == frozenset({"usgs", "emsc"})
        assert result.redirects == (Redirect(retired_key=late_key, survivor_key=early_key),)
        assert result.state.resolve_key(late_key) == early_key

    def test_redelivery_after_record_merge_is_noop(self):
        """Reports of a retired record now belong to the survivor."""
        base = merge([
            make_report("usgs", "u1", seconds=0, latitude=37.0),
            make_report("emsc", "e1", seconds=20, latitude=north_of(37.0, 40)),
        ])
        merged = merge([make_report("usgs", "u1", latitude=north_of(37.0, 35))], base.state)
        again = merge([make_report("emsc", "e1", seconds=20, latitude=north_of(37.0, 40))], merged.state)
        assert again.duplicates == 1
        assert again.created == ()
        assert len(again.state.records) == 1


class TestMergeState:
    """Tests for MergeState helpers."""

    def test_without_prunes_redirects(self):
        base = merge([
            make_report("usgs", "u1", seconds=0, latitude=37.0),
            make_report("emsc", "e1", seconds=20, latitude=north_of(37.0, 40)),
        ])
        merged = merge([make_report("usgs", "u1", latitude=north_of(37.0, 35))], base.state)
        survivor_key = merged.state.records[0].event_key

        state = merged.state.without({survivor_key})

        assert state.records == ()
        assert dict(state.redirects) == {}

    def test_resolve_unknown_key(self):
        assert MergeState().resolve_key("eq-missing") is None

    def test_without_nothing_returns_same_state(self):
        state = merge([make_report()]).state
        assert state.without(set()) is state
