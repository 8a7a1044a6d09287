"""Unit tests for statistics.

Pure function tests - no mocks needed, fast execution.
"""

import pytest
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from quakefeed.core.earthquake import CanonicalRecord, Provenance
from quakefeed.core.statistics import depth_bin, magnitude_bin, summarize, top_locations


BASE = datetime(2023, 2, 6, 1, 17, 34, tzinfo=timezone.utc)


def make_record(
    key: str,
    magnitude: float,
    depth_km: float | None = 10.0,
    label: str = "Test",
    hour: int = 1,
) -> CanonicalRecord:
    return CanonicalRecord(
        event_key=key,
        occurred_at=BASE.replace(hour=hour),
        latitude=37.0,
        longitude=37.0,
        depth_km=depth_km,
        magnitude=magnitude,
        location_label=label,
        provenance=(Provenance("afad", key, BASE),),
    )


class TestBins:
    """Tests for magnitude_bin() and depth_bin()."""

    @pytest.mark.parametrize("magnitude,expected", [
        (1.2, "1.2"),
        (1.25, "1.2"),
        (1.29, "1.2"),
        (0.0, "0.0"),
        (7.8, "7.8"),
        (4.0, "4.0"),
    ])
    def test_magnitude_bin(self, magnitude, expected):
        assert magnitude_bin(magnitude) == expected

    @pytest.mark.parametrize("depth,expected", [(0.0, "0"), (9.99, "0"), (10.0, "10"), (35.2, "30")])
    def test_depth_bin(self, depth, expected):
        assert depth_bin(depth) == expected


class TestSummarize:
    """Tests for summarize()."""

    def test_histogram_and_average(self):
        records = [make_record("a", 1.2), make_record("b", 1.2), make_record("c", 3.7)]

        summary = summarize(records)

        assert summary.magnitude_histogram == {"1.2": 2, "3.7": 1}
        assert summary.avg_magnitude == pytest.approx(2.0333, abs=1e-3)
        assert summary.max_magnitude == 3.7
        assert summary.count == 3

    def test_empty_input(self):
        """Empty input gives zeros, never a division error."""
        summary = summarize([])

        assert summary.count == 0
        assert summary.avg_magnitude == 0.0
        assert summary.avg_depth == 0.0
        assert summary.max_magnitude == 0.0
        assert summary.magnitude_histogram == {}
        assert summary.depth_histogram == {}
        assert summary.top_locations == []
        assert summary.hourly_histogram == {h: 0 for h in range(24)}

    def test_unknown_depth_excluded_from_depth_figures(self):
        records = [make_record("a", 4.0, depth_km=None), make_record("b", 4.0, depth_km=20.0)]

        summary = summarize(records)

        assert summary.depth_histogram == {"20": 1}
        assert summary.avg_depth == 20.0
        assert summary.count == 2

    def test_hourly_histogram_has_all_hours(self):
        summary = summarize([make_record("a", 4.0, hour=5), make_record("b", 4.0, hour=5)])

        assert len(summary.hourly_histogram) == 24
        assert summary.hourly_histogram[5] == 2
        assert sum(summary.hourly_histogram.values()) == 2

    def test_hourly_histogram_in_local_offset(self):
        summary = summarize([make_record("a", 4.0, hour=22)], utc_offset_hours=3)
        assert summary.hourly_histogram[1] == 1

    def test_strong_count(self):
        records = [make_record("a", 3.9), make_record("b", 4.0), make_record("c", 6.1)]
        assert summarize(records, strong_threshold=4.0).strong_count == 2

    def test_histogram_keys_sorted_numerically(self):
        records = [make_record("a", 10.1), make_record("b", 2.0), make_record("c", 9.5)]
        assert list(summarize(records).magnitude_histogram) == ["2.0", "9.5", "10.1"]

    def test_to_dict_is_json_friendly(self):
        data = summarize([make_record("a", 4.0, label="Elbistan")]).to_dict()
        assert data["top_locations"] == [{"location": "Elbistan", "count": 1}]
        assert data["hourly_histogram"]["1"] == 1


class TestTopLocations:
    """Tests for top_locations()."""

    def test_ranked_by_count(self):
        records = [
            make_record("a", 4.0, label="Elbistan"),
            make_record("b", 4.0, label="Nurdagi"),
            make_record("c", 4.0, label="Nurdagi"),
        ]
        assert top_locations(records, 2) == [("Nurdagi", 2), ("Elbistan", 1)]

    def test_ties_keep_first_seen_order(self):
        records = [
            make_record("a", 4.0, label="Elbistan"),
            make_record("b", 4.0, label="Nurdagi"),
            make_record("c", 4.0, label="Antakya"),
        ]
        assert top_locations(records, 2) == [("Elbistan", 1), ("Nurdagi", 1)]


class TestRecentActivity:
    """Tests for the last hour/day/week/month counts."""

    def records_aged(self, *ages: timedelta) -> list[CanonicalRecord]:
        return [
            replace(make_record(f"r{i}", 3.0), occurred_at=BASE - age)
            for i, age in enumerate(ages)
        ]

    def test_counts_relative_to_now(self):
        records = self.records_aged(
            timedelta(minutes=10),
            timedelta(hours=5),
            timedelta(days=3),
            timedelta(days=20),
            timedelta(days=45),
        )

        summary = summarize(records, now=BASE)

        assert summary.last_hour == 1
        assert summary.last_day == 2
        assert summary.last_week == 3
        assert summary.last_month == 4
        assert summary.count == 5

    def test_window_edges_inclusive(self):
        summary = summarize(self.records_aged(timedelta(hours=1)), now=BASE)
        assert summary.last_hour == 1

    def test_defaults_to_latest_record(self):
        records = self.records_aged(timedelta(0), timedelta(minutes=30), timedelta(hours=2))
        summary = summarize(records)
        assert summary.last_hour == 2
        assert summary.last_day == 3

    def test_empty_input(self):
        summary = summarize([], now=BASE)
        assert (summary.last_hour, summary.last_day, summary.last_week, summary.last_month) == (0, 0, 0, 0)

    def test_in_dict(self):
        data = summarize(self.records_aged(timedelta(days=2)), now=BASE).to_dict()
        assert data["last_day"] == 0
        assert data["last_week"] == 1
