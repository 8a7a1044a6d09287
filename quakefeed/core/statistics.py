"""Earthquake statistics - Pure functions.

Computes distributions and summary figures over a filtered record set:
magnitude, depth and hour-of-day histograms, most active locations,
averages and recent-activity counts.
"""

import math
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from quakefeed.core.earthquake import CanonicalRecord


MAGNITUDE_BIN = 0.1
DEPTH_BIN_KM = 10

# Recent-activity windows, as shown on the live dashboard
RECENCY_WINDOWS = {
    "last_hour": timedelta(hours=1),
    "last_day": timedelta(days=1),
    "last_week": timedelta(days=7),
    "last_month": timedelta(days=30),
}


@dataclass(frozen=True)
class StatisticsSummary:
    """Statistics over a set of canonical records.

    Attributes:
        magnitude_histogram: '1.2' -> count, 0.1-wide bins
        depth_histogram: '10' -> count, 10 km bins (unknown depths excluded)
        hourly_histogram: hour 0-23 -> count
        top_locations: (label, count) pairs, most frequent first
        count: Number of records
        avg_magnitude: Mean magnitude (0.0 when empty)
        avg_depth: Mean of known depths (0.0 when none)
        max_magnitude: Largest magnitude (0.0 when empty)
        strong_count: Records at or above the strong threshold
        last_hour, last_day, last_week, last_month: Records that occurred
            within that window before the reference time
    """
    magnitude_histogram: dict[str, int] = field(default_factory=dict)
    depth_histogram: dict[str, int] = field(default_factory=dict)
    hourly_histogram: dict[int, int] = field(default_factory=dict)
    top_locations: list[tuple[str, int]] = field(default_factory=list)
    count: int = 0
    avg_magnitude: float = 0.0
    avg_depth: float = 0.0
    max_magnitude: float = 0.0
    strong_count: int = 0
    last_hour: int = 0
    last_day: int = 0
    last_week: int = 0
    last_month: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-friendly dict."""
        return {
            "magnitude_histogram": dict(self.magnitude_histogram),
            "depth_histogram": dict(self.depth_histogram),
            "hourly_histogram": {str(h): c for h, c in self.hourly_histogram.items()},
            "top_locations": [
                {"location": label, "count": count}
                for label, count in self.top_locations
            ],
            "count": self.count,
            "avg_magnitude": self.avg_magnitude,
            "avg_depth": self.avg_depth,
            "max_magnitude": self.max_magnitude,
            "strong_count": self.strong_count,
            "last_hour": self.last_hour,
            "last_day": self.last_day,
            "last_week": self.last_week,
            "last_month": self.last_month,
        }


def magnitude_bin(magnitude: float) -> str:
    """Label of the 0.1-wide bin a magnitude falls in, e.g. '4.2'.

    Rounds before flooring so 1.2 / 0.1 == 11.999999999999998 lands in '1.2'.
    """
    tenths = math.floor(round(magnitude / MAGNITUDE_BIN, 6))
    return f"{tenths / 10:.1f}"


def depth_bin(depth_km: float) -> str:
    """Label of the 10 km bin a depth falls in, e.g. '20'."""
    return str(int(math.floor(depth_km / DEPTH_BIN_KM) * DEPTH_BIN_KM))


def _sorted_bins(counts: Counter) -> dict[str, int]:
    return {k: counts[k] for k in sorted(counts, key=float)}


def top_locations(
    records: list[CanonicalRecord],
    n: int = 10,
) -> list[tuple[str, int]]:
    """Rank location labels by occurrence count.

    Pure function. Ties keep first-seen order (Counter preserves insertion
    order and most_common() sorts stably).
    """
    counts = Counter(r.location_label for r in records)
    return counts.most_common(n)


def summarize(
    records: list[CanonicalRecord] | tuple[CanonicalRecord, ...],
    top_n: int = 10,
    strong_threshold: float = 4.0,
    utc_offset_hours: float = 0.0,
    now: datetime | None = None,
) -> StatisticsSummary:
    """Compute statistics over a record set.

    Pure function. Empty input yields zeros and empty histograms (the
    hourly histogram always has all 24 hours).

    Args:
        records: Records to summarize
        top_n: Number of top locations
        strong_threshold: Magnitude counted as strong
        utc_offset_hours: Offset for the hour-of-day histogram
        now: Reference time for the recent-activity counts (defaults to
            the most recent record, keeping the result input-determined)

    Returns:
        StatisticsSummary
    """
    records = list(records)
    tz = timezone(timedelta(hours=utc_offset_hours))

    magnitude_counts: Counter = Counter()
    depth_counts: Counter = Counter()
    hourly = {hour: 0 for hour in range(24)}
    depths: list[float] = []

    for record in records:
        magnitude_counts[magnitude_bin(record.magnitude)] += 1
        if record.depth_km is not None:
            depth_counts[depth_bin(record.depth_km)] += 1
            depths.append(record.depth_km)
        hourly[record.occurred_at.astimezone(tz).hour] += 1

    count = len(records)
    magnitudes = [r.magnitude for r in records]

    if now is None and records:
        now = max(r.occurred_at for r in records)
    recent = {
        name: sum(1 for r in records if r.occurred_at >= now - window)
        if now is not None else 0
        for name, window in RECENCY_WINDOWS.items()
    }

    return StatisticsSummary(
        magnitude_histogram=_sorted_bins(magnitude_counts),
        depth_histogram=_sorted_bins(depth_counts),
        hourly_histogram=hourly,
        top_locations=top_locations(records, top_n),
        count=count,
        avg_magnitude=sum(magnitudes) / count if count else 0.0,
        avg_depth=sum(depths) / len(depths) if depths else 0.0,
        max_magnitude=max(magnitudes) if magnitudes else 0.0,
        strong_count=sum(1 for m in magnitudes if m >= strong_threshold),
        **recent,
    )
