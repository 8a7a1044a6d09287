"""Functional Core - Pure functions with no side effects.

This module contains all business logic as pure functions:
- Record models and normalization
- Geo/distance calculations
- Cross-provider deduplication and merging
- Retention and eviction
- Adapter polling state transitions
- Snapshot filtering and statistics

All functions here are deterministic and have no I/O.
"""

from quakefeed.core.earthquake import (
    CanonicalRecord,
    Provenance,
    RawCandidate,
    Rejection,
    Report,
)
from quakefeed.core.geo import BoundingBox, calculate_distance
from quakefeed.core.normalizer import normalize, normalize_batch
from quakefeed.core.dedup import MergeState, is_same_event, merge_batch
from quakefeed.core.retention import compute_evictions
from quakefeed.core.schedule import AdapterState, record_failure, record_success
from quakefeed.core.filters import SnapshotFilter, filter_records
from quakefeed.core.statistics import StatisticsSummary, summarize

__all__ = [
    # Records
    "CanonicalRecord",
    "Provenance",
    "RawCandidate",
    "Rejection",
    "Report",
    # Geo
    "BoundingBox",
    "calculate_distance",
    # Normalizer
    "normalize",
    "normalize_batch",
    # Merge
    "MergeState",
    "is_same_event",
    "merge_batch",
    # Retention
    "compute_evictions",
    # Polling state
    "AdapterState",
    "record_failure",
    "record_success",
    # Filter / statistics
    "SnapshotFilter",
    "filter_records",
    "StatisticsSummary",
    "summarize",
]
