"""quakefeed - multi-provider earthquake aggregation.

Polls several seismic catalogs, normalizes their reports, merges reports
of the same physical event into one canonical record, and serves the
result as snapshots, statistics and an HTTP API.
"""

__version__ = "1.0.0"
