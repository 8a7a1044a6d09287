"""USGS API Client - Imperative Shell.

This module handles HTTP communication with the USGS FDSN event service.
All I/O is contained here; normalization is in the core module.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from quakefeed.core.earthquake import RawCandidate
from quakefeed.core.geo import BoundingBox
from quakefeed.shell.adapter import ParseError, ProviderAdapter


logger = logging.getLogger(__name__)


# USGS FDSN Event Web Service base URL
USGS_API_BASE = "https://earthquake.usgs.gov/fdsnws/event/1/query"


@dataclass
class USGSQueryParams:
    """Parameters for USGS API query.

    Attributes:
        bounds: Geographic bounding box (optional)
        min_magnitude: Minimum magnitude to fetch
        start_time: Fetch earthquakes after this time
        end_time: Fetch earthquakes before this time
        limit: Maximum number of results
    """
    bounds: BoundingBox | None = None
    min_magnitude: float | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    limit: int | None = None


def build_fdsn_params(query: USGSQueryParams, fmt: str = "geojson") -> dict[str, str]:
    """Build FDSN event query parameters.

    Shared by every FDSN-compatible provider (USGS, EMSC).

    Args:
        query: Query parameters
        fmt: Value of the 'format' parameter

    Returns:
        Dict of URL query parameters
    """
    params: dict[str, str] = {
        "format": fmt,
        "orderby": "time",
    }

    if query.bounds is not None:
        params.update(query.bounds.query_params())

    if query.min_magnitude is not None:
        params["minmagnitude"] = str(query.min_magnitude)

    if query.start_time is not None:
        params["starttime"] = query.start_time.strftime("%Y-%m-%dT%H:%M:%S")

    if query.end_time is not None:
        params["endtime"] = query.end_time.strftime("%Y-%m-%dT%H:%M:%S")

    if query.limit is not None:
        params["limit"] = str(query.limit)

    return params


def extract_features(provider_id: str, data: Any) -> list[Any]:
    """Return the features list of a GeoJSON FeatureCollection.

    Raises:
        ParseError: If data is not a FeatureCollection-like dict
    """
    if not isinstance(data, dict) or not isinstance(data.get("features"), list):
        raise ParseError(provider_id, "Payload has no 'features' list")
    return data["features"]


class USGSClient(ProviderAdapter):
    """Adapter for the USGS earthquake catalog (range query, GeoJSON).

    This is part of the imperative shell - it handles HTTP I/O.
    """

    provider_type = "usgs"

    def query_for(self, now: datetime) -> USGSQueryParams:
        """Query covering the configured lookback window ending now."""
        return USGSQueryParams(
            bounds=self.provider.bounds,
            min_magnitude=self.provider.min_magnitude,
            start_time=now - timedelta(hours=self.provider.lookback_hours),
            end_time=now,
            limit=self.provider.limit,
        )

    def build_params(self, now: datetime) -> dict[str, str]:
        return build_fdsn_params(self.query_for(now))

    def extract_entries(self, data: Any) -> list[Any]:
        features = extract_features(self.provider_id, data)
        count = (data.get("metadata") or {}).get("count", len(features))
        logger.debug("USGS reports %s earthquakes", count)
        return features

    def entry_id(self, entry: Any) -> str | None:
        return entry.get("id")

    def to_candidate(self, entry: Any) -> RawCandidate:
        props = entry["properties"]
        coords = entry["geometry"]["coordinates"]

        # USGS uses milliseconds since epoch and [lon, lat, depth_km]
        return RawCandidate(
            provider_record_id=entry.get("id"),
            occurred_at=props.get("time"),
            latitude=coords[1],
            longitude=coords[0],
            depth=coords[2] if len(coords) > 2 else None,
            magnitude=props.get("mag"),
            location=props.get("place"),
            depth_unit="km",
            utc_offset_hours=0.0,
        )
