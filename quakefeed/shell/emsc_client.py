"""EMSC API Client - Imperative Shell.

Fetches events from the EMSC seismic portal FDSN service. The portal
returns GeoJSON whose geometry depth is negated, so depth is read from
the properties instead.
"""

from datetime import datetime
from typing import Any

from quakefeed.core.earthquake import RawCandidate
from quakefeed.shell.usgs_client import USGSClient, build_fdsn_params


EMSC_API_BASE = "https://www.seismicportal.eu/fdsnws/event/1/query"


class EMSCClient(USGSClient):
    """Adapter for the EMSC catalog (range query, GeoJSON)."""

    provider_type = "emsc"

    def build_params(self, now: datetime) -> dict[str, str]:
        # The portal serves GeoJSON under format=json
        return build_fdsn_params(self.query_for(now), fmt="json")

    def entry_id(self, entry: Any) -> str | None:
        return entry.get("id") or entry["properties"].get("unid")

    def to_candidate(self, entry: Any) -> RawCandidate:
        props = entry["properties"]
        return RawCandidate(
            provider_record_id=entry.get("id") or props.get("unid"),
            occurred_at=props.get("time"),
            latitude=props.get("lat"),
            longitude=props.get("lon"),
            depth=props.get("depth"),
            magnitude=props.get("mag"),
            location=props.get("flynn_region"),
            depth_unit="km",
            utc_offset_hours=self.provider.utc_offset_hours,
        )
