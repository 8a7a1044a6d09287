"""AFAD API Client - Imperative Shell.

Fetches events from the AFAD (Turkish Disaster and Emergency Management
Authority) event filter API. The payload is a bare JSON list whose numeric
fields are strings and whose timestamps carry no offset.
"""

from datetime import datetime, timedelta
from typing import Any

from quakefeed.core.earthquake import RawCandidate
from quakefeed.shell.adapter import ParseError, ProviderAdapter, format_query_time


AFAD_API_BASE = "https://deprem.afad.gov.tr/apiv2/event/filter"


class AFADClient(ProviderAdapter):
    """Adapter for the AFAD catalog (range query, JSON list)."""

    provider_type = "afad"

    def build_params(self, now: datetime) -> dict[str, str]:
        offset = self.provider.utc_offset_hours
        start = now - timedelta(hours=self.provider.lookback_hours)

        params = {
            "start": format_query_time(start, offset),
            "end": format_query_time(now, offset),
            "orderby": "timedesc",
            "format": "json",
        }

        if self.provider.min_magnitude is not None:
            params["minmag"] = str(self.provider.min_magnitude)

        if self.provider.bounds is not None:
            params.update(self.provider.bounds.query_params("lat", "lon"))

        if self.provider.limit is not None:
            params["limit"] = str(self.provider.limit)

        return params

    def extract_entries(self, data: Any) -> list[Any]:
        if not isinstance(data, list):
            raise ParseError(self.provider_id, "Payload is not a JSON list")
        return data

    def entry_id(self, entry: Any) -> str | None:
        return entry.get("eventID")

    def to_candidate(self, entry: Any) -> RawCandidate:
        return RawCandidate(
            provider_record_id=entry["eventID"],
            occurred_at=entry.get("date"),
            latitude=entry.get("latitude"),
            longitude=entry.get("longitude"),
            depth=entry.get("depth"),
            magnitude=entry.get("magnitude"),
            location=entry.get("location"),
            depth_unit="km",
            utc_offset_hours=self.provider.utc_offset_hours,
        )
