"""Kandilli live feed Client - Imperative Shell.

Fetches the rolling list of the latest Kandilli Observatory events from a
community-run JSON mirror. The feed has no query window: every poll
returns the newest N events, with local (UTC+3) timestamps.

Envelope:
{
    "status": true,
    "result": [
        {
            "earthquake_id": "...",
            "title": "SOFULU-SARICAM (ADANA)",
            "date": "2023.02.06 04:17:34",
            "mag": 7.8,
            "depth": 8.6,
            "geojson": {"type": "Point", "coordinates": [lon, lat]}
        }
    ]
}
"""

from datetime import datetime
from typing import Any

from quakefeed.core.earthquake import RawCandidate
from quakefeed.shell.adapter import FetchError, ParseError, ProviderAdapter


KANDILLI_API_BASE = "https://api.orhanaydogdu.com.tr/deprem/kandilli/live"


class KandilliClient(ProviderAdapter):
    """Adapter for the Kandilli live list (rolling latest-N feed)."""

    provider_type = "kandilli"

    def build_params(self, now: datetime) -> dict[str, str]:
        if self.provider.limit is not None:
            return {"limit": str(self.provider.limit)}
        return {}

    def extract_entries(self, data: Any) -> list[Any]:
        if not isinstance(data, dict):
            raise ParseError(self.provider_id, "Payload is not a JSON object")

        if data.get("status") is False:
            raise FetchError(
                self.provider_id,
                f"Feed reported failure: {data.get('desc') or data.get('httpStatus')}",
                kind="status",
            )

        result = data.get("result")
        if not isinstance(result, list):
            raise ParseError(self.provider_id, "Payload has no 'result' list")
        return result

    def entry_id(self, entry: Any) -> str | None:
        return entry.get("earthquake_id") or entry.get("_id")

    def to_candidate(self, entry: Any) -> RawCandidate:
        coords = entry["geojson"]["coordinates"]
        magnitude = entry.get("mag")
        if magnitude is None:
            magnitude = entry.get("magnitude")

        return RawCandidate(
            provider_record_id=entry.get("earthquake_id") or entry.get("_id"),
            occurred_at=entry.get("date_time") or entry.get("date"),
            latitude=coords[1],
            longitude=coords[0],
            depth=entry.get("depth"),
            magnitude=magnitude,
            location=entry.get("title"),
            depth_unit="km",
            utc_offset_hours=self.provider.utc_offset_hours,
        )
