"""Tests for the EMSC client.

Uses the `responses` library to mock HTTP requests.
"""

from datetime import datetime, timezone
from urllib.parse import parse_qs, urlparse

import responses

from quakefeed.core.config import ProviderConfig
from quakefeed.core.normalizer import normalize
from quakefeed.shell.emsc_client import EMSC_API_BASE, EMSCClient


NOW = datetime(2023, 2, 6, 2, 0, 0, tzinfo=timezone.utc)

PAYLOAD = {
    "type": "FeatureCollection",
    "metadata": {"count": 1},
    "features": [
        {
            "type": "Feature",
            "id": "20230206_0000008",
            "geometry": {"type": "Point", "coordinates": [37.04, 37.17, -10.0]},
            "properties": {
                "unid": "20230206_0000008",
                "time": "2023-02-06T01:17:35.8Z",
                "lat": 37.17,
                "lon": 37.04,
                "depth": 10.0,
                "mag": 7.8,
                "magtype": "mw",
                "flynn_region": "CENTRAL TURKEY",
            },
        }
    ],
}


def make_client() -> EMSCClient:
    return EMSCClient(
        ProviderConfig("emsc", "emsc", EMSC_API_BASE, lookback_hours=6),
        clock=lambda: NOW,
    )


class TestEMSCClient:
    """Tests for EMSCClient.poll()."""

    @responses.activate
    def test_requests_json_format(self):
        responses.add(responses.GET, EMSC_API_BASE, json=PAYLOAD, status=200)

        make_client().poll()

        query = parse_qs(urlparse(responses.calls[0].request.url).query)
        assert query["format"] == ["json"]
        assert query["starttime"] == ["2023-02-05T20:00:00"]

    @responses.activate
    def test_reads_attributes_from_properties(self):
        """Depth comes from properties, not the negated geometry."""
        responses.add(responses.GET, EMSC_API_BASE, json=PAYLOAD, status=200)

        result = make_client().poll()

        candidate = result.candidates[0]
        assert candidate.provider_record_id == "20230206_0000008"
        assert candidate.depth == 10.0
        assert candidate.latitude == 37.17
        assert candidate.location == "CENTRAL TURKEY"

    @responses.activate
    def test_candidate_normalizes(self):
        responses.add(responses.GET, EMSC_API_BASE, json=PAYLOAD, status=200)

        candidate = make_client().poll().candidates[0]
        report = normalize(candidate, "emsc", NOW)

        assert report.occurred_at == datetime(2023, 2, 6, 1, 17, 35, 800000, tzinfo=timezone.utc)
        assert report.depth_km == 10.0

    @responses.activate
    def test_unid_used_when_feature_has_no_id(self):
        feature = dict(PAYLOAD["features"][0])
        del feature["id"]
        responses.add(
            responses.GET, EMSC_API_BASE,
            json={"type": "FeatureCollection", "features": [feature]}, status=200,
        )

        result = make_client().poll()

        assert result.candidates[0].provider_record_id == "20230206_0000008"
