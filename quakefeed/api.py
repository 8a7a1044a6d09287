"""Earthquake API - FastAPI service over the aggregate store.

Read-only endpoints serving the engine's current snapshot. Requests never
block ingestion: every handler works on one immutable snapshot.
"""

import logging
from datetime import datetime

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from quakefeed.core.earthquake import CanonicalRecord
from quakefeed.core.filters import filter_records, parse_filter
from quakefeed.engine import Engine
from quakefeed.store import Snapshot


logger = logging.getLogger(__name__)


# ===== Response Models =====

class ProvenanceResponse(BaseModel):
    provider_id: str
    provider_record_id: str
    ingested_at: datetime


class EarthquakeResponse(BaseModel):
    event_key: str
    occurred_at: datetime
    latitude: float
    longitude: float
    depth_km: float | None
    magnitude: float
    location_label: str
    provenance: list[ProvenanceResponse]
    stale: bool = False


class EarthquakeDetailResponse(EarthquakeResponse):
    redirected_from: str | None = None


class EarthquakeListResponse(BaseModel):
    count: int
    snapshot_version: int
    published_at: datetime | None
    fully_stale: bool
    earthquakes: list[EarthquakeResponse]


class LocationCount(BaseModel):
    location: str
    count: int


class StatisticsResponse(BaseModel):
    count: int
    avg_magnitude: float
    avg_depth: float
    max_magnitude: float
    strong_count: int
    last_hour: int
    last_day: int
    last_week: int
    last_month: int
    magnitude_histogram: dict[str, int]
    depth_histogram: dict[str, int]
    hourly_histogram: dict[int, int]
    top_locations: list[LocationCount]


class AdapterHealthResponse(BaseModel):
    provider_id: str
    last_success_at: datetime | None
    last_attempt_at: datetime | None
    consecutive_failures: int
    backoff_seconds: float
    last_error: str | None
    stale: bool


class HealthResponse(BaseModel):
    status: str
    snapshot_version: int
    record_count: int
    published_at: datetime | None
    fully_stale: bool
    stale_providers: list[str]
    rejections: dict[str, int]
    adapters: list[AdapterHealthResponse]


def _earthquake_fields(record: CanonicalRecord, snapshot: Snapshot) -> dict:
    return {
        "event_key": record.event_key,
        "occurred_at": record.occurred_at,
        "latitude": record.latitude,
        "longitude": record.longitude,
        "depth_km": record.depth_km,
        "magnitude": record.magnitude,
        "location_label": record.location_label,
        "provenance": [
            ProvenanceResponse(
                provider_id=p.provider_id,
                provider_record_id=p.provider_record_id,
                ingested_at=p.ingested_at,
            )
            for p in record.provenance
        ],
        "stale": snapshot.is_stale(record),
    }


def create_app(engine: Engine) -> FastAPI:
    """Create the API application bound to an engine.

    Args:
        engine: Running (or pre-populated) engine

    Returns:
        FastAPI application
    """
    app = FastAPI(
        title="Quakefeed API",
        description="Unified earthquake catalog merged from USGS, EMSC, AFAD and Kandilli",
        version="1.0.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.get("/earthquakes", response_model=EarthquakeListResponse)
    def list_earthquakes(
        min_magnitude: float = Query(0.0, description="Minimum magnitude"),
        max_depth: float | None = Query(None, ge=0, description="Maximum depth in km"),
        since_hours: float | None = Query(None, gt=0, description="Only the last N hours"),
        limit: int | None = Query(None, ge=1, le=5000, description="Maximum results"),
    ) -> EarthquakeListResponse:
        """List canonical earthquakes from the current snapshot."""
        snapshot = engine.store.snapshot()
        criteria = parse_filter(
            engine.clock(),
            min_magnitude=min_magnitude,
            max_depth_km=max_depth,
            since_hours=since_hours,
            limit=limit,
        )
        records = filter_records(snapshot.records, criteria)

        return EarthquakeListResponse(
            count=len(records),
            snapshot_version=snapshot.version,
            published_at=snapshot.published_at,
            fully_stale=snapshot.fully_stale,
            earthquakes=[
                EarthquakeResponse(**_earthquake_fields(r, snapshot))
                for r in records
            ],
        )

    @app.get("/earthquakes/{event_key}", response_model=EarthquakeDetailResponse)
    def get_earthquake(event_key: str) -> EarthquakeDetailResponse:
        """Get one earthquake; keys of merged records redirect to the survivor."""
        snapshot = engine.store.snapshot()
        record = snapshot.get(event_key)
        if record is None:
            raise HTTPException(status_code=404, detail=f"Earthquake {event_key} not found")

        redirected_from = event_key if record.event_key != event_key else None
        return EarthquakeDetailResponse(
            **_earthquake_fields(record, snapshot),
            redirected_from=redirected_from,
        )

    @app.get("/statistics", response_model=StatisticsResponse)
    def get_statistics(
        min_magnitude: float = Query(0.0, description="Minimum magnitude"),
        max_depth: float | None = Query(None, ge=0, description="Maximum depth in km"),
        since_hours: float | None = Query(None, gt=0, description="Only the last N hours"),
    ) -> StatisticsResponse:
        """Aggregate statistics over the current snapshot."""
        criteria = parse_filter(
            engine.clock(),
            min_magnitude=min_magnitude,
            max_depth_km=max_depth,
            since_hours=since_hours,
        )
        summary = engine.get_statistics(criteria)
        return StatisticsResponse(
            count=summary.count,
            avg_magnitude=summary.avg_magnitude,
            avg_depth=summary.avg_depth,
            max_magnitude=summary.max_magnitude,
            strong_count=summary.strong_count,
            last_hour=summary.last_hour,
            last_day=summary.last_day,
            last_week=summary.last_week,
            last_month=summary.last_month,
            magnitude_histogram=summary.magnitude_histogram,
            depth_histogram=summary.depth_histogram,
            hourly_histogram=summary.hourly_histogram,
            top_locations=[
                LocationCount(location=label, count=count)
                for label, count in summary.top_locations
            ],
        )

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        """Engine and provider health."""
        status = engine.health()
        if status.fully_stale:
            overall = "stale"
        elif status.stale_providers:
            overall = "degraded"
        else:
            overall = "ok"

        return HealthResponse(
            status=overall,
            snapshot_version=status.snapshot_version,
            record_count=status.record_count,
            published_at=status.published_at,
            fully_stale=status.fully_stale,
            stale_providers=sorted(status.stale_providers),
            rejections=dict(status.rejections),
            adapters=[
                AdapterHealthResponse(
                    provider_id=s.provider_id,
                    last_success_at=s.last_success_at,
                    last_attempt_at=s.last_attempt_at,
                    consecutive_failures=s.consecutive_failures,
                    backoff_seconds=s.backoff_seconds,
                    last_error=s.last_error,
                    stale=s.stale,
                )
                for s in status.adapters.values()
            ],
        )

    return app
