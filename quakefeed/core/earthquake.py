"""Earthquake data models - Pure data structures.

This module defines the records that flow through the engine:
raw provider candidates, normalized single-provider reports and the
canonical merged record. All types are immutable.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class RawCandidate:
    """One entry of a provider payload, before validation.

    Field values are untrusted: they may be strings, numbers or missing.

    Attributes:
        provider_record_id: The provider's own event ID
        occurred_at: Raw time value (epoch ms or date string)
        latitude: Raw latitude
        longitude: Raw longitude
        depth: Raw depth (see depth_unit)
        magnitude: Raw magnitude
        location: Raw location text
        depth_unit: 'km' or 'm'
        utc_offset_hours: Offset applied to naive timestamps
    """
    provider_record_id: Any
    occurred_at: Any
    latitude: Any
    longitude: Any
    depth: Any
    magnitude: Any
    location: Any = None
    depth_unit: str = "km"
    utc_offset_hours: float = 0.0


@dataclass(frozen=True)
class Provenance:
    """A single provider report merged into a canonical record.

    Attributes:
        provider_id: Configured provider ID (e.g. 'usgs')
        provider_record_id: The provider's own event ID
        ingested_at: When the engine first received this report (UTC)
    """
    provider_id: str
    provider_record_id: str
    ingested_at: datetime

    @property
    def source_key(self) -> tuple[str, str]:
        """Return (provider_id, provider_record_id)."""
        return (self.provider_id, self.provider_record_id)


@dataclass(frozen=True)
class Report:
    """A validated, normalized observation from one provider.

    Attributes:
        provider_id: Configured provider ID
        provider_record_id: The provider's own event ID
        ingested_at: Ingestion time (UTC)
        occurred_at: Event origin time (UTC)
        latitude: Epicenter latitude
        longitude: Epicenter longitude
        depth_km: Depth in kilometers, None when unknown
        magnitude: Reported magnitude
        location_label: Human-readable location description
    """
    provider_id: str
    provider_record_id: str
    ingested_at: datetime
    occurred_at: datetime
    latitude: float
    longitude: float
    depth_km: float | None
    magnitude: float
    location_label: str

    @property
    def source_key(self) -> tuple[str, str]:
        """Return (provider_id, provider_record_id)."""
        return (self.provider_id, self.provider_record_id)

    @property
    def provenance(self) -> Provenance:
        """Provenance entry for this report."""
        return Provenance(
            provider_id=self.provider_id,
            provider_record_id=self.provider_record_id,
            ingested_at=self.ingested_at,
        )

    def same_observation(self, other: "Report") -> bool:
        """Check if two reports carry identical event attributes.

        Ingestion time is ignored, so a re-delivered report compares equal.
        """
        return (
            self.source_key == other.source_key
            and self.occurred_at == other.occurred_at
            and self.latitude == other.latitude
            and self.longitude == other.longitude
            and self.depth_km == other.depth_km
            and self.magnitude == other.magnitude
            and self.location_label == other.location_label
        )


@dataclass(frozen=True)
class Rejection:
    """A candidate that failed validation.

    Attributes:
        provider_id: Provider that sent the candidate
        provider_record_id: The provider's event ID, if it could be read
        reason: Human-readable reason
    """
    provider_id: str
    provider_record_id: str | None
    reason: str


@dataclass(frozen=True)
class CanonicalRecord:
    """Immutable canonical earthquake record.

    One record per physical event, merged from every provider that
    reported it. Displayed attributes come from the preferred report.

    Attributes:
        event_key: Stable engine-assigned identifier
        occurred_at: Event origin time (UTC)
        latitude: Epicenter latitude
        longitude: Epicenter longitude
        depth_km: Depth in kilometers, None when unknown
        magnitude: Magnitude
        location_label: Human-readable location description
        provenance: Every source that reported this event, in merge order
        reports: Normalized reports backing this record, aligned with provenance
    """
    event_key: str
    occurred_at: datetime
    latitude: float
    longitude: float
    depth_km: float | None
    magnitude: float
    location_label: str
    provenance: tuple[Provenance, ...]
    reports: tuple[Report, ...] = field(default=(), repr=False)

    @property
    def coordinates(self) -> tuple[float, float]:
        """Return (latitude, longitude) tuple."""
        return (self.latitude, self.longitude)

    @property
    def provider_ids(self) -> frozenset[str]:
        """Set of providers that reported this event."""
        return frozenset(p.provider_id for p in self.provenance)

    @property
    def source_keys(self) -> frozenset[tuple[str, str]]:
        """Set of (provider_id, provider_record_id) pairs."""
        return frozenset(p.source_key for p in self.provenance)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-friendly dict."""
        return {
            "event_key": self.event_key,
            "occurred_at": self.occurred_at.isoformat(),
            "latitude": self.latitude,
            "longitude": self.longitude,
            "depth_km": self.depth_km,
            "magnitude": self.magnitude,
            "location_label": self.location_label,
            "provenance": [
                {
                    "provider_id": p.provider_id,
                    "provider_record_id": p.provider_record_id,
                    "ingested_at": p.ingested_at.isoformat(),
                }
                for p in self.provenance
            ],
        }
