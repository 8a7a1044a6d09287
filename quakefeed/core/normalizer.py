"""Record normalization - Pure functions.

Maps raw provider candidates into validated reports: field coercion,
unit reconciliation (depth in km, time in UTC) and range checks.
A bad candidate becomes a Rejection; it never fails the whole batch.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from quakefeed.core.earthquake import RawCandidate, Rejection, Report
from quakefeed.core.geo import (
    format_coordinates,
    is_valid_latitude,
    is_valid_longitude,
)


# Timestamp layouts seen across providers (fallback for fromisoformat)
TIME_FORMATS = (
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y.%m.%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%dT%H:%M:%S.%f%z",
)

DEPTH_UNITS = {"km": 1.0, "m": 0.001}


class InvalidField(ValueError):
    """Raised internally when a candidate field fails validation."""


@dataclass(frozen=True)
class NormalizedBatch:
    """Result of normalizing one provider payload.

    Attributes:
        reports: Valid reports, in payload order
        rejections: Candidates that failed validation
    """
    reports: tuple[Report, ...] = ()
    rejections: tuple[Rejection, ...] = field(default=())


def _to_float(value: Any, name: str) -> float:
    """Coerce a raw numeric value (number or numeric string) to a finite float."""
    if value is None or isinstance(value, bool):
        raise InvalidField(f"{name} is missing")
    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise InvalidField(f"{name} is missing")
    try:
        result = float(value)
    except OverflowError:
        raise InvalidField(f"{name} is out of range")
    except (TypeError, ValueError):
        raise InvalidField(f"{name} is not a number: {value!r}")
    if not math.isfinite(result):
        raise InvalidField(f"{name} is not finite: {value!r}")
    return result


def parse_time(value: Any, utc_offset_hours: float = 0.0) -> datetime:
    """Parse a provider time value into an aware UTC datetime.

    Pure function.

    Numbers are epoch milliseconds. Strings may be ISO-8601 (an explicit
    offset or 'Z' wins over utc_offset_hours) or one of TIME_FORMATS.

    Args:
        value: Raw time value
        utc_offset_hours: Offset of naive timestamps

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        InvalidField: If the value cannot be parsed
    """
    if value is None or isinstance(value, bool):
        raise InvalidField("time is missing")

    if isinstance(value, (int, float)):
        try:
            finite = math.isfinite(value)
            if finite:
                return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            raise InvalidField("time out of range")
        raise InvalidField(f"time is not finite: {value!r}")

    if not isinstance(value, str) or not value.strip():
        raise InvalidField(f"time has unsupported type: {value!r}")

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed: datetime | None = None

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        for fmt in TIME_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue

    if parsed is None:
        raise InvalidField(f"time has unknown format: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone(timedelta(hours=utc_offset_hours)))

    return parsed.astimezone(timezone.utc)


def parse_depth(value: Any, unit: str = "km") -> float | None:
    """Parse a depth into kilometers.

    Pure function. Missing depth stays None; it is never coerced to 0.

    Raises:
        InvalidField: If the depth is present but invalid or negative
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return None

    if unit not in DEPTH_UNITS:
        raise InvalidField(f"unknown depth unit: {unit!r}")

    depth_km = _to_float(value, "depth") * DEPTH_UNITS[unit]
    if depth_km < 0:
        raise InvalidField(f"depth is negative: {depth_km}")
    return depth_km


def _record_id(value: Any) -> str:
    if value is None or isinstance(value, bool):
        raise InvalidField("provider record id is missing")
    record_id = str(value).strip()
    if not record_id:
        raise InvalidField("provider record id is missing")
    return record_id


def normalize(
    raw: RawCandidate,
    provider_id: str,
    ingested_at: datetime,
) -> Report | Rejection:
    """Normalize one raw candidate into a validated report.

    Pure function: no I/O, no shared state.

    Args:
        raw: Candidate from a provider adapter
        provider_id: ID of the provider that sent it
        ingested_at: Ingestion wall-clock time (UTC)

    Returns:
        Report if every field is valid, otherwise a Rejection
    """
    record_id: str | None = None
    try:
        record_id = _record_id(raw.provider_record_id)

        occurred_at = parse_time(raw.occurred_at, raw.utc_offset_hours)
        if occurred_at > ingested_at:
            raise InvalidField(
                f"time {occurred_at.isoformat()} is in the future"
            )

        latitude = _to_float(raw.latitude, "latitude")
        if not is_valid_latitude(latitude):
            raise InvalidField(f"latitude {latitude} out of range [-90, 90]")

        longitude = _to_float(raw.longitude, "longitude")
        if not is_valid_longitude(longitude):
            raise InvalidField(f"longitude {longitude} out of range [-180, 180]")

        magnitude = _to_float(raw.magnitude, "magnitude")
        if magnitude < 0:
            raise InvalidField(f"magnitude is negative: {magnitude}")

        depth_km = parse_depth(raw.depth, raw.depth_unit)

        label = raw.location.strip() if isinstance(raw.location, str) else ""
        if not label:
            label = format_coordinates(latitude, longitude)

    except InvalidField as e:
        return Rejection(
            provider_id=provider_id,
            provider_record_id=record_id,
            reason=str(e),
        )

    return Report(
        provider_id=provider_id,
        provider_record_id=record_id,
        ingested_at=ingested_at,
        occurred_at=occurred_at,
        latitude=latitude,
        longitude=longitude,
        depth_km=depth_km,
        magnitude=magnitude,
        location_label=label,
    )


def normalize_batch(
    raws: list[RawCandidate] | tuple[RawCandidate, ...],
    provider_id: str,
    ingested_at: datetime,
) -> NormalizedBatch:
    """Normalize a provider payload, splitting reports from rejections.

    Pure function.
    """
    reports: list[Report] = []
    rejections: list[Rejection] = []

    for raw in raws:
        result = normalize(raw, provider_id, ingested_at)
        if isinstance(result, Rejection):
            rejections.append(result)
        else:
            reports.append(result)

    return NormalizedBatch(reports=tuple(reports), rejections=tuple(rejections))
