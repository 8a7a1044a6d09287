"""Configuration models - Pure data structures.

These are domain models for configuration. The actual loading
(I/O) is handled by the shell layer.
"""

from dataclasses import dataclass, field

from quakefeed.core.geo import BoundingBox


# Provider types with a matching adapter in the shell layer
PROVIDER_TYPES = ("usgs", "emsc", "afad", "kandilli")


@dataclass(frozen=True)
class ProviderConfig:
    """Configuration for one external provider.

    Attributes:
        provider_id: Unique ID used in provenance (e.g. 'afad')
        provider_type: Adapter type, one of PROVIDER_TYPES
        base_url: Endpoint URL
        poll_interval_seconds: Nominal refresh cadence
        authority_rank: Higher ranks win attribute selection on merge
        timeout_seconds: HTTP request timeout
        lookback_hours: Window for range-query providers
        min_magnitude: Minimum magnitude requested from the provider
        bounds: Geographic bounds requested from the provider
        rolling: True for 'latest N' feeds (enables disappearance eviction)
        utc_offset_hours: Offset for naive timestamps in the payload
        limit: Maximum number of events requested
        enabled: Whether the provider is polled
    """
    provider_id: str
    provider_type: str
    base_url: str
    poll_interval_seconds: int = 60
    authority_rank: int = 0
    timeout_seconds: float = 15.0
    lookback_hours: int = 24
    min_magnitude: float | None = None
    bounds: BoundingBox | None = None
    rolling: bool = False
    utc_offset_hours: float = 0.0
    limit: int | None = None
    enabled: bool = True


@dataclass(frozen=True)
class MatchThresholds:
    """Thresholds for treating two reports as the same physical event.

    Attributes:
        time_window_seconds: Maximum origin-time difference (inclusive)
        distance_km: Maximum great-circle distance (inclusive)
        magnitude_delta: Maximum magnitude difference (inclusive)
    """
    time_window_seconds: float = 60.0
    distance_km: float = 25.0
    magnitude_delta: float = 0.5


@dataclass(frozen=True)
class RetentionPolicy:
    """Eviction configuration for the aggregate store.

    Attributes:
        retention_days: Records older than this are evicted
        disappearance_minutes: Rolling-feed records unseen this long are evicted
        eviction_interval_seconds: Cadence of the periodic eviction pass
    """
    retention_days: float = 30.0
    disappearance_minutes: float = 120.0
    eviction_interval_seconds: float = 60.0


@dataclass(frozen=True)
class BackoffPolicy:
    """Failure handling for provider polls.

    Attributes:
        max_backoff_seconds: Ceiling for the doubled retry delay
        stale_after_failures: Consecutive failures before a provider is stale
    """
    max_backoff_seconds: float = 900.0
    stale_after_failures: int = 3


@dataclass
class Config:
    """Application configuration.

    This is a pure data structure - no I/O or side effects.

    Attributes:
        providers: Provider definitions
        thresholds: Dedup matching thresholds
        retention: Eviction settings
        backoff: Failure handling settings
        top_locations: Number of entries in statistics top locations
        strong_magnitude: Threshold counted as a strong earthquake
        statistics_utc_offset_hours: Offset used for the hour-of-day histogram
    """
    providers: list[ProviderConfig] = field(default_factory=list)
    thresholds: MatchThresholds = field(default_factory=MatchThresholds)
    retention: RetentionPolicy = field(default_factory=RetentionPolicy)
    backoff: BackoffPolicy = field(default_factory=BackoffPolicy)
    top_locations: int = 10
    strong_magnitude: float = 4.0
    statistics_utc_offset_hours: float = 0.0

    @property
    def enabled_providers(self) -> list[ProviderConfig]:
        """Providers that should be polled."""
        return [p for p in self.providers if p.enabled]

    @property
    def authority_ranks(self) -> dict[str, int]:
        """Map provider ID to authority rank."""
        return {p.provider_id: p.authority_rank for p in self.providers}

    @property
    def rolling_providers(self) -> frozenset[str]:
        """IDs of providers that only publish a rolling 'latest N' feed."""
        return frozenset(p.provider_id for p in self.providers if p.rolling)


@dataclass
class ValidationError:
    """A configuration validation error.

    Attributes:
        field: The field that has an error
        message: Human-readable error description
        severity: 'error' or 'warning'
    """
    field: str
    message: str
    severity: str = "error"


@dataclass
class ValidationResult:
    """Result of validating configuration.

    Attributes:
        valid: True if no errors (warnings are OK)
        errors: List of validation errors/warnings
    """
    valid: bool
    errors: list[ValidationError] = field(default_factory=list)

    @property
    def warnings(self) -> list[ValidationError]:
        """Get only warnings."""
        return [e for e in self.errors if e.severity == "warning"]

    @property
    def critical_errors(self) -> list[ValidationError]:
        """Get only critical errors."""
        return [e for e in self.errors if e.severity == "error"]


def validate_bounds(bounds: BoundingBox, field_name: str) -> list[ValidationError]:
    """Validate a bounding box.

    Pure function.

    Args:
        bounds: Bounding box to validate
        field_name: Name of the field for error messages

    Returns:
        List of validation errors (empty if valid)
    """
    errors = []

    for name in ("min_latitude", "max_latitude"):
        value = getattr(bounds, name)
        if not -90 <= value <= 90:
            errors.append(ValidationError(
                field=f"{field_name}.{name}",
                message=f"Latitude {value} out of range [-90, 90]",
            ))

    for name in ("min_longitude", "max_longitude"):
        value = getattr(bounds, name)
        if not -180 <= value <= 180:
            errors.append(ValidationError(
                field=f"{field_name}.{name}",
                message=f"Longitude {value} out of range [-180, 180]",
            ))

    if bounds.min_latitude > bounds.max_latitude:
        errors.append(ValidationError(
            field=field_name,
            message=f"min_latitude ({bounds.min_latitude}) > max_latitude ({bounds.max_latitude})",
        ))

    if bounds.min_longitude > bounds.max_longitude:
        errors.append(ValidationError(
            field=field_name,
            message=f"min_longitude ({bounds.min_longitude}) > max_longitude ({bounds.max_longitude})",
        ))

    return errors


def validate_provider(provider: ProviderConfig, field_name: str) -> list[ValidationError]:
    """Validate a single provider definition.

    Pure function.
    """
    errors = []

    if provider.provider_type not in PROVIDER_TYPES:
        errors.append(ValidationError(
            field=f"{field_name}.type",
            message=f"Unknown provider type '{provider.provider_type}', expected one of {', '.join(PROVIDER_TYPES)}",
        ))

    if not provider.base_url or provider.base_url.startswith("${"):
        errors.append(ValidationError(
            field=f"{field_name}.base_url",
            message="Base URL not resolved (missing or still contains placeholder)",
        ))

    if provider.poll_interval_seconds <= 0:
        errors.append(ValidationError(
            field=f"{field_name}.poll_interval_seconds",
            message=f"Poll interval must be positive, got {provider.poll_interval_seconds}",
        ))

    if provider.timeout_seconds <= 0:
        errors.append(ValidationError(
            field=f"{field_name}.timeout_seconds",
            message=f"Timeout must be positive, got {provider.timeout_seconds}",
        ))
    elif provider.timeout_seconds >= provider.poll_interval_seconds:
        errors.append(ValidationError(
            field=f"{field_name}.timeout_seconds",
            message="Timeout is not shorter than the poll interval",
            severity="warning",
        ))

    if provider.bounds is not None:
        errors.extend(validate_bounds(provider.bounds, f"{field_name}.bounds"))

    return errors


def validate_config(config: Config) -> ValidationResult:
    """Validate configuration for errors and warnings.

    Pure function.

    Args:
        config: Configuration to validate

    Returns:
        ValidationResult with any errors/warnings found
    """
    errors: list[ValidationError] = []

    seen_ids: set[str] = set()
    for i, provider in enumerate(config.providers):
        if provider.provider_id in seen_ids:
            errors.append(ValidationError(
                field=f"providers[{i}].id",
                message=f"Duplicate provider id '{provider.provider_id}'",
            ))
        seen_ids.add(provider.provider_id)
        errors.extend(validate_provider(provider, f"providers[{i}]"))

    if not config.enabled_providers:
        errors.append(ValidationError(
            field="providers",
            message="No providers enabled",
            severity="warning",
        ))

    thresholds = config.thresholds
    for name in ("time_window_seconds", "distance_km", "magnitude_delta"):
        if getattr(thresholds, name) < 0:
            errors.append(ValidationError(
                field=f"dedup.{name}",
                message=f"Threshold must not be negative, got {getattr(thresholds, name)}",
            ))

    if config.retention.retention_days <= 0:
        errors.append(ValidationError(
            field="retention.retention_days",
            message=f"Retention must be positive, got {config.retention.retention_days}",
        ))

    if config.retention.disappearance_minutes <= 0:
        errors.append(ValidationError(
            field="retention.disappearance_minutes",
            message=f"Disappearance threshold must be positive, got {config.retention.disappearance_minutes}",
        ))

    if config.backoff.stale_after_failures < 1:
        errors.append(ValidationError(
            field="backoff.stale_after_failures",
            message=f"Stale threshold must be at least 1, got {config.backoff.stale_after_failures}",
        ))

    if config.top_locations < 1:
        errors.append(ValidationError(
            field="statistics.top_locations",
            message=f"top_locations must be at least 1, got {config.top_locations}",
        ))

    has_critical = any(e.severity == "error" for e in errors)

    return ValidationResult(
        valid=not has_critical,
        errors=errors,
    )
