"""Configuration Loader - Imperative Shell.

This module handles loading configuration from YAML files and
environment variables. All I/O is contained here.

Models (Config, ProviderConfig, ...) are defined in quakefeed/core/config.py
to avoid information leakage between layers.
"""

import logging
import os
from dataclasses import replace
from pathlib import Path
from typing import Any

import yaml

from quakefeed.core.config import (
    BackoffPolicy,
    Config,
    MatchThresholds,
    ProviderConfig,
    RetentionPolicy,
)
from quakefeed.core.geo import TURKEY_BOUNDS, BoundingBox
from quakefeed.shell.registry import DEFAULT_BASE_URLS


logger = logging.getLogger(__name__)


def default_providers() -> list[ProviderConfig]:
    """Built-in provider set covering the Turkish region.

    National agency first, international agencies next, the community
    mirror of the Kandilli list last.
    """
    return [
        ProviderConfig(
            provider_id="afad",
            provider_type="afad",
            base_url=DEFAULT_BASE_URLS["afad"],
            poll_interval_seconds=120,
            authority_rank=100,
            lookback_hours=24,
            bounds=TURKEY_BOUNDS,
            utc_offset_hours=0.0,
        ),
        ProviderConfig(
            provider_id="usgs",
            provider_type="usgs",
            base_url=DEFAULT_BASE_URLS["usgs"],
            poll_interval_seconds=300,
            authority_rank=90,
            lookback_hours=24,
            min_magnitude=1.0,
            bounds=TURKEY_BOUNDS,
        ),
        ProviderConfig(
            provider_id="emsc",
            provider_type="emsc",
            base_url=DEFAULT_BASE_URLS["emsc"],
            poll_interval_seconds=300,
            authority_rank=80,
            lookback_hours=24,
            bounds=TURKEY_BOUNDS,
        ),
        ProviderConfig(
            provider_id="kandilli",
            provider_type="kandilli",
            base_url=DEFAULT_BASE_URLS["kandilli"],
            poll_interval_seconds=60,
            authority_rank=50,
            rolling=True,
            utc_offset_hours=3.0,
        ),
    ]


def _resolve_value(value: Any) -> Any:
    """Resolve a ${VAR} placeholder from the environment.

    Non-string values and plain strings are returned unchanged. An unset
    variable leaves the placeholder in place (config validation flags it).

    Args:
        value: Value to resolve

    Returns:
        Resolved value
    """
    if not isinstance(value, str):
        return value

    if value.startswith("${") and value.endswith("}"):
        var_name = value[2:-1]
        env_value = os.environ.get(var_name)
        if env_value:
            return env_value
        logger.warning("Environment variable %s not set", var_name)

    return value


def _parse_bounds(data: dict[str, Any]) -> BoundingBox:
    """Parse a bounding box from config data."""
    return BoundingBox(
        min_latitude=float(data["min_latitude"]),
        max_latitude=float(data["max_latitude"]),
        min_longitude=float(data["min_longitude"]),
        max_longitude=float(data["max_longitude"]),
    )


def _parse_bool(value: Any) -> bool:
    """Parse a YAML or environment boolean ('true', 'false', '1', '0'...)."""
    value = _resolve_value(value)
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _optional_float(value: Any) -> float | None:
    return None if value is None else float(_resolve_value(value))


def _parse_provider(data: dict[str, Any]) -> ProviderConfig:
    """Parse a provider definition from config data.

    'type' defaults to the id, and 'base_url' to the type's public endpoint.
    """
    provider_id = data["id"]
    provider_type = data.get("type", provider_id)

    base_url = data.get("base_url") or DEFAULT_BASE_URLS.get(provider_type, "")

    bounds = None
    if "bounds" in data:
        bounds = _parse_bounds(data["bounds"])

    limit = data.get("limit")

    return ProviderConfig(
        provider_id=provider_id,
        provider_type=provider_type,
        base_url=_resolve_value(base_url),
        poll_interval_seconds=int(data.get("poll_interval_seconds", 60)),
        authority_rank=int(data.get("authority_rank", 0)),
        timeout_seconds=float(data.get("timeout_seconds", 15)),
        lookback_hours=int(data.get("lookback_hours", 24)),
        min_magnitude=_optional_float(data.get("min_magnitude")),
        bounds=bounds,
        rolling=_parse_bool(data.get("rolling", False)),
        utc_offset_hours=float(data.get("utc_offset_hours", 0.0)),
        limit=int(limit) if limit is not None else None,
        enabled=_parse_bool(data.get("enabled", True)),
    )


def _parse_thresholds(data: dict[str, Any]) -> MatchThresholds:
    """Parse dedup thresholds from config data."""
    defaults = MatchThresholds()
    return MatchThresholds(
        time_window_seconds=float(data.get("time_window_seconds", defaults.time_window_seconds)),
        distance_km=float(data.get("distance_km", defaults.distance_km)),
        magnitude_delta=float(data.get("magnitude_delta", defaults.magnitude_delta)),
    )


def _parse_retention(data: dict[str, Any]) -> RetentionPolicy:
    """Parse retention settings from config data."""
    defaults = RetentionPolicy()
    return RetentionPolicy(
        retention_days=float(data.get("retention_days", defaults.retention_days)),
        disappearance_minutes=float(data.get("disappearance_minutes", defaults.disappearance_minutes)),
        eviction_interval_seconds=float(data.get("eviction_interval_seconds", defaults.eviction_interval_seconds)),
    )


def _parse_backoff(data: dict[str, Any]) -> BackoffPolicy:
    """Parse failure handling settings from config data."""
    defaults = BackoffPolicy()
    return BackoffPolicy(
        max_backoff_seconds=float(data.get("max_backoff_seconds", defaults.max_backoff_seconds)),
        stale_after_failures=int(data.get("stale_after_failures", defaults.stale_after_failures)),
    )


def load_config_from_dict(data: dict[str, Any]) -> Config:
    """Load configuration from a dictionary.

    This is a pure-ish function (only env var expansion has side effects).
    A missing 'providers' key selects the built-in providers.

    Args:
        data: Configuration dictionary

    Returns:
        Parsed Config object
    """
    if "providers" in data:
        providers = [_parse_provider(p) for p in data["providers"] or []]
    else:
        providers = default_providers()

    statistics = data.get("statistics", {}) or {}

    return Config(
        providers=providers,
        thresholds=_parse_thresholds(data.get("dedup", {}) or {}),
        retention=_parse_retention(data.get("retention", {}) or {}),
        backoff=_parse_backoff(data.get("backoff", {}) or {}),
        top_locations=int(statistics.get("top_locations", 10)),
        strong_magnitude=float(statistics.get("strong_magnitude", 4.0)),
        statistics_utc_offset_hours=float(statistics.get("utc_offset_hours", 0.0)),
    )


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from a YAML file.

    This method performs file I/O.

    Args:
        config_path: Path to YAML config file.
                    If None, uses CONFIG_PATH env var or default.

    Returns:
        Parsed Config object

    Raises:
        yaml.YAMLError: If config file is invalid YAML
    """
    if config_path is None:
        config_path = os.environ.get("CONFIG_PATH", "config/config.yaml")

    path = Path(config_path)

    logger.info("Loading configuration from %s", path)

    if not path.exists():
        logger.warning("Config file not found: %s, using defaults", path)
        return load_config_from_env()

    with open(path, "r") as f:
        data = yaml.safe_load(f)

    if data is None:
        logger.warning("Config file is empty, using defaults")
        return load_config_from_env()

    config = load_config_from_dict(data)

    logger.info(
        "Loaded config: %d providers (%d enabled)",
        len(config.providers),
        len(config.enabled_providers),
    )

    return config


def load_config_from_env() -> Config:
    """Load configuration from environment variables over built-in defaults.

    Useful for simple deployments without a YAML file.

    Environment variables:
        ENABLED_PROVIDERS: Comma-separated provider IDs to poll (default: all)
        RETENTION_DAYS: Retention window in days
        MIN_FETCH_MAGNITUDE: Minimum magnitude requested from range-query providers
        DEDUP_TIME_WINDOW_SECONDS, DEDUP_DISTANCE_KM, DEDUP_MAGNITUDE_DELTA:
            Matching thresholds

    Returns:
        Config object from environment
    """
    providers = default_providers()

    enabled = os.environ.get("ENABLED_PROVIDERS")
    if enabled:
        wanted = {p.strip() for p in enabled.split(",") if p.strip()}
        unknown = wanted - {p.provider_id for p in providers}
        if unknown:
            logger.warning("Unknown providers in ENABLED_PROVIDERS: %s", ", ".join(sorted(unknown)))
        providers = [
            replace(p, enabled=p.provider_id in wanted)
            for p in providers
        ]

    min_magnitude = os.environ.get("MIN_FETCH_MAGNITUDE")
    if min_magnitude:
        providers = [
            p if p.rolling else replace(p, min_magnitude=float(min_magnitude))
            for p in providers
        ]

    defaults = MatchThresholds()
    thresholds = MatchThresholds(
        time_window_seconds=float(os.environ.get("DEDUP_TIME_WINDOW_SECONDS", defaults.time_window_seconds)),
        distance_km=float(os.environ.get("DEDUP_DISTANCE_KM", defaults.distance_km)),
        magnitude_delta=float(os.environ.get("DEDUP_MAGNITUDE_DELTA", defaults.magnitude_delta)),
    )

    retention = RetentionPolicy(
        retention_days=float(os.environ.get("RETENTION_DAYS", RetentionPolicy().retention_days)),
    )

    return Config(
        providers=providers,
        thresholds=thresholds,
        retention=retention,
    )
