"""Adapter polling state - Pure functions.

Tracks per-provider polling health: failures, backoff and staleness.
The scheduler in the shell owns the state; every transition here returns
a new state without modifying its input.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from quakefeed.core.config import BackoffPolicy


@dataclass(frozen=True)
class AdapterState:
    """Polling state of one provider adapter.

    Attributes:
        provider_id: Provider this state belongs to
        last_success_at: Time of the last successful fetch
        last_attempt_at: Time of the last fetch attempt
        consecutive_failures: Failed fetches since the last success
        backoff_seconds: Delay before the next poll
        last_payload_hash: Hash of the last successfully fetched payload
        last_error: Error text of the last failure
        stale: Whether the provider's contribution is flagged stale
    """
    provider_id: str
    last_success_at: datetime | None = None
    last_attempt_at: datetime | None = None
    consecutive_failures: int = 0
    backoff_seconds: float = 0.0
    last_payload_hash: str | None = None
    last_error: str | None = None
    stale: bool = False


def initial_state(provider_id: str, interval_seconds: float) -> AdapterState:
    """Create the state of a provider that has not been polled yet."""
    return AdapterState(provider_id=provider_id, backoff_seconds=interval_seconds)


def compute_backoff(
    failures: int,
    interval_seconds: float,
    policy: "BackoffPolicy",
) -> float:
    """Delay before the next poll after a number of consecutive failures.

    Pure function. Doubles the nominal interval per failure, capped at the
    ceiling (never below the nominal interval).

    Args:
        failures: Consecutive failures so far
        interval_seconds: Nominal poll interval
        policy: Backoff settings

    Returns:
        Delay in seconds
    """
    ceiling = max(policy.max_backoff_seconds, interval_seconds)
    if failures <= 0:
        return interval_seconds
    # Cap the exponent; 2 ** 64 seconds is already far beyond any ceiling
    return min(interval_seconds * 2 ** min(failures, 64), ceiling)


def record_success(
    state: AdapterState,
    now: datetime,
    payload_hash: str | None,
    interval_seconds: float,
) -> AdapterState:
    """Return the state after a successful fetch.

    Pure function.
    """
    return replace(
        state,
        last_success_at=now,
        last_attempt_at=now,
        consecutive_failures=0,
        backoff_seconds=interval_seconds,
        last_payload_hash=payload_hash,
        last_error=None,
        stale=False,
    )


def record_failure(
    state: AdapterState,
    now: datetime,
    error: str,
    interval_seconds: float,
    policy: "BackoffPolicy",
) -> AdapterState:
    """Return the state after a failed fetch.

    Pure function. The payload hash is kept so an unchanged payload after
    recovery is still recognized.
    """
    failures = state.consecutive_failures + 1
    return replace(
        state,
        last_attempt_at=now,
        consecutive_failures=failures,
        backoff_seconds=compute_backoff(failures, interval_seconds, policy),
        last_error=error,
        stale=failures >= policy.stale_after_failures,
    )


def is_payload_unchanged(state: AdapterState, payload_hash: str | None) -> bool:
    """Check if a payload matches the last successful one."""
    return payload_hash is not None and payload_hash == state.last_payload_hash
