"""Polling Scheduler - Imperative Shell.

Runs one worker thread per provider adapter. Each worker polls its
adapter, folds the outcome into the adapter's polling state (backoff,
staleness, payload hash) using the pure transitions in core.schedule, and
hands the result to the engine. A maintenance thread runs the periodic
eviction pass.

Polls of one adapter are serialized: a worker waits for the result
callback to return before it sleeps again. Workers never share state
besides the AdapterState table, which is guarded by a lock.
"""

import logging
import threading
from dataclasses import replace
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Callable, Mapping

from quakefeed.core.config import BackoffPolicy
from quakefeed.core.schedule import (
    AdapterState,
    initial_state,
    is_payload_unchanged,
    record_failure,
    record_success,
)
from quakefeed.shell.adapter import FetchError, PollResult, ProviderAdapter


logger = logging.getLogger(__name__)


ResultCallback = Callable[[str, PollResult], None]
StateCallback = Callable[[str, AdapterState], None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PollingScheduler:
    """Schedules provider polls with backoff and staleness tracking.

    This is part of the imperative shell - it owns threads and timers.
    """

    def __init__(
        self,
        adapters: list[ProviderAdapter],
        policy: BackoffPolicy,
        on_result: ResultCallback,
        on_state_change: StateCallback | None = None,
        intervals: Mapping[str, float] | None = None,
        maintenance: Callable[[], object] | None = None,
        maintenance_interval: float = 60.0,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        """Initialize scheduler.

        Args:
            adapters: Adapters to poll
            policy: Backoff and staleness settings
            on_result: Called with every poll result that should be merged
            on_state_change: Called when a provider's stale flag flips
            intervals: Provider ID -> nominal poll interval in seconds
                (defaults to each adapter's configured interval)
            maintenance: Periodic task (eviction pass)
            maintenance_interval: Seconds between maintenance runs
            clock: Returns the current UTC time
        """
        self.policy = policy
        self._adapters = {a.provider_id: a for a in adapters}
        self._intervals = {
            pid: float((intervals or {}).get(pid, a.provider.poll_interval_seconds))
            for pid, a in self._adapters.items()
        }
        self._on_result = on_result
        self._on_state_change = on_state_change
        self._maintenance = maintenance
        self._maintenance_interval = maintenance_interval
        self._clock = clock

        self._states = {
            pid: initial_state(pid, interval)
            for pid, interval in self._intervals.items()
        }
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []

    @property
    def provider_ids(self) -> list[str]:
        return list(self._adapters)

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def states(self) -> Mapping[str, AdapterState]:
        """Read-only copy of every adapter's polling state."""
        with self._state_lock:
            return MappingProxyType(dict(self._states))

    def _transition(
        self,
        provider_id: str,
        result: PollResult,
    ) -> tuple[AdapterState, AdapterState, PollResult]:
        """Apply a poll outcome to the provider's state.

        Returns:
            (previous state, new state, result with 'unchanged' set)
        """
        interval = self._intervals[provider_id]
        with self._state_lock:
            previous = self._states[provider_id]
            if result.success:
                if is_payload_unchanged(previous, result.payload_hash):
                    result = replace(result, unchanged=True)
                state = record_success(
                    previous, result.fetched_at, result.payload_hash, interval,
                )
            else:
                state = record_failure(
                    previous, result.fetched_at, str(result.error), interval, self.policy,
                )
            self._states[provider_id] = state

        if state.consecutive_failures:
            logger.info(
                "Next poll of %s in %.0fs after %d consecutive failures",
                provider_id,
                state.backoff_seconds,
                state.consecutive_failures,
            )
        return previous, state, result

    def _notify_state(self, previous: AdapterState, state: AdapterState) -> None:
        if previous.stale == state.stale:
            return
        if state.stale:
            logger.warning(
                "Provider %s is stale after %d consecutive failures",
                state.provider_id,
                state.consecutive_failures,
            )
        else:
            logger.info("Provider %s recovered", state.provider_id)
        if self._on_state_change is not None:
            self._on_state_change(state.provider_id, state)

    def poll_once(self, provider_id: str) -> PollResult | None:
        """Run one synchronous poll cycle for a provider.

        Returns:
            The delivered PollResult, or None if the scheduler was stopped
            while the poll was in flight (the result is discarded).

        Raises:
            KeyError: If the provider is unknown
        """
        adapter = self._adapters[provider_id]
        result = adapter.poll()

        previous, state, result = self._transition(provider_id, result)

        if self._stop_event.is_set():
            logger.info("Discarding result of %s received after stop", provider_id)
            return None

        # Stale flag first so a recovering provider is merged as fresh
        self._notify_state(previous, state)
        try:
            self._on_result(provider_id, result)
        except Exception:
            self._forget_payload(provider_id)
            raise
        return result

    def _forget_payload(self, provider_id: str) -> None:
        """Drop the stored payload hash so the next poll is merged in full."""
        with self._state_lock:
            state = self._states[provider_id]
            self._states[provider_id] = replace(state, last_payload_hash=None)

    def _fail_cycle(self, provider_id: str, error: Exception) -> None:
        """Count an unexpected exception as a failed poll."""
        result = PollResult(
            provider_id=provider_id,
            fetched_at=self._clock(),
            error=FetchError(provider_id, f"Unexpected error: {error}", kind="internal"),
        )
        previous, state, _ = self._transition(provider_id, result)
        if not self._stop_event.is_set():
            self._notify_state(previous, state)

    def _run_worker(self, provider_id: str) -> None:
        logger.info("Worker for %s started", provider_id)
        while not self._stop_event.is_set():
            try:
                self.poll_once(provider_id)
            except Exception as e:
                logger.exception("Poll cycle of %s failed", provider_id)
                self._fail_cycle(provider_id, e)

            with self._state_lock:
                delay = self._states[provider_id].backoff_seconds
            if self._stop_event.wait(delay):
                break
        logger.info("Worker for %s stopped", provider_id)

    def _run_maintenance(self) -> None:
        while not self._stop_event.wait(self._maintenance_interval):
            try:
                self._maintenance()
            except Exception:
                logger.exception("Maintenance pass failed")

    def start(self) -> None:
        """Start one worker per adapter, plus the maintenance thread."""
        if self._threads:
            raise RuntimeError("Scheduler already started")

        for provider_id in self._adapters:
            self._threads.append(threading.Thread(
                target=self._run_worker,
                args=(provider_id,),
                name=f"poll-{provider_id}",
                daemon=True,
            ))

        if self._maintenance is not None:
            self._threads.append(threading.Thread(
                target=self._run_maintenance,
                name="maintenance",
                daemon=True,
            ))

        for thread in self._threads:
            thread.start()

        logger.info("Scheduler started with %d providers", len(self._adapters))

    def stop(self, timeout: float = 5.0) -> None:
        """Stop all workers and close adapter sessions.

        Polls already merging complete; results arriving later are
        discarded.
        """
        self._stop_event.set()

        for thread in self._threads:
            thread.join(timeout)
            if thread.is_alive():
                logger.warning("Thread %s did not stop within %.1fs", thread.name, timeout)

        for adapter in self._adapters.values():
            adapter.close()

        logger.info("Scheduler stopped")
