"""Provider Adapter base - Imperative Shell.

Common HTTP handling for every provider adapter: request with a bounded
timeout, status and envelope checks, payload hashing, and splitting of
structurally broken entries into per-record rejections.

Concrete adapters (usgs_client, emsc_client, afad_client,
kandilli_client) only describe their query parameters and payload shape.
"""

import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import requests

from quakefeed.core.config import ProviderConfig
from quakefeed.core.earthquake import RawCandidate, Rejection


logger = logging.getLogger(__name__)


class FetchError(Exception):
    """A provider poll failed: transport error, timeout or bad status.

    Attributes:
        provider_id: Provider that failed
        kind: 'transport', 'timeout', 'status', 'parse' or 'internal'
        status_code: HTTP status if a response was received
    """

    def __init__(
        self,
        provider_id: str,
        message: str,
        kind: str = "transport",
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.provider_id = provider_id
        self.kind = kind
        self.status_code = status_code


class ParseError(FetchError):
    """The response could not be read as the provider's envelope at all."""

    def __init__(self, provider_id: str, message: str) -> None:
        super().__init__(provider_id, message, kind="parse")


@dataclass(frozen=True)
class PollResult:
    """Outcome of one provider poll.

    Either candidates (success) or an error, never both.

    Attributes:
        provider_id: Provider that was polled
        fetched_at: When the response was received
        candidates: Raw candidates in payload order
        rejections: Entries too broken to become candidates
        payload_hash: SHA-256 of the raw response body
        error: FetchError on failure
        unchanged: True if the payload matches the previous successful one
    """
    provider_id: str
    fetched_at: datetime
    candidates: tuple[RawCandidate, ...] = ()
    rejections: tuple[Rejection, ...] = field(default=())
    payload_hash: str | None = None
    error: FetchError | None = None
    unchanged: bool = False

    @property
    def success(self) -> bool:
        """True if the poll produced a usable payload."""
        return self.error is None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ProviderAdapter:
    """Base class for HTTP provider adapters.

    This is part of the imperative shell - it handles HTTP I/O.
    Adapters keep no state between polls besides the HTTP session.
    """

    provider_type = ""

    def __init__(
        self,
        provider: ProviderConfig,
        session: requests.Session | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        """Initialize adapter.

        Args:
            provider: Provider configuration
            session: HTTP session (created if not provided)
            clock: Returns the current UTC time
        """
        self.provider = provider
        self.session = session or requests.Session()
        self.clock = clock

    @property
    def provider_id(self) -> str:
        return self.provider.provider_id

    def build_params(self, now: datetime) -> dict[str, str]:
        """Build query parameters for one poll."""
        return {}

    def extract_entries(self, data: Any) -> list[Any]:
        """Return the list of event entries from a decoded payload.

        Raises:
            ParseError: If the envelope has an unexpected shape
        """
        raise NotImplementedError

    def to_candidate(self, entry: Any) -> RawCandidate:
        """Map one payload entry to a raw candidate.

        May raise KeyError, TypeError, IndexError or AttributeError for a
        structurally broken entry; the caller turns that into a rejection.
        """
        raise NotImplementedError

    def entry_id(self, entry: Any) -> str | None:
        """Best-effort record ID of an entry, for rejection messages."""
        return None

    def parse_payload(
        self,
        data: Any,
    ) -> tuple[list[RawCandidate], list[Rejection]]:
        """Split a decoded payload into candidates and rejections.

        Raises:
            FetchError: If the envelope has an unexpected shape or reports failure
        """
        candidates: list[RawCandidate] = []
        rejections: list[Rejection] = []

        for entry in self.extract_entries(data):
            try:
                candidates.append(self.to_candidate(entry))
            except (KeyError, TypeError, IndexError, AttributeError) as e:
                try:
                    record_id = self.entry_id(entry)
                except (KeyError, TypeError, IndexError, AttributeError):
                    record_id = None
                rejections.append(Rejection(
                    provider_id=self.provider_id,
                    provider_record_id=record_id,
                    reason=f"malformed entry: {type(e).__name__}: {e}",
                ))

        return candidates, rejections

    def _failure(self, now: datetime, error: FetchError) -> PollResult:
        logger.warning(
            "Poll of %s failed (%s): %s",
            self.provider_id,
            error.kind,
            error,
        )
        return PollResult(provider_id=self.provider_id, fetched_at=now, error=error)

    def poll(self) -> PollResult:
        """Fetch and parse the provider's current payload.

        This method performs HTTP I/O. It never raises for transport,
        status or envelope problems; those come back as PollResult.error.

        Returns:
            PollResult
        """
        now = self.clock()
        params = self.build_params(now)

        logger.info(
            "Polling %s",
            self.provider_id,
            extra={"provider": self.provider_id, "params": params},
        )

        try:
            response = self.session.get(
                self.provider.base_url,
                params=params,
                timeout=self.provider.timeout_seconds,
            )
        except requests.Timeout:
            return self._failure(now, FetchError(
                self.provider_id, "Request timed out", kind="timeout",
            ))
        except requests.RequestException as e:
            return self._failure(now, FetchError(self.provider_id, str(e)))

        # FDSN services answer 204 when the query window has no events
        if response.status_code == 204:
            return PollResult(
                provider_id=self.provider_id,
                fetched_at=now,
                payload_hash=hashlib.sha256(b"").hexdigest(),
            )

        if response.status_code != 200:
            return self._failure(now, FetchError(
                self.provider_id,
                f"HTTP {response.status_code}: {response.text[:200]}",
                kind="status",
                status_code=response.status_code,
            ))

        received_at = self.clock()
        payload_hash = hashlib.sha256(response.content).hexdigest()

        try:
            data = response.json()
        except ValueError as e:
            return self._failure(received_at, ParseError(
                self.provider_id, f"Response is not valid JSON: {e}",
            ))

        try:
            candidates, rejections = self.parse_payload(data)
        except FetchError as e:
            return self._failure(received_at, e)

        logger.info(
            "Fetched %d candidates from %s (%d malformed)",
            len(candidates),
            self.provider_id,
            len(rejections),
        )

        return PollResult(
            provider_id=self.provider_id,
            fetched_at=received_at,
            candidates=tuple(candidates),
            rejections=tuple(rejections),
            payload_hash=payload_hash,
        )

    def close(self) -> None:
        """Close the HTTP session."""
        self.session.close()


def format_query_time(value: datetime, utc_offset_hours: float = 0.0) -> str:
    """Format a UTC time for a provider query in the provider's offset."""
    local = value.astimezone(timezone(timedelta(hours=utc_offset_hours)))
    return local.strftime("%Y-%m-%dT%H:%M:%S")
