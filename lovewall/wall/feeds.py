"""Approved-couple feeds consumed by the wall, carousel and album."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any, Callable, Iterable, Mapping, Sequence

from .cache import APPROVED_COUPLES_KEY, Clock, DataCache, InvalidationBus

LOGGER = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class FeedFetchError(RuntimeError):
    """Raised by fetchers when the record store cannot be read."""


@dataclass(frozen=True, slots=True)
class WallEntry:
    """Normalised couple payload; every field is present and typed."""

    id: int
    slug: str
    names: str
    status: str
    photo_url: str
    thumb_url: str
    created_at: datetime
    wedding_date: date | None = None
    country: str = ""
    story: str = ""

    @property
    def is_approved(self) -> bool:
        return self.status == "approved"

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any] | Any) -> "WallEntry":
        def _peek(attr: str) -> Any:
            if isinstance(payload, Mapping):
                return payload.get(attr)
            return getattr(payload, attr, None)

        raw_id = _peek("id")
        try:
            identifier = int(raw_id)
        except (TypeError, ValueError):
            identifier = 0

        return cls(
            id=identifier,
            slug=str(_peek("slug") or ""),
            names=str(_peek("names") or "").strip(),
            status=str(_peek("status") or "pending").strip().lower(),
            photo_url=str(_peek("photo_url") or ""),
            thumb_url=str(_peek("thumb_url") or _peek("photo_url") or ""),
            created_at=_coerce_datetime(_peek("created_at")),
            wedding_date=_coerce_date(_peek("wedding_date")),
            country=str(_peek("country") or ""),
            story=str(_peek("story") or ""),
        )


def approved_in_wall_order(payloads: Iterable[Mapping[str, Any] | Any]) -> list[WallEntry]:
    """Normalise, keep approved couples only, and order oldest first."""
    entries = (WallEntry.from_payload(item) for item in payloads)
    approved = [entry for entry in entries if entry.is_approved]
    approved.sort(key=lambda entry: (entry.created_at, entry.id))
    return approved


@dataclass(frozen=True, slots=True)
class FetchTicket:
    generation: int
    issued_at: float


@dataclass(slots=True)
class FeedState:
    entries: list[WallEntry] = field(default_factory=list)
    total: int = 0
    last_error: str | None = None
    loaded: bool = False


class ApprovedFeed:
    """Cache-backed reader of the approved list for one view.

    Each view owns its feed (and TTL). Fetches issued later supersede earlier
    ones; a closed feed drops every completion and stops polling.
    """

    def __init__(
        self,
        fetch: Callable[[], Sequence[Mapping[str, Any] | Any]],
        cache: DataCache,
        *,
        key: str = APPROVED_COUPLES_KEY,
        poll_seconds: float = 60,
        bus: InvalidationBus | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self._fetch = fetch
        self.cache = cache
        self.key = key
        self.poll_seconds = poll_seconds
        self._clock = clock
        self._generation = 0
        self._closed = False
        self._last_poll: float | None = None
        self._unsubscribe = cache.listen(bus) if bus is not None else None
        self.state = FeedState()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def last_error(self) -> str | None:
        return self.state.last_error

    def read(self) -> list[WallEntry]:
        """Serve cached entries, fetching through the store on a miss."""
        if self._closed:
            return list(self.state.entries)

        cached = self.cache.get(self.key)
        if cached is not None:
            self.state.entries = list(cached)
            self.state.total = len(cached)
            self.state.loaded = True
            return list(cached)

        ticket = self.begin()
        try:
            payload = self._fetch()
        except Exception as exc:
            self.fail(ticket, exc)
            return list(self.state.entries)

        self.complete(ticket, payload)
        return list(self.state.entries)

    def begin(self) -> FetchTicket:
        """Issue a ticket; it supersedes every earlier outstanding ticket."""
        self._generation += 1
        self._last_poll = self._clock()
        return FetchTicket(generation=self._generation, issued_at=self._last_poll)

    def is_current(self, ticket: FetchTicket) -> bool:
        return not self._closed and ticket.generation == self._generation

    def complete(
        self, ticket: FetchTicket, payload: Sequence[Mapping[str, Any] | Any]
    ) -> bool:
        """Apply a fetch result unless a newer fetch or ``close`` superseded it."""
        if not self.is_current(ticket):
            LOGGER.debug(
                "Dropping stale feed response %s (current %s)",
                ticket.generation,
                self._generation,
            )
            return False

        entries = approved_in_wall_order(payload)
        self.cache.set(self.key, entries)
        self.state.entries = entries
        self.state.total = len(entries)
        self.state.last_error = None
        self.state.loaded = True
        return True

    def fail(self, ticket: FetchTicket, exc: BaseException) -> None:
        """Record a fetch failure, keeping whatever was served before."""
        if not self.is_current(ticket):
            return
        LOGGER.warning("Approved feed fetch failed: %s", exc)
        self.state.last_error = str(exc) or exc.__class__.__name__
        self.state.loaded = True

    def refresh(self) -> list[WallEntry]:
        """Drop the cached copy and read again."""
        self.cache.invalidate(self.key)
        return self.read()

    def poll_due(self) -> bool:
        if self._closed:
            return False
        if self._last_poll is None:
            return True
        return self._clock() - self._last_poll >= self.poll_seconds

    def poll(self) -> list[WallEntry] | None:
        """Read once if the poll interval has elapsed; ``None`` when not due."""
        if not self.poll_due():
            return None
        self._last_poll = self._clock()
        return self.read()

    def close(self) -> None:
        """Cancel outstanding fetches and stop listening for invalidations."""
        if self._closed:
            return
        self._closed = True
        self._generation += 1
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None


def _coerce_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return _EPOCH
    else:
        return _EPOCH

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _coerce_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value:
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None
