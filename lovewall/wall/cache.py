"""Per-view payload caches with TTL expiry and broadcast invalidation."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Protocol

LOGGER = logging.getLogger(__name__)

APPROVED_COUPLES_KEY = "approved-couples"
APPROVALS_CHANNEL = "couple-approvals"

Clock = Callable[[], float]
Listener = Callable[[str], None]


class Cache(Protocol):
    """Cache interface shared by the wall, carousel and album views."""

    def get(self, key: str) -> Any | None:
        """Return the payload for ``key`` if present and fresh."""

    def set(self, key: str, payload: Any) -> None:
        """Store ``payload`` stamped with the current time."""

    def invalidate(self, key: str) -> None:
        """Drop ``key`` so the next read misses."""


@dataclass(slots=True)
class CacheEntry:
    payload: Any
    fetched_at: float


class InvalidationBus:
    """Explicit publish/subscribe channel for invalidation signals.

    Delivery is best effort: a listener that raises is logged and skipped,
    and anything not subscribed simply waits for its own TTL to lapse.
    """

    def __init__(self, name: str = APPROVALS_CHANNEL) -> None:
        self.name = name
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return _unsubscribe

    def publish(self, key: str) -> int:
        """Deliver ``key`` to every listener and return how many received it."""
        delivered = 0
        for listener in list(self._listeners):
            try:
                listener(key)
            except Exception:
                LOGGER.exception("Invalidation listener failed on %s", self.name)
                continue
            delivered += 1
        LOGGER.debug("Published %s on %s to %s listeners", key, self.name, delivered)
        return delivered

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


class DataCache(Cache):
    """In-memory cache whose entries are fresh while younger than ``max_age``."""

    def __init__(self, max_age: float, *, clock: Clock = time.monotonic) -> None:
        self.max_age = max_age
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str) -> Any | None:
        if self.max_age <= 0:
            return None
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.fetched_at >= self.max_age:
            self._entries.pop(key, None)
            return None
        return entry.payload

    def set(self, key: str, payload: Any) -> None:
        if self.max_age <= 0:
            return
        self._entries[key] = CacheEntry(payload=payload, fetched_at=self._clock())

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def fetched_at(self, key: str) -> float | None:
        entry = self._entries.get(key)
        return entry.fetched_at if entry else None

    def listen(self, bus: InvalidationBus) -> Callable[[], None]:
        """Invalidate keys published on ``bus``; returns the unsubscribe hook."""
        return bus.subscribe(self.invalidate)
