"""Auto-advancing carousel state with name search."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from .feeds import WallEntry

MIN_INTERVAL_MS = 2000

PAUSE_HOVER = "hover"
PAUSE_FOCUS = "focus"
PAUSE_HIDDEN = "hidden"
PAUSE_DIALOG = "dialog"
PAUSE_REASONS = frozenset({PAUSE_HOVER, PAUSE_FOCUS, PAUSE_HIDDEN, PAUSE_DIALOG})


@dataclass(frozen=True, slots=True)
class Slide:
    kind: str
    entry: WallEntry | None = None

    @property
    def is_photo(self) -> bool:
        return self.kind == "photo"


class AutoplayGate:
    """Tracks why autoplay is paused; it runs only when no reason is held."""

    def __init__(self) -> None:
        self._reasons: set[str] = set()

    def pause(self, reason: str) -> None:
        if reason not in PAUSE_REASONS:
            raise ValueError(f"Unknown pause reason: {reason!r}")
        self._reasons.add(reason)

    def resume(self, reason: str) -> None:
        self._reasons.discard(reason)

    @property
    def reasons(self) -> frozenset[str]:
        return frozenset(self._reasons)

    @property
    def is_open(self) -> bool:
        return not self._reasons


class NameSearch:
    """Case-insensitive substring search that cycles through its matches."""

    def __init__(self, names: Sequence[str | None]) -> None:
        self._names = [(name or "").lower() for name in names]
        self.query = ""
        self.matches: list[int] = []
        self.position = 0

    def search(self, query: str | None) -> int | None:
        """Match ``query`` and return the first matching position, if any."""
        self.query = (query or "").strip()
        self.position = 0
        needle = self.query.lower()
        if not needle:
            self.matches = []
            return None
        self.matches = [i for i, name in enumerate(self._names) if needle in name]
        return self.current()

    def current(self) -> int | None:
        if not self.matches:
            return None
        return self.matches[self.position]

    def step(self, direction: int) -> int | None:
        if not self.matches:
            return None
        self.position = (self.position + direction) % len(self.matches)
        return self.matches[self.position]

    def next_match(self) -> int | None:
        return self.step(1)

    def previous_match(self) -> int | None:
        return self.step(-1)

    def select(self, match_number: int) -> int | None:
        """Jump to the ``match_number``-th match (1-based, wraps around)."""
        if not self.matches:
            return None
        self.position = (max(match_number, 1) - 1) % len(self.matches)
        return self.matches[self.position]

    @property
    def label(self) -> str:
        if not self.query:
            return ""
        if not self.matches:
            return "No matches"
        return f"Matches: {self.position + 1}/{len(self.matches)}"


class Carousel:
    """Horizontal slide sequence over approved couples, oldest first."""

    def __init__(
        self,
        entries: Iterable[WallEntry],
        *,
        interval_ms: int = 4500,
        show_cta: bool = True,
    ) -> None:
        self.slides: list[Slide] = [Slide("cta")] if show_cta else []
        self.slides.extend(Slide("photo", entry) for entry in entries)
        self.interval_ms = max(MIN_INTERVAL_MS, int(interval_ms))
        self.index = 0
        self.gate = AutoplayGate()
        self.search_state = NameSearch(
            [slide.entry.names if slide.entry else None for slide in self.slides]
        )

    def __len__(self) -> int:
        return len(self.slides)

    @property
    def current(self) -> Slide | None:
        if not self.slides:
            return None
        return self.slides[self.index]

    @property
    def photo_count(self) -> int:
        return sum(1 for slide in self.slides if slide.is_photo)

    def jump(self, index: int) -> int:
        if not self.slides:
            self.index = 0
        else:
            self.index = index % len(self.slides)
        return self.index

    def next(self) -> int:
        return self.jump(self.index + 1)

    def prev(self) -> int:
        return self.jump(self.index - 1)

    def tick(self) -> bool:
        """Advance one slide if autoplay is not paused; report whether it moved."""
        if not self.gate.is_open or len(self.slides) < 2:
            return False
        self.next()
        return True

    def search(self, query: str | None) -> int | None:
        found = self.search_state.search(query)
        if found is not None:
            self.jump(found)
        return found

    def next_match(self) -> int | None:
        found = self.search_state.next_match()
        if found is not None:
            self.jump(found)
        return found

    def previous_match(self) -> int | None:
        found = self.search_state.previous_match()
        if found is not None:
            self.jump(found)
        return found

    def select_match(self, match_number: int) -> int | None:
        found = self.search_state.select(match_number)
        if found is not None:
            self.jump(found)
        return found
