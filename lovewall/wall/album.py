"""Flip-book pagination over approved couples."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from .carousel import NameSearch
from .feeds import WallEntry


@dataclass(frozen=True, slots=True)
class AlbumPage:
    number: int
    total_pages: int
    entries: tuple[WallEntry, ...]
    total_entries: int

    @property
    def has_next(self) -> bool:
        return self.number < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.number > 1

    @property
    def next_page(self) -> int | None:
        return self.number + 1 if self.has_next else None

    @property
    def prev_page(self) -> int | None:
        return self.number - 1 if self.has_prev else None


class Album:
    def __init__(self, entries: Sequence[WallEntry], *, page_size: int = 6) -> None:
        self.entries = list(entries)
        self.page_size = max(int(page_size), 1)
        self.search_state = NameSearch([entry.names for entry in self.entries])

    @property
    def total_pages(self) -> int:
        return max(math.ceil(len(self.entries) / self.page_size), 1)

    def page(self, number: int) -> AlbumPage:
        """Return page ``number`` (1-based), clamped into range."""
        clamped = min(max(number, 1), self.total_pages)
        start = (clamped - 1) * self.page_size
        return AlbumPage(
            number=clamped,
            total_pages=self.total_pages,
            entries=tuple(self.entries[start : start + self.page_size]),
            total_entries=len(self.entries),
        )

    def page_for_position(self, position: int) -> int:
        return position // self.page_size + 1

    def page_for_slug(self, slug: str) -> int | None:
        for position, entry in enumerate(self.entries):
            if entry.slug == slug:
                return self.page_for_position(position)
        return None

    def find(self, query: str | None, *, match: int = 1) -> int | None:
        """Page holding the ``match``-th name match for ``query``."""
        if self.search_state.search(query) is None:
            return None
        position = self.search_state.select(match)
        if position is None:
            return None
        return self.page_for_position(position)
