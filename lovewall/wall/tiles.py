"""Assignment of approved couples onto heart grid positions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Sequence, TypeVar

from .geometry import HeartPoint

DISPLAY_TOTAL = 1_000_000

T = TypeVar("T")


@dataclass(frozen=True)
class Tile(Generic[T]):
    point: HeartPoint
    entry: T | None = None

    @property
    def is_empty(self) -> bool:
        return self.entry is None


@dataclass(frozen=True)
class TileLayout(Generic[T]):
    """Rendered tiles plus the counters shown next to the wall."""

    tiles: tuple[Tile[T], ...]
    filled_count: int
    total_capacity: int
    display_total: int = DISPLAY_TOTAL

    @property
    def empty_count(self) -> int:
        return self.total_capacity - self.filled_count

    @property
    def spots_left(self) -> int:
        return max(self.display_total - self.filled_count, 0)

    @property
    def progress_percent(self) -> float:
        return calculate_progress(self.filled_count, self.display_total)

    @property
    def progress_text(self) -> str:
        return format_progress_text(self.filled_count, self.display_total)

    def tile_for(self, index: int) -> Tile[T] | None:
        """Re-resolve a hovered or selected scan index after a relayout."""
        if 0 <= index < len(self.tiles):
            return self.tiles[index]
        return None

    def popover(self, index: int) -> dict[str, Any] | None:
        """Read-only hover details for a filled tile."""
        tile = self.tile_for(index)
        if tile is None or tile.entry is None:
            return None
        entry = tile.entry
        wedding_date = getattr(entry, "wedding_date", None)
        return {
            "index": index,
            "names": getattr(entry, "names", ""),
            "wedding_date": wedding_date.isoformat() if wedding_date else None,
            "country": getattr(entry, "country", "") or None,
            "slug": getattr(entry, "slug", ""),
        }


def assign_tiles(
    entries: Sequence[T],
    points: Sequence[HeartPoint],
    *,
    display_total: int = DISPLAY_TOTAL,
) -> TileLayout[T]:
    """Pair the i-th point with the i-th entry; leftover points stay empty.

    ``entries`` must already be filtered to approved couples and ordered oldest
    first. Entries beyond the number of points are not placed on the wall.
    """
    filled = min(len(entries), len(points))
    tiles = tuple(
        Tile(point, entries[i] if i < filled else None)
        for i, point in enumerate(points)
    )
    return TileLayout(
        tiles=tiles,
        filled_count=filled,
        total_capacity=len(points),
        display_total=display_total,
    )


def calculate_progress(filled: int, total: int = DISPLAY_TOTAL) -> float:
    if total <= 0:
        return 100.0
    return min(filled / total * 100, 100.0)


def format_progress_text(filled: int, total: int = DISPLAY_TOTAL) -> str:
    return f"{filled:,} / {total:,} spots taken"
