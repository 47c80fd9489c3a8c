"""Heart silhouette geometry for the photo wall."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

TILE_SIZE = 20
MAX_POINTS = 1_000_000
MIN_SIZE = 240
MAX_SIZE = 800
DEFAULT_SIZE = 320


@dataclass(frozen=True, slots=True)
class HeartPoint:
    """A grid cell inside the heart, positioned in the caller's coordinates."""

    x: float
    y: float
    index: int


def generate_heart_points(
    center_x: float, center_y: float, size: float
) -> tuple[HeartPoint, ...]:
    """Return the grid points inside a heart inscribed in a ``size`` square.

    Cells are scanned row by row (top to bottom, left to right) and a cell is
    kept when its top-left corner satisfies the implicit heart curve. The scan
    order decides which positions fill first, so callers must not reorder it.
    """
    return _generate(float(center_x), float(center_y), float(size))


@lru_cache(maxsize=64)
def _generate(center_x: float, center_y: float, size: float) -> tuple[HeartPoint, ...]:
    if size <= 0:
        return ()

    grid = int(size // TILE_SIZE)
    origin_x = center_x - size / 2
    origin_y = center_y - size / 2
    points: list[HeartPoint] = []

    for row in range(grid):
        y = row * TILE_SIZE
        for col in range(grid):
            x = col * TILE_SIZE
            if not is_point_in_heart(x, y, size):
                continue
            points.append(HeartPoint(origin_x + x, origin_y + y, len(points)))
            if len(points) >= MAX_POINTS:
                return tuple(points)

    return tuple(points)


def is_point_in_heart(x: float, y: float, size: float) -> bool:
    """Test ``(x, y)`` against ``(x²+y²-1)³ - x²y³ <= 0`` in normalised space."""
    nx = (x / size) * 2 - 1
    ny = (y / size) * 2 - 1
    x2 = nx * nx
    y2 = ny * ny
    return (x2 + y2 - 1) ** 3 - x2 * ny**3 <= 0


def clamp_size(
    width: float | str | None,
    *,
    minimum: int = MIN_SIZE,
    maximum: int = MAX_SIZE,
    fallback: int = DEFAULT_SIZE,
) -> int:
    """Turn a measured viewport width into a heart size within sane bounds."""
    if width is None or width == "":
        measured = fallback
    else:
        try:
            measured = int(float(width))
        except (TypeError, ValueError):
            measured = fallback
    return max(minimum, min(maximum, measured))
