"""Tests for the heart geometry engine."""

from __future__ import annotations

import pytest

from lovewall.wall import geometry
from lovewall.wall.geometry import (
    TILE_SIZE,
    clamp_size,
    generate_heart_points,
    is_point_in_heart,
)


def test_generation_is_deterministic():
    first = generate_heart_points(160, 160, 320)
    geometry._generate.cache_clear()
    second = generate_heart_points(160, 160, 320)

    assert first == second


def test_size_320_yields_more_than_ten_points():
    points = generate_heart_points(160, 160, 320)
    assert len(points) > 10


def test_indices_are_sequential_in_scan_order():
    points = generate_heart_points(0, 0, 400)

    assert [point.index for point in points] == list(range(len(points)))
    rows = [(point.y, point.x) for point in points]
    assert rows == sorted(rows)


def test_points_are_offset_by_centre():
    origin = generate_heart_points(200, 200, 400)
    shifted = generate_heart_points(300, 250, 400)

    assert len(origin) == len(shifted)
    for a, b in zip(origin, shifted):
        assert b.x - a.x == pytest.approx(100)
        assert b.y - a.y == pytest.approx(50)


def test_points_sit_on_the_tile_grid():
    size = 320
    for point in generate_heart_points(size / 2, size / 2, size):
        local_x = point.x
        local_y = point.y
        assert local_x % TILE_SIZE == 0
        assert local_y % TILE_SIZE == 0
        assert is_point_in_heart(local_x, local_y, size)


@pytest.mark.parametrize("size", [0, -20])
def test_non_positive_size_returns_empty(size):
    assert generate_heart_points(0, 0, size) == ()


def test_size_smaller_than_tile_returns_empty():
    assert generate_heart_points(5, 5, 10) == ()


def test_point_count_is_capped(monkeypatch):
    monkeypatch.setattr(geometry, "MAX_POINTS", 5)
    assert len(generate_heart_points(160, 160, 320)) == 5


def test_heart_membership_uses_implicit_curve():
    # The centre of the square is inside; the top corners are outside.
    assert is_point_in_heart(200, 200, 400)
    assert not is_point_in_heart(0, 0, 400)
    assert not is_point_in_heart(399, 0, 400)


@pytest.mark.parametrize(
    "width, expected",
    [
        (None, 320),
        ("", 320),
        ("abc", 320),
        ("100", 240),
        (500, 500),
        ("799.7", 799),
        (5000, 800),
    ],
)
def test_clamp_size(width, expected):
    assert clamp_size(width) == expected
