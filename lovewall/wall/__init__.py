"""Layout and view-state helpers for the public photo wall."""

from .album import Album, AlbumPage
from .cache import APPROVED_COUPLES_KEY, DataCache, InvalidationBus
from .carousel import AutoplayGate, Carousel, NameSearch
from .feeds import ApprovedFeed, FeedFetchError, WallEntry, approved_in_wall_order
from .geometry import HeartPoint, clamp_size, generate_heart_points
from .tiles import Tile, TileLayout, assign_tiles

__all__ = [
    "APPROVED_COUPLES_KEY",
    "Album",
    "AlbumPage",
    "ApprovedFeed",
    "AutoplayGate",
    "Carousel",
    "DataCache",
    "FeedFetchError",
    "HeartPoint",
    "InvalidationBus",
    "NameSearch",
    "Tile",
    "TileLayout",
    "WallEntry",
    "approved_in_wall_order",
    "assign_tiles",
    "clamp_size",
    "generate_heart_points",
]
