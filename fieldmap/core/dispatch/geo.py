"""
Viewport fitting over marker coordinates.

Pure functions only: the same input always yields the same region, and an
empty input yields ``None`` so callers leave the current viewport alone.

Regions use the center + span convention of mobile map SDKs
(``latitude_delta`` / ``longitude_delta`` are the full visible span in
degrees).  Padding is expressed in screen points and converted to degrees
through the viewport size, so overlay panels of different heights can
push markers away from the top and bottom independently.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from fieldmap.core.dispatch.domain import Coordinate

__all__ = [
    "BoundingBox", "EdgePadding", "ViewportSize", "Region",
    "bounding_box", "compute_fit_region", "region_around", "zoom_to_delta",
    "DEFAULT_MIN_DELTA",
]

DEFAULT_MIN_DELTA = 0.01  # degrees, ~1 km

# Never let padding eat more than this share of an axis
_MAX_PADDING_SHARE = 0.9

_MAX_LATITUDE = 90.0
_MAX_LATITUDE_DELTA = 180.0
_MAX_LONGITUDE_DELTA = 360.0


@dataclass(frozen=True)
class BoundingBox:
    min_latitude: float
    min_longitude: float
    max_latitude: float
    max_longitude: float

    @property
    def center(self) -> Coordinate:
        return Coordinate(
            (self.min_latitude + self.max_latitude) / 2,
            (self.min_longitude + self.max_longitude) / 2,
        )

    @property
    def latitude_span(self) -> float:
        return self.max_latitude - self.min_latitude

    @property
    def longitude_span(self) -> float:
        return self.max_longitude - self.min_longitude


@dataclass(frozen=True)
class EdgePadding:
    top: float = 0.0
    right: float = 0.0
    bottom: float = 0.0
    left: float = 0.0


@dataclass(frozen=True)
class ViewportSize:
    width: float = 390.0
    height: float = 844.0


@dataclass(frozen=True)
class Region:
    latitude: float
    longitude: float
    latitude_delta: float
    longitude_delta: float

    @property
    def center(self) -> Coordinate:
        return Coordinate(self.latitude, self.longitude)

    @property
    def bounds(self) -> BoundingBox:
        half_lat = self.latitude_delta / 2
        half_lng = self.longitude_delta / 2
        return BoundingBox(
            self.latitude - half_lat,
            self.longitude - half_lng,
            self.latitude + half_lat,
            self.longitude + half_lng,
        )

    def contains(self, coordinate: Coordinate) -> bool:
        b = self.bounds
        return (
            b.min_latitude <= coordinate.latitude <= b.max_latitude
            and b.min_longitude <= coordinate.longitude <= b.max_longitude
        )


def bounding_box(coordinates: Iterable[Coordinate]) -> Optional[BoundingBox]:
    """Tightest min/max box around the coordinates, or None when there are none."""
    coords = list(coordinates)
    if not coords:
        return None
    lats = [c.latitude for c in coords]
    lngs = [c.longitude for c in coords]
    return BoundingBox(min(lats), min(lngs), max(lats), max(lngs))


def _inner_extent(total: float, lead: float, trail: float) -> tuple[float, float, float]:
    """Usable screen extent after padding, plus the (possibly scaled-down) paddings."""
    padding = lead + trail
    limit = total * _MAX_PADDING_SHARE
    if padding > limit and padding > 0:
        scale = limit / padding
        lead, trail = lead * scale, trail * scale
    return total - lead - trail, lead, trail


def compute_fit_region(
    coordinates: Sequence[Coordinate],
    padding: EdgePadding = EdgePadding(),
    viewport: ViewportSize = ViewportSize(),
    min_delta: float = DEFAULT_MIN_DELTA,
) -> Optional[Region]:
    """
    Smallest region showing every coordinate inside the padded viewport area.

    Returns None for an empty input.  A single coordinate (or a cluster
    narrower than ``min_delta``) gets ``min_delta`` of span so the map never
    zooms in without bound.
    """
    box = bounding_box(coordinates)
    if box is None:
        return None

    inner_w, left, right = _inner_extent(viewport.width, padding.left, padding.right)
    inner_h, top, bottom = _inner_extent(viewport.height, padding.top, padding.bottom)

    lat_span = max(box.latitude_span, min_delta)
    lng_span = max(box.longitude_span, min_delta)

    deg_per_point_y = lat_span / inner_h
    deg_per_point_x = lng_span / inner_w

    # Markers sit centered in the padded area, so the map center shifts
    # toward the heavier padding: north for a tall header, east for a wide
    # right panel.
    center = box.center
    latitude = center.latitude + (top - bottom) / 2 * deg_per_point_y
    latitude = max(-_MAX_LATITUDE, min(latitude, _MAX_LATITUDE))
    longitude = center.longitude + (right - left) / 2 * deg_per_point_x

    return Region(
        latitude=latitude,
        longitude=longitude,
        latitude_delta=min(deg_per_point_y * viewport.height, _MAX_LATITUDE_DELTA),
        longitude_delta=min(deg_per_point_x * viewport.width, _MAX_LONGITUDE_DELTA),
    )


def zoom_to_delta(zoom: float) -> float:
    """Approximate span for a web-mercator zoom level (zoom 15 ≈ 0.011°)."""
    return 360 / (2 ** zoom)


def region_around(coordinate: Coordinate, delta: float) -> Region:
    """Square region of ``delta`` degrees centered on a single point."""
    return Region(coordinate.latitude, coordinate.longitude, delta, delta)
