"""
Bounding box calculation module.

Turn a point of interest (or a camera viewport) into the rectangular region
requested from the tile store. Uses mercantile for tile math.
"""

import hashlib
import math
from dataclasses import dataclass
from typing import Iterator

import mercantile

# 1 degree of latitude is ~111.32 km everywhere on the globe
KM_PER_DEGREE_LATITUDE = 111.32

# Floor for cos(latitude) so the longitude offset stays finite near the poles
COS_LATITUDE_EPSILON = 1e-6
MAX_LATITUDE_FOR_COS = 89.9999

EARTH_RADIUS_KM = 6371.0
TILE_SIZE_AT_ZOOM_0 = 256.0

REGION_ID_PREFIX = "region_"


@dataclass(frozen=True)
class GeoPoint:
    """A WGS84 coordinate."""
    latitude: float
    longitude: float

    def __post_init__(self):
        if math.isnan(self.latitude) or not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"latitude out of range: {self.latitude}")
        if math.isnan(self.longitude) or not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"longitude out of range: {self.longitude}")

    def as_lng_lat(self) -> tuple[float, float]:
        """Return as (lon, lat), the GeoJSON ordering."""
        return (self.longitude, self.latitude)


@dataclass(frozen=True)
class CoordinateBounds:
    """
    Geographic bounds of a region.

    West may be greater than east: that is a span wrapping across the
    antimeridian, not an empty box.
    """
    southwest: GeoPoint
    northeast: GeoPoint

    def __post_init__(self):
        if self.southwest.latitude > self.northeast.latitude:
            raise ValueError(
                f"southwest latitude {self.southwest.latitude} is north of "
                f"northeast latitude {self.northeast.latitude}"
            )

    @property
    def west(self) -> float:
        return self.southwest.longitude

    @property
    def south(self) -> float:
        return self.southwest.latitude

    @property
    def east(self) -> float:
        return self.northeast.longitude

    @property
    def north(self) -> float:
        return self.northeast.latitude

    @property
    def crosses_antimeridian(self) -> bool:
        return self.west > self.east

    @property
    def width(self) -> float:
        """Longitude span in degrees, accounting for antimeridian wrap."""
        if self.crosses_antimeridian:
            return self.east - self.west + 360.0
        return self.east - self.west

    @property
    def height(self) -> float:
        """Latitude span in degrees."""
        return self.north - self.south

    def as_tuple(self) -> tuple[float, float, float, float]:
        """Return as (west, south, east, north)."""
        return (self.west, self.south, self.east, self.north)

    def to_polygon(self) -> list[tuple[float, float]]:
        """
        Closed (lon, lat) ring around the bounds: SW -> SE -> NE -> NW -> SW.
        """
        return [
            (self.west, self.south),
            (self.east, self.south),
            (self.east, self.north),
            (self.west, self.north),
            (self.west, self.south),
        ]

    @property
    def region_id(self) -> str:
        """Stable identifier for the tile region covering these bounds."""
        key = ",".join(f"{v:.6f}" for v in self.as_tuple())
        digest = hashlib.sha1(key.encode("utf-8")).hexdigest()[:16]
        return f"{REGION_ID_PREFIX}{digest}"

    def __iter__(self):
        yield self.west
        yield self.south
        yield self.east
        yield self.north


def _wrap_longitude(lon: float) -> float:
    if -180.0 <= lon <= 180.0:
        return lon
    return ((lon + 180.0) % 360.0) - 180.0


def _longitude_scale(latitude: float) -> float:
    clamped = max(-MAX_LATITUDE_FOR_COS, min(MAX_LATITUDE_FOR_COS, latitude))
    return max(COS_LATITUDE_EPSILON, abs(math.cos(math.radians(clamped))))


def _bounds_from_offsets(
    center: GeoPoint, lat_offset: float, lng_offset: float
) -> CoordinateBounds:
    south = max(-90.0, center.latitude - lat_offset)
    north = min(90.0, center.latitude + lat_offset)

    if 2 * lng_offset >= 360.0:
        west, east = -180.0, 180.0
    else:
        west = _wrap_longitude(center.longitude - lng_offset)
        east = _wrap_longitude(center.longitude + lng_offset)

    return CoordinateBounds(
        southwest=GeoPoint(latitude=south, longitude=west),
        northeast=GeoPoint(latitude=north, longitude=east),
    )


def calculate_bounds_for_radius(center: GeoPoint, radius_km: float) -> CoordinateBounds:
    """
    Calculate the bounding box of a radius around a center point.

    Uses the equirectangular approximation, which is plenty for the few-km
    radii used around events:
    - 1 degree latitude ~ 111.32 km
    - 1 degree longitude ~ 111.32 km * cos(latitude)

    Args:
        center: Center of the region
        radius_km: Radius in kilometers (>= 0). Zero gives a degenerate box
            on the center point.

    Returns:
        CoordinateBounds around the center. A box spilling over +/-180
        longitude comes back wrapped (west > east).
    """
    if math.isnan(radius_km) or radius_km < 0:
        raise ValueError(f"radius_km must be >= 0, got {radius_km}")

    lat_offset = radius_km / KM_PER_DEGREE_LATITUDE
    lng_offset = lat_offset / _longitude_scale(center.latitude)
    return _bounds_from_offsets(center, lat_offset, lng_offset)


def meters_per_pixel(latitude: float, zoom: float) -> float:
    """Web-Mercator ground resolution at a latitude and zoom level."""
    circumference = (
        2 * math.pi * EARTH_RADIUS_KM * 1000 * math.cos(math.radians(latitude))
    )
    return abs(circumference) / (TILE_SIZE_AT_ZOOM_0 * 2.0**zoom)


def calculate_viewport_bounds(
    center: GeoPoint, zoom: float, width_px: int, height_px: int
) -> CoordinateBounds:
    """
    Approximate the bounds visible in a map viewport.

    Args:
        center: Camera center
        zoom: Camera zoom level
        width_px: Viewport width in pixels
        height_px: Viewport height in pixels
    """
    if width_px < 0 or height_px < 0:
        raise ValueError(f"viewport size must be >= 0, got {width_px}x{height_px}")

    resolution = meters_per_pixel(center.latitude, zoom)
    half_width_m = (width_px / 2.0) * resolution
    half_height_m = (height_px / 2.0) * resolution

    meters_per_degree = KM_PER_DEGREE_LATITUDE * 1000
    lat_offset = half_height_m / meters_per_degree
    lng_offset = half_width_m / (meters_per_degree * _longitude_scale(center.latitude))
    return _bounds_from_offsets(center, lat_offset, lng_offset)


def iter_tiles_for_bounds(
    bounds: CoordinateBounds, min_zoom: int, max_zoom: int
) -> Iterator[mercantile.Tile]:
    """
    Iterate XYZ tiles covering the bounds over a zoom range.

    mercantile splits antimeridian-crossing boxes and clamps to the Web-Mercator
    latitude limits.
    """
    zooms = list(range(min_zoom, max_zoom + 1))
    return mercantile.tiles(*bounds.as_tuple(), zooms=zooms)


def count_tiles_for_bounds(
    bounds: CoordinateBounds, min_zoom: int = 0, max_zoom: int = 16
) -> int:
    """
    Count tiles needed for a region without keeping them all around.

    Useful for estimating the size of a download before requesting it.
    """
    return sum(1 for _ in iter_tiles_for_bounds(bounds, min_zoom, max_zoom))
