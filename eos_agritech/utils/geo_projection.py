"""
Geospatial projection utilities for field geometry.
"""
from typing import List, Sequence, Tuple
from pyproj import Transformer
from shapely.geometry import Polygon

from eos_agritech.domain.models import Coordinate


def get_utm_zone(longitude: float) -> int:
    """
    Calculate the UTM zone number from longitude.

    Args:
        longitude: Longitude in degrees

    Returns:
        UTM zone number (1-60)
    """
    return min(60, int((longitude + 180) / 6) + 1)


def get_utm_crs(longitude: float, latitude: float) -> str:
    """
    Get the appropriate UTM CRS (Coordinate Reference System) for a location.

    Args:
        longitude: Longitude in degrees
        latitude: Latitude in degrees

    Returns:
        EPSG code for the UTM zone
    """
    zone = get_utm_zone(longitude)
    # Northern hemisphere: EPSG:326XX, Southern hemisphere: EPSG:327XX
    hemisphere = "6" if latitude >= 0 else "7"
    return f"EPSG:32{hemisphere}{zone:02d}"


def open_ring(ring: Sequence[Sequence[float]]) -> List[Coordinate]:
    """Return the ring as (lon, lat) tuples without a duplicated closing point."""
    points = [(float(p[0]), float(p[1])) for p in ring]
    if len(points) > 1 and points[0] == points[-1]:
        points = points[:-1]
    return points


def ring_centroid(ring: Sequence[Sequence[float]]) -> Coordinate:
    """
    Mean of the distinct vertices of a ring.

    Args:
        ring: [lon, lat] pairs, closed or open

    Returns:
        (longitude, latitude) of the vertex mean
    """
    points = open_ring(ring)
    if not points:
        raise ValueError("Coordinates list cannot be empty")
    lon = sum(p[0] for p in points) / len(points)
    lat = sum(p[1] for p in points) / len(points)
    return (lon, lat)


def project_ring_to_meters(ring: Sequence[Sequence[float]]) -> List[Tuple[float, float]]:
    """
    Project a [lon, lat] ring to the UTM zone of its centroid.

    Args:
        ring: [lon, lat] pairs

    Returns:
        List of (x, y) coordinates in meters
    """
    points = open_ring(ring)
    if not points:
        raise ValueError("Coordinates list cannot be empty")

    lon, lat = ring_centroid(points)
    transformer = Transformer.from_crs(
        "EPSG:4326",  # WGS84 (lat/lon)
        get_utm_crs(lon, lat),
        always_xy=True  # Ensure (lon, lat) -> (x, y) order
    )
    return [transformer.transform(p_lon, p_lat) for p_lon, p_lat in points]


def calculate_area_ha(ring: Sequence[Sequence[float]]) -> float:
    """
    Area of a field ring in hectares, rounded to two decimals.

    The result does not depend on the winding direction or on whether the
    closing point is repeated. Rings with fewer than three distinct vertices
    have no area.

    Args:
        ring: [lon, lat] pairs

    Returns:
        Area in hectares
    """
    points = open_ring(ring) if ring else []
    if len(points) < 3:
        return 0.0

    polygon = Polygon(project_ring_to_meters(points))
    return round(abs(polygon.area) / 10_000, 2)
