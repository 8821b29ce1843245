"""
Polygon import/export helpers.

Provides utilities for:
- Cleaning user coordinates to closed 2D rings
- Extracting polygon rings from GeoJSON and KML documents
- Building the GeoJSON geometry sent to the EOS API
"""
import json
import logging
import xml.etree.ElementTree as ET
from typing import Any, Dict, Iterable, List, Sequence

from pydantic import BaseModel

from eos_agritech.domain.models import Coordinate, PolygonData
from eos_agritech.utils.geo_projection import calculate_area_ha

logger = logging.getLogger(__name__)


class PolygonError(ValueError):
    """Raised for malformed polygons or unreadable polygon files."""


class PolygonOption(BaseModel):
    """One polygon found in an imported file."""
    id: str
    label: str
    coordinates: List[List[float]]
    area_ha: float


def clean_coordinates(coords: Iterable[Sequence[Any]]) -> List[Coordinate]:
    """
    Force coordinates to 2D (lon, lat) floats, dropping elevation values.

    Raises:
        PolygonError: If the ring is not a list or a coordinate is not a
            numeric pair in range
    """
    if not isinstance(coords, (list, tuple)):
        raise PolygonError(f"Invalid coordinate ring: {coords!r}")
    cleaned = []
    for coord in coords:
        if not isinstance(coord, (list, tuple)) or len(coord) < 2:
            raise PolygonError(f"Invalid coordinate: {coord!r}")
        try:
            lon, lat = float(coord[0]), float(coord[1])
        except (TypeError, ValueError):
            raise PolygonError(f"Invalid coordinate: {coord!r}")
        if not (-180 <= lon <= 180 and -90 <= lat <= 90):
            raise PolygonError(f"Coordinate out of range: {coord!r}")
        cleaned.append((lon, lat))
    return cleaned


def close_ring(ring: Sequence[Coordinate]) -> List[Coordinate]:
    """Append the first point when the ring is not already closed."""
    points = list(ring)
    if points and points[0] != points[-1]:
        points.append(points[0])
    return points


def extract_polygon_rings(geojson: Dict[str, Any]) -> List[List[Coordinate]]:
    """
    Collect the outer rings of every polygon in a GeoJSON object.

    Handles FeatureCollection, Feature, Polygon, MultiPolygon and
    GeometryCollection. Holes are ignored.
    """
    rings: List[List[Coordinate]] = []

    def push_from_geometry(geometry: Any):
        if not isinstance(geometry, dict):
            return
        kind = geometry.get("type")
        coordinates = geometry.get("coordinates")
        if kind == "Polygon" and isinstance(coordinates, list) and coordinates:
            rings.append(clean_coordinates(coordinates[0]))
        elif kind == "MultiPolygon" and isinstance(coordinates, list):
            for polygon in coordinates:
                if isinstance(polygon, list) and polygon:
                    rings.append(clean_coordinates(polygon[0]))
        elif kind == "GeometryCollection":
            for member in geometry.get("geometries") or []:
                push_from_geometry(member)

    kind = geojson.get("type") if isinstance(geojson, dict) else None
    if kind == "FeatureCollection":
        for feature in geojson.get("features") or []:
            if isinstance(feature, dict):
                push_from_geometry(feature.get("geometry"))
    elif kind == "Feature":
        push_from_geometry(geojson.get("geometry"))
    else:
        push_from_geometry(geojson)

    return rings


def parse_geojson(text: str) -> List[List[Coordinate]]:
    """Parse GeoJSON text into polygon rings."""
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise PolygonError(f"Invalid GeoJSON: {e.msg}")
    return extract_polygon_rings(document)


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _parse_kml_coordinates(text: str) -> List[Coordinate]:
    raw = []
    for token in text.split():
        parts = token.split(",")
        if len(parts) < 2:
            raise PolygonError(f"Invalid KML coordinate: {token!r}")
        raw.append(parts)
    return clean_coordinates(raw)


def parse_kml(text: str) -> List[List[Coordinate]]:
    """
    Parse KML text into polygon rings.

    Every ``Polygon`` element contributes its outer boundary, including
    polygons nested in ``MultiGeometry``. Namespaced and plain KML are accepted.
    """
    try:
        root = ET.fromstring(text)
    except ET.ParseError:
        raise PolygonError("Invalid KML file. XML could not be parsed.")

    rings: List[List[Coordinate]] = []
    for element in root.iter():
        if _local_name(element.tag) != "Polygon":
            continue
        outer = next(
            (child for child in element.iter() if _local_name(child.tag) == "outerBoundaryIs"),
            None,
        )
        search_root = outer if outer is not None else element
        coords_elem = next(
            (child for child in search_root.iter() if _local_name(child.tag) == "coordinates"),
            None,
        )
        if coords_elem is None or not (coords_elem.text or "").strip():
            continue
        rings.append(_parse_kml_coordinates(coords_elem.text))

    return rings


def import_polygon_file(filename: str, content: str) -> List[PolygonOption]:
    """
    Parse an uploaded KML or GeoJSON file into polygon options.

    Rings are closed and the options are sorted by area, largest first.

    Args:
        filename: Original file name, used to pick the parser
        content: File content as text

    Returns:
        Polygon options, largest first

    Raises:
        PolygonError: On unsupported formats or files without polygons
    """
    lower = filename.lower()
    if lower.endswith(".kml"):
        rings, prefix = parse_kml(content), "kml"
    elif lower.endswith((".geojson", ".json")):
        rings, prefix = parse_geojson(content), "gj"
    else:
        raise PolygonError("Unsupported file format. Use .kml, .geojson or .json")

    rings = [ring for ring in rings if len(set(ring)) >= 3]
    if not rings:
        raise PolygonError(f"No valid polygon found in {filename}")

    options = []
    for i, ring in enumerate(rings):
        closed = close_ring(ring)
        options.append(PolygonOption(
            id=f"{prefix}-{i}",
            label=f"Polygon {i + 1}",
            coordinates=[list(p) for p in closed],
            area_ha=calculate_area_ha(closed),
        ))

    options.sort(key=lambda option: option.area_ha, reverse=True)
    logger.info(f"Imported {len(options)} polygon(s) from {filename}")
    return options


def polygon_to_geojson(ring: Sequence[Sequence[float]]) -> Dict[str, Any]:
    """GeoJSON Polygon geometry for a ring, closed if necessary."""
    closed = close_ring(clean_coordinates(ring))
    return {"type": "Polygon", "coordinates": [[list(p) for p in closed]]}


def to_polygon_data(ring: Sequence[Sequence[float]], source: str) -> PolygonData:
    """Build the PolygonData record for a ring."""
    geometry = polygon_to_geojson(ring)
    closed = geometry["coordinates"][0]
    return PolygonData(
        geojson=json.dumps(geometry, indent=2),
        coordinates=closed,
        source=source,
        area_ha=calculate_area_ha(closed),
    )


def build_geometry(polygon: PolygonData) -> Dict[str, Any]:
    """
    GeoJSON geometry to send to the EOS API.

    Uses the coordinate ring when it has at least four points, otherwise the
    stored GeoJSON text (Polygon, Feature or FeatureCollection).

    Raises:
        PolygonError: If neither source yields a polygon
    """
    if len(polygon.coordinates) >= 4:
        return polygon_to_geojson(polygon.coordinates)

    if polygon.geojson:
        try:
            parsed = json.loads(polygon.geojson)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            if parsed.get("type") == "Feature":
                parsed = parsed.get("geometry")
            elif parsed.get("type") == "FeatureCollection":
                features = parsed.get("features") or [{}]
                parsed = features[0].get("geometry") if isinstance(features[0], dict) else None
        coordinates = parsed.get("coordinates") if isinstance(parsed, dict) else None
        if isinstance(coordinates, list) and coordinates and parsed.get("type") == "Polygon":
            return polygon_to_geojson(coordinates[0])

    raise PolygonError("Invalid polygon geometry")
