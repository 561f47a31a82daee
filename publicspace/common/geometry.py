"""Geometry helpers: containment, nearest search, centroids and rounding."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping, Sequence

import shapely
from pyproj import Geod
from shapely.geometry import Point, shape
from shapely.errors import ShapelyError
from shapely.geometry.base import BaseGeometry

from publicspace.common.constants import COORDINATE_PRECISION
from publicspace.common.errors import GeometryTypeError, StageError
from publicspace.common.fs import read_json

_GEOD = Geod(ellps="WGS84")
_POLYGON_TYPES = {"Polygon", "MultiPolygon"}


@dataclass(frozen=True)
class BoroughPolygon:
    name: str
    geometry: BaseGeometry


@dataclass(frozen=True)
class ReferenceFeature:
    name: str | None
    location: tuple[float, float]
    properties: dict[str, Any] = field(default_factory=dict)


def point(lon: float, lat: float) -> Point:
    return Point(float(lon), float(lat))


def as_shape(geometry: BaseGeometry | Mapping[str, Any]) -> BaseGeometry:
    if isinstance(geometry, BaseGeometry):
        return geometry
    try:
        return shape(geometry)
    except (AttributeError, IndexError, KeyError, TypeError, ValueError, ShapelyError) as exc:
        raise GeometryTypeError(f"Unreadable geometry: {exc}") from exc


def point_from_geometry(geometry: Mapping[str, Any] | None) -> Point:
    kind = geometry.get("type") if isinstance(geometry, Mapping) else None
    if kind != "Point":
        raise GeometryTypeError(f"Expected Point geometry, got {kind}")
    coordinates = geometry.get("coordinates")
    if not isinstance(coordinates, (list, tuple)) or len(coordinates) < 2:
        raise GeometryTypeError("Point geometry needs two ordinates")
    try:
        return point(coordinates[0], coordinates[1])
    except (TypeError, ValueError) as exc:
        raise GeometryTypeError(f"Non-numeric Point ordinates: {coordinates[:2]}") from exc


def point_in_polygon(pt: Point, polygon: BaseGeometry | Mapping[str, Any]) -> bool:
    # covers() keeps boundary points inside, unlike contains()
    return as_shape(polygon).covers(pt)


def borough_for_point(pt: Point, boroughs: Sequence[BoroughPolygon]) -> str | None:
    for borough in boroughs:
        if point_in_polygon(pt, borough.geometry):
            return borough.name
    return None


def great_circle_km(a: Point, b: Point) -> float:
    _fwd, _back, metres = _GEOD.inv(a.x, a.y, b.x, b.y)
    return metres / 1000.0


def nearest_feature(
    pt: Point,
    candidates: Sequence[ReferenceFeature],
    distance_fn: Callable[[Point, Point], float] = great_circle_km,
) -> ReferenceFeature | None:
    nearest = None
    min_distance = float("inf")
    for candidate in candidates:
        distance = distance_fn(pt, point(*candidate.location))
        # strict comparison keeps the first candidate on ties
        if distance < min_distance:
            min_distance = distance
            nearest = candidate
    return nearest


def centroid(geometry: BaseGeometry | Mapping[str, Any]) -> dict[str, Any]:
    """Reduce a geometry to its representative point as a GeoJSON mapping.

    Polygon and MultiPolygon centroids are area weighted (GEOS semantics);
    Points are returned unchanged.
    """
    geom = as_shape(geometry)
    if geom.is_empty:
        raise GeometryTypeError("Cannot take the centroid of an empty geometry")
    representative = geom if geom.geom_type == "Point" else geom.centroid
    return {"type": "Point", "coordinates": [representative.x, representative.y]}


def round_coordinates(coords: Any, precision: int = COORDINATE_PRECISION) -> Any:
    if isinstance(coords, (list, tuple)):
        return [round_coordinates(item, precision) for item in coords]
    if isinstance(coords, bool) or coords is None:
        return coords
    return round(float(coords), precision)


def round_geometry(geometry: Mapping[str, Any], precision: int = COORDINATE_PRECISION) -> dict[str, Any]:
    return {
        "type": geometry["type"],
        "coordinates": round_coordinates(geometry["coordinates"], precision),
    }


def _load_feature_collection(path: Path, label: str) -> list[dict]:
    if not path.exists():
        raise StageError(f"Missing {label} reference file: {path}")
    payload = read_json(path)
    if not isinstance(payload, dict) or payload.get("type") != "FeatureCollection":
        raise StageError(f"{label} reference file is not a FeatureCollection: {path}")
    return list(payload.get("features") or [])


def load_boroughs(path: Path, name_property: str) -> list[BoroughPolygon]:
    boroughs: list[BoroughPolygon] = []
    for feature in _load_feature_collection(path, "borough"):
        geometry = feature.get("geometry") or {}
        name = (feature.get("properties") or {}).get(name_property)
        if not name or geometry.get("type") not in _POLYGON_TYPES:
            continue
        geom = as_shape(geometry)
        shapely.prepare(geom)
        boroughs.append(BoroughPolygon(name=str(name), geometry=geom))
    return boroughs


def load_reference_features(path: Path, name_property: str) -> list[ReferenceFeature]:
    references: list[ReferenceFeature] = []
    for feature in _load_feature_collection(path, "reference"):
        geometry = feature.get("geometry")
        if not geometry:
            continue
        try:
            representative = centroid(geometry)
        except GeometryTypeError:
            continue
        lon, lat = representative["coordinates"][:2]
        properties = dict(feature.get("properties") or {})
        references.append(
            ReferenceFeature(name=properties.get(name_property), location=(lon, lat), properties=properties)
        )
    return references
