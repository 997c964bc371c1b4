from __future__ import annotations

import json
import math
from typing import Any, Mapping

from shapely import wkt
from shapely.geometry import mapping, shape
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from gee_analysis.models import AreaOfInterest, Bounds

KM_PER_DEGREE_LAT = 110.574
KM_PER_DEGREE_LON_EQUATOR = 111.320


def _shape(value: Any) -> BaseGeometry:
    try:
        return shape(value)
    except Exception as exc:
        raise ValueError(f"Invalid GeoJSON geometry: {exc}") from exc


def geometry_from_geojson(value: Any) -> BaseGeometry:
    """Parse a Geometry, Feature or FeatureCollection into one Shapely geometry."""

    if not isinstance(value, Mapping):
        raise ValueError("GeoJSON must be an object.")

    obj_type = str(value.get("type", "")).strip()
    if obj_type == "Feature":
        geometry = value.get("geometry")
        if not geometry:
            raise ValueError("GeoJSON feature has no geometry.")
        geom = _shape(geometry)
    elif obj_type == "FeatureCollection":
        geoms = []
        for feature in value.get("features", []) or []:
            geometry = feature.get("geometry") if isinstance(feature, Mapping) else None
            if geometry:
                geoms.append(_shape(geometry))
        if not geoms:
            raise ValueError("GeoJSON feature collection has no geometries.")
        geom = unary_union(geoms)
    else:
        geom = _shape(value)

    if geom.is_empty:
        raise ValueError("Region geometry is empty.")
    return geom


def parse_aoi_text(text: str) -> BaseGeometry:
    """Parse user-drawn AOI text (WKT or GeoJSON) into a polygonal geometry."""

    if not text or not text.strip():
        raise ValueError("AOI text is empty.")

    raw = text.strip()
    try:
        if raw.startswith("{"):
            geom = geometry_from_geojson(json.loads(raw))
        else:
            geom = wkt.loads(raw)
    except ValueError:
        raise
    except Exception as exc:
        raise ValueError(f"AOI could not be parsed: {exc}") from exc

    if geom.is_empty:
        raise ValueError("AOI geometry is empty.")
    if geom.geom_type not in {"Polygon", "MultiPolygon"}:
        raise ValueError("AOI must be a Polygon or MultiPolygon.")
    if not geom.is_valid:
        raise ValueError("AOI geometry is invalid.")
    return geom


def bounds_of(geom: BaseGeometry) -> Bounds:
    west, south, east, north = geom.bounds
    return Bounds(west=west, south=south, east=east, north=north)


def area_from_bounds(bounds: Bounds) -> float:
    """Approximate area in km² of a lon/lat rectangle."""
    mid_lat = math.radians((bounds.south + bounds.north) / 2.0)
    width_km = (bounds.east - bounds.west) * KM_PER_DEGREE_LON_EQUATOR * math.cos(mid_lat)
    height_km = (bounds.north - bounds.south) * KM_PER_DEGREE_LAT
    return round(abs(width_km * height_km), 2)


def admin_aoi(geojson: dict[str, Any], name: str) -> AreaOfInterest:
    bounds = bounds_of(geometry_from_geojson(geojson))
    return AreaOfInterest(
        kind="admin",
        name=name,
        bounds=bounds,
        area_km2=area_from_bounds(bounds),
        geojson=geojson,
    )


def drawn_aoi(geom: BaseGeometry, name: str = "Drawn AOI") -> AreaOfInterest:
    bounds = bounds_of(geom)
    return AreaOfInterest(
        kind="drawn",
        name=name,
        bounds=bounds,
        area_km2=area_from_bounds(bounds),
        geojson={"type": "Feature", "properties": {"name": name}, "geometry": mapping(geom)},
    )
