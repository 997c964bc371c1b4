from __future__ import annotations

import pytest

from gee_analysis.geometry.aoi import (
    admin_aoi,
    area_from_bounds,
    drawn_aoi,
    geometry_from_geojson,
    parse_aoi_text,
)
from gee_analysis.models import Bounds


def test_admin_aoi_from_feature_collection(region_geojson) -> None:
    aoi = admin_aoi(region_geojson, "Kota Bandung")

    assert aoi.kind == "admin"
    assert aoi.name == "Kota Bandung"
    assert aoi.bounds == Bounds(west=107.5, south=-7.0, east=107.8, north=-6.8)
    assert aoi.geojson == region_geojson
    assert 700 < aoi.area_km2 < 750
    lat, lng = aoi.bounds.center
    assert lat == pytest.approx(-6.9)
    assert lng == pytest.approx(107.65)


def test_geometry_from_plain_geometry_and_feature() -> None:
    polygon = {"type": "Polygon", "coordinates": [[[0, 0], [0, 1], [1, 1], [1, 0], [0, 0]]]}
    assert geometry_from_geojson(polygon).bounds == (0.0, 0.0, 1.0, 1.0)
    feature = {"type": "Feature", "geometry": polygon, "properties": {}}
    assert geometry_from_geojson(feature).area == pytest.approx(1.0)


@pytest.mark.parametrize(
    "value",
    [
        [],
        {"type": "FeatureCollection", "features": []},
        {"type": "Feature", "geometry": None},
        {"type": "Polygon"},
    ],
)
def test_geometry_from_geojson_rejects_unusable_input(value) -> None:
    with pytest.raises(ValueError):
        geometry_from_geojson(value)


def test_area_from_bounds_shrinks_with_latitude() -> None:
    equator = area_from_bounds(Bounds(west=0, south=-0.5, east=1, north=0.5))
    north = area_from_bounds(Bounds(west=0, south=59.5, east=1, north=60.5))

    assert equator == pytest.approx(12309, rel=0.01)
    assert north == pytest.approx(equator / 2, rel=0.02)


def test_drawn_aoi_from_wkt_and_geojson_text() -> None:
    from_wkt = drawn_aoi(parse_aoi_text("POLYGON((0 0,0 2,2 2,2 0,0 0))"), name="Field")
    assert from_wkt.kind == "drawn"
    assert from_wkt.bounds.as_payload() == {"west": 0.0, "south": 0.0, "east": 2.0, "north": 2.0}
    assert from_wkt.geojson["geometry"]["type"] == "Polygon"

    geom = parse_aoi_text(
        '{"type":"Feature","geometry":{"type":"Polygon","coordinates":[[[0,0],[0,1],[1,1],[1,0],[0,0]]]}}'
    )
    assert geom.area == pytest.approx(1.0)


@pytest.mark.parametrize(
    "text",
    ["", "   ", "POINT (1 2)", "POLYGON((0 0,1 1,1 0,0 1,0 0))", "not a geometry", "{broken json"],
)
def test_parse_aoi_text_rejects_bad_input(text) -> None:
    with pytest.raises(ValueError):
        parse_aoi_text(text)
