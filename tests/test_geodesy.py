import warnings

import numpy as np
import pytest
from pyproj import CRS, Transformer
from shapely.geometry import MultiPolygon, Polygon, box

from rsmove.errors import InvalidInput
from rsmove.geodesy import (
    as_polygon,
    dominant_utm_zone,
    polygon_area,
    reproject_polygon,
    utm_crs,
    utm_zone,
)


def _utm_square_in_degrees():
    """10 km x 10 km square in UTM 32N, west of the central meridian, expressed in lon/lat."""
    square = box(440_000, 4_980_000, 450_000, 4_990_000)
    to_lonlat = Transformer.from_crs("EPSG:32632", "EPSG:4326", always_xy=True)
    lon, lat = to_lonlat.transform(*square.exterior.xy)
    return square, Polygon(list(zip(lon, lat)))


@pytest.mark.parametrize(
    "longitude, expected",
    [
        (0.0, 31),
        (8.3, 32),
        (20.0, 34),
        (-100.0, 14),
        (-170.0, 3),
        (180.0, 1),
    ],
)
def test_utm_zone_rounding_rule(longitude, expected):
    assert utm_zone(longitude) == expected


def test_dominant_zone_uses_vertex_majority():
    # three vertices in zone 32, one in zone 33 (closing vertex not double counted)
    ring = [(8.2, 45.0), (8.4, 45.0), (8.4, 45.2), (9.2, 45.2)]
    assert dominant_utm_zone(ring) == (32, False)


def test_dominant_zone_southern_hemisphere():
    assert dominant_utm_zone(box(8.2, -10.0, 8.4, -9.0)) == (32, True)


def test_dominant_zone_ties_resolve_to_smallest_zone():
    ring = [(8.2, 45.0), (8.4, 45.0), (9.2, 45.2), (9.4, 45.2)]
    assert dominant_utm_zone(ring)[0] == 32


def test_utm_crs_is_projected_in_metres():
    crs = utm_crs(32, south=True)
    assert crs.is_projected
    assert "+south" in crs.to_proj4()
    assert "+zone=32" in crs.to_proj4()


def test_metric_area_is_planar_area():
    ring = [(0, 0), (10, 0), (10, 5), (0, 5)]
    assert polygon_area(ring, "metric") == pytest.approx(50.0)
    assert polygon_area(Polygon(ring), "m") == pytest.approx(50.0)


def test_degree_area_matches_metric_area():
    square, square_deg = _utm_square_in_degrees()

    metric = polygon_area(square, "metric")
    degrees = polygon_area(square_deg, "degrees")

    assert metric == pytest.approx(1.0e8)
    assert degrees == pytest.approx(metric, rel=0.01)


def test_degree_area_of_multipolygon():
    square, square_deg = _utm_square_in_degrees()
    shifted = Polygon([(lon, lat + 0.5) for lon, lat in square_deg.exterior.coords])

    area = polygon_area(MultiPolygon([square_deg, shifted]), "degrees")

    assert area == pytest.approx(2 * square.area, rel=0.02)


def test_reproject_polygon_round_trip():
    square, square_deg = _utm_square_in_degrees()
    back = reproject_polygon(square_deg, "EPSG:4326", CRS.from_epsg(32632))
    np.testing.assert_allclose(back.bounds, square.bounds, atol=1e-3)


def test_reproject_polygon_emits_no_deprecation_warning():
    _, square_deg = _utm_square_in_degrees()
    with warnings.catch_warnings():
        warnings.simplefilter("error", DeprecationWarning)
        reproject_polygon(square_deg, "EPSG:4326", CRS.from_epsg(32632))


def test_reproject_polygon_keeps_holes():
    outer = box(8.0, 45.0, 8.1, 45.1)
    hole = box(8.04, 45.04, 8.06, 45.06)
    polygon = Polygon(outer.exterior.coords, [hole.exterior.coords])

    projected = reproject_polygon(polygon, "EPSG:4326", CRS.from_epsg(32632))

    assert len(projected.interiors) == 1
    assert projected.area < reproject_polygon(outer, "EPSG:4326", CRS.from_epsg(32632)).area


def test_as_polygon_requires_three_vertices():
    with pytest.raises(InvalidInput):
        as_polygon([(0, 0), (1, 1)])


def test_polygon_area_rejects_unknown_method():
    with pytest.raises(InvalidInput):
        polygon_area([(0, 0), (1, 0), (1, 1)], "hectares")
