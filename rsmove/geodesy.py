"""
Geodetic helpers for polygon area estimation.

Polygons given in geographic degrees are projected to the UTM zone that most
of their vertices fall in (WGS84 ellipsoid, no datum shift) before their
planar area is measured.
"""

from __future__ import annotations

import logging
from collections import Counter

import numpy as np
import shapely
from pyproj import CRS, Transformer
from shapely.geometry import Polygon
from shapely.geometry.base import BaseGeometry

from rsmove.config import GEOGRAPHIC_CRS, normalize_area_method
from rsmove.errors import InvalidInput

logger = logging.getLogger(__name__)


def as_polygon(polygon) -> BaseGeometry:
    """Accept a shapely geometry or an ordered ring of (x, y) vertices."""
    if isinstance(polygon, BaseGeometry):
        return polygon
    ring = np.asarray(polygon, dtype=float)
    if ring.ndim != 2 or ring.shape[1] != 2 or len(ring) < 3:
        raise InvalidInput("A polygon ring needs at least three (x, y) vertices.")
    return Polygon(ring)


def _exterior_coords(geom: BaseGeometry) -> np.ndarray:
    if geom.geom_type == "Polygon":
        return np.asarray(geom.exterior.coords)
    if geom.geom_type == "MultiPolygon":
        return np.vstack([np.asarray(part.exterior.coords) for part in geom.geoms])
    return np.asarray(geom.coords)


def utm_zone(longitude: float, latitude: float | None = None) -> int:
    """
    UTM zone number for a longitude.

    Uses ``round(lon / 6) + 31`` for non-negative longitudes and
    ``round((180 + lon) / 6) + 1`` otherwise (half-to-even rounding), wrapped
    into 1..60. ``latitude`` only matters for the hemisphere, see :func:`utm_crs`.
    """
    if longitude >= 0:
        zone = int(round(longitude / 6.0)) + 31
    else:
        zone = int(round((180.0 + longitude) / 6.0)) + 1
    return (zone - 1) % 60 + 1


def dominant_utm_zone(polygon) -> tuple[int, bool]:
    """
    Most frequent UTM zone among the polygon's vertices and whether it is southern.

    Ties go to the smallest zone number. The closing vertex of a ring is not
    counted twice.
    """
    coords = _exterior_coords(as_polygon(polygon))
    if len(coords) > 1 and np.array_equal(coords[0], coords[-1]):
        coords = coords[:-1]

    zones = Counter(utm_zone(lon, lat) for lon, lat in coords[:, :2])
    top = max(zones.values())
    zone = min(z for z, count in zones.items() if count == top)
    south = int(np.sum(coords[:, 1] < 0)) > len(coords) / 2
    return zone, south


def utm_crs(zone: int, south: bool = False) -> CRS:
    params = {
        "proj": "utm",
        "zone": int(zone),
        "ellps": "WGS84",
        "towgs84": "0,0,0",
        "units": "m",
        "no_defs": True,
    }
    if south:
        params["south"] = True
    return CRS.from_dict(params)


def reproject_polygon(polygon, src_crs, dst_crs) -> BaseGeometry:
    transformer = Transformer.from_crs(
        CRS.from_user_input(src_crs), CRS.from_user_input(dst_crs), always_xy=True
    )
    return shapely.transform(as_polygon(polygon), transformer.transform, interleaved=False)


def polygon_area(polygon, method: str = "metric", polygon_crs=GEOGRAPHIC_CRS) -> float:
    """
    Planar area of a polygon.

    Parameters
    ----------
    polygon:
        Shapely polygon (or multipolygon) or a ring of (x, y) vertices.
    method:
        ``"metric"`` when coordinates are already projected in metres,
        ``"degrees"`` when they are geographic longitude/latitude.
    polygon_crs:
        Source CRS for ``"degrees"`` polygons. Defaults to WGS84 geographic.
    """
    method = normalize_area_method(method)
    geom = as_polygon(polygon)
    if method == "metric":
        return float(geom.area)

    zone, south = dominant_utm_zone(geom)
    logger.debug("Projecting polygon to UTM zone %s%s", zone, "S" if south else "N")
    return float(reproject_polygon(geom, polygon_crs, utm_crs(zone, south)).area)
