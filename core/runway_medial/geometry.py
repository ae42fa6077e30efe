"""Geodesic and planar geometry utilities."""

import math
from typing import List, NamedTuple, Sequence, Tuple, Iterable
from shapely.geometry import LineString, Point, Polygon
import numpy as np
import logging

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6371008.8
METERS_PER_DEGREE = 111320.0
METERS_PER_NM = 1852.0

_UNIT_FACTORS = {
    'meters': 1.0,
    'kilometers': 1000.0,
    'nauticalmiles': METERS_PER_NM,
}


class Coord(NamedTuple):
    """A longitude/latitude pair in degrees."""
    x: float
    y: float

    @property
    def lon(self) -> float:
        return self.x

    @property
    def lat(self) -> float:
        return self.y


def as_coord(value: Sequence[float]) -> Coord:
    """Coerce a GeoJSON position (possibly with altitude) to a Coord."""
    return Coord(float(value[0]), float(value[1]))


def as_coords(values: Iterable[Sequence[float]]) -> List[Coord]:
    return [as_coord(v) for v in values]


def _unit_factor(units: str) -> float:
    try:
        return _UNIT_FACTORS[units]
    except KeyError:
        raise ValueError(f"Unsupported distance unit '{units}'") from None


def distance(a: Sequence[float], b: Sequence[float], units: str = 'meters') -> float:
    """
    Haversine great-circle distance between two positions.

    Args:
        a: First position (lon, lat) in degrees
        b: Second position (lon, lat) in degrees
        units: 'meters', 'kilometers' or 'nauticalmiles'

    Returns:
        Distance in the requested units (0.0 for coincident points)
    """
    lon1, lat1 = math.radians(a[0]), math.radians(a[1])
    lon2, lat2 = math.radians(b[0]), math.radians(b[1])
    d_lat = lat2 - lat1
    d_lon = lon2 - lon1
    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(max(0.0, 1 - h)))
    return EARTH_RADIUS_M * c / _unit_factor(units)


def bearing(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Initial great-circle bearing from a to b in degrees, range (-180, 180].

    Coincident points return 0.0 rather than an undefined angle.
    """
    if a[0] == b[0] and a[1] == b[1]:
        return 0.0
    lon1, lat1 = math.radians(a[0]), math.radians(a[1])
    lon2, lat2 = math.radians(b[0]), math.radians(b[1])
    y = math.sin(lon2 - lon1) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(lon2 - lon1)
    return math.degrees(math.atan2(y, x))


def rhumb_bearing(a: Sequence[float], b: Sequence[float]) -> float:
    """Constant-heading (loxodrome) bearing from a to b in degrees, range (-180, 180]."""
    if a[0] == b[0] and a[1] == b[1]:
        return 0.0
    phi1 = math.radians(a[1])
    phi2 = math.radians(b[1])
    d_lon = math.radians(b[0] - a[0])
    # take the shorter way round the antimeridian
    if abs(d_lon) > math.pi:
        d_lon = -(2 * math.pi - d_lon) if d_lon > 0 else (2 * math.pi + d_lon)
    d_psi = math.log(math.tan(phi2 / 2 + math.pi / 4) / math.tan(phi1 / 2 + math.pi / 4))
    return math.degrees(math.atan2(d_lon, d_psi))


def destination(origin: Sequence[float], distance_m: float, bearing_deg: float) -> Coord:
    """Great-circle destination reached from origin after distance_m on bearing_deg."""
    lon1, lat1 = math.radians(origin[0]), math.radians(origin[1])
    brg = math.radians(bearing_deg)
    delta = distance_m / EARTH_RADIUS_M
    lat2 = math.asin(math.sin(lat1) * math.cos(delta) + math.cos(lat1) * math.sin(delta) * math.cos(brg))
    lon2 = lon1 + math.atan2(
        math.sin(brg) * math.sin(delta) * math.cos(lat1),
        math.cos(delta) - math.sin(lat1) * math.sin(lat2),
    )
    return Coord(math.degrees(lon2), math.degrees(lat2))


def midpoint(a: Sequence[float], b: Sequence[float]) -> Coord:
    """Geodesic midpoint: half the distance along the initial bearing from a."""
    dist = distance(a, b)
    if dist == 0.0:
        return as_coord(a)
    return destination(a, dist / 2.0, bearing(a, b))


def bearing_difference(b1: float, b2: float) -> float:
    """Absolute difference between two bearings folded to [0, 180]."""
    diff = abs(b1 - b2) % 360.0
    if diff > 180.0:
        diff = 360.0 - diff
    return diff


def corner_angle(p0: Sequence[float], p1: Sequence[float], p2: Sequence[float]) -> float:
    """Angle at vertex p1 between the bearings towards p0 and towards p2."""
    return bearing_difference(bearing(p1, p0), bearing(p1, p2))


def line_length(coords: Sequence[Sequence[float]], units: str = 'meters') -> float:
    """Total great-circle length of a polyline."""
    if len(coords) < 2:
        return 0.0
    total = sum(distance(coords[i], coords[i + 1]) for i in range(len(coords) - 1))
    return total / _unit_factor(units)


def along(coords: Sequence[Sequence[float]], distance_m: float) -> Coord:
    """
    Point at a given great-circle distance along a polyline.

    Args:
        coords: Polyline positions
        distance_m: Distance from the first position in meters

    Returns:
        The interpolated position; the last vertex if distance_m exceeds
        the line length, the first vertex if it is not positive
    """
    if not coords:
        raise ValueError("Cannot interpolate along an empty line")
    if distance_m <= 0:
        return as_coord(coords[0])
    travelled = 0.0
    for i in range(len(coords) - 1):
        seg = distance(coords[i], coords[i + 1])
        if seg == 0.0:
            continue
        if travelled + seg >= distance_m:
            overshoot = distance_m - travelled
            return destination(coords[i], overshoot, bearing(coords[i], coords[i + 1]))
        travelled += seg
    return as_coord(coords[-1])


def point_on_line(point: Sequence[float], coords: Sequence[Sequence[float]], epsilon: float = 1e-5) -> bool:
    """True if point lies within epsilon (coordinate units) of the polyline."""
    if len(coords) < 2:
        return False
    return LineString(coords).distance(Point(point[0], point[1])) <= epsilon


def close_ring(coords: Sequence[Sequence[float]]) -> List[Coord]:
    ring = as_coords(coords)
    if ring and ring[0] != ring[-1]:
        ring.append(ring[0])
    return ring


def open_ring(coords: Sequence[Sequence[float]]) -> List[Coord]:
    """Drop the closing duplicate of a ring, if present."""
    ring = as_coords(coords)
    if len(ring) > 1 and ring[0] == ring[-1]:
        ring = ring[:-1]
    return ring


def ring_to_polygon(coords: Sequence[Sequence[float]]) -> Polygon:
    """Convert a (possibly unclosed) ring of positions to a shapely Polygon."""
    return Polygon(close_ring(coords))


def polygon_to_ring(polygon: Polygon) -> List[Coord]:
    """Exterior ring of a polygon as a closed coordinate list."""
    return as_coords(polygon.exterior.coords)


def signed_area(coords: Sequence[Sequence[float]]) -> float:
    """Shoelace signed area; positive for counter-clockwise rings."""
    ring = open_ring(coords)
    if len(ring) < 3:
        return 0.0
    xy = np.asarray(ring, dtype=float)
    x = xy[:, 0]
    y = xy[:, 1]
    return 0.5 * float(np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y))


def is_clockwise(coords: Sequence[Sequence[float]]) -> bool:
    return signed_area(coords) < 0


def meters_to_degrees(meters: float) -> float:
    return meters / METERS_PER_DEGREE


def simplify_to_meters(coords: Sequence[Sequence[float]], tolerance_m: float = 10.0) -> List[Coord]:
    """
    Douglas-Peucker simplification with a tolerance in meters.

    The tolerance is converted to degrees with a fixed meters-per-degree
    approximation, so it is only meaningful for small extents.
    """
    if len(coords) < 3:
        return as_coords(coords)
    simplified = LineString(coords).simplify(meters_to_degrees(tolerance_m), preserve_topology=False)
    return as_coords(simplified.coords)


def chain_segments(
    segments: Sequence[Sequence[Sequence[float]]],
    tolerance_m: float = 10.0
) -> List[Coord]:
    """
    Order loose two-point segments into one path by endpoint proximity.

    Segments may be given in either direction. When the chained path ends
    within tolerance of its start, it is closed exactly on the first position.

    Args:
        segments: Sequence of [start, end] positions
        tolerance_m: Maximum gap in meters for two endpoints to be joined

    Returns:
        Ordered list of positions (partial if a gap larger than the tolerance is found)
    """
    if not segments:
        return []

    def nearby(p: Sequence[float], q: Sequence[float]) -> bool:
        return distance(p, q) < tolerance_m

    path = [as_coord(segments[0][0]), as_coord(segments[0][1])]
    used = {0}
    while len(used) < len(segments):
        current_end = path[-1]
        found_next = False
        for i, segment in enumerate(segments):
            if i in used:
                continue
            if nearby(current_end, segment[0]):
                path.append(as_coord(segment[1]))
            elif nearby(current_end, segment[1]):
                path.append(as_coord(segment[0]))
            else:
                continue
            used.add(i)
            found_next = True
            break
        if not found_next:
            logger.warning("chain_segments: no segment continues the path at (%.6f, %.6f), %d of %d used",
                           current_end[0], current_end[1], len(used), len(segments))
            break

    if len(path) > 2 and nearby(path[0], path[-1]):
        path[-1] = path[0]
    return path


def bounds_of(coord_lists: Iterable[Sequence[Sequence[float]]]) -> Tuple[float, float, float, float]:
    """Bounding box (xmin, ymin, xmax, ymax) over several coordinate lists."""
    xs: List[float] = []
    ys: List[float] = []
    for coords in coord_lists:
        for c in coords:
            xs.append(c[0])
            ys.append(c[1])
    if not xs:
        return (0.0, 0.0, 0.0, 0.0)
    return (min(xs), min(ys), max(xs), max(ys))
