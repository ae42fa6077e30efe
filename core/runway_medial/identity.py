"""Assignment of airport and runway identity to raw envelope features."""

from typing import Any, Dict, Iterable, List, Optional, Tuple
import re
import logging

from .envelope import Envelope, new_envelope_id
from .geometry import Coord, as_coords, bounds_of, chain_segments, distance, simplify_to_meters
from .reference import AirportRecord, ReferenceTables

logger = logging.getLogger(__name__)

MIN_RING_COORDS = 4
NAME_MATCH_MAX_KM = 10.0
SEGMENT_JOIN_TOLERANCE_M = 10.0

_ICAO_PATTERN = re.compile(r'\b([A-Z]{4})\b')
_RWY_PATTERN = re.compile(r'(?:[A-Z]{4})? ?(?:RWY)?(\d{2}[LRC]?(?:/\d{2}[LRC]?)*)')


def parse_runway_codes(name: str) -> List[str]:
    """
    Runway codes in a placemark name.

    'RJOT 08' -> ['08'], 'RJFF RWY16L/34R' -> ['16L', '34R'].
    """
    match = _RWY_PATTERN.search(name or '')
    if not match:
        return []
    return match.group(1).split('/')


def _dedupe_consecutive(coords: List[Coord]) -> List[Coord]:
    cleaned: List[Coord] = []
    for c in coords:
        if not cleaned or cleaned[-1] != c:
            cleaned.append(c)
    return cleaned


def _line_parts(geometry: Dict[str, Any]) -> List[List[Coord]]:
    """
    Envelope rings contained in one input geometry.

    A GeometryCollection of at most two lines holds separate envelopes; a
    larger one is an envelope drawn as loose two-point segments, which are
    chained and simplified into one ring.
    """
    geom_type = geometry.get('type')
    if geom_type == 'LineString':
        return [as_coords(geometry['coordinates'])]
    if geom_type == 'Polygon':
        return [as_coords(geometry['coordinates'][0])]
    if geom_type == 'MultiLineString':
        return [as_coords(line) for line in geometry['coordinates']]
    if geom_type == 'MultiPolygon':
        return [as_coords(poly[0]) for poly in geometry['coordinates']]
    if geom_type == 'GeometryCollection':
        members = geometry.get('geometries') or []
        if len(members) <= 2:
            parts = []
            for member in members:
                if member.get('type') == 'LineString' and len(member['coordinates']) > 2:
                    parts.append(as_coords(member['coordinates']))
            return parts
        segments = [(m['coordinates'][0][:2], m['coordinates'][-1][:2])
                    for m in members if m.get('coordinates')]
        path = chain_segments(segments, SEGMENT_JOIN_TOLERANCE_M)
        return [simplify_to_meters(path, SEGMENT_JOIN_TOLERANCE_M)]
    logger.warning("Unsupported geometry type %s skipped", geom_type)
    return []


def _centre(coords: List[Coord]) -> Coord:
    xmin, ymin, xmax, ymax = bounds_of([coords])
    return Coord((xmin + xmax) / 2, (ymin + ymax) / 2)


def match_airport(
    name: str,
    centre: Coord,
    airports: Iterable[AirportRecord],
    max_name_distance_km: float = NAME_MATCH_MAX_KM
) -> Tuple[Optional[AirportRecord], float, bool]:
    """
    Airport for an envelope: named in the placemark and close enough, else nearest.

    Returns:
        (airport or None, distance in km, True if matched by name)
    """
    airports = list(airports)
    by_icao = {ap.icao: ap for ap in airports}
    for code in _ICAO_PATTERN.findall(name or ''):
        ap = by_icao.get(code)
        if ap is None:
            continue
        dist = distance(centre, ap.position, units='kilometers')
        if dist < max_name_distance_km:
            return ap, dist, True

    best = None
    best_dist = float('inf')
    for ap in airports:
        dist = distance(centre, ap.position, units='kilometers')
        if dist < best_dist:
            best, best_dist = ap, dist
    return best, best_dist, False


def assign_identity(
    features: Iterable[Dict[str, Any]],
    tables: ReferenceTables,
    max_name_distance_km: float = NAME_MATCH_MAX_KM
) -> List[Envelope]:
    """
    Turn raw envelope features into envelopes with airport and runway identity.

    Features that already carry an 'icao' property keep their identity.
    Others get the airport named in their 'name' property (if it lies within
    max_name_distance_km of the envelope centre) or else the nearest airport,
    and one envelope per runway code in the name, each with its own id.
    Rings with fewer than 4 coordinates are dropped.

    Args:
        features: GeoJSON feature dicts
        tables: Reference tables providing the airport list
        max_name_distance_km: Distance limit for a name-based airport match

    Returns:
        Envelopes in input order
    """
    envelopes: List[Envelope] = []
    for feature in features:
        props = dict(feature.get('properties') or {})
        name = str(props.get('name', '') or '')
        parts = _line_parts(feature.get('geometry') or {})

        for seq, coords in enumerate(parts, 1):
            coords = _dedupe_consecutive(coords)
            if len(coords) < MIN_RING_COORDS:
                logger.info("Dropping ring '%s' with %d coordinates", name, len(coords))
                continue
            part_props = dict(props)
            if len(parts) > 1:
                part_props['seq'] = seq
                part_props.pop('id', None)

            if props.get('icao'):
                envelopes.append(Envelope.from_feature({
                    'properties': part_props,
                    'geometry': {'type': 'LineString', 'coordinates': coords},
                }))
                continue

            centre = _centre(coords)
            airport, dist, by_name = match_airport(name, centre, tables.airports, max_name_distance_km)
            if airport is None:
                logger.warning("No airport available for ring '%s', skipped", name)
                continue
            part_props['airportName'] = airport.name

            rwy_codes = parse_runway_codes(name)
            if not rwy_codes:
                logger.warning("No runway code in name '%s' (%s)", name, airport.icao)
                rwy_codes = ['']
            for rwy in rwy_codes:
                envelopes.append(Envelope(
                    ring=list(coords),
                    icao=airport.icao,
                    rwy=rwy,
                    envelope_id=new_envelope_id(),
                    name=name,
                    properties=dict(part_props),
                ))
            logger.info("Assigned ICAO %s RWY %s to ring at (%.5f, %.5f) (distance: %.2f km) (%s)",
                        airport.icao, '/'.join(rwy_codes), centre.x, centre.y, dist,
                        'by name' if by_name else 'by distance')
    return envelopes
