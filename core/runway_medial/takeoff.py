"""Take-off edge detection on envelope rings."""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple
import logging

from .envelope import Envelope
from .geometry import (
    Coord,
    corner_angle,
    distance,
    midpoint,
    open_ring,
    rhumb_bearing,
)
from .schemas import OutputFeature

logger = logging.getLogger(__name__)

STRAIGHT_TOLERANCE_DEG = 3.0
# corner-angle scores closer than this are treated as equal
ANGLE_SCORE_RESOLUTION_DEG = 1e-3

TAKEOFF_START_STYLE = {'marker-color': '#0000FF', 'marker-size': 'medium', 'marker-symbol': 'star'}
TAKEOFF_END_STYLE = {'marker-color': '#FF00FF', 'marker-size': 'medium', 'marker-symbol': 'star'}


@dataclass(frozen=True)
class TakeoffEdge:
    """The two short ends of an envelope ring; start is the shorter one."""
    start: Tuple[Coord, Coord]
    end: Tuple[Coord, Coord]

    def bearing_offset(self) -> float:
        """Angle between the two edges modulo 180 degrees (rhumb bearings)."""
        b1 = rhumb_bearing(self.start[0], self.start[1])
        b2 = rhumb_bearing(self.end[0], self.end[1])
        return abs(b1 - b2) % 180.0

    def is_straight(self, tolerance_deg: float = STRAIGHT_TOLERANCE_DEG) -> bool:
        angle = self.bearing_offset()
        return angle < tolerance_deg or angle > 180.0 - tolerance_deg

    def anchors(self) -> Tuple[Coord, Coord]:
        """(takeOffStart, takeOffEnd): geodesic midpoints of the two edges."""
        return midpoint(*self.start), midpoint(*self.end)

    def shares_vertex(self) -> bool:
        return bool(set(self.start) & set(self.end))


@dataclass
class _ScoredSegment:
    index: int
    p1: Coord
    p2: Coord
    angle_sum: float
    length: float

    def sort_key(self):
        quantized = round(self.angle_sum / ANGLE_SCORE_RESOLUTION_DEG)
        return (quantized, self.length, min(self.p1, self.p2), max(self.p1, self.p2))


def score_ring_edges(ring: Sequence[Sequence[float]]) -> List[_ScoredSegment]:
    """
    Score every edge of a ring by the corner angles at both of its ends.

    The score of edge (p1, p2) is angle(p0, p1, p2) + angle(p1, p2, p3),
    where p0 and p3 are the neighbouring vertices.
    """
    coords = open_ring(ring)
    n = len(coords)
    scored = []
    for i in range(n):
        p0 = coords[i - 1]
        p1 = coords[i]
        p2 = coords[(i + 1) % n]
        p3 = coords[(i + 2) % n]
        angle_sum = corner_angle(p0, p1, p2) + corner_angle(p1, p2, p3)
        scored.append(_ScoredSegment(i, p1, p2, angle_sum, distance(p1, p2)))
    return scored


def detect_takeoff_edge(ring: Sequence[Sequence[float]]) -> Optional[TakeoffEdge]:
    """
    Find the two short "end" edges of an envelope ring.

    The two edges with the lowest combined corner angle are taken; ties
    (for example on an exact rectangle) go to the shorter edge. Of the pair,
    the shorter edge is the take-off start.

    Args:
        ring: Closed ring of positions (first == last)

    Returns:
        TakeoffEdge, or None if the ring has fewer than 4 coordinates
    """
    if len(ring) < 4 or len(open_ring(ring)) < 3:
        return None

    scored = sorted(score_ring_edges(ring), key=_ScoredSegment.sort_key)
    s1, s2 = scored[0], scored[1]

    if s1.length < s2.length or (s1.length == s2.length and s1.sort_key() <= s2.sort_key()):
        edge = TakeoffEdge(start=(s1.p1, s1.p2), end=(s2.p1, s2.p2))
    else:
        edge = TakeoffEdge(start=(s2.p1, s2.p2), end=(s1.p1, s1.p2))

    if edge.shares_vertex():
        # irregular ring: the lowest scores landed on neighbouring edges
        logger.warning("detect_takeoff_edge: selected edges %d and %d are adjacent (scores %.2f, %.2f)",
                       s1.index, s2.index, s1.angle_sum, s2.angle_sum)
    return edge


def classify_envelope(envelope: Envelope, tolerance_deg: float = STRAIGHT_TOLERANCE_DEG) -> Optional[TakeoffEdge]:
    """Detect the take-off edge of an envelope and set its straight flag."""
    edge = detect_takeoff_edge(envelope.ring)
    if edge is None:
        logger.warning("Envelope %s has only %d coordinates, no take-off edge", envelope.label, len(envelope.ring))
        return None
    envelope.straight = edge.is_straight(tolerance_deg)
    logger.debug("Envelope %s: end offset %.2f deg, straight=%s",
                 envelope.label, edge.bearing_offset(), envelope.straight)
    return edge


def takeoff_anchor_features(envelope: Envelope, edge: TakeoffEdge) -> List[OutputFeature]:
    """Star markers for the take-off start and end anchors."""
    start, end = edge.anchors()
    base = {'icao': envelope.icao, 'rwy': envelope.rwy, 'envelopeId': envelope.envelope_id}
    return [
        OutputFeature.point(start, {**base, 'type': 'takeOffStart', **TAKEOFF_START_STYLE}),
        OutputFeature.point(end, {**base, 'type': 'takeOffEnd', **TAKEOFF_END_STYLE}),
    ]
