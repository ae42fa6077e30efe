"""Medial line extraction from the straight skeleton of an envelope."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple
from shapely.geometry import LinearRing, LineString, Point
from shapely.validation import make_valid
import networkx as nx
import logging

from .geometry import (
    Coord,
    as_coord,
    bearing,
    bearing_difference,
    distance,
    is_clockwise,
    open_ring,
    ring_to_polygon,
)
from .straight_skeleton import SkeletonError, StraightSkeleton, skeletonize

logger = logging.getLogger(__name__)

DEFAULT_SCALE = 1_000_000
BOUNDARY_TOLERANCE = 1e-4  # in scaled units
EDGE_KEY_PRECISION = 3  # decimals, scaled units
VERTEX_PRECISION = 7  # decimals, degrees
CONTAINMENT_TOLERANCE = 1e-7  # degrees, about 1 cm

Segment = Tuple[Coord, Coord]


class MalformedEnvelopeError(ValueError):
    """Envelope ring has too few distinct vertices."""


class DecompositionError(ValueError):
    """The skeleton of the envelope yields no usable graph."""


class VertexIndex:
    """
    Interns coordinates into dense integer vertex ids.

    Coordinates that round to the same key at the configured precision map
    to the same id; the first coordinate seen is kept as the vertex position.
    """

    def __init__(self, precision: int = VERTEX_PRECISION):
        self.precision = precision
        self._ids: Dict[Tuple[float, float], int] = {}
        self.coords: List[Coord] = []

    def key(self, p: Sequence[float]) -> Tuple[float, float]:
        return (round(p[0], self.precision), round(p[1], self.precision))

    def intern(self, p: Sequence[float]) -> int:
        k = self.key(p)
        vid = self._ids.get(k)
        if vid is None:
            vid = len(self.coords)
            self._ids[k] = vid
            self.coords.append(as_coord(p))
        return vid

    def __len__(self) -> int:
        return len(self.coords)


def edge_key(p1: Sequence[float], p2: Sequence[float], precision: int = EDGE_KEY_PRECISION):
    """Undirected segment key: rounded endpoints, smaller (x, y) first."""
    a = (round(p1[0], precision), round(p1[1], precision))
    b = (round(p2[0], precision), round(p2[1], precision))
    return (a, b) if a <= b else (b, a)


@dataclass
class SkeletonGraph:
    graph: nx.Graph
    index: VertexIndex
    internal_edges: List[Segment] = field(default_factory=list)  # deduplicated, degrees
    face_edges: List[Segment] = field(default_factory=list)  # every face edge, degrees

    def xy(self, node: int) -> Coord:
        return self.graph.nodes[node]['xy']


@dataclass
class MedialLineResult:
    coords: List[Coord]
    central_multiline: List[Segment]
    central_skeleton: List[Segment]
    complete: bool
    line_start: Coord
    line_end: Coord
    extreme_count: int
    problem: Optional[str] = None  # why the line is not complete
    walked: bool = True  # False when the walk stopped before the end vertex


def graph_from_segments(segments: Sequence[Segment], index: Optional[VertexIndex] = None) -> SkeletonGraph:
    """
    Build an undirected graph from segments, interning endpoints through index.

    Segments whose endpoints intern to the same vertex add the vertex but no edge.
    """
    index = index or VertexIndex()
    graph = nx.Graph()
    for p1, p2 in segments:
        u = index.intern(p1)
        v = index.intern(p2)
        graph.add_node(u, xy=index.coords[u])
        graph.add_node(v, xy=index.coords[v])
        if u != v:
            graph.add_edge(u, v)
    return SkeletonGraph(graph=graph, index=index, internal_edges=list(segments))


def build_skeleton_graph(
    skeleton: StraightSkeleton,
    scale: float = DEFAULT_SCALE,
    tolerance: float = BOUNDARY_TOLERANCE,
    vertex_precision: int = VERTEX_PRECISION,
    edge_precision: int = EDGE_KEY_PRECISION
) -> SkeletonGraph:
    """
    Build the internal-edge graph of a (scaled) straight skeleton.

    A face edge is internal only if neither endpoint lies on the envelope
    boundary within tolerance. Internal edges appear in two adjacent faces
    and are kept once. Skeleton nodes inside the envelope that touch no
    internal edge (a fully collapsed skeleton) are kept as isolated vertices.

    Args:
        skeleton: Skeleton computed on scaled coordinates
        scale: Factor the coordinates were multiplied by
        tolerance: Boundary distance tolerance in scaled units
        vertex_precision: Decimals (degrees) for vertex identity
        edge_precision: Decimals (scaled units) for internal edge deduplication

    Returns:
        SkeletonGraph in unscaled coordinates
    """
    boundary = LinearRing(skeleton.contour)
    on_boundary_cache: Dict[Tuple[float, float], bool] = {}

    def on_boundary(p: Tuple[float, float]) -> bool:
        hit = on_boundary_cache.get(p)
        if hit is None:
            hit = boundary.distance(Point(p)) <= tolerance
            on_boundary_cache[p] = hit
        return hit

    def descale(p: Tuple[float, float]) -> Coord:
        return Coord(p[0] / scale, p[1] / scale)

    face_edges: List[Segment] = []
    internal: List[Segment] = []
    seen = set()
    for face in skeleton.faces:
        for start, end in face:
            face_edges.append((descale(start), descale(end)))
            if on_boundary(start) or on_boundary(end):
                continue
            key = edge_key(start, end, edge_precision)
            if key in seen:
                continue
            seen.add(key)
            internal.append((descale(start), descale(end)))

    result = graph_from_segments(internal, VertexIndex(vertex_precision))
    result.internal_edges = [(a, b) for a, b in internal if result.index.key(a) != result.index.key(b)]
    result.face_edges = face_edges

    for node in skeleton.nodes:
        if on_boundary(node):
            continue
        vid = result.index.intern(descale(node))
        if vid not in result.graph:
            result.graph.add_node(vid, xy=result.index.coords[vid])

    logger.debug("build_skeleton_graph: %d face edges, %d internal edges, %d vertices",
                 len(face_edges), len(result.internal_edges), result.graph.number_of_nodes())
    return result


def extreme_points(graph: nx.Graph) -> List[int]:
    """Vertices with degree != 2 (leaves and branch junctions), by id."""
    return sorted(n for n in graph.nodes() if graph.degree(n) != 2)


def _nearest(graph: nx.Graph, nodes: Sequence[int], anchor: Sequence[float]) -> int:
    return min(nodes, key=lambda n: (distance(graph.nodes[n]['xy'], anchor), n))


def select_line_ends(
    graph: nx.Graph,
    start_anchor: Sequence[float],
    end_anchor: Sequence[float]
) -> Tuple[int, int]:
    """
    Choose the skeleton vertices where the medial line starts and stops.

    The start is the extreme point nearest the start anchor. The end is a
    degree-3 junction when one exists (curved envelope: stop at the fork
    instead of running into a side branch), the one nearest the end anchor
    if there are several; otherwise the extreme point nearest the end anchor.
    """
    extremes = extreme_points(graph)
    if not extremes:
        raise DecompositionError("Skeleton graph has no extreme points")

    line_start = _nearest(graph, extremes, start_anchor)
    candidates = [n for n in extremes if n != line_start] or extremes
    junctions = [n for n in candidates if graph.degree(n) == 3]
    if junctions:
        line_end = _nearest(graph, junctions, end_anchor)
    else:
        line_end = _nearest(graph, candidates, end_anchor)
    return line_start, line_end


def walk_medial_path(
    graph: nx.Graph,
    start: int,
    end: int,
    start_anchor: Optional[Sequence[float]] = None
) -> Tuple[List[int], bool]:
    """
    Walk from start towards end through unvisited neighbours.

    At every vertex the unvisited neighbour with the smallest change of
    bearing from the incoming direction is taken (ties by vertex id). The
    first step uses the direction from start_anchor, if given.

    Returns:
        (visited vertices in order, True if end was reached)
    """
    path = [start]
    visited = {start}
    while path[-1] != end:
        current = path[-1]
        options = [n for n in graph.neighbors(current) if n not in visited]
        if not options:
            return path, False

        cur_xy = graph.nodes[current]['xy']
        prev_xy = graph.nodes[path[-2]]['xy'] if len(path) > 1 else start_anchor
        incoming = None
        if prev_xy is not None and tuple(prev_xy) != tuple(cur_xy):
            incoming = bearing(prev_xy, cur_xy)

        def turn(n: int) -> float:
            if incoming is None:
                return 0.0
            return bearing_difference(incoming, bearing(cur_xy, graph.nodes[n]['xy']))

        nxt = min(options, key=lambda n: (turn(n), n))
        path.append(nxt)
        visited.add(nxt)
    return path, True


def medial_line_problem(
    line: Sequence[Sequence[float]],
    ring: Sequence[Sequence[float]],
    tolerance: float = CONTAINMENT_TOLERANCE
) -> Optional[str]:
    """
    Check that a medial line is simple and stays inside its envelope.

    Returns:
        Description of the first violation, or None for an acceptable line
    """
    positions = []
    for c in line:
        p = (float(c[0]), float(c[1]))
        if not positions or positions[-1] != p:
            positions.append(p)
    if len(positions) < 2:
        return None

    shape = LineString(positions)
    if not shape.is_simple:
        return "medial line intersects itself"

    envelope = ring_to_polygon(ring)
    if not envelope.is_valid:
        envelope = make_valid(envelope)
    if not envelope.buffer(tolerance).covers(shape):
        outside = max(envelope.distance(Point(p)) for p in positions)
        return f"medial line leaves the envelope (up to {outside:.7f} deg outside)"
    return None


def extract_medial_line(
    ring: Sequence[Sequence[float]],
    start_anchor: Sequence[float],
    end_anchor: Sequence[float],
    scale: float = DEFAULT_SCALE,
    boundary_tolerance: float = BOUNDARY_TOLERANCE
) -> MedialLineResult:
    """
    Extract the medial line of an envelope between two anchor points.

    Steps: orient the ring counter-clockwise, scale it, decompose it with a
    straight skeleton, keep internal skeleton edges as a graph, pick the end
    vertices and walk between them. The anchors are attached to both ends.

    Args:
        ring: Envelope ring (closed or open)
        start_anchor: Take-off start point
        end_anchor: Take-off end point
        scale: Coordinate multiplier used for the decomposition
        boundary_tolerance: Boundary test tolerance in scaled units

    Returns:
        MedialLineResult; complete is False when the walk stopped before the
        end vertex or the line intersects itself or leaves the envelope

    Raises:
        MalformedEnvelopeError: fewer than 3 distinct vertices
        DecompositionError: skeleton failed or produced no interior vertex
    """
    coords = open_ring(ring)
    if len(set(coords)) < 3:
        raise MalformedEnvelopeError(f"Envelope ring has {len(set(coords))} distinct vertices, need at least 3")

    if is_clockwise(coords):
        coords = coords[::-1]
    scaled = [(x * scale, y * scale) for x, y in coords]

    try:
        skeleton = skeletonize(scaled)
    except SkeletonError as e:
        raise DecompositionError(f"Straight skeleton failed: {e}") from e

    sg = build_skeleton_graph(skeleton, scale=scale, tolerance=boundary_tolerance)
    if sg.graph.number_of_nodes() == 0:
        raise DecompositionError("Straight skeleton has no vertex inside the envelope")

    extremes = extreme_points(sg.graph)
    if len(extremes) != 2:
        logger.debug("extract_medial_line: %d extreme points", len(extremes))

    line_start, line_end = select_line_ends(sg.graph, start_anchor, end_anchor)
    path, walked = walk_medial_path(sg.graph, line_start, line_end, start_anchor)
    line = [as_coord(start_anchor)] + [sg.xy(n) for n in path] + [as_coord(end_anchor)]

    if walked:
        problem = medial_line_problem(line, coords)
    else:
        problem = f"walk stopped after {len(path)} vertices before reaching the end vertex"
    if problem:
        logger.warning("Medial line rejected: %s", problem)

    return MedialLineResult(
        coords=line,
        central_multiline=sg.internal_edges,
        central_skeleton=sg.face_edges,
        complete=problem is None,
        line_start=sg.xy(line_start),
        line_end=sg.xy(line_end),
        extreme_count=len(extremes),
        problem=problem,
        walked=walked,
    )
