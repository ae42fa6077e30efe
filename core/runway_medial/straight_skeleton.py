"""Interior straight skeleton of simple polygons.

The skeleton is computed by shrinking the polygon boundary (the wavefront)
at unit speed and tracking the paths of its vertices. Every edge keeps the
direction of its input edge; every wavefront vertex moves along the bisector
of its two edges. Two kinds of events change the wavefront topology:

- edge event: an edge shrinks to zero length and its two end vertices merge;
- split event: a reflex vertex runs into an edge of the same wavefront and
  splits it in two.

After each event all pending events are recomputed from the current
wavefronts, so no event is ever applied to a wavefront that has changed
since it was predicted. A wavefront whose vertices are collinear has no
area left and collapses into the segments between its vertices.

Each wavefront vertex traces one skeleton arc, from where it was created to
the event that consumes it. The region swept by input edge i is face i;
every arc separates the faces of the two edges adjacent to its vertex.

Input polygons must be simple, counter-clockwise and hole-free.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple
import numpy as np
import logging

logger = logging.getLogger(__name__)

# tolerance on sines of angles between unit vectors
ANGLE_EPSILON = 1e-10
# length tolerance, relative to the polygon extent
LENGTH_EPSILON = 1e-9

XY = Tuple[float, float]
Segment = Tuple[XY, XY]


class SkeletonError(ValueError):
    """The polygon cannot be decomposed."""


@dataclass(frozen=True)
class SkeletonArc:
    """Path of one wavefront vertex, bounded by faces[0] and faces[1]."""
    start: XY
    end: XY
    faces: Tuple[int, int]


@dataclass
class StraightSkeleton:
    contour: List[XY]  # normalized input ring, open, counter-clockwise
    arcs: List[SkeletonArc] = field(default_factory=list)
    nodes: List[XY] = field(default_factory=list)  # event points, interior

    @property
    def faces(self) -> List[List[Segment]]:
        """Boundary segments of every face: its input edge, then its arcs."""
        n = len(self.contour)
        faces: List[List[Segment]] = [
            [(self.contour[i], self.contour[(i + 1) % n])] for i in range(n)
        ]
        for arc in self.arcs:
            for face in set(arc.faces):
                faces[face].append((arc.start, arc.end))
        return faces


def _norm(v: np.ndarray) -> float:
    return float(np.hypot(v[0], v[1]))


def _unit(v: np.ndarray) -> np.ndarray:
    n = _norm(v)
    if n == 0.0:
        return np.zeros(2)
    return v / n


def _cross(a: np.ndarray, b: np.ndarray) -> float:
    return float(a[0] * b[1] - a[1] * b[0])


def _dot_rows(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return np.einsum('ij,ij->i', a, b)


def bisector_velocity(n1: np.ndarray, n2: np.ndarray) -> np.ndarray:
    """
    Velocity of a wavefront vertex between two edges with inward unit normals n1, n2.

    The vertex stays on both edges while they move inward at unit speed:
    w . n1 = w . n2 = 1. Opposite edges on one line (a wavefront without
    width) give a standing vertex.
    """
    denom = 1.0 + float(np.dot(n1, n2))
    if denom < 1e-12:
        return np.zeros(2)
    return (n1 + n2) / denom


class _Vertex:
    """Wavefront vertex between prev_edge (incoming) and next_edge (outgoing)."""

    __slots__ = ('pos', 'origin', 'velocity', 'prev_edge', 'next_edge')

    def __init__(self, pos: np.ndarray, prev_edge: int, next_edge: int, velocity: np.ndarray):
        self.pos = np.array(pos, dtype=float)
        self.origin = self.pos.copy()
        self.prev_edge = prev_edge
        self.next_edge = next_edge
        self.velocity = velocity

    def __repr__(self):
        return f"_Vertex({self.pos[0]:.3f}, {self.pos[1]:.3f}, edges={self.prev_edge}->{self.next_edge})"


def normalize_contour(coords: Sequence[Sequence[float]], tol: float = 0.0) -> List[XY]:
    """Drop the closing point, repeated vertices and collinear vertices."""
    points = [(float(c[0]), float(c[1])) for c in coords]
    if len(points) > 1 and points[0] == points[-1]:
        points = points[:-1]

    changed = True
    while changed and len(points) >= 3:
        changed = False
        n = len(points)
        for i in range(n):
            prev = np.asarray(points[i - 1])
            here = np.asarray(points[i])
            nxt = np.asarray(points[(i + 1) % n])
            d_in = here - prev
            d_out = nxt - here
            if _norm(d_out) <= tol:
                del points[i]
                changed = True
                break
            u_in = _unit(d_in)
            u_out = _unit(d_out)
            if abs(_cross(u_in, u_out)) < 1e-12 and float(np.dot(u_in, u_out)) > 0:
                del points[i]
                changed = True
                break
    return points


class _Skeletonizer:
    """Kinetic wavefront simulation on a contour translated to its centroid."""

    def __init__(self, contour: List[XY]):
        pts = np.asarray(contour, dtype=float)
        self.origin = pts.mean(axis=0)
        local = pts - self.origin
        extent = float(np.max(np.ptp(local, axis=0)))
        self.tol = max(extent, 1.0) * LENGTH_EPSILON

        n = len(local)
        self.starts = local
        self.directions = np.array([_unit(local[(i + 1) % n] - local[i]) for i in range(n)])
        self.normals = np.column_stack([-self.directions[:, 1], self.directions[:, 0]])
        self.time = 0.0

        self.arcs: List[SkeletonArc] = []
        self.nodes: List[XY] = []
        self.lavs: List[List[_Vertex]] = [[self._vertex(local[i], (i - 1) % n, i) for i in range(n)]]

    def _vertex(self, pos: np.ndarray, prev_edge: int, next_edge: int) -> _Vertex:
        velocity = bisector_velocity(self.normals[prev_edge], self.normals[next_edge])
        return _Vertex(pos, prev_edge, next_edge, velocity)

    def _is_reflex(self, vertex: _Vertex) -> bool:
        return _cross(self.directions[vertex.prev_edge], self.directions[vertex.next_edge]) < -ANGLE_EPSILON

    def _to_world(self, p: np.ndarray) -> XY:
        return (float(p[0] + self.origin[0]), float(p[1] + self.origin[1]))

    def _trace(self, vertex: _Vertex, end: np.ndarray) -> None:
        if _norm(end - vertex.origin) > self.tol:
            self.arcs.append(SkeletonArc(
                self._to_world(vertex.origin), self._to_world(end), (vertex.prev_edge, vertex.next_edge)))

    def _place(self, prev_edge: int, next_edge: int, near: np.ndarray) -> np.ndarray:
        """Intersection of two offset edge lines at the current time; near if they are (almost) parallel."""
        n1 = self.normals[prev_edge]
        n2 = self.normals[next_edge]
        det = _cross(n1, n2)
        if abs(det) < 1e-6:
            return near
        c1 = self.time + float(np.dot(n1, self.starts[prev_edge]))
        c2 = self.time + float(np.dot(n2, self.starts[next_edge]))
        point = np.array([(c1 * n2[1] - c2 * n1[1]) / det, (n1[0] * c2 - n2[0] * c1) / det])
        if _norm(point - near) > 1e3 * self.tol:
            return near
        return point

    # event search

    def _edge_events(self, lav: List[_Vertex], pos: np.ndarray, vel: np.ndarray) -> np.ndarray:
        """Time until each wavefront edge (lav[j] -> lav[j + 1]) shrinks to zero."""
        d = self.directions[[v.next_edge for v in lav]]
        length = _dot_rows(np.roll(pos, -1, axis=0) - pos, d)
        rate = _dot_rows(np.roll(vel, -1, axis=0) - vel, d)
        dt = np.full(len(lav), np.inf)
        shrinking = rate < -1e-12
        dt[shrinking] = np.maximum(length[shrinking], 0.0) / -rate[shrinking]
        dt[length <= self.tol] = 0.0
        return dt

    def _split_events(
        self,
        lav: List[_Vertex],
        pos: np.ndarray,
        vel: np.ndarray
    ) -> Tuple[float, Optional[int], Optional[int]]:
        """Earliest (time, reflex vertex index, hit edge index) of a wavefront."""
        k = len(lav)
        edges = [v.next_edge for v in lav]
        starts = self.starts[edges]
        normals = self.normals[edges]
        directions = self.directions[edges]
        next_pos = np.roll(pos, -1, axis=0)
        next_vel = np.roll(vel, -1, axis=0)

        best: Tuple[float, Optional[int], Optional[int]] = (np.inf, None, None)
        for r, vertex in enumerate(lav):
            if not self._is_reflex(vertex):
                continue
            # distance to each offset edge line and how fast the vertex closes in on it
            gap = _dot_rows(vertex.pos - starts, normals) - self.time
            closing = 1.0 - normals @ vertex.velocity
            valid = (closing > 1e-12) & (gap >= -self.tol)
            valid[r] = False
            valid[(r - 1) % k] = False
            idx = np.nonzero(valid)[0]
            if len(idx) == 0:
                continue

            dt = np.maximum(gap[idx], 0.0) / closing[idx]
            hit = vertex.pos + dt[:, None] * vertex.velocity
            seg_start = pos[idx] + dt[:, None] * vel[idx]
            seg_end = next_pos[idx] + dt[:, None] * next_vel[idx]
            along = directions[idx]
            inside = ((_dot_rows(hit - seg_start, along) >= -self.tol)
                      & (_dot_rows(seg_end - hit, along) >= -self.tol))
            if not inside.any():
                continue
            candidates = np.nonzero(inside)[0]
            c = candidates[int(np.argmin(dt[candidates]))]
            if dt[c] < best[0]:
                best = (float(dt[c]), r, int(idx[c]))
        return best

    def _next_event(self):
        """Earliest event over all wavefronts; edge events win ties."""
        edge_best = (np.inf, None, None)
        split_best = (np.inf, None, None, None)
        for li, lav in enumerate(self.lavs):
            pos = np.array([v.pos for v in lav])
            vel = np.array([v.velocity for v in lav])
            dt = self._edge_events(lav, pos, vel)
            j = int(np.argmin(dt))
            if dt[j] < edge_best[0]:
                edge_best = (float(dt[j]), li, j)
            t, r, j = self._split_events(lav, pos, vel)
            if t < split_best[0]:
                split_best = (t, li, r, j)

        if np.isinf(edge_best[0]) and np.isinf(split_best[0]):
            return None
        if edge_best[0] <= split_best[0] + self.tol:
            return ('edge',) + edge_best
        return ('split',) + split_best

    # event handling

    def _advance(self, dt: float) -> None:
        if dt <= 0.0:
            return
        for lav in self.lavs:
            for vertex in lav:
                vertex.pos = vertex.pos + vertex.velocity * dt
        self.time += dt

    def _apply_edge_event(self, li: int, j: int) -> None:
        lav = self.lavs[li]
        k = len(lav)
        a, b = lav[j], lav[(j + 1) % k]
        point = self._place(a.prev_edge, b.next_edge, (a.pos + b.pos) / 2)
        self._trace(a, point)
        self._trace(b, point)
        self.nodes.append(self._to_world(point))

        merged = self._vertex(point, a.prev_edge, b.next_edge)
        self.lavs[li] = [merged if i == j else v for i, v in enumerate(lav) if i != (j + 1) % k]

    def _apply_split_event(self, li: int, r: int, j: int) -> None:
        lav = self.lavs[li]
        k = len(lav)
        vertex = lav[r]
        hit_edge = lav[j].next_edge
        point = vertex.pos.copy()
        self._trace(vertex, point)
        self.nodes.append(self._to_world(point))

        # lav[j] -> lav[j + 1] is the hit edge; the wavefront splits into
        # v1 -> lav[j + 1] ... lav[r - 1] and v2 -> lav[r + 1] ... lav[j]
        v1 = self._vertex(point, vertex.prev_edge, hit_edge)
        v2 = self._vertex(point, hit_edge, vertex.next_edge)
        y = (j + 1) % k
        first = [v1] + [lav[i % k] for i in range(y, y + (r - y) % k)]
        second = [v2] + [lav[i % k] for i in range(r + 1, r + 1 + (j - r) % k)]
        self.lavs[li] = first
        self.lavs.append(second)

    def _is_collinear(self, lav: List[_Vertex]) -> bool:
        pos = np.array([v.pos for v in lav])
        offsets = pos - pos[0]
        lengths = np.hypot(offsets[:, 0], offsets[:, 1])
        far = int(np.argmax(lengths))
        if lengths[far] <= self.tol:
            return True
        axis = offsets[far] / lengths[far]
        return float(np.max(np.abs(offsets[:, 0] * axis[1] - offsets[:, 1] * axis[0]))) <= self.tol

    def _covering_edges(self, lav: List[_Vertex], point: np.ndarray) -> List[int]:
        """Edges of a collapsed wavefront whose segment passes through point."""
        edges = []
        k = len(lav)
        for i, vertex in enumerate(lav):
            a, b = vertex.pos, lav[(i + 1) % k].pos
            span = b - a
            length_sq = float(np.dot(span, span))
            if length_sq <= self.tol * self.tol:
                continue
            t = float(np.dot(point - a, span)) / length_sq
            if -LENGTH_EPSILON <= t <= 1 + LENGTH_EPSILON:
                edges.append(vertex.next_edge)
        return edges

    def _collapse(self, lav: List[_Vertex]) -> None:
        """Finish a wavefront without area: its vertices become nodes on one line."""
        points: List[np.ndarray] = []
        for vertex in lav:
            end = next((p for p in points if _norm(vertex.pos - p) <= self.tol), None)
            if end is None:
                end = vertex.pos.copy()
                points.append(end)
            self._trace(vertex, end)
        for p in points:
            self.nodes.append(self._to_world(p))
        if len(points) < 2:
            return

        base = points[0]
        axis = _unit(max((p - base for p in points), key=_norm))
        points.sort(key=lambda p: float(np.dot(p - base, axis)))
        for p, q in zip(points, points[1:]):
            edges = self._covering_edges(lav, (p + q) / 2) or [lav[0].prev_edge, lav[0].next_edge]
            faces = (edges[0], edges[1] if len(edges) > 1 else edges[0])
            self.arcs.append(SkeletonArc(self._to_world(p), self._to_world(q), faces))

    def _collapse_degenerate(self) -> None:
        remaining = []
        for lav in self.lavs:
            if len(lav) >= 3 and not self._is_collinear(lav):
                remaining.append(lav)
            elif lav:
                self._collapse(lav)
        self.lavs = remaining

    def run(self, max_events: int) -> None:
        events = 0
        while True:
            self._collapse_degenerate()
            if not self.lavs:
                return
            event = self._next_event()
            if event is None:
                remaining = sum(len(lav) for lav in self.lavs)
                raise SkeletonError(f"Wavefront stalled with {remaining} unresolved vertices")
            events += 1
            if events > max_events:
                raise SkeletonError(f"Straight skeleton did not converge after {max_events} events")

            kind, dt = event[0], event[1]
            self._advance(dt)
            if kind == 'edge':
                self._apply_edge_event(event[2], event[3])
            else:
                self._apply_split_event(event[2], event[3], event[4])


def skeletonize(coords: Sequence[Sequence[float]], max_events: Optional[int] = None) -> StraightSkeleton:
    """
    Compute the interior straight skeleton of a simple polygon.

    Args:
        coords: Counter-clockwise ring (closing point optional)
        max_events: Event budget; defaults to a bound linear in the vertex count

    Returns:
        StraightSkeleton with arcs, interior nodes and per-edge faces

    Raises:
        SkeletonError: fewer than 3 distinct vertices, clockwise ring, or a
            wavefront that cannot be resolved
    """
    points = np.asarray([(float(c[0]), float(c[1])) for c in coords], dtype=float)
    extent = float(np.max(np.ptp(points, axis=0))) if len(points) else 0.0
    contour = normalize_contour(coords, tol=max(extent, 1.0) * 1e-12)
    if len(contour) < 3:
        raise SkeletonError(f"Polygon has {len(contour)} distinct vertices, need at least 3")

    xy = np.asarray(contour)
    area = 0.5 * float(np.dot(xy[:, 0], np.roll(xy[:, 1], -1)) - np.dot(np.roll(xy[:, 0], -1), xy[:, 1]))
    if area <= 0:
        raise SkeletonError("Polygon must be counter-clockwise with non-zero area")

    solver = _Skeletonizer(contour)
    solver.run(max_events if max_events is not None else 10 * len(contour) + 100)
    logger.debug("skeletonize: %d vertices -> %d arcs, %d nodes",
                 len(contour), len(solver.arcs), len(solver.nodes))
    return StraightSkeleton(contour=contour, arcs=solver.arcs, nodes=solver.nodes)
