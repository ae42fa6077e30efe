#!/usr/bin/env python3
"""
Test the straight skeleton on polygons with a known skeleton.
"""

import math

import pytest
from shapely.geometry import LineString, Point, Polygon

from runway_medial.straight_skeleton import SkeletonError, normalize_contour, skeletonize

T_SHAPE = [(0, 0), (10, 0), (10, -5), (12, -5), (12, 6), (10, 6), (10, 1), (0, 1)]


def _close(p, q, tol=1e-6):
    return abs(p[0] - q[0]) <= tol and abs(p[1] - q[1]) <= tol


def _has_segment(segments, a, b, tol=1e-6):
    return any((_close(s, a, tol) and _close(e, b, tol)) or (_close(s, b, tol) and _close(e, a, tol))
               for s, e in segments)


def _widening_curved_strip(arc_points=24, straight=10.0, radius=10.0, turn_deg=90.0,
                           start_half_width=0.3, end_half_width=1.5):
    """
    Strip running east, then turning left on a circular arc while it widens.

    Returns the counter-clockwise ring and the centre line; the half width
    grows linearly with the distance along the centre line.
    """
    turn = math.radians(turn_deg)
    centre = [(0.0, 0.0, 0.0, 0.0), (straight, 0.0, 0.0, straight)]
    for k in range(1, arc_points + 1):
        a = turn * k / arc_points
        centre.append((straight + radius * math.sin(a), radius - radius * math.cos(a), a, straight + radius * a))
    total = centre[-1][3]

    right, left = [], []
    for x, y, heading, s in centre:
        half_width = start_half_width + (end_half_width - start_half_width) * s / total
        nx, ny = -math.sin(heading), math.cos(heading)
        right.append((x - half_width * nx, y - half_width * ny))
        left.append((x + half_width * nx, y + half_width * ny))
    return right + left[::-1], [(x, y) for x, y, _, _ in centre]


def test_square_collapses_to_centre():
    skeleton = skeletonize([(0, 0), (1, 0), (1, 1), (0, 1)])
    assert len(skeleton.contour) == 4
    assert skeleton.arcs, "Square should produce skeleton arcs"
    for arc in skeleton.arcs:
        assert _close(arc.end, (0.5, 0.5)), f"Arc does not end at the centre: {arc}"
    for corner in [(0, 0), (1, 0), (1, 1), (0, 1)]:
        assert any(_close(arc.start, corner) for arc in skeleton.arcs), f"No arc from corner {corner}"


def test_rectangle_has_one_central_arc():
    skeleton = skeletonize([(0, 0), (1000, 0), (1000, 50), (0, 50)])
    segments = [(arc.start, arc.end) for arc in skeleton.arcs]
    assert _has_segment(segments, (25, 25), (975, 25)), f"Missing central arc in {segments}"
    for corner, node in [((0, 0), (25, 25)), ((0, 50), (25, 25)),
                         ((1000, 0), (975, 25)), ((1000, 50), (975, 25))]:
        assert _has_segment(segments, corner, node), f"Missing corner arc {corner} -> {node}"


def test_faces_start_with_their_input_edge():
    contour = [(0, 0), (1000, 0), (1000, 50), (0, 50)]
    skeleton = skeletonize(contour)
    faces = skeleton.faces
    assert len(faces) == 4
    for i, face in enumerate(faces):
        assert face[0] == (contour[i], contour[(i + 1) % 4])
        assert len(face) >= 3, f"Face {i} should be closed by at least two arcs"


def test_l_shape_skeleton_nodes():
    skeleton = skeletonize([(0, 0), (2, 0), (2, 1), (1, 1), (1, 2), (0, 2)])
    for expected in [(1.5, 0.5), (0.5, 0.5), (0.5, 1.5)]:
        assert any(_close(node, expected) for node in skeleton.nodes), f"Missing node {expected}"
    segments = [(arc.start, arc.end) for arc in skeleton.arcs]
    # the reflex corner runs straight to the elbow of the centre line
    assert _has_segment(segments, (1, 1), (0.5, 0.5))


def test_closing_point_and_collinear_vertices_are_dropped():
    contour = normalize_contour([(0, 0), (0.5, 0), (1, 0), (1, 1), (1, 1), (0, 1), (0, 0)])
    assert contour == [(0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0)]


def test_invalid_polygons_raise():
    with pytest.raises(SkeletonError):
        skeletonize([(0, 0), (0, 1), (1, 1), (1, 0)])  # clockwise
    with pytest.raises(SkeletonError):
        skeletonize([(0, 0), (1, 0), (0, 0)])
    with pytest.raises(SkeletonError):
        skeletonize([(0, 0), (1, 0), (2, 0), (0, 0)])  # zero area


@pytest.mark.parametrize("turn_deg,start_half_width,end_half_width", [
    (90.0, 0.3, 1.5),
    (60.0, 0.5, 2.0),
    (120.0, 0.2, 1.0),
])
def test_widening_curved_strip_stays_inside(turn_deg, start_half_width, end_half_width):
    ring, _ = _widening_curved_strip(turn_deg=turn_deg, start_half_width=start_half_width,
                                     end_half_width=end_half_width)
    assert len(ring) >= 40
    skeleton = skeletonize(ring)
    polygon = Polygon(ring).buffer(1e-6)

    for arc in skeleton.arcs:
        assert polygon.covers(LineString([arc.start, arc.end])), f"Arc leaves the strip: {arc}"
    for node in skeleton.nodes:
        assert polygon.covers(Point(node)), f"Node outside the strip: {node}"
    for vertex in skeleton.contour:
        assert any(_close(arc.start, vertex) for arc in skeleton.arcs), f"No arc from vertex {vertex}"
    for i, face in enumerate(skeleton.faces):
        assert len(face) >= 3, f"Face {i} is not closed by arcs: {face}"


def test_t_shape_skeleton_forks_at_the_bar():
    skeleton = skeletonize(T_SHAPE)
    segments = [(arc.start, arc.end) for arc in skeleton.arcs]
    print(f"T-shape arcs: {segments}")
    for a, b in [((0.5, 0.5), (10.5, 0.5)), ((10.5, 0.5), (11, 0.5)),
                 ((11, -4), (11, 0.5)), ((11, 0.5), (11, 5))]:
        assert _has_segment(segments, a, b), f"Missing arc {a} -> {b}"
    # both reflex corners run to the end of the stem
    assert _has_segment(segments, (10, 0), (10.5, 0.5))
    assert _has_segment(segments, (10, 1), (10.5, 0.5))


def test_event_budget_is_enforced():
    with pytest.raises(SkeletonError, match="did not converge"):
        skeletonize([(0, 0), (2, 0), (2, 1), (1, 1), (1, 2), (0, 2)], max_events=1)


if __name__ == "__main__":
    test_square_collapses_to_centre()
    test_rectangle_has_one_central_arc()
    test_faces_start_with_their_input_edge()
    test_l_shape_skeleton_nodes()
    test_closing_point_and_collinear_vertices_are_dropped()
    test_invalid_polygons_raise()
    test_t_shape_skeleton_forks_at_the_bar()
    test_event_budget_is_enforced()
    print("✓ straight skeleton tests passed")
