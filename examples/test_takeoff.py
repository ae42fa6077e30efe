#!/usr/bin/env python3
"""Test take-off edge detection and straight/curved classification."""

from runway_medial.envelope import Envelope
from runway_medial.takeoff import (
    TakeoffEdge,
    classify_envelope,
    detect_takeoff_edge,
    score_ring_edges,
    takeoff_anchor_features,
)

# 0.01 deg x 0.0005 deg rectangle on the equator: ~1112 m long, ~56 m wide
RECTANGLE = [(0.0, 0.0), (0.01, 0.0), (0.01, 0.0005), (0.0, 0.0005)]
SHORT_EDGES = {
    frozenset({(0.01, 0.0), (0.01, 0.0005)}),
    frozenset({(0.0, 0.0005), (0.0, 0.0)}),
}


def _closed(coords):
    return list(coords) + [coords[0]]


def _edge_set(edge: TakeoffEdge):
    return {frozenset(edge.start), frozenset(edge.end)}


def test_rectangle_scores_are_equal():
    scores = [s.angle_sum for s in score_ring_edges(_closed(RECTANGLE))]
    assert len(scores) == 4
    for score in scores:
        assert abs(score - 180.0) < 1e-6, f"Rectangle corner sums should be 180, got {scores}"


def test_rectangle_short_edges_under_rotation_and_reversal():
    """The short ends are found whatever vertex the ring starts at and whatever its direction."""
    results = []
    for reverse in (False, True):
        base = list(reversed(RECTANGLE)) if reverse else list(RECTANGLE)
        for k in range(len(base)):
            rotated = base[k:] + base[:k]
            edge = detect_takeoff_edge(_closed(rotated))
            assert edge is not None
            assert _edge_set(edge) == SHORT_EDGES, f"rotation {k}, reversed={reverse}: {edge}"
            assert not edge.shares_vertex()
            results.append(frozenset(edge.start))
    assert len(set(results)) == 1, "Tie-break should pick the same start edge for every rotation"


def test_straightness_threshold():
    nearly_parallel = TakeoffEdge(start=((0.0, 0.0), (0.0, 0.001)), end=((0.01, 0.0), (0.01002, 0.001)))
    assert nearly_parallel.bearing_offset() < 3.0
    assert nearly_parallel.is_straight()

    opposite = TakeoffEdge(start=((0.0, 0.0), (0.0, 0.001)), end=((0.01, 0.001), (0.01, 0.0)))
    assert opposite.is_straight(), "Opposite directions are parallel modulo 180"

    perpendicular = TakeoffEdge(start=((0.0, 0.0), (0.0, 0.001)), end=((0.01, 0.0), (0.011, 0.0)))
    assert abs(perpendicular.bearing_offset() - 90.0) < 1e-6
    assert not perpendicular.is_straight()


def test_too_few_coordinates():
    assert detect_takeoff_edge([(0, 0), (1, 0), (0, 0)]) is None
    envelope = Envelope(ring=[(0, 0), (1, 0), (0, 0)], icao="RJTT", rwy="16R")
    assert classify_envelope(envelope) is None
    assert envelope.straight is None


def test_classify_and_anchor_markers():
    envelope = Envelope(ring=_closed(RECTANGLE), icao="RJTT", rwy="16R", envelope_id="env1")
    edge = classify_envelope(envelope)
    assert envelope.straight is True

    start, end = edge.anchors()
    assert {round(start.x, 9), round(end.x, 9)} == {0.0, 0.01}
    assert abs(start.y - 0.00025) < 1e-9 and abs(end.y - 0.00025) < 1e-9

    features = takeoff_anchor_features(envelope, edge)
    assert [f.kind for f in features] == ["takeOffStart", "takeOffEnd"]
    assert features[0].properties["marker-color"] == "#0000FF"
    assert features[1].properties["marker-color"] == "#FF00FF"
    assert all(f.properties["envelopeId"] == "env1" for f in features)


if __name__ == "__main__":
    test_rectangle_scores_are_equal()
    test_rectangle_short_edges_under_rotation_and_reversal()
    test_straightness_threshold()
    test_too_few_coordinates()
    test_classify_and_anchor_markers()
    print("✓ takeoff tests passed")
