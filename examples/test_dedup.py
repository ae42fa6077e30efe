#!/usr/bin/env python3
"""Test IoU-based removal of duplicate envelopes."""

from shapely.geometry import box

from runway_medial.dedup import deduplicate_envelopes, envelope_similarity, polygon_similarity
from runway_medial.envelope import Envelope


def _box_ring(xmin, ymin, xmax, ymax):
    return [(xmin, ymin), (xmax, ymin), (xmax, ymax), (xmin, ymax), (xmin, ymin)]


def test_polygon_similarity_is_iou():
    a = box(0, 0, 2, 1)
    b = box(1, 0, 3, 1)
    assert abs(polygon_similarity(a, b) - 1 / 3) < 1e-12
    assert abs(polygon_similarity(b, a) - 1 / 3) < 1e-12, "IoU should be symmetric"
    assert polygon_similarity(a, a) == 1.0
    assert polygon_similarity(a, box(5, 5, 6, 6)) == 0.0


def test_envelope_similarity_handles_self_intersecting_ring():
    bow_tie = Envelope(ring=[(0, 0), (1, 1), (1, 0), (0, 1), (0, 0)], icao="RJTT", rwy="16R")
    square = Envelope(ring=_box_ring(0, 0, 1, 1), icao="RJTT", rwy="16R")
    similarity = envelope_similarity(bow_tie, square)
    assert 0.0 <= similarity <= 1.0


def test_first_seen_wins_and_order_is_kept():
    first = Envelope(ring=_box_ring(0, 0, 1, 0.1), icao="RJTT", rwy="16R", envelope_id="a")
    near_copy = Envelope(ring=_box_ring(0.001, 0, 1.001, 0.1), icao="RJTT", rwy="16R", envelope_id="b")
    other = Envelope(ring=_box_ring(5, 5, 6, 5.1), icao="RJTT", rwy="16R", envelope_id="c")

    kept = deduplicate_envelopes([first, near_copy, other])
    assert [env.envelope_id for env in kept] == ["a", "c"]

    again = deduplicate_envelopes(kept)
    assert [env.envelope_id for env in again] == ["a", "c"], "Deduplication should be idempotent"


def test_different_identities_are_never_compared():
    ring = _box_ring(0, 0, 1, 0.1)
    envelopes = [
        Envelope(ring=ring, icao="RJTT", rwy="16R", envelope_id="a"),
        Envelope(ring=ring, icao="RJTT", rwy="34L", envelope_id="b"),
        Envelope(ring=ring, icao="RJAA", rwy="16R", envelope_id="c"),
        Envelope(ring=ring, icao="RJTT", rwy="16R", envelope_id="d"),
    ]
    kept = deduplicate_envelopes(envelopes)
    assert [env.envelope_id for env in kept] == ["a", "b", "c"]


def test_threshold_controls_duplicates():
    a = Envelope(ring=_box_ring(0, 0, 2, 1), icao="RJTT", rwy="16R", envelope_id="a")
    b = Envelope(ring=_box_ring(1, 0, 3, 1), icao="RJTT", rwy="16R", envelope_id="b")
    assert len(deduplicate_envelopes([a, b], threshold=0.3)) == 1
    assert len(deduplicate_envelopes([a, b], threshold=0.4)) == 2


if __name__ == "__main__":
    test_polygon_similarity_is_iou()
    test_envelope_similarity_handles_self_intersecting_ring()
    test_first_seen_wins_and_order_is_kept()
    test_different_identities_are_never_compared()
    test_threshold_controls_duplicates()
    print("✓ dedup tests passed")
