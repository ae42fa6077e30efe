"""Removal of near-duplicate envelopes by polygon overlap."""

from typing import Dict, List, Tuple
from shapely.errors import GEOSException
from shapely.geometry import Polygon
from shapely.validation import make_valid
import logging

from .envelope import Envelope

logger = logging.getLogger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.95


def _as_valid(polygon: Polygon):
    return polygon if polygon.is_valid else make_valid(polygon)


def polygon_similarity(poly1: Polygon, poly2: Polygon) -> float:
    """
    Intersection-over-Union of two polygons.

    Returns 0.0 when the polygons do not overlap or when the overlay cannot
    be computed (degenerate geometry).
    """
    try:
        a = _as_valid(poly1)
        b = _as_valid(poly2)
        intersection = a.intersection(b)
        if intersection.is_empty or intersection.area == 0:
            return 0.0
        union = a.union(b)
        if union.is_empty or union.area == 0:
            return 0.0
    except GEOSException as e:
        logger.warning("polygon_similarity: overlay failed: %s", e)
        return 0.0
    return intersection.area / union.area


def envelope_similarity(env1: Envelope, env2: Envelope) -> float:
    return polygon_similarity(env1.polygon, env2.polygon)


def deduplicate_envelopes(
    envelopes: List[Envelope],
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD
) -> List[Envelope]:
    """
    Drop envelopes that duplicate an earlier envelope of the same runway.

    Candidates are compared only against accepted envelopes with the same
    (icao, rwy) identity. The first envelope seen wins and input order is kept.

    Args:
        envelopes: Candidate envelopes in input order
        threshold: IoU at or above which a candidate is a duplicate

    Returns:
        Accepted envelopes
    """
    accepted: List[Envelope] = []
    by_identity: Dict[Tuple[str, str], List[Tuple[Envelope, Polygon]]] = {}

    for envelope in envelopes:
        identity = (envelope.icao, envelope.rwy)
        try:
            polygon = envelope.polygon
        except ValueError as e:
            # not comparable; left for the take-off stage to report
            logger.warning("Envelope %s has no valid polygon (%s), kept without comparison",
                           envelope.label, e)
            accepted.append(envelope)
            continue
        group = by_identity.setdefault(identity, [])

        duplicate_of = None
        for kept, kept_polygon in group:
            similarity = polygon_similarity(kept_polygon, polygon)
            if similarity >= threshold:
                duplicate_of = (kept, similarity)
                break

        if duplicate_of is not None:
            kept, similarity = duplicate_of
            logger.info("Dropping duplicate envelope %s (IoU %.3f with %s)",
                        envelope.label, similarity, kept.envelope_id)
            continue

        group.append((envelope, polygon))
        accepted.append(envelope)

    logger.info("deduplicate_envelopes: kept %d of %d envelopes", len(accepted), len(envelopes))
    return accepted
