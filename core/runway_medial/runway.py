"""Extension of medial lines back to the physical runway threshold."""

from dataclasses import dataclass
from typing import List, Sequence
import logging

from .geometry import Coord, as_coords, bearing, bearing_difference, distance
from .reference import ReferenceTables, RunwayRecord
from .schemas import OutputFeature

logger = logging.getLogger(__name__)

RUNWAY_END_STYLE = {'marker-color': '#FFAFA0', 'marker-size': 'small'}


@dataclass(frozen=True)
class ThresholdCandidate:
    record: RunwayRecord
    coord: Coord
    bearing_diff: float
    distance_m: float


def rank_thresholds(coords: Sequence[Sequence[float]], runways: Sequence[RunwayRecord]) -> List[ThresholdCandidate]:
    """
    Rank runway thresholds as the upstream end of a medial line.

    The reference direction is the bearing from the second line point back to
    the first. Each threshold is scored by how far the bearing from the line
    start to the threshold deviates from it, and by its distance from the
    line start.

    Returns:
        Candidates sorted by (bearing difference ascending, distance descending)
    """
    if len(coords) < 2:
        return []
    start = coords[0]
    line_bearing = bearing(coords[1], start)

    candidates = []
    for record in runways:
        threshold = record.threshold
        candidates.append(ThresholdCandidate(
            record=record,
            coord=threshold,
            bearing_diff=bearing_difference(line_bearing, bearing(start, threshold)),
            distance_m=distance(start, threshold),
        ))
    candidates.sort(key=lambda c: (c.bearing_diff, -c.distance_m))
    return candidates


def extend_to_threshold(coords: Sequence[Sequence[float]], icao: str, tables: ReferenceTables) -> List[Coord]:
    """
    Prepend the best-aligned runway threshold of the airport to a medial line.

    Args:
        coords: Medial line, first position is the take-off start anchor
        icao: Airport code used for the runway lookup
        tables: Reference tables

    Returns:
        A new coordinate list; an unchanged copy if the airport has no runway records
    """
    line = as_coords(coords)
    runways = tables.runways_for(icao)
    if not runways:
        logger.debug("No runway records for %s, medial line not extended", icao)
        return line

    ranked = rank_thresholds(line, runways)
    if not ranked:
        return line

    best = ranked[0]
    logger.debug("%s: extending to threshold %s (bearing diff %.2f deg, %.0f m)",
                 icao, best.record.rwy or best.coord, best.bearing_diff, best.distance_m)
    return [best.coord] + line


def runway_end_features(icao: str, tables: ReferenceTables) -> List[OutputFeature]:
    """Small markers at every runway threshold of an airport."""
    features = []
    for record in tables.runways_for(icao):
        props = {'icao': icao, 'type': 'runwayEnd', **RUNWAY_END_STYLE}
        if record.rwy:
            props['rwy'] = record.rwy
        features.append(OutputFeature.point(record.threshold, props))
    return features
