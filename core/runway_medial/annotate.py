"""Turn and waypoint markers placed on finished medial lines."""

from typing import List, Optional, Sequence, Tuple
import numpy as np
from scipy.ndimage import uniform_filter1d
from scipy.signal import find_peaks
import logging

from .envelope import Envelope
from .geometry import METERS_PER_NM, along, as_coords, line_length, point_on_line
from .reference import ReferenceTables
from .schemas import OutputFeature

logger = logging.getLogger(__name__)

TURN_STYLE = {'marker-color': '#00FF00', 'marker-size': 'small'}
DIST_TURN_STYLE = {'marker-color': '#FFA500', 'marker-size': 'small'}

BOUNDARY_EPSILON = 1e-5
SMOOTHING_WINDOW = 5
PEAK_THRESHOLD = 1e-4
FALLBACK_FRACTION = 0.2


def _marker(envelope: Envelope, coord, kind: str, style) -> OutputFeature:
    props = {
        'icao': envelope.icao,
        'rwy': envelope.rwy,
        'envelopeId': envelope.envelope_id,
        'type': kind,
        **style,
    }
    return OutputFeature.point(coord, props)


def anchor_turn_points(envelope: Envelope, coords: Sequence[Sequence[float]]) -> List[OutputFeature]:
    """
    autoTurn1/autoTurn2 at the second and second-to-last positions of a medial line.

    These mark where the line leaves and rejoins the straight ground-roll
    segment next to each anchor. Lines with fewer than 3 positions have none.
    """
    if len(coords) < 3:
        return []
    return [
        _marker(envelope, coords[1], 'autoTurn1', TURN_STYLE),
        _marker(envelope, coords[-2], 'autoTurn2', TURN_STYLE),
    ]


def inner_subline(
    coords: Sequence[Sequence[float]],
    ring: Sequence[Sequence[float]],
    epsilon: float = BOUNDARY_EPSILON
):
    """
    Part of a line between its first and last positions on the envelope boundary.

    Returns the whole line when fewer than two positions touch the boundary.
    """
    line = as_coords(coords)
    on_boundary = [i for i, c in enumerate(line) if point_on_line(c, ring, epsilon)]
    if len(on_boundary) < 2:
        logger.debug("inner_subline: %d boundary positions, using the whole line", len(on_boundary))
        return line
    return line[on_boundary[0]:on_boundary[-1] + 1]


def distance_turn_points(
    envelope: Envelope,
    coords: Sequence[Sequence[float]],
    tables: ReferenceTables
) -> List[OutputFeature]:
    """
    distTurn1/distTurn2 at the runway's turn distances along the inner sub-line.

    Distances are nautical miles from the start of the part of the line that
    lies inside the envelope. Missing or zero distances produce no marker.
    """
    turn_start, turn_end = tables.turn_distances(envelope.icao, envelope.rwy)
    if not turn_start and not turn_end:
        return []

    sub = inner_subline(coords, envelope.ring)
    if len(sub) < 2:
        return []
    length_nm = line_length(sub, units='nauticalmiles')

    features = []
    for value, kind in ((turn_start, 'distTurn1'), (turn_end, 'distTurn2')):
        if not value:
            continue
        if value > length_nm:
            logger.warning("%s: %s at %.2f NM is beyond the inner line length %.2f NM, clamped",
                           envelope.label, kind, value, length_nm)
        point = along(sub, value * METERS_PER_NM)
        features.append(_marker(envelope, point, kind, {**DIST_TURN_STYLE, 'distanceNM': value}))
    return features


def menger_curvature(coords: Sequence[Sequence[float]]) -> np.ndarray:
    """Menger curvature 4*area/(a*b*c) at every interior vertex (planar, degrees)."""
    xy = np.asarray([(c[0], c[1]) for c in coords], dtype=float)
    if len(xy) < 3:
        return np.zeros(0)
    p1 = xy[:-2]
    p2 = xy[1:-1]
    p3 = xy[2:]
    v1 = p2 - p1
    v2 = p3 - p1
    area = np.abs(v1[:, 0] * v2[:, 1] - v1[:, 1] * v2[:, 0]) / 2
    d12 = np.linalg.norm(p2 - p1, axis=1)
    d23 = np.linalg.norm(p3 - p2, axis=1)
    d31 = np.linalg.norm(p1 - p3, axis=1)
    denom = d12 * d23 * d31
    curvature = np.zeros(len(p2))
    nonzero = denom > 0
    curvature[nonzero] = 4 * area[nonzero] / denom[nonzero]
    return curvature


def smooth(values: Sequence[float], window: int = SMOOTHING_WINDOW) -> np.ndarray:
    """Moving average; near the ends only the samples inside the line are averaged."""
    values = np.asarray(values, dtype=float)
    if len(values) == 0:
        return values
    total = uniform_filter1d(values, size=window, mode='constant', cval=0.0)
    count = uniform_filter1d(np.ones_like(values), size=window, mode='constant', cval=0.0)
    return total / count


def detect_curve_transitions(
    coords: Sequence[Sequence[float]],
    window: int = SMOOTHING_WINDOW,
    peak_threshold: float = PEAK_THRESHOLD
) -> Optional[Tuple[int, int]]:
    """
    Find where a medial line enters and leaves its curve.

    Peaks of the smoothed curvature change mark the transitions. With fewer
    than two peaks, the first and last vertices whose curvature exceeds 20%
    of the maximum are used instead.

    Args:
        coords: Medial line positions
        window: Moving-average window for the curvature change
        peak_threshold: Minimum smoothed change for a peak

    Returns:
        (start index, end index) into coords, or None for a line without curvature
    """
    curvature = menger_curvature(coords)
    if len(curvature) == 0 or curvature.max() <= 0:
        return None

    if len(curvature) >= 2:
        change = np.abs(np.diff(curvature))
        smoothed = smooth(change, window)
        peaks, _ = find_peaks(smoothed, height=peak_threshold)
        if len(peaks) >= 2:
            return int(peaks[0]) + 1, int(peaks[-1]) + 1

    threshold = curvature.max() * FALLBACK_FRACTION
    above = np.nonzero(curvature > threshold)[0]
    return int(above[0]) + 1, int(above[-1]) + 1


def curvature_turn_points(envelope: Envelope, coords: Sequence[Sequence[float]]) -> List[OutputFeature]:
    """turnStart/turnEnd markers at the detected curve transitions."""
    transitions = detect_curve_transitions(coords)
    if transitions is None:
        return []
    start, end = transitions
    return [
        _marker(envelope, coords[start], 'turnStart', TURN_STYLE),
        _marker(envelope, coords[end], 'turnEnd', TURN_STYLE),
    ]
