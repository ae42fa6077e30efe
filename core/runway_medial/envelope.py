"""Envelope data model."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import uuid
import logging

from .geometry import Coord, as_coords, close_ring, ring_to_polygon
from .schemas import OutputFeature

logger = logging.getLogger(__name__)

ENVELOPE_STYLE = {'stroke': '#555555', 'stroke-width': 2}


def new_envelope_id() -> str:
    return uuid.uuid4().hex[:21]


@dataclass
class Envelope:
    """Obstacle-limitation surface footprint assigned to one runway."""
    ring: List[Coord]  # closed: first == last
    icao: str = ""
    rwy: str = ""
    envelope_id: str = field(default_factory=new_envelope_id)
    straight: Optional[bool] = None  # set once by take-off edge detection
    name: str = ""
    properties: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.ring = close_ring(self.ring)

    @property
    def polygon(self):
        return ring_to_polygon(self.ring)

    @property
    def label(self) -> str:
        return f"{self.icao} RWY {self.rwy} id: {self.envelope_id}"

    @classmethod
    def from_feature(cls, feature: Dict[str, Any]) -> "Envelope":
        """
        Build an envelope from a GeoJSON feature.

        Accepts LineString (ring given as a line) and Polygon (exterior ring)
        geometries. Identity is read from the 'icao', 'rwy' and 'id' properties.
        """
        geometry = feature.get('geometry') or {}
        geom_type = geometry.get('type')
        if geom_type == 'LineString':
            coords = geometry['coordinates']
        elif geom_type == 'Polygon':
            coords = geometry['coordinates'][0]
        else:
            raise ValueError(f"Unsupported envelope geometry type: {geom_type}")

        props = dict(feature.get('properties') or {})
        envelope_id = props.get('id') or new_envelope_id()
        return cls(
            ring=as_coords(coords),
            icao=str(props.get('icao', '') or ''),
            rwy=str(props.get('rwy', '') or ''),
            envelope_id=str(envelope_id),
            name=str(props.get('name', '') or ''),
            properties=props,
        )

    def to_feature(self) -> OutputFeature:
        props = dict(self.properties)
        props.update({
            'icao': self.icao,
            'rwy': self.rwy,
            'id': self.envelope_id,
            'type': 'envelope',
        })
        if self.straight is not None:
            props['straight'] = self.straight
        props.update(ENVELOPE_STYLE)
        return OutputFeature.line(self.ring, props)
