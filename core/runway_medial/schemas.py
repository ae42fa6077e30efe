"""Pydantic models for the output feature schema and batch report."""

from pydantic import BaseModel, Field
from typing import Literal, Optional, List, Dict, Any, Sequence


FailureKind = Literal["malformed_input", "decomposition_failure", "walk_incomplete", "reference_miss"]


def _positions(coords: Sequence[Sequence[float]]) -> List[List[float]]:
    return [[float(c[0]), float(c[1])] for c in coords]


class OutputFeature(BaseModel):
    """GeoJSON-like feature handed to the serialization layer."""
    type: Literal["Feature"] = "Feature"
    geometry: Dict[str, Any]
    properties: Dict[str, Any] = Field(default_factory=dict)

    @property
    def kind(self) -> Optional[str]:
        """Value of the 'type' property (takeOffStart, medialLine, ...)."""
        return self.properties.get('type')

    @classmethod
    def point(cls, coord: Sequence[float], properties: Optional[Dict[str, Any]] = None) -> "OutputFeature":
        return cls(
            geometry={'type': 'Point', 'coordinates': [float(coord[0]), float(coord[1])]},
            properties=dict(properties or {}),
        )

    @classmethod
    def line(cls, coords: Sequence[Sequence[float]], properties: Optional[Dict[str, Any]] = None) -> "OutputFeature":
        return cls(
            geometry={'type': 'LineString', 'coordinates': _positions(coords)},
            properties=dict(properties or {}),
        )

    @classmethod
    def multi_line(
        cls,
        lines: Sequence[Sequence[Sequence[float]]],
        properties: Optional[Dict[str, Any]] = None
    ) -> "OutputFeature":
        return cls(
            geometry={'type': 'MultiLineString', 'coordinates': [_positions(line) for line in lines]},
            properties=dict(properties or {}),
        )


class EnvelopeFailure(BaseModel):
    """A per-envelope problem collected into the batch report."""
    envelope_id: str
    icao: str = ""
    rwy: str = ""
    kind: FailureKind
    message: str


class BatchReport(BaseModel):
    """Aggregate result of a pipeline run."""
    features: List[OutputFeature] = Field(default_factory=list)
    failures: List[EnvelopeFailure] = Field(default_factory=list)
    processed: int = 0
    succeeded: int = 0

    def features_of_type(self, kind: str) -> List[OutputFeature]:
        return [f for f in self.features if f.kind == kind]

    def failures_of_kind(self, kind: FailureKind) -> List[EnvelopeFailure]:
        return [f for f in self.failures if f.kind == kind]

    def to_feature_collection(self) -> Dict[str, Any]:
        return {
            'type': 'FeatureCollection',
            'features': [f.model_dump() for f in self.features],
        }
