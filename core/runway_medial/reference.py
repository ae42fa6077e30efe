"""Airport and runway reference tables."""

from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple
import csv
import re
import logging

from .geometry import Coord

logger = logging.getLogger(__name__)

_DMS_PATTERN = re.compile(r'^(\d{2,3})(\d{2})(\d{2}\.?\d*)([NSEW])$')

AIRPORT_COLUMNS = ('ident', 'iso_country', 'type', 'latitude_deg', 'longitude_deg', 'name')
RUNWAY_COLUMNS = ('Code', 'LatStartTORA', 'LongStartTORA')


class ReferenceTableError(ValueError):
    """A reference table is missing or unreadable."""


def parse_dms(text: str) -> float:
    """
    Parse a DDMMSS.ss[NSEW] or DDDMMSS.ss[NSEW] string into decimal degrees.

    South and west values are negative. The result is rounded to 6 decimals.

    Raises:
        ValueError: If the string does not match the format
    """
    match = _DMS_PATTERN.match(str(text).strip())
    if not match:
        raise ValueError(f"Invalid DMS coordinate: {text!r}")
    degrees = float(match.group(1))
    minutes = float(match.group(2))
    seconds = float(match.group(3))
    value = degrees + minutes / 60 + seconds / 3600
    if match.group(4) in ('S', 'W'):
        value = -value
    return round(value, 6)


@dataclass(frozen=True)
class AirportRecord:
    icao: str
    country: str
    kind: str
    lat: float
    lon: float
    name: str = ""

    @property
    def position(self) -> Coord:
        return Coord(self.lon, self.lat)


@dataclass(frozen=True)
class RunwayRecord:
    """One runway end: threshold position in DMS plus optional turn distances (NM)."""
    icao: str
    rwy: str
    lat_dms: str
    lon_dms: str
    turn_start_nm: Optional[float] = None
    turn_end_nm: Optional[float] = None

    @property
    def threshold(self) -> Coord:
        return Coord(parse_dms(self.lon_dms), parse_dms(self.lat_dms))


class ReferenceTables:
    """Read-only reference data shared by all envelope tasks."""

    def __init__(self, airports: List[AirportRecord], runways: List[RunwayRecord]):
        self.airports: Tuple[AirportRecord, ...] = tuple(airports)
        grouped: Dict[str, List[RunwayRecord]] = {}
        for record in runways:
            grouped.setdefault(record.icao, []).append(record)
        self._runways: Mapping[str, Tuple[RunwayRecord, ...]] = MappingProxyType(
            {icao: tuple(records) for icao, records in grouped.items()}
        )
        self._airports_by_icao: Mapping[str, AirportRecord] = MappingProxyType(
            {ap.icao: ap for ap in self.airports}
        )

    @property
    def runways(self) -> Mapping[str, Tuple[RunwayRecord, ...]]:
        return self._runways

    def airport(self, icao: str) -> Optional[AirportRecord]:
        return self._airports_by_icao.get(icao)

    def runways_for(self, icao: str) -> Tuple[RunwayRecord, ...]:
        return self._runways.get(icao, ())

    def turn_distances(self, icao: str, rwy: str) -> Tuple[Optional[float], Optional[float]]:
        """(turn start, turn end) in NM for a runway, (None, None) if unknown."""
        for record in self.runways_for(icao):
            if record.rwy == rwy:
                return record.turn_start_nm, record.turn_end_nm
        return None, None


def _optional_float(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    return float(value)


def _read_rows(path: Path, required: Tuple[str, ...]) -> List[Dict[str, str]]:
    if not path.exists():
        raise ReferenceTableError(f"Reference table not found: {path}")
    try:
        with open(path, 'r', newline='', encoding='utf-8-sig') as f:
            reader = csv.DictReader(f)
            missing = [c for c in required if c not in (reader.fieldnames or [])]
            if missing:
                raise ReferenceTableError(f"{path}: missing columns {missing}")
            return [row for row in reader if any((v or '').strip() for v in row.values() if isinstance(v, str))]
    except (OSError, csv.Error, UnicodeDecodeError) as e:
        raise ReferenceTableError(f"Failed to read reference table {path}: {e}") from e


def load_airports(path, country: Optional[str] = None, icao_prefix: Optional[str] = None) -> List[AirportRecord]:
    """Load airports from an OurAirports-style CSV, keeping rows whose type ends in 'airport'."""
    airports = []
    for line_num, row in enumerate(_read_rows(Path(path), AIRPORT_COLUMNS), 2):
        ident = (row['ident'] or '').strip()
        if country and (row['iso_country'] or '').strip() != country:
            continue
        if icao_prefix and not ident.startswith(icao_prefix):
            continue
        if not (row['type'] or '').strip().endswith('airport'):
            continue
        try:
            lat = float(row['latitude_deg'])
            lon = float(row['longitude_deg'])
        except (TypeError, ValueError):
            logger.warning("Airport %s on line %d has no valid position, skipped", ident, line_num)
            continue
        airports.append(AirportRecord(ident, (row['iso_country'] or '').strip(), row['type'].strip(), lat, lon,
                                      (row.get('name') or '').strip()))
    return airports


def load_runways(path) -> List[RunwayRecord]:
    """Load runway thresholds; rows with malformed DMS or turn distances are skipped."""
    runways = []
    for line_num, row in enumerate(_read_rows(Path(path), RUNWAY_COLUMNS), 2):
        icao = (row['Code'] or '').strip()
        try:
            lat_dms = row['LatStartTORA'].strip()
            lon_dms = row['LongStartTORA'].strip()
            parse_dms(lat_dms)
            parse_dms(lon_dms)
            record = RunwayRecord(
                icao=icao,
                rwy=(row.get('Rwy') or '').strip(),
                lat_dms=lat_dms,
                lon_dms=lon_dms,
                turn_start_nm=_optional_float(row.get('TurnStartNM')),
                turn_end_nm=_optional_float(row.get('TurnEndNM')),
            )
        except (AttributeError, ValueError) as e:
            logger.warning("Runway row %d (%s) skipped: %s", line_num, icao, e)
            continue
        runways.append(record)
    return runways


def load_reference_tables(
    airports_csv,
    runways_csv,
    country: Optional[str] = None,
    icao_prefix: Optional[str] = None
) -> ReferenceTables:
    """
    Load the airport and runway tables once for a whole run.

    Args:
        airports_csv: Path to the airport CSV
        runways_csv: Path to the runway threshold CSV
        country: Optional ISO country filter for airports
        icao_prefix: Optional ICAO prefix filter for airports

    Returns:
        ReferenceTables

    Raises:
        ReferenceTableError: If either file is missing or lacks required columns
    """
    airports = load_airports(airports_csv, country=country, icao_prefix=icao_prefix)
    runways = load_runways(runways_csv)
    logger.info("Loaded %d airports from %s and %d runway ends from %s",
                len(airports), airports_csv, len(runways), runways_csv)
    return ReferenceTables(airports, runways)
