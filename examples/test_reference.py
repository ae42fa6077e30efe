#!/usr/bin/env python3
"""Test DMS parsing and loading of the airport and runway reference tables."""

import pytest

from runway_medial.reference import (
    ReferenceTableError,
    RunwayRecord,
    load_reference_tables,
    parse_dms,
)

AIRPORTS_CSV = """ident,iso_country,type,latitude_deg,longitude_deg,name
RJTT,JP,large_airport,35.552299,139.779999,Tokyo Haneda International Airport
RJAA,JP,large_airport,35.764702,140.386002,Narita International Airport
RJ01,JP,heliport,35.0,139.0,Some Heliport
RJOT,JP,medium_airport,34.214199,134.016006,Takamatsu Airport
KSFO,US,large_airport,37.618999,-122.375,San Francisco International Airport
RJXX,JP,small_airport,,,Airport Without Position
"""

RUNWAYS_CSV = """Code,Rwy,LatStartTORA,LongStartTORA,TurnStartNM,TurnEndNM
RJTT,16R,353313.00N,1394647.00E,1.5,3.0
RJTT,34L,353226.00N,1394811.00E,,
RJAA,16R,354742.00N,1402247.00E,2.0,
RJAA,XX,BAD,1402247.00E,,
"""


def _write_tables(tmp_path, airports=AIRPORTS_CSV, runways=RUNWAYS_CSV):
    airports_path = tmp_path / "airports.csv"
    runways_path = tmp_path / "runways.csv"
    airports_path.write_text(airports, encoding="utf-8")
    runways_path.write_text(runways, encoding="utf-8")
    return airports_path, runways_path


def test_parse_dms():
    assert parse_dms("352000.00N") == pytest.approx(35.333333, abs=1e-6)
    assert parse_dms("1394700.50E") == pytest.approx(139.783472, abs=1e-6)
    assert parse_dms("352000S") == pytest.approx(-35.333333, abs=1e-6)
    assert parse_dms("0733000.00W") == pytest.approx(-73.5, abs=1e-9)
    assert parse_dms("000000.00N") == 0.0


@pytest.mark.parametrize("text", ["35N", "ABC", "352000.00X", "", "352000.00"])
def test_parse_dms_rejects_malformed(text):
    with pytest.raises(ValueError):
        parse_dms(text)


def test_runway_threshold_is_lon_lat():
    record = RunwayRecord(icao="RJTT", rwy="16R", lat_dms="353000.00N", lon_dms="1394500.00E")
    assert record.threshold == (139.75, 35.5)


def test_load_reference_tables(tmp_path):
    airports_path, runways_path = _write_tables(tmp_path)
    tables = load_reference_tables(airports_path, runways_path)

    icaos = [ap.icao for ap in tables.airports]
    assert icaos == ["RJTT", "RJAA", "RJOT", "KSFO"], "Heliports and airports without position are skipped"
    assert tables.airport("RJTT").name == "Tokyo Haneda International Airport"
    assert tables.airport("RJ01") is None

    assert [r.rwy for r in tables.runways_for("RJTT")] == ["16R", "34L"]
    assert len(tables.runways_for("RJAA")) == 1, "Row with a malformed DMS value is skipped"
    assert tables.runways_for("ZZZZ") == ()

    assert tables.turn_distances("RJTT", "16R") == (1.5, 3.0)
    assert tables.turn_distances("RJTT", "34L") == (None, None)
    assert tables.turn_distances("RJAA", "16R") == (2.0, None)
    assert tables.turn_distances("RJAA", "34L") == (None, None)


def test_airport_filters(tmp_path):
    airports_path, runways_path = _write_tables(tmp_path)
    japan = load_reference_tables(airports_path, runways_path, country="JP")
    assert "KSFO" not in [ap.icao for ap in japan.airports]

    prefixed = load_reference_tables(airports_path, runways_path, icao_prefix="RJT")
    assert [ap.icao for ap in prefixed.airports] == ["RJTT"]


def test_tables_are_read_only(tmp_path):
    tables = load_reference_tables(*_write_tables(tmp_path))
    with pytest.raises(TypeError):
        tables.runways["RJTT"] = ()


def test_missing_file_or_column(tmp_path):
    airports_path, runways_path = _write_tables(tmp_path)
    with pytest.raises(ReferenceTableError):
        load_reference_tables(tmp_path / "nope.csv", runways_path)

    bad_runways = tmp_path / "bad_runways.csv"
    bad_runways.write_text("Code,Lat,Lon\nRJTT,1,2\n", encoding="utf-8")
    with pytest.raises(ReferenceTableError):
        load_reference_tables(airports_path, bad_runways)


if __name__ == "__main__":
    test_parse_dms()
    test_runway_threshold_is_lon_lat()
    print("✓ reference tests passed (run with pytest for file-based tests)")
