"""Tests for the place model, the dataset loader and configuration."""

from __future__ import annotations

import zipfile

import pytest

from conftest import NEW_YORK, make_place
from revgeo.config import DEFAULT_CONFIG, IndexConfig
from revgeo.errors import BuildError, InvalidArgument
from revgeo.loader import load_world_cities, parse_row
from revgeo.models import UNKNOWN_POPULATION, PlaceRecord

HEADER = "Country,City,AccentCity,Region,Population,Latitude,Longitude\n"
ROWS = (
    "us,new york,New York,NY,8107916,40.7141667,-74.0063889\n"
    "fr,paris,Paris,A8,2110694,48.866667,2.333333\n"
    "ad,aixas,Aixàs,06,,42.4833333,1.4666667\n"
)


# ── Model tests ──────────────────────────────────────────────────────────


class TestPlaceRecord:
    def test_json_roundtrip(self):
        restored = PlaceRecord.from_json(NEW_YORK.to_json())
        assert restored == NEW_YORK

    def test_point_is_lon_lat(self):
        assert NEW_YORK.point.x == NEW_YORK.longitude
        assert NEW_YORK.point.y == NEW_YORK.latitude

    def test_population_sentinel(self):
        assert not make_place(population=UNKNOWN_POPULATION).has_population
        assert make_place(population=0).has_population

    def test_valid_record(self):
        assert PlaceRecord.validate(NEW_YORK) == []

    def test_invalid_latitude(self):
        errors = PlaceRecord.validate(make_place(lat=95.0))
        assert any("latitude" in e for e in errors)

    def test_invalid_longitude(self):
        errors = PlaceRecord.validate(make_place(lon=-200.0))
        assert any("longitude" in e for e in errors)

    def test_non_finite_coordinate(self):
        errors = PlaceRecord.validate(make_place(lat=float("inf")))
        assert any("not finite" in e for e in errors)

    def test_negative_population(self):
        errors = PlaceRecord.validate(make_place(population=-5))
        assert any("population" in e for e in errors)

    def test_frozen(self):
        with pytest.raises(AttributeError):
            NEW_YORK.city = "gotham"


# ── Loader tests ─────────────────────────────────────────────────────────


class TestParseRow:
    def test_parse(self):
        place = parse_row(["us", "new york", "New York", "NY", "8107916", "40.7141667", "-74.0063889"])
        assert place.country == "us"
        assert place.display_name == "New York"
        assert place.population == 8107916
        assert place.latitude == 40.7141667
        assert place.longitude == -74.0063889

    def test_empty_population_is_unknown(self):
        place = parse_row(["ad", "aixas", "Aixàs", "06", "", "42.48", "1.46"])
        assert place.population == UNKNOWN_POPULATION

    def test_float_population(self):
        place = parse_row(["us", "x", "X", "NY", "1234.0", "1", "2"])
        assert place.population == 1234

    def test_bad_latitude(self):
        with pytest.raises(BuildError, match="Line 9"):
            parse_row(["us", "x", "X", "NY", "", "north", "2"], line_no=9)

    def test_wrong_column_count(self):
        with pytest.raises(BuildError, match="expected 7 columns"):
            parse_row(["us", "x", "X"])


class TestLoadWorldCities:
    def test_load_csv(self, tmp_path):
        path = tmp_path / "cities.csv"
        path.write_text(HEADER + ROWS, encoding="utf-8")
        places = load_world_cities(path)
        assert [p.city for p in places] == ["new york", "paris", "aixas"]
        assert places[2].display_name == "Aixàs"
        assert places[2].population == UNKNOWN_POPULATION

    def test_load_zip(self, tmp_path):
        path = tmp_path / "world-cities-database.zip"
        with zipfile.ZipFile(path, "w") as archive:
            archive.writestr("worldcitiespop.csv", HEADER + ROWS)
        places = load_world_cities(path)
        assert len(places) == 3

    def test_zip_without_member(self, tmp_path):
        path = tmp_path / "empty.zip"
        with zipfile.ZipFile(path, "w") as archive:
            archive.writestr("readme.txt", "nothing here")
            archive.writestr("other.txt", "nor here")
        with pytest.raises(BuildError, match="worldcitiespop.csv"):
            load_world_cities(path)

    def test_header_only(self, tmp_path):
        path = tmp_path / "cities.csv"
        path.write_text(HEADER, encoding="utf-8")
        assert load_world_cities(path) == []

    def test_malformed_row_names_line(self, tmp_path):
        path = tmp_path / "cities.csv"
        path.write_text(HEADER + ROWS + "us,bad,Bad,NY,,40.0,west\n", encoding="utf-8")
        with pytest.raises(BuildError, match="Line 5"):
            load_world_cities(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(BuildError, match="Cannot read"):
            load_world_cities(tmp_path / "missing.csv")

    def test_latin1_encoding(self, tmp_path):
        path = tmp_path / "cities.csv"
        path.write_bytes((HEADER + ROWS).encode("latin-1"))
        with pytest.raises(BuildError):
            load_world_cities(path)
        places = load_world_cities(path, encoding="latin-1")
        assert places[2].display_name == "Aixàs"


# ── Config tests ─────────────────────────────────────────────────────────


class TestIndexConfig:
    def test_defaults(self):
        assert DEFAULT_CONFIG.precision_levels == 11
        assert DEFAULT_CONFIG.earth_radius_km == 6371.0088
        assert DEFAULT_CONFIG.bounded_candidates is False

    @pytest.mark.parametrize("overrides", [
        {"precision_levels": 0},
        {"precision_levels": 13},
        {"earth_radius_km": 0},
        {"dist_err_pct": 0},
        {"batch_size": 0},
        {"max_cover_cells": 4},
    ])
    def test_invalid(self, overrides):
        with pytest.raises(ValueError):
            IndexConfig(**overrides)

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("REVGEO_PRECISION_LEVELS", "9")
        monkeypatch.setenv("REVGEO_DIST_ERR_PCT", "0.05")
        monkeypatch.setenv("REVGEO_BOUNDED_CANDIDATES", "true")
        monkeypatch.setenv("REVGEO_BATCH_SIZE", "500")
        config = IndexConfig.from_env()
        assert config.precision_levels == 9
        assert config.dist_err_pct == 0.05
        assert config.bounded_candidates is True
        assert config.batch_size == 500

    def test_from_env_defaults(self, monkeypatch):
        for name in ("REVGEO_PRECISION_LEVELS", "REVGEO_DIST_ERR_PCT",
                     "REVGEO_BOUNDED_CANDIDATES", "REVGEO_BATCH_SIZE"):
            monkeypatch.delenv(name, raising=False)
        assert IndexConfig.from_env() == DEFAULT_CONFIG

    @pytest.mark.parametrize("name,value", [
        ("REVGEO_PRECISION_LEVELS", "eleven"),
        ("REVGEO_DIST_ERR_PCT", "lots"),
        ("REVGEO_BATCH_SIZE", "0"),
    ])
    def test_from_env_rejects_bad_value(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)
        with pytest.raises(InvalidArgument, match=name.split("_", 1)[1].lower()):
            IndexConfig.from_env()
