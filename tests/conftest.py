"""Shared fixtures: small place sets and the indexes built from them."""

from __future__ import annotations

import random

import pytest

from revgeo.builder import build_index
from revgeo.models import PlaceRecord
from revgeo.reader import open_index


def make_place(city="Testville", country="XX", lat=0.0, lon=0.0, population=-1, region="01"):
    return PlaceRecord(
        country=country,
        city=city.lower(),
        display_name=city,
        region=region,
        population=population,
        latitude=lat,
        longitude=lon,
    )


NEW_YORK = make_place("New York", "US", 40.7128, -74.0060, population=8107916, region="NY")
NEWARK = make_place("Newark", "US", 40.7357, -74.1724, population=281944, region="NJ")
PARIS = make_place("Paris", "FR", 48.8566, 2.3522, population=2110694, region="A8")


@pytest.fixture
def scenario_records():
    return [NEW_YORK, NEWARK, PARIS]


@pytest.fixture
def scenario_index(tmp_path, scenario_records):
    path = tmp_path / "cities-index"
    build_index(scenario_records, path)
    return path


@pytest.fixture
def scenario_handle(scenario_index):
    with open_index(scenario_index) as handle:
        yield handle


@pytest.fixture
def scattered_records():
    """300 places scattered within ~3 degrees of (45, 7)."""
    rng = random.Random(7)
    return [
        make_place(f"Place {i}", rng.choice(["FR", "IT", "CH"]),
                   45.0 + rng.uniform(-3, 3), 7.0 + rng.uniform(-3, 3))
        for i in range(300)
    ]


@pytest.fixture
def scattered_handle(tmp_path, scattered_records):
    path = tmp_path / "scattered-index"
    build_index(scattered_records, path)
    with open_index(path) as handle:
        yield handle
