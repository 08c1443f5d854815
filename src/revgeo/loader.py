"""Loader for the world-cities dataset (CSV, optionally zipped).

Rows look like::

    Country,City,AccentCity,Region,Population,Latitude,Longitude
    us,new york,New York,NY,8107916,40.7141667,-74.0063889
"""

from __future__ import annotations

import csv
import io
import logging
import os
import time
import zipfile
from pathlib import Path
from typing import Iterator

from revgeo.errors import BuildError
from revgeo.models import UNKNOWN_POPULATION, PlaceRecord

logger = logging.getLogger(__name__)

WORLD_CITIES_MEMBER = "worldcitiespop.csv"

# Dataset columns
_COL_COUNTRY = 0
_COL_CITY = 1
_COL_ACCENT_CITY = 2
_COL_REGION = 3
_COL_POPULATION = 4
_COL_LAT = 5
_COL_LON = 6
_NUM_COLS = 7


def parse_row(cols: list[str], line_no: int = 0) -> PlaceRecord:
    """Turn one CSV row into a PlaceRecord. Raises BuildError on malformed rows."""
    if len(cols) != _NUM_COLS:
        raise BuildError(f"Line {line_no}: expected {_NUM_COLS} columns, got {len(cols)}")

    try:
        population_str = cols[_COL_POPULATION].strip()
        population = int(float(population_str)) if population_str else UNKNOWN_POPULATION
        latitude = float(cols[_COL_LAT])
        longitude = float(cols[_COL_LON])
    except ValueError as exc:
        raise BuildError(f"Line {line_no}: {exc}") from exc

    return PlaceRecord(
        country=cols[_COL_COUNTRY],
        city=cols[_COL_CITY],
        display_name=cols[_COL_ACCENT_CITY],
        region=cols[_COL_REGION],
        population=population,
        latitude=latitude,
        longitude=longitude,
    )


def iter_places(stream: io.TextIOBase) -> Iterator[PlaceRecord]:
    """Parse an open text stream, skipping the header row and blank lines."""
    reader = csv.reader(stream)
    next(reader, None)  # skip header
    for cols in reader:
        if not cols:
            continue
        yield parse_row(cols, line_no=reader.line_num)


def load_world_cities(path: str | os.PathLike, encoding: str = "utf-8") -> list[PlaceRecord]:
    """Load every place of a world-cities ``.csv`` or ``.zip`` archive.

    Raises:
        BuildError: if the file is unreadable or a row is malformed.
    """
    start = time.perf_counter()
    path = Path(path)
    logger.info("Loading world cities data from: %s", path.resolve())

    try:
        if zipfile.is_zipfile(path):
            with zipfile.ZipFile(path) as archive:
                member = _find_member(archive)
                with archive.open(member) as raw:
                    stream = io.TextIOWrapper(raw, encoding=encoding, newline="")
                    places = list(iter_places(stream))
        else:
            with open(path, encoding=encoding, newline="") as stream:
                places = list(iter_places(stream))
    except (OSError, UnicodeDecodeError, zipfile.BadZipFile, csv.Error) as exc:
        raise BuildError(f"Cannot read world cities data from '{path}': {exc}") from exc

    logger.info("Loaded %d cities. Elapsed %.1f seconds.", len(places), time.perf_counter() - start)
    return places


def _find_member(archive: zipfile.ZipFile) -> str:
    names = archive.namelist()
    for name in names:
        if Path(name).name == WORLD_CITIES_MEMBER:
            return name
    csv_names = [name for name in names if name.endswith(".csv")]
    if len(csv_names) == 1:
        return csv_names[0]
    raise BuildError(f"Archive has no {WORLD_CITIES_MEMBER} member (found: {', '.join(names) or 'nothing'})")
