"""Read-only access to a built index and the nearest-place queries.

A query runs in two phases: a broad geohash-cell lookup that returns a
superset of the places inside the search circle, then an exact
great-circle re-check and sort by (distance, id).
"""

from __future__ import annotations

import heapq
import logging
import math
import os
import sqlite3
import threading
from dataclasses import replace
from pathlib import Path
from typing import Optional

from revgeo import store
from revgeo.config import DEFAULT_CONFIG, IndexConfig
from revgeo.errors import InvalidArgument, OpenError, QueryError
from revgeo.geo import Point, degrees_for_radius_km, distance_km, make_circle, make_point
from revgeo.geohash import GeohashPrefixTree
from revgeo.models import STORED_FIELDS, PlaceRecord

logger = logging.getLogger(__name__)


def validate_query(latitude, longitude, radius_km, limit) -> list[str]:
    """Validate query arguments. Returns list of error messages (empty = valid)."""
    errors: list[str] = []

    def _number(name, value) -> bool:
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            errors.append(f"{name} {value!r} is not a finite number")
            return False
        return True

    if _number("latitude", latitude) and not -90 <= latitude <= 90:
        errors.append(f"latitude {latitude} out of range [-90, 90]")

    if _number("longitude", longitude) and not -180 <= longitude <= 180:
        errors.append(f"longitude {longitude} out of range [-180, 180]")

    if _number("radius_km", radius_km) and radius_km < 0:
        errors.append(f"radius_km {radius_km} is negative")

    if isinstance(limit, bool) or not isinstance(limit, int):
        errors.append(f"limit {limit!r} is not an integer")
    elif limit < 1:
        errors.append(f"limit {limit} must be >= 1")

    return errors


def _make_place(row: tuple) -> PlaceRecord:
    """Rebuild a PlaceRecord from its stored fields (see STORED_FIELDS)."""
    doc_id, city, country, display_name, region, population, latitude, longitude = row
    record = PlaceRecord(
        country=country,
        city=city,
        display_name=display_name,
        region=region,
        population=population,
        latitude=latitude,
        longitude=longitude,
    )
    errors = PlaceRecord.validate(record)
    if errors:
        raise QueryError(f"Document {doc_id} is corrupt: {'; '.join(errors)}")
    return record


def _make_point(row: tuple) -> Point:
    doc_id, latitude, longitude = row
    for name, value, bound in (("latitude", latitude, 90), ("longitude", longitude, 180)):
        if (isinstance(value, bool) or not isinstance(value, (int, float))
                or not math.isfinite(value) or abs(value) > bound):
            raise QueryError(f"Document {doc_id} is corrupt: {name} {value!r} is not a valid coordinate")
    return make_point(latitude, longitude)


def _check_resolved(ids: list[int], found: dict) -> None:
    missing = [doc_id for doc_id in ids if doc_id not in found]
    if missing:
        raise QueryError(f"Postings reference {len(missing)} missing document(s), e.g. {missing[:5]}")


class IndexHandle:
    """An opened index. Safe to share between threads; queries never mutate it."""

    def __init__(self, conn: sqlite3.Connection, path: Path, config: IndexConfig, meta: dict[str, str]):
        self._conn: Optional[sqlite3.Connection] = conn
        self._lock = threading.Lock()
        self.path = path
        self.config = config
        self.meta = meta
        self.record_count = int(meta["record_count"])
        self.tree = GeohashPrefixTree(config.precision_levels)

    def __repr__(self) -> str:
        return f"IndexHandle(path='{self.path}', records={self.record_count})"

    def __enter__(self) -> IndexHandle:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._conn is None

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def _fetch(self, sql: str, params: list) -> list[tuple]:
        with self._lock:
            if self._conn is None:
                raise QueryError(f"Index handle for '{self.path}' is closed")
            try:
                return self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as exc:
                raise QueryError(f"Index read failed: {exc}") from exc

    def candidate_ids(self, terms: list[str], limit: Optional[int] = None) -> list[int]:
        """Ids of documents indexed under any of ``terms``, ascending.

        With ``limit`` only the first ``limit`` ids are returned.
        """
        ids: set[int] = set()
        for chunk in store.chunked(terms):
            sql = f"SELECT doc_id FROM postings WHERE term IN ({store.placeholders(len(chunk))})"
            params: list = list(chunk)
            if limit is not None:
                sql += " ORDER BY doc_id LIMIT ?"
                params.append(limit)
            ids.update(row[0] for row in self._fetch(sql, params))
        ordered = sorted(ids)
        return ordered[:limit] if limit is not None else ordered

    def load_places(self, ids: list[int]) -> dict[int, PlaceRecord]:
        """Stored places by id. Every id must resolve to a valid document."""
        places: dict[int, PlaceRecord] = {}
        columns = ", ".join(STORED_FIELDS)
        for chunk in store.chunked(ids):
            sql = f"SELECT {columns} FROM documents WHERE id IN ({store.placeholders(len(chunk))})"
            for row in self._fetch(sql, list(chunk)):
                places[row[0]] = _make_place(row)
        _check_resolved(ids, places)
        return places

    def load_points(self, ids: list[int]) -> dict[int, Point]:
        """Stored coordinates by id, without the rest of the document."""
        points: dict[int, Point] = {}
        for chunk in store.chunked(ids):
            sql = f"SELECT id, latitude, longitude FROM documents WHERE id IN ({store.placeholders(len(chunk))})"
            for row in self._fetch(sql, list(chunk)):
                points[row[0]] = _make_point(row)
        _check_resolved(ids, points)
        return points

    def nearest_places_with_distance(
        self,
        latitude: float,
        longitude: float,
        radius_km: float,
        limit: int,
    ) -> list[tuple[PlaceRecord, float]]:
        """Like ``nearest_places`` but each place comes with its distance in km."""
        errors = validate_query(latitude, longitude, radius_km, limit)
        if errors:
            raise InvalidArgument(errors)

        earth_radius = self.config.earth_radius_km
        circle = make_circle(latitude, longitude, degrees_for_radius_km(radius_km, earth_radius))
        terms = self.tree.cover(circle, self.config.dist_err_pct, self.config.max_cover_cells)
        ids = self.candidate_ids(terms, limit if self.config.bounded_candidates else None)
        logger.debug("Query (%s, %s) r=%s km: %d cover cells, %d candidates",
                     latitude, longitude, radius_km, len(terms), len(ids))

        # Rank on coordinates alone; only the winners are loaded in full
        hits = []
        for doc_id, point in self.load_points(ids).items():
            dist = distance_km(circle.center, point, earth_radius)
            if dist <= radius_km:
                hits.append((dist, doc_id))

        nearest = heapq.nsmallest(limit, hits)
        places = self.load_places([doc_id for _, doc_id in nearest])
        return [(places[doc_id], dist) for dist, doc_id in nearest]

    def nearest_places(self, latitude: float, longitude: float, radius_km: float, limit: int) -> list[PlaceRecord]:
        return [place for place, _ in self.nearest_places_with_distance(latitude, longitude, radius_km, limit)]

    def nearest_countries(self, latitude: float, longitude: float, radius_km: float, limit: int) -> list[str]:
        places = self.nearest_places(latitude, longitude, radius_km, limit)
        return list(dict.fromkeys(place.country for place in places))


def open_index(source: str | os.PathLike, config: IndexConfig = DEFAULT_CONFIG) -> IndexHandle:
    """Open the index stored in directory ``source`` for reading.

    Precision and earth radius are taken from the index itself; the other
    query settings come from ``config``.

    Raises:
        OpenError: if ``source`` is missing, not an index, or corrupt.
    """
    path = Path(source)
    if not path.is_dir():
        raise OpenError(f"Index directory '{path}' does not exist")
    db_path = store.index_file(path)
    if not db_path.is_file():
        raise OpenError(f"No index found in '{path}' (missing {store.INDEX_FILENAME})")

    try:
        conn = store.connect_readonly(db_path)
    except sqlite3.Error as exc:
        raise OpenError(f"Cannot open index at '{path}': {exc}") from exc

    try:
        handle = _open(conn, path, config)
    except sqlite3.Error as exc:
        conn.close()
        raise OpenError(f"Index at '{path}' is unreadable or corrupt: {exc}") from exc
    except OpenError:
        conn.close()
        raise

    logger.info("Opened index '%s' with %d places", path, handle.record_count)
    return handle


def _open(conn: sqlite3.Connection, path: Path, config: IndexConfig) -> IndexHandle:
    meta = store.read_meta(conn)
    if meta.get("complete") != "1":
        raise OpenError(f"Index at '{path}' is incomplete")

    try:
        schema_version = int(meta["schema_version"])
        precision_levels = int(meta["precision_levels"])
        earth_radius_km = float(meta["earth_radius_km"])
        record_count = int(meta["record_count"])
    except (KeyError, ValueError) as exc:
        raise OpenError(f"Index at '{path}' has invalid metadata: {exc!r}") from exc

    if schema_version != config.schema_version:
        raise OpenError(
            f"Index at '{path}' has schema version {schema_version}, expected {config.schema_version}"
        )

    count, min_id, max_id = conn.execute("SELECT COUNT(*), MIN(id), MAX(id) FROM documents").fetchone()
    if count != record_count or (count and (min_id != 0 or max_id != count - 1)):
        raise OpenError(f"Index at '{path}' is corrupt: expected {record_count} documents, found {count}")

    if (precision_levels, earth_radius_km) != (config.precision_levels, config.earth_radius_km):
        logger.debug("Index '%s' built with %d levels / R=%s km, overriding config",
                     path, precision_levels, earth_radius_km)
    try:
        config = replace(config, precision_levels=precision_levels, earth_radius_km=earth_radius_km)
    except ValueError as exc:
        raise OpenError(f"Index at '{path}' has invalid metadata: {exc}") from exc

    return IndexHandle(conn, path, config, meta)


def nearest_places(
    handle: IndexHandle,
    latitude: float,
    longitude: float,
    radius_km: float,
    limit: int,
) -> list[PlaceRecord]:
    """Places within ``radius_km`` of the point, nearest first, at most ``limit``.

    Equal distances are ordered by ascending build-order id. No hits is an
    empty list.

    Raises:
        InvalidArgument: on out-of-range coordinates, negative radius or limit < 1.
        QueryError: if a stored document is corrupt.
    """
    return handle.nearest_places(latitude, longitude, radius_km, limit)


def nearest_countries(
    handle: IndexHandle,
    latitude: float,
    longitude: float,
    radius_km: float,
    limit: int,
) -> list[str]:
    """Distinct countries of ``nearest_places(...)``, in first-occurrence order.

    The countries are taken from at most ``limit`` places, so fewer than
    ``limit`` countries can come back even when more exist in the radius.
    """
    return handle.nearest_countries(latitude, longitude, radius_km, limit)


class ReverseGeocoder:
    """Nearest cities / countries against a held index handle.

    ``swap`` re-points the geocoder to a freshly opened index; queries
    already running finish on the handle they started with.
    """

    def __init__(self, handle: IndexHandle):
        self._handle = handle
        self._swap_lock = threading.Lock()

    @classmethod
    def open(cls, source: str | os.PathLike, config: IndexConfig = DEFAULT_CONFIG) -> ReverseGeocoder:
        return cls(open_index(source, config))

    @property
    def handle(self) -> IndexHandle:
        return self._handle

    def swap(self, handle: IndexHandle) -> IndexHandle:
        """Use ``handle`` from now on. Returns the previous handle, left open."""
        with self._swap_lock:
            previous, self._handle = self._handle, handle
        return previous

    def nearest_cities(self, latitude: float, longitude: float, radius_km: float,
                       num_results: int) -> list[PlaceRecord]:
        return nearest_places(self._handle, latitude, longitude, radius_km, num_results)

    def nearest_countries(self, latitude: float, longitude: float, radius_km: float,
                          num_results: int) -> list[str]:
        return nearest_countries(self._handle, latitude, longitude, radius_km, num_results)

    def close(self) -> None:
        self._handle.close()
