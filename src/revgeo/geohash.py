"""Geohash prefix tree used as the spatial term encoding of the index.

Every indexed point is stored under the geohash prefixes of every level
``1..max_levels``; a query circle is turned into a prefix-free set of
cells ("cover") that overlaps it. The cover is a superset of the circle,
so the reader always re-checks candidates with an exact distance.
"""

from __future__ import annotations

import enum
import math
from typing import Iterator, NamedTuple

from revgeo.geo import Circle, Point, angular_distance_deg, make_point

_BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"
_DECODE = {ch: i for i, ch in enumerate(_BASE32)}

# Absorbs float noise so cells touching the circle edge are never pruned
_EPS_DEG = 1e-9

DEFAULT_MAX_CELLS = 1024


class Relation(enum.Enum):
    DISJOINT = "disjoint"
    INTERSECTS = "intersects"
    WITHIN = "within"  # cell lies entirely inside the circle


class Cell(NamedTuple):
    """Lat/lon rectangle of a geohash cell, in degrees."""

    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float

    def contains(self, point: Point) -> bool:
        return (
            self.min_lat <= point.y <= self.max_lat
            and self.min_lon <= point.x <= self.max_lon
        )


WORLD = Cell(-180.0, -90.0, 180.0, 90.0)


def encode(latitude: float, longitude: float, precision: int) -> str:
    """Encode coordinates as a geohash of ``precision`` characters.

    Examples:
        >>> encode(40.6892, -74.0445, 7)
        'dr5regw'
    """
    lat_interval = [-90.0, 90.0]
    lon_interval = [-180.0, 180.0]
    bits = [16, 8, 4, 2, 1]
    ch = 0
    bit = 0
    even = True
    geohash = []

    while len(geohash) < precision:
        if even:
            mid = sum(lon_interval) / 2
            if longitude > mid:
                ch |= bits[bit]
                lon_interval[0] = mid
            else:
                lon_interval[1] = mid
        else:
            mid = sum(lat_interval) / 2
            if latitude > mid:
                ch |= bits[bit]
                lat_interval[0] = mid
            else:
                lat_interval[1] = mid
        even = not even
        if bit < 4:
            bit += 1
        else:
            geohash.append(_BASE32[ch])
            bit = 0
            ch = 0
    return "".join(geohash)


def _refine(cell: Cell, ch: str, lon_first: bool) -> Cell:
    """Narrow ``cell`` by the five bits of one geohash character."""
    try:
        value = _DECODE[ch]
    except KeyError:
        raise ValueError(f"invalid geohash character {ch!r}") from None

    min_lon, min_lat, max_lon, max_lat = cell
    is_lon = lon_first
    for shift in (4, 3, 2, 1, 0):
        upper = (value >> shift) & 1
        if is_lon:
            mid = (min_lon + max_lon) / 2
            if upper:
                min_lon = mid
            else:
                max_lon = mid
        else:
            mid = (min_lat + max_lat) / 2
            if upper:
                min_lat = mid
            else:
                max_lat = mid
        is_lon = not is_lon
    return Cell(min_lon, min_lat, max_lon, max_lat)


def cell_bounds(geohash: str) -> Cell:
    """Decode a geohash into the rectangle it covers."""
    cell = WORLD
    for level, ch in enumerate(geohash):
        # 5 bits per character: odd levels resume on the lat axis
        cell = _refine(cell, ch, lon_first=level % 2 == 0)
    return cell


def children(geohash: str, cell: Cell) -> Iterator[tuple[str, Cell]]:
    lon_first = len(geohash) % 2 == 0
    for ch in _BASE32:
        yield geohash + ch, _refine(cell, ch, lon_first)


def _lon_gap(a: float, b: float) -> float:
    """Absolute longitude difference, wrapped into [0, 180]."""
    return abs((b - a + 180.0) % 360.0 - 180.0)


def min_angle_to_cell(center: Point, cell: Cell) -> float:
    """Smallest central angle (degrees) from ``center`` to any point of ``cell``."""
    if cell.contains(center):
        return 0.0

    # Along a parallel the distance grows with the longitude gap, so the
    # nearest point of each lat edge sits at the cell longitude closest to the center.
    if cell.min_lon <= center.x <= cell.max_lon:
        near_lon = center.x
    elif _lon_gap(center.x, cell.min_lon) <= _lon_gap(center.x, cell.max_lon):
        near_lon = cell.min_lon
    else:
        near_lon = cell.max_lon

    best = min(
        angular_distance_deg(center, make_point(cell.min_lat, near_lon)),
        angular_distance_deg(center, make_point(cell.max_lat, near_lon)),
    )

    # Along a meridian the nearest point is the foot of the perpendicular,
    # which only exists on the near hemisphere.
    lat0 = math.radians(center.y)
    for lon in (cell.min_lon, cell.max_lon):
        cos_dlon = math.cos(math.radians(lon - center.x))
        if cos_dlon <= 0:
            continue
        foot = math.degrees(math.atan(math.tan(lat0) / cos_dlon))
        lat = min(cell.max_lat, max(cell.min_lat, foot))
        best = min(best, angular_distance_deg(center, make_point(lat, lon)))

    return best


def max_angle_to_cell(center: Point, cell: Cell) -> float:
    """Largest central angle (degrees) from ``center`` to any point of ``cell``."""
    lon = center.x + 180.0 if center.x <= 0 else center.x - 180.0
    antipode = make_point(-center.y, lon)
    return 180.0 - min_angle_to_cell(antipode, cell)


def relate(cell: Cell, circle: Circle) -> Relation:
    if min_angle_to_cell(circle.center, cell) > circle.radius_deg + _EPS_DEG:
        return Relation.DISJOINT
    if max_angle_to_cell(circle.center, cell) <= circle.radius_deg:
        return Relation.WITHIN
    return Relation.INTERSECTS


class GeohashPrefixTree:
    """Hierarchical geohash grid with ``max_levels`` levels.

    Level ``n`` cells are the geohashes of length ``n``. With 11 levels the
    deepest cells are roughly 150 m on a side.
    """

    def __init__(self, max_levels: int):
        if not 1 <= max_levels <= 12:
            raise ValueError(f"max_levels must be within [1, 12], got {max_levels}")
        self.max_levels = max_levels

    def __repr__(self) -> str:
        return f"GeohashPrefixTree(max_levels={self.max_levels})"

    def point_terms(self, point: Point) -> list[str]:
        """Indexable terms of a point: its geohash prefixes at every level."""
        geohash = encode(point.y, point.x, self.max_levels)
        return [geohash[:level] for level in range(1, self.max_levels + 1)]

    @staticmethod
    def cell_size(level: int) -> tuple[float, float]:
        """(width, height) in degrees of the cells at ``level``."""
        total_bits = 5 * level
        lon_bits = (total_bits + 1) // 2
        lat_bits = total_bits // 2
        return 360.0 / (1 << lon_bits), 180.0 / (1 << lat_bits)

    def level_for_distance(self, dist_deg: float) -> int:
        """Shallowest level whose cells are no larger than ``dist_deg``."""
        if dist_deg <= 0:
            return self.max_levels
        for level in range(1, self.max_levels + 1):
            width, height = self.cell_size(level)
            if width <= dist_deg and height <= dist_deg:
                return level
        return self.max_levels

    def detail_level(self, circle: Circle, dist_err_pct: float) -> int:
        return self.level_for_distance(circle.radius_deg * dist_err_pct)

    def cover(self, circle: Circle, dist_err_pct: float, max_cells: int = DEFAULT_MAX_CELLS) -> list[str]:
        """Prefix-free list of cell terms whose union contains ``circle``.

        Cells inside the circle are kept whole; cells crossing its edge are
        split level by level down to the detail level and kept there. Edge
        cells are only split while their 32 children each still fit in the
        ``max_cells`` budget, otherwise they are kept at the current level,
        so the result never holds more than ``max_cells`` terms.
        """
        detail = self.detail_level(circle, dist_err_pct)
        terms: list[str] = []
        frontier = [("", WORLD)]
        level = 0
        while frontier:
            level += 1
            edge = []
            for prefix, parent in frontier:
                for geohash, cell in children(prefix, parent):
                    relation = relate(cell, circle)
                    if relation is Relation.DISJOINT:
                        continue
                    if relation is Relation.WITHIN or level >= detail:
                        terms.append(geohash)
                    else:
                        edge.append((geohash, cell))
            if len(terms) + len(edge) * len(_BASE32) > max_cells:
                terms.extend(geohash for geohash, _ in edge)
                break
            frontier = edge
        terms.sort()
        return terms
