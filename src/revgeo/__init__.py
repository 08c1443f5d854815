"""Offline reverse geocoding over a geohash spatial index."""

from revgeo.builder import IndexBuilder, build_index
from revgeo.config import DEFAULT_CONFIG, IndexConfig
from revgeo.errors import BuildError, InvalidArgument, OpenError, QueryError, RevGeoError
from revgeo.geo import EARTH_MEAN_RADIUS_KM, degrees_for_radius_km, distance_km, make_point
from revgeo.models import UNKNOWN_POPULATION, IndexedDocument, PlaceRecord
from revgeo.reader import IndexHandle, ReverseGeocoder, nearest_countries, nearest_places, open_index

__version__ = "0.1.0"

__all__ = [
    "BuildError",
    "DEFAULT_CONFIG",
    "EARTH_MEAN_RADIUS_KM",
    "IndexBuilder",
    "IndexConfig",
    "IndexHandle",
    "IndexedDocument",
    "InvalidArgument",
    "OpenError",
    "PlaceRecord",
    "QueryError",
    "ReverseGeocoder",
    "RevGeoError",
    "UNKNOWN_POPULATION",
    "build_index",
    "degrees_for_radius_km",
    "distance_km",
    "make_point",
    "nearest_countries",
    "nearest_places",
    "open_index",
]
