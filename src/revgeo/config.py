"""Index configuration shared by the builder and the query engine."""

from __future__ import annotations

import os
from dataclasses import dataclass

from revgeo.errors import InvalidArgument
from revgeo.geo import EARTH_MEAN_RADIUS_KM

SCHEMA_VERSION = 1


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class IndexConfig:
    """Immutable settings for building and querying one index."""

    precision_levels: int = 11          # geohash levels, 11 ≈ 150 m cells
    earth_radius_km: float = EARTH_MEAN_RADIUS_KM
    schema_version: int = SCHEMA_VERSION
    dist_err_pct: float = 0.025         # detail cell size as a share of the radius
    bounded_candidates: bool = False    # keep only the first `limit` candidate ids
    batch_size: int = 10_000            # documents per executemany at build time
    max_cover_cells: int = 1024         # edge cells split per level before settling

    def __post_init__(self):
        if not 1 <= self.precision_levels <= 12:
            raise ValueError(f"precision_levels {self.precision_levels} out of range [1, 12]")
        if self.earth_radius_km <= 0:
            raise ValueError(f"earth_radius_km {self.earth_radius_km} must be positive")
        if not 0 < self.dist_err_pct <= 0.5:
            raise ValueError(f"dist_err_pct {self.dist_err_pct} out of range (0, 0.5]")
        if self.batch_size < 1:
            raise ValueError(f"batch_size {self.batch_size} must be >= 1")
        if self.max_cover_cells < 32:
            raise ValueError(f"max_cover_cells {self.max_cover_cells} must be >= 32")

    @classmethod
    def from_env(cls) -> IndexConfig:
        """Defaults overridden by ``REVGEO_*`` environment variables.

        Raises:
            InvalidArgument: if a variable does not parse or is out of range.
        """
        overrides: dict = {}
        for field_name, env_name, parse in _ENV_FIELDS:
            raw = os.getenv(env_name)
            if not raw:
                continue
            try:
                overrides[field_name] = parse(raw)
            except ValueError:
                raise InvalidArgument([f"{env_name}={raw!r} is not a valid {field_name}"]) from None
        try:
            return cls(**overrides)
        except ValueError as exc:
            raise InvalidArgument([str(exc)]) from exc


_ENV_FIELDS = (
    ("precision_levels", "REVGEO_PRECISION_LEVELS", int),
    ("dist_err_pct", "REVGEO_DIST_ERR_PCT", float),
    ("bounded_candidates", "REVGEO_BOUNDED_CANDIDATES", _env_bool),
    ("batch_size", "REVGEO_BATCH_SIZE", int),
)


DEFAULT_CONFIG = IndexConfig()
