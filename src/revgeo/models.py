"""Data models for indexed places."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, asdict, field

from revgeo.geo import Point, make_point

UNKNOWN_POPULATION = -1

# Column order of the stored fields in the `documents` table
STORED_FIELDS = (
    "id", "city", "country", "display_name", "region",
    "population", "latitude", "longitude",
)


@dataclass(frozen=True)
class PlaceRecord:
    """One known place from the world-cities dataset."""

    country: str                # ISO country code as found in the dataset, e.g. "us"
    city: str
    display_name: str           # Accented / display form of the city name
    region: str
    population: int             # UNKNOWN_POPULATION (-1) when not known
    latitude: float             # WGS84, [-90, 90]
    longitude: float            # WGS84, [-180, 180]

    @property
    def point(self) -> Point:
        return make_point(self.latitude, self.longitude)

    @property
    def has_population(self) -> bool:
        return self.population != UNKNOWN_POPULATION

    @staticmethod
    def validate(record: PlaceRecord) -> list[str]:
        """Validate a PlaceRecord. Returns list of error messages (empty = valid)."""
        errors: list[str] = []

        for name in ("latitude", "longitude"):
            value = getattr(record, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                errors.append(f"{name} {value!r} is not a number")
                return errors
            if not math.isfinite(value):
                errors.append(f"{name} {value} is not finite")
                return errors

        if not -90 <= record.latitude <= 90:
            errors.append(f"latitude {record.latitude} out of range [-90, 90]")

        if not -180 <= record.longitude <= 180:
            errors.append(f"longitude {record.longitude} out of range [-180, 180]")

        if isinstance(record.population, bool) or not isinstance(record.population, int):
            errors.append(f"population {record.population!r} is not an integer")
        elif record.population < UNKNOWN_POPULATION:
            errors.append(f"population {record.population} is negative")

        for name in ("country", "city", "display_name", "region"):
            if not isinstance(getattr(record, name), str):
                errors.append(f"{name} is not a string")

        return errors

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str) -> PlaceRecord:
        return cls(**json.loads(raw))


@dataclass
class IndexedDocument:
    """Persisted form of a PlaceRecord: build-order id, stored fields and spatial terms."""

    id: int
    record: PlaceRecord
    terms: list[str] = field(default_factory=list)

    def stored_fields(self) -> tuple:
        r = self.record
        return (
            self.id, r.city, r.country, r.display_name, r.region,
            r.population, float(r.latitude), float(r.longitude),
        )

    def postings(self) -> list[tuple[str, int]]:
        return [(term, self.id) for term in self.terms]
