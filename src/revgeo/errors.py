"""Error kinds raised by the index builder and the query engine."""

from __future__ import annotations


class RevGeoError(Exception):
    """Base class for all revgeo errors."""


class InvalidArgument(RevGeoError, ValueError):
    """Raised when query arguments fail validation, before any index access."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(f"Invalid argument: {'; '.join(errors)}")


class BuildError(RevGeoError):
    """Raised when an index cannot be built (I/O failure or malformed record)."""


class OpenError(RevGeoError):
    """Raised when an index location is missing, unreadable or corrupt."""


class QueryError(RevGeoError):
    """Raised when a stored document cannot be turned back into a place."""
