"""SQLite storage layer for the on-disk spatial index.

One index is one directory holding a single ``index.db`` file.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

INDEX_FILENAME = "index.db"

SCHEMA = """
    CREATE TABLE meta (
        key     TEXT PRIMARY KEY,
        value   TEXT NOT NULL
    );
    CREATE TABLE documents (
        id            INTEGER PRIMARY KEY,
        city          TEXT NOT NULL,
        country       TEXT NOT NULL,
        display_name  TEXT NOT NULL,
        region        TEXT NOT NULL,
        population    INTEGER NOT NULL,
        latitude      DOUBLE PRECISION NOT NULL,
        longitude     DOUBLE PRECISION NOT NULL
    );
    CREATE TABLE postings (
        term    TEXT NOT NULL,
        doc_id  INTEGER NOT NULL
    );
"""

# Created after the bulk load, much faster than maintaining it row by row
POSTINGS_INDEX = "CREATE INDEX idx_postings_term ON postings (term, doc_id)"

INSERT_DOCUMENT = """
    INSERT INTO documents (id, city, country, display_name, region, population, latitude, longitude)
    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
"""

INSERT_POSTING = "INSERT INTO postings (term, doc_id) VALUES (?, ?)"

# Well below SQLITE_MAX_VARIABLE_NUMBER on every SQLite build
MAX_PARAMS = 500


def index_file(directory: Path) -> Path:
    return Path(directory) / INDEX_FILENAME


def init_index(path: Path) -> sqlite3.Connection:
    """Create a fresh index database at ``path`` and return a write connection."""
    conn = sqlite3.connect(str(path))
    conn.execute("PRAGMA journal_mode = DELETE")
    conn.execute("PRAGMA synchronous = FULL")
    conn.executescript(SCHEMA)
    return conn


def connect_readonly(path: Path) -> sqlite3.Connection:
    """Open ``path`` read-only. The connection may be used from any thread."""
    uri = Path(path).resolve().as_uri() + "?mode=ro"
    conn = sqlite3.connect(uri, uri=True, check_same_thread=False)
    conn.execute("PRAGMA query_only = ON")
    return conn


def write_meta(conn: sqlite3.Connection, meta: dict) -> None:
    conn.executemany(
        "INSERT OR REPLACE INTO meta (key, value) VALUES (?, ?)",
        [(key, str(value)) for key, value in meta.items()],
    )


def read_meta(conn: sqlite3.Connection) -> dict[str, str]:
    return dict(conn.execute("SELECT key, value FROM meta").fetchall())


def chunked(items: list, size: int = MAX_PARAMS):
    for start in range(0, len(items), size):
        yield items[start:start + size]


def placeholders(count: int) -> str:
    return ", ".join("?" * count)
