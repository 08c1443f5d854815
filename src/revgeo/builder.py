"""Builds the on-disk spatial index from a sequence of places.

The index is written into a staging directory next to the destination
and only swapped into place once it is complete, so a failed build never
leaves a readable partial index behind.
"""

from __future__ import annotations

import logging
import os
import shutil
import sqlite3
import tempfile
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from revgeo import store
from revgeo.config import DEFAULT_CONFIG, IndexConfig
from revgeo.errors import BuildError
from revgeo.geohash import GeohashPrefixTree
from revgeo.models import IndexedDocument, PlaceRecord

logger = logging.getLogger(__name__)


class IndexBuilder:
    """Turns PlaceRecords into IndexedDocuments and persists them."""

    def __init__(self, config: IndexConfig = DEFAULT_CONFIG):
        self.config = config
        self.tree = GeohashPrefixTree(config.precision_levels)

    def make_document(self, doc_id: int, record: PlaceRecord) -> IndexedDocument:
        errors = PlaceRecord.validate(record)
        if errors:
            raise BuildError(f"Record #{doc_id} ({record.city!r}) is invalid: {'; '.join(errors)}")
        return IndexedDocument(
            id=doc_id,
            record=record,
            terms=self.tree.point_terms(record.point),
        )

    def build(self, records: Iterable[PlaceRecord], destination: str | os.PathLike) -> int:
        """Build a fresh index at ``destination``. Returns elapsed time in ms."""
        start = time.perf_counter()
        destination = Path(destination)
        _check_destination(destination)
        logger.info("Building index at '%s' (%d geohash levels)...",
                    destination, self.config.precision_levels)

        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            staging = Path(tempfile.mkdtemp(
                prefix=f".{destination.name}.building-", dir=destination.parent,
            ))
        except OSError as exc:
            raise BuildError(f"Cannot create staging directory for '{destination}': {exc}") from exc

        try:
            count = self._write(records, store.index_file(staging))
            _swap_into_place(staging, destination)
        except (OSError, sqlite3.Error) as exc:
            raise BuildError(f"Failed to write index to '{destination}': {exc}") from exc
        finally:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)

        elapsed = time.perf_counter() - start
        doc_sec = int(count / elapsed) if elapsed > 0 else count
        logger.info("Indexed %d places. Elapsed %.1f seconds (%d doc/sec). Index saved to '%s'.",
                    count, elapsed, doc_sec, destination)
        return int(elapsed * 1000)

    def _write(self, records: Iterable[PlaceRecord], path: Path) -> int:
        conn = store.init_index(path)
        try:
            docs: list[tuple] = []
            postings: list[tuple[str, int]] = []
            count = 0

            for doc_id, record in enumerate(records):
                doc = self.make_document(doc_id, record)
                docs.append(doc.stored_fields())
                postings.extend(doc.postings())
                count += 1
                if len(docs) >= self.config.batch_size:
                    _flush(conn, docs, postings)
                    logger.debug("Indexed %d places so far", count)
                    docs, postings = [], []
            _flush(conn, docs, postings)

            conn.execute(store.POSTINGS_INDEX)
            store.write_meta(conn, {
                "schema_version": self.config.schema_version,
                "precision_levels": self.config.precision_levels,
                "earth_radius_km": repr(self.config.earth_radius_km),
                "record_count": count,
                "built_at": datetime.now(timezone.utc).isoformat(),
            })
            # Written last: readers refuse an index without it
            store.write_meta(conn, {"complete": 1})
            conn.commit()
        finally:
            conn.close()
        return count


def _flush(conn: sqlite3.Connection, docs: list[tuple], postings: list[tuple[str, int]]) -> None:
    if docs:
        conn.executemany(store.INSERT_DOCUMENT, docs)
    if postings:
        conn.executemany(store.INSERT_POSTING, postings)


def _check_destination(destination: Path) -> None:
    if not destination.exists():
        return
    if not destination.is_dir():
        raise BuildError(f"Index destination '{destination}' exists and is not a directory")
    if any(destination.iterdir()) and not store.index_file(destination).exists():
        raise BuildError(f"Refusing to overwrite '{destination}': not empty and not an index directory")


def _swap_into_place(staging: Path, destination: Path) -> None:
    """Move the finished staging directory to ``destination``.

    Readers that already opened the previous index keep their file handle.
    A rebuild over an existing index is two renames: between them
    ``destination`` is absent, and ``open_index`` there fails with
    ``OpenError``. A crash in that window leaves the previous index at
    ``.<name>.old-*`` beside ``destination``; rename it back to recover.
    """
    if not destination.exists():
        os.replace(staging, destination)
        return

    retired = destination.with_name(f".{destination.name}.old-{uuid.uuid4().hex[:8]}")
    os.replace(destination, retired)
    try:
        os.replace(staging, destination)
    except OSError:
        os.replace(retired, destination)
        raise
    shutil.rmtree(retired, ignore_errors=True)


def build_index(
    records: Iterable[PlaceRecord],
    destination: str | os.PathLike,
    config: IndexConfig = DEFAULT_CONFIG,
) -> int:
    """Build a spatial index of ``records`` at ``destination``.

    Ids are assigned from input order (0-based). Any previous index at
    ``destination`` is replaced. Returns the elapsed time in ms.

    Raises:
        BuildError: on a malformed record or any I/O failure.
    """
    return IndexBuilder(config).build(records, destination)
