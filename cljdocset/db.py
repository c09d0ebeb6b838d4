"""SQLite search index in the layout Dash and Zeal expect."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Iterable, Union

from .models import DocEntry

logger = logging.getLogger("cljdocset")

INSERT_SQL = "INSERT OR IGNORE INTO searchIndex(name, type, path) VALUES (?, ?, ?)"


def init_database(db_path: Union[str, Path]) -> sqlite3.Connection:
    """Open *db_path*, creating the ``searchIndex`` table and unique index."""
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS searchIndex (
            id   INTEGER PRIMARY KEY,
            name TEXT,
            type TEXT,
            path TEXT
        )
        """
    )
    conn.execute("CREATE UNIQUE INDEX IF NOT EXISTS anchor ON searchIndex (name, type, path)")
    conn.commit()
    return conn


def insert_entries(conn: sqlite3.Connection, entries: Iterable[DocEntry]) -> int:
    """Insert entries, silently skipping duplicates; returns rows added."""
    before = conn.total_changes
    conn.executemany(INSERT_SQL, (entry.as_row() for entry in entries))
    conn.commit()
    return conn.total_changes - before


def count_entries(conn: sqlite3.Connection) -> int:
    (count,) = conn.execute("SELECT COUNT(*) FROM searchIndex").fetchone()
    return count


def entry_exists(conn: sqlite3.Connection, entry: DocEntry) -> bool:
    row = conn.execute(
        "SELECT 1 FROM searchIndex WHERE name = ? AND type = ? AND path = ?",
        entry.as_row(),
    ).fetchone()
    return row is not None


def store_entries(db_path: Union[str, Path], entries: Iterable[DocEntry]) -> int:
    """Persist *entries* into the index at *db_path*; returns the index size."""
    entries = list(entries)
    conn = init_database(db_path)
    try:
        if not entries:
            logger.warning("No entries to index")
            return count_entries(conn)
        logger.info("Indexing %d entries", len(entries))
        inserted = insert_entries(conn, entries)
        total = count_entries(conn)
        logger.debug("Inserted %d rows, %d total in index", inserted, total)
        return total
    finally:
        conn.close()
