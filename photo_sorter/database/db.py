"""
Connection to the optional SQLite index filled by `photo-sorter db`.

The index is a byproduct of an analysis pass, never the archive's ground
truth. One writer appends in bulk while other tools may read it.
"""
import sqlite3
import logging
from pathlib import Path
from typing import Optional

from ..exceptions import PhotoSorterError
from .schema import CURRENT_SCHEMA_VERSION, init_schema

INDEX_PRAGMAS = (
    "PRAGMA journal_mode=WAL;",
    "PRAGMA synchronous=NORMAL;",
    "PRAGMA temp_store=MEMORY;",
    "PRAGMA foreign_keys=ON;",
    "PRAGMA busy_timeout=5000;",     # readers holding the WAL
)


def schema_version(conn: sqlite3.Connection) -> Optional[int]:
    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    return row[0] if row else None


class DBManager:
    """
    Opens the index for one run. The file and its folder are created on
    demand and the schema applied. Appends are committed when the run ends
    cleanly and rolled back when it dies with an exception.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None

    def connect(self) -> sqlite3.Connection:
        if self._conn:
            return self._conn

        logging.info(f"Opening index database: {self.db_path}")
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.db_path)
        except (OSError, sqlite3.Error) as e:
            raise PhotoSorterError(f"Cannot open index database {self.db_path}: {e}") from e

        for pragma in INDEX_PRAGMAS:
            conn.execute(pragma)
        init_schema(conn)

        version = schema_version(conn)
        if version is not None and version > CURRENT_SCHEMA_VERSION:
            conn.close()
            raise PhotoSorterError(
                f"Index {self.db_path} has schema version {version}, "
                f"this photo-sorter writes version {CURRENT_SCHEMA_VERSION}"
            )
        logging.debug(f"Index schema version {version}")

        self._conn = conn
        return self._conn

    def close(self, commit: bool = True):
        if self._conn:
            if commit:
                self._conn.commit()
            else:
                logging.warning(f"Rolling back uncommitted index rows in {self.db_path}")
                self._conn.rollback()
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self.connect()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close(commit=exc_type is None)
