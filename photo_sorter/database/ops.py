import dataclasses
import json
import sqlite3
import logging
from typing import Any, List, Optional, Tuple

from .. import config
from ..models import AlbumInfo, ExifAttribute, IndexRecord, MediaFileDerivedInfo, MediaFileInfo, SupplementalInfo

COMMIT_EVERY = 1000


class IndexWriter:
    """
    Append-only index sink over SQLite. Every record becomes new rows;
    the archive on disk stays the source of truth.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self._pending = 0

    def append(self, record: IndexRecord):
        if record.album is not None:
            self.insert_album(record.album)
        elif record.info is not None and record.derived is not None:
            self.insert_media_item(record.info, record.derived, record.attributes, record.supplemental)
        else:
            logging.debug("Ignoring empty index record")
            return

        self._pending += 1
        if self._pending >= COMMIT_EVERY:
            self.conn.commit()
            self._pending = 0

    def insert_media_item(self,
                          info: MediaFileInfo,
                          derived: MediaFileDerivedInfo,
                          attributes: List[ExifAttribute],
                          supp: Optional[SupplementalInfo] = None) -> int:
        cur = self.conn.cursor()
        dt = derived.capture_datetime
        cur.execute("""
            INSERT INTO media_item (
                media_path, long_hash, short_hash, quick_file_type, accurate_file_type,
                size_bytes, guessed_datetime, datetime_source, target_path,
                supp_info_json, modified_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            info.orig_path, derived.checksum, derived.short_checksum, info.ext.lstrip('.') or None,
            info.true_type, info.size_bytes, dt.isoformat() if dt else None, derived.datetime_source,
            derived.target_path, self._supp_json(supp),
            info.mtime.isoformat() if info.mtime else None,
        ))
        if cur.lastrowid is None:
            raise RuntimeError("Database INSERT failed to return a row ID.")
        item_id = cur.lastrowid

        cur.executemany(
            "INSERT INTO exif_tag (media_item_id, tag_name, tag_value, source) VALUES (?, ?, ?, ?)",
            [(item_id, a.name, self._tag_value(a.value), a.source) for a in attributes],
        )
        return item_id

    def insert_album(self, album: AlbumInfo) -> int:
        cur = self.conn.cursor()
        cur.execute("""
            INSERT INTO album (title, descriptor_path, platform, description)
            VALUES (?, ?, ?, ?)
        """, (album.title, album.descriptor_path, album.platform, album.description))
        if cur.lastrowid is None:
            raise RuntimeError("Database INSERT failed to return a row ID.")
        album_id = cur.lastrowid

        cur.executemany(
            "INSERT INTO album_member (album_id, position, reference, target_path) VALUES (?, ?, ?, ?)",
            [(album_id, pos, ref, album.resolved.get(ref)) for pos, ref in enumerate(album.references)],
        )
        return album_id

    def commit(self):
        self.conn.commit()
        self._pending = 0

    # --- Queries ---

    def count_media_items(self) -> int:
        cur = self.conn.cursor()
        cur.execute("SELECT COUNT(*) FROM media_item")
        return cur.fetchone()[0]

    def fetch_tags(self, media_path: str) -> List[Tuple[str, str, str]]:
        """Returns (tag_name, tag_value, source) for the latest row of a path."""
        cur = self.conn.cursor()
        cur.execute("""
            SELECT t.tag_name, t.tag_value, t.source
            FROM exif_tag t
            WHERE t.media_item_id = (
                SELECT MAX(media_item_id) FROM media_item WHERE media_path = ?
            )
            ORDER BY t.rowid
        """, (media_path,))
        return cur.fetchall()

    def fetch_album_members(self, title: str) -> List[Tuple[str, Optional[str]]]:
        """Returns (reference, target_path) in descriptor order."""
        cur = self.conn.cursor()
        cur.execute("""
            SELECT m.reference, m.target_path
            FROM album_member m
            JOIN album a ON a.album_id = m.album_id
            WHERE a.title = ?
            ORDER BY m.album_id, m.position
        """, (title,))
        return cur.fetchall()

    @staticmethod
    def _tag_value(value: Any) -> str:
        text = json.dumps(value, default=str) if isinstance(value, (list, dict)) else str(value)
        return text[:config.MAX_TAG_VALUE_LEN]

    @staticmethod
    def _supp_json(supp: Optional[SupplementalInfo]) -> Optional[str]:
        if supp is None:
            return None
        return json.dumps(dataclasses.asdict(supp), default=str)
