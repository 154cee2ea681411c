"""
Database schema definitions.
"""
import sqlite3
import logging

CURRENT_SCHEMA_VERSION = 1

def init_schema(conn: sqlite3.Connection):
    """
    Applies the index schema to the database.
    Idempotent: safe to run on every startup.
    """
    with conn:
        # 1. Version Tracking
        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY
            );
        """)

        cur = conn.cursor()
        cur.execute("SELECT version FROM schema_version")
        if not cur.fetchone():
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (CURRENT_SCHEMA_VERSION,))

        # 2. One row per media entry seen in an input container
        conn.execute("""
        CREATE TABLE IF NOT EXISTS media_item (
            media_item_id      INTEGER PRIMARY KEY AUTOINCREMENT,
            media_path         TEXT NOT NULL,
            long_hash          TEXT NOT NULL,
            short_hash         TEXT NOT NULL,
            quick_file_type    TEXT,                 -- from the extension
            accurate_file_type TEXT NOT NULL,        -- from the content
            size_bytes         INTEGER,
            guessed_datetime   TEXT,
            datetime_source    TEXT,
            target_path        TEXT,
            supp_info_json     TEXT,
            modified_at        TEXT,
            created_at         TEXT DEFAULT CURRENT_TIMESTAMP
        );
        """)

        # 3. Extracted attributes, one row per tag
        conn.execute("""
        CREATE TABLE IF NOT EXISTS exif_tag (
            media_item_id   INTEGER NOT NULL,
            tag_name        TEXT NOT NULL,
            tag_value       TEXT,
            source          TEXT NOT NULL,
            FOREIGN KEY(media_item_id) REFERENCES media_item(media_item_id) ON DELETE CASCADE
        );
        """)

        # 4. Albums and their resolved members
        conn.execute("""
        CREATE TABLE IF NOT EXISTS album (
            album_id        INTEGER PRIMARY KEY AUTOINCREMENT,
            title           TEXT NOT NULL,
            descriptor_path TEXT NOT NULL,
            platform        TEXT NOT NULL,
            description     TEXT,
            created_at      TEXT DEFAULT CURRENT_TIMESTAMP
        );
        """)

        conn.execute("""
        CREATE TABLE IF NOT EXISTS album_member (
            album_id        INTEGER NOT NULL,
            position        INTEGER NOT NULL,
            reference       TEXT NOT NULL,
            target_path     TEXT,                 -- NULL when unresolved
            PRIMARY KEY (album_id, position),
            FOREIGN KEY(album_id) REFERENCES album(album_id) ON DELETE CASCADE
        );
        """)

        # 5. Indices for Performance
        conn.execute("CREATE INDEX IF NOT EXISTS idx_media_item_long_hash ON media_item(long_hash);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_media_item_datetime ON media_item(guessed_datetime);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_exif_tag_item ON exif_tag(media_item_id);")

    logging.debug("Database schema initialized.")
