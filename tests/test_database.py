import pytest
import sqlite3
from datetime import datetime
from photo_sorter.core import PhotoSorterApp
from photo_sorter.database.db import DBManager
from photo_sorter.exceptions import PhotoSorterError
from photo_sorter.database.ops import IndexWriter
from photo_sorter.database.schema import CURRENT_SCHEMA_VERSION, init_schema
from photo_sorter.models import AlbumInfo, ExifAttribute, IndexRecord, MediaFileDerivedInfo, MediaFileInfo

def _record(path="Photos/a.jpg", checksum="c1"):
    info = MediaFileInfo(orig_path=path, ext=".png", true_type="jpeg", size_bytes=10,
                         mtime=datetime(2024, 1, 1))
    derived = MediaFileDerivedInfo(checksum=checksum, short_checksum=checksum[:7], ext=".jpg",
                                   capture_datetime=datetime(2024, 5, 1, 10), datetime_source="exif",
                                   target_path="2024/05/01/100000-000.jpg")
    attrs = [ExifAttribute("Model", "X100"), ExifAttribute("People", ["Ana", "Ben"], "supplemental")]
    return IndexRecord(info=info, derived=derived, attributes=attrs)

def test_schema_is_idempotent(conn):
    init_schema(conn)
    cur = conn.cursor()
    cur.execute("SELECT version FROM schema_version")
    assert cur.fetchall() == [(CURRENT_SCHEMA_VERSION,)]

def test_append_media_item(index_writer, conn):
    index_writer.append(_record())
    index_writer.commit()

    cur = conn.cursor()
    cur.execute("SELECT media_path, quick_file_type, accurate_file_type, guessed_datetime, target_path FROM media_item")
    assert cur.fetchall() == [("Photos/a.jpg", "png", "jpeg", "2024-05-01T10:00:00", "2024/05/01/100000-000.jpg")]
    assert index_writer.fetch_tags("Photos/a.jpg") == [
        ("Model", "X100", "exif"),
        ("People", '["Ana", "Ben"]', "supplemental"),
    ]

def test_append_is_append_only(index_writer):
    index_writer.append(_record())
    index_writer.append(_record())
    assert index_writer.count_media_items() == 2

def test_append_album(index_writer):
    album = AlbumInfo(title="Trip", descriptor_path="Albums/Trip.csv", platform="icloud",
                      references=["a.jpg", "b.jpg"], resolved={"a.jpg": "2024/01/01/000000-000.jpg"})
    index_writer.append(IndexRecord(album=album))
    assert index_writer.fetch_album_members("Trip") == [
        ("a.jpg", "2024/01/01/000000-000.jpg"),
        ("b.jpg", None),
    ]

def test_empty_record_is_ignored(index_writer):
    index_writer.append(IndexRecord())
    assert index_writer.count_media_items() == 0

def test_db_manager_file(tmp_path):
    db_path = tmp_path / "index.db"
    with DBManager(db_path) as conn:
        IndexWriter(conn).append(_record())

    conn = sqlite3.connect(db_path)
    try:
        assert conn.execute("SELECT COUNT(*) FROM media_item").fetchone()[0] == 1
    finally:
        conn.close()

def test_analysis_pass_feeds_index(tmp_path, index_writer, jpeg):
    src = tmp_path / "export"
    src.mkdir()
    (src / "a.jpg").write_bytes(jpeg())
    (src / "a_copy.jpg").write_bytes(jpeg())

    summary = PhotoSorterApp(index_sink=index_writer).sync(src)

    assert summary.written == 0
    assert index_writer.count_media_items() == 2
    tags = dict((name, value) for name, value, _ in index_writer.fetch_tags("a.jpg"))
    assert tags["DateTime"] == "2024:05:01 10:00:00"

def test_db_manager_creates_folder(tmp_path):
    db_path = tmp_path / "indexes" / "2024" / "index.db"
    with DBManager(db_path) as conn:
        assert conn.execute("PRAGMA journal_mode").fetchone()[0] == "wal"
    assert db_path.exists()

def test_db_manager_rolls_back_on_error(tmp_path):
    db_path = tmp_path / "index.db"
    with pytest.raises(RuntimeError):
        with DBManager(db_path) as conn:
            IndexWriter(conn).append(_record())
            raise RuntimeError("pass died")

    with DBManager(db_path) as conn:
        assert IndexWriter(conn).count_media_items() == 0

def test_db_manager_refuses_newer_schema(tmp_path):
    db_path = tmp_path / "index.db"
    with DBManager(db_path) as conn:
        conn.execute("UPDATE schema_version SET version = ?", (CURRENT_SCHEMA_VERSION + 1,))

    with pytest.raises(PhotoSorterError):
        DBManager(db_path).connect()
