import io
import pytest
import sqlite3
from PIL import Image
from photo_sorter.database.schema import init_schema
from photo_sorter.database.ops import IndexWriter

def make_jpeg(dt="2024:05:01 10:00:00", color=(200, 30, 30), size=(16, 16), make=None, model=None) -> bytes:
    """Small JPEG with the capture time in both IFD0 DateTime and DateTimeOriginal."""
    img = Image.new("RGB", size, color)
    exif = Image.Exif()
    if dt:
        exif[0x0132] = dt
        exif.get_ifd(0x8769)[0x9003] = dt
    if make:
        exif[0x010F] = make
    if model:
        exif[0x0110] = model
    buf = io.BytesIO()
    if len(exif):
        img.save(buf, "JPEG", exif=exif.tobytes())
    else:
        img.save(buf, "JPEG")
    return buf.getvalue()

def make_png(color=(10, 200, 10), size=(8, 8)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, "PNG")
    return buf.getvalue()

@pytest.fixture
def jpeg():
    return make_jpeg

@pytest.fixture
def png():
    return make_png

@pytest.fixture
def conn():
    """Returns an in-memory SQLite connection with the schema initialized."""
    c = sqlite3.connect(":memory:")
    init_schema(c)
    try:
        yield c
    finally:
        c.close()

@pytest.fixture
def index_writer(conn):
    """Returns an IndexWriter attached to the in-memory DB."""
    return IndexWriter(conn)
