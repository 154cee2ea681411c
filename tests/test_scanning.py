import io
import zipfile
import pytest
from pathlib import Path
from photo_sorter import config
from photo_sorter.exceptions import FatalContainerError, ItemReadError
from photo_sorter.models import ScanEntry
from photo_sorter.scanning.classify import (ALBUM_CSV, ALBUM_JSON, DETAILS_CSV, MEDIA, OTHER,
                                            SUPPLEMENTAL_JSON, classify_entry, detect_layout,
                                            find_supplemental_json)
from photo_sorter.scanning.containers import DirectoryContainer, ZipContainer, normalize_path, open_container
from photo_sorter.scanning.hasher import FileHasher
from photo_sorter.scanning.sniffer import extension_for, extension_matches, sniff_type

# --- Type sniffing ---

def test_sniff_common_signatures(jpeg, png):
    assert sniff_type(jpeg()) == "jpeg"
    assert sniff_type(png()) == "png"
    assert sniff_type(b"GIF89a" + b"\x00" * 10) == "gif"
    assert sniff_type(b"RIFF\x00\x00\x00\x00WEBPVP8 ") == "webp"
    assert sniff_type(b"RIFF\x00\x00\x00\x00AVI LIST") == "avi"

def test_sniff_iso_bmff_brands():
    assert sniff_type(b"\x00\x00\x00\x18ftypheic\x00\x00\x00\x00mif1heic") == "heic"
    assert sniff_type(b"\x00\x00\x00\x18ftypqt  \x00\x00\x00\x00qt  ") == "mov"
    assert sniff_type(b"\x00\x00\x00\x18ftypisom\x00\x00\x02\x00isomiso2") == "mp4"
    assert sniff_type(b"\x00\x00\x00\x14ftyp3gp4\x00\x00\x00\x00") == "3gp"
    # Unknown major brand, known compatible brand
    assert sniff_type(b"\x00\x00\x00\x18ftypXXXX\x00\x00\x00\x00avif") == "avif"

def test_sniff_bare_quicktime_atom():
    assert sniff_type(b"\x00\x00\x00\x08wide\x00\x00\x00\x00mdat") == "mov"

def test_sniff_unknown():
    assert sniff_type(b"") == config.UNKNOWN_TYPE
    assert sniff_type(b"hello world, not an image") == config.UNKNOWN_TYPE

def test_sniff_only_looks_at_head():
    data = b"x" * config.SNIFF_BYTES + b"\xff\xd8\xff"
    assert sniff_type(data) == config.UNKNOWN_TYPE

def test_extension_mapping():
    assert extension_for("jpeg") == ".jpg"
    assert extension_for("mov") == ".mov"
    assert extension_matches(".JPEG", "jpeg")
    assert extension_matches(".heif", "heic")
    assert not extension_matches(".png", "jpeg")

# --- Hashing ---

def test_checksum_independent_of_chunking(tmp_path):
    data = bytes(range(256)) * 1000
    hasher = FileHasher()
    whole = hasher.checksum_bytes(data)

    p = tmp_path / "blob.bin"
    p.write_bytes(data)
    assert hasher.checksum_file(p) == whole
    assert hasher.checksum_stream(io.BytesIO(data)) == whole
    assert len(whole.value) == 64
    assert whole.short == whole.value[:config.SHORT_CHECKSUM_LEN]

# --- Containers ---

def test_normalize_path():
    assert normalize_path("\\a\\b/./c.jpg") == "a/b/c.jpg"
    assert normalize_path("/x/y") == "x/y"

def test_directory_scan_is_stable(tmp_path):
    (tmp_path / "b").mkdir()
    (tmp_path / "A").mkdir()
    (tmp_path / "b" / "z.jpg").write_bytes(b"z")
    (tmp_path / "A" / "y.jpg").write_bytes(b"yy")
    (tmp_path / "top.txt").write_bytes(b"t")

    container = open_container(tmp_path)
    assert isinstance(container, DirectoryContainer)
    paths = [e.path for e in container.scan()]
    assert paths == ["top.txt", "A/y.jpg", "b/z.jpg"]

    # Each call is a fresh enumeration
    assert [e.path for e in container.scan()] == paths

    entry = next(e for e in container.scan() if e.path == "A/y.jpg")
    assert entry.size_bytes == 2
    assert entry.read_bytes() == b"yy"
    assert entry.mtime is not None

def test_directory_missing_entry_is_item_error(tmp_path):
    container = DirectoryContainer(tmp_path)
    with pytest.raises(ItemReadError):
        container.read_bytes("nope.jpg")

def test_zip_container(tmp_path):
    archive = tmp_path / "takeout.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr("Takeout/", b"")
        zf.writestr("Takeout/Google Photos/b.jpg", b"second")
        zf.writestr("Takeout/Google Photos/a.jpg", b"first")

    with open_container(archive) as container:
        assert isinstance(container, ZipContainer)
        assert container.name == "takeout.zip"
        paths = [e.path for e in container.scan()]
        # Central directory order, directories skipped
        assert paths == ["Takeout/Google Photos/b.jpg", "Takeout/Google Photos/a.jpg"]
        assert container.read_bytes("Takeout/Google Photos/a.jpg") == b"first"
        assert container.exists("Takeout/Google Photos/b.jpg")
        assert not container.exists("Takeout/Google Photos/c.jpg")
        with pytest.raises(ItemReadError):
            container.read_bytes("Takeout/Google Photos/c.jpg")

def test_open_container_fatal_cases(tmp_path):
    with pytest.raises(FatalContainerError):
        open_container(tmp_path / "missing")

    not_zip = tmp_path / "notes.txt"
    not_zip.write_text("plain text")
    with pytest.raises(FatalContainerError):
        open_container(not_zip)

# --- Classification ---

def _entry(path):
    return ScanEntry(path=path, size_bytes=0)

def test_classify_entry():
    assert classify_entry(_entry("Photos/IMG_1.HEIC")) == MEDIA
    assert classify_entry(_entry("Photos/IMG_1.jpg.supplemental-metadata.json")) == SUPPLEMENTAL_JSON
    assert classify_entry(_entry("Trip/metadata.json")) == ALBUM_JSON
    assert classify_entry(_entry("Photos/Photo Details.csv")) == DETAILS_CSV
    assert classify_entry(_entry("Albums/Summer.csv")) == ALBUM_CSV
    assert classify_entry(_entry("archive_browser.html")) == OTHER
    assert classify_entry(_entry("Photos/._IMG_1.jpg")) == OTHER

def test_detect_layout():
    assert detect_layout(["Takeout/Google Photos/Trip/a.jpg"]) == config.LAYOUT_GOOGLE
    assert detect_layout(["x/a.jpg", "x/a.jpg.supplemental-metadata.json"]) == config.LAYOUT_GOOGLE
    assert detect_layout(["iCloud Photos/Photos/a.heic"]) == config.LAYOUT_ICLOUD
    assert detect_layout(["random/a.jpg"]) == config.LAYOUT_UNKNOWN

def test_find_supplemental_json_truncated_spellings():
    names = {"p/IMG_1.jpg", "p/IMG_1.jpg.suppl.json", "p/IMG_2.jpg", "p/IMG_2.jpg.json"}
    assert find_supplemental_json("p/IMG_1.jpg", names) == "p/IMG_1.jpg.suppl.json"
    assert find_supplemental_json("p/IMG_2.jpg", names) == "p/IMG_2.jpg.json"
    assert find_supplemental_json("p/IMG_3.jpg", names) is None
