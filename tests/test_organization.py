import os
import pytest
from datetime import datetime
from photo_sorter.exceptions import WriteError
from photo_sorter.models import MediaFileDerivedInfo
from photo_sorter.organization.mover import OutputTree
from photo_sorter.organization.rules import CREATE, MATCH, TargetPathAllocator, base_stem, second_prefix
from photo_sorter.scanning.hasher import FileHasher

WHEN = datetime(2024, 5, 1, 10, 0, 0)

def _derived(data: bytes, dt=WHEN, seq=0, ext=".jpg"):
    c = FileHasher().checksum_bytes(data)
    return MediaFileDerivedInfo(checksum=c.value, short_checksum=c.short, ext=ext,
                                capture_datetime=dt, sequence=seq)

def test_base_stem_layout():
    assert base_stem(_derived(b"x", seq=3)) == "2024/05/01/100000-003"
    undated = _derived(b"x", dt=None)
    assert base_stem(undated) == f"undated/{undated.short_checksum}"

def test_allocate_on_empty_tree(tmp_path):
    allocation = TargetPathAllocator(OutputTree(tmp_path)).allocate(_derived(b"one"))
    assert allocation.action == CREATE
    assert allocation.path == "2024/05/01/100000-000.jpg"
    assert allocation.suffix == 0

def test_allocate_matches_identical_content(tmp_path):
    tree = OutputTree(tmp_path)
    derived = _derived(b"one")
    tree.write_media("2024/05/01/100000-000.jpg", b"one", derived.checksum)

    allocation = TargetPathAllocator(OutputTree(tmp_path)).allocate(derived)
    assert allocation.action == MATCH
    assert allocation.path == "2024/05/01/100000-000.jpg"

def test_allocate_never_reuses_other_content(tmp_path):
    folder = tmp_path / "2024" / "05" / "01"
    folder.mkdir(parents=True)
    (folder / "100000-000.jpg").write_bytes(b"someone else")
    (folder / "100000-001.md").write_text("orphan sidecar")

    tree = OutputTree(tmp_path)
    allocator = TargetPathAllocator(tree)
    derived = _derived(b"mine")
    allocation = allocator.allocate(derived)
    assert allocation.action == CREATE
    assert allocation.path == "2024/05/01/100000-000-1.jpg"
    assert allocation.suffix == 1

    tree.write_media(allocation.path, b"mine", derived.checksum)
    assert (folder / "100000-000.jpg").read_bytes() == b"someone else"

    # Same content on the next pass lands on the suffixed file
    again = TargetPathAllocator(OutputTree(tmp_path)).allocate(derived)
    assert again.action == MATCH
    assert again.path == "2024/05/01/100000-000-1.jpg"

def test_sidecar_alone_occupies_a_name(tmp_path):
    folder = tmp_path / "2024" / "05" / "01"
    folder.mkdir(parents=True)
    (folder / "100000-000.md").write_text("notes")

    allocation = TargetPathAllocator(OutputTree(tmp_path)).allocate(_derived(b"one"))
    assert allocation.path == "2024/05/01/100000-000-1.jpg"

def test_match_ignores_extension(tmp_path):
    """A file already archived under another extension is still the same item."""
    tree = OutputTree(tmp_path)
    derived = _derived(b"same bytes", ext=".jpg")
    tree.write_media("2024/05/01/100000-000.jpeg", b"same bytes", derived.checksum)

    allocation = TargetPathAllocator(OutputTree(tmp_path)).allocate(derived)
    assert allocation.action == MATCH
    assert allocation.path == "2024/05/01/100000-000.jpeg"

def test_write_media_is_exclusive(tmp_path):
    tree = OutputTree(tmp_path)
    derived = _derived(b"one")
    tree.write_media("a/b.jpg", b"one", derived.checksum, WHEN)
    assert (tmp_path / "a" / "b.jpg").read_bytes() == b"one"
    assert int(os.path.getmtime(tmp_path / "a" / "b.jpg")) == int(WHEN.timestamp())

    with pytest.raises(WriteError):
        tree.write_media("a/b.jpg", b"two", "other")
    assert (tmp_path / "a" / "b.jpg").read_bytes() == b"one"

def test_dry_run_plans_without_writing(tmp_path):
    tree = OutputTree(tmp_path, dry_run=True)
    allocator = TargetPathAllocator(tree)
    first = _derived(b"one")
    second = _derived(b"two")

    a = allocator.allocate(first)
    tree.write_media(a.path, b"one", first.checksum)
    tree.write_text("2024/05/01/100000-000.md", "---\n---\n")

    # The planned file is visible to later decisions in the same pass
    b = allocator.allocate(second)
    assert b.path == "2024/05/01/100000-000-1.jpg"
    assert allocator.allocate(first).action == MATCH
    assert tree.read_text("2024/05/01/100000-000.md") == "---\n---\n"

    assert list(tmp_path.iterdir()) == []

def test_allocate_matches_content_under_another_sequence_number(tmp_path):
    """Sequence numbers follow pass order, so the same content may carry a different one."""
    tree = OutputTree(tmp_path)
    derived = _derived(b"one", seq=1)
    tree.write_media("2024/05/01/100000-000.jpg", b"one", derived.checksum)
    tree.write_media("2024/05/01/100001-001.jpg", b"one", derived.checksum)

    allocation = TargetPathAllocator(OutputTree(tmp_path)).allocate(derived)
    assert allocation.action == MATCH
    assert allocation.path == "2024/05/01/100000-000.jpg"

    # Other seconds are not candidates
    other = _derived(b"one", dt=datetime(2024, 5, 1, 10, 0, 2))
    assert TargetPathAllocator(OutputTree(tmp_path)).allocate(other).action == CREATE

def test_second_prefix():
    assert second_prefix(_derived(b"x", seq=4)) == "2024/05/01/100000-"
    undated = _derived(b"x", dt=None)
    assert second_prefix(undated) == f"undated/{undated.short_checksum}"

def test_sidecar_path_ignores_extension_spelling():
    derived = _derived(b"x", ext=".jpg")
    derived.target_path = "2024/05/01/100000-000.jpeg"
    assert derived.sidecar_path == "2024/05/01/100000-000.md"
    derived.target_path = "undated/abcdef1-2.JPG"
    assert derived.sidecar_path == "undated/abcdef1-2.md"
    assert _derived(b"x").sidecar_path is None
