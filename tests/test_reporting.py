import csv
from photo_sorter import config
from photo_sorter.exceptions import AlbumReferenceUnresolved
from photo_sorter.models import ScanEntry
from photo_sorter.reporting import CREATED, SyncSummary, classification_counts, format_index

def test_exit_codes():
    assert SyncSummary().exit_code == config.EXIT_OK
    assert SyncSummary(failed=1).exit_code == config.EXIT_PARTIAL
    assert SyncSummary(cancelled=True).exit_code == config.EXIT_PARTIAL
    assert SyncSummary(unresolved=[AlbumReferenceUnresolved("Trip", "x.jpg")]).exit_code == config.EXIT_PARTIAL
    # Unsupported files are not failures
    assert SyncSummary(unsupported=4).exit_code == config.EXIT_OK

def test_fail_records_decision():
    summary = SyncSummary()
    summary.fail("a.jpg", "disk error")
    assert summary.failed == 1
    assert summary.decisions[0].status == "Failed"
    assert summary.decisions[0].notes == "disk error"

def test_write_csv(tmp_path):
    summary = SyncSummary(unresolved=[AlbumReferenceUnresolved("Trip", "x.jpg")])
    summary.record("a.jpg", CREATED, "2024/05/01/100000-000.jpg")
    out = tmp_path / "report.csv"
    summary.write_csv(out)

    with open(out, newline="", encoding="utf-8") as f:
        rows = list(csv.reader(f))
    assert rows == [
        ["Source Path", "Status", "Target Path", "Notes"],
        ["a.jpg", "Created", "2024/05/01/100000-000.jpg", ""],
        ["x.jpg", "Unresolved Album Member", "", "Trip"],
    ]

def test_classification_counts_and_format():
    entries = [ScanEntry(p, 0) for p in ("a.jpg", "b.mov", "a.jpg.json", "notes.txt")]
    counts = classification_counts(entries)
    assert counts == {"media": 2, "supplemental-json": 1, "other": 1}

    lines = format_index(config.LAYOUT_UNKNOWN, counts)
    assert lines[0] == "Layout: unknown"
    assert lines[-1].split() == ["total", "4"]
