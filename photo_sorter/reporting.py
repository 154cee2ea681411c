import csv
import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from . import config
from .exceptions import AlbumReferenceUnresolved
from .models import ExifAttribute, MediaFileDerivedInfo, ScanEntry
from .scanning.classify import OTHER, classify_entry

# Item statuses as they appear in the decision report
CREATED = 'Created'
MATCHED = 'Already Archived'
DUPLICATE = 'Duplicate In Input'
PLANNED = 'Not Written'
UNSUPPORTED = 'Unsupported'
FAILED = 'Failed'
ALBUM = 'Album'


@dataclass
class ItemDecision:
    source_path: str
    status: str
    target_path: str = ''
    notes: str = ''


@dataclass
class SyncSummary:
    """End-of-pass tally. Item failures are counted here, never raised."""
    origin: str = ''
    dry_run: bool = False
    processed: int = 0
    written: int = 0
    duplicates: int = 0
    unsupported: int = 0
    failed: int = 0
    sidecars_written: int = 0
    albums_written: int = 0
    unresolved: List[AlbumReferenceUnresolved] = field(default_factory=list)
    cancelled: bool = False
    decisions: List[ItemDecision] = field(default_factory=list)

    @property
    def exit_code(self) -> int:
        if self.failed or self.unresolved or self.cancelled:
            return config.EXIT_PARTIAL
        return config.EXIT_OK

    def record(self, source_path: str, status: str, target_path: Optional[str] = None, notes: str = ''):
        self.decisions.append(ItemDecision(source_path, status, target_path or '', notes))

    def fail(self, source_path: str, reason: str):
        self.failed += 1
        self.record(source_path, FAILED, notes=reason)

    def log_summary(self):
        prefix = "[DRY RUN] " if self.dry_run else ""
        logging.info(f"{prefix}Sync of {self.origin} complete.")
        logging.info(f"  Processed:            {self.processed}")
        logging.info(f"  Written:              {self.written}")
        logging.info(f"  Duplicates:           {self.duplicates}")
        logging.info(f"  Unsupported:          {self.unsupported}")
        logging.info(f"  Failed:               {self.failed}")
        logging.info(f"  Sidecars written:     {self.sidecars_written}")
        logging.info(f"  Albums written:       {self.albums_written}")
        logging.info(f"  Unresolved in albums: {len(self.unresolved)}")
        if self.cancelled:
            logging.warning("Sync was cancelled before all items were processed.")

    def write_csv(self, output_csv: Path):
        """One row per decision taken during the pass."""
        headers = ["Source Path", "Status", "Target Path", "Notes"]
        with open(output_csv, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(headers)
            for d in self.decisions:
                writer.writerow([d.source_path, d.status, d.target_path, d.notes])
            for problem in self.unresolved:
                writer.writerow([problem.reference, "Unresolved Album Member", "", problem.album])
        logging.info(f"Report written: {output_csv}")


def classification_counts(entries: Iterable[ScanEntry]) -> Dict[str, int]:
    counts: Counter = Counter()
    for entry in entries:
        counts[classify_entry(entry)] += 1
    return dict(counts)


def format_index(layout: str, counts: Dict[str, int]) -> List[str]:
    lines = [f"Layout: {layout}"]
    total = sum(counts.values())
    for kind in sorted(counts):
        if kind == OTHER:
            continue
        lines.append(f"  {kind:<18} {counts[kind]}")
    lines.append(f"  {OTHER:<18} {counts.get(OTHER, 0)}")
    lines.append(f"  {'total':<18} {total}")
    return lines


def format_item(path: str,
                true_type: str,
                derived: MediaFileDerivedInfo,
                attrs: Dict[str, ExifAttribute],
                sidecar_text: str) -> List[str]:
    """Human readable dump of everything derived for one item."""
    dt = derived.capture_datetime
    lines = [
        f"Path:      {path}",
        f"Type:      {true_type} ({derived.ext})",
        f"Checksum:  {derived.checksum}",
        f"Short:     {derived.short_checksum}",
        f"Datetime:  {dt.isoformat() if dt else 'undated'} ({derived.datetime_source or 'none'})",
        f"Target:    {derived.target_path}",
        "",
        "Attributes:",
    ]
    for name, attr in attrs.items():
        lines.append(f"  {name:<20} {attr.value!r} [{attr.source}]")
    lines.append("")
    lines.append("Sidecar:")
    lines.append(sidecar_text)
    return lines
