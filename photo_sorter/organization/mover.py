import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from .. import config
from ..exceptions import WriteError
from ..scanning.hasher import FileHasher


class OutputTree:
    """
    The archive directory, written additively.

    Media files are created exclusively and never replaced. Sidecars are
    replaced only by the merger's output. In dry-run mode nothing touches the
    disk; planned writes are remembered so later decisions in the same pass
    see them as if they had happened.
    """

    def __init__(self, root: Path, dry_run: bool = False):
        self.root = Path(root)
        self.dry_run = dry_run
        self.hasher = FileHasher()
        self._planned_media: Dict[str, str] = {}      # rel path -> checksum
        self._planned_text: Dict[str, str] = {}       # rel path -> content
        self._checksums: Dict[str, str] = {}

    # --- Queries ---

    def exists(self, rel: str) -> bool:
        return rel in self._planned_media or rel in self._planned_text or (self.root / rel).exists()

    def media_with_stem(self, stem_rel: str) -> List[str]:
        """
        Non-sidecar files whose name minus extension equals the stem,
        e.g. '2024/05/01/100000-000' -> ['2024/05/01/100000-000.jpg'].
        """
        parent, _, stem = stem_rel.rpartition('/')
        return self._media_in(parent, lambda name: name == stem)

    def media_with_prefix(self, prefix_rel: str) -> List[str]:
        """
        Non-sidecar files whose name minus extension starts with the prefix,
        e.g. '2024/05/01/100000-' -> every item archived for that second.
        """
        parent, _, prefix = prefix_rel.rpartition('/')
        return self._media_in(parent, lambda name: name.startswith(prefix))

    def _media_in(self, parent: str, accept) -> List[str]:
        found = set()
        folder = self.root / parent if parent else self.root
        try:
            with os.scandir(folder) as it:
                for e in it:
                    stem = self._media_stem(e.name)
                    if stem is not None and accept(stem) and e.is_file():
                        found.add(f"{parent}/{e.name}" if parent else e.name)
        except FileNotFoundError:
            pass
        except OSError as err:
            logging.warning(f"Cannot list {folder}: {err}")

        for rel in self._planned_media:
            folder_rel, _, name = rel.rpartition('/')
            stem = self._media_stem(name)
            if folder_rel == parent and stem is not None and accept(stem):
                found.add(rel)
        return sorted(found)

    def checksum_of(self, rel: str) -> Optional[str]:
        if rel in self._planned_media:
            return self._planned_media[rel]
        if rel not in self._checksums:
            try:
                self._checksums[rel] = self.hasher.checksum_file(self.root / rel).value
            except OSError as e:
                logging.warning(f"Cannot hash existing {rel}: {e}")
                return None
        return self._checksums[rel]

    def read_text(self, rel: str) -> Optional[str]:
        """
        Existing text content exactly as stored (line endings kept), or None.
        Undecodable bytes survive a read/write round trip.
        """
        if rel in self._planned_text:
            return self._planned_text[rel]
        path = self.root / rel
        if not path.is_file():
            return None
        with open(path, 'r', encoding='utf-8', errors='surrogateescape', newline='') as f:
            return f.read()

    # --- Writes ---

    def write_media(self, rel: str, data: bytes, checksum: str,
                    capture_datetime: Optional[datetime] = None):
        if self.exists(rel):
            raise WriteError(f"Refusing to overwrite existing file {rel}")

        if self.dry_run:
            logging.info(f"[DRY RUN] Create {rel}")
            self._planned_media[rel] = checksum
            return

        dest = self.root / rel
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            # 'xb' fails instead of clobbering if something appeared meanwhile
            with open(dest, 'xb') as f:
                f.write(data)
        except OSError as e:
            raise WriteError(f"Unable to write {dest}: {e}") from e

        self._checksums[rel] = checksum
        if capture_datetime is not None:
            self._set_mtime(dest, capture_datetime)
        logging.debug(f"Created {rel}")

    def write_text(self, rel: str, text: str):
        if self.dry_run:
            action = "Update" if self.exists(rel) else "Create"
            logging.info(f"[DRY RUN] {action} {rel}")
            self._planned_text[rel] = text
            return

        dest = self.root / rel
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix='.', suffix='.tmp', dir=dest.parent)
            try:
                with os.fdopen(fd, 'w', encoding='utf-8', errors='surrogateescape', newline='') as f:
                    f.write(text)
                os.replace(tmp, dest)
            except BaseException:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise
        except OSError as e:
            raise WriteError(f"Unable to write {dest}: {e}") from e
        logging.debug(f"Wrote {rel}")

    def _set_mtime(self, path: Path, dt: datetime):
        try:
            ts = dt.timestamp()
            os.utime(path, (ts, ts))
        except (OSError, OverflowError, ValueError) as e:
            logging.debug(f"Failed to set modified time on {path}: {e}")

    @staticmethod
    def _media_stem(name: str) -> Optional[str]:
        """Name minus extension, or None for dotfiles and sidecars."""
        if name.startswith('.'):
            return None
        base, dot, ext = name.rpartition('.')
        if not dot or f".{ext.lower()}" == config.SIDECAR_EXT:
            return None
        return base
