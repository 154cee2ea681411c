"""
Read-only views over an export: a plain directory tree or a zip archive.

Both variants expose the same surface (scan/read_bytes/open/exists) so the
rest of the pipeline never needs to know which one it is reading.
"""
import io
import logging
import os
import zipfile
import zlib
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Dict, Iterator, Optional, Protocol

from ..exceptions import FatalContainerError, ItemReadError
from ..models import ScanEntry

# Errors the zip module can raise for a damaged member
_ZIP_ENTRY_ERRORS = (zipfile.BadZipFile, zlib.error, EOFError, OSError, NotImplementedError)


class Container(Protocol):
    root: Path

    @property
    def name(self) -> str: ...

    def scan(self) -> Iterator[ScanEntry]: ...

    def read_bytes(self, path: str) -> bytes: ...

    def open(self, path: str) -> BinaryIO: ...

    def exists(self, path: str) -> bool: ...

    def close(self) -> None: ...


def normalize_path(path: str) -> str:
    """Single '/' convention, no leading slash, no '.' segments."""
    parts = [p for p in path.replace('\\', '/').split('/') if p not in ('', '.')]
    return '/'.join(parts)


def open_container(root: Path) -> "Container":
    """
    Picks the container kind for root. Failure here is fatal for the pass.
    """
    root = Path(root)
    if not root.exists():
        raise FatalContainerError(f"Input path does not exist: {root}")

    if root.is_dir():
        if not os.access(root, os.R_OK | os.X_OK):
            raise FatalContainerError(f"Input directory is not readable: {root}")
        return DirectoryContainer(root)

    if root.is_file() and zipfile.is_zipfile(root):
        return ZipContainer(root)

    raise FatalContainerError(f"Input is neither a directory nor a zip archive: {root}")


class DirectoryContainer:
    def __init__(self, root: Path):
        self.root = Path(root)

    @property
    def name(self) -> str:
        return self.root.name

    def scan(self) -> Iterator[ScanEntry]:
        """Depth-first walker using os.scandir, sorted for a stable order."""
        stack = [self.root]
        while stack:
            current = stack.pop()
            try:
                with os.scandir(current) as it:
                    entries = list(it)
            except OSError:
                logging.warning(f"Permission denied: {current}")
                continue

            entries.sort(key=lambda e: e.name.lower())

            dirs = []
            for e in entries:
                if e.is_dir(follow_symlinks=False):
                    dirs.append(Path(e.path))
                elif e.is_file(follow_symlinks=False):
                    try:
                        st = e.stat()
                    except OSError as err:
                        logging.warning(f"Cannot stat {e.path}: {err}")
                        continue
                    rel = Path(e.path).relative_to(self.root).as_posix()
                    yield ScanEntry(
                        path=rel,
                        size_bytes=st.st_size,
                        mtime=datetime.fromtimestamp(st.st_mtime),
                        container=self,
                    )

            # Reversed so A is processed before Z
            for d in reversed(dirs):
                stack.append(d)

    def read_bytes(self, path: str) -> bytes:
        try:
            return (self.root / normalize_path(path)).read_bytes()
        except OSError as e:
            raise ItemReadError(f"Unable to read {path}: {e}") from e

    def open(self, path: str) -> BinaryIO:
        try:
            return open(self.root / normalize_path(path), 'rb')
        except OSError as e:
            raise ItemReadError(f"Unable to open {path}: {e}") from e

    def exists(self, path: str) -> bool:
        return (self.root / normalize_path(path)).is_file()

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class ZipContainer:
    def __init__(self, root: Path):
        self.root = Path(root)
        try:
            self._zip: Optional[zipfile.ZipFile] = zipfile.ZipFile(self.root)
        except (zipfile.BadZipFile, OSError) as e:
            raise FatalContainerError(f"Unable to open zip file {root}: {e}") from e

        # normalized name -> name as stored in the archive
        self._names: Dict[str, str] = {}
        for info in self._zip.infolist():
            if not info.is_dir():
                self._names.setdefault(normalize_path(info.filename), info.filename)
        logging.debug(f"Counted {len(self._names)} files in zip {self.root}")

    @property
    def name(self) -> str:
        return self.root.name

    def scan(self) -> Iterator[ScanEntry]:
        """Central-directory order."""
        if self._zip is None:
            raise FatalContainerError(f"Zip container is closed: {self.root}")
        seen = set()
        for info in self._zip.infolist():
            if info.is_dir():
                continue
            rel = normalize_path(info.filename)
            if not rel or rel in seen:
                continue
            seen.add(rel)
            yield ScanEntry(
                path=rel,
                size_bytes=info.file_size,
                mtime=self._zip_mtime(info),
                container=self,
            )

    def read_bytes(self, path: str) -> bytes:
        stored = self._stored_name(path)
        try:
            return self._zip.read(stored)
        except _ZIP_ENTRY_ERRORS as e:
            raise ItemReadError(f"Corrupt zip entry {path}: {e}") from e

    def open(self, path: str) -> BinaryIO:
        # Zip members are bounded in size, so a buffered copy keeps the
        # handle seekable for the metadata parsers.
        return io.BytesIO(self.read_bytes(path))

    def exists(self, path: str) -> bool:
        return normalize_path(path) in self._names

    def close(self) -> None:
        if self._zip is not None:
            self._zip.close()
            self._zip = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _stored_name(self, path: str) -> str:
        if self._zip is None:
            raise ItemReadError(f"Zip container is closed: {self.root}")
        try:
            return self._names[normalize_path(path)]
        except KeyError:
            raise ItemReadError(f"No such entry in {self.root.name}: {path}") from None

    def _zip_mtime(self, info: zipfile.ZipInfo) -> Optional[datetime]:
        try:
            return datetime(*info.date_time)
        except ValueError:
            return None
