from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, BinaryIO, Dict, List, Optional, Protocol

from . import config


@dataclass
class ScanEntry:
    """
    One file found inside a container during a scan.
    Bytes are only read when the item is processed.
    """
    path: str               # container-relative, '/' separated
    size_bytes: int
    mtime: Optional[datetime] = None
    container: Any = field(default=None, repr=False, compare=False)

    @property
    def name(self) -> str:
        return self.path.rsplit('/', 1)[-1]

    @property
    def parent(self) -> str:
        return self.path.rsplit('/', 1)[0] if '/' in self.path else ''

    @property
    def ext(self) -> str:
        name = self.name
        return name[name.rfind('.'):].lower() if '.' in name else ''

    def open(self) -> BinaryIO:
        return self.container.open(self.path)

    def read_bytes(self) -> bytes:
        return self.container.read_bytes(self.path)


@dataclass(frozen=True)
class MediaFileInfo:
    """Identity of a media file as found in the container."""
    orig_path: str
    ext: str                # declared extension, lowercased
    true_type: str          # sniffed, see config.TYPE_TO_EXT
    size_bytes: int
    mtime: Optional[datetime] = None

    @property
    def name(self) -> str:
        return self.orig_path.rsplit('/', 1)[-1]

    @property
    def true_ext(self) -> str:
        return config.TYPE_TO_EXT.get(self.true_type, self.ext)

    @property
    def is_video(self) -> bool:
        return self.true_type in config.VIDEO_TYPES


@dataclass
class MediaFileDerivedInfo:
    """
    Facts computed from a media file during one pass.
    Never persisted as ground truth; the output tree is.
    """
    checksum: str
    short_checksum: str
    ext: str
    capture_datetime: Optional[datetime] = None
    datetime_source: Optional[str] = None   # exif/media/supplemental/mtime
    sequence: int = 0
    target_path: Optional[str] = None

    @property
    def sidecar_path(self) -> Optional[str]:
        if self.target_path is None:
            return None
        # The target may carry an existing file's extension spelling
        folder, slash, name = self.target_path.rpartition('/')
        stem, dot, _ = name.rpartition('.')
        return folder + slash + (stem if dot else name) + config.SIDECAR_EXT


@dataclass(frozen=True)
class ExifAttribute:
    name: str
    value: Any
    source: str = 'exif'    # exif/media/supplemental


@dataclass
class SupplementalInfo:
    """Platform sidecar fields (Google JSON or iCloud details CSV)."""
    platform: str
    photo_taken_time: Optional[datetime] = None
    creation_time: Optional[datetime] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    title: Optional[str] = None
    description: Optional[str] = None
    people: List[str] = field(default_factory=list)
    favorite: Optional[bool] = None


@dataclass
class AlbumInfo:
    title: str
    descriptor_path: str
    platform: str
    references: List[str] = field(default_factory=list)    # as written in the descriptor
    description: Optional[str] = None

    # Filled by the album resolver
    resolved: Dict[str, str] = field(default_factory=dict)  # reference -> target path
    members: List[str] = field(default_factory=list)       # archive-relative target paths
    unresolved: List[str] = field(default_factory=list)
    sidecar_path: Optional[str] = None


@dataclass
class MarkdownSidecar:
    """
    Structured block and free text kept apart, so the body is never
    re-serialized.
    """
    front_matter: Dict[str, Any] = field(default_factory=dict)
    body: str = ''


@dataclass
class IndexRecord:
    """One fact handed to an index sink: a processed media item or an album."""
    info: Optional[MediaFileInfo] = None
    derived: Optional[MediaFileDerivedInfo] = None
    attributes: List[ExifAttribute] = field(default_factory=list)
    supplemental: Optional[SupplementalInfo] = None
    album: Optional[AlbumInfo] = None


class IndexSink(Protocol):
    def append(self, record: IndexRecord) -> None: ...
