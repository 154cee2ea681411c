import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from ..models import MediaFileDerivedInfo, MediaFileInfo, SupplementalInfo
from ..scanning.hasher import FileHasher

SOURCE_EXIF = 'exif'
SOURCE_MEDIA = 'media'
SOURCE_SUPPLEMENTAL = 'supplemental'
SOURCE_MTIME = 'mtime'


class IdentityResolver:
    """
    Derives the canonical identity (checksum) and capture second of a media
    file, plus the per-second sequence number used in its archive name.

    One instance per sync pass: the sequence numbers depend on the order in
    which distinct items are encountered.
    """

    def __init__(self, hasher: Optional[FileHasher] = None):
        self.hasher = hasher or FileHasher()
        # capture second -> checksums in encounter order
        self._seconds: Dict[datetime, List[str]] = {}

    def resolve(self,
                info: MediaFileInfo,
                data: bytes,
                embedded_dt: Optional[datetime] = None,
                supp: Optional[SupplementalInfo] = None) -> MediaFileDerivedInfo:
        checksum = self.hasher.checksum_bytes(data)
        embedded_source = SOURCE_MEDIA if info.is_video else SOURCE_EXIF
        dt, source = self.resolve_datetime(embedded_dt, supp, info.mtime, embedded_source)

        seq = self.sequence_for(dt, checksum.value) if dt is not None else 0
        logging.debug(f"{info.orig_path}: {checksum.short} at {dt} ({source}) seq={seq}")

        return MediaFileDerivedInfo(
            checksum=checksum.value,
            short_checksum=checksum.short,
            ext=info.true_ext,
            capture_datetime=dt,
            datetime_source=source,
            sequence=seq,
        )

    @staticmethod
    def resolve_datetime(embedded_dt: Optional[datetime],
                         supp: Optional[SupplementalInfo],
                         mtime: Optional[datetime],
                         embedded_source: str = SOURCE_EXIF) -> Tuple[Optional[datetime], Optional[str]]:
        """
        Fixed precedence:
          1) timestamp embedded in the file (EXIF, or container tags for video)
          2) platform sidecar: photo taken time, then creation time
          3) modification time recorded by the container
        Truncated to whole seconds.
        """
        candidates = [(embedded_dt, embedded_source)]
        if supp is not None:
            candidates.append((supp.photo_taken_time, SOURCE_SUPPLEMENTAL))
            candidates.append((supp.creation_time, SOURCE_SUPPLEMENTAL))
        candidates.append((mtime, SOURCE_MTIME))

        for dt, source in candidates:
            if dt is not None:
                return dt.replace(microsecond=0, tzinfo=None), source
        return None, None

    def sequence_for(self, second: datetime, checksum: str) -> int:
        """
        0, 1, 2... for distinct checksums sharing one second, in the order
        they are first seen. The same checksum always gets the same number.
        """
        seen = self._seconds.setdefault(second, [])
        if checksum not in seen:
            seen.append(checksum)
        return seen.index(checksum)
