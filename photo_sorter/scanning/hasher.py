import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from .. import config


@dataclass(frozen=True)
class ChecksumInfo:
    value: str          # full SHA-256 hex digest
    short: str          # leading SHORT_CHECKSUM_LEN hex chars


class FileHasher:
    """
    Content fingerprints used as the dedup key.

    Always a full SHA-256 over every byte: two files are the same item only if
    the whole content matches, wherever they were found.
    """

    def checksum_bytes(self, data: bytes) -> ChecksumInfo:
        return self._info(hashlib.sha256(data).hexdigest())

    def checksum_stream(self, fileobj: BinaryIO) -> ChecksumInfo:
        """
        Hashes an open binary handle from its current position to EOF.
        The digest does not depend on the chunk size.
        """
        h = hashlib.sha256()
        while chunk := fileobj.read(config.HASH_CHUNK_SIZE):
            h.update(chunk)
        return self._info(h.hexdigest())

    def checksum_file(self, path: Path) -> ChecksumInfo:
        with open(path, 'rb') as f:
            return self.checksum_stream(f)

    def _info(self, digest: str) -> ChecksumInfo:
        return ChecksumInfo(value=digest, short=digest[:config.SHORT_CHECKSUM_LEN])
