from dataclasses import dataclass

from .. import config
from ..models import MediaFileDerivedInfo
from .mover import OutputTree

CREATE = 'create'
MATCH = 'match'


@dataclass(frozen=True)
class Allocation:
    path: str           # archive-relative
    action: str         # CREATE: write the binary here; MATCH: already archived
    suffix: int         # 0 when the base name was free


def base_stem(derived: MediaFileDerivedInfo) -> str:
    """Archive path without duplicate suffix or extension."""
    dt = derived.capture_datetime
    if dt is None:
        return f"{config.UNDATED_DIR}/{derived.short_checksum}"
    folder = config.DATE_DIR_PATTERN.format(year=dt.year, month=dt.month, day=dt.day)
    name = config.TIME_NAME_PATTERN.format(
        hour=dt.hour, minute=dt.minute, second=dt.second, seq=derived.sequence
    )
    return f"{folder}/{name}"


def second_prefix(derived: MediaFileDerivedInfo) -> str:
    """Stem prefix shared by every archived item of the same capture second."""
    base = base_stem(derived)
    if derived.capture_datetime is None:
        return base
    folder, _, name = base.rpartition('/')
    return f"{folder}/{name.partition('-')[0]}-"


class TargetPathAllocator:
    """
    Maps a resolved identity to its archive path:
        yyyy/mm/dd/hhmmss-NNN[-n].ext    or    undated/<short checksum>[-n].ext
    """

    def __init__(self, tree: OutputTree):
        self.tree = tree

    def allocate(self, derived: MediaFileDerivedInfo) -> Allocation:
        """
        Identical content anywhere under the same capture second is a MATCH,
        whatever sequence number it was archived with. Otherwise walks base,
        base-1, base-2... and stops at the first entirely unused candidate
        (CREATE). Candidates holding other content are never reused.
        """
        for rel in self.tree.media_with_prefix(second_prefix(derived)):
            if self.tree.checksum_of(rel) == derived.checksum:
                return Allocation(rel, MATCH, 0)

        base = base_stem(derived)
        suffix = 0
        while True:
            stem = base if suffix == 0 else f"{base}-{suffix}"
            if not self.tree.media_with_stem(stem) and not self.tree.exists(stem + config.SIDECAR_EXT):
                return Allocation(stem + derived.ext, CREATE, suffix)
            suffix += 1
