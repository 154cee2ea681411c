"""
Custom exception hierarchy for photo-sorter.

Only FatalContainerError stops a sync pass. Everything else is recovered at
the item boundary and counted in the end-of-pass summary.
"""


class PhotoSorterError(Exception):
    """Base exception for all photo-sorter errors."""
    pass


class FatalContainerError(PhotoSorterError):
    """Raised when the input root is missing or is not a directory/zip."""
    pass


class ItemReadError(PhotoSorterError):
    """Raised when a single container entry cannot be read."""
    pass


class MetadataParseError(PhotoSorterError):
    """Raised when embedded tags or a platform sidecar cannot be parsed."""
    pass


class SidecarParseError(PhotoSorterError):
    """Raised when an existing markdown sidecar has unusable front matter."""
    pass


class AlbumReferenceUnresolved(PhotoSorterError):
    """Raised when an album member cannot be matched to any synced media."""

    def __init__(self, album: str, reference: str):
        super().__init__(f"Album {album!r}: member {reference!r} not found")
        self.album = album
        self.reference = reference


class WriteError(PhotoSorterError):
    """Raised when a file cannot be written into the output tree."""
    pass
