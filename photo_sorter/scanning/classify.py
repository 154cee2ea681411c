"""
Quick, name-based classification of container entries and detection of which
platform produced the export.
"""
from typing import Iterable, Optional, Set

from .. import config
from ..models import ScanEntry

MEDIA = 'media'
SUPPLEMENTAL_JSON = 'supplemental-json'
DETAILS_CSV = 'details-csv'
ALBUM_CSV = 'album-csv'
ALBUM_JSON = 'album-json'
OTHER = 'other'


def detect_layout(paths: Iterable[str]) -> str:
    """Schema detection by presence of known marker paths."""
    google = icloud = False
    for p in paths:
        if any(p.startswith(m) or f"/{m}" in p for m in config.GOOGLE_MARKERS):
            google = True
        elif p.endswith(config.SUPPLEMENTAL_JSON_SUFFIXES[0]):
            google = True
        if any(p.startswith(m) or f"/{m}" in p for m in config.ICLOUD_MARKERS):
            icloud = True
    if google:
        return config.LAYOUT_GOOGLE
    if icloud:
        return config.LAYOUT_ICLOUD
    return config.LAYOUT_UNKNOWN


def classify_entry(entry: ScanEntry) -> str:
    name = entry.name
    if name.startswith('._') or name.startswith('.'):
        return OTHER

    ext = entry.ext
    if ext in config.MEDIA_EXTS:
        return MEDIA
    if ext == '.json':
        if name.lower() == config.GOOGLE_ALBUM_DESCRIPTOR:
            return ALBUM_JSON
        return SUPPLEMENTAL_JSON
    if ext == '.csv':
        if name.lower().startswith(config.ICLOUD_DETAILS_PREFIX):
            return DETAILS_CSV
        return ALBUM_CSV
    return OTHER


def find_supplemental_json(media_path: str, names: Set[str]) -> Optional[str]:
    """
    Locates the Google sidecar JSON for a media path, trying the full and
    truncated suffix spellings in order.
    """
    for suffix in config.SUPPLEMENTAL_JSON_SUFFIXES:
        candidate = f"{media_path}{suffix}"
        if candidate in names:
            return candidate
    return None
