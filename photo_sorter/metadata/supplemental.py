"""
Parsers for the metadata files the platforms export next to the media.

Google Takeout writes one JSON per media file
(``IMG_1234.jpg.supplemental-metadata.json``); iCloud writes
``Photo Details*.csv`` tables and one CSV per album.
"""
import csv
import io
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..exceptions import MetadataParseError
from ..models import SupplementalInfo

PLATFORM_GOOGLE = 'google-takeout'
PLATFORM_ICLOUD = 'icloud'

ICLOUD_DATE_FORMATS = [
    "%A %B %d,%Y %I:%M %p %Z",
    "%A %B %d, %Y %I:%M %p %Z",
    "%A %B %d,%Y %I:%M:%S %p %Z",
]


def epoch_to_datetime(value: Any) -> Optional[datetime]:
    """
    Unix timestamp (seconds, or milliseconds when longer than 10 digits) to a
    naive UTC datetime.
    """
    if value in (None, ''):
        return None
    try:
        ts = int(str(value).strip())
    except ValueError:
        return None
    if len(str(abs(ts))) > 10:
        ts = ts // 1000
    if ts <= 0:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).replace(tzinfo=None)


def parse_google_json(data: bytes) -> SupplementalInfo:
    try:
        doc = json.loads(data.decode('utf-8-sig'))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MetadataParseError(f"Invalid supplemental JSON: {e}") from e
    if not isinstance(doc, dict):
        raise MetadataParseError("Supplemental JSON is not an object")

    info = SupplementalInfo(platform=PLATFORM_GOOGLE)
    info.photo_taken_time = epoch_to_datetime(_dig(doc, 'photoTakenTime', 'timestamp'))
    info.creation_time = epoch_to_datetime(_dig(doc, 'creationTime', 'timestamp'))

    # geoData is what the user sees; geoDataExif is the camera's own fix.
    # Google writes 0.0/0.0 when there is no location.
    for key in ('geoData', 'geoDataExif'):
        geo = doc.get(key)
        if not isinstance(geo, dict):
            continue
        lat, lon = geo.get('latitude'), geo.get('longitude')
        if isinstance(lat, (int, float)) and isinstance(lon, (int, float)) and (lat or lon):
            info.latitude, info.longitude = round(float(lat), 6), round(float(lon), 6)
            break

    info.title = _text(doc.get('title'))
    info.description = _text(doc.get('description'))
    people = doc.get('people') or []
    if isinstance(people, list):
        info.people = [p['name'] for p in people if isinstance(p, dict) and p.get('name')]
    if 'favorited' in doc:
        info.favorite = bool(doc.get('favorited'))
    return info


def parse_icloud_details(data: bytes) -> Dict[str, SupplementalInfo]:
    """
    Rows of an iCloud ``Photo Details.csv`` keyed by image filename.
    Rows without a usable name are skipped.
    """
    details: Dict[str, SupplementalInfo] = {}
    for row in read_csv_rows(data):
        name = (row.get('imgName') or '').strip()
        if not name:
            continue
        info = SupplementalInfo(platform=PLATFORM_ICLOUD)
        info.photo_taken_time = parse_icloud_date(row.get('originalCreationDate'))
        info.creation_time = parse_icloud_date(row.get('importDate'))
        fav = (row.get('favorite') or '').strip().lower()
        if fav in ('yes', 'no', 'true', 'false'):
            info.favorite = fav in ('yes', 'true')
        details[name] = info
    return details


def parse_icloud_date(value: Optional[str]) -> Optional[datetime]:
    """e.g. 'Thursday March 21,2024 5:52 PM GMT' -> naive UTC datetime."""
    if not value:
        return None
    clean = ' '.join(value.split())
    for fmt in ICLOUD_DATE_FORMATS:
        try:
            return datetime.strptime(clean, fmt).replace(tzinfo=None)
        except ValueError:
            continue
    logging.debug(f"Unrecognized iCloud date: {value!r}")
    return None


def read_csv_rows(data: bytes) -> List[Dict[str, str]]:
    """Raw rows of a platform CSV, header row as keys."""
    try:
        text = data.decode('utf-8-sig')
    except UnicodeDecodeError as e:
        raise MetadataParseError(f"CSV is not UTF-8: {e}") from e
    try:
        reader = csv.DictReader(io.StringIO(text, newline=''))
        return [row for row in reader if any((v or '').strip() for v in row.values() if isinstance(v, str))]
    except csv.Error as e:
        raise MetadataParseError(f"Malformed CSV: {e}") from e


def csv_header(data: bytes) -> List[str]:
    try:
        text = data.decode('utf-8-sig')
        first = next(csv.reader(io.StringIO(text, newline='')), [])
    except (UnicodeDecodeError, csv.Error) as e:
        raise MetadataParseError(f"Unreadable CSV header: {e}") from e
    return [h.strip() for h in first]


def _dig(doc: Dict[str, Any], *keys: str) -> Any:
    cur: Any = doc
    for k in keys:
        if not isinstance(cur, dict):
            return None
        cur = cur.get(k)
    return cur


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None
