import io
import logging
import re
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

import exifread
from PIL import Image, UnidentifiedImageError
from pymediainfo import MediaInfo

from .. import config
from ..exceptions import MetadataParseError
from ..models import ExifAttribute, MediaFileInfo, SupplementalInfo

Attributes = Dict[str, ExifAttribute]

# ISO 6709 location as written by phones into the container, e.g. "+37.7749-122.4194/"
_ISO6709 = re.compile(r'^([+-]\d+(?:\.\d+)?)([+-]\d+(?:\.\d+)?)')


class MetadataExtractor:
    """
    Unified interface for extracting metadata from media bytes.

    Strategies:
      - Images: 'exifread' for tags, Pillow for pixel dimensions.
      - Video: 'pymediainfo' general/video tracks.

    Broken metadata is never fatal: the item just gets fewer attributes and
    possibly no embedded timestamp.
    """

    def extract(self, info: MediaFileInfo, data: bytes) -> Tuple[Attributes, Optional[datetime]]:
        """
        Returns (attributes keyed by name, embedded capture datetime).
        """
        try:
            if info.is_video:
                return self.get_video_metadata(data)
            return self.get_image_metadata(data)
        except MetadataParseError as e:
            logging.warning(f"Metadata unreadable for {info.orig_path}: {e}")
            return {}, None

    def get_image_metadata(self, data: bytes) -> Tuple[Attributes, Optional[datetime]]:
        try:
            # details=False skips makernotes and thumbnails
            tags = exifread.process_file(io.BytesIO(data), details=False)
        except Exception as e:
            raise MetadataParseError(f"ExifRead failed: {e}") from e

        attrs: Attributes = {}
        for tag_name, attr_name in config.EXIF_TAG_MAP.items():
            if tag_name not in tags:
                continue
            value = str(tags[tag_name]).strip()
            if value and len(value) <= config.MAX_TAG_VALUE_LEN:
                attrs[attr_name] = ExifAttribute(attr_name, value)

        lat = self._gps_decimal(tags.get('GPS GPSLatitude'), tags.get('GPS GPSLatitudeRef'))
        lon = self._gps_decimal(tags.get('GPS GPSLongitude'), tags.get('GPS GPSLongitudeRef'))
        if lat is not None and lon is not None:
            attrs['GPSLatitude'] = ExifAttribute('GPSLatitude', lat)
            attrs['GPSLongitude'] = ExifAttribute('GPSLongitude', lon)

        size = self._image_size(data)
        if size:
            attrs['Width'] = ExifAttribute('Width', size[0])
            attrs['Height'] = ExifAttribute('Height', size[1])

        return attrs, self._parse_exif_date(tags)

    def get_video_metadata(self, data: bytes) -> Tuple[Attributes, Optional[datetime]]:
        try:
            mi = MediaInfo.parse(io.BytesIO(data))
        except Exception as e:
            raise MetadataParseError(f"MediaInfo failed: {e}") from e

        attrs: Attributes = {}
        capture: Optional[datetime] = None

        def put(name: str, value: Any):
            if value not in (None, '') and name not in attrs:
                attrs[name] = ExifAttribute(name, value, source='media')

        for track in mi.tracks:
            if track.track_type == "General":
                if getattr(track, "duration", None):
                    # MediaInfo duration is in milliseconds
                    put('Duration', round(float(track.duration) / 1000.0, 3))

                for field in config.VIDEO_DATE_FIELDS:
                    val = getattr(track, field, None)
                    if val:
                        dt = self._parse_flexible_date(str(val))
                        if dt:
                            put('CreationDate', str(val))
                            capture = dt
                            break

                put('Make', getattr(track, "com_apple_quicktime_make", None))
                put('Model',
                    getattr(track, "com_apple_quicktime_model", None) or
                    getattr(track, "device_model", None) or
                    getattr(track, "performer", None))

                location = (getattr(track, "com_apple_quicktime_location_iso6709", None) or
                            getattr(track, "xyz", None))
                if location:
                    m = _ISO6709.match(str(location))
                    if m:
                        put('GPSLatitude', float(m.group(1)))
                        put('GPSLongitude', float(m.group(2)))

            elif track.track_type == "Video":
                put('Width', getattr(track, "width", None))
                put('Height', getattr(track, "height", None))

        return attrs, capture

    def merge_supplemental(self, attrs: Attributes, supp: Optional[SupplementalInfo]) -> Attributes:
        """
        Adds sidecar fields that the embedded tags did not already provide.
        Embedded values always win.
        """
        if supp is None:
            return attrs
        merged = dict(attrs)

        def put(name: str, value: Any):
            if value not in (None, '', []) and name not in merged:
                merged[name] = ExifAttribute(name, value, source='supplemental')

        if supp.latitude is not None and supp.longitude is not None \
                and 'GPSLatitude' not in merged:
            put('GPSLatitude', supp.latitude)
            put('GPSLongitude', supp.longitude)
        put('Title', supp.title)
        put('Description', supp.description)
        put('People', list(supp.people))
        put('Favorite', supp.favorite)
        return merged

    # --- Internal Extraction Helpers ---

    def _image_size(self, data: bytes) -> Optional[Tuple[int, int]]:
        try:
            with Image.open(io.BytesIO(data)) as im:
                return im.size
        except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError):
            return None

    def _gps_decimal(self, coord, ref) -> Optional[float]:
        """Degrees/minutes/seconds ratios to signed decimal degrees."""
        if coord is None:
            return None
        try:
            d, m, s = [float(v.num) / float(v.den) if v.den else 0.0 for v in coord.values[:3]]
        except (AttributeError, ValueError, TypeError, ZeroDivisionError):
            return None
        value = d + m / 60.0 + s / 3600.0
        if ref is not None and str(ref).strip().upper() in ('S', 'W'):
            value = -value
        return round(value, 6)

    def _parse_exif_date(self, tags) -> Optional[datetime]:
        """Helper to parse standard EXIF date strings from exifread."""
        for tag in config.DATE_TAGS:
            if tag in tags:
                try:
                    # EXIF format is usually "YYYY:MM:DD HH:MM:SS"
                    dt_str = str(tags[tag]).strip().replace(':', '-', 2)
                    return datetime.strptime(dt_str[:19], "%Y-%m-%d %H:%M:%S")
                except ValueError:
                    continue
        return None

    def _parse_flexible_date(self, dt_str: str) -> Optional[datetime]:
        """
        Handles various date formats (ISO, UTC suffixes/prefixes, QuickTime).
        Returns a naive datetime in the wall-clock time it was written with.
        """
        if not dt_str:
            return None

        clean = dt_str.replace("UTC", "").strip()
        dt = None

        try:
            dt = datetime.fromisoformat(clean)
        except ValueError:
            pass

        if dt is None:
            try:
                clean_exif = clean.replace(":", "-", 2)
                # strptime can't take sub-second precision
                if "." in clean_exif:
                    clean_exif = clean_exif.split(".")[0]
                dt = datetime.strptime(clean_exif, "%Y-%m-%d %H:%M:%S")
            except ValueError:
                return None

        # QuickTime writes its 1904 epoch when the date was never set
        if dt.year <= 1904:
            return None
        return dt.replace(tzinfo=None)
