"""
Configuration constants for photo-sorter.
"""

# --- File Type Definitions ---
# Declared extensions that make an entry a media candidate. The sniffer has the
# final say on the real type.
IMAGE_EXTS = {'.jpg', '.jpeg', '.jpe', '.png', '.gif', '.heic', '.heif', '.avif',
              '.webp', '.tif', '.tiff', '.dng'}
VIDEO_EXTS = {'.mp4', '.mov', '.m4v', '.3gp', '.avi'}
MEDIA_EXTS = IMAGE_EXTS | VIDEO_EXTS

# Sniffed type -> canonical extension written to the archive
TYPE_TO_EXT = {
    'jpeg': '.jpg',
    'png': '.png',
    'gif': '.gif',
    'webp': '.webp',
    'tiff': '.tiff',
    'heic': '.heic',
    'avif': '.avif',
    'mp4': '.mp4',
    'mov': '.mov',
    '3gp': '.3gp',
    'avi': '.avi',
}
VIDEO_TYPES = {'mp4', 'mov', '3gp', 'avi'}
UNKNOWN_TYPE = 'unknown'

# Enough to cover the longest signature we check (ISO-BMFF brand lists)
SNIFF_BYTES = 64

# --- Platform export layouts ---
LAYOUT_GOOGLE = 'google-takeout'
LAYOUT_ICLOUD = 'icloud'
LAYOUT_UNKNOWN = 'unknown'

GOOGLE_MARKERS = ('Takeout/Google Photos/', 'Google Photos/')
ICLOUD_MARKERS = ('iCloud Photos/', 'Photos/Photo Details', 'Albums/')

# Google truncates long sidecar names, so all known spellings are tried in order
SUPPLEMENTAL_JSON_SUFFIXES = (
    '.supplemental-metadata.json',
    '.supplemental-metad.json',
    '.suppl.json',
    '.json',
)
GOOGLE_ALBUM_DESCRIPTOR = 'metadata.json'
ICLOUD_DETAILS_PREFIX = 'photo details'
ICLOUD_ALBUM_HEADERS = {'images', 'imagename', 'imgname'}

# --- Metadata Parsing ---
DATE_TAGS = [
    'EXIF DateTimeOriginal',
    'EXIF DateTimeDigitized',
    'Image DateTime',
]

# exifread tag name -> attribute name. This is the documented subset we keep.
EXIF_TAG_MAP = {
    'EXIF DateTimeOriginal': 'DateTimeOriginal',
    'EXIF DateTimeDigitized': 'DateTimeDigitized',
    'Image DateTime': 'DateTime',
    'EXIF SubSecTimeOriginal': 'SubSecTimeOriginal',
    'EXIF OffsetTimeOriginal': 'OffsetTimeOriginal',
    'Image Make': 'Make',
    'Image Model': 'Model',
    'EXIF LensModel': 'LensModel',
    'Image Orientation': 'Orientation',
    'EXIF ImageUniqueID': 'ImageUniqueID',
    'GPS GPSDate': 'GPSDate',
}

# Values longer than this are binary junk, not useful tags
MAX_TAG_VALUE_LEN = 1024

# MediaInfo general-track fields, in priority order
VIDEO_DATE_FIELDS = [
    'recorded_date',
    'encoded_date',
    'tagged_date',
]

# --- Hashing ---
HASH_CHUNK_SIZE = 64 * 1024  # 64 KB chunks for reading
SHORT_CHECKSUM_LEN = 7

# --- Organization ---
DATE_DIR_PATTERN = "{year:04d}/{month:02d}/{day:02d}"
TIME_NAME_PATTERN = "{hour:02d}{minute:02d}{second:02d}-{seq:03d}"
UNDATED_DIR = "undated"
ALBUMS_DIR = "albums"
SIDECAR_EXT = '.md'

# --- Markdown sidecars ---
FRONT_MATTER_DELIMITER = '---'
FRONT_MATTER_KEY = 'photo-sorter'

# --- Logging / CLI ---
LOG_FILE_NAME = "photo_sorter.log"
DEFAULT_DB_NAME = "photo_sorter.db"

EXIT_OK = 0
EXIT_PARTIAL = 1
EXIT_FATAL = 2
