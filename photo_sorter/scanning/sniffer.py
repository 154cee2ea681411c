"""
Magic-byte detection of the real media type, independent of the extension.
"""
from typing import Optional

from .. import config

# (offset, signature, type). First match wins.
SIGNATURES = [
    (0, b'\xff\xd8\xff', 'jpeg'),
    (0, b'\x89PNG\r\n\x1a\n', 'png'),
    (0, b'GIF87a', 'gif'),
    (0, b'GIF89a', 'gif'),
    (0, b'II*\x00', 'tiff'),
    (0, b'MM\x00*', 'tiff'),
]

# ISO base media file format brands (bytes 8..12 after 'ftyp')
FTYP_BRANDS = {
    b'heic': 'heic', b'heix': 'heic', b'hevc': 'heic', b'hevx': 'heic',
    b'heim': 'heic', b'heis': 'heic', b'mif1': 'heic', b'msf1': 'heic',
    b'avif': 'avif', b'avis': 'avif',
    b'qt  ': 'mov',
    b'isom': 'mp4', b'iso2': 'mp4', b'iso4': 'mp4', b'iso5': 'mp4', b'iso6': 'mp4',
    b'mp41': 'mp4', b'mp42': 'mp4', b'avc1': 'mp4', b'M4V ': 'mp4', b'M4VP': 'mp4',
    b'MSNV': 'mp4', b'dash': 'mp4',
    b'3gp4': '3gp', b'3gp5': '3gp', b'3gp6': '3gp', b'3g2a': '3gp',
}

# Old QuickTime files start straight with an atom other than ftyp
QUICKTIME_ATOMS = {b'moov', b'mdat', b'wide', b'free', b'skip', b'pnot'}


def sniff_type(head: bytes) -> str:
    """
    Returns the best matching type name for the leading bytes of a file,
    or config.UNKNOWN_TYPE. Pure function; only looks at `head`.
    """
    head = head[:config.SNIFF_BYTES]
    if not head:
        return config.UNKNOWN_TYPE

    for offset, sig, ftype in SIGNATURES:
        if head[offset:offset + len(sig)] == sig:
            return ftype

    if head[:4] == b'RIFF' and len(head) >= 12:
        if head[8:12] == b'WEBP':
            return 'webp'
        if head[8:12] == b'AVI ':
            return 'avi'

    box = head[4:8]
    if box == b'ftyp':
        return _sniff_ftyp(head) or config.UNKNOWN_TYPE
    if box in QUICKTIME_ATOMS:
        return 'mov'

    return config.UNKNOWN_TYPE


def _sniff_ftyp(head: bytes) -> Optional[str]:
    major = head[8:12]
    if major in FTYP_BRANDS:
        return FTYP_BRANDS[major]

    # Fall back to the compatible brand list inside the ftyp box
    box_size = int.from_bytes(head[0:4], 'big')
    end = min(box_size, len(head))
    for i in range(16, end - 3, 4):
        brand = head[i:i + 4]
        if brand in FTYP_BRANDS:
            return FTYP_BRANDS[brand]
    return None


def extension_for(ftype: str) -> Optional[str]:
    return config.TYPE_TO_EXT.get(ftype)


def extension_matches(declared_ext: str, ftype: str) -> bool:
    """True when the declared extension is an accepted spelling of ftype."""
    declared = declared_ext.lower()
    aliases = {
        'jpeg': {'.jpg', '.jpeg', '.jpe'},
        'tiff': {'.tif', '.tiff', '.dng'},
        'heic': {'.heic', '.heif'},
        'mp4': {'.mp4', '.m4v'},
    }
    return declared in aliases.get(ftype, {config.TYPE_TO_EXT.get(ftype)})
