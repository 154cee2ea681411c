"""
Markdown sidecars: a YAML front-matter block owned by photo-sorter, followed
by free text owned by the user.

The two halves are handled as separate fields. The body is never parsed: it
is sliced out of the existing file and written back byte for byte, while the
front matter is rebuilt on every pass.
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

import yaml

from .. import config
from ..exceptions import SidecarParseError
from ..models import ExifAttribute, MarkdownSidecar, MediaFileDerivedInfo, MediaFileInfo
from ..organization.mover import OutputTree

CREATED = 'created'
UPDATED = 'updated'
UNCHANGED = 'unchanged'

FrontMatter = Dict[str, Any]


class SidecarParseFailure(SidecarParseError):
    """Carries the text that must be kept as body when parsing fails."""

    def __init__(self, message: str, remainder: str):
        super().__init__(message)
        self.remainder = remainder


def _is_delimiter(line: str) -> bool:
    return line.rstrip('\r\n') == config.FRONT_MATTER_DELIMITER


def split_front_matter(text: str) -> Tuple[Optional[str], str]:
    """
    Returns (front matter block or None, body). The body is an exact slice of
    the input. Raises SidecarParseFailure if the opening delimiter is never
    closed.
    """
    lines = text.splitlines(keepends=True)
    if not lines or not _is_delimiter(lines[0]):
        return None, text
    for i in range(1, len(lines)):
        if _is_delimiter(lines[i]):
            return ''.join(lines[1:i]), ''.join(lines[i + 1:])
    raise SidecarParseFailure("Front matter has no closing delimiter", text)


def parse_sidecar(text: str) -> MarkdownSidecar:
    """Strict parse. Raises SidecarParseFailure on unusable front matter."""
    block, body = split_front_matter(text)
    if block is None:
        return MarkdownSidecar({}, body)

    # Everything after the opening delimiter line, kept if the block is bad
    opening_line = text.splitlines(keepends=True)[0]
    after_opening = text[len(opening_line):]
    try:
        data = yaml.safe_load(block)
    except yaml.YAMLError as e:
        raise SidecarParseFailure(f"Invalid YAML front matter: {e}", after_opening) from e
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise SidecarParseFailure("Front matter is not a mapping", after_opening)
    return MarkdownSidecar(data, body)


def read_sidecar(text: str, rel: str = '') -> MarkdownSidecar:
    """
    Lenient parse used by the merger: bad front matter is dropped, the text
    is kept as body. Content is kept even when structure is not.
    """
    try:
        return parse_sidecar(text)
    except SidecarParseFailure as e:
        logging.warning(f"Unusable front matter in {rel or 'sidecar'}, regenerating: {e}")
        return MarkdownSidecar({}, e.remainder)


def render_sidecar(sidecar: MarkdownSidecar) -> str:
    block = yaml.safe_dump(
        sidecar.front_matter,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )
    return f"{config.FRONT_MATTER_DELIMITER}\n{block}{config.FRONT_MATTER_DELIMITER}\n{sidecar.body}"


def previous_list(front_matter: FrontMatter, key: str) -> List[str]:
    section = front_matter.get(config.FRONT_MATTER_KEY)
    if isinstance(section, dict) and isinstance(section.get(key), list):
        return [str(v) for v in section[key]]
    return []


def media_front_matter(info: MediaFileInfo,
                       derived: MediaFileDerivedInfo,
                       attrs: Dict[str, ExifAttribute],
                       origin: str,
                       previous: Optional[FrontMatter] = None) -> FrontMatter:
    """
    Front matter for one archived media file. `original-paths` accumulates
    across passes; every other field reflects this pass only.
    """
    original_paths = previous_list(previous or {}, 'original-paths')
    if info.orig_path not in original_paths:
        original_paths.append(info.orig_path)

    dt = derived.capture_datetime
    data: Dict[str, Any] = {
        'path': derived.target_path,
        'checksum': derived.checksum,
        'short-checksum': derived.short_checksum,
        'datetime': dt.isoformat() if dt else None,
        'datetime-source': derived.datetime_source,
        'origin': origin,
        'original-paths': original_paths,
    }

    def value(name: str) -> Any:
        attr = attrs.get(name)
        return attr.value if attr is not None else None

    make, model = value('Make'), value('Model')
    if model and make and not str(model).startswith(str(make)):
        data['camera'] = f"{make} {model}"
    elif model or make:
        data['camera'] = model or make

    optional = [
        ('lens', value('LensModel')),
        ('original-datetime', value('DateTimeOriginal')),
        ('gps-date', value('GPSDate')),
        ('unique-id', value('ImageUniqueID')),
        ('title', value('Title')),
        ('description', value('Description')),
        ('people', value('People')),
        ('favorite', value('Favorite')),
        ('width', value('Width')),
        ('height', value('Height')),
        ('duration', value('Duration')),
    ]
    lat, lon = value('GPSLatitude'), value('GPSLongitude')
    if lat is not None and lon is not None:
        data['gps'] = {'latitude': lat, 'longitude': lon}
    for key, v in optional:
        if v not in (None, '', []):
            data[key] = v

    return {config.FRONT_MATTER_KEY: data}


class SidecarMerger:
    def __init__(self, tree: OutputTree):
        self.tree = tree

    def merge(self, rel: str, build: Callable[[FrontMatter], FrontMatter]) -> str:
        """
        Rebuilds the front matter of the sidecar at `rel` (given the previous
        front matter) and keeps its body. Returns CREATED, UPDATED or
        UNCHANGED; nothing is written when the result is identical.
        """
        existing = self.tree.read_text(rel)
        if existing is None:
            sidecar = MarkdownSidecar(build({}), '')
        else:
            old = read_sidecar(existing, rel)
            sidecar = MarkdownSidecar(build(old.front_matter), old.body)

        text = render_sidecar(sidecar)
        if existing == text:
            logging.debug(f"Sidecar unchanged: {rel}")
            return UNCHANGED

        self.tree.write_text(rel, text)
        return CREATED if existing is None else UPDATED
