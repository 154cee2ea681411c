import json
import logging
import re
from collections import defaultdict
from typing import Any, Dict, List, Optional, Set

from .. import config
from ..exceptions import AlbumReferenceUnresolved, MetadataParseError
from ..markdown.sidecar import previous_list
from ..models import AlbumInfo
from .supplemental import PLATFORM_GOOGLE, PLATFORM_ICLOUD, csv_header, read_csv_rows

_UNSAFE_TITLE = re.compile(r'[\\/:*?"<>|\x00-\x1f]+')


class AlbumResolver:
    """
    Albums do not own media; they point back at files archived in this pass.

    Members are matched by the container path (Google album folders) or the
    original filename (iCloud album CSVs) of media already processed. Anything
    not found yet is retried once after the media pass.
    """

    def __init__(self):
        self._by_path: Dict[str, str] = {}
        self._by_name: Dict[str, List[str]] = defaultdict(list)
        self._by_folded_name: Dict[str, List[str]] = defaultdict(list)
        self._used_titles: Set[str] = set()
        self.albums: List[AlbumInfo] = []

    # --- Media registry ---

    def register_media(self, orig_path: str, target_path: str):
        """Records where a container file ended up in the archive."""
        self._by_path.setdefault(orig_path, target_path)
        name = orig_path.rsplit('/', 1)[-1]
        if target_path not in self._by_name[name]:
            self._by_name[name].append(target_path)
        if target_path not in self._by_folded_name[name.casefold()]:
            self._by_folded_name[name.casefold()].append(target_path)

    def lookup(self, reference: str) -> Optional[str]:
        if reference in self._by_path:
            return self._by_path[reference]
        name = reference.rsplit('/', 1)[-1]
        if self._by_name.get(name):
            return self._by_name[name][0]
        if self._by_folded_name.get(name.casefold()):
            return self._by_folded_name[name.casefold()][0]
        return None

    # --- Descriptor parsing ---

    def parse_icloud_csv(self, path: str, data: bytes) -> Optional[AlbumInfo]:
        """
        iCloud album CSV: first column 'Images', one filename per row.
        The album is named after the CSV file.
        """
        try:
            header = csv_header(data)
            rows = read_csv_rows(data)
        except MetadataParseError as e:
            logging.warning(f"Unreadable album CSV {path}: {e}")
            return None

        if not header or header[0].lower() not in config.ICLOUD_ALBUM_HEADERS:
            logging.debug(f"Not an iCloud album: {path}")
            return None

        col = header[0]
        refs = [(row.get(col) or '').strip() for row in rows]
        refs = [r for r in refs if r]
        if not refs:
            logging.debug(f"Album has no entries: {path}")
            return None

        name = path.rsplit('/', 1)[-1]
        title = name[:name.rfind('.')] if '.' in name else name
        if not title:
            logging.debug(f"Album file has no name: {path}")
            return None
        return AlbumInfo(title=title, descriptor_path=path, platform=PLATFORM_ICLOUD, references=refs)

    def parse_google_json(self, path: str, data: bytes, folder_media: List[str]) -> Optional[AlbumInfo]:
        """
        Google album folder: metadata.json names the album, the media files
        sitting in the same folder are its members.
        """
        try:
            doc: Any = json.loads(data.decode('utf-8-sig'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logging.warning(f"Unreadable album metadata {path}: {e}")
            return None
        if not isinstance(doc, dict):
            logging.warning(f"Album metadata is not an object: {path}")
            return None

        folder = path.rsplit('/', 1)[0] if '/' in path else ''
        title = doc.get('title') if isinstance(doc.get('title'), str) else None
        title = (title or folder.rsplit('/', 1)[-1]).strip()
        if not title:
            logging.debug(f"Album has no title: {path}")
            return None
        description = doc.get('description') if isinstance(doc.get('description'), str) else None

        return AlbumInfo(
            title=title,
            descriptor_path=path,
            platform=PLATFORM_GOOGLE,
            references=list(folder_media),
            description=description.strip() or None if description else None,
        )

    # --- Resolution ---

    def add(self, album: AlbumInfo) -> AlbumInfo:
        """Registers an album, gives it a unique sidecar and resolves what it can now."""
        album.title = self._unique_title(album.title)
        album.sidecar_path = f"{config.ALBUMS_DIR}/{self._safe_name(album.title)}{config.SIDECAR_EXT}"
        self._resolve(album)
        self.albums.append(album)
        logging.info(
            f"Found album: {album.title!r} with {len(album.references)} entries at {album.descriptor_path}"
        )
        return album

    def finalize(self) -> List[AlbumReferenceUnresolved]:
        """
        Retries unresolved references once, then fixes the member lists.
        Returns one record per reference that is still missing.
        """
        problems: List[AlbumReferenceUnresolved] = []
        for album in self.albums:
            self._resolve(album)
            album.members = []
            album.unresolved = []
            for ref in album.references:
                target = album.resolved.get(ref)
                if target is None:
                    if ref not in album.unresolved:
                        album.unresolved.append(ref)
                elif target not in album.members:
                    album.members.append(target)
            for ref in album.unresolved:
                err = AlbumReferenceUnresolved(album.title, ref)
                logging.warning(str(err))
                problems.append(err)
        return problems

    def front_matter(self, album: AlbumInfo, origin: str,
                     previous: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Album sidecars are keyed by title, so an album of the same name from
        another export adds to the `members` already listed instead of
        replacing them. Every other field reflects this pass only.
        """
        members = previous_list(previous or {}, 'members')
        for target in album.members:
            if target not in members:
                members.append(target)

        data: Dict[str, Any] = {
            'album': album.title,
            'source': album.descriptor_path,
            'platform': album.platform,
            'origin': origin,
            'members': members,
        }
        if album.description:
            data['description'] = album.description
        if album.unresolved:
            data['unresolved'] = list(album.unresolved)
        return {config.FRONT_MATTER_KEY: data}

    def _resolve(self, album: AlbumInfo):
        for ref in album.references:
            if ref in album.resolved:
                continue
            target = self.lookup(ref)
            if target is not None:
                album.resolved[ref] = target

    def _unique_title(self, title: str) -> str:
        candidate = title
        attempt = 0
        while self._safe_name(candidate).casefold() in self._used_titles:
            attempt += 1
            candidate = f"{title}-{attempt}"
        self._used_titles.add(self._safe_name(candidate).casefold())
        return candidate

    @staticmethod
    def _safe_name(title: str) -> str:
        safe = _UNSAFE_TITLE.sub('_', title).strip(' .')
        return safe or 'album'
