import enum
import logging
from collections import defaultdict
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

from tqdm import tqdm

from . import config
from .exceptions import ItemReadError, MetadataParseError, PhotoSorterError, WriteError
from .markdown.sidecar import UNCHANGED, SidecarMerger, media_front_matter, render_sidecar
from .metadata.albums import AlbumResolver
from .metadata.extract import MetadataExtractor
from .metadata.resolver import IdentityResolver
from .metadata.supplemental import parse_google_json, parse_icloud_details
from .models import IndexRecord, IndexSink, MarkdownSidecar, MediaFileInfo, ScanEntry, SupplementalInfo
from .organization.mover import OutputTree
from .organization.rules import MATCH, TargetPathAllocator, base_stem
from .reporting import (CREATED, DUPLICATE, MATCHED, PLANNED, UNSUPPORTED, ALBUM,
                        SyncSummary, classification_counts, format_item)
from .scanning.classify import (ALBUM_CSV, ALBUM_JSON, DETAILS_CSV, MEDIA, OTHER,
                                classify_entry, detect_layout, find_supplemental_json)
from .scanning.containers import Container, open_container
from .scanning.sniffer import extension_matches, sniff_type


class Phase(enum.IntEnum):
    SCANNING = 1
    CLASSIFYING = 2
    PROCESSING = 3
    FINALIZING = 4
    DONE = 5


class _PassState:
    """Everything that lives for exactly one sync pass."""

    def __init__(self, container: Container, entries: List[ScanEntry]):
        self.container = container
        self.entries = entries
        self.names: Set[str] = {e.path for e in entries}
        self.kinds: Dict[str, str] = {e.path: classify_entry(e) for e in entries}
        self.details: Dict[str, SupplementalInfo] = {}
        self.folder_media: Dict[str, List[str]] = defaultdict(list)
        self.seen: Dict[str, str] = {}      # checksum -> archive path (or source path)


class PhotoSorterApp:
    def __init__(self,
                 output_root: Optional[Path] = None,
                 dry_run: bool = False,
                 skip_markdown: bool = False,
                 skip_media: bool = False,
                 skip_albums: bool = False,
                 index_sink: Optional[IndexSink] = None):
        """
        Without an output root the pass only analyzes: identities, dates and
        albums are resolved and handed to the index sink, nothing is written.
        """
        self.output_root = Path(output_root) if output_root is not None else None
        self.dry_run = dry_run
        self.skip_markdown = skip_markdown
        self.skip_media = skip_media
        self.skip_albums = skip_albums
        self.index_sink = index_sink

        self.extractor = MetadataExtractor()
        self.phase: Optional[Phase] = None
        self._cancel_requested = False

    def request_cancel(self):
        """Stops the pass at the next item boundary."""
        self._cancel_requested = True

    def _advance(self, phase: Phase):
        if self.phase is not None and phase <= self.phase:
            raise RuntimeError(f"Cannot move from {self.phase.name} to {phase.name}")
        logging.debug(f"Phase: {phase.name}")
        self.phase = phase

    # --- Sync ---

    def sync(self, input_root: Path) -> SyncSummary:
        """
        Runs one batch pass over the input container.
        1. Scan (entry listing only)
        2. Classify (media / sidecars / albums, load iCloud details)
        3. Process media and album descriptors in container order
        4. Finalize albums

        Raises FatalContainerError if the input cannot be opened; every other
        problem is counted in the returned summary.
        """
        self.phase = None
        self._cancel_requested = False

        with open_container(Path(input_root)) as container:
            summary = SyncSummary(origin=container.name, dry_run=self.dry_run)

            # --- Step 1: Scanning ---
            self._advance(Phase.SCANNING)
            logging.info(f"Scanning {input_root}...")
            entries = list(container.scan())
            logging.info(f"Found {len(entries)} entries.")

            # --- Step 2: Classifying ---
            self._advance(Phase.CLASSIFYING)
            state = _PassState(container, entries)
            self._classify(state, summary)

            tree = OutputTree(self.output_root, self.dry_run) if self.output_root is not None else None
            allocator = TargetPathAllocator(tree) if tree is not None else None
            merger = SidecarMerger(tree) if tree is not None else None
            resolver = IdentityResolver()
            albums = AlbumResolver()

            # --- Step 3: Processing ---
            self._advance(Phase.PROCESSING)
            work = [e for e in entries if state.kinds[e.path] in (MEDIA, ALBUM_CSV, ALBUM_JSON)]
            for entry in tqdm(work, desc="Syncing"):
                if self._cancel_requested:
                    logging.warning(f"Cancel requested. Stopping before {entry.path}")
                    summary.cancelled = True
                    break

                kind = state.kinds[entry.path]
                if kind == MEDIA:
                    summary.processed += 1
                    try:
                        self._process_media(entry, state, resolver, allocator, tree, merger, albums, summary)
                    except ItemReadError as e:
                        logging.error(f"Failed to read {entry.path}: {e}")
                        summary.fail(entry.path, str(e))
                    except WriteError as e:
                        logging.error(f"Failed to write {entry.path}: {e}")
                        summary.fail(entry.path, str(e))
                    except Exception as e:
                        logging.exception(f"Unexpected error processing {entry.path}")
                        summary.fail(entry.path, f"Unexpected error: {e}")
                elif not self.skip_albums:
                    try:
                        self._process_album_descriptor(entry, state, albums)
                    except ItemReadError as e:
                        logging.error(f"Failed to read album descriptor {entry.path}: {e}")
                        summary.fail(entry.path, str(e))
                    except Exception as e:
                        logging.exception(f"Unexpected error processing album {entry.path}")
                        summary.fail(entry.path, f"Unexpected error: {e}")

            # --- Step 4: Finalizing ---
            self._advance(Phase.FINALIZING)
            if not self.skip_albums:
                self._finalize_albums(state, albums, merger, summary)

            self._advance(Phase.DONE)
            summary.log_summary()
            return summary

    def _classify(self, state: _PassState, summary: SyncSummary):
        layout = detect_layout(state.names)
        logging.info(f"Detected export layout: {layout}")

        for entry in state.entries:
            kind = state.kinds[entry.path]
            if kind == MEDIA:
                state.folder_media[entry.parent].append(entry.path)
            elif kind == DETAILS_CSV:
                try:
                    details = parse_icloud_details(entry.read_bytes())
                except ItemReadError as e:
                    logging.error(f"Failed to read photo details {entry.path}: {e}")
                    summary.fail(entry.path, str(e))
                    continue
                except MetadataParseError as e:
                    logging.warning(f"Skipping photo details {entry.path}: {e}")
                    continue
                logging.info(f"Loaded {len(details)} photo details from {entry.path}")
                state.details.update(details)
            elif kind == OTHER and not entry.name.startswith('.'):
                logging.debug(f"Unsupported entry: {entry.path}")
                summary.unsupported += 1
                summary.record(entry.path, UNSUPPORTED, notes="Unrecognized file type")

    def _supplemental_for(self, entry: ScanEntry, state: _PassState) -> Optional[SupplementalInfo]:
        json_path = find_supplemental_json(entry.path, state.names)
        if json_path is not None:
            try:
                return parse_google_json(state.container.read_bytes(json_path))
            except (ItemReadError, MetadataParseError) as e:
                logging.warning(f"Ignoring sidecar {json_path}: {e}")
                return None
        return state.details.get(entry.name)

    def _read_media(self, entry: ScanEntry, state: _PassState):
        """
        Reads and identifies one media entry.
        Returns (info, data, attrs, supplemental, derived) or None if the
        content is not a supported media type.
        """
        data = entry.read_bytes()
        ftype = sniff_type(data[:config.SNIFF_BYTES])
        if ftype == config.UNKNOWN_TYPE:
            return None

        info = MediaFileInfo(
            orig_path=entry.path,
            ext=entry.ext,
            true_type=ftype,
            size_bytes=len(data),
            mtime=entry.mtime,
        )
        if not extension_matches(info.ext, ftype):
            logging.info(f"Extension corrected: {entry.path} is {ftype}, archived as {info.true_ext}")

        attrs, embedded_dt = self.extractor.extract(info, data)
        supp = self._supplemental_for(entry, state)
        attrs = self.extractor.merge_supplemental(attrs, supp)
        return info, data, attrs, supp, embedded_dt

    def _process_media(self, entry, state, resolver, allocator, tree, merger, albums, summary):
        read = self._read_media(entry, state)
        if read is None:
            logging.warning(f"Unsupported content, skipping: {entry.path}")
            summary.unsupported += 1
            summary.record(entry.path, UNSUPPORTED, notes="Unrecognized content")
            return
        info, data, attrs, supp, embedded_dt = read
        derived = resolver.resolve(info, data, embedded_dt, supp)

        # Same content earlier in this pass: nothing more to write
        if derived.checksum in state.seen:
            first = state.seen[derived.checksum]
            if allocator is not None:
                derived.target_path = first
            logging.info(f"Duplicate in input: {entry.path} -> {first}")
            summary.duplicates += 1
            summary.record(entry.path, DUPLICATE, first)
            albums.register_media(entry.path, first)
            self._append_index(info, derived, attrs, supp)
            return

        if allocator is None:
            # Analysis only
            state.seen[derived.checksum] = entry.path
            albums.register_media(entry.path, entry.path)
            summary.record(entry.path, PLANNED, base_stem(derived) + derived.ext, "No output root")
            self._append_index(info, derived, attrs, supp)
            return

        allocation = allocator.allocate(derived)
        derived.target_path = allocation.path

        if allocation.action == MATCH:
            logging.debug(f"Already archived: {entry.path} -> {allocation.path}")
            summary.duplicates += 1
            summary.record(entry.path, MATCHED, allocation.path)
        elif self.skip_media:
            # Only media already in the archive gets its sidecar refreshed
            logging.debug(f"Skipping media write for {entry.path}")
            summary.record(entry.path, PLANNED, allocation.path, "Media writes skipped")
            state.seen[derived.checksum] = allocation.path
            albums.register_media(entry.path, allocation.path)
            self._append_index(info, derived, attrs, supp)
            return
        else:
            if allocation.suffix:
                logging.info(f"Name collision, using suffix -{allocation.suffix}: {allocation.path}")
            tree.write_media(allocation.path, data, derived.checksum, derived.capture_datetime)
            summary.written += 1
            summary.record(entry.path, CREATED, allocation.path)

        state.seen[derived.checksum] = allocation.path
        albums.register_media(entry.path, allocation.path)

        if not self.skip_markdown:
            result = merger.merge(
                derived.sidecar_path,
                lambda previous: media_front_matter(info, derived, attrs, state.container.name, previous),
            )
            if result != UNCHANGED:
                summary.sidecars_written += 1

        self._append_index(info, derived, attrs, supp)

    def _append_index(self, info, derived, attrs, supp):
        if self.index_sink is None:
            return
        self.index_sink.append(IndexRecord(
            info=info,
            derived=derived,
            attributes=list(attrs.values()),
            supplemental=supp,
        ))

    # --- Albums ---

    def _process_album_descriptor(self, entry: ScanEntry, state: _PassState, albums: AlbumResolver):
        data = entry.read_bytes()
        if state.kinds[entry.path] == ALBUM_JSON:
            album = albums.parse_google_json(entry.path, data, state.folder_media.get(entry.parent, []))
        else:
            album = albums.parse_icloud_csv(entry.path, data)
        if album is not None:
            albums.add(album)

    def _finalize_albums(self, state: _PassState, albums: AlbumResolver,
                         merger: Optional[SidecarMerger], summary: SyncSummary):
        summary.unresolved.extend(albums.finalize())
        if summary.cancelled:
            logging.warning("Sync cancelled, album sidecars not written.")
            return

        for album in albums.albums:
            if merger is not None and not self.skip_markdown:
                try:
                    result = merger.merge(
                        album.sidecar_path,
                        lambda previous, a=album: albums.front_matter(a, state.container.name, previous),
                    )
                except WriteError as e:
                    logging.error(f"Failed to write album {album.title!r}: {e}")
                    summary.fail(album.descriptor_path, str(e))
                    continue
                if result != UNCHANGED:
                    summary.albums_written += 1
            summary.record(album.descriptor_path, ALBUM, album.sidecar_path,
                           f"{len(album.members)} members, {len(album.unresolved)} unresolved")
            if self.index_sink is not None:
                self.index_sink.append(IndexRecord(album=album))

    # --- Inspection ---

    def index(self, input_root: Path) -> Tuple[str, Dict[str, int]]:
        """Export layout and entry counts per classification, without reading content."""
        with open_container(Path(input_root)) as container:
            entries = list(container.scan())
        return detect_layout(e.path for e in entries), classification_counts(entries)

    def describe(self, input_root: Path, rel_path: str) -> List[str]:
        """Everything a sync would derive for one item, as printable lines."""
        with open_container(Path(input_root)) as container:
            entries = list(container.scan())
            state = _PassState(container, entries)
            for entry in entries:
                if state.kinds[entry.path] == DETAILS_CSV:
                    try:
                        state.details.update(parse_icloud_details(entry.read_bytes()))
                    except (ItemReadError, MetadataParseError) as e:
                        logging.warning(f"Skipping photo details {entry.path}: {e}")

            entry = next((e for e in entries if e.path == rel_path.strip('/')), None)
            if entry is None:
                raise PhotoSorterError(f"No such entry in {container.name}: {rel_path}")

            read = self._read_media(entry, state)
            if read is None:
                raise PhotoSorterError(f"Not a supported media file: {rel_path}")
            info, data, attrs, supp, embedded_dt = read
            derived = IdentityResolver().resolve(info, data, embedded_dt, supp)
            derived.target_path = base_stem(derived) + derived.ext

            front_matter = media_front_matter(info, derived, attrs, container.name)
            sidecar_text = render_sidecar(MarkdownSidecar(front_matter, ''))
            return format_item(entry.path, info.true_type, derived, attrs, sidecar_text)
