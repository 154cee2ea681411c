import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from . import config
from .core import PhotoSorterApp
from .database.db import DBManager
from .database.ops import IndexWriter
from .exceptions import FatalContainerError, PhotoSorterError
from .reporting import format_index

def setup_logging(log_dir: Optional[Path], debug: bool):
    """Sets up logging to the console and, when given, a file in log_dir."""
    log_level = logging.DEBUG if debug else logging.INFO

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.insert(0, logging.FileHandler(log_dir / config.LOG_FILE_NAME, encoding='utf-8'))

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=handlers,
        force=True,
    )

    # Silence chatty libraries
    logging.getLogger("exifread").setLevel(logging.ERROR)
    logging.getLogger("PIL").setLevel(logging.WARNING)

def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Photo Sorter: archive Google Takeout and iCloud exports")
    sub = p.add_subparsers(dest="command", required=True)

    sync = sub.add_parser("sync", help="Sync an export into the archive")
    sync.add_argument("--input", type=Path, required=True, help="Export directory or zip archive")
    sync.add_argument("--output", type=Path, default=None, help="Archive root (omit to only analyze)")
    sync.add_argument("-n", "--dry-run", action="store_true", help="Decide everything, write nothing")
    sync.add_argument("-d", "--debug", action="store_true", help="Enable debug logging")
    sync.add_argument("--skip-markdown", action="store_true", help="Do not write markdown sidecars")
    sync.add_argument("--skip-media", action="store_true", help="Do not copy media files")
    sync.add_argument("--skip-albums", action="store_true", help="Do not process albums")
    sync.add_argument("--report-csv", type=Path, default=None, help="Write a per-item decision report")

    info = sub.add_parser("info", help="Show what a sync would derive for one item")
    info.add_argument("--root", type=Path, required=True, help="Export directory or zip archive")
    info.add_argument("--input", type=str, required=True, help="Item path inside the export")
    info.add_argument("-d", "--debug", action="store_true", help="Enable debug logging")

    index = sub.add_parser("index", help="Show the export layout and entry counts")
    index.add_argument("--input", type=Path, required=True, help="Export directory or zip archive")
    index.add_argument("-d", "--debug", action="store_true", help="Enable debug logging")

    db = sub.add_parser("db", help="Analyze an export into a SQLite index")
    db.add_argument("--input", type=Path, required=True, help="Export directory or zip archive")
    db.add_argument("--db", type=Path, default=Path(config.DEFAULT_DB_NAME), help="SQLite index file")
    db.add_argument("-d", "--debug", action="store_true", help="Enable debug logging")

    return p.parse_args(argv)

def run_sync(args) -> int:
    output_root = args.output.resolve() if args.output else None
    setup_logging(output_root if output_root and not args.dry_run else None, args.debug)

    logging.info("=== Photo Sorter Started ===")
    logging.info(f"Input:  {args.input}")
    logging.info(f"Output: {output_root if output_root else '(analysis only)'}")
    if args.dry_run:
        logging.info("[DRY RUN] No files will be written.")

    app = PhotoSorterApp(
        output_root=output_root,
        dry_run=args.dry_run,
        skip_markdown=args.skip_markdown,
        skip_media=args.skip_media,
        skip_albums=args.skip_albums,
    )

    # First Ctrl-C finishes the current item, a second one aborts
    def on_interrupt(signum, frame):
        logging.warning("Interrupt received, stopping after the current item...")
        app.request_cancel()
        signal.signal(signal.SIGINT, signal.default_int_handler)

    previous = signal.signal(signal.SIGINT, on_interrupt)
    try:
        summary = app.sync(args.input)
    finally:
        signal.signal(signal.SIGINT, previous)

    if args.report_csv:
        summary.write_csv(args.report_csv)
    return summary.exit_code

def run_info(args) -> int:
    setup_logging(None, args.debug)
    for line in PhotoSorterApp().describe(args.root, args.input):
        print(line)
    return config.EXIT_OK

def run_index(args) -> int:
    setup_logging(None, args.debug)
    layout, counts = PhotoSorterApp().index(args.input)
    for line in format_index(layout, counts):
        print(line)
    return config.EXIT_OK

def run_db(args) -> int:
    setup_logging(None, args.debug)
    with DBManager(args.db) as conn:
        writer = IndexWriter(conn)
        summary = PhotoSorterApp(index_sink=writer).sync(args.input)
        writer.commit()
    logging.info(f"Index written: {args.db}")
    return summary.exit_code

COMMANDS = {
    "sync": run_sync,
    "info": run_info,
    "index": run_index,
    "db": run_db,
}

def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        return COMMANDS[args.command](args)
    except FatalContainerError as e:
        logging.error(f"Fatal: {e}")
        return config.EXIT_FATAL
    except PhotoSorterError as e:
        logging.error(str(e))
        return config.EXIT_PARTIAL
    except KeyboardInterrupt:
        logging.warning("Operation cancelled by user.")
        return config.EXIT_PARTIAL
    except Exception:
        logging.exception("Fatal error during sync.")
        return config.EXIT_FATAL

if __name__ == "__main__":
    sys.exit(main())
