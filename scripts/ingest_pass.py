#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Photoingest: copy media from memory cards / folders into a target tree.

Highlights:
- Layouts: retain (mirror folders), rename (sequential names), preserve (flatten)
- RAW+JPEG pairs travel together when renaming; .xmp sidecars follow their file
- Existing files are never overwritten (name-1.ext, name-2.ext ...)
- Optional backup pass mirrors the primary into a second directory
- Dry-run by default; use --write to actually copy
- Settings come from photoingest.toml ([paths]/[filter]/[ingest]/[rename]); flags override

Exit codes: 0 ok, 1 not enough space, 2 bad options, 130 cancelled (Ctrl-C).
"""

import sys
import time
import argparse
import signal
import threading
from pathlib import Path
from typing import List, Optional

from photoingest.core.config import load_settings
from photoingest.core.errors import Cancelled, IngestError, InsufficientSpace
from photoingest.core.logs import setup_logging
from photoingest.services.engine import Ingestor
from photoingest.services.filter import Filter, normalize_extensions
from photoingest.services.progress import Progress
from photoingest.services.rename import Rename
from photoingest.services.structure import Structure

EXIT_OK = 0
EXIT_NO_SPACE = 1
EXIT_CONFIG = 2
EXIT_CANCELLED = 130


def human_bytes(n: int) -> str:
    size = float(n)
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if size < 1024 or unit == "TB":
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{n} B"


def build_parser(settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Photoingest: copy media into a target tree.")
    parser.add_argument("sources", nargs="*",
                        help="Source directories (default: [paths].sources from config)")
    parser.add_argument("--config", default=None,
                        help="Path to photoingest.toml (default: $PHOTOINGEST_CONFIG, then CWD and parents)")
    parser.add_argument("--target", default=None, help="Destination directory")
    parser.add_argument("--backup", default=None, help="Optional second destination (backup pass)")
    parser.add_argument("--structure", choices=["retain", "rename", "preserve"], default=None,
                        help=f"Target layout (default from config: {settings.structure.value})")
    parser.add_argument("--name", default=None, help="Rename: fixed base name (default: original stem)")
    parser.add_argument("--position", choices=["prefix", "suffix"], default=None,
                        help="Rename: where the sequence number goes")
    parser.add_argument("--sequence", type=int, default=None, help="Rename: first sequence number")
    parser.add_argument("--zeroes", type=int, default=None, help="Rename: zero-pad width (0..255)")
    parser.add_argument("--ext", action="append", default=None,
                        help="Only copy these extensions (repeatable or comma-separated; '' = no extension)")
    parser.add_argument("--min-size", type=int, default=None, help="Minimum file size in bytes")
    parser.add_argument("--max-size", type=int, default=None, help="Maximum file size in bytes")
    parser.add_argument("--include-hidden", action="store_true", help="Also copy hidden files")
    parser.add_argument("--no-xmp", action="store_true", help="Don't copy .xmp sidecars")
    parser.add_argument("--no-jpg", action="store_true", help="Rename: don't pair RAW+JPEG")
    parser.add_argument("--depth", type=int, default=None, help="Max directory depth below each source")
    parser.add_argument("--heartbeat", type=int, default=None,
                        help=f"Emit a progress line every N scanned files (default {settings.heartbeat})")
    parser.add_argument("--write", action="store_true",
                        default=not settings.dry_run_default,
                        help="Perform copies (default is dry-run)")
    parser.add_argument("--logs-dir", default=None,
                        help="Where to write log files (default: [paths].logs_dir; none = console only)")
    parser.add_argument("--log-level", default=None, choices=["DEBUG","INFO","WARNING","ERROR","CRITICAL"],
                        help="Force console log level (overrides -v/-q)")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="Increase console verbosity (repeatable)")
    parser.add_argument("-q", "--quiet", action="store_true",
                        help="Minimal console output")
    parser.add_argument("--json-logs", action="store_true",
                        help="Write JSON-formatted logs to file handler")
    return parser


def _config_arg(argv: Optional[List[str]]) -> Optional[str]:
    """--config has to be known before the parser (its defaults come from the file)."""
    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--config", default=None)
    known, _ = pre.parse_known_args(argv)
    return known.config


def _split_exts(values: List[str]) -> List[str]:
    out: List[str] = []
    for v in values:
        out.extend(v.split(",") if v else [""])
    return out


def build_ingestor(args, settings, progress: Progress, cancel: threading.Event) -> Ingestor:
    """Config values first, flags on top."""
    # structure / rename
    layout = args.structure or settings.structure.value
    rename = settings.rename.copy()
    if args.name is not None:
        rename.name = args.name or None
    if args.position is not None:
        rename = Rename(rename.name, args.position, rename.sequence, rename.zeroes)
    if args.sequence is not None:
        rename.sequence = args.sequence
    if args.zeroes is not None:
        rename = Rename(rename.name, rename.position, rename.sequence, args.zeroes)
    if layout == "rename":
        structure = Structure.renamed(rename)
    elif layout == "preserve":
        structure = Structure.preserve()
    else:
        structure = Structure.retain()

    # filter
    base = settings.to_filter()
    flt = Filter(
        extensions=normalize_extensions(_split_exts(args.ext)) if args.ext is not None else base.extensions,
        min_size=args.min_size if args.min_size is not None else base.min_size,
        max_size=args.max_size if args.max_size is not None else base.max_size,
        ignore_hidden=False if args.include_hidden else base.ignore_hidden,
    )

    b = (settings.to_builder()
         .with_structure(structure)
         .with_filter(flt)
         .with_progress(progress)
         .with_cancel(cancel))
    if args.sources:
        b.with_sources(args.sources)
    if args.target:
        b.with_target(args.target)
    if args.backup:
        b.with_backup(args.backup)
    if args.no_xmp:
        b.copy_xmp(False)
    if args.no_jpg:
        b.copy_jpg(False)
    if args.depth is not None:
        b.with_depth(args.depth if args.depth >= 0 else None)
    if args.heartbeat is not None:
        b.with_heartbeat(args.heartbeat)
    return b.build()


def log_plan(logger, ingestor: Ingestor) -> bool:
    """Dry-run report: what would be copied and whether it fits. Returns fits."""
    files = ingestor.files()
    needs = ingestor.needs()
    logger.info(f"Would copy {len(files)} file(s), {human_bytes(needs.total)} "
                f"({ingestor.structure.layout.value}) -> {ingestor.target}")
    logger.info(f"Target free: {human_bytes(needs.free)}")
    if needs.backup is not None:
        logger.info(f"Backup -> {ingestor.backup_dir}: free {human_bytes(needs.backup.free)}"
                    f"{' (same disk as target)' if needs.backup.same_disk else ''}")
    for p in files:
        logger.debug(f"  + {p}")
    fits = ingestor.fits()
    logger.info(f"Fits: {'yes' if fits else 'NO'}")
    return fits


def log_summary(logger, passes: List[dict], progress: Progress, elapsed: float) -> None:
    logger.info("\n=== Run summary ===")
    for s in passes:
        logger.info(
            f"Summary {s['label']} -> {s['target']}: "
            f"scanned={s['scanned']}, matched={s['matched']}, copied={s['copied']}, "
            f"sidecars={s['sidecars']}, drained={s['drained']}, failed={s['failed']}"
        )
    logger.info(f"TOTALS: scanned={progress.scanned}, copied={progress.copied}")
    logger.info(f"\n=== Ingest complete. Total time: {elapsed:.1f} seconds ===")


def main(argv: Optional[List[str]] = None) -> int:
    # Load config first (single read); its values become the parser defaults
    try:
        settings = load_settings(_config_arg(argv))
    except (ValueError, OSError) as e:
        print(f"Bad config: {e}", file=sys.stderr)
        return EXIT_CONFIG

    args = build_parser(settings).parse_args(argv)

    logs_dir = Path(args.logs_dir) if args.logs_dir else settings.logs_dir
    logger = setup_logging(
        logs_dir=logs_dir,
        verbose=args.verbose,
        quiet=args.quiet,
        log_level=args.log_level,
        json_logs=args.json_logs,
    )

    progress = Progress()
    cancel = threading.Event()
    try:
        ingestor = build_ingestor(args, settings, progress, cancel)
    except (IngestError, ValueError) as e:
        logger.error(f"Bad options: {e}")
        return EXIT_CONFIG

    mode = "WRITE" if args.write else "DRY-RUN"
    logger.info(f"Mode: {mode}")
    logger.info(f"Config: {settings.source or '(defaults)'}")
    logger.info(f"Sources: {', '.join(str(s) for s in sorted(ingestor.sources))}")

    t0 = time.perf_counter()
    if not args.write:
        try:
            fits = log_plan(logger, ingestor)
        except IngestError as e:
            logger.error(f"Preflight failed: {e}")
            return EXIT_CONFIG
        return EXIT_OK if fits else EXIT_NO_SPACE

    # Ctrl-C stops at the next checkpoint instead of mid-copy
    def _on_sigint(signum, frame):
        logger.warning("Cancelling… (finishing current file)")
        cancel.set()

    previous = None
    if threading.current_thread() is threading.main_thread():
        previous = signal.signal(signal.SIGINT, _on_sigint)
    try:
        passes = ingestor.ingest()
    except InsufficientSpace as e:
        logger.error(str(e))
        return EXIT_NO_SPACE
    except Cancelled:
        logger.warning(f"Cancelled after {progress.scanned} scanned, {progress.copied} copied")
        return EXIT_CANCELLED
    except IngestError as e:
        logger.error(f"Ingest failed: {e}")
        return EXIT_CONFIG
    finally:
        if previous is not None:
            signal.signal(signal.SIGINT, previous)

    log_summary(logger, passes, progress, time.perf_counter() - t0)
    return EXIT_OK

if __name__ == "__main__":
    sys.exit(main())
