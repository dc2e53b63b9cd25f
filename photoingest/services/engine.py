# photoingest/services/engine.py
# Ingest orchestration (blocking personality) + the builder shared by both personalities.
#
# A run is one primary pass and, when a backup directory is set, one backup pass.
# Each pass: preflight -> walk sources -> per-file dispatch -> drain owed JPEGs.
# Per-file failures are logged and skipped; preflight, cancellation and
# misconfiguration abort the run.

from __future__ import annotations

import threading
import uuid
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from photoingest.core.errors import (
    BackupNotSet,
    Cancelled,
    IngestError,
    IngestIOError,
    InsufficientSpace,
    MissingComponent,
    MissingField,
)
from photoingest.core.logs import batch_logger, file_logger
from photoingest.schemas.ingest import Needs
from photoingest.services.executors import LocalFileSystem
from photoingest.services.filter import Filter, is_jpeg
from photoingest.services.progress import Progress
from photoingest.services.rename import Rename
from photoingest.services.space import fits_on, needs_from, required_bytes
from photoingest.services.structure import SidecarTracker, Structure, pick_jpeg
from photoingest.utils.paths import relative_to_root

DEFAULT_HEARTBEAT = 500


class IngestorBuilder:
    """
    Collects ingest options; build() for the blocking engine, build_async() for the
    cooperative one. structure, target, sources and filter are required.
    """

    def __init__(self):
        self.structure: Optional[Structure] = None
        self.target: Optional[Path] = None
        self.backup: Optional[Path] = None
        self.sources: Optional[set] = None
        self.filter: Optional[Filter] = None
        self._copy_xmp = True
        self._copy_jpg = True
        self.depth: Optional[int] = None
        self.progress: Optional[Progress] = None
        self.cancel_event: Optional[threading.Event] = None
        self.heartbeat = DEFAULT_HEARTBEAT
        self.executor = None

    @classmethod
    def images(cls) -> "IngestorBuilder":
        return cls().with_filter(Filter.images())

    def with_structure(self, structure: Structure) -> "IngestorBuilder":
        self.structure = structure
        return self

    def with_target(self, target) -> "IngestorBuilder":
        self.target = Path(target)
        return self

    def with_backup(self, backup) -> "IngestorBuilder":
        self.backup = Path(backup) if backup else None
        return self

    def with_sources(self, sources: Iterable) -> "IngestorBuilder":
        self.sources = {Path(p) for p in sources}
        return self

    def with_filter(self, filter: Filter) -> "IngestorBuilder":
        self.filter = filter
        return self

    def copy_xmp(self, copy_xmp: bool) -> "IngestorBuilder":
        self._copy_xmp = bool(copy_xmp)
        return self

    def copy_jpg(self, copy_jpg: bool) -> "IngestorBuilder":
        self._copy_jpg = bool(copy_jpg)
        return self

    def with_depth(self, depth: Optional[int]) -> "IngestorBuilder":
        self.depth = depth
        return self

    def with_progress(self, progress: Progress) -> "IngestorBuilder":
        self.progress = progress
        return self

    def with_cancel(self, cancel_event: threading.Event) -> "IngestorBuilder":
        self.cancel_event = cancel_event
        return self

    def with_heartbeat(self, heartbeat: int) -> "IngestorBuilder":
        self.heartbeat = int(heartbeat)
        return self

    def with_executor(self, executor) -> "IngestorBuilder":
        self.executor = executor
        return self

    def _options(self) -> dict:
        missing = [name for name in ("structure", "target", "sources", "filter")
                   if not getattr(self, name)]
        if missing:
            raise MissingField(missing)
        return dict(
            structure=self.structure,
            target=self.target,
            backup=self.backup,
            sources=self.sources,
            filter=self.filter,
            copy_xmp=self._copy_xmp,
            copy_jpg=self._copy_jpg,
            depth=self.depth,
            progress=self.progress,
            cancel_event=self.cancel_event,
            heartbeat=self.heartbeat,
        )

    def build(self) -> "Ingestor":
        return Ingestor(fs=self.executor or LocalFileSystem(), **self._options())

    def build_async(self):
        from photoingest.services.engine_async import AsyncIngestor
        from photoingest.services.executors import AsyncLocalFileSystem

        fs = self.executor
        if fs is None or isinstance(fs, LocalFileSystem):
            fs = AsyncLocalFileSystem(sync=fs)
        return AsyncIngestor(fs=fs, **self._options())


class BaseIngestor:
    """State and pure helpers shared by Ingestor and AsyncIngestor."""

    def __init__(self, *, structure: Structure, target: Path, sources: Iterable,
                 filter: Filter, fs, backup: Optional[Path] = None,
                 copy_xmp: bool = True, copy_jpg: bool = True,
                 depth: Optional[int] = None, progress: Optional[Progress] = None,
                 cancel_event: Optional[threading.Event] = None,
                 heartbeat: int = DEFAULT_HEARTBEAT):
        self.structure = structure
        self.target = Path(target)
        self.backup_dir = Path(backup) if backup else None
        self.sources = {Path(p) for p in sources}
        self.filter = filter
        self.copy_xmp = copy_xmp
        self.copy_jpg = copy_jpg
        self.depth = depth
        self.progress = progress if progress is not None else Progress()
        self.cancel_event = cancel_event if cancel_event is not None else threading.Event()
        self.heartbeat = heartbeat
        self.fs = fs
        self._sidecars = SidecarTracker()
        # per-pass listing cache: directory -> {stem: [files]}
        self._stem_indexes: Dict[Path, Dict[str, List[Path]]] = {}
        self._stats = self._new_stats("-", "-")
        self._ctx = batch_logger("-", "-")

    @classmethod
    def builder(cls) -> IngestorBuilder:
        return IngestorBuilder()

    # ---------- cancellation ----------

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def _check_cancelled(self, where: Optional[Path] = None) -> None:
        if self.cancel_event.is_set():
            raise Cancelled(where)

    # ---------- helpers ----------

    def _pairing(self) -> bool:
        """RAW+JPEG pairing only applies to renamed layouts."""
        return self.structure.is_renamed() and self.copy_jpg

    def _pass_rename(self) -> Optional[Rename]:
        # every pass numbers from the configured start, so the backup mirrors the primary
        return self.structure.rename.copy() if self.structure.is_renamed() else None

    def _prune(self, path: Path, st=None) -> bool:
        return self.filter.excludes(path, st)

    def _sorted_sources(self) -> List[Path]:
        return sorted(self.sources)

    def _retain_target(self, source: Path, path: Path) -> Path:
        return self.target / relative_to_root(source, path)

    @staticmethod
    def _renamed_filename(path: Path, rename: Rename) -> str:
        ext = Path(path).suffix
        if not ext:
            raise MissingComponent(path, "extension")
        return f"{rename.file_stem(path)}{ext}"

    @staticmethod
    def _preserved_filename(path: Path) -> str:
        name = Path(path).name
        if not name:
            raise MissingComponent(path, "filename")
        return name

    @staticmethod
    def _new_stats(label: str, ingest_id: str, target: Optional[Path] = None) -> dict:
        return {
            "label": label,
            "ingest_id": ingest_id,
            "target": str(target) if target else None,
            "scanned": 0,
            "matched": 0,
            "copied": 0,
            "failed": 0,
            "sidecars": 0,   # .xmp + companion JPEGs copied alongside a primary
            "drained": 0,    # owed JPEGs copied after the walk
        }

    def _begin_pass(self, label: str) -> None:
        ingest_id = str(uuid.uuid4())
        self._stats = self._new_stats(label, ingest_id, self.target)
        self._ctx = batch_logger(ingest_id, label)
        self._stem_indexes.clear()

    @staticmethod
    def _mates(path: Path, index: Dict[str, List[Path]]) -> List[Path]:
        return [p for p in index.get(path.stem, ()) if p.name != path.name]

    def _heartbeat(self, scanned: int) -> None:
        if self.heartbeat > 0 and scanned % self.heartbeat == 0:
            s = self._stats
            self._ctx.info("… scanned=%d copied=%d failed=%d", s["scanned"], s["copied"], s["failed"])

    def _skip(self, path: Path, error: Exception) -> None:
        self._stats["failed"] += 1
        file_logger(self._ctx, path).warning("SKIP %s: %s", path, error)

    def _raise_if_short(self, needs: Needs) -> None:
        backup_free = needs.backup.free if needs.backup else None
        same_disk = needs.backup.same_disk if needs.backup else False
        if fits_on(needs.total, needs.free, 0, backup_free, same_disk):
            return
        required = required_bytes(needs.total, same_disk=same_disk)
        if needs.free <= required:
            raise InsufficientSpace(self.target, required, needs.free)
        raise InsufficientSpace(self.backup_dir, required, backup_free)


class Ingestor(BaseIngestor):
    """Blocking ingest engine; see IngestorBuilder."""

    # ---------- queries ----------

    def files(self) -> List[Path]:
        """All files under the sources that currently match the filter."""
        out: List[Path] = []
        for source in self._sorted_sources():
            for entry in self.fs.walk(source, self.depth, self._prune):
                if entry.is_dir:
                    continue
                try:
                    if self.filter.matches(entry.path, self.fs.stat(entry.path)):
                        out.append(entry.path)
                except OSError:
                    continue
        return out

    def folders(self) -> List[Path]:
        """All directories the walk would enter, source roots included."""
        out: List[Path] = []
        for source in self._sorted_sources():
            out.extend(e.path for e in self.fs.walk(source, self.depth, self._prune) if e.is_dir)
        return out

    def total_size(self) -> int:
        total = 0
        for path in self.files():
            try:
                total += self.fs.stat(path).st_size
            except OSError:
                continue
        return total

    def free_space(self) -> int:
        """Free bytes on the target volume (creates the target directory)."""
        return self._free_space_at(self.target)

    def free_space_backup(self) -> int:
        if self.backup_dir is None:
            raise BackupNotSet()
        return self._free_space_at(self.backup_dir)

    def _free_space_at(self, path: Path) -> int:
        try:
            self.fs.makedirs(path)
            return self.fs.free_space(path)
        except OSError as e:
            raise IngestIOError(path, e) from e

    def _same_disk(self) -> bool:
        try:
            return self.fs.same_volume(self.target, self.backup_dir)
        except OSError as e:
            raise IngestIOError(self.backup_dir, e) from e

    def needs(self) -> Needs:
        total = self.total_size()
        free = self.free_space()
        if self.backup_dir is None:
            return needs_from(total, free)
        return needs_from(total, free, self.free_space_backup(), self._same_disk())

    def fits_with(self, extra: int) -> bool:
        n = self.needs()
        if n.backup is None:
            return fits_on(n.total, n.free, extra)
        return fits_on(n.total, n.free, extra, n.backup.free, n.backup.same_disk)

    def fits(self) -> bool:
        return self.fits_with(0)

    # ---------- ingest ----------

    def ingest(self) -> List[dict]:
        """Primary pass, then the backup pass if one is configured. Returns per-pass stats."""
        passes = [self._run_pass("primary")]
        backup = self.backup()
        if backup is not None:
            passes.append(backup)
        return passes

    def backup(self) -> Optional[dict]:
        """Re-run the whole pass against the backup directory (once; no-op without one)."""
        if self.backup_dir is None:
            return None
        self.target = self.backup_dir
        self.backup_dir = None
        return self._run_pass("backup")

    def _run_pass(self, label: str) -> dict:
        self._begin_pass(label)
        ctx = self._ctx
        self._check_cancelled()
        self._raise_if_short(self.needs())

        ctx.info("Started %s pass -> %s", label, self.target)
        rename = self._pass_rename()
        for source in self._sorted_sources():
            if not self.fs.exists(source):
                ctx.warning("SKIP %s: path not found", source)
                continue
            for entry in self.fs.walk(source, self.depth, self._prune):
                if not entry.is_dir:
                    self._map_entry(entry.path, source, rename)
        self._drain(rename)

        s = self._stats
        ctx.info("Finished %s pass: scanned=%d matched=%d copied=%d sidecars=%d drained=%d failed=%d",
                 label, s["scanned"], s["matched"], s["copied"], s["sidecars"], s["drained"], s["failed"])
        return s

    def _map_entry(self, path: Path, source: Path, rename: Optional[Rename]) -> None:
        self.progress.advance()
        self._stats["scanned"] += 1
        self._heartbeat(self._stats["scanned"])
        try:
            if not self.filter.matches(path, self.fs.stat(path)):
                return
            self._stats["matched"] += 1
            if self.structure.is_retained():
                self._ingest_retained(source, path)
            elif self.structure.is_renamed():
                if self._pairing() and is_jpeg(path) and self._has_raw_mate(path):
                    # the RAW brings this JPEG along (or the drain copies it)
                    paired = self._sidecars.sighted(self.fs.resolve(path))
                    self._ctx.debug("PAIRED %s (%s)", path, "done" if paired else "awaiting raw")
                    return
                self._ingest_renamed(path, rename)
            else:
                self._ingest_preserved(path)
        except Cancelled:
            raise
        except (OSError, IngestError) as e:
            self._skip(path, e)

    def _siblings(self, path: Path) -> List[Path]:
        index = self._stem_indexes.get(path.parent)
        if index is None:
            index = self._stem_indexes[path.parent] = self.fs.stem_index(path.parent)
        return self._mates(path, index)

    def _has_raw_mate(self, jpeg: Path) -> bool:
        for sibling in self._siblings(jpeg):
            if is_jpeg(sibling):
                continue
            try:
                if self.filter.matches(sibling, self.fs.stat(sibling)):
                    return True
            except OSError:
                continue
        return False

    def _makedirs(self, path: Path) -> None:
        self._check_cancelled(path)
        try:
            self.fs.makedirs(path)
        except OSError as e:
            raise IngestIOError(path, e) from e

    def _target_root(self) -> Path:
        return self.fs.resolve(self.target)

    def _ingest_retained(self, source: Path, path: Path) -> None:
        target = self._retain_target(source, path)
        self._makedirs(target.parent)
        self.ingest_copy(path, target)

    def _ingest_renamed(self, path: Path, rename: Rename) -> None:
        filename = self._renamed_filename(path, rename)
        self.ingest_copy(path, self._target_root() / filename)
        rename.next(path)

    def _ingest_preserved(self, path: Path) -> None:
        self.ingest_copy(path, self._target_root() / self._preserved_filename(path))

    def _drain(self, rename: Optional[Rename]) -> None:
        owed = self._sidecars.drain()
        if not owed:
            return
        copy_xmp, copy_jpg = self.copy_xmp, self.copy_jpg
        self.copy_xmp = self.copy_jpg = False
        try:
            for jpeg in owed:
                try:
                    self._ingest_renamed(jpeg, rename)
                    self._stats["drained"] += 1
                except Cancelled:
                    raise
                except (OSError, IngestError) as e:
                    self._skip(jpeg, e)
        finally:
            self.copy_xmp, self.copy_jpg = copy_xmp, copy_jpg

    # ---------- copy primitive ----------

    def ingest_copy(self, input: Path, output: Path) -> Path:
        """
        Copy `input` to `output` (or the first free `output-N` sibling), bringing along
        its .xmp and, when pairing, its companion JPEG. Sidecar failures are ignored.
        Returns the path actually written.
        """
        input, output = Path(input), Path(output)
        self._check_cancelled(input)
        output = self.fs.unused_path(output)
        if self.copy_xmp:
            self._copy_xmp(input, output)
        if self._pairing():
            self._copy_companion_jpeg(input, output)

        self._check_cancelled(input)
        try:
            self.fs.copy(input, output)
        except OSError as e:
            raise IngestIOError(input, e) from e
        self.progress.record_copy()
        self._stats["copied"] += 1
        file_logger(self._ctx, input).debug("COPIED %s -> %s", input, output)
        return output

    def _copy_xmp(self, input: Path, output: Path) -> None:
        for suffix in (".xmp", ".XMP"):
            xmp = input.with_suffix(suffix)
            if not self.fs.exists(xmp):
                continue
            self._check_cancelled(xmp)
            try:
                self.fs.copy(xmp, self.fs.unused_path(output.with_suffix(".xmp")))
                self._stats["sidecars"] += 1
            except OSError as e:
                self._ctx.debug("XMP copy failed for %s: %s", input, e)
            return

    def _copy_companion_jpeg(self, input: Path, output: Path) -> None:
        try:
            jpeg = self.fs.resolve(pick_jpeg(input, self._siblings(input)))
        except (IngestError, OSError):
            return
        if self._sidecars.is_delivered(jpeg):
            # another RAW with this stem already brought it along
            return
        self._check_cancelled(jpeg)
        try:
            self.fs.copy(jpeg, self.fs.unused_path(output.with_suffix(".jpg")))
        except OSError as e:
            # untouched tracker: the JPEG still gets its own copy later
            self._ctx.debug("JPEG copy failed for %s: %s", jpeg, e)
            return
        self._stats["sidecars"] += 1
        self._sidecars.delivered(jpeg)
