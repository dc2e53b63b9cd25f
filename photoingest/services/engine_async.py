# photoingest/services/engine_async.py
# Cooperative personality of the ingest engine. Same passes, same decisions as
# Ingestor; every filesystem call is awaited on the AsyncLocalFileSystem worker.

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from photoingest.core.errors import BackupNotSet, Cancelled, IngestError, IngestIOError
from photoingest.core.logs import file_logger
from photoingest.schemas.ingest import Needs
from photoingest.services.engine import BaseIngestor
from photoingest.services.filter import is_jpeg
from photoingest.services.rename import Rename
from photoingest.services.space import fits_on, needs_from
from photoingest.services.structure import pick_jpeg


class AsyncIngestor(BaseIngestor):
    """Awaitable ingest engine; build with IngestorBuilder.build_async()."""

    # ---------- queries ----------

    async def files(self) -> List[Path]:
        out: List[Path] = []
        for source in self._sorted_sources():
            async for entry in self.fs.walk(source, self.depth, self._prune):
                if entry.is_dir:
                    continue
                try:
                    if self.filter.matches(entry.path, await self.fs.stat(entry.path)):
                        out.append(entry.path)
                except OSError:
                    continue
        return out

    async def folders(self) -> List[Path]:
        out: List[Path] = []
        for source in self._sorted_sources():
            async for entry in self.fs.walk(source, self.depth, self._prune):
                if entry.is_dir:
                    out.append(entry.path)
        return out

    async def total_size(self) -> int:
        total = 0
        for path in await self.files():
            try:
                total += (await self.fs.stat(path)).st_size
            except OSError:
                continue
        return total

    async def free_space(self) -> int:
        return await self._free_space_at(self.target)

    async def free_space_backup(self) -> int:
        if self.backup_dir is None:
            raise BackupNotSet()
        return await self._free_space_at(self.backup_dir)

    async def _free_space_at(self, path: Path) -> int:
        try:
            await self.fs.makedirs(path)
            return await self.fs.free_space(path)
        except OSError as e:
            raise IngestIOError(path, e) from e

    async def _same_disk(self) -> bool:
        try:
            return await self.fs.same_volume(self.target, self.backup_dir)
        except OSError as e:
            raise IngestIOError(self.backup_dir, e) from e

    async def needs(self) -> Needs:
        total = await self.total_size()
        free = await self.free_space()
        if self.backup_dir is None:
            return needs_from(total, free)
        return needs_from(total, free, await self.free_space_backup(), await self._same_disk())

    async def fits_with(self, extra: int) -> bool:
        n = await self.needs()
        if n.backup is None:
            return fits_on(n.total, n.free, extra)
        return fits_on(n.total, n.free, extra, n.backup.free, n.backup.same_disk)

    async def fits(self) -> bool:
        return await self.fits_with(0)

    # ---------- ingest ----------

    async def ingest(self) -> List[dict]:
        passes = [await self._run_pass("primary")]
        backup = await self.backup()
        if backup is not None:
            passes.append(backup)
        return passes

    async def backup(self) -> Optional[dict]:
        if self.backup_dir is None:
            return None
        self.target = self.backup_dir
        self.backup_dir = None
        return await self._run_pass("backup")

    async def _run_pass(self, label: str) -> dict:
        self._begin_pass(label)
        ctx = self._ctx
        self._check_cancelled()
        self._raise_if_short(await self.needs())

        ctx.info("Started %s pass -> %s", label, self.target)
        rename = self._pass_rename()
        for source in self._sorted_sources():
            if not await self.fs.exists(source):
                ctx.warning("SKIP %s: path not found", source)
                continue
            async for entry in self.fs.walk(source, self.depth, self._prune):
                if not entry.is_dir:
                    await self._map_entry(entry.path, source, rename)
        await self._drain(rename)

        s = self._stats
        ctx.info("Finished %s pass: scanned=%d matched=%d copied=%d sidecars=%d drained=%d failed=%d",
                 label, s["scanned"], s["matched"], s["copied"], s["sidecars"], s["drained"], s["failed"])
        return s

    async def _map_entry(self, path: Path, source: Path, rename: Optional[Rename]) -> None:
        self.progress.advance()
        self._stats["scanned"] += 1
        self._heartbeat(self._stats["scanned"])
        try:
            if not self.filter.matches(path, await self.fs.stat(path)):
                return
            self._stats["matched"] += 1
            if self.structure.is_retained():
                await self._ingest_retained(source, path)
            elif self.structure.is_renamed():
                if self._pairing() and is_jpeg(path) and await self._has_raw_mate(path):
                    paired = self._sidecars.sighted(await self.fs.resolve(path))
                    self._ctx.debug("PAIRED %s (%s)", path, "done" if paired else "awaiting raw")
                    return
                await self._ingest_renamed(path, rename)
            else:
                await self._ingest_preserved(path)
        except Cancelled:
            raise
        except (OSError, IngestError) as e:
            self._skip(path, e)

    async def _siblings(self, path: Path) -> List[Path]:
        index = self._stem_indexes.get(path.parent)
        if index is None:
            index = self._stem_indexes[path.parent] = await self.fs.stem_index(path.parent)
        return self._mates(path, index)

    async def _has_raw_mate(self, jpeg: Path) -> bool:
        for sibling in await self._siblings(jpeg):
            if is_jpeg(sibling):
                continue
            try:
                if self.filter.matches(sibling, await self.fs.stat(sibling)):
                    return True
            except OSError:
                continue
        return False

    async def _makedirs(self, path: Path) -> None:
        self._check_cancelled(path)
        try:
            await self.fs.makedirs(path)
        except OSError as e:
            raise IngestIOError(path, e) from e

    async def _ingest_retained(self, source: Path, path: Path) -> None:
        target = self._retain_target(source, path)
        await self._makedirs(target.parent)
        await self.ingest_copy(path, target)

    async def _ingest_renamed(self, path: Path, rename: Rename) -> None:
        filename = self._renamed_filename(path, rename)
        await self.ingest_copy(path, (await self.fs.resolve(self.target)) / filename)
        rename.next(path)

    async def _ingest_preserved(self, path: Path) -> None:
        target = await self.fs.resolve(self.target)
        await self.ingest_copy(path, target / self._preserved_filename(path))

    async def _drain(self, rename: Optional[Rename]) -> None:
        owed = self._sidecars.drain()
        if not owed:
            return
        copy_xmp, copy_jpg = self.copy_xmp, self.copy_jpg
        self.copy_xmp = self.copy_jpg = False
        try:
            for jpeg in owed:
                try:
                    await self._ingest_renamed(jpeg, rename)
                    self._stats["drained"] += 1
                except Cancelled:
                    raise
                except (OSError, IngestError) as e:
                    self._skip(jpeg, e)
        finally:
            self.copy_xmp, self.copy_jpg = copy_xmp, copy_jpg

    # ---------- copy primitive ----------

    async def ingest_copy(self, input: Path, output: Path) -> Path:
        input, output = Path(input), Path(output)
        self._check_cancelled(input)
        output = await self.fs.unused_path(output)
        if self.copy_xmp:
            await self._copy_xmp(input, output)
        if self._pairing():
            await self._copy_companion_jpeg(input, output)

        self._check_cancelled(input)
        try:
            await self.fs.copy(input, output)
        except OSError as e:
            raise IngestIOError(input, e) from e
        self.progress.record_copy()
        self._stats["copied"] += 1
        file_logger(self._ctx, input).debug("COPIED %s -> %s", input, output)
        return output

    async def _copy_xmp(self, input: Path, output: Path) -> None:
        for suffix in (".xmp", ".XMP"):
            xmp = input.with_suffix(suffix)
            if not await self.fs.exists(xmp):
                continue
            self._check_cancelled(xmp)
            try:
                await self.fs.copy(xmp, await self.fs.unused_path(output.with_suffix(".xmp")))
                self._stats["sidecars"] += 1
            except OSError as e:
                self._ctx.debug("XMP copy failed for %s: %s", input, e)
            return

    async def _copy_companion_jpeg(self, input: Path, output: Path) -> None:
        try:
            jpeg = await self.fs.resolve(pick_jpeg(input, await self._siblings(input)))
        except (IngestError, OSError):
            return
        if self._sidecars.is_delivered(jpeg):
            return
        self._check_cancelled(jpeg)
        try:
            await self.fs.copy(jpeg, await self.fs.unused_path(output.with_suffix(".jpg")))
        except OSError as e:
            self._ctx.debug("JPEG copy failed for %s: %s", jpeg, e)
            return
        self._stats["sidecars"] += 1
        self._sidecars.delivered(jpeg)

    def close(self) -> None:
        if hasattr(self.fs, "close"):
            self.fs.close()
