# photoingest/services/executors.py
# Filesystem collaborators for the ingest engine.
# Both executors expose the same methods; LocalFileSystem blocks, AsyncLocalFileSystem
# returns awaitables that run the blocking call on one worker thread so the host
# event loop keeps turning. Copies are never fanned out.

from __future__ import annotations

import asyncio
import os
import shutil
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import AsyncIterator, Callable, Dict, Iterator, List, Optional

from photoingest.core.logs import LOGGER
from photoingest.utils.paths import avoid_collision

# prune(path, stat_or_None) -> True to skip a directory
Prune = Callable[[Path, Optional[os.stat_result]], bool]


def _entry_stat(entry: os.DirEntry) -> Optional[os.stat_result]:
    try:
        return entry.stat(follow_symlinks=False)
    except OSError:
        return None


@dataclass(frozen=True)
class WalkEntry:
    path: Path
    depth: int
    is_dir: bool


class LocalFileSystem:
    """Blocking filesystem calls (os / shutil)."""

    def list_dir(self, path: Path) -> List[os.DirEntry]:
        """Children of `path`, sorted by name for a deterministic walk."""
        with os.scandir(path) as it:
            return sorted(it, key=lambda e: e.name)

    def walk(self, root: Path, max_depth: Optional[int] = None,
             prune: Optional[Prune] = None) -> Iterator[WalkEntry]:
        """
        Depth-first walk yielding the root (depth 0), then directories and files.
        Directories for which `prune(path, st)` is true are neither yielded nor entered.
        Symlinked directories are not followed.
        """
        root = Path(root)
        yield WalkEntry(root, 0, True)
        yield from self._walk_dir(root, 1, max_depth, prune)

    def _walk_dir(self, directory: Path, depth: int, max_depth: Optional[int],
                  prune: Optional[Prune]) -> Iterator[WalkEntry]:
        if max_depth is not None and depth > max_depth:
            return
        try:
            entries = self.list_dir(directory)
        except OSError as e:
            LOGGER.warning("Cannot list %s: %s", directory, e)
            return
        for entry in entries:
            path = Path(entry.path)
            if entry.is_dir(follow_symlinks=False):
                if prune is not None and prune(path, _entry_stat(entry)):
                    continue
                yield WalkEntry(path, depth, True)
                yield from self._walk_dir(path, depth + 1, max_depth, prune)
            elif entry.is_file():
                yield WalkEntry(path, depth, False)

    def makedirs(self, path: Path) -> None:
        Path(path).mkdir(parents=True, exist_ok=True)

    def copy(self, src: Path, dst: Path) -> Path:
        return Path(shutil.copy2(src, dst))

    def exists(self, path: Path) -> bool:
        return Path(path).exists()

    def stat(self, path: Path) -> os.stat_result:
        return os.stat(path)

    def resolve(self, path: Path) -> Path:
        return Path(path).resolve()

    def free_space(self, path: Path) -> int:
        return shutil.disk_usage(path).free

    def same_volume(self, a: Path, b: Path) -> bool:
        return os.stat(a).st_dev == os.stat(b).st_dev

    def unused_path(self, path: Path) -> Path:
        return avoid_collision(path, self.exists)

    def stem_index(self, directory: Path) -> Dict[str, List[Path]]:
        """Files in `directory` grouped by stem, with names exactly as listed."""
        index: Dict[str, List[Path]] = {}
        for e in self.list_dir(directory):
            if e.is_file():
                p = Path(e.path)
                index.setdefault(p.stem, []).append(p)
        return index


class AsyncLocalFileSystem:
    """
    Cooperative wrapper: every call is awaited on a single worker thread.
    Pass `sync` to wrap a different blocking implementation.
    """

    def __init__(self, sync: Optional[LocalFileSystem] = None,
                 executor: Optional[ThreadPoolExecutor] = None):
        self.sync = sync or LocalFileSystem()
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="ingest_fs")

    async def _run(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, partial(fn, *args))

    async def list_dir(self, path: Path) -> List[os.DirEntry]:
        return await self._run(self.sync.list_dir, path)

    async def walk(self, root: Path, max_depth: Optional[int] = None,
                   prune: Optional[Prune] = None) -> AsyncIterator[WalkEntry]:
        root = Path(root)
        yield WalkEntry(root, 0, True)
        async for entry in self._walk_dir(root, 1, max_depth, prune):
            yield entry

    async def _walk_dir(self, directory: Path, depth: int, max_depth: Optional[int],
                        prune: Optional[Prune]) -> AsyncIterator[WalkEntry]:
        if max_depth is not None and depth > max_depth:
            return
        try:
            entries = await self.list_dir(directory)
        except OSError as e:
            LOGGER.warning("Cannot list %s: %s", directory, e)
            return
        for entry in entries:
            path = Path(entry.path)
            if entry.is_dir(follow_symlinks=False):
                if prune is not None and prune(path, _entry_stat(entry)):
                    continue
                yield WalkEntry(path, depth, True)
                async for child in self._walk_dir(path, depth + 1, max_depth, prune):
                    yield child
            elif entry.is_file():
                yield WalkEntry(path, depth, False)

    async def makedirs(self, path: Path) -> None:
        await self._run(self.sync.makedirs, path)

    async def copy(self, src: Path, dst: Path) -> Path:
        return await self._run(self.sync.copy, src, dst)

    async def exists(self, path: Path) -> bool:
        return await self._run(self.sync.exists, path)

    async def stat(self, path: Path) -> os.stat_result:
        return await self._run(self.sync.stat, path)

    async def resolve(self, path: Path) -> Path:
        return await self._run(self.sync.resolve, path)

    async def free_space(self, path: Path) -> int:
        return await self._run(self.sync.free_space, path)

    async def same_volume(self, a: Path, b: Path) -> bool:
        return await self._run(self.sync.same_volume, a, b)

    async def unused_path(self, path: Path) -> Path:
        return await self._run(self.sync.unused_path, path)

    async def stem_index(self, directory: Path) -> Dict[str, List[Path]]:
        return await self._run(self.sync.stem_index, directory)

    def close(self) -> None:
        self._executor.shutdown(wait=False)
