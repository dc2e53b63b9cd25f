# photoingest/services/structure.py
# Layout policies and RAW+JPEG sidecar pairing.

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

from photoingest.core.errors import JpegHasNoJpeg, MissingComponent, NoAccompanyingJpeg
from photoingest.services.filter import extension_of, is_jpeg
from photoingest.services.rename import Rename

# Preferred spelling when one stem has several JPEGs (a.jpg over a.JPG on case-sensitive volumes)
JPEG_SUFFIXES = (".jpg", ".jpeg", ".JPG", ".JPEG")


class Layout(str, Enum):
    RETAIN = "retain"       # mirror the path relative to its source root
    RENAME = "rename"       # sequentially renamed into the target root
    PRESERVE = "preserve"   # original filename only, flattened into the target root


@dataclass
class Structure:
    layout: Layout = Layout.RETAIN
    rename: Optional[Rename] = None

    def __post_init__(self):
        self.layout = Layout(self.layout)
        if self.layout is Layout.RENAME and self.rename is None:
            self.rename = Rename()

    @classmethod
    def retain(cls) -> "Structure":
        return cls(Layout.RETAIN)

    @classmethod
    def preserve(cls) -> "Structure":
        return cls(Layout.PRESERVE)

    @classmethod
    def renamed(cls, rename: Optional[Rename] = None) -> "Structure":
        return cls(Layout.RENAME, rename or Rename())

    def is_retained(self) -> bool:
        return self.layout is Layout.RETAIN

    def is_renamed(self) -> bool:
        return self.layout is Layout.RENAME

    def is_preserved(self) -> bool:
        return self.layout is Layout.PRESERVE


def pick_jpeg(path: Path, siblings: Iterable[Path]) -> Path:
    """
    Choose the JPEG that shares `path`'s stem from `siblings` (names as listed on disk).
    A JPEG can't have an accompanying JPEG.
    """
    path = Path(path)
    if not extension_of(path):
        raise MissingComponent(path, "extension")
    if is_jpeg(path):
        raise JpegHasNoJpeg(path)
    candidates = [Path(s) for s in siblings
                  if Path(s).stem == path.stem and is_jpeg(s) and Path(s).name != path.name]
    if not candidates:
        raise NoAccompanyingJpeg(path)
    rank = {suffix: i for i, suffix in enumerate(JPEG_SUFFIXES)}
    return min(candidates, key=lambda s: (rank.get(s.suffix, len(rank)), s.name))


def accompanying_jpeg(path: Path) -> Path:
    """
    Resolve the JPEG that shares `path`'s stem (a.cr2 -> a.jpg / a.jpeg).
    The name comes from the directory listing, so case-insensitive volumes
    report the spelling the walk sees (a.JPG stays a.JPG).
    """
    path = Path(path)
    parent = path.parent
    try:
        siblings = [parent / name for name in os.listdir(parent)]
    except OSError:
        siblings = []
    return pick_jpeg(path, (s for s in siblings if s.is_file())).resolve()


class SidecarTracker:
    """
    Pending RAW+JPEG pairs, keyed by the JPEG's resolved path.

    A key is pending while one half of a pair has been seen and the other hasn't.
    The value says whether the JPEG was already copied alongside a RAW (True),
    or is still owed a copy because the walk reached it first (False).
    Once the JPEG has been copied and walked past, the key is settled for the
    rest of the pass: further RAWs with the same stem (a.cr2 + a.dng) leave it alone.
    """

    def __init__(self):
        self._pending: Dict[Path, bool] = {}
        self._settled: Set[Path] = set()

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, jpeg: Path) -> bool:
        return Path(jpeg) in self._pending

    def state(self, jpeg: Path) -> Optional[bool]:
        return self._pending.get(Path(jpeg))

    def is_delivered(self, jpeg: Path) -> bool:
        """True if a RAW already copied this JPEG during the pass."""
        jpeg = Path(jpeg)
        return jpeg in self._settled or self._pending.get(jpeg) is True

    def sighted(self, jpeg: Path) -> bool:
        """
        The walk reached a paired JPEG. Its own copy is always skipped here:
        either a RAW already delivered it, or a RAW will (or the drain will).
        Returns True if this sighting completed the pair.
        """
        jpeg = Path(jpeg)
        if jpeg in self._settled:
            return True
        if self._pending.get(jpeg) is True:
            del self._pending[jpeg]
            self._settled.add(jpeg)
            return True
        self._pending[jpeg] = False
        return False

    def delivered(self, jpeg: Path) -> bool:
        """A RAW copied its JPEG alongside. Returns True if the pair is now complete."""
        jpeg = Path(jpeg)
        if jpeg in self._settled:
            return True
        state = self._pending.get(jpeg)
        if state is False:
            del self._pending[jpeg]
            self._settled.add(jpeg)
            return True
        self._pending[jpeg] = True
        return False

    def drain(self) -> List[Path]:
        """Empty the tracker; return the JPEGs still owed a copy, sorted."""
        owed = sorted(p for p, done in self._pending.items() if not done)
        self._pending.clear()
        self._settled.clear()
        return owed
