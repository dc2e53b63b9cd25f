# photoingest/services/filter.py
# Copy-candidate predicate.
# - extension sets are normalised like the config layer does: lowercase, leading dot
# - "" in `extensions` means "extensionless files"; an empty set means "any extension"
# - junk names/folders/extensions are static tables, never mutated at runtime

from __future__ import annotations

import os
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

MAX_SIZE = 2**64 - 1

RAW_EXTENSIONS = frozenset({
    ".nef", ".3fr", ".ari", ".arw", ".bay", ".crw", ".cr2", ".cr3", ".cap", ".dcs", ".dcr",
    ".dng", ".drf", ".eip", ".erf", ".fff", ".gpr", ".mdc", ".mef", ".mos", ".mrw", ".nrw",
    ".obm", ".orf", ".pef", ".ptx", ".pxn", ".r3d", ".raw", ".rwl", ".rw2", ".rwz", ".sr2",
    ".srf", ".srw", ".x3f", ".raf",
})
LOSSY_EXTENSIONS = frozenset({
    ".jpg", ".jpeg", ".png", ".heic", ".avif", ".heif", ".tiff", ".tif", ".hif",
})
JPEG_EXTENSIONS = frozenset({".jpg", ".jpeg"})

# Camera / OS droppings that are never copy candidates
JUNK_NAMES = frozenset({"indexervolumeguid", ".ds_store"})
JUNK_PREFIXES = ("._",)  # AppleDouble resource forks like ._IMG_1234.JPG
JUNK_FOLDERS = frozenset({
    "system volume information", "$recycle.bin",
    ".spotlight-v100", ".fseventsd", ".trashes", ".temporaryitems",
})
# sidecars (copied alongside their primary, never on their own), catalogs and installers
JUNK_EXTENSIONS = frozenset({
    ".xmp", ".thm",
    ".db", ".sqlite", ".lrcat", ".lrdata", ".ctg", ".ini", ".dat",
    ".exe", ".msi", ".dmg", ".pkg", ".bin",
})


def normalize_extensions(items: Iterable[str]) -> frozenset:
    """
    Normalize a list of extensions:
      - strip whitespace, lowercase
      - ensure a leading dot ('.jpg')
      - keep '' (or '.') as the extensionless marker
    """
    out: set[str] = set()
    for s in items:
        s = str(s or "").strip().lower()
        if s in ("", "."):
            out.add("")
            continue
        if not s.startswith("."):
            s = "." + s
        out.add(s)
    return frozenset(out)


def extension_of(path: Path) -> str:
    """Lowercased suffix with its dot, '' when the name has none."""
    return Path(path).suffix.lower()


def is_jpeg(path: Path) -> bool:
    return extension_of(path) in JPEG_EXTENSIONS


def is_hidden(path: Path, st: Optional[os.stat_result] = None) -> bool:
    """Leading-dot names, or the hidden attribute where the platform has one."""
    name = Path(path).name
    if name.startswith("."):
        return True
    attrs = getattr(st, "st_file_attributes", 0) if st is not None else 0
    return bool(attrs & stat.FILE_ATTRIBUTE_HIDDEN)


def is_junk(path: Path) -> bool:
    p = Path(path)
    stem = p.stem.lower()
    if stem in JUNK_NAMES:
        return True
    if any(p.name.startswith(pref) for pref in JUNK_PREFIXES):
        return True
    return any(part.lower() in JUNK_FOLDERS for part in p.parts)


@dataclass(frozen=True)
class Filter:
    extensions: frozenset = frozenset()
    min_size: int = 0
    max_size: int = MAX_SIZE
    ignore_hidden: bool = True

    def __post_init__(self):
        # accept any iterable of 'jpg' / '.JPG' and store the normalised form
        object.__setattr__(self, "extensions", normalize_extensions(self.extensions))

    @classmethod
    def images(cls) -> "Filter":
        return cls(extensions=RAW_EXTENSIONS | LOSSY_EXTENSIONS, ignore_hidden=True)

    def excludes(self, path: Path, st: Optional[os.stat_result] = None) -> bool:
        """Hidden / junk check alone; used to prune directories before descending."""
        if self.ignore_hidden and is_hidden(path, st):
            return True
        return is_junk(path)

    def in_bounds(self, size: int) -> bool:
        return self.min_size <= size <= self.max_size

    def matches(self, path: Path, st: Optional[os.stat_result] = None) -> bool:
        """True if `path` is a copy candidate. Raises OSError if it can't be stat'ed."""
        if st is None:
            st = os.stat(path)
        if self.excludes(path, st):
            return False

        size = st.st_size

        ext = extension_of(path)
        if ext:
            wanted = not self.extensions or ext in self.extensions
            return wanted and self.in_bounds(size) and ext not in JUNK_EXTENSIONS
        return (not self.extensions or "" in self.extensions) and self.in_bounds(size)
