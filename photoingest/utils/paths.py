# photoingest/utils/paths.py
from pathlib import Path
from typing import Callable

from photoingest.core.errors import PathPrefixMismatch


def safe_rel_under(base: Path, target: Path):
    """
    Return target's path relative to base if target is inside base, else None.
    Both sides are compared lexically (no symlink resolution).
    """
    try:
        return Path(target).relative_to(Path(base))
    except ValueError:
        return None


def relative_to_root(root: Path, path: Path) -> Path:
    """Like safe_rel_under, but a path outside its root is an error."""
    rel = safe_rel_under(root, path)
    if rel is None:
        raise PathPrefixMismatch(path, root)
    return rel


def avoid_collision(path: Path, exists: Callable[[Path], bool] = Path.exists) -> Path:
    """
    Choose a destination path that doesn't overwrite existing files.
    name.ext -> name-1.ext -> name-2.ext ...
    """
    path = Path(path)
    if not exists(path):
        return path
    stem, ext = path.stem, path.suffix
    i = 1
    while True:
        candidate = path.with_name(f"{stem}-{i}{ext}")
        if not exists(candidate):
            return candidate
        i += 1
