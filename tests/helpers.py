# Shared helpers for the ingest tests (imported by conftest and test modules).
from pathlib import Path

from photoingest.services.executors import LocalFileSystem


class FakeVolumes(LocalFileSystem):
    """Real files, made-up free space: {directory: free_bytes}. Same volume if `same`."""

    def __init__(self, free: dict, same: bool = False):
        self.free = {Path(k): v for k, v in free.items()}
        self.same = same

    def free_space(self, path):
        return self.free[Path(path)]

    def same_volume(self, a, b):
        return self.same


class FlakyCopies(LocalFileSystem):
    """Copy fails for sources whose name is in `broken`."""

    def __init__(self, broken=()):
        self.broken = set(broken)

    def copy(self, src, dst):
        if Path(src).name in self.broken:
            raise PermissionError(13, "Permission denied", str(src))
        return super().copy(src, dst)


def write(p: Path, data: bytes = b"data") -> Path:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_bytes(data)
    return p


def names(d: Path) -> set:
    return {str(p.relative_to(d)) for p in d.rglob("*") if p.is_file()}




class CountingListings(LocalFileSystem):
    """Counts directory listings."""

    def __init__(self):
        self.listings = 0

    def list_dir(self, path):
        self.listings += 1
        return super().list_dir(path)
