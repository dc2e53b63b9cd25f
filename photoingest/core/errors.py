# photoingest/core/errors.py
"""
Ingest error types.

All errors inherit from IngestError so callers can catch one base class.
Engine-level errors (InsufficientSpace, Cancelled, MissingField) abort a run;
per-file errors are logged and skipped by the engine.
"""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional


class IngestError(Exception):
    """Base exception for all ingest failures."""
    pass


class IngestIOError(IngestError):
    """A filesystem call failed; the original OSError is chained as __cause__."""

    def __init__(self, path: Path, error: OSError):
        self.path = Path(path)
        self.error = error
        super().__init__(f"{path}: {error.strerror or error}")


class PathPrefixMismatch(IngestError):
    """A file claimed to be under a source root is not."""

    def __init__(self, path: Path, root: Path):
        self.path = Path(path)
        self.root = Path(root)
        super().__init__(f"{path} is not under source root {root}")


class InsufficientSpace(IngestError):
    """Preflight found less free space than the ingest needs."""

    def __init__(self, target: Path, required: int, free: int):
        self.target = Path(target)
        self.required = required
        self.free = free
        super().__init__(
            f"Not enough space to ingest into {target}: need more than {required} bytes, {free} free"
        )


class Cancelled(IngestError):
    """The shared cancellation flag was observed."""

    def __init__(self, where: Optional[Path] = None):
        self.where = where
        super().__init__("Ingest cancelled" + (f" at {where}" if where else ""))


class MissingField(IngestError):
    """The builder is missing one or more required fields."""

    def __init__(self, fields: Iterable[str]):
        self.fields = sorted(fields)
        super().__init__(f"Missing required fields: {', '.join(self.fields)}")


class MissingComponent(IngestError):
    """A path has no extension / stem / filename where one is required."""

    def __init__(self, path: Path, component: str):
        self.path = Path(path)
        self.component = component
        super().__init__(f"File {component} not found: {path}")


class NoAccompanyingJpeg(IngestError):
    def __init__(self, path: Path):
        self.path = Path(path)
        super().__init__(f"No accompanying jpeg found for {path}")


class JpegHasNoJpeg(IngestError):
    def __init__(self, path: Path):
        self.path = Path(path)
        super().__init__(f"Jpeg file can't have accompanying jpeg: {path}")


class BackupNotSet(IngestError):
    def __init__(self):
        super().__init__("Backup directory not set")
