# photoingest/services/rename.py
# Sequential renaming: "{seq:0N}-{name}" (prefix) or "{name}-{seq:0N}" (suffix).

from __future__ import annotations

import copy
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from photoingest.core.errors import MissingComponent


class Position(str, Enum):
    PREFIX = "prefix"
    SUFFIX = "suffix"


@dataclass
class Rename:
    name: Optional[str] = None
    position: Position = Position.PREFIX
    sequence: int = 0
    zeroes: int = 0

    def __post_init__(self):
        self.position = Position(self.position)
        if not 0 <= self.zeroes <= 255:
            raise ValueError(f"zeroes must be 0..255, got {self.zeroes}")

    def file_stem(self, path: Path) -> str:
        """Target stem for `path` at the current sequence number (no side effects)."""
        name = self.name
        if not name:
            name = Path(path).stem
            if not name:
                raise MissingComponent(path, "stem")
        seq = str(self.sequence).zfill(self.zeroes)
        if self.position is Position.SUFFIX:
            return f"{name}-{seq}"
        return f"{seq}-{name}"

    def next(self, path: Path) -> str:
        """Return the stem for `path` and advance the sequence; unchanged on failure."""
        stem = self.file_stem(path)
        self.sequence += 1
        return stem

    def copy(self) -> "Rename":
        return copy.copy(self)
