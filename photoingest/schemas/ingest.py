# photoingest/schemas/ingest.py
from pydantic import BaseModel, Field
from typing import Optional, List, Literal

from photoingest.services.filter import Filter, MAX_SIZE
from photoingest.services.rename import Position, Rename
from photoingest.services.structure import Structure

class BackupNeeds(BaseModel):
    free: int
    same_disk: bool

class Needs(BaseModel):
    total: int
    free: int
    backup: Optional[BackupNeeds] = None

class FilterSpec(BaseModel):
    extensions: List[str] = Field(default_factory=list)
    min_size: int = Field(0, ge=0)
    max_size: int = Field(MAX_SIZE, ge=0)
    ignore_hidden: bool = True

    def to_filter(self) -> Filter:
        return Filter(
            extensions=self.extensions,
            min_size=self.min_size,
            max_size=self.max_size,
            ignore_hidden=self.ignore_hidden,
        )

class RenameSpec(BaseModel):
    name: Optional[str] = None
    position: Position = Position.PREFIX
    sequence: int = 0
    zeroes: int = Field(0, ge=0, le=255)

    def to_rename(self) -> Rename:
        return Rename(name=self.name, position=self.position,
                      sequence=self.sequence, zeroes=self.zeroes)

class IngestRequest(BaseModel):
    structure: Literal["retain", "rename", "preserve"] = "retain"
    rename: Optional[RenameSpec] = None
    target: str
    backup: Optional[str] = None
    sources: List[str]
    filter: Optional[FilterSpec] = None   # None => images preset
    copy_xmp: bool = True
    copy_jpg: bool = True
    depth: Optional[int] = Field(None, ge=0)

    def to_structure(self) -> Structure:
        if self.structure == "rename":
            return Structure.renamed((self.rename or RenameSpec()).to_rename())
        if self.structure == "preserve":
            return Structure.preserve()
        return Structure.retain()

    def to_filter(self) -> Filter:
        return self.filter.to_filter() if self.filter else Filter.images()

class JobStatus(BaseModel):
    id: str
    state: Literal["running", "done", "failed", "cancelled"]
    scanned: int
    copied: int
    error: Optional[str] = None
    passes: List[dict] = Field(default_factory=list)
