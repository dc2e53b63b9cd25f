# photoingest/core/config.py
# Loads ingest settings from a TOML file (defaults + overrides).
# - Reads PHOTOINGEST_CONFIG or searches CWD and its parents for photoingest.toml
# - Normalizes extension lists (lowercase, ensure leading dot)
# - Nothing is created or resolved at import time; call load_settings()

from __future__ import annotations
from pathlib import Path
import os
from typing import List, Optional
import tomli as tomllib  # py3.11+: tomllib in stdlib; using tomli for compatibility

from photoingest.services.filter import MAX_SIZE, Filter, normalize_extensions
from photoingest.services.rename import Rename
from photoingest.services.structure import Layout, Structure

CONFIG_ENV = "PHOTOINGEST_CONFIG"
CONFIG_NAME = "photoingest.toml"


# -------------------- Defaults (used if TOML omits keys) --------------------
_DEFAULTS = {
    "paths": {
        "target": "",
        "backup": "",
        "sources": [],
        "logs_dir": "",            # empty => console logging only
    },
    "filter": {
        "preset": "images",        # images | none
        "extensions": [],          # added to the preset; [] with preset=none => everything
        "min_size": 0,
        "max_size": MAX_SIZE,
        "ignore_hidden": True,
    },
    "ingest": {
        "structure": "retain",     # retain | rename | preserve
        "copy_xmp": True,
        "copy_jpg": True,
        "depth": -1,               # -1 = unlimited
        "heartbeat": 500,
        "dry_run_default": True,
    },
    "rename": {
        "name": "",
        "position": "prefix",      # prefix | suffix
        "sequence": 0,
        "zeroes": 0,
    },
}


# -------------------- Read + merge TOML --------------------

def _find_config_path() -> Path | None:
    """Find photoingest.toml without user input.
    Priority:
      1) PHOTOINGEST_CONFIG
      2) ./photoingest.toml (CWD)
      3) ascend parents from CWD looking for photoingest.toml
    """
    cfg_env = os.getenv(CONFIG_ENV)
    if cfg_env:
        p = Path(cfg_env).expanduser()
        if p.exists():
            return p

    cur = Path.cwd()
    while True:
        candidate = cur / CONFIG_NAME
        if candidate.exists():
            return candidate
        if cur.parent == cur:
            break  # reached filesystem root
        cur = cur.parent

    return None


def _load_config_toml(path: Optional[Path] = None) -> dict:
    """Load TOML from `path` (or the best match) or return {} if not found."""
    path = Path(path).expanduser() if path else _find_config_path()
    if path and path.exists():
        with path.open("rb") as f:
            return tomllib.load(f)
    return {}


def _merged(cfg: dict, section: str) -> dict:
    return {**_DEFAULTS[section], **(cfg.get(section) or {})}


def _opt_path(value) -> Optional[Path]:
    value = str(value or "").strip()
    return Path(value).expanduser() if value else None


# -------------------- Settings --------------------
class Settings:
    """
    Lightweight container for ingest settings.
    CLI flags override these; to_builder() turns them into an IngestorBuilder.
    """
    def __init__(self, cfg: Optional[dict] = None, source: Optional[Path] = None) -> None:
        cfg = cfg or {}
        self.source = source
        paths = _merged(cfg, "paths")
        flt = _merged(cfg, "filter")
        ing = _merged(cfg, "ingest")
        ren = _merged(cfg, "rename")

        # paths
        self.target: Optional[Path]  = _opt_path(paths.get("target"))
        self.backup: Optional[Path]  = _opt_path(paths.get("backup"))
        self.sources: List[Path]     = [Path(s).expanduser() for s in (paths.get("sources") or []) if s]
        self.logs_dir: Optional[Path] = _opt_path(paths.get("logs_dir"))

        # filter
        preset = str(flt.get("preset", "images")).strip().lower()
        if preset not in ("images", "none"):
            raise ValueError(f"[filter].preset must be 'images' or 'none', got {preset!r}")
        self.preset: str              = preset
        self.extensions: set          = normalize_extensions(flt.get("extensions") or [])
        self.min_size: int            = int(flt.get("min_size", 0))
        self.max_size: int            = int(flt.get("max_size", MAX_SIZE))
        self.ignore_hidden: bool      = bool(flt.get("ignore_hidden", True))

        # ingest
        self.structure: Layout        = Layout(str(ing.get("structure", "retain")).strip().lower())
        self.copy_xmp: bool           = bool(ing.get("copy_xmp", True))
        self.copy_jpg: bool           = bool(ing.get("copy_jpg", True))
        depth = int(ing.get("depth", -1))
        self.depth: Optional[int]     = depth if depth >= 0 else None
        self.heartbeat: int           = int(ing.get("heartbeat", 500))
        self.dry_run_default: bool    = bool(ing.get("dry_run_default", True))

        # rename
        self.rename = Rename(
            name=str(ren.get("name") or "").strip() or None,
            position=str(ren.get("position", "prefix")).strip().lower(),
            sequence=int(ren.get("sequence", 0)),
            zeroes=int(ren.get("zeroes", 0)),
        )

    def to_filter(self) -> Filter:
        exts = set(self.extensions)
        if self.preset == "images":
            exts |= set(Filter.images().extensions)
        return Filter(
            extensions=exts,
            min_size=self.min_size,
            max_size=self.max_size,
            ignore_hidden=self.ignore_hidden,
        )

    def to_structure(self) -> Structure:
        if self.structure is Layout.RENAME:
            return Structure.renamed(self.rename.copy())
        if self.structure is Layout.PRESERVE:
            return Structure.preserve()
        return Structure.retain()

    def to_builder(self):
        """IngestorBuilder pre-filled from these settings (missing fields stay unset)."""
        from photoingest.services.engine import IngestorBuilder

        b = (IngestorBuilder()
             .with_structure(self.to_structure())
             .with_filter(self.to_filter())
             .copy_xmp(self.copy_xmp)
             .copy_jpg(self.copy_jpg)
             .with_depth(self.depth)
             .with_heartbeat(self.heartbeat))
        if self.target:
            b.with_target(self.target)
        if self.backup:
            b.with_backup(self.backup)
        if self.sources:
            b.with_sources(self.sources)
        return b

    def __repr__(self) -> str:
        return (
            f"Settings(source={self.source}, target={self.target}, backup={self.backup}, "
            f"sources={[str(s) for s in self.sources]}, structure={self.structure.value}, "
            f"preset={self.preset}, extensions={sorted(self.extensions)}, "
            f"min_size={self.min_size}, max_size={self.max_size}, ignore_hidden={self.ignore_hidden}, "
            f"copy_xmp={self.copy_xmp}, copy_jpg={self.copy_jpg}, depth={self.depth}, "
            f"heartbeat={self.heartbeat}, rename={self.rename})"
        )


def load_settings(path: Optional[Path] = None) -> Settings:
    """Merge photoingest.toml (explicit path, env var, or discovered) with defaults."""
    found = Path(path).expanduser() if path else _find_config_path()
    return Settings(_load_config_toml(found), source=found if found and found.exists() else None)
