# photoingest/services/space.py
# Space preflight arithmetic. The engines gather the numbers (walk + free-space
# queries); the decisions live here so sync and async agree.

from __future__ import annotations

from typing import Optional

from photoingest.schemas.ingest import BackupNeeds, Needs


def required_bytes(total: int, extra: int = 0, same_disk: bool = False) -> int:
    """Bytes the target volume must exceed. Target + backup on one volume draw from one pool."""
    return (total * 2 if same_disk else total) + extra


def fits_on(total: int, free: int, extra: int = 0,
            backup_free: Optional[int] = None, same_disk: bool = False) -> bool:
    """
    Strict comparison: free == required does not fit.
      - no backup:                 free > total + extra
      - backup on the same volume: free > total*2 + extra
      - backup elsewhere:          free > total + extra AND backup_free > total + extra
    """
    if backup_free is None:
        return free > required_bytes(total, extra)
    if same_disk:
        return free > required_bytes(total, extra, same_disk=True)
    need = required_bytes(total, extra)
    return free > need and backup_free > need


def needs_from(total: int, free: int, backup_free: Optional[int] = None,
               same_disk: Optional[bool] = None) -> Needs:
    backup = None
    if backup_free is not None:
        backup = BackupNeeds(free=backup_free, same_disk=bool(same_disk))
    return Needs(total=total, free=free, backup=backup)
