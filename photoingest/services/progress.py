# photoingest/services/progress.py
# The only ingest state meant to be read from another thread or task while a run is live.

from __future__ import annotations

import threading
from typing import Dict


class Progress:
    """
    Monotonic counters shared between the ingest run and whoever is polling it.
    - scanned: file entries reached by the walk (counted before processing)
    - copied:  primary files successfully copied
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._scanned = 0
        self._copied = 0

    def advance(self) -> int:
        with self._lock:
            self._scanned += 1
            return self._scanned

    def record_copy(self) -> int:
        with self._lock:
            self._copied += 1
            return self._copied

    @property
    def value(self) -> int:
        return self.scanned

    @property
    def scanned(self) -> int:
        with self._lock:
            return self._scanned

    @property
    def copied(self) -> int:
        with self._lock:
            return self._copied

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return {"scanned": self._scanned, "copied": self._copied}

    def __repr__(self) -> str:
        s = self.snapshot()
        return f"Progress(scanned={s['scanned']}, copied={s['copied']})"
