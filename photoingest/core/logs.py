# photoingest/core/logs.py
# Logger setup shared by the CLI and the API.
# - one named logger ("photoingest"); modules log through it or a batch adapter
# - console handler is human-readable, file handler rotates at midnight
# - every record carries source / ingest_id / file_token (defaulted by EnsureContext)

from __future__ import annotations

import hashlib
import json
import logging
import logging.handlers
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

LOGGER = logging.getLogger("photoingest")


def batch_logger(ingest_id: str, source: str) -> logging.LoggerAdapter:
    """Attach ingest_id + source (pass label) to every log record in this pass."""
    return logging.LoggerAdapter(LOGGER, {"ingest_id": ingest_id, "source": source})


def file_token_for(p: Path) -> str:
    """Short stable token for a path, used to correlate log lines for one file."""
    try:
        return hashlib.sha1(str(p).encode("utf-8", "ignore")).hexdigest()[:8]
    except Exception:
        return "-"


def file_logger(batch: logging.LoggerAdapter, p: Path) -> logging.LoggerAdapter:
    """Batch adapter narrowed to one file (adds its file_token)."""
    return logging.LoggerAdapter(LOGGER, {**batch.extra, "file_token": file_token_for(p)})


class EnsureContext(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "source"):    record.source = "-"
        if not hasattr(record, "ingest_id"): record.ingest_id = "-"
        # file_token falls back to the batch id unless the log call overrides it
        if not hasattr(record, "file_token"): record.file_token = str(record.ingest_id)[:8]
        return True


class MaxLevelFilter(logging.Filter):
    """Allow records up to and including `levelno` (drop anything higher)."""
    def __init__(self, levelno: int): super().__init__(); self.levelno = levelno
    def filter(self, record: logging.LogRecord) -> bool: return record.levelno <= self.levelno


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "msg": record.getMessage(),
            "name": record.name,
            "source": getattr(record, "source", None),
            "ingest_id": getattr(record, "ingest_id", None),
            "file_token": getattr(record, "file_token", None),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def setup_logging(logs_dir: Optional[Path], verbose: int = 0, quiet: bool = False,
                  log_level: Optional[str] = None, json_logs: bool = False) -> logging.Logger:
    """
    Console/File matrix:
      - -q:   console = silent;        file = INFO only (drop WARNING+)
      - none: console = INFO only;     file = INFO+ (INFO & WARNING)
      - -v:   console = INFO+;         file = INFO+
      - -vv:  console = DEBUG;         file = DEBUG
      - --log-level=X: both console & file use X (no special filters)
    No file handler is attached when logs_dir is None.
    """
    logger = LOGGER
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()

    if log_level:
        console_level = getattr(logging, log_level.upper())
        file_level    = console_level
        console_max   = None
        file_max      = None
    elif quiet:
        console_level = logging.CRITICAL   # we never emit CRITICAL
        file_level    = logging.INFO
        console_max   = None
        file_max      = MaxLevelFilter(logging.INFO)
    elif verbose >= 2:
        console_level = logging.DEBUG
        file_level    = logging.DEBUG
        console_max   = None
        file_max      = None
    elif verbose >= 1:
        console_level = logging.INFO
        file_level    = logging.INFO
        console_max   = None
        file_max      = None
    else:
        # default: console shows ONLY INFO (skipped-file warnings go to the file)
        console_level = logging.INFO
        file_level    = logging.INFO
        console_max   = MaxLevelFilter(logging.INFO)
        file_max      = None

    ch = logging.StreamHandler()
    ch.setLevel(console_level)
    ch.addFilter(EnsureContext())
    if console_max: ch.addFilter(console_max)
    ch.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(ch)

    if logs_dir is not None:
        logs_dir = Path(logs_dir)
        logs_dir.mkdir(parents=True, exist_ok=True)
        ts = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        log_path = logs_dir / f"photoingest-{ts}.log"

        fh = logging.handlers.TimedRotatingFileHandler(
            log_path, when="midnight", backupCount=14, encoding="utf-8"
        )
        fh.setLevel(file_level)
        fh.addFilter(EnsureContext())
        if file_max: fh.addFilter(file_max)
        if json_logs:
            fh.setFormatter(JsonFormatter())
        else:
            fh.setFormatter(logging.Formatter(
                "%(asctime)sZ [%(levelname)s] [%(source)s:%(file_token)s] %(message)s",
                datefmt="%Y-%m-%dT%H:%M:%S"
            ))
        logger.addHandler(fh)
        logger.debug(f"Log file: {log_path}")

    return logger
