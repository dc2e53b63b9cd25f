# photoingest/services/jobs.py
# In-process ingest jobs for the HTTP layer.
# - One job at a time (single-run guard, like the old sync lock)
# - Each job is an asyncio task driving an AsyncIngestor on the server's loop
# - Status is read from the shared Progress; cancel() flips the shared Event

from __future__ import annotations

import asyncio
import threading
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from photoingest.core.errors import Cancelled, IngestError
from photoingest.core.logs import LOGGER
from photoingest.schemas.ingest import JobStatus
from photoingest.services.progress import Progress


class JobBusy(Exception):
    """Another ingest job is still running."""


@dataclass
class Job:
    id: str
    progress: Progress
    cancel_event: threading.Event
    state: str = "running"
    error: Optional[str] = None
    passes: List[dict] = field(default_factory=list)
    task: Optional[asyncio.Task] = None

    def status(self) -> JobStatus:
        return JobStatus(
            id=self.id,
            state=self.state,
            scanned=self.progress.scanned,
            copied=self.progress.copied,
            error=self.error,
            passes=self.passes,
        )


# finished jobs kept for status polling; older ones are dropped
KEEP_FINISHED = 50


class JobRegistry:
    def __init__(self, keep: int = KEEP_FINISHED):
        self.keep = keep
        self._jobs: Dict[str, Job] = {}
        self._current: Optional[Job] = None

    def busy(self) -> bool:
        return self._current is not None and self._current.state == "running"

    def get(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def start(self, builder) -> Job:
        """
        Build an AsyncIngestor from `builder` (progress/cancel injected here) and run it
        as a background task. Raises JobBusy, or IngestError/ValueError on bad options.
        """
        if self.busy():
            raise JobBusy(self._current.id)

        job = Job(id=str(uuid.uuid4()), progress=Progress(), cancel_event=threading.Event())
        ingestor = builder.with_progress(job.progress).with_cancel(job.cancel_event).build_async()
        self._evict()
        self._jobs[job.id] = job
        self._current = job
        job.task = asyncio.get_running_loop().create_task(self._run(job, ingestor))
        return job

    def _evict(self) -> None:
        """Drop the oldest finished jobs so at most `keep` remain."""
        finished = [j.id for j in self._jobs.values() if j.state != "running"]
        for job_id in finished[:max(0, len(finished) - self.keep)]:
            del self._jobs[job_id]

    async def _run(self, job: Job, ingestor) -> None:
        LOGGER.info("Job %s started", job.id)
        try:
            job.passes = await ingestor.ingest()
            job.state = "done"
        except Cancelled:
            job.state = "cancelled"
        except IngestError as e:
            job.state = "failed"
            job.error = str(e)
        except Exception as e:
            LOGGER.exception("Job %s crashed", job.id)
            job.state = "failed"
            job.error = f"{type(e).__name__}: {e}"
        finally:
            ingestor.close()
        LOGGER.info("Job %s %s (scanned=%d copied=%d)",
                    job.id, job.state, job.progress.scanned, job.progress.copied)

    def cancel(self, job_id: str) -> Optional[Job]:
        job = self._jobs.get(job_id)
        if job is not None and job.state == "running":
            job.cancel_event.set()
        return job


registry = JobRegistry()
