# photoingest/api/routes/ingest.py
# Ingest routes only. Keep routes thin; the engine and job registry do the work.

from __future__ import annotations

from fastapi import APIRouter, HTTPException

from photoingest.core.errors import IngestError
from photoingest.schemas.ingest import IngestRequest, JobStatus, Needs
from photoingest.services.engine import IngestorBuilder
from photoingest.services.jobs import JobBusy, registry

# Router mounted under /api in main.py (→ /api/ingest/...)
api_router = APIRouter(prefix="/ingest", tags=["ingest"])


def _builder_from(req: IngestRequest) -> IngestorBuilder:
    """Translate a request body into a builder; 400 on options the engine rejects."""
    try:
        b = (IngestorBuilder()
             .with_structure(req.to_structure())
             .with_filter(req.to_filter())
             .with_sources(req.sources)
             .copy_xmp(req.copy_xmp)
             .copy_jpg(req.copy_jpg)
             .with_depth(req.depth))
        if req.target:
            b.with_target(req.target)
        if req.backup:
            b.with_backup(req.backup)
    except (IngestError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return b


@api_router.post("/needs", response_model=Needs)
def api_ingest_needs(req: IngestRequest) -> Needs:
    """
    Space snapshot for a prospective ingest: total matching bytes and free space
    on the target (and backup) volume. Creates the target directory.
    """
    try:
        ingestor = _builder_from(req).build()
        return ingestor.needs()
    except IngestError as e:
        raise HTTPException(status_code=400, detail=str(e))


@api_router.post("/jobs", response_model=JobStatus)
async def api_ingest_start(req: IngestRequest) -> JobStatus:
    """Start an ingest in the background; poll GET /jobs/{id} for progress."""
    try:
        job = registry.start(_builder_from(req))
    except JobBusy as e:
        raise HTTPException(status_code=409, detail=f"ingest job {e} already running")
    except (IngestError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return job.status()


@api_router.get("/jobs/{job_id}", response_model=JobStatus)
def api_ingest_status(job_id: str) -> JobStatus:
    job = registry.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"unknown job '{job_id}'")
    return job.status()


@api_router.delete("/jobs/{job_id}", response_model=JobStatus)
def api_ingest_cancel(job_id: str) -> JobStatus:
    """Request cooperative cancellation; the job stops at its next checkpoint."""
    job = registry.cancel(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"unknown job '{job_id}'")
    return job.status()
