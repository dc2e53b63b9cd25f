import threading
import time

import pytest
from fastapi.testclient import TestClient

from photoingest.main import app
from photoingest.services.jobs import Job, JobRegistry, registry
from photoingest.services.progress import Progress

from helpers import names


@pytest.fixture
def client():
    registry._jobs.clear()
    registry._current = None
    # context manager keeps one event loop alive, so background jobs can finish
    with TestClient(app) as c:
        yield c

def _wait(client, job_id, timeout=10.0):
    deadline = time.monotonic() + timeout
    while True:
        body = client.get(f"/api/ingest/jobs/{job_id}").json()
        if body["state"] != "running" or time.monotonic() > deadline:
            return body
        time.sleep(0.05)

def test_needs(client, card, tmp_path):
    r = client.post("/api/ingest/needs", json={
        "sources": [str(card)], "target": str(tmp_path / "out"),
    })
    assert r.status_code == 200
    body = r.json()
    assert body["total"] == 170
    assert body["free"] > 0
    assert body["backup"] is None

def test_needs_with_backup(client, card, tmp_path):
    r = client.post("/api/ingest/needs", json={
        "sources": [str(card)], "target": str(tmp_path / "out"), "backup": str(tmp_path / "bak"),
    })
    assert r.status_code == 200
    # both live under tmp_path
    assert r.json()["backup"]["same_disk"] is True

def test_needs_bad_request(client, card):
    assert client.post("/api/ingest/needs", json={"sources": [str(card)], "target": ""}).status_code == 400
    assert client.post("/api/ingest/needs", json={"target": "/x"}).status_code == 422

def test_job_runs_to_completion(client, card, tmp_path):
    out = tmp_path / "out"
    r = client.post("/api/ingest/jobs", json={
        "structure": "rename",
        "rename": {"zeroes": 3},
        "sources": [str(card)],
        "target": str(out),
    })
    assert r.status_code == 200
    body = _wait(client, r.json()["id"])
    assert body["state"] == "done", body
    assert body["copied"] == 2 and body["scanned"] == 4
    assert [p["label"] for p in body["passes"]] == ["primary"]
    assert names(out) == {"000-a.cr2", "000-a.jpg", "001-b.png"}

def test_job_with_custom_filter(client, card, tmp_path):
    out = tmp_path / "out"
    r = client.post("/api/ingest/jobs", json={
        "structure": "preserve",
        "filter": {"extensions": ["png"]},
        "sources": [str(card)],
        "target": str(out),
    })
    assert _wait(client, r.json()["id"])["state"] == "done"
    assert names(out) == {"b.png"}

def test_job_bad_request(client, card):
    r = client.post("/api/ingest/jobs", json={"sources": [str(card)], "target": ""})
    assert r.status_code == 400
    assert registry.busy() is False

def test_second_job_conflicts(client, card, tmp_path):
    registry._current = Job(id="held", progress=Progress(), cancel_event=threading.Event())
    r = client.post("/api/ingest/jobs", json={"sources": [str(card)], "target": str(tmp_path / "out")})
    assert r.status_code == 409

def test_unknown_job(client):
    assert client.get("/api/ingest/jobs/nope").status_code == 404
    assert client.delete("/api/ingest/jobs/nope").status_code == 404

def test_cancel_sets_flag(client):
    job = Job(id="held", progress=Progress(), cancel_event=threading.Event())
    registry._jobs[job.id] = job
    r = client.delete("/api/ingest/jobs/held")
    assert r.status_code == 200
    assert r.json()["state"] == "running"
    assert job.cancel_event.is_set()

def test_cancel_finished_job_is_noop(client, card, tmp_path):
    r = client.post("/api/ingest/jobs", json={"sources": [str(card)], "target": str(tmp_path / "out")})
    job_id = r.json()["id"]
    _wait(client, job_id)
    r = client.delete(f"/api/ingest/jobs/{job_id}")
    assert r.json()["state"] == "done"

def test_registry_drops_oldest_finished_jobs():
    reg = JobRegistry(keep=2)
    for i, state in enumerate(["done", "failed", "running", "cancelled", "done"]):
        job = Job(id=f"j{i}", progress=Progress(), cancel_event=threading.Event(), state=state)
        reg._jobs[job.id] = job
    reg._evict()
    assert list(reg._jobs) == ["j2", "j3", "j4"]
    assert reg.get("j0") is None
