import time
from pathlib import Path
from typing import Any

from fastapi.testclient import TestClient

from codeshelf.api.app import create_app
from tests.support.catalog_helpers import FakeGit, github_remote, make_container, make_dir


def _wait_for_job(client: TestClient, job_id: str) -> dict[str, Any]:
    for _ in range(200):
        job = client.get(f"/api/v1/scans/{job_id}").json()
        if job["status"] != "running":
            return job
        time.sleep(0.01)
    raise AssertionError(f"scan job {job_id} did not finish")


def test_scan_populates_catalog(tmp_path: Path) -> None:
    code = tmp_path / "code"
    make_dir(code / "web", {"package.json": "{}", "tsconfig.json": "{}"}, repo=True)
    make_dir(code / "tool", {"Cargo.toml": ""}, repo=True)
    make_dir(code / "node_modules" / "dep", repo=True)
    git = FakeGit(remotes=[github_remote()])

    with TestClient(create_app(container=make_container(tmp_path / "data", git))) as client:
        started = client.post("/api/v1/scans", json={"paths": [str(code)], "maxDepth": 3})
        assert started.status_code == 202
        job = _wait_for_job(client, started.json()["jobId"])
        listing = client.get("/api/v1/projects", params={"sort": "name"}).json()
        github = client.get("/api/v1/projects", params={"provider": "github"}).json()

    assert job["status"] == "complete"
    assert job["completedAt"] is not None
    assert job["result"]["stats"]["gitRepos"] == 2
    assert [(p["name"], p["language"]) for p in listing["items"]] == [
        ("tool", "rust"),
        ("web", "typescript"),
    ]
    assert github["total"] == 2


def test_scan_validation_and_unknown_jobs(tmp_path: Path) -> None:
    with TestClient(create_app(container=make_container(tmp_path / "data"))) as client:
        empty = client.post("/api/v1/scans", json={"paths": []})
        shallow = client.post("/api/v1/scans", json={"paths": ["/x"], "maxDepth": 0})
        status = client.get("/api/v1/scans/nope")
        cancel = client.post("/api/v1/scans/nope/cancel")

    assert empty.status_code == 422
    assert shallow.status_code == 422
    assert status.status_code == 404
    assert cancel.status_code == 404


def test_failed_scan_reports_error(tmp_path: Path) -> None:
    with TestClient(create_app(container=make_container(tmp_path / "data"))) as client:
        started = client.post("/api/v1/scans", json={"paths": [str(tmp_path / "missing")]})
        job = _wait_for_job(client, started.json()["jobId"])
        cancel = client.post(f"/api/v1/scans/{job['id']}/cancel")

    assert job["status"] == "error"
    assert job["error"]
    assert cancel.json() == {"cancelled": False}
