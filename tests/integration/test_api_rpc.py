import time
from pathlib import Path

from fastapi.testclient import TestClient

from codeshelf.api.app import create_app
from tests.support.catalog_helpers import FakeGit, make_container, make_dir


def test_rpc_round_trip(tmp_path: Path) -> None:
    code = tmp_path / "code"
    make_dir(code / "service", {"go.mod": ""}, repo=True)
    container = make_container(tmp_path / "data", FakeGit())

    with TestClient(create_app(container=container)) as client:
        methods = client.get("/api/v1/rpc/methods").json()["methods"]
        started = client.post(
            "/api/v1/rpc",
            json={"method": "scan:start", "params": {"paths": [str(code)]}, "requestId": "1"},
        ).json()
        job_id = started["data"]["jobId"]
        status: dict = {}
        for _ in range(200):
            status = client.post(
                "/api/v1/rpc", json={"method": "scan:status", "params": {"jobId": job_id}}
            ).json()
            if status["data"]["status"] != "running":
                break
            time.sleep(0.01)
        listed = client.post(
            "/api/v1/rpc", json={"method": "project:list", "params": {"query": "service"}}
        ).json()

    assert "git:checkout" in methods
    assert started["success"] is True
    assert started["requestId"] == "1"
    assert status["data"]["status"] == "complete"
    assert [p["language"] for p in listed["data"]["projects"]] == ["go"]


def test_rpc_errors_use_the_envelope(tmp_path: Path) -> None:
    with TestClient(create_app(container=make_container(tmp_path / "data"))) as client:
        unknown = client.post("/api/v1/rpc", json={"method": "nope", "requestId": "r"})
        missing = client.post(
            "/api/v1/rpc", json={"method": "project:get", "params": {"id": "absent"}}
        )
        malformed = client.post("/api/v1/rpc", json={"params": {}})

    assert unknown.status_code == 200
    assert unknown.json() == {
        "success": False,
        "requestId": "r",
        "error": {"code": "NOT_FOUND", "message": "Unknown method: nope"},
    }
    assert missing.json()["error"] == {"code": "NOT_FOUND", "message": "Project absent not found"}
    assert malformed.status_code == 422
