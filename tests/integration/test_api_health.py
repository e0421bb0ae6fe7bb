from pathlib import Path

from fastapi.testclient import TestClient

from codeshelf.api.app import create_app
from codeshelf.config import AppConfig


def test_health_endpoint(tmp_path: Path) -> None:
    with TestClient(create_app(AppConfig(data_dir=tmp_path))) as client:
        response = client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "projectCount": 0}
    assert (tmp_path / "projects.json").exists()
