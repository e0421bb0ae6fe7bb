import json
from pathlib import Path

from fastapi.testclient import TestClient

from codeshelf.api.app import create_app
from codeshelf.models.project import ProjectKind, ProjectsData
from tests.support.catalog_helpers import make_container, make_project


def _seed_catalog(data_dir: Path) -> ProjectsData:
    data = ProjectsData(
        projects=[
            make_project("A", kind=ProjectKind.GIT, importance=5, tags=["work"]),
            make_project("B", kind=ProjectKind.LOCAL, importance=5),
            make_project("C", kind=ProjectKind.GIT, importance=5),
            make_project("D", kind=ProjectKind.GIT, importance=3, tags=["work"]),
        ]
    )
    data.touch()
    data_dir.mkdir(parents=True, exist_ok=True)
    (data_dir / "projects.json").write_text(json.dumps(data.to_json_dict()), encoding="utf-8")
    return data


def test_project_listing_filters_and_pages(tmp_path: Path) -> None:
    data_dir = tmp_path / "data"
    _seed_catalog(data_dir)

    with TestClient(create_app(container=make_container(data_dir))) as client:
        health = client.get("/api/v1/health")
        listing = client.get(
            "/api/v1/projects",
            params={"kind": "git", "importance": 5, "sort": "name", "pageSize": 1, "page": 2},
        )
        tagged = client.get("/api/v1/projects", params={"tag": "work", "sort": "-name"})

    assert health.json()["projectCount"] == 4
    assert listing.status_code == 200
    body = listing.json()
    assert [item["name"] for item in body["items"]] == ["C"]
    assert body["total"] == 2
    assert body["page"] == 2
    assert body["items"][0]["type"] == "git"
    assert [item["name"] for item in tagged.json()["items"]] == ["D", "A"]


def test_project_search_and_bad_parameters(tmp_path: Path) -> None:
    data_dir = tmp_path / "data"
    _seed_catalog(data_dir)

    with TestClient(create_app(container=make_container(data_dir))) as client:
        client.patch(
            f"/api/v1/projects/{client.get('/api/v1/projects').json()['items'][0]['id']}",
            json={"name": "dashboard"},
        )
        found = client.get("/api/v1/projects", params={"query": "dahsboard"})
        bad_sort = client.get("/api/v1/projects", params={"sort": "colour"})
        bad_kind = client.get("/api/v1/projects", params={"kind": "svn"})
        bad_importance = client.get("/api/v1/projects", params={"importance": 9})

    assert [item["name"] for item in found.json()["items"]] == ["dashboard"]
    assert bad_sort.status_code == 422
    assert bad_kind.status_code == 422
    assert bad_importance.status_code == 422


def test_project_get_patch_delete(tmp_path: Path) -> None:
    data_dir = tmp_path / "data"
    seeded = _seed_catalog(data_dir)
    project_id = seeded.projects[0].id

    with TestClient(create_app(container=make_container(data_dir))) as client:
        fetched = client.get(f"/api/v1/projects/{project_id}")
        patched = client.patch(
            f"/api/v1/projects/{project_id}", json={"description": "notes", "importance": 2}
        )
        invalid = client.patch(f"/api/v1/projects/{project_id}", json={"importance": 8})
        missing = client.patch("/api/v1/projects/nope", json={"importance": 1})
        deleted = client.delete(f"/api/v1/projects/{project_id}")
        deleted_again = client.delete(f"/api/v1/projects/{project_id}")
        gone = client.get(f"/api/v1/projects/{project_id}")

    assert fetched.status_code == 200
    assert fetched.json()["name"] == "A"
    assert patched.status_code == 200
    assert patched.json()["description"] == "notes"
    assert patched.json()["scanStatus"] == "user-modified"
    assert invalid.status_code == 422
    assert missing.status_code == 404
    assert deleted.status_code == 204
    assert deleted_again.status_code == 404
    assert gone.status_code == 404

    saved = json.loads((data_dir / "projects.json").read_text(encoding="utf-8"))
    assert project_id not in {project["id"] for project in saved["projects"]}
