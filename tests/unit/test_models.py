from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from codeshelf.models.project import (
    Project,
    ProjectKind,
    ProjectsData,
    ScanStatus,
    carry_user_fields,
)
from codeshelf.models.scan import JobStatus, ScanConfig, ScanJob, ScanProgress
from codeshelf.models.settings import Settings


def test_project_defaults() -> None:
    project = Project(name="demo", path="/tmp/demo")
    assert project.id
    assert project.kind is ProjectKind.LOCAL
    assert project.scan_status is ScanStatus.PENDING
    assert project.tags == []
    assert project.importance == 0


def test_project_serializes_camel_case_with_type_key() -> None:
    project = Project(name="demo", path="/tmp/demo", kind=ProjectKind.GIT, size_bytes=10)
    payload = project.to_json_dict()
    assert payload["type"] == "git"
    assert payload["sizeBytes"] == 10
    assert "size_bytes" not in payload
    assert payload["scanStatus"] == "pending"


def test_project_reads_camel_case_payload() -> None:
    project = Project.model_validate(
        {
            "name": "demo",
            "path": "/tmp/demo",
            "type": "git",
            "lastModifiedAt": "2024-05-01T12:00:00",
        }
    )
    assert project.kind is ProjectKind.GIT
    assert project.last_modified_at == datetime(2024, 5, 1, 12, tzinfo=UTC)


def test_importance_is_bounded() -> None:
    with pytest.raises(ValidationError):
        Project(name="demo", path="/tmp/demo", importance=6)


def test_merged_with_accepts_both_key_styles_and_keeps_id() -> None:
    project = Project(name="demo", path="/tmp/demo")
    merged = project.merged_with({"id": "other", "importance": 3, "sizeBytes": 7, "type": "git"})
    assert merged.id == project.id
    assert merged.importance == 3
    assert merged.size_bytes == 7
    assert merged.kind is ProjectKind.GIT


def test_carry_user_fields_keeps_identity_and_annotations() -> None:
    prior = Project(
        name="renamed",
        path="/tmp/demo",
        tags=["work"],
        importance=4,
        description="notes",
        scan_status=ScanStatus.USER_MODIFIED,
    )
    scanned = Project(name="demo", path="/tmp/demo", scan_status=ScanStatus.COMPLETE)

    carried = carry_user_fields(scanned, prior)

    assert carried.id == prior.id
    assert carried.created_at == prior.created_at
    assert carried.tags == ["work"]
    assert carried.importance == 4
    assert carried.description == "notes"
    assert carried.name == "renamed"
    assert carried.scan_status is ScanStatus.USER_MODIFIED


def test_carry_user_fields_takes_scanned_name_for_unmodified_records() -> None:
    prior = Project(name="old", path="/tmp/demo", scan_status=ScanStatus.COMPLETE)
    scanned = Project(name="demo", path="/tmp/demo", scan_status=ScanStatus.COMPLETE)
    carried = carry_user_fields(scanned, prior)
    assert carried.name == "demo"
    assert carried.id == prior.id


def test_projects_data_touch_updates_count() -> None:
    data = ProjectsData(projects=[Project(name="a", path="/a"), Project(name="b", path="/b")])
    data.touch()
    assert data.meta.project_count == 2


def test_scan_config_accepts_plain_paths() -> None:
    config = ScanConfig.model_validate(
        {"roots": ["/code", {"path": "/work", "includeAsProject": True}]}
    )
    assert [root.path for root in config.roots] == ["/code", "/work"]
    assert config.roots[1].include_as_project is True
    assert config.max_depth == 5


def test_scan_config_rejects_zero_depth() -> None:
    with pytest.raises(ValidationError):
        ScanConfig(roots=["/code"], max_depth=0)


def test_scan_progress_percent() -> None:
    assert ScanProgress().percent == 0.0
    assert ScanProgress(discovered=4, processed=1).percent == 25.0


def test_scan_job_finish_sets_completion() -> None:
    job = ScanJob()
    assert job.is_running
    job.finish(JobStatus.ERROR, error="boom")
    assert not job.is_running
    assert job.error == "boom"
    assert job.completed_at is not None


def test_settings_keep_unknown_keys() -> None:
    settings = Settings.model_validate({"theme": "dark", "maxDepth": 3})
    payload = settings.to_json_dict()
    assert payload["theme"] == "dark"
    assert payload["maxDepth"] == 3
