import pytest

from codeshelf.db.migrations import (
    apply_migrations,
    backfill_scan_status,
    fold_legacy_aliases,
    stored_version,
)
from codeshelf.models.project import SCHEMA_VERSION


def test_stored_version_defaults_to_zero() -> None:
    assert stored_version({}) == 0
    assert stored_version({"meta": {"version": "x"}}) == 0
    assert stored_version({"meta": {"version": 1}}) == 1


def test_backfill_scan_status_only_fills_missing() -> None:
    data = {"projects": [{"id": "a"}, {"id": "b", "scanStatus": "user-modified"}]}
    migrated = backfill_scan_status(data)
    assert [p["scanStatus"] for p in migrated["projects"]] == ["complete", "user-modified"]
    assert "scanStatus" not in data["projects"][0]


def test_fold_legacy_aliases_prefers_current_fields() -> None:
    data = {
        "projects": [
            {
                "id": "a",
                "createdAt": "2024-01-01T00:00:00Z",
                "created_at": "2019-01-01T00:00:00Z",
                "last_used": "2023-06-01T00:00:00Z",
                "importance": "3",
            }
        ]
    }
    project = fold_legacy_aliases(data)["projects"][0]
    assert project["createdAt"] == "2024-01-01T00:00:00Z"
    assert project["lastModifiedAt"] == "2023-06-01T00:00:00Z"
    assert project["importance"] == 3
    assert "created_at" not in project
    assert "last_used" not in project


@pytest.mark.parametrize(("raw", "expected"), [(-2, 0), (9, 5), (None, 0), ("high", 0), (4, 4)])
def test_importance_is_clamped(raw: object, expected: int) -> None:
    migrated = fold_legacy_aliases({"projects": [{"id": "a", "importance": raw}]})
    assert migrated["projects"][0]["importance"] == expected


def test_apply_migrations_stamps_current_version_and_count() -> None:
    migrated = apply_migrations({"projects": [{"id": "a"}, "junk"]})
    assert migrated["meta"]["version"] == SCHEMA_VERSION
    assert migrated["meta"]["projectCount"] == 1
    assert migrated["meta"]["lastScanAt"]
    assert migrated["projects"][0]["scanStatus"] == "complete"


def test_apply_migrations_is_idempotent() -> None:
    once = apply_migrations({"meta": {"version": 0}, "projects": [{"id": "a", "importance": 7}]})
    twice = apply_migrations(once)
    assert twice == once


def test_current_documents_are_left_alone() -> None:
    document = {
        "meta": {"version": SCHEMA_VERSION, "lastScanAt": "2024-01-01T00:00:00Z"},
        "projects": [{"id": "a", "scanStatus": "pending", "importance": 0}],
    }
    migrated = apply_migrations(document)
    assert migrated["projects"][0]["scanStatus"] == "pending"
    assert migrated["meta"]["lastScanAt"] == "2024-01-01T00:00:00Z"


def test_newer_documents_keep_their_version() -> None:
    migrated = apply_migrations({"meta": {"version": SCHEMA_VERSION + 3}, "projects": []})
    assert migrated["meta"]["version"] == SCHEMA_VERSION + 3


def test_non_object_documents_are_rejected() -> None:
    with pytest.raises(ValueError):
        apply_migrations([])  # type: ignore[arg-type]
