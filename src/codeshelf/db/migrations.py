"""Forward-only migrations for the JSON catalog document."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, Final, TypeAlias

from codeshelf.models.project import SCHEMA_VERSION

logger = logging.getLogger(__name__)

RawCatalog: TypeAlias = dict[str, Any]
Migration: TypeAlias = Callable[[RawCatalog], RawCatalog]


def _projects(data: RawCatalog) -> list[dict[str, Any]]:
    projects = data.get("projects")
    if not isinstance(projects, list):
        return []
    return [project for project in projects if isinstance(project, dict)]


def backfill_scan_status(data: RawCatalog) -> RawCatalog:
    """v1: every record carries a ``scanStatus``."""
    projects = []
    for project in _projects(data):
        updated = dict(project)
        if not updated.get("scanStatus"):
            updated["scanStatus"] = "complete"
        projects.append(updated)
    return {**data, "projects": projects}


def fold_legacy_aliases(data: RawCatalog) -> RawCatalog:
    """v2: fold snake_case aliases from early builds into the current fields."""
    projects = []
    for project in _projects(data):
        updated = dict(project)
        created = updated.pop("created_at", None)
        if created and not updated.get("createdAt"):
            updated["createdAt"] = created
        last_used = updated.pop("last_used", None)
        if last_used and not updated.get("lastModifiedAt"):
            updated["lastModifiedAt"] = last_used
        disk_usage = updated.pop("disk_usage_bytes", None)
        if disk_usage is not None and updated.get("sizeBytes") is None:
            updated["sizeBytes"] = disk_usage
        git_block = updated.pop("git", None)
        if isinstance(git_block, dict) and git_block.get("last_commit"):
            updated.setdefault("lastCommitHash", git_block["last_commit"])
        updated["importance"] = _clamp_importance(updated.get("importance"))
        projects.append(updated)
    return {**data, "projects": projects}


def _clamp_importance(value: Any) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return 0
    return min(max(number, 0), 5)


MIGRATIONS: Final[list[tuple[int, Migration]]] = [
    (1, backfill_scan_status),
    (2, fold_legacy_aliases),
]


def stored_version(data: RawCatalog) -> int:
    meta = data.get("meta")
    if not isinstance(meta, dict):
        return 0
    try:
        return int(meta.get("version") or 0)
    except (TypeError, ValueError):
        return 0


def apply_migrations(data: RawCatalog) -> RawCatalog:
    """Apply pending migrations in order and stamp the resulting version.

    Documents newer than this build are left at their stored version.
    """
    if not isinstance(data, dict):
        msg = "catalog document must be a JSON object"
        raise ValueError(msg)

    version = stored_version(data)
    migrated = dict(data)
    for target, migration in MIGRATIONS:
        if version < target:
            logger.info("Migrating catalog from version %d to %d", version, target)
            migrated = migration(migrated)
            version = target

    meta = dict(migrated.get("meta") or {})
    projects = _projects(migrated)
    meta["version"] = max(version, SCHEMA_VERSION)
    if not meta.get("lastScanAt"):
        meta["lastScanAt"] = datetime.now(UTC).isoformat()
    meta["projectCount"] = len(projects)
    return {**migrated, "meta": meta, "projects": projects}
