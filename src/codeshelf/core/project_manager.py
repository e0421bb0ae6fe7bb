"""Catalog-level project operations that keep the store and index in sync."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from codeshelf.core.git_manager import CommitInfo, GitManager
from codeshelf.core.scanner import IgnoreMatcher, iter_files
from codeshelf.core.search_index import SearchIndex
from codeshelf.db.store import ConflictPolicy, ImportMode, JSONStore, parse_catalog
from codeshelf.models.project import Project, ProjectsData

logger = logging.getLogger(__name__)

MTIME_SCAN_DEPTH = 6
MTIME_IGNORED = ("**/node_modules/**", "**/.git/**", "**/dist/**")
PREVIEW_SAMPLE_SIZE = 10


class ProjectNotFoundError(LookupError):
    """Raised when a project id is not in the catalog."""

    def __init__(self, project_id: str) -> None:
        super().__init__(f"Project {project_id} not found")
        self.project_id = project_id


@dataclass(slots=True)
class ImportPreview:
    """Summary of an export file before it is applied."""

    file_path: str
    count: int
    sample: list[dict[str, Any]]


def latest_mtime(project_path: Path) -> datetime:
    """Most recent file mtime under ``project_path``, else the directory's own."""
    ignore = IgnoreMatcher(MTIME_IGNORED)
    latest: float | None = None
    for entry, _ in iter_files(project_path, max_depth=MTIME_SCAN_DEPTH, ignore=ignore):
        try:
            mtime = entry.stat(follow_symlinks=False).st_mtime
        except OSError:
            continue
        if latest is None or mtime > latest:
            latest = mtime
    if latest is None:
        latest = project_path.stat().st_mtime
    return datetime.fromtimestamp(latest, UTC)


class ProjectManager:
    """Manage catalog records on behalf of the RPC and HTTP layers."""

    def __init__(self, store: JSONStore, index: SearchIndex, git: GitManager) -> None:
        self._store = store
        self._index = index
        self._git = git

    async def rebuild_index(self) -> int:
        projects = await self._store.list_projects()
        self._index.build_index(projects)
        return len(projects)

    async def get(self, project_id: str) -> Project | None:
        return await self._store.get_project(project_id)

    async def require(self, project_id: str) -> Project:
        project = await self._store.get_project(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    async def update(self, project_id: str, updates: Mapping[str, Any]) -> Project:
        project = await self._store.update_project(project_id, updates)
        if project is None:
            raise ProjectNotFoundError(project_id)
        self._index.update_project(project)
        return project

    async def delete(self, project_id: str) -> bool:
        deleted = await self._store.delete_project(project_id)
        if deleted:
            self._index.remove_project(project_id)
        return deleted

    async def touch_all(self, timestamp: datetime | None = None) -> int:
        """Stamp every record's ``lastModifiedAt``; returns how many were touched."""
        stamp = timestamp or datetime.now(UTC)
        touched = 0
        for project in await self._store.list_projects():
            await self._store.upsert_project(project.model_copy(update={"last_modified_at": stamp}))
            touched += 1
        await self._store.flush()
        await self.rebuild_index()
        return touched

    async def refresh_modified_from_fs(self) -> int:
        """Re-read modification times from disk; returns how many changed."""
        refreshed = 0
        for project in await self._store.list_projects():
            try:
                mtime = await asyncio.to_thread(latest_mtime, Path(project.path))
            except OSError as exc:
                logger.warning("Failed to stat project %s (%s): %s", project.id, project.path, exc)
                continue
            if mtime != project.last_modified_at:
                await self._store.upsert_project(
                    project.model_copy(update={"last_modified_at": mtime})
                )
                refreshed += 1
        if refreshed:
            await self._store.flush()
            await self.rebuild_index()
        return refreshed

    async def export_data(self) -> ProjectsData:
        return await self._store.export()

    async def export_to(self, destination: Path) -> Path:
        data = await self._store.export()
        content = json.dumps(data.to_json_dict(), indent=2)
        await asyncio.to_thread(destination.write_text, content, encoding="utf-8")
        logger.info("Exported %d projects to %s", len(data.projects), destination)
        return destination

    async def import_data(
        self,
        payload: str | Mapping[str, Any],
        *,
        mode: ImportMode = "replace",
        on_conflict: ConflictPolicy = "overwrite",
    ) -> int:
        count = await self._store.import_data(payload, mode=mode, on_conflict=on_conflict)
        await self.rebuild_index()
        return count

    async def import_from(
        self,
        source: Path,
        *,
        mode: ImportMode = "replace",
        on_conflict: ConflictPolicy = "overwrite",
    ) -> int:
        raw = await asyncio.to_thread(source.read_text, encoding="utf-8")
        return await self.import_data(raw, mode=mode, on_conflict=on_conflict)

    async def preview_import(self, source: Path) -> ImportPreview:
        raw = await asyncio.to_thread(source.read_text, encoding="utf-8")
        incoming = parse_catalog(raw or "{}")
        sample = [
            {
                "id": project.id,
                "name": project.name,
                "path": project.path,
                "provider": project.provider.value if project.provider else None,
            }
            for project in incoming.projects[:PREVIEW_SAMPLE_SIZE]
        ]
        return ImportPreview(file_path=str(source), count=len(incoming.projects), sample=sample)

    async def clear_cache(self) -> None:
        await self._store.clear()
        self._index.build_index([])

    async def list_branches(self, project_id: str) -> list[str]:
        project = await self.require(project_id)
        return await self._git.list_branches(Path(project.path))

    async def list_commits(self, project_id: str, limit: int = 20) -> list[CommitInfo]:
        project = await self.require(project_id)
        return await self._git.list_commits(Path(project.path), limit=limit)

    async def checkout_branch(
        self, project_id: str, branch: str, *, force: bool = False
    ) -> Project:
        """Switch branches; raises ``UncommittedChangesError`` on a dirty tree."""
        project = await self.require(project_id)
        await self._git.checkout(Path(project.path), branch, force=force)
        # A checkout is repository state, not a catalog edit; the scan status stays.
        updated = await self._store.upsert_project(
            project.model_copy(update={"branch": branch})
        )
        self._index.update_project(updated)
        return updated
