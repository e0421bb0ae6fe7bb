"""JSON-backed catalog store with atomic writes and backup recovery."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import shutil
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal, TypeAlias

from pydantic import ValidationError

from codeshelf.db.migrations import apply_migrations
from codeshelf.models.project import Project, ProjectsData, ScanStatus

logger = logging.getLogger(__name__)

CATALOG_FILENAME = "projects.json"
DEFAULT_DEBOUNCE_SECONDS = 0.5

ImportMode: TypeAlias = Literal["replace", "merge"]
ConflictPolicy: TypeAlias = Literal["overwrite", "skip"]


class PathConflictError(ValueError):
    """Raised when an edit would give two records the same path."""


def parse_catalog(raw: str | Mapping[str, Any]) -> ProjectsData:
    """Parse, migrate, and validate a catalog document.

    Raises ``ValueError`` (including pydantic ``ValidationError``) on bad input.
    """
    document = json.loads(raw) if isinstance(raw, str) else dict(raw)
    return ProjectsData.model_validate(apply_migrations(document))


class JSONStore:
    """Single-writer catalog persisted as ``projects.json``.

    Mutations are visible in memory immediately and written after a quiet
    period; ``flush()`` writes right away and should be awaited by callers that
    need durability before moving on.
    """

    def __init__(
        self, data_dir: Path, *, debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    ) -> None:
        self._dir = data_dir
        self.path = data_dir / CATALOG_FILENAME
        self.backup_path = data_dir / f"{CATALOG_FILENAME}.bak"
        self.tmp_path = data_dir / f"{CATALOG_FILENAME}.tmp"
        self._debounce_seconds = debounce_seconds
        self._data: ProjectsData | None = None
        self._flush_timer: asyncio.Task[None] | None = None
        self._write_lock = asyncio.Lock()
        self._load_lock = asyncio.Lock()

    async def initialize(self) -> None:
        await self._loaded()

    @property
    def has_pending_flush(self) -> bool:
        return self._flush_timer is not None and not self._flush_timer.done()

    async def list_projects(self) -> list[Project]:
        data = await self._loaded()
        return [project.model_copy(deep=True) for project in data.projects]

    async def get_project(self, project_id: str) -> Project | None:
        data = await self._loaded()
        index = self._index_of(data, project_id=project_id)
        return data.projects[index].model_copy(deep=True) if index is not None else None

    async def get_project_by_path(self, path: str) -> Project | None:
        data = await self._loaded()
        index = self._index_of(data, path=path)
        return data.projects[index].model_copy(deep=True) if index is not None else None

    async def upsert_project(self, project: Project) -> Project:
        """Insert or replace a record matched by id, then by path."""
        data = await self._loaded()
        self._upsert(data, project.model_copy(deep=True))
        data.touch()
        self.schedule_flush()
        return project

    async def update_project(self, project_id: str, updates: Mapping[str, Any]) -> Project | None:
        data = await self._loaded()
        index = self._index_of(data, project_id=project_id)
        if index is None:
            return None

        merged = data.projects[index].merged_with(dict(updates))
        other = self._index_of(data, path=merged.path)
        if other is not None and other != index:
            msg = f"Another project already uses path {merged.path}"
            raise PathConflictError(msg)
        merged.scan_status = ScanStatus.USER_MODIFIED
        data.projects[index] = merged
        self.schedule_flush()
        return merged.model_copy(deep=True)

    async def delete_project(self, project_id: str) -> bool:
        data = await self._loaded()
        index = self._index_of(data, project_id=project_id)
        if index is None:
            return False
        del data.projects[index]
        data.meta.project_count = len(data.projects)
        self.schedule_flush()
        return True

    async def clear(self) -> None:
        self._data = ProjectsData()
        await self.flush()
        logger.info("Catalog cleared")

    async def export(self) -> ProjectsData:
        data = await self._loaded()
        data.meta.project_count = len(data.projects)
        return data.model_copy(deep=True)

    async def import_data(
        self,
        payload: str | Mapping[str, Any] | ProjectsData,
        *,
        mode: ImportMode = "replace",
        on_conflict: ConflictPolicy = "overwrite",
    ) -> int:
        """Load an exported catalog; returns the resulting project count."""
        incoming = payload if isinstance(payload, ProjectsData) else parse_catalog(payload)
        if mode == "replace":
            data = ProjectsData()
            self._data = data
        else:
            data = await self._loaded()

        for project in incoming.projects:
            exists = self._index_of(data, project_id=project.id) is not None
            if mode == "merge" and exists and on_conflict == "skip":
                continue
            self._upsert(data, project.model_copy(deep=True))

        data.touch()
        await self.flush()
        logger.info("Imported %d projects (%s)", len(incoming.projects), mode)
        return len(data.projects)

    def schedule_flush(self) -> None:
        """Coalesce writes: flush once after the debounce window goes quiet."""
        if self._flush_timer is not None and not self._flush_timer.done():
            self._flush_timer.cancel()
        self._flush_timer = asyncio.get_running_loop().create_task(self._debounced_flush())

    async def flush(self) -> None:
        """Write the catalog now, bypassing the debounce window."""
        timer = self._flush_timer
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()
            self._flush_timer = None
        await self._write()

    async def close(self) -> None:
        """Write pending changes and stop the debounce timer."""
        if self.has_pending_flush:
            await self.flush()

    async def _debounced_flush(self) -> None:
        await asyncio.sleep(self._debounce_seconds)
        # Past this point the timer is no longer cancellable by new mutations.
        self._flush_timer = None
        try:
            await self._write()
        except Exception:
            logger.exception("Debounced catalog flush failed")

    async def _loaded(self) -> ProjectsData:
        data = self._data
        if data is None:
            async with self._load_lock:
                data = self._data if self._data is not None else await self._load()
        return data

    async def _load(self) -> ProjectsData:
        try:
            raw = await asyncio.to_thread(self.path.read_text, encoding="utf-8")
        except FileNotFoundError:
            logger.info("No catalog at %s, creating an empty one", self.path)
            self._data = data = ProjectsData()
            await self._write()
            return data
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Catalog %s unreadable (%s), trying backup", self.path, exc)
            return await self._recover_from_backup()

        try:
            data = parse_catalog(raw)
        except (ValueError, ValidationError) as exc:
            logger.warning("Catalog %s is corrupt (%s), trying backup", self.path, exc)
            return await self._recover_from_backup()
        self._data = data
        logger.info("Loaded %d projects", len(data.projects))
        return data

    async def _recover_from_backup(self) -> ProjectsData:
        try:
            raw = await asyncio.to_thread(self.backup_path.read_text, encoding="utf-8")
            data = parse_catalog(raw)
        except (OSError, ValueError, ValidationError) as exc:
            logger.error("Catalog and backup both unusable (%s); starting empty", exc)
            data = ProjectsData()
        else:
            logger.info("Recovered %d projects from backup", len(data.projects))
        self._data = data
        # The main file is corrupt; keep the good backup instead of copying over it.
        await self._write(backup=False)
        return data

    async def _write(self, *, backup: bool = True) -> None:
        if self._data is None:
            return
        async with self._write_lock:
            self._data.meta.project_count = len(self._data.projects)
            content = json.dumps(self._data.to_json_dict(), indent=2)
            await asyncio.to_thread(self._write_files, content, backup)
        logger.debug("Catalog flushed to %s", self.path)

    def _write_files(self, content: str, backup: bool) -> None:
        """Stage, back up the previous file, then atomically swap in the new one."""
        self._dir.mkdir(parents=True, exist_ok=True)
        with self.tmp_path.open("w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())

        if backup and self.path.exists():
            try:
                shutil.copyfile(self.path, self.backup_path)
            except OSError as exc:
                logger.warning("Could not back up catalog to %s: %s", self.backup_path, exc)

        os.replace(self.tmp_path, self.path)
        with contextlib.suppress(OSError):
            dir_fd = os.open(self._dir, os.O_RDONLY)
            try:
                os.fsync(dir_fd)
            finally:
                os.close(dir_fd)

    @staticmethod
    def _index_of(
        data: ProjectsData, *, project_id: str | None = None, path: str | None = None
    ) -> int | None:
        for index, project in enumerate(data.projects):
            if project_id is not None and project.id == project_id:
                return index
            if path is not None and project.path == path:
                return index
        return None

    def _upsert(self, data: ProjectsData, project: Project) -> None:
        index = self._index_of(data, project_id=project.id)
        if index is None:
            index = self._index_of(data, path=project.path)
            if index is not None:
                logger.info(
                    "Project at %s found with different id (old: %s, new: %s), replacing",
                    project.path,
                    data.projects[index].id,
                    project.id,
                )
        if index is None:
            data.projects.append(project)
            return

        data.projects[index] = project
        # An id match may still collide with a different record on path.
        duplicate = next(
            (
                other
                for other, existing in enumerate(data.projects)
                if other != index and existing.path == project.path
            ),
            None,
        )
        if duplicate is not None:
            del data.projects[duplicate]
