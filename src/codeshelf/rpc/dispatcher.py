"""Named request/response methods over the catalog services.

Every call returns an envelope ``{success, data?, error?, requestId}``; handler
failures never escape ``dispatch``.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from enum import Enum
from pathlib import Path
from typing import Any, TypeAlias

from codeshelf.container import AppContainer
from codeshelf.core.git_manager import CommitInfo, UncommittedChangesError
from codeshelf.core.project_manager import ProjectNotFoundError
from codeshelf.core.search_index import DEFAULT_PAGE_SIZE, ProjectFilters, SortSpec, sort_projects
from codeshelf.models.project import CamelModel, Project
from codeshelf.models.scan import ScanConfig
from codeshelf.rpc.params import (
    optional_mapping,
    optional_string,
    parse_bool,
    parse_int,
    parse_timestamp,
    required_mapping,
    required_string,
)

logger = logging.getLogger(__name__)

Handler: TypeAlias = Callable[[dict[str, Any]], Awaitable[Any]]

_SCAN_OPTION_KEYS = ("ignorePatterns", "maxDepth", "minSizeBytes")


class ErrorCode(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    INVALID_INPUT = "INVALID_INPUT"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    UNCOMMITTED_CHANGES = "UNCOMMITTED_CHANGES"
    CANCELLED = "CANCELLED"


class RPCError(Exception):
    """Raised by handlers to fail with a specific error code."""

    def __init__(self, code: ErrorCode, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details


class RPCErrorBody(CamelModel):
    code: ErrorCode
    message: str
    details: Any = None


class RPCResponse(CamelModel):
    success: bool
    data: Any = None
    error: RPCErrorBody | None = None
    request_id: str = ""

    def to_envelope(self) -> dict[str, Any]:
        envelope: dict[str, Any] = {"success": self.success, "requestId": self.request_id}
        if self.success:
            envelope["data"] = self.data
        if self.error is not None:
            body = {"code": self.error.code.value, "message": self.error.message}
            if self.error.details is not None:
                body["details"] = self.error.details
            envelope["error"] = body
        return envelope


def _projects_json(projects: list[Project]) -> list[dict[str, Any]]:
    return [project.to_json_dict() for project in projects]


def _commit_json(commit: CommitInfo) -> dict[str, str]:
    return {
        "hash": commit.hash,
        "authorName": commit.author_name,
        "authorEmail": commit.author_email,
        "date": commit.date,
        "message": commit.message,
    }


class RPCDispatcher:
    """Route method names to handlers bound to one ``AppContainer``."""

    def __init__(self, container: AppContainer) -> None:
        self._container = container
        self._handlers: dict[str, Handler] = {
            "project:list": self._project_list,
            "project:get": self._project_get,
            "project:update": self._project_update,
            "project:delete": self._project_delete,
            "project:touchAll": self._project_touch_all,
            "project:refreshModifiedFromFS": self._project_refresh_modified,
            "project:export": self._project_export,
            "project:import": self._project_import,
            "project:preview-import": self._project_preview_import,
            "scan:start": self._scan_start,
            "scan:status": self._scan_status,
            "scan:cancel": self._scan_cancel,
            "git:available": self._git_available,
            "git:list-branches": self._git_list_branches,
            "git:list-commits": self._git_list_commits,
            "git:checkout": self._git_checkout,
            "settings:get": self._settings_get,
            "settings:set": self._settings_set,
            "cache:clear": self._cache_clear,
        }

    @property
    def methods(self) -> list[str]:
        return sorted(self._handlers)

    async def dispatch(
        self,
        method: str,
        params: Mapping[str, Any] | None = None,
        *,
        request_id: str | None = None,
    ) -> RPCResponse:
        arguments = dict(params or {})
        if request_id is None:
            request_id = str(arguments.pop("requestId", "") or "")

        handler = self._handlers.get(method)
        if handler is None:
            return self._failure(
                request_id, RPCError(ErrorCode.NOT_FOUND, f"Unknown method: {method}")
            )

        try:
            data = await handler(arguments)
        except RPCError as exc:
            return self._failure(request_id, exc)
        except UncommittedChangesError as exc:
            return self._failure(
                request_id,
                RPCError(ErrorCode.UNCOMMITTED_CHANGES, str(exc), details=exc.status_output),
            )
        except (ProjectNotFoundError, FileNotFoundError) as exc:
            return self._failure(request_id, RPCError(ErrorCode.NOT_FOUND, str(exc)))
        except ValueError as exc:
            return self._failure(request_id, RPCError(ErrorCode.INVALID_INPUT, str(exc)))
        except Exception as exc:
            logger.exception("RPC method %s failed", method)
            message = str(exc) or type(exc).__name__
            return self._failure(request_id, RPCError(ErrorCode.INTERNAL_ERROR, message))
        return RPCResponse(success=True, data=data, request_id=request_id)

    @staticmethod
    def _failure(request_id: str, error: RPCError) -> RPCResponse:
        logger.debug("RPC failure %s: %s", error.code.value, error.message)
        return RPCResponse(
            success=False,
            error=RPCErrorBody(code=error.code, message=error.message, details=error.details),
            request_id=request_id,
        )

    # Projects

    async def _project_list(self, params: dict[str, Any]) -> dict[str, Any]:
        index = self._container.index
        query = optional_string(params, "query")
        sort = SortSpec.parse(params.get("sort"))
        page = max(parse_int(params.get("page"), default=1), 1)
        page_size = max(parse_int(params.get("pageSize"), default=DEFAULT_PAGE_SIZE), 1)

        if query:
            projects = index.search(query, limit=page_size)
            if sort is not None:
                projects = sort_projects(projects, sort)
            return {"projects": _projects_json(projects), "total": len(projects), "page": 1}

        filters = ProjectFilters.from_params(optional_mapping(params, "filters"))
        result = index.get_all(filters=filters, sort=sort, page=page, page_size=page_size)
        return {"projects": _projects_json(result.projects), "total": result.total, "page": page}

    async def _project_get(self, params: dict[str, Any]) -> dict[str, Any]:
        project_id = required_string(params, "id", label="Project ID")
        project = await self._container.projects.require(project_id)
        return project.to_json_dict()

    async def _project_update(self, params: dict[str, Any]) -> dict[str, Any]:
        project_id = required_string(params, "id", label="Project ID")
        updates = required_mapping(params, "updates")
        project = await self._container.projects.update(project_id, updates)
        return project.to_json_dict()

    async def _project_delete(self, params: dict[str, Any]) -> dict[str, bool]:
        project_id = required_string(params, "id", label="Project ID")
        return {"deleted": await self._container.projects.delete(project_id)}

    async def _project_touch_all(self, params: dict[str, Any]) -> dict[str, Any]:
        timestamp = parse_timestamp(params.get("timestamp"))
        touched = await self._container.projects.touch_all(timestamp)
        return {"touched": touched}

    async def _project_refresh_modified(self, params: dict[str, Any]) -> dict[str, int]:
        return {"refreshed": await self._container.projects.refresh_modified_from_fs()}

    async def _project_export(self, params: dict[str, Any]) -> dict[str, Any]:
        file_path = optional_string(params, "filePath")
        if file_path is None:
            data = await self._container.projects.export_data()
            return {"catalog": data.to_json_dict()}
        written = await self._container.projects.export_to(Path(file_path).expanduser())
        return {"path": str(written)}

    async def _project_import(self, params: dict[str, Any]) -> dict[str, Any]:
        mode = "merge" if params.get("mode") == "merge" else "replace"
        on_conflict = "skip" if params.get("onConflict") == "skip" else "overwrite"
        file_path = optional_string(params, "filePath")
        catalog = optional_mapping(params, "catalog")
        projects = self._container.projects
        if file_path is not None:
            count = await projects.import_from(
                Path(file_path).expanduser(), mode=mode, on_conflict=on_conflict
            )
        elif catalog is not None:
            count = await projects.import_data(catalog, mode=mode, on_conflict=on_conflict)
        else:
            raise RPCError(ErrorCode.INVALID_INPUT, "filePath or catalog is required")
        return {"imported": True, "count": count, "mode": mode, "onConflict": on_conflict}

    async def _project_preview_import(self, params: dict[str, Any]) -> dict[str, Any]:
        file_path = required_string(params, "filePath", label="File path")
        preview = await self._container.projects.preview_import(Path(file_path).expanduser())
        return {"filePath": preview.file_path, "count": preview.count, "sample": preview.sample}

    # Scans

    async def _scan_start(self, params: dict[str, Any]) -> dict[str, str]:
        paths = params.get("paths")
        if not isinstance(paths, list) or not paths:
            raise RPCError(ErrorCode.INVALID_INPUT, "Scan paths are required")
        options = {key: params[key] for key in _SCAN_OPTION_KEYS if params.get(key) is not None}
        config = ScanConfig.model_validate({"roots": paths, **options})
        job_id = await self._container.jobs.start_scan(config)
        return {"jobId": job_id}

    async def _scan_status(self, params: dict[str, Any]) -> dict[str, Any]:
        job_id = required_string(params, "jobId", label="Job ID")
        job = self._container.jobs.get_job_status(job_id)
        if job is None:
            raise RPCError(ErrorCode.NOT_FOUND, f"Scan job {job_id} not found")
        errors = [error.to_json_dict() for error in job.result.errors] if job.result else []
        return {
            "jobId": job.id,
            "status": job.status.value,
            "progress": job.progress.percent if job.is_running else 100.0,
            "discovered": job.progress.discovered,
            "processed": job.progress.processed,
            "errors": errors,
            "error": job.error,
        }

    async def _scan_cancel(self, params: dict[str, Any]) -> dict[str, bool]:
        job_id = required_string(params, "jobId", label="Job ID")
        return {"cancelled": self._container.jobs.cancel_scan(job_id)}

    # Git

    async def _git_available(self, params: dict[str, Any]) -> dict[str, bool]:
        return {"available": await self._container.git.is_available()}

    async def _git_list_branches(self, params: dict[str, Any]) -> dict[str, list[str]]:
        project_id = required_string(params, "projectId", label="Project ID")
        return {"branches": await self._container.projects.list_branches(project_id)}

    async def _git_list_commits(self, params: dict[str, Any]) -> dict[str, Any]:
        project_id = required_string(params, "projectId", label="Project ID")
        limit = max(parse_int(params.get("limit"), default=20), 1)
        commits = await self._container.projects.list_commits(project_id, limit=limit)
        return {"commits": [_commit_json(commit) for commit in commits]}

    async def _git_checkout(self, params: dict[str, Any]) -> dict[str, Any]:
        project_id = required_string(params, "projectId", label="Project ID")
        branch = required_string(params, "branch", label="Branch")
        force = parse_bool(params.get("force"), default=False)
        project = await self._container.projects.checkout_branch(project_id, branch, force=force)
        return {"branch": branch, "project": project.to_json_dict()}

    # Settings and cache

    async def _settings_get(self, params: dict[str, Any]) -> dict[str, Any]:
        settings = await self._container.settings.get_settings()
        return {"settings": settings.to_json_dict()}

    async def _settings_set(self, params: dict[str, Any]) -> dict[str, bool]:
        settings = required_mapping(params, "settings", label="Settings")
        await self._container.settings.set_settings(settings)
        return {"saved": True}

    async def _cache_clear(self, params: dict[str, Any]) -> dict[str, bool]:
        await self._container.projects.clear_cache()
        return {"cleared": True}
