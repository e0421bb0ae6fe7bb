"""Project routes."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from codeshelf.api.deps import get_project_manager, get_search_index
from codeshelf.api.routes.common import not_found, require_project, unprocessable
from codeshelf.api.schemas.projects import ProjectsResponse
from codeshelf.core.project_manager import ProjectManager, ProjectNotFoundError
from codeshelf.core.search_index import (
    DEFAULT_PAGE_SIZE,
    ProjectFilters,
    SearchIndex,
    SortSpec,
    sort_projects,
)
from codeshelf.models.project import Project

router = APIRouter(prefix="/api/v1/projects", tags=["projects"])


@router.get("", response_model=ProjectsResponse)
async def list_projects(
    query: str | None = None,
    kind: str | None = None,
    provider: str | None = None,
    tag: list[str] | None = Query(default=None),
    importance: int | None = Query(default=None, ge=0, le=5),
    sort: str | None = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, alias="pageSize"),
    index: SearchIndex = Depends(get_search_index),
) -> ProjectsResponse:
    try:
        sort_spec = SortSpec.parse(sort)
        if query and query.strip():
            found = index.search(query, limit=page_size)
            if sort_spec is not None:
                found = sort_projects(found, sort_spec)
            return ProjectsResponse(items=found, total=len(found))

        filters = ProjectFilters.from_params(
            {"kind": kind, "provider": provider, "tags": tag or [], "importance": importance}
        )
    except ValueError as exc:
        raise unprocessable(exc) from exc
    result = index.get_all(filters=filters, sort=sort_spec, page=page, page_size=page_size)
    return ProjectsResponse(items=result.projects, total=result.total, page=page)


@router.get("/{project_id}", response_model=Project)
async def get_project(
    project_id: str, manager: ProjectManager = Depends(get_project_manager)
) -> Project:
    return await require_project(project_id, manager)


@router.patch("/{project_id}", response_model=Project)
async def update_project(
    project_id: str,
    updates: dict[str, Any] = Body(...),
    manager: ProjectManager = Depends(get_project_manager),
) -> Project:
    try:
        return await manager.update(project_id, updates)
    except ProjectNotFoundError as exc:
        raise not_found(exc) from exc
    except ValueError as exc:
        raise unprocessable(exc) from exc


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: str,
    manager: ProjectManager = Depends(get_project_manager),
) -> None:
    if not await manager.delete(project_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
