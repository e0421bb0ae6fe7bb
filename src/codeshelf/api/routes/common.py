"""Error mapping shared by the REST routes."""

from __future__ import annotations

from fastapi import HTTPException, status

from codeshelf.core.project_manager import ProjectManager, ProjectNotFoundError
from codeshelf.models.project import Project


def not_found(exc: LookupError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


def unprocessable(exc: ValueError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))


async def require_project(project_id: str, manager: ProjectManager) -> Project:
    """Catalog record for ``project_id``, else 404."""
    try:
        return await manager.require(project_id)
    except ProjectNotFoundError as exc:
        raise not_found(exc) from exc
