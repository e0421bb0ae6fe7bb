"""Project API schemas."""

from __future__ import annotations

from pydantic import BaseModel

from codeshelf.models.project import Project


class ProjectsResponse(BaseModel):
    """One page of projects plus the total before paging."""

    items: list[Project]
    total: int
    page: int = 1
