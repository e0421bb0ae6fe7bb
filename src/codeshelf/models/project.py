"""Project catalog domain models."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any
from uuid import uuid4

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

SCHEMA_VERSION = 2


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


UTCDateTime = Annotated[datetime, AfterValidator(_as_utc)]


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ProjectKind(str, Enum):
    """Whether a project directory is a git repository."""

    GIT = "git"
    LOCAL = "local"


class Provider(str, Enum):
    """Hosting provider recognized from a remote URL."""

    GITHUB = "github"
    GITLAB = "gitlab"
    BITBUCKET = "bitbucket"
    OTHER = "other"


class ScanStatus(str, Enum):
    """Scan lifecycle status for a catalog record."""

    PENDING = "pending"
    SCANNING = "scanning"
    COMPLETE = "complete"
    ERROR = "error"
    USER_MODIFIED = "user-modified"


class Remote(CamelModel):
    """One named git remote."""

    name: str
    url: str
    provider: Provider | None = None
    owner: str | None = None
    repo: str | None = None


class Project(CamelModel):
    """A discovered project directory."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    path: str
    kind: ProjectKind = Field(default=ProjectKind.LOCAL, alias="type")
    tags: list[str] = Field(default_factory=list)
    importance: int = Field(default=0, ge=0, le=5)
    size_bytes: int = 0
    created_at: UTCDateTime = Field(default_factory=lambda: datetime.now(UTC))
    last_modified_at: UTCDateTime = Field(default_factory=lambda: datetime.now(UTC))
    file_count: int = 0
    provider: Provider | None = None
    last_commit_hash: str | None = None
    branch: str | None = None
    remotes: list[Remote] = Field(default_factory=list)
    readme_files: list[str] = Field(default_factory=list)
    description: str | None = None
    language: str | None = None
    scan_status: ScanStatus = ScanStatus.PENDING
    last_scanned_at: UTCDateTime | None = None
    scan_errors: list[str] | None = None

    @property
    def primary_remote(self) -> Remote | None:
        return self.remotes[0] if self.remotes else None

    def merged_with(self, updates: dict[str, Any]) -> Project:
        """Return a copy with ``updates`` applied, accepting either key style."""
        payload = self.to_json_dict()
        for key, value in updates.items():
            if key == "id":
                continue
            field = Project.model_fields.get(key)
            alias = (field.alias or to_camel(key)) if field is not None else key
            payload.pop(key, None)
            payload[alias] = value
        return Project.model_validate(payload)


def carry_user_fields(scanned: Project, prior: Project) -> Project:
    """Apply identity and user-owned fields from ``prior`` onto a fresh scan."""
    updates: dict[str, Any] = {
        "id": prior.id,
        "created_at": prior.created_at,
        "tags": list(prior.tags),
        "importance": prior.importance,
        "description": prior.description,
    }
    if prior.scan_status is ScanStatus.USER_MODIFIED:
        updates["name"] = prior.name
        updates["scan_status"] = ScanStatus.USER_MODIFIED
    return scanned.model_copy(update=updates)


class CatalogMeta(CamelModel):
    """Catalog header stored alongside the records."""

    version: int = SCHEMA_VERSION
    last_scan_at: UTCDateTime = Field(default_factory=lambda: datetime.now(UTC))
    project_count: int = 0


class ProjectsData(CamelModel):
    """The whole persisted catalog."""

    meta: CatalogMeta = Field(default_factory=CatalogMeta)
    projects: list[Project] = Field(default_factory=list)

    def touch(self) -> None:
        """Recompute header fields after a mutation."""
        self.meta.project_count = len(self.projects)
        self.meta.last_scan_at = datetime.now(UTC)
