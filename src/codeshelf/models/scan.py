"""Scan configuration, progress, and job models."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import Field, field_validator

from codeshelf.models.project import CamelModel, Project, UTCDateTime

DEFAULT_IGNORED_PATTERNS = [
    "**/node_modules/**",
    "**/.git/**",
    "**/dist/**",
    "**/build/**",
    "**/.next/**",
    "**/target/**",
    "**/.venv/**",
    "**/__pycache__/**",
]


class ScanRoot(CamelModel):
    """One root directory to scan."""

    path: str
    include_as_project: bool = False


class ScanConfig(CamelModel):
    """Inputs for a single scan."""

    roots: list[ScanRoot]
    ignore_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_IGNORED_PATTERNS))
    max_depth: int = Field(default=5, ge=1)
    min_size_bytes: int = Field(default=0, ge=0)

    @field_validator("roots", mode="before")
    @classmethod
    def _coerce_roots(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [{"path": item} if isinstance(item, str) else item for item in value]
        return value


class ScanProgress(CamelModel):
    """Counters reported while a scan runs."""

    discovered: int = 0
    processed: int = 0
    current_path: str = ""

    @property
    def percent(self) -> float:
        if self.discovered <= 0:
            return 0.0
        return self.processed / self.discovered * 100


class ScanError(CamelModel):
    """A candidate that failed classification."""

    path: str
    error: str


class ScanStats(CamelModel):
    """Summary counters for a finished scan."""

    total_scanned: int = 0
    git_repos: int = 0
    local_projects: int = 0
    duration: float = 0.0


class ScanResult(CamelModel):
    """Projects and per-candidate errors produced by one scan."""

    projects: list[Project] = Field(default_factory=list)
    errors: list[ScanError] = Field(default_factory=list)
    stats: ScanStats = Field(default_factory=ScanStats)
    cancelled: bool = False


class JobStatus(str, Enum):
    """Scan job state machine."""

    RUNNING = "running"
    COMPLETE = "complete"
    ERROR = "error"
    CANCELLED = "cancelled"


class ScanJob(CamelModel):
    """One scan run tracked by the job manager."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    status: JobStatus = JobStatus.RUNNING
    progress: ScanProgress = Field(default_factory=ScanProgress)
    result: ScanResult | None = None
    error: str | None = None
    started_at: UTCDateTime = Field(default_factory=lambda: datetime.now(UTC))
    completed_at: UTCDateTime | None = None

    @property
    def is_running(self) -> bool:
        return self.status is JobStatus.RUNNING

    def finish(self, status: JobStatus, *, error: str | None = None) -> None:
        self.status = status
        self.error = error
        self.completed_at = datetime.now(UTC)
