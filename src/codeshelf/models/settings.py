"""User settings document."""

from __future__ import annotations

from typing import Any

from pydantic import ConfigDict, Field

from codeshelf.models.project import CamelModel


class Settings(CamelModel):
    """Persisted user preferences; unknown keys are kept as-is."""

    model_config = ConfigDict(extra="allow")

    scan_paths: list[str | dict[str, Any]] = Field(default_factory=list)
    ignored_patterns: list[str] = Field(default_factory=lambda: ["node_modules", ".git", "dist"])
    max_depth: int = 5
    min_size_bytes: int = 0
    ide_command: str = "code {path}"
    terminal_command: str = ""
