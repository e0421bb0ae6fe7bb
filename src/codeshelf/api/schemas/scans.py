"""Scan API schemas."""

from __future__ import annotations

from pydantic import Field

from codeshelf.models.project import CamelModel
from codeshelf.models.scan import DEFAULT_IGNORED_PATTERNS, ScanConfig, ScanRoot


class StartScanRequest(CamelModel):
    """Payload for starting a scan; roots may be plain paths."""

    paths: list[str | ScanRoot] = Field(min_length=1)
    ignore_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_IGNORED_PATTERNS))
    max_depth: int = Field(default=5, ge=1)
    min_size_bytes: int = Field(default=0, ge=0)

    def to_config(self) -> ScanConfig:
        return ScanConfig(
            roots=[ScanRoot(path=p) if isinstance(p, str) else p for p in self.paths],
            ignore_patterns=self.ignore_patterns,
            max_depth=self.max_depth,
            min_size_bytes=self.min_size_bytes,
        )


class ScanStartedResponse(CamelModel):
    job_id: str


class ScanCancelResponse(CamelModel):
    cancelled: bool
