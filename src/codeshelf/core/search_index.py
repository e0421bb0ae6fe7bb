"""In-memory fuzzy search and filter/sort/paginate over the catalog."""

from __future__ import annotations

import difflib
import logging
import time
import unicodedata
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Final, Literal, TypeAlias

from codeshelf.models.project import Project, ProjectKind

logger = logging.getLogger(__name__)

SortOrder: TypeAlias = Literal["asc", "desc"]

DEFAULT_LIMIT = 50
DEFAULT_PAGE_SIZE = 50

# Field weights for fuzzy matching; name counts the most.
SEARCH_WEIGHTS: Final[dict[str, float]] = {
    "name": 0.4,
    "path": 0.3,
    "description": 0.2,
    "tags": 0.1,
}

SORT_FIELDS: Final[dict[str, str]] = {
    "name": "name",
    "path": "path",
    "createdAt": "created_at",
    "created_at": "created_at",
    "lastModifiedAt": "last_modified_at",
    "last_modified_at": "last_modified_at",
    "lastScannedAt": "last_scanned_at",
    "last_scanned_at": "last_scanned_at",
    "sizeBytes": "size_bytes",
    "size_bytes": "size_bytes",
    "fileCount": "file_count",
    "file_count": "file_count",
    "importance": "importance",
}


@dataclass(slots=True)
class ProjectFilters:
    """Exact-match filters; unset fields do not filter."""

    kind: ProjectKind | None = None
    provider: str | None = None
    tags: list[str] = field(default_factory=list)
    importance: int | None = None

    @classmethod
    def from_params(cls, params: dict[str, Any] | None) -> ProjectFilters:
        if not params:
            return cls()
        kind = params.get("kind", params.get("type"))
        importance = params.get("importance")
        tags = params.get("tags") or []
        if isinstance(tags, str):
            tags = [tags]
        elif not isinstance(tags, list):
            msg = "tags must be a string or a list"
            raise ValueError(msg)
        return cls(
            kind=ProjectKind(kind) if kind else None,
            provider=params.get("provider") or None,
            tags=[str(tag) for tag in tags],
            importance=int(importance) if importance is not None else None,
        )

    def accepts(self, project: Project) -> bool:
        if self.kind is not None and project.kind is not self.kind:
            return False
        if self.provider and (project.provider is None or project.provider.value != self.provider):
            return False
        if self.tags and not any(tag in project.tags for tag in self.tags):
            return False
        if self.importance is not None and project.importance != self.importance:
            return False
        return True


@dataclass(slots=True)
class SortSpec:
    """Sort field and direction."""

    by: str
    order: SortOrder = "asc"

    def __post_init__(self) -> None:
        if self.by not in SORT_FIELDS:
            msg = f"Unsupported sort field: {self.by}"
            raise ValueError(msg)
        if self.order not in ("asc", "desc"):
            msg = f"Unsupported sort order: {self.order}"
            raise ValueError(msg)

    @classmethod
    def parse(cls, value: str | dict[str, Any] | None) -> SortSpec | None:
        """Accept ``"name"``, ``"-lastModifiedAt"`` or ``{"by": ..., "order": ...}``."""
        if not value:
            return None
        if isinstance(value, str):
            if value.startswith("-"):
                return cls(by=value[1:], order="desc")
            return cls(by=value)
        if not isinstance(value, dict):
            msg = f"Unsupported sort value: {value!r}"
            raise ValueError(msg)
        by = value.get("by")
        if not by:
            return None
        return cls(by=str(by), order=value.get("order") or "asc")


@dataclass(slots=True)
class ProjectPage:
    """One page of filtered projects plus the filtered total."""

    projects: list[Project]
    total: int


def collation_key(value: str) -> str:
    """Accent- and case-insensitive form of ``value``, so "Émile" sorts among the E names."""
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(char for char in decomposed if not unicodedata.combining(char)).casefold()


def sort_projects(projects: Iterable[Project], sort: SortSpec) -> list[Project]:
    """Stable sort; missing values always go last regardless of direction."""
    attribute = SORT_FIELDS[sort.by]
    present: list[tuple[Any, Project]] = []
    missing: list[Project] = []
    for project in projects:
        value = getattr(project, attribute)
        if value is None:
            missing.append(project)
        elif isinstance(value, str):
            present.append(((collation_key(value), value), project))
        else:
            present.append((value, project))
    present.sort(key=lambda item: item[0], reverse=sort.order == "desc")
    return [project for _, project in present] + missing


def field_similarity(query: str, text: str) -> float:
    """Best similarity between ``query`` and any window of ``text`` (0..1)."""
    if not query or not text:
        return 0.0
    haystack = text.casefold()
    if query in haystack:
        return 1.0
    size = len(query)
    if len(haystack) <= size:
        return difflib.SequenceMatcher(None, query, haystack).ratio()

    best = 0.0
    matcher = difflib.SequenceMatcher(None, "", query)
    for width in {size - 1, size, size + 1}:
        if width <= 0:
            continue
        for start in range(len(haystack) - width + 1):
            matcher.set_seq1(haystack[start : start + width])
            if matcher.real_quick_ratio() <= best or matcher.quick_ratio() <= best:
                continue
            best = max(best, matcher.ratio())
            if best == 1.0:
                return best
    return best


class SearchIndex:
    """Snapshot of the catalog serving fuzzy search and filtered listings."""

    def __init__(
        self,
        *,
        threshold: float = 0.4,
        min_match_length: int = 2,
        weights: dict[str, float] | None = None,
    ) -> None:
        self._threshold = threshold
        self._min_match_length = min_match_length
        self._weights = dict(weights or SEARCH_WEIGHTS)
        self._projects: list[Project] = []

    def build_index(self, projects: Iterable[Project]) -> None:
        started = time.perf_counter()
        self._projects = [project.model_copy(deep=True) for project in projects]
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "Search index built for %d projects in %.1fms", len(self._projects), elapsed_ms
        )

    def add_project(self, project: Project) -> None:
        self.build_index([*self._projects, project])

    def update_project(self, project: Project) -> None:
        if not any(existing.id == project.id for existing in self._projects):
            self.add_project(project)
            return
        self.build_index(
            project if existing.id == project.id else existing for existing in self._projects
        )

    def remove_project(self, project_id: str) -> None:
        self.build_index(project for project in self._projects if project.id != project_id)

    def search(self, query: str, limit: int = DEFAULT_LIMIT) -> list[Project]:
        """Ranked fuzzy matches across name, path, description and tags."""
        needle = (query or "").strip().casefold()
        if not needle:
            return [project.model_copy(deep=True) for project in self._projects[:limit]]
        if len(needle) < self._min_match_length:
            return []

        cutoff = 1.0 - self._threshold
        top_weight = max(self._weights.values())
        scored: list[tuple[float, int, Project]] = []
        for position, project in enumerate(self._projects):
            score = 0.0
            for name, weight in self._weights.items():
                similarity = max(
                    (field_similarity(needle, text) for text in self._field_texts(project, name)),
                    default=0.0,
                )
                if similarity >= cutoff:
                    score = max(score, similarity * weight / top_weight)
            if score > 0:
                scored.append((score, position, project))

        scored.sort(key=lambda item: (-item[0], item[1]))
        return [project.model_copy(deep=True) for _, _, project in scored[:limit]]

    def get_all(
        self,
        *,
        filters: ProjectFilters | None = None,
        sort: SortSpec | None = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> ProjectPage:
        selected = [p for p in self._projects if filters is None or filters.accepts(p)]
        if sort is not None:
            selected = sort_projects(selected, sort)
        page = max(page, 1)
        page_size = max(page_size, 1)
        start = (page - 1) * page_size
        window = selected[start : start + page_size]
        return ProjectPage(
            projects=[project.model_copy(deep=True) for project in window],
            total=len(selected),
        )

    def stats(self) -> dict[str, int]:
        return {"projectCount": len(self._projects)}

    @staticmethod
    def _field_texts(project: Project, name: str) -> list[str]:
        if name == "tags":
            return list(project.tags)
        value = getattr(project, name, None)
        return [value] if isinstance(value, str) and value else []
