"""Discover and classify project directories under scan roots."""

from __future__ import annotations

import asyncio
import logging
import os
import re
import stat
import time
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from datetime import UTC, datetime
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Final, TypeAlias

from codeshelf.core.git_manager import MARKER_DIR, GitManager
from codeshelf.models.project import Project, ProjectKind, ScanStatus, carry_user_fields
from codeshelf.models.scan import ScanConfig, ScanError, ScanProgress, ScanResult, ScanStats

logger = logging.getLogger(__name__)

ProgressCallback: TypeAlias = Callable[[ScanProgress], None]

PROGRESS_BATCH_SIZE = 10
SIZE_SAMPLE_CAP_BYTES = 100_000_000
SIZE_SAMPLE_DEPTH = 3
FILE_COUNT_DEPTH = 5
README_DEPTH = 2

_README_PATTERN = re.compile(r"^readme[^/]*\.(md|txt|rst)$", re.IGNORECASE)

# Checked in order; the first language with a matching top-level entry wins.
LANGUAGE_INDICATORS: Final[tuple[tuple[str, tuple[str, ...]], ...]] = (
    ("typescript", ("tsconfig.json",)),
    ("javascript", ("package.json", "yarn.lock")),
    ("python", ("requirements.txt", "setup.py", "pyproject.toml")),
    ("rust", ("cargo.toml",)),
    ("go", ("go.mod", "go.sum")),
    ("java", ("pom.xml", "build.gradle")),
    ("ruby", ("gemfile",)),
    ("php", ("composer.json",)),
    ("csharp", ("*.csproj", "*.sln")),
    ("swift", ("package.swift",)),
)


class ScanRootsUnavailableError(RuntimeError):
    """Raised when none of the configured roots can be read."""


class IgnoreMatcher:
    """Glob-style ignore patterns evaluated against root-relative paths.

    ``**/node_modules/**`` and ``node_modules`` both ignore any path component
    named ``node_modules``; patterns containing ``/`` match the relative path
    (or any of its leading directories) as a whole.
    """

    def __init__(self, patterns: Iterable[str]) -> None:
        self.patterns = [p for p in patterns if p and p.strip()]
        self._components: list[str] = []
        self._paths: list[str] = []
        for raw in self.patterns:
            pattern = self._normalize(raw)
            if not pattern or pattern == "**":
                continue
            if "/" in pattern:
                self._paths.append(pattern)
            else:
                self._components.append(pattern)

    @staticmethod
    def _normalize(pattern: str) -> str:
        normalized = pattern.strip().replace("\\", "/")
        while normalized.startswith("./"):
            normalized = normalized[2:]
        while normalized.startswith("**/"):
            normalized = normalized[3:]
        while normalized.endswith("/**"):
            normalized = normalized[:-3]
        return normalized.strip("/")

    def matches(self, rel_parts: tuple[str, ...]) -> bool:
        if not rel_parts:
            return False
        for part in rel_parts:
            for pattern in self._components:
                if fnmatchcase(part, pattern):
                    return True
        for end in range(1, len(rel_parts) + 1):
            prefix = "/".join(rel_parts[:end])
            for pattern in self._paths:
                if fnmatchcase(prefix, pattern):
                    return True
        return False

    def without_name(self, name: str) -> IgnoreMatcher:
        """Copy of this matcher minus every pattern that would match ``name``."""
        kept: list[str] = []
        for raw in self.patterns:
            last = self._normalize(raw).rsplit("/", 1)[-1]
            if last and fnmatchcase(name, last):
                continue
            kept.append(raw)
        return IgnoreMatcher(kept)


def _scandir(path: Path) -> list[os.DirEntry[str]]:
    try:
        with os.scandir(path) as entries:
            return list(entries)
    except OSError as exc:
        logger.debug("Skipping unreadable directory %s: %s", path, exc)
        return []


def find_marker_parents(root: Path, *, max_depth: int, ignore: IgnoreMatcher) -> list[Path]:
    """Return directories under ``root`` holding a marker at depth ``<= max_depth``.

    Marker directories are never descended into and symlinks are not followed.
    ``root`` itself is included when it holds a marker.
    """
    found: list[Path] = []
    stack: list[tuple[Path, tuple[str, ...]]] = [(root, ())]
    while stack:
        directory, rel = stack.pop()
        child_depth = len(rel) + 1
        subdirs: list[tuple[Path, tuple[str, ...]]] = []
        for entry in _scandir(directory):
            if not entry.is_dir(follow_symlinks=False):
                continue
            child_rel = (*rel, entry.name)
            if entry.name == MARKER_DIR:
                found.append(directory)
                continue
            if child_depth >= max_depth or ignore.matches(child_rel):
                continue
            subdirs.append((Path(entry.path), child_rel))
        stack.extend(sorted(subdirs, reverse=True))
    return found


def iter_files(
    root: Path, *, max_depth: int, ignore: IgnoreMatcher | None = None
) -> Iterator[tuple[os.DirEntry[str], tuple[str, ...]]]:
    """Yield regular files whose relative path has at most ``max_depth`` parts."""
    stack: list[tuple[Path, tuple[str, ...]]] = [(root, ())]
    while stack:
        directory, rel = stack.pop()
        for entry in _scandir(directory):
            child_rel = (*rel, entry.name)
            if ignore is not None and ignore.matches(child_rel):
                continue
            try:
                if entry.is_file(follow_symlinks=False):
                    yield entry, child_rel
                elif entry.is_dir(follow_symlinks=False) and len(child_rel) < max_depth:
                    stack.append((Path(entry.path), child_rel))
            except OSError:
                continue


def sample_size(path: Path, ignore: IgnoreMatcher, *, cap: int = SIZE_SAMPLE_CAP_BYTES) -> int:
    """Approximate directory size; sampling stops once ``cap`` is exceeded."""
    total = 0
    for entry, _ in iter_files(path, max_depth=SIZE_SAMPLE_DEPTH, ignore=ignore):
        try:
            total += entry.stat(follow_symlinks=False).st_size
        except OSError:
            continue
        if total > cap:
            break
    return total


def count_files(path: Path, ignore: IgnoreMatcher) -> int:
    return sum(1 for _ in iter_files(path, max_depth=FILE_COUNT_DEPTH, ignore=ignore))


def find_readmes(path: Path, ignore: IgnoreMatcher) -> list[str]:
    readmes = [
        "/".join(rel)
        for entry, rel in iter_files(path, max_depth=README_DEPTH, ignore=ignore)
        if _README_PATTERN.match(entry.name)
    ]
    return sorted(readmes)


def detect_language(path: Path) -> str | None:
    names = [entry.name.lower() for entry in _scandir(path)]
    for language, patterns in LANGUAGE_INDICATORS:
        for pattern in patterns:
            if any(fnmatchcase(name, pattern) for name in names):
                return language
    return None


@dataclass(slots=True)
class DirectoryFacts:
    """Filesystem-derived facts for one candidate."""

    size_bytes: int
    file_count: int
    readme_files: list[str]
    language: str | None
    created_at: datetime
    modified_at: datetime


def _birth_time(info: os.stat_result) -> float:
    return getattr(info, "st_birthtime", None) or info.st_ctime


def inspect_directory(
    path: Path, ignore: IgnoreMatcher, *, min_size_bytes: int
) -> DirectoryFacts | None:
    """Collect filesystem facts; ``None`` for non-directories or undersized ones.

    Raises ``OSError`` when the candidate itself cannot be stat'ed.
    """
    info = path.stat()
    if not stat.S_ISDIR(info.st_mode):
        return None
    size = sample_size(path, ignore)
    if size < min_size_bytes:
        return None
    return DirectoryFacts(
        size_bytes=size,
        file_count=count_files(path, ignore),
        readme_files=find_readmes(path, ignore),
        language=detect_language(path),
        created_at=datetime.fromtimestamp(_birth_time(info), UTC),
        modified_at=datetime.fromtimestamp(info.st_mtime, UTC),
    )


class Scanner:
    """Scan configured roots and build catalog records."""

    def __init__(
        self,
        config: ScanConfig,
        existing_projects: Iterable[Project] = (),
        *,
        git: GitManager | None = None,
        progress_batch_size: int = PROGRESS_BATCH_SIZE,
    ) -> None:
        self._config = config
        self._git = git or GitManager()
        self._ignore = IgnoreMatcher(config.ignore_patterns)
        self._existing = {project.path: project for project in existing_projects}
        self._batch = max(1, progress_batch_size)
        self._cancelled = False
        self._on_progress: ProgressCallback | None = None
        logger.info("Scanner initialized with %d existing projects", len(self._existing))

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def set_progress_callback(self, callback: ProgressCallback | None) -> None:
        self._on_progress = callback

    def cancel(self) -> None:
        self._cancelled = True
        logger.info("Scan cancellation requested")

    async def scan(self) -> ScanResult:
        started = time.monotonic()
        result = ScanResult()
        logger.info("Starting scan of %s", [root.path for root in self._config.roots])

        candidates = await self.find_candidates()
        discovered = len(candidates)
        processed = 0
        logger.info("Found %d candidate projects", discovered)

        for candidate in candidates:
            if self._cancelled:
                logger.info("Scan stopped early after %d of %d candidates", processed, discovered)
                result.cancelled = True
                break
            try:
                project = await self.process_candidate(candidate)
            except Exception as exc:
                logger.warning("Failed to process %s: %s", candidate, exc)
                message = str(exc) or type(exc).__name__
                result.errors.append(ScanError(path=str(candidate), error=message))
            else:
                if project is not None:
                    result.projects.append(project)
            processed += 1
            if processed % self._batch == 0 or processed == discovered:
                self._report(discovered, processed, candidate)

        git_repos = sum(1 for project in result.projects if project.kind is ProjectKind.GIT)
        result.stats = ScanStats(
            total_scanned=processed,
            git_repos=git_repos,
            local_projects=len(result.projects) - git_repos,
            duration=time.monotonic() - started,
        )
        return result

    async def find_candidates(self) -> list[Path]:
        """Resolve every root into deduplicated candidate directories."""
        candidates: dict[str, Path] = {}
        marker_ignore = self._ignore.without_name(MARKER_DIR)
        readable_roots = 0

        for root in self._config.roots:
            root_path = Path(os.path.abspath(os.path.expanduser(root.path)))
            if not root_path.is_dir():
                logger.warning("Skipping scan root %s: not a readable directory", root_path)
                continue
            readable_roots += 1

            parents = await asyncio.to_thread(
                find_marker_parents,
                root_path,
                max_depth=self._config.max_depth,
                ignore=marker_ignore,
            )
            nested = [parent for parent in parents if parent != root_path]
            for parent in nested:
                candidates.setdefault(str(parent), parent)

            root_is_repo = root_path in parents
            if root.include_as_project or (root_is_repo and not nested):
                candidates.setdefault(str(root_path), root_path)

        if self._config.roots and readable_roots == 0:
            msg = "None of the scan roots could be read"
            raise ScanRootsUnavailableError(msg)
        return list(candidates.values())

    async def process_candidate(self, project_path: Path) -> Project | None:
        facts = await asyncio.to_thread(
            inspect_directory,
            project_path,
            self._ignore,
            min_size_bytes=self._config.min_size_bytes,
        )
        if facts is None:
            return None

        git_info = await self._git.get_git_info(project_path)
        primary = git_info.remotes[0] if git_info.remotes else None
        project = Project(
            name=project_path.name,
            path=str(project_path),
            kind=ProjectKind.GIT if git_info.is_git else ProjectKind.LOCAL,
            size_bytes=facts.size_bytes,
            created_at=facts.created_at,
            last_modified_at=facts.modified_at,
            file_count=facts.file_count,
            provider=primary.provider if primary is not None else None,
            last_commit_hash=git_info.last_commit_hash,
            branch=git_info.branch,
            remotes=git_info.remotes,
            readme_files=facts.readme_files,
            language=facts.language,
            scan_status=ScanStatus.COMPLETE,
            last_scanned_at=datetime.now(UTC),
        )

        prior = self._existing.get(project.path)
        if prior is not None:
            project = carry_user_fields(project, prior)
        return project

    def _report(self, discovered: int, processed: int, current: Path) -> None:
        if self._on_progress is None:
            return
        self._on_progress(
            ScanProgress(discovered=discovered, processed=processed, current_path=str(current))
        )
