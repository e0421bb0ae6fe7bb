"""Git metadata reads and branch operations for catalog projects."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from codeshelf.models.project import Provider, Remote

logger = logging.getLogger(__name__)

MARKER_DIR = ".git"
DEFAULT_TIMEOUT_SECONDS = 10.0
PROBE_TIMEOUT_SECONDS = 5.0

_REMOTE_LINE_PATTERN = re.compile(r"^(?P<name>\S+)\s+(?P<url>\S+)\s+\(fetch\)$")
_SSH_URL_PATTERN = re.compile(
    r"^[^@\s/]+@(?P<host>[^:/]+):(?P<owner>[^/]+)/(?P<repo>.+?)(?:\.git)?/?$"
)
_HTTPS_URL_PATTERN = re.compile(
    r"^[a-z][a-z0-9+.-]*://(?:[^@/]+@)?(?P<host>[^/]+)/(?P<owner>[^/]+)/(?P<repo>.+?)(?:\.git)?/?$",
    re.IGNORECASE,
)
_COMMIT_FIELD_SEPARATOR = "\x1f"


class GitCommandError(RuntimeError):
    """Raised when an explicit git action fails."""


class UncommittedChangesError(GitCommandError):
    """Raised when checkout would discard local changes."""

    def __init__(self, status_output: str) -> None:
        super().__init__("There are uncommitted changes")
        self.status_output = status_output


@dataclass(slots=True)
class GitResult:
    """Result from running a git command."""

    command: str
    returncode: int
    output: str


@dataclass(slots=True)
class GitInfo:
    """Repository metadata for one directory."""

    is_git: bool
    branch: str | None = None
    last_commit_hash: str | None = None
    remotes: list[Remote] = field(default_factory=list)


@dataclass(slots=True)
class RemoteParts:
    """Fields derived from a remote URL."""

    provider: Provider | None = None
    owner: str | None = None
    repo: str | None = None


@dataclass(slots=True)
class CommitInfo:
    """One entry from ``git log``."""

    hash: str
    author_name: str
    author_email: str
    date: str
    message: str


def is_git_repo(path: Path) -> bool:
    return (path / MARKER_DIR).is_dir()


def provider_for_host(host: str) -> Provider | None:
    lowered = host.lower()
    for provider in (Provider.GITHUB, Provider.GITLAB, Provider.BITBUCKET):
        if provider.value in lowered:
            return provider
    return None


def parse_remote_url(url: str) -> RemoteParts:
    """Parse SSH (`user@host:owner/repo`) or HTTPS remote URLs.

    Unrecognized shapes yield empty parts.
    """
    match = _SSH_URL_PATTERN.match(url.strip()) or _HTTPS_URL_PATTERN.match(url.strip())
    if match is None:
        return RemoteParts()
    return RemoteParts(
        provider=provider_for_host(match.group("host")),
        owner=match.group("owner"),
        repo=match.group("repo"),
    )


def parse_remote_lines(output: str) -> list[Remote]:
    """Collapse ``git remote -v`` output to one entry per remote name."""
    urls: dict[str, str] = {}
    for line in output.splitlines():
        match = _REMOTE_LINE_PATTERN.match(line.strip())
        if match:
            urls[match.group("name")] = match.group("url")

    remotes: list[Remote] = []
    for name, url in urls.items():
        parts = parse_remote_url(url)
        remotes.append(
            Remote(name=name, url=url, provider=parts.provider, owner=parts.owner, repo=parts.repo)
        )
    return remotes


class GitManager:
    """Async wrapper around the git CLI with bounded timeouts."""

    def __init__(
        self,
        *,
        executable: str = "git",
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._executable = executable
        self._timeout = timeout_seconds

    async def is_available(self) -> bool:
        result = await self._run(None, "--version", timeout=PROBE_TIMEOUT_SECONDS)
        return result is not None and result.returncode == 0

    async def get_git_info(self, project_path: Path) -> GitInfo:
        if not is_git_repo(project_path):
            return GitInfo(is_git=False)

        branch, commit, remotes = await asyncio.gather(
            self.current_branch(project_path),
            self.last_commit(project_path),
            self.remotes(project_path),
        )
        return GitInfo(is_git=True, branch=branch, last_commit_hash=commit, remotes=remotes)

    async def current_branch(self, project_path: Path) -> str | None:
        return await self._read_line(project_path, "rev-parse", "--abbrev-ref", "HEAD")

    async def last_commit(self, project_path: Path) -> str | None:
        return await self._read_line(project_path, "rev-parse", "HEAD")

    async def remotes(self, project_path: Path) -> list[Remote]:
        result = await self._run(project_path, "remote", "-v")
        if result is None or result.returncode != 0:
            return []
        return parse_remote_lines(result.output)

    async def list_branches(self, project_path: Path) -> list[str]:
        result = await self._require(
            project_path, "for-each-ref", "--format=%(refname:short)", "refs/heads"
        )
        return [line.strip() for line in result.output.splitlines() if line.strip()]

    async def list_commits(self, project_path: Path, limit: int = 20) -> list[CommitInfo]:
        sep = _COMMIT_FIELD_SEPARATOR
        result = await self._require(
            project_path,
            "log",
            f"--max-count={limit}",
            f"--pretty=format:%H{sep}%an{sep}%ae{sep}%ad{sep}%s",
            "--date=iso",
        )
        commits: list[CommitInfo] = []
        for line in result.output.splitlines():
            if not line:
                continue
            parts = line.split(sep)
            parts += [""] * (5 - len(parts))
            commits.append(
                CommitInfo(
                    hash=parts[0],
                    author_name=parts[1],
                    author_email=parts[2],
                    date=parts[3],
                    message=parts[4],
                )
            )
        return commits

    async def checkout(self, project_path: Path, branch: str, *, force: bool = False) -> GitResult:
        if not branch or branch.startswith("-"):
            msg = f"Invalid branch name: {branch!r}"
            raise ValueError(msg)
        status = await self._require(project_path, "status", "--porcelain")
        if status.output.strip() and not force:
            raise UncommittedChangesError(status.output)
        return await self._require(project_path, "checkout", branch)

    async def _read_line(self, project_path: Path, *args: str) -> str | None:
        result = await self._run(project_path, *args)
        if result is None or result.returncode != 0:
            return None
        return result.output.strip() or None

    async def _require(self, project_path: Path, *args: str) -> GitResult:
        result = await self._run(project_path, *args)
        if result is None:
            msg = f"git {' '.join(args)} could not be run"
            raise GitCommandError(msg)
        if result.returncode != 0:
            msg = f"git {' '.join(args)} failed: {result.output.strip()}"
            raise GitCommandError(msg)
        return result

    async def _run(
        self,
        project_path: Path | None,
        *args: str,
        timeout: float | None = None,
    ) -> GitResult | None:
        """Run git and capture output; ``None`` when it could not finish."""
        command = [self._executable]
        if project_path is not None:
            command.extend(["-C", str(project_path)])
        command.extend(args)
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            logger.debug("git unavailable for %s: %s", " ".join(command), exc)
            return None

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=timeout or self._timeout
            )
        except TimeoutError:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()
            logger.warning("git timed out: %s", " ".join(command))
            return None

        returncode = process.returncode if process.returncode is not None else -1
        output = stdout.decode("utf-8", errors="replace")
        if returncode != 0:
            output += stderr.decode("utf-8", errors="replace")
        return GitResult(command=" ".join(command), returncode=returncode, output=output)
