"""Run at most one scan at a time and reconcile its output into the store."""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from collections.abc import Callable, Iterable
from typing import TypeAlias

from codeshelf.core.git_manager import GitManager
from codeshelf.core.scanner import Scanner
from codeshelf.core.search_index import SearchIndex
from codeshelf.db.store import JSONStore
from codeshelf.models.project import Project, ScanStatus, carry_user_fields
from codeshelf.models.scan import JobStatus, ScanConfig, ScanJob, ScanProgress, ScanResult

logger = logging.getLogger(__name__)

ProgressListener: TypeAlias = Callable[[str, ScanProgress], None]
ScannerFactory: TypeAlias = Callable[[ScanConfig, Iterable[Project]], Scanner]

JOB_HISTORY_LIMIT = 20


class ScanJobManager:
    """Own the current scan job, its progress listeners, and its results."""

    def __init__(
        self,
        store: JSONStore,
        index: SearchIndex,
        *,
        git: GitManager | None = None,
        scanner_factory: ScannerFactory | None = None,
    ) -> None:
        self._store = store
        self._index = index
        self._git = git or GitManager()
        self._scanner_factory = scanner_factory or self._default_scanner
        self._jobs: OrderedDict[str, ScanJob] = OrderedDict()
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._current_id: str | None = None
        self._scanner: Scanner | None = None
        self._listeners: list[ProgressListener] = []

    @property
    def current_job_id(self) -> str | None:
        return self._current_id

    async def start_scan(self, config: ScanConfig) -> str:
        """Register a running job and start it in the background."""
        current = self._current_job()
        if current is not None and current.is_running:
            self.cancel_scan(current.id)

        job = ScanJob()
        self._remember(job)
        self._current_id = job.id
        logger.info("Starting scan job %s", job.id)

        task = asyncio.get_running_loop().create_task(self._run_scan(job.id, config))
        self._tasks[job.id] = task
        task.add_done_callback(lambda _: self._tasks.pop(job.id, None))
        return job.id

    def get_job_status(self, job_id: str) -> ScanJob | None:
        job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job is not None else None

    def cancel_scan(self, job_id: str) -> bool:
        job = self._jobs.get(job_id)
        if job is None or job_id != self._current_id or not job.is_running:
            return False
        if self._scanner is not None:
            self._scanner.cancel()
        job.finish(JobStatus.CANCELLED)
        logger.info("Scan job %s cancelled", job_id)
        return True

    def on_progress(self, callback: ProgressListener) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    async def wait(self, job_id: str) -> ScanJob | None:
        """Wait for a job's background task, then return its final state."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.shield(task)
        return self.get_job_status(job_id)

    async def _run_scan(self, job_id: str, config: ScanConfig) -> None:
        try:
            existing = await self._store.list_projects()
            logger.info("Catalog holds %d projects before scan", len(existing))
            if not self._still_running(job_id):
                return
            scanner = self._scanner_factory(config, existing)
            scanner.set_progress_callback(
                lambda progress: self._on_scanner_progress(job_id, progress)
            )
            self._scanner = scanner

            result = await scanner.scan()
            if not self._owns(job_id):
                logger.info("Discarding results of superseded scan job %s", job_id)
                return

            job = self._jobs[job_id]
            if not job.is_running:
                # Cancelled while still current: keep the partial result, skip the store.
                job.result = result
                return

            if not await self._reconcile(job_id, result):
                if self._owns(job_id):
                    job.result = result
                logger.info("Scan job %s stopped before its results were stored", job_id)
                return
            job.result = result
            job.finish(JobStatus.COMPLETE)
            logger.info("Scan job %s completed: %d projects found", job_id, len(result.projects))
        except Exception as exc:
            if not self._owns(job_id):
                return
            job = self._jobs[job_id]
            if job.is_running:
                job.finish(JobStatus.ERROR, error=str(exc) or type(exc).__name__)
            logger.exception("Scan job %s failed", job_id)
        finally:
            if self._current_id == job_id:
                self._scanner = None

    async def _reconcile(self, job_id: str, result: ScanResult) -> bool:
        """Upsert scan output, flush durably, then rebuild the index.

        Returns False as soon as the job is cancelled or superseded; nothing
        further is written once that happens.
        """
        for project in result.projects:
            current = await self._store.get_project_by_path(project.path)
            if not self._still_running(job_id):
                return False
            if current is not None and current.scan_status is ScanStatus.USER_MODIFIED:
                # Edits made while the scan was running win over the scan snapshot.
                project = carry_user_fields(project, current)
            await self._store.upsert_project(project)
        if not self._still_running(job_id):
            return False
        await self._store.flush()

        projects = await self._store.list_projects()
        if not self._still_running(job_id):
            return False
        logger.info("Catalog holds %d projects after scan", len(projects))
        self._index.build_index(projects)
        return True

    def _on_scanner_progress(self, job_id: str, progress: ScanProgress) -> None:
        if not self._owns(job_id):
            return
        job = self._jobs[job_id]
        if not job.is_running:
            return
        job.progress = progress
        for listener in list(self._listeners):
            try:
                listener(job_id, progress)
            except Exception:
                logger.exception("Scan progress listener failed")

    def _owns(self, job_id: str) -> bool:
        return self._current_id == job_id and job_id in self._jobs

    def _still_running(self, job_id: str) -> bool:
        return self._owns(job_id) and self._jobs[job_id].is_running

    def _current_job(self) -> ScanJob | None:
        return self._jobs.get(self._current_id) if self._current_id else None

    def _remember(self, job: ScanJob) -> None:
        self._jobs[job.id] = job
        while len(self._jobs) > JOB_HISTORY_LIMIT:
            oldest = next(iter(self._jobs))
            if oldest == self._current_id:
                break
            self._jobs.pop(oldest)

    def _default_scanner(self, config: ScanConfig, existing: Iterable[Project]) -> Scanner:
        return Scanner(config, existing, git=self._git)
