"""Wiring for the long-lived services shared by the CLI, RPC and HTTP layers."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from codeshelf.config import AppConfig, load_config
from codeshelf.core.git_manager import GitManager
from codeshelf.core.project_manager import ProjectManager
from codeshelf.core.scan_job_manager import ScanJobManager
from codeshelf.core.search_index import SearchIndex
from codeshelf.db.settings import SettingsStore
from codeshelf.db.store import JSONStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AppContainer:
    config: AppConfig
    store: JSONStore
    settings: SettingsStore
    index: SearchIndex
    git: GitManager
    jobs: ScanJobManager
    projects: ProjectManager

    @classmethod
    def build(cls, config: AppConfig | None = None) -> AppContainer:
        config = config or load_config()
        store = JSONStore(config.data_dir, debounce_seconds=config.flush_debounce_seconds)
        index = SearchIndex()
        git = GitManager(timeout_seconds=config.git_timeout_seconds)
        return cls(
            config=config,
            store=store,
            settings=SettingsStore(config.data_dir),
            index=index,
            git=git,
            jobs=ScanJobManager(store, index, git=git),
            projects=ProjectManager(store, index, git),
        )

    async def start(self) -> None:
        """Load the catalog and build the search index from it."""
        await self.store.initialize()
        count = await self.projects.rebuild_index()
        logger.info("Catalog ready at %s with %d projects", self.config.data_dir, count)

    async def stop(self) -> None:
        await self.store.close()
