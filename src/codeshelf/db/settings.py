"""Settings document persisted next to the catalog."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from codeshelf.models.settings import Settings

logger = logging.getLogger(__name__)

SETTINGS_FILENAME = "settings.json"


class SettingsStore:
    """Lazily loaded, cached settings; defaults when the file is absent."""

    def __init__(self, data_dir: Path) -> None:
        self._dir = data_dir
        self.path = data_dir / SETTINGS_FILENAME
        self._cache: Settings | None = None

    async def get_settings(self) -> Settings:
        if self._cache is None:
            self._cache = await self._read()
        return self._cache.model_copy(deep=True)

    async def set_settings(self, settings: Settings | Mapping[str, Any]) -> Settings:
        value = settings if isinstance(settings, Settings) else Settings.model_validate(settings)
        content = json.dumps(value.to_json_dict(), indent=2)
        await asyncio.to_thread(self._write, content)
        self._cache = value
        return value.model_copy(deep=True)

    async def _read(self) -> Settings:
        try:
            raw = await asyncio.to_thread(self.path.read_text, encoding="utf-8")
        except FileNotFoundError:
            return Settings()
        try:
            return Settings.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as exc:
            logger.warning("Settings file %s is invalid (%s), using defaults", self.path, exc)
            return Settings()

    def _write(self, content: str) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        self.path.write_text(content, encoding="utf-8")
