import json
from pathlib import Path

import pytest

from codeshelf.db.settings import SettingsStore
from codeshelf.models.settings import Settings


@pytest.mark.asyncio
async def test_missing_file_gives_defaults(tmp_path: Path) -> None:
    store = SettingsStore(tmp_path)
    assert await store.get_settings() == Settings()
    assert not store.path.exists()


@pytest.mark.asyncio
async def test_set_settings_persists_and_caches(tmp_path: Path) -> None:
    store = SettingsStore(tmp_path / "data")

    await store.set_settings({"theme": "dark"})

    saved = json.loads(store.path.read_text(encoding="utf-8"))
    assert saved["theme"] == "dark"
    store.path.unlink()
    assert (await store.get_settings()).to_json_dict()["theme"] == "dark"
    assert (await SettingsStore(tmp_path / "data").get_settings()) == Settings()


@pytest.mark.asyncio
async def test_corrupt_file_falls_back_to_defaults(tmp_path: Path) -> None:
    store = SettingsStore(tmp_path)
    store.path.write_text("{broken", encoding="utf-8")

    assert await store.get_settings() == Settings()


@pytest.mark.asyncio
async def test_returned_settings_are_copies(tmp_path: Path) -> None:
    store = SettingsStore(tmp_path)
    await store.set_settings({"scanPaths": ["/code"]})

    first = await store.get_settings()
    first.scan_paths.append("/other")

    assert (await store.get_settings()).scan_paths == ["/code"]
