"""Process configuration read from the environment."""

from __future__ import annotations

import logging
import math
import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, Field

from codeshelf.core.git_manager import DEFAULT_TIMEOUT_SECONDS
from codeshelf.db.store import DEFAULT_DEBOUNCE_SECONDS

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path("~/.codeshelf")


class AppConfig(BaseModel):
    """Where data lives and how long background work may take."""

    data_dir: Path = Field(default_factory=lambda: DEFAULT_DATA_DIR.expanduser())
    git_timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    flush_debounce_seconds: float = Field(default=DEFAULT_DEBOUNCE_SECONDS, ge=0)
    log_level: str = "INFO"


def _float_env(env: Mapping[str, str], name: str, default: float, *, positive: bool) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not a number", name, raw)
        return default
    if not math.isfinite(value) or value < 0 or (positive and value == 0):
        logger.warning("Ignoring %s=%r: out of range", name, raw)
        return default
    return value


def load_config(env: Mapping[str, str] | None = None) -> AppConfig:
    """Build an ``AppConfig``; unparseable values fall back to the defaults."""
    env = os.environ if env is None else env
    defaults = AppConfig()

    data_dir = env.get("CODESHELF_DATA_DIR", "").strip()
    level = env.get("CODESHELF_LOG_LEVEL", "").strip().upper()
    if level and level not in logging.getLevelNamesMapping():
        logger.warning("Ignoring CODESHELF_LOG_LEVEL=%r: unknown level", level)
        level = ""

    return AppConfig(
        data_dir=Path(data_dir).expanduser() if data_dir else defaults.data_dir,
        git_timeout_seconds=_float_env(
            env, "CODESHELF_GIT_TIMEOUT", defaults.git_timeout_seconds, positive=True
        ),
        flush_debounce_seconds=_float_env(
            env, "CODESHELF_FLUSH_DEBOUNCE", defaults.flush_debounce_seconds, positive=False
        ),
        log_level=level or defaults.log_level,
    )
