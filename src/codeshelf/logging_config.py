"""Console logging setup shared by the CLI and the HTTP server."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"
DATE_FORMAT = "%H:%M:%S"

_HANDLER_NAME = "codeshelf-console"
_QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "asyncio")


def setup_logging(level: int | str = logging.INFO) -> None:
    """Install one console handler on the root logger.

    Calling again only adjusts the level.
    """
    if isinstance(level, str):
        level = logging.getLevelNamesMapping().get(level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers:
        if handler.get_name() == _HANDLER_NAME:
            handler.setLevel(level)
            return

    console = logging.StreamHandler()
    console.set_name(_HANDLER_NAME)
    console.setLevel(level)
    console.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(console)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
