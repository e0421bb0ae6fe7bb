import logging
from collections.abc import Iterator

import pytest

from codeshelf.logging_config import setup_logging


@pytest.fixture
def clean_root() -> Iterator[logging.Logger]:
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
    root.setLevel(level)


def _ours(root: logging.Logger) -> list[logging.Handler]:
    return [h for h in root.handlers if h.get_name() == "codeshelf-console"]


def test_setup_is_idempotent(clean_root: logging.Logger) -> None:
    setup_logging("INFO")
    setup_logging("DEBUG")

    handlers = _ours(clean_root)
    assert len(handlers) == 1
    assert handlers[0].level == logging.DEBUG
    assert clean_root.level == logging.DEBUG


def test_noisy_libraries_are_quieted(clean_root: logging.Logger) -> None:
    setup_logging(logging.DEBUG)
    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("uvicorn.access").level == logging.WARNING


def test_unknown_level_name_means_info(clean_root: logging.Logger) -> None:
    setup_logging("loud")
    assert clean_root.level == logging.INFO
