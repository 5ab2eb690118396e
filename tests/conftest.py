from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

import pytest

from brightpanda.plugins import JavaScriptPlugin, PythonPlugin
from tests._fixtures.repo_builder import RepoBuilder


@pytest.fixture(autouse=True)
def _reset_brightpanda_logger() -> Iterator[None]:
    """Drop handlers installed by CLI runs so they do not outlive the test."""
    yield
    logger = logging.getLogger("brightpanda")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def repo_builder(tmp_path: Path) -> RepoBuilder:
    """Provide a reusable repo builder rooted at the pytest tmp_path."""
    return RepoBuilder(tmp_path)


@pytest.fixture
def python_plugin() -> Iterator[PythonPlugin]:
    plugin = PythonPlugin()
    assert plugin.init()
    yield plugin
    plugin.shutdown()


@pytest.fixture
def javascript_plugin() -> Iterator[JavaScriptPlugin]:
    plugin = JavaScriptPlugin()
    assert plugin.init()
    yield plugin
    plugin.shutdown()
