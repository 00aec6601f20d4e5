"""Shared fixtures for the Sorty test suite."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable

import pytest

from sorty.catalog.discovery import DirectoryScanner
from sorty.catalog.models import FileRecord


def write_file(root: Path, relative: str, content: str = "data") -> Path:
    """Create ``relative`` below ``root`` holding ``content``."""
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


@pytest.fixture
def root(tmp_path: Path) -> Path:
    """Return an empty directory to organize."""
    path = tmp_path / "root"
    path.mkdir()
    return path.resolve()


@pytest.fixture
def scan() -> Callable[[Path], list[FileRecord]]:
    """Return a helper that catalogs every file below a directory."""

    def _scan(path: Path) -> list[FileRecord]:
        return DirectoryScanner(recursive=True, compute_hash=True).scan(path)

    return _scan


@pytest.fixture
def home_env(tmp_path: Path) -> dict[str, str]:
    """Return environment variables pointing HOME to a temp directory."""
    env = {key: value for key, value in os.environ.items() if not key.startswith("SORTY__")}
    env["HOME"] = str(tmp_path / "home")
    return env


@pytest.fixture(autouse=True)
def reset_sorty_logger():
    """Drop handlers the CLI installs so they never outlive a test's streams."""
    yield
    logger = logging.getLogger("sorty")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
