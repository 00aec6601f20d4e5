"""Collaborator interfaces consumed by the organizer core."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, Sequence, runtime_checkable

from .models import FileRecord


@runtime_checkable
class Scanner(Protocol):
    """Produce the file inventory for a root directory."""

    def scan(self, root: Path) -> list[FileRecord]:
        """Return records for the files beneath ``root``."""
        ...


@runtime_checkable
class ModelClient(Protocol):
    """Produce raw organization text for a set of files."""

    def analyze(self, files: Sequence[FileRecord]) -> str:
        """Return the model's raw response describing an organization plan."""
        ...


__all__ = ["Scanner", "ModelClient"]
