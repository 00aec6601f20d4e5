"""Resolve file names mentioned by a model response to catalog entries."""

from __future__ import annotations

from typing import Optional, Sequence

from sorty.catalog.models import FileRecord


class FileMatcher:
    """Match referenced names against a catalog using confidence tiers.

    Tiers are tried in order: exact full name, exact base name, case-insensitive
    full name, then substring containment in either direction. Within a tier the
    first catalog entry wins.
    """

    def __init__(self, files: Sequence[FileRecord]) -> None:
        self._files = list(files)
        self._by_display: dict[str, FileRecord] = {}
        self._by_name: dict[str, FileRecord] = {}
        self._by_lower: dict[str, FileRecord] = {}
        for record in self._files:
            self._by_display.setdefault(record.display_name, record)
            self._by_name.setdefault(record.name, record)
            self._by_lower.setdefault(record.display_name.lower(), record)

    @property
    def files(self) -> list[FileRecord]:
        """Return the catalog in its original order."""
        return list(self._files)

    def find(self, reference: str) -> Optional[FileRecord]:
        """Return the catalog entry best matching ``reference``.

        Args:
            reference: File name as written by the model.

        Returns:
            Optional[FileRecord]: Matching record, or ``None`` when nothing matches.
        """
        if not isinstance(reference, str):
            return None
        candidate = reference.strip()
        if not candidate:
            return None

        exact = self._by_display.get(candidate)
        if exact is not None:
            return exact

        by_name = self._by_name.get(candidate)
        if by_name is not None:
            return by_name

        folded = self._by_lower.get(candidate.lower())
        if folded is not None:
            return folded

        for record in self._files:
            display = record.display_name
            if candidate in display or display in candidate:
                return record
        return None


__all__ = ["FileMatcher"]
