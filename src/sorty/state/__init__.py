"""History persistence for organize runs."""

from __future__ import annotations

import json
import os
import tempfile
import logging
import threading
from pathlib import Path
from typing import List, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, ValidationError

from sorty.locking import FileLock

from .errors import MissingStateError, StateError
from .journal import LEDGER_DIRNAME, LedgerJournal
from .models import (
    ApplyTags,
    CreateDirectory,
    HistoryEntry,
    MoveFile,
    OperationLedger,
    PrimitiveAction,
    RenameFile,
    RunCounts,
    RunStatus,
    SkippedItem,
)

DEFAULT_STATE_DIRNAME = ".sorty"
HISTORY_FILENAME = "history.json"
DEFAULT_MAX_ENTRIES = 100

LOGGER = logging.getLogger(__name__)

_SUCCESS_STATUSES = ("completed", "completed_with_errors")


@runtime_checkable
class HistoryStore(Protocol):
    """Storage interface for history entries, newest first."""

    def add(self, entry: HistoryEntry) -> None: ...

    def update(self, entry: HistoryEntry) -> None: ...

    def get(self, entry_id: str) -> HistoryEntry: ...

    def entries(self) -> List[HistoryEntry]: ...

    def latest_for(self, root: Path, *, undoable_only: bool = False) -> Optional[HistoryEntry]: ...


class HistoryStatistics(BaseModel):
    """Aggregate figures computed over stored history entries."""

    total_sessions: int = 0
    total_files_organized: int = 0
    total_folders_created: int = 0
    success_count: int = 0
    failed_count: int = 0
    reverted_count: int = 0

    @property
    def success_rate(self) -> float:
        """Share of sessions that finished successfully."""
        if self.total_sessions == 0:
            return 0.0
        return self.success_count / self.total_sessions


def compute_statistics(entries: List[HistoryEntry]) -> HistoryStatistics:
    """Summarize ``entries`` into ``HistoryStatistics``."""
    successful = [entry for entry in entries if entry.status in _SUCCESS_STATUSES]
    return HistoryStatistics(
        total_sessions=len(entries),
        total_files_organized=sum(
            entry.counts.files_moved + entry.counts.files_renamed for entry in successful
        ),
        total_folders_created=sum(entry.counts.folders_created for entry in successful),
        success_count=len(successful),
        failed_count=sum(entry.status == "failed" for entry in entries),
        reverted_count=sum(entry.status == "undone" for entry in entries),
    )


def _same_root(entry: HistoryEntry, root: Path) -> bool:
    return entry.root.expanduser().resolve() == root.expanduser().resolve()


def _replace_or_insert(entries: List[HistoryEntry], entry: HistoryEntry, limit: int) -> None:
    for position, existing in enumerate(entries):
        if existing.id == entry.id:
            entries[position] = entry
            return
    LOGGER.warning("History entry %s was no longer stored; recording it again", entry.id)
    entries.insert(0, entry)
    del entries[limit:]


class InMemoryHistoryStore:
    """History store kept in process memory."""

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        self.max_entries = max_entries
        self._entries: List[HistoryEntry] = []
        self._lock = threading.Lock()

    def add(self, entry: HistoryEntry) -> None:
        """Insert ``entry`` as the newest entry, trimming the oldest on overflow."""
        with self._lock:
            self._entries.insert(0, entry.model_copy(deep=True))
            del self._entries[self.max_entries :]

    def update(self, entry: HistoryEntry) -> None:
        """Replace the stored entry with the same identifier.

        An entry that is no longer stored, for example because the cap evicted
        it while its run was still going, is inserted again as the newest entry.
        """
        with self._lock:
            _replace_or_insert(self._entries, entry.model_copy(deep=True), self.max_entries)

    def get(self, entry_id: str) -> HistoryEntry:
        """Return the entry with ``entry_id``.

        Raises:
            MissingStateError: If no such entry is stored.
        """
        with self._lock:
            for entry in self._entries:
                if entry.id == entry_id:
                    return entry.model_copy(deep=True)
        raise MissingStateError(f"No history entry with id {entry_id}")

    def entries(self) -> List[HistoryEntry]:
        """Return all entries, newest first."""
        with self._lock:
            return [entry.model_copy(deep=True) for entry in self._entries]

    def latest_for(self, root: Path, *, undoable_only: bool = False) -> Optional[HistoryEntry]:
        """Return the newest entry recorded for ``root``."""
        for entry in self.entries():
            if not _same_root(entry, root):
                continue
            if undoable_only and not entry.is_undoable:
                continue
            return entry
        return None

    def clear(self) -> None:
        """Remove every entry."""
        with self._lock:
            self._entries.clear()


class JsonHistoryStore(InMemoryHistoryStore):
    """History store persisted as a single JSON document.

    Every operation re-reads the file so that separate processes observe each
    other's entries. Read-modify-write cycles hold an advisory lock on a
    sibling ``.lock`` file, and writes go through a temporary file and
    ``os.replace``.
    """

    def __init__(self, path: Path, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        super().__init__(max_entries=max_entries)
        self.path = path
        self.lock_path = path.with_name(f"{path.name}.lock")

    def add(self, entry: HistoryEntry) -> None:
        with self._lock, FileLock(self.lock_path):
            entries = self._load()
            entries.insert(0, entry)
            self._save(entries[: self.max_entries])

    def update(self, entry: HistoryEntry) -> None:
        with self._lock, FileLock(self.lock_path):
            entries = self._load()
            _replace_or_insert(entries, entry, self.max_entries)
            self._save(entries)

    def get(self, entry_id: str) -> HistoryEntry:
        with self._lock:
            entries = self._load()
        for entry in entries:
            if entry.id == entry_id:
                return entry
        raise MissingStateError(f"No history entry with id {entry_id}")

    def entries(self) -> List[HistoryEntry]:
        with self._lock:
            return self._load()

    def clear(self) -> None:
        with self._lock, FileLock(self.lock_path):
            self._save([])

    # ------------------------------------------------------------------ #
    # Helpers                                                            #
    # ------------------------------------------------------------------ #

    def _load(self) -> List[HistoryEntry]:
        """Read entries from disk.

        Raises:
            StateError: If the stored document cannot be parsed.
        """
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise StateError(f"Invalid history data in {self.path}: {exc}") from exc
        if not isinstance(data, dict) or not isinstance(data.get("entries"), list):
            raise StateError(f"Invalid history data in {self.path}: missing entries list")
        try:
            return [HistoryEntry.model_validate(item) for item in data["entries"]]
        except ValidationError as exc:
            raise StateError(f"Invalid history entry in {self.path}: {exc}") from exc

    def _save(self, entries: List[HistoryEntry]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "version": 1,
            "entries": [entry.model_dump(mode="json") for entry in entries],
        }
        handle = tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=self.path.parent,
            prefix=f".{self.path.name}.",
            suffix=".tmp",
            delete=False,
        )
        try:
            with handle:
                json.dump(payload, handle, indent=2)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(handle.name, self.path)
        except OSError:
            Path(handle.name).unlink(missing_ok=True)
            raise


__all__ = [
    "DEFAULT_MAX_ENTRIES",
    "DEFAULT_STATE_DIRNAME",
    "HISTORY_FILENAME",
    "LEDGER_DIRNAME",
    "ApplyTags",
    "CreateDirectory",
    "HistoryEntry",
    "HistoryStatistics",
    "HistoryStore",
    "InMemoryHistoryStore",
    "JsonHistoryStore",
    "LedgerJournal",
    "MissingStateError",
    "MoveFile",
    "OperationLedger",
    "PrimitiveAction",
    "RenameFile",
    "RunCounts",
    "RunStatus",
    "SkippedItem",
    "StateError",
    "compute_statistics",
]
